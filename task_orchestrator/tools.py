"""
Auxiliary Tools
===============

Tools run before the provider call and feed their output into the prompt.
``invoke`` returns a successful ``ToolResult`` or raises; the dispatcher turns
exceptions (``ToolError`` for expected failures) into failed results.
"""

from __future__ import annotations

import asyncio
import base64
import csv
import html
import io
import logging
import re
import statistics
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any
from urllib.parse import quote, quote_plus

import httpx
from pptx import Presentation
from pptx.enum.text import PP_ALIGN
from pptx.util import Inches, Pt

from .classifier import (
    TOOL_BROWSER,
    TOOL_DATA,
    TOOL_IMAGE,
    TOOL_SEARCH,
    TOOL_SLIDES,
    TOOL_TTS,
    TaskClassifier,
)
from .config import get_config_dir
from .credentials import get_api_key
from .errors import ToolError
from .models import ToolResult

logger = logging.getLogger(__name__)


def output_path(directory: str | Path, text: str, suffix: str, fallback: str) -> Path:
    """Timestamped file name under ``directory`` with a slug of ``text``"""
    directory = Path(directory).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    slug = re.sub(r"[^a-z0-9]+", "-", text[:20].lower()).strip("-") or fallback
    return directory / f"{int(time.time() * 1000)}-{slug}.{suffix}"


class BaseTool(ABC):
    """Abstract base class for tools"""

    TOOL_ID = ""
    REQUEST_TIMEOUT = 60.0

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.options = options or {}
        self._transport = transport

    @property
    def tool_id(self) -> str:
        return self.TOOL_ID

    def matches(self, description: str) -> bool:
        return self.tool_id in TaskClassifier.detect_tools(description)

    async def invoke(self, description: str) -> ToolResult:
        data = await self.run(description)
        return ToolResult(tool=self.tool_id, success=True, data=data)

    @abstractmethod
    async def run(self, description: str) -> Any:
        pass

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.REQUEST_TIMEOUT, transport=self._transport, **kwargs
        )


class WebSearchTool(BaseTool):
    """Web search through Tavily, with plain link suggestions when no key is set"""

    TOOL_ID = TOOL_SEARCH
    API_URL = "https://api.tavily.com/search"

    @property
    def max_results(self) -> int:
        value = self.options.get("maxResults")
        return value if isinstance(value, int) and value > 0 else 5

    async def run(self, description: str) -> dict[str, Any]:
        query = description.strip()
        api_key = get_api_key("tavily")
        if not api_key:
            logger.warning("Tavily API key not configured, returning suggested links")
            return self.suggested_links(query)

        try:
            async with self._client() as client:
                response = await client.post(
                    self.API_URL,
                    json={
                        "api_key": api_key,
                        "query": query,
                        "max_results": self.max_results,
                        "include_answer": True,
                    },
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Tavily search failed ({type(e).__name__}), returning suggested links")
            return self.suggested_links(query)

        results = [
            {
                "title": item.get("title", ""),
                "url": item.get("url", ""),
                "snippet": item.get("content") or item.get("snippet", ""),
            }
            for item in data.get("results", [])
            if isinstance(item, dict)
        ]
        logger.info(f"Web search returned {len(results)} results")
        return {"query": query, "results": results, "summary": data.get("answer")}

    @staticmethod
    def suggested_links(query: str) -> dict[str, Any]:
        return {
            "query": query,
            "results": [
                {
                    "title": f'Results for "{query}"',
                    "url": f"https://www.google.com/search?q={quote_plus(query)}",
                    "snippet": "Live search is unavailable; open this link for results.",
                },
                {
                    "title": f"Wikipedia - {query}",
                    "url": f"https://en.wikipedia.org/wiki/{quote('_'.join(query.split()))}",
                    "snippet": f"Encyclopedia article search for {query}.",
                },
            ],
            "summary": None,
        }


class ImageGenerationTool(BaseTool):
    """Image generation through Replicate, falling back to a second model"""

    TOOL_ID = TOOL_IMAGE
    API_URL = "https://api.replicate.com/v1/models/{model}/predictions"
    REQUEST_TIMEOUT = 120.0
    MODELS: tuple[tuple[str, dict[str, Any]], ...] = (
        (
            "stability-ai/stable-diffusion-3",
            {
                "negative_prompt": "blurry, low quality, distorted",
                "num_inference_steps": 28,
                "guidance_scale": 7.5,
            },
        ),
        ("black-forest-labs/flux-schnell", {"num_outputs": 1}),
    )

    async def run(self, description: str) -> dict[str, Any]:
        api_key = get_api_key("replicate")
        if not api_key:
            raise ToolError(self.tool_id, "Replicate API key not configured")

        errors: list[str] = []
        headers = {"Authorization": f"Bearer {api_key}", "Prefer": "wait"}
        async with self._client(headers=headers) as client:
            for model, extra_input in self.MODELS:
                try:
                    response = await client.post(
                        self.API_URL.format(model=model),
                        json={"input": {"prompt": description, **extra_input}},
                    )
                    response.raise_for_status()
                    prediction = response.json()
                except (httpx.HTTPError, ValueError) as e:
                    errors.append(f"{model}: {type(e).__name__}")
                    logger.warning(f"Image model {model} failed, trying next")
                    continue

                output = prediction.get("output")
                urls = output if isinstance(output, list) else [output] if output else []
                if prediction.get("status") == "failed" or not urls:
                    errors.append(f"{model}: {prediction.get('error') or 'no output'}")
                    continue

                return {"model": model, "image_url": urls[0], "image_urls": urls}

        raise ToolError(self.tool_id, "; ".join(errors) or "no image model available")


class DataAnalysisTool(BaseTool):
    """Descriptive statistics for a CSV file path or inline CSV in the task"""

    TOOL_ID = TOOL_DATA
    CSV_PATH_PATTERN = re.compile(r"[\w./~\\-]+\.csv\b", re.IGNORECASE)

    async def run(self, description: str) -> dict[str, Any]:
        source, text = await asyncio.to_thread(self.find_csv, description)
        if text is None:
            raise ToolError(self.tool_id, "no CSV data found in the task description")
        analysis = await asyncio.to_thread(self.analyze, text)
        analysis["source"] = source
        return analysis

    def find_csv(self, description: str) -> tuple[str, str | None]:
        for match in self.CSV_PATH_PATTERN.finditer(description):
            path = Path(match.group(0)).expanduser()
            if path.is_file():
                return str(path), path.read_text(encoding="utf-8", errors="replace")

        rows = [
            line.strip()
            for line in description.splitlines()
            if line.count(",") >= 1 and line.strip()
        ]
        if len(rows) >= 2:
            widths = {len(row.split(",")) for row in rows}
            if len(widths) == 1:
                return "inline", "\n".join(rows)
        return "none", None

    @staticmethod
    def analyze(text: str) -> dict[str, Any]:
        reader = csv.reader(io.StringIO(text))
        table = [row for row in reader if any(cell.strip() for cell in row)]
        if not table:
            raise ToolError(TOOL_DATA, "CSV data is empty")

        headers = [h.strip() for h in table[0]]
        rows = table[1:]
        columns: dict[str, dict[str, float]] = {}
        for index, header in enumerate(headers):
            values: list[float] = []
            for row in rows:
                if index >= len(row):
                    continue
                try:
                    values.append(float(row[index]))
                except ValueError:
                    continue
            if values:
                columns[header] = {
                    "min": min(values),
                    "max": max(values),
                    "mean": statistics.fmean(values),
                    "count": len(values),
                }

        return {
            "total_rows": len(rows),
            "total_columns": len(headers),
            "columns": headers,
            "numeric_columns": columns,
        }


class TextToSpeechTool(BaseTool):
    """Google Cloud Text-to-Speech, MP3 written under the config directory"""

    TOOL_ID = TOOL_TTS
    API_URL = "https://texttospeech.googleapis.com/v1/text:synthesize"
    MAX_CHARS = 5000

    async def run(self, description: str) -> dict[str, Any]:
        api_key = get_api_key("google_tts")
        if not api_key:
            raise ToolError(self.tool_id, "Google TTS API key not configured")

        language = self.options.get("language", "en-US")
        voice = self.options.get("voice", "en-US-Neural2-C")
        text = description.strip()[: self.MAX_CHARS]

        try:
            async with self._client() as client:
                response = await client.post(
                    self.API_URL,
                    params={"key": api_key},
                    json={
                        "input": {"text": text},
                        "voice": {"languageCode": language, "name": voice},
                        "audioConfig": {"audioEncoding": "MP3"},
                    },
                )
                response.raise_for_status()
                audio = base64.b64decode(response.json()["audioContent"])
        except (httpx.HTTPError, ValueError, KeyError) as e:
            raise ToolError(self.tool_id, f"speech synthesis failed ({type(e).__name__})") from e

        path = output_path(
            self.options.get("outputDir") or get_config_dir() / "audio", text, "mp3", "speech"
        )
        await asyncio.to_thread(path.write_bytes, audio)

        return {"file": str(path), "bytes": len(audio), "language": language, "voice": voice}


class WebPageTool(BaseTool):
    """Fetch pages linked in the task and extract title and a text excerpt"""

    TOOL_ID = TOOL_BROWSER
    URL_PATTERN = re.compile(r"https?://[^\s<>\"')\]]+")
    MAX_PAGES = 3
    EXCERPT_CHARS = 500
    REQUEST_TIMEOUT = 30.0

    async def run(self, description: str) -> dict[str, Any]:
        urls = list(dict.fromkeys(u.rstrip(".,;") for u in self.URL_PATTERN.findall(description)))
        if not urls:
            raise ToolError(self.tool_id, "no URL in the task description")

        pages: list[dict[str, Any]] = []
        errors: list[str] = []
        async with self._client(follow_redirects=True) as client:
            for url in urls[: self.MAX_PAGES]:
                try:
                    response = await client.get(url)
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    errors.append(f"{url}: {type(e).__name__}")
                    continue
                pages.append(self.extract(str(response.url), response.text))

        if not pages:
            raise ToolError(self.tool_id, "; ".join(errors))
        return {"pages": pages, "errors": errors}

    @classmethod
    def extract(cls, url: str, body: str) -> dict[str, Any]:
        title_match = re.search(r"<title[^>]*>(.*?)</title>", body, re.IGNORECASE | re.DOTALL)
        title = html.unescape(title_match.group(1)).strip() if title_match else ""
        text = re.sub(r"<(script|style)[^>]*>.*?</\1>", " ", body, flags=re.IGNORECASE | re.DOTALL)
        text = html.unescape(re.sub(r"<[^>]+>", " ", text))
        text = " ".join(text.split())
        return {"url": url, "title": title, "excerpt": text[: cls.EXCERPT_CHARS]}


class SlidesTool(BaseTool):
    """
    PowerPoint deck built from the task description.

    Markdown input is honoured: ``---`` lines separate slides, otherwise each
    heading starts a new slide. Plain text becomes a single overview slide.
    The deck opens with a title slide and every content slide carries an
    ``n / total`` footer.
    """

    TOOL_ID = TOOL_SLIDES
    SEPARATOR = re.compile(r"\n\s*---+\s*\n")
    HEADING = re.compile(r"^#{1,6}\s+(.*)$")
    BULLET = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")
    MAX_TITLE_CHARS = 80
    SUBTITLE = "Generated by task-orchestrator"

    async def run(self, description: str) -> dict[str, Any]:
        title, slides = self.outline(description)
        if not slides:
            raise ToolError(self.tool_id, "nothing to put on slides")

        path = output_path(
            self.options.get("outputDir") or get_config_dir() / "slides", title, "pptx", "deck"
        )
        await asyncio.to_thread(self.write_deck, path, title, slides)
        logger.info(f"Presentation written with {len(slides) + 1} slides")

        return {
            "file": str(path),
            "title": title,
            "slide_count": len(slides) + 1,
            "slides": [slide["title"] for slide in slides],
        }

    @classmethod
    def outline(cls, description: str) -> tuple[str, list[dict[str, str]]]:
        """Split a description into a deck title and ``{title, content}`` slides"""
        text = description.strip()
        if not text:
            return "", []

        if cls.SEPARATOR.search(text):
            chunks = [chunk.strip() for chunk in cls.SEPARATOR.split(text) if chunk.strip()]
            chunk_slides = [cls._slide_from_chunk(chunk) for chunk in chunks]
            return cls._clip(chunk_slides[0]["title"]), chunk_slides

        slides: list[dict[str, str]] = []
        preamble: list[str] = []
        for line in text.splitlines():
            heading = cls.HEADING.match(line.strip())
            if heading:
                slides.append({"title": heading.group(1).strip() or "Slide", "content": ""})
            elif slides:
                slides[-1]["content"] = cls._join(slides[-1]["content"], line)
            else:
                preamble.append(line)

        if slides:
            title = cls._clip(" ".join(preamble).strip() or slides[0]["title"])
            return title, slides

        lines = [line.strip() for line in text.splitlines() if line.strip()]
        return cls._clip(lines[0]), [{"title": "Overview", "content": "\n".join(lines)}]

    @classmethod
    def _slide_from_chunk(cls, chunk: str) -> dict[str, str]:
        lines = chunk.splitlines()
        heading = cls.HEADING.match(lines[0].strip())
        slide_title = heading.group(1) if heading else lines[0]
        content = "\n".join(line for line in lines[1:] if line.strip())
        return {"title": slide_title.strip() or "Slide", "content": content}

    @staticmethod
    def _join(content: str, line: str) -> str:
        if not line.strip():
            return content
        return f"{content}\n{line}" if content else line

    @classmethod
    def _clip(cls, text: str) -> str:
        text = " ".join(text.split())
        if len(text) <= cls.MAX_TITLE_CHARS:
            return text
        return text[: cls.MAX_TITLE_CHARS - 3].rstrip() + "..."

    @classmethod
    def write_deck(cls, path: Path, title: str, slides: list[dict[str, str]]) -> None:
        deck = Presentation()

        title_slide = deck.slides.add_slide(deck.slide_layouts[0])
        title_slide.shapes.title.text = title
        title_slide.placeholders[1].text = cls.SUBTITLE

        for number, slide in enumerate(slides, start=1):
            content_slide = deck.slides.add_slide(deck.slide_layouts[1])
            content_slide.shapes.title.text = slide["title"]

            body = content_slide.placeholders[1].text_frame
            lines = [cls.BULLET.sub("", line).strip() for line in slide["content"].splitlines()]
            body.text = lines[0] if lines else ""
            for line in lines[1:]:
                body.add_paragraph().text = line

            footer = content_slide.shapes.add_textbox(
                Inches(0.5), Inches(6.9), Inches(9), Inches(0.4)
            ).text_frame.paragraphs[0]
            footer.text = f"{number} / {len(slides)}"
            footer.alignment = PP_ALIGN.RIGHT
            footer.font.size = Pt(10)

        deck.save(str(path))


TOOL_CLASSES: tuple[type[BaseTool], ...] = (
    WebPageTool,
    ImageGenerationTool,
    WebSearchTool,
    DataAnalysisTool,
    TextToSpeechTool,
    SlidesTool,
)
