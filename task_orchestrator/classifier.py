"""
Task Classification
===================

Rule-based classification of a task description into a category and the set
of tools it needs. Both tables are ordered: for categories the first matching
rule wins, for tools every matching rule contributes. Patterns cover English
and Spanish phrasing.
"""

from __future__ import annotations

import logging
import re

from .models import TaskCategory

logger = logging.getLogger(__name__)

TOOL_BROWSER = "browser"
TOOL_IMAGE = "image"
TOOL_SEARCH = "search"
TOOL_DATA = "data"
TOOL_TTS = "tts"
TOOL_SLIDES = "slides"


class TaskClassifier:
    """Classify task descriptions into categories and required tools"""

    # First match wins. Order is part of the contract.
    CATEGORY_RULES: tuple[tuple[str, TaskCategory], ...] = (
        (r"\bplan(s|ned|ning)?\b", TaskCategory.PLANNING),
        (r"\b(organi[sz]e|schedule|roadmap|outline the steps)\b", TaskCategory.PLANNING),
        (r"\b(planifica\w*|organiz\w*|estructura\w*)\b", TaskCategory.PLANNING),
        (r"\banaly[sz]\w*", TaskCategory.ANALYSIS),
        (r"\b(statistic\w*|dataset|csv|excel|spreadsheet|correlat\w*)\b", TaskCategory.ANALYSIS),
        (r"\b(analiz\w*|estad[ií]stic\w*|datos)\b", TaskCategory.ANALYSIS),
        (r"\b(generat\w*|creat\w*|writ(e|ing)|draw\w*|story|poem\w*|image\w*)\b", TaskCategory.CREATIVE),
        (r"\b(generar|crea|crear|escrib\w*|cuento\w*|poema\w*|imagen\w*|dibuj\w*)\b", TaskCategory.CREATIVE),
        (r"\b(search\w*|look up|latest|news|internet)\b", TaskCategory.SEARCH),
        (r"\bfind (information|out)\b", TaskCategory.SEARCH),
        (r"\b(busca\w*|informaci[oó]n|investiga\w*)\b", TaskCategory.SEARCH),
        (r"\b(execut\w*|run|implement\w*|deploy\w*|script\w*)\b", TaskCategory.EXECUTION),
        (r"\b(ejecut\w*|corre)\b", TaskCategory.EXECUTION),
    )

    # Every match contributes; duplicates collapse onto the first occurrence.
    TOOL_RULES: tuple[tuple[str, str], ...] = (
        (r"https?://", TOOL_BROWSER),
        (r"\b(navigat\w*|browse|open the (web)?site)\b", TOOL_BROWSER),
        (r"\b(naveg\w*|abre la web|sitio web|extrae datos)\b", TOOL_BROWSER),
        (
            r"\b(generate|create|draw|make|render)\b[^.]*\b(image|picture|photo|illustration|drawing)s?\b",
            TOOL_IMAGE,
        ),
        (r"\b(image|picture|photo) of\b", TOOL_IMAGE),
        (r"\b(genera\w* (una )?imagen|crea una foto|imagen(es)?|dibuj\w*)\b", TOOL_IMAGE),
        (r"\bsearch (the )?(web|internet|online)\b", TOOL_SEARCH),
        (r"\b(look up|(latest|current) news)\b", TOOL_SEARCH),
        (r"\b(busca\w* en internet|investiga\w*)\b", TOOL_SEARCH),
        (r"\banaly[sz]e (the |this |my )?data\b", TOOL_DATA),
        (r"\b(csv|excel|spreadsheet|statistic\w*)\b", TOOL_DATA),
        (r"\b(analiza\w* (los )?datos|estad[ií]stic\w*)\b", TOOL_DATA),
        (r"\b(text[- ]to[- ]speech|read (it |this )?aloud|audio)\b", TOOL_TTS),
        (r"\b(texto a voz|voz)\b", TOOL_TTS),
        (r"\b(slides?|slide deck|pptx?|powerpoint|presentations?)\b", TOOL_SLIDES),
        (r"\b(diapositivas?|presentaci[oó]n(es)?)\b", TOOL_SLIDES),
    )

    _compiled_categories = tuple(
        (re.compile(pattern), category) for pattern, category in CATEGORY_RULES
    )
    _compiled_tools = tuple(
        (re.compile(pattern), tool) for pattern, tool in TOOL_RULES
    )

    @staticmethod
    def normalize(description: str) -> str:
        return " ".join(description.casefold().split())

    @classmethod
    def categorize(cls, description: str) -> TaskCategory:
        text = cls.normalize(description)
        for pattern, category in cls._compiled_categories:
            if pattern.search(text):
                return category

        logger.debug("No category rule matched; using general")
        return TaskCategory.GENERAL

    @classmethod
    def detect_tools(cls, description: str) -> tuple[str, ...]:
        """Tool ids required by the description, in rule order, deduplicated"""
        text = cls.normalize(description)
        tools: list[str] = []
        for pattern, tool in cls._compiled_tools:
            if tool not in tools and pattern.search(text):
                tools.append(tool)
        return tuple(tools)

    @classmethod
    def classify(cls, description: str) -> tuple[TaskCategory, tuple[str, ...]]:
        """
        Classify a task description.

        Returns the category and the ordered, duplicate-free tool ids. The
        tool tuple behaves as a set for membership checks; its order is the
        rule order so dispatch and prompt assembly stay reproducible.
        """
        return cls.categorize(description), cls.detect_tools(description)
