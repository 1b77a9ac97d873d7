"""
Model Providers
===============

Provider clients the orchestrator falls back through. Every provider exposes
the same coroutine, ``invoke(prompt, context, params) -> str``, and reports
failure by raising ``ProviderError`` with one of the ``ProviderErrorKind``
values. Each provider also carries its rank per task category; lower ranks
are tried first.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Any

import httpx

from .credentials import get_api_key
from .errors import ProviderError, ProviderErrorKind
from .models import ProviderParams, TaskCategory
from .validation import InputValidator

logger = logging.getLogger(__name__)

UNRANKED = 1_000_000


def format_http_error(exc: httpx.HTTPStatusError) -> str:
    """Format detailed error message from HTTP exception."""
    response = exc.response
    message = response.reason_phrase or str(exc)
    retry_after = response.headers.get("Retry-After")

    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_info = payload.get("error")
        if isinstance(error_info, dict):
            message = error_info.get("message") or message
        elif isinstance(error_info, str) and error_info:
            message = error_info
        elif isinstance(payload.get("message"), str):
            message = payload["message"]

    if retry_after:
        message = f"{message} Retry-After: {retry_after}."

    return f"HTTP {response.status_code}: {message}"


def classify_status(status_code: int) -> ProviderErrorKind:
    if status_code in (401, 403):
        return ProviderErrorKind.AUTH
    if status_code == 429:
        return ProviderErrorKind.RATE_LIMITED
    if status_code in (408, 504):
        return ProviderErrorKind.TIMEOUT
    return ProviderErrorKind.UNKNOWN


class RateLimiter:
    """Sliding one-minute window of request timestamps for a single provider"""

    def __init__(self, max_requests_per_minute: int = 60) -> None:
        self.max_requests_per_minute = max_requests_per_minute
        self._requests: deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = time.monotonic()
                window_start = now - 60
                while self._requests and self._requests[0] < window_start:
                    self._requests.popleft()

                if len(self._requests) < self.max_requests_per_minute:
                    self._requests.append(now)
                    return

                wait_time = self._requests[0] - window_start
                logger.info(f"Rate limit reached, waiting {wait_time:.1f}s")
                await asyncio.sleep(wait_time)

    @property
    def in_window(self) -> int:
        return len(self._requests)


class BaseProvider(ABC):
    """Abstract base class for model providers"""

    DEFAULT_PRIORITY: dict[TaskCategory, int] = {}
    DEFAULT_PARAMS = ProviderParams()

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        priority_overrides: dict[TaskCategory, int] | None = None,
        params: ProviderParams | None = None,
    ) -> None:
        self.rate_limiter = rate_limiter or RateLimiter()
        self._priority = {**self.DEFAULT_PRIORITY, **(priority_overrides or {})}
        self.default_params = params or self.DEFAULT_PARAMS

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @property
    def priority_by_category(self) -> dict[TaskCategory, int]:
        return dict(self._priority)

    def rank(self, category: TaskCategory) -> int:
        return self._priority.get(category, UNRANKED)

    async def initialize(self) -> bool:
        return True

    @abstractmethod
    async def invoke(
        self,
        prompt: str,
        context: str | None = None,
        params: ProviderParams | None = None,
    ) -> str:
        """Return the completion text or raise ProviderError"""
        pass

    async def aclose(self) -> None:
        pass


class OpenAICompatibleProvider(BaseProvider):
    """Provider speaking the OpenAI ``/chat/completions`` dialect over httpx"""

    NAME = ""
    BASE_URL = ""
    DEFAULT_MODEL = ""
    REQUEST_TIMEOUT = 120.0

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        priority_overrides: dict[TaskCategory, int] | None = None,
        params: ProviderParams | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(rate_limiter, priority_overrides, params)
        self.model = model or self.DEFAULT_MODEL
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def provider_name(self) -> str:
        return self.NAME

    async def initialize(self) -> bool:
        api_key = get_api_key(self.provider_name)
        if not api_key:
            logger.error(f"{self.provider_name} API key not configured")
            return False

        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.REQUEST_TIMEOUT,
            transport=self._transport,
        )
        return True

    def build_payload(
        self, prompt: str, context: str | None, params: ProviderParams
    ) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        if context:
            messages.append({"role": "system", "content": context})
        messages.append({"role": "user", "content": prompt})
        return {
            "model": self.model,
            "messages": messages,
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
        }

    def _error(self, kind: ProviderErrorKind, message: str) -> ProviderError:
        return ProviderError(kind, message, provider=self.provider_name)

    async def invoke(
        self,
        prompt: str,
        context: str | None = None,
        params: ProviderParams | None = None,
    ) -> str:
        if self._client is None and not await self.initialize():
            raise self._error(ProviderErrorKind.AUTH, "API key not configured")
        assert self._client is not None

        params = params or self.default_params
        await self.rate_limiter.acquire()

        try:
            response = await self._client.post(
                "/chat/completions",
                json=self.build_payload(prompt, context, params),
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise self._error(ProviderErrorKind.TIMEOUT, f"request timed out ({type(e).__name__})") from e
        except httpx.HTTPStatusError as e:
            message = format_http_error(e)
            logger.warning(
                f"{self.provider_name} returned {InputValidator.sanitize_for_logging(message, 200)}"
            )
            raise self._error(classify_status(e.response.status_code), message) from e
        except httpx.HTTPError as e:
            raise self._error(ProviderErrorKind.UNKNOWN, f"{type(e).__name__}: {e}") from e

        return self.parse_content(response)

    def parse_content(self, response: httpx.Response) -> str:
        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise self._error(
                ProviderErrorKind.MALFORMED, f"unexpected response shape ({type(e).__name__})"
            ) from e

        if not isinstance(content, str) or not content.strip():
            raise self._error(ProviderErrorKind.MALFORMED, "empty completion")
        return content

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class MistralProvider(OpenAICompatibleProvider):
    """Mistral AI, primary executor for most categories"""

    NAME = "mistral"
    BASE_URL = "https://api.mistral.ai/v1"
    DEFAULT_MODEL = "mistral-large-latest"
    DEFAULT_PARAMS = ProviderParams(temperature=0.8, max_tokens=4000)
    DEFAULT_PRIORITY = {
        TaskCategory.PLANNING: 2,
        TaskCategory.ANALYSIS: 1,
        TaskCategory.CREATIVE: 1,
        TaskCategory.SEARCH: 2,
        TaskCategory.EXECUTION: 1,
        TaskCategory.GENERAL: 1,
    }


class CerebrasProvider(OpenAICompatibleProvider):
    """Cerebras inference, the standing fallback"""

    NAME = "cerebras"
    BASE_URL = "https://api.cerebras.ai/v1"
    DEFAULT_MODEL = "llama-3.3-70b"
    DEFAULT_PARAMS = ProviderParams(temperature=0.7, max_tokens=3000)
    DEFAULT_PRIORITY = {
        TaskCategory.PLANNING: 3,
        TaskCategory.ANALYSIS: 2,
        TaskCategory.CREATIVE: 2,
        TaskCategory.SEARCH: 3,
        TaskCategory.EXECUTION: 2,
        TaskCategory.GENERAL: 2,
    }


class GroqProvider(OpenAICompatibleProvider):
    """Groq, fast inference preferred for planning and search"""

    NAME = "groq"
    BASE_URL = "https://api.groq.com/openai/v1"
    DEFAULT_MODEL = "llama-3.3-70b-versatile"
    DEFAULT_PARAMS = ProviderParams(temperature=0.7, max_tokens=2000)
    DEFAULT_PRIORITY = {
        TaskCategory.PLANNING: 1,
        TaskCategory.ANALYSIS: 3,
        TaskCategory.CREATIVE: 3,
        TaskCategory.SEARCH: 1,
        TaskCategory.EXECUTION: 3,
        TaskCategory.GENERAL: 3,
    }


class DeepSeekProvider(OpenAICompatibleProvider):
    NAME = "deepseek"
    BASE_URL = "https://api.deepseek.com/v1"
    DEFAULT_MODEL = "deepseek-chat"
    DEFAULT_PARAMS = ProviderParams(temperature=0.7, max_tokens=4096)
    DEFAULT_PRIORITY = {category: 4 for category in TaskCategory}


# Registration order doubles as the tie-break between equal ranks
PROVIDER_CLASSES: tuple[type[OpenAICompatibleProvider], ...] = (
    MistralProvider,
    CerebrasProvider,
    GroqProvider,
    DeepSeekProvider,
)
