"""Exceptions raised across component boundaries inside the orchestrator."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum

from .models import AttemptRecord


class ProviderErrorKind(Enum):
    AUTH = "AuthError"
    RATE_LIMITED = "RateLimited"
    TIMEOUT = "Timeout"
    MALFORMED = "Malformed"
    UNKNOWN = "Unknown"


class ProviderError(Exception):
    """A single provider call failed. The coordinator advances to the next provider."""

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        provider: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.provider = provider

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class ToolError(Exception):
    """A tool could not produce a result"""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(message)
        self.tool = tool
        self.message = message


def describe_trail(
    attempts: Sequence[AttemptRecord], deadline_exceeded: bool = False
) -> str:
    """One ``provider: reason`` entry per attempt, in attempt order"""
    trail = "; ".join(a.describe() for a in attempts)
    if deadline_exceeded:
        if not attempts:
            return "Deadline exceeded before any provider was attempted"
        return f"Deadline exceeded after {len(attempts)} attempt(s): {trail}"
    return f"All providers failed: {trail}"


class BudgetExhausted(Exception):
    """No provider produced a result before the chain or the deadline ran out"""

    def __init__(
        self,
        attempts: Sequence[AttemptRecord],
        deadline_exceeded: bool = False,
    ) -> None:
        self.attempts = list(attempts)
        self.deadline_exceeded = deadline_exceeded
        super().__init__(describe_trail(self.attempts, deadline_exceeded))
