"""
Data Model
==========

Plain dataclasses shared by every stage of task execution. Requests and
results are frozen; tool results and attempt records are created per
invocation and discarded once the final result is assembled.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

DEFAULT_TIMEOUT_MS = 300_000


class TaskCategory(Enum):
    """Coarse task categories used to order the provider fallback chain"""

    PLANNING = "planning"
    ANALYSIS = "analysis"
    CREATIVE = "creative"
    SEARCH = "search"
    EXECUTION = "execution"
    GENERAL = "general"


class AttemptOutcome(Enum):
    SUCCESS = "Success"
    FAILURE = "Failure"
    TIMEOUT = "Timeout"


class ExecutionState(Enum):
    """States of a single task execution"""

    IDLE = "idle"
    CLASSIFYING = "classifying"
    TOOL_FAN_OUT = "tool_fan_out"
    PROVIDER_ATTEMPT = "provider_attempt"
    ADVANCING = "advancing"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionState.SUCCEEDED, ExecutionState.EXHAUSTED)


@dataclass(frozen=True)
class ProviderParams:
    """Sampling parameters passed to a provider call"""

    temperature: float = 0.7
    max_tokens: int = 2048


@dataclass(frozen=True)
class TaskRequest:
    """Immutable task submission"""

    description: str
    context: str | None = None
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    forced_provider: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class ToolResult:
    """Outcome of one tool invocation"""

    tool: str
    success: bool
    data: Any = None
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def failed(cls, tool: str, error: str) -> ToolResult:
        return cls(tool=tool, success=False, error=error)


@dataclass(frozen=True)
class AttemptRecord:
    """One provider attempt in the fallback trail"""

    provider: str
    outcome: AttemptOutcome
    error_detail: str | None = None

    def describe(self) -> str:
        if self.error_detail:
            return f"{self.provider}: {self.error_detail}"
        return f"{self.provider}: {self.outcome.value}"


@dataclass(frozen=True)
class ExecutionResult:
    """Final response envelope returned to the caller"""

    success: bool
    result: str | None
    executed_with: str | None
    tools_used: tuple[str, ...]
    duration_ms: float
    error: str | None = None
    category: TaskCategory | None = None
    attempts: tuple[AttemptRecord, ...] = ()
    request_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "request_id": self.request_id,
            "success": self.success,
            "result": self.result,
            "executed_with": self.executed_with,
            "tools_used": list(self.tools_used),
            "duration_ms": round(self.duration_ms, 1),
            "error": self.error,
            "category": self.category.value if self.category else None,
            "attempts": [
                {
                    "provider": a.provider,
                    "outcome": a.outcome.value,
                    "error_detail": a.error_detail,
                }
                for a in self.attempts
            ],
        }
