"""Input checks for task submissions and redaction for log output."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)


class InputValidator:
    """Security-focused input validation"""

    # Logged, never blocked: task descriptions legitimately contain code
    SUSPICIOUS_PATTERNS = [
        r"<\s*script\b",
        r"javascript\s*:",
        r"\{\{.*\}\}",
        r"\$\{.*\}",
        r"__proto__",
        r"eval\s*\(",
        r"exec\s*\(",
    ]

    MAX_DESCRIPTION_LENGTH = 200_000
    MAX_CONTEXT_LENGTH = 500_000

    @classmethod
    def validate_description(cls, description: str | None) -> tuple[bool, str]:
        if not isinstance(description, str) or not description.strip():
            return False, "Invalid task description: must be a non-empty string"

        if len(description) > cls.MAX_DESCRIPTION_LENGTH:
            return (
                False,
                f"Task description exceeds maximum length of {cls.MAX_DESCRIPTION_LENGTH}",
            )

        for pattern in cls.SUSPICIOUS_PATTERNS:
            if re.search(pattern, description, re.IGNORECASE):
                logger.warning(f"Potentially suspicious pattern in task: {pattern}")

        return True, ""

    @classmethod
    def validate_context(cls, context: str | None) -> tuple[bool, str]:
        if context is not None and not isinstance(context, str):
            return False, "Invalid context: must be a string"
        if context is not None and len(context) > cls.MAX_CONTEXT_LENGTH:
            return False, f"Context exceeds maximum length of {cls.MAX_CONTEXT_LENGTH}"
        return True, ""

    @staticmethod
    def validate_timeout(timeout_ms: int) -> tuple[bool, str]:
        if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0:
            return False, f"Invalid timeout: {timeout_ms!r} (must be a positive number of milliseconds)"
        return True, ""

    @classmethod
    def sanitize_for_logging(cls, text: str | None, max_len: int = 100) -> str:
        """Truncate and redact anything that looks like a credential"""
        if not text:
            return ""
        sanitized = text[:max_len]
        sanitized = re.sub(
            r"(sk-|csk-|gsk_|r8_|tvly-|api[_-]?key[=:]?\s*|bearer\s+)[a-zA-Z0-9\-_]{16,}",
            "[REDACTED]",
            sanitized,
            flags=re.IGNORECASE,
        )
        return sanitized + ("..." if len(text) > max_len else "")
