"""Prompt augmentation from tool output and assembly of the final result."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence

from .errors import describe_trail
from .models import AttemptRecord, ExecutionResult, TaskCategory, ToolResult

TOOL_SECTION_HEADER = "Tool results:"


class ResultAggregator:
    @staticmethod
    def successful_tools(tool_results: Mapping[str, ToolResult]) -> list[str]:
        return [tool for tool, result in tool_results.items() if result.success]

    @classmethod
    def build_prompt(
        cls, description: str, tool_results: Mapping[str, ToolResult]
    ) -> str:
        """Append one ``<tool>: <json>`` line per successful tool to the description"""
        lines = [
            f"{tool}: {json.dumps(tool_results[tool].data, default=str, ensure_ascii=False)}"
            for tool in cls.successful_tools(tool_results)
        ]
        if not lines:
            return description
        return f"{description}\n\n{TOOL_SECTION_HEADER}\n" + "\n".join(lines)

    @classmethod
    def assemble(
        cls,
        tool_results: Mapping[str, ToolResult],
        attempt_trail: Sequence[AttemptRecord],
        winning: tuple[str, str] | None,
        duration_ms: float,
        *,
        deadline_exceeded: bool = False,
        category: TaskCategory | None = None,
        request_id: str | None = None,
    ) -> ExecutionResult:
        tools_used = cls.successful_tools(tool_results)

        if winning is not None:
            provider, text = winning
            return ExecutionResult(
                success=True,
                result=text,
                executed_with=provider,
                tools_used=(*tools_used, provider),
                duration_ms=duration_ms,
                error=None,
                category=category,
                attempts=tuple(attempt_trail),
                request_id=request_id,
            )

        return ExecutionResult(
            success=False,
            result=None,
            executed_with=None,
            tools_used=tuple(tools_used),
            duration_ms=duration_ms,
            error=describe_trail(attempt_trail, deadline_exceeded),
            category=category,
            attempts=tuple(attempt_trail),
            request_id=request_id,
        )

    @staticmethod
    def rejected(error: str, duration_ms: float, request_id: str | None = None) -> ExecutionResult:
        """Result for a request that never reached classification"""
        return ExecutionResult(
            success=False,
            result=None,
            executed_with=None,
            tools_used=(),
            duration_ms=duration_ms,
            error=error,
            request_id=request_id,
        )
