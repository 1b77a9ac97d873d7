"""
Tool Dispatch
=============

Concurrent fan-out of the tools a task needs. Each tool is raced against the
same per-tool timeout; a slow or failing tool never affects the others.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from .budget import AttemptTimedOut, race
from .errors import ToolError
from .models import ToolResult
from .registry import Registry
from .validation import InputValidator

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """Runs tools concurrently and collects one result per tool"""

    def __init__(self, registry: Registry) -> None:
        self.registry = registry

    async def dispatch(
        self,
        tools: Iterable[str],
        description: str,
        per_tool_timeout: float,
    ) -> dict[str, ToolResult]:
        """Wait for every tool to succeed, fail or time out; never raises."""
        tool_ids = list(dict.fromkeys(tools))
        if not tool_ids:
            return {}

        logger.info(f"Dispatching tools {tool_ids} (timeout {per_tool_timeout:.2f}s each)")
        results = await asyncio.gather(
            *(self._run_tool(tool_id, description, per_tool_timeout) for tool_id in tool_ids)
        )
        return dict(zip(tool_ids, results))

    async def _run_tool(
        self, tool_id: str, description: str, timeout: float
    ) -> ToolResult:
        tool = self.registry.get_tool(tool_id)
        if tool is None:
            logger.warning(f"Unknown tool: {tool_id}")
            return ToolResult.failed(tool_id, f"Unknown tool: {tool_id}")

        try:
            result = await race(tool.invoke(description), timeout)
        except AttemptTimedOut:
            logger.warning(f"Tool {tool_id} timed out after {timeout:.2f}s")
            return ToolResult.failed(tool_id, "timeout")
        except ToolError as e:
            logger.warning(f"Tool {tool_id} failed: {InputValidator.sanitize_for_logging(e.message, 200)}")
            return ToolResult.failed(tool_id, e.message)
        except Exception as e:
            logger.exception(f"Tool {tool_id} raised unexpectedly")
            return ToolResult.failed(tool_id, f"{type(e).__name__}: {e}")

        if not isinstance(result, ToolResult):
            logger.error(f"Tool {tool_id} returned {type(result).__name__} instead of a ToolResult")
            return ToolResult.failed(
                tool_id, f"invalid result type: {type(result).__name__}"
            )

        if result.tool != tool_id:
            result.tool = tool_id
        if result.success:
            logger.info(f"Tool {tool_id} succeeded")
        else:
            logger.warning(f"Tool {tool_id} reported failure: {result.error}")
        return result
