"""
Task Orchestrator - Provider Fallback Execution
===============================================

Runs free-text tasks against interchangeable model providers, augmenting
the prompt with auxiliary tools (web search, image generation, data
analysis, text-to-speech, page fetching, slide decks) and falling back through an
ordered provider chain under a shared time budget.

Example Usage:
    >>> import asyncio
    >>> from task_orchestrator import ExecutionCoordinator
    >>>
    >>> async def main():
    ...     coordinator = ExecutionCoordinator.from_config()
    ...     result = await coordinator.submit_task("Summarize the latest news on fusion")
    ...     print(result.executed_with, result.result)
    ...     await coordinator.aclose()
    >>>
    >>> asyncio.run(main())
"""

__version__ = "1.0.0"

from .aggregator import ResultAggregator
from .classifier import TaskClassifier
from .config import OrchestratorSettings
from .credentials import get_api_key, set_api_key
from .dispatcher import ToolDispatcher
from .errors import BudgetExhausted, ProviderError, ProviderErrorKind, ToolError
from .models import (
    AttemptOutcome,
    AttemptRecord,
    ExecutionResult,
    ProviderParams,
    TaskCategory,
    TaskRequest,
    ToolResult,
)
from .orchestrator import ExecutionCoordinator
from .providers import BaseProvider
from .registry import Registry, build_default_registry
from .selector import ProviderSelector
from .tools import BaseTool

__all__ = [
    "__version__",

    # Orchestration
    "ExecutionCoordinator",
    "TaskClassifier",
    "ToolDispatcher",
    "ProviderSelector",
    "ResultAggregator",
    "Registry",
    "build_default_registry",
    "OrchestratorSettings",

    # Extension points
    "BaseProvider",
    "BaseTool",

    # Data model
    "TaskRequest",
    "TaskCategory",
    "ToolResult",
    "AttemptRecord",
    "AttemptOutcome",
    "ExecutionResult",
    "ProviderParams",

    # Errors
    "ProviderError",
    "ProviderErrorKind",
    "ToolError",
    "BudgetExhausted",

    # Credentials
    "get_api_key",
    "set_api_key",
]
