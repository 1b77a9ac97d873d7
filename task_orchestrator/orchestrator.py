"""
Task Execution Orchestrator
===========================
Runs a free-text task end to end:

- Classifies the task and detects the tools it needs
- Runs those tools concurrently, each under its own timeout
- Tries providers one at a time along the category's fallback chain,
  splitting the remaining budget between the providers still to go
- Returns a single ExecutionResult, including the full attempt trail on failure

Nothing raised inside a run escapes ``submit_task``; callers always get a
structured result.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .aggregator import ResultAggregator
from .budget import AttemptTimedOut, Deadline, race
from .classifier import TaskClassifier
from .config import OrchestratorSettings, configure_logging
from .dispatcher import ToolDispatcher
from .errors import BudgetExhausted, ProviderError, ProviderErrorKind
from .models import (
    AttemptOutcome,
    AttemptRecord,
    ExecutionResult,
    ExecutionState,
    TaskCategory,
    TaskRequest,
    ToolResult,
)
from .registry import Registry, build_default_registry
from .selector import ProviderSelector
from .validation import InputValidator

logger = logging.getLogger(__name__)


class ExecutionCoordinator:
    """
    Entry point for task execution.

    The registry is shared by every request; everything that changes during
    a request lives in that request's own ``ExecutionRun``.
    """

    def __init__(
        self,
        registry: Registry,
        settings: OrchestratorSettings | None = None,
        classifier: type[TaskClassifier] = TaskClassifier,
    ) -> None:
        if not registry.provider_names:
            raise ValueError("ExecutionCoordinator needs at least one provider")

        self.registry = registry
        self.settings = settings or OrchestratorSettings()
        self.classifier = classifier
        self.dispatcher = ToolDispatcher(registry)
        self.selector = ProviderSelector(registry)
        self.aggregator = ResultAggregator

    @classmethod
    def from_config(
        cls,
        config_path: Path | None = None,
        verbose: bool = False,
    ) -> ExecutionCoordinator:
        """Build a coordinator from ``config.json`` with the built-in providers and tools"""
        settings = OrchestratorSettings.load(config_path)
        configure_logging(settings, verbose)
        return cls(build_default_registry(settings), settings)

    async def submit_task(
        self,
        description: str,
        context: str | None = None,
        timeout_ms: int | None = None,
        forced_provider: str | None = None,
    ) -> ExecutionResult:
        """
        Execute a task.

        Args:
            description: Free-text task description
            context: Optional project context passed to the provider
            timeout_ms: Overall budget; defaults to the configured timeout
            forced_provider: Run only this provider, with no fallback

        Returns:
            ExecutionResult; ``success`` is False only when no provider answered
        """
        request = TaskRequest(
            description=description,
            context=context,
            timeout_ms=self.settings.timeout_ms if timeout_ms is None else timeout_ms,
            forced_provider=forced_provider,
        )
        return await self.execute(request)

    async def execute(self, request: TaskRequest) -> ExecutionResult:
        for is_valid, error in (
            InputValidator.validate_description(request.description),
            InputValidator.validate_context(request.context),
            InputValidator.validate_timeout(request.timeout_ms),
        ):
            if not is_valid:
                logger.warning(f"Rejected task {request.id}: {error}")
                return self.aggregator.rejected(error, 0.0, request.id)

        run = ExecutionRun(self, request)
        try:
            return await run.run()
        except Exception as e:
            logger.exception(f"Task {request.id} failed unexpectedly")
            return self.aggregator.rejected(
                f"Internal error: {type(e).__name__}: {e}",
                run.elapsed_ms(),
                request.id,
            )

    async def aclose(self) -> None:
        await self.registry.aclose()


class ExecutionRun:
    """State machine for a single request"""

    def __init__(self, coordinator: ExecutionCoordinator, request: TaskRequest) -> None:
        self.coordinator = coordinator
        self.request = request
        self.state = ExecutionState.IDLE
        self.history: list[ExecutionState] = [ExecutionState.IDLE]
        self.category: TaskCategory | None = None
        self.tool_results: dict[str, ToolResult] = {}
        self.attempts: list[AttemptRecord] = []
        self.deadline = Deadline.after_ms(request.timeout_ms)

    def elapsed_ms(self) -> float:
        return self.deadline.elapsed_ms()

    def _transition(self, state: ExecutionState, detail: str = "") -> None:
        logger.debug(
            f"[{self.request.id[:8]}] {self.state.value} -> {state.value}"
            + (f" ({detail})" if detail else "")
        )
        self.state = state
        self.history.append(state)

    async def run(self) -> ExecutionResult:
        coordinator = self.coordinator
        settings = coordinator.settings
        description = self.request.description

        logger.info(
            f"Task {self.request.id[:8]}: {InputValidator.sanitize_for_logging(description)}"
        )

        self._transition(ExecutionState.CLASSIFYING)
        self.category, tools = coordinator.classifier.classify(description)
        logger.info(f"Category: {self.category.value}, tools: {list(tools) or 'none'}")

        self._transition(ExecutionState.TOOL_FAN_OUT)
        per_tool_timeout = self.deadline.tool_timeout(
            settings.tool_timeout_fraction, settings.tool_timeout_floor
        )
        self.tool_results = await coordinator.dispatcher.dispatch(
            tools, description, per_tool_timeout
        )
        prompt = coordinator.aggregator.build_prompt(description, self.tool_results)

        chain = coordinator.selector.select_chain(self.category, self.request.forced_provider)
        logger.info(f"Provider chain: {chain}")

        try:
            winning = await self._attempt_chain(chain, prompt)
        except BudgetExhausted as exhausted:
            self._transition(ExecutionState.EXHAUSTED)
            logger.error(f"Task {self.request.id[:8]} failed: {exhausted}")
            return self._assemble(None, exhausted.deadline_exceeded)

        self._transition(ExecutionState.SUCCEEDED, winning[0])
        logger.info(f"Task {self.request.id[:8]} completed with {winning[0]}")
        return self._assemble(winning, False)

    async def _attempt_chain(self, chain: list[str], prompt: str) -> tuple[str, str]:
        for index, provider_name in enumerate(chain):
            if self.deadline.expired():
                raise BudgetExhausted(self.attempts, deadline_exceeded=True)

            if index > 0:
                self._transition(ExecutionState.ADVANCING, provider_name)
            self._transition(
                ExecutionState.PROVIDER_ATTEMPT, f"{provider_name} {index + 1}/{len(chain)}"
            )

            provider = self.coordinator.registry.get_provider(provider_name)
            assert provider is not None
            allotment = self.deadline.attempt_allotment(len(chain) - index)

            try:
                text = await race(
                    provider.invoke(prompt, self.request.context, provider.default_params),
                    allotment,
                )
            except AttemptTimedOut as e:
                self._record(provider_name, AttemptOutcome.TIMEOUT, f"Timeout ({e})")
                continue
            except ProviderError as e:
                outcome = (
                    AttemptOutcome.TIMEOUT
                    if e.kind is ProviderErrorKind.TIMEOUT
                    else AttemptOutcome.FAILURE
                )
                self._record(provider_name, outcome, f"{e.kind.value} ({e.message})")
                continue
            except Exception as e:
                self._record(
                    provider_name,
                    AttemptOutcome.FAILURE,
                    f"{ProviderErrorKind.UNKNOWN.value} ({type(e).__name__}: {e})",
                )
                continue

            self.attempts.append(AttemptRecord(provider_name, AttemptOutcome.SUCCESS))
            return provider_name, text

        raise BudgetExhausted(self.attempts)

    def _record(self, provider: str, outcome: AttemptOutcome, detail: str) -> None:
        logger.warning(
            f"Provider {provider} attempt failed: "
            f"{InputValidator.sanitize_for_logging(detail, 200)}"
        )
        self.attempts.append(AttemptRecord(provider, outcome, detail))

    def _assemble(
        self, winning: tuple[str, str] | None, deadline_exceeded: bool
    ) -> ExecutionResult:
        return self.coordinator.aggregator.assemble(
            self.tool_results,
            self.attempts,
            winning,
            self.elapsed_ms(),
            deadline_exceeded=deadline_exceeded,
            category=self.category,
            request_id=self.request.id,
        )
