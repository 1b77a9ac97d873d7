"""
Tests for the Execution Coordinator
===================================

Run with: pytest tests/ -v

All providers and tools here are in-memory fakes; nothing touches the
network or the credential store.
"""

import asyncio
import os
import sys
import time

import pytest

# Add repository root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from task_orchestrator.config import OrchestratorSettings
from task_orchestrator.errors import ProviderError, ProviderErrorKind, ToolError
from task_orchestrator.models import (
    AttemptOutcome,
    ExecutionState,
    ProviderParams,
    TaskCategory,
    TaskRequest,
)
from task_orchestrator.orchestrator import ExecutionCoordinator, ExecutionRun
from task_orchestrator.registry import Registry
from tests.fakes import FakeTool, default_providers, failing_tool, make_registry

FAST_TOOLS = OrchestratorSettings(tool_timeout_fraction=0.01, tool_timeout_floor=0.05)


def timeout_error(name):
    return ProviderError(ProviderErrorKind.TIMEOUT, f"{name} upstream timed out")


class TestScenarios:
    """End-to-end scenarios for the coordinator"""

    @pytest.mark.asyncio
    async def test_creative_image_task_runs_on_mistral(self):
        """Image task is creative, uses the image tool and wins on the first provider"""
        providers = default_providers()
        image = FakeTool("image", data={"image_url": "https://images.test/landscape.png"})
        coordinator = ExecutionCoordinator(make_registry(providers, [image]))

        result = await coordinator.submit_task("Generate an image of a futuristic landscape")

        assert result.success is True
        assert result.category == TaskCategory.CREATIVE
        assert result.executed_with == "mistral"
        assert result.result == "answer from mistral"
        assert result.tools_used == ("image", "mistral")
        assert result.error is None
        assert image.calls == ["Generate an image of a futuristic landscape"]
        assert providers["cerebras"].calls == []

        prompt = providers["mistral"].calls[0][0]
        assert prompt.startswith("Generate an image of a futuristic landscape")
        assert "Tool results:" in prompt
        assert "https://images.test/landscape.png" in prompt

    @pytest.mark.asyncio
    async def test_forced_provider_has_no_fallback(self):
        """A forced provider that fails is not followed by any other provider"""
        providers = default_providers(
            groq={"error": ProviderError(ProviderErrorKind.RATE_LIMITED, "quota exceeded")}
        )
        coordinator = ExecutionCoordinator(make_registry(providers))

        result = await coordinator.submit_task("Write a haiku", forced_provider="groq")

        assert result.success is False
        assert result.result is None
        assert result.executed_with is None
        assert len(result.attempts) == 1
        assert result.attempts[0].provider == "groq"
        assert result.attempts[0].outcome == AttemptOutcome.FAILURE
        assert "groq: RateLimited (quota exceeded)" in result.error
        for name in ("mistral", "cerebras", "deepseek"):
            assert providers[name].calls == []

    @pytest.mark.asyncio
    async def test_all_providers_time_out(self):
        """Every provider is listed with its timeout, in attempt order"""
        providers = default_providers(
            **{name: {"error": timeout_error(name)} for name in ("mistral", "cerebras", "groq", "deepseek")}
        )
        coordinator = ExecutionCoordinator(make_registry(providers))

        result = await coordinator.submit_task("Write a poem about rivers")

        assert result.success is False
        assert [a.provider for a in result.attempts] == ["mistral", "cerebras", "groq", "deepseek"]
        assert all(a.outcome == AttemptOutcome.TIMEOUT for a in result.attempts)
        assert result.error.startswith("All providers failed: ")

        positions = [result.error.index(f"{name}: Timeout") for name in ("mistral", "cerebras", "groq", "deepseek")]
        assert positions == sorted(positions)

    @pytest.mark.asyncio
    async def test_tool_timeout_does_not_fail_request(self):
        """A tool that times out is dropped; the provider still answers"""
        providers = default_providers()
        slow_image = FakeTool("image", delay=5.0)
        coordinator = ExecutionCoordinator(make_registry(providers, [slow_image]), FAST_TOOLS)

        started = time.monotonic()
        result = await coordinator.submit_task(
            "Generate an image of a lighthouse", timeout_ms=2000
        )

        assert time.monotonic() - started < 1.0
        assert result.success is True
        assert result.error is None
        assert result.tools_used == ("mistral",)
        assert "Tool results:" not in providers["mistral"].calls[0][0]


class TestFallbackChain:
    """Fallback ordering and attempt accounting"""

    @pytest.mark.asyncio
    async def test_falls_back_in_priority_order(self):
        """First failure advances to the next ranked provider; later ones are untouched"""
        providers = default_providers(
            mistral={"error": ProviderError(ProviderErrorKind.AUTH, "invalid key")}
        )
        coordinator = ExecutionCoordinator(make_registry(providers))

        result = await coordinator.submit_task("Write a short story about a dragon")

        assert result.success is True
        assert result.executed_with == "cerebras"
        assert [(a.provider, a.outcome) for a in result.attempts] == [
            ("mistral", AttemptOutcome.FAILURE),
            ("cerebras", AttemptOutcome.SUCCESS),
        ]
        assert providers["groq"].calls == []
        assert providers["deepseek"].calls == []

    @pytest.mark.asyncio
    async def test_planning_task_starts_with_groq(self):
        providers = default_providers()
        coordinator = ExecutionCoordinator(make_registry(providers))

        result = await coordinator.submit_task("Plan a product launch for next quarter")

        assert result.category == TaskCategory.PLANNING
        assert result.executed_with == "groq"
        assert providers["mistral"].calls == []

    @pytest.mark.asyncio
    async def test_each_provider_called_at_most_once(self):
        providers = default_providers(
            **{name: {"error": ProviderError(ProviderErrorKind.UNKNOWN, "boom")} for name in ("mistral", "cerebras", "groq", "deepseek")}
        )
        coordinator = ExecutionCoordinator(make_registry(providers))

        await coordinator.submit_task("Hello there")

        assert all(len(p.calls) == 1 for p in providers.values())

    @pytest.mark.asyncio
    async def test_unexpected_provider_exception_advances(self):
        """Non-ProviderError exceptions are treated like any other failed attempt"""
        providers = default_providers(mistral={"error": KeyError("choices")})
        coordinator = ExecutionCoordinator(make_registry(providers))

        result = await coordinator.submit_task("Write a limerick")

        assert result.success is True
        assert result.executed_with == "cerebras"
        assert result.attempts[0].error_detail.startswith("Unknown (KeyError")

    @pytest.mark.asyncio
    async def test_context_and_params_reach_provider(self):
        providers = default_providers()
        coordinator = ExecutionCoordinator(make_registry(providers))

        await coordinator.submit_task("Write a tagline", context="Project: Atlas")

        prompt, context, params = providers["mistral"].calls[0]
        assert prompt == "Write a tagline"
        assert context == "Project: Atlas"
        assert isinstance(params, ProviderParams)

    @pytest.mark.asyncio
    async def test_unknown_forced_provider_uses_regular_chain(self):
        providers = default_providers()
        coordinator = ExecutionCoordinator(make_registry(providers))

        result = await coordinator.submit_task("Write a haiku", forced_provider="nonexistent")

        assert result.success is True
        assert result.executed_with == "mistral"


class TestTimeBudget:
    """Deadline handling"""

    @pytest.mark.asyncio
    async def test_duration_bounded_by_timeout(self):
        """Stalled providers are abandoned when their allotment runs out"""
        providers = default_providers(
            **{name: {"delay": 10.0} for name in ("mistral", "cerebras", "groq", "deepseek")}
        )
        coordinator = ExecutionCoordinator(make_registry(providers), FAST_TOOLS)

        result = await coordinator.submit_task("Write a sonnet", timeout_ms=400)

        assert result.success is False
        assert result.duration_ms < 400 + 250
        assert result.attempts
        assert all(a.outcome == AttemptOutcome.TIMEOUT for a in result.attempts)
        assert "Timeout" in result.error

    @pytest.mark.asyncio
    async def test_earlier_attempts_leave_budget_for_fallbacks(self):
        """A stalled first provider only consumes its share of the budget"""
        providers = default_providers(mistral={"delay": 10.0})
        coordinator = ExecutionCoordinator(make_registry(providers), FAST_TOOLS)

        result = await coordinator.submit_task("Write a story", timeout_ms=800)

        assert result.success is True
        assert result.executed_with == "cerebras"
        assert result.attempts[0].outcome == AttemptOutcome.TIMEOUT
        assert result.duration_ms < 800

    @pytest.mark.asyncio
    async def test_deadline_passed_during_tool_fan_out(self):
        """A budget below the tool floor still bounds the fan-out"""
        providers = default_providers()
        slow_search = FakeTool("search", delay=5.0)
        coordinator = ExecutionCoordinator(make_registry(providers, [slow_search]))

        result = await coordinator.submit_task("Search the web for fusion news", timeout_ms=200)

        assert result.success is False
        assert result.duration_ms < 200 + 250
        assert result.error.startswith("Deadline exceeded")
        assert "search" not in result.tools_used

    @pytest.mark.asyncio
    async def test_deadline_expired_before_first_provider(self):
        """No provider is attempted once the deadline has passed"""
        providers = default_providers()
        coordinator = ExecutionCoordinator(make_registry(providers))
        run = ExecutionRun(coordinator, TaskRequest(description="Write a poem", timeout_ms=1))
        await asyncio.sleep(0.01)

        result = await run.run()

        assert result.success is False
        assert result.attempts == ()
        assert result.error == "Deadline exceeded before any provider was attempted"
        assert all(p.calls == [] for p in providers.values())


class TestToolIsolation:
    """Tool failures never decide the outcome"""

    @pytest.mark.asyncio
    async def test_failing_tool_absent_from_tools_used(self):
        providers = default_providers()
        tools = [failing_tool("search"), FakeTool("image")]
        coordinator = ExecutionCoordinator(make_registry(providers, tools))

        result = await coordinator.submit_task(
            "Search the web for robots, then generate an image of one"
        )

        assert result.success is True
        assert result.tools_used == ("image", "mistral")

    @pytest.mark.asyncio
    async def test_providers_start_after_tools_settle(self):
        """The provider sees every successful tool output"""
        providers = default_providers()
        tools = [FakeTool("image", data="picture", delay=0.05), FakeTool("search", data="links", delay=0.1)]
        coordinator = ExecutionCoordinator(make_registry(providers, tools))

        await coordinator.submit_task("Search the web for owls and generate an image of an owl")

        prompt = providers["mistral"].calls[0][0]
        assert 'image: "picture"' in prompt
        assert 'search: "links"' in prompt

    @pytest.mark.asyncio
    async def test_tool_returning_garbage_does_not_abort(self):
        class NoResultTool(FakeTool):
            async def invoke(self, description):
                return None

        providers = default_providers()
        coordinator = ExecutionCoordinator(make_registry(providers, [NoResultTool("image")]))

        result = await coordinator.submit_task("Generate an image of a cat")

        assert result.success is True
        assert result.executed_with == "mistral"
        assert result.tools_used == ("mistral",)

    @pytest.mark.asyncio
    async def test_unregistered_tool_is_ignored(self):
        providers = default_providers()
        coordinator = ExecutionCoordinator(make_registry(providers))

        result = await coordinator.submit_task("Generate an image of a cat")

        assert result.success is True
        assert result.tools_used == ("mistral",)


class TestStateMachine:
    """State transitions of a single run"""

    @pytest.mark.asyncio
    async def test_history_for_fallback_success(self):
        providers = default_providers(
            mistral={"error": ProviderError(ProviderErrorKind.MALFORMED, "bad json")}
        )
        coordinator = ExecutionCoordinator(make_registry(providers))
        run = ExecutionRun(coordinator, TaskRequest(description="Write a poem"))

        await run.run()

        assert run.history == [
            ExecutionState.IDLE,
            ExecutionState.CLASSIFYING,
            ExecutionState.TOOL_FAN_OUT,
            ExecutionState.PROVIDER_ATTEMPT,
            ExecutionState.ADVANCING,
            ExecutionState.PROVIDER_ATTEMPT,
            ExecutionState.SUCCEEDED,
        ]
        assert run.state.is_terminal

    @pytest.mark.asyncio
    async def test_history_ends_exhausted(self):
        providers = default_providers(
            groq={"error": ProviderError(ProviderErrorKind.AUTH, "denied")}
        )
        coordinator = ExecutionCoordinator(make_registry(providers))
        run = ExecutionRun(
            coordinator, TaskRequest(description="Write a poem", forced_provider="groq")
        )

        result = await run.run()

        assert result.success is False
        assert run.history[-1] == ExecutionState.EXHAUSTED


class TestSubmitTask:
    """Input handling at the public entry point"""

    @pytest.fixture
    def providers(self):
        return default_providers()

    @pytest.fixture
    def coordinator(self, providers):
        return ExecutionCoordinator(make_registry(providers))

    @pytest.mark.asyncio
    async def test_empty_description_rejected(self, coordinator, providers):
        result = await coordinator.submit_task("   ")

        assert result.success is False
        assert "non-empty" in result.error.lower()
        assert all(p.calls == [] for p in providers.values())

    @pytest.mark.asyncio
    async def test_non_positive_timeout_rejected(self, coordinator):
        result = await coordinator.submit_task("Write a poem", timeout_ms=0)

        assert result.success is False
        assert "timeout" in result.error.lower()

    @pytest.mark.asyncio
    async def test_internal_error_returned_as_result(self, providers):
        """Nothing raised during a run escapes submit_task"""

        class BrokenClassifier:
            @classmethod
            def classify(cls, description):
                raise RuntimeError("classifier table corrupted")

        coordinator = ExecutionCoordinator(make_registry(providers), classifier=BrokenClassifier)

        result = await coordinator.submit_task("Write a poem")

        assert result.success is False
        assert "classifier table corrupted" in result.error

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_independent(self, coordinator):
        first, second = await asyncio.gather(
            coordinator.submit_task("Write a poem"),
            coordinator.submit_task("Plan my week"),
        )

        assert first.executed_with == "mistral"
        assert second.executed_with == "groq"
        assert first.request_id != second.request_id
        assert len(first.attempts) == 1
        assert len(second.attempts) == 1

    def test_requires_a_provider(self):
        with pytest.raises(ValueError):
            ExecutionCoordinator(Registry())

    @pytest.mark.asyncio
    async def test_tool_error_message_not_surfaced(self, providers):
        coordinator = ExecutionCoordinator(
            make_registry(providers, [FakeTool("data", error=ToolError("data", "no CSV"))])
        )

        result = await coordinator.submit_task("Compute statistics for my spreadsheet")

        assert result.success is True
        assert result.error is None
        assert "data" not in result.tools_used


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
