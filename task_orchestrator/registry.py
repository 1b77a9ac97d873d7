"""
Provider and Tool Registry
==========================

The registry is built once and handed to the coordinator. Registration order
is preserved and used as the tie-break when two providers share a rank.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .config import OrchestratorSettings
from .providers import PROVIDER_CLASSES, BaseProvider
from .tools import TOOL_CLASSES, BaseTool

logger = logging.getLogger(__name__)


class Registry:
    """Ordered collection of providers and tools"""

    def __init__(
        self,
        providers: Iterable[BaseProvider] = (),
        tools: Iterable[BaseTool] = (),
    ) -> None:
        self._providers: dict[str, BaseProvider] = {}
        self._tools: dict[str, BaseTool] = {}
        for provider in providers:
            self.register_provider(provider)
        for tool in tools:
            self.register_tool(tool)

    def register_provider(self, provider: BaseProvider) -> None:
        name = provider.provider_name
        if name in self._providers:
            raise ValueError(f"Provider already registered: {name}")
        self._providers[name] = provider

    def register_tool(self, tool: BaseTool) -> None:
        if tool.tool_id in self._tools:
            raise ValueError(f"Tool already registered: {tool.tool_id}")
        self._tools[tool.tool_id] = tool

    def get_provider(self, name: str) -> BaseProvider | None:
        return self._providers.get(name)

    def get_tool(self, tool_id: str) -> BaseTool | None:
        return self._tools.get(tool_id)

    @property
    def providers(self) -> list[BaseProvider]:
        return list(self._providers.values())

    @property
    def provider_names(self) -> list[str]:
        return list(self._providers)

    @property
    def tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()


def build_default_registry(settings: OrchestratorSettings | None = None) -> Registry:
    """Register every built-in provider and tool that the configuration enables"""
    settings = settings or OrchestratorSettings()
    registry = Registry()

    for provider_class in PROVIDER_CLASSES:
        config = settings.provider_config(provider_class.NAME)
        if not config.enabled:
            logger.info(f"Provider disabled by configuration: {provider_class.NAME}")
            continue
        registry.register_provider(
            provider_class(
                priority_overrides=config.priority,
                params=config.params(provider_class.DEFAULT_PARAMS),
                model=config.model,
            )
        )

    for tool_class in TOOL_CLASSES:
        if not settings.tool_enabled(tool_class.TOOL_ID):
            logger.info(f"Tool disabled by configuration: {tool_class.TOOL_ID}")
            continue
        registry.register_tool(tool_class(options=settings.tool_config(tool_class.TOOL_ID)))

    if not registry.provider_names:
        raise ValueError("Every provider is disabled; enable at least one in config.json")

    return registry
