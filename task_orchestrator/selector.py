"""Provider fallback chain selection."""

from __future__ import annotations

import logging

from .models import TaskCategory
from .registry import Registry

logger = logging.getLogger(__name__)


class ProviderSelector:
    """Maps a task category, or an explicit override, to an ordered provider chain"""

    def __init__(self, registry: Registry) -> None:
        self.registry = registry

    def select_chain(
        self,
        category: TaskCategory,
        forced: str | None = None,
    ) -> list[str]:
        """
        Return the providers to try, in order.

        A forced provider that is registered is returned alone: no fallback
        is attempted for explicit overrides. An unknown forced provider is
        ignored with a warning and the regular chain is used. Otherwise every
        registered provider is ordered by its rank for ``category``, ties
        broken by registration order.
        """
        if forced:
            if self.registry.get_provider(forced) is not None:
                return [forced]
            logger.warning(
                f"Forced provider '{forced}' is not registered; using the {category.value} chain"
            )

        ranked = sorted(
            enumerate(self.registry.providers),
            key=lambda item: (item[1].rank(category), item[0]),
        )
        chain = [provider.provider_name for _, provider in ranked]
        if not chain:
            raise ValueError("No providers registered")
        return chain
