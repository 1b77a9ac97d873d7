"""
Time Budgets
============

Deadline arithmetic for a single request and the primitive used to race an
awaitable against a timer. An awaitable that loses the race is cancelled on a
best-effort basis and its eventual outcome is discarded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AttemptTimedOut(Exception):
    """Raised when an awaitable does not settle within its allotment"""

    def __init__(self, allotted: float) -> None:
        super().__init__(f"no response within {allotted:.2f}s")
        self.allotted = allotted


@dataclass(frozen=True)
class Deadline:
    """Absolute deadline on the monotonic clock"""

    start: float
    expires_at: float

    @classmethod
    def after_ms(cls, timeout_ms: int) -> Deadline:
        now = time.monotonic()
        return cls(start=now, expires_at=now + timeout_ms / 1000.0)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.start) * 1000.0

    def tool_timeout(self, fraction: float, floor: float) -> float:
        """Per-tool timeout: a share of what is left, never below ``floor``.

        The floor never stretches a tool past the deadline itself.
        """
        remaining = self.remaining()
        return min(remaining, max(floor, remaining * fraction))

    def attempt_allotment(self, providers_left: int) -> float:
        """Split the remaining time evenly over the providers still in the chain.

        The last provider gets everything that is left.
        """
        remaining = self.remaining()
        if providers_left <= 1:
            return remaining
        return min(remaining, remaining / providers_left)


def _discard_outcome(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Abandoned call finished with {type(exc).__name__}: {exc}")


async def race(awaitable: Awaitable[T], timeout: float) -> T:
    """
    Await ``awaitable`` for at most ``timeout`` seconds.

    Returns its result or re-raises its exception. When the timer wins the
    underlying task is cancelled without waiting for it to unwind and
    ``AttemptTimedOut`` is raised.
    """
    task = asyncio.ensure_future(awaitable)
    if timeout <= 0:
        task.cancel()
        task.add_done_callback(_discard_outcome)
        raise AttemptTimedOut(0.0)

    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        return task.result()

    task.cancel()
    task.add_done_callback(_discard_outcome)
    raise AttemptTimedOut(timeout)
