"""Launch N coroutines concurrently and join them with a per-task timeout."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger("nlq.fanout")


@dataclass
class FanOutResult(Generic[T]):
    """Outcome of one launched task."""

    key: str
    value: T | None = None
    error: Exception | None = None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.timed_out


async def fan_out(
    calls: Sequence[tuple[str, Callable[[], Awaitable[T]]]],
    timeout: float,
) -> list[FanOutResult[T]]:
    """Run every call concurrently; results keep the order of ``calls``.

    A task that raises or exceeds ``timeout`` seconds yields a failed result
    instead of propagating, so one slow task never blocks the join.
    """

    async def guarded(key: str, factory: Callable[[], Awaitable[T]]) -> FanOutResult[T]:
        try:
            value = await asyncio.wait_for(factory(), timeout=timeout)
            return FanOutResult(key=key, value=value)
        except asyncio.TimeoutError:
            logger.warning("Task %s timed out after %.2fs", key, timeout)
            return FanOutResult(key=key, timed_out=True)
        except Exception as exc:
            logger.warning("Task %s failed: %s", key, exc)
            return FanOutResult(key=key, error=exc)

    if not calls:
        return []
    return list(await asyncio.gather(*(guarded(key, factory) for key, factory in calls)))
