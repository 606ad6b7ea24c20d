"""
Jittered dispatch for upstream calls.

Every upstream request goes through a randomized pre-call delay so that bursts
of clients hitting the gate at the same moment do not reach the indexer in
lock-step. This is pacing only: there is no token bucket and no backoff.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

from shared.logging import get_logger

T = TypeVar("T")


class JitteredDispatcher:
    """Run awaitables after a uniform random delay in ``[0, max_jitter_ms)``."""

    def __init__(self,
                 max_jitter_ms: int = 500,
                 rng: Optional[random.Random] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        if max_jitter_ms < 0:
            raise ValueError("max_jitter_ms must be non-negative")
        self.max_jitter_ms = max_jitter_ms
        self._rng = rng or random.Random()
        self._sleep = sleep
        self.logger = get_logger("gate.dispatcher")

    def next_delay(self, max_jitter_ms: Optional[int] = None) -> float:
        """Pick the next delay, in seconds."""
        ceiling = self.max_jitter_ms if max_jitter_ms is None else max_jitter_ms
        if ceiling <= 0:
            return 0.0
        return self._rng.uniform(0, ceiling) / 1000.0

    async def dispatch(self,
                       fn: Callable[..., Awaitable[T]],
                       *args,
                       max_jitter_ms: Optional[int] = None,
                       **kwargs) -> T:
        """Sleep for a jittered delay, then await ``fn(*args, **kwargs)``."""
        delay = self.next_delay(max_jitter_ms)
        if delay > 0:
            self.logger.debug(
                "Delaying upstream call",
                function=getattr(fn, "__name__", repr(fn)),
                delay_ms=round(delay * 1000, 1)
            )
            await self._sleep(delay)
        return await fn(*args, **kwargs)
