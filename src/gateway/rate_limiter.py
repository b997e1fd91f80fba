# src/gateway/rate_limiter.py - v1
"""Spacing of outbound gateway requests.

The limiter keeps a single ``last request`` timestamp. Callers that
interleave between the read and the write can both pass without waiting,
so spacing is a best-effort average, not mutual exclusion. No lock is
taken on purpose: every caller runs on one event loop and a missed gap only
costs one extra request.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable


class RateLimiter:
    """Keep at least ``min_interval_s`` between dispatched requests (on average).

    Args:
        min_interval_s: Minimum spacing between two requests, in seconds.
        clock: Monotonic clock, injectable for tests.
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        min_interval_s: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._sleep = sleep
        self._last_request_time: float | None = None

    @property
    def last_request_time(self) -> float | None:
        return self._last_request_time

    async def acquire(self) -> float:
        """Suspend until the interval has elapsed; return the time waited."""
        waited = 0.0
        if self._last_request_time is not None:
            wait = self.min_interval_s - (self._clock() - self._last_request_time)
            if wait > 0:
                await self._sleep(wait)
                waited = wait
        self._last_request_time = self._clock()
        return waited
