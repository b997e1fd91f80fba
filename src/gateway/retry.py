# src/gateway/retry.py - v1
"""Bounded exponential-backoff retry around a single async attempt."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from nftmeta.core.errors import GatewayStatusError

logger = logging.getLogger(__name__)


def is_transient(error: Exception) -> bool:
    """True for failures worth retrying: transport errors, 429 and 5xx."""
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, GatewayStatusError):
        return error.status == 429 or error.status >= 500
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or status >= 500
    return False


def _always(_: Exception) -> bool:
    return True


@dataclass
class RetryPolicy:
    """Retry an attempt up to ``max_attempts`` times.

    The delay before retry ``n`` (0-based) is ``base_delay_s * backoff_factor**n``.
    When the last attempt fails its exception is re-raised unchanged.
    """

    max_attempts: int = 3
    base_delay_s: float = 1.0
    backoff_factor: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def compute_delay(self, attempt: int) -> float:
        return self.base_delay_s * (self.backoff_factor ** attempt)

    async def run(
        self,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        should_retry: Callable[[Exception], bool] | None = None,
        label: str = "request",
        **kwargs: Any,
    ) -> Any:
        """Await ``fn(*args, **kwargs)`` with retries.

        ``should_retry`` decides per exception whether another attempt is
        made; by default every failure is retried.
        """
        should_retry = should_retry or _always
        attempt = 0
        while True:
            try:
                return await fn(*args, **kwargs)
            except Exception as e:
                attempt += 1
                if attempt >= self.max_attempts or not should_retry(e):
                    raise
                delay = self.compute_delay(attempt - 1)
                logger.warning(
                    "%s failed (attempt %d/%d): %s, retrying in %.1fs",
                    label, attempt, self.max_attempts, e, delay,
                )
                await self.sleep(delay)
