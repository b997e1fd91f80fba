# src/gateway/content_cache.py - v1
"""Short-lived in-memory cache of resolved JSON documents."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any


class ContentCache:
    """Identifier -> parsed JSON with a fixed TTL (5 minutes by default)."""

    def __init__(
        self, ttl_s: float = 300.0, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        item = self._entries.get(key)
        if item is None:
            return None
        stored_at, value = item
        if self._clock() - stored_at > self._ttl_s:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
