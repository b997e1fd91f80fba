# src/cache/base_cache_store.py - v1
"""Abstract cache store interface.

A store is a durable mapping from exact key to CollectionCacheEntry. Backends
raise ``CacheIOFailure`` for any read, write or decode problem; deciding
what a failure means is left to the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from nftmeta.cache.models import CollectionCacheEntry


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends."""

    @abstractmethod
    async def get(self, key: str) -> CollectionCacheEntry | None:
        """Retrieve an entry by exact key."""

    @abstractmethod
    async def put(self, key: str, entry: CollectionCacheEntry) -> None:
        """Store an entry, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove an entry. Missing keys are ignored."""

    @abstractmethod
    async def list_keys(self) -> list[str]:
        """List all stored keys."""

    async def clear(self, prefix: str = "") -> None:
        """Remove every entry whose key starts with ``prefix``."""
        for key in await self.list_keys():
            if key.startswith(prefix):
                await self.delete(key)

    def close(self) -> None:
        """Release backend resources."""
