# src/cache/memory_store.py - v1
"""In-process cache store (CACHE_BACKEND=memory).

Entries are kept serialized so reads behave exactly like a persistent
backend: each ``get`` returns a fresh object, never a shared reference.
"""

from __future__ import annotations

from pydantic import ValidationError

from nftmeta.cache.base_cache_store import BaseCacheStore
from nftmeta.cache.models import CollectionCacheEntry
from nftmeta.core.errors import CacheIOFailure


class MemoryCacheStore(BaseCacheStore):
    """Dict-backed cache store, lost on process exit."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> CollectionCacheEntry | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return CollectionCacheEntry.model_validate_json(raw)
        except ValidationError as e:
            raise CacheIOFailure(key, "read", e) from e

    async def put(self, key: str, entry: CollectionCacheEntry) -> None:
        self._data[key] = entry.model_dump_json()

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self) -> list[str]:
        return list(self._data)
