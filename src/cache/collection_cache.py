# src/cache/collection_cache.py - v1
"""Per-collection token metadata cache with time-based expiry.

Wraps a BaseCacheStore and adds the collection semantics:

- entries older than the retention window read as absent (they stay in the
  store until overwritten or cleared);
- reads return a snapshot enriched by the rarity engine;
- every store failure is logged and treated as a miss (fail open), so an
  outage degrades to refetching instead of blocking page requests.

``merge`` is a plain read-modify-write. Two writers that read the same base
entry can lose each other's additions; the later write wins.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from nftmeta.cache.base_cache_store import BaseCacheStore
from nftmeta.cache.models import CollectionCacheEntry, build_trait_index, utcnow
from nftmeta.core.errors import CacheIOFailure
from nftmeta.core.models import TokenMetadata
from nftmeta.rarity.engine import enrich_snapshot

logger = logging.getLogger(__name__)

CACHE_PREFIX = "collection_metadata_"
DEFAULT_RETENTION_S = 365 * 24 * 60 * 60


class CollectionCache:
    """Collection-level facade over a cache store.

    Args:
        store: Persistent backend.
        retention_s: Maximum entry age in seconds before it reads as absent.
    """

    def __init__(self, store: BaseCacheStore, retention_s: float = DEFAULT_RETENTION_S) -> None:
        self._store = store
        self._retention_s = retention_s

    @property
    def store(self) -> BaseCacheStore:
        return self._store

    async def get(self, tick: str) -> CollectionCacheEntry | None:
        """Return the live entry for ``tick`` with rarity applied, or None."""
        entry = await self.get_raw(tick)
        if entry is None:
            return None
        entry.token_metadata = enrich_snapshot(entry.token_metadata)
        return entry

    async def get_raw(self, tick: str) -> CollectionCacheEntry | None:
        """Return the live entry for ``tick`` without rarity enrichment."""
        key = self._key(tick)
        try:
            entry = await self._store.get(key)
        except CacheIOFailure as e:
            logger.warning("Cache read failed for %s, treating as miss: %s", tick, e)
            return None
        if entry is None:
            return None
        if entry.is_expired(self._retention_s):
            logger.debug(
                "Cache entry for %s expired (age %.0fs)", tick, entry.age_seconds()
            )
            return None
        return entry

    async def set(self, tick: str, entry: CollectionCacheEntry) -> None:
        """Persist ``entry``; the trait index is rebuilt from its metadata."""
        entry.trait_index = build_trait_index(entry.token_metadata)
        key = self._key(tick)
        try:
            await self._store.put(key, entry)
        except CacheIOFailure as e:
            logger.warning("Cache write failed for %s: %s", tick, e)

    async def initialize(
        self,
        tick: str,
        token_metadata: Mapping[int, TokenMetadata | None],
        watermark: int,
    ) -> CollectionCacheEntry:
        """Write a fresh entry holding the first synchronous batch."""
        entry = CollectionCacheEntry(
            timestamp=utcnow(),
            token_metadata={k: v for k, v in token_metadata.items() if v is not None},
            last_fetched_watermark=watermark,
        )
        await self.set(tick, entry)
        return entry

    async def merge(
        self,
        tick: str,
        token_metadata: Mapping[int, TokenMetadata | None],
        processed_ids: Iterable[int],
    ) -> CollectionCacheEntry:
        """Merge fetched metadata into the entry for ``tick``.

        Present metadata overwrites; ``None`` results are skipped. The
        watermark becomes the max of its previous value and every processed
        id, so out-of-order completions never move it backwards.
        """
        entry = await self.get_raw(tick) or CollectionCacheEntry()
        for token_id, meta in token_metadata.items():
            if meta is not None:
                entry.token_metadata[token_id] = meta
        entry.last_fetched_watermark = max(
            [entry.last_fetched_watermark, *processed_ids]
        )
        entry.timestamp = utcnow()
        await self.set(tick, entry)
        return entry

    async def clear(self, tick: str | None = None) -> None:
        """Remove one collection entry, or every collection entry."""
        try:
            if tick is not None:
                await self._store.delete(self._key(tick))
            else:
                await self._store.clear(prefix=CACHE_PREFIX)
        except CacheIOFailure as e:
            logger.warning("Cache clear failed for %s: %s", tick or "<all>", e)

    @staticmethod
    def _key(tick: str) -> str:
        return f"{CACHE_PREFIX}{tick}"
