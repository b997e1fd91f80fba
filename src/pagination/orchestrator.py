# src/pagination/orchestrator.py - v1
"""Page assembly for collection browsing.

``fetch_page`` guarantees that every token of the requested window has had
its metadata resolution attempted before returning, whatever background
prefetch has reached so far:

  1. Load the collection cache entry. On a miss, resolve the first
     ``initial_batch`` tokens synchronously, write a fresh entry and start
     background prefetch for the rest of the supply.
  2. Compute the id window ``[offset + 1, offset + limit]`` clamped to supply.
  3. If the window reaches past ``initial_batch``, resolve the ids it lacks
     synchronously and merge them. The watermark advances only when the
     window starts at or before ``watermark + 1``.
  4. Look up live ownership for exactly the window (never cached).
  5. Apply attribute filters against cached metadata.
  6. If the window reached past the watermark, (re)start background
     prefetch after the watermark.
  7. Return the page with ``has_more`` / ``next_offset``.

Per-token and ownership failures degrade the page; only a missing
collection record or base URI fails the request.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from nftmeta.cache.collection_cache import CollectionCache
from nftmeta.core.errors import CollectionNotFound, MissingMetadataURI, OwnershipLookupFailure
from nftmeta.core.models import CollectionInfo, Page, TokenMetadata, TokenStatus, TokenView, TraitFilters
from nftmeta.logging.context import set_collection_context, set_operation_context
from nftmeta.metadata.fetcher import MetadataFetcher
from nftmeta.pagination.filters import matches_filters
from nftmeta.prefetch.background import BackgroundPrefetcher
from nftmeta.rarity.engine import enrich_snapshot
from nftmeta.upstream.base_collection_service import BaseCollectionService

if TYPE_CHECKING:
    from collections.abc import Sequence

    from nftmeta.config.settings import Settings

logger = logging.getLogger(__name__)


class PaginationOrchestrator:
    """Top-level entry point for paged collection reads.

    Args:
        settings: Batch sizes and default page size.
        fetcher: Metadata fetcher used for synchronous fills.
        collection_service: Upstream collection service.
        cache: Collection cache.
        prefetcher: Background prefetch scheduler.
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: MetadataFetcher,
        collection_service: BaseCollectionService,
        cache: CollectionCache,
        prefetcher: BackgroundPrefetcher,
    ) -> None:
        self._settings = settings
        self._fetcher = fetcher
        self._collection_service = collection_service
        self._cache = cache
        self._prefetcher = prefetcher

    async def get_collection(self, tick: str) -> CollectionInfo:
        """Return the upstream record for ``tick``.

        Raises:
            CollectionNotFound: If the service has no record.
            MissingMetadataURI: If the record has no base metadata URI.
        """
        try:
            collection = await self._collection_service.get_collection_details(tick)
        except Exception as e:
            raise CollectionNotFound(tick, f"Collection lookup failed for {tick}: {e}") from e
        if collection is None:
            raise CollectionNotFound(tick)
        if not collection.buri:
            raise MissingMetadataURI(tick)
        return collection

    async def fetch_page(
        self,
        tick: str,
        offset: int = 0,
        limit: int | None = None,
        total_supply: int | None = None,
        filters: TraitFilters | None = None,
    ) -> Page:
        set_collection_context(tick)
        set_operation_context("fetch_page")

        limit = limit or self._settings.display_limit
        initial_batch = self._settings.initial_batch
        collection = await self.get_collection(tick)
        base_uri = collection.buri or ""
        if total_supply is None:
            total_supply = collection.max or collection.minted

        # Step 1: cache entry, or synchronous initial fill. Rarity is applied
        # once below, after any gap fill.
        entry = await self._cache.get_raw(tick)
        if entry is None:
            first_ids = list(range(1, min(initial_batch, total_supply) + 1))
            logger.info("No cache for %s, fetching first %d tokens", tick, len(first_ids))
            metadata = await self._fetcher.fetch_many(tick, base_uri, first_ids)
            entry = await self._cache.initialize(tick, metadata, watermark=initial_batch)
            if total_supply > initial_batch:
                self._prefetcher.start(tick, base_uri, initial_batch + 1, total_supply)

        # Step 2: requested window
        window_end = min(offset + limit, total_supply)
        page_ids = list(range(offset + 1, window_end + 1))
        watermark_before = entry.last_fetched_watermark

        # Step 3: synchronous gap fill of whatever the page lacks. A page
        # behind the watermark can still have holes left by an earlier jump.
        snapshot: dict[int, TokenMetadata] = dict(entry.token_metadata)
        missing = [i for i in page_ids if i not in snapshot]
        if window_end > initial_batch and missing:
            logger.info(
                "Page %d-%d of %s has %d unresolved ids (watermark %d), resolving",
                offset + 1, window_end, tick, len(missing), watermark_before,
            )
            fetched = await self._fetcher.fetch_many(tick, base_uri, missing)
            # The watermark only advances when the page joins the fetched prefix
            contiguous = offset + 1 <= watermark_before + 1
            entry = await self._cache.merge(tick, fetched, page_ids if contiguous else [])
            snapshot.update({k: v for k, v in fetched.items() if v is not None})
        enriched = enrich_snapshot(snapshot)

        # Step 4: live ownership for the page only
        statuses = await self._page_ownership(tick, page_ids)

        tokens = [
            TokenView(
                tick=tick,
                id=token_id,
                owner=statuses.get(token_id, TokenStatus()).owner,
                is_minted=statuses.get(token_id, TokenStatus()).is_minted,
                metadata=enriched.get(token_id),
            )
            for token_id in page_ids
        ]

        # Step 5: attribute filters
        if filters:
            tokens = [t for t in tokens if matches_filters(t.metadata, filters)]

        # Step 6: keep background prefetch moving past the watermark. A
        # non-contiguous fill leaves the watermark put, so the walk still
        # covers the ids skipped by the jump.
        if window_end > watermark_before:
            start_id = max(entry.last_fetched_watermark + 1, initial_batch + 1)
            if start_id <= total_supply:
                self._prefetcher.start(tick, base_uri, start_id, total_supply)

        # Step 7
        has_more = offset + limit < total_supply
        return Page(
            tokens=tokens,
            has_more=has_more,
            next_offset=offset + limit if has_more else None,
            collection=collection,
        )

    async def fetch_tokens(
        self, tick: str, base_uri: str, token_ids: Sequence[int]
    ) -> dict[int, TokenMetadata | None]:
        """Metadata for arbitrary ids: cache first, then gateways for the rest."""
        entry = await self._cache.get(tick)
        cached = entry.token_metadata if entry is not None else {}
        missing = [i for i in token_ids if i not in cached]
        fetched: dict[int, TokenMetadata | None] = {}
        if missing:
            fetched = await self._fetcher.fetch_many(tick, base_uri, missing)
            # Merged only into an existing entry (an entry implies the initial
            # fill happened); the watermark stays put
            if entry is not None:
                await self._cache.merge(tick, fetched, processed_ids=[])
        return {i: cached.get(i) or fetched.get(i) for i in token_ids}

    async def _page_ownership(self, tick: str, page_ids: list[int]) -> dict[int, TokenStatus]:
        if not page_ids:
            return {}
        try:
            return await self._collection_service.get_tokens_batch(tick, page_ids)
        except Exception as e:
            logger.warning("%s", OwnershipLookupFailure(tick, page_ids, e))
            return {}
