# src/prefetch/queue.py - v1
"""Background metadata prefetch queue for one (collection, base URI).

``add(ids)`` appends ids and starts the processing loop if none is running.
Each loop iteration takes up to ``background_batch`` ids, splits them into
``chunk_size`` chunks and runs at most ``max_concurrent_chunks`` of them at
a time. A chunk resolves metadata for each of its ids (per-id failures
become ``None``), performs one batched ownership lookup, then merges its
results into the collection cache. Chunks may complete in any order; the
cache's max-watermark rule keeps the watermark from regressing.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from nftmeta.cache.collection_cache import CollectionCache
from nftmeta.core.errors import OwnershipLookupFailure
from nftmeta.core.models import TokenMetadata, TokenStatus
from nftmeta.logging.context import set_collection_context, set_operation_context
from nftmeta.metadata.fetcher import MetadataFetcher
from nftmeta.prefetch.sessions import FetchSession
from nftmeta.upstream.base_collection_service import BaseCollectionService

logger = logging.getLogger(__name__)


@dataclass
class ChunkResult:
    """Outcome of one processed chunk."""

    token_ids: list[int]
    metadata: dict[int, TokenMetadata | None] = field(default_factory=dict)
    ownership: dict[int, TokenStatus] = field(default_factory=dict)
    ownership_failed: bool = False

    @property
    def resolved_count(self) -> int:
        return sum(1 for m in self.metadata.values() if m is not None)


def split_chunks(ids: list[int], chunk_size: int) -> list[list[int]]:
    return [ids[i:i + chunk_size] for i in range(0, len(ids), chunk_size)]


class PrefetchQueue:
    """Pending token ids of one collection plus the loop that drains them.

    Args:
        tick: Collection tick.
        base_uri: Collection base metadata URI.
        fetcher: Metadata fetcher (gateway resolution).
        collection_service: Upstream service for batched ownership lookups.
        cache: Collection cache receiving merge-writes.
        session: Owning fetch session, polled once per loop iteration.
        background_batch: Ids taken per loop iteration.
        chunk_size: Ids per chunk.
        max_concurrent_chunks: Width of the chunk worker pool.
        on_chunk: Optional callback receiving every ChunkResult.
    """

    def __init__(
        self,
        tick: str,
        base_uri: str,
        fetcher: MetadataFetcher,
        collection_service: BaseCollectionService,
        cache: CollectionCache,
        session: FetchSession,
        background_batch: int = 48,
        chunk_size: int = 20,
        max_concurrent_chunks: int = 5,
        on_chunk: Callable[[ChunkResult], None] | None = None,
    ) -> None:
        self.tick = tick
        self.base_uri = base_uri
        self.session = session
        self._fetcher = fetcher
        self._collection_service = collection_service
        self._cache = cache
        self._background_batch = background_batch
        self._chunk_size = chunk_size
        self._max_concurrent_chunks = max_concurrent_chunks
        self._on_chunk = on_chunk
        self._pending: deque[int] = deque()
        self._task: asyncio.Task[None] | None = None
        self.chunks_dispatched = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> list[int]:
        return list(self._pending)

    def add(self, token_ids: Iterable[int]) -> None:
        """Queue ``token_ids`` and make sure the processing loop is running."""
        queued = set(self._pending)
        for token_id in token_ids:
            if token_id not in queued:
                self._pending.append(token_id)
                queued.add(token_id)
        if self._pending and not self.is_running:
            self._task = asyncio.create_task(
                self._process(), name=f"prefetch-{self.tick}-{self.session.session_id}"
            )

    async def drain(self) -> None:
        """Wait until the current processing loop has exited."""
        while self.is_running:
            await asyncio.shield(self._task)

    async def aclose(self) -> None:
        """Stop the loop now, abandoning queued ids and in-flight chunks."""
        self._pending.clear()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _process(self) -> None:
        set_collection_context(self.tick, self.session.session_id)
        set_operation_context("prefetch")
        try:
            await self._process_pending()
        except Exception:
            logger.exception("Prefetch loop for %s aborted", self.tick)
            self._pending.clear()

    async def _process_pending(self) -> None:
        while self._pending:
            if not self.session.should_continue():
                logger.info(
                    "Session %s inactive, dropping %d queued ids",
                    self.session.session_id, len(self._pending),
                )
                self._pending.clear()
                return

            batch = [
                self._pending.popleft()
                for _ in range(min(self._background_batch, len(self._pending)))
            ]
            semaphore = asyncio.Semaphore(self._max_concurrent_chunks)
            await asyncio.gather(
                *(self._run_chunk(chunk, semaphore) for chunk in split_chunks(batch, self._chunk_size))
            )

    async def _run_chunk(self, chunk: list[int], semaphore: asyncio.Semaphore) -> ChunkResult | None:
        async with semaphore:
            # Chunks waiting on the pool are not dispatched once cancelled
            if not self.session.should_continue():
                return None
            self.chunks_dispatched += 1
            result = await self.process_chunk(chunk)

        if self._on_chunk is not None:
            self._on_chunk(result)
        return result

    async def process_chunk(self, chunk: list[int]) -> ChunkResult:
        """Resolve metadata and ownership for ``chunk`` and merge into the cache."""
        metadata, ownership = await asyncio.gather(
            self._fetcher.fetch_many(self.tick, self.base_uri, chunk),
            self._lookup_ownership(chunk),
        )
        result = ChunkResult(
            token_ids=list(chunk),
            metadata=metadata,
            ownership=ownership or {},
            ownership_failed=ownership is None,
        )

        entry = await self._cache.merge(self.tick, metadata, chunk)
        logger.debug(
            "Chunk %d-%d merged", chunk[0], chunk[-1],
            extra={"data": {
                "resolved": result.resolved_count,
                "requested": len(chunk),
                "ownership_failed": result.ownership_failed,
                "watermark": entry.last_fetched_watermark,
            }},
        )
        return result

    async def _lookup_ownership(self, chunk: list[int]) -> dict[int, TokenStatus] | None:
        try:
            return await self._collection_service.get_tokens_batch(self.tick, chunk)
        except Exception as e:
            logger.warning("%s", OwnershipLookupFailure(self.tick, chunk, e))
            return None
