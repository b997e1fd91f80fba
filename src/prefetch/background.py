# src/prefetch/background.py - v1
"""Session-driven scheduling of background prefetch ranges.

A session walks the collection in strides of ``background_batch`` ids,
feeding each range to the collection's PrefetchQueue and waiting for it to
drain. The next range is scheduled only while the session is still active
and its first id is within total supply, with a short pause in between to
keep gateway load down.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from nftmeta.cache.collection_cache import CollectionCache
from nftmeta.metadata.fetcher import MetadataFetcher
from nftmeta.prefetch.queue import ChunkResult, PrefetchQueue
from nftmeta.prefetch.sessions import FetchSession, FetchSessionRegistry
from nftmeta.upstream.base_collection_service import BaseCollectionService

if TYPE_CHECKING:
    from collections.abc import Callable

    from nftmeta.config.settings import Settings

logger = logging.getLogger(__name__)


class BackgroundPrefetcher:
    """Start, extend and tear down background prefetch per collection.

    Args:
        fetcher: Metadata fetcher shared with the page path.
        collection_service: Upstream service for ownership lookups.
        cache: Collection cache receiving merge-writes.
        registry: Session registry (shared with whoever cancels searches).
        settings: Batch sizes, concurrency and inter-range delay.
        on_chunk: Optional observer of every processed chunk.
    """

    def __init__(
        self,
        fetcher: MetadataFetcher,
        collection_service: BaseCollectionService,
        cache: CollectionCache,
        registry: FetchSessionRegistry,
        settings: Settings,
        on_chunk: Callable[[ChunkResult], None] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._collection_service = collection_service
        self._cache = cache
        self._registry = registry
        self._settings = settings
        self._on_chunk = on_chunk
        self._queues: dict[tuple[str, str], PrefetchQueue] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        # Live walks, and replaced queues whose workers are still draining
        self._walks: set[asyncio.Task[None]] = set()
        self._retired: list[PrefetchQueue] = []

    @property
    def registry(self) -> FetchSessionRegistry:
        return self._registry

    def queue_for(self, tick: str, base_uri: str) -> PrefetchQueue | None:
        return self._queues.get((tick, base_uri))

    def is_running(self, tick: str) -> bool:
        task = self._tasks.get(tick)
        return task is not None and not task.done()

    def start(self, tick: str, base_uri: str, start_id: int, total_supply: int) -> FetchSession:
        """Ensure a session is prefetching ``tick`` from ``start_id`` onwards.

        An already running session for the collection is left to continue
        its own walk.
        """
        session = self._registry.start(tick)
        if start_id > total_supply:
            return session
        current = self._queues.get((tick, base_uri))
        if self.is_running(tick) and current is not None and current.session is session:
            logger.debug("Prefetch for %s already running (session %s)", tick, session.session_id)
            return session

        queue = self._queue(tick, base_uri, session)
        task = asyncio.create_task(
            self._walk(session, queue, start_id, total_supply),
            name=f"prefetch-walk-{tick}",
        )
        self._tasks[tick] = task
        self._walks.add(task)
        task.add_done_callback(self._walks.discard)
        logger.info(
            "Background prefetch for %s from id %d (supply %d, session %s)",
            tick, start_id, total_supply, session.session_id,
        )
        return session

    async def wait(self, tick: str) -> None:
        """Wait for the collection's background walk to end."""
        task = self._tasks.get(tick)
        if task is not None:
            await asyncio.shield(task)

    async def aclose(self) -> None:
        """Cancel every session, then stop all walks and queue workers.

        No prefetch task is left running on return.
        """
        self._registry.cancel_all()
        walks = [t for t in self._walks if not t.done()]
        for task in walks:
            task.cancel()
        await asyncio.gather(*walks, return_exceptions=True)
        queues = [*self._queues.values(), *self._retired]
        await asyncio.gather(*(q.aclose() for q in queues), return_exceptions=True)
        self._retired.clear()
        self._tasks.clear()
        self._walks.clear()

    def _queue(self, tick: str, base_uri: str, session: FetchSession) -> PrefetchQueue:
        queue = self._queues.get((tick, base_uri))
        if queue is None or queue.session is not session:
            if queue is not None and queue.is_running:
                self._retired = [q for q in self._retired if q.is_running]
                self._retired.append(queue)
            queue = PrefetchQueue(
                tick=tick,
                base_uri=base_uri,
                fetcher=self._fetcher,
                collection_service=self._collection_service,
                cache=self._cache,
                session=session,
                background_batch=self._settings.background_batch,
                chunk_size=self._settings.chunk_size,
                max_concurrent_chunks=self._settings.max_concurrent_chunks,
                on_chunk=self._on_chunk,
            )
            self._queues[(tick, base_uri)] = queue
        return queue

    async def _walk(
        self, session: FetchSession, queue: PrefetchQueue, start_id: int, total_supply: int
    ) -> None:
        stride = self._settings.background_batch
        start = start_id
        try:
            while session.should_continue():
                end = min(start + stride - 1, total_supply)
                queue.add(range(start, end + 1))
                await queue.drain()

                start = end + 1
                if start > total_supply or not session.should_continue():
                    break
                if not await session.token.sleep(self._settings.prefetch_range_delay_s):
                    break
        finally:
            if session.should_continue():
                logger.info("Background prefetch for %s complete", queue.tick)
            self._registry.finish(session)
            if self._tasks.get(queue.tick) is asyncio.current_task():
                del self._tasks[queue.tick]
