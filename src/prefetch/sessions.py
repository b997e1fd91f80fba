# src/prefetch/sessions.py - v1
"""Background-fetch sessions and their registry.

At most one session per collection is canonical. Cancellation is
cooperative: loops poll ``FetchSession.should_continue()`` once per
iteration and before scheduling follow-up ranges. Work already dispatched
when the token fires still completes and still lands in the cache.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag that can also be awaited.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: asyncio.Event | None = None

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def is_cancelled(self) -> bool:
        return self._cancelled

    async def wait(self) -> None:
        """Suspend until cancellation is requested."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep up to ``delay`` seconds; return False if cancelled meanwhile."""
        if self._cancelled:
            return False
        try:
            await asyncio.wait_for(self.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False


@dataclass
class FetchSession:
    """Lifecycle of background prefetching for one collection."""

    collection_id: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    is_active: bool = True
    token: CancellationToken = field(default_factory=CancellationToken)

    def should_continue(self) -> bool:
        return self.is_active and not self.token.is_cancelled()


class FetchSessionRegistry:
    """Table of background-fetch sessions keyed by collection."""

    def __init__(self) -> None:
        self._sessions: dict[str, FetchSession] = {}

    def start(self, collection_id: str) -> FetchSession:
        """Return the active session for ``collection_id`` or create a new one."""
        session = self._sessions.get(collection_id)
        if session is not None and session.should_continue():
            return session
        session = FetchSession(collection_id=collection_id)
        self._sessions[collection_id] = session
        logger.debug("Started fetch session %s for %s", session.session_id, collection_id)
        return session

    def get(self, collection_id: str) -> FetchSession | None:
        return self._sessions.get(collection_id)

    def cancel(self, collection_id: str) -> None:
        """Deactivate the collection's session and raise its token."""
        session = self._sessions.pop(collection_id, None)
        if session is None:
            return
        session.is_active = False
        session.token.cancel()
        logger.info("Cancelled fetch session %s for %s", session.session_id, collection_id)

    def cancel_all(self) -> None:
        """Cancel every tracked session (a new, unrelated search started)."""
        for collection_id in list(self._sessions):
            self.cancel(collection_id)

    def finish(self, session: FetchSession) -> None:
        """Tear down ``session`` after natural completion."""
        session.is_active = False
        if self._sessions.get(session.collection_id) is session:
            del self._sessions[session.collection_id]
        logger.debug("Fetch session %s for %s finished", session.session_id, session.collection_id)

    def active_sessions(self) -> list[FetchSession]:
        return [s for s in self._sessions.values() if s.should_continue()]

    def __len__(self) -> int:
        return len(self._sessions)
