# src/logging/context.py - v1
"""Contextual logging support: attach collection, session and operation to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per page request or prefetch session.
_collection: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "collection", default=None
)
_session_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "session_id", default=None
)
_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    collection: str | None = None
    session_id: str | None = None
    operation: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        collection=_collection.get(),
        session_id=_session_id.get(),
        operation=_operation.get(),
    )


def set_collection_context(collection: str, session_id: str | None = None) -> None:
    """Set collection-level context (called once per page request or session)."""
    _collection.set(collection)
    _session_id.set(session_id)


def set_operation_context(operation: str) -> None:
    """Set operation-level context (e.g. ``fetch_page``, ``prefetch_chunk``)."""
    _operation.set(operation)


def clear_context() -> None:
    """Reset all context variables."""
    _collection.set(None)
    _session_id.set(None)
    _operation.set(None)
