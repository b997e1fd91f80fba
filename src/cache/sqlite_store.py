# src/cache/sqlite_store.py - v1
"""SQLite-based cache store (CACHE_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency. A single table keyed by
collection key; lookups are by exact key only.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from pydantic import ValidationError

from nftmeta.cache.base_cache_store import BaseCacheStore
from nftmeta.cache.models import CollectionCacheEntry
from nftmeta.core.errors import CacheIOFailure

_SCHEMA = """
CREATE TABLE IF NOT EXISTS collection_cache (
    key TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


class SqliteCacheStore(BaseCacheStore):
    """SQLite-backed cache store."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    async def get(self, key: str) -> CollectionCacheEntry | None:
        try:
            row = self._conn.execute(
                "SELECT data FROM collection_cache WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                return None
            return CollectionCacheEntry.model_validate_json(row[0])
        except (sqlite3.Error, ValidationError) as e:
            raise CacheIOFailure(key, "read", e) from e

    async def put(self, key: str, entry: CollectionCacheEntry) -> None:
        """Store a cache entry (upsert)."""
        try:
            self._conn.execute(
                """INSERT OR REPLACE INTO collection_cache (key, data, updated_at)
                   VALUES (?, ?, CURRENT_TIMESTAMP)""",
                (key, entry.model_dump_json()),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise CacheIOFailure(key, "write", e) from e

    async def delete(self, key: str) -> None:
        try:
            self._conn.execute("DELETE FROM collection_cache WHERE key = ?", (key,))
            self._conn.commit()
        except sqlite3.Error as e:
            raise CacheIOFailure(key, "delete", e) from e

    async def list_keys(self) -> list[str]:
        try:
            rows = self._conn.execute("SELECT key FROM collection_cache").fetchall()
        except sqlite3.Error as e:
            raise CacheIOFailure("*", "list", e) from e
        return [row[0] for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
