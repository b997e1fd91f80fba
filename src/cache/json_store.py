# src/cache/json_store.py - v1
"""JSON file-based cache store (default CACHE_BACKEND=json).

Stores each collection entry as an individual JSON file under CACHE_ROOT.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from nftmeta.cache.base_cache_store import BaseCacheStore
from nftmeta.cache.models import CollectionCacheEntry
from nftmeta.core.errors import CacheIOFailure

logger = logging.getLogger(__name__)


class JsonCacheStore(BaseCacheStore):
    """File-based cache store using JSON files."""

    def __init__(self, cache_root: Path | str) -> None:
        self._root = Path(cache_root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)

    async def get(self, key: str) -> CollectionCacheEntry | None:
        """Retrieve cache entry by key."""
        path = self._entry_path(key)
        if not path.exists():
            return None
        try:
            return CollectionCacheEntry.model_validate_json(
                path.read_text(encoding="utf-8")
            )
        except (OSError, ValidationError) as e:
            raise CacheIOFailure(key, "read", e) from e

    async def put(self, key: str, entry: CollectionCacheEntry) -> None:
        """Store a cache entry (write to temp file, then rename)."""
        path = self._entry_path(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(entry.model_dump_json(), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise CacheIOFailure(key, "write", e) from e

    async def delete(self, key: str) -> None:
        """Remove a cache entry."""
        path = self._entry_path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise CacheIOFailure(key, "delete", e) from e

    async def list_keys(self) -> list[str]:
        if not self._root.is_dir():
            return []
        return sorted(path.stem for path in self._root.glob("*.json"))

    def _entry_path(self, key: str) -> Path:
        """Return file path for a cache key."""
        safe_key = key.replace("/", "_").replace("\\", "_")
        return self._root / f"{safe_key}.json"
