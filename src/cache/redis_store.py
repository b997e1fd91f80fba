# src/cache/redis_store.py - v1
"""Redis-based cache store (CACHE_BACKEND=redis).

Requires 'redis' package: pip install nftmeta[redis].
Suitable for sharing one cache between several processes.
"""

from __future__ import annotations

from pydantic import ValidationError

from nftmeta.cache.base_cache_store import BaseCacheStore
from nftmeta.cache.models import CollectionCacheEntry
from nftmeta.core.errors import CacheIOFailure

_KEY_PREFIX = "nftmeta:cache:"
_INDEX_KEY = "nftmeta:cache:__index__"


class RedisCacheStore(BaseCacheStore):
    """Redis-backed cache store."""

    def __init__(self, redis_url: str) -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install nftmeta[redis]"
            ) from e

        self._redis_error = redis.RedisError
        self._client = redis.Redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> CollectionCacheEntry | None:
        try:
            data = self._client.get(f"{_KEY_PREFIX}{key}")
            if data is None:
                return None
            return CollectionCacheEntry.model_validate_json(data)
        except (self._redis_error, ValidationError) as e:
            raise CacheIOFailure(key, "read", e) from e

    async def put(self, key: str, entry: CollectionCacheEntry) -> None:
        try:
            self._client.set(f"{_KEY_PREFIX}{key}", entry.model_dump_json())
            # Index set backs list_keys / clear
            self._client.sadd(_INDEX_KEY, key)
        except self._redis_error as e:
            raise CacheIOFailure(key, "write", e) from e

    async def delete(self, key: str) -> None:
        try:
            self._client.delete(f"{_KEY_PREFIX}{key}")
            self._client.srem(_INDEX_KEY, key)
        except self._redis_error as e:
            raise CacheIOFailure(key, "delete", e) from e

    async def list_keys(self) -> list[str]:
        try:
            return sorted(self._client.smembers(_INDEX_KEY))
        except self._redis_error as e:
            raise CacheIOFailure("*", "list", e) from e

    def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()
