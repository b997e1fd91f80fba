# src/cache/cache_factory.py - v1
"""Factory for cache store instantiation."""

from __future__ import annotations

from nftmeta.cache.base_cache_store import BaseCacheStore
from nftmeta.config.settings import Settings


def create_cache_store(settings: Settings | None = None) -> BaseCacheStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to an in-memory store.

    Returns:
        Configured BaseCacheStore implementation.
    """
    backend = "memory" if settings is None else settings.cache_backend

    if backend == "memory":
        from nftmeta.cache.memory_store import MemoryCacheStore
        return MemoryCacheStore()

    if backend == "json":
        from nftmeta.cache.json_store import JsonCacheStore
        return JsonCacheStore(cache_root=settings.cache_root)

    if backend == "sqlite":
        from nftmeta.cache.sqlite_store import SqliteCacheStore
        db_path = settings.cache_root.expanduser() / "nftmeta_cache.db"
        return SqliteCacheStore(db_path=db_path)

    if backend == "redis":
        from nftmeta.cache.redis_store import RedisCacheStore
        if not settings.cache_redis_url:
            raise ValueError("CACHE_REDIS_URL must be set when CACHE_BACKEND=redis")
        return RedisCacheStore(redis_url=settings.cache_redis_url)

    raise ValueError(f"Unsupported cache backend: {backend!r}")
