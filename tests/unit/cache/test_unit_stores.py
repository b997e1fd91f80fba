# tests/unit/cache/test_unit_stores.py - v1
"""Tests for the cache store backends: base ABC, memory, JSON, SQLite, Redis."""

from __future__ import annotations

import sys
from unittest.mock import MagicMock, patch

import pytest

from nftmeta.cache.base_cache_store import BaseCacheStore
from nftmeta.cache.json_store import JsonCacheStore
from nftmeta.cache.memory_store import MemoryCacheStore
from nftmeta.cache.models import CollectionCacheEntry
from nftmeta.cache.sqlite_store import SqliteCacheStore
from nftmeta.core.errors import CacheIOFailure


def _entry(make_metadata, watermark: int = 2) -> CollectionCacheEntry:
    return CollectionCacheEntry(
        token_metadata={i: make_metadata(i, Hat="Red") for i in range(1, watermark + 1)},
        last_fetched_watermark=watermark,
    )


class TestBaseCacheStore:
    def test_cannot_instantiate(self):
        with pytest.raises(TypeError):
            BaseCacheStore()  # type: ignore[abstract]

    def test_has_required_methods(self):
        for method in ["get", "put", "delete", "list_keys", "clear", "close"]:
            assert hasattr(BaseCacheStore, method)


class TestMemoryCacheStore:
    @pytest.mark.asyncio
    async def test_put_and_get(self, make_metadata):
        store = MemoryCacheStore()
        await store.put("collection_metadata_KATS", _entry(make_metadata))
        result = await store.get("collection_metadata_KATS")
        assert result is not None
        assert result.last_fetched_watermark == 2
        assert result.token_metadata[1].name == "Kat #1"

    @pytest.mark.asyncio
    async def test_get_returns_fresh_copy(self, make_metadata):
        store = MemoryCacheStore()
        await store.put("k", _entry(make_metadata))
        first = await store.get("k")
        first.token_metadata.clear()
        second = await store.get("k")
        assert len(second.token_metadata) == 2

    @pytest.mark.asyncio
    async def test_missing_key(self):
        assert await MemoryCacheStore().get("nope") is None

    @pytest.mark.asyncio
    async def test_clear_by_prefix(self, make_metadata):
        store = MemoryCacheStore()
        await store.put("collection_metadata_A", _entry(make_metadata))
        await store.put("collection_metadata_B", _entry(make_metadata))
        await store.put("other", _entry(make_metadata))
        await store.clear(prefix="collection_metadata_")
        assert await store.list_keys() == ["other"]


class TestJsonCacheStore:
    @pytest.mark.asyncio
    async def test_put_and_get(self, tmp_path, make_metadata):
        store = JsonCacheStore(tmp_path)
        await store.put("collection_metadata_KATS", _entry(make_metadata))
        assert (tmp_path / "collection_metadata_KATS.json").exists()
        result = await store.get("collection_metadata_KATS")
        assert set(result.token_metadata) == {1, 2}

    @pytest.mark.asyncio
    async def test_survives_new_instance(self, tmp_path, make_metadata):
        await JsonCacheStore(tmp_path).put("k", _entry(make_metadata, watermark=3))
        result = await JsonCacheStore(tmp_path).get("k")
        assert result.last_fetched_watermark == 3

    @pytest.mark.asyncio
    async def test_no_temp_file_left(self, tmp_path, make_metadata):
        store = JsonCacheStore(tmp_path)
        await store.put("k", _entry(make_metadata))
        assert not list(tmp_path.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_corrupt_file_raises_cache_failure(self, tmp_path):
        (tmp_path / "k.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(CacheIOFailure) as exc_info:
            await JsonCacheStore(tmp_path).get("k")
        assert exc_info.value.operation == "read"

    @pytest.mark.asyncio
    async def test_delete_and_list(self, tmp_path, make_metadata):
        store = JsonCacheStore(tmp_path)
        await store.put("a", _entry(make_metadata))
        await store.put("b", _entry(make_metadata))
        await store.delete("a")
        await store.delete("missing")
        assert await store.list_keys() == ["b"]

    @pytest.mark.asyncio
    async def test_key_with_slash_is_flattened(self, tmp_path, make_metadata):
        store = JsonCacheStore(tmp_path)
        await store.put("a/b", _entry(make_metadata))
        assert (tmp_path / "a_b.json").exists()


class TestSqliteCacheStore:
    @pytest.mark.asyncio
    async def test_put_get_delete(self, tmp_path, make_metadata):
        store = SqliteCacheStore(tmp_path / "cache.db")
        try:
            await store.put("k", _entry(make_metadata))
            result = await store.get("k")
            assert result.last_fetched_watermark == 2
            await store.delete("k")
            assert await store.get("k") is None
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_upsert(self, tmp_path, make_metadata):
        store = SqliteCacheStore(tmp_path / "cache.db")
        try:
            await store.put("k", _entry(make_metadata, watermark=1))
            await store.put("k", _entry(make_metadata, watermark=5))
            assert (await store.get("k")).last_fetched_watermark == 5
            assert await store.list_keys() == ["k"]
        finally:
            store.close()

    @pytest.mark.asyncio
    async def test_closed_connection_raises_cache_failure(self, tmp_path):
        store = SqliteCacheStore(tmp_path / "cache.db")
        store.close()
        with pytest.raises(CacheIOFailure):
            await store.get("k")


def _mock_redis_store():
    storage: dict[str, str] = {}
    index: set[str] = set()

    mock_redis = MagicMock()
    mock_redis.get = lambda k: storage.get(k)
    mock_redis.set = lambda k, v: storage.__setitem__(k, v)
    mock_redis.delete = lambda k: storage.pop(k, None)
    mock_redis.sadd = lambda k, v: index.add(v)
    mock_redis.srem = lambda k, v: index.discard(v)
    mock_redis.smembers = lambda k: index.copy()

    with patch("nftmeta.cache.redis_store.RedisCacheStore.__init__", return_value=None):
        from nftmeta.cache.redis_store import RedisCacheStore
        store = RedisCacheStore.__new__(RedisCacheStore)
        store._client = mock_redis
        store._redis_error = ConnectionError
    return store, storage


class TestRedisCacheStore:
    def test_import_error_without_redis(self):
        """Clear ImportError when redis is not available."""
        redis_mod = sys.modules.get("redis")
        sys.modules["redis"] = None  # type: ignore[assignment]
        try:
            from nftmeta.cache.redis_store import RedisCacheStore
            with pytest.raises(ImportError, match="redis"):
                RedisCacheStore(redis_url="redis://localhost")
        finally:
            if redis_mod is not None:
                sys.modules["redis"] = redis_mod
            else:
                sys.modules.pop("redis", None)

    @pytest.mark.asyncio
    async def test_put_and_get(self, make_metadata):
        store, storage = _mock_redis_store()
        await store.put("k", _entry(make_metadata))
        assert "nftmeta:cache:k" in storage
        result = await store.get("k")
        assert result.last_fetched_watermark == 2

    @pytest.mark.asyncio
    async def test_delete_and_list(self, make_metadata):
        store, _ = _mock_redis_store()
        await store.put("a", _entry(make_metadata))
        await store.put("b", _entry(make_metadata))
        await store.delete("a")
        assert await store.get("a") is None
        assert await store.list_keys() == ["b"]

    @pytest.mark.asyncio
    async def test_backend_error_wrapped(self):
        store, _ = _mock_redis_store()

        def _down(key):
            raise ConnectionError("redis down")

        store._client.get = _down
        with pytest.raises(CacheIOFailure, match="read"):
            await store.get("k")
