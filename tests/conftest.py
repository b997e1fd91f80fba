# tests/conftest.py - v1
"""Shared test fixtures for all unit and integration tests.

Provides sample metadata, an in-process collection service, and an httpx
MockTransport gateway serving token documents. No network access.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence

import httpx
import pytest

from nftmeta.cache.collection_cache import CollectionCache
from nftmeta.cache.memory_store import MemoryCacheStore
from nftmeta.config.settings import Settings, load_settings
from nftmeta.core.models import (
    AddressCollection,
    CollectionInfo,
    TokenAttribute,
    TokenMetadata,
    TokenStatus,
)
from nftmeta.gateway.rate_limiter import RateLimiter
from nftmeta.gateway.resolver import GatewayResolver
from nftmeta.gateway.retry import RetryPolicy
from nftmeta.metadata.fetcher import MetadataFetcher
from nftmeta.prefetch.sessions import FetchSessionRegistry
from nftmeta.upstream.base_collection_service import BaseCollectionService

GATEWAY = "https://gw1.test"
BASE_CID = "bafybase"


# === FIXTURES: Sample data ===


def token_payload(token_id: int) -> dict:
    """Metadata document served for ``token_id``. Every 4th token wears a red hat."""
    return {
        "name": f"Kat #{token_id}",
        "description": "A test kat",
        "image": f"ipfs://bafyimg/{token_id}.png",
        "edition": token_id,
        "attributes": [
            {"trait_type": "Hat", "value": "Red" if token_id % 4 == 0 else "Blue"},
            {"trait_type": "Eyes", "value": "Laser" if token_id % 2 else "Plain"},
        ],
    }


@pytest.fixture
def make_metadata() -> Callable[..., TokenMetadata]:
    """Factory: ``make_metadata(1, Hat="Red")``."""

    def _make(token_id: int, **traits: str) -> TokenMetadata:
        return TokenMetadata(
            name=f"Kat #{token_id}",
            description="A test kat",
            image=f"ipfs://bafyimg/{token_id}.png",
            edition=token_id,
            attributes=[TokenAttribute(trait_type=k, value=v) for k, v in traits.items()],
        )

    return _make


@pytest.fixture
def settings() -> Settings:
    """Settings with no delays and an in-memory cache."""
    return load_settings(
        _env_file=None,
        cache_backend="memory",
        gateway_urls=GATEWAY,
        rate_limit_interval_ms=0,
        retry_max_attempts=1,
        retry_base_delay_s=0,
        prefetch_range_delay_s=0,
    )


# === FIXTURES: Collection service ===


class FakeCollectionService(BaseCollectionService):
    """In-process collection service recording every ownership lookup."""

    def __init__(self, collection: CollectionInfo | None = None) -> None:
        self.collection = collection
        self.owners: dict[int, str] = {}
        self.address_holdings: list[AddressCollection] = []
        self.fail_details = False
        self.fail_ownership = False
        self.batch_calls: list[list[int]] = []
        self.closed = False

    async def get_collection_details(self, tick: str) -> CollectionInfo | None:
        if self.fail_details:
            raise httpx.ConnectError("indexer unreachable")
        if self.collection is None or self.collection.tick != tick:
            return None
        return self.collection

    async def get_tokens_batch(
        self, tick: str, token_ids: Sequence[int]
    ) -> dict[int, TokenStatus]:
        self.batch_calls.append(list(token_ids))
        if self.fail_ownership:
            raise RuntimeError("ownership lookup failed")
        return {
            i: TokenStatus(owner=self.owners[i], is_minted=True)
            if i in self.owners
            else TokenStatus()
            for i in token_ids
        }

    async def get_address_collections(self, address: str) -> list[AddressCollection]:
        return list(self.address_holdings)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def collection_info() -> CollectionInfo:
    return CollectionInfo(tick="KATS", buri=f"ipfs://{BASE_CID}", max="100", minted="100")


@pytest.fixture
def collection_service(collection_info: CollectionInfo) -> FakeCollectionService:
    service = FakeCollectionService(collection_info)
    service.owners = {i: f"kaspa:owner{i}" for i in range(1, 101)}
    return service


# === FIXTURES: Gateway ===


class MetadataGateway:
    """MockTransport handler serving ``/ipfs/<BASE_CID>/<id>`` documents.

    Ids above ``supply`` or listed in ``failing`` answer 404.
    """

    _path = re.compile(rf"^/ipfs/{BASE_CID}/(\d+)$")

    def __init__(self, supply: int = 100) -> None:
        self.supply = supply
        self.failing: set[int] = set()
        self.requested: list[int] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        match = self._path.match(request.url.path)
        if match is None:
            return httpx.Response(404)
        token_id = int(match.group(1))
        self.requested.append(token_id)
        if token_id > self.supply or token_id in self.failing:
            return httpx.Response(404)
        return httpx.Response(200, json=token_payload(token_id))


@pytest.fixture
def metadata_gateway() -> MetadataGateway:
    return MetadataGateway()


@pytest.fixture
def resolver(metadata_gateway: MetadataGateway) -> GatewayResolver:
    client = httpx.AsyncClient(transport=httpx.MockTransport(metadata_gateway))
    return GatewayResolver(
        [GATEWAY],
        client=client,
        rate_limiter=RateLimiter(0),
        retry_policy=RetryPolicy(max_attempts=1, base_delay_s=0),
    )


@pytest.fixture
def fetcher(resolver: GatewayResolver) -> MetadataFetcher:
    return MetadataFetcher(resolver)


# === FIXTURES: Cache / sessions ===


@pytest.fixture
def cache() -> CollectionCache:
    return CollectionCache(MemoryCacheStore())


@pytest.fixture
def registry() -> FetchSessionRegistry:
    return FetchSessionRegistry()
