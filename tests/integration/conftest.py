# tests/integration/conftest.py - v1
"""Shared fixtures for integration tests.

One httpx MockTransport stands in for the whole network: an indexer host
serving collection, owner and address listings, a rate-limited first
gateway, and a healthy second gateway serving token documents. Everything
above the transport is the real stack, including an on-disk JSON cache.
"""

from __future__ import annotations

import re

import httpx
import pytest

from nftmeta.config.settings import Settings, load_settings

SUPPLY = 100
INDEXER_PREFIX = "/api/v1/krc721/testnet-10"
_TOKEN_PATH = re.compile(r"^/ipfs/bafybase/(\d+)$")


def _token(token_id: int) -> dict:
    return {
        "name": f"Kat #{token_id}",
        "description": "A test kat",
        "image": f"ipfs://bafyimg/{token_id}.png",
        "attributes": [
            {"trait_type": "Hat", "value": "Red" if token_id % 4 == 0 else "Blue"},
        ],
    }


class FakeNetwork:
    """Request router recording per-host traffic."""

    def __init__(self) -> None:
        self.hits: dict[str, list[str]] = {}
        self.rate_limited_hosts = {"gw0.test"}

    def count(self, host: str) -> int:
        return len(self.hits.get(host, []))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        path = request.url.path
        self.hits.setdefault(host, []).append(path)

        if host == "indexer.test":
            return self._indexer(request, path.removeprefix(INDEXER_PREFIX))
        if host in self.rate_limited_hosts:
            return httpx.Response(429)
        match = _TOKEN_PATH.match(path)
        if match and 1 <= int(match.group(1)) <= SUPPLY:
            return httpx.Response(200, json=_token(int(match.group(1))))
        if path.endswith(".png"):
            return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})
        return httpx.Response(404)

    def _indexer(self, request: httpx.Request, path: str) -> httpx.Response:
        if path == "/nfts/KATS":
            return httpx.Response(200, json={"message": "success", "result": {
                "tick": "KATS", "buri": "ipfs://bafybase", "max": str(SUPPLY), "minted": str(SUPPLY),
            }})
        if path.startswith("/nfts/"):
            return httpx.Response(200, json={"message": "not found", "result": None})
        if path == "/owners/KATS":
            owners = [{"tokenId": str(i), "owner": f"kaspa:owner{i % 3}"} for i in range(1, SUPPLY + 1)]
            return httpx.Response(200, json={"message": "success", "result": owners, "next": None})
        if path == "/address/kaspa:owner1":
            items = [{"tick": "KATS", "tokenId": str(i)} for i in (1, 4, 70)]
            return httpx.Response(200, json={"message": "success", "result": items})
        return httpx.Response(404)


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def http_client(network: FakeNetwork) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(network))


@pytest.fixture
def int_settings(tmp_path) -> Settings:
    return load_settings(
        _env_file=None,
        cache_backend="json",
        cache_root=tmp_path / "cache",
        gateway_urls="https://gw0.test,https://gw1.test",
        collection_api_base_url=f"https://indexer.test{INDEXER_PREFIX}",
        rate_limit_interval_ms=0,
        retry_max_attempts=2,
        retry_base_delay_s=0,
        prefetch_range_delay_s=0,
    )
