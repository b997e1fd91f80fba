# src/upstream/krc721_client.py - v1
"""HTTP client for the KRC-721 indexer API.

Endpoints used (relative to the network base URL):
  GET /nfts/{tick}                     collection record
  GET /owners/{tick}?offset=...        paged (tokenId, owner) listing
  GET /address/{address}?offset=...    paged tokens held by an address

Paged endpoints return ``{"message", "result": [...], "next": <offset>}``.
Ownership is listed once per client and memoized per (tick, id), mirroring
how the indexer is normally queried by browsing clients.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import httpx

from nftmeta.core.models import AddressCollection, AddressToken, CollectionInfo, TokenStatus
from nftmeta.gateway.retry import RetryPolicy, is_transient
from nftmeta.upstream.base_collection_service import BaseCollectionService

if TYPE_CHECKING:
    from nftmeta.config.settings import Settings

logger = logging.getLogger(__name__)

_HEADERS = {"Accept": "application/json"}


class Krc721Client(BaseCollectionService):
    """Async client for one indexer network.

    Args:
        base_url: Network base URL, e.g.
            ``https://testnet-10.krc721.stream/api/v1/krc721/testnet-10``.
        client: Shared httpx client. One is created (and owned) if omitted.
        retry_policy: Retry for transient HTTP failures.
        timeout_s: Per-request timeout.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_s: float = 15.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._retry = retry_policy or RetryPolicy(max_attempts=2)
        self._timeout_s = timeout_s
        self._status_cache: dict[tuple[str, int], TokenStatus] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> Krc721Client:
        return cls(
            base_url=settings.collection_api_url,
            client=client,
            retry_policy=RetryPolicy(
                max_attempts=settings.retry_max_attempts,
                base_delay_s=settings.retry_base_delay_s,
            ),
            timeout_s=settings.collection_api_timeout_s,
        )

    async def get_collection_details(self, tick: str) -> CollectionInfo | None:
        try:
            payload = await self._get_json(f"/nfts/{tick}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        result = payload.get("result")
        if not result:
            logger.info("No collection record for %s: %s", tick, payload.get("message"))
            return None
        result.setdefault("tick", tick)
        return CollectionInfo.model_validate(result)

    async def get_tokens_batch(
        self, tick: str, token_ids: Sequence[int]
    ) -> dict[int, TokenStatus]:
        if any((tick, token_id) not in self._status_cache for token_id in token_ids):
            owners = await self._list_owners(tick)
            for token_id, owner in owners.items():
                self._status_cache[(tick, token_id)] = TokenStatus(owner=owner, is_minted=True)

        return {
            token_id: self._status_cache.get((tick, token_id), TokenStatus())
            for token_id in token_ids
        }

    async def get_address_collections(self, address: str) -> list[AddressCollection]:
        grouped: dict[str, AddressCollection] = {}
        async for item in self._paged(f"/address/{address}"):
            tick = item.get("tick")
            token_id = item.get("tokenId") or item.get("id")
            if not tick or token_id is None:
                continue
            collection = grouped.setdefault(tick, AddressCollection(tick=tick))
            collection.tokens.append(
                AddressToken(token_id=int(token_id), owner=item.get("owner") or address)
            )
        return list(grouped.values())

    def invalidate_ownership(self, tick: str | None = None) -> None:
        """Forget memoized ownership (for one collection or all)."""
        if tick is None:
            self._status_cache.clear()
            return
        for key in [k for k in self._status_cache if k[0] == tick]:
            del self._status_cache[key]

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------

    async def _list_owners(self, tick: str) -> dict[int, str]:
        owners: dict[int, str] = {}
        async for item in self._paged(f"/owners/{tick}"):
            token_id = item.get("tokenId") or item.get("id")
            owner = item.get("owner")
            if token_id is not None and owner:
                owners[int(token_id)] = owner
        return owners

    async def _paged(self, path: str):
        offset: str | None = None
        while True:
            params = {"offset": offset} if offset else None
            payload = await self._get_json(path, params=params)
            for item in payload.get("result") or []:
                yield item
            offset = payload.get("next")
            if not offset:
                return

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self._base_url}{path}"

        async def _attempt() -> dict[str, Any]:
            response = await self._client.get(
                url, params=params, headers=_HEADERS, timeout=self._timeout_s
            )
            response.raise_for_status()
            return response.json()

        return await self._retry.run(_attempt, should_retry=is_transient, label=url)
