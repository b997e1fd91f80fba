# src/upstream/base_collection_service.py - v1
"""Abstract interface of the upstream collection-metadata service."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from nftmeta.core.models import AddressCollection, CollectionInfo, TokenStatus


class BaseCollectionService(ABC):
    """Boundary to the service that knows collections, supply and ownership."""

    @abstractmethod
    async def get_collection_details(self, tick: str) -> CollectionInfo | None:
        """Return the collection record, or None when the service has none."""

    @abstractmethod
    async def get_tokens_batch(
        self, tick: str, token_ids: Sequence[int]
    ) -> dict[int, TokenStatus]:
        """Return live ownership for every requested id.

        Ids unknown to the service are reported with ``is_minted=False``.
        """

    @abstractmethod
    async def get_address_collections(self, address: str) -> list[AddressCollection]:
        """Return the tokens held by ``address``, grouped by collection."""

    async def aclose(self) -> None:
        """Release transport resources."""
