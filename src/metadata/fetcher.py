# src/metadata/fetcher.py - v1
"""Token metadata retrieval and validation.

Metadata for token ``n`` of a collection lives at ``<buri>/<n>``. Payloads
are validated into ``TokenMetadata`` here, at the resolution boundary, so
everything downstream works with a strict schema.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from pydantic import ValidationError

from nftmeta.core.errors import MetadataValidationError, PartialMetadataFailure
from nftmeta.core.models import TokenMetadata
from nftmeta.gateway.resolver import GatewayResolver

logger = logging.getLogger(__name__)


def token_uri(base_uri: str, token_id: int) -> str:
    return f"{base_uri.rstrip('/')}/{token_id}"


class MetadataFetcher:
    """Resolve and validate token metadata through a GatewayResolver."""

    def __init__(self, resolver: GatewayResolver) -> None:
        self._resolver = resolver

    @property
    def resolver(self) -> GatewayResolver:
        return self._resolver

    async def fetch_one(self, tick: str, base_uri: str, token_id: int) -> TokenMetadata:
        """Resolve one token.

        Raises:
            PartialMetadataFailure: If the token could not be resolved or validated.
        """
        try:
            payload = await self._resolver.resolve_json(token_uri(base_uri, token_id))
            metadata = self.validate(payload)
        except Exception as e:
            raise PartialMetadataFailure(tick, token_id, e) from e
        if metadata.image_url is None:
            metadata.image_url = self._resolver.display_url(metadata.image)
        return metadata

    async def fetch_many(
        self, tick: str, base_uri: str, token_ids: Iterable[int]
    ) -> dict[int, TokenMetadata | None]:
        """Resolve several tokens concurrently; failures become ``None``."""
        ids = list(token_ids)
        results = await asyncio.gather(
            *(self.fetch_one(tick, base_uri, token_id) for token_id in ids),
            return_exceptions=True,
        )
        resolved: dict[int, TokenMetadata | None] = {}
        for token_id, result in zip(ids, results):
            if isinstance(result, PartialMetadataFailure):
                logger.warning("%s", result)
                resolved[token_id] = None
            elif isinstance(result, BaseException):
                raise result
            else:
                resolved[token_id] = result
        return resolved

    @staticmethod
    def validate(payload: object) -> TokenMetadata:
        if not isinstance(payload, dict):
            raise MetadataValidationError(
                f"Expected a JSON object, got {type(payload).__name__}"
            )
        try:
            return TokenMetadata.model_validate(payload)
        except ValidationError as e:
            raise MetadataValidationError(str(e)) from e
