# src/core/errors.py - v1
"""Error taxonomy for the resolution and caching pipeline.

Only ``CollectionNotFound`` and ``MissingMetadataURI`` are terminal for a
page request. The remaining errors are raised at the component that detects
them and absorbed by its caller (logged, then degraded to a miss or a
placeholder).
"""

from __future__ import annotations


class NftMetaError(Exception):
    """Base class for all pipeline errors."""


class GatewayStatusError(NftMetaError):
    """A gateway answered with a non-success HTTP status."""

    def __init__(self, gateway: str, status: int) -> None:
        self.gateway = gateway
        self.status = status
        super().__init__(f"Gateway {gateway} returned HTTP {status}")


class GatewayRateLimited(GatewayStatusError):
    """A gateway answered 429; the resolver moves on to the next gateway."""

    def __init__(self, gateway: str) -> None:
        super().__init__(gateway, 429)


class GatewayExhausted(NftMetaError):
    """Every gateway failed or timed out for one identifier."""

    def __init__(self, identifier: str, errors: list[Exception] | None = None) -> None:
        self.identifier = identifier
        self.errors = list(errors or [])
        detail = "; ".join(str(e) for e in self.errors) or "no gateways configured"
        super().__init__(f"All gateways failed for {identifier!r}: {detail}")


class MetadataValidationError(NftMetaError):
    """Resolved JSON does not match the token metadata schema."""


class CollectionNotFound(NftMetaError):
    """The upstream collection service has no record for the tick."""

    def __init__(self, tick: str, message: str = "") -> None:
        self.tick = tick
        super().__init__(message or f"Collection not found: {tick}")


class MissingMetadataURI(NftMetaError):
    """The collection record carries no base metadata URI (buri)."""

    def __init__(self, tick: str) -> None:
        self.tick = tick
        super().__init__(f"Collection {tick} has no metadata URI")


class PartialMetadataFailure(NftMetaError):
    """A single token's metadata could not be resolved."""

    def __init__(self, tick: str, token_id: int, cause: Exception | None = None) -> None:
        self.tick = tick
        self.token_id = token_id
        self.cause = cause
        super().__init__(f"Metadata unavailable for {tick}#{token_id}: {cause}")


class OwnershipLookupFailure(NftMetaError):
    """A batched ownership lookup failed for a group of token ids."""

    def __init__(self, tick: str, token_ids: list[int], cause: Exception | None = None) -> None:
        self.tick = tick
        self.token_ids = list(token_ids)
        self.cause = cause
        super().__init__(
            f"Ownership lookup failed for {tick} ({len(self.token_ids)} ids): {cause}"
        )


class CacheIOFailure(NftMetaError):
    """The persistent cache store could not be read or written."""

    def __init__(self, key: str, operation: str, cause: Exception | None = None) -> None:
        self.key = key
        self.operation = operation
        self.cause = cause
        super().__init__(f"Cache {operation} failed for {key!r}: {cause}")
