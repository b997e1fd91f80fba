# src/cache/models.py - v1
"""Cache domain model: CollectionCacheEntry."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_serializer

from nftmeta.core.models import TokenMetadata


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CollectionCacheEntry(BaseModel):
    """Cached metadata for one collection.

    ``last_fetched_watermark`` is the highest token id known to be fetched
    contiguously from 1. It must never decrease over the entry's lifetime.
    Trait-index sets are stored as sorted lists and rehydrated to sets on
    validation.
    """

    timestamp: datetime = Field(default_factory=utcnow)
    token_metadata: dict[int, TokenMetadata] = Field(default_factory=dict)
    trait_index: dict[str, set[str]] = Field(default_factory=dict)
    last_fetched_watermark: int = 0

    @field_serializer("token_metadata")
    def _serialize_metadata(self, value: dict[int, TokenMetadata]) -> dict[str, Any]:
        return {str(token_id): meta.storable() for token_id, meta in value.items()}

    @field_serializer("trait_index")
    def _serialize_traits(self, value: dict[str, set[str]]) -> dict[str, list[str]]:
        return {trait: sorted(values) for trait, values in value.items()}

    def age_seconds(self, now: datetime | None = None) -> float:
        now = now or utcnow()
        return (now - self.timestamp).total_seconds()

    def is_expired(self, retention_s: float, now: datetime | None = None) -> bool:
        return self.age_seconds(now) > retention_s


def build_trait_index(token_metadata: dict[int, TokenMetadata]) -> dict[str, set[str]]:
    """Map each trait_type to the set of values observed in ``token_metadata``."""
    index: dict[str, set[str]] = {}
    for meta in token_metadata.values():
        for attr in meta.attributes:
            index.setdefault(attr.trait_type, set()).add(attr.value)
    return index
