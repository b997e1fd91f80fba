# src/core/models.py - v1
"""Core domain models: TokenMetadata, TokenStatus, TokenView, Page and friends.

Metadata payloads are validated against ``TokenMetadata`` at the resolution
boundary. Field aliases follow the JSON documents served by gateways
(``trait_type``, ``imageUrl``) so cached entries stay readable by other
consumers of the same store.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DERIVED_FIELDS = {"overall_rarity", "rarity_percentile"}


class TokenAttribute(BaseModel):
    """One (trait_type, value) pair of a token."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    trait_type: str
    value: str
    rarity: float | None = None

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> str:
        """Numeric and boolean trait values are compared as strings."""
        if isinstance(v, bool):
            return str(v).lower()
        if isinstance(v, (int, float)):
            return str(v)
        return v


class TokenMetadata(BaseModel):
    """Per-token metadata document.

    ``overall_rarity`` and ``rarity_percentile`` are populated only by the
    rarity engine and are never written to the cache store.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    description: str
    image: str
    image_url: str | None = Field(default=None, alias="imageUrl")
    edition: int | None = None
    attributes: list[TokenAttribute] = Field(default_factory=list)
    overall_rarity: float | None = Field(default=None, alias="overallRarity")
    rarity_percentile: float | None = Field(default=None, alias="rarityPercentile")

    @field_validator("attributes", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    def has_attribute(self, trait_type: str, value: str) -> bool:
        return any(a.trait_type == trait_type and a.value == value for a in self.attributes)

    def storable(self) -> dict[str, Any]:
        """Serialize without rarity-derived data."""
        data = self.model_dump(by_alias=True, exclude=DERIVED_FIELDS, exclude_none=True)
        for attr in data.get("attributes", []):
            attr.pop("rarity", None)
        return data


class TokenStatus(BaseModel):
    """Live ownership / mint status of one token."""

    owner: str | None = None
    is_minted: bool = False


class CollectionInfo(BaseModel):
    """Subset of the upstream collection record used by the pipeline."""

    model_config = ConfigDict(extra="allow")

    tick: str
    buri: str | None = None
    max: int = 0
    minted: int = 0
    deployer: str | None = None
    state: str | None = None

    @field_validator("max", "minted", mode="before")
    @classmethod
    def parse_count(cls, v: Any) -> int:
        """Upstream serializes counters as decimal strings."""
        if v in (None, ""):
            return 0
        return int(v)


class TokenView(BaseModel):
    """One token as returned in a page. ``metadata`` is None when unresolved."""

    tick: str
    id: int
    owner: str | None = None
    is_minted: bool = False
    metadata: TokenMetadata | None = None

    @property
    def display_name(self) -> str:
        """Placeholder text for tokens whose metadata is still unresolved."""
        if self.metadata is not None:
            return self.metadata.name
        return f"{self.tick} #{self.id}"


class Page(BaseModel):
    """Assembled page of tokens for one collection."""

    tokens: list[TokenView] = Field(default_factory=list)
    has_more: bool = False
    next_offset: int | None = None
    collection: CollectionInfo | None = None


class AddressToken(BaseModel):
    token_id: int
    owner: str


class AddressCollection(BaseModel):
    """Tokens held by one address, grouped by collection."""

    tick: str
    tokens: list[AddressToken] = Field(default_factory=list)


class TraitValueStats(BaseModel):
    count: int = 0
    percentage: float = 0.0


# trait_type -> value -> stats
TraitRarityTable = dict[str, dict[str, TraitValueStats]]

# trait_type -> accepted values
TraitFilters = dict[str, set[str]]
