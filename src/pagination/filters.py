# src/pagination/filters.py - v1
"""Attribute filters applied to cached metadata."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from nftmeta.core.models import TokenMetadata, TraitFilters


def matches_filters(metadata: TokenMetadata | None, filters: Mapping[str, set[str]]) -> bool:
    """True when ``metadata`` satisfies every trait filter.

    Filters combine with AND across trait types and OR across the values of
    one trait type. Tokens without metadata never match a non-empty filter.
    """
    active = {trait: values for trait, values in filters.items() if values}
    if not active:
        return True
    if metadata is None:
        return False
    for trait_type, values in active.items():
        if not any(a.trait_type == trait_type and a.value in values for a in metadata.attributes):
            return False
    return True


def parse_filter_args(pairs: Iterable[str]) -> TraitFilters:
    """Parse ``TRAIT=VALUE`` strings into trait filters.

    Raises:
        ValueError: If a pair has no ``=`` or an empty trait name.
    """
    filters: TraitFilters = {}
    for pair in pairs:
        trait_type, sep, value = pair.partition("=")
        if not sep or not trait_type.strip():
            raise ValueError(f"Invalid filter {pair!r}, expected TRAIT=VALUE")
        filters.setdefault(trait_type.strip(), set()).add(value.strip())
    return filters
