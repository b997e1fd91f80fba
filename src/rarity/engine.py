# src/rarity/engine.py - v1
"""Trait rarity derived from a snapshot of cached token metadata.

Everything here is recomputed from scratch on each cache read. Figures
therefore describe only the tokens resolved so far and shift as background
prefetch adds more of the collection.

Definitions:
  percentage(trait, value) = occurrences / tokens_in_snapshot * 100
  overall_rarity(token)    = mean percentage of the token's attributes
  rarity_percentile(token) = ascending rank of overall_rarity / scored tokens * 100

The percentage denominator counts every token in the snapshot. The
percentile denominator counts only scored tokens, those with at least one
attribute, so attribute-less tokens never occupy a rank.

Lower is rarer for all three.
"""

from __future__ import annotations

import bisect
from collections.abc import Mapping

from nftmeta.core.models import TokenMetadata, TraitRarityTable, TraitValueStats


def compute_trait_rarities(snapshot: Mapping[int, TokenMetadata]) -> TraitRarityTable:
    """Count every (trait_type, value) pair and convert counts to percentages."""
    total = len(snapshot)
    table: TraitRarityTable = {}

    for metadata in snapshot.values():
        for attr in metadata.attributes:
            values = table.setdefault(attr.trait_type, {})
            stats = values.setdefault(attr.value, TraitValueStats())
            stats.count += 1

    if total == 0:
        return table

    for values in table.values():
        for stats in values.values():
            stats.percentage = round(stats.count / total * 100, 1)

    return table


def score_token(metadata: TokenMetadata, table: TraitRarityTable) -> float | None:
    """Mean attribute percentage, or None for tokens without attributes."""
    percentages = [
        table[a.trait_type][a.value].percentage
        for a in metadata.attributes
        if a.trait_type in table and a.value in table[a.trait_type]
    ]
    if not percentages:
        return None
    return sum(percentages) / len(percentages)


def enrich_snapshot(
    snapshot: Mapping[int, TokenMetadata],
    table: TraitRarityTable | None = None,
) -> dict[int, TokenMetadata]:
    """Return copies of ``snapshot`` with rarity fields populated.

    Ties share the lowest rank. Tokens without attributes keep
    ``overall_rarity`` and ``rarity_percentile`` unset and are left out of
    the ranking, including its denominator: with 2 scored tokens out of 4,
    the rarest sits at the 50th percentile, not the 25th.
    """
    if table is None:
        table = compute_trait_rarities(snapshot)

    scores = {token_id: score_token(meta, table) for token_id, meta in snapshot.items()}
    ranked = sorted(s for s in scores.values() if s is not None)

    enriched: dict[int, TokenMetadata] = {}
    for token_id, metadata in snapshot.items():
        attributes = [
            a.model_copy(update={"rarity": table[a.trait_type][a.value].percentage})
            for a in metadata.attributes
        ]
        score = scores[token_id]
        update: dict[str, object] = {"attributes": attributes}
        if score is not None:
            rank = bisect.bisect_left(ranked, score) + 1
            update["overall_rarity"] = round(score, 2)
            update["rarity_percentile"] = round(rank / len(ranked) * 100, 2)
        enriched[token_id] = metadata.model_copy(update=update)

    return enriched
