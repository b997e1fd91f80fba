# tests/unit/rarity/test_engine.py - v1
"""Tests for rarity/engine.py: trait percentages, scores and percentiles."""

from __future__ import annotations

import pytest

from nftmeta.rarity.engine import compute_trait_rarities, enrich_snapshot, score_token


@pytest.fixture
def four_kats(make_metadata):
    """Token 1 is rarest, token 2 next, tokens 3 and 4 are identical."""
    return {
        1: make_metadata(1, Hat="Red", Eyes="Laser"),
        2: make_metadata(2, Hat="Blue", Eyes="Laser", Mouth="Grin"),
        3: make_metadata(3, Hat="Blue", Eyes="Plain"),
        4: make_metadata(4, Hat="Blue", Eyes="Plain"),
    }


class TestComputeTraitRarities:
    def test_counts_and_percentages(self, four_kats):
        table = compute_trait_rarities(four_kats)
        assert table["Hat"]["Red"].count == 1
        assert table["Hat"]["Red"].percentage == 25.0
        assert table["Hat"]["Blue"].percentage == 75.0
        assert table["Eyes"]["Laser"].percentage == 50.0

    def test_percentage_rounded_to_one_decimal(self, make_metadata):
        snapshot = {i: make_metadata(i, Hat="Red" if i == 1 else "Blue") for i in range(1, 4)}
        assert compute_trait_rarities(snapshot)["Hat"]["Red"].percentage == 33.3

    def test_denominator_counts_tokens_without_trait(self, make_metadata):
        snapshot = {1: make_metadata(1, Hat="Red"), 2: make_metadata(2)}
        assert compute_trait_rarities(snapshot)["Hat"]["Red"].percentage == 50.0

    def test_empty_snapshot(self):
        assert compute_trait_rarities({}) == {}


class TestScoreToken:
    def test_mean_of_attribute_percentages(self, four_kats):
        table = compute_trait_rarities(four_kats)
        assert score_token(four_kats[1], table) == pytest.approx((25.0 + 50.0) / 2)

    def test_no_attributes(self, make_metadata):
        assert score_token(make_metadata(9), {}) is None


class TestEnrichSnapshot:
    def test_attribute_rarity_populated(self, four_kats):
        enriched = enrich_snapshot(four_kats)
        assert [a.rarity for a in enriched[1].attributes] == [25.0, 50.0]

    def test_rarest_token_has_lowest_percentile(self, four_kats):
        enriched = enrich_snapshot(four_kats)
        assert enriched[1].overall_rarity == 37.5
        assert enriched[1].rarity_percentile == 25.0
        assert enriched[2].rarity_percentile == 50.0

    def test_ties_share_lowest_rank(self, four_kats):
        enriched = enrich_snapshot(four_kats)
        # Tokens 3 and 4 are identical
        assert enriched[3].overall_rarity == enriched[4].overall_rarity
        assert enriched[3].rarity_percentile == enriched[4].rarity_percentile == 75.0

    def test_tokens_without_attributes_are_unranked(self, four_kats, make_metadata):
        snapshot = {**four_kats, 5: make_metadata(5)}
        enriched = enrich_snapshot(snapshot)
        assert enriched[5].overall_rarity is None
        assert enriched[5].rarity_percentile is None
        assert enriched[4].rarity_percentile == 75.0

    def test_input_not_mutated(self, four_kats):
        enrich_snapshot(four_kats)
        assert four_kats[1].overall_rarity is None
        assert four_kats[1].attributes[0].rarity is None

    def test_precomputed_table_used(self, four_kats):
        table = compute_trait_rarities({1: four_kats[1]})
        enriched = enrich_snapshot({1: four_kats[1]}, table)
        assert enriched[1].overall_rarity == 100.0

    def test_percentile_denominator_is_scored_tokens(self, make_metadata):
        snapshot = {
            1: make_metadata(1, Hat="Red"),
            2: make_metadata(2, Hat="Blue"),
            3: make_metadata(3),
            4: make_metadata(4),
        }
        enriched = enrich_snapshot(snapshot)
        # Percentages still divide by all four tokens
        assert enriched[1].attributes[0].rarity == 25.0
        assert enriched[1].rarity_percentile == 50.0
        assert enriched[2].rarity_percentile == 50.0

    def test_unscored_tokens_shift_trait_percentages_only(self, make_metadata):
        scored = {
            1: make_metadata(1, Hat="Red"),
            2: make_metadata(2, Hat="Blue"),
            3: make_metadata(3, Hat="Blue"),
        }
        padded = {**scored, **{i: make_metadata(i) for i in range(4, 7)}}
        plain, wide = enrich_snapshot(scored), enrich_snapshot(padded)
        assert plain[1].attributes[0].rarity == 33.3
        assert wide[1].attributes[0].rarity == 16.7
        assert plain[1].rarity_percentile == wide[1].rarity_percentile == pytest.approx(33.33)
