# tests/unit/core/test_errors.py - v1
"""Tests for core/errors.py."""

from __future__ import annotations

from nftmeta.core.errors import (
    CacheIOFailure,
    CollectionNotFound,
    GatewayExhausted,
    GatewayRateLimited,
    GatewayStatusError,
    MissingMetadataURI,
    NftMetaError,
    OwnershipLookupFailure,
    PartialMetadataFailure,
)


class TestErrors:
    def test_hierarchy(self):
        for error in (
            GatewayExhausted("cid"),
            CollectionNotFound("KATS"),
            MissingMetadataURI("KATS"),
            CacheIOFailure("k", "read"),
        ):
            assert isinstance(error, NftMetaError)

    def test_rate_limited_is_status_error(self):
        error = GatewayRateLimited("https://gw")
        assert isinstance(error, GatewayStatusError)
        assert error.status == 429

    def test_exhausted_lists_causes(self):
        error = GatewayExhausted("cid/1", [GatewayRateLimited("https://a"), ValueError("bad json")])
        assert len(error.errors) == 2
        assert "https://a" in str(error)
        assert "bad json" in str(error)

    def test_exhausted_without_gateways(self):
        assert "no gateways configured" in str(GatewayExhausted("cid"))

    def test_partial_failure_carries_token(self):
        cause = GatewayExhausted("cid/3")
        error = PartialMetadataFailure("KATS", 3, cause)
        assert error.token_id == 3
        assert error.cause is cause
        assert "KATS#3" in str(error)

    def test_ownership_failure(self):
        error = OwnershipLookupFailure("KATS", [1, 2, 3], RuntimeError("down"))
        assert error.token_ids == [1, 2, 3]
        assert "3 ids" in str(error)

    def test_collection_not_found_custom_message(self):
        assert str(CollectionNotFound("KATS", "lookup failed")) == "lookup failed"
