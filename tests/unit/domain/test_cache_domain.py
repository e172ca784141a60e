"""
Unit tests for cache domain value objects and entities.
"""

import pytest
from pydantic import ValidationError

from fincalc.domain.cache import CacheEntry, CacheKey, TTL, canonical_json


class TestCanonicalJson:
    def test_key_order_does_not_matter(self):
        assert canonical_json({"b": 1, "a": {"y": 2, "x": 1}}) == canonical_json(
            {"a": {"x": 1, "y": 2}, "b": 1}
        )

    def test_compact_output(self):
        assert canonical_json({"a": [1, 2]}) == '{"a":[1,2]}'


class TestCacheKey:
    """Test CacheKey value object."""

    def test_calculation_key_is_stable_across_param_order(self):
        first = CacheKey.calculation("compound_interest", {"rate": 0.05, "principal": 1000})
        second = CacheKey.calculation("compound_interest", {"principal": 1000, "rate": 0.05})

        assert first == second
        assert first.value.startswith("calc:compound_interest:")

    def test_calculation_key_differs_by_type_and_params(self):
        params = {"principal": 1000}
        assert CacheKey.calculation("compound_interest", params) != CacheKey.calculation(
            "debt_payoff", params
        )
        assert CacheKey.calculation("compound_interest", params) != CacheKey.calculation(
            "compound_interest", {"principal": 1001}
        )

    def test_calculation_key_requires_type(self):
        with pytest.raises(ValueError, match="Calculation type is required"):
            CacheKey.calculation("", {})

    def test_type_pattern(self):
        assert CacheKey.calculation_type_pattern("monte_carlo") == "calc:monte_carlo:*"

    def test_resource_key(self):
        key = CacheKey.resource("accounts", "user-1")
        assert key.value == "accounts:user-1"
        assert str(key) == "accounts:user-1"

    @pytest.mark.parametrize("prefix", ["Accounts", "acc-ounts", "", "a1"])
    def test_resource_key_rejects_bad_prefix(self, prefix):
        with pytest.raises(ValueError, match="Invalid resource prefix"):
            CacheKey.resource(prefix, "user-1")

    def test_resource_key_requires_user(self):
        with pytest.raises(ValueError, match="User ID is required"):
            CacheKey.resource("accounts", "")

    def test_validation(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            CacheKey("")
        with pytest.raises(ValueError, match="too long"):
            CacheKey("k" * 251)
        with pytest.raises(ValueError, match="whitespace"):
            CacheKey("has space")


class TestTTL:
    """Test TTL value object."""

    def test_constructors(self):
        assert TTL.from_seconds(30).seconds == 30
        assert TTL.minutes(2).seconds == 120
        assert TTL.hours(1).seconds == 3600
        assert TTL.calculation_result().seconds == 300

    def test_validation(self):
        with pytest.raises(ValueError, match="positive"):
            TTL(0)
        with pytest.raises(ValueError, match="too large"):
            TTL(86400 * 366)

    def test_str(self):
        assert str(TTL(300)) == "300s"


class TestCacheEntry:
    def test_expiry_boundary(self):
        entry = CacheEntry.create("k", {"v": 1}, now=100.0, ttl_seconds=10)

        assert entry.expires_at == 110.0
        assert not entry.is_expired(109.999)
        assert entry.is_expired(110.0)
        assert entry.remaining_ttl(104.0) == 6.0
        assert entry.remaining_ttl(200.0) == 0.0

    def test_expiry_must_follow_creation(self):
        with pytest.raises(ValidationError):
            CacheEntry(key="k", value=1, created_at=10.0, expires_at=10.0)

    def test_json_round_trip_preserves_value(self):
        entry = CacheEntry.create("k", {"nested": [1, 2, {"a": None}]}, now=1.0, ttl_seconds=5)
        restored = CacheEntry.model_validate_json(entry.model_dump_json())
        assert restored == entry
