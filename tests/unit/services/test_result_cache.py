"""
Unit tests for the Result Cache service.
"""

import json
from unittest.mock import AsyncMock

import pytest

from fincalc.core.exceptions import StorageException
from fincalc.domain.cache import CacheEntry, CacheKey, TTL
from fincalc.infrastructure.storage import InMemoryKeyValueStore
from fincalc.services.cache import CacheMiss, ResultCache


class TestResultCache:
    """Test ResultCache service."""

    @pytest.fixture
    def cache(self, store, clock):
        return ResultCache(store, clock=clock, namespace="calculation_cache", max_entries=3, default_ttl=60)

    @pytest.mark.asyncio
    async def test_get_after_set_then_miss_after_ttl(self, cache, clock):
        await cache.set("k", {"total": 1050.0}, ttl=10)

        assert await cache.get("k") == {"total": 1050.0}

        clock.advance(10)
        assert await cache.get("k") is CacheMiss
        assert cache.size() == 0

    @pytest.mark.asyncio
    async def test_expired_entry_removed_from_store_on_read(self, cache, store, clock):
        await cache.set("k", 1, ttl=TTL(5))
        clock.advance(6)

        await cache.get("k")

        assert await store.get("calculation_cache:k") is None

    @pytest.mark.asyncio
    async def test_cached_none_is_not_a_miss(self, cache):
        await cache.set("k", None)
        assert await cache.get("k") is None
        assert await cache.contains("k")

    @pytest.mark.asyncio
    async def test_accepts_cache_key_objects(self, cache):
        key = CacheKey.calculation("compound_interest", {"principal": 1000})
        await cache.set(key, 42)
        assert await cache.get(key.value) == 42

    @pytest.mark.asyncio
    async def test_capacity_eviction_removes_oldest(self, cache, clock):
        for index in range(5):
            await cache.set(f"k{index}", index)
            clock.advance(1)

        assert cache.size() == 3
        assert cache.keys() == ["k2", "k3", "k4"]
        assert await cache.get("k0") is CacheMiss

    @pytest.mark.asyncio
    async def test_eviction_ties_break_by_insertion_order(self, cache):
        # Clock never advances, so all entries share created_at
        for index in range(4):
            await cache.set(f"k{index}", index)

        assert cache.keys() == ["k1", "k2", "k3"]

    @pytest.mark.asyncio
    async def test_overwrite_refreshes_creation_time(self, cache, clock):
        await cache.set("a", 1)
        clock.advance(1)
        await cache.set("b", 2)
        clock.advance(1)
        await cache.set("a", 3)
        clock.advance(1)
        await cache.set("c", 4)
        clock.advance(1)
        await cache.set("d", 5)

        assert sorted(cache.keys()) == ["a", "c", "d"]
        assert await cache.get("a") == 3

    @pytest.mark.asyncio
    async def test_size_never_exceeds_max_entries(self, store, clock):
        cache = ResultCache(store, clock=clock, max_entries=100)
        for index in range(107):
            await cache.set(f"k{index}", index)

        assert cache.size() == 100
        assert len(await store.keys("calculation_cache:")) == 100

    @pytest.mark.asyncio
    async def test_clear_with_prefix_pattern(self, cache):
        await cache.set("accounts:u1", 1)
        await cache.set("accounts:u1:list", 2)
        await cache.set("goals:u1", 3)

        removed = await cache.clear("accounts:*")

        assert removed == 2
        assert cache.keys() == ["goals:u1"]

    @pytest.mark.asyncio
    async def test_clear_with_substring_pattern(self, cache):
        await cache.set("accounts:u1", 1)
        await cache.set("networth:u1", 2)
        await cache.set("accounts:u2", 3)

        assert await cache.clear("u1") == 2
        assert cache.keys() == ["accounts:u2"]

    @pytest.mark.asyncio
    async def test_clear_all_also_removes_foreign_store_entries(self, cache, store):
        await cache.set("a", 1)
        await store.set("calculation_cache:written-elsewhere", "{}")
        await store.set("calculation_queue", "[]")

        assert await cache.clear() == 1
        assert await store.keys("calculation_cache:") == []
        assert await store.get("calculation_queue") == "[]"

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        await cache.set("a", 1)
        assert await cache.delete("a") is True
        assert await cache.delete("a") is False

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, cache, clock):
        await cache.set("short", 1, ttl=5)
        await cache.set("long", 2, ttl=50)
        clock.advance(10)

        assert await cache.cleanup_expired() == 1
        assert cache.keys() == ["long"]

    @pytest.mark.asyncio
    async def test_every_mutation_is_persisted(self, cache, store):
        await cache.set("k", {"v": 1})

        stored = CacheEntry.model_validate_json(await store.get("calculation_cache:k"))
        assert stored.value == {"v": 1}

        await cache.delete("k")
        assert await store.get("calculation_cache:k") is None

    @pytest.mark.asyncio
    async def test_failed_persist_leaves_cache_unchanged(self, cache, store):
        await cache.set("k", 1)
        store.set = AsyncMock(side_effect=StorageException(operation="write"))

        with pytest.raises(StorageException):
            await cache.set("k", 2)
        with pytest.raises(StorageException):
            await cache.set("fresh", 3)

        assert await cache.get("k") == 1
        assert not await cache.contains("fresh")
        assert cache.size() == 1

    @pytest.mark.asyncio
    async def test_unserializable_value_is_not_cached(self, cache, store):
        with pytest.raises(Exception):
            await cache.set("k", object())

        assert cache.size() == 0
        assert await store.get("calculation_cache:k") is None

    @pytest.mark.asyncio
    async def test_load_restores_live_entries_and_drops_stale(self, store, clock):
        first = ResultCache(store, clock=clock, max_entries=10)
        await first.set("live", "yes", ttl=100)
        await first.set("stale", "no", ttl=5)
        await store.set("calculation_cache:broken", "not json")
        clock.advance(10)

        second = ResultCache(store, clock=clock, max_entries=10)
        loaded = await second.load()

        assert loaded == 1
        assert await second.get("live") == "yes"
        assert await store.get("calculation_cache:stale") is None
        assert await store.get("calculation_cache:broken") is None

    @pytest.mark.asyncio
    async def test_load_enforces_capacity(self, clock):
        store = InMemoryKeyValueStore()
        for index in range(5):
            entry = CacheEntry.create(f"k{index}", index, now=clock.now() + index, ttl_seconds=100)
            await store.set(f"calculation_cache:k{index}", entry.model_dump_json())

        cache = ResultCache(store, clock=clock, max_entries=2)
        await cache.load()

        assert cache.keys() == ["k3", "k4"]

    @pytest.mark.asyncio
    async def test_namespaces_are_isolated(self, store, clock):
        calculations = ResultCache(store, clock=clock, namespace="calculation_cache")
        responses = ResultCache(store, clock=clock, namespace="api_cache")
        await calculations.set("k", 1)
        await responses.set("k", 2)

        await responses.clear()

        assert await calculations.get("k") == 1
        assert json.loads(await store.get("calculation_cache:k"))["value"] == 1

    @pytest.mark.asyncio
    async def test_stats_track_hits_and_misses(self, cache):
        await cache.set("k", 1)
        await cache.get("k")
        await cache.get("missing")

        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1
        assert stats["max_entries"] == 3

    def test_rejects_zero_capacity(self, store):
        with pytest.raises(ValueError):
            ResultCache(store, max_entries=0)
