"""
Unit tests for the tiered Cache Manager.

The Redis tier is a mock with the RedisCache interface so the tests can
observe which tier answered.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from portfolio_api.infrastructure.redis.redis_cache import RedisCache
from portfolio_api.services.cache.cache_manager import CacheManager, InvalidCacheTarget
from portfolio_api.services.cache.memory_cache import MISS, CacheLookup, MemoryCache


class TestCacheManager:
    """Test CacheManager lookups, invalidation and clearing."""

    @pytest.fixture
    def memory(self):
        return MemoryCache()

    @pytest.fixture
    def redis(self):
        redis = AsyncMock(spec=RedisCache)
        redis.get.return_value = MISS
        redis.set.return_value = True
        redis.delete_pattern.return_value = 0
        redis.flush_all.return_value = True
        redis.stats.return_value = {"connected": True}
        return redis

    @pytest.fixture
    def manager(self, memory, redis):
        return CacheManager(memory, redis)

    @pytest.mark.asyncio
    async def test_memory_hit_skips_other_tiers(self, manager, memory, redis):
        """A memory hit answers without Redis or the source."""
        memory.set("skills:all", ["python"])
        compute = AsyncMock()

        result = await manager.fetch("skills:all", compute, 600)

        assert result == ["python"]
        compute.assert_not_awaited()
        redis.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_hit_fills_memory(self, manager, memory, redis):
        redis.get.return_value = CacheLookup(True, {"name": "Kim"})
        compute = AsyncMock()

        result = await manager.fetch("personal_info:current", compute, 600)

        assert result == {"name": "Kim"}
        compute.assert_not_awaited()
        redis.set.assert_not_awaited()
        assert memory.get("personal_info:current").value == {"name": "Kim"}

    @pytest.mark.asyncio
    async def test_full_miss_computes_and_fills_both_tiers(self, manager, memory, redis):
        compute = AsyncMock(return_value=[{"id": 1}])

        result = await manager.fetch("projects:list:abc", compute, 300)

        assert result == [{"id": 1}]
        compute.assert_awaited_once()
        redis.set.assert_awaited_once_with("projects:list:abc", [{"id": 1}], 300)
        assert memory.get("projects:list:abc").hit is True

    @pytest.mark.asyncio
    async def test_compute_error_propagates(self, manager, memory):
        compute = AsyncMock(side_effect=RuntimeError("query failed"))

        with pytest.raises(RuntimeError):
            await manager.fetch("k", compute, 60)

        assert memory.get("k") is MISS

    @pytest.mark.asyncio
    async def test_cold_fetch_counts_one_miss(self, manager, memory):
        compute = AsyncMock(return_value=[])

        await manager.fetch("projects:list:x", compute, 60)
        await manager.fetch("projects:list:x", compute, 60)

        stats = memory.stats()
        assert stats["misses"] == 1
        assert stats["hits"] == 1
        assert stats["hit_rate"] == 0.5

    @pytest.mark.asyncio
    async def test_invalidate_during_load_serves_fresh_value(self, manager, memory, redis):
        """A load that started before a write neither answers later readers nor fills a tier."""
        source = {"value": "old"}
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_compute():
            captured = source["value"]
            started.set()
            await release.wait()
            return captured

        async def compute():
            return source["value"]

        reader = asyncio.create_task(manager.fetch("projects:list:x", slow_compute, 600))
        await started.wait()

        source["value"] = "new"
        await manager.invalidate("projects:")

        assert await manager.fetch("projects:list:x", compute, 600) == "new"

        release.set()
        assert await reader == "old"
        assert memory.get("projects:list:x") == CacheLookup(True, "new")
        redis.set.assert_awaited_once_with("projects:list:x", "new", 600)

    @pytest.mark.asyncio
    async def test_without_redis_tier(self, memory):
        manager = CacheManager(memory, None)
        compute = AsyncMock(return_value=42)

        assert await manager.fetch("k", compute, 60) == 42
        assert await manager.fetch("k", compute, 60) == 42
        compute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalidate_drops_only_the_prefix_family(self, manager, memory, redis):
        memory.set("projects:list:a", 1)
        memory.set("projects:slug:b", 2)
        memory.set("skills:all", 3)
        redis.delete_pattern.return_value = 4

        counts = await manager.invalidate("projects:")

        assert counts == {"memory": 2, "redis": 4}
        assert memory.keys() == ["skills:all"]
        redis.delete_pattern.assert_awaited_once_with("projects:*")

    @pytest.mark.asyncio
    async def test_invalidate_escapes_glob_characters(self, manager, redis):
        await manager.invalidate("odd[key]*")
        redis.delete_pattern.assert_awaited_once_with("odd\\[key\\]\\**")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", ["bogus", "", "MEMORY", None])
    async def test_clear_rejects_unknown_target_without_side_effects(
        self, manager, memory, redis, target
    ):
        memory.set("k", "v")

        with pytest.raises(InvalidCacheTarget):
            await manager.clear(target)

        assert memory.get("k").hit is True
        redis.flush_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clear_memory_only(self, manager, memory, redis):
        memory.set("k", "v")

        result = await manager.clear("memory")

        assert result == {"memory": True}
        assert len(memory) == 0
        redis.flush_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clear_redis_only(self, manager, memory, redis):
        memory.set("k", "v")

        result = await manager.clear("redis")

        assert result == {"redis": True}
        assert len(memory) == 1
        redis.flush_all.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_clear_all(self, manager, memory, redis):
        memory.set("k", "v")

        result = await manager.clear("all")

        assert result == {"memory": True, "redis": True}
        assert len(memory) == 0
        redis.flush_all.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_clear_redis_when_tier_absent(self, memory):
        manager = CacheManager(memory, None)
        assert await manager.clear("redis") == {"redis": False}

    @pytest.mark.asyncio
    async def test_stats_reports_both_tiers(self, manager):
        stats = await manager.stats()
        assert stats["memory"]["keys"] == 0
        assert stats["redis"] == {"connected": True}
