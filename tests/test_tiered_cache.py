import asyncio
import threading

import pytest

from packages.common.schemas.catalog import CatalogEntry
from packages.common.tiered_cache import TieredCache
from tests.support import FakeClock, FakeRedis


def make_cache(remote=None, clock=None, **kwargs) -> TieredCache:
    return TieredCache(remote, clock=clock or FakeClock(), instance_name="test-cache", **kwargs)


class TestMemoryTier:

    @pytest.mark.asyncio
    async def test_set_then_get_hits_memory(self):
        cache = make_cache()
        await cache.set("k", {"a": 1})

        assert await cache.get("k") == {"a": 1}
        stats = cache.stats()
        assert stats.total_hits == 1
        assert stats.memory_hits == 1
        assert stats.total_misses == 0

    @pytest.mark.asyncio
    async def test_miss_is_counted_once(self):
        cache = make_cache()

        assert await cache.get("missing") is None
        stats = cache.stats()
        assert stats.total_misses == 1
        assert stats.total_requests == 1
        assert stats.hit_ratio == 0.0

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = make_cache(clock=clock)
        await cache.set("k", "v", ttl=10)

        clock.advance(11)

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_model_round_trip(self):
        cache = make_cache()
        entry = CatalogEntry(sku="SKU1", name="Salade César", normalized_category="prepared_meal")
        await cache.set("catalog:item:SKU1", entry)

        cached = await cache.get("catalog:item:SKU1", CatalogEntry)

        assert isinstance(cached, CatalogEntry)
        assert cached.name == "Salade César"

    @pytest.mark.asyncio
    async def test_least_recently_used_is_evicted_first(self):
        cache = make_cache(max_size_mb=1)
        # Each value is ~400KB once size-estimated, so only two fit
        big = "x" * 200_000
        await cache.set("a", big)
        await cache.set("b", big)
        assert await cache.get("a") == big  # touch a, b becomes oldest
        await cache.set("c", big)

        assert await cache.get("b") is None
        assert await cache.get("a") == big
        assert await cache.get("c") == big

    @pytest.mark.asyncio
    async def test_disabled_cache_never_stores(self):
        cache = make_cache(enabled=False)
        await cache.set("k", "v")

        assert await cache.get("k") is None
        assert cache.stats().total_misses == 1

    @pytest.mark.asyncio
    async def test_oversized_set_drops_previous_memory_copy(self):
        cache = make_cache(max_size_mb=1)
        await cache.set("k", "old")

        await cache.set("k", "x" * 600_000)

        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_unserializable_value_is_skipped(self):
        redis = FakeRedis()
        cache = make_cache(redis)

        await cache.set("k", {("tuple", "key"): 1})
        await cache.drain()

        assert await cache.get("k") is None
        assert redis.data == {}
        assert redis.set_calls == []

    def test_counters_consistent_across_threads(self):
        cache = make_cache()
        asyncio.run(cache.set("hot", "v"))

        def lookups(worker: int) -> None:
            async def run():
                for i in range(250):
                    await cache.get("hot" if i % 2 == 0 else f"cold-{worker}-{i}")
            asyncio.run(run())

        threads = [threading.Thread(target=lookups, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stats = cache.stats()
        assert stats.total_hits + stats.total_misses == 2000
        assert stats.total_hits == 1000
        assert stats.total_hits == stats.memory_hits + stats.redis_hits


class YieldingRedis(FakeRedis):

    async def get(self, name: str):
        await asyncio.sleep(0)
        return await super().get(name)


class TestRedisTier:

    @pytest.mark.asyncio
    async def test_write_reaches_redis_with_remote_ttl(self):
        redis = FakeRedis()
        cache = make_cache(redis)

        await cache.set("k", {"a": 1}, remote_ttl=600)
        await cache.drain()

        assert "test-cache:k" in redis.data
        assert redis.set_calls == [("test-cache:k", 600)]

    @pytest.mark.asyncio
    async def test_redis_hit_is_promoted_to_memory(self):
        redis = FakeRedis()
        redis.data["test-cache:k"] = '{"a": 1}'
        cache = make_cache(redis)

        assert await cache.get("k") == {"a": 1}
        assert await cache.get("k") == {"a": 1}

        stats = cache.stats()
        assert stats.redis_hits == 1
        assert stats.memory_hits == 1
        assert stats.total_hits == 2
        assert stats.total_misses == 0

    @pytest.mark.asyncio
    async def test_redis_failure_is_a_miss(self):
        cache = make_cache(FakeRedis(fail=True))

        assert await cache.get("k") is None
        assert cache.stats().total_misses == 1

    @pytest.mark.asyncio
    async def test_redis_write_failure_keeps_memory_copy(self):
        cache = make_cache(FakeRedis(fail=True))

        await cache.set("k", "v")
        await cache.drain()

        assert await cache.get("k") == "v"

    @pytest.mark.asyncio
    async def test_undecodable_redis_value_is_a_miss(self):
        redis = FakeRedis()
        redis.data["test-cache:k"] = "not json"
        cache = make_cache(redis)

        assert await cache.get("k") is None
        assert cache.stats().total_misses == 1

    @pytest.mark.asyncio
    async def test_hits_plus_misses_equals_lookups(self):
        redis = FakeRedis()
        redis.data["test-cache:r"] = '"remote"'
        cache = make_cache(redis)
        await cache.set("m", "memory")

        for key in ("m", "r", "x", "m", "r", "y"):
            await cache.get(key)

        stats = cache.stats()
        assert stats.total_hits + stats.total_misses == 6
        assert stats.total_hits == 4
        assert stats.hit_ratio == pytest.approx(66.67)

    @pytest.mark.asyncio
    async def test_oversized_set_serves_new_value_from_redis(self):
        redis = FakeRedis()
        cache = make_cache(redis, max_size_mb=1)
        await cache.set("k", "old")
        big = "x" * 600_000

        await cache.set("k", big)
        await cache.drain()

        assert await cache.get("k") == big
        assert cache.stats().redis_hits == 1

    @pytest.mark.asyncio
    async def test_counters_consistent_under_interleaved_lookups(self):
        redis = YieldingRedis()
        redis.data["test-cache:remote"] = '"r"'
        cache = make_cache(redis)
        await cache.set("local", "l")
        await cache.drain()
        keys = ["local", "remote", "absent"] * 50

        await asyncio.gather(*(cache.get(key) for key in keys))

        stats = cache.stats()
        assert stats.total_hits + stats.total_misses == len(keys)
        assert stats.total_hits == stats.memory_hits + stats.redis_hits
        assert stats.total_misses == 50


class TestInvalidation:

    @pytest.mark.asyncio
    async def test_clear_flushes_redis_and_resets_counters(self):
        redis = FakeRedis()
        redis.data["other-instance:k"] = '"keep"'
        cache = make_cache(redis)
        await cache.set("k", "v")
        await cache.drain()
        await cache.get("k")

        await cache.clear()

        assert "test-cache:k" not in redis.data
        assert "other-instance:k" in redis.data
        stats = cache.stats()
        assert stats.total_hits == 0
        assert stats.total_misses == 0

    @pytest.mark.asyncio
    async def test_remove_prefix_drops_both_tiers(self):
        redis = FakeRedis()
        cache = make_cache(redis)
        await cache.set("catalog:item:A", "a")
        await cache.set("catalog:item:B", "b")
        await cache.set("other:C", "c")
        await cache.drain()

        removed = await cache.remove_prefix("catalog:item:")

        assert removed == 2
        assert await cache.get("catalog:item:A") is None
        assert await cache.get("other:C") == "c"
        assert list(redis.data) == ["test-cache:other:C"]

    @pytest.mark.asyncio
    async def test_close_closes_remote(self):
        redis = FakeRedis()
        cache = make_cache(redis)

        await cache.close()

        assert redis.closed is True
