"""
Unit tests for TTLCache.

Tests cover:
- Expiry at TTL boundary
- LRU eviction by last access
- Pattern invalidation
- Statistics
"""

import pytest

from memberchain.services.cache.ttl_cache import TTLCache


@pytest.fixture
def cache(clock):
    return TTLCache(max_size=3, default_ttl=60, clock=clock)


class TestExpiry:
    """Test TTL handling."""

    def test_value_available_before_ttl(self, cache, clock):
        cache.set("plan_1", "gold", ttl=1)
        clock.advance(0.9)

        assert cache.get("plan_1") == "gold"

    def test_value_missing_after_ttl(self, cache, clock):
        """Entry set with TTL 1 and read at 1.1 is a miss."""
        cache.set("plan_1", "gold", ttl=1)
        clock.advance(1.1)

        assert cache.get("plan_1") is None
        assert cache.get_stats()["expirations"] == 1

    def test_default_ttl_used(self, cache, clock):
        cache.set("plan_1", "gold")
        clock.advance(59)
        assert cache.has("plan_1")

        clock.advance(1)
        assert not cache.has("plan_1")

    def test_cleanup_removes_only_expired(self, cache, clock):
        cache.set("short", 1, ttl=1)
        cache.set("long", 2, ttl=100)
        clock.advance(5)

        assert cache.cleanup() == 1
        assert cache.get("long") == 2

    def test_extend_pushes_expiry(self, cache, clock):
        cache.set("plan_1", "gold", ttl=1)
        assert cache.extend("plan_1", 10)

        clock.advance(5)
        assert cache.get("plan_1") == "gold"

    def test_extend_missing_key(self, cache):
        assert cache.extend("missing", 10) is False


class TestEviction:
    """Test LRU eviction when full."""

    def test_evicts_least_recently_accessed(self, cache):
        """Reading a key protects it from eviction."""
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.get("a")

        cache.set("d", 4)

        assert cache.has("a")
        assert not cache.has("b")
        assert cache.has("c")
        assert cache.has("d")
        assert cache.get_stats()["evictions"] == 1

    def test_overwrite_does_not_evict(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        cache.set("a", 10)

        assert len(cache) == 3
        assert cache.get("a") == 10
        assert cache.get_stats()["evictions"] == 0


class TestInvalidation:
    """Test delete and pattern operations."""

    def test_delete(self, cache):
        cache.set("member_0xabc", 1)

        assert cache.delete("member_0xabc") is True
        assert cache.delete("member_0xabc") is False

    def test_delete_by_pattern(self):
        cache = TTLCache(max_size=10)
        cache.set_many({"plan_1": 1, "plan_cycle_1": 2, "member_0xabc": 3})

        removed = cache.delete_by_pattern(r"^plan_")

        assert removed == 2
        assert cache.get("member_0xabc") == 3

    def test_get_by_pattern(self):
        cache = TTLCache(max_size=10)
        cache.set_many({"member_0xa": 1, "member_0xb": 2, "plan_1": 3})

        assert cache.get_by_pattern(r"^member_") == {"member_0xa": 1, "member_0xb": 2}

    def test_clear(self, cache):
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0


class TestStats:
    """Test statistics reporting."""

    def test_hit_rate(self, cache):
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("missing")
        cache.get("missing")

        stats = cache.get_stats()

        assert stats["hits"] == 2
        assert stats["misses"] == 2
        assert stats["hit_rate"] == 50.0
        assert stats["size"] == 1

    def test_empty_hit_rate(self, cache):
        assert cache.get_stats()["hit_rate"] == 0.0

    def test_top_keys_by_access_count(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        for _ in range(3):
            cache.get("b")
        cache.get("a")

        assert cache.get_top_keys(1) == [("b", 3)]

    def test_get_info(self, cache, clock):
        cache.set("a", 1, ttl=10)
        clock.advance(4)

        info = cache.get_info("a")

        assert info["age"] == 4
        assert info["ttl_remaining"] == 6
        assert info["expired"] is False
        assert cache.get_info("missing") is None
