"""Tests for the in-memory LRU cache."""

from pixelserve.cache.memory import MemoryCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestMemoryCache:
    def test_get_set(self):
        cache = MemoryCache()
        cache.set("k1", b"data")
        assert cache.get("k1") == b"data"

    def test_get_miss(self):
        cache = MemoryCache()
        assert cache.get("nonexistent") is None

    def test_overwrite_replaces_value(self):
        cache = MemoryCache()
        cache.set("k1", b"old")
        cache.set("k1", b"new")
        assert cache.get("k1") == b"new"
        assert len(cache) == 1

    def test_bounded_by_item_count(self):
        cache = MemoryCache(max_items=3)
        for i in range(10):
            cache.set(f"k{i}", b"x")
        assert cache.size() == 3

    def test_lru_eviction_respects_reads(self):
        cache = MemoryCache(max_items=2)
        cache.set("a", b"1")
        cache.set("b", b"2")
        cache.get("a")
        cache.set("c", b"3")
        assert cache.get("a") == b"1"
        assert cache.get("b") is None
        assert cache.get("c") == b"3"

    def test_overwrite_at_capacity_does_not_evict_others(self):
        cache = MemoryCache(max_items=2)
        cache.set("a", b"1")
        cache.set("b", b"2")
        cache.set("b", b"22")
        assert cache.get("a") == b"1"
        assert cache.get("b") == b"22"

    def test_large_values_accepted(self):
        cache = MemoryCache(max_items=1)
        cache.set("big", b"x" * 5_000_000)
        assert cache.get("big") is not None

    def test_expired_entry_returns_none(self):
        clock = FakeClock()
        cache = MemoryCache(ttl_seconds=60, clock=clock)
        cache.set("k1", b"data")
        clock.now += 61
        assert cache.get("k1") is None
        assert "k1" not in cache

    def test_entry_at_ttl_boundary_still_served(self):
        clock = FakeClock()
        cache = MemoryCache(ttl_seconds=60, clock=clock)
        cache.set("k1", b"data")
        clock.now += 60
        assert cache.get("k1") == b"data"

    def test_cleanup_removes_only_expired(self):
        clock = FakeClock()
        cache = MemoryCache(ttl_seconds=60, clock=clock)
        cache.set("old", b"1")
        clock.now += 30
        cache.set("new", b"2")
        clock.now += 31
        assert cache.cleanup() == 1
        assert "old" not in cache
        assert cache.get("new") == b"2"

    def test_clear(self):
        cache = MemoryCache()
        cache.set("k1", b"1")
        cache.set("k2", b"2")
        cache.clear()
        assert len(cache) == 0
        assert cache.get("k1") is None
