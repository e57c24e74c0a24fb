import threading

import pytest

from yieldrisk.cache.metrics_cache import MetricsCache
from yieldrisk.errors import InvalidInputError


def make_cache(clock, **kw):
    kw.setdefault("default_ttl", 10)
    return MetricsCache(clock=clock, **kw)

def test_set_then_get_returns_value_and_counts_entries(clock):
    cache = make_cache(clock)
    cache.set("pool-A", {"riskScore": 42.0})
    assert cache.get("pool-A") == {"riskScore": 42.0}
    assert cache.get_cache_stats()["entries"] == 1

def test_overwrite_keeps_entry_count(clock):
    cache = make_cache(clock)
    cache.set("pool-A", {"v": 1})
    cache.set("pool-A", {"v": 2})
    assert cache.get_cache_stats()["entries"] == 1
    assert cache.get("pool-A") == {"v": 2}

def test_set_does_not_touch_hit_miss_counters(clock):
    cache = make_cache(clock)
    cache.set("k", 1)
    stats = cache.get_cache_stats()
    assert stats["hits"] == 0 and stats["misses"] == 0

def test_absent_key_is_a_miss(clock):
    cache = make_cache(clock)
    assert cache.get("nope") is None
    assert cache.get_cache_stats()["misses"] == 1

def test_entry_expires_after_ttl(clock):
    cache = make_cache(clock)
    cache.set("pool-A", {"v": 1}, ttl=10)
    clock.advance(9.5)
    assert cache.get("pool-A") == {"v": 1}
    clock.advance(0.5)
    assert cache.get("pool-A") is None
    stats = cache.get_cache_stats()
    assert stats["hits"] == 1 and stats["misses"] == 1
    assert stats["entries"] == 0

def test_reinsertion_refreshes_timestamp(clock):
    cache = make_cache(clock)
    cache.set("k", 1, ttl=10)
    clock.advance(8)
    cache.set("k", 2, ttl=10)
    clock.advance(8)
    assert cache.get("k") == 2

def test_hit_rate(clock):
    cache = make_cache(clock)
    assert cache.get_cache_stats()["hitRate"] == 0.0
    cache.set("k", 1)
    cache.get("k")
    cache.get("k")
    cache.get("missing")
    stats = cache.get_cache_stats()
    assert stats["hitRate"] == pytest.approx(stats["hits"] / (stats["hits"] + stats["misses"]))
    assert stats["hitRate"] == pytest.approx(2 / 3)

def test_values_are_copied_on_write_and_read(clock):
    cache = make_cache(clock)
    payload = {"riskFactors": {"liquidity": 0.5}}
    cache.set("k", payload)
    payload["riskFactors"]["liquidity"] = 0.9
    got = cache.get("k")
    assert got["riskFactors"]["liquidity"] == 0.5
    got["riskFactors"]["liquidity"] = 0.1
    assert cache.get("k")["riskFactors"]["liquidity"] == 0.5

def test_capacity_evicts_least_recently_inserted(clock):
    cache = make_cache(clock, max_entries=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 11)  # re-insert makes "b" the oldest
    cache.set("c", 3)
    assert cache.get("b") is None
    assert cache.get("a") == 11 and cache.get("c") == 3
    stats = cache.get_cache_stats()
    assert stats["entries"] == 2 and stats["evictions"] == 1 and stats["maxEntries"] == 2

def test_unbounded_cache(clock):
    cache = make_cache(clock, max_entries=None)
    for i in range(50):
        cache.set(f"k{i}", i)
    assert len(cache) == 50

def test_clear_keeps_counters_reset_zeroes_them(clock):
    cache = make_cache(clock)
    cache.set("k", 1)
    cache.get("k")
    cache.get("x")
    cache.clear_cache()
    stats = cache.get_cache_stats()
    assert stats["entries"] == 0
    assert stats["hits"] == 1 and stats["misses"] == 1
    cache.reset_stats()
    stats = cache.get_cache_stats()
    assert stats["hits"] == 0 and stats["misses"] == 0 and stats["hitRate"] == 0.0

def test_purge_expired_is_not_a_miss(clock):
    cache = make_cache(clock)
    cache.set("old", 1, ttl=5)
    cache.set("new", 2, ttl=50)
    clock.advance(6)
    assert cache.purge_expired() == 1
    stats = cache.get_cache_stats()
    assert stats["entries"] == 1 and stats["misses"] == 0

def test_invalid_ttl_rejected(clock):
    cache = make_cache(clock)
    with pytest.raises(InvalidInputError):
        cache.set("k", 1, ttl=0)
    with pytest.raises(InvalidInputError):
        MetricsCache(default_ttl=-1)

def test_get_metrics_merges_request_counters(clock):
    cache = make_cache(clock)
    assert cache.get_metrics()["averageResponseTime"] == 0.0
    cache.record_request(10.0)
    cache.record_request(30.0, failed=True)
    cache.set("k", 1)
    cache.get("k")
    m = cache.get_metrics()
    assert m["requestCount"] == 2
    assert m["averageResponseTime"] == pytest.approx(20.0)
    assert m["errorCount"] == 1 and m["errorRate"] == pytest.approx(0.5)
    assert m["cacheSize"] == 1 and m["cacheHits"] == 1 and m["hitRate"] == 1.0

def test_concurrent_access_keeps_counters_consistent():
    cache = MetricsCache(default_ttl=60, max_entries=10)
    n_threads, n_ops = 8, 500

    def worker(tid):
        for i in range(n_ops):
            key = f"k{i % 20}"
            if i % 2:
                cache.set(key, {"tid": tid, "i": i})
            else:
                cache.get(key)

    threads = [threading.Thread(target=worker, args=(t,)) for t in range(n_threads)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stats = cache.get_cache_stats()
    assert stats["hits"] + stats["misses"] == n_threads * n_ops // 2
    assert stats["entries"] == len(cache) <= 10

def test_size_and_entry_age_stats(clock):
    wall = type(clock)(t=1_800_000_000.0)
    cache = make_cache(clock, wall_clock=wall)
    stats = cache.get_cache_stats()
    assert stats["totalSize"] == 0
    assert stats["oldestEntry"] is None and stats["newestEntry"] is None

    cache.set("a", {"v": 1})
    wall.advance(2)
    cache.set("b", [1, 2, 3])
    stats = cache.get_cache_stats()
    assert stats["totalSize"] == len('{"v": 1}') + len("[1, 2, 3]")
    assert stats["oldestEntry"] == 1_800_000_000_000
    assert stats["newestEntry"] == 1_800_000_002_000
    assert cache.get_metrics()["totalDataSize"] == stats["totalSize"]

    cache.clear_cache()
    stats = cache.get_cache_stats()
    assert stats["totalSize"] == 0 and stats["oldestEntry"] is None

def test_get_shared_turns_earlier_miss_into_hit(clock):
    cache = make_cache(clock)
    assert cache.get("k") is None
    cache.set("k", {"v": 1})
    assert cache.get_shared("k") == {"v": 1}
    stats = cache.get_cache_stats()
    assert stats["hits"] == 1 and stats["misses"] == 0

def test_get_shared_on_absent_key_leaves_counters(clock):
    cache = make_cache(clock)
    assert cache.get("k") is None
    assert cache.get_shared("k") is None
    stats = cache.get_cache_stats()
    assert stats["hits"] == 0 and stats["misses"] == 1
