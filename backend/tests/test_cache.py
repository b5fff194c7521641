from dataclasses import replace

from campus_core.cache import MemoryCache, RedisCache, build_cache


def test_memory_cache_expires_entries(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr("campus_core.cache.time.monotonic", lambda: now[0])
    cache = MemoryCache()

    cache.set("a", "1", ttl=10)
    cache.set("b", "2")
    assert cache.get("a") == "1"

    now[0] += 11
    assert cache.get("a") is None
    assert not cache.exists("a")
    assert cache.get("b") == "2"


def test_memory_cache_counter_keeps_its_window(monkeypatch):
    now = [0.0]
    monkeypatch.setattr("campus_core.cache.time.monotonic", lambda: now[0])
    cache = MemoryCache()

    assert [cache.incr("hits", 60) for _ in range(3)] == [1, 2, 3]
    now[0] += 59
    assert cache.incr("hits", 60) == 4
    now[0] += 2
    assert cache.incr("hits", 60) == 1


def test_memory_cache_sweeps_expired_counters(monkeypatch):
    now = [0.0]
    monkeypatch.setattr("campus_core.cache.time.monotonic", lambda: now[0])
    cache = MemoryCache()

    for n in range(50):
        cache.incr(f"ratelimit:global:10.0.0.{n}", 30)
    cache.set("institution:exists:1", "1")

    now[0] += MemoryCache.sweep_interval + 1
    cache.incr("ratelimit:global:10.0.0.200", 30)

    assert set(cache._data) == {"institution:exists:1", "ratelimit:global:10.0.0.200"}


def test_memory_cache_delete_and_clear():
    cache = MemoryCache()
    cache.set("a", "1")
    cache.set("b", "2")

    cache.delete("a")
    cache.delete("missing")
    assert not cache.exists("a")

    cache.clear()
    assert not cache.exists("b")


def test_build_cache_picks_backend(settings):
    assert isinstance(build_cache(settings), MemoryCache)

    assert isinstance(build_cache(replace(settings, redis_url="redis://localhost:6379/0")), RedisCache)
