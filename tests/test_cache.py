import time

import pytest

from moviehub.cache import CacheItem, MemoryCache

SECOND = 1_000_000_000


class FakeClock:
    def __init__(self, start=SECOND):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += int(seconds * SECOND)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCache(60.0, 0, clock=clock)


def test_cache_item_without_expiration_never_expires():
    assert CacheItem("value").expired() is False


def test_cache_item_in_the_past_is_expired():
    assert CacheItem("value", expiration=1).expired() is True


def test_cache_item_in_the_future_is_live():
    item = CacheItem("value", expiration=time.time_ns() + 3600 * SECOND)
    assert item.expired() is False


def test_set_and_get_round_trip(cache):
    cache.set("movie_detail:1", {"title": "Toy Story (1995)"})
    assert cache.get("movie_detail:1") == {"title": "Toy Story (1995)"}


def test_get_missing_returns_default(cache):
    assert cache.get("absent") is None
    assert cache.get("absent", []) == []


def test_item_expires_after_default_duration(cache, clock):
    cache.set("k", "v")
    clock.advance(59)
    assert cache.get("k") == "v"
    clock.advance(2)
    assert cache.get("k") is None


def test_zero_duration_uses_default(cache, clock):
    cache.set_with_expiration("k", "v", 0)
    clock.advance(61)
    assert cache.get("k") is None


def test_negative_duration_never_expires(cache, clock):
    cache.set_with_expiration("k", "v", -1)
    clock.advance(10**6)
    assert cache.get("k") == "v"


def test_zero_default_expiration_keeps_items(clock):
    cache = MemoryCache(0, 0, clock=clock)
    cache.set("k", "v")
    clock.advance(10**6)
    assert cache.get("k") == "v"


def test_delete_and_flush(cache):
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    assert cache.get("a") is None
    assert cache.get("b") == 2
    cache.flush()
    assert cache.get("b") is None
    assert cache.stats()["total"] == 0


def test_delete_expired_removes_only_expired(cache, clock):
    cache.set_with_expiration("short", "v", 5)
    cache.set_with_expiration("long", "v", 500)
    clock.advance(10)
    cache.delete_expired()
    stats = cache.stats()
    assert stats["total"] == 1
    assert cache.get("long") == "v"


def test_stats_counts_hits_misses_and_rate(cache):
    cache.set("scan_movies:1:13:12", [])
    cache.get("scan_movies:1:13:12")
    cache.get("missing")
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["totalRequests"] == stats["hits"] + stats["misses"]
    assert stats["hitRate"] == pytest.approx(stats["hits"] / stats["totalRequests"] * 100)


def test_stats_without_requests_has_zero_rate(cache):
    stats = cache.stats()
    assert stats["hitRate"] == 0.0
    assert stats["totalRequests"] == 0


def test_stats_groups_keys_by_prefix(cache):
    keys = ["search:a:1:12", "search:b:1:12", "movie_detail:7", "plain"]
    for key in keys:
        cache.set(key, True)
    stats = cache.stats()
    assert stats["typeStats"] == {"search": 2, "movie_detail": 1, "plain": 1}
    assert sum(stats["typeStats"].values()) == stats["total"] == len(keys)


def test_stats_counts_expired_items(cache, clock):
    cache.set_with_expiration("old", "v", 1)
    cache.set_with_expiration("new", "v", 100)
    clock.advance(5)
    stats = cache.stats()
    assert stats["expired"] == 1
    assert stats["total"] == len(["old", "new"])


def test_expired_get_counts_as_miss(cache, clock):
    cache.set_with_expiration("k", "v", 1)
    clock.advance(5)
    assert cache.get("k") is None
    assert cache.stats()["misses"] == 1


def test_background_cleanup_removes_expired(clock):
    with MemoryCache(1.0, 0.01, clock=clock) as cache:
        cache.set("k", "v")
        clock.advance(5)
        deadline = time.monotonic() + 5
        while cache.stats()["total"] and time.monotonic() < deadline:
            time.sleep(0.01)
        assert cache.stats()["total"] == 0