"""
Cache Tests
===========
Memory backend TTL/LRU, Redis backend degradation, and the decorator.
"""
import json

import redis

from movielog.utils import cache as cache_module
from movielog.utils.cache import MemoryCacheStore, RedisCacheStore, cache, cache_get, cache_set, make_key


class FakeRedis:
    """Dict-backed stand-in for the handful of redis commands the store uses"""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self.data.pop(key, None)

    def flushdb(self):
        self.data.clear()

    def dbsize(self):
        return len(self.data)


class BrokenRedis:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError("Connection refused")
        return fail


def test_memory_store_ttl_expiry(monkeypatch):
    store = MemoryCacheStore()
    store.set("k", "v", ttl=60)
    assert store.get("k") == "v"

    expired = cache_module.datetime.now() + cache_module.timedelta(seconds=120)

    class FrozenDatetime(cache_module.datetime):
        @classmethod
        def now(cls, tz=None):
            return expired

    monkeypatch.setattr(cache_module, "datetime", FrozenDatetime)
    assert store.get("k") is None


def test_memory_store_lru_eviction():
    store = MemoryCacheStore(max_size=2)
    store.set("a", 1)
    store.set("b", 2)
    store.get("a")  # a is now most recently used
    store.set("c", 3)

    assert store.get("a") == 1
    assert store.get("b") is None
    assert store.get("c") == 3
    stats = store.get_stats()
    assert stats["backend"] == "memory"
    assert stats["size"] == 2


def test_redis_store_round_trips_json():
    client = FakeRedis()
    store = RedisCacheStore("redis://unused", client=client)

    store.set("user:1:preferences", [{"key": "language", "value": "en"}], ttl=300)

    assert json.loads(client.data["user:1:preferences"]) == [{"key": "language", "value": "en"}]
    assert client.ttls["user:1:preferences"] == 300
    assert store.get("user:1:preferences") == [{"key": "language", "value": "en"}]
    store.delete("user:1:preferences")
    assert store.get("user:1:preferences") is None


def test_redis_store_degrades_on_errors():
    store = RedisCacheStore("redis://unused", client=BrokenRedis())

    assert store.get("k") is None
    store.set("k", "v", ttl=10)
    store.delete("k")
    store.clear()
    assert store.get_stats() == {"backend": "redis", "size": None}


def test_redis_store_discards_undecodable_values():
    client = FakeRedis()
    client.data["k"] = "{not json"
    store = RedisCacheStore("redis://unused", client=client)

    assert store.get("k") is None


def test_module_helpers_swallow_backend_failures():
    class ExplodingStore:
        def get(self, key):
            raise RuntimeError("boom")

        def set(self, key, value, ttl=None):
            raise RuntimeError("boom")

    cache_module.set_cache_store(ExplodingStore())
    assert cache_get("k") is None
    cache_set("k", "v", 10)


def test_cache_decorator_skips_none_and_invalidates():
    calls = []

    @cache(ttl=60, key=lambda name: f"tmdb:person:{name.lower()}")
    def lookup(name):
        calls.append(name)
        return None if name == "nobody" else [name]

    assert lookup("Tom") == ["Tom"]
    assert lookup("TOM") == ["Tom"]
    assert calls == ["Tom"]

    lookup("nobody")
    lookup("nobody")
    assert calls == ["Tom", "nobody", "nobody"]

    lookup.invalidate("tom")
    lookup("Tom")
    assert calls == ["Tom", "nobody", "nobody", "Tom"]


def test_make_key_is_stable():
    assert make_key("f", (1, 2), {"b": 1, "a": 2}) == make_key("f", (1, 2), {"a": 2, "b": 1})
    assert make_key("f", (1,), {}) != make_key("f", (2,), {})


def test_clear_all_cache_and_stats(memory_cache):
    cache_set("tmdb:movie:550", {"title": "Fight Club"}, 60)
    cache_get("tmdb:movie:550")
    cache_get("tmdb:movie:603")

    stats = cache_module.get_cache_stats()
    assert stats["size"] == 1
    assert stats["hits"] == 1
    assert stats["misses"] == 1

    cache_module.clear_all_cache()
    assert cache_get("tmdb:movie:550") is None
    assert memory_cache.get_stats()["size"] == 0


def test_memory_store_returns_copies():
    store = MemoryCacheStore()
    value = [{"key": "favorite_genres", "value": ["Action"]}]
    store.set("user:1:preferences", value, ttl=60)

    value[0]["value"].append("Changed before read")
    first = store.get("user:1:preferences")
    first[0]["value"].append("Changed after read")

    assert store.get("user:1:preferences") == [{"key": "favorite_genres", "value": ["Action"]}]
