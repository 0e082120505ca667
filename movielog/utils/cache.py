"""
Caching Utilities
=================
Cache-aside helpers shared by the TMDB client and the preference read path.

Features:
- In-memory cache with TTL (Time To Live) and LRU eviction
- Redis backend when REDIS_URL is configured
- Every backend error degrades to a cache miss / no-op
- Simple decorator pattern for provider lookups

Usage:
    from movielog.utils.cache import cache, cache_get, cache_set, cache_delete

    @cache(ttl=300, key=lambda name: f"tmdb:person:{name}")
    def lookup(name):
        return result

    cache_set("user:1:preferences", payload, ttl=300)
    cache_delete("user:1:preferences")
"""
from functools import wraps
from typing import Any, Callable, Optional
from collections import OrderedDict
from datetime import datetime, timedelta
import copy
import hashlib
import json
import logging
import os

import redis
from dotenv import load_dotenv

load_dotenv()
logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL")
CACHE_MAX_SIZE = int(os.getenv("CACHE_MAX_SIZE", 1000))


def make_key(func_name: str, args: tuple, kwargs: dict) -> str:
    """
    Create a unique cache key from function name and arguments.

    Args:
        func_name: Name of the function
        args: Positional arguments
        kwargs: Keyword arguments

    Returns:
        Unique cache key as string
    """
    key_data = {
        'func': func_name,
        'args': args,
        'kwargs': sorted(kwargs.items())
    }
    key_str = json.dumps(key_data, sort_keys=True, default=str)
    return f"{func_name}:{hashlib.md5(key_str.encode()).hexdigest()}"


class MemoryCacheStore:
    """
    Simple in-memory cache with TTL and LRU eviction.
    Per-process only; use RedisCacheStore when several workers share data.
    Values are copied on the way in and out, so callers never share the
    cached object.
    """

    def __init__(self, max_size: int = 1000):
        """
        Initialize cache store.

        Args:
            max_size: Maximum number of items in cache (LRU eviction)
        """
        self._cache: OrderedDict = OrderedDict()
        self._max_size = max_size
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache if exists and not expired.

        Returns:
            Cached value or None if not found/expired
        """
        if key not in self._cache:
            self._misses += 1
            return None

        value, expiry = self._cache[key]

        if expiry and datetime.now() > expiry:
            del self._cache[key]
            self._misses += 1
            return None

        # Move to end (LRU)
        self._cache.move_to_end(key)
        self._hits += 1
        return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        Set value in cache with optional TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live in seconds (None = no expiration)
        """
        expiry = datetime.now() + timedelta(seconds=ttl) if ttl else None

        self._cache[key] = (copy.deepcopy(value), expiry)
        self._cache.move_to_end(key)

        if len(self._cache) > self._max_size:
            oldest_key = next(iter(self._cache))
            del self._cache[oldest_key]
            logger.debug(f"Evicted cache key: {oldest_key}")

    def delete(self, key: str) -> None:
        """Delete a specific cache key."""
        self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cache."""
        self._cache.clear()
        self._hits = 0
        self._misses = 0
        logger.info("Cache cleared")

    def get_stats(self) -> dict:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache stats
        """
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0

        return {
            'backend': 'memory',
            'size': len(self._cache),
            'max_size': self._max_size,
            'hits': self._hits,
            'misses': self._misses,
            'hit_rate': f"{hit_rate:.2f}%"
        }


class RedisCacheStore:
    """
    Redis-backed cache shared by every worker.

    Values are stored as JSON. Connection or command errors are logged and
    treated as a miss, so an unavailable Redis never fails a request.
    """

    def __init__(self, redis_url: str, client: Optional[Any] = None):
        self._client = client or redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._client.get(key)
        except redis.RedisError as e:
            logger.error(f"Cache get error for key {key}: {e}")
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding undecodable cache value for key {key}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            payload = json.dumps(value, default=str)
            if ttl:
                self._client.setex(key, ttl, payload)
            else:
                self._client.set(key, payload)
        except (redis.RedisError, TypeError) as e:
            logger.error(f"Cache set error for key {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as e:
            logger.error(f"Cache delete error for key {key}: {e}")

    def clear(self) -> None:
        try:
            self._client.flushdb()
        except redis.RedisError as e:
            logger.error(f"Cache clear error: {e}")

    def get_stats(self) -> dict:
        try:
            size = self._client.dbsize()
        except redis.RedisError:
            size = None
        return {'backend': 'redis', 'size': size}


def _build_store():
    if REDIS_URL:
        logger.info("Using Redis cache backend")
        return RedisCacheStore(REDIS_URL)
    logger.info("Redis caching disabled (REDIS_URL not set), using in-memory cache")
    return MemoryCacheStore(max_size=CACHE_MAX_SIZE)


# Global cache instance
_cache_store = _build_store()


def get_cache_store():
    """Return the active cache backend."""
    return _cache_store


def set_cache_store(store) -> None:
    """Swap the active cache backend (tests, alternate deployments)."""
    global _cache_store
    _cache_store = store


def cache_get(key: str) -> Optional[Any]:
    """Read a key; any backend failure is a miss."""
    try:
        return _cache_store.get(key)
    except Exception as e:
        logger.error(f"Cache get error for key {key}: {e}")
        return None


def cache_set(key: str, value: Any, ttl: Optional[int] = None) -> None:
    """Write a key; any backend failure is ignored."""
    try:
        _cache_store.set(key, value, ttl)
    except Exception as e:
        logger.error(f"Cache set error for key {key}: {e}")


def cache_delete(key: str) -> None:
    """Invalidate a key; any backend failure is ignored."""
    try:
        _cache_store.delete(key)
    except Exception as e:
        logger.error(f"Cache delete error for key {key}: {e}")


def cache(ttl: int = 300, key: Optional[Callable[..., str]] = None):
    """
    Decorator to cache function results.

    Args:
        ttl: Time to live in seconds (default: 300 = 5 minutes)
        key: Optional builder turning the call arguments into a readable key.
             Defaults to a hash of the function name and arguments.

    Usage:
        @classmethod
        @cache(ttl=600, key=lambda cls, movie_id: f"tmdb:movie:{movie_id}")
        def get_movie_details(cls, movie_id: int):
            return details

    Note:
        - None results are never cached
        - Results must be JSON-serializable when Redis is the backend
    """
    def decorator(func: Callable) -> Callable:
        def build_key(*args, **kwargs) -> str:
            if key is not None:
                return key(*args, **kwargs)
            return make_key(func.__qualname__, args, kwargs)

        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = build_key(*args, **kwargs)

            cached_value = cache_get(cache_key)
            if cached_value is not None:
                logger.debug(f"Cache hit for {func.__name__}: {cache_key}")
                return cached_value

            logger.debug(f"Cache miss for {func.__name__}: {cache_key}")
            result = func(*args, **kwargs)
            if result is not None:
                cache_set(cache_key, result, ttl)

            return result

        # Attach invalidation method to function
        wrapper.invalidate = lambda *args, **kwargs: cache_delete(build_key(*args, **kwargs))

        return wrapper

    return decorator


def clear_all_cache() -> None:
    """Clear all cache entries."""
    try:
        _cache_store.clear()
    except Exception as e:
        logger.error(f"Cache clear error: {e}")
    logger.info("All cache cleared")


def get_cache_stats() -> dict:
    """
    Get cache statistics.

    Returns:
        Dictionary with cache performance metrics
    """
    return _cache_store.get_stats()
