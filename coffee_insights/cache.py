"""
Memoization layer for the analytics engines.

Provides:
- A common async cache contract (get / set with TTL / delete / pattern invalidation)
- MemoryCache: process-local TTL cache, the default and the one used in tests
- RedisCache: shared cache over redis.asyncio with graceful fallback
- JSON serialization on write, so a hit returns the same shape a fresh
  computation returns
- Hit/miss statistics

Usage:
    from coffee_insights.cache import create_cache

    cache = create_cache()
    await cache.set("key", {"data": "value"}, ttl=300)
    data = await cache.get("key")

    bundle = await cache.get_or_set("customer_insights:7", build_bundle, ttl=3600)

    await cache.invalidate_pattern("product_recommendations:7:*")
"""
import asyncio
import fnmatch
import inspect
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from coffee_insights.config import CacheConfig, config
from coffee_insights.observability import get_logger, metrics, Timer

logger = get_logger(__name__)

DEFAULT_TTL = config.cache.ttl_seconds


@dataclass
class CacheStats:
    """Cache statistics for monitoring."""

    hits: int = 0
    misses: int = 0
    errors: int = 0
    sets: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for reporting."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "sets": self.sets,
            "invalidations": self.invalidations,
            "hit_rate_percent": round(self.hit_rate, 2),
        }


class BaseCache:
    """
    Async cache contract shared by all backends.

    Subclasses implement get/set/delete/invalidate_pattern; this class adds
    get_or_set and statistics.
    """

    backend = "base"

    def __init__(self, default_ttl: int = DEFAULT_TTL):
        self.default_ttl = default_ttl
        self._stats = CacheStats()

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def invalidate_pattern(self, pattern: str) -> int:
        raise NotImplementedError

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Any],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Get from cache, or compute and set if missing.

        Concurrent misses for the same key each run the factory; the
        results are identical and the last write wins.

        Args:
            key: Cache key
            factory: Sync or async callable computing the value
            ttl: Time-to-live in seconds

        Returns:
            Cached or computed value
        """
        value = await self.get(key)
        if value is not None:
            metrics.record_cache_hit(key.split(":", 1)[0])
            return value

        value = factory()
        if inspect.isawaitable(value):
            value = await value

        await self.set(key, value, ttl)

        # Return the JSON shape a later hit will return
        return json.loads(json.dumps(value, default=str))

    def get_stats(self) -> dict:
        """Get cache statistics."""
        return {"backend": self.backend, **self._stats.to_dict()}


class MemoryCache(BaseCache):
    """
    Process-local TTL cache.

    Entries are stored as JSON strings with a monotonic expiry time.
    Expired entries are dropped lazily on read and on pattern scans.
    """

    backend = "memory"

    def __init__(
        self,
        default_ttl: int = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(default_ttl)
        self._clock = clock
        self._entries: Dict[str, Tuple[float, str]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return None

        expires_at, payload = entry
        if expires_at <= self._clock():
            del self._entries[key]
            self._stats.misses += 1
            return None

        self._stats.hits += 1
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ttl = ttl if ttl is not None else self.default_ttl
        self._entries[key] = (self._clock() + ttl, json.dumps(value, default=str))
        self._stats.sets += 1
        return True

    async def delete(self, key: str) -> bool:
        removed = self._entries.pop(key, None) is not None
        if removed:
            self._stats.invalidations += 1
        return removed

    async def invalidate_pattern(self, pattern: str) -> int:
        now = self._clock()
        matched = [
            key for key, (expires_at, _) in self._entries.items()
            if fnmatch.fnmatchcase(key, pattern) or expires_at <= now
        ]
        deleted = 0
        for key in matched:
            expires_at, _ = self._entries.pop(key)
            if expires_at > now:
                deleted += 1

        if deleted:
            self._stats.invalidations += deleted
            logger.debug(f"Invalidated {deleted} keys matching '{pattern}'")
        return deleted

    async def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()


class RedisCache(BaseCache):
    """
    Async Redis cache with graceful degradation.

    Features:
    - Async operations with connection pooling
    - JSON serialization for complex objects
    - SCAN-based pattern invalidation
    - Graceful fallback (always-miss) when Redis is unavailable
    """

    backend = "redis"

    def __init__(
        self,
        url: str = config.cache.redis_url,
        enabled: bool = config.cache.enabled,
        default_ttl: int = DEFAULT_TTL,
    ):
        super().__init__(default_ttl)
        self.url = url
        self.enabled = enabled
        self._client = None
        self._connected = False
        self._lock = asyncio.Lock()

    async def connect(self) -> bool:
        """
        Connect to Redis server.

        Returns:
            True if connected successfully, False otherwise
        """
        if not self.enabled:
            logger.info("Redis cache disabled by configuration")
            return False

        try:
            async with self._lock:
                if self._client is None:
                    self._client = redis.from_url(
                        self.url,
                        encoding="utf-8",
                        decode_responses=True,
                        socket_timeout=5.0,
                        socket_connect_timeout=5.0,
                    )
                await self._client.ping()
                self._connected = True
                logger.info(f"Redis connected: {self.url}")
                return True
        except Exception as e:
            logger.warning(f"Redis connection failed: {e}")
            self._connected = False

        return False

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
            self._connected = False
            logger.info("Redis disconnected")

    @property
    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    async def get(self, key: str) -> Optional[Any]:
        if not self.is_connected:
            self._stats.misses += 1
            return None

        try:
            with Timer("cache_get"):
                value = await self._client.get(key)

            if value is not None:
                self._stats.hits += 1
                return json.loads(value)
            self._stats.misses += 1
            return None

        except Exception as e:
            self._stats.errors += 1
            logger.debug(f"Cache get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.is_connected:
            return False

        ttl = ttl if ttl is not None else self.default_ttl
        # SETEX rejects non-positive expiry; such an entry is expired already
        if ttl <= 0:
            return False

        try:
            with Timer("cache_set"):
                serialized = json.dumps(value, default=str)
                await self._client.setex(key, ttl, serialized)

            self._stats.sets += 1
            return True

        except Exception as e:
            self._stats.errors += 1
            logger.debug(f"Cache set error for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not self.is_connected:
            return False

        try:
            deleted = await self._client.delete(key)
            self._stats.invalidations += 1
            return bool(deleted)
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache delete error for {key}: {e}")
            return False

    async def invalidate_pattern(self, pattern: str) -> int:
        if not self.is_connected:
            return 0

        try:
            deleted = 0
            cursor = 0

            while True:
                cursor, keys = await self._client.scan(
                    cursor=cursor, match=pattern, count=100
                )

                if keys:
                    await self._client.delete(*keys)
                    deleted += len(keys)

                if cursor == 0:
                    break

            if deleted > 0:
                self._stats.invalidations += deleted
                logger.debug(f"Invalidated {deleted} keys matching '{pattern}'")

            return deleted

        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache invalidate pattern error for {pattern}: {e}")
            return 0

    def get_stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "connected": self.is_connected,
            "url": self.url if self.is_connected else None,
            **super().get_stats(),
        }


def create_cache(cache_config: CacheConfig = config.cache) -> BaseCache:
    """
    Build the cache backend selected by configuration.

    RedisCache instances still need ``await cache.connect()``.
    """
    if cache_config.backend == "redis":
        return RedisCache(
            url=cache_config.redis_url,
            enabled=cache_config.enabled,
            default_ttl=cache_config.ttl_seconds,
        )
    return MemoryCache(default_ttl=cache_config.ttl_seconds)
