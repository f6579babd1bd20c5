"""
Cache strategies using Strategy Pattern.
Allows switching between different cache backends (Redis, In-Memory, Null).

The redirect path caches link snapshots (JSON strings) keyed by every
public key of the link. A cache failure is never fatal: callers fall back
to the database.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Iterable, Tuple
import time

import redis
import structlog

logger = structlog.get_logger(__name__)


class CacheStrategy(ABC):
    """
    Abstract base class for cache strategies.

    All methods are async because cache operations involve I/O (network for Redis).
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Get value from cache.

        Returns:
            Cached value or None if not found
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int = 3600) -> bool:
        """
        Set value in cache with TTL (Time To Live) in seconds.

        Returns:
            True if successful, False otherwise
        """
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """
        Delete keys from cache.

        Returns:
            Number of keys that were removed
        """
        pass


class RedisCache(CacheStrategy):
    """
    Redis cache implementation.

    Distributed (every API instance shares it) with server-side TTL.
    Used in production environments.
    """

    def __init__(self, redis_client):
        self.redis = redis_client

    async def get(self, key: str) -> Optional[str]:
        try:
            value = self.redis.get(key)
            return value.decode('utf-8') if value else None
        except redis.RedisError as e:
            logger.warning("cache_get_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: str, ttl: int = 3600) -> bool:
        try:
            return bool(self.redis.setex(key, ttl, value))
        except redis.RedisError as e:
            logger.warning("cache_set_failed", key=key, error=str(e))
            return False

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(self.redis.delete(*keys))
        except redis.RedisError as e:
            logger.warning("cache_delete_failed", keys=list(keys), error=str(e))
            return 0


class InMemoryCache(CacheStrategy):
    """
    In-memory cache implementation using Python dict.

    Pros:
    - Very fast (no network overhead)
    - Simple (no external dependencies)

    Cons:
    - Not distributed (each process has its own cache, so invalidation
      done by one API instance is invisible to the others)
    - Lost on restart

    Expired entries are dropped lazily on read.
    """

    def __init__(self):
        self._cache: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        value, expires = entry
        if expires <= time.monotonic():
            del self._cache[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int = 3600) -> bool:
        self._cache[key] = (value, time.monotonic() + ttl)
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._cache.pop(key, None) is not None:
                removed += 1
        return removed


class NullCache(CacheStrategy):
    """
    Null Object Pattern - cache that does nothing.

    Used for tests and for disabling the cache in certain environments.
    """

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl: int = 3600) -> bool:
        return True

    async def delete(self, *keys: str) -> int:
        return 0


def link_cache_key(public_key: str) -> str:
    return f"link:{public_key}"


def link_cache_keys(public_keys: Iterable[str]) -> list:
    return [link_cache_key(key) for key in public_keys if key]
