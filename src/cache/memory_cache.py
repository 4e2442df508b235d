# coding: utf-8
"""
In-process TTL cache

One instance is created at application start (api_server lifespan) and
handed to services explicitly. Nothing here is global.
"""
import copy
import fnmatch
import time
from typing import Any, Callable, Dict, Optional, Tuple

from loguru import logger

from config.cache_config import CacheConfig, CacheTTL


class MemoryCache:
    """
    TTL key/value cache for read paths (user profiles, message lists,
    performer lists)

    Features:
    - Per-entry TTL
    - Explicit invalidation (single key or glob pattern)
    - Periodic sweep of expired entries
    - Hit/miss statistics

    Values are deep-copied on the way in and out, callers can mutate what
    they get back without corrupting the cache.

    Usage:
        >>> cache = MemoryCache()
        >>> await cache.set("user:1", {"coins": 10}, ttl=300)
        >>> await cache.get("user:1")
        {'coins': 10}
    """

    def __init__(
        self,
        default_ttl: int = CacheTTL.DEFAULT,
        max_entries: int = CacheConfig.MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._clock = clock
        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
            "expired": 0,
        }

    async def get(self, key: str, default: Any = None) -> Any:
        """
        Get value from cache

        Args:
            key: Cache key
            default: Returned on miss or expiry

        Returns:
            Cached value or default
        """
        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return default

        expires_at, value = entry
        if expires_at <= self._clock():
            # Просроченная запись удаляется при чтении
            self._entries.pop(key, None)
            self._stats["expired"] += 1
            self._stats["misses"] += 1
            logger.debug(f"Cache EXPIRED: {key}")
            return default

        self._stats["hits"] += 1
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value with TTL (seconds, default CacheTTL.DEFAULT)
        """
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            return False

        if len(self._entries) >= self._max_entries and key not in self._entries:
            self._evict()

        self._entries[key] = (self._clock() + ttl, copy.deepcopy(value))
        self._stats["sets"] += 1
        logger.debug(f"Cache SET: {key} (TTL={ttl}s)")
        return True

    async def delete(self, *keys: str) -> int:
        """
        Invalidate keys

        Returns:
            Number of keys that were present
        """
        deleted = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                deleted += 1
        self._stats["deletes"] += deleted
        if deleted:
            logger.debug(f"Cache DELETE: {', '.join(keys)}")
        return deleted

    async def delete_pattern(self, pattern: str) -> int:
        """
        Invalidate every key matching a glob pattern (e.g. 'performers:*')
        """
        keys = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
        return await self.delete(*keys)

    async def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """
        Remove expired entries

        Returns:
            Number of removed entries
        """
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        self._stats["expired"] += len(expired)
        if expired:
            logger.debug(f"Cache sweep removed {len(expired)} expired entries")
        return len(expired)

    def _evict(self) -> None:
        """Make room: drop expired entries, then the one closest to expiry"""
        if self.sweep():
            return
        oldest = min(self._entries.items(), key=lambda item: item[1][0])[0]
        del self._entries[oldest]

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict:
        """
        Get cache statistics

        Returns:
            Dict with hits, misses, sets, deletes, expired, size, hit_rate
        """
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = self._stats["hits"] / total if total > 0 else 0
        return {
            **self._stats,
            "size": len(self._entries),
            "total_requests": total,
            "hit_rate": round(hit_rate, 2),
        }


class NullCache(MemoryCache):
    """
    Cache that never stores anything. Used in tests and with CACHE_ENABLED=false.
    """

    async def get(self, key: str, default: Any = None) -> Any:
        self._stats["misses"] += 1
        return default

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        return False


def build_cache() -> MemoryCache:
    """Construct the cache selected by configuration"""
    if not CacheConfig.CACHE_ENABLED:
        logger.info("Caching is disabled in configuration")
        return NullCache()
    return MemoryCache()
