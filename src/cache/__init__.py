# coding: utf-8
"""
Cache module

In-process TTL cache injected into services; see api_server.lifespan.
"""

from src.cache.memory_cache import MemoryCache, NullCache, build_cache
from src.cache.cache_keys import CacheKeys

__all__ = ["MemoryCache", "NullCache", "build_cache", "CacheKeys"]
