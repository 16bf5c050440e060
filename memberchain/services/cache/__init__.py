"""In-memory caching."""

from memberchain.services.cache.ttl_cache import CacheEntry, TTLCache


__all__ = ["CacheEntry", "TTLCache"]
