"""Build the configured location cache."""

from datetime import timedelta

from location_cache.memory_store import InMemoryLocationCache
from location_cache.redis_store import RedisLocationCache
from location_cache.store import LocationCache


def create_location_cache(settings) -> LocationCache:
    """Create the cache selected by ``settings.cache_backend`` (not yet connected)."""
    ttl = None
    if settings.cache_ttl_seconds is not None:
        ttl = timedelta(seconds=settings.cache_ttl_seconds)

    if settings.cache_backend == "memory":
        return InMemoryLocationCache(ttl=ttl, max_entries=settings.cache_max_entries)

    return RedisLocationCache(
        redis_url=settings.redis_url,
        key_prefix=settings.cache_key_prefix,
        ttl=ttl,
    )
