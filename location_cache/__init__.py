"""
Location cache module.

Stores each user's last recorded position in an external key-value
store so that partition workers share it without in-process state.
"""

from location_cache.store import LocationCache
from location_cache.redis_store import RedisLocationCache
from location_cache.memory_store import InMemoryLocationCache
from location_cache.factory import create_location_cache

__all__ = [
    "LocationCache",
    "RedisLocationCache",
    "InMemoryLocationCache",
    "create_location_cache",
]
