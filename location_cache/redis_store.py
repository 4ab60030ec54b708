"""
Redis-backed location cache.

Keys are the userID (optionally prefixed); values are JSON documents
``{"userID", "lat", "lng", "recordedAt"}``. Values written by the
previous generation of the service, which stored the raw inbound
payload, are still readable: ``recordedAt`` is then None.
"""

import logging
from datetime import timedelta
from typing import Any, Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from errors.exceptions import cache_unavailable
from location_cache.store import LocationCache
from movement.models import CachedLocation

logger = logging.getLogger(__name__)


class RedisLocationCache(LocationCache):
    """
    Redis implementation of the location cache.

    Attributes:
        redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
        key_prefix: Namespace prepended to every userID
        ttl: Optional expiry for entries; None keeps them forever
        client: Redis async client (created by connect() unless injected)
    """

    def __init__(
        self,
        redis_url: str,
        key_prefix: str = "",
        ttl: Optional[timedelta] = None,
        client: Any = None,
        socket_timeout: float = 5.0,
    ):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.ttl = ttl
        self.socket_timeout = socket_timeout
        self.client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        """Create the async Redis client from the configured URL."""
        if self.client is not None:
            return
        import redis.asyncio as redis
        self.client = redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_timeout,
        )
        self._owns_client = True

    async def disconnect(self) -> None:
        """Close the Redis connection if this cache created it."""
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None

    def _get_key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    def _require_client(self, operation: str, user_id: str) -> Any:
        if self.client is None:
            raise cache_unavailable(
                "Redis client not connected. Call connect() first.",
                operation=operation,
                user_id=user_id,
            )
        return self.client

    async def get(self, user_id: str) -> Optional[CachedLocation]:
        client = self._require_client("get", user_id)
        key = self._get_key(user_id)

        try:
            data = await client.get(key)
        except RedisError as e:
            raise cache_unavailable(
                f"Failed to read cached location: {e}",
                operation="get",
                user_id=user_id,
            ) from e

        if data is None:
            return None

        try:
            location = CachedLocation.model_validate_json(data)
        except ValidationError as e:
            raise cache_unavailable(
                "Cached location is not a valid location document",
                operation="get",
                user_id=user_id,
                details={"key": key, "errors": e.errors(include_url=False, include_context=False)},
            ) from e

        return location

    async def set(self, user_id: str, location: CachedLocation) -> None:
        client = self._require_client("set", user_id)
        key = self._get_key(user_id)
        serialized = location.to_json()

        try:
            if self.ttl is not None:
                await client.set(key, serialized, ex=int(self.ttl.total_seconds()))
            else:
                await client.set(key, serialized)
        except RedisError as e:
            raise cache_unavailable(
                f"Failed to store location: {e}",
                operation="set",
                user_id=user_id,
            ) from e

    async def health_check(self) -> bool:
        """PING Redis; any error counts as unhealthy."""
        if self.client is None:
            return False

        try:
            result = await self.client.ping()
            return result is True
        except Exception:
            logger.warning("Redis health check failed", exc_info=True)
            return False
