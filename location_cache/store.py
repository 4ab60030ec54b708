"""
Location cache abstraction.

The cache maps a userID to the most recently accepted position of that
user. It is the only state shared between partition workers, so it
lives in an external key-value store rather than in process memory.
"""

from abc import ABC, abstractmethod
from typing import Optional

from movement.models import CachedLocation


class LocationCache(ABC):
    """
    Abstract base class for location cache implementations.

    Semantics every implementation must honour:
    - at most one entry per user
    - ``set`` unconditionally overwrites the entry
    - entries are never deleted by the pipeline (an optional TTL may
      expire them)
    - failures raise CacheError instead of being swallowed, because a
      silently failed ``set`` leaves the cache inconsistent with the
      events already forwarded
    """

    async def connect(self) -> None:
        """Acquire the connection to the backing store."""

    async def disconnect(self) -> None:
        """Release the connection to the backing store."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[CachedLocation]:
        """
        Retrieve the last recorded position of a user.

        Args:
            user_id: Identifier of the user.

        Returns:
            The cached position, or None if the user was never seen
            (or the entry expired).

        Raises:
            CacheError: If the backing store cannot be read or the stored
                value cannot be decoded.
        """

    @abstractmethod
    async def set(self, user_id: str, location: CachedLocation) -> None:
        """
        Store the position of a user, overwriting any previous one.

        Args:
            user_id: Identifier of the user.
            location: Position to store.

        Raises:
            CacheError: If the backing store cannot be written.
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check connectivity of the backing store.

        Returns:
            True if the store is reachable, False otherwise. Never raises.
        """

    async def __aenter__(self) -> "LocationCache":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
