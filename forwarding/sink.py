"""
Movement event sink abstraction.

A sink is a durable, append-only destination for MovementEvents. Every
successful ``append`` adds one record; appends are not idempotent, so a
retried append after an ambiguous failure can produce a duplicate.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from movement.models import MovementEvent


@dataclass(frozen=True)
class SinkAck:
    """
    Acknowledgement of a durably appended event.

    Attributes:
        sink: Name of the destination (e.g. the index name)
        record_id: Identifier assigned by the sink, if any
    """
    sink: str
    record_id: Optional[str] = None


class SinkRejectedError(Exception):
    """
    The sink refused the event permanently (e.g. a mapping conflict).

    Not retried: the same append would be rejected again.
    """


class EventSink(ABC):
    """Abstract base class for movement event sinks."""

    name: str = "sink"

    async def connect(self) -> None:
        """Acquire the client for the sink."""

    async def disconnect(self) -> None:
        """Release the client for the sink."""

    @abstractmethod
    async def append(self, event: MovementEvent) -> SinkAck:
        """
        Append one event to the sink.

        Raises:
            SinkRejectedError: If the sink permanently rejects the event.
            Exception: Transient failures (connection errors, timeouts,
                throttling) propagate as raised by the client library.
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the sink is reachable. Never raises."""
