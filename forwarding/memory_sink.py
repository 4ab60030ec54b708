"""In-process movement event sink for development and tests."""

import itertools

from forwarding.sink import EventSink, SinkAck
from movement.models import MovementEvent


class InMemoryEventSink(EventSink):
    """List-backed sink. Not durable: events are lost with the process."""

    def __init__(self, name: str = "memory"):
        self.name = name
        self.events: list[MovementEvent] = []
        self._ids = itertools.count(1)

    async def append(self, event: MovementEvent) -> SinkAck:
        self.events.append(event)
        return SinkAck(sink=self.name, record_id=str(next(self._ids)))

    async def health_check(self) -> bool:
        return True
