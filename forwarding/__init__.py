"""
Forwarding module.

Delivers NEW and MOVED movement events to a durable, append-only sink
with bounded retries and a circuit breaker.
"""

from forwarding.sink import EventSink, SinkAck, SinkRejectedError
from forwarding.elasticsearch_sink import ElasticsearchEventSink, movement_events_mapping
from forwarding.memory_sink import InMemoryEventSink
from forwarding.forwarder import EventForwarder
from forwarding.factory import create_event_sink

__all__ = [
    "EventSink",
    "SinkAck",
    "SinkRejectedError",
    "ElasticsearchEventSink",
    "movement_events_mapping",
    "InMemoryEventSink",
    "EventForwarder",
    "create_event_sink",
]
