"""Wire a StreamConsumer from settings."""

from typing import Optional

from forwarding.factory import create_event_sink
from forwarding.forwarder import EventForwarder
from ingestion.service import StreamConsumer
from location_cache.factory import create_location_cache
from telemetry.service import TelemetryService


def create_stream_consumer(settings, telemetry: Optional[TelemetryService] = None) -> StreamConsumer:
    """
    Build the consumer with the configured cache, sink and forwarder.

    The clients are not connected; enter ``consumer.lifespan()`` to
    connect them.
    """
    cache = create_location_cache(settings)
    sink = create_event_sink(settings)
    forwarder = EventForwarder.from_settings(settings, sink, telemetry=telemetry)
    return StreamConsumer.from_settings(settings, cache, forwarder, telemetry=telemetry)
