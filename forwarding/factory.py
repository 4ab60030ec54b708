"""Build the configured movement event sink."""

from forwarding.elasticsearch_sink import ElasticsearchEventSink
from forwarding.memory_sink import InMemoryEventSink
from forwarding.sink import EventSink


def create_event_sink(settings) -> EventSink:
    """Create the sink selected by ``settings.sink_backend`` (not yet connected)."""
    if settings.sink_backend == "memory":
        return InMemoryEventSink(name=settings.sink_stream_name)

    return ElasticsearchEventSink(
        endpoint=settings.elastic_endpoint,
        index=settings.sink_stream_name,
        api_key=settings.elastic_api_key,
    )
