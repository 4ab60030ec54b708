"""
Shared pytest fixtures and configuration for all tests.
"""
import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Hypothesis configuration for property-based testing
from hypothesis import settings, Verbosity, Phase

from forwarding.forwarder import EventForwarder
from forwarding.memory_sink import InMemoryEventSink
from ingestion.decoder import StreamRecord, encode_ping
from ingestion.service import StreamConsumer
from location_cache.memory_store import InMemoryLocationCache
from movement.evaluator import MovementEvaluator
from resilience.retry import RetryConfig
from telemetry.metrics import PipelineMetrics

# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
    print_blob=True,
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],
)

# Fast profile: quick smoke tests
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


def _make_record(payload, sequence_number: str = "1", partition: str = "shard-0") -> StreamRecord:
    """Build a stream record carrying ``payload`` (a dict, or raw base64 text)."""
    data = payload if isinstance(payload, str) else encode_ping(payload)
    key = payload.get("userID") if isinstance(payload, dict) else None
    return StreamRecord(
        partition=partition,
        sequence_number=sequence_number,
        data=data,
        partition_key=str(key) if key is not None else None,
    )


def _make_records(payloads, partition: str = "shard-0") -> list[StreamRecord]:
    return [
        _make_record(p, sequence_number=str(i), partition=partition)
        for i, p in enumerate(payloads, start=1)
    ]


@pytest.fixture
def make_record():
    """Factory for a single stream record."""
    return _make_record


@pytest.fixture
def make_records():
    """Factory for a batch of records numbered from 1."""
    return _make_records


@pytest.fixture
def mock_elasticsearch() -> MagicMock:
    """Create a mock AsyncElasticsearch client for unit tests."""
    mock = MagicMock()
    mock.index = AsyncMock(return_value={"_id": "doc-1", "result": "created"})
    mock.ping = AsyncMock(return_value=True)
    mock.close = AsyncMock()
    mock.indices.exists = AsyncMock(return_value=True)
    mock.indices.create = AsyncMock(return_value={"acknowledged": True})
    mock.indices.get_mapping = AsyncMock(return_value={})
    return mock


@pytest.fixture
def mock_redis() -> MagicMock:
    """Create a mock Redis client for unit tests."""
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.ping = AsyncMock(return_value=True)
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture
def cache() -> InMemoryLocationCache:
    return InMemoryLocationCache()


@pytest.fixture
def sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry budget without real backoff delays."""
    return RetryConfig(max_attempts=3, initial_delay=0.0)


@pytest.fixture
def metrics() -> PipelineMetrics:
    return PipelineMetrics()


@pytest.fixture
def consumer(cache, sink, fast_retry, metrics) -> StreamConsumer:
    """StreamConsumer over in-memory backends with a 100 meter threshold."""
    return StreamConsumer(
        cache=cache,
        forwarder=EventForwarder(sink, retry_config=fast_retry),
        evaluator=MovementEvaluator(threshold_meters=100),
        region="eu-west-1",
        metrics=metrics,
    )
