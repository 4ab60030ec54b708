"""
Integration test configuration and fixtures.

The application is started through its lifespan with in-memory cache
and sink backends, so the HTTP surface can be exercised end to end
without Redis or Elasticsearch.
"""
import base64
import json
import os
import uuid
from typing import Any, Dict, List, Optional
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from config.settings import Settings
from main import create_app
from telemetry.metrics import metrics


def encode(payload: Any) -> str:
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def stream_event(
    payloads: List[Any],
    shard_id: str = "shardId-000000000000",
    start: int = 1,
    raw_data: Optional[Dict[int, str]] = None,
) -> Dict[str, Any]:
    """
    Build a stream invocation envelope.

    Args:
        payloads: Ping payloads, base64-encoded into the records
        shard_id: Shard every record belongs to
        start: Sequence number of the first record
        raw_data: Index -> raw data replacing the encoded payload
    """
    raw_data = raw_data or {}
    records = []
    for i, payload in enumerate(payloads):
        sequence_number = str(start + i)
        records.append({
            "eventID": f"{shard_id}:{sequence_number}",
            "eventSource": "aws:kinesis",
            "kinesis": {
                "partitionKey": str(payload.get("userID", "")) if isinstance(payload, dict) else "",
                "sequenceNumber": sequence_number,
                "data": raw_data.get(i, encode(payload)),
            },
        })
    return {"Records": records}


def generate_user_id(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def build_stream_event():
    """Factory for stream invocation envelopes."""
    return stream_event


@pytest.fixture
def integration_settings() -> Settings:
    with patch.dict(os.environ, {}, clear=True):
        return Settings(
            cache_backend="memory",
            sink_backend="memory",
            movement_threshold=100,
            forward_initial_delay_seconds=0,
        )


@pytest.fixture
def client(integration_settings):
    """TestClient with the application lifespan running."""
    metrics.reset()
    app = create_app(integration_settings)
    with TestClient(app) as test_client:
        yield test_client
    metrics.reset()


@pytest.fixture
def sink_events(client) -> list:
    """Events appended to the in-memory sink of the running app."""
    return client.app.state.consumer.forwarder.sink.events


@pytest.fixture
def location_pings() -> List[Dict[str, Any]]:
    """Pings of distinct users around Lagos."""
    return [
        {"userID": generate_user_id(), "lat": 6.5244, "lng": 3.3792},
        {"userID": generate_user_id(), "lat": 6.4550, "lng": 3.3941},
        {"userID": generate_user_id(), "lat": 6.6018, "lng": 3.3515},
    ]
