"""
Integration tests for API endpoints.

Stream invocation envelopes are posted to the running application and
the outcome is checked against the in-memory sink and cache.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from errors.exceptions import CacheError

# Mark all tests in this module as integration tests
pytestmark = pytest.mark.integration


def cached(client, user_id):
    cache = client.app.state.consumer.cache
    return asyncio.run(cache.get(user_id))


class TestBatchEndpoint:

    def test_new_users_are_forwarded(self, client, sink_events, build_stream_event, location_pings):
        response = client.post("/api/batches", json=build_stream_event(location_pings))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert body["new"] == 3
        assert body["last_sequence_number"] == "3"
        assert [e.user_id for e in sink_events] == [p["userID"] for p in location_pings]
        for ping in location_pings:
            assert cached(client, ping["userID"]).lat == ping["lat"]

    def test_movement_scenario(self, client, sink_events, build_stream_event):
        pings = [
            {"userID": "abc", "lat": 10.0, "lng": 10.0},
            {"userID": "abc", "lat": 10.0, "lng": 10.0},
            {"userID": "abc", "lat": 10.01, "lng": 10.0},
        ]

        body = client.post("/api/batches", json=build_stream_event(pings)).json()

        assert (body["new"], body["unchanged"], body["moved"]) == (1, 1, 1)
        documents = [e.to_document() for e in sink_events]
        assert [d["classification"] for d in documents] == ["NEW", "MOVED"]
        assert documents[1]["userID"] == "abc"
        assert documents[1]["lat"] == 10.01
        assert documents[1]["distanceMeters"] > 1000
        assert documents[1]["region"] == "eu-west-1"

    def test_invalid_records_are_skipped(self, client, sink_events, build_stream_event):
        pings = [
            {"userID": "a", "lat": 1.0, "lng": 1.0},
            {"userID": "b", "lng": 2.0},
            {"userID": "c", "lat": 3.0, "lng": 3.0},
            {},
        ]
        event = build_stream_event(pings, raw_data={3: "not base64!!"})

        response = client.post("/api/batches", json=event)

        assert response.status_code == 200
        assert response.json()["skipped"] == 2
        assert [e.user_id for e in sink_events] == ["a", "c"]
        assert cached(client, "b") is None

    def test_empty_batch(self, client):
        response = client.post("/api/batches", json={"Records": []})

        assert response.status_code == 200
        assert response.json()["total"] == 0

    def test_request_id_is_echoed(self, client, build_stream_event):
        response = client.post(
            "/api/batches",
            json=build_stream_event([{"userID": "a", "lat": 1.0, "lng": 1.0}]),
            headers={"X-Request-ID": "invocation-1"},
        )

        assert response.headers["X-Request-ID"] == "invocation-1"

    def test_malformed_envelope_is_invalid_request(self, client):
        response = client.post("/api/batches", json={"records": "nope"})

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "INVALID_REQUEST"
        assert body["details"]["validation_errors"]

    def test_cache_failure_fails_the_batch(self, client, sink_events, build_stream_event):
        cache = client.app.state.consumer.cache
        cache.get = AsyncMock(side_effect=CacheError("cache unreachable", operation="get"))

        response = client.post(
            "/api/batches",
            json=build_stream_event([{"userID": "a", "lat": 1.0, "lng": 1.0}], start=41),
            headers={"X-Request-ID": "invocation-2"},
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error_code"] == "BATCH_FAILED"
        assert body["details"]["sequence_number"] == "41"
        assert body["request_id"] == "invocation-2"
        assert sink_events == []


class TestMetricsEndpoint:

    def test_metrics_reflect_processed_batches(self, client, build_stream_event, location_pings):
        client.post("/api/batches", json=build_stream_event(location_pings))

        snapshot = client.get("/api/metrics").json()

        assert snapshot["batches_processed"] == 1
        assert snapshot["records_processed"] == 3
        assert snapshot["new_users"] == 3
        assert snapshot["events_forwarded"] == 3


class TestHealthEndpoints:

    def test_health_endpoint_returns_ok(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["service"] == "Location Movement Pipeline"

    def test_health_ready_reports_dependencies(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert {d["name"] for d in body["dependencies"]} == {"location_cache", "event_sink"}
        assert body["circuit_breaker"]["state"] == "closed"

    def test_health_ready_returns_503_when_sink_is_down(self, client):
        client.app.state.consumer.forwarder.sink.health_check = AsyncMock(return_value=False)

        response = client.get("/health/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["failure_reasons"][0]["dependency"] == "event_sink"

    def test_health_live_endpoint_returns_alive(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"
