"""Tests for the Elasticsearch movement event sink against a mocked client."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from elasticsearch import ApiError

from forwarding import ElasticsearchEventSink, SinkAck, SinkRejectedError, movement_events_mapping
from movement.models import Classification, LocationPing, MovementEvent


def make_event() -> MovementEvent:
    return MovementEvent.from_ping(
        LocationPing(userID="abc", lat=10.01, lng=10.0),
        Classification.MOVED,
        distance_meters=1111.95,
        region="eu-west-1",
    )


def api_error(status: int) -> ApiError:
    meta = MagicMock()
    meta.status = status
    return ApiError(f"status {status}", meta=meta, body={})


class TestElasticsearchEventSink:

    @pytest.mark.asyncio
    async def test_append_creates_a_new_document(self, mock_elasticsearch):
        sink = ElasticsearchEventSink(None, "movement-events", client=mock_elasticsearch)
        event = make_event()

        ack = await sink.append(event)

        assert ack == SinkAck(sink="movement-events", record_id="doc-1")
        kwargs = mock_elasticsearch.index.await_args.kwargs
        assert kwargs["index"] == "movement-events"
        assert kwargs["op_type"] == "create"
        assert "id" not in kwargs
        assert kwargs["document"] == event.to_document()

    @pytest.mark.asyncio
    async def test_client_error_is_a_rejection(self, mock_elasticsearch):
        mock_elasticsearch.index.side_effect = api_error(400)
        sink = ElasticsearchEventSink(None, "movement-events", client=mock_elasticsearch)

        with pytest.raises(SinkRejectedError):
            await sink.append(make_event())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 503])
    async def test_throttling_and_server_errors_propagate(self, mock_elasticsearch, status):
        mock_elasticsearch.index.side_effect = api_error(status)
        sink = ElasticsearchEventSink(None, "movement-events", client=mock_elasticsearch)

        with pytest.raises(ApiError):
            await sink.append(make_event())

    @pytest.mark.asyncio
    async def test_append_before_connect_raises(self):
        sink = ElasticsearchEventSink("http://localhost:9200", "movement-events")

        with pytest.raises(RuntimeError):
            await sink.append(make_event())

    @pytest.mark.asyncio
    async def test_connect_creates_missing_index(self, mock_elasticsearch):
        mock_elasticsearch.indices.exists.return_value = False
        sink = ElasticsearchEventSink(None, "movement-events", client=mock_elasticsearch)

        await sink.connect()

        mock_elasticsearch.indices.create.assert_awaited_once_with(
            index="movement-events", **movement_events_mapping()
        )

    @pytest.mark.asyncio
    async def test_connect_without_endpoint_raises(self):
        sink = ElasticsearchEventSink(None, "movement-events")

        with pytest.raises(ValueError):
            await sink.connect()

    @pytest.mark.asyncio
    async def test_health_check(self, mock_elasticsearch):
        sink = ElasticsearchEventSink(None, "movement-events", client=mock_elasticsearch)
        assert await sink.health_check() is True

        mock_elasticsearch.ping = AsyncMock(side_effect=ConnectionError("down"))
        assert await sink.health_check() is False


class TestMappingValidation:

    @staticmethod
    def mapping_response(properties):
        return {"movement-events": {"mappings": {"properties": properties}}}

    @pytest.mark.asyncio
    async def test_matching_mapping_is_valid(self, mock_elasticsearch):
        expected = movement_events_mapping()["mappings"]["properties"]
        mock_elasticsearch.indices.get_mapping.return_value = self.mapping_response(expected)
        sink = ElasticsearchEventSink(None, "movement-events", client=mock_elasticsearch)

        result = await sink.validate_mapping()

        assert result == {"valid": True, "missing_fields": [], "type_mismatches": []}

    @pytest.mark.asyncio
    async def test_type_mismatch_is_reported(self, mock_elasticsearch):
        properties = dict(movement_events_mapping()["mappings"]["properties"])
        properties["userID"] = {"type": "text"}
        mock_elasticsearch.indices.get_mapping.return_value = self.mapping_response(properties)
        sink = ElasticsearchEventSink(None, "movement-events", client=mock_elasticsearch)

        result = await sink.validate_mapping()

        assert result["valid"] is False
        assert result["type_mismatches"] == ["Field 'userID': expected keyword, got text"]

    @pytest.mark.asyncio
    async def test_unmapped_fields_do_not_invalidate(self, mock_elasticsearch):
        mock_elasticsearch.indices.get_mapping.return_value = self.mapping_response(
            {"userID": {"type": "keyword"}}
        )
        sink = ElasticsearchEventSink(None, "movement-events", client=mock_elasticsearch)

        result = await sink.validate_mapping()

        assert result["valid"] is True
        assert "distanceMeters" in result["missing_fields"]

    @pytest.mark.asyncio
    async def test_connect_validates_existing_index(self, mock_elasticsearch):
        sink = ElasticsearchEventSink(None, "movement-events", client=mock_elasticsearch)

        await sink.connect()

        mock_elasticsearch.indices.create.assert_not_awaited()
        mock_elasticsearch.indices.get_mapping.assert_awaited_once_with(index="movement-events")
