"""
Elasticsearch movement event sink.

Events are appended to a single index with server-generated document
ids, so every append creates a new document and the index behaves as
an append-only log. Downstream consumers must tolerate duplicates.
"""

import logging
from typing import Any, Dict, Optional

from elasticsearch import ApiError, AsyncElasticsearch

from forwarding.sink import EventSink, SinkAck, SinkRejectedError
from movement.models import MovementEvent

logger = logging.getLogger(__name__)

# 429 is throttling, worth retrying like a 5xx
RETRYABLE_STATUS_CODES = {408, 429}


def movement_events_mapping() -> Dict[str, Any]:
    return {
        "mappings": {
            "properties": {
                "userID": {"type": "keyword"},
                "lat": {"type": "double"},
                "lng": {"type": "double"},
                "classification": {"type": "keyword"},
                "distanceMeters": {"type": "double"},
                "observedAt": {"type": "date"},
                "region": {"type": "keyword"},
            }
        }
    }


class ElasticsearchEventSink(EventSink):
    """
    Append-only Elasticsearch sink.

    Attributes:
        endpoint: Elasticsearch URL
        index: Destination index (the configured sink stream name)
        client: AsyncElasticsearch client (created by connect() unless injected)
    """

    def __init__(
        self,
        endpoint: Optional[str],
        index: str,
        api_key: Optional[str] = None,
        client: Optional[AsyncElasticsearch] = None,
        request_timeout: float = 10.0,
    ):
        self.endpoint = endpoint
        self.index = index
        self.name = index
        self.api_key = api_key
        self.request_timeout = request_timeout
        self.client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        if self.client is None:
            if not self.endpoint:
                raise ValueError("elastic_endpoint must be set to use the Elasticsearch sink")
            self.client = AsyncElasticsearch(
                self.endpoint,
                api_key=self.api_key.strip('"') if self.api_key else None,
                request_timeout=self.request_timeout,
            )
            self._owns_client = True
        await self.setup_index()

    async def disconnect(self) -> None:
        if self.client is not None and self._owns_client:
            await self.client.close()
            self.client = None

    async def setup_index(self) -> None:
        """Create the destination index with its mapping if it does not exist."""
        try:
            if not await self.client.indices.exists(index=self.index):
                await self.client.indices.create(index=self.index, **movement_events_mapping())
                logger.info("Created movement event index %s", self.index)
            else:
                logger.info("Movement event index already exists: %s", self.index)
                await self.validate_mapping()
        except Exception as e:
            # Appends auto-create the index, only the explicit mapping is lost
            logger.error("Failed to set up movement event index %s: %s", self.index, e)

    async def validate_mapping(self) -> Dict[str, Any]:
        """
        Compare the mapping of an existing index with the expected one.

        Mismatches are logged as warnings and returned; they are not
        fatal, since documents are still appended.

        Returns:
            {"valid": bool, "missing_fields": [...], "type_mismatches": [...]}
        """
        result: Dict[str, Any] = {"valid": True, "missing_fields": [], "type_mismatches": []}

        response = await self.client.indices.get_mapping(index=self.index)
        actual = response.get(self.index, {}).get("mappings", {}).get("properties", {})
        expected = movement_events_mapping()["mappings"]["properties"]

        for field_name, expected_config in expected.items():
            if field_name not in actual:
                result["missing_fields"].append(field_name)
                continue
            actual_type = actual[field_name].get("type")
            if actual_type != expected_config["type"]:
                result["type_mismatches"].append(
                    f"Field '{field_name}': expected {expected_config['type']}, got {actual_type}"
                )

        # Fields missing from the mapping are added dynamically on first append
        if result["type_mismatches"]:
            result["valid"] = False
            for mismatch in result["type_mismatches"]:
                logger.warning("Mapping mismatch in %s: %s", self.index, mismatch)
        if result["missing_fields"]:
            logger.info(
                "Fields not yet mapped in %s: %s", self.index, result["missing_fields"]
            )
        return result

    async def append(self, event: MovementEvent) -> SinkAck:
        if self.client is None:
            raise RuntimeError("Elasticsearch client not connected. Call connect() first.")

        try:
            response = await self.client.index(
                index=self.index, document=event.to_document(), op_type="create"
            )
        except ApiError as e:
            status = e.meta.status
            if 400 <= status < 500 and status not in RETRYABLE_STATUS_CODES:
                raise SinkRejectedError(
                    f"Index {self.index} rejected movement event for {event.user_id}: {e}"
                ) from e
            raise

        return SinkAck(sink=self.index, record_id=response["_id"])

    async def health_check(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except Exception:
            logger.warning("Elasticsearch health check failed", exc_info=True)
            return False
