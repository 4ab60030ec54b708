"""
Stream record decoding.

A record's data is the base64 encoding of a UTF-8 JSON object
``{"userID": ..., "lat": ..., "lng": ...}``. Records that cannot be
decoded raise RecordDecodeError; decoded objects that fail validation
raise PingValidationError. Both are recovered by skipping the record.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from errors.exceptions import invalid_record, validation_error
from movement.models import LocationPing


@dataclass(frozen=True)
class StreamRecord:
    """
    One record of a partitioned stream.

    Attributes:
        partition: Identifier of the partition (shard) the record came from
        sequence_number: Position of the record within its partition
        partition_key: Key the producer partitioned by (the userID)
        data: Base64-encoded payload
    """
    partition: str
    sequence_number: str
    data: str
    partition_key: Optional[str] = None


def decode_payload(data: str) -> dict:
    """Decode base64 -> UTF-8 -> JSON object."""
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise invalid_record(f"Record data is not valid base64: {e}") from e

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise invalid_record(f"Record data is not valid UTF-8: {e}") from e

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise invalid_record(f"Record data is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise invalid_record(
            "Record data must be a JSON object",
            details={"json_type": type(payload).__name__},
        )
    return payload


def decode_record(record: StreamRecord) -> LocationPing:
    """
    Decode and validate the ping carried by ``record``.

    Raises:
        RecordDecodeError: If the data is not base64 UTF-8 JSON object.
        PingValidationError: If a field is missing or out of range.
    """
    payload = decode_payload(record.data)

    try:
        return LocationPing.model_validate(payload)
    except ValidationError as e:
        raise validation_error(
            "Location ping failed validation",
            details={
                "sequence_number": record.sequence_number,
                "validation_errors": e.errors(include_url=False, include_context=False, include_input=False),
            },
        ) from e


def encode_ping(payload: dict) -> str:
    """Base64-encode a ping payload the way producers put it on the stream."""
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")
