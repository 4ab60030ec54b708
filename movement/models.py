"""
Data model of the location movement pipeline.

Wire names follow the inbound payload (``userID``, ``lat``, ``lng``);
Python attributes use snake_case and the models are populated and
dumped by alias.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_USER_ID_LENGTH = 256


class Classification(str, Enum):
    """Outcome of comparing a ping against the last cached position."""
    NEW = "NEW"
    UNCHANGED = "UNCHANGED"
    MOVED = "MOVED"

    @property
    def is_significant(self) -> bool:
        """NEW and MOVED pings are forwarded to the sink."""
        return self is not Classification.UNCHANGED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _reject_bool(v: Any) -> Any:
    # bool is an int subclass and would otherwise coerce to 0.0/1.0
    if isinstance(v, bool):
        raise ValueError("must be a number, not a boolean")
    return v


class LocationPing(BaseModel):
    """
    One raw location observation for a user, decoded from a stream record.

    Attributes:
        user_id: Identifier of the user (wire name ``userID``)
        lat: Latitude in decimal degrees (-90 to 90)
        lng: Longitude in decimal degrees (-180 to 180)
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        allow_inf_nan=False,
        frozen=True,
    )

    user_id: str = Field(alias="userID")
    lat: float
    lng: float

    @field_validator("user_id", mode="before")
    @classmethod
    def coerce_user_id(cls, v: Any) -> Any:
        """Accept integer identifiers, which producers occasionally send."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        """userID must be non-empty and of reasonable length."""
        v = v.strip()
        if not v:
            raise ValueError("userID cannot be empty")
        if len(v) > MAX_USER_ID_LENGTH:
            raise ValueError(f"userID cannot exceed {MAX_USER_ID_LENGTH} characters")
        return v

    @field_validator("lat", "lng", mode="before")
    @classmethod
    def reject_booleans(cls, v: Any) -> Any:
        return _reject_bool(v)

    @field_validator("lat")
    @classmethod
    def validate_lat(cls, v: float) -> float:
        if not -90 <= v <= 90:
            raise ValueError("Latitude must be between -90 and 90")
        return v

    @field_validator("lng")
    @classmethod
    def validate_lng(cls, v: float) -> float:
        if not -180 <= v <= 180:
            raise ValueError("Longitude must be between -180 and 180")
        return v


class CachedLocation(BaseModel):
    """
    Most recently accepted position of a user, as stored in the cache.

    ``recorded_at`` is None for values written before the pipeline
    stamped positions with the time they were stored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: str = Field(alias="userID")
    lat: float
    lng: float
    recorded_at: Optional[datetime] = Field(default=None, alias="recordedAt")

    @classmethod
    def from_ping(cls, ping: LocationPing, recorded_at: Optional[datetime] = None) -> "CachedLocation":
        return cls(
            user_id=ping.user_id,
            lat=ping.lat,
            lng=ping.lng,
            recorded_at=recorded_at or _utcnow(),
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class MovementEvent(BaseModel):
    """
    A NEW or MOVED ping, forwarded to the durable sink.

    The sink is append-only and delivery is at-least-once, so consumers
    of the sink must tolerate duplicates.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userID")
    lat: float
    lng: float
    classification: Classification
    distance_meters: Optional[float] = Field(default=None, alias="distanceMeters")
    observed_at: datetime = Field(default_factory=_utcnow, alias="observedAt")
    region: Optional[str] = None

    @classmethod
    def from_ping(
        cls,
        ping: LocationPing,
        classification: Classification,
        distance_meters: Optional[float] = None,
        region: Optional[str] = None,
    ) -> "MovementEvent":
        if not classification.is_significant:
            raise ValueError(f"{classification.value} pings are not forwarded")
        return cls(
            user_id=ping.user_id,
            lat=ping.lat,
            lng=ping.lng,
            classification=classification,
            distance_meters=distance_meters,
            region=region,
        )

    def to_document(self) -> dict[str, Any]:
        """JSON-compatible document appended to the sink."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
