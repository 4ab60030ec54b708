"""
Movement classification.

A ping is compared with the user's last cached position:

- no cached position       -> NEW
- distance > threshold     -> MOVED
- distance <= threshold    -> UNCHANGED

The boundary is exclusive: a ping exactly ``threshold`` meters away
is UNCHANGED.
"""

from dataclasses import dataclass
from typing import Optional

from geo.distance import distance
from movement.models import CachedLocation, Classification, LocationPing

DEFAULT_THRESHOLD_METERS = 100.0


@dataclass(frozen=True)
class Assessment:
    """Classification of a ping together with the distance it was based on."""
    classification: Classification
    distance_meters: Optional[float] = None


def evaluate(
    previous: Optional[CachedLocation],
    ping: LocationPing,
    threshold_meters: float,
) -> Classification:
    """Classify ``ping`` against the previously cached position."""
    return assess(previous, ping, threshold_meters).classification


def assess(
    previous: Optional[CachedLocation],
    ping: LocationPing,
    threshold_meters: float,
) -> Assessment:
    if previous is None:
        return Assessment(Classification.NEW)

    moved = distance(previous.lat, previous.lng, ping.lat, ping.lng)
    if moved > threshold_meters:
        return Assessment(Classification.MOVED, moved)
    return Assessment(Classification.UNCHANGED, moved)


class MovementEvaluator:
    """
    Classifier bound to a configured threshold.

    Attributes:
        threshold_meters: Distance in meters a user must move, strictly,
            for a ping to be classified MOVED
    """

    def __init__(self, threshold_meters: float = DEFAULT_THRESHOLD_METERS):
        if not threshold_meters > 0:
            raise ValueError("threshold_meters must be a positive number")
        self.threshold_meters = threshold_meters

    @classmethod
    def from_settings(cls, settings) -> "MovementEvaluator":
        return cls(threshold_meters=settings.movement_threshold_meters)

    def evaluate(self, previous: Optional[CachedLocation], ping: LocationPing) -> Classification:
        return evaluate(previous, ping, self.threshold_meters)

    def assess(self, previous: Optional[CachedLocation], ping: LocationPing) -> Assessment:
        return assess(previous, ping, self.threshold_meters)

    def __repr__(self) -> str:
        return f"MovementEvaluator(threshold_meters={self.threshold_meters})"
