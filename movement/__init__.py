"""
Movement classification for location pings.

This module provides the pipeline data model and the evaluator that
decides whether a ping is a NEW user, an UNCHANGED position or a
significant MOVED position.
"""

from movement.evaluator import (
    DEFAULT_THRESHOLD_METERS,
    Assessment,
    MovementEvaluator,
    assess,
    evaluate,
)
from movement.models import (
    CachedLocation,
    Classification,
    LocationPing,
    MovementEvent,
)

__all__ = [
    "DEFAULT_THRESHOLD_METERS",
    "Assessment",
    "MovementEvaluator",
    "assess",
    "evaluate",
    "CachedLocation",
    "Classification",
    "LocationPing",
    "MovementEvent",
]
