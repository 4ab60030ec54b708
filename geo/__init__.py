"""Geographic helpers."""

from geo.distance import EARTH_RADIUS_KM, EARTH_RADIUS_M, distance

__all__ = ["EARTH_RADIUS_KM", "EARTH_RADIUS_M", "distance"]
