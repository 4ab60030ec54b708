"""Great-circle distance between two WGS84 points, pure Python."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_M = EARTH_RADIUS_KM * 1000.0


def _central_angle(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    for value in (lat1, lng1, lat2, lng2):
        if not math.isfinite(value):
            raise ValueError(f"Coordinates must be finite numbers, got {value!r}")

    rlat1, rlng1 = math.radians(lat1), math.radians(lng1)
    rlat2, rlng2 = math.radians(lat2), math.radians(lng2)

    dlat = rlat2 - rlat1
    dlng = rlng2 - rlng1

    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlng / 2) ** 2
    # Rounding can push a marginally outside [0, 1] for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters.

    Uses the haversine formula on a sphere with the mean Earth radius.
    Inputs are decimal degrees.

    Raises:
        ValueError: if any coordinate is NaN or infinite.
    """
    return EARTH_RADIUS_M * _central_angle(lat1, lng1, lat2, lng2)

