from __future__ import annotations

import math
from math import atan2, cos, radians, sin, sqrt
from typing import Protocol

"""
Geospatial helpers.

We keep a tiny geometry layer here so clustering and notification code can do distance
calculations without pulling in heavier GIS dependencies.

NaN inputs propagate to NaN outputs; callers guard against missing coordinates.
"""

EARTH_RADIUS_KM = 6371.0


class LatLon(Protocol):
    lat: float
    lon: float


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute great-circle (Haversine) distance in kilometers between two points in degrees."""
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)

    h = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2
    if h > 1.0:
        # Float error near antipodes.
        h = 1.0
    return EARTH_RADIUS_KM * 2 * atan2(sqrt(h), sqrt(1 - h))


def haversine_km(a: LatLon, b: LatLon) -> float:
    """`distance_km` for two point objects exposing `lat`/`lon`."""
    return distance_km(a.lat, a.lon, b.lat, b.lon)


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round like JavaScript's `Math.round` (halves go up), not banker's rounding."""
    factor = 10**ndigits
    return math.floor(value * factor + 0.5) / factor


def round_km(km: float) -> float:
    """Round a distance to one decimal kilometer."""
    return round_half_up(km, 1)


def format_km(km: float) -> str:
    """Render a one-decimal distance without a trailing `.0` (`2.0 -> "2"`, `2.24 -> "2.2"`)."""
    value = round_km(km)
    if value == int(value):
        return str(int(value))
    return f"{value:.1f}"


def format_distance(km: float) -> str:
    """Human-readable distance: meters below 1 km, one-decimal kilometers otherwise."""
    if km < 1:
        return f"{int(round_half_up(km * 1000))}m"
    return f"{km:.1f}km"
