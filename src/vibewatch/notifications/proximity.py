"""
Radius membership for a report relative to the viewer.

`within_radius` is the two-valued check the pipeline historically used (missing data is
simply "not within"). `classify_proximity` keeps "unknown" apart from "too far" so the
caller can choose a policy for reports it cannot place.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from vibewatch.core.geo import haversine_km
from vibewatch.domain.models import GeoPoint, Report


class ProximityStatus(str, Enum):
    IN_RANGE = "in-range"
    OUT_OF_RANGE = "out-of-range"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProximityResult:
    status: ProximityStatus
    distance_km: float | None = None

    @property
    def in_range(self) -> bool:
        return self.status is ProximityStatus.IN_RANGE


def _check_radius(radius_km: float) -> None:
    if radius_km < 0:
        raise ValueError(f"radius_km must be >= 0, got {radius_km}")


def classify_proximity(user_location: GeoPoint | None, report: Report, radius_km: float) -> ProximityResult:
    """Place `report` relative to `user_location`.

    Raises:
        ValueError: If `radius_km` is negative.
    """
    _check_radius(radius_km)
    if user_location is None or report.coordinates is None:
        return ProximityResult(ProximityStatus.UNKNOWN)
    distance = haversine_km(user_location, report.coordinates)
    status = ProximityStatus.IN_RANGE if distance <= radius_km else ProximityStatus.OUT_OF_RANGE
    return ProximityResult(status, distance)


def within_radius(user_location: GeoPoint | None, report: Report, radius_km: float) -> bool:
    """True only when both locations are known and the report is within `radius_km`."""
    return classify_proximity(user_location, report, radius_km).in_range
