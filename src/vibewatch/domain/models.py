"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- store rows and change-feed payloads (`Report`, `ChangeEvent`)
- derived dashboard output (`Cluster`, `VibeSummary`)
- notification pipeline output (`NotificationDecision`)

A report is a tagged union: `VibeReport` (a categorized sighting) or `EmergencyReport`
(an SOS alert). Both share `ReportBase`; `parse_report` picks the variant from the
store's `emergency` column.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vibewatch.core.time import ensure_tz, parse_datetime


class GeoPoint(BaseModel):
    """A geographic point in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class VibeCategory(str, Enum):
    SAFE = "safe"
    CALM = "calm"
    LIVELY = "lively"
    FESTIVE = "festive"
    CROWDED = "crowded"
    SUSPICIOUS = "suspicious"
    DANGEROUS = "dangerous"
    NOISY = "noisy"
    QUIET = "quiet"
    # Infrastructure reports.
    STREETLIGHT = "streetlight"
    SIDEWALK = "sidewalk"
    CONSTRUCTION = "construction"
    POTHOLE = "pothole"
    TRAFFIC = "traffic"
    OTHER = "other"


EMERGENCY_LABEL = "emergency"


class VoteCounts(BaseModel):
    upvotes: int = Field(0, ge=0)
    downvotes: int = Field(0, ge=0)


class ReportBase(BaseModel):
    """Fields shared by every report variant. Immutable per snapshot."""

    model_config = ConfigDict(frozen=True)

    id: int
    coordinates: GeoPoint | None = None
    location_name: str | None = None
    author_id: str | None = None
    created_at: datetime
    votes: VoteCounts = Field(default_factory=VoteCounts)

    @field_validator("created_at")
    @classmethod
    def _aware_created_at(cls, value: datetime) -> datetime:
        return ensure_tz(value, "UTC")

    @property
    def has_location_name(self) -> bool:
        return bool(self.location_name and self.location_name.strip())

    @property
    def is_locatable(self) -> bool:
        return self.coordinates is not None or self.has_location_name

    @property
    def vibe_label(self) -> str:
        category = getattr(self, "category", None)
        return category.value if category is not None else EMERGENCY_LABEL


class VibeReport(ReportBase):
    """A categorized vibe sighting (safe, crowded, dangerous, ...)."""

    emergency: Literal[False] = False
    category: VibeCategory


class EmergencyReport(ReportBase):
    """An SOS alert. `category` is informational only and never drives severity."""

    emergency: Literal[True] = True
    category: VibeCategory | None = None


Report = Union[VibeReport, EmergencyReport]


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def parse_report(row: Mapping[str, Any], *, timezone: str = "UTC") -> Report:
    """Build a `Report` variant from a store row.

    Expected columns: `id, user_id, vibe_type, location, latitude, longitude, emergency,
    upvotes, downvotes, created_at`. Both coordinates must be present for the report to
    carry coordinates.

    Raises:
        ValueError: If required fields are missing or invalid (including unknown categories
            and values of the wrong type, such as a list where a number is expected).
    """
    try:
        return _parse_report_row(row, timezone)
    except TypeError as exc:
        raise ValueError(f"report row {row.get('id')!r} has a field of the wrong type: {exc}") from exc


def _parse_report_row(row: Mapping[str, Any], timezone: str) -> Report:
    if row.get("id") is None:
        raise ValueError("report row is missing 'id'")
    if not row.get("created_at"):
        raise ValueError(f"report row {row.get('id')} is missing 'created_at'")

    lat = _optional_float(row.get("latitude"))
    lon = _optional_float(row.get("longitude"))
    created_at = row["created_at"]
    if isinstance(created_at, str):
        created_at = parse_datetime(created_at, timezone)

    common: dict[str, Any] = {
        "id": int(row["id"]),
        "coordinates": GeoPoint(lat=lat, lon=lon) if lat is not None and lon is not None else None,
        "location_name": row.get("location"),
        "author_id": str(row["user_id"]) if row.get("user_id") is not None else None,
        "created_at": created_at,
        "votes": VoteCounts(
            upvotes=int(row.get("upvotes") or 0),
            downvotes=int(row.get("downvotes") or 0),
        ),
    }
    vibe_type = row.get("vibe_type")
    if row.get("emergency"):
        return EmergencyReport(category=vibe_type or None, **common)
    if not vibe_type:
        raise ValueError(f"report row {row['id']} has no vibe_type")
    return VibeReport(category=vibe_type, **common)


def report_to_row(report: Report) -> dict[str, Any]:
    """Inverse of `parse_report`, used for push payloads."""
    return {
        "id": report.id,
        "user_id": report.author_id,
        "vibe_type": report.category.value if report.category is not None else None,
        "location": report.location_name,
        "latitude": report.coordinates.lat if report.coordinates else None,
        "longitude": report.coordinates.lon if report.coordinates else None,
        "emergency": report.emergency,
        "upvotes": report.votes.upvotes,
        "downvotes": report.votes.downvotes,
        "created_at": report.created_at.isoformat(),
    }


class VibeStat(BaseModel):
    category: str
    count: int = Field(..., ge=0)
    percentage: int = Field(..., ge=0, le=100)


class VibeSummary(BaseModel):
    dominant_vibe: VibeStat
    top_vibes: list[VibeStat] = Field(default_factory=list)


class Cluster(BaseModel):
    """A derived, ephemeral group of co-located reports. Never persisted."""

    id: str
    center: GeoPoint
    members: list[Report] = Field(..., min_length=1)
    location_name: str
    dominant_vibe: VibeStat
    top_vibes: list[VibeStat] = Field(default_factory=list)
    distance_from_user: float = Field(0.0, ge=0)
    text_grouped: bool = False
    display_name: str | None = None

    @property
    def report_count(self) -> int:
        return len(self.members)


class Severity(IntEnum):
    INFO = 1
    WARNING = 2
    DANGER = 3
    EMERGENCY = 4

    @property
    def level(self) -> Literal["info", "warning", "error"]:
        if self >= Severity.DANGER:
            return "error"
        if self is Severity.WARNING:
            return "warning"
        return "info"


class SuppressionReason(str, Enum):
    OWN_REPORT = "own-report"
    COOLDOWN_ACTIVE = "cooldown-active"
    DUPLICATE = "duplicate"
    OUT_OF_RADIUS = "out-of-radius"
    UNRESOLVABLE_LOCATION = "unresolvable-location"


class NotificationDecision(BaseModel):
    """Outcome of running one report (or one area batch) through the pipeline."""

    kind: Literal["report", "area-summary"] = "report"
    report_id: int | None = None
    suppressed: bool
    reason: SuppressionReason | None = None
    severity: Severity | None = None
    title: str = ""
    message: str = ""
    distance_km: float | None = None
    should_push: bool = False
    decided_at: datetime

    @property
    def level(self) -> str | None:
        return self.severity.level if self.severity is not None else None


ChangeType = Literal["insert", "update", "delete"]


class ChangeEvent(BaseModel):
    """One change-feed delivery for a watched collection."""

    collection: str
    event_type: ChangeType
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None

    @field_validator("event_type", mode="before")
    @classmethod
    def _normalize_event_type(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @property
    def record_id(self) -> int | None:
        for payload in (self.new, self.old):
            if payload and payload.get("id") is not None:
                return int(payload["id"])
        return None
