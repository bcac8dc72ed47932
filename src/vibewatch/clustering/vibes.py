"""
Vibe analysis.

Summarizes a set of reports into category counts and percentages:
- `analyze_vibes`: dominant category + the next three (used per cluster and for
  on-demand "local sentiment" queries)
- safety helpers: a 0..100 safety score, hourly safety trend points and a coarse
  trend/level classification for dashboards

All functions are pure and safe to call concurrently over an immutable snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Literal, Sequence

from vibewatch.core.geo import round_half_up
from vibewatch.core.time import utc_now
from vibewatch.domain.models import GeoPoint, Report, VibeCategory, VibeStat, VibeSummary
from vibewatch.notifications.proximity import within_radius

UNKNOWN_VIBE = VibeStat(category="unknown", count=0, percentage=0)

POSITIVE_SAFETY_VIBES = frozenset({VibeCategory.SAFE.value, VibeCategory.CALM.value, VibeCategory.QUIET.value})
NEGATIVE_SAFETY_VIBES = frozenset({VibeCategory.DANGEROUS.value, VibeCategory.SUSPICIOUS.value})

NEUTRAL_SAFETY_SCORE = 50


def _percentage(count: int, total: int) -> int:
    return int(round_half_up(100 * count / total))


def analyze_vibes(reports: Sequence[Report]) -> VibeSummary:
    """Count categories and rank them.

    Ranking is by descending count; ties keep first-encountered order. Percentages are
    rounded independently and may not sum to exactly 100.
    """
    if not reports:
        return VibeSummary(dominant_vibe=UNKNOWN_VIBE, top_vibes=[])

    counts: dict[str, int] = {}
    for report in reports:
        label = report.vibe_label
        counts[label] = counts.get(label, 0) + 1

    total = len(reports)
    # `sorted` is stable, so equal counts stay in insertion (first-seen) order.
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    stats = [VibeStat(category=c, count=n, percentage=_percentage(n, total)) for c, n in ranked]
    return VibeSummary(dominant_vibe=stats[0], top_vibes=stats[1:4])


def local_sentiment(
    reports: Iterable[Report],
    user_location: GeoPoint | None,
    radius_km: float,
) -> VibeSummary:
    """Vibe summary of the reports within `radius_km` of the user (unknown if no location)."""
    nearby = [r for r in reports if within_radius(user_location, r, radius_km)]
    return analyze_vibes(nearby)


def safety_score(reports: Sequence[Report]) -> int:
    """Percentage (0..100) of positive-safety reports; higher is safer. Neutral 50 when empty."""
    if not reports:
        return NEUTRAL_SAFETY_SCORE
    positive = sum(1 for r in reports if r.vibe_label in POSITIVE_SAFETY_VIBES)
    return _percentage(positive, len(reports))


@dataclass(frozen=True)
class SafetyTrendPoint:
    """Safety metrics for one hourly bucket."""

    start: datetime
    safety_score: int
    total_reports: int
    positive_reports: int
    negative_reports: int


def safety_trend_points(
    reports: Sequence[Report],
    *,
    hours_back: int = 24,
    now: datetime | None = None,
) -> list[SafetyTrendPoint]:
    """Bucket reports into `hours_back` hourly windows ending at `now` (oldest first)."""
    if hours_back < 0:
        raise ValueError("hours_back must be >= 0")
    now = now or utc_now()
    points: list[SafetyTrendPoint] = []
    for i in range(hours_back - 1, -1, -1):
        start = now - timedelta(hours=i)
        end = start + timedelta(hours=1)
        bucket = [r for r in reports if start <= r.created_at < end]
        positive = sum(1 for r in bucket if r.vibe_label in POSITIVE_SAFETY_VIBES)
        negative = sum(1 for r in bucket if r.vibe_label in NEGATIVE_SAFETY_VIBES)
        points.append(
            SafetyTrendPoint(
                start=start,
                safety_score=_percentage(positive, len(bucket)) if bucket else NEUTRAL_SAFETY_SCORE,
                total_reports=len(bucket),
                positive_reports=positive,
                negative_reports=negative,
            )
        )
    return points


SafetyLevel = Literal["safe", "moderate", "caution", "unknown"]
SafetyTrend = Literal["improving", "declining", "stable", "unknown"]


def safety_level(score: float) -> SafetyLevel:
    if score >= 70:
        return "safe"
    if score >= 40:
        return "moderate"
    if score >= 0:
        return "caution"
    return "unknown"


def safety_trend(points: Sequence[SafetyTrendPoint]) -> SafetyTrend:
    """Compare the first and last of the three most recent points (±5 points is stable)."""
    if len(points) < 3:
        return "unknown"
    recent = points[-3:]
    diff = recent[-1].safety_score - recent[0].safety_score
    if diff > 5:
        return "improving"
    if diff < -5:
        return "declining"
    return "stable"
