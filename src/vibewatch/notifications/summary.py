"""
Periodic area summary.

Independently of per-event decisions (and of their cooldown), a timer periodically looks
at the recent reports around the viewer and, when enough of them are nearby, emits one
aggregated notification whose copy follows the most severe class present.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Sequence

from vibewatch.config.settings import Settings
from vibewatch.core.geo import round_half_up
from vibewatch.core.time import utc_now
from vibewatch.domain.models import GeoPoint, NotificationDecision, Report, Severity, VibeCategory
from vibewatch.ingestion.report_store import ReportFilters, ReportStore
from vibewatch.notifications.proximity import within_radius

logger = logging.getLogger(__name__)


def _hours_label(hours: float) -> str:
    return str(int(hours)) if float(hours).is_integer() else f"{round_half_up(hours, 1):g}"


def summarize_area(
    reports: Sequence[Report],
    user_location: GeoPoint | None,
    *,
    radius_km: float,
    lookback_hours: float = 1.0,
    min_reports: int = 3,
    now: datetime | None = None,
) -> NotificationDecision | None:
    """Build the aggregated notification, or None when fewer than `min_reports` qualify."""
    if user_location is None:
        return None
    now = now or utc_now()
    cutoff = now - timedelta(hours=lookback_hours)

    recent = [r for r in reports if r.created_at > cutoff and within_radius(user_location, r, radius_km)]
    if len(recent) < min_reports:
        return None

    hours = _hours_label(lookback_hours)
    emergencies = sum(1 for r in recent if r.emergency)
    dangerous = sum(1 for r in recent if not r.emergency and r.category is VibeCategory.DANGEROUS)

    if emergencies:
        severity = Severity.EMERGENCY
        title = "Multiple Emergencies Reported"
        message = f"{emergencies} emergency alerts in your area in the last {hours} hour(s)"
    elif dangerous:
        severity = Severity.DANGER
        title = "Safety Concerns Increasing"
        message = f"{len(recent)} safety reports in your area in the last {hours} hour(s)"
    else:
        severity = Severity.INFO
        title = "Community Activity"
        message = f"{len(recent)} new reports in your area in the last {hours} hour(s)"

    return NotificationDecision(
        kind="area-summary",
        suppressed=False,
        severity=severity,
        title=title,
        message=message,
        decided_at=now,
    )


class AreaSummaryJob:
    """Fetches a recent batch from the store and runs `summarize_area` for the viewer."""

    def __init__(
        self,
        settings: Settings,
        store: ReportStore,
        *,
        get_user_location: Callable[[], GeoPoint | None],
        get_radius_km: Callable[[], float] | None = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self._settings = settings
        self._store = store
        self._get_user_location = get_user_location
        self._get_radius_km = get_radius_km or (lambda: float(settings.notifications.radius_km))
        self._now = now

    async def run_once(self) -> NotificationDecision | None:
        """One summary round. Store failures are logged and yield no notification."""
        cfg = self._settings.area_summary
        user_location = self._get_user_location()
        if user_location is None:
            return None

        now = self._now()
        filters = ReportFilters(since=now - timedelta(hours=cfg.lookback_hours))
        try:
            reports = await asyncio.to_thread(self._store.query, filters, None, cfg.fetch_limit, 0)
        except Exception as exc:
            logger.warning("Area summary fetch failed: %s", str(exc))
            return None

        decision = summarize_area(
            reports,
            user_location,
            radius_km=self._get_radius_km(),
            lookback_hours=cfg.lookback_hours,
            min_reports=cfg.min_reports,
            now=now,
        )
        if decision is not None:
            logger.info("Area summary: %s", decision.message)
        return decision
