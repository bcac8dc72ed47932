"""
Per-event notification decisions.

For each new report the decider runs, in order (first match wins):
1. own report (skipped when no viewer is configured)
2. cooldown window still active
3. duplicate delivery of a report already decided
4. location unknown / outside the notification radius
5. classify severity, build title + message, mark the cooldown and emit

The decider is stateful (cooldown, viewer, location, recently decided ids) and is meant to
be driven by a single event-processing task; reads of its state from other threads are safe.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable

from vibewatch.config.settings import Settings
from vibewatch.core.geo import format_km
from vibewatch.core.time import from_unix
from vibewatch.domain.models import (
    GeoPoint,
    NotificationDecision,
    Report,
    Severity,
    SuppressionReason,
    VibeCategory,
)
from vibewatch.notifications.cooldown import CooldownState
from vibewatch.notifications.proximity import ProximityStatus, classify_proximity

logger = logging.getLogger(__name__)

EMERGENCY_TITLE = "Emergency Reported Nearby"
DEFAULT_TITLE = "New Safety Report"

CATEGORY_COPY: dict[VibeCategory, tuple[Severity, str]] = {
    VibeCategory.DANGEROUS: (Severity.DANGER, "High Risk Area Reported"),
    VibeCategory.SUSPICIOUS: (Severity.WARNING, "Suspicious Activity Reported"),
    VibeCategory.CROWDED: (Severity.WARNING, "Crowded Area Reported"),
    VibeCategory.NOISY: (Severity.WARNING, "Noisy Area Reported"),
}


def classify_severity(report: Report) -> Severity:
    if report.emergency:
        return Severity.EMERGENCY
    severity, _title = CATEGORY_COPY.get(report.category, (Severity.INFO, DEFAULT_TITLE))
    return severity


def should_push(report: Report) -> bool:
    """Push fan-out only for emergencies and reports of dangerous areas."""
    return report.emergency or report.category is VibeCategory.DANGEROUS


def render_copy(report: Report, distance_km: float | None) -> tuple[str, str]:
    """Return (title, message) for an accepted report."""
    where = f"{format_km(distance_km)}km away" if distance_km is not None else "nearby"
    if report.emergency:
        return EMERGENCY_TITLE, f"Emergency alert {where}"
    _severity, title = CATEGORY_COPY.get(report.category, (Severity.INFO, DEFAULT_TITLE))
    return title, f"{report.category.value} report {where}"


class NotificationDecider:
    """Turns incoming reports into notify/suppress decisions for one viewer."""

    def __init__(
        self,
        settings: Settings,
        *,
        cooldown: CooldownState | None = None,
        clock: Callable[[], float] = time.time,
        viewer_id: str | None = None,
        user_location: GeoPoint | None = None,
    ):
        cfg = settings.notifications
        if cfg.radius_km < 0:
            raise ValueError("notifications.radius_km must be >= 0")
        self._radius_km = float(cfg.radius_km)
        self._notify_on_unknown = bool(cfg.notify_on_unknown_location)
        self._dedup_size = int(cfg.dedup_cache_size)
        self.cooldown = cooldown or CooldownState(cfg.cooldown_seconds, cfg.cooldown_granularity)
        self._clock = clock
        self._lock = threading.Lock()
        self._viewer_id = viewer_id
        self._user_location = user_location
        self._decided: OrderedDict[int, None] = OrderedDict()

    @property
    def radius_km(self) -> float:
        return self._radius_km

    @property
    def viewer_id(self) -> str | None:
        with self._lock:
            return self._viewer_id

    @viewer_id.setter
    def viewer_id(self, value: str | None) -> None:
        with self._lock:
            self._viewer_id = value

    @property
    def user_location(self) -> GeoPoint | None:
        with self._lock:
            return self._user_location

    @user_location.setter
    def user_location(self, value: GeoPoint | None) -> None:
        with self._lock:
            self._user_location = value

    def update_preferences(self, settings: Settings) -> None:
        """Apply (already validated) per-user notification preferences."""
        cfg = settings.notifications
        self._radius_km = float(cfg.radius_km)
        self._notify_on_unknown = bool(cfg.notify_on_unknown_location)
        self.cooldown.window_seconds = float(cfg.cooldown_seconds)
        self.cooldown.granularity = cfg.cooldown_granularity

    def _seen(self, report_id: int) -> bool:
        if report_id in self._decided:
            self._decided.move_to_end(report_id)
            return True
        self._decided[report_id] = None
        if len(self._decided) > self._dedup_size:
            self._decided.popitem(last=False)
        return False

    def _suppress(self, report: Report, reason: SuppressionReason, now: float, **extra) -> NotificationDecision:
        logger.debug("Suppressing notification for report %s: %s", report.id, reason.value)
        return NotificationDecision(
            report_id=report.id,
            suppressed=True,
            reason=reason,
            decided_at=from_unix(now),
            **extra,
        )

    def decide(self, report: Report) -> NotificationDecision:
        now = float(self._clock())
        viewer_id = self.viewer_id
        user_location = self.user_location

        if viewer_id is not None and report.author_id == viewer_id:
            return self._suppress(report, SuppressionReason.OWN_REPORT, now)

        severity = classify_severity(report)
        key = self.cooldown.key_for(severity=severity.name.lower(), category=report.vibe_label)
        if self.cooldown.is_active(now, key):
            self._seen(report.id)
            return self._suppress(report, SuppressionReason.COOLDOWN_ACTIVE, now)

        if self._seen(report.id):
            return self._suppress(report, SuppressionReason.DUPLICATE, now)

        if not report.is_locatable:
            return self._suppress(report, SuppressionReason.UNRESOLVABLE_LOCATION, now)

        proximity = classify_proximity(user_location, report, self._radius_km)
        if proximity.status is ProximityStatus.OUT_OF_RANGE:
            return self._suppress(
                report, SuppressionReason.OUT_OF_RADIUS, now, distance_km=proximity.distance_km
            )
        if proximity.status is ProximityStatus.UNKNOWN and not self._notify_on_unknown:
            return self._suppress(report, SuppressionReason.UNRESOLVABLE_LOCATION, now)

        title, message = render_copy(report, proximity.distance_km)
        decision = NotificationDecision(
            report_id=report.id,
            suppressed=False,
            severity=severity,
            title=title,
            message=message,
            distance_km=proximity.distance_km,
            should_push=should_push(report),
            decided_at=from_unix(now),
        )
        self.cooldown.mark(now, key)
        logger.info("Notifying about report %s (%s): %s", report.id, severity.name.lower(), message)
        return decision
