from datetime import datetime, timedelta, timezone

from vibewatch.config.settings import Settings
from vibewatch.domain.models import EmergencyReport, GeoPoint, Severity, VibeReport
from vibewatch.notifications.summary import AreaSummaryJob, summarize_area

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
USER = GeoPoint(lat=30.0, lon=31.0)


def _vibe(report_id, category="lively", *, lat=30.001, minutes_ago=10):
    return VibeReport(
        id=report_id,
        category=category,
        coordinates=GeoPoint(lat=lat, lon=31.0),
        created_at=NOW - timedelta(minutes=minutes_ago),
    )


def _emergency(report_id, *, minutes_ago=10):
    return EmergencyReport(
        id=report_id,
        coordinates=GeoPoint(lat=30.001, lon=31.0),
        created_at=NOW - timedelta(minutes=minutes_ago),
    )


def test_below_threshold_yields_nothing():
    reports = [_vibe(1), _vibe(2)]

    assert summarize_area(reports, USER, radius_km=5, now=NOW) is None


def test_only_recent_nearby_reports_count():
    reports = [
        _vibe(1),
        _vibe(2),
        _vibe(3, minutes_ago=90),
        _vibe(4, lat=30.5),
    ]

    assert summarize_area(reports, USER, radius_km=5, now=NOW) is None


def test_general_activity_copy():
    decision = summarize_area([_vibe(1), _vibe(2), _vibe(3, "calm")], USER, radius_km=5, now=NOW)

    assert decision.kind == "area-summary"
    assert decision.severity is Severity.INFO
    assert decision.title == "Community Activity"
    assert decision.message == "3 new reports in your area in the last 1 hour(s)"
    assert decision.report_id is None


def test_dangerous_reports_raise_the_copy():
    reports = [_vibe(1), _vibe(2, "dangerous"), _vibe(3), _vibe(4)]

    decision = summarize_area(reports, USER, radius_km=5, now=NOW)

    assert decision.severity is Severity.DANGER
    assert decision.title == "Safety Concerns Increasing"
    assert decision.message == "4 safety reports in your area in the last 1 hour(s)"


def test_emergencies_take_precedence():
    reports = [_emergency(1), _emergency(2), _vibe(3, "dangerous")]

    decision = summarize_area(reports, USER, radius_km=5, lookback_hours=2, now=NOW)

    assert decision.severity is Severity.EMERGENCY
    assert decision.title == "Multiple Emergencies Reported"
    assert decision.message == "2 emergency alerts in your area in the last 2 hour(s)"


def test_no_user_location_yields_nothing():
    assert summarize_area([_vibe(1), _vibe(2), _vibe(3)], None, radius_km=5, now=NOW) is None


class _FakeStore:
    def __init__(self, reports=(), error=None):
        self.reports = list(reports)
        self.error = error
        self.calls = []

    def query(self, filters=None, bounds=None, limit=100, offset=0):
        self.calls.append((filters, bounds, limit, offset))
        if self.error is not None:
            raise self.error
        return list(self.reports)

    def fetch_vote_counts(self, report_id):
        return None


async def test_job_fetches_the_lookback_window():
    store = _FakeStore([_vibe(1), _vibe(2), _vibe(3)])
    job = AreaSummaryJob(Settings(), store, get_user_location=lambda: USER, now=lambda: NOW)

    decision = await job.run_once()

    assert decision.title == "Community Activity"
    filters, bounds, limit, offset = store.calls[0]
    assert filters.since == NOW - timedelta(hours=1)
    assert (bounds, limit, offset) == (None, 150, 0)


async def test_job_skips_fetch_without_location():
    store = _FakeStore([_vibe(1), _vibe(2), _vibe(3)])
    job = AreaSummaryJob(Settings(), store, get_user_location=lambda: None, now=lambda: NOW)

    assert await job.run_once() is None
    assert store.calls == []


async def test_job_logs_and_drops_store_failures():
    store = _FakeStore(error=RuntimeError("store down"))
    job = AreaSummaryJob(Settings(), store, get_user_location=lambda: USER, now=lambda: NOW)

    assert await job.run_once() is None


async def test_job_uses_live_radius():
    store = _FakeStore([_vibe(1), _vibe(2), _vibe(3)])
    job = AreaSummaryJob(
        Settings(),
        store,
        get_user_location=lambda: USER,
        get_radius_km=lambda: 0.05,
        now=lambda: NOW,
    )

    assert await job.run_once() is None
