import asyncio
from datetime import datetime, timezone

import pytest

from vibewatch.domain.models import VibeReport, VoteCounts
from vibewatch.realtime.scheduler import PeriodicTask
from vibewatch.realtime.snapshot import ReportSnapshot

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _report(report_id, category="calm"):
    return VibeReport(id=report_id, category=category, location_name="Downtown", created_at=NOW)


def test_snapshot_returns_copies():
    snapshot = ReportSnapshot([_report(1)])

    reports = snapshot.reports()
    reports.append(_report(2))

    assert len(snapshot) == 1


def test_snapshot_upsert_remove_and_replace():
    snapshot = ReportSnapshot()
    snapshot.upsert(_report(1))
    snapshot.upsert(_report(1, "crowded"))
    snapshot.upsert(_report(2))
    snapshot.remove(2)
    snapshot.remove(42)

    assert [r.category.value for r in snapshot.reports()] == ["crowded"]

    snapshot.replace_all([_report(3), _report(4)])
    assert sorted(r.id for r in snapshot.reports()) == [3, 4]


def test_snapshot_set_votes_swaps_the_report():
    original = _report(1)
    snapshot = ReportSnapshot([original])

    updated = snapshot.set_votes(1, VoteCounts(upvotes=3))

    assert updated.votes.upvotes == 3
    assert original.votes.upvotes == 0
    assert snapshot.get(1) is updated
    assert snapshot.set_votes(99, VoteCounts()) is None


async def test_periodic_task_keeps_running_after_errors():
    calls = []

    async def job():
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("first run fails")

    task = PeriodicTask(job, 0.01, name="test")
    task.start()
    for _ in range(100):
        if len(calls) >= 3:
            break
        await asyncio.sleep(0.01)
    await task.stop()

    assert len(calls) >= 3
    assert not task.running
    await task.stop()


async def test_periodic_task_initial_delay():
    calls = []

    async def job():
        calls.append(1)

    task = PeriodicTask(job, 10, initial_delay=10)
    task.start()
    await asyncio.sleep(0.02)
    await task.stop()

    assert calls == []


def test_periodic_task_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        PeriodicTask(lambda: None, 0)
