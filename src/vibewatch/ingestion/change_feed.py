"""
Change feeds for watched collections.

A `ChangeFeed` yields `ChangeEvent`s for one collection until it fails; the realtime
manager owns reconnects. `PollingChangeFeed` derives events from the report store when no
push-based realtime channel is available:
- `reports`: an `insert` event for every report id newer than the last one seen
- `votes`: an `update` event whenever a recent report's vote counts change

Polling state survives reconnects, so events created while disconnected are still
delivered (possibly twice across a boundary; consumers tolerate duplicates).
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Protocol

from vibewatch.config.settings import Settings
from vibewatch.domain.models import ChangeEvent, Report, report_to_row
from vibewatch.ingestion.report_store import ReportFilters, ReportStore

logger = logging.getLogger(__name__)


class ChangeFeed(Protocol):
    def stream(self, collection: str) -> AsyncIterator[ChangeEvent]: ...


class PollingChangeFeed:
    """Polls a `ReportStore` and turns differences into change events."""

    def __init__(
        self,
        store: ReportStore,
        settings: Settings,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._interval = float(settings.realtime.poll_interval_seconds)
        self._page_size = int(settings.area_summary.fetch_limit)
        self._sleep = sleep
        self._last_id: int | None = None
        self._votes: dict[int, tuple[int, int]] = {}

    async def _fetch(self, filters: ReportFilters | None = None) -> list[Report]:
        return await asyncio.to_thread(self._store.query, filters, None, self._page_size, 0)

    async def poll_reports(self) -> list[ChangeEvent]:
        """One polling round for the `reports` collection."""
        if self._last_id is None:
            # First round only establishes the baseline.
            latest = await self._fetch()
            self._last_id = max((r.id for r in latest), default=0)
            return []

        fresh = await self._fetch(ReportFilters(min_id=self._last_id))
        fresh.sort(key=lambda r: r.id)
        events = [
            ChangeEvent(collection="reports", event_type="insert", new=report_to_row(r))
            for r in fresh
            if r.id > self._last_id
        ]
        if fresh:
            self._last_id = max(self._last_id, fresh[-1].id)
        return events

    async def poll_votes(self) -> list[ChangeEvent]:
        """One polling round for the `votes` collection."""
        recent = await self._fetch()
        events: list[ChangeEvent] = []
        for report in recent:
            current = (report.votes.upvotes, report.votes.downvotes)
            previous = self._votes.get(report.id)
            self._votes[report.id] = current
            if previous is None or previous == current:
                continue
            events.append(
                ChangeEvent(
                    collection="votes",
                    event_type="update",
                    new={"id": report.id, "upvotes": current[0], "downvotes": current[1]},
                    old={"id": report.id, "upvotes": previous[0], "downvotes": previous[1]},
                )
            )
        return events

    async def stream(self, collection: str) -> AsyncIterator[ChangeEvent]:
        if collection == "reports":
            poll = self.poll_reports
        elif collection == "votes":
            poll = self.poll_votes
        else:
            raise ValueError(f"Unsupported collection for polling: {collection!r}")

        while True:
            for event in await poll():
                yield event
            await self._sleep(self._interval)
