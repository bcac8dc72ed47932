"""
Realtime subscription manager.

Owns one asyncio task per watched collection and routes each change event:
- `reports`: every event updates the dashboard snapshot; `insert` events are also handed
  to the notification decider (after a short delay so the viewer's location is current).
  Each insert waits on its own timer, so the receive loop keeps reading; decisions still
  follow arrival order.
  Accepted decisions go to the notification sink, and `should_push` ones to the push
  dispatcher (fire-and-forget).
- `votes`: vote counts are re-fetched for the affected report and applied to the snapshot.
  Vote changes never produce proximity notifications.

A dropped or silent feed is reconnected with capped exponential backoff; each subscription
has its own stop event so `unsubscribe` interrupts a pending reconnect wait immediately.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from vibewatch.config.settings import Settings
from vibewatch.core.backoff import Backoff
from vibewatch.domain.models import ChangeEvent, NotificationDecision, Report, VoteCounts, parse_report
from vibewatch.ingestion.change_feed import ChangeFeed
from vibewatch.ingestion.report_store import ReportFilters, ReportStore
from vibewatch.notifications.decider import NotificationDecider
from vibewatch.notifications.push import PushDispatcher
from vibewatch.notifications.summary import AreaSummaryJob
from vibewatch.realtime.scheduler import PeriodicTask
from vibewatch.realtime.snapshot import ReportSnapshot

logger = logging.getLogger(__name__)

NotificationSink = Callable[[NotificationDecision], Any]
VotesSink = Callable[[int, VoteCounts], Any]


@dataclass
class _Subscription:
    collection: str
    stop: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None


class FeedClosed(Exception):
    """The change feed ended without an error; treated like a drop."""


async def _call_sink(sink: Callable[..., Any] | None, *args: Any) -> None:
    if sink is None:
        return
    try:
        result = sink(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Realtime sink failed")


class RealtimeSubscriptionManager:
    def __init__(
        self,
        settings: Settings,
        feed: ChangeFeed,
        decider: NotificationDecider,
        *,
        push: PushDispatcher | None = None,
        store: ReportStore | None = None,
        snapshot: ReportSnapshot | None = None,
        on_notification: NotificationSink | None = None,
        on_votes: VotesSink | None = None,
        backoff_factory: Callable[[], Backoff] | None = None,
    ):
        self._settings = settings
        self._feed = feed
        self._decider = decider
        self._push = push
        self._store = store
        self.snapshot = snapshot or ReportSnapshot()
        self._on_notification = on_notification
        self._on_votes = on_votes
        self._backoff_factory = backoff_factory or (lambda: Backoff.from_settings(settings.realtime.reconnect))
        self._subscriptions: dict[str, _Subscription] = {}
        self._summary_task: PeriodicTask | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self._last_decision: asyncio.Task[Any] | None = None

    # -- lifecycle -----------------------------------------------------------------

    def is_subscribed(self, collection: str) -> bool:
        sub = self._subscriptions.get(collection)
        return sub is not None and sub.task is not None and not sub.task.done()

    def subscribe(self, collection: str) -> None:
        """Start watching `collection` (no-op if already watched). Requires a running loop."""
        if self.is_subscribed(collection):
            return
        sub = _Subscription(collection=collection)
        sub.task = asyncio.get_running_loop().create_task(self._run(sub), name=f"realtime:{collection}")
        self._subscriptions[collection] = sub
        logger.info("Subscribed to %s changes", collection)

    async def unsubscribe(self, collection: str) -> None:
        """Stop watching `collection` (idempotent). In-flight pushes are left to finish."""
        sub = self._subscriptions.pop(collection, None)
        if sub is None:
            return
        sub.stop.set()
        if sub.task is not None:
            sub.task.cancel()
            await asyncio.gather(sub.task, return_exceptions=True)
        logger.info("Unsubscribed from %s changes", collection)

    async def start(self) -> None:
        """Subscribe to the configured collections and start the area-summary timer."""
        for collection in self._settings.realtime.collections:
            self.subscribe(collection)

        cfg = self._settings.area_summary
        if cfg.enabled and self._store is not None and self._summary_task is None:
            job = AreaSummaryJob(
                self._settings,
                self._store,
                get_user_location=lambda: self._decider.user_location,
                get_radius_km=lambda: self._decider.radius_km,
            )
            self._summary_task = PeriodicTask(
                lambda: self._run_area_summary(job),
                cfg.interval_seconds,
                initial_delay=cfg.interval_seconds,
                name="area-summary",
            )
            self._summary_task.start()

    async def stop(self) -> None:
        """Unsubscribe everything and cancel routed events still waiting for their decision."""
        for collection in list(self._subscriptions):
            await self.unsubscribe(collection)
        if self._summary_task is not None:
            await self._summary_task.stop()
            self._summary_task = None
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._last_decision = None

    async def _run_area_summary(self, job: AreaSummaryJob) -> None:
        decision = await job.run_once()
        if decision is not None:
            await _call_sink(self._on_notification, decision)

    async def refresh_snapshot(self, *, since: datetime | None = None, limit: int | None = None) -> int:
        """Reload the dashboard snapshot from the store; returns the number of reports loaded."""
        if self._store is None:
            raise RuntimeError("No report store configured for snapshot refresh.")
        limit = limit or self._settings.area_summary.fetch_limit
        filters = ReportFilters(since=since) if since is not None else None
        reports = await asyncio.to_thread(self._store.query, filters, None, limit, 0)
        self.snapshot.replace_all(reports)
        return len(reports)

    # -- receive loop --------------------------------------------------------------

    async def _receive(self, sub: _Subscription, backoff: Backoff) -> None:
        timeout = self._settings.realtime.receive_timeout_seconds
        stream = self._feed.stream(sub.collection)
        iterator = stream.__aiter__()
        try:
            while not sub.stop.is_set():
                try:
                    if timeout:
                        event = await asyncio.wait_for(iterator.__anext__(), timeout)
                    else:
                        event = await iterator.__anext__()
                except StopAsyncIteration:
                    raise FeedClosed(sub.collection) from None
                backoff.reset()
                self.submit(event)
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await asyncio.gather(aclose(), return_exceptions=True)

    async def _run(self, sub: _Subscription) -> None:
        backoff = self._backoff_factory()
        while not sub.stop.is_set():
            try:
                await self._receive(sub, backoff)
            except asyncio.CancelledError:
                raise
            except asyncio.TimeoutError:
                logger.warning("No %s events within the receive timeout; reconnecting.", sub.collection)
            except Exception as exc:
                logger.warning("%s subscription failed: %s", sub.collection, str(exc))

            if sub.stop.is_set():
                break
            delay = backoff.next_delay()
            if delay is None:
                logger.error("Giving up on %s subscription after %d attempts.", sub.collection, backoff.attempts)
                return
            logger.info("Reconnecting %s subscription in %.1fs (attempt %d)", sub.collection, delay, backoff.attempts)
            try:
                await asyncio.wait_for(sub.stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    # -- routing -------------------------------------------------------------------

    def submit(self, event: ChangeEvent) -> asyncio.Task[Any] | None:
        """Apply `event` and schedule its follow-up work without waiting for it.

        Snapshot updates happen immediately. Insert decisions run after
        `route_delay_seconds` on their own task, in arrival order, so a burst of events
        never stalls the receive loop. Malformed events are logged and skipped.
        """
        try:
            if event.collection == "votes":
                return self._track(self._handle_votes(self._vote_report_id(event), event))
            if event.collection == "reports":
                return self._submit_report(event)
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping malformed %s event: %s", event.collection, str(exc))
            return None
        logger.debug("Ignoring event for unwatched collection %s", event.collection)
        return None

    async def handle_event(self, event: ChangeEvent) -> NotificationDecision | None:
        """Route one event and wait for its outcome (the decision for report inserts)."""
        task = self.submit(event)
        if task is None:
            return None
        return await task

    async def drain(self) -> None:
        """Wait for routed events that are still pending."""
        if self._pending:
            await asyncio.wait(set(self._pending))

    def _track(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._routed_done)
        return task

    def _routed_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Routing a change event failed", exc_info=task.exception())

    def _submit_report(self, event: ChangeEvent) -> asyncio.Task[Any] | None:
        if event.event_type == "delete":
            record_id = event.record_id
            if record_id is not None:
                self.snapshot.remove(record_id)
            return None

        if not event.new:
            raise ValueError(f"{event.event_type} event without a new record")
        report = parse_report(event.new, timezone=self._settings.app.timezone)
        self.snapshot.upsert(report)
        if event.event_type != "insert":
            return None

        task = self._track(self._decide_later(report, self._last_decision))
        self._last_decision = task
        return task

    async def _decide_later(self, report: Report, previous: asyncio.Task[Any] | None) -> NotificationDecision:
        delay = self._settings.realtime.route_delay_seconds
        if delay > 0:
            await asyncio.sleep(delay)
        if previous is not None and not previous.done():
            # Keep decisions in arrival order; `wait` never cancels the earlier task.
            await asyncio.wait({previous})

        decision = self._decider.decide(report)
        if decision.suppressed:
            return decision
        await _call_sink(self._on_notification, decision)
        if decision.should_push and self._push is not None:
            self._push.dispatch(report)
        return decision

    @staticmethod
    def _vote_report_id(event: ChangeEvent) -> int:
        # Rows of a separate votes table point at their report; polled events carry the report id.
        payload = event.new or event.old or {}
        raw_id = payload.get("report_id", payload.get("id"))
        if raw_id is None:
            raise ValueError("vote event without a report id")
        return int(raw_id)

    async def _handle_votes(self, report_id: int, event: ChangeEvent) -> None:
        votes: VoteCounts | None = None
        if self._store is not None:
            try:
                votes = await asyncio.to_thread(self._store.fetch_vote_counts, report_id)
            except Exception as exc:
                logger.warning("Vote re-fetch failed for report %s: %s", report_id, str(exc))
        if votes is None and event.new and ("upvotes" in event.new or "downvotes" in event.new):
            try:
                votes = VoteCounts(
                    upvotes=int(event.new.get("upvotes") or 0),
                    downvotes=int(event.new.get("downvotes") or 0),
                )
            except (TypeError, ValueError) as exc:
                logger.warning("Ignoring malformed vote counts for report %s: %s", report_id, str(exc))
        if votes is None:
            return
        self.snapshot.set_votes(report_id, votes)
        await _call_sink(self._on_votes, report_id, votes)
