"""
Best-effort push fan-out.

`dispatch` schedules the transport call on the running event loop and returns
immediately; the blocking transport runs in a worker thread. Failures are logged and
dropped so push delivery never affects the notification path. In-flight sends are not
cancelled by unsubscribe/stop; `drain()` waits for them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from vibewatch.config.settings import Settings
from vibewatch.domain.models import Report
from vibewatch.ingestion.push_transport import PushTransport

logger = logging.getLogger(__name__)


class PushDispatcher:
    def __init__(self, transport: PushTransport, *, fanout_radius_km: float = 5.0):
        if fanout_radius_km < 0:
            raise ValueError("fanout_radius_km must be >= 0")
        self._transport = transport
        self._radius_km = float(fanout_radius_km)
        self._in_flight: set[asyncio.Task[Any]] = set()

    @classmethod
    def from_settings(cls, settings: Settings, transport: PushTransport) -> "PushDispatcher":
        """Build a dispatcher using `push.fanout_radius_km` (after any user overrides)."""
        return cls(transport, fanout_radius_km=settings.push.fanout_radius_km)

    @property
    def radius_km(self) -> float:
        return self._radius_km

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def _send(self, report: Report) -> Any:
        try:
            return await asyncio.to_thread(
                self._transport.send_nearby, report, report.coordinates, self._radius_km
            )
        except Exception as exc:
            logger.warning("Push fan-out failed for report %s: %s", report.id, str(exc))
            return None

    def dispatch(self, report: Report) -> asyncio.Task[Any] | None:
        """Fire-and-forget fan-out for `report`; must be called from a running event loop."""
        if report.coordinates is None:
            logger.info("Skipping push fan-out for report %s without coordinates.", report.id)
            return None
        task = asyncio.get_running_loop().create_task(self._send(report))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def drain(self) -> None:
        """Wait for all in-flight sends to finish."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
