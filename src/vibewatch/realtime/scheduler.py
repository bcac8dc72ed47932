"""Simple asyncio-based periodic task."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``coro_factory`` every ``interval`` seconds until stopped.

    If ``initial_delay`` > 0, waits that many seconds before the first run. Errors in a
    run are logged and the schedule continues.
    """

    def __init__(
        self,
        coro_factory: Callable[[], Awaitable[object]],
        interval: float,
        *,
        initial_delay: float = 0.0,
        name: str = "periodic",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._coro_factory = coro_factory
        self._interval = float(interval)
        self._initial_delay = float(initial_delay)
        self._name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _runner(self) -> None:
        if self._initial_delay > 0:
            await asyncio.sleep(self._initial_delay)
        while True:
            try:
                await self._coro_factory()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("Periodic task %s failed: %s", self._name, exc)
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._runner(), name=self._name)

    async def stop(self) -> None:
        """Cancel the task and wait for it to finish (idempotent)."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
