"""Live report set feeding the dashboard clusters."""

from __future__ import annotations

import threading
from typing import Iterable

from vibewatch.domain.models import Report, VoteCounts


class ReportSnapshot:
    """Thread-safe id -> report map. `reports()` returns a copy, so clustering never sees mutation."""

    def __init__(self, reports: Iterable[Report] = ()):
        self._lock = threading.Lock()
        self._reports: dict[int, Report] = {r.id: r for r in reports}

    def __len__(self) -> int:
        with self._lock:
            return len(self._reports)

    def reports(self) -> list[Report]:
        with self._lock:
            return list(self._reports.values())

    def get(self, report_id: int) -> Report | None:
        with self._lock:
            return self._reports.get(report_id)

    def replace_all(self, reports: Iterable[Report]) -> None:
        fresh = {r.id: r for r in reports}
        with self._lock:
            self._reports = fresh

    def upsert(self, report: Report) -> None:
        with self._lock:
            self._reports[report.id] = report

    def remove(self, report_id: int) -> None:
        with self._lock:
            self._reports.pop(report_id, None)

    def set_votes(self, report_id: int, votes: VoteCounts) -> Report | None:
        """Swap in new vote counts; unknown ids are ignored."""
        with self._lock:
            current = self._reports.get(report_id)
            if current is None:
                return None
            updated = current.model_copy(update={"votes": votes})
            self._reports[report_id] = updated
            return updated
