"""
Report store client (PostgREST-style REST endpoint).

This module is responsible only for:
- querying the `reports` collection with recency/type/category filters and an optional
  bounding box,
- re-fetching vote counts for a single report,
- parsing rows into `Report` variants.

Rows that fail to parse are skipped (a bad row never fails a batch).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, Sequence

from vibewatch.config.settings import Settings
from vibewatch.core.http import get_json
from vibewatch.domain.models import Report, VibeCategory, VoteCounts, parse_report

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bounds:
    """Latitude/longitude bounding box (inclusive)."""

    south: float
    west: float
    north: float
    east: float

    def __post_init__(self) -> None:
        if self.south > self.north:
            raise ValueError("bounds.south must be <= bounds.north")
        if self.west > self.east:
            raise ValueError("bounds.west must be <= bounds.east")


@dataclass(frozen=True)
class ReportFilters:
    since: datetime | None = None
    emergency: bool | None = None
    categories: Sequence[VibeCategory] = field(default_factory=tuple)
    min_id: int | None = None


class ReportStore(Protocol):
    def query(
        self,
        filters: ReportFilters | None = None,
        bounds: Bounds | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Report]: ...

    def fetch_vote_counts(self, report_id: int) -> VoteCounts | None: ...


def build_query_params(
    filters: ReportFilters | None,
    bounds: Bounds | None,
    *,
    limit: int,
    offset: int,
) -> list[tuple[str, str]]:
    """Translate filters into PostgREST query params (a list, since keys may repeat)."""
    if limit <= 0:
        raise ValueError("limit must be > 0")
    if offset < 0:
        raise ValueError("offset must be >= 0")

    params: list[tuple[str, str]] = [("select", "*"), ("order", "created_at.desc")]
    if filters is not None:
        if filters.since is not None:
            params.append(("created_at", f"gte.{filters.since.isoformat()}"))
        if filters.emergency is not None:
            params.append(("emergency", f"is.{str(filters.emergency).lower()}"))
        if filters.categories:
            values = ",".join(VibeCategory(c).value for c in filters.categories)
            params.append(("vibe_type", f"in.({values})"))
        if filters.min_id is not None:
            params.append(("id", f"gt.{int(filters.min_id)}"))
    if bounds is not None:
        params.extend(
            [
                ("latitude", f"gte.{bounds.south}"),
                ("latitude", f"lte.{bounds.north}"),
                ("longitude", f"gte.{bounds.west}"),
                ("longitude", f"lte.{bounds.east}"),
            ]
        )
    params.extend([("limit", str(int(limit))), ("offset", str(int(offset)))])
    return params


def parse_rows(rows: Any, *, timezone: str) -> list[Report]:
    if not isinstance(rows, list):
        logger.warning("Report store returned a non-list payload; ignoring.")
        return []
    out: list[Report] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            out.append(parse_report(row, timezone=timezone))
        except (TypeError, ValueError) as exc:
            logger.debug("Skipping malformed report row %s: %s", row.get("id"), str(exc))
    return out


class RestReportStore:
    """Reads reports from a PostgREST endpoint (`{base_url}/rest/v1/{table}`)."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def _require_base_url(self) -> str:
        base_url = self._settings.store.base_url
        if not base_url:
            raise RuntimeError("Report store is not configured. Set VIBEWATCH_STORE_URL.")
        return base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        key = self._settings.store.api_key
        if not key:
            return {}
        return {"apikey": key, "Authorization": f"Bearer {key}"}

    def _url(self) -> str:
        return f"{self._require_base_url()}/rest/v1/{self._settings.store.table}"

    def query(
        self,
        filters: ReportFilters | None = None,
        bounds: Bounds | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Report]:
        """Fetch one page of reports, newest first.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx status codes.
        """
        params = build_query_params(filters, bounds, limit=limit, offset=offset)
        rows = get_json(
            self._url(),
            params=params,
            headers=self._headers(),
            timeout_seconds=self._settings.app.http_timeout_seconds,
        )
        return parse_rows(rows, timezone=self._settings.app.timezone)

    def fetch_vote_counts(self, report_id: int) -> VoteCounts | None:
        rows = get_json(
            self._url(),
            params=[("select", "id,upvotes,downvotes"), ("id", f"eq.{int(report_id)}")],
            headers=self._headers(),
            timeout_seconds=self._settings.app.http_timeout_seconds,
        )
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            return None
        row = rows[0]
        return VoteCounts(upvotes=int(row.get("upvotes") or 0), downvotes=int(row.get("downvotes") or 0))
