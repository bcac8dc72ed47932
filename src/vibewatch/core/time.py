"""
Time parsing and timezone normalization.

Report timestamps arrive as ISO-8601 strings from the store and the change feed. We treat
every timestamp as timezone-aware so recency windows never mix naive and aware datetimes.
"""

from __future__ import annotations

from datetime import datetime, timezone as dt_timezone
from zoneinfo import ZoneInfo


def ensure_tz(dt: datetime, timezone: str) -> datetime:
    """Ensure `dt` has tzinfo; attach `timezone` if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(timezone))
    return dt


def parse_datetime(value: str, timezone: str) -> datetime:
    """Parse ISO-8601 datetime string and ensure tzinfo is present.

    Notes:
    - Accepts a trailing `Z` (UTC) and converts it to `+00:00` for `fromisoformat`.
    - If the parsed value is naive, the provided `timezone` is attached.
    """
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    return ensure_tz(dt, timezone)


def utc_now() -> datetime:
    return datetime.now(dt_timezone.utc)


def from_unix(seconds: float) -> datetime:
    """Convert a unix timestamp (as returned by `time.time()`) to an aware UTC datetime."""
    return datetime.fromtimestamp(float(seconds), tz=dt_timezone.utc)
