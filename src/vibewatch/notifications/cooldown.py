"""
Notification cooldown state.

One instance belongs to one notification pipeline (it is injected, never module-global).
With the default "global" granularity a single timestamp throttles every event type;
"severity" and "category" keep one timestamp per key instead.
"""

from __future__ import annotations

import threading

from vibewatch.config.settings import CooldownGranularity

EPOCH = 0.0
GLOBAL_KEY = "global"


class CooldownState:
    """Last-accepted-notification timestamps (unix seconds), guarded for cross-thread reads."""

    def __init__(self, window_seconds: float = 30.0, granularity: CooldownGranularity = "global"):
        if window_seconds < 0:
            raise ValueError("window_seconds must be >= 0")
        self.window_seconds = float(window_seconds)
        self.granularity = granularity
        self._lock = threading.Lock()
        self._last: dict[str, float] = {}

    def key_for(self, *, severity: str | None = None, category: str | None = None) -> str:
        if self.granularity == "severity" and severity:
            return f"severity:{severity}"
        if self.granularity == "category" and category:
            return f"category:{category}"
        return GLOBAL_KEY

    def last(self, key: str = GLOBAL_KEY) -> float:
        with self._lock:
            return self._last.get(key, EPOCH)

    @property
    def last_notification_timestamp(self) -> float:
        """Most recent accepted notification across all keys (epoch if none yet)."""
        with self._lock:
            return max(self._last.values(), default=EPOCH)

    def is_active(self, now: float, key: str = GLOBAL_KEY) -> bool:
        return now - self.last(key) < self.window_seconds

    def mark(self, now: float, key: str = GLOBAL_KEY) -> None:
        with self._lock:
            self._last[key] = float(now)
