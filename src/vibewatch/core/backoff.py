"""
Reconnect backoff policy.

Used by long-running subscriptions to space out reconnect attempts after a feed drops
or times out, instead of hammering the upstream at a fixed cadence forever.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable

from vibewatch.config.settings import BackoffSettings


@dataclass
class Backoff:
    """Capped exponential backoff with proportional jitter (best-effort).

    `next_delay()` returns the delay before the next attempt, or None once
    `max_attempts` is exhausted. `reset()` starts over after a healthy period.
    """

    base_delay_seconds: float = 5.0
    max_delay_seconds: float = 60.0
    multiplier: float = 2.0
    jitter_ratio: float = 0.1
    max_attempts: int | None = None
    rand: Callable[[], float] = field(default=random.random, repr=False)

    def __post_init__(self) -> None:
        if float(self.base_delay_seconds) < 0:
            raise ValueError("base_delay_seconds must be >= 0")
        if float(self.max_delay_seconds) < float(self.base_delay_seconds):
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        if float(self.multiplier) < 1:
            raise ValueError("multiplier must be >= 1")
        if not 0 <= float(self.jitter_ratio) <= 1:
            raise ValueError("jitter_ratio must be within 0..1")
        self._attempts = 0

    @classmethod
    def from_settings(cls, cfg: BackoffSettings) -> "Backoff":
        return cls(
            base_delay_seconds=cfg.base_delay_seconds,
            max_delay_seconds=cfg.max_delay_seconds,
            multiplier=cfg.multiplier,
            jitter_ratio=cfg.jitter_ratio,
            max_attempts=cfg.max_attempts,
        )

    @property
    def attempts(self) -> int:
        return self._attempts

    def reset(self) -> None:
        self._attempts = 0

    def next_delay(self) -> float | None:
        if self.max_attempts is not None and self._attempts >= self.max_attempts:
            return None
        # Exponent capped so unlimited retries never overflow the float pow.
        raw = float(self.base_delay_seconds) * float(self.multiplier) ** min(self._attempts, 32)
        delay = min(float(self.max_delay_seconds), raw)
        self._attempts += 1
        if self.jitter_ratio and delay > 0:
            # Spread in [-jitter, +jitter] around the delay, never above the cap.
            spread = delay * float(self.jitter_ratio)
            delay = min(float(self.max_delay_seconds), max(0.0, delay + (self.rand() * 2 - 1) * spread))
        return delay
