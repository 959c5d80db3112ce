"""Sliding-window admission control for outgoing API calls."""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional

from ..errors import RateLimitExceeded

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class RateLimitStatus:
    remaining: int
    wait_seconds: int

    def asdict(self) -> dict[str, int]:
        return {"remaining": self.remaining, "waitSeconds": self.wait_seconds}


class SlidingWindowRateLimiter:
    """Admit at most ``max_calls`` within any trailing ``window_ms``.

    Timestamps are monotonic milliseconds. Entries that have aged a full
    window are purged lazily on every query, so a call made exactly
    ``window_ms`` after the earliest admitted call is admissible again.
    Checking never records anything; ``record_admission`` commits a slot.
    """

    def __init__(
        self,
        max_calls: int,
        window_ms: float,
        *,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self._max_calls = int(max_calls)
        self._window_ms = float(window_ms)
        self._clock = clock
        self._timestamps: Deque[float] = deque()

    @property
    def max_calls(self) -> int:
        return self._max_calls

    @property
    def window_ms(self) -> float:
        return self._window_ms

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else float(now)

    def _purge(self, now: float) -> None:
        cutoff = now - self._window_ms
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def can_admit(self, now: Optional[float] = None) -> bool:
        current = self._now(now)
        self._purge(current)
        return len(self._timestamps) < self._max_calls

    def record_admission(self, now: Optional[float] = None) -> None:
        current = self._now(now)
        self._purge(current)
        self._timestamps.append(current)

    def time_until_next_slot(self, now: Optional[float] = None) -> float:
        """Milliseconds until a call becomes admissible (0 if it already is)."""

        current = self._now(now)
        self._purge(current)
        if len(self._timestamps) < self._max_calls:
            return 0.0
        return max(0.0, self._timestamps[0] + self._window_ms - current)

    def remaining(self, now: Optional[float] = None) -> int:
        current = self._now(now)
        self._purge(current)
        return max(0, self._max_calls - len(self._timestamps))

    def status(self, now: Optional[float] = None) -> RateLimitStatus:
        current = self._now(now)
        return RateLimitStatus(
            remaining=self.remaining(current),
            wait_seconds=math.ceil(self.time_until_next_slot(current) / 1000),
        )

    def acquire(self, now: Optional[float] = None) -> None:
        """Check and commit in one step, raising ``RateLimitExceeded`` when full."""

        current = self._now(now)
        if not self.can_admit(current):
            wait_ms = self.time_until_next_slot(current)
            logger.info("Rate limit reached; next slot in %.0f ms", wait_ms)
            raise RateLimitExceeded(wait_ms)
        self.record_admission(current)

    def reset(self) -> None:
        self._timestamps.clear()


__all__ = ["RateLimitStatus", "SlidingWindowRateLimiter", "monotonic_ms"]
