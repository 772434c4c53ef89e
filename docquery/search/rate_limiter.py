"""
Sliding-window rate limiter.
Keeps an append-only sequence of admission timestamps pruned to the trailing hour;
per-minute and per-hour quotas are checked at the moment a request is admitted.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional

from ..core.config import RATE_LIMIT_PER_HOUR, RATE_LIMIT_PER_MINUTE
from ..core.errors import RateLimitError

MINUTE = 60.0
HOUR = 3600.0


@dataclass
class RateLimitStats:
    """Current usage of both windows."""
    requests_last_minute: int
    requests_last_hour: int
    per_minute_limit: int
    per_hour_limit: int

    @property
    def remaining_minute(self) -> int:
        return max(0, self.per_minute_limit - self.requests_last_minute)

    @property
    def remaining_hour(self) -> int:
        return max(0, self.per_hour_limit - self.requests_last_hour)


class RateLimiter:
    """Per-minute and per-hour admission control shared by all requests of one engine."""

    def __init__(self, per_minute: int = RATE_LIMIT_PER_MINUTE, per_hour: int = RATE_LIMIT_PER_HOUR,
                 clock: Callable[[], float] = time.monotonic):
        if per_minute < 1 or per_hour < 1:
            raise ValueError("Rate limits must be >= 1")
        self.per_minute = per_minute
        self.per_hour = per_hour
        self._clock = clock
        self._window: Deque[float] = deque()
        self._lock = threading.Lock()

    def can_admit(self, now: Optional[float] = None) -> bool:
        """
        Check both quotas without recording a request.

        Raises:
            RateLimitError: A quota is exhausted; retry_after says when a slot frees up
        """
        with self._lock:
            return self._check(self._now(now))

    def record(self, now: Optional[float] = None) -> None:
        """Append an admission timestamp."""
        with self._lock:
            self._window.append(self._now(now))

    def admit(self, now: Optional[float] = None) -> None:
        """Check and record atomically, so concurrent requests cannot overshoot a quota."""
        with self._lock:
            now = self._now(now)
            self._check(now)
            self._window.append(now)

    def get_statistics(self, now: Optional[float] = None) -> RateLimitStats:
        with self._lock:
            now = self._now(now)
            self._prune(now)
            return RateLimitStats(
                requests_last_minute=self._count_since(now, MINUTE),
                requests_last_hour=len(self._window),
                per_minute_limit=self.per_minute,
                per_hour_limit=self.per_hour,
            )

    def reset(self) -> None:
        """Clear the window."""
        with self._lock:
            self._window.clear()

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now

    def _prune(self, now: float) -> None:
        while self._window and now - self._window[0] >= HOUR:
            self._window.popleft()

    def _count_since(self, now: float, span: float) -> int:
        count = 0
        for ts in reversed(self._window):
            if now - ts >= span:
                break
            count += 1
        return count

    def _check(self, now: float) -> bool:
        self._prune(now)

        minute_count = self._count_since(now, MINUTE)
        if minute_count >= self.per_minute:
            oldest = self._window[len(self._window) - minute_count]
            raise RateLimitError(
                f"Rate limit exceeded: {self.per_minute} searches per minute",
                retry_after=max(0.0, MINUTE - (now - oldest))
            )

        if len(self._window) >= self.per_hour:
            raise RateLimitError(
                f"Rate limit exceeded: {self.per_hour} searches per hour",
                retry_after=max(0.0, HOUR - (now - self._window[0]))
            )

        return True
