"""
Sliding-window request limiter.

Each key (route + caller) keeps the timestamps of its recent requests; a
request is admitted while fewer than ``limit`` fall inside the window. Keys
with no request left inside the window are dropped once the table grows past
``SWEEP_THRESHOLD``, so memory tracks active callers only.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from secretvault.config import RateLimitConfig

# Tracked keys before idle ones are swept; the bar doubles with live keys
SWEEP_THRESHOLD = 1024


class RateLimiter:
    def __init__(
        self,
        config: RateLimitConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._calls: dict[str, list[float]] = {}
        self._sweep_at = SWEEP_THRESHOLD
        self._lock = threading.Lock()

    def allow(self, key: str, rate_class: str = "read") -> bool:
        """Record a request for *key*; False if it exceeds the class limit."""
        limit = self.config.limit_for(rate_class)
        now = self._clock()
        cutoff = now - self.config.window_seconds
        with self._lock:
            calls = [t for t in self._calls.get(key, ()) if t > cutoff]
            if len(calls) >= limit:
                self._calls[key] = calls
                return False
            calls.append(now)
            self._calls[key] = calls
            self._sweep(cutoff)
            return True

    def _sweep(self, cutoff: float) -> None:
        """Drop keys whose whole window has expired. Caller holds the lock."""
        if len(self._calls) < self._sweep_at:
            return
        for key in [k for k, calls in self._calls.items() if not calls or calls[-1] <= cutoff]:
            del self._calls[key]
        self._sweep_at = max(SWEEP_THRESHOLD, 2 * len(self._calls))

    def __len__(self) -> int:
        with self._lock:
            return len(self._calls)

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()
            self._sweep_at = SWEEP_THRESHOLD
