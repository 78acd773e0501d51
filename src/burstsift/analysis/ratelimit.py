"""
Fixed-window rate limiter for calls to the external vision service.

The limiter owns its state (window start and request count) and is passed
to whatever issues the calls, so tests can drive it with a fake clock and
reset it between runs.
"""

import time
from threading import Lock
from typing import Any, Callable, Dict


class RateLimiter:
    """Allow at most ``max_requests`` per ``window_seconds``."""

    def __init__(self,
                 max_requests: int = 30,
                 window_seconds: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        if max_requests <= 0:
            raise ValueError(f"max_requests must be positive, got {max_requests}")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock

        self.window_start = clock()
        self.count = 0

        self.lock = Lock()

    def _roll_window(self, now: float) -> None:
        if now - self.window_start >= self.window_seconds:
            self.window_start = now
            self.count = 0

    def try_acquire(self) -> bool:
        """Record a request if the current window has room for it."""
        with self.lock:
            self._roll_window(self._clock())
            if self.count >= self.max_requests:
                return False
            self.count += 1
            return True

    def retry_after(self) -> float:
        """Seconds until the current window resets, 0 if there is room now."""
        with self.lock:
            now = self._clock()
            self._roll_window(now)
            if self.count < self.max_requests:
                return 0.0
            return max(0.0, self.window_seconds - (now - self.window_start))

    def reset(self) -> None:
        with self.lock:
            self.window_start = self._clock()
            self.count = 0

    def status(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "requestsMade": self.count,
                "limit": self.max_requests,
                "timeWindowSeconds": self.window_seconds,
            }
