"""Sliding-window rate limiting keyed by client address."""

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict


class RateLimiter:
    """
    Allows at most `max_requests` per `window_seconds` for each key.

    Args:
        max_requests: Requests allowed inside one window
        window_seconds: Window length in seconds
        clock: Time source (monotonic by default; tests inject their own)
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _prune(self, key: str, now: float) -> Deque[float]:
        window = self._requests.get(key, deque())
        while window and now - window[0] >= self.window_seconds:
            window.popleft()
        # Idle clients drop out of the map
        if not window:
            self._requests.pop(key, None)
        return window

    def allow(self, key: str) -> bool:
        """Record a request for `key` if it fits in the window."""
        with self._lock:
            now = self._clock()
            window = self._prune(key, now)
            if len(window) >= self.max_requests:
                return False
            window.append(now)
            self._requests[key] = window
            return True

    def remaining(self, key: str) -> int:
        with self._lock:
            window = self._prune(key, self._clock())
            return max(0, self.max_requests - len(window))

    def reset_after(self, key: str) -> float:
        """Seconds until the oldest request leaves the window (0 if not limited)."""
        with self._lock:
            now = self._clock()
            window = self._prune(key, now)
            if not window:
                return 0.0
            return max(0.0, window[0] + self.window_seconds - now)
