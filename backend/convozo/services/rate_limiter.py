# backend/convozo/services/rate_limiter.py

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from convozo.errors import RateLimited


class SlidingWindowRateLimiter:
    """
    At most `max_requests` admissions per key in any rolling `window_seconds`.

    State lives in process memory only; a restart resets every counter.
    One instance is built per process (see main.create_app) and shared by
    the checkout routes. A single lock guards the map; nothing inside it
    does I/O.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + window_seconds

    @staticmethod
    def _normalize(key: str) -> str:
        return (key or "").strip().lower()

    def _prune(self, key: str, now: float) -> Deque[float]:
        """Drop expired admissions for `key`; keys with none left are removed."""
        hits = self._hits.get(key)
        if hits is None:
            return deque()
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()
        if not hits:
            del self._hits[key]
        return hits

    def _sweep(self, now: float) -> None:
        # full pass at most once per window
        if now < self._next_sweep:
            return
        for key in list(self._hits):
            self._prune(key, now)
        self._next_sweep = now + self.window_seconds

    def allow(self, key: str) -> bool:
        """Record an admission for `key` if it fits in the window."""
        key = self._normalize(key)
        with self._lock:
            now = self._clock()
            self._sweep(now)
            hits = self._prune(key, now)
            if len(hits) >= self.max_requests:
                return False
            self._hits.setdefault(key, hits).append(now)
            return True

    def retry_after(self, key: str) -> int:
        """Seconds until `key` gets a free slot (0 if it has one now)."""
        key = self._normalize(key)
        with self._lock:
            now = self._clock()
            hits = self._prune(key, now)
            if len(hits) < self.max_requests:
                return 0
            return max(1, math.ceil(self.window_seconds - (now - hits[0])))

    def check(self, key: str) -> None:
        """Like allow(), but raises RateLimited instead of returning False."""
        if not self.allow(key):
            raise RateLimited(self.retry_after(key))

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)
