"""
Per-operation rate limiting for externally triggered entry points.
"""
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from .config import RateLimitConfig
from .logger import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Rolling-window call counter keyed by logical operation.

    A call is admitted when fewer than `max_calls` admitted calls for the
    same key fall inside the last `window_seconds`. Rejected calls are not
    recorded. Safe to share between overlapping pipeline runs.
    """

    def __init__(self, limits: RateLimitConfig = None, clock: Callable[[], float] = time.monotonic):
        limits = limits or RateLimitConfig()
        self.max_calls = limits.max_calls
        self.window_seconds = limits.window_seconds
        self._clock = clock
        self._calls: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def check(self, key: str) -> bool:
        """Record a call for `key` and return False if it exceeds the limit."""
        with self._lock:
            now = self._clock()
            window_start = now - self.window_seconds
            timestamps = self._calls.setdefault(key, deque())

            while timestamps and timestamps[0] <= window_start:
                timestamps.popleft()

            if len(timestamps) >= self.max_calls:
                logger.warning(f"Rate limit exceeded for '{key}' ({len(timestamps)} calls in window)")
                return False

            timestamps.append(now)
            return True

    def remaining(self, key: str) -> int:
        """Number of calls still allowed for `key` in the current window."""
        with self._lock:
            window_start = self._clock() - self.window_seconds
            timestamps = self._calls.get(key, ())
            active = sum(1 for t in timestamps if t > window_start)
            return max(self.max_calls - active, 0)

    def reset(self, key: str = None) -> None:
        with self._lock:
            if key is None:
                self._calls.clear()
            else:
                self._calls.pop(key, None)
