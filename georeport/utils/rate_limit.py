import threading
import time
from typing import Callable, Dict, Tuple

from georeport import config


class RateLimiter:
    """Fixed-window request counter keyed by an arbitrary string."""

    def __init__(
        self,
        max_requests: int = config.RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = config.RATE_LIMIT_WINDOW_SEC,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[int, float]] = {}
        self._last_cleanup = clock()

    def check(self, key: str) -> bool:
        """Count one request for ``key``; False once the window's budget is spent."""
        now = self._clock()
        with self._lock:
            # Periodic sweep of expired windows
            if now - self._last_cleanup > self.window_seconds:
                self._cleanup_expired_unlocked(now)
                self._last_cleanup = now

            count, started = self._entries.get(key, (0, now))

            if count == 0 or now - started > self.window_seconds:
                self._entries[key] = (1, now)
                return True

            if count >= self.max_requests:
                return False

            self._entries[key] = (count + 1, started)
            return True

    def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def _cleanup_expired_unlocked(self, now: float) -> None:
        """Drop keys whose window has passed. Must be called under lock."""
        expired = [
            key
            for key, (_, started) in self._entries.items()
            if now - started > self.window_seconds
        ]
        for key in expired:
            del self._entries[key]
