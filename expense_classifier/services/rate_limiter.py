"""Per-key sliding-window admission control for outbound classification calls.

Each rate-limit key owns an independent window of admission timestamps. Entries older
than the window are evicted lazily on every query. One ``RateLimiter`` is created per
process (see ``expense_classifier.api.dependencies``) and is only cleared through
``reset``.
"""

import threading
import time
from collections.abc import Callable

from expense_classifier.core.utils import get_logger

SINGLE_CLASSIFICATION_KEY = "classification"
BATCH_CLASSIFICATION_KEY = "batch-classification"

logger = get_logger("expense-classifier.rate-limiter")


class RateLimiter:
    """Sliding-window rate limiter keyed by quota bucket."""

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the limiter with its quota, window length and time source."""
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, list[float]] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    def _evict(self, key: str, now: float) -> list[float]:
        valid = [ts for ts in self._windows.get(key, []) if now - ts < self.window_seconds]
        self._windows[key] = valid
        return valid

    def can_admit(self, key: str) -> bool:
        """Evict expired entries and report whether another call fits in the window."""
        with self._lock_for(key):
            return len(self._evict(key, self._clock())) < self.max_requests

    def record(self, key: str) -> None:
        """Append an admission event for ``key``; callers check ``can_admit`` first."""
        with self._lock_for(key):
            self._windows.setdefault(key, []).append(self._clock())

    def try_acquire(self, key: str) -> bool:
        """Check and record in one exclusive step so two callers cannot take the last slot."""
        with self._lock_for(key):
            if not self.can_admit(key):
                logger.warning(f"Rate limit reached for key '{key}'")
                return False
            self.record(key)
            return True

    def time_until_next_slot(self, key: str) -> float:
        """Seconds until the oldest in-window event expires, or 0 when admissible."""
        with self._lock_for(key):
            now = self._clock()
            valid = self._evict(key, now)
            if len(valid) < self.max_requests:
                return 0.0
            return max(0.0, self.window_seconds - (now - min(valid)))

    def remaining(self, key: str) -> int:
        """Number of calls still admissible for ``key`` in the current window."""
        with self._lock_for(key):
            return max(0, self.max_requests - len(self._evict(key, self._clock())))

    def reset(self, key: str | None = None) -> None:
        """Clear one key's window, or every window when no key is given."""
        with self._registry_lock:
            keys = [key] if key is not None else list(self._windows)
        for name in keys:
            with self._lock_for(name):
                self._windows.pop(name, None)
        logger.info(f"Rate limiter reset ({key or 'all keys'})")
