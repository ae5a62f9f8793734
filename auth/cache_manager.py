"""
In-memory fixed-window counters for per-IP rate limiting.
WARNING: This is single-instance only and counts are lost on restart.
"""

import threading
import time
from typing import Callable, Dict, Optional, Tuple


class InMemoryCacheManager:
    """Fixed-window request counters keyed by bucket and client IP"""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self.clock = clock or time.monotonic
        self.windows: Dict[str, Tuple[int, float]] = {}  # key -> (count, window_end)
        self.lock = threading.Lock()

    def _cleanup_expired(self, now: float):
        self.windows = {k: v for k, v in self.windows.items() if v[1] > now}

    def hit(self, key: str, window_seconds: int) -> Tuple[int, float]:
        """Count one request against ``key``; return (count in window, seconds until reset)."""
        with self.lock:
            now = self.clock()
            count, window_end = self.windows.get(key, (0, 0.0))
            if window_end <= now:
                # Sweep stale keys whenever a new window opens.
                self._cleanup_expired(now)
                count, window_end = 0, now + window_seconds
            count += 1
            self.windows[key] = (count, window_end)
            return count, window_end - now

    def reset(self, key: Optional[str] = None):
        with self.lock:
            if key is None:
                self.windows.clear()
            else:
                self.windows.pop(key, None)
