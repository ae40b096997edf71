"""
In-process counter store used by the rate limiter when Redis is unavailable.

Counters live in this process only: behind N horizontally scaled instances
the effective limit becomes ``max_requests * N``.
"""

import threading
import time
from typing import Callable, Dict, Tuple


class MemoryCounterStore:
    """Fixed-window counters keyed by string, with lazy expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._counters: Dict[str, Tuple[int, float]] = {}  # key -> (count, reset_at)
        self._lock = threading.Lock()
        self._next_sweep = 0.0

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    async def increment_with_expiry(self, key: str, window_ms: int) -> Tuple[int, int]:
        """Bump the counter for ``key``. Returns (count, ttl_ms)."""
        now = self._now_ms()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
                self._next_sweep = now + window_ms

            count, reset_at = self._counters.get(key, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + window_ms
            count += 1
            self._counters[key] = (count, reset_at)

        return count, int(reset_at - now)

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._counters.items() if now >= reset_at]
        for key in expired:
            del self._counters[key]

    def __len__(self) -> int:
        return len(self._counters)
