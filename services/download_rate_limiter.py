"""
In-memory rate limiter for template downloads.

Sliding window per key: at most `max_attempts` attempts inside any
`window_seconds` span. Counts live in the process, so each API worker keeps
its own.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, List

DOWNLOAD_ATTEMPT_LIMIT = 5
DOWNLOAD_WINDOW_SECONDS = 15 * 60

# Above this many tracked keys, expired ones are dropped on the next attempt.
_PRUNE_THRESHOLD = 10_000


class SlidingWindowRateLimiter:
    def __init__(
        self,
        max_attempts: int = DOWNLOAD_ATTEMPT_LIMIT,
        window_seconds: float = DOWNLOAD_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._attempts: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        """
        Record an attempt for `key`.

        Returns:
            False once `key` has used up the window; rejected attempts are
            not counted
        """

        now = self._clock()
        cutoff = now - self.window_seconds

        with self._lock:
            if len(self._attempts) > _PRUNE_THRESHOLD:
                self._prune(cutoff)

            recent = [at for at in self._attempts.get(key, []) if at > cutoff]
            if len(recent) >= self.max_attempts:
                self._attempts[key] = recent
                return False

            recent.append(now)
            self._attempts[key] = recent
            return True

    def _prune(self, cutoff: float) -> None:
        stale = [key for key, times in self._attempts.items() if not times or times[-1] <= cutoff]
        for key in stale:
            del self._attempts[key]


__all__ = ["DOWNLOAD_ATTEMPT_LIMIT", "DOWNLOAD_WINDOW_SECONDS", "SlidingWindowRateLimiter"]
