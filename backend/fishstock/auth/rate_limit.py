"""In-memory sliding-window rate limiter for authentication attempts.

Each client key (normally the caller's IP) keeps the timestamps of its
attempts inside the window.  ``allow`` records an attempt and returns False
once the key has used up ``max_attempts`` within ``window_seconds``; the key
recovers as its oldest attempts slide out of the window.  Keys never affect
each other.

The lock only guards the in-memory bookkeeping and is never held across an
await, so a check is bounded-time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Callable

logger = logging.getLogger("fishstock.auth")


class SlidingWindowRateLimiter:
    def __init__(
        self,
        max_attempts: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._attempts: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()

    def _prune(self, key: str, now: float) -> deque[float] | None:
        attempts = self._attempts.get(key)
        if attempts is None:
            return None
        cutoff = now - self.window_seconds
        while attempts and attempts[0] <= cutoff:
            attempts.popleft()
        if not attempts:
            del self._attempts[key]
            return None
        return attempts

    async def allow(self, key: str) -> bool:
        """Record one attempt for *key*; False if the key is over its limit."""
        async with self._lock:
            now = self._clock()
            attempts = self._prune(key, now)
            if attempts is not None and len(attempts) >= self.max_attempts:
                logger.warning("Rate limit exceeded for key=%r (%d attempts)", key, len(attempts))
                return False
            if attempts is None:
                attempts = self._attempts.setdefault(key, deque())
            attempts.append(now)
            return True

    async def retry_after(self, key: str) -> float:
        """Seconds until *key* may try again (0 when it already may)."""
        async with self._lock:
            now = self._clock()
            attempts = self._prune(key, now)
            if attempts is None or len(attempts) < self.max_attempts:
                return 0.0
            return max(0.0, attempts[0] + self.window_seconds - now)

    async def reset(self, key: str) -> None:
        """Forget every attempt recorded for *key*."""
        async with self._lock:
            self._attempts.pop(key, None)
