"""In-memory sliding-window request counter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Stale timestamps are purged lazily on access; ``sweep`` reclaims keys that
  are never touched again.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from typing import Callable

from authguard.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult

logger = logging.getLogger(__name__)


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests in a trailing time window per key.

    Unlike a fixed window, the count covers any trailing ``window_seconds``
    interval, so bursts straddling a clock boundary are still bounded.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
        name: str = "default",
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Maximum number of requests per window.
            window_seconds: Length of the trailing window in seconds.
            clock: Time source function returning UNIX time in seconds.
            name: Label used in logs and stats (e.g., ``general``).

        Raises:
            ValueError: If limit or window_seconds are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self.name = name
        self._lock = threading.RLock()
        self._timestamps_by_key: dict[str, deque[float]] = {}

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def _compact_locked(self, timestamps: deque[float], now: float) -> None:
        cutoff = now - self._window_seconds
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

    def consume(self, key: str, *, now: float | None = None) -> RateLimitResult:
        """Check the trailing window for key and record the request if allowed.

        Args:
            key: Identity key for rate limiting (e.g., ``ip:1.2.3.4``).
            now: Optional timestamp override; defaults to the limiter clock.

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        if now is None:
            now = self._clock()

        with self._lock:
            timestamps = self._timestamps_by_key.get(key)
            if timestamps is None:
                timestamps = deque()
                self._timestamps_by_key[key] = timestamps
            else:
                self._compact_locked(timestamps, now)

            if len(timestamps) >= self._limit:
                oldest = timestamps[0]
                exits_at = oldest + self._window_seconds
                # Clamp in case the clock moved backwards since oldest was stored
                retry_after_ms = max(0, math.ceil((exits_at - now) * 1000))
                return RateLimitResult(
                    allowed=False,
                    limit=self._limit,
                    remaining=0,
                    reset_at=int(math.ceil(exits_at)),
                    retry_after_ms=retry_after_ms,
                )

            timestamps.append(now)
            return RateLimitResult(
                allowed=True,
                limit=self._limit,
                remaining=self._limit - len(timestamps),
                reset_at=int(math.ceil(timestamps[0] + self._window_seconds)),
                retry_after_ms=0,
            )

    def count(self, key: str, *, now: float | None = None) -> int:
        """Return how many requests key has inside the window (no recording)."""
        if now is None:
            now = self._clock()
        with self._lock:
            timestamps = self._timestamps_by_key.get(key)
            if not timestamps:
                return 0
            cutoff = now - self._window_seconds
            return sum(1 for ts in timestamps if ts > cutoff)

    def sweep(self, *, now: float | None = None) -> int:
        """Remove keys whose every timestamp has left the window.

        Args:
            now: Optional timestamp override; defaults to the limiter clock.

        Returns:
            Number of keys removed.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            expired_keys = []
            for key, timestamps in self._timestamps_by_key.items():
                self._compact_locked(timestamps, now)
                if not timestamps:
                    expired_keys.append(key)
            for key in expired_keys:
                del self._timestamps_by_key[key]

        if expired_keys:
            logger.debug(
                "rate_limit.swept",
                extra={"limiter": self.name, "removed": len(expired_keys)},
            )
        return len(expired_keys)

    def stats(self) -> dict[str, int | float]:
        with self._lock:
            return {
                "limit": self._limit,
                "window_seconds": self._window_seconds,
                "keys": len(self._timestamps_by_key),
            }
