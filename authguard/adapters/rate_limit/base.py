"""Throttling interfaces.

The HTTP layer and the throttle gate depend on these abstractions (not the
concrete implementations) so the in-memory stores can be swapped for a shared
backend (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a sliding-window admission check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the oldest counted request leaves
            the window.
        retry_after_ms: Milliseconds until a slot frees up (0 when allowed).
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_ms: int

    @property
    def retry_after_seconds(self) -> int | None:
        """Retry hint rounded up to whole seconds, None when allowed."""
        if self.allowed:
            return None
        return max(0, math.ceil(self.retry_after_ms / 1000))


@dataclass
class FailureRecord:
    """Consecutive authentication failures for one identity key.

    Attributes:
        count: Failures recorded since the last success (or last purge).
        last_failure_at: UNIX time of the most recent failure.
        blocked_until: UNIX time the current block ends, None if never blocked.
    """

    count: int
    last_failure_at: float
    blocked_until: float | None = None


class AbstractRateLimiter(ABC):
    """Interface for request counters."""

    @abstractmethod
    def consume(self, key: str, *, now: float | None = None) -> RateLimitResult:
        """Check the key's budget and record the request when admitted.

        Args:
            key: Identity key (e.g., ``ip:1.2.3.4``).
            now: Optional timestamp override; defaults to the limiter clock.

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep(self, *, now: float | None = None) -> int:
        """Drop keys with no requests left in the window; return how many."""
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, int | float]:
        """Return lightweight metrics without exposing keys."""
        raise NotImplementedError


class AbstractLockoutTracker(ABC):
    """Interface for brute-force lockout stores."""

    @abstractmethod
    def is_blocked(self, key: str, *, now: float | None = None) -> int | None:
        """Return remaining block seconds, or None when not blocked."""
        raise NotImplementedError

    @abstractmethod
    def record_failure(self, key: str, *, now: float | None = None) -> FailureRecord:
        """Register an authentication failure and return the updated record."""
        raise NotImplementedError

    @abstractmethod
    def record_success(self, key: str) -> None:
        """Forget every failure recorded for the key."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self, *, now: float | None = None) -> int:
        """Purge stale records; return how many were removed."""
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, int | float]:
        """Return lightweight metrics without exposing keys."""
        raise NotImplementedError

    def is_blocked_any(self, keys: Iterable[str], *, now: float | None = None) -> int | None:
        """Return the longest remaining block across keys, or None.

        The most restrictive scope governs, so one blocked scope is enough
        to reject the request.
        """
        longest: int | None = None
        for key in keys:
            remaining = self.is_blocked(key, now=now)
            if remaining is not None and (longest is None or remaining > longest):
                longest = remaining
        return longest

    def record_failure_all(self, keys: Iterable[str], *, now: float | None = None) -> None:
        """Apply one failure to every scope key."""
        for key in keys:
            self.record_failure(key, now=now)

    def record_success_all(self, keys: Iterable[str]) -> None:
        """Apply one success to every scope key."""
        for key in keys:
            self.record_success(key)
