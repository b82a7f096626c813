"""Throttling adapters.

In-memory sliding-window counters and lockout tracking behind small abstract
interfaces, so a shared store (e.g., Redis) can replace them without changing
the gate or the API layer.
"""

from authguard.adapters.rate_limit.base import (
    AbstractLockoutTracker,
    AbstractRateLimiter,
    FailureRecord,
    RateLimitResult,
)
from authguard.adapters.rate_limit.lockout import InMemoryLockoutTracker, compute_block_duration
from authguard.adapters.rate_limit.sliding_window import InMemorySlidingWindowRateLimiter

__all__ = [
    "AbstractLockoutTracker",
    "AbstractRateLimiter",
    "FailureRecord",
    "InMemoryLockoutTracker",
    "InMemorySlidingWindowRateLimiter",
    "RateLimitResult",
    "compute_block_duration",
]
