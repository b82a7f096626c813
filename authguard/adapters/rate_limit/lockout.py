"""In-memory brute-force lockout tracker.

Each identity key accumulates consecutive authentication failures. Once the
count reaches the threshold the key is blocked, and the block length doubles
with every further multiple of the threshold, up to a hard cap:

    duration = min(initial * 2 ** (count // threshold - 1), maximum)

With threshold=5, initial=5min and maximum=24h: failures 5-9 block for
5 minutes, 10-14 for 10 minutes, 15-19 for 20 minutes, and so on.

Notes:
- Per-process only; state is lost on restart.
- Thread-safe: one lock guards the whole map.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import replace
from typing import Callable

from authguard.adapters.rate_limit.base import AbstractLockoutTracker, FailureRecord
from authguard.core.identity import hash_key
from authguard.core.logging import log_security

logger = logging.getLogger(__name__)


def compute_block_duration(
    count: int,
    *,
    threshold: int,
    initial_block_seconds: float,
    max_block_seconds: float,
) -> float | None:
    """Return the block length earned by ``count`` failures.

    Args:
        count: Consecutive failures recorded for a key.
        threshold: Failures needed for the first block.
        initial_block_seconds: Length of the first block tier.
        max_block_seconds: Cap applied to every tier.

    Returns:
        Block duration in seconds, or None when count is below threshold.

    Examples:
        >>> compute_block_duration(10, threshold=5, initial_block_seconds=300, max_block_seconds=86400)
        600
        >>> compute_block_duration(4, threshold=5, initial_block_seconds=300, max_block_seconds=86400) is None
        True
    """
    if count < threshold:
        return None
    tier = count // threshold
    return min(initial_block_seconds * 2 ** (tier - 1), max_block_seconds)


class InMemoryLockoutTracker(AbstractLockoutTracker):
    """Escalating lockout per identity key.

    State per key moves CLEAN -> WARNING -> BLOCKED. An expired block leaves
    the count untouched, so the next failure blocks again straight away.
    A success deletes the record. Records idle for longer than
    ``failure_window_seconds`` (and not blocked) are forgotten.
    """

    def __init__(
        self,
        *,
        max_consecutive_failures: int = 5,
        initial_block_seconds: float = 5 * 60,
        max_block_seconds: float = 24 * 60 * 60,
        failure_window_seconds: float = 30 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the tracker.

        Args:
            max_consecutive_failures: Failures that trigger the first block.
            initial_block_seconds: Length of the first block.
            max_block_seconds: Upper bound for any block.
            failure_window_seconds: Idle time after which failures are forgotten.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If any policy value is invalid.
        """
        if max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be >= 1")
        if initial_block_seconds <= 0:
            raise ValueError("initial_block_seconds must be > 0")
        if max_block_seconds < initial_block_seconds:
            raise ValueError("max_block_seconds must be >= initial_block_seconds")
        if failure_window_seconds <= 0:
            raise ValueError("failure_window_seconds must be > 0")

        self._threshold = max_consecutive_failures
        self._initial_block_seconds = initial_block_seconds
        self._max_block_seconds = max_block_seconds
        self._failure_window_seconds = failure_window_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._records: dict[str, FailureRecord] = {}

    @property
    def threshold(self) -> int:
        return self._threshold

    def block_duration_for(self, count: int) -> float | None:
        """Return the block length for a failure count under this policy."""
        return compute_block_duration(
            count,
            threshold=self._threshold,
            initial_block_seconds=self._initial_block_seconds,
            max_block_seconds=self._max_block_seconds,
        )

    def _is_stale(self, record: FailureRecord, now: float) -> bool:
        if record.blocked_until is not None and record.blocked_until > now:
            return False
        return now - record.last_failure_at > self._failure_window_seconds

    def is_blocked(self, key: str, *, now: float | None = None) -> int | None:
        """Return the remaining block time for key.

        Args:
            key: Identity key.
            now: Optional timestamp override; defaults to the tracker clock.

        Returns:
            Remaining seconds (rounded up), or None when key is not blocked.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            record = self._records.get(key)
            if record is None or record.blocked_until is None:
                return None
            if record.blocked_until <= now:
                return None
            return math.ceil(record.blocked_until - now)

    def record_failure(self, key: str, *, now: float | None = None) -> FailureRecord:
        """Count one authentication failure and block when the policy says so.

        Args:
            key: Identity key.
            now: Optional timestamp override; defaults to the tracker clock.

        Returns:
            A copy of the updated record.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            record = self._records.get(key)
            if record is None or self._is_stale(record, now):
                record = FailureRecord(count=0, last_failure_at=now)
                self._records[key] = record

            record.count += 1
            record.last_failure_at = now

            duration = self.block_duration_for(record.count)
            if duration is not None:
                record.blocked_until = now + duration
                log_security(
                    logger,
                    "lockout.blocked",
                    key_hash=hash_key(key),
                    failures=record.count,
                    block_s=duration,
                )
            else:
                logger.info(
                    "lockout.failure_recorded",
                    extra={
                        "key_hash": hash_key(key),
                        "failures": record.count,
                        "threshold": self._threshold,
                    },
                )

            return replace(record)

    def record_success(self, key: str) -> None:
        """Delete the key's record; the next failure starts from one."""
        with self._lock:
            removed = self._records.pop(key, None)

        if removed is not None:
            logger.info(
                "lockout.reset",
                extra={"key_hash": hash_key(key), "previous_failures": removed.count},
            )

    def get_record(self, key: str) -> FailureRecord | None:
        """Return a copy of the key's record, if any."""
        with self._lock:
            record = self._records.get(key)
            return replace(record) if record is not None else None

    def sweep(self, *, now: float | None = None) -> int:
        """Purge records idle past the failure window with no active block.

        Args:
            now: Optional timestamp override; defaults to the tracker clock.

        Returns:
            Number of records removed.
        """
        if now is None:
            now = self._clock()

        with self._lock:
            stale_keys = [key for key, record in self._records.items() if self._is_stale(record, now)]
            for key in stale_keys:
                del self._records[key]

        if stale_keys:
            logger.debug("lockout.swept", extra={"removed": len(stale_keys)})
        return len(stale_keys)

    def stats(self) -> dict[str, int | float]:
        with self._lock:
            now = self._clock()
            blocked = sum(
                1
                for record in self._records.values()
                if record.blocked_until is not None and record.blocked_until > now
            )
            return {
                "threshold": self._threshold,
                "failure_window_seconds": self._failure_window_seconds,
                "records": len(self._records),
                "blocked": blocked,
            }
