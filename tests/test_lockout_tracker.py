"""Unit tests for the in-memory lockout tracker."""

import threading

import pytest

from authguard.adapters.rate_limit.lockout import InMemoryLockoutTracker, compute_block_duration

MINUTE = 60
HOUR = 60 * MINUTE


@pytest.fixture
def tracker(clock) -> InMemoryLockoutTracker:
    """Tracker with the production policy and a fake clock."""
    return InMemoryLockoutTracker(
        max_consecutive_failures=5,
        initial_block_seconds=5 * MINUTE,
        max_block_seconds=24 * HOUR,
        failure_window_seconds=30 * MINUTE,
        clock=clock,
    )


def _fail(tracker: InMemoryLockoutTracker, key: str, times: int) -> None:
    for _ in range(times):
        tracker.record_failure(key)


class TestBlockDuration:
    """Tier formula: initial * 2 ** (count // threshold - 1), capped."""

    @pytest.mark.parametrize(
        ("count", "expected"),
        [
            (4, None),
            (5, 5 * MINUTE),
            (9, 5 * MINUTE),
            (10, 10 * MINUTE),
            (15, 20 * MINUTE),
            (20, 40 * MINUTE),
            (25, 80 * MINUTE),
            (45, 5 * MINUTE * 2 ** 8),
            (50, 24 * HOUR),
            (500, 24 * HOUR),
        ],
    )
    def test_tiers(self, count: int, expected: float | None) -> None:
        duration = compute_block_duration(
            count,
            threshold=5,
            initial_block_seconds=5 * MINUTE,
            max_block_seconds=24 * HOUR,
        )
        assert duration == expected

    def test_cap_applies(self) -> None:
        duration = compute_block_duration(
            25,
            threshold=5,
            initial_block_seconds=5 * MINUTE,
            max_block_seconds=1 * HOUR,
        )
        assert duration == 1 * HOUR


class TestBlocking:
    """State transitions driven by failures."""

    def test_unknown_key_is_not_blocked(self, tracker: InMemoryLockoutTracker) -> None:
        assert tracker.is_blocked("ip:1.2.3.4") is None

    def test_below_threshold_is_not_blocked(self, tracker: InMemoryLockoutTracker) -> None:
        _fail(tracker, "k", 4)

        record = tracker.get_record("k")
        assert record is not None
        assert record.count == 4
        assert record.blocked_until is None
        assert tracker.is_blocked("k") is None

    def test_fifth_failure_blocks_for_five_minutes(self, tracker, clock) -> None:
        _fail(tracker, "k", 5)

        record = tracker.get_record("k")
        assert record.blocked_until == pytest.approx(clock() + 5 * MINUTE)
        assert tracker.is_blocked("k") == 5 * MINUTE

    def test_tenth_failure_blocks_for_ten_minutes(self, tracker, clock) -> None:
        _fail(tracker, "k", 10)

        assert tracker.get_record("k").blocked_until == pytest.approx(clock() + 10 * MINUTE)

    def test_twenty_fifth_failure_is_capped(self, clock) -> None:
        tracker = InMemoryLockoutTracker(
            max_consecutive_failures=5,
            initial_block_seconds=5 * MINUTE,
            max_block_seconds=1 * HOUR,
            clock=clock,
        )
        _fail(tracker, "k", 25)

        # Uncapped this tier would be 80 minutes
        assert tracker.get_record("k").blocked_until == pytest.approx(clock() + 1 * HOUR)

    def test_twenty_fifth_failure_follows_formula_below_default_cap(self, tracker, clock) -> None:
        _fail(tracker, "k", 25)

        remaining = tracker.is_blocked("k")
        assert remaining == 80 * MINUTE
        assert remaining <= 24 * HOUR

    def test_remaining_seconds_round_up(self, tracker, clock) -> None:
        _fail(tracker, "k", 5)

        clock.advance(0.4)
        assert tracker.is_blocked("k") == 5 * MINUTE

        clock.advance(5 * MINUTE - 1)
        assert tracker.is_blocked("k") == 1

    def test_block_expires(self, tracker, clock) -> None:
        _fail(tracker, "k", 5)

        clock.advance(5 * MINUTE)
        assert tracker.is_blocked("k") is None

    def test_expired_block_keeps_count_and_reblocks(self, tracker, clock) -> None:
        _fail(tracker, "k", 5)
        clock.advance(5 * MINUTE + 1)

        assert tracker.is_blocked("k") is None
        assert tracker.get_record("k").count == 5

        tracker.record_failure("k")
        assert tracker.get_record("k").count == 6
        assert tracker.is_blocked("k") == 5 * MINUTE

    def test_blocked_until_is_after_last_failure(self, tracker, clock) -> None:
        for _ in range(12):
            record = tracker.record_failure("k")
            clock.advance(1)
            if record.blocked_until is not None:
                assert record.blocked_until > record.last_failure_at

    def test_is_blocked_is_a_pure_read(self, tracker) -> None:
        _fail(tracker, "k", 5)

        answers = {tracker.is_blocked("k") for _ in range(20)}
        assert len(answers) == 1
        assert tracker.get_record("k").count == 5

    def test_keys_are_independent(self, tracker) -> None:
        _fail(tracker, "ip:1.1.1.1", 5)

        assert tracker.is_blocked("ip:1.1.1.1") is not None
        assert tracker.is_blocked("ip:2.2.2.2") is None


class TestSuccessReset:
    """A success deletes the record entirely."""

    def test_success_clears_record(self, tracker) -> None:
        _fail(tracker, "k", 4)
        tracker.record_success("k")

        assert tracker.get_record("k") is None

    def test_count_restarts_after_success(self, tracker) -> None:
        _fail(tracker, "k", 4)
        tracker.record_success("k")
        _fail(tracker, "k", 4)

        assert tracker.is_blocked("k") is None
        assert tracker.get_record("k").count == 4

    def test_success_on_unknown_key_is_noop(self, tracker) -> None:
        tracker.record_success("never-seen")
        assert tracker.stats()["records"] == 0


class TestFailureWindow:
    """Failures separated by more than the window are forgotten."""

    def test_old_failures_do_not_accumulate(self, tracker, clock) -> None:
        _fail(tracker, "k", 4)
        clock.advance(30 * MINUTE + 1)

        tracker.record_failure("k")

        assert tracker.get_record("k").count == 1
        assert tracker.is_blocked("k") is None

    def test_failures_within_window_accumulate(self, tracker, clock) -> None:
        for _ in range(5):
            tracker.record_failure("k")
            clock.advance(29 * MINUTE)

        assert tracker.get_record("k").count == 5

    def test_sweep_purges_stale_unblocked_records(self, tracker, clock) -> None:
        _fail(tracker, "stale", 3)
        clock.advance(20 * MINUTE)
        _fail(tracker, "fresh", 2)
        clock.advance(10 * MINUTE + 1)

        removed = tracker.sweep()

        assert removed == 1
        assert tracker.get_record("stale") is None
        assert tracker.get_record("fresh") is not None

    def test_sweep_keeps_active_blocks(self, clock) -> None:
        tracker = InMemoryLockoutTracker(
            max_consecutive_failures=5,
            initial_block_seconds=2 * HOUR,
            max_block_seconds=24 * HOUR,
            failure_window_seconds=30 * MINUTE,
            clock=clock,
        )
        _fail(tracker, "k", 5)
        clock.advance(1 * HOUR)

        assert tracker.sweep() == 0
        assert tracker.is_blocked("k") == 1 * HOUR

        clock.advance(1 * HOUR)
        assert tracker.sweep() == 1

    def test_stats_counts_blocked_records(self, tracker) -> None:
        _fail(tracker, "a", 5)
        _fail(tracker, "b", 1)

        stats = tracker.stats()
        assert stats["records"] == 2
        assert stats["blocked"] == 1


class TestMultiScope:
    """Helpers that combine several scope keys."""

    def test_is_blocked_any_reports_longest_block(self, tracker) -> None:
        _fail(tracker, "ip:1.2.3.4", 10)
        _fail(tracker, "user:alice", 5)

        remaining = tracker.is_blocked_any(["ip:1.2.3.4", "user:alice", "ip_user:1.2.3.4:alice"])

        assert remaining == 10 * MINUTE

    def test_is_blocked_any_none_when_clean(self, tracker) -> None:
        assert tracker.is_blocked_any(["a", "b"]) is None

    def test_fan_out_updates_every_key(self, tracker) -> None:
        keys = ["ip:1.2.3.4", "user:alice", "ip_user:1.2.3.4:alice"]
        tracker.record_failure_all(keys)
        tracker.record_failure_all(keys)

        assert [tracker.get_record(k).count for k in keys] == [2, 2, 2]

        tracker.record_success_all(keys)
        assert all(tracker.get_record(k) is None for k in keys)


class TestConcurrency:
    """Read-then-write updates stay atomic per key across threads."""

    def test_concurrent_failures_are_all_counted(self, tracker, clock) -> None:
        threads_count, per_thread = 8, 50
        start = threading.Barrier(threads_count)

        def _worker() -> None:
            start.wait()
            for _ in range(per_thread):
                tracker.record_failure("k")

        threads = [threading.Thread(target=_worker) for _ in range(threads_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        record = tracker.get_record("k")
        assert record.count == threads_count * per_thread
        assert record.blocked_until == clock() + 24 * HOUR
        assert tracker.is_blocked("k") == 24 * HOUR

    def test_concurrent_fan_out_and_reads(self, tracker) -> None:
        keys = ["ip:1.2.3.4", "user:alice", "ip_user:1.2.3.4:alice"]
        observed: list[int | None] = []
        lock = threading.Lock()

        def _writer() -> None:
            for _ in range(20):
                tracker.record_failure_all(keys)

        def _reader() -> None:
            for _ in range(20):
                remaining = tracker.is_blocked_any(keys)
                with lock:
                    observed.append(remaining)

        threads = [threading.Thread(target=_writer) for _ in range(4)]
        threads += [threading.Thread(target=_reader) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert [tracker.get_record(key).count for key in keys] == [80, 80, 80]
        assert all(remaining is None or remaining > 0 for remaining in observed)
        assert tracker.stats()["blocked"] == 3


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_consecutive_failures": 0},
        {"initial_block_seconds": 0},
        {"initial_block_seconds": 600, "max_block_seconds": 300},
        {"failure_window_seconds": 0},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        InMemoryLockoutTracker(**kwargs)
