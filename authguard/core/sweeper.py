"""Background cleanup of expired throttling state.

Stale timestamps and failure records are normally purged lazily when their
key is touched again. Keys that are never seen again would linger forever,
so a periodic task sweeps every tracker on its own schedule.

Usage:
    sweeper = Sweeper(gate, interval_seconds=900)
    sweeper.start()
    ...
    await sweeper.stop()

Tests can skip ``start()`` entirely and call ``run_once()`` to single-step.
"""

from __future__ import annotations

import asyncio
import logging

from authguard.core.throttle import ThrottleGate

logger = logging.getLogger(__name__)


class Sweeper:
    """Periodic sweep task with an explicit start/stop handle."""

    def __init__(self, gate: ThrottleGate, *, interval_seconds: float) -> None:
        self._gate = gate
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self, *, now: float | None = None) -> dict[str, int]:
        """Sweep every tracker once and return removed counts by tracker."""
        removed = self._gate.sweep(now=now)
        logger.info("sweeper.completed", extra={"removed": removed})
        return removed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                self.run_once()
            except Exception:
                # Retried on the next tick
                logger.exception("sweeper.failed")

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop.

        Does nothing when the interval is zero or the task already runs.
        """
        if self._interval_seconds <= 0:
            logger.info("sweeper.disabled")
            return
        if self.running:
            return

        self._task = asyncio.get_running_loop().create_task(self._loop(), name="throttle-sweeper")
        logger.info("sweeper.started", extra={"interval_s": self._interval_seconds})

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("sweeper.stopped")

    async def __aenter__(self) -> "Sweeper":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
