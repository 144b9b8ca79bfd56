"""
Drift-correcting periodic scheduler for the sampling loop.

Ticks are aligned to a fixed grid: the anchor advances by exactly one period
after every tick, never by "now + period", so a slow network call delays one
tick but does not shift every later one. Between ticks the scheduler waits in
short bounded steps, re-reading the clock each time and returning as soon as
the shutdown event is set.

Rules:
- The first tick runs immediately.
- A tick that overruns the period makes the next one start at once; ticks
  are never skipped and never overlap.
- A tick already in progress is allowed to finish on shutdown.
- Exceptions raised by a tick propagate to the caller.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

MAX_SLEEP_STEP_S: float = 0.5
"""Upper bound of a single wait step between ticks."""


class PeriodicScheduler:
    """Runs an async tick function on a fixed cadence until shutdown.

    Args:
        period_s: Seconds between tick starts. Must be > 0.
        shutdown_event: Event that stops the loop once set.
        clock: Monotonic clock returning seconds; injectable for tests.
        sleep: Async ``sleep(seconds)`` used for each wait step. Defaults to
            waiting on *shutdown_event* with a timeout.
        max_sleep_s: Upper bound of a single wait step.

    Raises:
        ValueError: If *period_s* or *max_sleep_s* is not strictly positive.
    """

    def __init__(
        self,
        period_s: float,
        *,
        shutdown_event: asyncio.Event,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        max_sleep_s: float = MAX_SLEEP_STEP_S,
    ) -> None:
        if period_s <= 0:
            raise ValueError(f"period must be > 0 seconds (got {period_s})")
        if max_sleep_s <= 0:
            raise ValueError(f"max sleep step must be > 0 seconds (got {max_sleep_s})")
        self._period_s = period_s
        self._shutdown_event = shutdown_event
        self._clock = clock
        self._sleep = sleep if sleep is not None else self._wait_for_shutdown
        self._max_sleep_s = max_sleep_s
        self.next_due: float | None = None
        self.ticks: int = 0

    @property
    def period_s(self) -> float:
        return self._period_s

    async def run(self, tick: Callable[[], Awaitable[Any]]) -> int:
        """Invoke *tick* now and then once per period until shutdown.

        Returns:
            The number of ticks that ran to completion.
        """
        self.next_due = self._clock()
        logger.info("Scheduler started (period=%ss)", self._period_s)

        while not self._shutdown_event.is_set():
            await self._wait_until_due()
            if self._shutdown_event.is_set():
                break

            started = self._clock()
            lag = started - self.next_due
            if lag >= self._period_s:
                logger.warning("Tick is running %.2fs behind schedule", lag)

            await tick()
            self.ticks += 1
            self.next_due += self._period_s

        logger.info("Scheduler stopped after %d ticks", self.ticks)
        return self.ticks

    async def _wait_until_due(self) -> None:
        """Wait in bounded steps until the anchor is reached or shutdown."""
        while not self._shutdown_event.is_set():
            remaining = self.next_due - self._clock()
            if remaining <= 0:
                return
            await self._sleep(min(remaining, self._max_sleep_s))

    async def _wait_for_shutdown(self, delay: float) -> None:
        # Use wait with timeout so a shutdown request wakes us immediately
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay)


async def run_periodic(
    period_s: float,
    tick: Callable[[], Awaitable[Any]],
    *,
    shutdown_event: asyncio.Event,
    **kwargs: Any,
) -> int:
    """Convenience wrapper: build a PeriodicScheduler and run *tick* on it."""
    scheduler = PeriodicScheduler(period_s, shutdown_event=shutdown_event, **kwargs)
    return await scheduler.run(tick)
