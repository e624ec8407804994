"""
Cancellable poll scheduler.

Runs a single asyncio task that invokes the poll callback every
``interval_s`` seconds. The next fire time is fixed before the callback
starts, so slow gateway round trips do not stretch the cadence. Changing
the interval cancels the running task and starts a new one: at most one
schedule is ever active. An interval of 0 disables polling.

If the interval is changed from inside the callback, the task running that
callback finishes its current poll and exits instead of cancelling itself
mid-request.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_PULSE_S: int = 300
"""Poll interval used when the configured one is absent or out of range."""

MAX_PULSE_S: int = 3600
"""Largest accepted poll interval."""


def clamp_pulse(
    value: object,
    *,
    default: int = DEFAULT_PULSE_S,
    maximum: int = MAX_PULSE_S,
) -> int:
    """Return a usable poll interval.

    Absent, non-integer, negative or above-*maximum* values fall back to
    *default*. ``0`` is kept: it means polling is disabled.
    """
    try:
        pulse = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if pulse < 0 or pulse > maximum:
        return default
    return pulse


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class PollScheduler:
    """Invokes an async callback periodically from one cancellable task.

    Args:
        callback: Coroutine function executed on every tick. Exceptions
            are logged and do not stop the schedule.
    """

    def __init__(self, callback: Callable[[], Awaitable[None]]) -> None:
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._interval_s: int = 0

    @property
    def interval_s(self) -> int:
        """Active interval in seconds; 0 when polling is disabled."""
        return self._interval_s if self.running else 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_s: int, *, initial_delay_s: float = 0.0) -> None:
        """Replace any running schedule with one firing every *interval_s*."""
        self.cancel()
        self._interval_s = interval_s
        if interval_s <= 0:
            logger.info("Polling disabled (interval=0)")
            return
        logger.info(
            "Polling every %ss (first poll in %ss)", interval_s, initial_delay_s
        )
        self._task = asyncio.create_task(self._run(interval_s, initial_delay_s))

    def set_interval(self, interval_s: int) -> bool:
        """Restart the schedule with a new interval.

        The first poll of the new schedule fires after *interval_s*.

        Returns:
            ``False`` if the same interval is already active.
        """
        if interval_s == self.interval_s and (self.running or interval_s == 0):
            return False
        self.start(interval_s, initial_delay_s=float(interval_s))
        return True

    def cancel(self) -> None:
        """Cancel the running schedule, if any."""
        task, self._task = self._task, None
        if task is not None and task is not _current_task():
            task.cancel()

    async def stop(self) -> None:
        """Cancel the running schedule and wait for it to finish."""
        task = self._task
        self.cancel()
        if task is not None and task is not _current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self, interval_s: int, initial_delay_s: float) -> None:
        loop = asyncio.get_running_loop()
        next_fire = loop.time() + initial_delay_s
        me = asyncio.current_task()
        while True:
            await asyncio.sleep(max(0.0, next_fire - loop.time()))
            next_fire = max(next_fire + interval_s, loop.time())
            try:
                await self._callback()
            except Exception:
                logger.error("Poll callback error", exc_info=True)
            if self._task is not me:
                # Replaced while the callback ran.
                return
