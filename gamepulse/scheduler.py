# gamepulse/scheduler.py

"""
Scheduling Primitives

Single-shot timers and a periodic driver built on asyncio tasks and the
injected Clock. The periodic driver computes its next delay only after the
current run has finished, so runs never overlap.
"""

import asyncio
import logging
from datetime import datetime, timedelta, tzinfo
from typing import Awaitable, Callable, Optional

from .clock import Clock

logger = logging.getLogger(__name__)


class Timer:
    """
    Fire a coroutine callback once after a delay.

    Cancelling a timer that is still waiting prevents the callback from ever
    running. Once the callback has started, cancel() leaves it to complete.
    """

    def __init__(
        self,
        clock: Clock,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        name: str = 'timer'
    ):
        self.name = name
        self.fire_at = clock.now() + timedelta(seconds=max(0.0, delay))
        self._clock = clock
        self._callback = callback
        self._fired = False
        self._task = asyncio.create_task(self._run(), name=name)

    async def _run(self):
        remaining = (self.fire_at - self._clock.now()).total_seconds()
        await self._clock.sleep(remaining)
        self._fired = True
        try:
            await self._callback()
        except Exception as e:
            logger.error(f"Timer {self.name} callback failed: {e}", exc_info=True)

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        """
        Cancel the timer if it has not fired yet.

        Returns:
            bool: True if the pending callback was prevented
        """
        if self._fired or self._task.done():
            return False
        self._task.cancel()
        return True

    async def wait(self):
        """Wait for the timer task to finish (fired or cancelled)."""
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class PeriodicRunner:
    """
    Drive a coroutine step repeatedly with a delay chosen by the step itself.

    The step returns the number of seconds to wait before the next run. A step
    that raises is logged and followed by error_delay.
    """

    def __init__(
        self,
        clock: Clock,
        step: Callable[[], Awaitable[float]],
        initial_delay: float = 0.0,
        error_delay: float = 60.0,
        name: str = 'periodic'
    ):
        self.name = name
        self.initial_delay = initial_delay
        self.error_delay = error_delay
        self.runs = 0
        self.next_run_at: Optional[datetime] = None
        self._clock = clock
        self._step = step
        self._task: Optional[asyncio.Task] = None
        self._stopping = False
        self._in_step = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopping

    def start(self):
        """Start the driver loop on the running event loop."""
        if self.is_running:
            logger.warning(f"{self.name} already running")
            return
        self._stopping = False
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.info(f"{self.name} started (first run in {self.initial_delay:.0f}s)")

    async def _loop(self):
        delay = self.initial_delay
        while not self._stopping:
            self.next_run_at = self._clock.now() + timedelta(seconds=delay)
            await self._clock.sleep(delay)
            if self._stopping:
                break
            self._in_step = True
            try:
                delay = await self._step()
            except Exception as e:
                logger.error(f"Error in {self.name} run: {e}", exc_info=True)
                delay = self.error_delay
            finally:
                self._in_step = False
            self.runs += 1
        self.next_run_at = None

    async def stop(self):
        """
        Stop the loop.

        A sleeping loop is cancelled immediately. A run that is in progress is
        allowed to finish; the loop exits afterwards without scheduling another.
        """
        self._stopping = True
        task = self._task
        if task is None or task.done():
            return
        if self._in_step:
            logger.info(f"{self.name} stopping after the in-flight run completes")
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"{self.name} stopped")

    async def wait_closed(self):
        """Wait for the loop task to exit after stop()."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass


def next_daily_run(now: datetime, hour: int, tz: tzinfo) -> datetime:
    """
    Next occurrence of a local wall-clock hour strictly after now.

    Args:
        now: Aware reference time
        hour: Local hour of day (0-23)
        tz: Local timezone

    Returns:
        datetime: Aware datetime in the timezone of now
    """
    local_now = now.astimezone(tz)
    candidate = local_now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= local_now:
        candidate = candidate + timedelta(days=1)
    return candidate.astimezone(now.tzinfo or tz)
