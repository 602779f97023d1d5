# gamepulse/clock.py

"""
Clock Abstraction

Every component reads time and waits through a Clock so that poll cadence,
cache expiry and reminder timers can be driven deterministically in tests.
"""

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple


class Clock(ABC):
    """Source of the current time and of cooperative sleeps."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for the given number of seconds."""


class SystemClock(Clock):
    """Wall clock backed by the running event loop."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


class ManualClock(Clock):
    """
    Deterministic clock for tests.

    Sleepers are parked until advance() moves time past their deadline. They
    wake in deadline order and observe now() equal to their own deadline, so
    a chain of timers behaves exactly as it would against the wall clock.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
        self._sleepers: List[Tuple[datetime, int, asyncio.Future]] = []
        self._sequence = itertools.count()

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        deadline = self._now + timedelta(seconds=seconds)
        heapq.heappush(self._sleepers, (deadline, next(self._sequence), future))
        await future

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, _, future in self._sleepers if not future.done())

    def next_deadline(self) -> Optional[datetime]:
        for deadline, _, future in sorted(self._sleepers):
            if not future.done():
                return deadline
        return None

    async def advance(self, seconds: float) -> None:
        """
        Move time forward, waking every sleeper whose deadline is reached.

        Args:
            seconds: How far to move the clock
        """
        target = self._now + timedelta(seconds=seconds)
        await self.settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            if future.done():
                continue
            self._now = max(self._now, deadline)
            future.set_result(None)
            await self.settle()
        self._now = target
        await self.settle()

    async def settle(self, rounds: int = 50) -> None:
        """Give ready tasks a chance to run until they park again."""
        for _ in range(rounds):
            await asyncio.sleep(0)
