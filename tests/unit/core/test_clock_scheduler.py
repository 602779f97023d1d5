"""
Clock and scheduling primitive unit tests.

These tests verify:
- ManualClock wakes sleepers in deadline order at their own deadline
- Timer fires once, and cancel() prevents a pending fire
- PeriodicRunner computes the next delay after a run completes
- next_daily_run resolves local wall-clock hours
"""
import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from gamepulse.clock import ManualClock
from gamepulse.scheduler import PeriodicRunner, Timer, next_daily_run

from tests.fakes import START


# =============================================================================
# MANUAL CLOCK TESTS
# =============================================================================

@pytest.mark.unit
class TestManualClock:
    """Test deterministic time control."""

    @pytest.mark.asyncio
    async def test_sleepers_wake_in_deadline_order(self, clock):
        """
        GIVEN three tasks sleeping for different durations
        WHEN the clock advances past all deadlines
        THEN they wake in deadline order, each seeing its own deadline
        """
        woke = []

        async def sleeper(name, seconds):
            await clock.sleep(seconds)
            woke.append((name, clock.now()))

        tasks = [asyncio.create_task(sleeper(n, s)) for n, s in (('c', 30), ('a', 10), ('b', 20))]
        await clock.settle()
        assert clock.pending_sleepers == 3

        await clock.advance(60)

        assert woke == [
            ('a', START + timedelta(seconds=10)),
            ('b', START + timedelta(seconds=20)),
            ('c', START + timedelta(seconds=30)),
        ]
        assert clock.now() == START + timedelta(seconds=60)
        await asyncio.gather(*tasks)

    @pytest.mark.asyncio
    async def test_sleeper_not_woken_before_deadline(self, clock):
        """
        GIVEN a task sleeping for 10 seconds
        WHEN the clock advances by 9 seconds
        THEN the task is still parked
        """
        task = asyncio.create_task(clock.sleep(10))
        await clock.advance(9)

        assert not task.done()
        assert clock.next_deadline() == START + timedelta(seconds=10)

        await clock.advance(1)
        assert task.done()


# =============================================================================
# TIMER TESTS
# =============================================================================

@pytest.mark.unit
class TestTimer:
    """Test single-shot timers."""

    @pytest.mark.asyncio
    async def test_timer_fires_at_deadline(self, clock):
        """
        GIVEN a timer with a 60 second delay
        WHEN the clock reaches the deadline
        THEN the callback runs exactly once at that time
        """
        fired = []

        async def callback():
            fired.append(clock.now())

        timer = Timer(clock, 60, callback, name='test')
        await clock.advance(59)
        assert fired == []
        assert not timer.fired

        await clock.advance(1)
        assert fired == [START + timedelta(seconds=60)]
        assert timer.fired
        assert timer.done

        await clock.advance(3600)
        assert len(fired) == 1

    @pytest.mark.asyncio
    async def test_cancel_prevents_fire(self, clock):
        """
        GIVEN a pending timer
        WHEN it is cancelled before the deadline
        THEN the callback never runs and a second cancel reports nothing to do
        """
        fired = []

        async def callback():
            fired.append(True)

        timer = Timer(clock, 60, callback)
        await clock.settle()

        assert timer.cancel() is True
        await clock.advance(120)
        await timer.wait()

        assert fired == []
        assert timer.cancel() is False

    @pytest.mark.asyncio
    async def test_callback_error_is_contained(self, clock):
        """
        GIVEN a timer whose callback raises
        WHEN it fires
        THEN the timer completes without propagating the error
        """
        async def callback():
            raise RuntimeError('boom')

        timer = Timer(clock, 1, callback)
        await clock.advance(1)
        await timer.wait()

        assert timer.fired and timer.done


# =============================================================================
# PERIODIC RUNNER TESTS
# =============================================================================

@pytest.mark.unit
class TestPeriodicRunner:
    """Test the self-scheduling periodic driver."""

    @pytest.mark.asyncio
    async def test_next_delay_counts_from_end_of_run(self, clock):
        """
        GIVEN a step that takes 10 seconds and asks for a 30 second delay
        WHEN the runner is driven for a while
        THEN the second run starts 30 seconds after the first one finished
        """
        runs = []

        async def step():
            runs.append(clock.now())
            await clock.sleep(10)
            return 30

        runner = PeriodicRunner(clock, step, initial_delay=5, name='slow')
        runner.start()

        await clock.advance(5)
        assert runs == [START + timedelta(seconds=5)]

        await clock.advance(10 + 29)
        assert len(runs) == 1

        await clock.advance(1)
        assert runs == [START + timedelta(seconds=5), START + timedelta(seconds=45)]

        await clock.advance(10)
        await runner.stop()
        assert not runner.is_running
        assert runner.runs == 2

    @pytest.mark.asyncio
    async def test_failed_step_uses_error_delay(self, clock):
        """
        GIVEN a step that raises
        WHEN it runs
        THEN the next run is scheduled after error_delay
        """
        calls = []

        async def step():
            calls.append(clock.now())
            raise RuntimeError('upstream down')

        runner = PeriodicRunner(clock, step, initial_delay=0, error_delay=120)
        runner.start()
        await clock.settle()
        assert len(calls) == 1

        await clock.advance(119)
        assert len(calls) == 1
        await clock.advance(1)
        assert len(calls) == 2

        await runner.stop()

    @pytest.mark.asyncio
    async def test_stop_lets_in_flight_run_finish(self, clock):
        """
        GIVEN a run that is suspended mid-step
        WHEN the runner is stopped
        THEN the run completes and no further run is scheduled
        """
        finished = []

        async def step():
            await clock.sleep(10)
            finished.append(clock.now())
            return 5

        runner = PeriodicRunner(clock, step, initial_delay=0)
        runner.start()
        await clock.settle()

        await runner.stop()
        assert not runner.is_running

        await clock.advance(10)
        await runner.wait_closed()
        assert len(finished) == 1

        await clock.advance(1000)
        assert len(finished) == 1
        assert runner.next_run_at is None


# =============================================================================
# DAILY SCHEDULE TESTS
# =============================================================================

@pytest.mark.unit
class TestNextDailyRun:
    """Test local-hour scheduling."""

    def test_next_day_when_hour_already_passed(self):
        """
        GIVEN 12:00 UTC (13:00 in Stockholm)
        WHEN asking for the next 06:00 Stockholm time
        THEN tomorrow 05:00 UTC is returned
        """
        now = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

        result = next_daily_run(now, 6, ZoneInfo('Europe/Stockholm'))

        assert result == datetime(2025, 1, 16, 5, 0, tzinfo=timezone.utc)

    def test_same_day_when_hour_ahead(self):
        now = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

        result = next_daily_run(now, 14, ZoneInfo('Europe/Stockholm'))

        assert result == datetime(2025, 1, 15, 13, 0, tzinfo=timezone.utc)

    def test_exact_hour_is_strictly_after(self):
        """
        GIVEN now is exactly on the scan hour
        WHEN computing the next run
        THEN the run is a full day later
        """
        now = datetime(2025, 1, 15, 6, 0, tzinfo=timezone.utc)

        result = next_daily_run(now, 6, ZoneInfo('UTC'))

        assert result == datetime(2025, 1, 16, 6, 0, tzinfo=timezone.utc)

    def test_handles_dst_change(self):
        """
        GIVEN the evening before the spring DST switch in Stockholm
        WHEN computing the next 06:00 local run
        THEN the result is 06:00 CEST, i.e. 04:00 UTC
        """
        now = datetime(2025, 3, 29, 20, 0, tzinfo=timezone.utc)

        result = next_daily_run(now, 6, ZoneInfo('Europe/Stockholm'))

        assert result == datetime(2025, 3, 30, 4, 0, tzinfo=timezone.utc)


@pytest.mark.unit
def test_manual_clock_default_start():
    assert ManualClock().now() == START
