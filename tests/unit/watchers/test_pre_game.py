"""
PreGameScheduler unit tests.

These tests verify reminder scheduling against a manual clock:
- One timer per upcoming event at start minus the reminder offset
- At most one reminder per event, across rescans and restarts
- Events beyond the horizon or too close to start are skipped
- The daily scan runs shortly after start and then at the scan hour
"""
import asyncio
from datetime import timedelta

import pytest
from unittest.mock import AsyncMock, MagicMock

from gamepulse.activity_log import ActivityLog
from gamepulse.metrics import MetricsCollector
from gamepulse.models import EventState
from gamepulse.notifications.dispatcher import DispatchResult
from gamepulse.persistence import JsonListStore
from gamepulse.pre_game import PreGameScheduler
from gamepulse.providers.registry import ProviderRegistry
from gamepulse.registry import SentReminderRegistry

from tests.fakes import START, FailingProvider, FakeProvider, make_event


# =============================================================================
# FIXTURES
# =============================================================================

def make_registry(config) -> SentReminderRegistry:
    registry = SentReminderRegistry(JsonListStore(
        config.data_path(config.sent_reminders_file),
        max_entries=config.max_sent_reminders,
    ))
    registry.load()
    return registry


@pytest.fixture
def sent_registry(config):
    return make_registry(config)


@pytest.fixture
def mock_dispatcher():
    dispatcher = MagicMock()
    dispatcher.send_pre_game = AsyncMock(return_value=DispatchResult(True))
    return dispatcher


@pytest.fixture
def scheduler(config, providers, mock_dispatcher, clock, sent_registry):
    return PreGameScheduler(config, providers, mock_dispatcher, clock=clock, sent_registry=sent_registry)


def upcoming(event_id='E1', hours=4.0, minutes=0.0, **kwargs):
    return make_event(
        event_id,
        state=EventState.PRE_GAME,
        start_time=START + timedelta(hours=hours, minutes=minutes),
        **kwargs
    )


# =============================================================================
# SCHEDULING TESTS
# =============================================================================

@pytest.mark.unit
class TestReminderScheduling:
    """Test timer creation and firing."""

    @pytest.mark.asyncio
    async def test_reminder_fires_at_offset_and_survives_restart(
            self, config, providers, provider, mock_dispatcher, clock, scheduler, sent_registry):
        """
        GIVEN an event starting in 4 hours and a 5 minute offset
        WHEN the scan runs, the timer fires and the service restarts at T-1m
        THEN the reminder is sent once, 3h55m after the scan, and not again
        """
        provider.events = [upcoming(hours=4)]

        result = await scheduler.scan()

        assert result.scheduled == 1
        assert scheduler.pending()[0].notify_at == START + timedelta(hours=3, minutes=55)

        await clock.advance(timedelta(hours=3, minutes=55).total_seconds() - 1)
        mock_dispatcher.send_pre_game.assert_not_awaited()

        await clock.advance(1)
        mock_dispatcher.send_pre_game.assert_awaited_once()
        info, minutes = mock_dispatcher.send_pre_game.await_args.args
        assert info.event_id == 'E1'
        assert minutes == 5
        assert 'E1' in sent_registry

        # Restart four minutes later with fresh in-memory state
        await clock.advance(4 * 60)
        restarted = PreGameScheduler(config, providers, mock_dispatcher, clock=clock,
                                     sent_registry=make_registry(config))
        second = await restarted.scan()

        assert second.skipped_sent == 1
        assert second.scheduled == 0
        await clock.advance(3600)
        assert mock_dispatcher.send_pre_game.await_count == 1

    @pytest.mark.asyncio
    async def test_restart_before_fire_reschedules(self, config, providers, provider, mock_dispatcher, clock):
        """
        GIVEN a restart after scheduling but before the reminder fired
        WHEN the new process scans
        THEN the reminder is scheduled again and sent once
        """
        provider.events = [upcoming(hours=1)]
        first = PreGameScheduler(config, providers, mock_dispatcher, clock=clock,
                                 sent_registry=make_registry(config))
        await first.scan()
        await first.stop()

        second = PreGameScheduler(config, providers, mock_dispatcher, clock=clock,
                                  sent_registry=make_registry(config))
        result = await second.scan()
        await clock.advance(3600)

        assert result.scheduled == 1
        assert mock_dispatcher.send_pre_game.await_count == 1

    @pytest.mark.asyncio
    async def test_rescans_never_duplicate(self, scheduler, provider, mock_dispatcher, clock):
        """
        GIVEN an event with a pending reminder
        WHEN the scan runs again before and after the reminder fires
        THEN exactly one reminder is sent
        """
        provider.events = [upcoming(hours=2)]

        await scheduler.scan()
        rescan = await scheduler.scan()
        assert rescan.cancelled == 1
        assert rescan.scheduled == 1
        assert len(scheduler.pending()) == 1

        await clock.advance(timedelta(hours=1, minutes=56).total_seconds())
        after_fire = await scheduler.scan()

        assert after_fire.skipped_sent == 1
        assert scheduler.pending() == []
        assert mock_dispatcher.send_pre_game.await_count == 1

    @pytest.mark.asyncio
    async def test_horizon_boundary(self, scheduler, provider, clock):
        """
        GIVEN an event starting in 25 hours
        WHEN today's scan runs and then a scan two hours later
        THEN only the later scan schedules it
        """
        provider.events = [upcoming(hours=25)]

        today = await scheduler.scan()
        assert today.skipped_horizon == 1
        assert today.scheduled == 0

        await clock.advance(2 * 3600)
        later = await scheduler.scan()
        assert later.scheduled == 1
        assert scheduler.pending()[0].notify_at == START + timedelta(hours=24, minutes=55)

    @pytest.mark.asyncio
    async def test_too_late_is_skipped(self, scheduler, provider, mock_dispatcher, clock):
        provider.events = [upcoming(hours=0, minutes=3)]

        result = await scheduler.scan()
        await clock.advance(600)

        assert result.skipped_late == 1
        mock_dispatcher.send_pre_game.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_started_and_finished_events_ignored(self, scheduler, provider):
        provider.events = [
            make_event('LIVE', state=EventState.LIVE, start_time=START - timedelta(minutes=30)),
            make_event('DONE', state=EventState.POST_GAME, start_time=START + timedelta(hours=1)),
            make_event('NOW', state=EventState.PRE_GAME, start_time=START),
        ]

        result = await scheduler.scan()

        assert result.to_dict() == {
            'scheduled': 0, 'cancelled': 0, 'skipped_sent': 0,
            'skipped_late': 0, 'skipped_horizon': 0, 'errors': [],
        }

    @pytest.mark.asyncio
    async def test_reminder_exactly_at_offset(self, scheduler, provider, mock_dispatcher, clock):
        provider.events = [upcoming(hours=0, minutes=5)]

        result = await scheduler.scan()
        await clock.settle()

        assert result.scheduled == 1
        assert mock_dispatcher.send_pre_game.await_args.args[1] == 5


# =============================================================================
# FIRING TESTS
# =============================================================================

@pytest.mark.unit
class TestReminderFiring:
    """Test what happens when a timer fires."""

    @pytest.mark.asyncio
    async def test_registry_checked_again_at_fire_time(self, scheduler, provider, mock_dispatcher,
                                                       sent_registry, clock):
        provider.events = [upcoming(hours=1)]
        await scheduler.scan()

        sent_registry.record('E1')
        await clock.advance(3600)

        mock_dispatcher.send_pre_game.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_delivery_still_recorded(self, scheduler, provider, mock_dispatcher,
                                                  sent_registry, clock):
        """
        GIVEN a reminder whose delivery fails
        WHEN it fires
        THEN the event is still recorded so it is never attempted again
        """
        provider.events = [upcoming(hours=1)]
        mock_dispatcher.send_pre_game.return_value = DispatchResult(False, error='fake: delivery failed')
        await scheduler.scan()

        await clock.advance(3600)

        assert 'E1' in sent_registry
        assert scheduler.fired == 1

    @pytest.mark.asyncio
    async def test_dispatch_exception_still_recorded(self, scheduler, provider, mock_dispatcher,
                                                     sent_registry, clock):
        provider.events = [upcoming(hours=1)]
        mock_dispatcher.send_pre_game.side_effect = RuntimeError('boom')
        await scheduler.scan()

        await clock.advance(3600 - 60)

        assert 'E1' in sent_registry
        assert (await scheduler.scan()).skipped_sent == 1

    @pytest.mark.asyncio
    async def test_reminder_info_content(self, scheduler, provider, mock_dispatcher, clock):
        provider.events = [upcoming(hours=1)]
        await scheduler.scan()

        await clock.advance(3600)

        info = mock_dispatcher.send_pre_game.await_args.args[0]
        assert info.league.league_id == 'testliga'
        assert info.home_name == 'FBK Hockey'
        assert info.away_name == 'LHF Hockey'
        assert info.home_code == 'FBK'
        assert info.away_code == 'LHF'
        assert info.venue == 'Be-Ge Hockey Center'
        assert info.start_time == START + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_individual_event_summary(self, config, mock_dispatcher, clock, sent_registry, biathlon_league):
        race = FakeProvider(biathlon_league, [
            make_event('R1', league='biathlon', state=EventState.PRE_GAME,
                       start_time=START + timedelta(hours=2), event_name='Sprint 10 km')
        ])
        scheduler = PreGameScheduler(config, ProviderRegistry([race]), mock_dispatcher,
                                     clock=clock, sent_registry=sent_registry)

        await scheduler.scan()

        assert scheduler.pending()[0].summary == 'Biathlon: Sprint 10 km'
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending(self, scheduler, provider, mock_dispatcher, clock):
        provider.events = [upcoming('E1', hours=1), upcoming('E2', hours=2)]
        await scheduler.scan()
        assert len(scheduler.pending()) == 2

        await scheduler.stop()
        await clock.advance(3 * 3600)

        assert scheduler.pending() == []
        mock_dispatcher.send_pre_game.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_during_scan_arms_nothing(self, scheduler, provider, mock_dispatcher, clock):
        """
        GIVEN a scan waiting on a slow schedule listing
        WHEN the scheduler is stopped before the listing returns
        THEN no reminder timer is armed and nothing fires later
        """
        provider.events = [upcoming('E1', hours=4)]
        gate = asyncio.Event()
        original = provider.list_all

        async def slow_list_all():
            await gate.wait()
            return await original()

        provider.list_all = slow_list_all
        task = asyncio.create_task(scheduler.scan())
        await clock.settle()
        await scheduler.stop()
        gate.set()
        result = await task
        await clock.advance(5 * 3600)

        assert result.scheduled == 0
        assert scheduler.pending() == []
        mock_dispatcher.send_pre_game.assert_not_awaited()
        assert 'E1' not in scheduler.sent_registry


# =============================================================================
# DAILY SCAN AND ISOLATION TESTS
# =============================================================================

@pytest.mark.unit
class TestDailyScan:
    """Test the scan driver and league isolation."""

    @pytest.mark.asyncio
    async def test_initial_and_daily_scans(self, scheduler, provider, clock):
        """
        GIVEN a 10 second initial delay and a 06:00 UTC scan hour
        WHEN the scheduler is started at 12:00 UTC
        THEN it scans after 10 seconds and next at 06:00 the following day
        """
        scheduler.start()

        await clock.advance(9)
        assert provider.calls['list_all'] == 0
        await clock.advance(1)
        assert provider.calls['list_all'] == 1
        assert scheduler.get_stats()['next_scan'] == '2025-01-16T06:00:00+00:00'

        await clock.advance(timedelta(hours=17, minutes=59, seconds=49).total_seconds())
        assert provider.calls['list_all'] == 1
        await clock.advance(1)
        assert provider.calls['list_all'] == 2

        await scheduler.stop()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_failing_league_does_not_block_others(self, config, provider, mock_dispatcher, clock,
                                                        sent_registry, football_league):
        providers = ProviderRegistry([FailingProvider(football_league), provider])
        provider.events = [upcoming(hours=1)]
        scheduler = PreGameScheduler(config, providers, mock_dispatcher, clock=clock, sent_registry=sent_registry)

        result = await scheduler.scan()

        assert result.errors == ['Allsvenskan: allsvenskan unavailable']
        assert result.scheduled == 1
        await scheduler.stop()

    def test_requires_sent_registry(self, config, providers, mock_dispatcher, clock):
        with pytest.raises(ValueError):
            PreGameScheduler(config, providers, mock_dispatcher, clock=clock)

    @pytest.mark.asyncio
    async def test_activity_and_metrics(self, config, providers, provider, mock_dispatcher, clock, sent_registry):
        activity = ActivityLog(clock)
        metrics = MetricsCollector()
        scheduler = PreGameScheduler(config, providers, mock_dispatcher, clock=clock,
                                     sent_registry=sent_registry, activity_log=activity, metrics=metrics)
        provider.events = [upcoming(hours=1)]

        await scheduler.scan()
        await clock.advance(3600)

        entries = activity.get_entries()['entries']
        assert [e['type'] for e in entries] == ['reminder', 'scan']
        assert entries[0]['title'] == 'Pre-game reminder sent: FBK Hockey vs LHF Hockey'
        registry = metrics.registry
        assert registry.get_sample_value('gamepulse_reminders_scheduled_total', {'league': 'testliga'}) == 1
        assert registry.get_sample_value(
            'gamepulse_reminders_fired_total', {'league': 'testliga', 'outcome': 'delivered'}
        ) == 1
        assert registry.get_sample_value('gamepulse_pending_reminders') == 0
