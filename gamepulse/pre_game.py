# gamepulse/pre_game.py

"""
Pre-Game Reminder Scheduler

Once shortly after startup and then daily at a configured local hour, scans
every league for events starting within the scheduling horizon and arms one
single-fire timer per event at start time minus the reminder offset.

Each scan cancels all pending timers and derives them again from scratch.
This is safe because an event id is recorded in the durable sent-reminder
registry as soon as its reminder fires, and scans skip recorded ids.
"""

import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set

from .clock import Clock, SystemClock
from .models import ReminderInfo, SportEvent
from .providers.base import LeagueProvider
from .providers.registry import ProviderRegistry, list_all_events
from .registry import SentReminderRegistry
from .scheduler import PeriodicRunner, Timer, next_daily_run

logger = logging.getLogger(__name__)


@dataclass
class ScheduledReminder:
    event_id: str
    notify_at: datetime
    summary: str
    timer: Timer

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_id': self.event_id,
            'notify_at': self.notify_at.isoformat(),
            'summary': self.summary,
        }


@dataclass
class ScanResult:
    scheduled: int = 0
    cancelled: int = 0
    skipped_sent: int = 0
    skipped_late: int = 0
    skipped_horizon: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'scheduled': self.scheduled,
            'cancelled': self.cancelled,
            'skipped_sent': self.skipped_sent,
            'skipped_late': self.skipped_late,
            'skipped_horizon': self.skipped_horizon,
            'errors': list(self.errors),
        }


class PreGameScheduler:
    """Daily scan plus per-event reminder timers."""

    def __init__(
        self,
        config,
        providers: ProviderRegistry,
        dispatcher,
        clock: Optional[Clock] = None,
        sent_registry: Optional[SentReminderRegistry] = None,
        cache=None,
        activity_log=None,
        metrics=None
    ):
        if sent_registry is None:
            raise ValueError('PreGameScheduler requires a sent-reminder registry')
        self.config = config
        self.providers = providers
        self.dispatcher = dispatcher
        self.sent_registry = sent_registry
        self.cache = cache
        self.activity_log = activity_log
        self.metrics = metrics
        self._clock = clock or SystemClock()
        self._pending: Dict[str, ScheduledReminder] = {}
        self._firing: Set[str] = set()
        self._stopped = False
        self._runner = PeriodicRunner(
            self._clock,
            self._daily_step,
            initial_delay=config.pre_game_initial_delay,
            error_delay=config.pre_game_error_delay,
            name='PreGameScheduler',
        )

        self.fired = 0
        self.last_scan: Optional[datetime] = None
        self.last_result: Optional[ScanResult] = None

    def start(self):
        self._stopped = False
        self._runner.start()

    async def stop(self):
        """Stop the daily driver and cancel every pending reminder timer."""
        self._stopped = True
        await self._runner.stop()
        cancelled = self.cancel_pending()
        if cancelled:
            logger.info(f"Cancelled {cancelled} pending pre-game reminders")

    @property
    def is_running(self) -> bool:
        return self._runner.is_running

    async def _daily_step(self) -> float:
        await self.scan()
        now = self._clock.now()
        next_run = next_daily_run(now, self.config.scan_hour, self.config.tz)
        logger.info(f"Next pre-game scan at {next_run.astimezone(self.config.tz).isoformat()}")
        return (next_run - now).total_seconds()

    def cancel_pending(self) -> int:
        """
        Cancel all reminder timers that have not fired yet.

        Returns:
            int: Number of timers cancelled
        """
        cancelled = 0
        for reminder in self._pending.values():
            if reminder.timer.cancel():
                cancelled += 1
        self._pending.clear()
        self._update_pending_gauge()
        return cancelled

    def pending(self) -> List[ScheduledReminder]:
        return sorted(self._pending.values(), key=lambda r: r.notify_at)

    async def scan(self) -> ScanResult:
        """
        Re-derive all reminder timers from the current schedules.

        Returns:
            ScanResult: What was scheduled and why the rest was skipped
        """
        result = ScanResult(cancelled=self.cancel_pending())
        now = self._clock.now()
        horizon = timedelta(seconds=self.config.scan_horizon_seconds)
        offset = timedelta(seconds=self.config.reminder_offset_seconds)

        for provider in self.providers:
            try:
                events = await list_all_events(provider, self.cache)
            except Exception as e:
                logger.error(f"Pre-game scan failed for {provider.league.label}: {e}", exc_info=True)
                result.errors.append(f"{provider.league.label}: {e}")
                self._activity('error', f"{provider.league.label} schedule scan failed", {'error': str(e)})
                continue
            if self._stopped:
                logger.info("Pre-game scheduler stopped during scan; no reminders armed")
                break

            for event in events:
                if event.is_finished or event.start_time <= now:
                    continue
                if event.start_time - now > horizon:
                    result.skipped_horizon += 1
                    continue
                if event.event_id in self.sent_registry:
                    result.skipped_sent += 1
                    continue
                if event.event_id in self._pending or event.event_id in self._firing:
                    continue

                notify_at = event.start_time - offset
                if notify_at < now:
                    logger.debug(f"Too late for a reminder for {event.event_id}")
                    result.skipped_late += 1
                    continue
                if notify_at - now > horizon:
                    result.skipped_horizon += 1
                    continue

                self._schedule(provider, event, notify_at, now)
                result.scheduled += 1

        self.last_scan = now
        self.last_result = result
        self._update_pending_gauge()
        logger.info(
            f"Pre-game scan: {result.scheduled} scheduled, {result.skipped_sent} already sent, "
            f"{result.skipped_late} too late, {result.skipped_horizon} beyond horizon"
        )
        self._activity('scan', f"Scheduled {result.scheduled} pre-game reminders", result.to_dict())
        return result

    def _schedule(self, provider: LeagueProvider, event: SportEvent, notify_at: datetime, now: datetime):
        display = provider.display_info(event)
        info = ReminderInfo(
            league=provider.league,
            event_id=event.event_id,
            start_time=event.start_time,
            home_name=display.home_name,
            away_name=display.away_name,
            home_code=display.home_code,
            away_code=display.away_code,
            venue=event.venue,
            event_name=event.event_name,
        )
        if provider.league.individual:
            summary = f"{provider.league.label}: {event.event_name or 'Race'}"
        else:
            summary = f"{provider.league.label}: {display.home_name} vs {display.away_name}"

        delay = (notify_at - now).total_seconds()
        timer = Timer(
            self._clock,
            delay,
            functools.partial(self._fire, info),
            name=f"pre-game-{event.event_id}",
        )
        self._pending[event.event_id] = ScheduledReminder(event.event_id, notify_at, summary, timer)
        if self.metrics:
            self.metrics.reminders_scheduled.labels(league=provider.league_id).inc()
        logger.info(f"Scheduled reminder for {summary} at {notify_at.isoformat()} (in {delay / 60:.0f} min)")

    async def _fire(self, info: ReminderInfo):
        self._pending.pop(info.event_id, None)
        self._update_pending_gauge()
        if self._stopped:
            return
        if info.event_id in self.sent_registry:
            logger.info(f"Reminder for {info.event_id} already sent; skipping")
            self._record_fired(info, 'skipped')
            return

        self._firing.add(info.event_id)
        try:
            seconds_left = (info.start_time - self._clock.now()).total_seconds()
            minutes = max(0, round(seconds_left / 60))
            try:
                outcome = await self.dispatcher.send_pre_game(info, minutes)
                delivered = outcome.delivered
            except Exception as e:
                logger.error(f"Failed to dispatch reminder for {info.event_id}: {e}", exc_info=True)
                delivered = False
            # Recorded whatever the outcome; a reminder is attempted at most once
            if not self.sent_registry.record(info.event_id):
                logger.warning(f"Reminder for {info.event_id} recorded in memory only")
        finally:
            self._firing.discard(info.event_id)

        self.fired += 1
        self._record_fired(info, 'delivered' if delivered else 'failed')
        if info.league.individual:
            subject = info.event_name or 'Race'
        else:
            subject = f"{info.home_name} vs {info.away_name}"
        self._activity(
            'reminder',
            f"Pre-game reminder {'sent' if delivered else 'failed'}: {subject}",
            {'event_id': info.event_id, 'league': info.league.league_id, 'minutes_until_start': minutes},
        )

    def _record_fired(self, info: ReminderInfo, outcome: str):
        if self.metrics:
            self.metrics.reminders_fired.labels(league=info.league.league_id, outcome=outcome).inc()

    def _update_pending_gauge(self):
        if self.metrics:
            self.metrics.pending_reminders.set(len(self._pending))

    def _activity(self, entry_type: str, title: str, details: Optional[Dict[str, Any]] = None):
        if self.activity_log is not None:
            self.activity_log.add_entry('pre_game', entry_type, title, details)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'running': self.is_running,
            'pending': [reminder.to_dict() for reminder in self.pending()],
            'sent_count': len(self.sent_registry),
            'fired': self.fired,
            'last_scan': self.last_scan.isoformat() if self.last_scan else None,
            'next_scan': self._runner.next_run_at.isoformat() if self._runner.next_run_at else None,
            'last_result': self.last_result.to_dict() if self.last_result else None,
        }
