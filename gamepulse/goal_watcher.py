# gamepulse/goal_watcher.py

"""
Goal Watcher

Polls the live events of every league, diffs each event's scoring events
against the goals already handled and hands every new goal to the
notification dispatcher in the order it was discovered.

The first time an event is seen, whatever goals it already has are recorded
without notifying, so starting the service mid-game does not replay the
whole game. Leagues that only publish an aggregate score are diffed by score
instead of by play-by-play.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .clock import Clock, SystemClock
from .exceptions import ProviderError
from .models import DetectedGoal, EventDetails, Participant, ScoringEvent, SportEvent, goal_fingerprint
from .providers.base import LeagueProvider
from .providers.registry import ProviderRegistry, list_active_events
from .registry import SeenRegistry
from .scheduler import PeriodicRunner

logger = logging.getLogger(__name__)


def _merge_participant(listed: Optional[Participant], detailed: Optional[Participant]) -> Participant:
    """Prefer the detail view of a team, filling gaps from the schedule listing."""
    if detailed is not None:
        return detailed.merged_with(listed)
    return listed or Participant()


@dataclass
class CheckResult:
    """Outcome of one pass over all leagues."""
    events_checked: int = 0
    live_events: int = 0
    new_goals: List[DetectedGoal] = field(default_factory=list)
    notifications_sent: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'events_checked': self.events_checked,
            'live_events': self.live_events,
            'new_goals': len(self.new_goals),
            'notifications_sent': self.notifications_sent,
            'errors': list(self.errors),
        }


class GoalWatcher:
    """
    Periodic goal detection across all registered leagues.

    One check runs at a time. The next check is scheduled after the current
    one finishes: goal_active_delay when a live event was seen, otherwise
    goal_idle_delay.
    """

    def __init__(
        self,
        config,
        providers: ProviderRegistry,
        dispatcher,
        clock: Optional[Clock] = None,
        cache=None,
        activity_log=None,
        metrics=None,
        seen: Optional[SeenRegistry] = None
    ):
        self.config = config
        self.providers = providers
        self.dispatcher = dispatcher
        self.cache = cache
        self.activity_log = activity_log
        self.metrics = metrics
        self.seen = seen if seen is not None else SeenRegistry()
        self._clock = clock or SystemClock()
        self._previous_scores: Dict[str, Tuple[int, int]] = {}
        self._stopped = False
        self._runner = PeriodicRunner(
            self._clock,
            self._step,
            initial_delay=config.goal_initial_delay,
            error_delay=config.goal_idle_delay,
            name='GoalWatcher',
        )

        self.total_goals = 0
        self.total_notifications = 0
        self.last_check: Optional[datetime] = None
        self.last_result: Optional[CheckResult] = None

    def start(self):
        self._stopped = False
        self._runner.start()

    async def stop(self):
        """Stop polling; a dispatch still in flight completes but its result is ignored."""
        self._stopped = True
        await self._runner.stop()

    @property
    def is_running(self) -> bool:
        return self._runner.is_running

    async def _step(self) -> float:
        result = await self.run_check()
        if result.live_events:
            return self.config.goal_active_delay
        return self.config.goal_idle_delay

    async def run_check(self) -> CheckResult:
        """
        Check every league once.

        Returns:
            CheckResult: Counters and the goals detected in this pass
        """
        started = time.monotonic()
        result = CheckResult()

        for provider in self.providers:
            if self._stopped:
                break
            try:
                await self._check_league(provider, result)
            except Exception as e:
                message = f"{provider.league.label}: {e}"
                logger.error(f"Goal check failed for {provider.league.label}: {e}", exc_info=True)
                result.errors.append(message)
                self._activity('error', f"{provider.league.label} goal check failed", {'error': str(e)})

        self.last_check = self._clock.now()
        self.last_result = result
        if self.metrics:
            self.metrics.record_goal_check(time.monotonic() - started, result.live_events, self.seen.tracked_count)
        if result.new_goals:
            logger.info(
                f"Goal check: {len(result.new_goals)} new goals, "
                f"{result.notifications_sent} notifications sent"
            )
        else:
            logger.debug(f"Goal check: {result.live_events} live events, no new goals")
        return result

    async def _check_league(self, provider: LeagueProvider, result: CheckResult):
        events = await list_active_events(provider, self.cache)
        live = [event for event in events if event.is_live]
        result.live_events += len(live)

        for event in live:
            if self._stopped:
                break
            result.events_checked += 1
            try:
                if provider.league.score_only:
                    goals = await self._detect_by_score(provider, event)
                else:
                    goals = await self._detect_by_play_by_play(provider, event)
            except ProviderError as e:
                logger.warning(f"Could not check {provider.league.label} event {event.event_id}: {e}")
                result.errors.append(f"{provider.league.label} {event.event_id}: {e}")
                continue
            except (ValueError, TypeError, KeyError, AttributeError) as e:
                logger.error(
                    f"Malformed details for {provider.league.label} event {event.event_id}: {e}", exc_info=True
                )
                result.errors.append(f"{provider.league.label} {event.event_id}: malformed details: {e}")
                continue

            for goal in goals:
                if self._stopped:
                    break
                await self._dispatch(goal, result)

    async def _detect_by_play_by_play(self, provider: LeagueProvider, event: SportEvent) -> List[DetectedGoal]:
        # Details are fetched directly; goal detection always wants fresh data
        details = await provider.fetch_details(event.event_id)
        if details is None or self._stopped:
            return []

        fingerprints = [goal_fingerprint(event.event_id, goal) for goal in details.scoring_events]

        if not self.seen.is_tracking(event.event_id):
            count = self.seen.initialize(event.event_id, fingerprints)
            logger.info(
                f"Now tracking {provider.league.label} event {event.event_id}; "
                f"{count} existing goals marked as seen"
            )
            return []

        new_goals = []
        for scoring_event, fingerprint in zip(details.scoring_events, fingerprints):
            if self.seen.add(event.event_id, fingerprint):
                new_goals.append(self._enrich(provider, event, details, scoring_event, fingerprint))
        return new_goals

    async def _detect_by_score(self, provider: LeagueProvider, event: SportEvent) -> List[DetectedGoal]:
        details = await provider.fetch_details(event.event_id) or EventDetails()
        if self._stopped:
            return []
        home = _merge_participant(event.home, details.home)
        away = _merge_participant(event.away, details.away)
        if home.score is None or away.score is None:
            return []

        current = (home.score, away.score)
        previous = self._previous_scores.get(event.event_id)
        self._previous_scores[event.event_id] = current
        if previous is None:
            logger.info(f"Now tracking {provider.league.label} event {event.event_id} at {current[0]}-{current[1]}")
            return []

        # A jump of several goals on one side between polls is reported as one goal
        goals = []
        for side, before, after in (('home', previous[0], current[0]), ('away', previous[1], current[1])):
            if after <= before:
                continue
            synthetic = ScoringEvent(side=side, home_score=current[0], away_score=current[1])
            fingerprint = goal_fingerprint(event.event_id, synthetic)
            if not self.seen.add(event.event_id, fingerprint):
                continue
            goals.append(self._enrich(provider, event, details, synthetic, fingerprint))
        return goals

    def _enrich(self, provider: LeagueProvider, event: SportEvent, details: EventDetails,
                scoring_event: ScoringEvent, fingerprint: str) -> DetectedGoal:
        home = _merge_participant(event.home, details.home)
        away = _merge_participant(event.away, details.away)

        if scoring_event.side == 'home' or (scoring_event.side != 'away' and home.matches(scoring_event.team_id)):
            scoring, opposing = home, away
        elif scoring_event.side == 'away' or away.matches(scoring_event.team_id):
            scoring, opposing = away, home
        else:
            logger.warning(
                f"Could not resolve scoring team {scoring_event.team_id} in event {event.event_id}; assuming home"
            )
            scoring, opposing = home, away

        home_score = scoring_event.home_score if scoring_event.home_score is not None else (home.score or 0)
        away_score = scoring_event.away_score if scoring_event.away_score is not None else (away.score or 0)

        return DetectedGoal(
            league=provider.league,
            event_id=event.event_id,
            fingerprint=fingerprint,
            scorer_name=scoring_event.scorer_name or scoring.display_name,
            scoring_team=scoring,
            opposing_team=opposing,
            home=home,
            away=away,
            home_score=home_score,
            away_score=away_score,
            clock=scoring_event.clock,
            period_label=provider.period_label(scoring_event.period),
        )

    async def _dispatch(self, goal: DetectedGoal, result: CheckResult):
        result.new_goals.append(goal)
        self.total_goals += 1
        if self.metrics:
            self.metrics.goals_detected.labels(league=goal.league.league_id).inc()
        logger.info(
            f"New {goal.league.label} goal: {goal.scorer_name} for {goal.scoring_team.display_name} "
            f"({goal.home_score}-{goal.away_score})"
        )
        self._activity('goal', f"{goal.league.label} goal: {goal.scoring_team.display_name}", goal.to_dict())

        try:
            outcome = await self.dispatcher.send_goal(goal)
        except Exception as e:
            logger.error(f"Failed to dispatch goal {goal.fingerprint}: {e}", exc_info=True)
            result.errors.append(f"dispatch {goal.fingerprint}: {e}")
            return

        if self._stopped:
            logger.info(f"Watcher stopped; discarding dispatch result for {goal.fingerprint}")
            return
        if outcome.delivered:
            result.notifications_sent += 1
            self.total_notifications += 1
        self._activity(
            'notification',
            f"Goal notification {'sent' if outcome.delivered else 'failed'}",
            {'fingerprint': goal.fingerprint, **outcome.to_dict()},
        )

    def _activity(self, entry_type: str, title: str, details: Optional[Dict[str, Any]] = None):
        if self.activity_log is not None:
            self.activity_log.add_entry('goal_watcher', entry_type, title, details)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'running': self.is_running,
            'checks': self._runner.runs,
            'last_check': self.last_check.isoformat() if self.last_check else None,
            'next_check': self._runner.next_run_at.isoformat() if self._runner.next_run_at else None,
            'last_result': self.last_result.to_dict() if self.last_result else None,
            'tracked_events': self.seen.tracked_count,
            'total_goals': self.total_goals,
            'total_notifications': self.total_notifications,
        }
