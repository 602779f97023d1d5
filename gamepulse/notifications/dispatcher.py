# gamepulse/notifications/dispatcher.py

"""
Notification Dispatcher

Turns logical events (goal, pre-game reminder, new highlight, test message)
into NotificationRequests and routes each one through every configured
channel that can address its target. Send statistics and a bounded,
persisted error log are kept here; no send is ever retried.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Set

from ..clock import Clock, SystemClock
from ..models import DetectedGoal, DisplayInfo, LeagueInfo, MediaItem, ReminderInfo, Sport
from ..persistence import JsonListStore
from .channels import ChannelResult, NotificationChannel
from .targeting import (
    GOAL_NOTIFICATIONS_TOPIC, ConditionTarget, RecipientTarget, Tag, Targeting,
    TopicTarget, TopicsTarget, all_of, any_of, describe_target, sanitize_topic_name, team_tag
)

logger = logging.getLogger(__name__)

TEST_TITLE = '🔔 GamePulse Test'
TEST_BODY = 'This is a test notification from GamePulse!'


class NotificationKind(str, Enum):
    GOAL = 'goal'
    PRE_GAME = 'pre_game'
    HIGHLIGHT = 'highlight'
    TEST = 'test'


@dataclass
class NotificationRequest:
    kind: NotificationKind
    title: str
    body: str
    data: Dict[str, str]
    targeting: Targeting


@dataclass
class DispatchResult:
    delivered: bool
    error: Optional[str] = None
    channel_results: Dict[str, ChannelResult] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'delivered': self.delivered,
            'error': self.error,
            'channels': {
                name: {'success': r.success, 'message_id': r.message_id, 'error': r.error}
                for name, r in self.channel_results.items()
            },
        }


def build_deep_link(scheme: str, sport: str, event_id: str, tab: str = 'summary') -> str:
    """App link that opens an event on the given tab."""
    return f"{scheme}://game/{sport}/{event_id}?tab={tab}"


def _merge_results(results: List[ChannelResult]) -> ChannelResult:
    """Collapse a per-topic fan-out into one result; any success counts."""
    if len(results) == 1:
        return results[0]
    succeeded = [r for r in results if r.success]
    if succeeded:
        ids = [r.message_id for r in succeeded if r.message_id]
        return ChannelResult(True, message_id=','.join(ids) or None)
    return ChannelResult(False, error='; '.join(r.error or 'unknown error' for r in results))


class NotificationDispatcher:
    """
    Route notification requests to delivery channels.

    A request counts as delivered when at least one channel accepted it.
    Channels that cannot address the request's target are skipped.
    """

    def __init__(
        self,
        config,
        channels: Iterable[NotificationChannel],
        clock: Optional[Clock] = None,
        error_store: Optional[JsonListStore] = None,
        metrics=None
    ):
        self.config = config
        self.channels: List[NotificationChannel] = list(channels)
        self._clock = clock or SystemClock()
        self._error_store = error_store
        self._metrics = metrics
        self._max_errors = config.max_error_log_entries
        self._errors: List[Dict[str, Any]] = error_store.load() if error_store else []
        self._background: Set[asyncio.Task] = set()

        self._sent = 0
        self._failed = 0
        self._last_sent: Optional[str] = None
        self._last_error: Optional[str] = None
        self._by_kind: Dict[str, Dict[str, int]] = {}
        self._by_channel: Dict[str, Dict[str, int]] = {
            channel.name: {'sent': 0, 'failed': 0} for channel in self.channels
        }

    def initialize(self) -> List[str]:
        """
        Initialize every channel.

        Returns:
            List[str]: Names of the channels that are ready to send
        """
        ready = []
        for channel in self.channels:
            if channel.initialize():
                ready.append(channel.name)
            else:
                logger.warning(f"Notification channel {channel.name} is not configured; it will be skipped")
        logger.info(f"Notification channels ready: {', '.join(ready) or 'none'}")
        return ready

    async def close(self):
        for channel in self.channels:
            await channel.close()

    # ------------------------------------------------------------------
    # Core routing
    # ------------------------------------------------------------------

    async def send(self, request: NotificationRequest) -> DispatchResult:
        """
        Send a request through every channel able to address its target.

        Returns:
            DispatchResult: delivered is True if any channel succeeded
        """
        results: Dict[str, ChannelResult] = {}
        for channel in self.channels:
            if not channel.is_configured():
                continue
            result = await self._send_via(channel, request)
            if result is None:
                logger.debug(f"Channel {channel.name} cannot address {describe_target(request.targeting)}")
                continue
            results[channel.name] = result
            self._record(channel, request, result)

        if not results:
            error = 'No configured channel can deliver this notification'
            self._log_error(f"send_{request.kind.value}", error, self._context(request))
            return DispatchResult(False, error=error)

        delivered = any(r.success for r in results.values())
        error = None
        if not delivered:
            error = '; '.join(f"{name}: {r.error}" for name, r in results.items())
        logger.info(
            f"{request.kind.value} notification '{request.title}' "
            f"{'delivered' if delivered else 'failed'} via {', '.join(results)}"
        )
        return DispatchResult(delivered, error=error, channel_results=results)

    async def _send_via(self, channel: NotificationChannel,
                        request: NotificationRequest) -> Optional[ChannelResult]:
        target = request.targeting
        args = (request.title, request.body, request.data)
        try:
            if isinstance(target, RecipientTarget):
                if not channel.supports_recipients:
                    return None
                return await channel.send_to_recipient(target.token, *args)
            if isinstance(target, TopicTarget):
                return await channel.send_to_topic(target.topic, *args)
            if isinstance(target, TopicsTarget):
                if channel.supports_conditions and len(target.topics) > 1:
                    return await channel.send_to_condition(any_of(*target.topics), *args)
                return _merge_results([
                    await channel.send_to_topic(topic, *args) for topic in target.topics
                ])
            if isinstance(target, ConditionTarget):
                if channel.supports_conditions:
                    return await channel.send_to_condition(target.expression, *args)
                if isinstance(target.expression, Tag):
                    return await channel.send_to_topic(target.expression.name, *args)
                return None
        except Exception as e:
            logger.error(f"Channel {channel.name} raised while sending: {e}", exc_info=True)
            return ChannelResult(False, error=str(e))
        raise TypeError(f"Unsupported targeting: {target!r}")

    def _record(self, channel: NotificationChannel, request: NotificationRequest, result: ChannelResult):
        kind = request.kind.value
        kind_stats = self._by_kind.setdefault(kind, {'sent': 0, 'failed': 0})
        channel_stats = self._by_channel.setdefault(channel.name, {'sent': 0, 'failed': 0})
        if result.success:
            self._sent += 1
            kind_stats['sent'] += 1
            channel_stats['sent'] += 1
            self._last_sent = self._clock.now().isoformat()
        else:
            self._failed += 1
            kind_stats['failed'] += 1
            channel_stats['failed'] += 1
            context = self._context(request)
            context['channel'] = channel.name
            self._log_error(f"send_{kind}", result.error or 'unknown error', context)
        if self._metrics:
            self._metrics.record_notification(kind, channel.name, result.success)

    def _context(self, request: NotificationRequest) -> Dict[str, Any]:
        context = {'kind': request.kind.value, 'title': request.title}
        context.update(describe_target(request.targeting))
        return context

    # ------------------------------------------------------------------
    # Background sends
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)
        logger.debug(f"Spawned background send {name}")
        return task

    def _background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background notification failed: {error}")
            self._log_error('background_send', str(error), {})

    async def drain(self):
        """Wait until all background sends have finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def pending_background(self) -> int:
        return len(self._background)

    # ------------------------------------------------------------------
    # Notification builders
    # ------------------------------------------------------------------

    def _deep_link(self, league: LeagueInfo, event_id: str, tab: str = 'summary') -> str:
        return build_deep_link(self.config.deep_link_scheme, league.sport.value, event_id, tab)

    def goal_data(self, goal: DetectedGoal) -> Dict[str, str]:
        return {
            'type': NotificationKind.GOAL.value,
            'sport': goal.league.sport.value,
            'league': goal.league.league_id,
            'gameId': goal.event_id,
            'scoringTeam': goal.scoring_team.tag_code or '',
            'homeTeam': goal.home.tag_code or '',
            'awayTeam': goal.away.tag_code or '',
            'homeScore': str(goal.home_score),
            'awayScore': str(goal.away_score),
            'tab': 'summary',
            'url': self._deep_link(goal.league, goal.event_id),
        }

    async def send_goal(self, goal: DetectedGoal, token: Optional[str] = None) -> DispatchResult:
        """
        Announce a goal.

        Without a token the scoring team's followers get the goal message
        (awaited) and the opposing team's followers a shorter score update
        that is sent in the background. With split_goal_audiences disabled
        both teams' followers share one message.

        Args:
            goal: Detected goal with resolved teams
            token: Send only to this device instead of the team audiences

        Returns:
            DispatchResult: Outcome of the primary send
        """
        league = goal.league
        score = f"{goal.home_score}-{goal.away_score}"
        title = f"{league.emoji} {league.label} Goal: {goal.scoring_team.display_name}"
        when = ' '.join(part for part in (goal.clock, goal.period_label) if part)
        body = f"{goal.scorer_name} scores! {score}" + (f" ({when})" if when else '')
        data = self.goal_data(goal)

        if token:
            return await self.send(NotificationRequest(
                NotificationKind.GOAL, title, body, data, RecipientTarget(token)
            ))

        scoring_tag = team_tag(goal.scoring_team.tag_code)
        opposing_tag = team_tag(goal.opposing_team.tag_code)

        # Without a team tag the condition would reduce to every goal subscriber
        if not scoring_tag and (self.config.split_goal_audiences or not opposing_tag):
            error = 'Missing team topics for goal notification targeting'
            self._log_error('send_goal', error, {
                'kind': NotificationKind.GOAL.value,
                'title': title,
                'event_id': goal.event_id,
                'scoring_team': goal.scoring_team.display_name,
            })
            return DispatchResult(False, error=error)

        if not self.config.split_goal_audiences:
            expression = all_of(GOAL_NOTIFICATIONS_TOPIC, any_of(scoring_tag, opposing_tag))
            return await self.send(NotificationRequest(
                NotificationKind.GOAL, title, body, data, ConditionTarget(expression)
            ))

        primary = await self.send(NotificationRequest(
            NotificationKind.GOAL, title, body, data,
            ConditionTarget(all_of(GOAL_NOTIFICATIONS_TOPIC, scoring_tag))
        ))

        if scoring_tag and opposing_tag and opposing_tag != scoring_tag:
            against = NotificationRequest(
                NotificationKind.GOAL,
                title,
                f"{goal.scoring_team.display_name} scored. {score}",
                data,
                ConditionTarget(all_of(GOAL_NOTIFICATIONS_TOPIC, opposing_tag)),
            )
            self._spawn(self.send(against), name=f"goal-against-{goal.fingerprint}")
        return primary

    async def send_pre_game(self, info: ReminderInfo, minutes_until_start: int) -> DispatchResult:
        """
        Remind followers that an event starts soon.

        Team sports go to league reminder subscribers who follow either
        team; individual races go to the league reminder topic.
        """
        league = info.league
        minutes = f"{minutes_until_start} minute{'' if minutes_until_start == 1 else 's'}"
        title = f"{league.emoji} {league.label} Starting Soon"

        if league.individual:
            where = f" in {info.venue}" if info.venue else ''
            body = f"{info.event_name or 'Race'}{where} - starts in {minutes}!"
            targeting: Targeting = TopicTarget(league.pre_game_topic)
        else:
            verb = 'kicks off' if league.sport == Sport.FOOTBALL else 'starts'
            where = f" at {info.venue}" if info.venue else ''
            body = f"{info.home_name} vs {info.away_name}{where} - {verb} in {minutes}!"
            teams = any_of(team_tag(info.home_code), team_tag(info.away_code))
            if teams is None:
                targeting = TopicTarget(league.pre_game_topic)
            else:
                targeting = ConditionTarget(all_of(league.pre_game_topic, teams))

        data = {
            'type': NotificationKind.PRE_GAME.value,
            'sport': league.sport.value,
            'league': league.league_id,
            'gameId': info.event_id,
            'startTime': info.start_time.isoformat(),
            'tab': 'summary',
            'url': self._deep_link(league, info.event_id),
        }
        if not league.individual:
            data['homeTeam'] = info.home_name or ''
            data['awayTeam'] = info.away_name or ''
        return await self.send(NotificationRequest(NotificationKind.PRE_GAME, title, body, data, targeting))

    def highlight_topics(self, league: LeagueInfo, display: DisplayInfo, is_highlight: bool) -> List[str]:
        topics = [f"{league.league_id}-all-videos"]
        for code in (display.home_code, display.away_code):
            if not code:
                continue
            code = sanitize_topic_name(code)
            topics.append(f"{league.league_id}-all-{code}")
            if is_highlight:
                topics.append(f"{league.league_id}-highlights-{code}")
        return list(dict.fromkeys(topics))

    async def send_highlight(self, league: LeagueInfo, display: DisplayInfo, media: MediaItem,
                             is_highlight: bool) -> DispatchResult:
        """Announce a newly published video to everyone following the game's teams."""
        matchup = f"{display.home_name} vs {display.away_name}"
        if is_highlight:
            title = f"Highlights: {matchup}"
            body = f"Watch the highlights from {matchup} at {display.venue}"
        else:
            title = f"New Video: {matchup}"
            body = f"A new video has been posted from {matchup}"
        data = {
            'type': 'highlight' if is_highlight else 'video',
            'sport': league.sport.value,
            'league': league.league_id,
            'gameId': display.event_id,
            'media_id': media.media_id,
            'media_url': media.url,
            'thumbnail': media.thumbnail or '',
            'tab': 'highlights',
            'url': self._deep_link(league, display.event_id, tab='highlights'),
        }
        targeting = TopicsTarget(tuple(self.highlight_topics(league, display, is_highlight)))
        return await self.send(NotificationRequest(NotificationKind.HIGHLIGHT, title, body, data, targeting))

    async def send_test(self, message: Optional[str] = None, token: Optional[str] = None) -> DispatchResult:
        """Send a test notification to one device or to the goal topic."""
        targeting: Targeting = RecipientTarget(token) if token else TopicTarget(GOAL_NOTIFICATIONS_TOPIC)
        data = {
            'type': NotificationKind.TEST.value,
            'timestamp': self._clock.now().isoformat(),
        }
        return await self.send(NotificationRequest(
            NotificationKind.TEST, TEST_TITLE, message or TEST_BODY, data, targeting
        ))

    # ------------------------------------------------------------------
    # Statistics and error log
    # ------------------------------------------------------------------

    def _log_error(self, operation: str, error: str, context: Dict[str, Any]):
        timestamp = self._clock.now().isoformat()
        self._last_error = error
        self._errors.insert(0, {
            'timestamp': timestamp,
            'operation': operation,
            'error': error,
            'context': context,
        })
        del self._errors[self._max_errors:]
        logger.warning(f"Notification error in {operation}: {error}")
        if self._error_store:
            self._error_store.save(self._errors)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'sent': self._sent,
            'errors': self._failed,
            'last_sent': self._last_sent,
            'last_error': self._last_error,
            'by_kind': {kind: dict(counts) for kind, counts in self._by_kind.items()},
            'channels': {
                channel.name: {
                    'configured': channel.is_configured(),
                    **self._by_channel.get(channel.name, {'sent': 0, 'failed': 0}),
                }
                for channel in self.channels
            },
            'pending_background': len(self._background),
            'error_log_size': len(self._errors),
        }

    def get_error_log(self, limit: int = 50) -> Dict[str, Any]:
        return {
            'errors': [dict(entry) for entry in self._errors[:max(0, limit)]],
            'total_errors': len(self._errors),
            'max_entries': self._max_errors,
        }

    def clear_error_log(self):
        self._errors = []
        self._last_error = None
        if self._error_store:
            self._error_store.save(self._errors)
        logger.info("Notification error log cleared")
