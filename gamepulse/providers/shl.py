# gamepulse/providers/shl.py

"""
SHL Provider

Swedish Hockey League adapter. Reads the season schedule, game info,
play-by-play goals and game videos from the public SHL API and normalizes
them into GamePulse models.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..exceptions import ProviderError
from ..models import (
    DisplayInfo, EventDetails, EventState, LeagueInfo, MediaItem, Participant, ScoringEvent,
    Sport, SportEvent
)
from .http import HttpProvider

logger = logging.getLogger(__name__)

SHL_LEAGUE = LeagueInfo(
    league_id='shl',
    label='SHL',
    sport=Sport.HOCKEY,
    emoji='🏒',
    pre_game_topic='pre_game_shl',
    publishes_media=True,
)

HIGHLIGHT_TAG = 'custom.highlights'


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_score(value: Any) -> Optional[int]:
    """
    Coerce the API's assorted score representations to an int.

    Scores arrive as numbers, numeric strings, 'N/A' or {'value': ...}.
    """
    if isinstance(value, dict):
        return normalize_score(value.get('value'))
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return None if value != value else int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text or text.lower() in ('n/a', 'na'):
            return None
        try:
            return int(float(text))
        except ValueError:
            return None
    return None


def _text(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


class SHLProvider(HttpProvider):
    """SHL schedule, play-by-play and media."""

    base_url = 'https://www.shl.se/api'
    user_agent = 'Mozilla/5.0 (compatible; GamePulse/1.0)'

    # Season identifiers for the 2024-25 regular season
    season_uuid = 'xs4m9qupsi'
    series_uuid = 'qQ9-bb0bzEWUk'
    game_type_uuid = 'qQ9-af37Ti40B'

    max_hours_since_game = 36
    max_hours_pre_game_overrun = 6

    def __init__(self, config, clock=None, metrics=None, session=None):
        super().__init__(SHL_LEAGUE, config, clock=clock, metrics=metrics, session=session)

    @property
    def schedule_url(self) -> str:
        return (
            f"{self.base_url}/sports-v2/game-schedule?seasonUuid={self.season_uuid}"
            f"&seriesUuid={self.series_uuid}&gameTypeUuid={self.game_type_uuid}"
            f"&gamePlace=all&played=all"
        )

    async def list_all(self) -> List[SportEvent]:
        data = await self._get_json(self.schedule_url, 'schedule')
        if not isinstance(data, dict):
            return []
        games = data.get('gameInfo') or []
        events = []
        for raw in games:
            event = self.parse_game(raw)
            if event is not None:
                events.append(event)
        return events

    async def list_active(self) -> List[SportEvent]:
        now = self.clock.now()
        active = [event for event in await self.list_all() if self.is_active(event, now)]
        if active:
            summary = ', '.join(
                f"{self.display_info(e).home_name} vs {self.display_info(e).away_name} ({e.state.value})"
                for e in active
            )
            logger.debug(f"SHL active games: {summary}")
        return active

    def is_active(self, event: SportEvent, now: datetime) -> bool:
        """Live, finished within 36 hours, or pre-game up to 6 hours past start."""
        hours_since_start = (now - event.start_time).total_seconds() / 3600
        if event.state == EventState.LIVE:
            return True
        if event.state == EventState.POST_GAME:
            return -1 <= hours_since_start <= self.max_hours_since_game
        if event.state == EventState.PRE_GAME:
            return 0 <= hours_since_start <= self.max_hours_pre_game_overrun
        return False

    async def fetch_details(self, event_id: str) -> Optional[EventDetails]:
        info_url = f"{self.base_url}/sports-v2/game-info/{event_id}"
        pbp_url = f"{self.base_url}/gameday/play-by-play/{event_id}"

        info, play_by_play = await asyncio.gather(
            self._get_json(info_url, 'game_info'),
            self._get_json(pbp_url, 'play_by_play'),
            return_exceptions=True,
        )
        if isinstance(play_by_play, BaseException):
            if isinstance(play_by_play, ProviderError):
                raise play_by_play
            raise ProviderError(f"SHL play-by-play failed for {event_id}: {play_by_play}") from play_by_play
        if isinstance(info, BaseException):
            logger.warning(f"SHL game info unavailable for {event_id}: {info}")
            info = None

        events = play_by_play if isinstance(play_by_play, list) else []
        goals = [self.parse_goal(raw) for raw in events if isinstance(raw, dict) and raw.get('type') == 'goal']

        details = EventDetails(scoring_events=goals)
        if isinstance(info, dict):
            details.home = self.parse_team(info.get('homeTeam'))
            details.away = self.parse_team(info.get('awayTeam'))
        return details

    async def fetch_media(self, event_id: str) -> List[MediaItem]:
        url = f"{self.base_url}/media/videos-for-game?page=0&pageSize=20&gameUuid={event_id}"
        data = await self._get_json(url, 'videos')
        if not isinstance(data, dict):
            return []
        items = []
        for raw in data.get('items') or []:
            item = self.parse_video(raw)
            if item is not None:
                items.append(item)
        return items

    def is_highlight(self, media: MediaItem) -> bool:
        return HIGHLIGHT_TAG in media.tags

    def display_info(self, event: SportEvent) -> DisplayInfo:
        info = super().display_info(event)
        if event.venue:
            return info
        return replace(info, venue='arenan')

    def parse_team(self, raw: Any) -> Optional[Participant]:
        if not isinstance(raw, dict):
            return None
        names = raw.get('names') or {}
        return Participant(
            team_id=_text(raw.get('uuid')),
            code=_text(raw.get('code')),
            name=_text(names.get('long')) or _text(names.get('full')),
            short_name=_text(names.get('short')),
            score=normalize_score(raw.get('score')),
        )

    def parse_game(self, raw: Any) -> Optional[SportEvent]:
        if not isinstance(raw, dict):
            return None
        event_id = _text(raw.get('uuid'))
        start_time = parse_timestamp(raw.get('startDateTime'))
        try:
            state = EventState(raw.get('state'))
        except ValueError:
            state = None
        if not event_id or start_time is None or state is None:
            logger.debug(f"Skipping malformed SHL game entry: {raw.get('uuid')}")
            return None
        venue = (raw.get('venueInfo') or {}).get('name')
        return SportEvent(
            event_id=event_id,
            league=self.league_id,
            state=state,
            start_time=start_time,
            home=self.parse_team(raw.get('homeTeamInfo')),
            away=self.parse_team(raw.get('awayTeamInfo')),
            venue=_text(venue),
        )

    def parse_goal(self, raw: Dict[str, Any]) -> ScoringEvent:
        team = raw.get('eventTeam') or {}
        player = raw.get('player') or {}
        first = player.get('firstName')
        family = player.get('familyName')
        scorer_name = f"{first} {family}" if first and family else _text(player.get('name'))
        period = raw.get('period')
        return ScoringEvent(
            period=period if isinstance(period, int) else normalize_score(period),
            clock=_text(raw.get('time')) or '',
            team_id=_text(team.get('teamId')),
            side=_text(team.get('place')),
            scorer_id=_text(player.get('uuid')),
            scorer_name=scorer_name,
            home_score=normalize_score(raw.get('homeGoals')),
            away_score=normalize_score(raw.get('awayGoals')),
        )

    def parse_video(self, raw: Any) -> Optional[MediaItem]:
        if not isinstance(raw, dict) or raw.get('id') is None:
            return None
        rendered = raw.get('renderedMedia') or {}
        return MediaItem(
            media_id=str(raw['id']),
            title=_text(raw.get('title')) or '',
            url=_text(rendered.get('videourl')) or '',
            thumbnail=_text(rendered.get('url')) or _text(raw.get('thumbnail')),
            tags=tuple(raw.get('tags') or ()),
        )
