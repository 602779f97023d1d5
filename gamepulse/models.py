# gamepulse/models.py

"""
Domain Models

Normalized shapes shared between league providers, the watchers and the
notification dispatcher. Providers turn raw JSON into these types; nothing
past the provider boundary looks at raw payloads.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Sport(str, Enum):
    HOCKEY = 'hockey'
    FOOTBALL = 'football'
    BIATHLON = 'biathlon'


class EventState(str, Enum):
    PRE_GAME = 'pre-game'
    LIVE = 'live'
    POST_GAME = 'post-game'


@dataclass(frozen=True)
class LeagueInfo:
    """Static description of a league and how its notifications look."""
    league_id: str
    label: str
    sport: Sport
    emoji: str
    pre_game_topic: str
    individual: bool = False     # races without home/away participants
    score_only: bool = False     # no play-by-play, only aggregate scores
    publishes_media: bool = False


@dataclass(frozen=True)
class Participant:
    team_id: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None
    short_name: Optional[str] = None
    score: Optional[int] = None

    @property
    def display_name(self) -> str:
        return self.name or self.short_name or self.code or 'Unknown'

    @property
    def tag_code(self) -> Optional[str]:
        """Identifier used for team subscription tags."""
        return self.code or self.short_name

    def matches(self, identifier: Optional[str]) -> bool:
        return bool(identifier) and identifier in (self.team_id, self.code)

    def merged_with(self, other: Optional['Participant']) -> 'Participant':
        """Fill fields missing here from another view of the same team."""
        if other is None:
            return self
        return Participant(
            team_id=self.team_id or other.team_id,
            code=self.code or other.code,
            name=self.name or other.name,
            short_name=self.short_name or other.short_name,
            score=self.score if self.score is not None else other.score,
        )


@dataclass(frozen=True)
class SportEvent:
    """A scheduled game or race as listed by a provider."""
    event_id: str
    league: str
    state: EventState
    start_time: datetime
    home: Optional[Participant] = None
    away: Optional[Participant] = None
    venue: Optional[str] = None
    event_name: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.state == EventState.LIVE

    @property
    def is_finished(self) -> bool:
        return self.state == EventState.POST_GAME

    def with_state(self, state: EventState) -> 'SportEvent':
        return replace(self, state=state)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['state'] = self.state.value
        data['start_time'] = self.start_time.isoformat()
        return data


@dataclass(frozen=True)
class ScoringEvent:
    """One goal as reported in a play-by-play feed."""
    period: Optional[int] = None
    clock: str = ''
    team_id: Optional[str] = None
    side: Optional[str] = None          # 'home' or 'away' when the feed says so
    scorer_id: Optional[str] = None
    scorer_name: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None


@dataclass
class EventDetails:
    scoring_events: List[ScoringEvent] = field(default_factory=list)
    home: Optional[Participant] = None
    away: Optional[Participant] = None


@dataclass(frozen=True)
class DisplayInfo:
    event_id: str
    home_name: str
    away_name: str
    home_code: Optional[str]
    away_code: Optional[str]
    venue: Optional[str]
    start_time: datetime
    state: EventState


@dataclass(frozen=True)
class MediaItem:
    media_id: str
    title: str = ''
    url: str = ''
    thumbnail: Optional[str] = None
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DetectedGoal:
    """A newly observed goal enriched for notification."""
    league: LeagueInfo
    event_id: str
    fingerprint: str
    scorer_name: str
    scoring_team: Participant
    opposing_team: Participant
    home: Participant
    away: Participant
    home_score: int
    away_score: int
    clock: str = ''
    period_label: str = ''

    @property
    def is_home_team(self) -> bool:
        return self.scoring_team == self.home

    def to_dict(self) -> Dict[str, Any]:
        return {
            'league': self.league.league_id,
            'event_id': self.event_id,
            'fingerprint': self.fingerprint,
            'scorer_name': self.scorer_name,
            'scoring_team': self.scoring_team.display_name,
            'opposing_team': self.opposing_team.display_name,
            'home_score': self.home_score,
            'away_score': self.away_score,
            'clock': self.clock,
            'period': self.period_label,
        }


@dataclass(frozen=True)
class ReminderInfo:
    """Everything a pre-game reminder needs, captured at scan time."""
    league: LeagueInfo
    event_id: str
    start_time: datetime
    home_name: Optional[str] = None
    away_name: Optional[str] = None
    home_code: Optional[str] = None
    away_code: Optional[str] = None
    venue: Optional[str] = None
    event_name: Optional[str] = None


def goal_fingerprint(event_id: str, goal: ScoringEvent) -> str:
    """
    Deterministic identity of a goal within an event.

    Composed of event id, period, clock, scoring side, scorer and the score
    pair after the goal. A changed score always yields a new fingerprint.
    """
    parts = [
        event_id,
        goal.period,
        goal.clock,
        goal.team_id or goal.side,
        goal.scorer_id,
        goal.home_score,
        goal.away_score,
    ]
    return '-'.join('' if part is None else str(part) for part in parts)


def period_label(sport: Sport, period: Optional[int]) -> str:
    if not period:
        return ''
    if sport == Sport.FOOTBALL:
        return {1: '1st half', 2: '2nd half'}.get(period, '')
    return f"P{period}"
