# gamepulse/providers/base.py

"""
League provider interface.

One implementation per league turns that league's API into SportEvent,
EventDetails and MediaItem objects. The watchers only ever talk to this
interface.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models import (
    DisplayInfo, EventDetails, LeagueInfo, MediaItem, SportEvent, period_label
)


class LeagueProvider(ABC):
    """Data source for a single league."""

    def __init__(self, league: LeagueInfo):
        self.league = league

    @property
    def league_id(self) -> str:
        return self.league.league_id

    @abstractmethod
    async def list_all(self) -> List[SportEvent]:
        """All known events of the current season."""

    @abstractmethod
    async def list_active(self) -> List[SportEvent]:
        """Events that are live, about to start or recently finished."""

    @abstractmethod
    async def fetch_details(self, event_id: str) -> Optional[EventDetails]:
        """Rich details including the ordered list of scoring events."""

    async def fetch_media(self, event_id: str) -> List[MediaItem]:
        return []

    def is_highlight(self, media: MediaItem) -> bool:
        return False

    def display_info(self, event: SportEvent) -> DisplayInfo:
        home = event.home
        away = event.away
        return DisplayInfo(
            event_id=event.event_id,
            home_name=home.display_name if home else 'Home',
            away_name=away.display_name if away else 'Away',
            home_code=home.tag_code if home else None,
            away_code=away.tag_code if away else None,
            venue=event.venue,
            start_time=event.start_time,
            state=event.state,
        )

    def period_label(self, period: Optional[int]) -> str:
        return period_label(self.league.sport, period)

    async def close(self):
        """Release network resources."""
