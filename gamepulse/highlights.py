# gamepulse/highlights.py

"""
Highlight Notifier

Polls the active events of leagues that publish videos and announces every
video once. Seen video ids and finished-game ids are persisted so a restart
does not announce anything twice. The first check after start only indexes
what is already published.
"""

import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .cache import MEDIA
from .clock import Clock, SystemClock
from .exceptions import ProviderError
from .models import MediaItem, SportEvent
from .providers.base import LeagueProvider
from .providers.registry import ProviderRegistry, list_active_events
from .registry import DurableIdSet
from .scheduler import PeriodicRunner

logger = logging.getLogger(__name__)


@dataclass
class HighlightCheckResult:
    events_checked: int = 0
    live_events: int = 0
    indexed: int = 0
    announced: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'events_checked': self.events_checked,
            'live_events': self.live_events,
            'indexed': self.indexed,
            'announced': self.announced,
            'errors': list(self.errors),
        }


class HighlightNotifier:
    """Announce newly published game videos."""

    def __init__(
        self,
        config,
        providers: ProviderRegistry,
        dispatcher,
        seen_media: DurableIdSet,
        seen_games: DurableIdSet,
        clock: Optional[Clock] = None,
        cache=None,
        activity_log=None
    ):
        self.config = config
        self.providers = providers
        self.dispatcher = dispatcher
        self.seen_media = seen_media
        self.seen_games = seen_games
        self.cache = cache
        self.activity_log = activity_log
        self._clock = clock or SystemClock()
        self._indexed = False
        self._stopped = False
        self._runner = PeriodicRunner(
            self._clock,
            self._step,
            initial_delay=0,
            error_delay=config.highlight_idle_delay,
            name='HighlightNotifier',
        )
        self.total_announced = 0
        self.last_check: Optional[datetime] = None

    def start(self):
        self._stopped = False
        self._indexed = False
        self._runner.start()

    async def stop(self):
        self._stopped = True
        await self._runner.stop()

    @property
    def is_running(self) -> bool:
        return self._runner.is_running

    async def _step(self) -> float:
        result = await self.check()
        if result.live_events:
            return self.config.highlight_live_delay
        return self.config.highlight_idle_delay

    async def check(self) -> HighlightCheckResult:
        result = HighlightCheckResult()
        announce = self._indexed

        for provider in self.providers:
            if self._stopped:
                break
            if not provider.league.publishes_media:
                continue
            try:
                events = await list_active_events(provider, self.cache)
            except Exception as e:
                logger.error(f"Highlight check failed for {provider.league.label}: {e}", exc_info=True)
                result.errors.append(f"{provider.league.label}: {e}")
                continue
            for event in events:
                await self._check_event(provider, event, result, announce)

        if not announce:
            logger.info(f"Indexed {result.indexed} existing videos; new videos will be announced from now on")
        self._indexed = True
        self.last_check = self._clock.now()
        return result

    async def _check_event(self, provider: LeagueProvider, event: SportEvent,
                           result: HighlightCheckResult, announce: bool):
        if event.event_id in self.seen_games:
            return
        if event.is_live:
            result.live_events += 1

        hours_since_start = (self._clock.now() - event.start_time).total_seconds() / 3600
        if event.is_finished and hours_since_start > self.config.max_hours_since_game:
            self.seen_games.add(event.event_id)
            logger.debug(f"Game {event.event_id} is {hours_since_start:.0f}h old; no longer watched for videos")
            return

        result.events_checked += 1
        try:
            media = await self._fetch_media(provider, event.event_id)
        except ProviderError as e:
            logger.warning(f"Could not fetch videos for {event.event_id}: {e}")
            result.errors.append(f"{provider.league.label} {event.event_id}: {e}")
            return

        for item in media:
            if item.media_id in self.seen_media:
                continue
            self.seen_media.add(item.media_id)
            if not announce:
                result.indexed += 1
                continue
            await self._announce(provider, event, item, result)

    async def _fetch_media(self, provider: LeagueProvider, event_id: str) -> List[MediaItem]:
        if self.cache is None:
            return await provider.fetch_media(event_id)
        return await self.cache.get_or_fetch(MEDIA, event_id, functools.partial(provider.fetch_media, event_id))

    async def _announce(self, provider: LeagueProvider, event: SportEvent, item: MediaItem,
                        result: HighlightCheckResult):
        is_highlight = provider.is_highlight(item)
        display = provider.display_info(event)
        logger.info(f"New {'highlight' if is_highlight else 'video'} for {display.home_name} vs {display.away_name}: {item.title}")
        try:
            outcome = await self.dispatcher.send_highlight(provider.league, display, item, is_highlight)
        except Exception as e:
            logger.error(f"Failed to dispatch video {item.media_id}: {e}", exc_info=True)
            result.errors.append(f"dispatch {item.media_id}: {e}")
            return
        if self._stopped:
            return
        result.announced += 1
        self.total_announced += 1
        if self.activity_log is not None:
            self.activity_log.add_entry(
                'highlights',
                'notification',
                f"{'Highlight' if is_highlight else 'Video'}: {display.home_name} vs {display.away_name}",
                {'media_id': item.media_id, 'title': item.title, **outcome.to_dict()},
            )

    def get_stats(self) -> Dict[str, Any]:
        return {
            'running': self.is_running,
            'indexed': self._indexed,
            'checks': self._runner.runs,
            'last_check': self.last_check.isoformat() if self.last_check else None,
            'seen_media': len(self.seen_media),
            'seen_games': len(self.seen_games),
            'total_announced': self.total_announced,
        }
