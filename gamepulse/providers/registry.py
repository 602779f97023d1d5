# gamepulse/providers/registry.py

"""
Provider registry and cached listing helpers.
"""

import logging
from typing import Dict, Iterator, List, Optional

from ..cache import AdaptiveCache, schedule_category
from ..models import SportEvent
from .base import LeagueProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Maps league ids to provider instances.

    Iteration follows registration order, which is the fixed order in which
    watchers process leagues.
    """

    def __init__(self, providers: Optional[List[LeagueProvider]] = None):
        self._providers: Dict[str, LeagueProvider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: LeagueProvider):
        if provider.league_id in self._providers:
            raise ValueError(f"Provider for league '{provider.league_id}' already registered")
        self._providers[provider.league_id] = provider
        logger.debug(f"Registered provider for {provider.league_id}")

    def get(self, league_id: str) -> LeagueProvider:
        try:
            return self._providers[league_id]
        except KeyError:
            available = ', '.join(self._providers) or 'none'
            raise KeyError(f"Unknown league '{league_id}'. Available: {available}") from None

    def league_ids(self) -> List[str]:
        return list(self._providers)

    def __iter__(self) -> Iterator[LeagueProvider]:
        return iter(list(self._providers.values()))

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, league_id: str) -> bool:
        return league_id in self._providers

    async def close(self):
        for provider in self._providers.values():
            await provider.close()


def _has_live(events: List[SportEvent]) -> bool:
    return any(event.is_live for event in events)


async def list_active_events(provider: LeagueProvider,
                             cache: Optional[AdaptiveCache] = None) -> List[SportEvent]:
    """Active events of a league, through the cache when one is given."""
    if cache is None:
        return await provider.list_active()
    return await cache.get_or_fetch(
        schedule_category(provider.league_id), 'active', provider.list_active, is_live=_has_live
    )


async def list_all_events(provider: LeagueProvider,
                          cache: Optional[AdaptiveCache] = None) -> List[SportEvent]:
    """All events of a league, through the cache when one is given."""
    if cache is None:
        return await provider.list_all()
    return await cache.get_or_fetch(
        schedule_category(provider.league_id), 'all', provider.list_all, is_live=_has_live
    )
