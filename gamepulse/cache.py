# gamepulse/cache.py

"""
Adaptive Cache

Memoizes data-source results per (category, key). Each category has a base
duration and optionally a shorter live duration, used while the category's
most recent write was flagged live. Schedule lists therefore refresh every
few seconds during a game and every minute otherwise.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, List, Optional

from .clock import Clock

logger = logging.getLogger(__name__)

DETAILS = 'details'
MEDIA = 'media'


@dataclass(frozen=True)
class CacheCategory:
    name: str
    base_duration: float
    live_duration: Optional[float] = None


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    written_at: datetime
    is_live_hint: bool = False


def schedule_category(league_id: str) -> str:
    return f"schedule:{league_id}"


def default_categories(config, league_ids: Iterable[str]) -> List[CacheCategory]:
    """
    Categories for a set of leagues.

    Every league gets its own schedule category so one league going live does
    not shorten the freshness window of another.
    """
    categories = [
        CacheCategory(
            schedule_category(league_id),
            base_duration=config.cache_schedule_seconds,
            live_duration=config.cache_schedule_live_seconds,
        )
        for league_id in league_ids
    ]
    categories.append(CacheCategory(DETAILS, base_duration=config.cache_details_seconds))
    categories.append(CacheCategory(MEDIA, base_duration=config.cache_media_seconds))
    return categories


class AdaptiveCache:
    """In-memory cache whose validity window follows observed liveness."""

    def __init__(self, clock: Clock, categories: Iterable[CacheCategory], metrics=None):
        self._clock = clock
        self._metrics = metrics
        self._categories: Dict[str, CacheCategory] = {}
        self._entries: Dict[str, Dict[Hashable, CacheEntry]] = {}
        self._live: Dict[str, bool] = {}
        for category in categories:
            self.add_category(category)

    def add_category(self, category: CacheCategory):
        self._categories[category.name] = category
        self._entries.setdefault(category.name, {})
        self._live.setdefault(category.name, False)

    def _category(self, name: str) -> CacheCategory:
        try:
            return self._categories[name]
        except KeyError:
            raise KeyError(f"Unknown cache category '{name}'") from None

    def effective_duration(self, category: str) -> float:
        cat = self._category(category)
        if cat.live_duration is not None and self._live[category]:
            return cat.live_duration
        return cat.base_duration

    def get(self, category: str, key: Hashable = None) -> Any:
        """
        Cached value, or None when absent or expired.

        An entry expires once its age reaches the category's effective
        duration.
        """
        duration = self.effective_duration(category)
        entry = self._entries[category].get(key)
        if entry is None or entry.value is None:
            self._record(category, hit=False)
            return None
        age = (self._clock.now() - entry.written_at).total_seconds()
        if age >= duration:
            self._record(category, hit=False)
            return None
        self._record(category, hit=True)
        return entry.value

    def put(self, category: str, key: Hashable, value: Any, is_live: bool = False):
        self._category(category)
        self._entries[category][key] = CacheEntry(value, self._clock.now(), bool(is_live))
        self._live[category] = bool(is_live)

    async def get_or_fetch(
        self,
        category: str,
        key: Hashable,
        loader: Callable[[], Awaitable[Any]],
        is_live: Optional[Callable[[Any], bool]] = None
    ) -> Any:
        """
        Return a fresh cached value or load, store and return a new one.

        Args:
            category: Cache category name
            key: Entry key (None for singleton categories)
            loader: Coroutine function producing the value
            is_live: Predicate deciding whether the loaded value is live

        Returns:
            The cached or freshly loaded value
        """
        cached = self.get(category, key)
        if cached is not None:
            return cached
        value = await loader()
        if value is not None:
            live = bool(is_live(value)) if is_live else False
            self.put(category, key, value, is_live=live)
        return value

    def invalidate_all(self):
        for entries in self._entries.values():
            entries.clear()
        for name in self._live:
            self._live[name] = False
        logger.info("Cache invalidated")

    def status(self) -> Dict[str, Dict[str, Any]]:
        """Per-category entry count, liveness and freshness."""
        now = self._clock.now()
        report = {}
        for name, entries in self._entries.items():
            newest = max((e.written_at for e in entries.values()), default=None)
            report[name] = {
                'entries': len(entries),
                'is_live': self._live[name],
                'effective_duration': self.effective_duration(name),
                'newest_age_seconds': (now - newest).total_seconds() if newest else None,
            }
        return report

    def _record(self, category: str, hit: bool):
        if self._metrics:
            self._metrics.record_cache(category, hit)
