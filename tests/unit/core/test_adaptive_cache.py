"""
AdaptiveCache unit tests.

These tests verify the cache's freshness rules:
- Entries expire once their age reaches the effective duration
- The live duration applies while the category's latest put was live
- get_or_fetch only calls the loader when the entry is stale
- Per-league schedule categories stay independent
"""
import pytest
from unittest.mock import AsyncMock

from gamepulse.cache import (
    DETAILS, MEDIA, AdaptiveCache, CacheCategory, default_categories, schedule_category
)
from gamepulse.metrics import MetricsCollector


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def cache(clock):
    return AdaptiveCache(clock, [
        CacheCategory('schedule', base_duration=60, live_duration=15),
        CacheCategory('details', base_duration=30),
    ])


# =============================================================================
# ADAPTIVE DURATION TESTS
# =============================================================================

@pytest.mark.unit
class TestAdaptiveDuration:
    """Test liveness-driven validity windows."""

    @pytest.mark.asyncio
    async def test_live_put_uses_live_duration(self, cache, clock):
        """
        GIVEN a value put with is_live=True
        WHEN reading it back over time
        THEN it is valid only while its age is below the live duration
        """
        cache.put('schedule', None, ['game'], is_live=True)

        await clock.advance(14)
        assert cache.get('schedule') == ['game']

        await clock.advance(1)
        assert cache.get('schedule') is None

    @pytest.mark.asyncio
    async def test_non_live_put_restores_base_duration(self, cache, clock):
        """
        GIVEN a live put followed by a non-live put
        WHEN reading after the live window but before the base window
        THEN the entry is still valid, counted from the second write
        """
        cache.put('schedule', None, 'first', is_live=True)
        await clock.advance(20)
        cache.put('schedule', None, 'second', is_live=False)

        await clock.advance(59)
        assert cache.get('schedule') == 'second'
        assert cache.effective_duration('schedule') == 60

        await clock.advance(1)
        assert cache.get('schedule') is None

    def test_live_flag_ignored_without_live_duration(self, cache):
        cache.put('details', 'E1', {'goals': []}, is_live=True)

        assert cache.effective_duration('details') == 30

    def test_latest_put_drives_category_liveness(self, cache):
        """
        GIVEN one key written live and another written not live afterwards
        WHEN asking for the effective duration
        THEN the most recent put decides
        """
        cache.put('schedule', 'a', 1, is_live=True)
        assert cache.effective_duration('schedule') == 15

        cache.put('schedule', 'b', 2, is_live=False)
        assert cache.effective_duration('schedule') == 60

    def test_unknown_category_raises(self, cache):
        with pytest.raises(KeyError):
            cache.put('standings', None, [])


# =============================================================================
# FETCH-OR-REFRESH TESTS
# =============================================================================

@pytest.mark.unit
class TestGetOrFetch:
    """Test the loader-backed read path."""

    @pytest.mark.asyncio
    async def test_loader_called_only_when_stale(self, cache, clock):
        loader = AsyncMock(return_value=['E1'])

        first = await cache.get_or_fetch('schedule', 'all', loader)
        second = await cache.get_or_fetch('schedule', 'all', loader)
        assert first == second == ['E1']
        assert loader.await_count == 1

        await clock.advance(60)
        await cache.get_or_fetch('schedule', 'all', loader)
        assert loader.await_count == 2

    @pytest.mark.asyncio
    async def test_is_live_predicate_sets_liveness(self, cache):
        """
        GIVEN a loader result that the predicate considers live
        WHEN it is stored through get_or_fetch
        THEN the category switches to its live duration
        """
        loader = AsyncMock(return_value=[{'state': 'live'}])

        await cache.get_or_fetch('schedule', None, loader, is_live=lambda v: any(e['state'] == 'live' for e in v))

        assert cache.effective_duration('schedule') == 15

    @pytest.mark.asyncio
    async def test_none_results_are_not_cached(self, cache):
        loader = AsyncMock(return_value=None)

        await cache.get_or_fetch('details', 'E1', loader)
        await cache.get_or_fetch('details', 'E1', loader)

        assert loader.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_list_is_cached(self, cache):
        loader = AsyncMock(return_value=[])

        await cache.get_or_fetch('details', 'E1', loader)
        await cache.get_or_fetch('details', 'E1', loader)

        assert loader.await_count == 1


# =============================================================================
# MAINTENANCE AND REPORTING TESTS
# =============================================================================

@pytest.mark.unit
class TestCacheMaintenance:
    """Test invalidation, status and metrics."""

    def test_invalidate_all_clears_entries_and_liveness(self, cache):
        cache.put('schedule', None, 'x', is_live=True)

        cache.invalidate_all()

        assert cache.get('schedule') is None
        assert cache.effective_duration('schedule') == 60

    @pytest.mark.asyncio
    async def test_status_reports_each_category(self, cache, clock):
        cache.put('schedule', None, 'x', is_live=True)
        await clock.advance(5)

        status = cache.status()

        assert status['schedule']['entries'] == 1
        assert status['schedule']['is_live'] is True
        assert status['schedule']['effective_duration'] == 15
        assert status['schedule']['newest_age_seconds'] == 5
        assert status['details']['entries'] == 0
        assert status['details']['newest_age_seconds'] is None

    def test_hits_and_misses_are_counted(self, clock):
        metrics = MetricsCollector()
        cache = AdaptiveCache(clock, [CacheCategory('media', 60)], metrics=metrics)

        cache.get('media', 'E1')
        cache.put('media', 'E1', [])
        cache.get('media', 'E1')

        registry = metrics.registry
        assert registry.get_sample_value('gamepulse_cache_misses_total', {'category': 'media'}) == 1
        assert registry.get_sample_value('gamepulse_cache_hits_total', {'category': 'media'}) == 1


@pytest.mark.unit
class TestDefaultCategories:
    """Test category construction from configuration."""

    def test_one_schedule_category_per_league(self, config, clock):
        """
        GIVEN two leagues
        WHEN one league's schedule is written live
        THEN the other league keeps the base duration
        """
        cache = AdaptiveCache(clock, default_categories(config, ['shl', 'allsvenskan']))

        cache.put(schedule_category('shl'), 'active', [], is_live=True)

        assert cache.effective_duration(schedule_category('shl')) == config.cache_schedule_live_seconds
        assert cache.effective_duration(schedule_category('allsvenskan')) == config.cache_schedule_seconds
        assert cache.effective_duration(DETAILS) == config.cache_details_seconds
        assert cache.effective_duration(MEDIA) == config.cache_media_seconds
