"""
Pytest configuration and shared fixtures for all tests.
"""
import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from gamepulse.clock import ManualClock
from gamepulse.config import load_config
from gamepulse.models import LeagueInfo, Sport
from gamepulse.notifications.dispatcher import NotificationDispatcher
from gamepulse.persistence import JsonListStore
from gamepulse.providers.registry import ProviderRegistry

from tests.fakes import START, FakeChannel, FakeProvider


@pytest.fixture
def clock():
    """Manual clock starting at 2025-01-15 12:00 UTC."""
    return ManualClock(START)


@pytest.fixture
def config(tmp_path):
    """Configuration isolated from the environment with files under tmp_path."""
    return load_config(
        _env_file=None,
        data_dir=str(tmp_path / 'data'),
        log_dir=str(tmp_path / 'logs'),
        enabled_channels=[],
        timezone='UTC',
    )


@pytest.fixture
def hockey_league():
    return LeagueInfo(
        league_id='testliga',
        label='TestLiga',
        sport=Sport.HOCKEY,
        emoji='🏒',
        pre_game_topic='pre_game_testliga',
        publishes_media=True,
    )


@pytest.fixture
def football_league():
    return LeagueInfo(
        league_id='allsvenskan',
        label='Allsvenskan',
        sport=Sport.FOOTBALL,
        emoji='⚽',
        pre_game_topic='pre_game_allsvenskan',
    )


@pytest.fixture
def biathlon_league():
    return LeagueInfo(
        league_id='biathlon',
        label='Biathlon',
        sport=Sport.BIATHLON,
        emoji='🎯',
        pre_game_topic='pre_game_biathlon',
        individual=True,
    )


@pytest.fixture
def provider(hockey_league):
    return FakeProvider(hockey_league)


@pytest.fixture
def providers(provider):
    return ProviderRegistry([provider])


@pytest.fixture
def channel():
    return FakeChannel('fake')


@pytest.fixture
def error_store(tmp_path):
    return JsonListStore(str(tmp_path / 'errors.json'), max_entries=100, newest_first=True)


@pytest.fixture
def dispatcher(config, channel, clock, error_store):
    return NotificationDispatcher(config, [channel], clock=clock, error_store=error_store)
