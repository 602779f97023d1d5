# gamepulse/providers/__init__.py

"""
League data sources.
"""

from .base import LeagueProvider
from .http import HttpProvider
from .registry import ProviderRegistry, list_active_events, list_all_events
from .shl import SHL_LEAGUE, SHLProvider

__all__ = [
    'LeagueProvider',
    'HttpProvider',
    'ProviderRegistry',
    'list_active_events',
    'list_all_events',
    'SHLProvider',
    'SHL_LEAGUE',
]
