# gamepulse/__init__.py

"""
GamePulse

Live sports notifier: watches league data sources for new goals, sends
pre-game reminders ahead of kickoff and announces new highlight videos
through push notification channels.
"""

from .cache import AdaptiveCache, CacheCategory
from .clock import Clock, ManualClock, SystemClock
from .config import GamePulseConfig, load_config
from .goal_watcher import GoalWatcher
from .highlights import HighlightNotifier
from .notifications import NotificationDispatcher
from .pre_game import PreGameScheduler
from .providers import LeagueProvider, ProviderRegistry
from .service import GamePulseService, build_channels

__all__ = [
    'AdaptiveCache',
    'CacheCategory',
    'Clock',
    'SystemClock',
    'ManualClock',
    'GamePulseConfig',
    'load_config',
    'GoalWatcher',
    'PreGameScheduler',
    'HighlightNotifier',
    'NotificationDispatcher',
    'LeagueProvider',
    'ProviderRegistry',
    'GamePulseService',
    'build_channels',
]

__version__ = '1.0.0'
