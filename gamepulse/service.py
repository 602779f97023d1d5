# gamepulse/service.py

"""
GamePulse Service

Composition root. Builds the cache, registries, dispatcher and watchers for
one configuration and owns their lifecycle. Several services can live in
one process; nothing here is module-level state.
"""

import logging
from typing import Any, Dict, List, Optional

from .activity_log import ActivityLog
from .cache import AdaptiveCache, default_categories
from .clock import Clock, SystemClock
from .exceptions import ChannelError
from .goal_watcher import GoalWatcher
from .highlights import HighlightNotifier
from .notifications.channels import FCMChannel, NotificationChannel, NtfyChannel, OneSignalChannel
from .notifications.dispatcher import DispatchResult, NotificationDispatcher
from .persistence import JsonListStore
from .pre_game import PreGameScheduler
from .providers.registry import ProviderRegistry
from .registry import DurableIdSet, SeenRegistry, SentReminderRegistry

logger = logging.getLogger(__name__)

CHANNEL_TYPES = {
    'fcm': FCMChannel,
    'onesignal': OneSignalChannel,
    'ntfy': NtfyChannel,
}


def build_channels(config) -> List[NotificationChannel]:
    """
    Instantiate the channels listed in config.enabled_channels.

    Raises:
        ChannelError: For an unknown channel name
    """
    channels = []
    for name in config.enabled_channels:
        try:
            channel_type = CHANNEL_TYPES[name]
        except KeyError:
            available = ', '.join(CHANNEL_TYPES)
            raise ChannelError(f"Unknown notification channel '{name}'. Available: {available}") from None
        channels.append(channel_type(config))
    return channels


class GamePulseService:
    """Goal watcher, pre-game scheduler and highlight notifier sharing one dispatcher."""

    def __init__(
        self,
        config,
        providers: ProviderRegistry,
        channels: Optional[List[NotificationChannel]] = None,
        clock: Optional[Clock] = None,
        metrics=None
    ):
        self.config = config
        self.providers = providers
        self.clock = clock or SystemClock()
        self.metrics = metrics
        self._running = False

        self.cache = AdaptiveCache(self.clock, default_categories(config, providers.league_ids()), metrics)
        self.activity_log = ActivityLog(self.clock, config.max_activity_entries, tz=config.tz)

        self.seen_goals = SeenRegistry()
        self.sent_reminders = SentReminderRegistry(JsonListStore(
            config.data_path(config.sent_reminders_file), max_entries=config.max_sent_reminders
        ))
        self.seen_media = DurableIdSet(JsonListStore(
            config.data_path(config.seen_media_file), max_entries=config.max_seen_media
        ))
        self.seen_games = DurableIdSet(JsonListStore(
            config.data_path(config.seen_games_file), max_entries=config.max_seen_media
        ))
        error_store = JsonListStore(
            config.data_path(config.error_log_file),
            max_entries=config.max_error_log_entries,
            newest_first=True,
        )

        if channels is None:
            channels = build_channels(config)
        self.dispatcher = NotificationDispatcher(
            config, channels, clock=self.clock, error_store=error_store, metrics=metrics
        )

        self.goal_watcher = GoalWatcher(
            config, providers, self.dispatcher,
            clock=self.clock,
            cache=self.cache,
            activity_log=self.activity_log,
            metrics=metrics,
            seen=self.seen_goals,
        )
        self.pre_game = PreGameScheduler(
            config, providers, self.dispatcher,
            clock=self.clock,
            sent_registry=self.sent_reminders,
            cache=self.cache,
            activity_log=self.activity_log,
            metrics=metrics,
        )
        self.highlights: Optional[HighlightNotifier] = None
        if config.enable_highlights:
            self.highlights = HighlightNotifier(
                config, providers, self.dispatcher,
                seen_media=self.seen_media,
                seen_games=self.seen_games,
                clock=self.clock,
                cache=self.cache,
                activity_log=self.activity_log,
            )

    @property
    def is_running(self) -> bool:
        return self._running

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    async def start(self):
        """Load persisted state, initialize channels and start every driver."""
        if self._running:
            logger.warning("GamePulse service already running")
            return

        self.sent_reminders.load()
        self.seen_media.load()
        self.seen_games.load()
        ready = self.dispatcher.initialize()

        self.goal_watcher.start()
        self.pre_game.start()
        if self.highlights:
            self.highlights.start()

        self._running = True
        if self.metrics:
            self.metrics.set_health(True)
        self.activity_log.add_entry('service', 'start', 'GamePulse started', {
            'leagues': self.providers.league_ids(),
            'channels': ready,
        })
        logger.info(f"GamePulse started for leagues: {', '.join(self.providers.league_ids()) or 'none'}")

    async def stop(self):
        """
        Stop all drivers, cancel pending reminders, wait for background sends
        and close network sessions.
        """
        if not self._running:
            return
        self._running = False

        await self.goal_watcher.stop()
        await self.pre_game.stop()
        if self.highlights:
            await self.highlights.stop()

        await self.dispatcher.drain()
        await self.providers.close()
        await self.dispatcher.close()

        if self.metrics:
            self.metrics.set_health(False)
        self.activity_log.add_entry('service', 'stop', 'GamePulse stopped')
        logger.info("GamePulse stopped")

    async def send_test_notification(self, message: Optional[str] = None,
                                     token: Optional[str] = None) -> DispatchResult:
        result = await self.dispatcher.send_test(message, token)
        self.activity_log.add_entry(
            'service', 'test', f"Test notification {'sent' if result.delivered else 'failed'}", result.to_dict()
        )
        return result

    def get_stats(self) -> Dict[str, Any]:
        return {
            'running': self._running,
            'leagues': self.providers.league_ids(),
            'goal_watcher': self.goal_watcher.get_stats(),
            'pre_game': self.pre_game.get_stats(),
            'highlights': self.highlights.get_stats() if self.highlights else None,
            'notifications': self.dispatcher.get_stats(),
            'cache': self.cache.status(),
            'activity_entries': len(self.activity_log),
        }
