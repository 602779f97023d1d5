# gamepulse/config.py

"""
GamePulse Configuration

Settings for cache freshness, watcher cadence, reminder scheduling, retention,
persistence and delivery channels. Values are read from environment variables
prefixed with GAMEPULSE_ (or a local .env file) and validated by Pydantic.
"""

import os
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GamePulseConfig(BaseSettings):
    """
    Runtime configuration for the GamePulse service.

    Durations are expressed in seconds unless the field name says otherwise.
    Each service owns the instance it was built with; there is no shared
    module-level configuration.
    """

    model_config = SettingsConfigDict(
        env_prefix='GAMEPULSE_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    # Cache durations
    cache_schedule_seconds: float = Field(default=60.0, gt=0)
    cache_schedule_live_seconds: float = Field(default=15.0, gt=0)  # while a live game is listed
    cache_details_seconds: float = Field(default=30.0, gt=0)
    cache_media_seconds: float = Field(default=60.0, gt=0)

    # Goal watcher cadence
    goal_active_delay: float = Field(default=15.0, gt=0)
    goal_idle_delay: float = Field(default=60.0, gt=0)
    goal_initial_delay: float = Field(default=5.0, ge=0)

    # Pre-game reminders
    reminder_offset_minutes: float = Field(default=5.0, ge=0)
    scan_hour: int = Field(default=6)
    scan_horizon_hours: float = Field(default=24.0, gt=0)
    pre_game_initial_delay: float = Field(default=10.0, ge=0)
    pre_game_error_delay: float = Field(default=900.0, gt=0)
    timezone: str = Field(default='Europe/Stockholm')

    # Highlight notifier
    enable_highlights: bool = Field(default=True)
    highlight_live_delay: float = Field(default=30.0, gt=0)
    highlight_idle_delay: float = Field(default=300.0, gt=0)
    max_hours_since_game: float = Field(default=36.0, gt=0)

    # Retention
    max_sent_reminders: int = Field(default=100, gt=0)
    max_error_log_entries: int = Field(default=100, gt=0)
    max_activity_entries: int = Field(default=200, gt=0)
    max_seen_media: int = Field(default=5000, gt=0)

    # Persistence
    data_dir: str = Field(default='data')
    sent_reminders_file: str = Field(default='seen_pre_game.json')
    seen_games_file: str = Field(default='seen_games.json')
    seen_media_file: str = Field(default='seen_videos.json')
    error_log_file: str = Field(default='notification_errors.json')

    # Delivery channels
    enabled_channels: List[str] = Field(default_factory=lambda: ['fcm'])
    split_goal_audiences: bool = Field(default=True)
    deep_link_scheme: str = Field(default='gamepulse')
    firebase_credentials_path: Optional[str] = Field(default=None)
    firebase_project_id: Optional[str] = Field(default=None)
    firebase_client_email: Optional[str] = Field(default=None)
    firebase_private_key: Optional[str] = Field(default=None)
    onesignal_app_id: Optional[str] = Field(default=None)
    onesignal_rest_api_key: Optional[str] = Field(default=None)
    onesignal_api_url: str = Field(default='https://onesignal.com/api/v1/notifications')
    ntfy_base_url: str = Field(default='https://ntfy.sh')
    channel_timeout: float = Field(default=15.0, gt=0)

    # Data sources
    provider_timeout: float = Field(default=15.0, gt=0)
    provider_max_retries: int = Field(default=3, ge=1)

    # Monitoring and logging
    log_level: str = Field(default='INFO')
    log_dir: str = Field(default='logs')
    enable_metrics: bool = Field(default=False)
    metrics_port: int = Field(default=9090)

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of {valid_levels}')
        return v.upper()

    @field_validator('scan_hour')
    @classmethod
    def validate_scan_hour(cls, v):
        if not 0 <= v <= 23:
            raise ValueError('scan_hour must be between 0 and 23')
        return v

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f'Unknown timezone {v!r}') from e
        return v

    @field_validator('enabled_channels')
    @classmethod
    def validate_channels(cls, v):
        return [name.strip().lower() for name in v if name and name.strip()]

    @property
    def tz(self) -> ZoneInfo:
        """Local timezone used for scheduling and timestamps."""
        return ZoneInfo(self.timezone)

    @property
    def reminder_offset_seconds(self) -> float:
        return self.reminder_offset_minutes * 60

    @property
    def scan_horizon_seconds(self) -> float:
        return self.scan_horizon_hours * 3600

    def data_path(self, filename: str) -> str:
        """Resolve a persistence file name inside the data directory."""
        return os.path.join(self.data_dir, filename)


def load_config(**overrides) -> GamePulseConfig:
    """
    Build a fresh configuration.

    Args:
        **overrides: Field values that take precedence over the environment

    Returns:
        GamePulseConfig: Validated configuration instance
    """
    return GamePulseConfig(**overrides)
