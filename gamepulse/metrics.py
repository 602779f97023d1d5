# gamepulse/metrics.py

"""
Metrics Collection

Prometheus counters, gauges and histograms for data-source polling, cache
effectiveness, goal detection, reminder scheduling and notification delivery.
Each collector owns its registry so several services can coexist in one
process (and in one test session).
"""

import logging
from typing import Optional

from prometheus_client import (
    CollectorRegistry, Counter, Gauge, Histogram, Info,
    generate_latest, start_http_server
)

logger = logging.getLogger(__name__)


class MetricsCollector:
    """Prometheus metrics for the GamePulse watchers and dispatcher."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._setup_metrics()

    def _setup_metrics(self):
        self.system_info = Info(
            'gamepulse_system',
            'GamePulse service information',
            registry=self.registry
        )

        # Data sources
        self.provider_requests_total = Counter(
            'gamepulse_provider_requests_total',
            'Requests made to league data sources',
            ['league', 'operation'],
            registry=self.registry
        )
        self.provider_requests_failed = Counter(
            'gamepulse_provider_requests_failed_total',
            'Failed requests to league data sources',
            ['league', 'error_type'],
            registry=self.registry
        )
        self.provider_request_duration = Histogram(
            'gamepulse_provider_request_duration_seconds',
            'League data source request duration',
            ['league'],
            registry=self.registry
        )
        self.circuit_breaker_state = Counter(
            'gamepulse_circuit_breaker_state_changes_total',
            'Circuit breaker state changes',
            ['service', 'state'],
            registry=self.registry
        )

        # Cache
        self.cache_hits = Counter(
            'gamepulse_cache_hits_total',
            'Adaptive cache hits',
            ['category'],
            registry=self.registry
        )
        self.cache_misses = Counter(
            'gamepulse_cache_misses_total',
            'Adaptive cache misses',
            ['category'],
            registry=self.registry
        )

        # Goal watcher
        self.goal_checks_total = Counter(
            'gamepulse_goal_checks_total',
            'Completed goal watcher cycles',
            registry=self.registry
        )
        self.goal_check_duration = Histogram(
            'gamepulse_goal_check_duration_seconds',
            'Goal watcher cycle duration',
            registry=self.registry
        )
        self.goals_detected = Counter(
            'gamepulse_goals_detected_total',
            'New goals detected',
            ['league'],
            registry=self.registry
        )
        self.live_events = Gauge(
            'gamepulse_live_events',
            'Live events seen in the last goal watcher cycle',
            registry=self.registry
        )
        self.tracked_events = Gauge(
            'gamepulse_tracked_events',
            'Events with an initialized seen-goal set',
            registry=self.registry
        )

        # Pre-game reminders
        self.reminders_scheduled = Counter(
            'gamepulse_reminders_scheduled_total',
            'Pre-game reminders scheduled',
            ['league'],
            registry=self.registry
        )
        self.reminders_fired = Counter(
            'gamepulse_reminders_fired_total',
            'Pre-game reminders fired',
            ['league', 'outcome'],
            registry=self.registry
        )
        self.pending_reminders = Gauge(
            'gamepulse_pending_reminders',
            'Reminder timers waiting to fire',
            registry=self.registry
        )

        # Notifications
        self.notifications_sent = Counter(
            'gamepulse_notifications_sent_total',
            'Notifications accepted by a channel',
            ['kind', 'channel'],
            registry=self.registry
        )
        self.notifications_failed = Counter(
            'gamepulse_notifications_failed_total',
            'Notifications rejected by a channel',
            ['kind', 'channel'],
            registry=self.registry
        )

        self.service_health = Gauge(
            'gamepulse_service_health',
            'Service health (1 = running, 0 = stopped)',
            registry=self.registry
        )

    def record_provider_request(self, league: str, operation: str, duration: float,
                                error_type: Optional[str] = None):
        self.provider_requests_total.labels(league=league, operation=operation).inc()
        self.provider_request_duration.labels(league=league).observe(duration)
        if error_type:
            self.provider_requests_failed.labels(league=league, error_type=error_type).inc()

    def record_cache(self, category: str, hit: bool):
        if hit:
            self.cache_hits.labels(category=category).inc()
        else:
            self.cache_misses.labels(category=category).inc()

    def record_goal_check(self, duration: float, live_events: int, tracked_events: int):
        self.goal_checks_total.inc()
        self.goal_check_duration.observe(duration)
        self.live_events.set(live_events)
        self.tracked_events.set(tracked_events)

    def record_notification(self, kind: str, channel: str, success: bool):
        if success:
            self.notifications_sent.labels(kind=kind, channel=channel).inc()
        else:
            self.notifications_failed.labels(kind=kind, channel=channel).inc()

    def set_system_info(self, info: dict):
        self.system_info.info({k: str(v) for k, v in info.items()})

    def set_health(self, healthy: bool):
        self.service_health.set(1 if healthy else 0)

    def get_metrics(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)


def setup_metrics(config) -> MetricsCollector:
    """
    Build a collector and optionally expose it over HTTP.

    Args:
        config: GamePulseConfig with enable_metrics and metrics_port

    Returns:
        MetricsCollector: New collector instance
    """
    metrics = MetricsCollector()
    metrics.set_system_info({'service': 'gamepulse', 'timezone': config.timezone})
    if config.enable_metrics:
        try:
            start_http_server(config.metrics_port, registry=metrics.registry)
            logger.info(f"Metrics server started on port {config.metrics_port}")
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
    return metrics
