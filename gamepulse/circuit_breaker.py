# gamepulse/circuit_breaker.py

"""
Circuit Breaker

Stops hammering a data source that keeps failing. After a run of failures the
breaker opens and short-circuits calls until a recovery period has passed on
the injected clock, then lets a trial call through.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Type

from .clock import Clock, SystemClock
from .exceptions import CircuitBreakerError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerMetrics:
    failure_count: int = 0
    success_count: int = 0
    total_requests: int = 0
    last_failure_time: Optional[datetime] = None
    state_change_time: Optional[datetime] = None


class CircuitBreaker:
    """
    Three-state breaker (closed, open, half-open) guarding one data source.

    Only exceptions of expected_exception count as failures; anything else
    passes through without affecting the state.
    """

    def __init__(
        self,
        name: str = 'provider',
        clock: Optional[Clock] = None,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        expected_exception: Type[Exception] = Exception,
        success_threshold: int = 1,
        metrics=None
    ):
        """
        Args:
            name: Label used in logs and metrics
            clock: Time source for recovery timing
            failure_threshold: Consecutive failures before opening
            recovery_timeout: Seconds to stay open before a trial call
            expected_exception: Exception type counted as a failure
            success_threshold: Trial successes needed to close again
            metrics: Optional MetricsCollector
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.success_threshold = success_threshold
        self._clock = clock or SystemClock()
        self._metrics_collector = metrics
        self._state = CircuitState.CLOSED
        self._metrics = CircuitBreakerMetrics(state_change_time=self._clock.now())
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def metrics(self) -> CircuitBreakerMetrics:
        return self._metrics

    def can_execute(self) -> bool:
        """Whether a call may go through right now."""
        if self._state == CircuitState.OPEN:
            if not self._recovery_due():
                return False
            self._set_state(CircuitState.HALF_OPEN)
            logger.info(f"Circuit breaker for {self.name} is HALF_OPEN, allowing a trial request")
        return True

    async def record_success(self):
        async with self._lock:
            self._metrics.success_count += 1
            self._metrics.total_requests += 1
            if self._state == CircuitState.HALF_OPEN and self._metrics.success_count >= self.success_threshold:
                self._metrics.failure_count = 0
                self._metrics.success_count = 0
                self._set_state(CircuitState.CLOSED)
                logger.info(f"Circuit breaker for {self.name} closed after recovery")
            elif self._state == CircuitState.CLOSED:
                self._metrics.failure_count = 0

    async def record_failure(self):
        async with self._lock:
            self._metrics.failure_count += 1
            self._metrics.total_requests += 1
            self._metrics.last_failure_time = self._clock.now()
            if self._state == CircuitState.HALF_OPEN:
                self._metrics.success_count = 0
                self._set_state(CircuitState.OPEN)
                logger.warning(f"Circuit breaker for {self.name} reopened after failed trial request")
            elif self._state == CircuitState.CLOSED and self._metrics.failure_count >= self.failure_threshold:
                self._set_state(CircuitState.OPEN)
                logger.error(
                    f"Circuit breaker for {self.name} opened after {self._metrics.failure_count} failures"
                )

    def _recovery_due(self) -> bool:
        if self._metrics.last_failure_time is None:
            return True
        elapsed = (self._clock.now() - self._metrics.last_failure_time).total_seconds()
        return elapsed >= self.recovery_timeout

    def _set_state(self, state: CircuitState):
        self._state = state
        self._metrics.state_change_time = self._clock.now()
        if self._metrics_collector:
            self._metrics_collector.circuit_breaker_state.labels(
                service=self.name, state=state.value
            ).inc()

    async def call(self, func, *args, **kwargs) -> Any:
        """
        Await func under breaker protection.

        Raises:
            CircuitBreakerError: If the breaker is open
        """
        if not self.can_execute():
            raise CircuitBreakerError(f"Circuit breaker for {self.name} is {self._state.value}")
        try:
            result = await func(*args, **kwargs)
        except self.expected_exception:
            await self.record_failure()
            raise
        await self.record_success()
        return result

    def get_stats(self) -> dict:
        failure_rate = (
            self._metrics.failure_count / self._metrics.total_requests
            if self._metrics.total_requests else 0
        )
        return {
            'name': self.name,
            'state': self._state.value,
            'failure_count': self._metrics.failure_count,
            'success_count': self._metrics.success_count,
            'total_requests': self._metrics.total_requests,
            'failure_rate': failure_rate,
            'last_failure_time': (
                self._metrics.last_failure_time.isoformat()
                if self._metrics.last_failure_time else None
            ),
            'state_change_time': self._metrics.state_change_time.isoformat(),
        }
