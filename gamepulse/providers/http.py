# gamepulse/providers/http.py

"""
HTTP Provider Base

Shared plumbing for JSON-over-HTTP league APIs:
- Pooled aiohttp session with timeouts
- Retry with exponential backoff on connection errors and timeouts
- Circuit breaker so a dead API is not polled every few seconds
- Request metrics
"""

import asyncio
import logging
import time
from typing import Any, Optional

import aiohttp
from aiohttp import ClientSession, ClientTimeout
from tenacity import (
    AsyncRetrying, before_sleep_log, retry_if_exception_type,
    stop_after_attempt, wait_exponential
)

from ..circuit_breaker import CircuitBreaker
from ..clock import Clock, SystemClock
from ..exceptions import ProviderError
from ..models import LeagueInfo
from .base import LeagueProvider

logger = logging.getLogger(__name__)


class HttpProvider(LeagueProvider):
    """LeagueProvider that fetches JSON documents over HTTP."""

    user_agent = 'GamePulse/1.0'

    def __init__(self, league: LeagueInfo, config, clock: Optional[Clock] = None,
                 metrics=None, session: Optional[ClientSession] = None):
        super().__init__(league)
        self.config = config
        self.clock = clock or SystemClock()
        self.metrics = metrics
        self._session = session
        self._owns_session = session is None
        self._circuit_breaker = CircuitBreaker(
            name=league.league_id,
            clock=self.clock,
            failure_threshold=5,
            recovery_timeout=60,
            expected_exception=ProviderError,
            metrics=metrics,
        )

    async def __aenter__(self):
        await self._setup_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def _setup_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            timeout = ClientTimeout(
                total=self.config.provider_timeout,
                connect=10,
                sock_read=self.config.provider_timeout
            )
            connector = aiohttp.TCPConnector(
                limit=30,
                limit_per_host=10,
                ttl_dns_cache=300,
                keepalive_timeout=30,
            )
            self._session = ClientSession(
                connector=connector,
                timeout=timeout,
                headers={
                    'User-Agent': self.user_agent,
                    'Accept': 'application/json',
                }
            )
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _fetch(self, url: str) -> Any:
        session = await self._setup_session()
        async with session.get(url) as response:
            if response.status == 404:
                return None
            if response.status >= 500 or response.status == 429:
                # Server-side trouble is worth retrying
                raise aiohttp.ClientResponseError(
                    response.request_info, response.history,
                    status=response.status, message=response.reason or ''
                )
            if response.status >= 400:
                raise ProviderError(f"HTTP {response.status} from {url}")
            return await response.json(content_type=None)

    async def _request_json(self, url: str, operation: str) -> Any:
        """
        GET a JSON document with retries.

        Returns:
            Parsed JSON, or None for 404 and malformed bodies

        Raises:
            ProviderError: After retries are exhausted
        """
        start = time.monotonic()
        error_type = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.provider_max_retries),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception_type((aiohttp.ClientError, asyncio.TimeoutError)),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    return await self._fetch(url)
        except ProviderError:
            error_type = 'http_error'
            raise
        except asyncio.TimeoutError as e:
            error_type = 'timeout'
            raise ProviderError(f"{self.league_id} {operation} timed out") from e
        except aiohttp.ClientError as e:
            error_type = 'client_error'
            raise ProviderError(f"{self.league_id} {operation} failed: {e}") from e
        except ValueError as e:
            error_type = 'invalid_json'
            logger.warning(f"Invalid JSON from {self.league_id} {operation}: {e}")
            return None
        finally:
            if self.metrics:
                self.metrics.record_provider_request(
                    self.league_id, operation, time.monotonic() - start, error_type
                )

    async def _get_json(self, url: str, operation: str = 'request') -> Any:
        """
        Circuit-breaker protected JSON GET.

        Raises:
            CircuitBreakerError: If the breaker is open
            ProviderError: On network or HTTP failure
        """
        return await self._circuit_breaker.call(self._request_json, url, operation)
