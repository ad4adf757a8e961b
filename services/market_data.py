"""
Alpha Vantage market data client with retry logic and payload error detection.

This module provides the HTTP client used to talk to the Alpha Vantage query
endpoint. Requests are signed with the configured API key, bounded by a
per-attempt timeout and retried with a linear backoff on transport failures.

Alpha Vantage reports errors and rate-limit notices inside HTTP 200 bodies,
so every successfully transported payload is inspected for the provider's
advisory fields before it is handed to callers.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Dict, Any, Optional, Mapping
from urllib.parse import urlencode

import aiohttp
from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_incrementing,
    retry_if_exception_type,
    before_sleep_log
)
from prometheus_client import Counter, Histogram
import structlog

from config.settings import MarketDataConfig


class ProviderFunction(str, Enum):
    """Alpha Vantage ``function`` values used by this service."""
    SYMBOL_SEARCH = "SYMBOL_SEARCH"
    TIME_SERIES_DAILY = "TIME_SERIES_DAILY"
    GLOBAL_QUOTE = "GLOBAL_QUOTE"


# Payload keys Alpha Vantage uses for errors, rate-limit notes and plan notices
PROVIDER_ERROR_FIELDS = ('Error Message', 'Note', 'Information')

TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class MarketDataError(Exception):
    """Base exception for market data operations."""

    def __init__(self, message: str, error_code: Optional[str] = None, original_error: Optional[Exception] = None):
        self.message = message
        self.error_code = error_code
        self.original_error = original_error
        super().__init__(self.message)


class ProviderTransportError(MarketDataError):
    """Exception for network, timeout and HTTP status failures after retries."""
    pass


class ProviderLogicalError(MarketDataError):
    """Exception for well-formed responses that report a provider-side failure."""
    pass


class ServiceUnavailableError(MarketDataError):
    """The market data provider could not serve the request."""
    pass


request_counter = Counter(
    'market_data_requests_total',
    'Total market data requests',
    ['function', 'status']
)
request_duration = Histogram(
    'market_data_request_duration_seconds',
    'Market data request duration',
    ['function']
)
api_error_counter = Counter(
    'market_data_api_errors_total',
    'API errors by type',
    ['error_type']
)

retry_logger = logging.getLogger(__name__)


class MarketDataClient:
    """
    Resilient HTTP client for the Alpha Vantage query API.

    The client owns one long-lived ``aiohttp.ClientSession``; it is created
    lazily on the first request or explicitly through ``initialize``.
    """

    def __init__(self, config: MarketDataConfig, session: Optional[aiohttp.ClientSession] = None):
        """
        Initialize the client.

        Args:
            config: Market data configuration
            session: Optional externally managed HTTP session

        Raises:
            ValueError: If no API key is configured
        """
        if not config.api_key:
            raise ValueError("ALPHA_VANTAGE_API_KEY is not configured")

        self.config = config
        self.logger = structlog.get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None

        self.logger.info("MarketDataClient initialized",
                         base_url=config.base_url,
                         retry_attempts=config.retry_attempts,
                         timeout_seconds=config.timeout_seconds)

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.cleanup()

    async def initialize(self) -> None:
        """Create the HTTP session if the client manages its own."""
        if self.session is not None and not self.session.closed:
            return

        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        connector = aiohttp.TCPConnector(limit=10, limit_per_host=5)

        self.session = aiohttp.ClientSession(
            timeout=timeout,
            connector=connector,
            headers={'Accept': 'application/json'}
        )
        self._owns_session = True

    async def cleanup(self) -> None:
        """Close the HTTP session if the client created it."""
        if self.session is not None and self._owns_session and not self.session.closed:
            await self.session.close()
        self.session = None

    @property
    def is_session_open(self) -> bool:
        return self.session is not None and not self.session.closed

    def build_params(self, function: ProviderFunction, params: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """
        Merge caller parameters with the function name and API key.

        The function and API key always win over caller-supplied values.
        """
        query = dict(params or {})
        query['function'] = ProviderFunction(function).value
        query['apikey'] = self.config.api_key
        return query

    def build_url(self, function: ProviderFunction, params: Optional[Mapping[str, str]] = None) -> str:
        """Build the full signed request URL."""
        return f"{self.config.base_url}?{urlencode(self.build_params(function, params))}"

    async def fetch(self, function: ProviderFunction, params: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """
        Call one provider function and return its JSON payload.

        Args:
            function: Provider operation to call
            params: Operation specific query parameters

        Returns:
            Dict: Decoded JSON payload

        Raises:
            ProviderTransportError: If every attempt failed in transport
            ProviderLogicalError: If the payload reports a provider-side error
        """
        function = ProviderFunction(function)
        query = self.build_params(function, params)
        start_time = time.time()

        try:
            payload = await self._request_with_retry(function, query)
            self._check_for_errors(function, payload)
        except TRANSPORT_ERRORS as e:
            request_counter.labels(function=function.value, status='transport_error').inc()
            api_error_counter.labels(error_type=type(e).__name__).inc()
            self.logger.error("Market data request failed after retries",
                              function=function.value,
                              attempts=self.config.retry_attempts,
                              error=str(e))
            raise ProviderTransportError(
                f"Alpha Vantage request failed: {e}", error_code='TRANSPORT', original_error=e
            )
        except ProviderLogicalError as e:
            request_counter.labels(function=function.value, status='provider_error').inc()
            api_error_counter.labels(error_type=e.error_code or 'provider_error').inc()
            self.logger.error("Alpha Vantage reported an error",
                              function=function.value, error=e.message)
            raise
        finally:
            request_duration.labels(function=function.value).observe(time.time() - start_time)

        request_counter.labels(function=function.value, status='success').inc()
        return payload

    async def _request_with_retry(self, function: ProviderFunction, query: Dict[str, str]) -> Any:
        """Execute the GET with linear backoff: delay before attempt k+1 is base_delay * k."""
        delay = self.config.retry_delay_seconds

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.retry_attempts),
            wait=wait_incrementing(start=delay, increment=delay),
            retry=retry_if_exception_type(TRANSPORT_ERRORS),
            before_sleep=before_sleep_log(retry_logger, logging.WARNING),
            sleep=asyncio.sleep,
            reraise=True
        ):
            with attempt:
                self.logger.debug("Sending market data request",
                                  function=function.value,
                                  attempt=attempt.retry_state.attempt_number)
                payload = await self._get_json(query)

        return payload

    async def _get_json(self, query: Dict[str, str]) -> Any:
        """Perform a single GET against the query endpoint."""
        if not self.is_session_open:
            await self.initialize()

        async with self.session.get(self.config.base_url, params=query) as response:
            if response.status == 429:
                api_error_counter.labels(error_type='rate_limit').inc()

            response.raise_for_status()

            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise ProviderLogicalError(
                    "Alpha Vantage returned a non-JSON body", error_code='INVALID_JSON', original_error=e
                )

    def _check_for_errors(self, function: ProviderFunction, payload: Any) -> None:
        """
        Raise if the payload carries one of the provider's advisory fields.

        Raises:
            ProviderLogicalError: If the payload is not an object or reports an error
        """
        if not isinstance(payload, dict):
            raise ProviderLogicalError(
                f"Unexpected {function.value} payload type: {type(payload).__name__}",
                error_code='INVALID_PAYLOAD'
            )

        for field_name in PROVIDER_ERROR_FIELDS:
            if payload.get(field_name):
                raise ProviderLogicalError(
                    f"Alpha Vantage API {field_name}: {payload[field_name]}",
                    error_code=field_name.upper().replace(' ', '_')
                )
