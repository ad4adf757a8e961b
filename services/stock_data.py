"""
Cache-aside stock data service.

This module coordinates the cache and the Alpha Vantage client for the three
public market data operations: symbol search, historical daily prices and
live quotes. Each operation normalizes its input, derives a cache key, serves
cache hits without touching the provider, and on a miss fetches, normalizes
and writes the result back with an operation specific TTL. Live quote TTLs
follow the current market session.

Provider failures of any kind surface as a single ``ServiceUnavailableError``.
Data that is structurally valid but absent (no trading day on or before the
requested date, unknown symbol) is returned as ``None`` and is not cached.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from prometheus_client import Counter
import structlog

from config.settings import AppConfig, CacheTTLConfig
from models.stock import (
    DailyPrice,
    MarketSession,
    PriceLookup,
    Quote,
    QuoteSnapshot,
    SearchResult,
    StockDataValidationError
)
from services.cache import CacheStore
from services.market_data import (
    MarketDataClient,
    ProviderFunction,
    ProviderLogicalError,
    ProviderTransportError,
    ServiceUnavailableError
)
from services.quote_resolver import (
    classify_market_session,
    normalize_daily_series,
    normalize_quote,
    normalize_search,
    resolve_historical_price
)
from services.redis_cache import RedisCacheStore
from utils.validators import normalize_date, normalize_query, normalize_symbol


cache_lookup_counter = Counter(
    'stock_data_cache_lookups_total',
    'Cache lookups for stock data by operation and result',
    ['operation', 'result']
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StockDataService:
    """
    Market data facade used by the rest of the application.

    The cache, client and clock are injected so one instance can be built at
    process start and shared by all requests.
    """

    def __init__(self, cache: CacheStore, client: MarketDataClient,
                 ttl_config: Optional[CacheTTLConfig] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.cache = cache
        self.client = client
        self.ttl = ttl_config or CacheTTLConfig()
        self._clock = clock
        self.logger = structlog.get_logger(__name__)

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.cleanup()

    async def initialize(self) -> None:
        """Connect the cache and open the HTTP session."""
        await self.cache.connect()
        await self.client.initialize()
        self.logger.info("StockDataService initialization complete",
                         cache_healthy=self.cache.is_healthy())

    async def cleanup(self) -> None:
        """Release the HTTP session and the cache connection."""
        await self.client.cleanup()
        await self.cache.close()
        self.logger.info("StockDataService cleanup complete")

    # Cache keys

    @staticmethod
    def search_cache_key(query: str) -> str:
        return f"stock_search:{query.strip().lower()}"

    @staticmethod
    def price_cache_key(symbol: str, date: str) -> str:
        return f"stock_price:{symbol.strip().upper()}:{date}"

    @staticmethod
    def quote_cache_key(symbol: str) -> str:
        return f"stock_current:{symbol.strip().upper()}"

    # Market session

    def market_session(self) -> MarketSession:
        """Classify the current instant from the injected clock."""
        return classify_market_session(self._clock())

    def quote_ttl(self, session: MarketSession) -> int:
        """Live quotes refresh faster while the market is open."""
        if session == MarketSession.OPEN:
            return self.ttl.quote_market_open_seconds
        return self.ttl.quote_market_closed_seconds

    # Public operations

    async def search(self, query: str) -> List[SearchResult]:
        """
        Search symbols by company name or ticker.

        Args:
            query: Free-text query, 1-50 characters after trimming

        Returns:
            List of matches, possibly empty

        Raises:
            ValidationError: If the query is empty or too long
            ServiceUnavailableError: If the provider could not be reached
        """
        cleaned_query = normalize_query(query)
        key = self.search_cache_key(cleaned_query)

        cached = await self._cache_lookup('search', key)
        if cached is not None:
            results = self._decode('search', key, lambda data: [SearchResult.from_dict(item) for item in data], cached)
            if results is not None:
                return results

        payload = await self._fetch('search stocks', ProviderFunction.SYMBOL_SEARCH,
                                    {'keywords': cleaned_query})
        results = self._normalize('search stocks', normalize_search, payload)

        await self.cache.set(key, [result.to_dict() for result in results], self.ttl.search_seconds)
        self.logger.info("Symbol search completed", query=cleaned_query, results_count=len(results))
        return results

    async def historical_price(self, symbol: str, date: Optional[str] = None) -> Optional[DailyPrice]:
        """
        Get the daily price for ``date``, or the nearest prior trading day.

        Args:
            symbol: Ticker symbol
            date: ISO date; today's UTC date when omitted

        Returns:
            DailyPrice, or None when the series has no trading day on or before ``date``

        Raises:
            ValidationError: If symbol or date is malformed
            ServiceUnavailableError: If the provider could not be reached
        """
        cleaned_symbol = normalize_symbol(symbol)
        requested_date = self._requested_date(date)
        return await self._historical_price(cleaned_symbol, requested_date)

    async def historical_price_lookup(self, symbol: str, date: Optional[str] = None) -> Optional[PriceLookup]:
        """Like ``historical_price`` but keeps the requested date alongside the result."""
        cleaned_symbol = normalize_symbol(symbol)
        requested_date = self._requested_date(date)

        price = await self._historical_price(cleaned_symbol, requested_date)
        if price is None:
            return None
        return PriceLookup(price=price, requested_date=requested_date)

    async def current_quote(self, symbol: str) -> Optional[Quote]:
        """
        Get the latest quote for a symbol.

        Returns:
            Quote, or None when the provider knows no such symbol

        Raises:
            ValidationError: If the symbol is malformed
            ServiceUnavailableError: If the provider could not be reached
        """
        cleaned_symbol = normalize_symbol(symbol)
        return await self._current_quote(cleaned_symbol, self.market_session())

    async def current_quote_snapshot(self, symbol: str) -> Optional[QuoteSnapshot]:
        """Latest quote with its market session and suggested refresh interval."""
        cleaned_symbol = normalize_symbol(symbol)
        session = self.market_session()

        quote = await self._current_quote(cleaned_symbol, session)
        if quote is None:
            return None
        return QuoteSnapshot(quote=quote, market_session=session, next_update_in=self.quote_ttl(session))

    async def get_health_status(self) -> Dict[str, Any]:
        """
        Get service health status for monitoring.

        Returns:
            Dict containing health status information
        """
        cache_healthy = self.cache.is_healthy()
        return {
            'service': 'StockDataService',
            'status': 'healthy' if cache_healthy else 'degraded',
            'timestamp': self._clock().isoformat(),
            'market_session': self.market_session().value,
            'cache_status': {
                'backend': type(self.cache).__name__,
                'healthy': cache_healthy
            },
            'http_session_open': self.client.is_session_open
        }

    # Internals

    def _requested_date(self, date: Optional[str]) -> str:
        if date is None:
            return self._clock().date().isoformat()
        return normalize_date(date)

    async def _historical_price(self, symbol: str, requested_date: str) -> Optional[DailyPrice]:
        key = self.price_cache_key(symbol, requested_date)

        cached = await self._cache_lookup('historical_price', key)
        if cached is not None:
            price = self._decode('historical_price', key, DailyPrice.from_dict, cached)
            if price is not None:
                return price

        payload = await self._fetch('get stock price', ProviderFunction.TIME_SERIES_DAILY,
                                    {'symbol': symbol, 'outputsize': 'compact'})

        def resolve(data: Dict[str, Any]) -> Optional[DailyPrice]:
            time_series, timezone_name = normalize_daily_series(data)
            return resolve_historical_price(symbol, time_series, requested_date, timezone_name)

        price = self._normalize('get stock price', resolve, payload)
        if price is None:
            self.logger.info("No trading day on or before requested date",
                             symbol=symbol, requested_date=requested_date)
            return None

        await self.cache.set(key, price.to_dict(), self.ttl.historical_price_seconds)
        self.logger.info("Historical price resolved",
                         symbol=symbol,
                         requested_date=requested_date,
                         trading_date=price.date,
                         close=str(price.close))
        return price

    async def _current_quote(self, symbol: str, session: MarketSession) -> Optional[Quote]:
        key = self.quote_cache_key(symbol)

        cached = await self._cache_lookup('current_quote', key)
        if cached is not None:
            quote = self._decode('current_quote', key, Quote.from_dict, cached)
            if quote is not None:
                return quote

        payload = await self._fetch('get current quote', ProviderFunction.GLOBAL_QUOTE, {'symbol': symbol})
        quote = self._normalize('get current quote', normalize_quote, payload)
        if quote is None:
            self.logger.info("No quote available", symbol=symbol)
            return None

        ttl = self.quote_ttl(session)
        await self.cache.set(key, quote.to_dict(), ttl)
        self.logger.info("Quote fetched successfully",
                         symbol=symbol,
                         price=str(quote.current_price),
                         market_session=session.value,
                         ttl=ttl)
        return quote

    async def _cache_lookup(self, operation: str, key: str) -> Optional[Any]:
        cached = await self.cache.get(key)
        cache_lookup_counter.labels(operation=operation, result='hit' if cached is not None else 'miss').inc()
        if cached is not None:
            self.logger.debug("Cache hit", operation=operation, key=key)
        return cached

    def _decode(self, operation: str, key: str, decoder: Callable[[Any], Any], cached: Any) -> Optional[Any]:
        """Rebuild models from a cached payload; an unreadable entry counts as a miss."""
        try:
            return decoder(cached)
        except (KeyError, TypeError, ValueError, StockDataValidationError) as e:
            self.logger.warning("Discarding unreadable cache entry", operation=operation, key=key, error=str(e))
            return None

    async def _fetch(self, action: str, function: ProviderFunction, params: Mapping[str, str]) -> Dict[str, Any]:
        try:
            return await self.client.fetch(function, params)
        except (ProviderTransportError, ProviderLogicalError) as e:
            raise self._unavailable(action, e)

    def _normalize(self, action: str, normalizer: Callable[[Dict[str, Any]], Any], payload: Dict[str, Any]) -> Any:
        try:
            return normalizer(payload)
        except ProviderLogicalError as e:
            raise self._unavailable(action, e)

    def _unavailable(self, action: str, error: Exception) -> ServiceUnavailableError:
        self.logger.error(f"Failed to {action}", error=str(error), error_type=type(error).__name__)
        return ServiceUnavailableError(
            f"Failed to {action}", error_code='SERVICE_UNAVAILABLE', original_error=error
        )


def create_stock_data_service(config: AppConfig) -> StockDataService:
    """
    Build the process-wide stock data service from configuration.

    Without a Redis URL the cache store stays disconnected and every lookup
    is a miss.
    """
    cache = RedisCacheStore(config.cache)
    client = MarketDataClient(config.market_data)
    return StockDataService(cache=cache, client=client, ttl_config=config.cache_ttl)
