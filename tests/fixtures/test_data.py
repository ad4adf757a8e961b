"""
Test Data Fixtures

This module provides factory functions for model and configuration objects
with realistic market data, so individual tests only spell out the fields
they care about.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from config.settings import AppConfig, CacheConfig, CacheTTLConfig, Environment, LogLevel, MarketDataConfig
from models.stock import DailyPrice, Quote, SearchResult


# Wall-clock instants per market session under the UTC-5 approximation
OPEN_INSTANT = datetime(2024, 1, 15, 14, 30, tzinfo=timezone.utc)
PRE_MARKET_INSTANT = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
AFTER_HOURS_INSTANT = datetime(2024, 1, 15, 22, 0, tzinfo=timezone.utc)
CLOSED_INSTANT = datetime(2024, 1, 16, 2, 0, tzinfo=timezone.utc)


def create_test_market_data_config(
    api_key: str = "test-api-key",
    retry_attempts: int = 3,
    retry_delay_seconds: float = 0.0
) -> MarketDataConfig:
    """Create a client configuration with no backoff delay."""
    return MarketDataConfig(
        api_key=api_key,
        base_url="https://www.alphavantage.co/query",
        timeout_seconds=10.0,
        retry_attempts=retry_attempts,
        retry_delay_seconds=retry_delay_seconds
    )


def create_test_app_config(redis_url: Optional[str] = None) -> AppConfig:
    return AppConfig(
        environment=Environment.TEST,
        log_level=LogLevel.DEBUG,
        market_data=create_test_market_data_config(),
        cache=CacheConfig(redis_url=redis_url),
        cache_ttl=CacheTTLConfig()
    )


def create_test_search_result(symbol: str = "AAPL", match_score: float = 1.0) -> SearchResult:
    return SearchResult(
        symbol=symbol,
        name="Apple Inc.",
        security_type="Equity",
        region="United States",
        market_open="09:30",
        market_close="16:00",
        timezone="UTC-04",
        currency="USD",
        match_score=match_score
    )


def create_test_daily_price(
    symbol: str = "AAPL",
    date: str = "2024-01-12",
    close: Decimal = Decimal("186.29")
) -> DailyPrice:
    """
    Create a daily price.

    Args:
        symbol: Ticker symbol
        date: Trading day the prices belong to
        close: Closing price

    Returns:
        DailyPrice: Test daily price
    """
    return DailyPrice(
        symbol=symbol,
        date=date,
        open=Decimal("187.13"),
        high=Decimal("189.11"),
        low=Decimal("185.83"),
        close=close,
        volume=54010000,
        timezone="US/Eastern"
    )


def create_test_quote(symbol: str = "AAPL", current_price: Decimal = Decimal("185.85")) -> Quote:
    previous_close = Decimal("186.29")
    return Quote(
        symbol=symbol,
        current_price=current_price,
        open_price=Decimal("185.92"),
        high_price=Decimal("186.40"),
        low_price=Decimal("183.43"),
        previous_close=previous_close,
        change=current_price - previous_close,
        change_percent=Decimal("-0.2362"),
        volume=47471600,
        last_trading_day="2024-01-15"
    )
