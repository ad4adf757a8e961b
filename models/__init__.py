"""
Data models package for the market data service.

This package contains the value objects returned by the stock data service:
search results, daily prices, quotes and the market session classification.
"""

from .stock import (
    MarketSession,
    StockDataValidationError,
    SearchResult,
    DailyPrice,
    Quote,
    PriceLookup,
    QuoteSnapshot
)

__all__ = [
    'MarketSession',
    'StockDataValidationError',
    'SearchResult',
    'DailyPrice',
    'Quote',
    'PriceLookup',
    'QuoteSnapshot'
]
