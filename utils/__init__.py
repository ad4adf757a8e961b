"""
Utility functions package for the market data service.

This package contains input validation and normalization for symbols,
search queries and dates.
"""

from .validators import (
    ValidationError,
    ValidationResult,
    SymbolValidator,
    SearchQueryValidator,
    DateValidator,
    normalize_symbol,
    normalize_query,
    normalize_date
)

__all__ = [
    'ValidationError',
    'ValidationResult',
    'SymbolValidator',
    'SearchQueryValidator',
    'DateValidator',
    'normalize_symbol',
    'normalize_query',
    'normalize_date'
]
