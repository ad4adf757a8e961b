"""
Input validation utilities for market data requests.

This module validates and normalizes the three kinds of caller input the
market data service accepts: ticker symbols, free-text search queries and
ISO calendar dates.
"""

import re
from datetime import date
from typing import Any, List, Optional


class ValidationError(Exception):
    """Custom exception for validation errors."""

    def __init__(self, message: str, field: Optional[str] = None, code: Optional[str] = None):
        self.message = message
        self.field = field
        self.code = code
        super().__init__(self.message)


class ValidationResult:
    """
    Result of a validation operation.

    Attributes:
        is_valid: Whether validation passed
        errors: List of validation errors
        cleaned_value: Cleaned/normalized value if validation passed
    """

    def __init__(self, is_valid: bool = True, cleaned_value: Any = None):
        self.is_valid = is_valid
        self.errors: List[ValidationError] = []
        self.cleaned_value = cleaned_value

    def add_error(self, message: str, field: Optional[str] = None, code: Optional[str] = None) -> None:
        """Add a validation error."""
        self.errors.append(ValidationError(message, field, code))
        self.is_valid = False

    def get_error_messages(self) -> List[str]:
        """Get list of error messages."""
        return [error.message for error in self.errors]

    def get_first_error(self) -> Optional[ValidationError]:
        """Get the first validation error."""
        return self.errors[0] if self.errors else None

    def unwrap(self) -> Any:
        """Return the cleaned value or raise the first error."""
        if not self.is_valid:
            raise self.get_first_error()
        return self.cleaned_value


class SymbolValidator:
    """Validator for ticker symbols."""

    MAX_LENGTH = 20
    # Provider tickers: share classes (BRK.B), exchange suffixes (RELIANCE.BSE),
    # indices (^GSPC) and pairs such as BTC/USD or NYSE:IBM
    SYMBOL_PATTERN = re.compile(r'^[A-Z0-9^][A-Z0-9.\-^:/]*$')

    @classmethod
    def validate_symbol(cls, symbol: Any) -> ValidationResult:
        """
        Validate a ticker symbol.

        Args:
            symbol: Symbol to validate

        Returns:
            ValidationResult with the trimmed, upper-cased symbol
        """
        result = ValidationResult()

        if not isinstance(symbol, str):
            result.add_error("Symbol must be a non-empty string", "symbol", "INVALID_TYPE")
            return result

        cleaned_symbol = symbol.strip().upper()

        if not cleaned_symbol:
            result.add_error("Symbol cannot be empty or whitespace", "symbol", "EMPTY_SYMBOL")
            return result

        if len(cleaned_symbol) > cls.MAX_LENGTH:
            result.add_error(f"Symbol cannot exceed {cls.MAX_LENGTH} characters", "symbol", "SYMBOL_TOO_LONG")
            return result

        if not cls.SYMBOL_PATTERN.match(cleaned_symbol):
            result.add_error(f"Symbol '{cleaned_symbol}' contains invalid characters", "symbol", "INVALID_FORMAT")
            return result

        result.cleaned_value = cleaned_symbol
        return result


class SearchQueryValidator:
    """Validator for free-text symbol search queries."""

    MAX_LENGTH = 50

    @classmethod
    def validate_query(cls, query: Any) -> ValidationResult:
        """
        Validate a search query.

        The cleaned value is trimmed but keeps its case; cache keys lower-case
        it separately.
        """
        result = ValidationResult()

        if not isinstance(query, str):
            result.add_error("Search query must be a string", "query", "INVALID_TYPE")
            return result

        cleaned_query = query.strip()

        if not cleaned_query:
            result.add_error("Search query cannot be empty", "query", "EMPTY_QUERY")
            return result

        if len(cleaned_query) > cls.MAX_LENGTH:
            result.add_error(f"Search query cannot exceed {cls.MAX_LENGTH} characters", "query", "QUERY_TOO_LONG")
            return result

        result.cleaned_value = cleaned_query
        return result


class DateValidator:
    """Validator for ISO ``YYYY-MM-DD`` dates."""

    DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

    @classmethod
    def validate_date(cls, value: Any) -> ValidationResult:
        result = ValidationResult()

        if not isinstance(value, str):
            result.add_error("Date must be a string in YYYY-MM-DD format", "date", "INVALID_TYPE")
            return result

        cleaned_date = value.strip()

        if not cls.DATE_PATTERN.match(cleaned_date):
            result.add_error("Date must be in YYYY-MM-DD format", "date", "INVALID_FORMAT")
            return result

        try:
            date.fromisoformat(cleaned_date)
        except ValueError:
            result.add_error(f"'{cleaned_date}' is not a valid calendar date", "date", "INVALID_DATE")
            return result

        result.cleaned_value = cleaned_date
        return result


def normalize_symbol(symbol: Any) -> str:
    """Return the normalized symbol or raise ValidationError."""
    return SymbolValidator.validate_symbol(symbol).unwrap()


def normalize_query(query: Any) -> str:
    """Return the trimmed search query or raise ValidationError."""
    return SearchQueryValidator.validate_query(query).unwrap()


def normalize_date(value: Any) -> str:
    """Return the trimmed ISO date or raise ValidationError."""
    return DateValidator.validate_date(value).unwrap()
