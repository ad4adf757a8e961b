"""
Test suite for input validators.
"""

import pytest

from utils.validators import (
    DateValidator,
    SearchQueryValidator,
    SymbolValidator,
    ValidationError,
    normalize_date,
    normalize_query,
    normalize_symbol
)


class TestSymbolValidator:
    """Test ticker symbol validation."""

    @pytest.mark.parametrize("raw,expected", [
        ("aapl", "AAPL"),
        ("  msft ", "MSFT"),
        ("brk.b", "BRK.B"),
        ("BF-B", "BF-B"),
        ("reliance.bse", "RELIANCE.BSE"),
        ("TATAMOTORS.BSE", "TATAMOTORS.BSE"),
        ("^gspc", "^GSPC"),
        ("BTC/USD", "BTC/USD"),
        ("NYSE:IBM", "NYSE:IBM")
    ])
    def test_valid_symbols_are_normalized(self, raw, expected):
        result = SymbolValidator.validate_symbol(raw)

        assert result.is_valid
        assert result.cleaned_value == expected

    @pytest.mark.parametrize("raw,code", [
        ("", "EMPTY_SYMBOL"),
        ("   ", "EMPTY_SYMBOL"),
        ("A" * 21, "SYMBOL_TOO_LONG"),
        ("AA PL", "INVALID_FORMAT"),
        (".AAPL", "INVALID_FORMAT"),
        (None, "INVALID_TYPE")
    ])
    def test_invalid_symbols(self, raw, code):
        result = SymbolValidator.validate_symbol(raw)

        assert not result.is_valid
        assert result.get_first_error().code == code

    def test_normalize_symbol_raises(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_symbol("")

        assert exc_info.value.field == "symbol"


class TestSearchQueryValidator:
    """Test search query validation."""

    def test_query_is_trimmed_but_keeps_case(self):
        assert normalize_query("  Apple Inc ") == "Apple Inc"

    def test_fifty_characters_allowed(self):
        assert SearchQueryValidator.validate_query("a" * 50).is_valid

    def test_too_long_query(self):
        result = SearchQueryValidator.validate_query("a" * 51)

        assert result.get_first_error().code == "QUERY_TOO_LONG"

    def test_empty_query_raises(self):
        with pytest.raises(ValidationError):
            normalize_query("   ")


class TestDateValidator:
    """Test ISO date validation."""

    def test_valid_date(self):
        assert normalize_date(" 2024-01-13 ") == "2024-01-13"

    @pytest.mark.parametrize("raw,code", [
        ("2024/01/13", "INVALID_FORMAT"),
        ("13-01-2024", "INVALID_FORMAT"),
        ("2024-02-30", "INVALID_DATE"),
        (20240113, "INVALID_TYPE")
    ])
    def test_invalid_dates(self, raw, code):
        result = DateValidator.validate_date(raw)

        assert not result.is_valid
        assert result.get_error_messages()
        assert result.get_first_error().code == code
