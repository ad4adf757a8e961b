"""
Normalization of Alpha Vantage payloads into domain models.

Every function here is pure: it takes a decoded provider payload (or a
timestamp) and returns model objects, without touching the network or the
cache. Alpha Vantage prefixes field names with an ordinal ("1. symbol",
"05. price"), and the field maps below translate them.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Any, List, Optional, Tuple

from models.stock import (
    DailyPrice,
    MarketSession,
    Quote,
    SearchResult,
    StockDataValidationError
)
from services.market_data import ProviderLogicalError


SEARCH_FIELDS = {
    'symbol': '1. symbol',
    'name': '2. name',
    'security_type': '3. type',
    'region': '4. region',
    'market_open': '5. marketOpen',
    'market_close': '6. marketClose',
    'timezone': '7. timezone',
    'currency': '8. currency',
    'match_score': '9. matchScore'
}

DAILY_FIELDS = {
    'open': '1. open',
    'high': '2. high',
    'low': '3. low',
    'close': '4. close',
    'volume': '5. volume'
}

QUOTE_FIELDS = {
    'symbol': '01. symbol',
    'open_price': '02. open',
    'high_price': '03. high',
    'low_price': '04. low',
    'current_price': '05. price',
    'volume': '06. volume',
    'last_trading_day': '07. latest trading day',
    'previous_close': '08. previous close',
    'change_percent': '10. change percent'
}

TIME_SERIES_KEY = 'Time Series (Daily)'
META_DATA_KEY = 'Meta Data'
META_TIMEZONE_KEY = '5. Time Zone'

# Fixed UTC offset used for US Eastern time; ignores daylight saving
EASTERN_UTC_OFFSET_HOURS = 5

PRE_MARKET_START = 4 * 60
MARKET_OPEN = 9 * 60 + 30
MARKET_CLOSE = 16 * 60
AFTER_HOURS_END = 20 * 60


def _parse_volume(value: Any) -> int:
    # Volumes occasionally arrive as "123.0"
    return int(Decimal(str(value).strip()))


def normalize_search(payload: Dict[str, Any]) -> List[SearchResult]:
    """
    Map a SYMBOL_SEARCH payload to search results.

    A payload without ``bestMatches`` yields an empty list.

    Raises:
        ProviderLogicalError: If a match record is malformed
    """
    results = []
    for match in payload.get('bestMatches') or []:
        try:
            results.append(SearchResult(
                symbol=match[SEARCH_FIELDS['symbol']],
                name=match[SEARCH_FIELDS['name']],
                security_type=match[SEARCH_FIELDS['security_type']],
                region=match[SEARCH_FIELDS['region']],
                market_open=match[SEARCH_FIELDS['market_open']],
                market_close=match[SEARCH_FIELDS['market_close']],
                timezone=match[SEARCH_FIELDS['timezone']],
                currency=match[SEARCH_FIELDS['currency']],
                match_score=float(match[SEARCH_FIELDS['match_score']])
            ))
        except (KeyError, TypeError, ValueError, StockDataValidationError) as e:
            raise ProviderLogicalError(
                f"Malformed search match: {e}", error_code='MALFORMED_DATA', original_error=e
            )
    return results


def normalize_daily_series(payload: Dict[str, Any]) -> Tuple[Dict[str, Dict[str, Any]], Optional[str]]:
    """
    Extract the daily time series and its timezone from a TIME_SERIES_DAILY payload.

    Returns:
        Tuple of (date -> OHLCV record mapping, timezone or None)

    Raises:
        ProviderLogicalError: If the payload carries no time series
    """
    time_series = payload.get(TIME_SERIES_KEY)
    if not isinstance(time_series, dict):
        raise ProviderLogicalError("No time series data found", error_code='MISSING_TIME_SERIES')

    meta = payload.get(META_DATA_KEY) or {}
    return time_series, meta.get(META_TIMEZONE_KEY)


def find_closest_trading_date(time_series: Dict[str, Any], requested_date: str) -> Optional[str]:
    """
    Find the trading date to report for ``requested_date``.

    The requested date itself wins when present. Otherwise the most recent
    date on or before it is returned; the series never answers with a date
    after the request.

    Returns:
        ISO date string, or None when the request precedes all history
    """
    if requested_date in time_series:
        return requested_date

    target = date.fromisoformat(requested_date)
    for candidate in sorted(time_series.keys(), reverse=True):
        try:
            candidate_date = date.fromisoformat(candidate)
        except ValueError:
            continue
        if candidate_date <= target:
            return candidate
    return None


def resolve_historical_price(symbol: str, time_series: Dict[str, Dict[str, Any]], requested_date: str,
                             timezone_name: Optional[str] = None) -> Optional[DailyPrice]:
    """
    Resolve the daily price for ``requested_date`` using the nearest prior trading day.

    Raises:
        ProviderLogicalError: If the selected record is malformed
    """
    trading_date = find_closest_trading_date(time_series, requested_date)
    if trading_date is None:
        return None

    record = time_series[trading_date]
    try:
        return DailyPrice(
            symbol=symbol.upper(),
            date=trading_date,
            open=record[DAILY_FIELDS['open']],
            high=record[DAILY_FIELDS['high']],
            low=record[DAILY_FIELDS['low']],
            close=record[DAILY_FIELDS['close']],
            volume=_parse_volume(record[DAILY_FIELDS['volume']]),
            timezone=timezone_name
        )
    except (KeyError, TypeError, ValueError, ArithmeticError, StockDataValidationError) as e:
        raise ProviderLogicalError(
            f"Malformed daily record for {symbol} on {trading_date}: {e}",
            error_code='MALFORMED_DATA',
            original_error=e
        )


def normalize_quote(payload: Dict[str, Any]) -> Optional[Quote]:
    """
    Map a GLOBAL_QUOTE payload to a quote.

    Alpha Vantage answers unknown symbols with an empty ``Global Quote``
    object, which maps to None. ``change`` is always price minus previous
    close; the provider's own ``09. change`` field is ignored.

    Raises:
        ProviderLogicalError: If the quote record is malformed
    """
    record = payload.get('Global Quote') or {}
    if not record.get(QUOTE_FIELDS['symbol']):
        return None

    try:
        current_price = Decimal(str(record[QUOTE_FIELDS['current_price']]).strip())
        previous_close = Decimal(str(record[QUOTE_FIELDS['previous_close']]).strip())

        change = current_price - previous_close
        change_percent = str(record[QUOTE_FIELDS['change_percent']]).strip().rstrip('%')

        return Quote(
            symbol=record[QUOTE_FIELDS['symbol']],
            current_price=current_price,
            open_price=record[QUOTE_FIELDS['open_price']],
            high_price=record[QUOTE_FIELDS['high_price']],
            low_price=record[QUOTE_FIELDS['low_price']],
            previous_close=previous_close,
            change=change,
            change_percent=change_percent,
            volume=_parse_volume(record[QUOTE_FIELDS['volume']]),
            last_trading_day=record[QUOTE_FIELDS['last_trading_day']]
        )
    except (KeyError, TypeError, ValueError, ArithmeticError, StockDataValidationError) as e:
        raise ProviderLogicalError(
            f"Malformed quote record: {e}", error_code='MALFORMED_DATA', original_error=e
        )


def classify_market_session(now_utc: datetime) -> MarketSession:
    """
    Classify a wall-clock instant into a US market session.

    Eastern time is approximated as UTC-5 with no daylight saving, weekend
    or holiday handling. Naive datetimes are treated as UTC.
    """
    if now_utc.tzinfo is not None:
        now_utc = now_utc.astimezone(timezone.utc)

    eastern_hour = (now_utc.hour - EASTERN_UTC_OFFSET_HOURS + 24) % 24
    minutes = eastern_hour * 60 + now_utc.minute

    if MARKET_OPEN <= minutes < MARKET_CLOSE:
        return MarketSession.OPEN
    if PRE_MARKET_START <= minutes < MARKET_OPEN:
        return MarketSession.PRE_MARKET
    if MARKET_CLOSE <= minutes < AFTER_HOURS_END:
        return MarketSession.AFTER_HOURS
    return MarketSession.CLOSED
