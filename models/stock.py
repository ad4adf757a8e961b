"""
Stock market data models with validation and serialization.

This module provides the value objects produced by the market data layer:
symbol search results, daily prices, live quotes and the market session
classification. Every model round-trips through ``to_dict``/``from_dict`` so
it can be stored in the JSON cache without losing decimal precision.
"""

from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Any, Optional


class MarketSession(Enum):
    """US equity market session bands."""
    OPEN = "open"
    PRE_MARKET = "pre-market"
    AFTER_HOURS = "after-hours"
    CLOSED = "closed"


class StockDataValidationError(Exception):
    """Custom exception for market data model validation errors."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(self.message)


def _to_decimal(value: Any, field_name: str) -> Decimal:
    """Convert a provider or cached value to Decimal."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise StockDataValidationError(f"Invalid decimal value for {field_name}: {value!r}", field_name)


def _check_non_negative(value: Decimal, field_name: str, symbol: str) -> None:
    if value < 0:
        raise StockDataValidationError(f"Negative {field_name} for {symbol}: {value}", field_name)


@dataclass
class SearchResult:
    """A single symbol search match."""
    symbol: str
    name: str
    security_type: str
    region: str
    market_open: str
    market_close: str
    timezone: str
    currency: str
    match_score: float

    def __post_init__(self):
        if not 0.0 <= self.match_score <= 1.0:
            raise StockDataValidationError(
                f"Match score out of range for {self.symbol}: {self.match_score}", 'match_score'
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchResult':
        return cls(
            symbol=data['symbol'],
            name=data['name'],
            security_type=data['security_type'],
            region=data['region'],
            market_open=data['market_open'],
            market_close=data['market_close'],
            timezone=data['timezone'],
            currency=data['currency'],
            match_score=float(data['match_score'])
        )


@dataclass
class DailyPrice:
    """
    OHLCV data for one trading day.

    ``date`` is the trading day the prices belong to, which can be earlier
    than the date that was requested when that date was not a trading day.
    """
    symbol: str
    date: str
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int
    currency: Optional[str] = None
    timezone: Optional[str] = None

    def __post_init__(self):
        """Validate price data after initialization."""
        for name in ('open', 'high', 'low', 'close'):
            value = _to_decimal(getattr(self, name), name)
            _check_non_negative(value, name, self.symbol)
            setattr(self, name, value)

        if self.volume < 0:
            raise StockDataValidationError(f"Invalid volume for {self.symbol}: {self.volume}", 'volume')

    def to_dict(self) -> Dict[str, Any]:
        """Convert daily price to dictionary for serialization."""
        data = asdict(self)
        for name in ('open', 'high', 'low', 'close'):
            data[name] = str(getattr(self, name))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DailyPrice':
        """Create DailyPrice instance from dictionary."""
        return cls(
            symbol=data['symbol'],
            date=data['date'],
            open=_to_decimal(data['open'], 'open'),
            high=_to_decimal(data['high'], 'high'),
            low=_to_decimal(data['low'], 'low'),
            close=_to_decimal(data['close'], 'close'),
            volume=int(data['volume']),
            currency=data.get('currency'),
            timezone=data.get('timezone')
        )


@dataclass
class Quote:
    """
    Latest quote for a symbol.

    ``change_percent`` is the provider's figure and is never recomputed.
    """
    symbol: str
    current_price: Decimal
    open_price: Decimal
    high_price: Decimal
    low_price: Decimal
    previous_close: Decimal
    change: Decimal
    change_percent: Decimal
    volume: int
    last_trading_day: str

    _DECIMAL_FIELDS = (
        'current_price', 'open_price', 'high_price', 'low_price',
        'previous_close', 'change', 'change_percent'
    )

    def __post_init__(self):
        """Validate quote data after initialization."""
        for name in self._DECIMAL_FIELDS:
            setattr(self, name, _to_decimal(getattr(self, name), name))

        for name in ('current_price', 'open_price', 'high_price', 'low_price', 'previous_close'):
            _check_non_negative(getattr(self, name), name, self.symbol)

        if self.volume < 0:
            raise StockDataValidationError(f"Invalid volume for {self.symbol}: {self.volume}", 'volume')

    def to_dict(self) -> Dict[str, Any]:
        """Convert quote to dictionary for serialization."""
        data = asdict(self)
        for name in self._DECIMAL_FIELDS:
            data[name] = str(getattr(self, name))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Quote':
        """Create Quote instance from dictionary."""
        return cls(
            symbol=data['symbol'],
            current_price=_to_decimal(data['current_price'], 'current_price'),
            open_price=_to_decimal(data['open_price'], 'open_price'),
            high_price=_to_decimal(data['high_price'], 'high_price'),
            low_price=_to_decimal(data['low_price'], 'low_price'),
            previous_close=_to_decimal(data['previous_close'], 'previous_close'),
            change=_to_decimal(data['change'], 'change'),
            change_percent=_to_decimal(data['change_percent'], 'change_percent'),
            volume=int(data['volume']),
            last_trading_day=data['last_trading_day']
        )


@dataclass
class PriceLookup:
    """Historical price together with the date that was asked for."""
    price: DailyPrice
    requested_date: str

    @property
    def actual_date(self) -> str:
        return self.price.date

    @property
    def is_closest_trading_day(self) -> bool:
        """True when the requested date had no trading data of its own."""
        return self.price.date != self.requested_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            'data': self.price.to_dict(),
            'symbol': self.price.symbol,
            'requested_date': self.requested_date,
            'actual_date': self.actual_date,
            'is_closest_trading_day': self.is_closest_trading_day
        }


@dataclass
class QuoteSnapshot:
    """Live quote annotated with the market session it was served in."""
    quote: Quote
    market_session: MarketSession
    next_update_in: int

    @property
    def is_real_time(self) -> bool:
        return self.market_session == MarketSession.OPEN

    def to_dict(self) -> Dict[str, Any]:
        return {
            'data': self.quote.to_dict(),
            'symbol': self.quote.symbol,
            'market_session': self.market_session.value,
            'is_real_time': self.is_real_time,
            'next_update_in': self.next_update_in
        }
