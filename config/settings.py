"""Settings module for the stock market data service."""

import logging
from typing import Dict, Any, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from dataclasses import dataclass, field
from enum import Enum

import structlog


class Environment(str, Enum):
    """Environment types."""
    DEVELOPMENT = "development"
    TEST = "test"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    """Raw environment settings for the market data service."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    ENVIRONMENT: str = Field("development", description="Deployment environment")
    LOG_LEVEL: str = Field("INFO", description="Root log level")

    # Market Data Configuration
    ALPHA_VANTAGE_API_KEY: Optional[str] = Field(None, description="Alpha Vantage API Key")
    ALPHA_VANTAGE_BASE_URL: str = Field("https://www.alphavantage.co/query", description="Alpha Vantage endpoint")
    MARKET_DATA_TIMEOUT: float = Field(10.0, description="Per-attempt HTTP timeout in seconds")
    MARKET_DATA_RETRY_ATTEMPTS: int = Field(3, description="Total attempts per provider request")
    MARKET_DATA_RETRY_DELAY: float = Field(1.0, description="Base delay between attempts in seconds")

    # Redis Configuration
    REDIS_URL: Optional[str] = Field(None, description="Redis connection URL")
    REDIS_SOCKET_TIMEOUT: float = Field(30.0, description="Redis socket timeout in seconds")
    REDIS_CONNECT_TIMEOUT: float = Field(10.0, description="Redis connect timeout in seconds")
    CACHE_OPERATION_TIMEOUT: float = Field(5.0, description="Upper bound for a single cache call")

    # Cache TTLs
    CACHE_TTL_SEARCH: int = Field(3600, description="Symbol search TTL in seconds")
    CACHE_TTL_HISTORICAL: int = Field(86400, description="Historical price TTL in seconds")
    CACHE_TTL_QUOTE_OPEN: int = Field(60, description="Live quote TTL while the market is open")
    CACHE_TTL_QUOTE_CLOSED: int = Field(300, description="Live quote TTL outside regular hours")


@dataclass
class MarketDataConfig:
    """Alpha Vantage client configuration."""
    api_key: str
    base_url: str = "https://www.alphavantage.co/query"
    timeout_seconds: float = 10.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0

    def __post_init__(self):
        """Validate market data configuration."""
        if not self.api_key:
            raise ValueError("ALPHA_VANTAGE_API_KEY is not configured")

        if self.timeout_seconds <= 0:
            raise ValueError("Timeout must be positive")

        if self.retry_attempts < 1:
            raise ValueError("Retry attempts must be at least 1")

        if self.retry_delay_seconds < 0:
            raise ValueError("Retry delay cannot be negative")


@dataclass
class CacheConfig:
    """Redis cache connection configuration."""
    redis_url: Optional[str] = None
    socket_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0
    keepalive: bool = True
    operation_timeout_seconds: float = 5.0

    def __post_init__(self):
        if self.socket_timeout_seconds <= 0 or self.connect_timeout_seconds <= 0:
            raise ValueError("Redis timeouts must be positive")

        if self.operation_timeout_seconds <= 0:
            raise ValueError("Cache operation timeout must be positive")

    @property
    def enabled(self) -> bool:
        return bool(self.redis_url)


@dataclass
class CacheTTLConfig:
    """Cache lifetimes per request type, in seconds."""
    search_seconds: int = 3600
    historical_price_seconds: int = 86400
    quote_market_open_seconds: int = 60
    quote_market_closed_seconds: int = 300

    def __post_init__(self):
        for name in ('search_seconds', 'historical_price_seconds',
                     'quote_market_open_seconds', 'quote_market_closed_seconds'):
            if getattr(self, name) <= 0:
                raise ValueError(f"Cache TTL {name} must be positive")


@dataclass
class AppConfig:
    """Main application configuration container."""
    environment: Environment
    log_level: LogLevel
    market_data: MarketDataConfig
    cache: CacheConfig = field(default_factory=CacheConfig)
    cache_ttl: CacheTTLConfig = field(default_factory=CacheTTLConfig)

    # Application metadata
    app_name: str = "Portfolio Market Data"
    app_version: str = "1.0.0"

    def setup_logging(self) -> None:
        """Configure stdlib logging and structlog for the current environment."""
        logging.basicConfig(
            level=getattr(logging, self.log_level.value),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        if self.environment == Environment.PRODUCTION:
            renderer = structlog.processors.JSONRenderer()
        else:
            renderer = structlog.dev.ConsoleRenderer()

        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.format_exc_info,
                renderer
            ],
            wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, self.log_level.value)),
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True
        )

        # Keep third-party transport logging quiet outside debugging
        if self.log_level != LogLevel.DEBUG:
            logging.getLogger('aiohttp').setLevel(logging.WARNING)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary for serialization.

        Returns:
            Dict representation of configuration (excluding sensitive data)
        """
        return {
            'app_name': self.app_name,
            'app_version': self.app_version,
            'environment': self.environment.value,
            'log_level': self.log_level.value,
            'market_data_base_url': self.market_data.base_url,
            'api_key_configured': bool(self.market_data.api_key),
            'redis_enabled': self.cache.enabled,
            'cache_ttl': {
                'search': self.cache_ttl.search_seconds,
                'historical_price': self.cache_ttl.historical_price_seconds,
                'quote_market_open': self.cache_ttl.quote_market_open_seconds,
                'quote_market_closed': self.cache_ttl.quote_market_closed_seconds
            }
        }


def load_config(env_file: Optional[str] = ".env") -> AppConfig:
    """
    Load and validate configuration from environment variables.

    Args:
        env_file: Optional dotenv file read in addition to the process environment

    Returns:
        AppConfig: Validated application configuration

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    try:
        settings = Settings(_env_file=env_file)

        environment = Environment(settings.ENVIRONMENT.lower())
        log_level = LogLevel(settings.LOG_LEVEL.upper())

        market_data_config = MarketDataConfig(
            api_key=(settings.ALPHA_VANTAGE_API_KEY or '').strip(),
            base_url=settings.ALPHA_VANTAGE_BASE_URL,
            timeout_seconds=settings.MARKET_DATA_TIMEOUT,
            retry_attempts=settings.MARKET_DATA_RETRY_ATTEMPTS,
            retry_delay_seconds=settings.MARKET_DATA_RETRY_DELAY
        )

        cache_config = CacheConfig(
            redis_url=settings.REDIS_URL or None,
            socket_timeout_seconds=settings.REDIS_SOCKET_TIMEOUT,
            connect_timeout_seconds=settings.REDIS_CONNECT_TIMEOUT,
            operation_timeout_seconds=settings.CACHE_OPERATION_TIMEOUT
        )

        ttl_config = CacheTTLConfig(
            search_seconds=settings.CACHE_TTL_SEARCH,
            historical_price_seconds=settings.CACHE_TTL_HISTORICAL,
            quote_market_open_seconds=settings.CACHE_TTL_QUOTE_OPEN,
            quote_market_closed_seconds=settings.CACHE_TTL_QUOTE_CLOSED
        )

        return AppConfig(
            environment=environment,
            log_level=log_level,
            market_data=market_data_config,
            cache=cache_config,
            cache_ttl=ttl_config
        )

    except ValueError as e:
        raise ValueError(f"Configuration error: {e}")
