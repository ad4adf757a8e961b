"""
Redis-backed cache store.

Wraps a ``redis.asyncio`` client behind the best-effort cache contract: the
connection state is tracked from ping results and operation errors, every
call is bounded by an operation timeout, and any failure is logged and
turned into a miss or a no-op.
"""

import asyncio
import time
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError, ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
from prometheus_client import Counter
import structlog

from config.settings import CacheConfig
from services.cache import ConnectionState, serialize_value, deserialize_value


cache_operation_errors = Counter(
    'stock_cache_operation_errors_total',
    'Cache backend errors by operation',
    ['operation']
)

# Raised by the backend when the connection itself is in trouble
_CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, asyncio.TimeoutError, OSError)

_FAILED = object()


class RedisCacheStore:
    """
    Cache store backed by Redis.

    The store never runs its own reconnect loop. After a connection error it
    stays disconnected, and the next operation issued once
    ``reconnect_interval_seconds`` has passed re-probes the server with a
    ping; reconnecting the socket itself is left to the redis client.
    """

    def __init__(self, config: CacheConfig, client: Optional[aioredis.Redis] = None,
                 reconnect_interval_seconds: float = 30.0):
        self.config = config
        self.logger = structlog.get_logger(__name__)
        self.reconnect_interval_seconds = reconnect_interval_seconds

        self.client: Optional[aioredis.Redis] = client
        self.state = ConnectionState.DISCONNECTED
        self._last_failure_at: Optional[float] = None

        if self.client is None and config.redis_url:
            self.client = aioredis.from_url(
                config.redis_url,
                decode_responses=True,
                socket_timeout=config.socket_timeout_seconds,
                socket_connect_timeout=config.connect_timeout_seconds,
                socket_keepalive=config.keepalive
            )

        if self.client is None:
            self.logger.warning("REDIS_URL not configured, cache disabled")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self) -> bool:
        """
        Probe the server and move to CONNECTED on success.

        Returns:
            bool: True if the cache is usable after the probe
        """
        if self.client is None:
            return False

        self.state = ConnectionState.CONNECTING
        try:
            await asyncio.wait_for(self.client.ping(), timeout=self.config.connect_timeout_seconds)
        except Exception as e:
            self.logger.error("Redis connection failed", error=str(e), error_type=type(e).__name__)
            self._mark_disconnected()
            return False

        self.state = ConnectionState.CONNECTED
        self.logger.info("Redis cache connected")
        return True

    async def close(self) -> None:
        """Close the client connection pool."""
        if self.client is None:
            return

        try:
            await self.client.aclose()
            self.logger.info("Redis connection closed")
        except Exception as e:
            self.logger.error("Failed to close Redis connection", error=str(e), error_type=type(e).__name__)
        finally:
            self.state = ConnectionState.DISCONNECTED

    def is_healthy(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def _mark_disconnected(self) -> None:
        if self.state == ConnectionState.CONNECTED:
            self.logger.warning("Redis connection lost")
        self.state = ConnectionState.DISCONNECTED
        self._last_failure_at = time.monotonic()

    async def _ensure_connected(self) -> bool:
        if self.is_healthy():
            return True
        if self.client is None:
            return False

        if (self._last_failure_at is not None
                and time.monotonic() - self._last_failure_at < self.reconnect_interval_seconds):
            return False
        return await self.connect()

    async def _call(self, operation: str, key: Optional[str], command: str, *args) -> Any:
        """Run one backend call under the operation timeout, returning _FAILED on any error."""
        if not await self._ensure_connected():
            self.logger.warning("Redis unavailable, skipping cache operation", operation=operation, key=key)
            return _FAILED

        try:
            return await asyncio.wait_for(
                getattr(self.client, command)(*args),
                timeout=self.config.operation_timeout_seconds
            )
        except _CONNECTION_ERRORS as e:
            cache_operation_errors.labels(operation=operation).inc()
            self.logger.error("Redis connection error", operation=operation, key=key, error=str(e))
            self._mark_disconnected()
            return _FAILED
        except RedisError as e:
            cache_operation_errors.labels(operation=operation).inc()
            self.logger.error("Redis command failed", operation=operation, key=key, error=str(e))
            return _FAILED
        except Exception as e:
            # Client in an unknown state (e.g. closed pool); re-probe before next use
            cache_operation_errors.labels(operation=operation).inc()
            self.logger.error("Unexpected Redis client error",
                              operation=operation, key=key, error=str(e), error_type=type(e).__name__)
            self._mark_disconnected()
            return _FAILED

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self.logger.warning("Refusing cache set with non-positive TTL", key=key, ttl=ttl_seconds)
            return

        try:
            raw = serialize_value(value)
        except (TypeError, ValueError) as e:
            self.logger.error("Cache value serialization failed", key=key, error=str(e))
            return

        result = await self._call('set', key, 'setex', key, ttl_seconds, raw)
        if result is not _FAILED:
            self.logger.debug("Cache set", key=key, ttl=ttl_seconds)

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._call('get', key, 'get', key)
        if raw is _FAILED:
            return None

        if raw is None:
            self.logger.debug("Cache miss", key=key)
            return None

        try:
            value = deserialize_value(raw)
        except ValueError as e:
            self.logger.error("Cache value deserialization failed", key=key, error=str(e))
            return None

        self.logger.debug("Cache hit", key=key)
        return value

    async def delete(self, key: str) -> None:
        result = await self._call('delete', key, 'delete', key)
        if result is not _FAILED:
            self.logger.debug("Cache deleted", key=key)

    async def exists(self, key: str) -> bool:
        result = await self._call('exists', key, 'exists', key)
        if result is _FAILED:
            return False
        return result == 1

    async def clear(self) -> None:
        result = await self._call('clear', None, 'flushdb')
        if result is not _FAILED:
            self.logger.info("Cache cleared")

    async def expire(self, key: str, ttl_seconds: int) -> None:
        result = await self._call('expire', key, 'expire', key, ttl_seconds)
        if result is not _FAILED:
            self.logger.debug("Cache expiry updated", key=key, ttl=ttl_seconds)
