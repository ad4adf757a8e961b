"""
Best-effort TTL cache contract and in-memory implementation.

The cache is strictly best-effort: every operation degrades to a miss or a
no-op when the backing store is unavailable, so callers never fail because of
the cache. Values are stored as JSON, which makes the in-memory store behave
like the Redis one (values come back as plain dicts and lists, and anything
that cannot be serialized is never stored).
"""

import json
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

import structlog


class ConnectionState(Enum):
    """Connection states of a cache backing store."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@runtime_checkable
class CacheStore(Protocol):
    """
    Contract for TTL-aware key/value stores.

    Implementations never raise from these methods: unreachable backends,
    serialization failures and expired keys all look like an absent key.
    """

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def get(self, key: str) -> Optional[Any]: ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...

    async def clear(self) -> None: ...

    async def expire(self, key: str, ttl_seconds: int) -> None: ...

    def is_healthy(self) -> bool: ...

    async def connect(self) -> Any: ...

    async def close(self) -> None: ...


def serialize_value(value: Any) -> str:
    """Serialize a cache value to JSON."""
    return json.dumps(value, separators=(',', ':'))


def deserialize_value(raw: str) -> Any:
    """Deserialize a cached JSON payload."""
    return json.loads(raw)


class InMemoryCacheStore:
    """
    Process-local cache store.

    Second implementation of the cache contract, injected in tests and in
    single-process setups that run without Redis. Entries are evicted
    lazily when read after expiry.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.logger = structlog.get_logger(__name__)
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self.state = ConnectionState.CONNECTED

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self) -> None:
        self.state = ConnectionState.CONNECTED

    async def close(self) -> None:
        self._entries.clear()
        self.state = ConnectionState.DISCONNECTED

    def mark_unhealthy(self) -> None:
        """Simulate a lost backend connection."""
        self.state = ConnectionState.DISCONNECTED

    def is_healthy(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def _live_entry(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        raw, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return raw

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if not self.is_healthy():
            self.logger.warning("Cache unavailable, skipping set", key=key)
            return

        if ttl_seconds <= 0:
            self.logger.warning("Refusing cache set with non-positive TTL", key=key, ttl=ttl_seconds)
            return

        try:
            raw = serialize_value(value)
        except (TypeError, ValueError) as e:
            self.logger.error("Cache value serialization failed", key=key, error=str(e))
            return

        self._entries[key] = (raw, self._clock() + ttl_seconds)
        self.logger.debug("Cache set", key=key, ttl=ttl_seconds)

    async def get(self, key: str) -> Optional[Any]:
        if not self.is_healthy():
            self.logger.warning("Cache unavailable, skipping get", key=key)
            return None

        raw = self._live_entry(key)
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
        if not self.is_healthy():
            return
        self._entries.pop(key, None)

    async def exists(self, key: str) -> bool:
        if not self.is_healthy():
            return False
        return self._live_entry(key) is not None

    async def clear(self) -> None:
        if not self.is_healthy():
            return
        self._entries.clear()
        self.logger.info("Cache cleared")

    async def expire(self, key: str, ttl_seconds: int) -> None:
        if not self.is_healthy():
            return

        raw = self._live_entry(key)
        if raw is None:
            return

        if ttl_seconds <= 0:
            del self._entries[key]
            return
        self._entries[key] = (raw, self._clock() + ttl_seconds)
