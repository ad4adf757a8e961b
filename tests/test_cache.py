"""
Test suite for the in-memory cache store.

Tests cover TTL expiry, deletion and the best-effort behaviour when the store
is unhealthy.
"""

import pytest

from services.cache import CacheStore, ConnectionState, InMemoryCacheStore
from tests.utils.mock_services import ManualMonotonicClock


class TestInMemoryCacheStore:
    """Test InMemoryCacheStore."""

    @pytest.fixture
    def clock(self):
        return ManualMonotonicClock()

    @pytest.fixture
    def cache(self, clock):
        return InMemoryCacheStore(clock=clock)

    def test_satisfies_cache_contract(self, cache):
        assert isinstance(cache, CacheStore)

    @pytest.mark.asyncio
    async def test_get_before_set_is_absent(self, cache):
        assert await cache.get("stock_current:AAPL") is None
        assert await cache.exists("stock_current:AAPL") is False

    @pytest.mark.asyncio
    async def test_set_then_get(self, cache):
        value = [{'symbol': 'AAPL', 'match_score': 1.0}]

        await cache.set("stock_search:aapl", value, 3600)

        assert await cache.get("stock_search:aapl") == value
        assert await cache.exists("stock_search:aapl") is True

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, cache, clock):
        await cache.set("stock_current:AAPL", {'price': '185.85'}, 60)

        clock.advance(59)
        assert await cache.get("stock_current:AAPL") == {'price': '185.85'}

        clock.advance(1)
        assert await cache.get("stock_current:AAPL") is None
        assert await cache.exists("stock_current:AAPL") is False

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        await cache.set("key", "value", 86400)

        await cache.delete("key")

        assert await cache.get("key") is None

    @pytest.mark.asyncio
    async def test_non_positive_ttl_is_not_stored(self, cache):
        await cache.set("key", "value", 0)

        assert await cache.get("key") is None

    @pytest.mark.asyncio
    async def test_unserializable_value_is_not_stored(self, cache):
        await cache.set("key", {'value': object()}, 60)

        assert await cache.get("key") is None

    @pytest.mark.asyncio
    async def test_expire_extends_ttl(self, cache, clock):
        await cache.set("key", "value", 10)

        await cache.expire("key", 100)
        clock.advance(50)

        assert await cache.get("key") == "value"

    @pytest.mark.asyncio
    async def test_expire_with_zero_ttl_removes_key(self, cache):
        await cache.set("key", "value", 10)

        await cache.expire("key", 0)

        assert await cache.exists("key") is False

    @pytest.mark.asyncio
    async def test_clear(self, cache):
        await cache.set("a", 1, 60)
        await cache.set("b", 2, 60)

        await cache.clear()

        assert await cache.get("a") is None
        assert await cache.get("b") is None

    @pytest.mark.asyncio
    async def test_unhealthy_store_never_raises_and_always_misses(self, cache):
        await cache.set("key", "value", 60)
        cache.mark_unhealthy()

        await cache.set("other", "value", 60)
        await cache.delete("key")
        await cache.expire("key", 60)
        await cache.clear()

        assert cache.is_healthy() is False
        assert await cache.get("key") is None
        assert await cache.get("other") is None
        assert await cache.exists("key") is False

    @pytest.mark.asyncio
    async def test_context_manager_lifecycle(self, clock):
        async with InMemoryCacheStore(clock=clock) as cache:
            assert cache.state == ConnectionState.CONNECTED
            await cache.set("key", "value", 60)

        assert cache.state == ConnectionState.DISCONNECTED
        assert await cache.get("key") is None
