"""
Unit tests for the local signal stores.
"""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, patch

from shared.errors import GateException
from service_gate.app.signals.store import (
    InMemorySignalStore,
    RedisSignalStore,
    create_signal_store,
)


class TestInMemorySignalStore:
    """Test cases for InMemorySignalStore."""

    @pytest.fixture
    def store(self):
        """Create an empty store."""
        return InMemorySignalStore()

    @pytest.mark.asyncio
    async def test_room_access(self, store):
        """Test room access is granted per account and room."""
        assert await store.has_room_access("A1", "vip") is False

        await store.grant_room_access("A1", "vip")

        assert await store.has_room_access("A1", "vip") is True
        assert await store.has_room_access("A1", "lobby") is False
        assert await store.has_room_access("A2", "vip") is False

    @pytest.mark.asyncio
    async def test_mint_signature(self, store):
        """Test the latest mint signature wins."""
        assert await store.get_mint_signature("A1") is None

        await store.record_mint_signature("A1", "SIG1")
        await store.record_mint_signature("A1", "SIG2")

        assert await store.get_mint_signature("A1") == "SIG2"

    @pytest.mark.asyncio
    async def test_clear_account(self, store):
        """Test clearing removes every signal for one account."""
        await store.grant_room_access("A1", "vip")
        await store.record_mint_signature("A1", "SIG1")
        await store.record_mint_signature("A2", "SIG2")

        assert await store.clear_account("A1") == 2
        assert await store.has_room_access("A1", "vip") is False
        assert await store.get_mint_signature("A2") == "SIG2"
        assert await store.clear_account("A1") == 0

    @pytest.mark.asyncio
    async def test_health_check(self, store):
        """Test the in-memory store is always healthy."""
        assert await store.health_check() is True


class TestRedisSignalStore:
    """Test cases for RedisSignalStore."""

    @pytest.fixture
    def redis_client(self):
        """Mock Redis client."""
        client = AsyncMock()
        client.ping.return_value = True
        client.hget.return_value = None
        return client

    @pytest_asyncio.fixture
    async def store(self, redis_client):
        """Started store backed by the mock client."""
        store = RedisSignalStore("redis://localhost:6379/0")
        with patch("redis.asyncio.from_url", return_value=redis_client):
            await store.start()
        return store

    @pytest.mark.asyncio
    async def test_start_pings(self, store, redis_client):
        """Test start verifies the connection."""
        redis_client.ping.assert_awaited()
        assert store.redis is redis_client

    @pytest.mark.asyncio
    async def test_start_failure(self):
        """Test connection failures surface as a gate error."""
        client = AsyncMock()
        client.ping.side_effect = ConnectionError("refused")
        store = RedisSignalStore("redis://localhost:6379/0")

        with patch("redis.asyncio.from_url", return_value=client):
            with pytest.raises(GateException) as exc_info:
                await store.start()

        assert exc_info.value.code == "REDIS_START_FAILED"

    @pytest.mark.asyncio
    async def test_not_started(self):
        """Test use before start is an error."""
        store = RedisSignalStore("redis://localhost:6379/0")

        with pytest.raises(GateException):
            await store.get_mint_signature("A1")
        assert await store.health_check() is False

    @pytest.mark.asyncio
    async def test_grant_room_access(self, store, redis_client):
        """Test signals are stored in one hash per account."""
        await store.grant_room_access("A1", "vip")

        redis_client.hset.assert_awaited_once_with("signal:A1", "room_access:vip", "true")

    @pytest.mark.asyncio
    async def test_has_room_access(self, store, redis_client):
        """Test the granted flag is read back."""
        redis_client.hget.return_value = "true"

        assert await store.has_room_access("A1", "vip") is True
        redis_client.hget.assert_awaited_once_with("signal:A1", "room_access:vip")

    @pytest.mark.asyncio
    async def test_clear_account(self, store, redis_client):
        """Test clearing deletes the account hash."""
        redis_client.hlen.return_value = 3

        assert await store.clear_account("A1") == 3
        redis_client.delete.assert_awaited_once_with("signal:A1")

    @pytest.mark.asyncio
    async def test_stop(self, store, redis_client):
        """Test stop closes the connection."""
        await store.stop()

        redis_client.aclose.assert_awaited_once()
        assert store.redis is None


def test_create_signal_store():
    """Test the backend factory."""
    assert isinstance(create_signal_store("memory", ""), InMemorySignalStore)
    assert isinstance(create_signal_store("redis", "redis://localhost:6379/0"), RedisSignalStore)
