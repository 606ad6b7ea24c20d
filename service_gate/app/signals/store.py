"""
Local signal store.

Signals are small persisted flags that short-circuit repeated verification:
"room access granted" per (account, room) and "mint signature" per account.
Writes are last-writer-wins; the values are idempotent so concurrent writers
cannot disagree.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis.asyncio as redis

from shared.logging import get_logger
from shared.errors import GateException

ROOM_ACCESS_SIGNAL = "room_access"
MINT_SIGNATURE_SIGNAL = "mint_signature"
GRANTED_VALUE = "true"


class LocalSignalStore(ABC):
    """Key/value flags namespaced by account address."""

    @abstractmethod
    async def get(self, account_id: str, signal: str) -> Optional[str]:
        """Read a signal value."""

    @abstractmethod
    async def set(self, account_id: str, signal: str, value: str) -> None:
        """Write a signal value."""

    @abstractmethod
    async def clear_account(self, account_id: str) -> int:
        """Remove every signal for an account."""

    async def start(self) -> None:
        """Open backing connections."""

    async def stop(self) -> None:
        """Close backing connections."""

    async def health_check(self) -> bool:
        return True

    async def has_room_access(self, account_id: str, room_id: str) -> bool:
        return await self.get(account_id, f"{ROOM_ACCESS_SIGNAL}:{room_id}") == GRANTED_VALUE

    async def grant_room_access(self, account_id: str, room_id: str) -> None:
        await self.set(account_id, f"{ROOM_ACCESS_SIGNAL}:{room_id}", GRANTED_VALUE)

    async def get_mint_signature(self, account_id: str) -> Optional[str]:
        return await self.get(account_id, MINT_SIGNATURE_SIGNAL)

    async def record_mint_signature(self, account_id: str, signature: str) -> None:
        await self.set(account_id, MINT_SIGNATURE_SIGNAL, signature)


class InMemorySignalStore(LocalSignalStore):
    """Process-local signal store."""

    def __init__(self):
        self._signals: Dict[str, Dict[str, str]] = {}

    async def get(self, account_id: str, signal: str) -> Optional[str]:
        return self._signals.get(account_id, {}).get(signal)

    async def set(self, account_id: str, signal: str, value: str) -> None:
        self._signals.setdefault(account_id, {})[signal] = value

    async def clear_account(self, account_id: str) -> int:
        return len(self._signals.pop(account_id, {}))


class RedisSignalStore(LocalSignalStore):
    """Redis-backed signal store, one hash per account."""

    SIGNAL_PREFIX = "signal:"

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("gate.signals.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self) -> None:
        """Connect to Redis."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
            await self.redis.ping()
            self.logger.info("Redis signal store started")

        except Exception as e:
            self.logger.error("Failed to start Redis signal store", error=str(e))
            raise GateException("REDIS_START_FAILED", str(e))

    async def stop(self) -> None:
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis signal store stopped")

    def _key(self, account_id: str) -> str:
        return f"{self.SIGNAL_PREFIX}{account_id}"

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise GateException("REDIS_NOT_STARTED", "Redis signal store is not started")
        return self.redis

    async def get(self, account_id: str, signal: str) -> Optional[str]:
        return await self._client().hget(self._key(account_id), signal)

    async def set(self, account_id: str, signal: str, value: str) -> None:
        await self._client().hset(self._key(account_id), signal, value)

    async def clear_account(self, account_id: str) -> int:
        client = self._client()
        key = self._key(account_id)
        count = await client.hlen(key)
        await client.delete(key)
        return count

    async def health_check(self) -> bool:
        try:
            await self._client().ping()
            return True
        except Exception:
            return False


def create_signal_store(backend: str, redis_url: str) -> LocalSignalStore:
    """Build the configured signal store."""
    if backend == "redis":
        return RedisSignalStore(redis_url)
    return InMemorySignalStore()
