"""
Gate cache manager for the different cache types.

Each cache type lives in its own namespace with its own TTL:

- ownership: short, ownership can change on the ledger
- commitment: long, a commitment carries its own validity window
- verification: medium, re-verifying the same commitment is idempotent
- asset_listing / transaction: upstream read-through caches for the HTTP surface

Staleness is accepted: a cached ``True`` hides a revoked credential, and a
cached ``False`` hides a freshly minted one, until the entry expires.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from shared.logging import get_logger
from .ttl_cache import DEFAULT_MAX_ENTRIES, TTLCache
from ..models import Commitment

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_OWNERSHIP_TTL = 300
DEFAULT_COMMITMENT_TTL = 3600
DEFAULT_VERIFICATION_TTL = 600
DEFAULT_ASSET_LISTING_TTL = 300
DEFAULT_TRANSACTION_TTL = 1800


class GateCacheManager:
    """Manager for the gate's TTL caches."""

    CACHE_PREFIXES = {
        "ownership": "ownership",
        "commitment": "commitment",
        "verification": "verification",
        "asset_listing": "asset_listing",
        "transaction": "transaction",
    }

    def __init__(
        self,
        *,
        ownership_ttl: float = DEFAULT_OWNERSHIP_TTL,
        commitment_ttl: float = DEFAULT_COMMITMENT_TTL,
        verification_ttl: float = DEFAULT_VERIFICATION_TTL,
        asset_listing_ttl: float = DEFAULT_ASSET_LISTING_TTL,
        transaction_ttl: float = DEFAULT_TRANSACTION_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.logger = get_logger("gate.cache_manager")
        self.metrics = metrics
        self._sweep_task: Optional[asyncio.Task] = None
        self._sweep_hooks: List[Callable[[], int]] = []

        self.ownership = TTLCache(self.CACHE_PREFIXES["ownership"], ownership_ttl, clock, max_entries)
        self.commitments = TTLCache(self.CACHE_PREFIXES["commitment"], commitment_ttl, clock, max_entries)
        self.verifications = TTLCache(self.CACHE_PREFIXES["verification"], verification_ttl, clock, max_entries)
        self.asset_listings = TTLCache(self.CACHE_PREFIXES["asset_listing"], asset_listing_ttl, clock, max_entries)
        self.transactions = TTLCache(self.CACHE_PREFIXES["transaction"], transaction_ttl, clock, max_entries)

    @classmethod
    def from_config(cls, config, metrics: Optional["MetricsCollector"] = None) -> "GateCacheManager":
        return cls(
            ownership_ttl=config.ownership_cache_ttl,
            commitment_ttl=config.commitment_cache_ttl,
            verification_ttl=config.verification_cache_ttl,
            asset_listing_ttl=config.asset_listing_cache_ttl,
            transaction_ttl=config.transaction_cache_ttl,
            max_entries=config.cache_max_entries,
            metrics=metrics,
        )

    @property
    def caches(self) -> List[TTLCache]:
        return [self.ownership, self.commitments, self.verifications, self.asset_listings, self.transactions]

    def _lookup(self, cache: TTLCache, key: str) -> Optional[Any]:
        value = cache.get(key)
        if self.metrics:
            self.metrics.increment_counter(
                "cache_requests_total",
                namespace=cache.namespace,
                result="hit" if value is not None else "miss",
            )
        return value

    # Ownership lookups

    def get_ownership(self, account_id: str, credential_name: str) -> Optional[bool]:
        """Cached ownership answer for an account, or None."""
        return self._lookup(self.ownership, f"{account_id}:{credential_name}")

    def set_ownership(self, account_id: str, credential_name: str, owns: bool, ttl: Optional[float] = None) -> None:
        self.ownership.set(f"{account_id}:{credential_name}", bool(owns), ttl)

    # Commitments

    def get_commitment(self, account_id: str, asset_id: str) -> Optional[Commitment]:
        return self._lookup(self.commitments, f"{account_id}:{asset_id}")

    def set_commitment(self, commitment: Commitment, ttl: Optional[float] = None) -> None:
        self.commitments.set(f"{commitment.account_id}:{commitment.asset_id}", commitment, ttl)

    # Verification results

    def get_verification(self, commitment: Commitment) -> Optional[bool]:
        return self._lookup(self.verifications, commitment.cache_key())

    def set_verification(self, commitment: Commitment, verified: bool, ttl: Optional[float] = None) -> None:
        self.verifications.set(commitment.cache_key(), bool(verified), ttl)

    # Upstream read-through

    def get_asset_listing(self, account_id: str) -> Optional[Dict[str, Any]]:
        return self._lookup(self.asset_listings, account_id)

    def set_asset_listing(self, account_id: str, listing: Dict[str, Any], ttl: Optional[float] = None) -> None:
        self.asset_listings.set(account_id, listing, ttl)

    def get_transaction(self, signature: str) -> Optional[Any]:
        return self._lookup(self.transactions, signature)

    def set_transaction(self, signature: str, details: Any, ttl: Optional[float] = None) -> None:
        self.transactions.set(signature, details, ttl)

    # Maintenance

    def invalidate_account(self, account_id: str) -> int:
        """Drop every account-keyed entry across namespaces."""
        prefix = f"{account_id}:"
        removed = 0
        for cache in (self.ownership, self.commitments, self.verifications):
            removed += cache.delete_matching(lambda key: key.startswith(prefix))
        if self.asset_listings.delete(account_id):
            removed += 1

        if removed:
            self.logger.info("Invalidated account cache", account_id=account_id, removed=removed)
        return removed

    def add_sweep_hook(self, hook: Callable[[], int]) -> None:
        """Run ``hook`` on every sweep. It returns how many records it purged."""
        self._sweep_hooks.append(hook)

    def sweep_expired(self) -> int:
        """Sweep all namespaces, then every registered hook."""
        removed = sum(cache.sweep() for cache in self.caches)
        for hook in self._sweep_hooks:
            removed += hook()
        return removed

    async def start(self, sweep_interval: float) -> None:
        """Start the periodic sweep. A non-positive interval leaves expiry purely lazy."""
        if sweep_interval <= 0 or self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(sweep_interval))
        self.logger.info("Cache sweeper started", interval_seconds=sweep_interval)

    async def stop(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None
        self.logger.info("Cache sweeper stopped")

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            removed = self.sweep_expired()
            if removed:
                self.logger.debug("Swept expired cache entries", removed=removed)

    def get_cache_stats(self) -> Dict[str, Any]:
        """Per-namespace cache statistics."""
        return {
            "cache_types": list(self.CACHE_PREFIXES.keys()),
            "namespaces": {cache.namespace: cache.stats() for cache in self.caches},
            "sweeper_running": self._sweep_task is not None,
        }
