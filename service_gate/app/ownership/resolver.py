"""
Asset resolution client.

Decides whether an account holds the required credential. The enhanced tier
is always asked first; the baseline tier is asked only when the enhanced tier
fails or reports no mint events. Neither tier is retried within a call, and a
total upstream outage resolves to ``False`` rather than an exception.
"""

from typing import Any, Dict, List, Optional, TYPE_CHECKING

from shared.errors import TransportError, UpstreamFormatError
from shared.jitter import JitteredDispatcher
from shared.logging import get_logger
from ..caching.cache_manager import GateCacheManager
from ..indexer.client import IndexerClient, ENHANCED_TIER, BASELINE_TIER
from ..models import CredentialRecord

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

UPSTREAM_ERRORS = (TransportError, UpstreamFormatError)


class AssetResolutionClient:
    """Resolve credential ownership against the indexer tiers."""

    def __init__(
        self,
        indexer: IndexerClient,
        cache_manager: GateCacheManager,
        dispatcher: JitteredDispatcher,
        required_credential_name: str,
        *,
        fallback_jitter_ms: Optional[int] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.indexer = indexer
        self.cache_manager = cache_manager
        self.dispatcher = dispatcher
        self.required_credential_name = required_credential_name
        self.fallback_jitter_ms = fallback_jitter_ms
        self.metrics = metrics
        self.logger = get_logger("gate.resolver")

    async def resolve_ownership(self, account_id: str, required_credential_name: Optional[str] = None) -> bool:
        """Whether ``account_id`` holds a credential named ``required_credential_name``."""
        credential_name = required_credential_name or self.required_credential_name

        cached = self.cache_manager.get_ownership(account_id, credential_name)
        if cached is not None:
            self.logger.debug("Ownership cache hit", account_id=account_id, owns=cached)
            return cached

        credentials = await self._enhanced_credentials(account_id)
        tier = ENHANCED_TIER
        if not credentials:
            credentials = await self._baseline_credentials(account_id)
            tier = BASELINE_TIER

        if credentials is None:
            # Both tiers unreachable: deny, and leave the cache alone
            self.logger.warning(
                "Ownership unresolved, all indexer tiers failed",
                account_id=account_id,
                credential=credential_name
            )
            return False

        owns = any(record.metadata_name == credential_name for record in credentials)
        self.cache_manager.set_ownership(account_id, credential_name, owns)
        self.logger.info(
            "Ownership resolved",
            account_id=account_id,
            credential=credential_name,
            owns=owns,
            tier=tier,
            candidates=len(credentials)
        )
        return owns

    async def get_assets_by_owner(self, account_id: str) -> Dict[str, Any]:
        """Credential listing for an account, same tier order as ``resolve_ownership``.

        Returns ``{"items": [...]}`` in the baseline asset shape; empty on total failure.
        """
        cached = self.cache_manager.get_asset_listing(account_id)
        if cached is not None:
            return cached

        credentials = await self._enhanced_credentials(account_id)
        if not credentials:
            credentials = await self._baseline_credentials(account_id)

        if credentials is None:
            return {"items": []}

        listing = {"items": [record.to_payload() for record in credentials]}
        self.cache_manager.set_asset_listing(account_id, listing)
        return listing

    async def _enhanced_credentials(self, account_id: str) -> Optional[List[CredentialRecord]]:
        """Credentials synthesized from mint events; None or empty means fall through."""
        try:
            response = await self.dispatcher.dispatch(self.indexer.get_nft_transactions, account_id)
        except UPSTREAM_ERRORS as e:
            self.logger.warning(
                "Enhanced indexer failed, falling back to baseline",
                account_id=account_id,
                error=e.message
            )
            return None

        credentials = []
        for tx in response.mint_events():
            record = tx.to_credential(account_id)
            if record is not None:
                credentials.append(record)

        if not credentials:
            self.logger.debug("Enhanced indexer returned no mint events", account_id=account_id)
        return credentials

    async def _baseline_credentials(self, account_id: str) -> Optional[List[CredentialRecord]]:
        """Credentials from ``getAssetsByOwner``; None when the tier failed."""
        try:
            response = await self.dispatcher.dispatch(
                self.indexer.get_assets_by_owner,
                account_id,
                max_jitter_ms=self.fallback_jitter_ms,
            )
        except UPSTREAM_ERRORS as e:
            self.logger.warning(
                "Baseline indexer failed",
                account_id=account_id,
                error=e.message
            )
            return None

        return [asset.to_credential(default_owner=account_id) for asset in response.result.items]
