"""
Ledger indexer client.

Two tiers are exposed: the enhanced REST API (richer, parsed transaction
history) and the baseline JSON-RPC endpoint (asset queries). The client does
no fallback of its own; it turns every failure into a TransportError or
UpstreamFormatError so that callers can decide.
"""

import time
from typing import Any, Dict, List, Optional, TYPE_CHECKING

import httpx
from pydantic import ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.errors import TransportError, UpstreamFormatError, NotFoundError
from .schemas import (
    BaselineAsset,
    BaselineAssetRecordResponse,
    BaselineAssetResponse,
    EnhancedTxResponse,
)

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

ENHANCED_TIER = "enhanced"
BASELINE_TIER = "baseline"

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "User-Agent": "CredentialGate/1.0",
}


class IndexerClient:
    """HTTP client for the enhanced and baseline indexer tiers."""

    def __init__(
        self,
        rpc_url: str,
        enhanced_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.rpc_url = rpc_url.rstrip("/")
        self.enhanced_url = enhanced_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.metrics = metrics
        self.logger = get_logger("gate.indexer_client")

    # Enhanced tier

    async def get_nft_transactions(self, account_id: str) -> EnhancedTxResponse:
        """Recent NFT transactions for an account."""
        data = await self._get(
            ENHANCED_TIER,
            f"{self.enhanced_url}/addresses/{account_id}/transactions",
            params={"api-key": self.api_key, "type": "NFT"},
        )
        if not isinstance(data, list):
            raise UpstreamFormatError(
                ENHANCED_TIER,
                "Expected a list of transactions",
                details={"received": type(data).__name__}
            )
        return self._parse(ENHANCED_TIER, EnhancedTxResponse, {"transactions": data})

    async def get_transactions(self, signatures: List[str]) -> List[Dict[str, Any]]:
        """Parsed transaction details for the given signatures."""
        data = await self._get(
            ENHANCED_TIER,
            f"{self.enhanced_url}/transactions",
            params={"api-key": self.api_key, "transactions": signatures},
        )
        if not isinstance(data, list):
            raise UpstreamFormatError(
                ENHANCED_TIER,
                "Expected a list of transactions",
                details={"received": type(data).__name__}
            )
        return data

    # Baseline tier

    async def get_assets_by_owner(self, owner_address: str, page: int = 1, limit: int = 100) -> BaselineAssetResponse:
        """Assets held by an owner, via ``getAssetsByOwner``."""
        data = await self._rpc(
            "getAssetsByOwner",
            {
                "ownerAddress": owner_address,
                "page": page,
                "limit": limit,
                "displayOptions": {"showCompressedState": True},
            },
            request_id="gate-assets-by-owner",
        )
        return self._parse(BASELINE_TIER, BaselineAssetResponse, data)

    async def get_asset(self, asset_id: str) -> BaselineAsset:
        """A single asset record, via ``getAsset``."""
        data = await self._rpc("getAsset", {"id": asset_id}, request_id="gate-get-asset")
        if data.get("result") is None:
            raise NotFoundError(f"Asset {asset_id} not found", details={"asset_id": asset_id})
        return self._parse(BASELINE_TIER, BaselineAssetRecordResponse, data).result

    async def get_transaction(self, signature: str) -> Dict[str, Any]:
        """Raw transaction, via ``getTransaction``."""
        data = await self._rpc(
            "getTransaction",
            [signature, {"encoding": "json", "maxSupportedTransactionVersion": 0}],
            request_id="gate-get-transaction",
        )
        result = data.get("result")
        if result is None:
            raise NotFoundError(f"Transaction {signature} not found", details={"signature": signature})
        if not isinstance(result, dict):
            raise UpstreamFormatError(BASELINE_TIER, "Expected a transaction object")
        return result

    # Plumbing

    async def _get(self, tier: str, url: str, params: Dict[str, Any]) -> Any:
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=DEFAULT_HEADERS) as client:
                response = await client.get(url, params=params)
        except httpx.HTTPError as e:
            self._record(tier, "transport_error", start)
            raise TransportError(tier, "Request failed", details={"http_error": str(e)})
        return self._decode(tier, response, start)

    async def _rpc(self, method: str, params: Any, request_id: str) -> Dict[str, Any]:
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params,
        }
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=DEFAULT_HEADERS) as client:
                response = await client.post(
                    f"{self.rpc_url}/",
                    params={"api-key": self.api_key},
                    json=payload
                )
        except httpx.HTTPError as e:
            self._record(BASELINE_TIER, "transport_error", start)
            raise TransportError(BASELINE_TIER, f"{method} failed", details={"http_error": str(e)})

        data = self._decode(BASELINE_TIER, response, start)
        if not isinstance(data, dict):
            raise UpstreamFormatError(BASELINE_TIER, f"{method} returned a non-object body")
        if data.get("error"):
            raise UpstreamFormatError(
                BASELINE_TIER,
                f"{method} returned an error",
                details={"rpc_error": data["error"]}
            )
        return data

    def _decode(self, tier: str, response: httpx.Response, start: float) -> Any:
        if not response.is_success:
            self._record(tier, "http_error", start)
            raise TransportError(
                tier,
                f"Upstream returned {response.status_code}",
                details={"status_code": response.status_code}
            )
        try:
            data = response.json()
        except ValueError as e:
            self._record(tier, "format_error", start)
            raise UpstreamFormatError(tier, "Response is not JSON", details={"error": str(e)})

        self._record(tier, "ok", start)
        return data

    def _parse(self, tier: str, model, data: Any):
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            self.logger.warning("Malformed upstream response", tier=tier, model=model.__name__, errors=e.error_count())
            raise UpstreamFormatError(tier, f"Malformed {model.__name__}", details={"error_count": e.error_count()})

    def _record(self, tier: str, outcome: str, start: float) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter("indexer_calls_total", tier=tier, outcome=outcome)
        self.metrics.observe_histogram("indexer_call_duration_seconds", time.perf_counter() - start, tier=tier)
