"""
Credential gate service.
"""

from typing import Any, Dict, Optional

from fastapi import Query
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import GateConfig, get_config, mask_secret
from shared.errors import GateException, NotFoundError
from shared.jitter import JitteredDispatcher

from .access.state_machine import AccessControlStateMachine
from .caching.cache_manager import GateCacheManager
from .indexer.client import IndexerClient
from .models import (
    AccessCheckRequest,
    AccessCheckResponse,
    Commitment,
    MintSignalRequest,
    OwnerAssetsRequest,
    ProofGenerateRequest,
    ProofVerifyRequest,
    TransactionDetailsRequest,
)
from .ownership.resolver import AssetResolutionClient, UPSTREAM_ERRORS
from .proofs.commitment_engine import CommitmentEngine
from .proofs.proof_store import ProofStore
from .signals.store import create_signal_store


class GateService(BaseService):
    """Credential-gated room access service."""

    def __init__(self, config: Optional[GateConfig] = None):
        config = (config or get_config()).validate_required()
        super().__init__("gate", config)

        self.dispatcher = JitteredDispatcher(self.config.max_jitter_ms)
        self.indexer = IndexerClient(
            self.config.indexer_rpc_url,
            self.config.indexer_enhanced_url,
            self.config.indexer_api_key,
            timeout=self.config.upstream_timeout_seconds,
            metrics=self.metrics,
        )
        self.cache_manager = GateCacheManager.from_config(self.config, self.metrics)
        self.signals = create_signal_store(self.config.signal_store_backend, self.config.redis_url)
        self.resolver = AssetResolutionClient(
            self.indexer,
            self.cache_manager,
            self.dispatcher,
            self.config.required_credential_name,
            fallback_jitter_ms=self.config.fallback_jitter_ms,
            metrics=self.metrics,
        )
        self.engine = CommitmentEngine(self.indexer, dispatcher=self.dispatcher, metrics=self.metrics)
        self.proofs = ProofStore(self.engine, self.config.proof_lifetime_ms)
        self.access = AccessControlStateMachine(
            self.resolver,
            self.engine,
            self.signals,
            self.cache_manager,
            required_credential_name=self.config.required_credential_name,
            default_asset_id=self.config.default_asset_id,
            proof_lifetime_ms=self.config.proof_lifetime_ms,
            decision_history_size=self.config.decision_history_size,
            metrics=self.metrics,
        )
        self.cache_manager.add_sweep_hook(self.proofs.clear_expired)

        self._setup_gate_routes()

    def _setup_gate_routes(self):
        """Set up gate-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "gate",
                "message": "Credential gate - room access by credential ownership",
                "version": "1.0.0",
                "capabilities": ["ownership", "commitments", "access_control", "signals"]
            }

        @self.app.post("/zkproof/generate")
        async def generate_proof(request: ProofGenerateRequest):
            """Issue an ownership commitment for a wallet."""
            asset_id = request.asset_id or self.config.default_asset_id
            now = self.engine.clock()

            commitment = self.cache_manager.get_commitment(request.wallet_address, asset_id)
            if commitment is not None and self.engine.is_expired(commitment, self.config.proof_lifetime_ms, now):
                commitment = None

            record = self.proofs.find(commitment) if commitment is not None else None
            if record is None:
                commitment = await self.engine.generate(request.wallet_address, asset_id)
                self.cache_manager.set_commitment(commitment)
                record = self.proofs.add(request.wallet_address, commitment, request.proof_type)
                cached = False
            else:
                cached = True

            return {
                "success": True,
                "proof_id": record.proof_id,
                "proof": commitment.payload_blob,
                "inputs": list(commitment.inputs),
                "path": commitment.path.value,
                "expires_at": record.expires_at,
                "cached": cached,
                "data": {
                    "wallet_address": request.wallet_address,
                    "asset_id": asset_id,
                    "proof_type": record.proof_type.value,
                    "public_hash": record.public_hash,
                }
            }

        @self.app.post("/zkproof/verify")
        async def verify_proof(request: ProofVerifyRequest):
            """Verify a presented commitment."""
            commitment = Commitment.from_parts(request.proof, request.inputs)

            verified = self.cache_manager.get_verification(commitment)
            cached = verified is not None
            reason = "cached"
            if verified is None:
                outcome = self.engine.verify_detailed(commitment)
                verified, reason = outcome.verified, outcome.reason
                self.cache_manager.set_verification(commitment, verified)

            if verified and request.wallet_address and request.wallet_address != commitment.account_id:
                verified, reason = False, "wallet_mismatch"
            if verified and request.asset_id and request.asset_id != commitment.asset_id:
                verified, reason = False, "asset_mismatch"

            body = {
                "success": verified,
                "verified": verified,
                "cached": cached,
                "reason": reason,
                "wallet_address": commitment.account_id,
                "asset_id": commitment.asset_id,
            }
            return JSONResponse(status_code=200 if verified else 401, content=body)

        @self.app.post("/nft/get-by-owner")
        async def get_assets_by_owner(request: OwnerAssetsRequest):
            """List credentials held by a wallet."""
            return await self.resolver.get_assets_by_owner(request.wallet_address)

        @self.app.post("/transaction/details")
        async def transaction_details(request: TransactionDetailsRequest):
            """Look up a transaction, enhanced tier first."""
            return await self._transaction_details(request.signature)

        @self.app.post("/access/check", response_model=AccessCheckResponse)
        async def check_access(request: AccessCheckRequest):
            """Decide room entry for a wallet."""
            result = await self.access.evaluate(request.wallet_address, request.room_id, request.asset_id)
            return AccessCheckResponse(
                wallet_address=result.account_id,
                room_id=result.room_id,
                decision=result.decision,
                states=result.states,
            )

        @self.app.get("/access/{room_id}/{wallet_address}")
        async def get_access(room_id: str, wallet_address: str):
            """Current decision for a wallet and room."""
            return {
                "wallet_address": wallet_address,
                "room_id": room_id,
                "decision": self.access.decision_for(wallet_address, room_id).value,
            }

        @self.app.post("/signals/mint")
        async def record_mint(request: MintSignalRequest):
            """Record a mint signature for a wallet."""
            await self.signals.record_mint_signature(request.wallet_address, request.signature)
            self.logger.info("Mint signature recorded", wallet_address=request.wallet_address)
            return {"success": True, "wallet_address": request.wallet_address}

        @self.app.delete("/signals/{wallet_address}")
        async def clear_signals(wallet_address: str):
            """Forget everything stored locally for a wallet."""
            cleared = await self.signals.clear_account(wallet_address)
            removed = self.cache_manager.invalidate_account(wallet_address)
            return {
                "wallet_address": wallet_address,
                "signals_cleared": cleared,
                "cache_entries_removed": removed,
            }

        @self.app.get("/proofs")
        async def list_proofs(wallet_address: str = Query(..., min_length=1, description="Wallet address")):
            """Proof records issued to a wallet."""
            records = self.proofs.for_wallet(wallet_address)
            return {
                "wallet_address": wallet_address,
                "proofs": [record.to_dict() for record in records],
                "total": len(records),
            }

        @self.app.post("/proofs/{proof_id}/verify")
        async def verify_stored_proof(proof_id: str):
            """Re-verify a registered proof."""
            return {"proof_id": proof_id, "verified": self.proofs.verify(proof_id, self.engine.clock())}

        @self.app.delete("/proofs/expired")
        async def clear_expired_proofs():
            """Purge expired proof records."""
            return {"cleared": self.proofs.clear_expired()}

        @self.app.get("/cache/stats")
        async def cache_stats():
            """Cache statistics."""
            return self.cache_manager.get_cache_stats()

    async def _transaction_details(self, signature: str) -> Dict[str, Any]:
        cached = self.cache_manager.get_transaction(signature)
        if cached is not None:
            return cached

        details = None
        try:
            transactions = await self.dispatcher.dispatch(self.indexer.get_transactions, [signature])
            if transactions:
                details = transactions[0]
        except UPSTREAM_ERRORS as e:
            self.logger.warning("Enhanced transaction lookup failed", signature=signature, error=e.message)

        if details is None:
            try:
                details = await self.dispatcher.dispatch(
                    self.indexer.get_transaction,
                    signature,
                    max_jitter_ms=self.config.fallback_jitter_ms,
                )
            except UPSTREAM_ERRORS + (NotFoundError,) as e:
                self.logger.warning("Baseline transaction lookup failed", signature=signature, error=e.message)
                return {"error": "Transaction details unavailable", "signature": signature}

        self.cache_manager.set_transaction(signature, details)
        return details

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check gate dependencies."""
        dependencies = {}

        try:
            healthy = await self.signals.health_check()
            dependencies["signal_store"] = "ok" if healthy else "error"
        except GateException:
            dependencies["signal_store"] = "error"

        dependencies["cache_sweeper"] = "ok" if self.cache_manager.get_cache_stats()["sweeper_running"] else "idle"
        return dependencies

    async def start(self):
        """Start gate components."""
        await self.signals.start()
        await self.cache_manager.start(self.config.cache_sweep_interval)

        self.logger.info(
            "Gate service started",
            signal_store=self.config.signal_store_backend,
            indexer_rpc_url=self.config.indexer_rpc_url,
            indexer_api_key=mask_secret(self.config.indexer_api_key)
        )

    async def stop(self):
        """Stop gate components."""
        await self.cache_manager.stop()
        await self.signals.stop()

        self.logger.info("Gate service stopped")


def create_app(config: Optional[GateConfig] = None):
    """Create gate service application."""
    service = GateService(config)
    return service.app


if __name__ == "__main__":
    service = GateService()
    service.run()
