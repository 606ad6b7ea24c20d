"""
Access control state machine.

One ``evaluate`` call walks a single (account, room) pair through

    Unchecked -> CheckingCache -> CheckingLocalSignal -> CheckingOwnership
              -> GeneratingProof -> Verifying -> Granted | Denied

with the first matching rule short-circuiting the rest:

1. a "room access granted" signal grants immediately;
2. a recorded mint signature stands in for live ownership resolution;
3. otherwise ownership is resolved, and ``False`` denies;
4. a commitment is generated (or reused from the commitment cache);
5. the commitment is verified;
6. success persists the room signal and grants, anything else denies.

Concurrent evaluations of the same pair are not deduplicated; every step is
idempotent, so parallel runs converge on the same decision.
"""

from typing import List, Optional, TYPE_CHECKING

from cachetools import LRUCache

from shared.errors import GateException, VerificationMismatch
from shared.logging import get_logger, set_access_context
from ..caching.cache_manager import GateCacheManager
from ..models import AccessDecision, AccessResult, AccessState, Commitment
from ..ownership.resolver import AssetResolutionClient
from ..proofs.commitment_engine import CommitmentEngine
from ..signals.store import LocalSignalStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class AccessControlStateMachine:
    """Decide room entry for an account."""

    def __init__(
        self,
        resolver: AssetResolutionClient,
        engine: CommitmentEngine,
        signals: LocalSignalStore,
        cache_manager: GateCacheManager,
        *,
        required_credential_name: str,
        default_asset_id: str,
        proof_lifetime_ms: int,
        decision_history_size: int = 10_000,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.resolver = resolver
        self.engine = engine
        self.signals = signals
        self.cache_manager = cache_manager
        self.required_credential_name = required_credential_name
        self.default_asset_id = default_asset_id
        self.proof_lifetime_ms = proof_lifetime_ms
        self.metrics = metrics
        self.logger = get_logger("gate.access")
        # Least recently evaluated pairs fall back to UNCHECKED
        self._decisions = LRUCache(maxsize=decision_history_size)

    def decision_for(self, account_id: str, room_id: str) -> AccessDecision:
        """Last decision for the pair; ``UNCHECKED`` if never evaluated."""
        return self._decisions.get((account_id, room_id), AccessDecision.UNCHECKED)

    async def evaluate(self, account_id: str, room_id: str, asset_id: Optional[str] = None) -> AccessResult:
        """Run the pipeline for one (account, room) pair."""
        set_access_context(account_id=account_id, room_id=room_id)
        asset_id = asset_id or self.default_asset_id
        key = (account_id, room_id)
        previous = self._decisions.get(key)
        self._decisions[key] = AccessDecision.PENDING

        states: List[AccessState] = [AccessState.UNCHECKED]
        try:
            result = await self._run(account_id, room_id, asset_id, states)
        except GateException as e:
            self.logger.warning(
                "Access evaluation failed",
                account_id=account_id,
                room_id=room_id,
                code=e.code,
                error=e.message
            )
            states.append(AccessState.DENIED)
            result = AccessResult(account_id, room_id, AccessDecision.DENIED, states, reason=e.code.lower())
        except Exception:
            if previous is None:
                self._decisions.pop(key, None)
            else:
                self._decisions[key] = previous
            raise

        self._decisions[key] = result.decision
        if self.metrics:
            self.metrics.increment_counter("access_decisions_total", decision=result.decision.value)
        self.logger.info(
            "Access decided",
            account_id=account_id,
            room_id=room_id,
            decision=result.decision.value,
            reason=result.reason
        )
        return result

    async def _run(self, account_id: str, room_id: str, asset_id: str,
                   states: List[AccessState]) -> AccessResult:
        def finish(decision: AccessDecision, reason: str,
                   commitment: Optional[Commitment] = None) -> AccessResult:
            states.append(AccessState.GRANTED if decision == AccessDecision.GRANTED else AccessState.DENIED)
            return AccessResult(account_id, room_id, decision, states, reason=reason, commitment=commitment)

        states.append(AccessState.CHECKING_CACHE)
        commitment = self._cached_commitment(account_id, asset_id)

        states.append(AccessState.CHECKING_LOCAL_SIGNAL)
        if await self.signals.has_room_access(account_id, room_id):
            return finish(AccessDecision.GRANTED, "room_signal")

        mint_signature = await self.signals.get_mint_signature(account_id)
        if mint_signature:
            self.logger.debug("Mint signature recorded, skipping ownership", account_id=account_id)
        else:
            states.append(AccessState.CHECKING_OWNERSHIP)
            owns = await self.resolver.resolve_ownership(account_id, self.required_credential_name)
            if not owns:
                return finish(AccessDecision.DENIED, "not_owner")

        states.append(AccessState.GENERATING_PROOF)
        if commitment is None:
            commitment = await self.engine.generate(account_id, asset_id)
            self.cache_manager.set_commitment(commitment)

        states.append(AccessState.VERIFYING)
        verified = self.cache_manager.get_verification(commitment)
        if verified is None:
            verified = self.engine.verify(commitment)
            self.cache_manager.set_verification(commitment, verified)

        if not verified:
            raise VerificationMismatch(details={"account_id": account_id, "asset_id": commitment.asset_id})

        await self.signals.grant_room_access(account_id, room_id)
        return finish(AccessDecision.GRANTED, "verified", commitment)

    def _cached_commitment(self, account_id: str, asset_id: str) -> Optional[Commitment]:
        """Unexpired cached commitment for the pair, if any."""
        commitment = self.cache_manager.get_commitment(account_id, asset_id)
        if commitment is None:
            return None
        if self.engine.is_expired(commitment, self.proof_lifetime_ms):
            return None
        return commitment
