"""
In-memory registry of commitments issued to wallets.
"""

import uuid
from typing import Dict, List, Optional

from shared.errors import GateException
from shared.logging import get_logger
from .commitment_engine import CommitmentEngine
from ..models import Commitment, ProofRecord, ProofType


class ProofStore:
    """Issued proof records, keyed by proof id and indexed by commitment."""

    def __init__(self, engine: CommitmentEngine, proof_lifetime_ms: int):
        self.engine = engine
        self.proof_lifetime_ms = proof_lifetime_ms
        self._records: Dict[str, ProofRecord] = {}
        self._by_commitment: Dict[str, str] = {}
        self.logger = get_logger("gate.proof_store")

    def add(self, wallet_address: str, commitment: Commitment,
            proof_type: ProofType = ProofType.CHATROOM_ACCESS) -> ProofRecord:
        """Register a commitment and return its record."""
        record = ProofRecord(
            proof_id=f"proof_{uuid.uuid4().hex}",
            wallet_address=wallet_address,
            proof_type=proof_type,
            issued_at=commitment.issued_at,
            expires_at=commitment.expires_at(self.proof_lifetime_ms),
            commitment=commitment,
        )
        self._records[record.proof_id] = record
        self._by_commitment[commitment.cache_key()] = record.proof_id
        self.logger.debug(
            "Proof registered",
            proof_id=record.proof_id,
            wallet_address=wallet_address,
            proof_type=proof_type.value
        )
        return record

    def get(self, proof_id: str) -> Optional[ProofRecord]:
        return self._records.get(proof_id)

    def find(self, commitment: Commitment) -> Optional[ProofRecord]:
        """Record holding exactly this commitment, if registered."""
        proof_id = self._by_commitment.get(commitment.cache_key())
        record = self._records.get(proof_id) if proof_id else None
        if record is None or record.commitment != commitment:
            return None
        return record

    def for_wallet(self, wallet_address: str) -> List[ProofRecord]:
        """Records for a wallet, oldest first."""
        records = [r for r in self._records.values() if r.wallet_address == wallet_address]
        return sorted(records, key=lambda r: r.issued_at)

    def clear_expired(self, now_ms: Optional[int] = None) -> int:
        """Drop expired records. Defaults to the engine clock."""
        if now_ms is None:
            now_ms = self.engine.clock()
        expired = [pid for pid, record in self._records.items() if record.is_expired(now_ms)]
        for proof_id in expired:
            record = self._records.pop(proof_id)
            key = record.commitment.cache_key()
            if self._by_commitment.get(key) == proof_id:
                del self._by_commitment[key]
        if expired:
            self.logger.info("Cleared expired proofs", count=len(expired))
        return len(expired)

    def verify(self, proof_id: str, now_ms: int) -> bool:
        """Re-verify a stored proof; unknown or expired proofs are invalid."""
        record = self._records.get(proof_id)
        if record is None or record.is_expired(now_ms):
            return False

        try:
            return self.engine.verify(record.commitment)
        except GateException as e:
            self.logger.warning("Stored proof is malformed", proof_id=proof_id, error=e.message)
            return False

    def __len__(self) -> int:
        return len(self._records)
