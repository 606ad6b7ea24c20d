"""
Data models for the credential gate.
"""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from shared.errors import MalformedCommitmentError


class CommitmentPath(str, Enum):
    """Which generation path produced a commitment."""
    INDEXER = "indexer"
    FALLBACK = "fallback"


class AccessDecision(str, Enum):
    """Externally visible access decision."""
    UNCHECKED = "unchecked"
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"


class AccessState(str, Enum):
    """Internal states of an access evaluation."""
    UNCHECKED = "unchecked"
    CHECKING_CACHE = "checking_cache"
    CHECKING_LOCAL_SIGNAL = "checking_local_signal"
    CHECKING_OWNERSHIP = "checking_ownership"
    GENERATING_PROOF = "generating_proof"
    VERIFYING = "verifying"
    GRANTED = "granted"
    DENIED = "denied"


class ProofType(str, Enum):
    """Proof record categories."""
    CHATROOM_ACCESS = "chatroom_access"
    WALLET_OWNERSHIP = "wallet_ownership"
    TOKEN_OWNERSHIP = "token_ownership"


@dataclass(frozen=True)
class CredentialRecord:
    """The NFT-like ledger object whose ownership gates room entry."""
    asset_id: str
    owner_account: Optional[str]
    metadata_name: Optional[str] = None
    metadata_attributes: List[Dict[str, Any]] = field(default_factory=list)
    image: Optional[str] = None
    delegate: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Asset-shaped dict, as the baseline indexer reports it."""
        metadata: Dict[str, Any] = {"name": self.metadata_name}
        if self.metadata_attributes:
            metadata["attributes"] = list(self.metadata_attributes)
        if self.image:
            metadata["image"] = self.image
        return {
            "id": self.asset_id,
            "ownership": {
                "owner": self.owner_account,
                "delegate": self.delegate,
            },
            "content": {"metadata": metadata},
        }

    def serialize(self) -> str:
        return json.dumps(self.to_payload(), sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class Commitment:
    """Ownership commitment exchanged between client and gate.

    ``inputs`` is ``(account_id, asset_id, issued_at_ms, commitment_digest)``.
    ``path`` is informational only and never consulted by verification.
    """
    payload_blob: str
    inputs: Tuple[str, ...]
    path: CommitmentPath = CommitmentPath.FALLBACK

    def _input(self, index: int) -> str:
        if len(self.inputs) != 4:
            raise MalformedCommitmentError(details={"inputs_length": len(self.inputs)})
        return self.inputs[index]

    @property
    def account_id(self) -> str:
        return self._input(0)

    @property
    def asset_id(self) -> str:
        return self._input(1)

    @property
    def issued_at(self) -> int:
        try:
            return int(self._input(2))
        except ValueError:
            raise MalformedCommitmentError(
                "Commitment timestamp is not an integer",
                details={"issued_at": self.inputs[2]}
            )

    @property
    def commitment_digest(self) -> str:
        return self._input(3)

    def expires_at(self, lifetime_ms: int) -> int:
        return self.issued_at + lifetime_ms

    def cache_key(self) -> str:
        """Identity of the whole commitment, payload included."""
        payload_hash = hashlib.sha256(self.payload_blob.encode("utf-8")).hexdigest()[:16]
        return ":".join(list(self.inputs) + [payload_hash])

    def to_dict(self) -> Dict[str, Any]:
        return {"proof": self.payload_blob, "inputs": list(self.inputs), "path": self.path.value}

    @classmethod
    def from_parts(cls, payload_blob: str, inputs: List[Any],
                   path: CommitmentPath = CommitmentPath.FALLBACK) -> "Commitment":
        return cls(payload_blob=payload_blob, inputs=tuple(str(value) for value in inputs), path=path)


@dataclass(frozen=True)
class VerificationOutcome:
    """Verification result with the diagnostic the boolean hides."""
    verified: bool
    path: CommitmentPath
    reason: str


@dataclass
class ProofRecord:
    """A commitment issued to a wallet, with its validity window."""
    proof_id: str
    wallet_address: str
    proof_type: ProofType
    issued_at: int
    expires_at: int
    commitment: Commitment

    @property
    def public_hash(self) -> str:
        return self.commitment.commitment_digest

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at < now_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proof_id": self.proof_id,
            "wallet_address": self.wallet_address,
            "type": self.proof_type.value,
            "timestamp": self.issued_at,
            "expires_at": self.expires_at,
            "proof_blob": self.commitment.payload_blob,
            "public_hash": self.public_hash,
        }


@dataclass
class AccessResult:
    """Outcome of one state machine run."""
    account_id: str
    room_id: str
    decision: AccessDecision
    states: List[AccessState] = field(default_factory=list)
    reason: Optional[str] = None
    commitment: Optional[Commitment] = None


# HTTP models

class ProofGenerateRequest(BaseModel):
    """Request model for commitment generation."""
    wallet_address: str = Field(..., min_length=1, description="Account identifier")
    asset_id: Optional[str] = Field(None, description="Credential asset id")
    proof_type: ProofType = Field(ProofType.CHATROOM_ACCESS, description="Proof category")


class ProofVerifyRequest(BaseModel):
    """Request model for commitment verification."""
    proof: str = Field(..., description="Commitment payload blob")
    inputs: List[Union[str, int]] = Field(..., description="account, asset, timestamp, digest")
    wallet_address: Optional[str] = Field(None, description="Account identifier")
    asset_id: Optional[str] = Field(None, description="Credential asset id")


class OwnerAssetsRequest(BaseModel):
    """Request model for asset listing."""
    wallet_address: str = Field(..., min_length=1, description="Account identifier")


class TransactionDetailsRequest(BaseModel):
    """Request model for transaction details."""
    signature: str = Field(..., min_length=1, description="Transaction signature")


class AccessCheckRequest(BaseModel):
    """Request model for an access evaluation."""
    wallet_address: str = Field(..., min_length=1, description="Account identifier")
    room_id: str = Field(..., min_length=1, description="Room identifier")
    asset_id: Optional[str] = Field(None, description="Credential asset id")


class AccessCheckResponse(BaseModel):
    """Response model for an access evaluation."""
    wallet_address: str
    room_id: str
    decision: AccessDecision
    states: List[AccessState] = Field(default_factory=list)


class MintSignalRequest(BaseModel):
    """Request model for recording a mint signature."""
    wallet_address: str = Field(..., min_length=1, description="Account identifier")
    signature: str = Field(..., min_length=1, description="Mint transaction signature")
