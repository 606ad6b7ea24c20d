"""
Ownership commitment engine.

A commitment binds ``(account_id, asset_id, issued_at)`` to a digest. It is a
disclosed assertion, not a zero-knowledge proof: the account and asset travel
in the clear inside ``inputs``.

Two generation paths exist:

- indexer: the asset record is fetched and serialized into ``payload_blob``;
  the digest is the first 16 characters of the asset id.
- fallback: ``sha256("{account}:{asset}:{issued_at}")`` in hex, with a second
  ``sha256("verify:" + hex1)`` appended to the payload; the digest is the first
  16 hex characters of the first hash.

Verification never touches the network. Structured payloads are checked
against ``inputs`` field by field; anything else is checked by recomputing the
fallback digest from ``inputs`` alone.
"""

import hashlib
import json
import time
from typing import Callable, Optional, TYPE_CHECKING

from shared.errors import GateException, MalformedCommitmentError
from shared.jitter import JitteredDispatcher
from shared.logging import get_logger
from ..indexer.client import IndexerClient
from ..models import Commitment, CommitmentPath, CredentialRecord, VerificationOutcome

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

DIGEST_LENGTH = 16
SECONDARY_DIGEST_LENGTH = 32


def current_millis() -> int:
    return int(time.time() * 1000)


def fallback_digest(account_id: str, asset_id: str, issued_at: str) -> str:
    """Full hex SHA-256 of ``account:asset:issued_at``."""
    return hashlib.sha256(f"{account_id}:{asset_id}:{issued_at}".encode("utf-8")).hexdigest()


def secondary_digest(primary_hex: str) -> str:
    return hashlib.sha256(f"verify:{primary_hex}".encode("utf-8")).hexdigest()


class CommitmentEngine:
    """Generate and verify ownership commitments."""

    def __init__(
        self,
        indexer: Optional[IndexerClient] = None,
        *,
        dispatcher: Optional[JitteredDispatcher] = None,
        clock: Callable[[], int] = current_millis,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.indexer = indexer
        self.dispatcher = dispatcher
        self.clock = clock
        self.metrics = metrics
        self.logger = get_logger("gate.commitment_engine")

    async def generate(self, account_id: str, asset_id: str) -> Commitment:
        """Produce a commitment. Never fails; degrades to the fallback path."""
        issued_at = str(self.clock())

        record = await self._fetch_record(account_id, asset_id)
        if record is not None:
            commitment = Commitment(
                payload_blob=record.serialize(),
                inputs=(account_id, asset_id, issued_at, record.asset_id[:DIGEST_LENGTH]),
                path=CommitmentPath.INDEXER,
            )
        else:
            primary = fallback_digest(account_id, asset_id, issued_at)
            commitment = Commitment(
                payload_blob=primary + secondary_digest(primary)[:SECONDARY_DIGEST_LENGTH],
                inputs=(account_id, asset_id, issued_at, primary[:DIGEST_LENGTH]),
                path=CommitmentPath.FALLBACK,
            )

        if self.metrics:
            self.metrics.increment_counter("commitments_generated_total", path=commitment.path.value)
        self.logger.info(
            "Commitment generated",
            account_id=account_id,
            asset_id=asset_id,
            path=commitment.path.value,
            issued_at=issued_at
        )
        return commitment

    async def _fetch_record(self, account_id: str, asset_id: str) -> Optional[CredentialRecord]:
        """Asset record for the indexer path, or None to fall back."""
        if self.indexer is None:
            return None

        try:
            if self.dispatcher is not None:
                asset = await self.dispatcher.dispatch(self.indexer.get_asset, asset_id)
            else:
                asset = await self.indexer.get_asset(asset_id)
        except GateException as e:
            self.logger.warning(
                "Asset lookup failed, using local digest",
                account_id=account_id,
                asset_id=asset_id,
                code=e.code,
                error=e.message
            )
            return None

        record = asset.to_credential(default_owner=account_id)
        if record.asset_id != asset_id:
            self.logger.warning(
                "Indexer returned a different asset, using local digest",
                asset_id=asset_id,
                returned_id=record.asset_id
            )
            return None
        if record.owner_account != account_id:
            # The ledger says someone else holds it; do not assert otherwise
            self.logger.warning(
                "Asset owner differs from account, using local digest",
                account_id=account_id,
                asset_id=asset_id,
                owner=record.owner_account
            )
            return None
        return record

    def verify(self, commitment: Commitment) -> bool:
        """Whether the commitment's fields reconcile."""
        return self.verify_detailed(commitment).verified

    def verify_detailed(self, commitment: Commitment) -> VerificationOutcome:
        """Verify and report which check decided it.

        Raises MalformedCommitmentError when ``inputs`` is not a full 4-tuple.
        """
        self._require_inputs(commitment)
        account_id, asset_id, issued_at, digest = commitment.inputs

        record = self._parse_payload(commitment.payload_blob)
        if record is not None:
            owner = record["ownership"]["owner"]
            if record["id"] != asset_id:
                outcome = VerificationOutcome(False, CommitmentPath.INDEXER, "asset_mismatch")
            elif owner != account_id:
                outcome = VerificationOutcome(False, CommitmentPath.INDEXER, "owner_mismatch")
            else:
                outcome = VerificationOutcome(True, CommitmentPath.INDEXER, "record_match")
        else:
            expected = fallback_digest(account_id, asset_id, issued_at)[:DIGEST_LENGTH]
            if expected == digest:
                outcome = VerificationOutcome(True, CommitmentPath.FALLBACK, "digest_match")
            else:
                outcome = VerificationOutcome(False, CommitmentPath.FALLBACK, "digest_mismatch")

        if self.metrics:
            self.metrics.increment_counter(
                "verifications_total",
                path=outcome.path.value,
                result="verified" if outcome.verified else "rejected",
            )
        log = self.logger.info if outcome.verified else self.logger.warning
        log(
            "Commitment verified" if outcome.verified else "Commitment rejected",
            account_id=account_id,
            asset_id=asset_id,
            path=outcome.path.value,
            reason=outcome.reason
        )
        return outcome

    def is_expired(self, commitment: Commitment, lifetime_ms: int, now_ms: Optional[int] = None) -> bool:
        """Whether the commitment's validity window has passed."""
        now = self.clock() if now_ms is None else now_ms
        return commitment.expires_at(lifetime_ms) < now

    @staticmethod
    def _require_inputs(commitment: Commitment) -> None:
        inputs = commitment.inputs
        if len(inputs) != 4 or any(value is None or str(value) == "" for value in inputs):
            raise MalformedCommitmentError(details={"inputs": list(inputs)})

    @staticmethod
    def _parse_payload(payload_blob: str) -> Optional[dict]:
        """Structured record with ``id`` and ``ownership.owner``, else None."""
        try:
            parsed = json.loads(payload_blob)
        except (TypeError, ValueError, RecursionError):
            return None

        if not isinstance(parsed, dict) or "id" not in parsed:
            return None
        ownership = parsed.get("ownership")
        if not isinstance(ownership, dict) or "owner" not in ownership:
            return None
        return parsed
