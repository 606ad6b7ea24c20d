"""
Response types for the two indexer tiers.

Upstream payloads are validated here, at the boundary; anything that does not
fit is reported as a single UpstreamFormatError by the client.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import CredentialRecord

MINT_TRANSACTION_TYPES = ("NFT_MINT", "COMPRESSED_NFT_MINT")
PLACEHOLDER_IMAGE = "https://placehold.co/300"


class _UpstreamModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


# Enhanced tier

class TokenTransfer(_UpstreamModel):
    mint: Optional[str] = None


class NftEvent(_UpstreamModel):
    image: Optional[str] = None


class TransactionEvents(_UpstreamModel):
    nft: Optional[NftEvent] = None


class EnhancedTransaction(_UpstreamModel):
    type: str
    signature: Optional[str] = None
    description: Optional[str] = None
    token_transfers: List[TokenTransfer] = Field(default_factory=list, alias="tokenTransfers")
    events: Optional[TransactionEvents] = None

    @property
    def is_mint(self) -> bool:
        return self.type in MINT_TRANSACTION_TYPES

    def to_credential(self, owner_account: str) -> Optional[CredentialRecord]:
        """Synthesize a credential from a mint event; None when it names no asset."""
        asset_id = None
        if self.token_transfers:
            asset_id = self.token_transfers[0].mint
        asset_id = asset_id or self.signature
        if not asset_id:
            return None

        image = None
        if self.events and self.events.nft:
            image = self.events.nft.image
        return CredentialRecord(
            asset_id=asset_id,
            owner_account=owner_account,
            metadata_name=self.description or "NFT",
            image=image or PLACEHOLDER_IMAGE,
        )


class EnhancedTxResponse(_UpstreamModel):
    """``GET /addresses/{account}/transactions?type=NFT``"""
    transactions: List[EnhancedTransaction] = Field(default_factory=list)

    def mint_events(self) -> List[EnhancedTransaction]:
        return [tx for tx in self.transactions if tx.is_mint]


# Baseline tier

class AssetMetadata(_UpstreamModel):
    name: Optional[str] = None
    image: Optional[str] = None
    attributes: List[Dict[str, Any]] = Field(default_factory=list)


class AssetContent(_UpstreamModel):
    metadata: Optional[AssetMetadata] = None


class AssetOwnership(_UpstreamModel):
    owner: Optional[str] = None
    delegate: Optional[str] = None


class BaselineAsset(_UpstreamModel):
    id: str
    content: Optional[AssetContent] = None
    ownership: Optional[AssetOwnership] = None

    @property
    def metadata_name(self) -> Optional[str]:
        if self.content and self.content.metadata:
            return self.content.metadata.name
        return None

    def to_credential(self, default_owner: Optional[str] = None) -> CredentialRecord:
        metadata = self.content.metadata if self.content and self.content.metadata else AssetMetadata()
        owner = self.ownership.owner if self.ownership and self.ownership.owner else default_owner
        return CredentialRecord(
            asset_id=self.id,
            owner_account=owner,
            metadata_name=metadata.name,
            metadata_attributes=list(metadata.attributes),
            image=metadata.image,
            delegate=self.ownership.delegate if self.ownership else None,
        )


class AssetPage(_UpstreamModel):
    items: List[BaselineAsset] = Field(default_factory=list)
    total: Optional[int] = None
    page: Optional[int] = None
    limit: Optional[int] = None


class BaselineAssetResponse(_UpstreamModel):
    """JSON-RPC ``getAssetsByOwner`` envelope."""
    result: AssetPage


class BaselineAssetRecordResponse(_UpstreamModel):
    """JSON-RPC ``getAsset`` envelope."""
    result: BaselineAsset
