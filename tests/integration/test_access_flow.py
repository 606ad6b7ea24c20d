"""
Integration tests for the complete access flow.

The gate runs in-process; only the upstream indexer is faked, at the httpx
layer, so the client, resolver, engine, caches and state machine all run for
real.
"""

import json

import pytest
import httpx
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

from shared.config import GateConfig
from service_gate.app.main import GateService

PASS_NAME = "ZKChat VIP Access Pass"
ASSET_ID = "zkchat-vip-access"


class FakeIndexer:
    """Routes patched httpx calls to canned upstream answers."""

    def __init__(self):
        self.enhanced_transactions = []
        self.enhanced_status = 200
        self.owned_assets = []
        self.asset_owner = None
        self.rpc_down = False
        self.calls = []

    def _response(self, method, url, body, status_code=200):
        return httpx.Response(
            status_code=status_code,
            content=json.dumps(body),
            request=httpx.Request(method, url)
        )

    async def get(self, url, params=None):
        self.calls.append(("GET", url))
        return self._response("GET", url, self.enhanced_transactions, self.enhanced_status)

    async def post(self, url, params=None, json=None):
        method = json["method"]
        self.calls.append(("POST", method))
        if self.rpc_down:
            raise httpx.ConnectError("connection refused")

        if method == "getAssetsByOwner":
            result = {"items": self.owned_assets, "total": len(self.owned_assets)}
        elif method == "getAsset":
            result = {
                "id": json["params"]["id"],
                "content": {"metadata": {"name": PASS_NAME}},
                "ownership": {"owner": self.asset_owner},
            }
        else:
            result = None
        return self._response("POST", url, {"jsonrpc": "2.0", "id": json["id"], "result": result})

    def count(self, kind):
        return sum(1 for call in self.calls if kind in call[1])


class TestAccessFlow:
    """End-to-end access decisions against a faked indexer."""

    @pytest.fixture
    def upstream(self):
        """Fake indexer state."""
        return FakeIndexer()

    @pytest.fixture
    def client(self, upstream):
        """Gate client with httpx patched to the fake indexer."""
        config = GateConfig(
            indexer_api_key="test-key",
            indexer_rpc_url="https://rpc.test",
            indexer_enhanced_url="https://api.test/v0",
            max_jitter_ms=0,
            fallback_jitter_ms=0,
            cache_sweep_interval=0,
        )
        service = GateService(config)
        with patch("httpx.AsyncClient") as mock_client:
            session = mock_client.return_value.__aenter__.return_value
            session.get = AsyncMock(side_effect=upstream.get)
            session.post = AsyncMock(side_effect=upstream.post)
            with TestClient(service.app) as client:
                yield client

    def test_enhanced_owner_gets_indexer_commitment(self, client, upstream):
        """Test an owner found by the enhanced tier receives an indexer-backed grant."""
        upstream.enhanced_transactions = [{
            "type": "COMPRESSED_NFT_MINT",
            "signature": "SIG1",
            "description": PASS_NAME,
            "tokenTransfers": [{"mint": "MINT1"}],
        }]
        upstream.asset_owner = "A1"

        response = client.post("/access/check", json={"wallet_address": "A1", "room_id": "vip"})

        assert response.json()["decision"] == "granted"
        assert upstream.count("getAssetsByOwner") == 0

        generated = client.post("/zkproof/generate", json={"wallet_address": "A1"}).json()
        assert generated["path"] == "indexer"
        assert generated["inputs"][3] == ASSET_ID[:16]
        verified = client.post("/zkproof/verify", json=generated)
        assert verified.status_code == 200

    def test_enhanced_outage_uses_baseline(self, client, upstream):
        """Test a failing enhanced tier falls through to the baseline listing."""
        upstream.enhanced_status = 503
        upstream.owned_assets = [{"id": "ASSET1", "content": {"metadata": {"name": PASS_NAME}}}]

        response = client.post("/access/check", json={"wallet_address": "A1", "room_id": "vip"})

        assert response.json()["decision"] == "granted"
        assert upstream.count("getAssetsByOwner") == 1

    def test_non_owner_denied_and_cached(self, client, upstream):
        """Test a negative answer is cached across rooms."""
        upstream.owned_assets = [{"id": "ASSET1", "content": {"metadata": {"name": "Other"}}}]

        first = client.post("/access/check", json={"wallet_address": "A1", "room_id": "vip"})
        second = client.post("/access/check", json={"wallet_address": "A1", "room_id": "lobby"})

        assert first.json()["decision"] == "denied"
        assert second.json()["decision"] == "denied"
        assert upstream.count("getAssetsByOwner") == 1

    def test_total_outage_denies_then_recovers(self, client, upstream):
        """Test a total outage is not cached as a denial."""
        upstream.enhanced_status = 500
        upstream.rpc_down = True

        denied = client.post("/access/check", json={"wallet_address": "A1", "room_id": "vip"})
        assert denied.json()["decision"] == "denied"

        upstream.rpc_down = False
        upstream.owned_assets = [{"id": "ASSET1", "content": {"metadata": {"name": PASS_NAME}}}]
        granted = client.post("/access/check", json={"wallet_address": "A1", "room_id": "vip"})
        assert granted.json()["decision"] == "granted"

    def test_foreign_asset_owner_uses_local_digest(self, client, upstream):
        """Test a commitment is not bound to an asset record owned by someone else."""
        upstream.asset_owner = "SOMEONE_ELSE"

        generated = client.post("/zkproof/generate", json={"wallet_address": "A1"}).json()

        assert generated["path"] == "fallback"
        assert client.post("/zkproof/verify", json=generated).status_code == 200

    def test_mint_signature_during_outage(self, client, upstream):
        """Test a freshly minted wallet gets in while the indexer is unreachable."""
        upstream.enhanced_status = 500
        upstream.rpc_down = True
        client.post("/signals/mint", json={"wallet_address": "A2", "signature": "MINTSIG"})

        response = client.post("/access/check", json={"wallet_address": "A2", "room_id": "vip"})

        assert response.json()["decision"] == "granted"
        assert upstream.calls == [("POST", "getAsset")]
