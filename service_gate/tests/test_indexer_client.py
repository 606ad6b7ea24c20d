"""
Unit tests for the Indexer Client.
"""

import json

import pytest
import httpx
from unittest.mock import AsyncMock, patch

from shared.errors import NotFoundError, TransportError, UpstreamFormatError
from service_gate.app.indexer.client import IndexerClient

RPC_URL = "https://rpc.example.com"
ENHANCED_URL = "https://api.example.com/v0"


def json_response(method, url, body, status_code=200):
    return httpx.Response(
        status_code=status_code,
        content=json.dumps(body),
        request=httpx.Request(method, url)
    )


class TestIndexerClient:
    """Test cases for IndexerClient."""

    @pytest.fixture
    def client(self, metrics):
        """Create IndexerClient instance."""
        return IndexerClient(RPC_URL, ENHANCED_URL, "test-key", timeout=5.0, metrics=metrics)

    @pytest.mark.asyncio
    async def test_get_nft_transactions(self, client, metrics):
        """Test enhanced transactions are parsed."""
        body = [
            {
                "type": "COMPRESSED_NFT_MINT",
                "signature": "SIG1",
                "description": "ZKChat VIP Access Pass",
                "tokenTransfers": [{"mint": "MINT1"}],
            },
            {"type": "TRANSFER", "signature": "SIG2"},
        ]

        with patch('httpx.AsyncClient') as mock_client:
            get = AsyncMock(return_value=json_response("GET", ENHANCED_URL, body))
            mock_client.return_value.__aenter__.return_value.get = get

            result = await client.get_nft_transactions("A1")

        assert len(result.transactions) == 2
        assert [tx.signature for tx in result.mint_events()] == ["SIG1"]
        assert get.await_args.args[0] == f"{ENHANCED_URL}/addresses/A1/transactions"
        assert get.await_args.kwargs["params"] == {"api-key": "test-key", "type": "NFT"}
        assert metrics.count("indexer_calls_total", tier="enhanced", outcome="ok") == 1

    @pytest.mark.asyncio
    async def test_enhanced_non_list_body(self, client):
        """Test an object body is a format error."""
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=json_response("GET", ENHANCED_URL, {"error": "bad"})
            )

            with pytest.raises(UpstreamFormatError):
                await client.get_nft_transactions("A1")

    @pytest.mark.asyncio
    async def test_enhanced_http_error(self, client, metrics):
        """Test a non-2xx answer is a transport error."""
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                return_value=json_response("GET", ENHANCED_URL, {"error": "rate limited"}, status_code=429)
            )

            with pytest.raises(TransportError) as exc_info:
                await client.get_nft_transactions("A1")

        assert exc_info.value.details["status_code"] == 429
        assert metrics.count("indexer_calls_total", tier="enhanced", outcome="http_error") == 1

    @pytest.mark.asyncio
    async def test_enhanced_network_error(self, client):
        """Test connection failures are transport errors."""
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.get = AsyncMock(
                side_effect=httpx.ConnectTimeout("timed out")
            )

            with pytest.raises(TransportError):
                await client.get_nft_transactions("A1")

    @pytest.mark.asyncio
    async def test_get_assets_by_owner(self, client):
        """Test the baseline asset listing call."""
        body = {
            "jsonrpc": "2.0",
            "id": "gate-assets-by-owner",
            "result": {
                "total": 1,
                "items": [{"id": "ASSET1", "content": {"metadata": {"name": "ZKChat VIP Access Pass"}}}],
            },
        }

        with patch('httpx.AsyncClient') as mock_client:
            post = AsyncMock(return_value=json_response("POST", RPC_URL, body))
            mock_client.return_value.__aenter__.return_value.post = post

            result = await client.get_assets_by_owner("A1")

        assert result.result.items[0].metadata_name == "ZKChat VIP Access Pass"
        payload = post.await_args.kwargs["json"]
        assert payload["method"] == "getAssetsByOwner"
        assert payload["params"]["ownerAddress"] == "A1"
        assert payload["params"]["page"] == 1
        assert "displayOptions" in payload["params"]
        assert post.await_args.kwargs["params"] == {"api-key": "test-key"}

    @pytest.mark.asyncio
    async def test_rpc_error_member(self, client):
        """Test a JSON-RPC error object is a format error."""
        body = {"jsonrpc": "2.0", "id": "x", "error": {"code": -32602, "message": "invalid params"}}

        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=json_response("POST", RPC_URL, body)
            )

            with pytest.raises(UpstreamFormatError):
                await client.get_assets_by_owner("A1")

    @pytest.mark.asyncio
    async def test_malformed_listing(self, client):
        """Test a result without items in the expected shape is a format error."""
        body = {"jsonrpc": "2.0", "id": "x", "result": {"items": [{"content": {}}]}}

        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=json_response("POST", RPC_URL, body)
            )

            with pytest.raises(UpstreamFormatError):
                await client.get_assets_by_owner("A1")

    @pytest.mark.asyncio
    async def test_get_asset(self, client):
        """Test a single asset record."""
        body = {
            "jsonrpc": "2.0",
            "id": "gate-get-asset",
            "result": {"id": "X1", "ownership": {"owner": "A1"}, "content": {"metadata": {"name": "Pass"}}},
        }

        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=json_response("POST", RPC_URL, body)
            )

            asset = await client.get_asset("X1")

        assert asset.id == "X1"
        assert asset.ownership.owner == "A1"

    @pytest.mark.asyncio
    async def test_get_asset_missing(self, client):
        """Test a null result is not found."""
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=json_response("POST", RPC_URL, {"jsonrpc": "2.0", "id": "x", "result": None})
            )

            with pytest.raises(NotFoundError):
                await client.get_asset("X1")

    @pytest.mark.asyncio
    async def test_get_transactions(self, client):
        """Test enhanced transaction details."""
        with patch('httpx.AsyncClient') as mock_client:
            get = AsyncMock(return_value=json_response("GET", ENHANCED_URL, [{"signature": "SIG1", "slot": 5}]))
            mock_client.return_value.__aenter__.return_value.get = get

            result = await client.get_transactions(["SIG1"])

        assert result == [{"signature": "SIG1", "slot": 5}]
        assert get.await_args.args[0] == f"{ENHANCED_URL}/transactions"

    @pytest.mark.asyncio
    async def test_get_transaction(self, client):
        """Test the baseline transaction lookup."""
        body = {"jsonrpc": "2.0", "id": "x", "result": {"slot": 5, "meta": {"err": None}}}

        with patch('httpx.AsyncClient') as mock_client:
            post = AsyncMock(return_value=json_response("POST", RPC_URL, body))
            mock_client.return_value.__aenter__.return_value.post = post

            result = await client.get_transaction("SIG1")

        assert result["slot"] == 5
        assert post.await_args.kwargs["json"]["params"][0] == "SIG1"

    @pytest.mark.asyncio
    async def test_non_json_body(self, client):
        """Test a non-JSON body is a format error."""
        with patch('httpx.AsyncClient') as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(
                return_value=httpx.Response(
                    status_code=200,
                    content=b"<html>gateway</html>",
                    request=httpx.Request("POST", RPC_URL)
                )
            )

            with pytest.raises(UpstreamFormatError):
                await client.get_transaction("SIG1")
