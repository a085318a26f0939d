"""
Tests for the HTTP proxy routes

Upstream clients are swapped out through FastAPI dependency overrides.
"""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from swapdesk.api import solana_rpc as solana_rpc_api
from swapdesk.api.health import get_mainnet_rpc
from swapdesk.core.models import NATIVE_SOL_MINT, USDC_MINT, TradeDirection, TradeRecord
from swapdesk.db.supabase_client import InMemoryTradeStore, get_trade_store
from swapdesk.main import app
from swapdesk.providers.jupiter import AggregatorConfig, JupiterAggregatorClient, get_aggregator_client
from swapdesk.providers.solana import SolanaRpcClient
from swapdesk.services.token_metadata import InMemoryStorage, TokenMetadataCache, get_token_cache

from fakes import BONK_MINT, WALLET, FakeMetadata

QUOTE_BODY = {
    "inputMint": NATIVE_SOL_MINT,
    "outputMint": USDC_MINT,
    "inAmount": "1000000000",
    "outAmount": "150250000",
    "slippageBps": 100,
    "priceImpactPct": "1.7",
    "routePlan": [
        {"swapInfo": {"label": "Orca"}},
        {"swapInfo": {"label": "Orca"}},
        {"swapInfo": {"label": "Raydium"}},
    ],
}

client = TestClient(app)


def aggregator_for(handler, price_endpoint=None) -> JupiterAggregatorClient:
    config = AggregatorConfig(endpoints=["https://jup.example/v6"], price_endpoint=price_endpoint)
    return JupiterAggregatorClient(
        config,
        metadata=FakeMetadata(),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


def use_aggregator(handler, price_endpoint=None) -> None:
    aggregator = aggregator_for(handler, price_endpoint)
    app.dependency_overrides[get_aggregator_client] = lambda: aggregator


class TestQuoteRoute:

    def test_quote_annotated(self):
        use_aggregator(lambda request: httpx.Response(200, json=QUOTE_BODY))

        resp = client.get("/jupiter/quote", params={
            "inputMint": NATIVE_SOL_MINT,
            "outputMint": USDC_MINT,
            "amount": "1000000000",
        })

        assert resp.status_code == 200, resp.json()
        data = resp.json()
        assert data["outAmount"] == "150250000"
        assert data["priceImpact"] == {"value": 1.7, "severity": "medium"}
        assert data["routeLabel"] == "Orca → Raydium"
        assert data["approximate"] is False

    def test_missing_params(self):
        use_aggregator(lambda request: httpx.Response(200, json=QUOTE_BODY))
        resp = client.get("/jupiter/quote", params={"inputMint": NATIVE_SOL_MINT})
        assert resp.status_code == 400

    def test_bad_amount(self):
        use_aggregator(lambda request: httpx.Response(200, json=QUOTE_BODY))
        resp = client.get("/jupiter/quote", params={
            "inputMint": NATIVE_SOL_MINT,
            "outputMint": USDC_MINT,
            "amount": "1.5",
        })
        assert resp.status_code == 400

    def test_no_route_is_404(self):
        use_aggregator(lambda request: httpx.Response(400, json={"errorCode": "COULD_NOT_FIND_ANY_ROUTE"}))
        resp = client.get("/jupiter/quote", params={
            "inputMint": NATIVE_SOL_MINT,
            "outputMint": BONK_MINT,
            "amount": "1000",
        })
        assert resp.status_code == 404
        assert resp.json()["detail"]["kind"] == "no_route"

    def test_upstream_down_is_503(self):
        use_aggregator(lambda request: httpx.Response(502, json={"error": "bad gateway"}))
        resp = client.get("/jupiter/quote", params={
            "inputMint": NATIVE_SOL_MINT,
            "outputMint": USDC_MINT,
            "amount": "1000",
        })
        assert resp.status_code == 503
        assert resp.json()["detail"]["transient"] is True

    def test_approximate_quote_flagged(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "prices.example":
                return httpx.Response(200, json={"data": {
                    NATIVE_SOL_MINT: {"price": "100"},
                    USDC_MINT: {"price": "1"},
                }})
            return httpx.Response(500, json={"error": "down"})

        use_aggregator(handler, price_endpoint="https://prices.example/v2")
        resp = client.get("/jupiter/quote", params={
            "inputMint": NATIVE_SOL_MINT,
            "outputMint": USDC_MINT,
            "amount": "1000000000",
        })

        assert resp.status_code == 200
        data = resp.json()
        assert data["approximate"] is True
        assert data["outAmount"] == "100000000"
        assert data["routeLabel"] == "Direct"


class TestSwapRoute:

    def test_swap_forwarded(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"swapTransaction": "AQAB", "lastValidBlockHeight": 42})

        use_aggregator(handler)
        resp = client.post("/jupiter/swap", json={"quoteResponse": QUOTE_BODY, "userPublicKey": WALLET})

        assert resp.status_code == 200
        assert resp.json()["swapTransaction"] == "AQAB"
        assert resp.json()["lastValidBlockHeight"] == 42
        assert bodies[0]["userPublicKey"] == WALLET
        assert bodies[0]["prioritizationFeeLamports"] == "auto"

    def test_missing_payload_is_502(self):
        use_aggregator(lambda request: httpx.Response(200, json={}))
        resp = client.post("/jupiter/swap", json={"quoteResponse": QUOTE_BODY, "userPublicKey": WALLET})
        assert resp.status_code == 502
        assert resp.json()["detail"]["kind"] == "swap_build_failed"


class TestSolanaRoute:

    def test_forwards_to_selected_network(self, monkeypatch):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["host"] = request.url.host
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": 12345})

        def fake_rpc_client(network):
            seen["network"] = network.value
            return SolanaRpcClient(
                "https://devnet-rpc.example",
                client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            )

        monkeypatch.setattr(solana_rpc_api, "get_rpc_client", fake_rpc_client)
        resp = client.post("/solana/rpc?network=devnet", json={"jsonrpc": "2.0", "id": 1, "method": "getSlot"})

        assert resp.status_code == 200
        assert resp.json()["result"] == 12345
        assert seen == {"network": "devnet", "host": "devnet-rpc.example"}

    def test_method_required(self):
        resp = client.post("/solana/rpc", json={"jsonrpc": "2.0", "id": 1})
        assert resp.status_code == 400


class TestTokenAndTradeRoutes:

    def test_token_metadata(self):
        class Provider:
            async def fetch_token(self, mint):
                return None

        cache = TokenMetadataCache(InMemoryStorage(), Provider())
        app.dependency_overrides[get_token_cache] = lambda: cache

        known = client.get(f"/tokens/{USDC_MINT}").json()
        unknown = client.get(f"/tokens/{BONK_MINT}").json()

        assert known["decimals"] == 6
        assert known["symbol"] == "USDC"
        assert unknown["decimals"] == 9
        assert unknown["decimals_confirmed"] is False

    def test_trade_history(self):
        store = InMemoryTradeStore()
        asyncio.run(store.create_trade_record(TradeRecord(
            wallet_address=WALLET,
            direction=TradeDirection.BUY,
            input_token=NATIVE_SOL_MINT,
            output_token=USDC_MINT,
            input_amount=Decimal("1"),
            output_amount_estimate=Decimal("150.25"),
            transaction_signature="5sig",
        )))
        app.dependency_overrides[get_trade_store] = lambda: store

        resp = client.get(f"/trades/{WALLET}", params={"limit": 5})

        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        assert data["trades"][0]["tx_sig"] == "5sig"


def test_health():
    class Rpc(SolanaRpcClient):
        async def health_check(self):
            return {"status": "healthy"}

    use_aggregator(lambda request: httpx.Response(200, json={}))
    app.dependency_overrides[get_mainnet_rpc] = lambda: Rpc("https://rpc.example")

    resp = client.get("/healthz")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["providers"]["jupiter"]["status"] == "healthy"
    assert data["total_providers"] == 3


def test_request_id_echoed():
    resp = client.get("/", headers={"x-request-id": "abc123"})
    assert resp.status_code == 200
    assert resp.headers["x-request-id"] == "abc123"
    assert client.get("/").headers["x-request-id"]
