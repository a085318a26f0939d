from datetime import datetime, timezone
from decimal import Decimal

import pytest

from swapdesk.core.errors import (
    BroadcastFailed,
    ConfirmationTimeout,
    FundsMoved,
    InvalidIntent,
    NoRoute,
    PersistenceFailed,
    StaleQuote,
    SwapBuildError,
    UpstreamUnavailable,
    UserRejected,
    is_user_rejection,
)
from swapdesk.core.models import (
    NATIVE_SOL_MINT,
    USDC_MINT,
    ExecutionOutcome,
    Network,
    QuoteResult,
    TradeDirection,
    TradeIntent,
    TradeRecord,
    explorer_url,
)

from fakes import BONK_MINT, WALLET, make_quote


class TestTradeIntent:

    def test_same_token_both_sides_rejected(self):
        with pytest.raises(InvalidIntent):
            TradeIntent(input_token=NATIVE_SOL_MINT, output_token=NATIVE_SOL_MINT)

    def test_slippage_bounds(self):
        TradeIntent(slippage_bps=0)
        TradeIntent(slippage_bps=10_000)
        with pytest.raises(InvalidIntent):
            TradeIntent(slippage_bps=10_001)

    def test_non_numeric_slippage_rejected(self):
        with pytest.raises(InvalidIntent):
            TradeIntent(slippage_bps="lots")
        with pytest.raises(InvalidIntent):
            TradeIntent(slippage_bps=None)

    def test_is_complete(self):
        intent = TradeIntent(input_token=NATIVE_SOL_MINT, output_token=USDC_MINT)
        assert not intent.is_complete()
        intent.input_amount_text = "abc"
        assert not intent.is_complete()
        intent.input_amount_text = "0"
        assert not intent.is_complete()
        intent.input_amount_text = "0.5"
        assert intent.is_complete()

    def test_snapshot_is_immutable_copy(self):
        intent = TradeIntent(input_token=NATIVE_SOL_MINT, output_token=USDC_MINT, input_amount_text="1")
        snapshot = intent.snapshot()
        intent.input_amount_text = "2"
        assert snapshot.input_amount_text == "1"
        with pytest.raises(AttributeError):
            snapshot.input_amount_text = "3"


class TestQuoteResult:

    def test_from_api(self):
        data = {
            "inputMint": NATIVE_SOL_MINT,
            "outputMint": USDC_MINT,
            "inAmount": "1000000000",
            "outAmount": "150250000",
            "otherAmountThreshold": "148747500",
            "priceImpactPct": "0.0012",
            "routePlan": [
                {"swapInfo": {"label": "Orca", "ammKey": "amm1", "inputMint": NATIVE_SOL_MINT}, "percent": 100},
            ],
        }
        quote = QuoteResult.from_api(data, slippage_bps=50, source="https://quote-api.jup.ag/v6", fetched_at=10.0)

        assert quote.in_amount == "1000000000"
        assert quote.out_amount == "150250000"
        assert quote.slippage_bps == 50
        assert quote.other_amount_threshold == "148747500"
        assert quote.route_plan[0].label == "Orca"
        assert quote.route_plan[0].amm_key == "amm1"
        assert quote.fetched_at == 10.0
        assert quote.raw == data
        assert quote.executable

    def test_staleness(self):
        quote = make_quote(fetched_at=100.0)
        assert not quote.is_stale(60, now=159.0)
        assert quote.is_stale(60, now=160.0)
        assert quote.age(now=130.0) == 30.0

    def test_approximate_quote_not_executable(self):
        assert not make_quote(approximate=True).executable
        assert not make_quote(raw=None).executable


class TestTradeRecord:

    def test_direction_follows_input_token(self):
        assert TradeRecord.direction_for(NATIVE_SOL_MINT) == TradeDirection.BUY
        assert TradeRecord.direction_for(BONK_MINT) == TradeDirection.SELL

    def test_row_round_trip(self):
        record = TradeRecord(
            wallet_address=WALLET,
            direction=TradeDirection.BUY,
            input_token=NATIVE_SOL_MINT,
            output_token=USDC_MINT,
            input_amount=Decimal("1.5"),
            output_amount_estimate=Decimal("225.375"),
            transaction_signature="5sig",
            created_at=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        )
        row = record.to_row()
        assert row["input_mint"] == NATIVE_SOL_MINT
        assert row["output_amount_est"] == 225.375
        assert row["tx_sig"] == "5sig"

        restored = TradeRecord.from_row({**row, "created_at": "2026-01-02T03:04:05Z"})
        assert restored == record


class TestErrors:

    def test_funds_moved_classification(self):
        assert NoRoute().funds_moved == FundsMoved.NO
        assert StaleQuote().funds_moved == FundsMoved.NO
        assert BroadcastFailed().funds_moved == FundsMoved.UNKNOWN
        assert ConfirmationTimeout().funds_moved == FundsMoved.UNKNOWN
        assert PersistenceFailed().funds_moved == FundsMoved.YES

    def test_transient_flags(self):
        assert UpstreamUnavailable().transient
        assert not NoRoute().transient
        assert SwapBuildError("down", transient=True).transient

    def test_to_dict(self):
        data = NoRoute(details={"attempts": []}).to_dict()
        assert data["kind"] == "no_route"
        assert data["funds_moved"] == "no"
        assert data["message"] == NoRoute.user_message

    def test_is_user_rejection(self):
        assert is_user_rejection(UserRejected())
        assert is_user_rejection(RuntimeError("User rejected the request."))
        assert not is_user_rejection(RuntimeError("Ledger disconnected"))


def test_execution_outcome_funds_moved():
    assert ExecutionOutcome(state="succeeded", signature="5sig").funds_moved == FundsMoved.YES
    failed = ExecutionOutcome(state="failed", signature="5sig", failure=ConfirmationTimeout())
    assert not failed.succeeded
    assert failed.funds_moved == FundsMoved.UNKNOWN
    assert ExecutionOutcome(state="failed", failure=StaleQuote()).funds_moved == FundsMoved.NO


def test_explorer_url():
    assert explorer_url("abc") == "https://solscan.io/tx/abc"
    assert explorer_url("abc", Network.DEVNET) == "https://solscan.io/tx/abc?cluster=devnet"
