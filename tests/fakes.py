"""Fake collaborators for the quote and execution pipeline."""

import asyncio
from typing import Any, Dict, List, Optional

from swapdesk.core.interfaces import (
    ChainRpc,
    ConfirmationStatus,
    TokenMetadataSource,
    TradeStore,
    WalletSigner,
)
from swapdesk.core.models import NATIVE_SOL_MINT, USDC_MINT, QuoteResult, SwapTransaction, TradeRecord

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
BONK_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


def make_quote(**overrides: Any) -> QuoteResult:
    raw = {
        "inputMint": NATIVE_SOL_MINT,
        "outputMint": USDC_MINT,
        "inAmount": "1000000000",
        "outAmount": "150250000",
        "otherAmountThreshold": "148747500",
        "slippageBps": 100,
        "priceImpactPct": "0.12",
        "routePlan": [{"swapInfo": {"label": "Orca"}, "percent": 100}],
    }
    values: Dict[str, Any] = dict(
        input_token=NATIVE_SOL_MINT,
        output_token=USDC_MINT,
        in_amount="1000000000",
        out_amount="150250000",
        slippage_bps=100,
        price_impact_raw="0.12",
        raw=raw,
    )
    values.update(overrides)
    return QuoteResult(**values)


class FakeMetadata(TokenMetadataSource):
    def __init__(self, decimals: Optional[Dict[str, int]] = None):
        self.decimals = {NATIVE_SOL_MINT: 9, USDC_MINT: 6, **(decimals or {})}

    async def resolve_decimals(self, token: str) -> int:
        return self.decimals.get(token, 9)


class FakeAggregator:
    """Records calls; quotes come from `quote_for` or `quote_error`."""

    def __init__(self) -> None:
        self.quote_calls: List[tuple] = []
        self.build_calls: List[tuple] = []
        self.quote_error: Optional[Exception] = None
        self.build_error: Optional[Exception] = None
        self.quote_delay = 0.0
        self.delays: Dict[str, float] = {}

    async def fetch_quote(self, input_token, output_token, in_amount, slippage_bps=100):
        self.quote_calls.append((input_token, output_token, in_amount, slippage_bps))
        delay = self.delays.get(output_token, self.quote_delay)
        if delay:
            await asyncio.sleep(delay)
        if self.quote_error is not None:
            raise self.quote_error
        return make_quote(
            input_token=input_token,
            output_token=output_token,
            in_amount=str(in_amount),
            out_amount=str(in_amount // 2),
            slippage_bps=slippage_bps,
        )

    async def build_swap_transaction(self, quote, wallet_address):
        self.build_calls.append((quote, wallet_address))
        if self.build_error is not None:
            raise self.build_error
        return SwapTransaction(payload="dW5zaWduZWQ=", last_valid_block_height=123)


class FakeWallet(WalletSigner):
    def __init__(self, address: Optional[str] = WALLET, error: Optional[Exception] = None):
        self.address = address
        self.error = error
        self.signed: List[str] = []

    def is_connected(self) -> bool:
        return self.address is not None

    def public_address(self) -> Optional[str]:
        return self.address

    async def sign(self, transaction_payload: str) -> str:
        if self.error is not None:
            raise self.error
        self.signed.append(transaction_payload)
        return "c2lnbmVk"


class FakeRpc(ChainRpc):
    def __init__(self) -> None:
        self.events: List[str] = []
        self.broadcast_error: Optional[Exception] = None
        self.status = ConfirmationStatus.CONFIRMED
        self.broadcasts: List[dict] = []

    async def broadcast(self, signed_payload, *, skip_preflight=True, max_retries=None) -> str:
        self.events.append("broadcast")
        self.broadcasts.append({
            "payload": signed_payload,
            "skip_preflight": skip_preflight,
            "max_retries": max_retries,
        })
        if self.broadcast_error is not None:
            raise self.broadcast_error
        return "5sig"

    async def await_confirmation(self, signature, level="confirmed", timeout_s=60.0):
        self.events.append("confirm")
        return self.status


class FakeStore(TradeStore):
    def __init__(self, events: Optional[List[str]] = None, failures: int = 0) -> None:
        self.records: List[TradeRecord] = []
        self.events = events if events is not None else []
        self.failures = failures
        self.attempts = 0

    async def create_trade_record(self, record: TradeRecord) -> None:
        self.attempts += 1
        self.events.append("persist")
        if self.attempts <= self.failures:
            raise RuntimeError("insert failed")
        self.records.append(record)

    async def list_trade_records(self, wallet_address: str, limit: int = 20) -> List[TradeRecord]:
        return [r for r in self.records if r.wallet_address == wallet_address][:limit]
