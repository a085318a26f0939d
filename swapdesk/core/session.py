"""
Trading session.

Owns the user's trade intent and active network, forwards every intent
change to the quote controller, and hands the current quote snapshot to the
execution controller when the user swaps.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Union

import structlog

from ..config import settings
from .errors import InvalidIntent
from .execution_controller import ExecutionController
from .interfaces import ChainRpc, TradeStore, WalletSigner
from .models import NATIVE_SOL_MINT, ExecutionOutcome, Network, TradeDirection, TradeIntent
from .quote_controller import QuoteController

if TYPE_CHECKING:
    from ..services.token_metadata import TokenMetadataCache

logger = structlog.stdlib.get_logger(__name__)


class TradingSession:
    """
    One user's terminal session.

    Usage:
        session = TradingSession(aggregator, wallet, rpc, store, token_cache)
        await session.start()
        session.set_network(Network.MAINNET, confirmed=True)
        session.prefill_trade(BONK_MINT, "0.25", TradeDirection.BUY)
        await session.quotes.wait_idle()
        outcome = await session.execute()
        await session.stop()
    """

    def __init__(
        self,
        aggregator,
        wallet: WalletSigner,
        rpc: ChainRpc,
        store: TradeStore,
        token_cache: TokenMetadataCache,
        *,
        network: Network = Network.DEVNET,
        debounce_ms: Optional[int] = None,
        quote_ttl_s: Optional[float] = None,
    ):
        self._network = network
        self._intent = TradeIntent(
            input_token=NATIVE_SOL_MINT,
            slippage_bps=settings.default_slippage_bps,
        )
        self.token_cache = token_cache
        self.quotes = QuoteController(
            aggregator,
            token_cache,
            network=lambda: self._network,
            debounce_ms=debounce_ms,
        )
        self.execution = ExecutionController(
            aggregator,
            wallet,
            rpc,
            store,
            token_cache,
            network=lambda: self._network,
            quote_ttl_s=quote_ttl_s,
        )

    @property
    def network(self) -> Network:
        return self._network

    @property
    def intent(self) -> TradeIntent:
        """A copy; mutate through the setters so the quote controller hears about it."""
        return replace(self._intent)

    async def start(self) -> None:
        if not self.token_cache.started:
            await self.token_cache.start()

    async def stop(self) -> None:
        await self.quotes.close()
        await self.token_cache.stop()

    def set_network(self, network: Network, *, confirmed: bool = False) -> None:
        """Switching to mainnet moves real funds and needs explicit confirmation."""
        if network == Network.MAINNET and not confirmed:
            raise InvalidIntent("Switching to Mainnet requires confirmation.")
        if network == self._network:
            return
        logger.info("network_changed", network=network.value)
        self._network = network
        self.quotes.on_intent_changed(self._intent.snapshot())

    def _apply(self, **changes) -> None:
        # replace() re-runs validation; a rejected change leaves the intent untouched
        updated = replace(self._intent, **changes)
        self._intent = updated
        for key in ("input_token", "output_token"):
            if key in changes and changes[key]:
                self.token_cache.mark_used(changes[key])
        self.quotes.on_intent_changed(updated.snapshot())

    def set_input_token(self, mint: str) -> None:
        self._apply(input_token=mint)

    def set_output_token(self, mint: str) -> None:
        self._apply(output_token=mint)

    def set_amount(self, amount_text: Union[str, Decimal]) -> None:
        self._apply(input_amount_text=str(amount_text))

    def set_slippage_bps(self, slippage_bps: int) -> None:
        self._apply(slippage_bps=slippage_bps)

    def flip(self) -> None:
        """Swap input and output tokens and clear the amount."""
        if not self._intent.output_token:
            raise InvalidIntent("Select an output token first.")
        self._apply(
            input_token=self._intent.output_token,
            output_token=self._intent.input_token,
            input_amount_text="",
        )

    def prefill_trade(self, token_mint: str, amount: Union[str, Decimal], action: TradeDirection) -> None:
        """Load a trade from a signal: BUY spends SOL for the token, SELL the reverse."""
        if TradeDirection(action) == TradeDirection.BUY:
            self._apply(input_token=NATIVE_SOL_MINT, output_token=token_mint, input_amount_text=str(amount))
        else:
            self._apply(input_token=token_mint, output_token=NATIVE_SOL_MINT, input_amount_text=str(amount))

    async def execute(self) -> ExecutionOutcome:
        """Execute the current quote; on success the quote is dropped and the amount cleared."""
        outcome = await self.execution.execute(self.quotes.current_quote())
        if outcome.succeeded:
            self.quotes.invalidate()
            self._intent = replace(self._intent, input_amount_text="")
        return outcome
