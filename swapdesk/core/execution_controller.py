"""
Execution Controller

Drives one swap through build -> sign -> broadcast -> confirm -> persist.

Preconditions are checked before the first suspension point, so a rejected
call never touches the network and a second call while one is in flight is
refused rather than queued. A failed execution is never retried here: the
user re-initiates, which rules out silently resubmitting a transaction that
may already have landed.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, List, Optional

import structlog

from ..config import settings
from .errors import (
    BroadcastFailed,
    ConfirmationTimeout,
    ExecutionError,
    ExecutionInProgress,
    ExecutionNetworkUnsupported,
    NoQuote,
    PersistenceFailed,
    SigningFailed,
    StaleQuote,
    SwapBuildError,
    SwapBuildFailed,
    TransactionFailed,
    UserRejectedSignature,
    WalletNotConnected,
    is_user_rejection,
)
from .interfaces import ChainRpc, ConfirmationStatus, TokenMetadataSource, TradeStore, WalletSigner
from .models import ExecutionOutcome, Network, QuoteResult, TradeRecord, explorer_url
from .units import from_base_units

logger = structlog.stdlib.get_logger(__name__)


class ExecutionState(str, Enum):
    READY = "ready"
    BUILDING_TRANSACTION = "building_transaction"
    AWAITING_SIGNATURE = "awaiting_signature"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


ExecutionListener = Callable[[ExecutionState], None]


class ExecutionController:
    """
    Executes a quoted swap with the user's wallet.

    Usage:
        controller = ExecutionController(aggregator, wallet, rpc, store, token_cache)
        outcome = await controller.execute(quote_controller.current_quote())
        if outcome.failure:
            show(outcome.failure.user_message, outcome.funds_moved)
    """

    def __init__(
        self,
        aggregator,
        wallet: WalletSigner,
        rpc: ChainRpc,
        store: TradeStore,
        metadata: TokenMetadataSource,
        *,
        network: Callable[[], Network] = lambda: Network.MAINNET,
        quote_ttl_s: Optional[float] = None,
        confirmation_level: Optional[str] = None,
        confirmation_timeout_s: Optional[float] = None,
        skip_preflight: Optional[bool] = None,
        max_retries: Optional[int] = None,
        persist_retries: Optional[int] = None,
    ):
        self._aggregator = aggregator
        self._wallet = wallet
        self._rpc = rpc
        self._store = store
        self._metadata = metadata
        self._network = network

        self.quote_ttl_s = settings.quote_ttl_seconds if quote_ttl_s is None else quote_ttl_s
        self.confirmation_level = confirmation_level or settings.solana_commitment
        self.confirmation_timeout_s = (
            settings.confirmation_timeout_seconds if confirmation_timeout_s is None else confirmation_timeout_s
        )
        self.skip_preflight = settings.broadcast_skip_preflight if skip_preflight is None else skip_preflight
        self.max_retries = settings.broadcast_max_retries if max_retries is None else max_retries
        self.persist_retries = settings.persist_retries if persist_retries is None else persist_retries

        self._state = ExecutionState.READY
        self._listeners: List[ExecutionListener] = []
        self.last_outcome: Optional[ExecutionOutcome] = None

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state != ExecutionState.READY

    def subscribe(self, listener: ExecutionListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _transition(self, state: ExecutionState) -> None:
        logger.info("execution_state", from_state=self._state.value, to_state=state.value)
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error("execution_listener_failed", error=str(e))

    def check_preconditions(self, quote: Optional[QuoteResult]) -> str:
        """
        Validate that an execution may start. Returns the signing wallet address.

        Raises:
            ExecutionError subclass describing the first failed precondition
        """
        if self.busy:
            raise ExecutionInProgress(details={"state": self._state.value})
        if self._network() != Network.MAINNET:
            raise ExecutionNetworkUnsupported(details={"network": self._network().value})
        address = self._wallet.public_address() if self._wallet.is_connected() else None
        if not address:
            raise WalletNotConnected()
        if quote is None:
            raise NoQuote()
        if not quote.executable:
            raise NoQuote("Quote is an estimate only and cannot be executed.")
        if quote.is_stale(self.quote_ttl_s):
            raise StaleQuote(details={"age_s": round(quote.age(), 1), "ttl_s": self.quote_ttl_s})
        return address

    async def execute(self, quote: Optional[QuoteResult]) -> ExecutionOutcome:
        """
        Run one swap to completion.

        Raises:
            ExecutionError: a precondition failed; nothing was attempted.

        Returns:
            ExecutionOutcome. `failure` is set when the attempt failed, and
            `funds_moved` tells whether the on-chain action may have happened.
        """
        wallet_address = self.check_preconditions(quote)
        # Leave READY before the first await so a concurrent call is refused
        self._transition(ExecutionState.BUILDING_TRANSACTION)
        try:
            outcome = await self._run(quote, wallet_address)
        finally:
            self._transition(ExecutionState.READY)
        self.last_outcome = outcome
        return outcome

    async def _run(self, quote: QuoteResult, wallet_address: str) -> ExecutionOutcome:
        log = logger.bind(
            wallet=wallet_address,
            input_token=quote.input_token,
            output_token=quote.output_token,
            in_amount=quote.in_amount,
        )

        # Decimals are needed for the trade record; nothing after confirmation may fail on them
        try:
            in_decimals = await self._metadata.resolve_decimals(quote.input_token)
            out_decimals = await self._metadata.resolve_decimals(quote.output_token)
        except Exception as exc:
            return self._fail(SwapBuildFailed(
                "Token decimals could not be resolved",
                details={"reason": "token_metadata", "error": str(exc)},
            ))

        try:
            swap = await self._aggregator.build_swap_transaction(quote, wallet_address)
        except SwapBuildError as exc:
            return self._fail(SwapBuildFailed(exc.message, details={"reason": exc.reason, **exc.details}))

        self._transition(ExecutionState.AWAITING_SIGNATURE)
        try:
            signed = await self._wallet.sign(swap.payload)
        except Exception as exc:
            if is_user_rejection(exc):
                log.info("signature_rejected")
                return self._fail(UserRejectedSignature())
            return self._fail(SigningFailed(str(exc) or None))

        self._transition(ExecutionState.SUBMITTING)
        try:
            signature = await self._rpc.broadcast(
                signed,
                skip_preflight=self.skip_preflight,
                max_retries=self.max_retries,
            )
        except Exception as exc:
            return self._fail(BroadcastFailed(details={"error": str(exc)}))

        self._transition(ExecutionState.CONFIRMING)
        try:
            status = await self._rpc.await_confirmation(
                signature,
                self.confirmation_level,
                self.confirmation_timeout_s,
            )
        except Exception as exc:
            log.warning("confirmation_wait_failed", signature=signature, error=str(exc))
            status = ConfirmationStatus.TIMEOUT

        if status == ConfirmationStatus.FAILED:
            return self._fail(TransactionFailed(details={"signature": signature}), signature)
        if status != ConfirmationStatus.CONFIRMED:
            return self._fail(ConfirmationTimeout(details={"signature": signature}), signature)

        record: Optional[TradeRecord] = None
        try:
            record = self._build_record(quote, wallet_address, signature, in_decimals, out_decimals)
            warning = await self._persist(record)
        except Exception as exc:
            logger.error("trade_record_lost", signature=signature, error=str(exc))
            warning = PersistenceFailed(details={"signature": signature, "error": str(exc)})

        self._transition(ExecutionState.SUCCEEDED)
        log.info("swap_succeeded", signature=signature, persisted=warning is None)
        return ExecutionOutcome(
            state=ExecutionState.SUCCEEDED.value,
            signature=signature,
            record=record,
            warning=warning,
            explorer_url=explorer_url(signature, self._network()),
        )

    @staticmethod
    def _build_record(
        quote: QuoteResult,
        wallet_address: str,
        signature: str,
        in_decimals: int,
        out_decimals: int,
    ) -> TradeRecord:
        return TradeRecord(
            wallet_address=wallet_address,
            direction=TradeRecord.direction_for(quote.input_token),
            input_token=quote.input_token,
            output_token=quote.output_token,
            input_amount=from_base_units(quote.in_amount, in_decimals),
            output_amount_estimate=from_base_units(quote.out_amount, out_decimals),
            transaction_signature=signature,
        )

    async def _persist(self, record: TradeRecord) -> Optional[PersistenceFailed]:
        """Write the trade record. Only called after confirmation."""
        attempts = 1 + max(0, self.persist_retries)
        last_error: Optional[Exception] = None
        for attempt in range(attempts):
            try:
                await self._store.create_trade_record(record)
                return None
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "trade_record_write_failed",
                    attempt=attempt + 1,
                    attempts=attempts,
                    signature=record.transaction_signature,
                    error=str(exc),
                )
        logger.error("trade_record_lost", signature=record.transaction_signature)
        return PersistenceFailed(
            details={"signature": record.transaction_signature, "error": str(last_error)},
        )

    def _fail(self, error: ExecutionError, signature: Optional[str] = None) -> ExecutionOutcome:
        self._transition(ExecutionState.FAILED)
        if isinstance(error, UserRejectedSignature):
            logger.info("execution_cancelled", kind=error.kind.value)
        else:
            logger.warning(
                "execution_failed",
                kind=error.kind.value,
                message=error.message,
                funds_moved=error.funds_moved.value,
                signature=signature,
            )
        return ExecutionOutcome(
            state=ExecutionState.FAILED.value,
            signature=signature,
            failure=error,
            explorer_url=explorer_url(signature, self._network()) if signature else None,
        )


__all__ = ["ExecutionController", "ExecutionState", "ExecutionListener"]
