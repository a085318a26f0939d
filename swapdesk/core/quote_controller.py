"""
Quote Controller

Re-quotes the current trade intent after a debounce window. Only the most
recent intent may update state: every change bumps a sequence number and
cancels the pending cycle, and any result tagged with an older sequence
number is dropped.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, List, Optional

import structlog

from ..config import settings
from .errors import NetworkUnsupported, SwapDeskError, UpstreamUnavailable
from .interfaces import TokenMetadataSource
from .models import IntentSnapshot, Network, QuoteResult
from .units import to_base_units

logger = structlog.stdlib.get_logger(__name__)


class QuoteState(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    FETCHING = "fetching"
    QUOTED = "quoted"
    FAILED = "failed"


QuoteListener = Callable[[QuoteState, Optional[QuoteResult], Optional[SwapDeskError]], None]


class QuoteController:
    """
    Owns the latest quote for the session's trade intent.

    Usage:
        controller = QuoteController(aggregator, token_cache, network=lambda: Network.MAINNET)
        controller.on_intent_changed(intent.snapshot())
        await controller.wait_idle()
        quote = controller.current_quote()
    """

    def __init__(
        self,
        aggregator,
        metadata: TokenMetadataSource,
        *,
        network: Callable[[], Network] = lambda: Network.MAINNET,
        debounce_ms: Optional[int] = None,
        transient_retries: Optional[int] = None,
    ):
        self._aggregator = aggregator
        self._metadata = metadata
        self._network = network
        self._debounce_s = (settings.quote_debounce_ms if debounce_ms is None else debounce_ms) / 1000
        self.transient_retries = (
            settings.quote_transient_retries if transient_retries is None else transient_retries
        )

        self._intent: Optional[IntentSnapshot] = None
        self._state = QuoteState.IDLE
        self._quote: Optional[QuoteResult] = None
        self._error: Optional[SwapDeskError] = None
        self._sequence = 0
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[QuoteListener] = []

    @property
    def state(self) -> QuoteState:
        return self._state

    @property
    def error(self) -> Optional[SwapDeskError]:
        return self._error

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def intent(self) -> Optional[IntentSnapshot]:
        return self._intent

    def current_quote(self) -> Optional[QuoteResult]:
        """The latest quote. QuoteResult is frozen, so callers hold a stable snapshot."""
        return self._quote

    def subscribe(self, listener: QuoteListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _set_state(self, state: QuoteState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state, self._quote, self._error)
            except Exception as e:
                logger.error("quote_listener_failed", error=str(e))

    def _cancel_pending(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def on_intent_changed(self, snapshot: IntentSnapshot) -> None:
        """Discard the current quote and restart the debounce window."""
        self._sequence += 1
        self._cancel_pending()
        self._intent = snapshot
        self._quote = None
        self._error = None
        self._set_state(QuoteState.DEBOUNCING)
        self._task = asyncio.get_running_loop().create_task(self._run(self._sequence, snapshot))

    def refresh(self) -> None:
        """Re-quote the current intent (e.g. after the quote went stale)."""
        if self._intent is not None:
            self.on_intent_changed(self._intent)

    def invalidate(self) -> None:
        """Drop the quote without re-quoting (after a successful execution)."""
        self._sequence += 1
        self._cancel_pending()
        self._quote = None
        self._error = None
        self._set_state(QuoteState.IDLE)

    async def wait_idle(self) -> None:
        """Wait for the pending debounce/fetch cycle, retries included, to settle."""
        while self._task is not None and not self._task.done():
            await asyncio.gather(self._task, return_exceptions=True)

    async def close(self) -> None:
        self._cancel_pending()
        self._listeners.clear()

    def _is_current(self, sequence: int) -> bool:
        return sequence == self._sequence

    async def _run(self, sequence: int, snapshot: IntentSnapshot) -> None:
        await asyncio.sleep(self._debounce_s)
        retries_left = self.transient_retries
        while self._is_current(sequence):
            error = await self._cycle(sequence, snapshot)
            if error is None or not error.transient or retries_left <= 0:
                return
            # Transient upstream trouble: quote again after another debounce window
            retries_left -= 1
            await asyncio.sleep(self._debounce_s)

    async def _cycle(self, sequence: int, snapshot: IntentSnapshot) -> Optional[SwapDeskError]:
        """One quote attempt. Returns the error it failed with, if any."""
        network = self._network()
        if network != Network.MAINNET:
            return self._fail(NetworkUnsupported(details={"network": network.value}))

        if not snapshot.is_complete():
            self._quote = None
            self._set_state(QuoteState.IDLE)
            return None

        self._set_state(QuoteState.FETCHING)
        try:
            decimals = await self._metadata.resolve_decimals(snapshot.input_token)
            in_amount = to_base_units(snapshot.input_amount_text, decimals)
            quote = await self._aggregator.fetch_quote(
                snapshot.input_token,
                snapshot.output_token,
                in_amount,
                snapshot.slippage_bps,
            )
        except SwapDeskError as exc:
            return self._fail(exc) if self._is_current(sequence) else None
        except Exception as exc:
            logger.exception("quote_cycle_crashed", sequence=sequence)
            return self._fail(UpstreamUnavailable(str(exc))) if self._is_current(sequence) else None

        if not self._is_current(sequence):
            logger.debug("quote_discarded", sequence=sequence, current=self._sequence)
            return None

        self._quote = quote
        self._error = None
        self._set_state(QuoteState.QUOTED)
        return None

    def _fail(self, error: SwapDeskError) -> SwapDeskError:
        self._quote = None
        self._error = error
        log = logger.info if error.transient else logger.warning
        log("quote_failed", kind=error.kind.value, message=error.message, transient=error.transient)
        self._set_state(QuoteState.FAILED)
        return error


__all__ = ["QuoteController", "QuoteState", "QuoteListener"]
