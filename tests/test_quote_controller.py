"""
Tests for the Quote Controller

Debounce, last-intent-wins ordering, the network guard, and error recovery.
"""

import asyncio

import pytest

from swapdesk.core.errors import ErrorKind, NoRoute, UpstreamUnavailable
from swapdesk.core.models import NATIVE_SOL_MINT, USDC_MINT, IntentSnapshot, Network
from swapdesk.core.quote_controller import QuoteController, QuoteState

from fakes import BONK_MINT


def snapshot(amount: str = "1", output: str = USDC_MINT, slippage_bps: int = 100) -> IntentSnapshot:
    return IntentSnapshot(
        input_token=NATIVE_SOL_MINT,
        output_token=output,
        input_amount_text=amount,
        slippage_bps=slippage_bps,
    )


@pytest.fixture
def controller(aggregator, metadata) -> QuoteController:
    return QuoteController(aggregator, metadata, debounce_ms=10)


@pytest.mark.asyncio
async def test_quotes_after_debounce(controller, aggregator):
    controller.on_intent_changed(snapshot("1.5"))
    assert controller.state == QuoteState.DEBOUNCING
    assert controller.current_quote() is None

    await controller.wait_idle()

    assert controller.state == QuoteState.QUOTED
    assert aggregator.quote_calls == [(NATIVE_SOL_MINT, USDC_MINT, 1_500_000_000, 100)]
    assert controller.current_quote().in_amount == "1500000000"


@pytest.mark.asyncio
async def test_rapid_changes_fetch_once(controller, aggregator):
    for amount in ("1", "1.2", "1.25"):
        controller.on_intent_changed(snapshot(amount))
        await asyncio.sleep(0.001)

    await controller.wait_idle()

    assert len(aggregator.quote_calls) == 1
    assert aggregator.quote_calls[0][2] == 1_250_000_000


@pytest.mark.asyncio
async def test_superseded_fetch_never_lands(controller, aggregator):
    aggregator.delays[USDC_MINT] = 0.2
    controller.on_intent_changed(snapshot("1", output=USDC_MINT))
    await asyncio.sleep(0.05)
    assert controller.state == QuoteState.FETCHING

    controller.on_intent_changed(snapshot("2", output=BONK_MINT))
    await controller.wait_idle()
    await asyncio.sleep(0.25)

    quote = controller.current_quote()
    assert controller.state == QuoteState.QUOTED
    assert quote.output_token == BONK_MINT
    assert quote.in_amount == "2000000000"


@pytest.mark.asyncio
async def test_intent_change_clears_quote_immediately(controller):
    controller.on_intent_changed(snapshot("1"))
    await controller.wait_idle()
    assert controller.current_quote() is not None

    controller.on_intent_changed(snapshot("2"))
    assert controller.current_quote() is None
    await controller.close()


@pytest.mark.asyncio
async def test_non_mainnet_fails_without_fetching(aggregator, metadata):
    controller = QuoteController(aggregator, metadata, network=lambda: Network.DEVNET, debounce_ms=10)
    controller.on_intent_changed(snapshot("1"))
    await controller.wait_idle()

    assert controller.state == QuoteState.FAILED
    assert controller.error.kind == ErrorKind.NETWORK_UNSUPPORTED
    assert aggregator.quote_calls == []


@pytest.mark.parametrize("amount", ["", "abc", "0", "-3"])
@pytest.mark.asyncio
async def test_incomplete_intent_goes_idle(controller, aggregator, amount):
    controller.on_intent_changed(snapshot(amount))
    await controller.wait_idle()

    assert controller.state == QuoteState.IDLE
    assert controller.current_quote() is None
    assert aggregator.quote_calls == []


@pytest.mark.asyncio
async def test_missing_output_token_goes_idle(controller, aggregator):
    controller.on_intent_changed(snapshot("1", output=""))
    await controller.wait_idle()
    assert controller.state == QuoteState.IDLE
    assert aggregator.quote_calls == []


@pytest.mark.asyncio
async def test_amount_below_one_base_unit_fails_locally(controller, aggregator, metadata):
    metadata.decimals[BONK_MINT] = 5
    controller.on_intent_changed(
        IntentSnapshot(input_token=BONK_MINT, output_token=USDC_MINT, input_amount_text="0.000001", slippage_bps=100)
    )
    await controller.wait_idle()

    assert controller.state == QuoteState.FAILED
    assert controller.error.kind == ErrorKind.INVALID_AMOUNT
    assert aggregator.quote_calls == []


@pytest.mark.asyncio
async def test_no_route_recorded(controller, aggregator):
    aggregator.quote_error = NoRoute()
    controller.on_intent_changed(snapshot("1"))
    await controller.wait_idle()

    assert controller.state == QuoteState.FAILED
    assert isinstance(controller.error, NoRoute)
    assert controller.current_quote() is None


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_upstream_error(controller, aggregator):
    aggregator.quote_error = RuntimeError("boom")
    controller.on_intent_changed(snapshot("1"))
    await controller.wait_idle()

    assert controller.state == QuoteState.FAILED
    assert isinstance(controller.error, UpstreamUnavailable)


@pytest.mark.asyncio
async def test_transient_failure_requotes_without_intent_change(controller, aggregator):
    aggregator.quote_error = UpstreamUnavailable()
    states = []

    def recover(state, quote, error):
        states.append(state)
        if state == QuoteState.FAILED:
            aggregator.quote_error = None

    controller.subscribe(recover)
    controller.on_intent_changed(snapshot("1"))
    await controller.wait_idle()

    assert controller.state == QuoteState.QUOTED
    assert controller.error is None
    assert controller.current_quote() is not None
    assert len(aggregator.quote_calls) == 2
    assert states == [
        QuoteState.DEBOUNCING,
        QuoteState.FETCHING,
        QuoteState.FAILED,
        QuoteState.FETCHING,
        QuoteState.QUOTED,
    ]


@pytest.mark.asyncio
async def test_transient_retries_are_bounded(aggregator, metadata):
    controller = QuoteController(aggregator, metadata, debounce_ms=5, transient_retries=2)
    aggregator.quote_error = UpstreamUnavailable()
    controller.on_intent_changed(snapshot("1"))
    await controller.wait_idle()

    assert controller.state == QuoteState.FAILED
    assert len(aggregator.quote_calls) == 3


@pytest.mark.asyncio
async def test_no_route_is_not_retried(controller, aggregator):
    aggregator.quote_error = NoRoute()
    controller.on_intent_changed(snapshot("1"))
    await controller.wait_idle()

    assert len(aggregator.quote_calls) == 1


@pytest.mark.asyncio
async def test_refresh_requotes_same_intent(controller, aggregator):
    controller.on_intent_changed(snapshot("1"))
    await controller.wait_idle()
    controller.refresh()
    await controller.wait_idle()

    assert len(aggregator.quote_calls) == 2
    assert aggregator.quote_calls[0] == aggregator.quote_calls[1]


@pytest.mark.asyncio
async def test_invalidate_drops_quote(controller):
    controller.on_intent_changed(snapshot("1"))
    await controller.wait_idle()
    sequence = controller.sequence

    controller.invalidate()

    assert controller.state == QuoteState.IDLE
    assert controller.current_quote() is None
    assert controller.sequence == sequence + 1


@pytest.mark.asyncio
async def test_listeners_see_transitions(controller):
    states = []
    unsubscribe = controller.subscribe(lambda state, quote, error: states.append(state))

    controller.on_intent_changed(snapshot("1"))
    await controller.wait_idle()
    unsubscribe()
    controller.invalidate()

    assert states == [QuoteState.DEBOUNCING, QuoteState.FETCHING, QuoteState.QUOTED]
