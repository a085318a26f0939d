"""
Jupiter aggregator client for Solana.

Quotes and swap transactions are requested from an ordered list of
endpoints (direct API, keyed API, or a trusted proxy). Each endpoint is tried
at most once per call; when all of them fail, an approximate quote can be
synthesized from the price API so the UI still shows an estimate.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import Settings, settings
from ..core.errors import NoRoute, SwapBuildError, UpstreamUnavailable
from ..core.interfaces import TokenMetadataSource
from ..core.models import QuoteResult, SwapTransaction
from ..core.units import DEFAULT_DECIMALS, from_base_units
from .base import Provider

logger = structlog.stdlib.get_logger(__name__)

# Aggregator error codes meaning "no liquidity path", as opposed to an outage
NO_ROUTE_CODES = {
    "COULD_NOT_FIND_ANY_ROUTE",
    "NO_ROUTES_FOUND",
    "TOKEN_NOT_TRADABLE",
    "ROUTE_PLAN_DOES_NOT_CONSUME_ALL_THE_AMOUNT",
}
NO_ROUTE_MARKERS = ("could not find any route", "no route", "no routes found", "not tradable")


@dataclass
class AggregatorConfig:
    """Endpoint and request policy for the aggregator client."""

    endpoints: List[str]
    timeout_ms: int = 8000
    max_attempts: int = 3
    headers: Dict[str, str] = field(default_factory=dict)
    price_endpoint: Optional[str] = None
    swap_endpoints: List[str] = field(default_factory=list)
    wrap_and_unwrap_native: Optional[bool] = True    # None: let the aggregator decide
    dynamic_compute_budget: Optional[bool] = True

    def __post_init__(self) -> None:
        self.endpoints = [url.rstrip("/") for url in self.endpoints if url]
        self.swap_endpoints = [url.rstrip("/") for url in self.swap_endpoints if url]
        if self.price_endpoint:
            self.price_endpoint = self.price_endpoint.rstrip("/")

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000

    def quote_targets(self) -> List[str]:
        return self.endpoints[: self.max_attempts]

    def swap_targets(self) -> List[str]:
        return (self.swap_endpoints or self.endpoints)[: self.max_attempts]

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "AggregatorConfig":
        headers = {"Accept": "application/json"}
        if config.jupiter_api_key:
            headers["x-api-key"] = config.jupiter_api_key
        return cls(
            endpoints=list(config.jupiter_quote_endpoints),
            timeout_ms=config.aggregator_timeout_ms,
            max_attempts=config.aggregator_max_attempts,
            headers=headers,
            price_endpoint=config.jupiter_price_url or None,
            swap_endpoints=list(config.jupiter_swap_endpoints),
            wrap_and_unwrap_native=config.wrap_and_unwrap_sol,
            dynamic_compute_budget=config.dynamic_compute_unit_limit,
        )


class _AttemptFailed(Exception):
    """One endpoint attempt failed; the caller moves on to the next endpoint."""

    def __init__(
        self,
        endpoint: str,
        reason: str,
        *,
        status: Optional[int] = None,
        no_route: bool = False,
        missing_payload: bool = False,
    ):
        super().__init__(reason)
        self.endpoint = endpoint
        self.reason = reason
        self.status = status
        self.no_route = no_route
        self.missing_payload = missing_payload

    def to_dict(self) -> Dict[str, Any]:
        return {"endpoint": self.endpoint, "reason": self.reason, "status": self.status}


def _is_no_route(data: Dict[str, Any]) -> bool:
    code = str(data.get("errorCode") or "").upper()
    if code in NO_ROUTE_CODES:
        return True
    message = str(data.get("error") or data.get("message") or "").lower()
    return any(marker in message for marker in NO_ROUTE_MARKERS)


class JupiterAggregatorClient(Provider):
    """
    Quote and swap-transaction client for the Jupiter aggregator.

    Usage:
        client = JupiterAggregatorClient(AggregatorConfig.from_settings())

        quote = await client.fetch_quote(
            NATIVE_SOL_MINT, USDC_MINT, 1_000_000_000, slippage_bps=100,
        )
        swap = await client.build_swap_transaction(quote, wallet_address)
    """

    name = "jupiter"

    def __init__(
        self,
        config: Optional[AggregatorConfig] = None,
        *,
        metadata: Optional[TokenMetadataSource] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._config = config or AggregatorConfig.from_settings()
        self._metadata = metadata
        self.timeout_s = self._config.timeout_s
        self._use_client(client)

    @property
    def config(self) -> AggregatorConfig:
        return self._config

    async def ready(self) -> bool:
        return bool(self._config.endpoints)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "No aggregator endpoints configured"}
        return {
            "status": "healthy",
            "endpoints": len(self._config.endpoints),
            "price_fallback": bool(self._config.price_endpoint),
        }

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request_json(
        self,
        endpoint: str,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._config.headers,
                timeout=self._config.timeout_s,
            )
        except httpx.TimeoutException:
            raise _AttemptFailed(endpoint, "timeout")
        except httpx.HTTPError as exc:
            raise _AttemptFailed(endpoint, f"transport error: {exc}")

        try:
            data = response.json()
        except ValueError:
            raise _AttemptFailed(
                endpoint,
                f"non-JSON response: {response.text[:100]}",
                status=response.status_code,
            )

        if not isinstance(data, dict):
            raise _AttemptFailed(endpoint, "unexpected response shape", status=response.status_code)

        if not response.is_success or data.get("error"):
            reason = str(data.get("error") or data.get("message") or f"HTTP {response.status_code}")
            raise _AttemptFailed(
                endpoint,
                reason,
                status=response.status_code,
                no_route=_is_no_route(data),
            )

        return data

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def fetch_quote(
        self,
        input_token: str,
        output_token: str,
        in_amount: int,
        slippage_bps: int = 100,
    ) -> QuoteResult:
        """
        Get a swap quote, failing over across configured endpoints.

        Args:
            input_token: Input token mint address
            output_token: Output token mint address
            in_amount: Amount in base units
            slippage_bps: Slippage tolerance in basis points

        Returns:
            QuoteResult (approximate=True when synthesized from prices)

        Raises:
            NoRoute: the aggregator found no liquidity path
            UpstreamUnavailable: no source could be reached
        """
        params = {
            "inputMint": input_token,
            "outputMint": output_token,
            "amount": str(in_amount),
            "slippageBps": str(slippage_bps),
        }

        failures: List[_AttemptFailed] = []
        for endpoint in self._config.quote_targets():
            try:
                data = await self._request_json(endpoint, "GET", f"{endpoint}/quote", params=params)
                if "outAmount" not in data or "inAmount" not in data:
                    raise _AttemptFailed(endpoint, "response missing amounts")
                quote = QuoteResult.from_api(
                    {"inputMint": input_token, "outputMint": output_token, **data},
                    slippage_bps=slippage_bps,
                    source=endpoint,
                )
            except _AttemptFailed as failure:
                logger.warning(
                    "quote_endpoint_failed",
                    endpoint=failure.endpoint,
                    reason=failure.reason,
                    status=failure.status,
                    no_route=failure.no_route,
                )
                failures.append(failure)
                continue
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("quote_endpoint_failed", endpoint=endpoint, reason=f"malformed quote: {exc}")
                failures.append(_AttemptFailed(endpoint, f"malformed quote: {exc}"))
                continue

            logger.info(
                "quote_fetched",
                endpoint=endpoint,
                input_token=input_token,
                output_token=output_token,
                in_amount=quote.in_amount,
                out_amount=quote.out_amount,
                attempts=len(failures) + 1,
            )
            return quote

        details = {"attempts": [failure.to_dict() for failure in failures]}
        all_no_route = bool(failures) and all(failure.no_route for failure in failures)

        # A definitive "no route" answer is not papered over with a price estimate
        if not all_no_route and self._config.price_endpoint:
            approximate = await self._approximate_quote(input_token, output_token, in_amount, slippage_bps)
            if approximate is not None:
                logger.warning(
                    "quote_approximated",
                    input_token=input_token,
                    output_token=output_token,
                    out_amount=approximate.out_amount,
                )
                return approximate

        if any(failure.no_route for failure in failures):
            raise NoRoute(details=details)
        raise UpstreamUnavailable(details=details)

    async def _resolve_decimals(self, token: str) -> int:
        if self._metadata is None:
            return DEFAULT_DECIMALS
        return await self._metadata.resolve_decimals(token)

    async def _approximate_quote(
        self,
        input_token: str,
        output_token: str,
        in_amount: int,
        slippage_bps: int,
    ) -> Optional[QuoteResult]:
        prices = await self.fetch_prices([input_token, output_token])
        price_in = prices.get(input_token)
        price_out = prices.get(output_token)
        if not price_in or not price_out:
            return None

        in_decimals = await self._resolve_decimals(input_token)
        out_decimals = await self._resolve_decimals(output_token)
        human_in = from_base_units(in_amount, in_decimals)
        human_out = human_in * price_in / price_out
        out_amount = int((human_out * (Decimal(10) ** out_decimals)).to_integral_value(rounding=ROUND_FLOOR))
        if out_amount <= 0:
            return None

        return QuoteResult(
            input_token=input_token,
            output_token=output_token,
            in_amount=str(in_amount),
            out_amount=str(out_amount),
            slippage_bps=slippage_bps,
            price_impact_raw=0,
            route_plan=(),
            fetched_at=time.time(),
            approximate=True,
            source=self._config.price_endpoint,
        )

    async def fetch_prices(self, mints: List[str]) -> Dict[str, Optional[Decimal]]:
        """
        Unit prices (USD) from the price API.

        Returns:
            Dict mapping mint address to price (or None if unavailable).
        """
        if not mints or not self._config.price_endpoint:
            return {mint: None for mint in mints}

        endpoint = self._config.price_endpoint
        try:
            data = await self._request_json(endpoint, "GET", endpoint, params={"ids": ",".join(mints)})
        except _AttemptFailed as failure:
            logger.warning("price_fetch_failed", endpoint=endpoint, reason=failure.reason)
            return {mint: None for mint in mints}

        prices: Dict[str, Optional[Decimal]] = {}
        entries = data.get("data") or {}
        for mint in mints:
            raw = (entries.get(mint) or {}).get("price")
            try:
                price = Decimal(str(raw)) if raw is not None else None
            except InvalidOperation:
                price = None
            prices[mint] = price if price is not None and price.is_finite() and price > 0 else None
        return prices

    # ------------------------------------------------------------------
    # Swap transactions
    # ------------------------------------------------------------------

    def _swap_body(self, quote: QuoteResult, wallet_address: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "quoteResponse": quote.raw,
            "userPublicKey": wallet_address,
            "prioritizationFeeLamports": "auto",
        }
        if self._config.wrap_and_unwrap_native is not None:
            body["wrapAndUnwrapSol"] = self._config.wrap_and_unwrap_native
        if self._config.dynamic_compute_budget is not None:
            body["dynamicComputeUnitLimit"] = self._config.dynamic_compute_budget
        return body

    async def build_swap_transaction(self, quote: QuoteResult, wallet_address: str) -> SwapTransaction:
        """
        Build a signable swap transaction from a quote.

        Raises:
            SwapBuildError: approximate quote, missing payload, or every endpoint failed
        """
        if not quote.executable:
            raise SwapBuildError(
                "Approximate quotes cannot be executed, wait for a live route",
                reason="not_executable",
            )

        body = self._swap_body(quote, wallet_address)
        return await self.forward_swap_request(body)

    async def forward_swap_request(self, body: Dict[str, Any]) -> SwapTransaction:
        """POST a prepared swap request body, failing over across swap endpoints."""
        failures: List[_AttemptFailed] = []
        for endpoint in self._config.swap_targets():
            try:
                data = await self._request_json(endpoint, "POST", f"{endpoint}/swap", json_body=body)
                payload = data.get("swapTransaction")
                if not payload:
                    raise _AttemptFailed(endpoint, "missing swapTransaction", missing_payload=True)
            except _AttemptFailed as failure:
                logger.warning(
                    "swap_endpoint_failed",
                    endpoint=failure.endpoint,
                    reason=failure.reason,
                    status=failure.status,
                )
                failures.append(failure)
                continue

            logger.info("swap_transaction_built", endpoint=endpoint, wallet=body.get("userPublicKey"))
            return SwapTransaction(
                payload=payload,
                last_valid_block_height=int(data.get("lastValidBlockHeight") or 0),
                prioritization_fee_lamports=int(data.get("prioritizationFeeLamports") or 0),
                compute_unit_limit=data.get("computeUnitLimit"),
            )

        details = {"attempts": [failure.to_dict() for failure in failures]}
        if any(failure.missing_payload for failure in failures):
            error = SwapBuildError.missing_payload()
            error.details = details
            raise error
        raise SwapBuildError(
            "Every swap endpoint failed",
            reason="upstream",
            transient=True,
            details=details,
        )


# Singleton instance
_aggregator_client: Optional[JupiterAggregatorClient] = None


def get_aggregator_client() -> JupiterAggregatorClient:
    """Get the singleton aggregator client built from settings."""
    global _aggregator_client
    if _aggregator_client is None:
        from ..services.token_metadata import get_token_cache

        _aggregator_client = JupiterAggregatorClient(
            AggregatorConfig.from_settings(),
            metadata=get_token_cache(),
        )
    return _aggregator_client


__all__ = [
    "AggregatorConfig",
    "JupiterAggregatorClient",
    "NO_ROUTE_CODES",
    "get_aggregator_client",
]
