from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import NoRoute, QuoteError, SwapBuildError
from ..core.risk import assess_price_impact, format_route, thresholds_from_settings
from ..providers.jupiter import JupiterAggregatorClient, get_aggregator_client

router = APIRouter(prefix="/jupiter")


class SwapRequest(BaseModel):
    """Swap build body, forwarded to the aggregator as-is."""

    model_config = ConfigDict(extra="allow")

    quoteResponse: Dict[str, Any] = Field(..., description="Quote returned by /jupiter/quote")
    userPublicKey: str = Field(..., description="Wallet that will sign the transaction")
    prioritizationFeeLamports: Any = "auto"
    wrapAndUnwrapSol: Optional[bool] = None
    dynamicComputeUnitLimit: Optional[bool] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


@router.get("/quote")
async def jupiter_quote(
    input_mint: Optional[str] = Query(None, alias="inputMint"),
    output_mint: Optional[str] = Query(None, alias="outputMint"),
    amount: Optional[str] = Query(None, description="Input amount in base units"),
    slippage_bps: int = Query(100, alias="slippageBps", ge=0, le=10_000),
    aggregator: JupiterAggregatorClient = Depends(get_aggregator_client),
) -> Dict[str, Any]:
    if not input_mint or not output_mint or not amount:
        raise HTTPException(status_code=400, detail="Missing required parameters: inputMint, outputMint, amount")
    if not amount.isdigit() or int(amount) <= 0:
        raise HTTPException(status_code=400, detail="amount must be a positive integer in base units")
    if input_mint == output_mint:
        raise HTTPException(status_code=400, detail="inputMint and outputMint must differ")

    try:
        quote = await aggregator.fetch_quote(input_mint, output_mint, int(amount), slippage_bps)
    except NoRoute as exc:
        raise HTTPException(status_code=404, detail=exc.to_dict())
    except QuoteError as exc:
        raise HTTPException(status_code=503, detail=exc.to_dict())

    impact = assess_price_impact(quote.price_impact_raw, thresholds_from_settings())
    body: Dict[str, Any] = dict(quote.raw) if quote.raw is not None else {
        "inputMint": quote.input_token,
        "outputMint": quote.output_token,
        "inAmount": quote.in_amount,
        "outAmount": quote.out_amount,
        "slippageBps": quote.slippage_bps,
        "priceImpactPct": "0",
        "routePlan": [],
    }
    body.update({
        "priceImpact": {"value": impact.value, "severity": impact.severity.value},
        "routeLabel": format_route(quote.route_plan),
        "approximate": quote.approximate,
        "source": quote.source,
        "fetchedAt": quote.fetched_at,
    })
    return body


@router.post("/swap")
async def jupiter_swap(
    request: SwapRequest,
    aggregator: JupiterAggregatorClient = Depends(get_aggregator_client),
) -> Dict[str, Any]:
    try:
        swap = await aggregator.forward_swap_request(request.to_payload())
    except SwapBuildError as exc:
        raise HTTPException(status_code=502, detail=exc.to_dict())

    return {
        "swapTransaction": swap.payload,
        "lastValidBlockHeight": swap.last_valid_block_height,
        "prioritizationFeeLamports": swap.prioritization_fee_lamports,
        "computeUnitLimit": swap.compute_unit_limit,
    }
