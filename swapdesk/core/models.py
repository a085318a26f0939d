"""Typed models used by the quote and execution pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .errors import FundsMoved, InvalidIntent, SwapDeskError
from .units import parse_amount

# Well-known token mints
NATIVE_SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDC_MINT_DEVNET = "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU"

DEFAULT_SLIPPAGE_BPS = 100
MAX_SLIPPAGE_BPS = 10_000


class Network(str, Enum):
    MAINNET = "mainnet"
    DEVNET = "devnet"


class TradeDirection(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# Trade intent
# =============================================================================

@dataclass
class TradeIntent:
    """What the user currently wants to trade. Mutated only by the session."""

    input_token: str = ""
    output_token: str = ""
    input_amount_text: str = ""
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.input_token and self.output_token and self.input_token == self.output_token:
            raise InvalidIntent()
        try:
            slippage_bps = int(self.slippage_bps)
        except (TypeError, ValueError):
            raise InvalidIntent(f"Slippage must be a whole number of bps, got {self.slippage_bps!r}") from None
        self.slippage_bps = slippage_bps
        if not 0 <= slippage_bps <= MAX_SLIPPAGE_BPS:
            raise InvalidIntent(f"Slippage must be between 0 and {MAX_SLIPPAGE_BPS} bps")

    @property
    def amount(self) -> Optional[Decimal]:
        return parse_amount(self.input_amount_text)

    def is_complete(self) -> bool:
        """Both tokens set and the amount parses to a positive number."""
        amount = self.amount
        return bool(self.input_token and self.output_token and amount is not None and amount > 0)

    def snapshot(self) -> "IntentSnapshot":
        return IntentSnapshot(
            input_token=self.input_token,
            output_token=self.output_token,
            input_amount_text=self.input_amount_text,
            slippage_bps=self.slippage_bps,
        )


@dataclass(frozen=True)
class IntentSnapshot:
    """Immutable copy of a TradeIntent taken when a fetch or execution starts."""

    input_token: str
    output_token: str
    input_amount_text: str
    slippage_bps: int

    @property
    def amount(self) -> Optional[Decimal]:
        return parse_amount(self.input_amount_text)

    def is_complete(self) -> bool:
        amount = self.amount
        return bool(self.input_token and self.output_token and amount is not None and amount > 0)


# =============================================================================
# Quotes
# =============================================================================

@dataclass(frozen=True)
class RouteStep:
    """A single hop of the aggregator's route plan."""

    label: Optional[str] = None
    input_token: Optional[str] = None
    output_token: Optional[str] = None
    percent: int = 100
    amm_key: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RouteStep":
        info = (data.get("swapInfo") or {}) if isinstance(data, dict) else None
        if not isinstance(info, dict):
            raise ValueError(f"route step is not an object: {data!r}")
        return cls(
            label=info.get("label") or data.get("label"),
            input_token=info.get("inputMint"),
            output_token=info.get("outputMint"),
            percent=int(data.get("percent", 100) or 100),
            amm_key=info.get("ammKey"),
        )


@dataclass(frozen=True)
class QuoteResult:
    """Immutable quote snapshot. Amounts are base units, string-encoded."""

    input_token: str
    output_token: str
    in_amount: str
    out_amount: str
    slippage_bps: int
    price_impact_raw: Any = 0
    route_plan: Tuple[RouteStep, ...] = ()
    other_amount_threshold: Optional[str] = None
    fetched_at: float = field(default_factory=time.time)
    approximate: bool = False
    source: Optional[str] = None
    raw: Optional[Dict[str, Any]] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_api(
        cls,
        data: Dict[str, Any],
        *,
        slippage_bps: int,
        source: Optional[str] = None,
        fetched_at: Optional[float] = None,
    ) -> "QuoteResult":
        return cls(
            input_token=data["inputMint"],
            output_token=data["outputMint"],
            in_amount=str(data["inAmount"]),
            out_amount=str(data["outAmount"]),
            slippage_bps=int(data.get("slippageBps", slippage_bps)),
            price_impact_raw=data.get("priceImpactPct", 0),
            route_plan=tuple(RouteStep.from_api(step) for step in data.get("routePlan") or []),
            other_amount_threshold=(
                str(data["otherAmountThreshold"]) if data.get("otherAmountThreshold") is not None else None
            ),
            fetched_at=fetched_at if fetched_at is not None else time.time(),
            source=source,
            raw=dict(data),
        )

    def age(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.fetched_at

    def is_stale(self, ttl_seconds: float, now: Optional[float] = None) -> bool:
        return self.age(now) >= ttl_seconds

    @property
    def executable(self) -> bool:
        return not self.approximate and self.raw is not None

    def with_fetched_at(self, fetched_at: float) -> "QuoteResult":
        return replace(self, fetched_at=fetched_at)


@dataclass(frozen=True)
class PriceImpactAssessment:
    value: float
    severity: Severity


@dataclass(frozen=True)
class SwapTransaction:
    """Signable transaction returned by the aggregator."""

    payload: str                                # Base64 encoded transaction
    last_valid_block_height: int = 0
    prioritization_fee_lamports: int = 0
    compute_unit_limit: Optional[int] = None


# =============================================================================
# Records
# =============================================================================

@dataclass(frozen=True)
class TradeRecord:
    wallet_address: str
    direction: TradeDirection
    input_token: str
    output_token: str
    input_amount: Decimal
    output_amount_estimate: Decimal
    transaction_signature: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @staticmethod
    def direction_for(input_token: str) -> TradeDirection:
        return TradeDirection.BUY if input_token == NATIVE_SOL_MINT else TradeDirection.SELL

    def to_row(self) -> Dict[str, Any]:
        return {
            "wallet_address": self.wallet_address,
            "direction": self.direction.value,
            "input_mint": self.input_token,
            "output_mint": self.output_token,
            "input_amount": float(self.input_amount),
            "output_amount_est": float(self.output_amount_estimate),
            "tx_sig": self.transaction_signature,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TradeRecord":
        created = row.get("created_at")
        if isinstance(created, str):
            created_at = datetime.fromisoformat(created.replace("Z", "+00:00"))
        elif isinstance(created, datetime):
            created_at = created
        else:
            created_at = datetime.now(timezone.utc)
        return cls(
            wallet_address=row["wallet_address"],
            direction=TradeDirection(row.get("direction", "BUY")),
            input_token=row["input_mint"],
            output_token=row["output_mint"],
            input_amount=Decimal(str(row.get("input_amount", 0))),
            output_amount_estimate=Decimal(str(row.get("output_amount_est", 0))),
            transaction_signature=row.get("tx_sig"),
            created_at=created_at,
        )


@dataclass
class ExecutionOutcome:
    """What the user must be told after an execution attempt."""

    state: str
    signature: Optional[str] = None
    record: Optional[TradeRecord] = None
    failure: Optional[SwapDeskError] = None
    warning: Optional[SwapDeskError] = None
    explorer_url: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None and self.signature is not None

    @property
    def funds_moved(self) -> FundsMoved:
        if self.failure is not None:
            return self.failure.funds_moved
        if self.succeeded:
            return FundsMoved.YES
        return FundsMoved.NO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "succeeded": self.succeeded,
            "signature": self.signature,
            "funds_moved": self.funds_moved.value,
            "failure": self.failure.to_dict() if self.failure else None,
            "warning": self.warning.to_dict() if self.warning else None,
            "explorer_url": self.explorer_url,
        }


def explorer_url(signature: str, network: Network = Network.MAINNET) -> str:
    url = f"https://solscan.io/tx/{signature}"
    if network != Network.MAINNET:
        url += f"?cluster={network.value}"
    return url


__all__ = [
    "NATIVE_SOL_MINT",
    "USDC_MINT",
    "USDC_MINT_DEVNET",
    "DEFAULT_SLIPPAGE_BPS",
    "Network",
    "TradeDirection",
    "Severity",
    "TradeIntent",
    "IntentSnapshot",
    "RouteStep",
    "QuoteResult",
    "PriceImpactAssessment",
    "SwapTransaction",
    "TradeRecord",
    "ExecutionOutcome",
    "explorer_url",
]
