"""
Quote and execution pipeline.

Usage:
    from swapdesk.core import (
        QuoteController,
        ExecutionController,
        TradingSession,
        assess_price_impact,
        format_route,
    )
"""

from .errors import (
    ErrorKind,
    FundsMoved,
    SwapDeskError,
    InvalidAmount,
    InvalidIntent,
    QuoteError,
    NetworkUnsupported,
    NoRoute,
    UpstreamUnavailable,
    SwapBuildError,
    ExecutionError,
    StaleQuote,
    UserRejected,
    PersistenceFailed,
)

from .models import (
    NATIVE_SOL_MINT,
    USDC_MINT,
    Network,
    TradeDirection,
    Severity,
    TradeIntent,
    IntentSnapshot,
    RouteStep,
    QuoteResult,
    PriceImpactAssessment,
    SwapTransaction,
    TradeRecord,
    ExecutionOutcome,
)

from .units import (
    DEFAULT_DECIMALS,
    to_base_units,
    from_base_units,
)

from .risk import (
    ImpactThresholds,
    assess_price_impact,
    format_route,
)

from .quote_controller import QuoteController, QuoteState
from .execution_controller import ExecutionController, ExecutionState
from .session import TradingSession

__all__ = [
    # Errors
    "ErrorKind",
    "FundsMoved",
    "SwapDeskError",
    "InvalidAmount",
    "InvalidIntent",
    "QuoteError",
    "NetworkUnsupported",
    "NoRoute",
    "UpstreamUnavailable",
    "SwapBuildError",
    "ExecutionError",
    "StaleQuote",
    "UserRejected",
    "PersistenceFailed",
    # Models
    "NATIVE_SOL_MINT",
    "USDC_MINT",
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
    # Units
    "DEFAULT_DECIMALS",
    "to_base_units",
    "from_base_units",
    # Risk
    "ImpactThresholds",
    "assess_price_impact",
    "format_route",
    # Controllers
    "QuoteController",
    "QuoteState",
    "ExecutionController",
    "ExecutionState",
    "TradingSession",
]
