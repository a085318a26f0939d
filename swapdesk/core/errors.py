"""
Error Classification

Every failure the quote and execution pipeline can produce. Errors carry a
kind, whether they are transient (the next quote cycle may succeed on its
own), and whether funds may have moved on-chain.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Kinds of pipeline failures."""

    INVALID_AMOUNT = "invalid_amount"
    INVALID_INTENT = "invalid_intent"
    NETWORK_UNSUPPORTED = "network_unsupported"
    NO_ROUTE = "no_route"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    NO_QUOTE = "no_quote"
    STALE_QUOTE = "stale_quote"
    WALLET_NOT_CONNECTED = "wallet_not_connected"
    EXECUTION_IN_PROGRESS = "execution_in_progress"
    SWAP_BUILD_FAILED = "swap_build_failed"
    USER_REJECTED_SIGNATURE = "user_rejected_signature"
    SIGNING_FAILED = "signing_failed"
    BROADCAST_FAILED = "broadcast_failed"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    TRANSACTION_FAILED = "transaction_failed"
    PERSISTENCE_FAILED = "persistence_failed"


class FundsMoved(str, Enum):
    """Whether an on-chain action may have happened."""

    NO = "no"
    UNKNOWN = "unknown"
    YES = "yes"


class SwapDeskError(Exception):
    """Base class for all pipeline errors."""

    kind: ErrorKind = ErrorKind.UPSTREAM_UNAVAILABLE
    transient: bool = False
    funds_moved: FundsMoved = FundsMoved.NO
    user_message: str = "Something went wrong."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "transient": self.transient,
            "funds_moved": self.funds_moved.value,
            "details": self.details,
        }


# =============================================================================
# Local validation
# =============================================================================

class InvalidAmount(SwapDeskError, ValueError):
    """Amount text is not a finite positive number (never reaches the network)."""

    kind = ErrorKind.INVALID_AMOUNT
    user_message = "Invalid amount."


class InvalidIntent(SwapDeskError, ValueError):
    """Trade intent violates an invariant (e.g. same token on both sides)."""

    kind = ErrorKind.INVALID_INTENT
    user_message = "Input and output tokens must differ."


# =============================================================================
# Quoting
# =============================================================================

class QuoteError(SwapDeskError):
    """Failed to obtain a quote."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    user_message = "Quote unavailable."


class NetworkUnsupported(QuoteError):
    """The active network is not served by the aggregator."""

    kind = ErrorKind.NETWORK_UNSUPPORTED
    user_message = "Quotes and swaps are available on Mainnet only."


class NoRoute(QuoteError):
    """Aggregator found no liquidity path. The user can try a smaller size or another pair."""

    kind = ErrorKind.NO_ROUTE
    user_message = "No route available for this pair/size."


class UpstreamUnavailable(QuoteError):
    """Every aggregator source was unreachable."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    transient = True
    user_message = "Quote service unreachable, retrying."


class SwapBuildError(SwapDeskError):
    """Aggregator could not produce a signable transaction."""

    kind = ErrorKind.SWAP_BUILD_FAILED
    user_message = "Failed to get swap transaction."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        reason: str = "upstream",
        transient: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)
        self.reason = reason
        self.transient = transient

    @classmethod
    def missing_payload(cls) -> "SwapBuildError":
        return cls("Aggregator response is missing the transaction payload", reason="missing_payload")


# =============================================================================
# Execution
# =============================================================================

class ExecutionError(SwapDeskError):
    """Execution could not complete."""

    kind = ErrorKind.SWAP_BUILD_FAILED
    user_message = "Swap failed."


class NoQuote(ExecutionError):
    kind = ErrorKind.NO_QUOTE
    user_message = "No quote available."


class StaleQuote(ExecutionError):
    kind = ErrorKind.STALE_QUOTE
    user_message = "Quote expired, refresh before swapping."


class WalletNotConnected(ExecutionError):
    kind = ErrorKind.WALLET_NOT_CONNECTED
    user_message = "Please connect your wallet first."


class ExecutionInProgress(ExecutionError):
    kind = ErrorKind.EXECUTION_IN_PROGRESS
    user_message = "A swap is already in progress."


class ExecutionNetworkUnsupported(ExecutionError):
    kind = ErrorKind.NETWORK_UNSUPPORTED
    user_message = "Switch to Mainnet to execute swaps."


class SwapBuildFailed(ExecutionError):
    kind = ErrorKind.SWAP_BUILD_FAILED
    user_message = "Failed to build swap transaction."


class UserRejectedSignature(ExecutionError):
    """The wallet holder declined to sign. An expected cancellation, not a fault."""

    kind = ErrorKind.USER_REJECTED_SIGNATURE
    user_message = "Transaction cancelled by user."


class SigningFailed(ExecutionError):
    """The wallet errored for a reason other than the holder declining."""

    kind = ErrorKind.SIGNING_FAILED
    user_message = "Wallet could not sign the transaction."


class BroadcastFailed(ExecutionError):
    """Broadcast errored after signing; the transaction may still land."""

    kind = ErrorKind.BROADCAST_FAILED
    funds_moved = FundsMoved.UNKNOWN
    user_message = "Outcome unknown, check the explorer before retrying."


class ConfirmationTimeout(ExecutionError):
    kind = ErrorKind.CONFIRMATION_TIMEOUT
    funds_moved = FundsMoved.UNKNOWN
    user_message = "Confirmation timed out, check the explorer before retrying."


class TransactionFailed(ExecutionError):
    """The transaction landed but errored on-chain, so the swap did not happen."""

    kind = ErrorKind.TRANSACTION_FAILED
    user_message = "Transaction failed on-chain."


class PersistenceFailed(SwapDeskError):
    """Swap confirmed on-chain but the trade record could not be written."""

    kind = ErrorKind.PERSISTENCE_FAILED
    funds_moved = FundsMoved.YES
    user_message = "Swap succeeded but the trade could not be saved to history."


# =============================================================================
# Collaborator-raised
# =============================================================================

class UserRejected(Exception):
    """Raised by a wallet when the holder declines a signature request."""


class RpcError(Exception):
    """Chain RPC call failed."""


def is_user_rejection(exc: BaseException) -> bool:
    """Wallet adapters often surface rejection as a plain error message."""
    if isinstance(exc, UserRejected):
        return True
    return "user rejected" in str(exc).lower()


__all__ = [
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
    "NoQuote",
    "StaleQuote",
    "WalletNotConnected",
    "ExecutionInProgress",
    "ExecutionNetworkUnsupported",
    "SwapBuildFailed",
    "UserRejectedSignature",
    "SigningFailed",
    "BroadcastFailed",
    "ConfirmationTimeout",
    "TransactionFailed",
    "PersistenceFailed",
    "UserRejected",
    "RpcError",
    "is_user_rejection",
]
