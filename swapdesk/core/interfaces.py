"""
Collaborator contracts the pipeline depends on.

Wallet signing, chain RPC, trade persistence and token metadata live
outside the core; these ABCs are what the controllers call.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from .models import TradeRecord


class ConfirmationStatus(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class WalletSigner(ABC):
    """Browser/hardware wallet capability."""

    @abstractmethod
    def is_connected(self) -> bool:
        pass

    @abstractmethod
    def public_address(self) -> Optional[str]:
        pass

    @abstractmethod
    async def sign(self, transaction_payload: str) -> str:
        """Return the signed transaction (base64). Raises UserRejected when declined."""
        pass


class ChainRpc(ABC):
    """Broadcast and confirmation of signed transactions."""

    @abstractmethod
    async def broadcast(
        self,
        signed_payload: str,
        *,
        skip_preflight: bool = True,
        max_retries: Optional[int] = None,
    ) -> str:
        """Submit a signed transaction and return its signature."""
        pass

    @abstractmethod
    async def await_confirmation(
        self,
        signature: str,
        level: str = "confirmed",
        timeout_s: float = 60.0,
    ) -> ConfirmationStatus:
        pass


class TradeStore(ABC):
    """Trade history persistence."""

    @abstractmethod
    async def create_trade_record(self, record: TradeRecord) -> None:
        pass

    @abstractmethod
    async def list_trade_records(self, wallet_address: str, limit: int = 20) -> List[TradeRecord]:
        """Newest first."""
        pass


class TokenMetadataSource(ABC):
    @abstractmethod
    async def resolve_decimals(self, token: str) -> int:
        """Decimal count for a token, falling back to the native default on a miss."""
        pass
