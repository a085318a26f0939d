"""
Jupiter Token API provider.

Looks up token metadata (symbol, name, decimals) by mint address. Results
are cached by the token metadata service, not here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import structlog

from ..config import settings
from ..core.units import DEFAULT_DECIMALS
from .base import Provider

logger = structlog.stdlib.get_logger(__name__)


@dataclass(frozen=True)
class TokenMetadata:
    """Parsed token metadata."""

    mint: str
    symbol: str
    name: str
    decimals: int
    logo_uri: Optional[str] = None
    decimals_confirmed: bool = True    # False when decimals is the native default

    @classmethod
    def from_api(cls, data: Dict[str, Any], mint: str) -> "TokenMetadata":
        decimals = data.get("decimals")
        return cls(
            mint=data.get("address") or mint,
            symbol=data.get("symbol") or mint[:4].upper(),
            name=data.get("name") or "Unknown Token",
            decimals=int(decimals) if decimals is not None else DEFAULT_DECIMALS,
            logo_uri=data.get("logoURI") or None,
            decimals_confirmed=decimals is not None,
        )

    @classmethod
    def unknown(cls, mint: str) -> "TokenMetadata":
        return cls(
            mint=mint,
            symbol=mint[:4].upper() + "...",
            name="Unknown Token",
            decimals=DEFAULT_DECIMALS,
            decimals_confirmed=False,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenMetadata":
        return cls(
            mint=data["mint"],
            symbol=data.get("symbol", ""),
            name=data.get("name", ""),
            decimals=int(data.get("decimals", DEFAULT_DECIMALS)),
            logo_uri=data.get("logo_uri"),
            decimals_confirmed=bool(data.get("decimals_confirmed", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mint": self.mint,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "logo_uri": self.logo_uri,
            "decimals_confirmed": self.decimals_confirmed,
        }


class JupiterTokenProvider(Provider):
    """Token metadata lookups. No API key required."""

    name = "jupiter_tokens"
    timeout_s = 10

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = (base_url or settings.jupiter_token_api_url).rstrip("/")
        self._use_client(client)

    async def ready(self) -> bool:
        return bool(self._base_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "Token API URL not configured"}
        return {"status": "healthy", "base_url": self._base_url}

    async def fetch_token(self, mint: str) -> Optional[TokenMetadata]:
        """
        Look up token metadata by mint address.

        Tries the single-token endpoint first, then the verified search.

        Returns:
            TokenMetadata if found, None otherwise.
        """
        client = await self._get_client()

        try:
            resp = await client.get(f"{self._base_url}/token/{mint}")
            if resp.is_success:
                data = resp.json()
                if isinstance(data, dict) and data:
                    return TokenMetadata.from_api(data, mint)

            resp = await client.get(
                f"{self._base_url}/tokens",
                params={"tags": "verified", "search": mint},
            )
            if resp.is_success:
                tokens = resp.json()
                for item in tokens if isinstance(tokens, list) else []:
                    if item.get("address") == mint:
                        return TokenMetadata.from_api(item, mint)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("token_metadata_fetch_failed", mint=mint, error=str(exc))

        return None
