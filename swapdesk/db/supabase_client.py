"""
Supabase client for the terminal's backend tables.

Talks to the Supabase REST (PostgREST) interface over HTTP. Covers trade
history, the per-wallet watchlist, price alerts, the signal feed, and
wallet profiles.
"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import structlog

from swapdesk.config import settings
from swapdesk.core.interfaces import TradeStore
from swapdesk.core.models import TradeRecord

logger = structlog.stdlib.get_logger(__name__)


class SupabaseError(Exception):
    """Base exception for Supabase errors."""
    pass


class SupabaseAuthError(SupabaseError):
    """Authentication error when calling Supabase."""
    pass


class SupabaseClient(TradeStore):
    """
    Async client for the terminal's Supabase tables.

    Example usage:
        client = SupabaseClient(
            url="https://your-project.supabase.co",
            key="your-anon-key",
        )

        await client.create_trade_record(record)
        trades = await client.list_trade_records("wallet...", limit=20)
        await client.add_to_watchlist("wallet...", "mint...", "BONK")
    """

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = (url or settings.supabase_url or "").rstrip("/")
        self.key = key or settings.supabase_key
        self.timeout = timeout

        if not self.url:
            raise SupabaseError("SUPABASE_URL is required")

        self._client = client

    @property
    def headers(self) -> Dict[str, str]:
        """Get headers for Supabase REST requests."""
        headers = {"Content-Type": "application/json"}
        if self.key:
            headers["apikey"] = self.key
            headers["Authorization"] = f"Bearer {self.key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        """
        Execute a REST call against a table.

        Returns:
            Decoded JSON body (list of rows) or None for empty responses

        Raises:
            SupabaseError: If the request fails
        """
        client = await self._get_client()
        headers = self.headers
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = await client.request(
                method,
                f"{self.url}/rest/v1/{table}",
                params=params,
                json=json,
                headers=headers,
            )

            if response.status_code in (401, 403):
                raise SupabaseAuthError("Invalid or missing Supabase key")

            response.raise_for_status()

            if not response.content:
                return None
            return response.json()

        except httpx.HTTPStatusError as e:
            raise SupabaseError(f"{method} {table} failed: {e.response.text}") from e
        except httpx.RequestError as e:
            raise SupabaseError(f"Request failed: {str(e)}") from e

    # =========================================================================
    # Trades
    # =========================================================================

    async def create_trade_record(self, record: TradeRecord) -> None:
        await self._request("POST", "trades", json=record.to_row(), prefer="return=minimal")

    async def list_trade_records(self, wallet_address: str, limit: int = 20) -> List[TradeRecord]:
        rows = await self._request(
            "GET",
            "trades",
            params={
                "select": "*",
                "wallet_address": f"eq.{wallet_address}",
                "order": "created_at.desc",
                "limit": str(limit),
            },
        )
        return [TradeRecord.from_row(row) for row in rows or []]

    # =========================================================================
    # Watchlist
    # =========================================================================

    async def get_watchlist(self, wallet_address: str) -> List[Dict[str, Any]]:
        rows = await self._request(
            "GET",
            "watchlist",
            params={
                "select": "*",
                "wallet_address": f"eq.{wallet_address}",
                "order": "added_at.desc",
            },
        )
        return rows or []

    async def add_to_watchlist(self, wallet_address: str, token_mint: str, symbol: str) -> None:
        """Upsert: one entry per wallet and mint."""
        await self._request(
            "POST",
            "watchlist",
            params={"on_conflict": "wallet_address,token_mint"},
            json={"wallet_address": wallet_address, "token_mint": token_mint, "symbol": symbol},
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def remove_from_watchlist(self, wallet_address: str, token_mint: str) -> None:
        await self._request(
            "DELETE",
            "watchlist",
            params={"wallet_address": f"eq.{wallet_address}", "token_mint": f"eq.{token_mint}"},
        )

    # =========================================================================
    # Alerts
    # =========================================================================

    async def get_alerts(self, wallet_address: str) -> List[Dict[str, Any]]:
        rows = await self._request(
            "GET",
            "alerts",
            params={
                "select": "*",
                "wallet_address": f"eq.{wallet_address}",
                "order": "created_at.desc",
            },
        )
        return rows or []

    async def create_alert(
        self,
        wallet_address: str,
        token_mint: str,
        target_price: float,
        direction: str,
        note: Optional[str] = None,
    ) -> None:
        if direction not in ("above", "below"):
            raise ValueError(f"Alert direction must be 'above' or 'below', got {direction!r}")
        if target_price <= 0:
            raise ValueError("Alert target price must be positive")
        await self._request(
            "POST",
            "alerts",
            json={
                "wallet_address": wallet_address,
                "token_mint": token_mint,
                "target_price": target_price,
                "direction": direction,
                "note": note,
            },
            prefer="return=minimal",
        )

    async def update_alert(
        self,
        alert_id: str,
        *,
        is_active: Optional[bool] = None,
        is_triggered: Optional[bool] = None,
    ) -> None:
        updates = {
            key: value
            for key, value in (("is_active", is_active), ("is_triggered", is_triggered))
            if value is not None
        }
        if not updates:
            return
        await self._request("PATCH", "alerts", params={"id": f"eq.{alert_id}"}, json=updates)

    async def delete_alert(self, alert_id: str) -> None:
        await self._request("DELETE", "alerts", params={"id": f"eq.{alert_id}"})

    # =========================================================================
    # Signals (baseline feed)
    # =========================================================================

    async def get_signals(self) -> List[Dict[str, Any]]:
        """Pinned first, then newest first."""
        rows = await self._request(
            "GET",
            "signals",
            params={"select": "*", "order": "is_pinned.desc,created_at.desc"},
        )
        return rows or []

    async def create_signal(
        self,
        text: str,
        *,
        tags: Optional[List[str]] = None,
        token_mint: Optional[str] = None,
        action: Optional[str] = None,
        prefill_size: Optional[float] = None,
        is_pinned: bool = False,
    ) -> None:
        if action is not None and action not in ("BUY", "SELL", "WATCH"):
            raise ValueError(f"Unknown signal action: {action!r}")
        row = {
            "text": text,
            "tags": tags,
            "token_mint": token_mint,
            "action": action,
            "prefill_size": prefill_size,
            "is_pinned": is_pinned,
        }
        await self._request(
            "POST",
            "signals",
            json={key: value for key, value in row.items() if value is not None},
            prefer="return=minimal",
        )

    async def update_signal(self, signal_id: str, **updates: Any) -> None:
        allowed = {"text", "tags", "token_mint", "action", "prefill_size", "is_pinned"}
        unknown = set(updates) - allowed
        if unknown:
            raise ValueError(f"Unknown signal fields: {sorted(unknown)}")
        if not updates:
            return
        await self._request("PATCH", "signals", params={"id": f"eq.{signal_id}"}, json=updates)

    async def delete_signal(self, signal_id: str) -> None:
        await self._request("DELETE", "signals", params={"id": f"eq.{signal_id}"})

    # =========================================================================
    # Profiles
    # =========================================================================

    async def ensure_profile(self, wallet_address: str) -> None:
        """Create the wallet's profile row if missing."""
        existing = await self._request(
            "GET",
            "profiles",
            params={"select": "*", "wallet_address": f"eq.{wallet_address}", "limit": "1"},
        )
        if existing:
            return
        try:
            await self._request(
                "POST",
                "profiles",
                json={"wallet_address": wallet_address},
                prefer="return=minimal",
            )
        except SupabaseError as exc:
            if "duplicate" not in str(exc):
                logger.error("profile_create_failed", wallet=wallet_address, error=str(exc))


class InMemoryTradeStore(TradeStore):
    """Trade history kept in process, for local runs without a backend."""

    def __init__(self) -> None:
        self._records: List[TradeRecord] = []
        self._lock = asyncio.Lock()

    async def create_trade_record(self, record: TradeRecord) -> None:
        async with self._lock:
            self._records.append(record)

    async def list_trade_records(self, wallet_address: str, limit: int = 20) -> List[TradeRecord]:
        async with self._lock:
            records = [r for r in self._records if r.wallet_address == wallet_address]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit]


# Singleton instance
_trade_store: Optional[TradeStore] = None


def get_trade_store() -> TradeStore:
    """Supabase when configured, otherwise an in-process store."""
    global _trade_store
    if _trade_store is None:
        _trade_store = SupabaseClient() if settings.has_supabase else InMemoryTradeStore()
    return _trade_store
