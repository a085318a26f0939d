"""
Solana JSON-RPC client.

Broadcasts wallet-signed swap transactions and waits for confirmation.
Also serves the read-only balance queries and raw JSON-RPC forwarding
used by the proxy service.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import settings
from ..core.errors import RpcError
from ..core.interfaces import ChainRpc, ConfirmationStatus
from ..core.models import Network
from ..core.units import from_base_units
from .base import Provider

logger = structlog.stdlib.get_logger(__name__)

SPL_TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"

# Commitment levels in increasing strength
_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


class SolanaRpcClient(Provider, ChainRpc):
    """
    JSON-RPC client for a Solana cluster.

    Usage:
        rpc = SolanaRpcClient(settings.rpc_url_for("mainnet"))
        signature = await rpc.broadcast(signed_tx_base64)
        status = await rpc.await_confirmation(signature, "confirmed")

    Note: transactions are signed by the user's wallet; this client never
    sees keys.
    """

    name = "solana_rpc"

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        poll_interval_s: float = 1.0,
    ):
        self.rpc_url = rpc_url
        self.timeout_s = timeout_s
        self._use_client(client)
        self._poll_interval_s = poll_interval_s

    async def ready(self) -> bool:
        return bool(self.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        try:
            await self._rpc_call("getHealth", [])
            return {"status": "healthy"}
        except RpcError as exc:
            return {"status": "error", "reason": str(exc)}

    async def forward(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Relay a raw JSON-RPC request body and return the node's JSON reply."""
        client = await self._get_client()
        try:
            response = await client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as exc:
            raise RpcError(f"RPC transport error: {exc}") from exc
        if not response.is_success:
            raise RpcError(f"RPC failed: HTTP {response.status_code} {response.text[:200]}")
        try:
            return response.json()
        except ValueError as exc:
            raise RpcError("RPC returned a non-JSON body") from exc

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make an RPC call and return its `result`."""
        data = await self.forward({
            "jsonrpc": "2.0",
            "id": str(uuid.uuid4()),
            "method": method,
            "params": params,
        })
        if data.get("error"):
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise RpcError(f"RPC error: {message}")
        return data.get("result")

    async def broadcast(
        self,
        signed_payload: str,
        *,
        skip_preflight: bool = True,
        max_retries: Optional[int] = None,
    ) -> str:
        """
        Send a signed transaction.

        Args:
            signed_payload: Base64 encoded signed transaction
            skip_preflight: Skip preflight simulation
            max_retries: Node-side rebroadcast attempts

        Returns:
            Transaction signature (base58)
        """
        options: Dict[str, Any] = {
            "encoding": "base64",
            "skipPreflight": skip_preflight,
            "preflightCommitment": settings.solana_commitment,
        }
        if max_retries is not None:
            options["maxRetries"] = max_retries

        signature = await self._rpc_call("sendTransaction", [signed_payload, options])
        if not signature:
            raise RpcError("No signature returned from sendTransaction")
        logger.info("transaction_broadcast", signature=signature)
        return str(signature)

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        result = await self._rpc_call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        values = (result or {}).get("value") or [None]
        return values[0]

    async def await_confirmation(
        self,
        signature: str,
        level: str = "confirmed",
        timeout_s: float = 60.0,
    ) -> ConfirmationStatus:
        """
        Poll until the transaction reaches `level`, errors, or the timeout passes.

        Transient RPC errors during polling are logged and polling continues.
        """
        wanted = _COMMITMENT_RANK.get(level, _COMMITMENT_RANK["confirmed"])
        deadline = time.monotonic() + timeout_s
        interval = self._poll_interval_s

        while True:
            try:
                status = await self.get_signature_status(signature)
            except RpcError as exc:
                logger.warning("confirmation_poll_failed", signature=signature, error=str(exc))
                status = None

            if status is not None:
                if status.get("err") is not None:
                    logger.warning("transaction_failed_on_chain", signature=signature, err=status.get("err"))
                    return ConfirmationStatus.FAILED
                reached = _COMMITMENT_RANK.get(status.get("confirmationStatus") or "", -1)
                if reached >= wanted:
                    return ConfirmationStatus.CONFIRMED

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return ConfirmationStatus.TIMEOUT
            await asyncio.sleep(min(interval, remaining))
            # Backoff, max 5 seconds
            interval = min(interval * 1.5, 5.0)

    async def get_balance(self, address: str) -> Decimal:
        """SOL balance (human units) for an address."""
        result = await self._rpc_call(
            "getBalance",
            [address, {"commitment": settings.solana_commitment}],
        )
        return from_base_units(int((result or {}).get("value", 0)), 9)

    async def get_token_balances(self, owner: str) -> List[Dict[str, Any]]:
        """SPL token balances for an owner."""
        result = await self._rpc_call(
            "getTokenAccountsByOwner",
            [
                owner,
                {"programId": SPL_TOKEN_PROGRAM_ID},
                {"encoding": "jsonParsed", "commitment": settings.solana_commitment},
            ],
        )

        balances = []
        for item in (result or {}).get("value", []):
            info = item.get("account", {}).get("data", {}).get("parsed", {}).get("info", {})
            amount = info.get("tokenAmount", {})
            decimals = int(amount.get("decimals", 0))
            balances.append({
                "mint": info.get("mint"),
                "balance": from_base_units(int(amount.get("amount", 0)), decimals),
                "decimals": decimals,
            })
        return balances


_rpc_clients: Dict[Network, SolanaRpcClient] = {}


def get_rpc_client(network: Network = Network.MAINNET) -> SolanaRpcClient:
    """Get the per-network RPC client built from settings."""
    if network not in _rpc_clients:
        _rpc_clients[network] = SolanaRpcClient(settings.rpc_url_for(network.value))
    return _rpc_clients[network]


__all__ = [
    "SolanaRpcClient",
    "SPL_TOKEN_PROGRAM_ID",
    "get_rpc_client",
]
