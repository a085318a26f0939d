from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException, Query

from ..core.errors import RpcError
from ..core.models import Network
from ..providers.solana import get_rpc_client

router = APIRouter(prefix="/solana")


@router.post("/rpc")
async def solana_rpc(
    payload: Dict[str, Any] = Body(..., description="JSON-RPC request body"),
    network: Network = Query(Network.MAINNET),
) -> Dict[str, Any]:
    """Relay a JSON-RPC call to the cluster's node; the node's reply is returned as-is."""
    if not payload.get("method"):
        raise HTTPException(status_code=400, detail="JSON-RPC body requires a method")

    rpc = get_rpc_client(network)
    try:
        return await rpc.forward(payload)
    except RpcError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
