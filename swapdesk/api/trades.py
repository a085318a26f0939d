from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.interfaces import TradeStore
from ..db.supabase_client import SupabaseError, get_trade_store

router = APIRouter(prefix="/trades")


@router.get("/{wallet_address}")
async def trade_history(
    wallet_address: str,
    limit: int = Query(20, ge=1, le=100),
    store: TradeStore = Depends(get_trade_store),
) -> Dict[str, Any]:
    """Recent trades for a wallet, newest first."""
    try:
        records = await store.list_trade_records(wallet_address, limit=limit)
    except SupabaseError as exc:
        raise HTTPException(status_code=502, detail=f"Failed to load trade history: {exc}")

    return {
        "wallet": wallet_address,
        "trades": [record.to_row() for record in records],
        "total": len(records),
    }
