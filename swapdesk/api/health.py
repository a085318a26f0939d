import asyncio
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..config import settings
from ..core.models import Network
from ..providers.jupiter import JupiterAggregatorClient, get_aggregator_client
from ..providers.solana import SolanaRpcClient, get_rpc_client

router = APIRouter()


def get_mainnet_rpc() -> SolanaRpcClient:
    return get_rpc_client(Network.MAINNET)


@router.get("/healthz")
async def health_check(
    aggregator: JupiterAggregatorClient = Depends(get_aggregator_client),
    rpc: SolanaRpcClient = Depends(get_mainnet_rpc),
) -> Dict[str, Any]:
    """Upstream status. Unconfigured optional services count as unavailable, not failing."""
    jupiter, solana = await asyncio.gather(aggregator.health_check(), rpc.health_check())
    providers = {
        "jupiter": jupiter,
        "solana_rpc": solana,
        "supabase": {"status": "healthy" if settings.has_supabase else "unavailable"},
    }

    failing = [name for name, status in providers.items() if status["status"] not in ("healthy", "unavailable")]
    healthy = [name for name, status in providers.items() if status["status"] == "healthy"]

    return {
        "status": "degraded" if failing or not healthy else "healthy",
        "providers": providers,
        "available_providers": len(healthy),
        "total_providers": len(providers),
    }
