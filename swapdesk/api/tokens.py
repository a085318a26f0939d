from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..services.token_metadata import TokenMetadataCache, get_token_cache

router = APIRouter(prefix="/tokens")


@router.get("/recent")
async def recent_tokens(cache: TokenMetadataCache = Depends(get_token_cache)) -> Dict[str, Any]:
    return {"tokens": cache.recent_tokens()}


@router.get("/{mint}")
async def token_metadata(mint: str, cache: TokenMetadataCache = Depends(get_token_cache)) -> Dict[str, Any]:
    """Token metadata; unknown mints come back with default decimals and decimals_confirmed false."""
    meta = await cache.get(mint)
    return meta.to_dict()
