"""
Token metadata cache.

Holds per-session token metadata and the recently used token list. Storage
is injected so the cache can persist across sessions (JSON file) or stay in
memory; the lifecycle is explicit via start() and stop().
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

import structlog

from ..cache import TTLCache
from ..config import settings
from ..core.interfaces import TokenMetadataSource
from ..core.models import NATIVE_SOL_MINT, USDC_MINT, USDC_MINT_DEVNET
from ..providers.jupiter_tokens import JupiterTokenProvider, TokenMetadata

logger = structlog.stdlib.get_logger(__name__)

KNOWN_TOKENS: Dict[str, TokenMetadata] = {
    NATIVE_SOL_MINT: TokenMetadata(mint=NATIVE_SOL_MINT, symbol="SOL", name="Solana", decimals=9),
    USDC_MINT: TokenMetadata(mint=USDC_MINT, symbol="USDC", name="USD Coin", decimals=6),
    USDC_MINT_DEVNET: TokenMetadata(mint=USDC_MINT_DEVNET, symbol="USDC", name="USD Coin (Devnet)", decimals=6),
}

MAX_RECENT_TOKENS = 10


class MetadataStorage(ABC):
    """Where the cache persists its snapshot between sessions."""

    @abstractmethod
    def load(self) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def save(self, snapshot: Dict[str, Any]) -> None:
        pass


class InMemoryStorage(MetadataStorage):
    def __init__(self) -> None:
        self.snapshot: Optional[Dict[str, Any]] = None

    def load(self) -> Optional[Dict[str, Any]]:
        return self.snapshot

    def save(self, snapshot: Dict[str, Any]) -> None:
        self.snapshot = snapshot


class JsonFileStorage(MetadataStorage):
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("token_cache_load_failed", path=str(self.path), error=str(exc))
            return None

    def save(self, snapshot: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(snapshot), encoding="utf-8")


class TokenMetadataCache(TokenMetadataSource):
    """Cached token metadata with a fetch-through to the token API."""

    def __init__(
        self,
        storage: Optional[MetadataStorage] = None,
        provider: Optional[JupiterTokenProvider] = None,
        *,
        ttl_seconds: Optional[int] = None,
        max_size: int = 5000,
    ) -> None:
        self._storage = storage or InMemoryStorage()
        self._provider = provider or JupiterTokenProvider()
        self._ttl = ttl_seconds or settings.token_cache_ttl_seconds
        self._entries = TTLCache(default_ttl=self._ttl, max_size=max_size)
        self._recent: Deque[str] = deque(maxlen=MAX_RECENT_TOKENS)
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Load persisted entries younger than the TTL."""
        snapshot = self._storage.load() or {}
        timestamp = float(snapshot.get("timestamp", 0) or 0)
        loaded = 0
        if time.time() - timestamp < self._ttl:
            for item in (snapshot.get("data") or {}).values():
                try:
                    meta = TokenMetadata.from_dict(item)
                except (KeyError, TypeError, ValueError):
                    continue
                await self._entries.set(meta.mint, meta)
                loaded += 1
            for mint in snapshot.get("recent") or []:
                self._recent.append(mint)
        self._started = True
        logger.debug("token_cache_started", entries=loaded)

    async def stop(self) -> None:
        """Flush to storage and drop in-memory state."""
        if not self._started:
            return
        await self.flush()
        await self._entries.clear()
        self._recent.clear()
        self._started = False

    async def flush(self) -> None:
        data = {mint: meta.to_dict() for mint, meta in await self._entries.items()}
        self._storage.save({"timestamp": time.time(), "data": data, "recent": list(self._recent)})

    async def get(self, mint: str) -> TokenMetadata:
        """Metadata for a mint; unknown tokens get a minimal entry with default decimals."""
        known = KNOWN_TOKENS.get(mint)
        if known is not None:
            return known

        cached = await self._entries.get(mint)
        if cached is not None:
            return cached

        meta = await self._provider.fetch_token(mint)
        if meta is None:
            meta = TokenMetadata.unknown(mint)
            logger.info("token_decimals_defaulted", mint=mint, decimals=meta.decimals)
        await self._entries.set(mint, meta)
        return meta

    async def resolve_decimals(self, token: str) -> int:
        return (await self.get(token)).decimals

    def mark_used(self, mint: str) -> None:
        if not mint:
            return
        if mint in self._recent:
            self._recent.remove(mint)
        self._recent.appendleft(mint)

    def recent_tokens(self) -> List[str]:
        return list(self._recent)


def build_token_cache() -> TokenMetadataCache:
    storage: MetadataStorage = (
        JsonFileStorage(settings.token_cache_path) if settings.token_cache_path else InMemoryStorage()
    )
    return TokenMetadataCache(storage=storage)


# Singleton instance
_token_cache: Optional[TokenMetadataCache] = None


def get_token_cache() -> TokenMetadataCache:
    """Process-wide cache; the HTTP service starts and stops it with the app."""
    global _token_cache
    if _token_cache is None:
        _token_cache = build_token_cache()
    return _token_cache
