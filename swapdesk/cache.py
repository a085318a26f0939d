"""Async-safe in-process cache with per-entry expiry and LRU eviction."""

import asyncio
import time
from collections import OrderedDict
from typing import Generic, List, Optional, Tuple, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """
    Entries expire `ttl` seconds after they were set; when full, the least
    recently read or written entry is dropped first.
    """

    def __init__(self, default_ttl: float = 300, max_size: int = 1000):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.default_ttl = default_ttl
        self.max_size = max_size
        # key -> (value, expires_at); order is least to most recently used
        self._entries: "OrderedDict[str, Tuple[V, float]]" = OrderedDict()
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[V]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.time() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    async def set(self, key: str, value: V, ttl: Optional[float] = None) -> None:
        async with self._lock:
            self._entries[key] = (value, time.time() + (ttl or self.default_ttl))
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    async def items(self) -> List[Tuple[str, V]]:
        """Unexpired entries, least recently used first."""
        async with self._lock:
            now = time.time()
            return [(key, value) for key, (value, expires_at) in self._entries.items() if expires_at > now]

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
