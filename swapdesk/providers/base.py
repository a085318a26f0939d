from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx


class Provider(ABC):
    """
    An upstream HTTP service (aggregator, token API, RPC node).

    Subclasses share one lazily created AsyncClient. A client passed in by the
    caller (tests use httpx.MockTransport) is borrowed and never closed here.
    """

    name: str
    timeout_s: float = 10
    _client: Optional[httpx.AsyncClient] = None
    _owns_client: bool = True

    def _use_client(self, client: Optional[httpx.AsyncClient]) -> None:
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    @abstractmethod
    async def ready(self) -> bool:
        """Whether the provider is configured to serve requests"""

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
