"""
Access logging for the proxy routes.

Each request gets a short correlation id (taken from x-request-id when the
caller sends one) that is bound into every log line emitted while serving
it, including the upstream client logs, and echoed back in the response.
"""

import time
import uuid
from typing import Iterable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

REQUEST_ID_HEADER = "x-request-id"

logger = structlog.stdlib.get_logger("swapdesk.http")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One `http_request` line per call. Successful polls of quiet paths log at debug."""

    def __init__(self, app: ASGIApp, quiet_paths: Iterable[str] = ("/healthz",)) -> None:
        super().__init__(app)
        self.quiet_paths = frozenset(quiet_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            self._log(request, 500, started)
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        self._log(request, response.status_code, started)
        return response

    def _log(self, request: Request, status: int, started: float) -> None:
        if status >= 500:
            log = logger.error
        elif status >= 400:
            log = logger.warning
        elif request.url.path in self.quiet_paths:
            log = logger.debug
        else:
            log = logger.info

        log(
            "http_request",
            method=request.method,
            path=request.url.path,
            network=request.query_params.get("network"),
            status=status,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
