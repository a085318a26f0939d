from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import health, jupiter, solana_rpc, tokens, trades
from .config import settings
from .core.models import Network
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware
from .services.token_metadata import get_token_cache

setup_logging()
logger = structlog.stdlib.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    cache = get_token_cache()
    await cache.start()
    logger.info("service_started", quote_endpoints=len(settings.jupiter_quote_endpoints))
    try:
        yield
    finally:
        await cache.stop()
        logger.info("service_stopped")


# Create FastAPI app
app = FastAPI(
    title="SwapDesk API",
    description="Quote and swap proxy for the Solana swap terminal",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(jupiter.router, tags=["Jupiter"])
app.include_router(solana_rpc.router, tags=["Solana"])
app.include_router(tokens.router, tags=["Tokens"])
app.include_router(trades.router, tags=["Trades"])


@app.get("/")
async def root():
    """Service info and the upstreams it fronts"""
    return {
        "name": app.title,
        "version": __version__,
        "quote_endpoints": settings.jupiter_quote_endpoints,
        "networks": [network.value for network in Network],
        "docs": app.docs_url,
        "health": "/healthz",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "swapdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
