"""
FastAPI application entry point for the sats price converter.

Wires together the application components: CORS middleware, route
registration and the shared BTC/USD rate provider.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from satsconv.config import settings
from satsconv.rate_client import RateProvider
from satsconv.routes.convert import router as convert_router

# ---------------------------------------------------------------------------
# Logging — configured at module level before anything else runs
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan — manages startup and shutdown of long-lived resources
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Create the RateProvider on startup and close its HTTP client on shutdown.

    The provider is shared across requests, but each conversion pass fetches
    its own rate, so no rate outlives the pass that asked for it.
    """
    logger.info("Starting sats price converter (enabled=%s) …", settings.enabled)

    rate_provider: RateProvider = RateProvider()
    app.state.rate_provider = rate_provider

    logger.info("Sats price converter startup complete — serving requests")

    yield  # application runs here

    logger.info("Shutting down sats price converter …")
    await rate_provider.close()
    logger.info("Sats price converter shutdown complete")


# ---------------------------------------------------------------------------
# Application instance
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Sats Price Converter",
    description="Rewrites fiat prices in HTML as satoshi / bitcoin amounts",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(convert_router, prefix="/api/convert", tags=["convert"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------
@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Return service liveness status."""
    return {"status": "ok", "service": "satsconv", "enabled": str(settings.enabled).lower()}
