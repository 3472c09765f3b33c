"""
dockbot - Telegram-driven bot deployment service

FastAPI application entry point.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from dockbot import __version__
from dockbot.app.api.webhooks import telegram_router
from dockbot.app.dependencies import get_settings, initialize_services, shutdown_services

# Configure logging
logging.basicConfig(
    level=os.getenv("DOCKBOT_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting dockbot services...")
    try:
        await initialize_services()
        logger.info("dockbot services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise

    yield

    # Shutdown
    logger.info("Shutting down dockbot services...")
    try:
        await shutdown_services()
        logger.info("dockbot services shut down successfully")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)


settings = get_settings()

app = FastAPI(
    title="dockbot",
    description="Deploy Telegram bots as Docker containers from a Telegram chat",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)

app.include_router(telegram_router, prefix="/api/v1")


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint with service info."""
    return {
        "service": settings.service_name,
        "version": __version__,
        "status": "running",
    }


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, Any]:
    """
    Health check endpoint.

    Reports registered transports and tracked deployment counts. The
    container runtime is not contacted.
    """
    try:
        from dockbot.app.dependencies import get_ports, get_registry
        from dockbot.pipeline import get_transport_registry

        registry = get_registry()
        ports = get_ports()

        return {
            "status": "healthy",
            "transports": get_transport_registry().channels,
            "deployments": len(registry),
            "ports_in_use": len(ports.reserved),
            "ports_capacity": ports.capacity,
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }


@app.get("/api/v1/deployments", tags=["deployments"])
async def list_deployments() -> dict[str, Any]:
    """List tracked deployments. Credentials are masked."""
    from dockbot.app.dependencies import get_lifecycle

    records = await get_lifecycle().list()
    return {
        "deployments": [r.to_dict() for r in records],
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dockbot.app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("DOCKBOT_PORT", "8000")),
        reload=settings.debug,
    )
