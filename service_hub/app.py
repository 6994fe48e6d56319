#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Hosts the health surface and owns the service lifecycle: clients are brought
up before the first request and torn down, within SHUTDOWN_TIMEOUT, on exit.

Run with:
    uvicorn service_hub.app:app

Author: Platform Team
Date: 2026-10-02
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from service_hub.api.health import router as health_router
from service_hub.core.config.settings import get_settings
from service_hub.core.logging.logger import get_logger, setup_logging
from service_hub.services.lifecycle import initialize_services, shutdown_services

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle (startup and shutdown).
    """
    settings = get_settings()

    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)

    logger.info(
        "Starting service hub",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    # Startup failures propagate and abort the server
    await initialize_services(settings)
    logger.info("Application startup complete")

    try:
        yield
    finally:
        logger.info("Shutting down application")
        try:
            await asyncio.wait_for(shutdown_services(), timeout=settings.app.SHUTDOWN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.error(
                "Shutdown did not finish before the deadline",
                timeout=settings.app.SHUTDOWN_TIMEOUT,
            )
        logger.info("Application shutdown complete")


# ============================================================================
# Application Factory
# ============================================================================


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Event bus and cache orchestration service",
        lifespan=lifespan,
    )

    app.include_router(health_router)

    return app


app = create_app()
