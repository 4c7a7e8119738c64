"""
Membership backend FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from membership import db
from membership.config import settings
from membership.routes import auth_routes
from membership.services.container import Services, build_services

logger = logging.getLogger(__name__)


# Background task for cleanup
async def cleanup_task(services: Services, interval_seconds: int | None = None):
    """
    Background task to drop dead OTP credentials and elapsed rate limit windows.

    Runs every CLEANUP_INTERVAL_SECONDS.
    """
    interval = interval_seconds or settings.CLEANUP_INTERVAL_SECONDS

    while True:
        try:
            deleted_count = await services.credentials.cleanup_expired()
            if deleted_count > 0:
                logger.info("Cleaned up %d expired OTP credentials", deleted_count)

            services.rate_limiter.cleanup_old_entries()

        except Exception:
            logger.exception("Error in cleanup task")

        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Handles startup and shutdown logic:
    - Initialize database pool (postgres backend)
    - Start delivery queue and cleanup background tasks
    - Deliver queued messages and close the pool on shutdown
    """
    # Startup
    if settings.STORE_BACKEND == "postgres":
        await db.init_pool()
        logger.info("Database pool initialized")

    services: Services = app.state.services
    delivery_handle = asyncio.create_task(services.delivery.run())
    cleanup_handle = asyncio.create_task(cleanup_task(services))
    logger.info("Background tasks started")

    yield

    # Shutdown
    cleanup_handle.cancel()
    try:
        await cleanup_handle
    except asyncio.CancelledError:
        logger.info("Background cleanup task stopped")

    delivery_handle.cancel()
    try:
        await delivery_handle
    except asyncio.CancelledError:
        pass
    await services.delivery.drain()
    logger.info("Delivery queue drained")

    if settings.STORE_BACKEND == "postgres":
        await db.close_pool()
        logger.info("Database pool closed")


def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the application around a service graph.

    Args:
        services: Pre-built services (tests), or None to build from settings
    """
    application = FastAPI(
        title="Membership",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    application.state.services = services or build_services()

    # Register routes
    application.include_router(auth_routes.router)

    @application.get("/health")
    async def health():
        """Health check endpoint for uptime monitoring."""
        return {"status": "ok"}

    return application


app = create_app()
