"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from handoff.api.deps import init_repository
from handoff.api.middleware import setup_middleware
from handoff.core.config import Settings
from handoff.core.logging import setup_logging
from handoff.services.storage import build_storage

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The storage engine and the fulfillment repository are built once here
    and shared by every request through ``app.state``. If the engine cannot
    be read the app still starts; routes answer 503 until a load succeeds.
    """
    if settings is None:
        settings = Settings()

    # Configure structured logging
    if not settings.is_testing:
        setup_logging(level=settings.log_level, log_format=settings.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Starting Handoff API (env=%s, storage=%s)",
            settings.app_env,
            app.state.storage.engine,
        )
        yield
        logger.info("Shutting down Handoff API")

    application = FastAPI(
        title="Handoff API",
        description="Three-party item handoff with drop-off and collection checkpoints",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Store settings on app state
    application.state.settings = settings

    storage = build_storage(settings)
    application.state.storage = storage
    init_repository(application)

    # Middleware
    setup_middleware(application)

    # Register routers
    _register_routes(application)

    return application


def _register_routes(app: FastAPI) -> None:
    """Register all API route modules."""
    from handoff.api.routes.checkpoints import router as checkpoints_router
    from handoff.api.routes.fulfillments import router as fulfillments_router
    from handoff.api.routes.health import router as health_router

    app.include_router(health_router, tags=["health"])
    app.include_router(fulfillments_router)
    app.include_router(checkpoints_router)


# Module-level app instance for uvicorn (uvicorn handoff.main:app)
app = create_app()
