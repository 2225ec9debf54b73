"""Dependency injection for FastAPI routes."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request

from handoff.repositories.fulfillment_repository import FulfillmentError, FulfillmentRepository
from handoff.services.storage import StorageError

logger = logging.getLogger(__name__)


def init_repository(app: FastAPI) -> FulfillmentRepository | None:
    """Load the collection from ``app.state.storage`` into a repository.

    Leaves ``app.state.repository`` as ``None`` when the engine cannot be
    read; the API keeps serving health checks and retries on the next request.
    """
    settings = app.state.settings
    try:
        repository = FulfillmentRepository(
            app.state.storage,
            storage_key=settings.storage_key,
            allow_unchecked_advance=settings.allow_unchecked_advance,
        )
    except StorageError:
        logger.warning(
            "Could not read fulfillment storage (%s); API will start without it",
            app.state.storage.engine,
            exc_info=True,
        )
        repository = None
    app.state.repository = repository
    return repository


def get_repository(request: Request) -> FulfillmentRepository:
    """Provide the shared repository, loading it if startup could not."""
    repository = getattr(request.app.state, "repository", None)
    if repository is None and getattr(request.app.state, "storage", None) is not None:
        repository = init_repository(request.app)
    if repository is None:
        raise FulfillmentError("Fulfillment storage not initialized", status_code=503)
    return repository
