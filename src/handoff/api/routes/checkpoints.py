"""Checkpoint routes — /api/v1/checkpoints.

The drop-off scanner posts whatever it read from the QR code (or what the
intermediary typed); the token alone identifies the fulfillment.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from handoff.api.deps import get_repository
from handoff.api.routes.fulfillments import checkpoint_response
from handoff.api.schemas.fulfillments import CheckpointResponse, DropOffRequest
from handoff.repositories.fulfillment_repository import FulfillmentRepository

router = APIRouter(prefix="/api/v1/checkpoints", tags=["checkpoints"])


@router.post("/drop-off", response_model=CheckpointResponse)
async def confirm_drop_off(
    body: DropOffRequest,
    repository: FulfillmentRepository = Depends(get_repository),
) -> JSONResponse:
    """Drop-off checkpoint: consume the single-use transfer token."""
    return checkpoint_response(repository.confirm_drop_off(body.token))
