"""Fulfillment routes — /api/v1/fulfillments.

Creation, lookups, deletion, the collection checkpoint, and the
administrative status override.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse

from handoff.api.deps import get_repository
from handoff.api.schemas.fulfillments import (
    CheckpointResponse,
    CheckpointToken,
    CollectionRequest,
    FulfillmentCreate,
    FulfillmentCreated,
    FulfillmentResponse,
    StatusAdvance,
)
from handoff.domain.models import STATUS_PATTERN, CheckpointErrorKind, CheckpointResult, checkpoint_payload
from handoff.repositories.fulfillment_repository import FulfillmentError, FulfillmentRepository

router = APIRouter(prefix="/api/v1/fulfillments", tags=["fulfillments"])

CHECKPOINT_STATUS_CODES: dict[CheckpointErrorKind, int] = {
    CheckpointErrorKind.NOT_FOUND: 404,
    CheckpointErrorKind.TOKEN_ALREADY_USED: 409,
    CheckpointErrorKind.SECRET_ALREADY_USED: 409,
    CheckpointErrorKind.INVALID_STATE: 409,
    CheckpointErrorKind.SECRET_MISMATCH: 403,
}


def checkpoint_response(result: CheckpointResult) -> JSONResponse:
    """Render a checkpoint result; failures keep the same body shape."""
    status_code = 200 if result.kind is None else CHECKPOINT_STATUS_CODES[result.kind]
    body = CheckpointResponse.from_result(result)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@router.get("", response_model=list[FulfillmentResponse])
async def list_fulfillments(
    status: str | None = Query(default=None, pattern=STATUS_PATTERN),
    repository: FulfillmentRepository = Depends(get_repository),
) -> list[FulfillmentResponse]:
    """List fulfillments, most recent first."""
    return [FulfillmentResponse.from_domain(f) for f in repository.list_all(status=status)]


@router.post("", status_code=201, response_model=FulfillmentCreated)
async def create_fulfillment(
    body: FulfillmentCreate,
    repository: FulfillmentRepository = Depends(get_repository),
) -> FulfillmentCreated:
    """Start a handoff. The collection secret is only returned here."""
    fulfillment, secret = await repository.create(
        item_description=body.item_description,
        sender_name=body.sender_name,
        intermediary_name=body.intermediary_name,
        recipient_name=body.recipient_name,
    )
    return FulfillmentCreated(fulfillment=FulfillmentResponse.from_domain(fulfillment), secret=secret)


@router.get("/{fulfillment_id}", response_model=FulfillmentResponse)
async def get_fulfillment(
    fulfillment_id: str,
    repository: FulfillmentRepository = Depends(get_repository),
) -> FulfillmentResponse:
    fulfillment = repository.get(fulfillment_id)
    if fulfillment is None:
        raise FulfillmentError("Fulfillment not found", status_code=404)
    return FulfillmentResponse.from_domain(fulfillment)


@router.get("/{fulfillment_id}/checkpoint-token", response_model=CheckpointToken)
async def get_checkpoint_token(
    fulfillment_id: str,
    repository: FulfillmentRepository = Depends(get_repository),
) -> CheckpointToken:
    """Token to encode in the drop-off QR code, while it is still usable."""
    fulfillment = repository.get(fulfillment_id)
    if fulfillment is None:
        raise FulfillmentError("Fulfillment not found", status_code=404)
    if not fulfillment.can_view_checkpoint_token:
        raise FulfillmentError("Checkpoint token is no longer usable", status_code=409)
    return CheckpointToken(token=checkpoint_payload(fulfillment))


@router.post("/{fulfillment_id}/collect", response_model=CheckpointResponse)
async def collect_item(
    fulfillment_id: str,
    body: CollectionRequest,
    repository: FulfillmentRepository = Depends(get_repository),
) -> JSONResponse:
    """Collection checkpoint: the recipient presents the secret."""
    result = await repository.confirm_collection(fulfillment_id, body.secret)
    return checkpoint_response(result)


@router.post("/{fulfillment_id}/advance", response_model=FulfillmentResponse)
async def advance_status(
    fulfillment_id: str,
    body: StatusAdvance,
    repository: FulfillmentRepository = Depends(get_repository),
) -> FulfillmentResponse:
    """Administrative override: move forward without token or secret."""
    fulfillment = repository.advance_status_unchecked(fulfillment_id, body.status)
    if fulfillment is None:
        raise FulfillmentError("Fulfillment not found", status_code=404)
    return FulfillmentResponse.from_domain(fulfillment)


@router.delete("/{fulfillment_id}", status_code=204)
async def delete_fulfillment(
    fulfillment_id: str,
    repository: FulfillmentRepository = Depends(get_repository),
) -> Response:
    if not repository.delete(fulfillment_id):
        raise FulfillmentError("Fulfillment not found", status_code=404)
    return Response(status_code=204)
