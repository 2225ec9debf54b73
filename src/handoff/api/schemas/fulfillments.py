"""Fulfillment request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from handoff.domain.models import STATUS_PATTERN, CheckpointResult, Fulfillment


class FulfillmentCreate(BaseModel):
    """Schema for starting a new handoff."""

    item_description: str = Field(min_length=1, max_length=200)
    sender_name: str = Field(min_length=1, max_length=100)
    intermediary_name: str = Field(min_length=1, max_length=100)
    recipient_name: str = Field(min_length=1, max_length=100)


class DropOffRequest(BaseModel):
    """Scanned or typed transfer token."""

    token: str = Field(min_length=1)


class CollectionRequest(BaseModel):
    secret: str = Field(min_length=1)


class StatusAdvance(BaseModel):
    """Administrative override without checkpoint credentials."""

    status: str = Field(pattern=STATUS_PATTERN)


class TimelineStageResponse(BaseModel):
    stage: str
    title: str
    description: str
    completed: bool
    timestamp: datetime | None = None


class FulfillmentResponse(BaseModel):
    """Fulfillment as shown to the presentation layer (no secret hash)."""

    id: str
    item_description: str
    sender_name: str
    intermediary_name: str
    recipient_name: str
    status: str
    status_label: str
    active_stage: str | None = None
    transfer_token_consumed: bool
    secret_consumed: bool
    can_view_checkpoint_token: bool
    created_at: datetime
    timeline: list[TimelineStageResponse]

    @classmethod
    def from_domain(cls, fulfillment: Fulfillment) -> FulfillmentResponse:
        return cls(
            **fulfillment.model_dump(exclude={"secret_hash"}),
            status_label=fulfillment.status_label,
            active_stage=fulfillment.active_stage,
            can_view_checkpoint_token=fulfillment.can_view_checkpoint_token,
        )


class FulfillmentCreated(BaseModel):
    """Creation response; ``secret`` is disclosed here and never again."""

    fulfillment: FulfillmentResponse
    secret: str


class CheckpointToken(BaseModel):
    """Payload to encode in the drop-off checkpoint artifact."""

    token: str


class CheckpointResponse(BaseModel):
    success: bool
    message: str
    kind: str | None = None
    fulfillment: FulfillmentResponse | None = None

    @classmethod
    def from_result(cls, result: CheckpointResult) -> CheckpointResponse:
        return cls(
            success=result.success,
            message=result.message,
            kind=result.kind.value if result.kind is not None else None,
            fulfillment=(
                FulfillmentResponse.from_domain(result.fulfillment)
                if result.fulfillment is not None
                else None
            ),
        )
