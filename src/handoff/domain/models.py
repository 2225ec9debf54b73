"""Fulfillment aggregate, its timeline, and checkpoint results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from handoff.core.constants import (
    STAGE_COLLECTED,
    STAGE_CREATED,
    STAGE_DROPPED_OFF,
    STATUS_COMPLETED,
    STATUS_IN_TRANSIT,
    STATUS_LABELS,
    STATUS_PENDING,
    TIMELINE_STAGES,
    TIMELINE_TEMPLATES,
)

STATUS_PATTERN = rf"^({STATUS_PENDING}|{STATUS_IN_TRANSIT}|{STATUS_COMPLETED})$"


class TimelineStage(BaseModel):
    """One of the three fixed milestones of a fulfillment."""

    stage: str = Field(frozen=True)
    title: str = Field(frozen=True)
    description: str = Field(frozen=True)
    completed: bool = False
    timestamp: datetime | None = None


class Fulfillment(BaseModel):
    """A three-party handoff: sender → intermediary → recipient.

    Descriptive fields and identity are frozen after construction; only the
    workflow fields change, and only through ``FulfillmentRepository``.
    """

    id: str = Field(frozen=True)
    item_description: str = Field(frozen=True)
    sender_name: str = Field(frozen=True)
    intermediary_name: str = Field(frozen=True)
    recipient_name: str = Field(frozen=True)
    status: str = Field(default=STATUS_PENDING, pattern=STATUS_PATTERN)
    transfer_token_consumed: bool = False
    secret_hash: str = Field(frozen=True)
    secret_consumed: bool = False
    created_at: datetime = Field(frozen=True)
    timeline: list[TimelineStage] = Field(min_length=3, max_length=3)

    @field_validator("timeline")
    @classmethod
    def _fixed_stages(cls, v: list[TimelineStage]) -> list[TimelineStage]:
        names = [item.stage for item in v]
        if names != TIMELINE_STAGES:
            raise ValueError(f"timeline stages must be {TIMELINE_STAGES}, got {names}")
        return v

    @property
    def status_label(self) -> str:
        return STATUS_LABELS.get(self.status, self.status)

    @property
    def active_stage(self) -> str | None:
        """Next milestone awaiting completion, or None once completed."""
        if self.status == STATUS_PENDING:
            return STAGE_DROPPED_OFF
        if self.status == STATUS_IN_TRANSIT:
            return STAGE_COLLECTED
        return None

    @property
    def can_view_checkpoint_token(self) -> bool:
        return self.status == STATUS_PENDING and not self.transfer_token_consumed

    def stage(self, name: str) -> TimelineStage:
        for item in self.timeline:
            if item.stage == name:
                return item
        raise KeyError(name)

    def complete_stage(self, name: str, at: datetime) -> None:
        """Mark a stage completed; the timestamp is set only on the first flip."""
        item = self.stage(name)
        if item.completed:
            return
        item.completed = True
        item.timestamp = at


def build_timeline(
    sender_name: str,
    intermediary_name: str,
    recipient_name: str,
    created_at: datetime,
) -> list[TimelineStage]:
    """Fresh timeline with only the ``created`` stage completed."""
    names = {
        "sender": sender_name,
        "intermediary": intermediary_name,
        "recipient": recipient_name,
    }
    timeline = []
    for name in TIMELINE_STAGES:
        template = TIMELINE_TEMPLATES[name]
        done = name == STAGE_CREATED
        timeline.append(
            TimelineStage(
                stage=name,
                title=template["title"],
                description=template["description"].format(**names),
                completed=done,
                timestamp=created_at if done else None,
            )
        )
    return timeline


def checkpoint_payload(fulfillment: Fulfillment) -> str:
    """Payload of the drop-off checkpoint artifact: exactly the id."""
    return fulfillment.id


# ── Checkpoint results ──────────────────────────────────────────────


class CheckpointErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    TOKEN_ALREADY_USED = "token_already_used"
    SECRET_ALREADY_USED = "secret_already_used"
    INVALID_STATE = "invalid_state"
    SECRET_MISMATCH = "secret_mismatch"


@dataclass(frozen=True)
class CheckpointResult:
    """Outcome of a checkpoint call; ``message`` is shown to the user verbatim."""

    success: bool
    message: str
    kind: CheckpointErrorKind | None = None
    fulfillment: Fulfillment | None = None

    @classmethod
    def ok(cls, message: str, fulfillment: Fulfillment) -> CheckpointResult:
        return cls(success=True, message=message, fulfillment=fulfillment)

    @classmethod
    def fail(cls, kind: CheckpointErrorKind, message: str) -> CheckpointResult:
        return cls(success=False, message=message, kind=kind)
