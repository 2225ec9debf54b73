"""Domain constants for Handoff."""

from __future__ import annotations

# ── Fulfillment Statuses ────────────────────────────────────────────
STATUS_PENDING = "pending"
STATUS_IN_TRANSIT = "in-transit"
STATUS_COMPLETED = "completed"

FULFILLMENT_STATUSES: list[str] = [STATUS_PENDING, STATUS_IN_TRANSIT, STATUS_COMPLETED]

STATUS_LABELS: dict[str, str] = {
    STATUS_PENDING: "Pending",
    STATUS_IN_TRANSIT: "In Transit",
    STATUS_COMPLETED: "Completed",
}

# ── Timeline Stages ─────────────────────────────────────────────────
STAGE_CREATED = "created"
STAGE_DROPPED_OFF = "dropped-off"
STAGE_COLLECTED = "collected"

TIMELINE_STAGES: list[str] = [STAGE_CREATED, STAGE_DROPPED_OFF, STAGE_COLLECTED]

# Title and description templates; placeholders are participant names.
TIMELINE_TEMPLATES: dict[str, dict[str, str]] = {
    STAGE_CREATED: {
        "title": "Fulfillment Created",
        "description": "{sender} initiated the transfer",
    },
    STAGE_DROPPED_OFF: {
        "title": "Item Dropped Off",
        "description": "{sender} drops off with {intermediary}",
    },
    STAGE_COLLECTED: {
        "title": "Item Collected",
        "description": "{recipient} collects from {intermediary}",
    },
}

# Status reached when a stage completes
STAGE_FOR_STATUS: dict[str, str] = {
    STATUS_IN_TRANSIT: STAGE_DROPPED_OFF,
    STATUS_COMPLETED: STAGE_COLLECTED,
}

# ── Collection Secret Policy ────────────────────────────────────────
SECRET_MIN = 100_000
SECRET_MAX = 999_999  # inclusive
SECRET_LENGTH = 6

# ── Checkpoint Messages ─────────────────────────────────────────────
MSG_NOT_FOUND = "Fulfillment not found"
MSG_TOKEN_ALREADY_USED = "QR code has already been used"
MSG_NOT_PENDING = "Fulfillment is not in pending status"
MSG_DROP_OFF_CONFIRMED = "Item receipt confirmed!"
MSG_SECRET_ALREADY_USED = "Password has already been used"
MSG_NOT_DROPPED_OFF = "Item has not been dropped off yet"
MSG_SECRET_MISMATCH = "Incorrect password"
MSG_COLLECTED = "Item collected successfully!"
