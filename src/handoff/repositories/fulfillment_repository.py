"""Fulfillment repository — owns the handoff records and their state machine.

Lifecycle of a record:
  pending --confirm_drop_off--> in-transit --confirm_collection--> completed

Both transitions are checkpoints gated by a single-use credential: the
transfer token (the record id) for drop-off, and the 6-digit collection
secret (stored only as a hash) for collection.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from pydantic import ValidationError

from handoff.core.constants import (
    FULFILLMENT_STATUSES,
    MSG_COLLECTED,
    MSG_DROP_OFF_CONFIRMED,
    MSG_NOT_DROPPED_OFF,
    MSG_NOT_FOUND,
    MSG_NOT_PENDING,
    MSG_SECRET_ALREADY_USED,
    MSG_SECRET_MISMATCH,
    MSG_TOKEN_ALREADY_USED,
    STAGE_COLLECTED,
    STAGE_DROPPED_OFF,
    STAGE_FOR_STATUS,
    STATUS_COMPLETED,
    STATUS_IN_TRANSIT,
    STATUS_PENDING,
)
from handoff.core.context import fulfillment_context
from handoff.core.security import (
    SecretHasher,
    generate_fulfillment_id,
    generate_secret,
    normalize_token,
)
from handoff.domain.models import (
    CheckpointErrorKind,
    CheckpointResult,
    Fulfillment,
    build_timeline,
)
from handoff.repositories.base import DocumentRepository
from handoff.services.events import FulfillmentChanged, FulfillmentEvents, Listener
from handoff.services.storage import KeyValueStorage

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "fulfillments"


class FulfillmentError(Exception):
    """Misuse outside the checkpoint flow, with an HTTP status hint."""

    def __init__(self, detail: str, status_code: int = 400) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class FulfillmentRepository(DocumentRepository):
    """Sole owner of the fulfillment collection.

    Construct one per process/session and hand it to every caller. Records
    handed out are copies; state only changes through the operations below,
    each of which persists the whole collection and then publishes a
    ``FulfillmentChanged`` event.

    Runs on a single asyncio event loop. ``create`` and ``confirm_collection``
    await the hashing step; everything else is synchronous.

    Construction raises ``StorageError`` if the storage engine cannot be
    read, so a repository never starts from an empty list that would
    overwrite the stored collection.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        storage_key: str = DEFAULT_STORAGE_KEY,
        *,
        hasher: SecretHasher | None = None,
        events: FulfillmentEvents | None = None,
        clock: Callable[[], datetime] = _utcnow,
        allow_unchecked_advance: bool = True,
    ) -> None:
        super().__init__(storage=storage, storage_key=storage_key)
        self.hasher = hasher or SecretHasher()
        self.events = events or FulfillmentEvents()
        self.allow_unchecked_advance = allow_unchecked_advance
        self._clock = clock
        # Per-id collection locks, dropped once no caller holds or awaits them
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._fulfillments: list[Fulfillment] = self._load()
        logger.info("Loaded %d fulfillments from %s storage", len(self._fulfillments), storage.engine)

    # ── persistence / notification ──────────────────────────────────

    def _load(self) -> list[Fulfillment]:
        documents = self._load_documents()
        try:
            return [Fulfillment.model_validate(doc) for doc in documents]
        except ValidationError:
            logger.warning(
                "Persisted fulfillments under %r failed validation; starting empty",
                self.storage_key,
                exc_info=True,
            )
            return []

    def _commit(self, action: str, fulfillment_id: str) -> None:
        """Persist the whole collection, then notify subscribers."""
        self._save_documents([f.model_dump(mode="json") for f in self._fulfillments])
        self.events.publish(
            FulfillmentChanged(
                action=action,
                fulfillment_id=fulfillment_id,
                fulfillments=self.list_all(),
            )
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* after every mutation; returns an unsubscribe function."""
        return self.events.subscribe(listener)

    def _find(self, fulfillment_id: str) -> Fulfillment | None:
        for f in self._fulfillments:
            if f.id == fulfillment_id:
                return f
        return None

    def _new_id(self) -> str:
        while True:
            candidate = generate_fulfillment_id()
            if self._find(candidate) is None:
                return candidate

    # ── create ──────────────────────────────────────────────────────

    async def create(
        self,
        item_description: str,
        sender_name: str,
        intermediary_name: str,
        recipient_name: str,
    ) -> tuple[Fulfillment, str]:
        """Create a pending fulfillment.

        Returns the record and the plaintext collection secret. This is the
        only time the secret is available; only its hash is kept.
        """
        fields = {
            "item_description": item_description.strip(),
            "sender_name": sender_name.strip(),
            "intermediary_name": intermediary_name.strip(),
            "recipient_name": recipient_name.strip(),
        }
        missing = [name for name, value in fields.items() if not value]
        if missing:
            raise FulfillmentError(f"Missing fields: {', '.join(missing)}")

        secret = generate_secret()
        secret_hash = await self.hasher.hash_async(secret)

        now = self._clock()
        fulfillment = Fulfillment(
            id=self._new_id(),
            status=STATUS_PENDING,
            secret_hash=secret_hash,
            created_at=now,
            timeline=build_timeline(
                fields["sender_name"],
                fields["intermediary_name"],
                fields["recipient_name"],
                now,
            ),
            **fields,
        )

        self._fulfillments.insert(0, fulfillment)
        self._commit("created", fulfillment.id)
        logger.info("Fulfillment %s created", fulfillment.id)
        return fulfillment.model_copy(deep=True), secret

    # ── checkpoints ─────────────────────────────────────────────────

    def confirm_drop_off(self, token: str) -> CheckpointResult:
        """Drop-off checkpoint: consume the transfer token (the record id)."""
        fulfillment_id = normalize_token(token)
        fulfillment = self._find(fulfillment_id)
        if fulfillment is None:
            logger.warning("Drop-off rejected: unknown token")
            return CheckpointResult.fail(CheckpointErrorKind.NOT_FOUND, MSG_NOT_FOUND)
        with fulfillment_context(fulfillment_id):
            return self._drop_off(fulfillment)

    def _drop_off(self, fulfillment: Fulfillment) -> CheckpointResult:
        fulfillment_id = fulfillment.id
        if fulfillment.transfer_token_consumed:
            logger.warning("Drop-off rejected for %s: token already used", fulfillment_id)
            return CheckpointResult.fail(CheckpointErrorKind.TOKEN_ALREADY_USED, MSG_TOKEN_ALREADY_USED)
        if fulfillment.status != STATUS_PENDING:
            logger.warning("Drop-off rejected for %s: status %s", fulfillment_id, fulfillment.status)
            return CheckpointResult.fail(CheckpointErrorKind.INVALID_STATE, MSG_NOT_PENDING)

        fulfillment.status = STATUS_IN_TRANSIT
        fulfillment.transfer_token_consumed = True
        fulfillment.complete_stage(STAGE_DROPPED_OFF, self._clock())

        self._commit("dropped_off", fulfillment_id)
        logger.info("Fulfillment %s dropped off", fulfillment_id)
        return CheckpointResult.ok(MSG_DROP_OFF_CONFIRMED, fulfillment.model_copy(deep=True))

    def _collection_precheck(self, fulfillment_id: str) -> CheckpointResult | None:
        fulfillment = self._find(fulfillment_id)
        if fulfillment is None:
            return CheckpointResult.fail(CheckpointErrorKind.NOT_FOUND, MSG_NOT_FOUND)
        if fulfillment.secret_consumed:
            return CheckpointResult.fail(CheckpointErrorKind.SECRET_ALREADY_USED, MSG_SECRET_ALREADY_USED)
        if fulfillment.status != STATUS_IN_TRANSIT:
            return CheckpointResult.fail(CheckpointErrorKind.INVALID_STATE, MSG_NOT_DROPPED_OFF)
        return None

    async def confirm_collection(self, fulfillment_id: str, supplied_secret: str) -> CheckpointResult:
        """Collection checkpoint: verify and consume the collection secret."""
        fulfillment_id = fulfillment_id.strip()
        with fulfillment_context(fulfillment_id):
            return await self._collect(fulfillment_id, supplied_secret)

    @asynccontextmanager
    async def _serialized(self, fulfillment_id: str) -> AsyncIterator[None]:
        """Hold the per-id lock; the entry is removed when its last user leaves."""
        lock = self._locks.get(fulfillment_id)
        if lock is None:
            lock = self._locks[fulfillment_id] = asyncio.Lock()
        self._lock_users[fulfillment_id] = self._lock_users.get(fulfillment_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[fulfillment_id] -= 1
            if not self._lock_users[fulfillment_id]:
                del self._lock_users[fulfillment_id]
                del self._locks[fulfillment_id]

    async def _collect(self, fulfillment_id: str, supplied_secret: str) -> CheckpointResult:
        # Unknown, consumed or not-yet-dropped records never get a lock.
        rejected = self._collection_precheck(fulfillment_id)
        if rejected is not None:
            logger.warning("Collection rejected for %s: %s", fulfillment_id, rejected.kind)
            return rejected

        async with self._serialized(fulfillment_id):
            rejected = self._collection_precheck(fulfillment_id)
            if rejected is not None:
                logger.warning("Collection rejected for %s: %s", fulfillment_id, rejected.kind)
                return rejected

            digest = await self.hasher.hash_async(supplied_secret.strip())

            # The record may have moved or vanished while hashing.
            rejected = self._collection_precheck(fulfillment_id)
            if rejected is not None:
                logger.warning("Collection rejected for %s: %s", fulfillment_id, rejected.kind)
                return rejected

            fulfillment = self._find(fulfillment_id)
            if fulfillment is None:
                return CheckpointResult.fail(CheckpointErrorKind.NOT_FOUND, MSG_NOT_FOUND)
            if not self.hasher.matches(digest, fulfillment.secret_hash):
                logger.warning("Collection rejected for %s: secret mismatch", fulfillment_id)
                return CheckpointResult.fail(CheckpointErrorKind.SECRET_MISMATCH, MSG_SECRET_MISMATCH)

            fulfillment.status = STATUS_COMPLETED
            fulfillment.secret_consumed = True
            fulfillment.complete_stage(STAGE_COLLECTED, self._clock())

            self._commit("collected", fulfillment_id)
            logger.info("Fulfillment %s collected", fulfillment_id)
            return CheckpointResult.ok(MSG_COLLECTED, fulfillment.model_copy(deep=True))

    # ── administrative override ─────────────────────────────────────

    def advance_status_unchecked(self, fulfillment_id: str, new_status: str) -> Fulfillment | None:
        """Move a record forward without presenting the token or secret.

        Leaves both consumed flags untouched. Returns ``None`` for an
        unknown id. Moving backward is refused.
        """
        if not self.allow_unchecked_advance:
            raise FulfillmentError("Unchecked status changes are disabled", status_code=403)
        if new_status not in FULFILLMENT_STATUSES:
            raise FulfillmentError(f"Invalid status: {new_status}")

        fulfillment = self._find(fulfillment_id)
        if fulfillment is None:
            return None

        current = FULFILLMENT_STATUSES.index(fulfillment.status)
        target = FULFILLMENT_STATUSES.index(new_status)
        if target < current:
            raise FulfillmentError(
                f"Cannot move from '{fulfillment.status}' back to '{new_status}'",
                status_code=409,
            )
        if target == current:
            return fulfillment.model_copy(deep=True)

        with fulfillment_context(fulfillment_id):
            logger.warning(
                "Unchecked status change for %s: %s -> %s (checkpoint bypassed)",
                fulfillment_id,
                fulfillment.status,
                new_status,
            )
            fulfillment.status = new_status
            fulfillment.complete_stage(STAGE_FOR_STATUS[new_status], self._clock())

            self._commit("advanced", fulfillment_id)
        return fulfillment.model_copy(deep=True)

    # ── delete / queries ────────────────────────────────────────────

    def delete(self, fulfillment_id: str) -> bool:
        """Remove a record unconditionally. Returns False if it did not exist."""
        if self._find(fulfillment_id) is None:
            return False
        self._fulfillments = [f for f in self._fulfillments if f.id != fulfillment_id]
        self._commit("deleted", fulfillment_id)
        logger.info("Fulfillment %s deleted", fulfillment_id)
        return True

    def get(self, fulfillment_id: str) -> Fulfillment | None:
        fulfillment = self._find(fulfillment_id)
        return fulfillment.model_copy(deep=True) if fulfillment is not None else None

    def list_all(self, status: str | None = None) -> list[Fulfillment]:
        """All records, most recent first, optionally filtered by status."""
        return [
            f.model_copy(deep=True)
            for f in self._fulfillments
            if status is None or f.status == status
        ]
