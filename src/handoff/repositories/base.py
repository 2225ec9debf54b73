"""Base repository persisting one ordered collection under a single storage key."""

from __future__ import annotations

import logging
import time
from typing import Any

from handoff.services.storage import KeyValueStorage

logger = logging.getLogger(__name__)

SLOW_WRITE_THRESHOLD_MS = 100  # Log storage calls slower than this


class DocumentRepository:
    """Reads the full collection once and rewrites it wholesale on every save.

    Entity repositories extend this class and configure ``storage_key``.
    There are no incremental updates: whatever the subclass holds in memory
    is the collection.
    """

    def __init__(self, storage: KeyValueStorage, storage_key: str) -> None:
        self.storage = storage
        self.storage_key = storage_key

    # ── helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _log_timing(operation: str, key: str, elapsed_ms: float) -> None:
        """Log storage timing; warn if above the slow threshold."""
        if elapsed_ms > SLOW_WRITE_THRESHOLD_MS:
            logger.warning("SLOW STORAGE %s (%.1fms): %s", operation, elapsed_ms, key)
        else:
            logger.debug("Storage %s (%.1fms): %s", operation, elapsed_ms, key)

    # ── read / write ─────────────────────────────────────────────────

    def _load_documents(self) -> list[dict[str, Any]]:
        """Return the persisted documents; anything malformed yields ``[]``.

        ``StorageError`` from an unreachable engine propagates: starting from
        ``[]`` there would let the next save wipe the stored collection.
        """
        start = time.perf_counter()
        raw = self.storage.get(self.storage_key)
        self._log_timing("GET", self.storage_key, (time.perf_counter() - start) * 1000)
        if raw is None:
            return []
        if not isinstance(raw, list) or not all(isinstance(d, dict) for d in raw):
            logger.warning(
                "Persisted value under %r is not a list of documents; starting empty",
                self.storage_key,
            )
            return []
        return raw

    def _save_documents(self, documents: list[dict[str, Any]]) -> bool:
        """Rewrite the whole collection. Failures are logged, not raised."""
        start = time.perf_counter()
        ok = self.storage.set(self.storage_key, documents)
        self._log_timing("SET", self.storage_key, (time.perf_counter() - start) * 1000)
        if not ok:
            logger.error("Failed to persist %d documents under %r", len(documents), self.storage_key)
        return ok
