"""Key-value storage engine for the persisted fulfillment collection.

Backed by Redis when a client is supplied, by a single JSON file when a
path is supplied, and by an in-memory dict otherwise (tests / throwaway
sessions). Values are JSON documents.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the engine is misconfigured or cannot be read."""


class KeyValueStorage:
    """Unified key-value interface over Redis, a JSON file or memory.

    In production, *redis_client* is a ``redis.Redis`` instance.

    Reads tell "missing" from "unreachable": a miss is ``None``, an engine
    failure raises ``StorageError``. Writes log and return ``False``.
    """

    def __init__(self, redis_client: Any | None = None, path: str | Path | None = None) -> None:
        if redis_client is not None and path is not None:
            raise StorageError("Configure either a Redis client or a file path, not both")
        self._redis = redis_client
        self._path = Path(path) if path is not None else None
        self._memory: dict[str, Any] = {}

    @property
    def engine(self) -> str:
        if self._redis is not None:
            return "redis"
        if self._path is not None:
            return "file"
        return "memory"

    # ── Core operations ─────────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Return the decoded value for *key*, or ``None`` if it is not set.

        Undecodable JSON also reads as ``None``. Raises ``StorageError`` when
        the engine cannot be read.
        """
        if self._redis is not None:
            try:
                raw = self._redis.get(key)
            except Exception as exc:
                logger.warning("Storage GET failed for %s", key, exc_info=True)
                raise StorageError(f"Redis GET failed for {key}") from exc
            if raw is None:
                return None
            try:
                return json.loads(raw)
            except ValueError:
                logger.warning("Value under %s is not valid JSON; treating as missing", key)
                return None
        if self._path is not None:
            return _read_file(self._path).get(key)
        return self._memory.get(key)

    def set(self, key: str, value: Any) -> bool:
        """Store *value* under *key* (no expiry). Returns False on failure."""
        if self._redis is not None:
            try:
                self._redis.set(key, json.dumps(value, default=str))
                return True
            except Exception:
                logger.warning("Storage SET failed for %s", key, exc_info=True)
                return False
        if self._path is not None:
            try:
                data = _read_file(self._path)
            except StorageError:
                return False
            data[key] = value
            return _write_file(self._path, data)
        self._memory[key] = json.loads(json.dumps(value, default=str))
        return True

    def delete(self, key: str) -> bool:
        """Delete a key. Returns True if the key existed."""
        if self._redis is not None:
            try:
                return bool(self._redis.delete(key))
            except Exception:
                logger.warning("Storage DELETE failed for %s", key, exc_info=True)
                return False
        if self._path is not None:
            try:
                data = _read_file(self._path)
            except StorageError:
                return False
            if key not in data:
                return False
            del data[key]
            return _write_file(self._path, data)
        return self._memory.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        """Whether *key* is set. Raises ``StorageError`` when the engine cannot be read."""
        if self._redis is not None:
            try:
                return bool(self._redis.exists(key))
            except Exception as exc:
                raise StorageError(f"Redis EXISTS failed for {key}") from exc
        if self._path is not None:
            return key in _read_file(self._path)
        return key in self._memory

    def ping(self) -> bool:
        """Check the engine is reachable (used by the readiness probe)."""
        if self._redis is not None:
            try:
                return bool(self._redis.ping())
            except Exception:
                return False
        if self._path is not None:
            parent = self._path.parent
            return parent.is_dir() and os.access(parent, os.W_OK)
        return True


# ── File engine ─────────────────────────────────────────────────────


def _read_file(path: Path) -> dict[str, Any]:
    """Load the key map; a missing file is empty, an unreadable one raises."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.warning("Storage file %s unreadable", path, exc_info=True)
        raise StorageError(f"Cannot read storage file {path}") from exc
    try:
        data = json.loads(text)
    except ValueError:
        logger.warning("Storage file %s is not valid JSON; treating as empty", path, exc_info=True)
        return {}
    if not isinstance(data, dict):
        logger.warning("Storage file %s is not a JSON object; treating as empty", path)
        return {}
    return data


def _write_file(path: Path, data: dict[str, Any]) -> bool:
    """Write atomically: temp file in the same directory, then replace."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".handoff-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, default=str)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        return True
    except OSError:
        logger.warning("Storage write to %s failed", path, exc_info=True)
        return False


def build_storage(settings: Any) -> KeyValueStorage:
    """Create the storage engine selected by ``settings.storage_backend``."""
    backend = settings.storage_backend
    if backend == "memory":
        return KeyValueStorage()
    if backend == "file":
        return KeyValueStorage(path=settings.storage_path)
    if backend == "redis":
        import redis

        return KeyValueStorage(redis_client=redis.Redis.from_url(settings.redis_url))
    raise StorageError(f"Unknown storage backend: {backend}")
