"""Shared pytest fixtures and test configuration."""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import Coroutine
from typing import Any, TypeVar

import pytest
from fastapi.testclient import TestClient

# Ensure src is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

T = TypeVar("T")


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Drive one repository coroutine to completion."""
    return asyncio.run(coro)


@pytest.fixture
def settings():  # type: ignore[no-untyped-def]
    """Testing settings backed by in-memory storage."""
    from handoff.core.config import Settings

    return Settings(_env_file=None, app_env="testing", storage_backend="memory")


@pytest.fixture
def storage():  # type: ignore[no-untyped-def]
    """Fresh in-memory storage engine."""
    from handoff.services.storage import KeyValueStorage

    return KeyValueStorage()


@pytest.fixture
def repository(storage):  # type: ignore[no-untyped-def]
    """Fulfillment repository over in-memory storage."""
    from handoff.repositories.fulfillment_repository import FulfillmentRepository

    return FulfillmentRepository(storage)


@pytest.fixture
def created(repository):  # type: ignore[no-untyped-def]
    """A pending fulfillment and its plaintext collection secret."""
    return run(repository.create("Laptop", "Alice", "Bob", "Carol"))


@pytest.fixture
def app(settings):  # type: ignore[no-untyped-def]
    """Create a FastAPI test app with in-memory storage."""
    from handoff.main import create_app

    return create_app(settings=settings)


@pytest.fixture
def client(app):  # type: ignore[no-untyped-def]
    """Create a test client."""
    return TestClient(app)


# ── Helpers for route tests ──────────────────────────────────────────


def create_via_api(client: TestClient, **overrides: Any) -> dict[str, Any]:
    """POST a new fulfillment and return the creation body (record + secret)."""
    payload = {
        "item_description": "Laptop",
        "sender_name": "Alice",
        "intermediary_name": "Bob",
        "recipient_name": "Carol",
    }
    payload.update(overrides)
    resp = client.post("/api/v1/fulfillments", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


class FlakyRedis:
    """Dict-backed stand-in for ``redis.Redis`` whose first GETs fail."""

    def __init__(self, failures: int = 1) -> None:
        self.data: dict[str, bytes] = {}
        self.failures = failures

    def get(self, key: str) -> bytes | None:
        if self.failures:
            self.failures -= 1
            raise ConnectionError("redis unavailable")
        return self.data.get(key)

    def set(self, key: str, value: str) -> bool:
        self.data[key] = value.encode()
        return True

    def delete(self, key: str) -> int:
        return int(self.data.pop(key, None) is not None)

    def exists(self, key: str) -> int:
        return int(key in self.data)

    def ping(self) -> bool:
        return True
