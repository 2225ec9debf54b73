"""Tests for health, liveness and readiness probes."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from handoff.core.config import Settings
from handoff.main import create_app
from handoff.services.storage import KeyValueStorage
from tests.conftest import FlakyRedis, create_via_api
from tests.factories.data_factories import build_fulfillment_batch, build_fulfillment_input


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "environment": "testing", "storage": "memory"}

    def test_liveness(self, client: TestClient) -> None:
        resp = client.get("/health/live")
        assert resp.status_code == 200
        assert resp.json() == {"status": "alive"}


class TestReadiness:
    def test_ready_with_memory_storage(self, client: TestClient) -> None:
        resp = client.get("/health/ready")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ready"
        assert body["checks"]["storage"]["status"] == "ok"
        assert body["checks"]["storage"]["engine"] == "memory"

    def test_not_ready_when_storage_unreachable(self, app, client: TestClient) -> None:
        storage = MagicMock()
        storage.ping.return_value = False
        storage.engine = "redis"
        app.state.storage = storage
        resp = client.get("/health/ready")
        assert resp.status_code == 503
        assert resp.json()["checks"]["storage"]["status"] == "error"

    def test_not_ready_without_storage(self, app, client: TestClient) -> None:
        app.state.storage = None
        resp = client.get("/health/ready")
        assert resp.status_code == 503
        assert resp.json()["checks"]["storage"] == {"status": "not_configured"}



class TestStorageUnavailableAtStartup:
    def _flaky_app(self, app, failures: int) -> FlakyRedis:
        redis_client = FlakyRedis(failures=failures)
        app.state.storage = KeyValueStorage(redis_client=redis_client)
        app.state.repository = None
        return redis_client

    def test_api_unavailable_until_storage_reads(self, app, client: TestClient) -> None:
        self._flaky_app(app, failures=2)
        for _ in range(2):
            resp = client.get("/api/v1/fulfillments")
            assert resp.status_code == 503
            assert resp.json()["detail"] == "Fulfillment storage not initialized"
        assert client.get("/api/v1/fulfillments").status_code == 200
        assert app.state.repository is not None

    def test_recovery_keeps_stored_records(self, app, client: TestClient) -> None:
        redis_client = self._flaky_app(app, failures=1)
        seeded = build_fulfillment_batch(3)
        redis_client.data["fulfillments"] = json.dumps(seeded).encode()

        assert client.post("/api/v1/fulfillments", json=build_fulfillment_input()).status_code == 503
        assert json.loads(redis_client.data["fulfillments"]) == seeded

        resp = client.get("/api/v1/fulfillments")
        assert resp.status_code == 200
        assert [f["id"] for f in resp.json()] == [d["id"] for d in seeded]

        create_via_api(client)
        assert len(json.loads(redis_client.data["fulfillments"])) == 4

    def test_health_served_while_storage_unreadable(self, app, client: TestClient) -> None:
        self._flaky_app(app, failures=5)
        assert client.get("/health").status_code == 200
        assert client.get("/health/live").status_code == 200

    def test_app_starts_when_file_unreadable(self, tmp_path) -> None:
        path = tmp_path / "handoff.json"
        path.mkdir()
        settings = Settings(
            _env_file=None, app_env="testing", storage_backend="file", storage_path=str(path)
        )
        app = create_app(settings=settings)
        assert app.state.repository is None
        assert TestClient(app).get("/api/v1/fulfillments").status_code == 503
        assert path.is_dir()
