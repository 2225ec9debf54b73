"""Tests for the key-value storage engine (memory, JSON file, Redis)."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from handoff.core.config import Settings
from handoff.services.storage import KeyValueStorage, StorageError, build_storage


class TestMemoryStorage:
    def test_get_set(self):
        storage = KeyValueStorage()
        assert storage.engine == "memory"
        assert storage.get("k") is None
        assert storage.set("k", [{"a": 1}]) is True
        assert storage.get("k") == [{"a": 1}]

    def test_stored_value_is_a_snapshot(self):
        storage = KeyValueStorage()
        value = [{"a": 1}]
        storage.set("k", value)
        value[0]["a"] = 2
        assert storage.get("k") == [{"a": 1}]

    def test_delete_and_exists(self):
        storage = KeyValueStorage()
        storage.set("k", 1)
        assert storage.exists("k") is True
        assert storage.delete("k") is True
        assert storage.delete("k") is False
        assert storage.exists("k") is False

    def test_ping(self):
        assert KeyValueStorage().ping() is True


class TestFileStorage:
    def test_get_set(self, tmp_path):
        path = tmp_path / "store.json"
        storage = KeyValueStorage(path=path)
        assert storage.engine == "file"
        assert storage.get("k") is None
        assert storage.set("k", ["x"]) is True
        assert json.loads(path.read_text()) == {"k": ["x"]}

    def test_keys_share_one_file(self, tmp_path):
        storage = KeyValueStorage(path=tmp_path / "store.json")
        storage.set("a", 1)
        storage.set("b", 2)
        reopened = KeyValueStorage(path=tmp_path / "store.json")
        assert reopened.get("a") == 1
        assert reopened.get("b") == 2

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "store.json"
        assert KeyValueStorage(path=path).set("k", 1) is True
        assert path.exists()

    def test_no_temp_files_left(self, tmp_path):
        storage = KeyValueStorage(path=tmp_path / "store.json")
        storage.set("k", 1)
        storage.set("k", 2)
        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]

    def test_corrupt_file_is_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        assert KeyValueStorage(path=path).get("k") is None

    def test_non_object_file_is_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[1, 2, 3]")
        storage = KeyValueStorage(path=path)
        assert storage.get("k") is None
        assert storage.exists("k") is False

    def test_unreadable_file_raises(self, tmp_path):
        path = tmp_path / "store.json"
        path.mkdir()
        storage = KeyValueStorage(path=path)
        with pytest.raises(StorageError):
            storage.get("k")
        with pytest.raises(StorageError):
            storage.exists("k")

    def test_unreadable_file_is_not_overwritten(self, tmp_path):
        path = tmp_path / "store.json"
        path.mkdir()
        storage = KeyValueStorage(path=path)
        assert storage.set("k", 1) is False
        assert storage.delete("k") is False
        assert path.is_dir()

    def test_delete(self, tmp_path):
        storage = KeyValueStorage(path=tmp_path / "store.json")
        storage.set("k", 1)
        assert storage.delete("k") is True
        assert storage.delete("k") is False
        assert storage.get("k") is None

    def test_ping(self, tmp_path):
        assert KeyValueStorage(path=tmp_path / "store.json").ping() is True
        assert KeyValueStorage(path=tmp_path / "missing" / "store.json").ping() is False


class TestRedisStorage:
    def test_get_decodes_json(self):
        redis_client = MagicMock()
        redis_client.get.return_value = b'[{"id": "f1"}]'
        storage = KeyValueStorage(redis_client=redis_client)
        assert storage.engine == "redis"
        assert storage.get("fulfillments") == [{"id": "f1"}]

    def test_get_miss(self):
        redis_client = MagicMock()
        redis_client.get.return_value = None
        assert KeyValueStorage(redis_client=redis_client).get("k") is None

    def test_set_without_expiry(self):
        redis_client = MagicMock()
        storage = KeyValueStorage(redis_client=redis_client)
        assert storage.set("k", {"a": 1}) is True
        redis_client.set.assert_called_once_with("k", '{"a": 1}')
        redis_client.setex.assert_not_called()

    def test_write_errors_are_swallowed(self):
        redis_client = MagicMock()
        redis_client.set.side_effect = ConnectionError("down")
        redis_client.delete.side_effect = ConnectionError("down")
        redis_client.ping.side_effect = ConnectionError("down")
        storage = KeyValueStorage(redis_client=redis_client)
        assert storage.set("k", 1) is False
        assert storage.delete("k") is False
        assert storage.ping() is False

    def test_read_errors_raise(self):
        redis_client = MagicMock()
        redis_client.get.side_effect = ConnectionError("down")
        redis_client.exists.side_effect = ConnectionError("down")
        storage = KeyValueStorage(redis_client=redis_client)
        with pytest.raises(StorageError):
            storage.get("k")
        with pytest.raises(StorageError):
            storage.exists("k")

    def test_invalid_json_reads_as_missing(self):
        redis_client = MagicMock()
        redis_client.get.return_value = b"{not json"
        assert KeyValueStorage(redis_client=redis_client).get("k") is None

    def test_delete(self):
        redis_client = MagicMock()
        redis_client.delete.return_value = 1
        assert KeyValueStorage(redis_client=redis_client).delete("k") is True


class TestBuildStorage:
    def test_memory(self):
        settings = Settings(_env_file=None, storage_backend="memory")
        assert build_storage(settings).engine == "memory"

    def test_file(self, tmp_path):
        settings = Settings(
            _env_file=None, storage_backend="file", storage_path=str(tmp_path / "s.json")
        )
        assert build_storage(settings).engine == "file"

    def test_redis(self):
        settings = Settings(_env_file=None, storage_backend="redis")
        assert build_storage(settings).engine == "redis"

    def test_unknown(self):
        settings = Settings(_env_file=None, storage_backend="sqlite")
        with pytest.raises(StorageError):
            build_storage(settings)

    def test_both_engines_rejected(self, tmp_path):
        with pytest.raises(StorageError):
            KeyValueStorage(redis_client=MagicMock(), path=tmp_path / "s.json")
