# tests/test_storage.py
"""
Tests for calibration stores.

Verifies:
  - The in-memory store isolates callers from the stored records.
  - The JSON file store reads missing files as empty, preserves unrelated
    keys, and reports unreadable content as PersistenceError.
  - The Redis store round-trips through an injected client, wraps
    client errors, and closes only a client it built itself.
"""

from __future__ import annotations

import json

import pytest
import redis

from token_budget.exceptions import PersistenceError
from token_budget.storage.file import JsonFileCalibrationStore
from token_budget.storage.memory import InMemoryCalibrationStore
from token_budget.storage.redis import RedisCalibrationStore

RECORDS = [{"model_family": "claude", "correction_factor": 1.1, "sample_count": 3}]


class TestInMemoryStore:
    def test_empty_by_default(self):
        assert InMemoryCalibrationStore().load() == []

    def test_round_trip(self):
        store = InMemoryCalibrationStore()
        store.save(RECORDS)
        assert store.load() == RECORDS

    def test_records_are_copied(self):
        store = InMemoryCalibrationStore()
        records = [dict(r) for r in RECORDS]
        store.save(records)
        records[0]["correction_factor"] = 9.9
        store.load()[0]["sample_count"] = 99
        assert store.load() == RECORDS

    def test_clear(self):
        store = InMemoryCalibrationStore(initial=RECORDS)
        store.clear()
        assert store.load() == []


class TestJsonFileStore:
    def test_missing_file_is_empty(self, tmp_path):
        assert JsonFileCalibrationStore(tmp_path / "missing.json").load() == []

    def test_round_trip_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        JsonFileCalibrationStore(path).save(RECORDS)
        assert JsonFileCalibrationStore(path).load() == RECORDS

    def test_preserves_other_keys(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"other-tool": {"keep": True}}))
        JsonFileCalibrationStore(path, key="calibrations").save(RECORDS)
        document = json.loads(path.read_text())
        assert document["other-tool"] == {"keep": True}
        assert document["calibrations"] == RECORDS

    def test_no_temp_files_left_behind(self, tmp_path):
        path = tmp_path / "state.json"
        JsonFileCalibrationStore(path).save(RECORDS)
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(PersistenceError) as exc_info:
            JsonFileCalibrationStore(path).load()
        assert exc_info.value.backend == "json-file"

    def test_non_object_document_raises(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(PersistenceError):
            JsonFileCalibrationStore(path).load()

    def test_non_list_value_raises(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"calibrations": {"claude": 1.0}}))
        with pytest.raises(PersistenceError):
            JsonFileCalibrationStore(path, key="calibrations").load()

    def test_save_overwrites_corrupt_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        store = JsonFileCalibrationStore(path)
        store.save(RECORDS)
        assert store.load() == RECORDS


class ExplodingRedis:
    def get(self, key):
        raise redis.ConnectionError("connection refused")

    def set(self, key, value):
        raise redis.ConnectionError("connection refused")

    def delete(self, key):
        raise redis.ConnectionError("connection refused")

    def close(self):
        pass


class DictRedis:
    """Minimal stand-in for a decode_responses=True redis.Redis client."""

    def __init__(self):
        self.data = {}
        self.closed = False

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        return True

    def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    def close(self):
        self.closed = True


@pytest.fixture
def fake_redis():
    return DictRedis()


class TestRedisStore:
    def test_requires_url_or_client(self):
        with pytest.raises(ValueError):
            RedisCalibrationStore()

    def test_empty_when_key_missing(self, fake_redis):
        assert RedisCalibrationStore(client=fake_redis).load() == []

    def test_round_trip(self, fake_redis):
        RedisCalibrationStore(client=fake_redis, key="cal").save(RECORDS)
        assert json.loads(fake_redis.get("cal")) == RECORDS
        assert RedisCalibrationStore(client=fake_redis, key="cal").load() == RECORDS

    def test_clear_deletes_key(self, fake_redis):
        store = RedisCalibrationStore(client=fake_redis, key="cal")
        store.save(RECORDS)
        store.clear()
        assert fake_redis.get("cal") is None

    def test_invalid_json_raises(self, fake_redis):
        fake_redis.set("cal", "{not json")
        with pytest.raises(PersistenceError):
            RedisCalibrationStore(client=fake_redis, key="cal").load()

    def test_non_list_raises(self, fake_redis):
        fake_redis.set("cal", json.dumps({"claude": 1.0}))
        with pytest.raises(PersistenceError):
            RedisCalibrationStore(client=fake_redis, key="cal").load()

    @pytest.mark.parametrize("operation", ["load", "clear"])
    def test_client_errors_become_persistence_errors(self, operation):
        store = RedisCalibrationStore(client=ExplodingRedis())
        with pytest.raises(PersistenceError) as exc_info:
            getattr(store, operation)()
        assert exc_info.value.backend == "redis"

    def test_save_error(self):
        with pytest.raises(PersistenceError):
            RedisCalibrationStore(client=ExplodingRedis()).save(RECORDS)

    def test_close_leaves_injected_client_open(self, fake_redis):
        RedisCalibrationStore(client=fake_redis).close()
        assert fake_redis.closed is False

    def test_close_closes_client_built_from_url(self, monkeypatch):
        created = DictRedis()
        monkeypatch.setattr(redis.Redis, "from_url", lambda url, **kwargs: created)
        store = RedisCalibrationStore(redis_url="redis://localhost:6379")
        store.close()
        assert created.closed is True
