"""Tests for the expiring key/value store."""

import json
from datetime import timedelta

import pytest

from playdeck.lib.kvstore import ExpiringStore, JsonFileStore, MemoryStore


@pytest.fixture
def backend():
    return MemoryStore()


@pytest.fixture
def store(backend, clock):
    return ExpiringStore(backend, "repo", clock=clock)


class TestExpiringStore:
    """Expiry semantics on top of a durable backend."""

    def test_non_expiring_value(self, store, clock):
        store.set("volume", 42)
        clock.advance(10 ** 6)
        assert store.get("volume") == 42

    def test_missing_key_returns_default(self, store):
        assert store.get("nope") is None
        assert store.get("nope", "fallback") == "fallback"

    def test_keys_are_normalised(self, store):
        store.set("  Token:ABC ", "x")
        assert store.get("token:abc") == "x"
        assert store.has("TOKEN:abc")

    def test_value_expires(self, store, backend, clock):
        store.set("token", "t", expires=60)
        clock.advance(59)
        assert store.get("token") == "t"
        clock.advance(2)
        assert store.get("token", "gone") == "gone"
        assert "token" not in backend.get("repo")

    def test_expiry_must_be_strictly_in_future(self, store, clock):
        store.set("token", "t", expires=timedelta(seconds=30))
        clock.advance(30)
        assert store.has("token") is False

    def test_absolute_expiry(self, store, clock):
        store.set("token", "t", expires=clock.now + timedelta(minutes=5))
        assert store.get("token") == "t"
        clock.advance(301)
        assert store.get("token") is None

    def test_unreadable_expiry_is_dropped(self, clock):
        backend = MemoryStore({"repo": {"x": {"value": 1, "expires": "garbage"}}})
        store = ExpiringStore(backend, "repo", clock=clock)
        assert store.get("x") is None
        assert backend.get("repo") == {}

    def test_delete(self, store):
        store.set("a", 1)
        assert store.delete("a") is True
        assert store.delete("a") is False
        assert store.has("a") is False

    def test_has_with_falsy_value(self, store):
        store.set("empty", None)
        assert store.has("empty") is True


class TestJsonFileStore:
    """File-backed durable store."""

    def test_persists_across_instances(self, tmp_path, clock):
        path = tmp_path / "cache.json"
        ExpiringStore(JsonFileStore(str(path)), "repo", clock=clock).set("k", {"a": 1})

        reopened = ExpiringStore(JsonFileStore(str(path)), "repo", clock=clock)
        assert reopened.get("k") == {"a": 1}
        assert json.loads(path.read_text())["repo"]["k"]["value"] == {"a": 1}

    def test_missing_file_reads_empty(self, tmp_path):
        assert JsonFileStore(str(tmp_path / "none.json")).get("repo", {}) == {}

    def test_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{not json")
        assert JsonFileStore(str(path)).get("repo") is None

    def test_no_temp_files_left(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "cache.json"))
        store.update("repo", {"a": 1})
        store.update("repo", None)
        assert [p.name for p in tmp_path.iterdir()] == ["cache.json"]
        assert store.get("repo") is None
