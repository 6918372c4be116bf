"""Tests for the storage adapters and the backend factory."""

import json

import pytest

from offline_kit.exceptions import ConfigurationError, StorageError
from offline_kit.models.config import OfflineConfig
from offline_kit.storage.factory import create_storage, open_storage
from offline_kit.storage.file import FileStorage
from offline_kit.storage.memory import MemoryStorage
from offline_kit.storage.sqlite import SqliteStorage


class TestAdapterContract:
    """Behaviour every adapter must share."""

    async def test_set_get_roundtrip(self, storage):
        """Test that stored records come back unchanged."""
        record = {"name": "Ada", "tags": ["a", "b"], "nested": {"n": 1}}
        await storage.set("user:1", record)

        assert await storage.get("user:1") == record
        assert await storage.has("user:1")

    async def test_values_are_isolated_from_callers(self, storage):
        """Test that mutating a value after set or after get leaves the store intact."""
        data = {"n": 1, "items": [1]}
        await storage.set("k", data)
        data["n"] = 2
        data["items"].append(2)

        loaded = await storage.get("k")
        assert loaded == {"n": 1, "items": [1]}

        loaded["n"] = 3
        assert await storage.get("k") == {"n": 1, "items": [1]}

    async def test_values_come_back_as_json(self, storage):
        """Test that every backend returns the JSON form of a value."""
        await storage.set("k", {"pair": (1, 2)})
        assert await storage.get("k") == {"pair": [1, 2]}

    async def test_unserialisable_value_rejected(self, storage):
        """Test that values JSON cannot encode are rejected by every backend."""
        with pytest.raises(StorageError):
            await storage.set("k", object())
        assert await storage.get("k") is None

    async def test_missing_key(self, storage):
        """Test reading a key that was never written."""
        assert await storage.get("nope") is None
        assert not await storage.has("nope")

    async def test_set_replaces(self, storage):
        """Test that a second write replaces the first."""
        await storage.set("k", 1)
        await storage.set("k", 2)
        assert await storage.get("k") == 2

    async def test_delete_is_idempotent(self, storage):
        """Test deleting present and absent keys."""
        await storage.set("k", "v")
        await storage.delete("k")
        await storage.delete("k")
        assert await storage.get("k") is None

    async def test_keys_with_prefix(self, storage):
        """Test prefix filtering of keys."""
        await storage.set("cache:a", 1)
        await storage.set("cache:b", 2)
        await storage.set("sync:c", 3)

        assert sorted(await storage.keys()) == ["cache:a", "cache:b", "sync:c"]
        assert sorted(await storage.keys("cache:")) == ["cache:a", "cache:b"]
        assert await storage.keys("other:") == []

    async def test_clear(self, storage):
        """Test that clear removes everything."""
        await storage.set("a", 1)
        await storage.set("b", 2)
        await storage.clear()
        assert await storage.keys() == []

    async def test_ttl_expiry(self, storage, clock):
        """Test that an adapter-level TTL hides and evicts the entry."""
        await storage.set("short", "v", ttl=1000)
        clock.advance(1000)
        assert await storage.get("short") == "v"

        clock.advance(1)
        assert await storage.get("short") is None
        assert "short" not in await storage.keys()
        assert not await storage.has("short")

    async def test_zero_ttl_never_expires(self, storage, clock):
        """Test that a TTL of zero disables expiry."""
        await storage.set("forever", "v", ttl=0)
        clock.advance(10**9)
        assert await storage.get("forever") == "v"

    async def test_async_context_manager(self, storage):
        """Test the adapter can be used with async with."""
        async with storage as s:
            await s.set("k", "v")
            assert await s.get("k") == "v"


class TestMemoryStorage:
    """Tests specific to MemoryStorage."""

    async def test_len_counts_entries(self, memory_storage):
        """Test that len reflects stored entries."""
        await memory_storage.set("a", 1)
        await memory_storage.set("b", 2)
        assert len(memory_storage) == 2


class TestFileStorage:
    """Tests specific to FileStorage."""

    async def test_persists_across_instances(self, tmp_path, clock):
        """Test that a new adapter on the same file sees earlier writes."""
        path = tmp_path / "data" / "store.json"
        await FileStorage(path, clock=clock).set("k", {"v": 1})

        assert await FileStorage(path, clock=clock).get("k") == {"v": 1}

    async def test_missing_file_is_empty(self, tmp_path):
        """Test that a non-existent file is an empty store."""
        storage = FileStorage(tmp_path / "absent.json")
        assert await storage.keys() == []
        assert not (tmp_path / "absent.json").exists()

    async def test_writes_valid_json_without_temp_leftovers(self, tmp_path):
        """Test the on-disk layout after a write."""
        path = tmp_path / "store.json"
        await FileStorage(path).set("k", "v")

        document = json.loads(path.read_text(encoding="utf-8"))
        assert document["k"]["value"] == "v"
        assert document["k"]["expires"] is None
        assert not (tmp_path / "store.json.tmp").exists()

    async def test_corrupt_file_raises(self, tmp_path):
        """Test that unreadable JSON is reported, not silently discarded."""
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StorageError, match="not valid JSON"):
            await FileStorage(path).get("k")

    async def test_non_object_document_raises(self, tmp_path):
        """Test that a JSON array is rejected."""
        path = tmp_path / "store.json"
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(StorageError):
            await FileStorage(path).keys()

    async def test_unserialisable_value_raises(self, tmp_path):
        """Test that values JSON cannot encode are rejected."""
        with pytest.raises(StorageError):
            await FileStorage(tmp_path / "store.json").set("k", object())


class TestSqliteStorage:
    """Tests specific to SqliteStorage."""

    async def test_persists_across_instances(self, tmp_path, clock):
        """Test that a new adapter on the same database sees earlier writes."""
        db = tmp_path / "store.sqlite"
        await SqliteStorage(db, clock=clock).set("k", [1, 2, 3])

        assert await SqliteStorage(db, clock=clock).get("k") == [1, 2, 3]

    async def test_unserialisable_value_raises(self, tmp_path):
        """Test that values JSON cannot encode are rejected."""
        with pytest.raises(StorageError):
            await SqliteStorage(tmp_path / "store.sqlite").set("k", {1, 2})

    async def test_vacuum(self, tmp_path):
        """Test that vacuum keeps the data intact."""
        storage = SqliteStorage(tmp_path / "store.sqlite")
        await storage.set("k", "v")
        await storage.vacuum()
        assert await storage.get("k") == "v"


class TestCreateStorage:
    """Tests for the backend factory."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        """Fixture removing storage environment overrides."""
        monkeypatch.delenv("OFFLINE_KIT_STORAGE", raising=False)
        monkeypatch.delenv("OFFLINE_KIT_STORAGE_PATH", raising=False)

    def test_auto_without_path_is_memory(self):
        """Test the default backend."""
        assert isinstance(create_storage(), MemoryStorage)

    @pytest.mark.parametrize("name", ["cache.db", "cache.sqlite", "cache.SQLITE3"])
    def test_auto_database_suffix_is_sqlite(self, tmp_path, name):
        """Test that database-like suffixes select SQLite."""
        assert isinstance(create_storage(path=tmp_path / name), SqliteStorage)

    def test_auto_other_path_is_file(self, tmp_path):
        """Test that any other path selects the JSON file backend."""
        assert isinstance(create_storage(path=tmp_path / "cache.json"), FileStorage)

    def test_explicit_backend(self, tmp_path):
        """Test that an explicit backend beats the suffix heuristic."""
        assert isinstance(
            create_storage("file", tmp_path / "cache.db"), FileStorage
        )

    def test_environment_fallback(self, monkeypatch, tmp_path):
        """Test backend selection from environment variables."""
        monkeypatch.setenv("OFFLINE_KIT_STORAGE", "sqlite")
        monkeypatch.setenv("OFFLINE_KIT_STORAGE_PATH", str(tmp_path / "env.data"))
        storage = create_storage()
        assert isinstance(storage, SqliteStorage)
        assert storage.db_path == tmp_path / "env.data"

    def test_unknown_backend(self):
        """Test that unknown backends are rejected."""
        with pytest.raises(ConfigurationError, match="Unknown storage backend"):
            create_storage("indexeddb")

    def test_durable_backend_requires_path(self):
        """Test that file and sqlite backends need a location."""
        with pytest.raises(ConfigurationError, match="requires a path"):
            create_storage("sqlite")

    def test_open_storage_from_config(self, tmp_path):
        """Test building the adapter from a validated configuration."""
        config = OfflineConfig(
            storage_backend="file", storage_path=str(tmp_path / "x.json")
        )
        assert isinstance(open_storage(config), FileStorage)
