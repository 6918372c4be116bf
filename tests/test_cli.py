"""Tests for the offline-kit command-line interface."""

import asyncio
import json

import pytest
from typer.testing import CliRunner

from offline_kit import __version__
from offline_kit.cache.manager import CacheManager
from offline_kit.cli import app as cli_app
from offline_kit.models.config import SyncQueueOptions
from offline_kit.storage.sqlite import SqliteStorage
from offline_kit.sync.connectivity import ManualConnectivity
from offline_kit.sync.queue import SyncQueue

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Fixture pointing the CLI at a config file inside tmp_path."""
    config_dir = tmp_path / "config"
    monkeypatch.setattr(cli_app, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(cli_app, "CONFIG_FILE", config_dir / "config.ini")
    return config_dir / "config.ini"


@pytest.fixture
def db_path(tmp_path, config_file):
    """Fixture initialising a SQLite-backed configuration."""
    path = tmp_path / "offline.sqlite"
    result = runner.invoke(
        cli_app.app, ["init", "--backend", "sqlite", "--path", str(path), "--force"]
    )
    assert result.exit_code == 0, result.output
    return path


def seed_queue(db_path, *, fail: bool = False) -> str:
    """Enqueues one operation, optionally driving it to the failed state."""

    async def _seed():
        queue = SyncQueue(
            SqliteStorage(db_path),
            SyncQueueOptions(max_retries=1, auto_sync=False),
            connectivity=ManualConnectivity(online=True),
        )
        op = await queue.enqueue("upload", {"file": "a.pdf"})
        if fail:

            async def broken(operation):
                raise RuntimeError("server unavailable")

            queue.register_handler("upload", broken)
            await queue.sync()
        await queue.aclose()
        return op.id

    return asyncio.run(_seed())


def seed_cache(db_path) -> None:
    async def _seed():
        cache = CacheManager(SqliteStorage(db_path))
        await cache.set("user:1", {"name": "A"}, ttl="1h", tags=["profile"])
        await cache.set("user:2", {"name": "B"}, ttl="1h", tags=["profile"])
        await cache.set("settings", {"theme": "dark"})

    asyncio.run(_seed())


class TestGeneral:
    """Tests for top-level options and setup commands."""

    def test_version(self):
        """Test --version."""
        result = runner.invoke(cli_app.app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_init_writes_config(self, config_file, tmp_path):
        """Test that init creates a loadable configuration file."""
        result = runner.invoke(
            cli_app.app,
            ["init", "--backend", "memory", "--ttl", "5m", "--concurrency", "4"],
        )

        assert result.exit_code == 0, result.output
        content = config_file.read_text(encoding="utf-8")
        assert "storage_backend = memory" in content
        assert "default_ttl = 5m" in content
        assert "concurrency = 4" in content

    def test_init_default_path(self, config_file):
        """Test that durable backends default to the config directory."""
        result = runner.invoke(cli_app.app, ["init", "--backend", "file"])

        assert result.exit_code == 0, result.output
        content = config_file.read_text(encoding="utf-8")
        assert str(config_file.parent / "offline.json") in content

    def test_init_rejects_invalid_settings(self, config_file):
        """Test that init validates before writing."""
        result = runner.invoke(cli_app.app, ["init", "--backend", "tape"])

        assert result.exit_code == 1
        assert not config_file.exists()

    def test_init_refuses_overwrite(self, db_path, config_file):
        """Test that an existing file is kept unless confirmed."""
        before = config_file.read_text(encoding="utf-8")
        result = runner.invoke(cli_app.app, ["init", "--backend", "memory"], input="n\n")

        assert result.exit_code != 0
        assert config_file.read_text(encoding="utf-8") == before

    def test_validate(self, db_path):
        """Test validating a good configuration."""
        result = runner.invoke(cli_app.app, ["validate"])
        assert result.exit_code == 0
        assert "valid" in result.output

    def test_validate_missing_config(self, config_file):
        """Test validate without a config file."""
        result = runner.invoke(cli_app.app, ["validate"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_show_config(self, db_path):
        """Test --show-config."""
        result = runner.invoke(cli_app.app, ["--show-config"])
        assert result.exit_code == 0
        assert "storage_backend" in result.output

    def test_diagnose_storage(self, db_path):
        """Test diagnose with a working backend and no connectivity URL."""
        result = runner.invoke(cli_app.app, ["diagnose"])
        assert result.exit_code == 0, result.output
        assert "All checks passed" in result.output


class TestCacheCommands:
    """Tests for the cache sub-commands."""

    def test_list(self, db_path):
        """Test listing cache entries."""
        seed_cache(db_path)
        result = runner.invoke(cli_app.app, ["cache", "list"])
        assert result.exit_code == 0
        assert "3 cache entries" in result.output

    def test_list_empty(self, db_path):
        """Test listing an empty cache."""
        result = runner.invoke(cli_app.app, ["cache", "list"])
        assert result.exit_code == 0
        assert "empty" in result.output

    def test_get_missing(self, db_path):
        """Test reading a key that is not cached."""
        result = runner.invoke(cli_app.app, ["cache", "get", "nope"])
        assert result.exit_code == 1

    def test_invalidate_tag(self, db_path):
        """Test invalidating by tag."""
        seed_cache(db_path)
        result = runner.invoke(cli_app.app, ["cache", "invalidate", "profile"])

        assert result.exit_code == 0
        assert "Invalidated 2 entries" in result.output
        assert runner.invoke(cli_app.app, ["cache", "get", "user:1"]).exit_code == 1
        assert runner.invoke(cli_app.app, ["cache", "get", "settings"]).exit_code == 0

    def test_purge_rejects_bad_duration(self, db_path):
        """Test purge with an invalid --max-stale."""
        result = runner.invoke(cli_app.app, ["cache", "purge", "--max-stale", "later"])
        assert result.exit_code == 1

    def test_clear(self, db_path):
        """Test clearing the cache without prompting."""
        seed_cache(db_path)
        result = runner.invoke(cli_app.app, ["cache", "clear", "--force"])
        assert result.exit_code == 0
        assert "3 entries removed" in result.output


class TestQueueCommands:
    """Tests for the queue sub-commands."""

    def test_list(self, db_path):
        """Test listing queued operations."""
        seed_queue(db_path)
        result = runner.invoke(cli_app.app, ["queue", "list"])
        assert result.exit_code == 0
        assert "1 operations (1 pending)" in result.output

    def test_list_filtered(self, db_path):
        """Test filtering by status."""
        seed_queue(db_path)
        result = runner.invoke(cli_app.app, ["queue", "list", "--status", "failed"])
        assert result.exit_code == 0
        assert "empty" in result.output

    def test_show(self, db_path):
        """Test showing one operation."""
        op_id = seed_queue(db_path, fail=True)
        result = runner.invoke(cli_app.app, ["queue", "show", op_id])
        assert result.exit_code == 0
        assert "server unavailable" in result.output

    def test_show_missing(self, db_path):
        """Test showing an unknown operation."""
        result = runner.invoke(cli_app.app, ["queue", "show", "missing"])
        assert result.exit_code == 1

    def test_requeue_failed(self, db_path):
        """Test that requeue resets a failed record without dispatching it."""
        op_id = seed_queue(db_path, fail=True)
        result = runner.invoke(cli_app.app, ["queue", "requeue", op_id])
        assert result.exit_code == 0, result.output

        async def _load():
            queue = SyncQueue(SqliteStorage(db_path), auto_sync=False)
            return await queue.get(op_id)

        op = asyncio.run(_load())
        assert op.status == "pending"
        assert op.attempts == 0

    def test_requeue_all(self, db_path):
        """Test --all."""
        seed_queue(db_path, fail=True)
        seed_queue(db_path, fail=True)
        result = runner.invoke(cli_app.app, ["queue", "requeue", "--all"])
        assert result.exit_code == 0
        assert "Requeued 2" in result.output

    def test_requeue_pending_is_rejected(self, db_path):
        """Test that only failed operations can be requeued."""
        op_id = seed_queue(db_path)
        result = runner.invoke(cli_app.app, ["queue", "requeue", op_id])
        assert result.exit_code == 1

    def test_remove(self, db_path):
        """Test removing an operation."""
        op_id = seed_queue(db_path)
        assert runner.invoke(cli_app.app, ["queue", "remove", op_id]).exit_code == 0
        assert runner.invoke(cli_app.app, ["queue", "remove", op_id]).exit_code == 1

    def test_clear_cancelled(self, db_path):
        """Test that declining the prompt keeps the queue."""
        seed_queue(db_path)
        result = runner.invoke(cli_app.app, ["queue", "clear"], input="n\n")
        assert result.exit_code != 0
        assert "1 operations" in runner.invoke(cli_app.app, ["queue", "list"]).output

    def test_clear(self, db_path):
        """Test clearing the queue."""
        seed_queue(db_path)
        seed_queue(db_path)
        result = runner.invoke(cli_app.app, ["queue", "clear", "--force"])
        assert result.exit_code == 0
        assert "2 operations removed" in result.output


def read_audit(log_dir) -> list[dict]:
    return [
        json.loads(line)
        for path in sorted(log_dir.glob("offline_kit_*.jsonl"))
        for line in path.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]


class TestAuditLog:
    """Tests for the --log-dir audit trail."""

    def test_changes_are_recorded(self, db_path, tmp_path):
        """Test that requeue, invalidate and clear append JSONL records."""
        log_dir = tmp_path / "logs"
        op_id = seed_queue(db_path, fail=True)
        seed_cache(db_path)

        for args in (
            ["queue", "requeue", op_id],
            ["cache", "invalidate", "profile"],
            ["queue", "clear", "--force"],
        ):
            result = runner.invoke(cli_app.app, ["--log-dir", str(log_dir), *args])
            assert result.exit_code == 0, result.output

        records = read_audit(log_dir)
        assert [r["event"] for r in records] == [
            "queue_requeued",
            "cache_invalidated",
            "queue_cleared",
        ]
        assert records[0]["operation_id"] == op_id
        assert records[0]["command"] == "queue"
        assert records[1]["removed"] == 2
        assert records[2]["removed"] == 1
        assert all(r["level"] == "INFO" for r in records)

    def test_read_only_commands_write_nothing(self, db_path, tmp_path):
        """Test that listing opens the log without adding records."""
        log_dir = tmp_path / "logs"
        seed_queue(db_path)

        result = runner.invoke(cli_app.app, ["--log-dir", str(log_dir), "queue", "list"])
        assert result.exit_code == 0
        assert read_audit(log_dir) == []

    def test_without_log_dir_no_files(self, db_path, tmp_path):
        """Test that nothing is written unless asked."""
        op_id = seed_queue(db_path)
        assert runner.invoke(cli_app.app, ["queue", "remove", op_id]).exit_code == 0
        assert not (tmp_path / "logs").exists()
