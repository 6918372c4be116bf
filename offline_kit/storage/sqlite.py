"""
A durable SQLite object store. Blocking calls run in worker threads so the
adapter surface stays asynchronous.
"""

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any

from offline_kit.exceptions import StorageError
from offline_kit.utils.duration import now_ms

from .base import StorageAdapter

log = logging.getLogger(__name__)


class SqliteStorage(StorageAdapter):
    """
    Key/value adapter over a single ``kv_store`` table with connection pooling
    and WAL journaling.
    """

    def __init__(
        self,
        db_path: Path | str,
        pool_size: int = 5,
        clock: Callable[[], int] = now_ms,
    ):
        self.db_path = Path(db_path)
        self._clock = clock
        self._connection_semaphore = asyncio.Semaphore(pool_size)
        self._initialize_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Gets a new database connection with optimized PRAGMA settings."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=30, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            return conn
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database '{self.db_path}': {e}") from e

    def _initialize_db(self) -> None:
        """Creates the table and expiry index if they don't exist."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._get_connection()
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY NOT NULL,
                        value TEXT NOT NULL,
                        expires_at INTEGER
                    );
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_expires_at ON kv_store(expires_at);"
                )
            conn.close()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(
                f"Failed to initialize database at '{self.db_path}': {e}"
            ) from e

    async def _run_in_executor(self, func, *args):
        """Runs a synchronous database function within the connection pool semaphore."""
        async with self._connection_semaphore:
            return await asyncio.to_thread(func, *args)

    def _execute(self, query: str, params: tuple = ()) -> list[tuple]:
        conn = self._get_connection()
        try:
            with conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Database operation failed: {e}") from e
        finally:
            conn.close()

    def _get_sync(self, key: str, now: int) -> Any | None:
        rows = self._execute(
            "SELECT value, expires_at FROM kv_store WHERE key = ?", (key,)
        )
        if not rows:
            return None
        value, expires_at = rows[0]
        if self._is_expired(expires_at, now):
            self._execute("DELETE FROM kv_store WHERE key = ?", (key,))
            return None
        return self._decode(value)

    async def get(self, key: str) -> Any | None:
        return await self._run_in_executor(self._get_sync, key, self._clock())

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        serialized = self._encode(key, value)
        await self._run_in_executor(
            self._execute,
            "INSERT OR REPLACE INTO kv_store (key, value, expires_at) VALUES (?, ?, ?)",
            (key, serialized, self._expiry(self._clock(), ttl)),
        )

    async def delete(self, key: str) -> None:
        await self._run_in_executor(
            self._execute, "DELETE FROM kv_store WHERE key = ?", (key,)
        )

    async def clear(self) -> None:
        await self._run_in_executor(self._execute, "DELETE FROM kv_store")

    async def keys(self, prefix: str | None = None) -> list[str]:
        rows = await self._run_in_executor(
            self._execute,
            "SELECT key FROM kv_store WHERE expires_at IS NULL OR expires_at >= ?"
            " ORDER BY key",
            (self._clock(),),
        )
        return self._filter_prefix([row[0] for row in rows], prefix)

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    def _vacuum_sync(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("VACUUM;")
            conn.execute("ANALYZE;")
            conn.commit()
        finally:
            conn.close()

    async def vacuum(self) -> None:
        """Optimizes the database file by rebuilding it."""
        try:
            await self._run_in_executor(self._vacuum_sync)
        except sqlite3.Error as e:
            raise StorageError(f"Database vacuum failed: {e}") from e
        log.info("Storage database optimized successfully.")
