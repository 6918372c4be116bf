"""
A JSON file-backed store for single-process durability.

The whole map is loaded on first use, kept in memory, and rewritten atomically
after every mutation.
"""

import asyncio
import json
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import aiofiles

from offline_kit.exceptions import StorageError
from offline_kit.utils.duration import now_ms

from .base import StorageAdapter

log = logging.getLogger(__name__)


class FileStorage(StorageAdapter):
    """
    Persists every entry to a single JSON document on disk.

    Not safe for concurrent writers in different OS processes: the last
    writer wins.
    """

    def __init__(self, path: Path | str, clock: Callable[[], int] = now_ms):
        """
        Args:
            path: Location of the JSON document. Parent directories are created
                on first write.
            clock: Returns the current time in epoch milliseconds.
        """
        self.path = Path(path)
        self._clock = clock
        self._entries: dict[str, dict[str, Any]] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    async def _load(self) -> None:
        if self._loaded:
            return
        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            self._entries = {}
            self._loaded = True
            return
        except OSError as e:
            raise StorageError(f"Failed to read storage file '{self.path}': {e}") from e

        try:
            parsed = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise StorageError(
                f"Storage file '{self.path}' is not valid JSON: {e}"
            ) from e
        if not isinstance(parsed, dict):
            raise StorageError(f"Storage file '{self.path}' must hold a JSON object.")

        self._entries = parsed
        self._loaded = True
        log.debug(f"Loaded {len(self._entries)} entries from {self.path}.")

    async def _save(self) -> None:
        """Writes the map to a temporary file and atomically swaps it in."""
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            serialized = json.dumps(self._entries, indent=2)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value is not JSON-serialisable: {e}") from e
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(serialized)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write storage file '{self.path}': {e}") from e

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            await self._load()
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry.get("expires"), self._clock()):
                del self._entries[key]
                await self._save()
                return None
            return self._decode(self._encode(key, entry.get("value")))

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        copied = self._decode(self._encode(key, value))
        async with self._lock:
            await self._load()
            previous = self._entries.get(key)
            self._entries[key] = {
                "value": copied,
                "expires": self._expiry(self._clock(), ttl),
            }
            try:
                await self._save()
            except StorageError:
                if previous is None:
                    del self._entries[key]
                else:
                    self._entries[key] = previous
                raise

    async def delete(self, key: str) -> None:
        async with self._lock:
            await self._load()
            if self._entries.pop(key, None) is not None:
                await self._save()

    async def clear(self) -> None:
        async with self._lock:
            self._entries = {}
            self._loaded = True
            await self._save()

    async def keys(self, prefix: str | None = None) -> list[str]:
        async with self._lock:
            await self._load()
            now = self._clock()
            live = [
                key
                for key, entry in self._entries.items()
                if not self._is_expired(entry.get("expires"), now)
            ]
        return self._filter_prefix(live, prefix)

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None
