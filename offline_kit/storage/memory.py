"""
Volatile in-process storage. Data is lost when the process exits.
"""

from collections.abc import Callable
from typing import Any

from offline_kit.utils.duration import now_ms

from .base import StorageAdapter


class MemoryStorage(StorageAdapter):
    """
    Dictionary-backed adapter, mostly useful for development and tests.

    Values are stored serialised; every get() returns a fresh copy.
    """

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._store: dict[str, dict[str, Any]] = {}
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._is_expired(entry["expires"], self._clock()):
            del self._store[key]
            return None
        return self._decode(entry["value"])

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        self._store[key] = {
            "value": self._encode(key, value),
            "expires": self._expiry(self._clock(), ttl),
        }

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def clear(self) -> None:
        self._store.clear()

    async def keys(self, prefix: str | None = None) -> list[str]:
        now = self._clock()
        live = [
            key
            for key, entry in self._store.items()
            if not self._is_expired(entry["expires"], now)
        ]
        return self._filter_prefix(live, prefix)

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    def __len__(self) -> int:
        return len(self._store)
