"""
Abstract key/value contract shared by every persistence backend.
"""

import json
from abc import ABC, abstractmethod
from typing import Any

from offline_kit.exceptions import StorageError


class StorageAdapter(ABC):
    """
    Minimal persistent key/value store with optional per-entry expiry.

    Values are opaque, JSON-compatible records. Implementations must treat an
    entry whose adapter-level TTL has elapsed as absent, and every operation
    must be safe to repeat.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """
        Loads a value.

        Args:
            key: Full storage key.

        Returns:
            The stored value, or None if missing or expired. Expired entries are
            evicted as a side effect.
        """

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """
        Stores a value, replacing any previous one.

        Args:
            key: Full storage key.
            value: JSON-compatible value.
            ttl: Time-to-live in milliseconds. None or 0 disables expiry.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Removes a key. Deleting a missing key is a no-op."""

    @abstractmethod
    async def clear(self) -> None:
        """Removes every key held by this adapter."""

    @abstractmethod
    async def keys(self, prefix: str | None = None) -> list[str]:
        """Lists live keys, optionally restricted to those starting with prefix."""

    @abstractmethod
    async def has(self, key: str) -> bool:
        """Returns True if the key holds a live (non-expired) value."""

    async def close(self) -> None:
        """Releases any resources held by the adapter."""

    @staticmethod
    def _encode(key: str, value: Any) -> str:
        """Serialises a value so no caller-held reference survives in the store."""
        try:
            return json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(
                f"Value for key '{key}' is not JSON-serialisable: {e}"
            ) from e

    @staticmethod
    def _decode(raw: str) -> Any:
        return json.loads(raw)

    @staticmethod
    def _expiry(now: int, ttl: int | None) -> int | None:
        return now + ttl if ttl else None

    @staticmethod
    def _is_expired(expires: int | None, now: int) -> bool:
        return expires is not None and now > expires

    @staticmethod
    def _filter_prefix(keys: list[str], prefix: str | None) -> list[str]:
        if not prefix:
            return keys
        return [k for k in keys if k.startswith(prefix)]

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
