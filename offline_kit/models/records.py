"""
Records owned by the cache manager and the sync queue.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with its timing metadata. ``stale`` is computed on read."""

    data: T
    cached_at: int
    expires_at: int | None = None
    tags: list[str] | None = None
    stale: bool = False

    @classmethod
    def from_record(cls, record: dict[str, Any], stale: bool) -> "CacheEntry[T]":
        return cls(
            data=record.get("data"),
            cached_at=record.get("cached_at", 0),
            expires_at=record.get("expires_at"),
            tags=record.get("tags"),
            stale=stale,
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "cached_at": self.cached_at,
            "expires_at": self.expires_at,
            "tags": self.tags,
        }


@dataclass
class FetchResult(Generic[T]):
    """Outcome of CacheManager.get_or_fetch."""

    data: T
    from_cache: bool
    stale: bool


@dataclass
class CacheStats:
    """Hit/miss counters collected by CacheManager.get_or_fetch."""

    hits: int = 0
    stale_hits: int = 0
    misses: int = 0

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.stale_hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits + self.stale_hits) / total


class SyncStatus(str, Enum):
    """Lifecycle state of a queued operation."""

    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"  # terminal, the record is deleted
    FAILED = "failed"  # terminal until retry()


class QueuedOperation(BaseModel):
    """A durable unit of work waiting to be delivered by a registered handler."""

    id: str
    type: str
    payload: Any = None
    status: SyncStatus = SyncStatus.PENDING
    created_at: int
    attempts: int = Field(0, ge=0)
    last_attempt: int | None = None
    last_error: str | None = None
    priority: int = 0

    def to_record(self) -> dict[str, Any]:
        """Serialises the operation into a JSON-compatible storage record."""
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "QueuedOperation":
        return cls.model_validate(record)


@dataclass
class SyncResult:
    """Aggregate counts of a single sync pass."""

    synced: int = 0
    failed: int = 0
