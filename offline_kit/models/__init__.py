"""
Data Models.

Validated option/configuration models and the records persisted by the
cache manager and the sync queue.
"""

from .config import CacheOptions, OfflineConfig, SyncQueueOptions
from .records import (
    CacheEntry,
    CacheStats,
    FetchResult,
    QueuedOperation,
    SyncResult,
    SyncStatus,
)

__all__ = [
    "CacheEntry",
    "CacheOptions",
    "CacheStats",
    "FetchResult",
    "OfflineConfig",
    "QueuedOperation",
    "SyncQueueOptions",
    "SyncResult",
    "SyncStatus",
]
