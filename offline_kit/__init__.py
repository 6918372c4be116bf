"""
Offline-first caching and durable synchronization for asyncio applications.
"""

from offline_kit.cache.manager import CacheManager
from offline_kit.core.offline import offline_cached, with_offline
from offline_kit.exceptions import (
    ConfigurationError,
    InvalidDurationError,
    OfflineKitError,
    StorageError,
)
from offline_kit.models import CacheOptions, SyncQueueOptions
from offline_kit.storage import create_storage
from offline_kit.sync import ManualConnectivity, SyncQueue
from offline_kit.utils.event_log import EventLog, QueueEventLogger

__version__ = "0.1.0"

__all__ = [
    "CacheManager",
    "CacheOptions",
    "ConfigurationError",
    "EventLog",
    "InvalidDurationError",
    "ManualConnectivity",
    "OfflineKitError",
    "QueueEventLogger",
    "StorageError",
    "SyncQueue",
    "SyncQueueOptions",
    "create_storage",
    "offline_cached",
    "with_offline",
    "__version__",
]
