"""
Chooses a storage backend from explicit arguments, configuration or the
environment.
"""

import logging
import os
from pathlib import Path

from offline_kit.exceptions import ConfigurationError
from offline_kit.models.config import STORAGE_BACKENDS, OfflineConfig

from .base import StorageAdapter
from .file import FileStorage
from .memory import MemoryStorage
from .sqlite import SqliteStorage

log = logging.getLogger(__name__)

ENV_BACKEND = "OFFLINE_KIT_STORAGE"
ENV_PATH = "OFFLINE_KIT_STORAGE_PATH"

SQLITE_SUFFIXES = (".db", ".sqlite", ".sqlite3")


def create_storage(
    backend: str | None = None, path: Path | str | None = None
) -> StorageAdapter:
    """
    Creates the storage adapter appropriate for the current environment.

    Args:
        backend: One of 'auto', 'memory', 'file' or 'sqlite'. Falls back to the
            OFFLINE_KIT_STORAGE environment variable, then 'auto'.
        path: File or database location. Falls back to OFFLINE_KIT_STORAGE_PATH.

    Returns:
        A ready-to-use StorageAdapter. 'auto' selects SQLite for database-like
        suffixes, a JSON file for any other path and memory when there is no path.

    Raises:
        ConfigurationError: If the backend is unknown or a durable backend has
        no path.
    """
    backend = (backend or os.getenv(ENV_BACKEND) or "auto").strip().lower()
    path = path or os.getenv(ENV_PATH) or None

    if backend not in STORAGE_BACKENDS:
        raise ConfigurationError(
            f"Unknown storage backend '{backend}'. "
            f"Expected one of: {', '.join(STORAGE_BACKENDS)}."
        )

    if backend == "auto":
        if not path:
            backend = "memory"
        elif Path(path).suffix.lower() in SQLITE_SUFFIXES:
            backend = "sqlite"
        else:
            backend = "file"

    if backend == "memory":
        log.debug("Using volatile in-memory storage.")
        return MemoryStorage()

    if not path:
        raise ConfigurationError(f"Storage backend '{backend}' requires a path.")

    path = Path(path).expanduser()
    log.debug(f"Using {backend} storage at {path}.")
    if backend == "sqlite":
        return SqliteStorage(path)
    return FileStorage(path)


def open_storage(config: OfflineConfig) -> StorageAdapter:
    """Builds the storage adapter described by a validated OfflineConfig."""
    return create_storage(config.storage_backend, config.storage_path or None)
