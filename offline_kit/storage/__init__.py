"""
Storage Layer.

This package holds the key/value adapter contract, its memory, JSON-file and
SQLite implementations, and the INI configuration manager.
"""

from .base import StorageAdapter
from .config_manager import ConfigManager
from .factory import create_storage, open_storage
from .file import FileStorage
from .memory import MemoryStorage
from .sqlite import SqliteStorage

__all__ = [
    "ConfigManager",
    "FileStorage",
    "MemoryStorage",
    "SqliteStorage",
    "StorageAdapter",
    "create_storage",
    "open_storage",
]
