"""
Sparx storage layer.

Application code uses StorageService; the other names are exported for
wiring and tests.
"""

from db.base import Collection, StorageBackend
from db.exceptions import (
    BackendError,
    ConfigError,
    NotConnectedError,
    NotInitializedError,
    StorageError,
)
from db.factory import BackendFactory
from db.kv import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore
from db.migrations import Migration, MigrationRunner
from db.service import StorageService

__all__ = [
    "StorageService",
    "BackendFactory",
    "MigrationRunner",
    "Migration",
    "StorageBackend",
    "Collection",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
    "StorageError",
    "ConfigError",
    "NotConnectedError",
    "BackendError",
    "NotInitializedError",
]
