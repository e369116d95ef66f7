"""
Storage Services Package

Key-value storage for offline snapshots and the persisted chaos toggle.
Memory and file backends are provided; both follow the same interface.
"""

from typing import Optional

from finance_sync.config import StorageSettings, get_settings
from finance_sync.services.storage.interface import (
    KeyValueStorageInterface,
    StorageError,
    StorageQuotaExceededError,
)
from finance_sync.services.storage.file_store import FileKeyValueStorage
from finance_sync.services.storage.memory import InMemoryKeyValueStorage


def create_storage(settings: Optional[StorageSettings] = None) -> KeyValueStorageInterface:
    """Build the backend selected in settings."""
    settings = settings or get_settings().storage
    if settings.backend == "file":
        return FileKeyValueStorage(settings.directory)
    return InMemoryKeyValueStorage()


__all__ = [
    # Interfaces
    "KeyValueStorageInterface",
    # Exceptions
    "StorageError",
    "StorageQuotaExceededError",
    # Implementations
    "FileKeyValueStorage",
    "InMemoryKeyValueStorage",
    "create_storage",
]
