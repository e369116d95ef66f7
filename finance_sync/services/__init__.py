"""Services package."""

from finance_sync.services.registry import (
    EntityClient,
    EntityRegistry,
    MissingEntityClientError,
    MutableEntityClient,
)
from finance_sync.services.storage import (
    FileKeyValueStorage,
    InMemoryKeyValueStorage,
    KeyValueStorageInterface,
    StorageError,
    StorageQuotaExceededError,
    create_storage,
)
from finance_sync.services.worker import (
    UnknownCalculationError,
    WorkerChannel,
    WorkerError,
    WorkerTimeoutError,
    get_worker_channel,
)

__all__ = [
    # Entity registry
    "EntityClient",
    "EntityRegistry",
    "MissingEntityClientError",
    "MutableEntityClient",
    # Storage services
    "FileKeyValueStorage",
    "InMemoryKeyValueStorage",
    "KeyValueStorageInterface",
    "StorageError",
    "StorageQuotaExceededError",
    "create_storage",
    # Background calculations
    "UnknownCalculationError",
    "WorkerChannel",
    "WorkerError",
    "WorkerTimeoutError",
    "get_worker_channel",
]
