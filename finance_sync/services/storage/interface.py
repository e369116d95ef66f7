"""
Abstract Key-Value Storage Interface

DESIGN DECISION: The sync layer only needs a tiny string key-value store
(get / set / remove), the same shape as browser localStorage. Offline
snapshots and the chaos toggle both live behind this interface, so the
backend can be memory for tests or files on disk for a real client.

Values are always strings. Serialization is the caller's job.
"""

from abc import ABC, abstractmethod
from typing import Iterator, Optional


class KeyValueStorageInterface(ABC):
    """
    Abstract interface for persistent key-value storage.
    
    Implementations raise StorageError when the backend itself fails
    (disk full, permissions). A missing key is not an error.
    """
    
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read a value.
        
        Returns:
            The stored string, or None if the key does not exist
            
        Raises:
            StorageError: If the backend cannot be read
        """
        pass
    
    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Write a value, replacing any previous one.
        
        Raises:
            StorageError: If the write fails (e.g. quota exceeded)
        """
        pass
    
    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key. Removing a missing key is a no-op."""
        pass
    
    @abstractmethod
    def keys(self, prefix: str = "") -> Iterator[str]:
        """Iterate over stored keys starting with prefix."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageQuotaExceededError(StorageError):
    """The backend refused a write because it is full."""
    pass
