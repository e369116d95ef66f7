"""In-memory key-value storage, used by tests and as the default backend."""

from typing import Iterator, Optional

from finance_sync.services.storage.interface import (
    KeyValueStorageInterface,
    StorageQuotaExceededError,
)


class InMemoryKeyValueStorage(KeyValueStorageInterface):
    """
    Dict-backed storage.
    
    An optional quota (total characters across keys and values) lets
    tests reproduce the quota failures a browser store would raise.
    """
    
    def __init__(self, initial: Optional[dict[str, str]] = None, quota_chars: Optional[int] = None):
        self._values: dict[str, str] = dict(initial or {})
        self._quota_chars = quota_chars
    
    def _size_with(self, key: str, value: str) -> int:
        size = sum(len(k) + len(v) for k, v in self._values.items() if k != key)
        return size + len(key) + len(value)
    
    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)
    
    def set(self, key: str, value: str) -> None:
        if self._quota_chars is not None and self._size_with(key, value) > self._quota_chars:
            raise StorageQuotaExceededError(
                f"Storage quota of {self._quota_chars} characters exceeded writing {key}"
            )
        self._values[key] = value
    
    def remove(self, key: str) -> None:
        self._values.pop(key, None)
    
    def keys(self, prefix: str = "") -> Iterator[str]:
        return iter([k for k in self._values if k.startswith(prefix)])
    
    def __len__(self) -> int:
        return len(self._values)
