"""
File-Backed Key-Value Storage

One file per key in a single directory. This is the durable backend:
snapshots written here survive process restarts.

Keys are arbitrary strings (they contain ':' and other characters that
are unsafe in file names), so each key is stored under its urlsafe
base64 encoding. Writes go through a temp file and os.replace so a crash
mid-write never leaves a half-written snapshot behind.
"""

import base64
import errno
import os
import tempfile
from pathlib import Path
from typing import Iterator, Optional, Union

from finance_sync.services.storage.interface import (
    KeyValueStorageInterface,
    StorageError,
    StorageQuotaExceededError,
)


_SUFFIX = ".kv"


def _encode_key(key: str) -> str:
    return base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii") + _SUFFIX


def _decode_key(filename: str) -> Optional[str]:
    if not filename.endswith(_SUFFIX):
        return None
    try:
        return base64.urlsafe_b64decode(filename[: -len(_SUFFIX)]).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return None


class FileKeyValueStorage(KeyValueStorageInterface):
    """Directory-backed storage with atomic writes."""
    
    def __init__(self, directory: Union[str, Path]):
        self._directory = Path(directory)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create storage directory {self._directory}: {e}")
    
    @property
    def directory(self) -> Path:
        return self._directory
    
    def _path_for(self, key: str) -> Path:
        return self._directory / _encode_key(key)
    
    def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to read {key}: {e}")
    
    def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self._directory, prefix=".tmp_")
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            if e.errno == errno.ENOSPC:
                raise StorageQuotaExceededError(f"Disk full writing {key}")
            raise StorageError(f"Failed to write {key}: {e}")
    
    def remove(self, key: str) -> None:
        try:
            self._path_for(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to remove {key}: {e}")
    
    def keys(self, prefix: str = "") -> Iterator[str]:
        found = []
        for entry in sorted(self._directory.iterdir()):
            key = _decode_key(entry.name)
            if key is None:
                continue
            if key.startswith(prefix):
                found.append(key)
        return iter(found)
