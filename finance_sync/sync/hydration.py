"""
Offline Hydrator

Durable per-entity snapshots of the last successful fetch, stored as
JSON strings in key-value storage under "<prefix><entity type>".

- persist() runs after every successful fetch. Write failures (quota,
  unserializable records) are logged and swallowed.
- hydrate_all() runs at most once, at mount, and only when offline.
  Missing or corrupt snapshots read as an empty collection.
- Last write wins; snapshots are not versioned.
"""

import json
from typing import Optional

import structlog

from finance_sync.audit import SyncAuditLogger
from finance_sync.config import get_settings
from finance_sync.models.entities import EntityType, Records
from finance_sync.models.events import SyncEventBuilder
from finance_sync.services.storage import KeyValueStorageInterface, StorageError


logger = structlog.get_logger(__name__)


class OfflineHydrator:
    """Reads and writes offline snapshots for every entity type."""
    
    def __init__(
        self,
        storage: KeyValueStorageInterface,
        prefix: Optional[str] = None,
        audit_logger: Optional[SyncAuditLogger] = None,
    ):
        self._storage = storage
        self._prefix = prefix if prefix is not None else get_settings().storage.snapshot_prefix
        self._audit_logger = audit_logger
    
    def key_for(self, entity_type: EntityType) -> str:
        return f"{self._prefix}{entity_type.value}"
    
    def read(self, entity_type: EntityType) -> Records:
        """Snapshot for one entity type; [] if missing or unreadable."""
        key = self.key_for(entity_type)
        try:
            raw = self._storage.get(key)
        except StorageError as e:
            logger.warning("snapshot_read_failed", key=key, error=str(e))
            return []
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("snapshot_corrupt", key=key)
            return []
        if not isinstance(data, list):
            logger.warning("snapshot_corrupt", key=key, found=type(data).__name__)
            return []
        return data
    
    def hydrate_all(self) -> dict[EntityType, Records]:
        """Read every snapshot. Never raises."""
        hydrated = {entity_type: self.read(entity_type) for entity_type in EntityType}
        if self._audit_logger:
            self._audit_logger.log(
                SyncEventBuilder.hydration_completed(
                    {entity_type.value: len(data) for entity_type, data in hydrated.items()}
                )
            )
        return hydrated
    
    def persist(self, entity_type: EntityType, data: Records) -> bool:
        """
        Write the snapshot for entity_type.
        
        Returns False (after logging) if serialization or the write
        failed; in-memory state is never affected.
        """
        try:
            payload = json.dumps(data)
            self._storage.set(self.key_for(entity_type), payload)
        except (TypeError, ValueError, StorageError) as e:
            if self._audit_logger:
                self._audit_logger.log(
                    SyncEventBuilder.snapshot_persist_failed(entity_type, str(e))
                )
            else:
                logger.warning(
                    "snapshot_persist_failed",
                    entity_type=entity_type.value,
                    error=str(e),
                )
            return False
        
        if self._audit_logger:
            self._audit_logger.log(SyncEventBuilder.snapshot_persisted(entity_type, len(data)))
        return True
    
    def clear(self, entity_type: EntityType) -> None:
        """Drop the snapshot for entity_type."""
        self._storage.remove(self.key_for(entity_type))
