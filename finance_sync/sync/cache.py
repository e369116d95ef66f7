"""
Cache Store

One slot per EntityType holding the last-known data, the fetch time and
a version counter. All mutation happens on the event loop thread, so
there is no locking.
"""

import time
from typing import Callable, Optional

from finance_sync.models.entities import CacheEntry, CacheInfo, EntityType, Records


Clock = Callable[[], float]


class CacheStore:
    """
    Per-entity cache with time-based freshness.
    
    GUARANTEES:
    - Every entity type has an entry from construction (empty, v0, t0)
    - write() bumps the version by exactly one
    - Timestamps never move backwards, even if the clock does
    """
    
    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or time.time
        self._entries: dict[EntityType, CacheEntry] = {
            entity_type: CacheEntry() for entity_type in EntityType
        }
    
    def now(self) -> float:
        return self._clock()
    
    def read(self, entity_type: EntityType) -> CacheEntry:
        return self._entries[entity_type]
    
    def write(self, entity_type: EntityType, data: Records) -> CacheEntry:
        """Store freshly fetched data and return the new entry."""
        previous = self._entries[entity_type]
        entry = CacheEntry(
            data=list(data),
            timestamp=max(self._clock(), previous.timestamp),
            version=previous.version + 1,
        )
        self._entries[entity_type] = entry
        return entry
    
    def age(self, entity_type: EntityType) -> float:
        """Seconds since the entry was written (since epoch for empty entries)."""
        return self._clock() - self._entries[entity_type].timestamp
    
    def is_fresh(self, entity_type: EntityType, ttl: float) -> bool:
        """
        True when the entry was fetched less than ttl seconds ago.
        
        An entry that was never fetched is never fresh.
        """
        entry = self._entries[entity_type]
        if entry.is_empty:
            return False
        return self._clock() - entry.timestamp < ttl
    
    def stale_types(self, ttl: float) -> list[EntityType]:
        """Entity types whose age exceeds ttl, in EntityType order."""
        now = self._clock()
        return [
            entity_type
            for entity_type, entry in self._entries.items()
            if now - entry.timestamp > ttl
        ]
    
    def snapshot(self) -> dict[EntityType, CacheInfo]:
        """Metadata for every entry, without the record payloads."""
        return {
            entity_type: CacheInfo(
                timestamp=entry.timestamp,
                version=entry.version,
                size=len(entry.data),
            )
            for entity_type, entry in self._entries.items()
        }
