"""
Data Models Package

Bookkeeping models for the sync layer. Financial records themselves
are opaque and have no model here.
"""

from finance_sync.models.entities import (
    CacheEntry,
    CacheInfo,
    EntityType,
    MutationApplied,
    MutationOutcome,
    MutationRolledBack,
    Record,
    Records,
    SyncStatus,
)
from finance_sync.models.events import (
    SyncEvent,
    SyncEventBuilder,
    SyncEventType,
    SyncSeverity,
)

__all__ = [
    # Entity and cache models
    "CacheEntry",
    "CacheInfo",
    "EntityType",
    "MutationApplied",
    "MutationOutcome",
    "MutationRolledBack",
    "Record",
    "Records",
    "SyncStatus",
    # Event models
    "SyncEvent",
    "SyncEventBuilder",
    "SyncEventType",
    "SyncSeverity",
]
