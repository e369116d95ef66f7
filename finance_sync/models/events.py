"""
Sync Event Models

Every significant step of the sync pipeline produces a SyncEvent.
This provides:
1. A trace of what each entity fetch did (hit, retry, fail, discard)
2. Timing for every remote list() call
3. A history the diagnostics screen can show without a debugger

DESIGN DECISION: Events are append-only. They are never edited after
being built.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_sync.models.entities import EntityType


class SyncEventType(str, Enum):
    """Types of events emitted by the sync layer."""
    # Fetch lifecycle
    CACHE_HIT = "cache_hit"
    FETCH_STARTED = "fetch_started"
    FETCH_SUCCEEDED = "fetch_succeeded"
    FETCH_FAILED = "fetch_failed"
    FETCH_DISCARDED = "fetch_discarded"
    RETRY_SCHEDULED = "retry_scheduled"
    
    # Chaos
    CHAOS_INJECTED = "chaos_injected"
    CHAOS_TOGGLED = "chaos_toggled"
    
    # Offline snapshots
    SNAPSHOT_PERSISTED = "snapshot_persisted"
    SNAPSHOT_PERSIST_FAILED = "snapshot_persist_failed"
    HYDRATION_COMPLETED = "hydration_completed"
    
    # Background refresh
    STALE_SWEEP = "stale_sweep"
    
    # Mutations
    MUTATION_APPLIED = "mutation_applied"
    MUTATION_ROLLED_BACK = "mutation_rolled_back"
    
    # System events
    SYSTEM_ERROR = "system_error"


class SyncSeverity(str, Enum):
    """Severity level for sync events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncEvent(BaseModel):
    """A single sync event."""
    
    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )
    
    # Event classification
    event_type: SyncEventType = Field(
        ...,
        description="Type of event"
    )
    severity: SyncSeverity = Field(
        default=SyncSeverity.INFO,
        description="Event severity"
    )
    
    # Context
    entity_type: Optional[EntityType] = Field(
        default=None,
        description="Entity collection this event relates to"
    )
    request_id: Optional[int] = Field(
        default=None,
        description="Cancellation token id of the fetch, if any"
    )
    
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )
    duration_ms: Optional[float] = Field(
        default=None,
        ge=0,
        description="Wall time of the remote call, for fetch events"
    )
    error_message: Optional[str] = None
    
    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type.value if self.entity_type else None,
            "request_id": self.request_id,
            "description": self.description,
            "details": self.details,
            "duration_ms": self.duration_ms,
            "error_message": self.error_message,
        }


class SyncEventBuilder:
    """
    Helper class to build sync events with common patterns.
    
    Usage:
        event = SyncEventBuilder.cache_hit(EntityType.DEBTS, version=3)
        event = SyncEventBuilder.fetch_failed(EntityType.BILLS, 7, "timeout", 812.4)
    """
    
    @staticmethod
    def cache_hit(entity_type: EntityType, version: int, age_seconds: float) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.CACHE_HIT,
            severity=SyncSeverity.DEBUG,
            entity_type=entity_type,
            description=f"Served {entity_type.value} from cache",
            details={"version": version, "age_seconds": round(age_seconds, 3)},
        )
    
    @staticmethod
    def fetch_started(entity_type: EntityType, request_id: int, forced: bool) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.FETCH_STARTED,
            severity=SyncSeverity.DEBUG,
            entity_type=entity_type,
            request_id=request_id,
            description=f"Fetching {entity_type.value}",
            details={"forced": forced},
        )
    
    @staticmethod
    def fetch_succeeded(
        entity_type: EntityType,
        request_id: int,
        record_count: int,
        version: int,
        duration_ms: float,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.FETCH_SUCCEEDED,
            entity_type=entity_type,
            request_id=request_id,
            description=f"Loaded {record_count} {entity_type.value}",
            details={"record_count": record_count, "version": version},
            duration_ms=duration_ms,
        )
    
    @staticmethod
    def fetch_failed(
        entity_type: EntityType,
        request_id: int,
        error_message: str,
        duration_ms: float,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.FETCH_FAILED,
            severity=SyncSeverity.ERROR,
            entity_type=entity_type,
            request_id=request_id,
            description=f"Error loading {entity_type.value}",
            error_message=error_message,
            duration_ms=duration_ms,
        )
    
    @staticmethod
    def fetch_discarded(entity_type: EntityType, request_id: int, duration_ms: float) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.FETCH_DISCARDED,
            severity=SyncSeverity.DEBUG,
            entity_type=entity_type,
            request_id=request_id,
            description=f"Discarded superseded {entity_type.value} response",
            duration_ms=duration_ms,
        )
    
    @staticmethod
    def retry_scheduled(
        attempt: int,
        delay_seconds: float,
        error_message: str,
        entity_type: Optional[EntityType] = None,
        request_id: Optional[int] = None,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.RETRY_SCHEDULED,
            severity=SyncSeverity.WARNING,
            entity_type=entity_type,
            request_id=request_id,
            description=f"Attempt {attempt} failed, retrying in {delay_seconds:.3f}s",
            details={"attempt": attempt, "delay_seconds": delay_seconds},
            error_message=error_message,
        )
    
    @staticmethod
    def chaos_injected(entity_type: EntityType, outcome: str, delay_seconds: float) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.CHAOS_INJECTED,
            severity=SyncSeverity.WARNING,
            entity_type=entity_type,
            description=f"Chaos outcome for {entity_type.value}: {outcome}",
            details={"outcome": outcome, "delay_seconds": round(delay_seconds, 3)},
        )
    
    @staticmethod
    def chaos_toggled(enabled: bool) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.CHAOS_TOGGLED,
            severity=SyncSeverity.WARNING if enabled else SyncSeverity.INFO,
            description=f"Chaos mode {'enabled' if enabled else 'disabled'}",
            details={"enabled": enabled},
        )
    
    @staticmethod
    def snapshot_persisted(entity_type: EntityType, record_count: int) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SNAPSHOT_PERSISTED,
            severity=SyncSeverity.DEBUG,
            entity_type=entity_type,
            description=f"Saved offline snapshot of {entity_type.value}",
            details={"record_count": record_count},
        )
    
    @staticmethod
    def snapshot_persist_failed(entity_type: EntityType, error_message: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SNAPSHOT_PERSIST_FAILED,
            severity=SyncSeverity.WARNING,
            entity_type=entity_type,
            description=f"Failed to save {entity_type.value} to local storage",
            error_message=error_message,
        )
    
    @staticmethod
    def hydration_completed(counts: dict[str, int]) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.HYDRATION_COMPLETED,
            description="Hydrated data from offline snapshots",
            details={"record_counts": counts},
        )
    
    @staticmethod
    def stale_sweep(stale: list[EntityType]) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.STALE_SWEEP,
            severity=SyncSeverity.DEBUG,
            description=f"Refreshing {len(stale)} stale collections",
            details={"entity_types": [t.value for t in stale]},
        )
    
    @staticmethod
    def mutation_applied(entity_type: EntityType, operation: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.MUTATION_APPLIED,
            entity_type=entity_type,
            description=f"{operation.capitalize()} on {entity_type.value} committed",
            details={"operation": operation},
        )
    
    @staticmethod
    def mutation_rolled_back(entity_type: EntityType, operation: str, reason: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.MUTATION_ROLLED_BACK,
            severity=SyncSeverity.WARNING,
            entity_type=entity_type,
            description=f"{operation.capitalize()} on {entity_type.value} rolled back",
            details={"operation": operation},
            error_message=reason,
        )
    
    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SYSTEM_ERROR,
            severity=SyncSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
