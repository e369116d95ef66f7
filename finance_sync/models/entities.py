"""
Core Data Models for Finance Sync

The sync layer treats financial records as opaque: a record is whatever
the remote entity API returns, and nothing here validates or transforms
its shape. These models only describe the layer's own bookkeeping.
"""

from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


Record = Any
Records = list[Record]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntityType(str, Enum):
    """
    The seven financial collections loaded by the dashboard.
    
    The set is closed. Adding an entity means adding a member here
    and a client to the registry.
    """
    TRANSACTIONS = "transactions"
    SHIFTS = "shifts"
    GOALS = "goals"
    DEBTS = "debts"
    BUDGETS = "budgets"
    BILLS = "bills"
    INVESTMENTS = "investments"
    
    @classmethod
    def coerce(cls, value: Union["EntityType", str]) -> "EntityType":
        """Accept either a member or its string value."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown entity type: {value!r}") from None


# =============================================================================
# CACHE
# =============================================================================

class CacheEntry(BaseModel):
    """
    Last-known data for one entity type.
    
    Created empty (timestamp 0, version 0). Replaced, never mutated,
    on each successful fetch: version goes up by exactly one and the
    timestamp never moves backwards.
    """
    model_config = ConfigDict(frozen=True)
    
    data: Records = Field(default_factory=list)
    timestamp: float = Field(
        default=0.0,
        ge=0,
        description="Epoch seconds of the fetch that produced this data"
    )
    version: int = Field(
        default=0,
        ge=0,
        description="Number of successful fetches so far"
    )
    
    @property
    def is_empty(self) -> bool:
        """True until the first successful fetch."""
        return self.version == 0


class CacheInfo(BaseModel):
    """Cache metadata exposed to the UI (no record payload)."""
    model_config = ConfigDict(frozen=True)
    
    timestamp: float
    version: int
    size: int


# =============================================================================
# OBSERVABLE STATE
# =============================================================================

class SyncStatus(BaseModel):
    """
    Aggregated loading/error state for the UI.
    
    Derived on demand from the orchestrator; never persisted.
    """
    model_config = ConfigDict(frozen=True)
    
    loading: dict[EntityType, bool] = Field(default_factory=dict)
    loading_all: bool = False
    errors: dict[EntityType, str] = Field(default_factory=dict)
    data_loaded: bool = False
    cache_info: dict[EntityType, CacheInfo] = Field(default_factory=dict)
    
    @property
    def is_loading(self) -> bool:
        return self.loading_all or any(self.loading.values())
    
    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
    
    def error_for(self, entity_type: EntityType) -> Optional[str]:
        return self.errors.get(entity_type)


# =============================================================================
# OPTIMISTIC MUTATION OUTCOMES
# =============================================================================

class MutationApplied(BaseModel):
    """The remote commit succeeded; the speculative change stands."""
    
    kind: Literal["applied"] = "applied"
    entity_type: EntityType
    result: Any = None


class MutationRolledBack(BaseModel):
    """The remote commit failed; the entity data was restored exactly."""
    
    kind: Literal["rolled_back"] = "rolled_back"
    entity_type: EntityType
    reason: str


MutationOutcome = Union[MutationApplied, MutationRolledBack]
