"""
Chaos Injector

Deliberately degrades entity fetches to exercise the resilience of the
sync pipeline and of the dashboard consuming it. Only active while the
persisted chaos flag is on; the flag survives restarts so a tester can
turn it on and reload.

Per call, while enabled:
1. Sleep a random 0.5-2.5 s
2. With probability failure_probability: SIMULATED_FAILURE
3. Else with probability silent_empty_probability: SILENT_EMPTY
4. Else: DELAY_ONLY

The probabilities are tunable test parameters, not production law.
"""

import asyncio
import json
import random
from enum import Enum
from typing import Awaitable, Callable, Optional

from finance_sync.audit import SyncAuditLogger
from finance_sync.config import ChaosSettings, get_settings
from finance_sync.models.entities import EntityType
from finance_sync.models.events import SyncEventBuilder
from finance_sync.services.storage import KeyValueStorageInterface, StorageError


class DisruptionOutcome(str, Enum):
    """What the injector did to one fetch attempt."""
    NONE = "none"                            # chaos disabled
    DELAY_ONLY = "delay_only"
    SIMULATED_FAILURE = "simulated_failure"  # attempt must fail
    SILENT_EMPTY = "silent_empty"            # fetch yields [] with no error


class ChaosFailureError(Exception):
    """Simulated network failure raised while chaos mode is on."""
    
    def __init__(self, entity_type: EntityType):
        self.entity_type = entity_type
        super().__init__(f"Chaos Test: Simulated network failure for {entity_type.value}")


class ChaosInjector:
    """Fault and latency injection behind a persisted toggle."""
    
    def __init__(
        self,
        storage: KeyValueStorageInterface,
        settings: Optional[ChaosSettings] = None,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        audit_logger: Optional[SyncAuditLogger] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().chaos
        self._rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep
        self._audit_logger = audit_logger
    
    @property
    def enabled(self) -> bool:
        """
        Read the persisted flag.
        
        A missing, unreadable or malformed flag means off.
        """
        try:
            raw = self._storage.get(self._settings.flag_key)
        except StorageError:
            return False
        if raw is None:
            return False
        try:
            return json.loads(raw) is True
        except ValueError:
            return False
    
    def set_enabled(self, enabled: bool) -> None:
        """
        Persist the flag.
        
        Raises:
            StorageError: If the flag cannot be written
        """
        self._storage.set(self._settings.flag_key, json.dumps(bool(enabled)))
        if self._audit_logger:
            self._audit_logger.log(SyncEventBuilder.chaos_toggled(bool(enabled)))
    
    async def maybe_disrupt(self, entity_type: EntityType) -> DisruptionOutcome:
        """Apply latency and pick an outcome for one fetch attempt."""
        if not self.enabled:
            return DisruptionOutcome.NONE
        
        delay = self._rng.uniform(self._settings.min_delay_seconds, self._settings.max_delay_seconds)
        await self._sleep(delay)
        
        if self._rng.random() < self._settings.failure_probability:
            outcome = DisruptionOutcome.SIMULATED_FAILURE
        elif self._rng.random() < self._settings.silent_empty_probability:
            outcome = DisruptionOutcome.SILENT_EMPTY
        else:
            outcome = DisruptionOutcome.DELAY_ONLY
        
        if self._audit_logger:
            self._audit_logger.log(
                SyncEventBuilder.chaos_injected(entity_type, outcome.value, delay)
            )
        return outcome
    
    @staticmethod
    def raise_for_outcome(outcome: DisruptionOutcome, entity_type: EntityType) -> None:
        """Turn a SIMULATED_FAILURE outcome into a ChaosFailureError."""
        if outcome == DisruptionOutcome.SIMULATED_FAILURE:
            raise ChaosFailureError(entity_type)
