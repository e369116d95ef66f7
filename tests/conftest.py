"""
Shared fixtures for Finance Sync tests.

No real network, no wall-clock sleeps: entity clients are fakes,
backoff and chaos delays go through a recording sleep, and cache time
comes from a fake clock.
"""

import asyncio
import os
import random
from types import SimpleNamespace
from typing import Optional

import pytest

from finance_sync.audit import SyncAuditLogger
from finance_sync.config import AppSettings, ChaosSettings, StorageSettings, SyncSettings, get_settings
from finance_sync.models.entities import EntityType
from finance_sync.orchestrator import FinancialDataOrchestrator
from finance_sync.services.registry import EntityRegistry
from finance_sync.services.storage import InMemoryKeyValueStorage
from finance_sync.sync.cache import CacheStore
from finance_sync.sync.chaos import ChaosInjector
from finance_sync.sync.hydration import OfflineHydrator
from finance_sync.sync.retry import RetryExecutor


class FakeEntityClient:
    """
    Scripted stand-in for a remote entity API.
    
    Each call consumes the next script item: a list is returned, an
    exception is raised. Once the script runs out, `records` is
    returned. A call can be held open with hold(call_index).
    """
    
    def __init__(self, records=None, script=None):
        self.records = list(records or [])
        self.script = list(script or [])
        self.calls: list[tuple[str, int]] = []
        self._gates: dict[int, asyncio.Event] = {}
        self.created: list[dict] = []
        self.updated: list[tuple] = []
        self.deleted: list = []
        self.fail_mutations: Optional[Exception] = None
    
    def hold(self, call_index: int) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[call_index] = gate
        return gate
    
    @property
    def call_count(self) -> int:
        return len(self.calls)
    
    async def list(self, sort_key: str, limit: int):
        index = len(self.calls)
        self.calls.append((sort_key, limit))
        step = self.script.pop(0) if self.script else list(self.records)
        gate = self._gates.get(index)
        if gate is not None:
            await gate.wait()
        if isinstance(step, Exception):
            raise step
        return step
    
    async def create(self, data: dict):
        if self.fail_mutations:
            raise self.fail_mutations
        self.created.append(data)
        return {**data, "id": 999}
    
    async def update(self, record_id, data: dict):
        if self.fail_mutations:
            raise self.fail_mutations
        self.updated.append((record_id, data))
        return {"id": record_id, **data}
    
    async def delete(self, record_id):
        if self.fail_mutations:
            raise self.fail_mutations
        self.deleted.append(record_id)
        return True


class RecordingSleep:
    """Async sleep replacement that records delays and only yields."""
    
    def __init__(self):
        self.delays: list[float] = []
    
    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class FakeClock:
    """Manually advanced epoch clock."""
    
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
    
    def __call__(self) -> float:
        return self.now
    
    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Keep local FINANCE_SYNC_* variables out of the tests."""
    for name in list(os.environ):
        if name.startswith("FINANCE_SYNC_"):
            monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def storage() -> InMemoryKeyValueStorage:
    return InMemoryKeyValueStorage()


@pytest.fixture
def audit_logger() -> SyncAuditLogger:
    return SyncAuditLogger()


@pytest.fixture
def clients() -> dict[EntityType, FakeEntityClient]:
    """One fake client per entity type, each returning one record."""
    return {
        entity_type: FakeEntityClient(records=[{"id": 1, "kind": entity_type.value}])
        for entity_type in EntityType
    }


@pytest.fixture
def make_client():
    return FakeEntityClient


def make_settings(**sync_overrides) -> SimpleNamespace:
    """Settings stand-in with explicit (env-independent) sub-settings."""
    return SimpleNamespace(
        sync=SyncSettings(**sync_overrides),
        chaos=ChaosSettings(),
        storage=StorageSettings(),
        app=AppSettings(),
    )


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def make_orchestrator(clients, storage, clock, sleep, audit_logger):
    """
    Build an orchestrator wired to the shared fakes.
    
    Keyword overrides: clients, online, chaos_rng, chaos_settings,
    retry_rng, and any SyncSettings field.
    """
    def build(
        clients_override=None,
        online: bool = True,
        chaos_rng: Optional[random.Random] = None,
        chaos_settings: Optional[ChaosSettings] = None,
        retry_rng: Optional[random.Random] = None,
        **sync_overrides,
    ) -> FinancialDataOrchestrator:
        sync_overrides.setdefault("auto_refresh", False)
        settings = make_settings(**sync_overrides)
        if chaos_settings is not None:
            settings.chaos = chaos_settings
        return FinancialDataOrchestrator(
            registry=EntityRegistry(clients_override if clients_override is not None else clients),
            storage=storage,
            settings=settings,
            cache=CacheStore(clock=clock),
            retry_executor=RetryExecutor(
                sleep=sleep,
                rng=retry_rng or random.Random(7),
                audit_logger=audit_logger,
            ),
            chaos=ChaosInjector(
                storage,
                settings=settings.chaos,
                rng=chaos_rng or random.Random(11),
                sleep=sleep,
                audit_logger=audit_logger,
            ),
            hydrator=OfflineHydrator(
                storage,
                prefix=settings.storage.snapshot_prefix,
                audit_logger=audit_logger,
            ),
            audit_logger=audit_logger,
            is_online=lambda: online,
            monitor_sleep=sleep,
        )
    
    return build
