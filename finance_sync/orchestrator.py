"""
Main Orchestrator for Finance Sync

Composes the sync pipeline and is the only entry point the dashboard
uses to load financial data:

    load_all_data()
      -> load_entity_data(type) for all seven types, in parallel
         -> fresh cache hit? return it, no network
         -> otherwise: new cancellation token
            -> Chaos (if on, once per load) -> Retry -> Entity Registry list()
            -> token still live? write cache + offline snapshot
            -> failure after retries: record error, return last cache

The staleness monitor runs beside this on a timer and refreshes only
the stale types.

DESIGN DECISION: Public coroutines never raise for fetch failures.
Failures surface only through the error map (see status()), so one
broken collection never blocks the rest of the dashboard.
"""

import asyncio
import time
from typing import Awaitable, Callable, Iterable, Mapping, Optional, Union

import structlog

from finance_sync.audit import SyncAuditLogger, configure_logging
from finance_sync.config import Settings, get_settings
from finance_sync.models.entities import CacheInfo, EntityType, Records, SyncStatus
from finance_sync.models.events import SyncEventBuilder
from finance_sync.services.registry import EntityClient, EntityRegistry
from finance_sync.services.storage import KeyValueStorageInterface, create_storage
from finance_sync.sync.cache import CacheStore, Clock
from finance_sync.sync.cancellation import CancellationToken, RequestController
from finance_sync.sync.chaos import ChaosInjector, DisruptionOutcome
from finance_sync.sync.hydration import OfflineHydrator
from finance_sync.sync.retry import RetryExecutor, RetryPolicy
from finance_sync.sync.staleness import StalenessMonitor


logger = structlog.get_logger(__name__)

EntityTypeLike = Union[EntityType, str]
StatusListener = Callable[[SyncStatus], None]


class _SilentEmpty:
    """Marker returned by a fetch attempt that chaos emptied."""


_SILENT_EMPTY = _SilentEmpty()


def _as_records(result: object) -> Records:
    if isinstance(result, (list, tuple)):
        return list(result)
    return []


def _entity_property(entity_type: EntityType) -> property:
    def getter(self: "FinancialDataOrchestrator") -> Records:
        return self._data[entity_type]
    
    getter.__doc__ = f"Current {entity_type.value} records."
    return property(getter)


class FinancialDataOrchestrator:
    """
    Resilient loader for the seven financial collections.
    
    One instance per consumer (dashboard session). All methods must run
    on the same event loop.
    """
    
    def __init__(
        self,
        registry: EntityRegistry,
        storage: KeyValueStorageInterface,
        settings: Optional[Settings] = None,
        cache: Optional[CacheStore] = None,
        requests: Optional[RequestController] = None,
        retry_executor: Optional[RetryExecutor] = None,
        chaos: Optional[ChaosInjector] = None,
        hydrator: Optional[OfflineHydrator] = None,
        audit_logger: Optional[SyncAuditLogger] = None,
        is_online: Optional[Callable[[], bool]] = None,
        clock: Optional[Clock] = None,
        monitor_sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        settings = settings or get_settings()
        self._sync_settings = settings.sync
        self._audit_logger = audit_logger or SyncAuditLogger()
        self._registry = registry
        self._cache = cache or CacheStore(clock=clock)
        self._requests = requests or RequestController()
        self._retry = retry_executor or RetryExecutor(audit_logger=self._audit_logger)
        self._chaos = chaos or ChaosInjector(
            storage,
            settings=settings.chaos,
            audit_logger=self._audit_logger,
        )
        self._hydrator = hydrator or OfflineHydrator(
            storage,
            prefix=settings.storage.snapshot_prefix,
            audit_logger=self._audit_logger,
        )
        self._is_online = is_online or (lambda: True)
        self._monitor = StalenessMonitor(
            self._cache,
            refresh=self.refresh_data,
            ttl=self._sync_settings.cache_ttl_seconds,
            sleep=monitor_sleep,
            audit_logger=self._audit_logger,
        )
        
        self._data: dict[EntityType, Records] = {entity_type: [] for entity_type in EntityType}
        self._loading: dict[EntityType, bool] = {}
        self._errors: dict[EntityType, str] = {}
        self._load_all_depth = 0
        self._data_loaded = False
        self._hydrated = False
        self._mounted = True
        self._listeners: list[StatusListener] = []
    
    # =========================================================================
    # LIFECYCLE
    # =========================================================================
    
    async def mount(self) -> bool:
        """
        Sample the online signal once; hydrate from snapshots if offline.
        
        Returns True if hydration ran.
        """
        self._mounted = True
        if self._hydrated or self._is_online():
            return False
        
        self._hydrated = True
        for entity_type, records in self._hydrator.hydrate_all().items():
            # Never overwrite something this session already fetched
            if self._cache.read(entity_type).is_empty:
                self._data[entity_type] = records
        self._notify()
        return True
    
    async def unmount(self) -> None:
        """Abort every live fetch and stop background refresh."""
        self._mounted = False
        aborted = self._requests.abort_all()
        await self._monitor.stop()
        logger.debug("orchestrator_unmounted", aborted_requests=aborted)
    
    async def __aenter__(self) -> "FinancialDataOrchestrator":
        await self.mount()
        return self
    
    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unmount()
    
    # =========================================================================
    # LOADING
    # =========================================================================
    
    async def load_entity_data(
        self,
        entity_type: EntityTypeLike,
        force_refresh: bool = False,
    ) -> Records:
        """
        Load one collection. Never raises for fetch failures.
        
        Returns:
            Fresh data on success, the cached data on a fresh cache hit,
            the last cached data (possibly []) on failure or when the
            fetch was superseded, and [] when chaos silently emptied it.
        """
        entity_type = EntityType.coerce(entity_type)
        if entity_type not in self._registry:
            return []
        if not self._mounted:
            return self._cache.read(entity_type).data
        
        if not force_refresh and self._cache.is_fresh(entity_type, self._sync_settings.cache_ttl_seconds):
            entry = self._cache.read(entity_type)
            self._audit_logger.log(
                SyncEventBuilder.cache_hit(entity_type, entry.version, self._cache.age(entity_type))
            )
            self._data[entity_type] = entry.data
            self._errors.pop(entity_type, None)
            self._notify()
            return entry.data
        
        token = self._requests.begin(entity_type)
        self._loading[entity_type] = True
        self._errors.pop(entity_type, None)
        self._notify()
        self._audit_logger.log(
            SyncEventBuilder.fetch_started(entity_type, token.request_id, force_refresh)
        )
        
        started = time.perf_counter()
        try:
            result = await self._fetch(token)
        except Exception as e:
            if self._requests.is_aborted(token):
                self._log_discarded(token, started)
            else:
                self._record_error(token, e, started)
            return self._cache.read(entity_type).data
        finally:
            if not self._requests.is_aborted(token):
                self._loading[entity_type] = False
                self._notify()
            self._requests.release(token)
        
        if self._requests.is_aborted(token):
            self._log_discarded(token, started)
            return self._cache.read(entity_type).data
        
        if result is _SILENT_EMPTY:
            return []
        
        return self._commit(token, _as_records(result), started)
    
    async def load_all_data(self, force_refresh: bool = False) -> None:
        """
        Load every collection in parallel and wait for all to settle.
        
        Overlapping non-forced calls are coalesced into a no-op.
        """
        if self._load_all_depth and not force_refresh:
            return
        
        self._load_all_depth += 1
        self._notify()
        try:
            await asyncio.gather(
                *(self.load_entity_data(entity_type, force_refresh) for entity_type in EntityType),
                return_exceptions=True,
            )
            self._data_loaded = True
        finally:
            self._load_all_depth -= 1
            self._notify()
        
        if self._mounted and self._sync_settings.auto_refresh:
            self._monitor.start()
    
    async def refresh_data(
        self,
        entity_types: Union[EntityTypeLike, Iterable[EntityTypeLike], None] = None,
    ) -> None:
        """
        Force-refresh the given types, or everything when None.
        
        A single entity type (or its string value) refreshes just that type.
        """
        if entity_types is None:
            await self.load_all_data(force_refresh=True)
            return
        if isinstance(entity_types, str):
            entity_types = [entity_types]
        
        types = [EntityType.coerce(t) for t in entity_types]
        await asyncio.gather(
            *(self.load_entity_data(entity_type, force_refresh=True) for entity_type in types),
            return_exceptions=True,
        )
    
    def clear_error(self, entity_type: EntityTypeLike) -> None:
        """Forget the recorded error; cached data is untouched."""
        if self._errors.pop(EntityType.coerce(entity_type), None) is not None:
            self._notify()
    
    def cancel(self, entity_type: EntityTypeLike) -> bool:
        """
        Abort the in-flight fetch for entity_type, if any.
        
        Its result will be discarded when it arrives.
        """
        entity_type = EntityType.coerce(entity_type)
        token = self._requests.current(entity_type)
        if token is None:
            return False
        token.abort()
        self._requests.release(token)
        self._loading[entity_type] = False
        self._notify()
        return True
    
    # =========================================================================
    # PIPELINE STEPS
    # =========================================================================
    
    async def _fetch(self, token: CancellationToken) -> object:
        """
        Chaos -> Retry -> Registry.
        
        Chaos is rolled once per load. A simulated failure fails the
        first attempt only, so it is retried like a network error; a
        silent empty skips the retry path entirely.
        """
        entity_type = token.entity_type
        chaos_enabled = self._chaos.enabled
        policy = RetryPolicy.from_settings(self._sync_settings, chaos=chaos_enabled)
        
        outcome = DisruptionOutcome.NONE
        if chaos_enabled:
            outcome = await self._chaos.maybe_disrupt(entity_type)
            if outcome == DisruptionOutcome.SILENT_EMPTY:
                return _SILENT_EMPTY
        fail_first_attempt = outcome == DisruptionOutcome.SIMULATED_FAILURE
        
        async def attempt() -> object:
            nonlocal fail_first_attempt
            if fail_first_attempt:
                fail_first_attempt = False
                ChaosInjector.raise_for_outcome(outcome, entity_type)
            return await self._registry.list_records(
                entity_type,
                self._sync_settings.list_sort_key,
                self._sync_settings.list_limit,
            )
        
        return await self._retry.execute(
            attempt,
            policy,
            entity_type=entity_type,
            request_id=token.request_id,
        )
    
    def _commit(self, token: CancellationToken, records: Records, started: float) -> Records:
        entity_type = token.entity_type
        entry = self._cache.write(entity_type, records)
        self._hydrator.persist(entity_type, entry.data)
        self._data[entity_type] = entry.data
        self._audit_logger.log(
            SyncEventBuilder.fetch_succeeded(
                entity_type,
                token.request_id,
                record_count=len(entry.data),
                version=entry.version,
                duration_ms=_elapsed_ms(started),
            )
        )
        self._notify()
        return entry.data
    
    def _record_error(self, token: CancellationToken, error: Exception, started: float) -> None:
        message = str(error) or type(error).__name__
        self._errors[token.entity_type] = message
        self._audit_logger.log(
            SyncEventBuilder.fetch_failed(
                token.entity_type,
                token.request_id,
                error_message=message,
                duration_ms=_elapsed_ms(started),
            )
        )
    
    def _log_discarded(self, token: CancellationToken, started: float) -> None:
        self._audit_logger.log(
            SyncEventBuilder.fetch_discarded(token.entity_type, token.request_id, _elapsed_ms(started))
        )
    
    # =========================================================================
    # LOCAL DATA (optimistic mutations)
    # =========================================================================
    
    def get_data(self, entity_type: EntityTypeLike) -> Records:
        return self._data[EntityType.coerce(entity_type)]
    
    def replace_local_data(self, entity_type: EntityTypeLike, records: Records) -> None:
        """
        Overwrite the visible data for one type without touching the cache.
        
        Used for speculative updates; the next successful fetch wins.
        """
        if not self._mounted:
            return
        self._data[EntityType.coerce(entity_type)] = list(records)
        self._notify()
    
    # =========================================================================
    # OBSERVABLE STATE
    # =========================================================================
    
    transactions = _entity_property(EntityType.TRANSACTIONS)
    shifts = _entity_property(EntityType.SHIFTS)
    goals = _entity_property(EntityType.GOALS)
    debts = _entity_property(EntityType.DEBTS)
    budgets = _entity_property(EntityType.BUDGETS)
    bills = _entity_property(EntityType.BILLS)
    investments = _entity_property(EntityType.INVESTMENTS)
    
    @property
    def data(self) -> Mapping[EntityType, Records]:
        return dict(self._data)
    
    @property
    def loading(self) -> dict[EntityType, bool]:
        return dict(self._loading)
    
    @property
    def errors(self) -> dict[EntityType, str]:
        return dict(self._errors)
    
    @property
    def is_loading(self) -> bool:
        return self._load_all_depth > 0 or any(self._loading.values())
    
    @property
    def has_errors(self) -> bool:
        return bool(self._errors)
    
    @property
    def data_loaded(self) -> bool:
        return self._data_loaded
    
    @property
    def cache_info(self) -> dict[EntityType, CacheInfo]:
        return self._cache.snapshot()
    
    @property
    def cache(self) -> CacheStore:
        return self._cache
    
    @property
    def chaos(self) -> ChaosInjector:
        return self._chaos
    
    @property
    def monitor(self) -> StalenessMonitor:
        return self._monitor
    
    @property
    def audit_logger(self) -> SyncAuditLogger:
        return self._audit_logger
    
    def status(self) -> SyncStatus:
        return SyncStatus(
            loading=dict(self._loading),
            loading_all=self._load_all_depth > 0,
            errors=dict(self._errors),
            data_loaded=self._data_loaded,
            cache_info=self._cache.snapshot(),
        )
    
    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Call listener with a fresh SyncStatus after every change."""
        self._listeners.append(listener)
        
        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        
        return unsubscribe
    
    def _notify(self) -> None:
        if not self._mounted or not self._listeners:
            return
        status = self.status()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error("status_listener_failed", error=str(e))


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def create_orchestrator(
    clients: Mapping[EntityTypeLike, EntityClient],
    storage: Optional[KeyValueStorageInterface] = None,
    settings: Optional[Settings] = None,
    is_online: Optional[Callable[[], bool]] = None,
) -> FinancialDataOrchestrator:
    """
    Factory function to wire an orchestrator from entity clients.
    
    Args:
        clients: One EntityClient per entity type
        storage: Snapshot/chaos-flag storage; built from settings if None
        settings: Defaults to get_settings()
        is_online: Network reachability signal sampled at mount
    """
    settings = settings or get_settings()
    configure_logging(settings.app)
    storage = storage or create_storage(settings.storage)
    return FinancialDataOrchestrator(
        registry=EntityRegistry(clients),
        storage=storage,
        settings=settings,
        is_online=is_online,
    )
