"""
Staleness Monitor

Periodic sweep over the cache: every interval (default: the TTL), find
the entity types older than the TTL and refresh exactly those.
Still-fresh types are never refetched by the sweep.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from finance_sync.audit import SyncAuditLogger
from finance_sync.models.entities import EntityType
from finance_sync.models.events import SyncEventBuilder
from finance_sync.sync.cache import CacheStore


logger = structlog.get_logger(__name__)

RefreshBatch = Callable[[list[EntityType]], Awaitable[None]]


class StalenessMonitor:
    """Background task refreshing stale cache entries."""
    
    def __init__(
        self,
        cache: CacheStore,
        refresh: RefreshBatch,
        ttl: float,
        interval: Optional[float] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        audit_logger: Optional[SyncAuditLogger] = None,
    ):
        self._cache = cache
        self._refresh = refresh
        self._ttl = ttl
        self._interval = ttl if interval is None else interval
        self._sleep = sleep or asyncio.sleep
        self._audit_logger = audit_logger
        self._task: Optional[asyncio.Task] = None
    
    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
    
    def stale_entities(self) -> list[EntityType]:
        return self._cache.stale_types(self._ttl)
    
    async def sweep(self) -> list[EntityType]:
        """Refresh the stale subset once. Returns what was refreshed."""
        stale = self.stale_entities()
        if stale:
            if self._audit_logger:
                self._audit_logger.log(SyncEventBuilder.stale_sweep(stale))
            await self._refresh(stale)
        return stale
    
    def start(self) -> None:
        """Start the periodic sweep. Must be called from a running loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
    
    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    
    async def _run(self) -> None:
        while True:
            await self._sleep(self._interval)
            try:
                await self.sweep()
            except Exception as e:
                if self._audit_logger:
                    self._audit_logger.log(
                        SyncEventBuilder.system_error(
                            "stale_sweep_failed",
                            str(e) or type(e).__name__,
                        )
                    )
                else:
                    logger.exception("stale_sweep_failed")
