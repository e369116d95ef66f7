"""
Shared Background Calculation Channel

Heavy aggregations over loaded collections (totals, per-category
rollups) run off the event loop on one shared thread pool.

Lifecycle:
- The pool is created lazily on the first request and shared by every
  caller of the same channel.
- Each request gets an incrementing id and a pending entry.
- The entry is removed when the calculation completes, fails, or times
  out. Nothing is left behind in the pending map.
- close() cancels whatever is still pending and shuts the pool down.
  A later request starts a fresh pool.

The channel is an ordinary object passed to whoever needs it;
get_worker_channel() only supplies a default instance.
"""

import asyncio
import itertools
from concurrent.futures import Executor, ThreadPoolExecutor
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional

import structlog

from finance_sync.config import WorkerSettings, get_settings
from finance_sync.models.entities import Records


logger = structlog.get_logger(__name__)

Calculation = Callable[[Any], Any]


class WorkerError(Exception):
    """Base exception for background calculations."""
    pass


class UnknownCalculationError(WorkerError):
    """No calculation registered under the requested name."""
    pass


class WorkerTimeoutError(WorkerError):
    """A calculation did not finish within its timeout."""
    
    def __init__(self, request_id: int, kind: str, timeout: float):
        self.request_id = request_id
        self.kind = kind
        super().__init__(f"Calculation {kind} (request {request_id}) timed out after {timeout}s")


# =============================================================================
# BUILT-IN CALCULATIONS
# =============================================================================

def _amount(record: Mapping) -> float:
    try:
        return float(record.get("amount") or 0)
    except (TypeError, ValueError):
        return 0.0


def calculate_totals(transactions: Records) -> dict[str, float]:
    """Income is the sum of positive amounts, expenses of negative ones."""
    income = 0.0
    expenses = 0.0
    for transaction in transactions:
        amount = _amount(transaction)
        if amount > 0:
            income += amount
        else:
            expenses += abs(amount)
    return {"income": income, "expenses": expenses, "net": income - expenses}


def aggregate_by_category(transactions: Records) -> list[dict[str, Any]]:
    """Per-category income, expenses, net and count, in first-seen order."""
    aggregated: dict[str, dict[str, Any]] = {}
    for transaction in transactions:
        category = transaction.get("category") or "Uncategorized"
        bucket = aggregated.setdefault(
            category,
            {"category": category, "income": 0.0, "expenses": 0.0, "net": 0.0, "count": 0},
        )
        amount = _amount(transaction)
        bucket["count"] += 1
        if amount > 0:
            bucket["income"] += amount
        else:
            bucket["expenses"] += abs(amount)
        bucket["net"] = bucket["income"] - bucket["expenses"]
    return list(aggregated.values())


DEFAULT_CALCULATIONS: dict[str, Calculation] = {
    "calculate_totals": calculate_totals,
    "aggregate_by_category": aggregate_by_category,
}


# =============================================================================
# CHANNEL
# =============================================================================

class WorkerChannel:
    """Runs named calculations on a lazily created shared pool."""
    
    def __init__(
        self,
        calculations: Optional[Mapping[str, Calculation]] = None,
        settings: Optional[WorkerSettings] = None,
        executor_factory: Optional[Callable[[int], Executor]] = None,
    ):
        self._settings = settings or get_settings().worker
        self._calculations = dict(DEFAULT_CALCULATIONS if calculations is None else calculations)
        self._executor_factory = executor_factory or (
            lambda n: ThreadPoolExecutor(max_workers=n, thread_name_prefix="finance-sync-worker")
        )
        self._executor: Optional[Executor] = None
        self._pending: dict[int, asyncio.Future] = {}
        self._ids = itertools.count(1)
    
    def _get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = self._executor_factory(self._settings.max_workers)
            logger.debug("worker_pool_started", max_workers=self._settings.max_workers)
        return self._executor
    
    @property
    def started(self) -> bool:
        return self._executor is not None
    
    @property
    def pending_count(self) -> int:
        return len(self._pending)
    
    def register(self, kind: str, calculation: Calculation) -> None:
        self._calculations[kind] = calculation
    
    async def calculate(self, kind: str, payload: Any, timeout: Optional[float] = None) -> Any:
        """
        Run a named calculation and wait for its result.
        
        Raises:
            UnknownCalculationError: kind is not registered
            WorkerTimeoutError: the calculation took longer than timeout
            Exception: whatever the calculation itself raised
        """
        calculation = self._calculations.get(kind)
        if calculation is None:
            raise UnknownCalculationError(f"Unknown calculation type: {kind}")
        
        timeout = self._settings.timeout_seconds if timeout is None else timeout
        request_id = next(self._ids)
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._get_executor(), calculation, payload)
        self._pending[request_id] = future
        
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise WorkerTimeoutError(request_id, kind, timeout) from None
        finally:
            self._pending.pop(request_id, None)
    
    def close(self) -> None:
        """Cancel pending calculations and release the pool."""
        for future in self._pending.values():
            future.cancel()
        self._pending.clear()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
            logger.debug("worker_pool_stopped")


@lru_cache()
def get_worker_channel() -> WorkerChannel:
    """
    Default shared channel (cached).
    
    Call get_worker_channel.cache_clear() after close() in tests that
    need a fresh default.
    """
    return WorkerChannel()
