"""
Sync Pipeline Package

The building blocks the orchestrator composes: cache, retry,
cancellation, chaos, offline snapshots and the staleness monitor.
Optimistic mutations live in finance_sync.sync.mutations, which
depends on the orchestrator and is therefore not re-exported here.
"""

from finance_sync.sync.cache import CacheStore, Clock
from finance_sync.sync.cancellation import CancellationToken, RequestController
from finance_sync.sync.chaos import ChaosFailureError, ChaosInjector, DisruptionOutcome
from finance_sync.sync.hydration import OfflineHydrator
from finance_sync.sync.retry import JitteredExponentialWait, RetryExecutor, RetryPolicy
from finance_sync.sync.staleness import StalenessMonitor

__all__ = [
    "CacheStore",
    "CancellationToken",
    "ChaosFailureError",
    "ChaosInjector",
    "Clock",
    "DisruptionOutcome",
    "JitteredExponentialWait",
    "OfflineHydrator",
    "RequestController",
    "RetryExecutor",
    "RetryPolicy",
    "StalenessMonitor",
]
