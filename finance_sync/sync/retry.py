"""
Retry Executor

Wraps a fetch in bounded retries with exponential backoff and jitter,
using tenacity.

Policy:
- Up to retries + 1 attempts
- Before retry i+1 wait base_delay * factor**i seconds, drawn uniformly
  from [0.5x, 1.5x] of that value when jitter is on, so seven entity
  types failing together do not retry in lockstep
- Every Exception is retryable; there is no error-kind discrimination
- On exhaustion the last error is re-raised unchanged
- asyncio.CancelledError is never retried
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from pydantic import BaseModel, Field
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from finance_sync.audit import SyncAuditLogger
from finance_sync.config import SyncSettings
from finance_sync.models.entities import EntityType
from finance_sync.models.events import SyncEventBuilder


logger = structlog.get_logger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


class RetryPolicy(BaseModel):
    """Retry budget and backoff shape for one execute() call."""
    
    retries: int = Field(default=2, ge=0)
    base_delay: float = Field(default=0.25, ge=0, description="Seconds before the first retry")
    factor: float = Field(default=2.0, ge=1.0)
    jitter: bool = True
    
    @classmethod
    def from_settings(cls, settings: SyncSettings, chaos: bool = False) -> "RetryPolicy":
        return cls(
            retries=settings.chaos_retry_count if chaos else settings.retry_count,
            base_delay=settings.retry_base_delay_seconds,
            factor=settings.retry_backoff_factor,
            jitter=settings.retry_jitter,
        )
    
    def nominal_delay(self, retry_index: int) -> float:
        """Un-jittered delay before retry number retry_index (0-based)."""
        return self.base_delay * (self.factor ** retry_index)


class JitteredExponentialWait(wait_base):
    """tenacity wait strategy: base * factor**i, jittered to [0.5x, 1.5x]."""
    
    def __init__(self, policy: RetryPolicy, rng: Optional[random.Random] = None):
        self._policy = policy
        self._rng = rng or random.Random()
    
    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self._policy.nominal_delay(retry_state.attempt_number - 1)
        if not self._policy.jitter:
            return delay
        return self._rng.uniform(0.5 * delay, 1.5 * delay)


class RetryExecutor:
    """
    Runs an async operation under a RetryPolicy.
    
    The sleep function and random source are injectable so tests can
    record backoff delays without waiting for them.
    """
    
    def __init__(
        self,
        sleep: Optional[Sleep] = None,
        rng: Optional[random.Random] = None,
        audit_logger: Optional[SyncAuditLogger] = None,
    ):
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self._audit_logger = audit_logger
    
    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: Optional[RetryPolicy] = None,
        entity_type: Optional[EntityType] = None,
        request_id: Optional[int] = None,
    ) -> T:
        """
        Await operation() until it succeeds or the budget is spent.
        
        Raises:
            Exception: the error of the final attempt
        """
        policy = policy or RetryPolicy()
        
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception()
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            if self._audit_logger:
                self._audit_logger.log(
                    SyncEventBuilder.retry_scheduled(
                        attempt=retry_state.attempt_number,
                        delay_seconds=delay,
                        error_message=str(error),
                        entity_type=entity_type,
                        request_id=request_id,
                    )
                )
            else:
                logger.warning(
                    "retry_scheduled",
                    request_id=request_id,
                    attempt=retry_state.attempt_number,
                    delay_seconds=delay,
                    error=str(error),
                )
        
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.retries + 1),
            wait=JitteredExponentialWait(policy, self._rng),
            retry=retry_if_exception_type(Exception),
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(operation)
