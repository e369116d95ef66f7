"""Tests for the retry executor."""

import asyncio
import random

import pytest
from tenacity import RetryCallState

from finance_sync.audit import SyncAuditLogger
from finance_sync.models.events import SyncEventType
from finance_sync.sync.retry import JitteredExponentialWait, RetryExecutor, RetryPolicy


def failing_then(result, failures: int, error_type=ConnectionError):
    """Operation that fails `failures` times, then returns result."""
    state = {"attempts": 0}
    
    async def operation():
        state["attempts"] += 1
        if state["attempts"] <= failures:
            raise error_type(f"fail {state['attempts']}")
        return result
    
    return operation, state


class TestRetryPolicy:
    """Tests for retry policy construction."""
    
    def test_nominal_delays_grow_exponentially(self):
        policy = RetryPolicy(base_delay=0.25, factor=2)
        assert [policy.nominal_delay(i) for i in range(3)] == [0.25, 0.5, 1.0]


class TestJitteredExponentialWait:
    """Tests for the backoff wait strategy."""
    
    def _state(self, attempt_number: int) -> RetryCallState:
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        state.attempt_number = attempt_number
        return state
    
    def test_jitter_stays_within_half_to_one_and_a_half(self):
        wait = JitteredExponentialWait(RetryPolicy(base_delay=0.25, factor=2), random.Random(3))
        for attempt, nominal in [(1, 0.25), (2, 0.5), (3, 1.0)]:
            for _ in range(200):
                delay = wait(self._state(attempt))
                assert 0.5 * nominal <= delay <= 1.5 * nominal
    
    def test_no_jitter_is_exact(self):
        wait = JitteredExponentialWait(RetryPolicy(base_delay=0.25, factor=2, jitter=False))
        assert wait(self._state(2)) == 0.5


class TestRetryExecutor:
    """Tests for executing operations under a policy."""
    
    @pytest.mark.asyncio
    async def test_first_attempt_success_does_not_sleep(self, sleep):
        operation, state = failing_then(["ok"], failures=0)
        result = await RetryExecutor(sleep=sleep).execute(operation, RetryPolicy(retries=2))
        assert result == ["ok"]
        assert state["attempts"] == 1
        assert sleep.delays == []
    
    @pytest.mark.asyncio
    async def test_succeeds_after_retries(self, sleep):
        operation, state = failing_then(["ok"], failures=2)
        executor = RetryExecutor(sleep=sleep, rng=random.Random(1))
        
        result = await executor.execute(operation, RetryPolicy(retries=2))
        
        assert result == ["ok"]
        assert state["attempts"] == 3
        assert len(sleep.delays) == 2
        assert 0.125 <= sleep.delays[0] <= 0.375
        assert 0.25 <= sleep.delays[1] <= 0.75
    
    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self, sleep):
        operation, state = failing_then(["ok"], failures=3)
        executor = RetryExecutor(sleep=sleep)
        
        with pytest.raises(ConnectionError, match="fail 3"):
            await executor.execute(operation, RetryPolicy(retries=2))
        assert state["attempts"] == 3
    
    @pytest.mark.asyncio
    async def test_every_error_kind_is_retried(self, sleep):
        operation, state = failing_then("done", failures=2, error_type=ValueError)
        result = await RetryExecutor(sleep=sleep).execute(operation, RetryPolicy(retries=2))
        assert result == "done"
    
    @pytest.mark.asyncio
    async def test_unjittered_delays(self, sleep):
        operation, _ = failing_then("done", failures=3)
        policy = RetryPolicy(retries=3, base_delay=0.25, factor=2, jitter=False)
        await RetryExecutor(sleep=sleep).execute(operation, policy)
        assert sleep.delays == [0.25, 0.5, 1.0]
    
    @pytest.mark.asyncio
    async def test_zero_retries_means_one_attempt(self, sleep):
        operation, state = failing_then("done", failures=1)
        with pytest.raises(ConnectionError):
            await RetryExecutor(sleep=sleep).execute(operation, RetryPolicy(retries=0))
        assert state["attempts"] == 1
    
    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self, sleep):
        operation, state = failing_then("done", failures=5, error_type=asyncio.CancelledError)
        with pytest.raises(asyncio.CancelledError):
            await RetryExecutor(sleep=sleep).execute(operation, RetryPolicy(retries=3))
        assert state["attempts"] == 1
    
    @pytest.mark.asyncio
    async def test_retries_are_logged(self, sleep):
        audit_logger = SyncAuditLogger()
        operation, _ = failing_then("done", failures=2)
        await RetryExecutor(sleep=sleep, audit_logger=audit_logger).execute(
            operation, RetryPolicy(retries=2)
        )
        retries = [
            e for e in audit_logger.recent_events()
            if e.event_type == SyncEventType.RETRY_SCHEDULED
        ]
        assert len(retries) == 2
    
    @pytest.mark.asyncio
    async def test_retry_events_carry_request_id(self, sleep):
        audit_logger = SyncAuditLogger()
        operation, _ = failing_then("done", failures=1)
        await RetryExecutor(sleep=sleep, audit_logger=audit_logger).execute(
            operation, RetryPolicy(retries=2), request_id=42
        )
        assert audit_logger.recent_events(1)[0].request_id == 42
