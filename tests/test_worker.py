"""Tests for the shared background calculation channel."""

import threading

import pytest

from finance_sync.config import WorkerSettings
from finance_sync.services.worker import (
    UnknownCalculationError,
    WorkerChannel,
    WorkerTimeoutError,
    aggregate_by_category,
    calculate_totals,
)


TRANSACTIONS = [
    {"amount": 2500, "category": "Salary"},
    {"amount": -1200, "category": "Rent"},
    {"amount": -45.5, "category": "Groceries"},
    {"amount": -30, "category": "Groceries"},
    {"amount": "12.5"},
    {"amount": None, "category": "Rent"},
]


@pytest.fixture
def channel():
    channel = WorkerChannel(settings=WorkerSettings(timeout_seconds=5))
    yield channel
    channel.close()


class TestCalculations:
    """Tests for the built-in calculations."""
    
    def test_totals(self):
        totals = calculate_totals(TRANSACTIONS)
        assert totals["income"] == pytest.approx(2512.5)
        assert totals["expenses"] == pytest.approx(1275.5)
        assert totals["net"] == pytest.approx(1237.0)
    
    def test_totals_of_nothing(self):
        assert calculate_totals([]) == {"income": 0.0, "expenses": 0.0, "net": 0.0}
    
    def test_aggregate_by_category(self):
        rows = {row["category"]: row for row in aggregate_by_category(TRANSACTIONS)}
        
        assert list(rows) == ["Salary", "Rent", "Groceries", "Uncategorized"]
        assert rows["Groceries"]["expenses"] == pytest.approx(75.5)
        assert rows["Groceries"]["count"] == 2
        assert rows["Rent"]["count"] == 2
        assert rows["Rent"]["net"] == pytest.approx(-1200)
        assert rows["Uncategorized"]["income"] == pytest.approx(12.5)


class TestWorkerChannel:
    """Tests for the shared calculation channel."""
    
    @pytest.mark.asyncio
    async def test_runs_named_calculation(self, channel):
        assert not channel.started
        
        totals = await channel.calculate("calculate_totals", TRANSACTIONS)
        
        assert totals["net"] == pytest.approx(1237.0)
        assert channel.started
        assert channel.pending_count == 0
    
    @pytest.mark.asyncio
    async def test_unknown_calculation(self, channel):
        with pytest.raises(UnknownCalculationError, match="forecast"):
            await channel.calculate("forecast", [])
        assert not channel.started
    
    @pytest.mark.asyncio
    async def test_registered_calculation(self, channel):
        channel.register("count", len)
        assert await channel.calculate("count", [1, 2, 3]) == 3
    
    @pytest.mark.asyncio
    async def test_calculation_error_propagates(self, channel):
        def explode(payload):
            raise ArithmeticError("bad ledger")
        
        channel.register("explode", explode)
        with pytest.raises(ArithmeticError, match="bad ledger"):
            await channel.calculate("explode", None)
        assert channel.pending_count == 0
    
    @pytest.mark.asyncio
    async def test_timeout_clears_pending_entry(self, channel):
        release = threading.Event()
        channel.register("block", lambda payload: release.wait(5))
        
        try:
            with pytest.raises(WorkerTimeoutError) as exc_info:
                await channel.calculate("block", None, timeout=0.05)
        finally:
            release.set()
        
        assert exc_info.value.kind == "block"
        assert channel.pending_count == 0
    
    @pytest.mark.asyncio
    async def test_close_and_restart(self, channel):
        await channel.calculate("calculate_totals", [])
        channel.close()
        assert not channel.started
        
        await channel.calculate("calculate_totals", [])
        assert channel.started
    
    @pytest.mark.asyncio
    async def test_requests_share_one_pool(self):
        created = []
        
        def factory(max_workers):
            from concurrent.futures import ThreadPoolExecutor
            executor = ThreadPoolExecutor(max_workers=max_workers)
            created.append(executor)
            return executor
        
        channel = WorkerChannel(settings=WorkerSettings(), executor_factory=factory)
        try:
            await channel.calculate("calculate_totals", [])
            await channel.calculate("aggregate_by_category", [])
        finally:
            channel.close()
        
        assert len(created) == 1
