"""Tests for the chaos injector."""

import random

import pytest

from finance_sync.config import ChaosSettings
from finance_sync.models.entities import EntityType
from finance_sync.models.events import SyncEventType
from finance_sync.sync.chaos import ChaosFailureError, ChaosInjector, DisruptionOutcome


def make_injector(storage, sleep, audit_logger=None, seed=5, **settings):
    return ChaosInjector(
        storage,
        settings=ChaosSettings(**settings),
        rng=random.Random(seed),
        sleep=sleep,
        audit_logger=audit_logger,
    )


class TestChaosToggle:
    """Tests for the persisted chaos flag."""
    
    def test_disabled_by_default(self, storage, sleep):
        assert not make_injector(storage, sleep).enabled
    
    def test_flag_is_persisted(self, storage, sleep):
        make_injector(storage, sleep).set_enabled(True)
        assert storage.get("finance-sync:chaos-mode") == "true"
        assert make_injector(storage, sleep).enabled
    
    def test_malformed_flag_means_off(self, storage, sleep):
        storage.set("finance-sync:chaos-mode", "{broken")
        assert not make_injector(storage, sleep).enabled
    
    def test_toggle_is_logged(self, storage, sleep, audit_logger):
        make_injector(storage, sleep, audit_logger).set_enabled(True)
        assert audit_logger.recent_events(1)[0].event_type == SyncEventType.CHAOS_TOGGLED


class TestMaybeDisrupt:
    """Tests for disruption outcomes while chaos is on."""
    
    @pytest.mark.asyncio
    async def test_disabled_does_nothing(self, storage, sleep):
        outcome = await make_injector(storage, sleep).maybe_disrupt(EntityType.DEBTS)
        assert outcome == DisruptionOutcome.NONE
        assert sleep.delays == []
    
    @pytest.mark.asyncio
    async def test_delay_is_within_range(self, storage, sleep):
        injector = make_injector(storage, sleep)
        injector.set_enabled(True)
        for _ in range(50):
            await injector.maybe_disrupt(EntityType.DEBTS)
        assert len(sleep.delays) == 50
        assert all(0.5 <= d <= 2.5 for d in sleep.delays)
    
    @pytest.mark.asyncio
    async def test_certain_failure(self, storage, sleep):
        injector = make_injector(storage, sleep, failure_probability=1.0)
        injector.set_enabled(True)
        outcome = await injector.maybe_disrupt(EntityType.BILLS)
        assert outcome == DisruptionOutcome.SIMULATED_FAILURE
    
    @pytest.mark.asyncio
    async def test_certain_silent_empty(self, storage, sleep):
        injector = make_injector(
            storage, sleep, failure_probability=0.0, silent_empty_probability=1.0
        )
        injector.set_enabled(True)
        outcome = await injector.maybe_disrupt(EntityType.BILLS)
        assert outcome == DisruptionOutcome.SILENT_EMPTY
    
    @pytest.mark.asyncio
    async def test_delay_only(self, storage, sleep):
        injector = make_injector(
            storage, sleep, failure_probability=0.0, silent_empty_probability=0.0
        )
        injector.set_enabled(True)
        assert await injector.maybe_disrupt(EntityType.BILLS) == DisruptionOutcome.DELAY_ONLY
    
    @pytest.mark.asyncio
    async def test_outcome_mix_roughly_matches_probabilities(self, storage, sleep):
        injector = make_injector(storage, sleep, seed=1234)
        injector.set_enabled(True)
        outcomes = [await injector.maybe_disrupt(EntityType.GOALS) for _ in range(2000)]
        failures = outcomes.count(DisruptionOutcome.SIMULATED_FAILURE) / len(outcomes)
        empties = outcomes.count(DisruptionOutcome.SILENT_EMPTY) / len(outcomes)
        assert 0.25 < failures < 0.35
        # 0.7 * 0.2 of all calls
        assert 0.10 < empties < 0.18


class TestRaiseForOutcome:
    """Tests for turning outcomes into failures."""
    
    def test_failure_raises(self):
        with pytest.raises(ChaosFailureError, match="Simulated network failure for debts"):
            ChaosInjector.raise_for_outcome(DisruptionOutcome.SIMULATED_FAILURE, EntityType.DEBTS)
    
    @pytest.mark.parametrize("outcome", [
        DisruptionOutcome.NONE,
        DisruptionOutcome.DELAY_ONLY,
        DisruptionOutcome.SILENT_EMPTY,
    ])
    def test_other_outcomes_pass(self, outcome):
        ChaosInjector.raise_for_outcome(outcome, EntityType.DEBTS)
