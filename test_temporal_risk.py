#!/usr/bin/env python3
"""Test temporal contamination risk"""

from datetime import datetime, timedelta, timezone

from benchgate.config import parse_cutoffs
from benchgate.contamination import ModelCutoffRegistry, TemporalRisk, assess_temporal

CUTOFF = datetime(2024, 4, 1, tzinfo=timezone.utc)


def test_created_before_cutoff_is_risky():
    """Scenario: a task created one day before the cutoff is RISKY."""
    analysis = assess_temporal(CUTOFF - timedelta(days=1), CUTOFF)
    assert analysis.risk == TemporalRisk.RISKY
    assert analysis.training_cutoff == CUTOFF


def test_created_well_after_cutoff_is_safe():
    """Scenario: a task created 60 days after the cutoff is SAFE."""
    assert assess_temporal(CUTOFF + timedelta(days=60), CUTOFF).risk == TemporalRisk.SAFE


def test_boundaries():
    assert assess_temporal(CUTOFF, CUTOFF).risk == TemporalRisk.RISKY
    assert assess_temporal(CUTOFF + timedelta(days=10), CUTOFF).risk == TemporalRisk.CAUTION
    assert assess_temporal(CUTOFF + timedelta(days=30), CUTOFF).risk == TemporalRisk.SAFE


def test_unknown_cutoff_is_caution():
    analysis = assess_temporal(CUTOFF)
    assert analysis.risk == TemporalRisk.CAUTION
    assert analysis.training_cutoff is None
    assert analysis.notes


def test_naive_datetimes_are_utc():
    naive_cutoff = datetime(2024, 4, 1)
    assert assess_temporal(CUTOFF - timedelta(hours=1), naive_cutoff).risk == TemporalRisk.RISKY


def test_registry_worst_model_wins():
    registry = ModelCutoffRegistry({
        "old-model": datetime(2023, 1, 1, tzinfo=timezone.utc),
        "new-model": datetime(2025, 1, 1, tzinfo=timezone.utc),
    })
    created = datetime(2024, 6, 1, tzinfo=timezone.utc)

    assert registry.assess(created, ["old-model"]).risk == TemporalRisk.SAFE
    analysis = registry.assess(created, ["old-model", "new-model"])
    assert analysis.risk == TemporalRisk.RISKY
    assert analysis.model_id == "new-model"


def test_registry_unknown_and_missing_models():
    registry = ModelCutoffRegistry()
    created = datetime(2024, 6, 1, tzinfo=timezone.utc)

    assert registry.assess(created, []).risk == TemporalRisk.CAUTION
    assert registry.assess(created, ["mystery-model"]).risk == TemporalRisk.CAUTION

    registry.register("mystery-model", datetime(2023, 1, 1))
    assert registry.known_models() == ["mystery-model"]
    assert registry.assess(created, ["mystery-model"]).risk == TemporalRisk.SAFE


def test_parse_cutoffs():
    cutoffs = parse_cutoffs("model-a=2024-04-01, model-b=2023-12-31")
    registry = ModelCutoffRegistry(cutoffs)
    assert registry.get_cutoff("model-a") == CUTOFF
    assert parse_cutoffs("") == {}
