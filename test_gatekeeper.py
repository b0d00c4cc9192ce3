#!/usr/bin/env python3
"""End-to-end tests of the gatekeeper service"""

import asyncio
from datetime import datetime, timezone

import pytest

from benchgate import (
    EventSink,
    Gatekeeper,
    GatekeeperConfig,
    InMemoryTaskStore,
    InvalidTransitionError,
    StaleAssessmentError,
    TaskStatus,
)
from benchgate.contamination import ModelCutoffRegistry
from benchgate.contamination.models import RiskLevel
from benchgate.events import CONTAMINATION_ANALYZED, QUALITY_ASSESSED, STATUS_CHANGED
from benchgate.similarity import EmbeddingCache

from conftest import OTHER_PROMPT, FailingEmbeddingProvider


class UnreachableCorpusStore(InMemoryTaskStore):
    """Single-task reads work; corpus scans fail"""

    def list(self, filters=None):
        raise ConnectionError("replica offline")


class CountingStore(InMemoryTaskStore):
    def __init__(self, tasks=None):
        super().__init__(tasks)
        self.list_calls = 0

    def list(self, filters=None):
        self.list_calls += 1
        return super().list(filters)


class BrokenSink(EventSink):
    def __init__(self):
        self.attempts = 0

    async def emit(self, event_type, data, task_id=None):
        self.attempts += 1
        raise RuntimeError("broker down")


def test_good_task_is_published(make_task):
    """Scenario: a complete, novel task moves from DRAFT to PUBLISHED."""
    store = InMemoryTaskStore([make_task("a"), make_task("b", prompt=OTHER_PROMPT, category="parsing")])
    gatekeeper = Gatekeeper(store)

    result = asyncio.run(gatekeeper.evaluate_task("a"))

    assert result.previous_status == TaskStatus.DRAFT
    assert result.status == TaskStatus.PUBLISHED
    assert result.contamination.overall_risk == RiskLevel.LOW
    assert result.error is None

    stored = store.get("a")
    assert stored.status == TaskStatus.PUBLISHED
    assert stored.quality_score == result.quality.overall_score
    assert stored.contamination_score == result.contamination.risk_score
    assert stored.version == 1


def test_exact_duplicate_stays_in_draft(make_task):
    """Scenario: a copy of a published task is CRITICAL and kept in DRAFT."""
    store = InMemoryTaskStore([
        make_task("orig", status=TaskStatus.PUBLISHED, created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)),
        make_task("copy"),
    ])
    gatekeeper = Gatekeeper(store)

    result = asyncio.run(gatekeeper.evaluate_task("copy"))

    assert result.contamination.overall_risk == RiskLevel.CRITICAL
    assert result.status == TaskStatus.DRAFT
    assert result.to_dict()["similar_tasks"][0] == "orig"
    assert store.get("copy").status == TaskStatus.DRAFT


def test_temporal_risk_from_target_models(make_task):
    store = InMemoryTaskStore([make_task("a", created_at=datetime(2023, 1, 1, tzinfo=timezone.utc))])
    cutoffs = ModelCutoffRegistry({"model-x": datetime(2024, 4, 1, tzinfo=timezone.utc)})
    gatekeeper = Gatekeeper(store, cutoffs=cutoffs, target_models=["model-x"])

    result = asyncio.run(gatekeeper.evaluate_task("a"))

    temporal = result.contamination.temporal_analysis
    assert temporal.training_cutoff == datetime(2024, 4, 1, tzinfo=timezone.utc)
    assert result.contamination.risk_score == 20.0


def test_invalid_task_is_draft(make_task):
    task = make_task("a")
    task.content.prompt = ""
    gatekeeper = Gatekeeper(InMemoryTaskStore([task]))

    result = asyncio.run(gatekeeper.evaluate_task("a"))

    assert not result.quality.validation.is_valid
    assert result.status == TaskStatus.DRAFT


def test_corpus_failure_keeps_task_in_draft(make_task):
    store = UnreachableCorpusStore([make_task("a")])
    gatekeeper = Gatekeeper(store)

    result = asyncio.run(gatekeeper.evaluate_task("a"))

    assert result.status == TaskStatus.DRAFT
    assert result.contamination is None
    assert "StoreUnavailableError" in result.error
    assert store.get("a").quality_score == result.quality.overall_score


def test_embedding_outage_lowers_confidence(make_task):
    store = InMemoryTaskStore([make_task("a"), make_task("b", prompt=OTHER_PROMPT)])
    gatekeeper = Gatekeeper(store, embedding_cache=EmbeddingCache(FailingEmbeddingProvider()))

    result = asyncio.run(gatekeeper.evaluate_task("a"))

    assert result.contamination.confidence < 1.0
    assert result.contamination.similarity_analysis.degraded
    assert b'benchgate_embedding_requests_total{result="error"}' in gatekeeper.metrics.export()


def test_sweep_isolates_failures(make_task):
    store = InMemoryTaskStore([
        make_task("a"),
        make_task("b", prompt=OTHER_PROMPT, category="parsing"),
    ])
    gatekeeper = Gatekeeper(store)
    seen = []

    report = asyncio.run(gatekeeper.sweep(
        ["a", "b", "missing"],
        max_concurrent=2,
        on_result=lambda task_id, result: seen.append(task_id),
    ))

    assert report.total == 3
    assert sorted(r.task_id for r in report.results) == ["a", "b"]
    assert list(report.failures) == ["missing"]
    assert "TaskNotFoundError" in report.failures["missing"]
    assert sorted(seen) == ["a", "b", "missing"]
    assert report.to_dict()["failed"] == 1

    exported = gatekeeper.metrics.export()
    assert b'benchgate_sweep_failures_total{error_type="TaskNotFoundError"} 1.0' in exported
    assert b"benchgate_gate_decisions_total" in exported


def test_sweep_reads_corpus_once(make_task):
    """Scenario: a sweep shares one corpus snapshot instead of scanning the store per task."""
    store = CountingStore([
        make_task("a"),
        make_task("b", prompt=OTHER_PROMPT, category="parsing"),
        make_task("c", prompt=OTHER_PROMPT + " Return the count as well.", category="parsing"),
    ])
    gatekeeper = Gatekeeper(store)

    report = asyncio.run(gatekeeper.sweep(["a", "b", "c"], max_concurrent=3))

    assert report.failures == {}
    assert store.list_calls == 1
    # b and c still see each other through the snapshot
    by_id = {r.task_id: r for r in report.results}
    assert "b" in [s.task_id for s in by_id["c"].contamination.similarity_analysis.similar_tasks]


def test_sweep_with_unreachable_corpus_fails_per_task(make_task):
    store = UnreachableCorpusStore([make_task("a")])
    gatekeeper = Gatekeeper(store)

    report = asyncio.run(gatekeeper.sweep(["a"]))

    assert report.failures == {}
    assert "StoreUnavailableError" in report.results[0].error
    assert report.results[0].status == TaskStatus.DRAFT


def test_embedding_metrics_match_cache_under_concurrency(make_task, fake_provider):
    """Scenario: overlapping evaluations each count only their own cache lookups."""
    store = InMemoryTaskStore([
        make_task("a"),
        make_task("b", prompt=OTHER_PROMPT, category="parsing"),
        make_task("c", category="graphs"),
        make_task("d", prompt=OTHER_PROMPT, category="strings"),
    ])
    cache = EmbeddingCache(fake_provider)
    gatekeeper = Gatekeeper(store, embedding_cache=cache)

    asyncio.run(gatekeeper.sweep(["a", "b", "c", "d"], max_concurrent=4))

    def sample(result):
        value = gatekeeper.metrics.registry.get_sample_value(
            "benchgate_embedding_requests_total", {"result": result}
        )
        return value or 0.0

    assert cache.stats["misses"] > 0
    assert sample("hit") == cache.stats["hits"]
    assert sample("miss") == cache.stats["misses"]
    assert sample("error") == cache.stats["failures"] == 0

def test_sweep_uses_store_filters(make_task):
    store = InMemoryTaskStore([
        make_task("a"),
        make_task("b", prompt=OTHER_PROMPT, status=TaskStatus.ARCHIVED),
    ])
    gatekeeper = Gatekeeper(store)

    report = asyncio.run(gatekeeper.sweep(filters={"status": "draft"}))

    assert [r.task_id for r in report.results] == ["a"]
    assert store.get("b").status == TaskStatus.ARCHIVED


def test_terminal_task_keeps_status(make_task):
    store = InMemoryTaskStore([make_task("a", status=TaskStatus.DEPRECATED)])
    gatekeeper = Gatekeeper(store)

    result = asyncio.run(gatekeeper.evaluate_task("a"))

    assert result.status == TaskStatus.DEPRECATED
    assert gatekeeper.event_sink.events(STATUS_CHANGED) == []


def test_events_and_history_are_recorded(make_task):
    store = InMemoryTaskStore([make_task("a")])
    gatekeeper = Gatekeeper(store)

    asyncio.run(gatekeeper.evaluate_task("a"))
    asyncio.run(gatekeeper.evaluate_task("a"))

    sink = gatekeeper.event_sink
    assert len(sink.events(QUALITY_ASSESSED)) == 2
    assert len(sink.events(CONTAMINATION_ANALYZED)) == 2
    changes = sink.events(STATUS_CHANGED)
    assert len(changes) == 1
    assert changes[0]["data"]["to"] == "published"
    assert changes[0]["task_id"] == "a"

    assert len(gatekeeper.history.quality_history("a")) == 2
    assert len(gatekeeper.history.contamination_history("a")) == 2


def test_failing_event_sink_does_not_break_evaluation(make_task):
    sink = BrokenSink()
    gatekeeper = Gatekeeper(InMemoryTaskStore([make_task("a")]), event_sink=sink)

    result = asyncio.run(gatekeeper.evaluate_task("a"))

    assert result.status == TaskStatus.PUBLISHED
    assert sink.attempts == 3


def test_events_can_be_disabled(make_task):
    config = GatekeeperConfig(emit_events=False)
    gatekeeper = Gatekeeper(InMemoryTaskStore([make_task("a")]), config=config)

    asyncio.run(gatekeeper.evaluate_task("a"))

    assert gatekeeper.event_sink is None


def test_stale_verdicts_are_rejected(make_task):
    store = InMemoryTaskStore([make_task("a")])
    gatekeeper = Gatekeeper(store)
    task = store.get("a")

    quality = asyncio.run(gatekeeper.assess_quality(task))
    edited = store.update("a", {"content": {"prompt": OTHER_PROMPT}})

    with pytest.raises(StaleAssessmentError) as exc_info:
        gatekeeper.decide_status(edited, quality, None)
    assert exc_info.value.assessed_version == 1
    assert exc_info.value.current_version == 2


def test_content_edit_invalidates_verdicts(make_task):
    store = InMemoryTaskStore([make_task("a")])
    gatekeeper = Gatekeeper(store)
    asyncio.run(gatekeeper.evaluate_task("a"))
    v1 = store.get("a")
    assert all(v is not None for v in gatekeeper.cached_verdicts(v1))

    v2 = asyncio.run(gatekeeper.update_task("a", {"content": {"prompt": OTHER_PROMPT}}))

    assert v2.version == 2
    assert gatekeeper.cached_verdicts(v1) == (None, None)
    assert gatekeeper.cached_verdicts(v2) == (None, None)

    result = asyncio.run(gatekeeper.evaluate_task("a"))
    assert result.task_version == 2
    assert result.quality.task_version == 2


def test_status_edit_keeps_verdicts(make_task):
    store = InMemoryTaskStore([make_task("a")])
    gatekeeper = Gatekeeper(store)
    asyncio.run(gatekeeper.evaluate_task("a"))

    updated = asyncio.run(gatekeeper.update_task("a", {"status": "review"}))

    assert updated.version == 1
    assert all(v is not None for v in gatekeeper.cached_verdicts(updated))


def test_manual_publish_requires_gate_approval(make_task):
    store = InMemoryTaskStore([make_task("a")])
    gatekeeper = Gatekeeper(store)

    with pytest.raises(InvalidTransitionError):
        asyncio.run(gatekeeper.change_status("a", TaskStatus.PUBLISHED))

    asyncio.run(gatekeeper.evaluate_task("a"))
    reviewed = asyncio.run(gatekeeper.change_status("a", TaskStatus.REVIEW))
    assert reviewed.status == TaskStatus.REVIEW

    republished = asyncio.run(gatekeeper.change_status("a", TaskStatus.PUBLISHED))
    assert republished.status == TaskStatus.PUBLISHED

    manual = [e for e in gatekeeper.event_sink.events(STATUS_CHANGED) if e["data"].get("manual")]
    assert [e["data"]["to"] for e in manual] == ["review", "published"]


def test_manual_approval_requires_verdicts(make_task):
    store = InMemoryTaskStore([make_task("a")])
    gatekeeper = Gatekeeper(store)

    with pytest.raises(InvalidTransitionError):
        asyncio.run(gatekeeper.change_status("a", TaskStatus.APPROVED))
    assert store.get("a").status == TaskStatus.DRAFT

    asyncio.run(gatekeeper.evaluate_task("a"))
    asyncio.run(gatekeeper.change_status("a", TaskStatus.REVIEW))
    approved = asyncio.run(gatekeeper.change_status("a", TaskStatus.APPROVED))
    assert approved.status == TaskStatus.APPROVED


def test_invalid_task_cannot_be_approved_by_hand(make_task):
    """Scenario: a task the gate kept in DRAFT for validation errors is not approved manually."""
    task = make_task("a")
    task.content.prompt = ""
    store = InMemoryTaskStore([task])
    gatekeeper = Gatekeeper(store)

    result = asyncio.run(gatekeeper.evaluate_task("a"))
    assert result.status == TaskStatus.DRAFT

    with pytest.raises(InvalidTransitionError):
        asyncio.run(gatekeeper.change_status("a", TaskStatus.APPROVED))
    assert store.get("a").status == TaskStatus.DRAFT


def test_terminal_status_is_final(make_task):
    store = InMemoryTaskStore([make_task("a", status=TaskStatus.PUBLISHED)])
    gatekeeper = Gatekeeper(store)

    asyncio.run(gatekeeper.change_status("a", TaskStatus.DEPRECATED))
    asyncio.run(gatekeeper.change_status("a", TaskStatus.ARCHIVED))

    with pytest.raises(InvalidTransitionError):
        asyncio.run(gatekeeper.change_status("a", TaskStatus.DRAFT))
    assert store.get("a").status == TaskStatus.ARCHIVED


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("BENCHGATE_FULL_SCAN_LIMIT", "50")
    monkeypatch.setenv("BENCHGATE_MODEL_CUTOFFS", "model-x=2024-04-01")
    monkeypatch.setenv("BENCHGATE_SWEEP_CONCURRENCY", "8")
    monkeypatch.setenv("BENCHGATE_EMIT_EVENTS", "false")
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = GatekeeperConfig.from_env()

    assert config.embedding.api_key == "sk-test"
    assert config.contamination.full_scan_limit == 50
    cutoffs = ModelCutoffRegistry(config.contamination.model_training_cutoffs)
    assert cutoffs.get_cutoff("model-x") == datetime(2024, 4, 1, tzinfo=timezone.utc)
    assert config.sweep_concurrency == 8
    assert not config.emit_events
    assert config.database_url is None
    assert "sk-test" not in str(config.to_dict())


def test_statistics(make_task):
    gatekeeper = Gatekeeper(InMemoryTaskStore([make_task("a")]))
    asyncio.run(gatekeeper.evaluate_task("a"))

    stats = gatekeeper.get_statistics()

    assert stats["quality"]["assessments"] == 1
    assert stats["contamination"]["analyses"] == 1
