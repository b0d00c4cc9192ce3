#!/usr/bin/env python3
"""Test the task stores, version bumping and assessment history"""

import asyncio

import pytest

from benchgate.contamination import ContaminationDetector
from benchgate.contamination.models import ContaminationContext
from benchgate.database import DatabaseConnection, SqlAssessmentHistory, SqlTaskStore
from benchgate.errors import StoreUnavailableError, TaskNotFoundError
from benchgate.quality import QualityAssessor
from benchgate.similarity import SimilarityEngine
from benchgate.tasks import InMemoryAssessmentHistory, InMemoryTaskStore
from benchgate.tasks.models import DifficultyLevel, Task, TaskStatus

from conftest import OTHER_PROMPT


@pytest.fixture
def db(tmp_path):
    connection = DatabaseConnection(f"sqlite:///{tmp_path}/bench.db")
    connection.create_tables()
    yield connection
    connection.close()


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryTaskStore()
    else:
        connection = DatabaseConnection(f"sqlite:///{tmp_path}/store.db")
        connection.create_tables()
        yield SqlTaskStore(connection)
        connection.close()


def test_add_and_get_round_trip(store, make_task):
    task = make_task("a")
    store.add(task)

    loaded = store.get("a")

    assert loaded.id == "a"
    assert loaded.content.prompt == task.content.prompt
    assert loaded.content.examples[0].output == task.content.examples[0].output
    assert loaded.difficulty_level == DifficultyLevel.INTERMEDIATE
    assert loaded.created_at == task.created_at
    assert loaded.version == 1


def test_duplicate_add_is_rejected(store, make_task):
    store.add(make_task("a"))
    with pytest.raises(ValueError):
        store.add(make_task("a"))


def test_missing_task_raises(store):
    with pytest.raises(TaskNotFoundError):
        store.get("nope")
    with pytest.raises(TaskNotFoundError):
        store.update("nope", {"status": "review"})


def test_content_change_bumps_version(store, make_task):
    store.add(make_task("a"))

    updated = store.update("a", {"content": {"prompt": OTHER_PROMPT}})

    assert updated.version == 2
    assert updated.content.prompt == OTHER_PROMPT
    # Untouched content keys survive a partial content patch
    assert updated.content.expected_output
    assert store.get("a").version == 2


def test_status_and_score_changes_keep_version(store, make_task):
    store.add(make_task("a"))

    updated = store.update("a", {"status": "review", "quality_score": 88.0, "contamination_score": 10.0})

    assert updated.version == 1
    assert updated.status == TaskStatus.REVIEW
    assert store.get("a").quality_score == 88.0


def test_identity_fields_cannot_be_patched(store, make_task):
    store.add(make_task("a"))
    for patch in ({"id": "b"}, {"version": 7}, {"unknown_field": 1}):
        with pytest.raises(ValueError):
            store.update("a", patch)


def test_list_filters(store, make_task):
    store.add(make_task("a"))
    store.add(make_task("b", category="parsing", prompt=OTHER_PROMPT))
    store.add(make_task("c", status=TaskStatus.PUBLISHED))

    assert {t.id for t in store.list()} == {"a", "b", "c"}
    assert {t.id for t in store.list({"category": "algorithms"})} == {"a", "c"}
    assert [t.id for t in store.list({"status": TaskStatus.PUBLISHED})] == ["c"]
    assert {t.id for t in store.list({"status": ["draft", "published"]})} == {"a", "b", "c"}
    assert [t.id for t in store.list({"category": "algorithms", "version": 1, "status": "draft"})] == ["a"]


def test_returned_tasks_are_copies(make_task):
    store = InMemoryTaskStore([make_task("a")])

    task = store.get("a")
    task.content.prompt = "changed"

    assert store.get("a").content.prompt != "changed"


def test_sql_failure_is_store_unavailable(tmp_path):
    connection = DatabaseConnection(f"sqlite:///{tmp_path}/empty.db")
    store = SqlTaskStore(connection)
    try:
        with pytest.raises(StoreUnavailableError):
            store.list()
    finally:
        connection.close()


def _verdicts(task: Task):
    quality = QualityAssessor().assess(task)
    contamination = asyncio.run(
        ContaminationDetector(SimilarityEngine()).analyze_contamination(
            task, ContaminationContext(existing_tasks=[])
        )
    )
    return quality, contamination


@pytest.mark.parametrize("kind", ["memory", "sql"])
def test_history_is_append_only(kind, db, make_task):
    history = InMemoryAssessmentHistory() if kind == "memory" else SqlAssessmentHistory(db)
    task = make_task("a")

    quality, contamination = _verdicts(task)
    history.record_quality(quality)
    history.record_quality(quality)
    history.record_contamination(contamination)

    records = history.quality_history("a")
    assert len(records) == 2
    assert records[0]["task_version"] == 1
    assert records[0]["overall_score"] == quality.overall_score

    analyses = history.contamination_history("a")
    assert len(analyses) == 1
    assert analyses[0]["overall_risk"] == contamination.overall_risk.value

    assert history.quality_history("other") == []


def test_unreachable_database_fails_fast(tmp_path):
    missing = DatabaseConnection(f"sqlite:///{tmp_path}/no/such/dir/bench.db")
    with pytest.raises(StoreUnavailableError):
        missing.check_connection()
    missing.close()
