#!/usr/bin/env python3
"""Test quality validation, metric calculators and aggregation"""

import pytest

from benchgate.quality import (
    CompletenessCalculator,
    DifficultyAccuracyCalculator,
    MetricCalculator,
    MetricRegistry,
    QualityAssessor,
    QualityContext,
    QualityMetric,
    UniquenessCalculator,
    ValidationCode,
)
from benchgate.tasks.models import DifficultyLevel, TaskContent, TaskExample


def test_complete_task_scores_full_completeness(make_task):
    """Scenario: a task with every field present gets Completeness 100 and no errors."""
    assessment = QualityAssessor().assess(make_task())

    completeness = assessment.score_for(QualityMetric.COMPLETENESS)
    assert completeness.score == 100.0
    assert assessment.validation.is_valid
    assert assessment.validation.errors == []


def test_missing_prompt_is_required_field_error(make_task):
    """Scenario: an empty prompt is a REQUIRED_FIELD error and caps Completeness at 75."""
    task = make_task()
    task.content.prompt = ""

    assessment = QualityAssessor().assess(task)

    assert not assessment.validation.is_valid
    prompt_errors = [e for e in assessment.validation.errors if e.field == "content.prompt"]
    assert [e.code for e in prompt_errors] == [ValidationCode.REQUIRED_FIELD]
    assert assessment.score_for(QualityMetric.COMPLETENESS).score <= 75.0


def test_well_written_task_scores_high(make_task):
    assessment = QualityAssessor().assess(make_task())

    assert assessment.overall_score >= 90
    assert len(assessment.scores) == 5
    assert assessment.notes == []
    assert assessment.task_version == 1


def test_assessment_is_idempotent(make_task):
    assessor = QualityAssessor()
    task = make_task()

    first = assessor.assess(task)
    second = assessor.assess(task)

    assert first.overall_score == pytest.approx(second.overall_score)
    assert first.assessed_at <= second.assessed_at


def test_weak_content_produces_warnings_only(make_task):
    content = TaskContent(
        prompt="Merge the booking intervals.",
        examples=[TaskExample(input="[(1, 2)]", output="")],
    )
    task = make_task(content=content, tags=[])

    result = QualityAssessor().validate(task)

    assert result.is_valid
    for code in (
        ValidationCode.TOO_SHORT,
        ValidationCode.MISSING_CRITERIA,
        ValidationCode.MISSING_TAGS,
        ValidationCode.INCONSISTENT_EXAMPLE,
    ):
        assert result.has_code(code), code


def test_contradictory_constraints_are_invalid(make_task):
    task = make_task()
    task.content.constraints = ["Must use recursion", "Must not use recursion"]

    assessment = QualityAssessor().assess(task)

    assert not assessment.validation.is_valid
    assert assessment.validation.has_code(ValidationCode.INVALID_VALUE)
    feasibility = assessment.score_for(QualityMetric.FEASIBILITY)
    assert feasibility.sub_scores["consistency"] == 50.0


def test_required_fields_reported_once(make_task):
    task = make_task(name="", category="")

    result = QualityAssessor().validate(task)

    codes = [(e.field, e.code) for e in result.errors]
    assert codes.count(("name", ValidationCode.REQUIRED_FIELD)) == 1
    assert ("category", ValidationCode.REQUIRED_FIELD) in codes


def test_difficulty_mismatch_lowers_score(make_task):
    calculator = DifficultyAccuracyCalculator()

    matched = calculator.calculate(make_task())
    overstated = calculator.calculate(make_task(difficulty_level=DifficultyLevel.EXPERT))
    undeclared = calculator.calculate(make_task(difficulty_level=None))

    assert matched.score == 100.0
    assert overstated.score == 50.0
    assert undeclared.score == 50.0
    assert undeclared.confidence == 0.5


def test_uniqueness_uses_corpus_similarity_when_known(make_task):
    calculator = UniquenessCalculator()
    task = make_task()

    alone = calculator.calculate(task)
    crowded = calculator.calculate(task, QualityContext(max_similarity=0.9, similar_task_ids=["x"]))

    assert crowded.score < alone.score
    assert crowded.sub_scores["corpus_distance"] == 10.0
    assert crowded.confidence > alone.confidence


def test_template_prompt_is_less_unique(make_task):
    calculator = UniquenessCalculator()
    template = make_task(prompt="Write a function that checks whether a string is a palindrome.")

    assert calculator.calculate(template).sub_scores["template"] == 50.0


class ExplodingCalculator(MetricCalculator):
    metric = QualityMetric.CLARITY

    def calculate(self, task, context=None):
        raise RuntimeError("model offline")


def test_failing_calculator_is_isolated(make_task):
    """A calculator failure is noted, lowers confidence and does not abort the assessment."""
    registry = MetricRegistry.default()
    registry.register(ExplodingCalculator())
    assessor = QualityAssessor(registry)

    assessment = assessor.assess(make_task())

    assert len(assessment.scores) == 4
    assert assessment.score_for(QualityMetric.CLARITY) is None
    assert any("clarity" in note for note in assessment.notes)
    assert assessment.confidence < QualityAssessor().assess(make_task()).confidence
    assert assessor.get_statistics()["calculator_failures"] == 1


def test_all_calculators_failing_scores_zero(make_task):
    assessor = QualityAssessor(MetricRegistry([ExplodingCalculator()]))

    assessment = assessor.assess(make_task())

    assert assessment.overall_score == 0.0
    assert assessment.confidence == 0.0


def test_registry_is_pluggable():
    registry = MetricRegistry.default()
    assert len(registry) == 5

    registry.unregister(QualityMetric.UNIQUENESS)
    assert registry.get(QualityMetric.UNIQUENESS) is None
    assert len(registry) == 4

    registry.register(CompletenessCalculator())
    assert len(registry) == 4
