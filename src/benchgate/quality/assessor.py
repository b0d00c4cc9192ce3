"""Quality aggregator"""

import logging
from typing import Dict, Any, List, Optional

from ..tasks.models import Task
from .calculators import MetricRegistry, QualityContext
from .models import QualityAssessment, QualityScore, ValidationResult
from .validation import TaskValidator

logger = logging.getLogger(__name__)


class QualityAssessor:
    """
    Runs every registered metric calculator and merges validation.

    A failing calculator is logged and skipped; the overall score is the
    mean of the remaining metrics and the assessment confidence shrinks
    with the fraction that failed.
    """

    def __init__(
        self,
        registry: Optional[MetricRegistry] = None,
        validator: Optional[TaskValidator] = None,
    ):
        self.registry = registry or MetricRegistry.default()
        self.validator = validator or TaskValidator()

        self.stats = {
            "assessments": 0,
            "calculator_failures": 0,
        }

    def validate(self, task: Task) -> ValidationResult:
        result = self.validator.validate(task)
        for calculator in self.registry.calculators():
            try:
                result.merge(calculator.validate(task))
            except Exception as e:
                logger.error(f"Validation by {calculator.metric.value} failed for {task.id}: {e}")
        return result

    def assess(self, task: Task, context: Optional[QualityContext] = None) -> QualityAssessment:
        """
        Assess a task version.

        Args:
            task: Task to assess
            context: Optional corpus information for the uniqueness metric

        Returns:
            A new QualityAssessment
        """
        validation = self.validate(task)
        calculators = self.registry.calculators()

        scores: List[QualityScore] = []
        notes: List[str] = []
        for calculator in calculators:
            try:
                scores.append(calculator.calculate(task, context))
            except Exception as e:
                self.stats["calculator_failures"] += 1
                logger.error(f"Metric {calculator.metric.value} failed for {task.id}: {e}")
                notes.append(f"{calculator.metric.value} could not be calculated: {e}")

        if scores:
            overall = sum(s.score for s in scores) / len(scores)
            mean_confidence = sum(s.confidence for s in scores) / len(scores)
            confidence = mean_confidence * len(scores) / len(calculators)
        else:
            overall = 0.0
            confidence = 0.0
            notes.append("No quality metric could be calculated")

        if len(scores) < len(calculators):
            notes.append(f"Reduced confidence: {len(scores)}/{len(calculators)} metrics calculated")

        self.stats["assessments"] += 1
        assessment = QualityAssessment(
            task_id=task.id,
            task_version=task.version,
            overall_score=round(overall, 4),
            validation=validation,
            scores=scores,
            confidence=round(confidence, 4),
            notes=notes,
        )

        logger.info(
            f"Quality assessment for {task.cache_key}: score={assessment.overall_score:.1f} "
            f"errors={len(validation.errors)} warnings={len(validation.warnings)}"
        )
        return assessment

    def get_statistics(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "metrics": [c.metric.value for c in self.registry.calculators()],
        }
