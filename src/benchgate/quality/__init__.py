"""Quality assessment for benchmark tasks"""

from .models import (
    IssueSeverity,
    QualityAssessment,
    QualityMetric,
    QualityScore,
    ValidationCode,
    ValidationIssue,
    ValidationResult,
)
from .calculators import (
    ClarityCalculator,
    CompletenessCalculator,
    DifficultyAccuracyCalculator,
    FeasibilityCalculator,
    MetricCalculator,
    MetricRegistry,
    QualityContext,
    UniquenessCalculator,
)
from .validation import TaskValidator
from .assessor import QualityAssessor

__all__ = [
    "IssueSeverity",
    "QualityAssessment",
    "QualityMetric",
    "QualityScore",
    "ValidationCode",
    "ValidationIssue",
    "ValidationResult",
    "ClarityCalculator",
    "CompletenessCalculator",
    "DifficultyAccuracyCalculator",
    "FeasibilityCalculator",
    "MetricCalculator",
    "MetricRegistry",
    "QualityContext",
    "UniquenessCalculator",
    "TaskValidator",
    "QualityAssessor",
]
