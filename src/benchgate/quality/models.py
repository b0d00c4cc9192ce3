"""Quality assessment records"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional

from ..tasks.models import utcnow


class QualityMetric(str, Enum):
    COMPLETENESS = "completeness"
    CLARITY = "clarity"
    DIFFICULTY_ACCURACY = "difficulty_accuracy"
    UNIQUENESS = "uniqueness"
    FEASIBILITY = "feasibility"


class IssueSeverity(str, Enum):
    ERROR = "error"       # Blocks publication
    WARNING = "warning"   # Reported only


class ValidationCode(str, Enum):
    REQUIRED_FIELD = "REQUIRED_FIELD"
    INVALID_VALUE = "INVALID_VALUE"
    TOO_SHORT = "TOO_SHORT"
    TOO_LONG = "TOO_LONG"
    MISSING_EXAMPLES = "MISSING_EXAMPLES"
    MISSING_CRITERIA = "MISSING_CRITERIA"
    MISSING_TAGS = "MISSING_TAGS"
    INCONSISTENT_EXAMPLE = "INCONSISTENT_EXAMPLE"


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    code: ValidationCode
    message: str
    severity: IssueSeverity = IssueSeverity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "code": self.code.value,
            "message": self.message,
            "severity": self.severity.value,
        }


@dataclass
class ValidationResult:
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add(self, issue: ValidationIssue):
        target = self.errors if issue.severity == IssueSeverity.ERROR else self.warnings
        if issue not in target:
            target.append(issue)

    def merge(self, issues: List[ValidationIssue]):
        for issue in issues:
            self.add(issue)

    def has_code(self, code: ValidationCode) -> bool:
        return any(i.code == code for i in self.errors + self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass
class QualityScore:
    """Result of one metric calculator"""
    metric: QualityMetric
    score: float
    sub_scores: Dict[str, float] = field(default_factory=dict)
    issues: List[str] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    confidence: float = 1.0
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric.value,
            "score": self.score,
            "sub_scores": dict(self.sub_scores),
            "issues": list(self.issues),
            "strengths": list(self.strengths),
            "confidence": self.confidence,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class QualityAssessment:
    """Immutable quality verdict for one task version"""
    task_id: str
    task_version: int
    overall_score: float
    validation: ValidationResult
    scores: List[QualityScore]
    confidence: float = 1.0
    notes: List[str] = field(default_factory=list)
    assessed_at: datetime = field(default_factory=utcnow)

    def score_for(self, metric: QualityMetric) -> Optional[QualityScore]:
        for score in self.scores:
            if score.metric == metric:
                return score
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_version": self.task_version,
            "overall_score": self.overall_score,
            "validation": self.validation.to_dict(),
            "scores": [s.to_dict() for s in self.scores],
            "confidence": self.confidence,
            "notes": list(self.notes),
            "assessed_at": self.assessed_at.isoformat(),
        }
