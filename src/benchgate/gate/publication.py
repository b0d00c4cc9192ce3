"""Publication gate: quality and contamination verdicts to task status"""

import logging
from typing import Dict, FrozenSet, Optional

from ..contamination.models import RiskLevel
from ..errors import InvalidTransitionError
from ..quality.models import ValidationResult
from ..tasks.models import TaskStatus

logger = logging.getLogger(__name__)

QUALITY_REVIEW_THRESHOLD = 50.0
QUALITY_PUBLISH_THRESHOLD = 70.0

TERMINAL_STATUSES = frozenset({TaskStatus.DEPRECATED, TaskStatus.ARCHIVED})

# Transitions reachable by explicit external action
ALLOWED_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.DRAFT: frozenset({
        TaskStatus.REVIEW, TaskStatus.APPROVED, TaskStatus.PUBLISHED, TaskStatus.ARCHIVED,
    }),
    TaskStatus.REVIEW: frozenset({
        TaskStatus.DRAFT, TaskStatus.APPROVED, TaskStatus.PUBLISHED, TaskStatus.ARCHIVED,
    }),
    TaskStatus.APPROVED: frozenset({
        TaskStatus.DRAFT, TaskStatus.REVIEW, TaskStatus.PUBLISHED, TaskStatus.ARCHIVED,
    }),
    TaskStatus.PUBLISHED: frozenset({
        TaskStatus.DRAFT, TaskStatus.REVIEW, TaskStatus.APPROVED,
        TaskStatus.DEPRECATED, TaskStatus.ARCHIVED,
    }),
    TaskStatus.DEPRECATED: frozenset({TaskStatus.ARCHIVED}),
    TaskStatus.ARCHIVED: frozenset(),
}


def decide_status(
    validation: Optional[ValidationResult],
    quality_score: Optional[float],
    contamination_risk: Optional[RiskLevel],
) -> TaskStatus:
    """
    Pure gate decision.

    - validation errors, or a missing verdict -> DRAFT
    - CRITICAL contamination -> DRAFT
    - quality < 50 or HIGH contamination -> REVIEW
    - quality < 70 or MEDIUM contamination -> APPROVED
    - otherwise -> PUBLISHED
    """
    if validation is not None and not validation.is_valid:
        return TaskStatus.DRAFT
    if quality_score is None or contamination_risk is None:
        return TaskStatus.DRAFT
    if contamination_risk == RiskLevel.CRITICAL:
        return TaskStatus.DRAFT
    if quality_score < QUALITY_REVIEW_THRESHOLD or contamination_risk == RiskLevel.HIGH:
        return TaskStatus.REVIEW
    if quality_score < QUALITY_PUBLISH_THRESHOLD or contamination_risk == RiskLevel.MEDIUM:
        return TaskStatus.APPROVED
    return TaskStatus.PUBLISHED


def gate_transition(
    current: TaskStatus,
    validation: Optional[ValidationResult],
    quality_score: Optional[float],
    contamination_risk: Optional[RiskLevel],
) -> TaskStatus:
    """Gate decision for a task in ``current``; terminal statuses never change"""
    if current in TERMINAL_STATUSES:
        return current
    return decide_status(validation, quality_score, contamination_risk)


def apply_transition(current: TaskStatus, requested: TaskStatus) -> TaskStatus:
    """
    Validate an explicit status change made outside the gate.

    Raises:
        InvalidTransitionError: the lifecycle does not allow the move
    """
    if requested == current:
        return current
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, requested.value)
    logger.info(f"Status transition {current.value} -> {requested.value}")
    return requested
