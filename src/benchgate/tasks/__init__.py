"""Task records and storage"""

from .models import (
    Task,
    TaskContent,
    TaskExample,
    TaskStatus,
    TaskType,
    DifficultyLevel,
)
from .store import TaskStore, InMemoryTaskStore, apply_patch, matches_filter
from .history import AssessmentHistory, InMemoryAssessmentHistory

__all__ = [
    "Task",
    "TaskContent",
    "TaskExample",
    "TaskStatus",
    "TaskType",
    "DifficultyLevel",
    "TaskStore",
    "InMemoryTaskStore",
    "apply_patch",
    "matches_filter",
    "AssessmentHistory",
    "InMemoryAssessmentHistory",
]
