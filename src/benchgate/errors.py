"""Exceptions raised by the gatekeeper"""

from typing import Optional


class BenchGateError(Exception):
    """Base class for all gatekeeper errors"""


class TaskNotFoundError(BenchGateError):
    """Raised when a task id is not present in the store"""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class StoreUnavailableError(BenchGateError):
    """Raised when the task store cannot be read or written"""


class EmbeddingUnavailableError(BenchGateError):
    """Raised when the embedding provider fails after all retries.

    Callers treat this as recoverable and fall back to lexical and
    structural similarity.
    """

    def __init__(self, message: str, attempts: int = 0, last_error: Optional[Exception] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class StaleAssessmentError(BenchGateError):
    """Raised when an assessment was computed for an older task version"""

    def __init__(self, task_id: str, assessed_version: int, current_version: int):
        super().__init__(
            f"Assessment for {task_id} is stale: "
            f"assessed v{assessed_version}, current v{current_version}"
        )
        self.task_id = task_id
        self.assessed_version = assessed_version
        self.current_version = current_version


class InvalidTransitionError(BenchGateError):
    """Raised when a status change is not allowed by the lifecycle"""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move task from {current} to {requested}")
        self.current = current
        self.requested = requested


class ContaminationAnalysisError(BenchGateError):
    """Raised when contamination analysis cannot complete at all"""
