"""benchgate: quality and contamination gate for benchmark test banks"""

__version__ = "0.1.0"

from .config import GatekeeperConfig, SimilarityConfig, EmbeddingConfig, ContaminationConfig
from .errors import (
    BenchGateError,
    TaskNotFoundError,
    StoreUnavailableError,
    EmbeddingUnavailableError,
    StaleAssessmentError,
    InvalidTransitionError,
    ContaminationAnalysisError,
)
from .events import EventSink, LoggingEventSink
from .service import Gatekeeper, EvaluationResult, SweepReport
from .tasks import Task, TaskContent, TaskExample, TaskStatus, InMemoryTaskStore

__all__ = [
    "GatekeeperConfig",
    "SimilarityConfig",
    "EmbeddingConfig",
    "ContaminationConfig",
    "BenchGateError",
    "TaskNotFoundError",
    "StoreUnavailableError",
    "EmbeddingUnavailableError",
    "StaleAssessmentError",
    "InvalidTransitionError",
    "ContaminationAnalysisError",
    "EventSink",
    "LoggingEventSink",
    "Gatekeeper",
    "EvaluationResult",
    "SweepReport",
    "Task",
    "TaskContent",
    "TaskExample",
    "TaskStatus",
    "InMemoryTaskStore",
]
