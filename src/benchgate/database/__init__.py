"""Database layer for the test bank"""

from .models import Base, TaskRecord, QualityAssessmentRecord, ContaminationAnalysisRecord
from .connection import DatabaseConnection
from .repository import SqlTaskStore, SqlAssessmentHistory

__all__ = [
    "Base",
    "TaskRecord",
    "QualityAssessmentRecord",
    "ContaminationAnalysisRecord",
    "DatabaseConnection",
    "SqlTaskStore",
    "SqlAssessmentHistory",
]
