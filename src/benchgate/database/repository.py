"""SQLAlchemy-backed task store and assessment history"""

import logging
from typing import Dict, Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import StoreUnavailableError, TaskNotFoundError
from ..tasks.history import AssessmentHistory
from ..tasks.models import Task, as_utc
from ..tasks.store import TaskStore, apply_patch, matches_filter
from .connection import DatabaseConnection
from .models import ContaminationAnalysisRecord, QualityAssessmentRecord, TaskRecord

logger = logging.getLogger(__name__)

# Filters pushed down to SQL; anything else is applied in Python
_COLUMN_FILTERS = {"status", "category", "task_type", "difficulty_level", "domain", "language", "created_by"}


def _record_to_task(record: TaskRecord) -> Task:
    return Task.from_dict({
        "id": record.id,
        "name": record.name,
        "description": record.description,
        "content": record.content,
        "category": record.category,
        "difficulty_level": record.difficulty_level,
        "task_type": record.task_type,
        "tags": record.tags or [],
        "domain": record.domain,
        "language": record.language,
        "version": record.version,
        "status": record.status,
        "quality_score": record.quality_score,
        "contamination_score": record.contamination_score,
        "created_by": record.created_by,
        "created_at": as_utc(record.created_at) if record.created_at else None,
        "updated_at": as_utc(record.updated_at) if record.updated_at else None,
    })


def _copy_task_to_record(task: Task, record: TaskRecord):
    data = task.to_dict()
    record.name = data["name"]
    record.description = data["description"]
    record.content = data["content"]
    record.category = data["category"]
    record.difficulty_level = data["difficulty_level"]
    record.task_type = data["task_type"]
    record.tags = data["tags"]
    record.domain = data["domain"]
    record.language = data["language"]
    record.version = data["version"]
    record.status = data["status"]
    record.quality_score = data["quality_score"]
    record.contamination_score = data["contamination_score"]
    record.created_by = data["created_by"]
    record.created_at = task.created_at
    record.updated_at = task.updated_at


class SqlTaskStore(TaskStore):
    """Task store on a relational database"""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def get(self, task_id: str) -> Task:
        try:
            with self.db.get_session() as session:
                record = session.get(TaskRecord, task_id)
                if record is None:
                    raise TaskNotFoundError(task_id)
                return _record_to_task(record)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Task store unavailable: {e}") from e

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Task]:
        filters = dict(filters or {})
        try:
            with self.db.get_session() as session:
                query = session.query(TaskRecord)
                for key in list(filters):
                    value = filters[key]
                    if key not in _COLUMN_FILTERS:
                        continue
                    column = getattr(TaskRecord, key)
                    if isinstance(value, (list, tuple, set, frozenset)):
                        query = query.filter(column.in_([getattr(v, "value", v) for v in value]))
                    else:
                        query = query.filter(column == getattr(value, "value", value))
                    filters.pop(key)
                tasks = [_record_to_task(r) for r in query.order_by(TaskRecord.id).all()]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Task store unavailable: {e}") from e

        return [t for t in tasks if matches_filter(t, filters)]

    def update(self, task_id: str, patch: Dict[str, Any]) -> Task:
        try:
            with self.db.get_session(commit=True) as session:
                record = session.get(TaskRecord, task_id)
                if record is None:
                    raise TaskNotFoundError(task_id)
                updated = apply_patch(_record_to_task(record), patch)
                _copy_task_to_record(updated, record)
                return updated
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Task store unavailable: {e}") from e

    def add(self, task: Task) -> Task:
        try:
            with self.db.get_session(commit=True) as session:
                if session.get(TaskRecord, task.id) is not None:
                    raise ValueError(f"Task {task.id} already exists")
                record = TaskRecord(id=task.id)
                _copy_task_to_record(task, record)
                session.add(record)
                return task
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Task store unavailable: {e}") from e


class SqlAssessmentHistory(AssessmentHistory):
    """Assessment history rows; never updated after insert"""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def record_quality(self, assessment) -> None:
        with self.db.get_session(commit=True) as session:
            session.add(QualityAssessmentRecord(
                task_id=assessment.task_id,
                task_version=assessment.task_version,
                overall_score=assessment.overall_score,
                is_valid=assessment.validation.is_valid,
                confidence=assessment.confidence,
                payload=assessment.to_dict(),
                assessed_at=assessment.assessed_at,
            ))

    def record_contamination(self, analysis) -> None:
        with self.db.get_session(commit=True) as session:
            session.add(ContaminationAnalysisRecord(
                task_id=analysis.task_id,
                task_version=analysis.task_version,
                overall_risk=analysis.overall_risk.value,
                risk_score=analysis.risk_score,
                confidence=analysis.confidence,
                payload=analysis.to_dict(),
                analyzed_at=analysis.analyzed_at,
            ))

    def quality_history(self, task_id: str) -> List[Dict[str, Any]]:
        with self.db.get_session() as session:
            rows = (
                session.query(QualityAssessmentRecord)
                .filter(QualityAssessmentRecord.task_id == task_id)
                .order_by(QualityAssessmentRecord.assessed_at)
                .all()
            )
            return [row.payload for row in rows]

    def contamination_history(self, task_id: str) -> List[Dict[str, Any]]:
        with self.db.get_session() as session:
            rows = (
                session.query(ContaminationAnalysisRecord)
                .filter(ContaminationAnalysisRecord.task_id == task_id)
                .order_by(ContaminationAnalysisRecord.analyzed_at)
                .all()
            )
            return [row.payload for row in rows]
