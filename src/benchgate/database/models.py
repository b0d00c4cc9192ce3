"""Database models for the test bank"""

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, JSON, Text,
    Index, CheckConstraint
)
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone
import uuid

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskRecord(Base):
    """Task content, scores and lifecycle status"""
    __tablename__ = "tasks"

    id = Column(String(255), primary_key=True)
    name = Column(String(500), nullable=False, default="")
    description = Column(Text, default="")
    content = Column(JSON, nullable=False)  # prompt, constraints, examples, expected_output, criteria
    category = Column(String(255), default="")
    difficulty_level = Column(String(50))
    task_type = Column(String(50))
    tags = Column(JSON)
    domain = Column(String(255))
    language = Column(String(100))
    version = Column(Integer, nullable=False, default=1)
    status = Column(String(50), nullable=False, default="draft")
    quality_score = Column(Float)
    contamination_score = Column(Float)
    created_by = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_task_status", "status"),
        Index("idx_task_category", "category"),
        Index("idx_task_type", "task_type"),
        Index("idx_task_created", "created_at"),
        CheckConstraint("version >= 1", name="ck_task_version_positive"),
    )


class QualityAssessmentRecord(Base):
    """Append-only quality assessment history"""
    __tablename__ = "quality_assessments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    task_id = Column(String(255), nullable=False)
    task_version = Column(Integer, nullable=False)
    overall_score = Column(Float, nullable=False)
    is_valid = Column(Boolean, default=True)
    confidence = Column(Float)
    payload = Column(JSON, nullable=False)
    assessed_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_quality_task_version", "task_id", "task_version"),
        Index("idx_quality_assessed", "assessed_at"),
    )


class ContaminationAnalysisRecord(Base):
    """Append-only contamination analysis history"""
    __tablename__ = "contamination_analyses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    task_id = Column(String(255), nullable=False)
    task_version = Column(Integer, nullable=False)
    overall_risk = Column(String(20), nullable=False)  # low, medium, high, critical
    risk_score = Column(Float, nullable=False)
    confidence = Column(Float)
    payload = Column(JSON, nullable=False)
    analyzed_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_contamination_task_version", "task_id", "task_version"),
        Index("idx_contamination_risk", "overall_risk"),
        CheckConstraint("risk_score >= 0", name="ck_risk_score_positive"),
    )
