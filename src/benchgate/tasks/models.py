"""Task records for the benchmark test bank"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional


class TaskStatus(str, Enum):
    """Publication lifecycle of a task"""
    DRAFT = "draft"
    REVIEW = "review"           # Needs a human before it can progress
    APPROVED = "approved"       # Publishable but flagged
    PUBLISHED = "published"
    DEPRECATED = "deprecated"   # Terminal, external action only
    ARCHIVED = "archived"       # Terminal, external action only


class DifficultyLevel(str, Enum):
    """Declared difficulty of a task"""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return list(DifficultyLevel).index(self)


class TaskType(str, Enum):
    """Kind of work a task asks the model to do"""
    CODE_GENERATION = "code_generation"
    CODE_REVIEW = "code_review"
    BUG_FIX = "bug_fix"
    TEST_GENERATION = "test_generation"
    ISSUE_ANALYSIS = "issue_analysis"
    DOCUMENTATION = "documentation"
    REASONING = "reasoning"


# Fields whose change produces a new task version
CONTENT_FIELDS = frozenset({
    "name",
    "description",
    "content",
    "category",
    "difficulty_level",
    "task_type",
    "tags",
    "domain",
    "language",
})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


@dataclass
class TaskExample:
    """Worked example attached to a task prompt"""
    input: str = ""
    output: str = ""
    explanation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"input": self.input, "output": self.output, "explanation": self.explanation}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskExample":
        return cls(
            input=data.get("input", ""),
            output=data.get("output", ""),
            explanation=data.get("explanation"),
        )


@dataclass
class TaskContent:
    """Free-text body of a task"""
    prompt: str = ""
    constraints: List[str] = field(default_factory=list)
    examples: List[TaskExample] = field(default_factory=list)
    expected_output: str = ""
    evaluation_criteria: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt": self.prompt,
            "constraints": list(self.constraints),
            "examples": [e.to_dict() for e in self.examples],
            "expected_output": self.expected_output,
            "evaluation_criteria": list(self.evaluation_criteria),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TaskContent":
        data = data or {}
        return cls(
            prompt=data.get("prompt") or "",
            constraints=list(data.get("constraints") or []),
            examples=[TaskExample.from_dict(e) for e in data.get("examples") or []],
            expected_output=data.get("expected_output") or "",
            evaluation_criteria=list(data.get("evaluation_criteria") or []),
        )


@dataclass
class Task:
    """A candidate or published benchmark task"""
    id: str
    name: str = ""
    description: str = ""
    content: TaskContent = field(default_factory=TaskContent)
    category: str = ""
    difficulty_level: Optional[DifficultyLevel] = None
    task_type: Optional[TaskType] = None
    tags: List[str] = field(default_factory=list)
    domain: Optional[str] = None
    language: Optional[str] = None
    version: int = 1
    status: TaskStatus = TaskStatus.DRAFT
    quality_score: Optional[float] = None
    contamination_score: Optional[float] = None
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @property
    def cache_key(self) -> str:
        """Key for per-version caches such as embeddings"""
        return f"{self.id}@{self.version}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "content": self.content.to_dict(),
            "category": self.category,
            "difficulty_level": self.difficulty_level.value if self.difficulty_level else None,
            "task_type": self.task_type.value if self.task_type else None,
            "tags": list(self.tags),
            "domain": self.domain,
            "language": self.language,
            "version": self.version,
            "status": self.status.value,
            "quality_score": self.quality_score,
            "contamination_score": self.contamination_score,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Create from dictionary"""
        difficulty = data.get("difficulty_level")
        task_type = data.get("task_type")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            description=data.get("description") or "",
            content=TaskContent.from_dict(data.get("content")),
            category=data.get("category") or "",
            difficulty_level=DifficultyLevel(difficulty) if difficulty else None,
            task_type=TaskType(task_type) if task_type else None,
            tags=list(data.get("tags") or []),
            domain=data.get("domain"),
            language=data.get("language"),
            version=int(data.get("version", 1)),
            status=TaskStatus(data.get("status", "draft")),
            quality_score=data.get("quality_score"),
            contamination_score=data.get("contamination_score"),
            created_by=data.get("created_by"),
            created_at=_parse_datetime(data.get("created_at")) or utcnow(),
            updated_at=_parse_datetime(data.get("updated_at")),
        )
