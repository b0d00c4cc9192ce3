"""Contamination analysis records"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional

from ..similarity.engine import SimilarityType
from ..tasks.models import Task, utcnow


class RiskLevel(str, Enum):
    """Overall contamination risk"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(RiskLevel).index(self)


class TemporalRisk(str, Enum):
    """Recency-based leakage risk"""
    SAFE = "safe"
    CAUTION = "caution"
    RISKY = "risky"

    @property
    def rank(self) -> int:
        return list(TemporalRisk).index(self)


class OverlapType(str, Enum):
    """How a task overlaps a known dataset"""
    EXACT_MATCH = "exact_match"
    PARAPHRASE = "paraphrase"
    CONCEPT_SIMILARITY = "concept_similarity"


class LeakType(str, Enum):
    """Heuristic leak pattern families"""
    BENCHMARK_REFERENCE = "benchmark_reference"
    CODE_HOST_REFERENCE = "code_host_reference"
    SOLUTION_MARKER = "solution_marker"


@dataclass
class SimilarTask:
    """An existing task that resembles the candidate"""
    task_id: str
    similarity: float
    similarity_type: SimilarityType
    overlapping_segments: List[str] = field(default_factory=list)
    name: str = ""
    category: str = ""
    task_type: Optional[str] = None
    difficulty_level: Optional[str] = None
    created_at: Optional[datetime] = None
    confidence: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "similarity": self.similarity,
            "similarity_type": self.similarity_type.value,
            "overlapping_segments": list(self.overlapping_segments),
            "name": self.name,
            "category": self.category,
            "task_type": self.task_type,
            "difficulty_level": self.difficulty_level,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "confidence": self.confidence,
        }


@dataclass
class DuplicateCluster:
    """Connected component of mutually similar tasks"""
    cluster_id: str
    task_ids: List[str]
    average_similarity: float
    representative_id: str

    @property
    def size(self) -> int:
        return len(self.task_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster_id": self.cluster_id,
            "task_ids": list(self.task_ids),
            "average_similarity": self.average_similarity,
            "representative_id": self.representative_id,
        }


@dataclass
class MatchedSegment:
    """Copied span; offsets are token positions, end exclusive"""
    text: str
    candidate_start: int
    candidate_end: int
    source_start: int
    source_end: int
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "candidate_start": self.candidate_start,
            "candidate_end": self.candidate_end,
            "source_start": self.source_start,
            "source_end": self.source_end,
            "similarity": self.similarity,
        }


@dataclass
class PlagiarismIndicator:
    source_task_id: str
    confidence: float
    segments: List[MatchedSegment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_task_id": self.source_task_id,
            "confidence": self.confidence,
            "segments": [s.to_dict() for s in self.segments],
        }


@dataclass
class SimilarityAnalysis:
    overall_similarity: float = 0.0
    similar_tasks: List[SimilarTask] = field(default_factory=list)
    duplicate_clusters: List[DuplicateCluster] = field(default_factory=list)
    plagiarism_indicators: List[PlagiarismIndicator] = field(default_factory=list)
    degraded: bool = False
    candidates_considered: int = 0

    @property
    def has_exact_match(self) -> bool:
        return any(s.similarity_type == SimilarityType.EXACT_MATCH for s in self.similar_tasks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_similarity": self.overall_similarity,
            "similar_tasks": [s.to_dict() for s in self.similar_tasks],
            "duplicate_clusters": [c.to_dict() for c in self.duplicate_clusters],
            "plagiarism_indicators": [p.to_dict() for p in self.plagiarism_indicators],
            "degraded": self.degraded,
            "candidates_considered": self.candidates_considered,
        }


@dataclass
class KnownDataset:
    """External dataset or benchmark with representative excerpts"""
    name: str
    excerpts: List[str] = field(default_factory=list)
    source: Optional[str] = None
    aliases: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KnownDataset":
        return cls(
            name=data["name"],
            excerpts=list(data.get("excerpts") or []),
            source=data.get("source"),
            aliases=list(data.get("aliases") or []),
        )


@dataclass
class DatasetOverlap:
    dataset_name: str
    overlap_type: OverlapType
    score: float
    confidence: float
    matched_excerpt: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dataset_name": self.dataset_name,
            "overlap_type": self.overlap_type.value,
            "score": self.score,
            "confidence": self.confidence,
            "matched_excerpt": self.matched_excerpt,
        }


@dataclass
class PotentialLeak:
    """Pattern-match signal; confidence is fixed per leak type"""
    leak_type: LeakType
    evidence: str
    confidence: float
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "leak_type": self.leak_type.value,
            "evidence": self.evidence,
            "confidence": self.confidence,
            "description": self.description,
        }


@dataclass
class TrainingDataAnalysis:
    overlaps: List[DatasetOverlap] = field(default_factory=list)
    potential_leaks: List[PotentialLeak] = field(default_factory=list)
    risk_score: float = 0.0
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overlaps": [o.to_dict() for o in self.overlaps],
            "potential_leaks": [p.to_dict() for p in self.potential_leaks],
            "risk_score": self.risk_score,
            "degraded": self.degraded,
        }


@dataclass
class TemporalAnalysis:
    created_at: datetime
    risk: TemporalRisk
    training_cutoff: Optional[datetime] = None
    model_id: Optional[str] = None
    notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created_at": self.created_at.isoformat(),
            "training_cutoff": self.training_cutoff.isoformat() if self.training_cutoff else None,
            "model_id": self.model_id,
            "risk": self.risk.value,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class ContaminationAnalysis:
    """Immutable verdict for one task version"""
    task_id: str
    task_version: int
    overall_risk: RiskLevel
    risk_score: float
    similarity_analysis: SimilarityAnalysis
    training_data_analysis: TrainingDataAnalysis
    temporal_analysis: TemporalAnalysis
    recommendations: List[str]
    confidence: float = 1.0
    analyzed_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_version": self.task_version,
            "overall_risk": self.overall_risk.value,
            "risk_score": self.risk_score,
            "similarity_analysis": self.similarity_analysis.to_dict(),
            "training_data_analysis": self.training_data_analysis.to_dict(),
            "temporal_analysis": self.temporal_analysis.to_dict(),
            "recommendations": list(self.recommendations),
            "confidence": self.confidence,
            "analyzed_at": self.analyzed_at.isoformat(),
        }


@dataclass
class ContaminationContext:
    """
    Inputs for one contamination analysis.

    ``existing_tasks`` of None means the corpus is read from the store.
    """
    existing_tasks: Optional[List[Task]] = None
    known_datasets: List[KnownDataset] = field(default_factory=list)
    target_models: List[str] = field(default_factory=list)
    similarity_threshold: Optional[float] = None
