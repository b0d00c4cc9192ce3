"""Contamination detection for benchmark tasks

Implements:
- Duplicate search, clustering and plagiarism indicators
- Overlap with known training corpora and leak heuristics
- Temporal risk against model training cutoffs
- Risk aggregation
"""

from .models import (
    ContaminationAnalysis,
    ContaminationContext,
    DatasetOverlap,
    DuplicateCluster,
    KnownDataset,
    LeakType,
    MatchedSegment,
    OverlapType,
    PlagiarismIndicator,
    PotentialLeak,
    RiskLevel,
    SimilarityAnalysis,
    SimilarTask,
    TemporalAnalysis,
    TemporalRisk,
    TrainingDataAnalysis,
)
from .detector import ContaminationDetector, aggregate_risk, risk_level_for
from .duplicates import DuplicateDetector, build_clusters, detect_plagiarism
from .temporal import ModelCutoffRegistry, assess_temporal
from .training_data import TrainingDataChecker, detect_leaks, load_dataset_catalog

__all__ = [
    "ContaminationAnalysis",
    "ContaminationContext",
    "DatasetOverlap",
    "DuplicateCluster",
    "KnownDataset",
    "LeakType",
    "MatchedSegment",
    "OverlapType",
    "PlagiarismIndicator",
    "PotentialLeak",
    "RiskLevel",
    "SimilarityAnalysis",
    "SimilarTask",
    "TemporalAnalysis",
    "TemporalRisk",
    "TrainingDataAnalysis",
    "ContaminationDetector",
    "aggregate_risk",
    "risk_level_for",
    "DuplicateDetector",
    "build_clusters",
    "detect_plagiarism",
    "ModelCutoffRegistry",
    "assess_temporal",
    "TrainingDataChecker",
    "detect_leaks",
    "load_dataset_catalog",
]
