"""Gatekeeper configuration"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Optional


@dataclass
class SimilarityConfig:
    """Weights and thresholds of the similarity engine"""
    lexical_weight: float = 0.4
    semantic_weight: float = 0.4
    structural_weight: float = 0.2

    exact_threshold: float = 0.9
    high_threshold: float = 0.7
    moderate_threshold: float = 0.5
    reporting_floor: float = 0.3

    shingle_size: int = 3
    min_segment_tokens: int = 5

    # Confidence of a result computed without embeddings
    degraded_confidence: float = 0.7

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lexical_weight": self.lexical_weight,
            "semantic_weight": self.semantic_weight,
            "structural_weight": self.structural_weight,
            "exact_threshold": self.exact_threshold,
            "high_threshold": self.high_threshold,
            "moderate_threshold": self.moderate_threshold,
            "reporting_floor": self.reporting_floor,
            "shingle_size": self.shingle_size,
            "min_segment_tokens": self.min_segment_tokens,
            "degraded_confidence": self.degraded_confidence,
        }


@dataclass
class EmbeddingConfig:
    """Embedding provider and cache settings"""
    model: str = "text-embedding-3-small"
    api_key: Optional[str] = None
    timeout: float = 10.0           # seconds, per call
    max_retries: int = 3
    backoff_base: float = 1.0       # seconds, doubled per attempt
    redis_url: Optional[str] = None
    cache_ttl_hours: int = 24 * 30

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
            "backoff_base": self.backoff_base,
            "redis_url": self.redis_url,
            "cache_ttl_hours": self.cache_ttl_hours,
        }


@dataclass
class ContaminationConfig:
    """Thresholds used by contamination detection"""
    # Duplicate detection
    cluster_threshold: float = 0.8
    plagiarism_threshold: float = 0.85
    plagiarism_window: int = 20
    plagiarism_window_threshold: float = 0.9
    plagiarism_max_tokens: int = 2000

    # Candidate pruning
    full_scan_limit: int = 500
    index_top_k: int = 50
    index_shard_size: int = 2048
    index_workers: int = 4

    # Training-data overlap
    exact_overlap_threshold: float = 0.95
    paraphrase_threshold: float = 0.8
    concept_threshold: float = 0.5
    concept_min_confidence: float = 0.8

    # Temporal
    caution_window_days: int = 30
    model_training_cutoffs: Dict[str, datetime] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster_threshold": self.cluster_threshold,
            "plagiarism_threshold": self.plagiarism_threshold,
            "plagiarism_window": self.plagiarism_window,
            "plagiarism_window_threshold": self.plagiarism_window_threshold,
            "full_scan_limit": self.full_scan_limit,
            "index_top_k": self.index_top_k,
            "index_shard_size": self.index_shard_size,
            "exact_overlap_threshold": self.exact_overlap_threshold,
            "paraphrase_threshold": self.paraphrase_threshold,
            "concept_threshold": self.concept_threshold,
            "concept_min_confidence": self.concept_min_confidence,
            "caution_window_days": self.caution_window_days,
            "model_training_cutoffs": {
                model: cutoff.isoformat()
                for model, cutoff in self.model_training_cutoffs.items()
            },
        }


@dataclass
class GatekeeperConfig:
    """Top-level configuration"""
    similarity: SimilarityConfig = field(default_factory=SimilarityConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    contamination: ContaminationConfig = field(default_factory=ContaminationConfig)

    database_url: Optional[str] = None
    sweep_concurrency: int = 4
    emit_events: bool = True

    @classmethod
    def from_env(cls) -> "GatekeeperConfig":
        """Build configuration from BENCHGATE_* environment variables"""
        config = cls()

        config.embedding.api_key = os.getenv("OPENAI_API_KEY")
        config.embedding.model = os.getenv("BENCHGATE_EMBEDDING_MODEL", config.embedding.model)
        config.embedding.timeout = float(
            os.getenv("BENCHGATE_EMBEDDING_TIMEOUT", str(config.embedding.timeout))
        )
        config.embedding.max_retries = int(
            os.getenv("BENCHGATE_EMBEDDING_RETRIES", str(config.embedding.max_retries))
        )
        config.embedding.redis_url = os.getenv("REDIS_URL")

        config.contamination.full_scan_limit = int(
            os.getenv("BENCHGATE_FULL_SCAN_LIMIT", str(config.contamination.full_scan_limit))
        )
        config.contamination.model_training_cutoffs = parse_cutoffs(
            os.getenv("BENCHGATE_MODEL_CUTOFFS", "")
        )

        config.database_url = os.getenv("DATABASE_URL")
        config.sweep_concurrency = int(
            os.getenv("BENCHGATE_SWEEP_CONCURRENCY", str(config.sweep_concurrency))
        )
        config.emit_events = os.getenv("BENCHGATE_EMIT_EVENTS", "true").lower() != "false"
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "similarity": self.similarity.to_dict(),
            "embedding": self.embedding.to_dict(),
            "contamination": self.contamination.to_dict(),
            "sweep_concurrency": self.sweep_concurrency,
            "emit_events": self.emit_events,
        }


def parse_cutoffs(raw: str) -> Dict[str, datetime]:
    """
    Parse a model cutoff table.

    Format: ``model-a=2024-04-01,model-b=2023-12-31``
    """
    cutoffs: Dict[str, datetime] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" not in entry:
            raise ValueError(f"Invalid cutoff entry '{entry}', expected model=YYYY-MM-DD")
        model, date_text = entry.split("=", 1)
        cutoffs[model.strip()] = datetime.fromisoformat(date_text.strip())
    return cutoffs
