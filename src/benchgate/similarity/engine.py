"""Similarity engine: lexical, semantic and structural signals"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple

from ..config import SimilarityConfig
from ..errors import EmbeddingUnavailableError
from ..tasks.models import Task
from .embeddings import EmbeddingCache
from .text import (
    jaccard,
    normalize_text,
    shared_runs,
    shingles,
    term_cosine,
    tokenize,
    vector_cosine,
)

logger = logging.getLogger(__name__)

# Overlapping segments are searched within this many leading tokens
SEGMENT_TOKEN_LIMIT = 1000


class SimilarityType(str, Enum):
    """Classification of a combined similarity score"""
    EXACT_MATCH = "exact_match"
    HIGH_SIMILARITY = "high_similarity"
    MODERATE_SIMILARITY = "moderate_similarity"
    SEMANTIC_SIMILARITY = "semantic_similarity"


@dataclass
class SimilarityResult:
    """Outcome of comparing two tasks"""
    overall: float
    similarity_type: SimilarityType
    lexical: float
    structural: float
    semantic: Optional[float] = None
    confidence: float = 1.0
    overlapping_segments: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when the semantic signal was unavailable"""
        return self.semantic is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "similarity_type": self.similarity_type.value,
            "lexical": self.lexical,
            "semantic": self.semantic,
            "structural": self.structural,
            "confidence": self.confidence,
            "overlapping_segments": list(self.overlapping_segments),
        }


class SimilarityEngine:
    """
    Compares tasks on three independent signals.

    overall = 0.4 * lexical + 0.4 * semantic + 0.2 * structural

    When no embedding is available the lexical and structural weights are
    renormalised and the result carries a lower confidence. Every signal
    is symmetric, so similarity(a, b) == similarity(b, a).
    """

    def __init__(
        self,
        config: Optional[SimilarityConfig] = None,
        cache: Optional[EmbeddingCache] = None,
    ):
        self.config = config or SimilarityConfig()
        self.cache = cache

        self.stats = {
            "comparisons": 0,
            "degraded_comparisons": 0,
            "embedding_failures": 0,
        }

    # ------------------------------------------------------------------
    # Individual signals
    # ------------------------------------------------------------------

    def lexical_similarity(self, text_a: str, text_b: str) -> float:
        """Mean of shingle Jaccard and term-frequency cosine"""
        tokens_a = tokenize(text_a)
        tokens_b = tokenize(text_b)
        n = self.config.shingle_size
        shingle_score = jaccard(shingles(tokens_a, n), shingles(tokens_b, n))
        cosine_score = term_cosine(tokens_a, tokens_b)
        return (shingle_score + cosine_score) / 2

    @staticmethod
    def structural_similarity(task_a: Task, task_b: Task) -> float:
        """Fraction of matching attributes averaged with tag Jaccard"""
        attributes = ("category", "task_type", "difficulty_level")
        matches = sum(
            1 for attr in attributes
            if _normalize_attr(getattr(task_a, attr)) == _normalize_attr(getattr(task_b, attr))
        )
        attribute_score = matches / len(attributes)

        tags_a = {t.strip().lower() for t in task_a.tags}
        tags_b = {t.strip().lower() for t in task_b.tags}
        tag_score = jaccard(tags_a, tags_b)

        return (attribute_score + tag_score) / 2

    @staticmethod
    def semantic_similarity(vector_a: List[float], vector_b: List[float]) -> float:
        return vector_cosine(vector_a, vector_b)

    # ------------------------------------------------------------------
    # Combination
    # ------------------------------------------------------------------

    def combine(
        self,
        lexical: float,
        structural: float,
        semantic: Optional[float] = None,
    ) -> Tuple[float, float]:
        """
        Weighted combination of the signals.

        Returns:
            Tuple of (overall, confidence)
        """
        cfg = self.config
        if semantic is not None:
            overall = (
                cfg.lexical_weight * lexical
                + cfg.semantic_weight * semantic
                + cfg.structural_weight * structural
            )
            return _clamp(overall), 1.0

        weight_sum = cfg.lexical_weight + cfg.structural_weight
        overall = (cfg.lexical_weight * lexical + cfg.structural_weight * structural) / weight_sum
        return _clamp(overall), cfg.degraded_confidence

    def classify(self, score: float) -> SimilarityType:
        if score >= self.config.exact_threshold:
            return SimilarityType.EXACT_MATCH
        if score >= self.config.high_threshold:
            return SimilarityType.HIGH_SIMILARITY
        if score >= self.config.moderate_threshold:
            return SimilarityType.MODERATE_SIMILARITY
        return SimilarityType.SEMANTIC_SIMILARITY

    def is_reportable(self, score: float) -> bool:
        return score >= self.config.reporting_floor

    # ------------------------------------------------------------------
    # Comparisons
    # ------------------------------------------------------------------

    def compare(
        self,
        task_a: Task,
        task_b: Task,
        vector_a: Optional[List[float]] = None,
        vector_b: Optional[List[float]] = None,
        with_segments: bool = True,
    ) -> SimilarityResult:
        """
        Compare two tasks given (optional) precomputed embeddings.

        Byte-identical prompts are an exact match whatever the metadata.
        """
        self.stats["comparisons"] += 1
        prompt_a = normalize_text(task_a.content.prompt)
        prompt_b = normalize_text(task_b.content.prompt)
        structural = self.structural_similarity(task_a, task_b)

        if prompt_a and prompt_a == prompt_b:
            segments = [prompt_a] if with_segments else []
            return SimilarityResult(
                overall=1.0,
                similarity_type=SimilarityType.EXACT_MATCH,
                lexical=1.0,
                semantic=1.0,
                structural=structural,
                confidence=1.0,
                overlapping_segments=segments,
            )

        lexical = self.lexical_similarity(prompt_a, prompt_b)
        semantic = None
        if vector_a is not None and vector_b is not None:
            semantic = self.semantic_similarity(vector_a, vector_b)
        else:
            self.stats["degraded_comparisons"] += 1

        overall, confidence = self.combine(lexical, structural, semantic)

        segments: List[str] = []
        if with_segments and self.is_reportable(overall):
            segments = shared_runs(
                tokenize(prompt_a)[:SEGMENT_TOKEN_LIMIT],
                tokenize(prompt_b)[:SEGMENT_TOKEN_LIMIT],
                min_length=self.config.min_segment_tokens,
            )

        return SimilarityResult(
            overall=overall,
            similarity_type=self.classify(overall),
            lexical=lexical,
            semantic=semantic,
            structural=structural,
            confidence=confidence,
            overlapping_segments=segments,
        )

    async def embedding_for(self, task: Task) -> Optional[List[float]]:
        """Cached embedding of the task prompt, or None when unavailable"""
        if self.cache is None or not task.content.prompt.strip():
            return None
        try:
            return await self.cache.get_or_embed(task.cache_key, task.content.prompt)
        except EmbeddingUnavailableError as e:
            self.stats["embedding_failures"] += 1
            logger.warning(f"Embedding unavailable for {task.cache_key}, using lexical only: {e}")
            return None

    async def embed_text(self, key: str, text: str) -> Optional[List[float]]:
        """Embedding of arbitrary text (dataset excerpts), or None"""
        if self.cache is None or not text.strip():
            return None
        try:
            return await self.cache.get_or_embed(key, text)
        except EmbeddingUnavailableError as e:
            self.stats["embedding_failures"] += 1
            logger.warning(f"Embedding unavailable for {key}: {e}")
            return None

    async def similarity(self, task_a: Task, task_b: Task) -> SimilarityResult:
        """
        Compare two tasks, embedding their prompts as needed.

        Args:
            task_a: First task
            task_b: Second task

        Returns:
            SimilarityResult with overall score, classification and segments
        """
        vector_a = await self.embedding_for(task_a)
        vector_b = await self.embedding_for(task_b) if vector_a is not None else None
        return self.compare(task_a, task_b, vector_a, vector_b)

    def get_statistics(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "config": self.config.to_dict(),
            "cache": self.cache.get_statistics() if self.cache else None,
        }


def _normalize_attr(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))
