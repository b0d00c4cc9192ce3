"""Contamination aggregator: combines similarity, training-data and temporal risk"""

import asyncio
import logging
import time
from datetime import timedelta
from typing import Dict, Any, List, Optional, Tuple

from ..config import ContaminationConfig
from ..errors import ContaminationAnalysisError, StoreUnavailableError
from ..similarity.engine import SimilarityEngine
from ..tasks.models import Task
from ..tasks.store import TaskStore
from .duplicates import DuplicateDetector
from .models import (
    ContaminationAnalysis,
    ContaminationContext,
    RiskLevel,
    SimilarityAnalysis,
    TemporalAnalysis,
    TemporalRisk,
    TrainingDataAnalysis,
)
from .temporal import ModelCutoffRegistry
from .training_data import TrainingDataChecker

logger = logging.getLogger(__name__)

TEMPORAL_CONTRIBUTION = {
    TemporalRisk.RISKY: 20.0,
    TemporalRisk.CAUTION: 10.0,
    TemporalRisk.SAFE: 0.0,
}

# Confidence multiplier per degraded signal
DEGRADED_CONFIDENCE_FACTOR = 0.7


def similarity_contribution(overall_similarity: float) -> float:
    """0-40 points from the highest similarity to an existing task"""
    if overall_similarity > 0.8:
        return 40.0
    if overall_similarity > 0.6:
        return 25.0
    if overall_similarity > 0.4:
        return 10.0
    return 0.0


def training_contribution(risk_score: float) -> float:
    """0-40 points from the training-data risk score"""
    return max(0.0, min(100.0, risk_score)) * 0.4


def temporal_contribution(risk: TemporalRisk) -> float:
    return TEMPORAL_CONTRIBUTION[risk]


def risk_level_for(total: float, exact_duplicate: bool = False) -> RiskLevel:
    """
    Map total risk points to a level.

    An exact duplicate of an existing task is always CRITICAL.
    """
    if exact_duplicate or total >= 80:
        return RiskLevel.CRITICAL
    if total >= 60:
        return RiskLevel.HIGH
    if total >= 40:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def aggregate_risk(
    similarity: SimilarityAnalysis,
    training: TrainingDataAnalysis,
    temporal: TemporalAnalysis,
) -> Tuple[RiskLevel, float]:
    """
    Combine the three analyses.

    Returns:
        Tuple of (risk level, total points capped at 100)
    """
    total = (
        similarity_contribution(similarity.overall_similarity)
        + training_contribution(training.risk_score)
        + temporal_contribution(temporal.risk)
    )
    total = min(100.0, total)
    return risk_level_for(total, similarity.has_exact_match), total


def build_recommendations(
    level: RiskLevel,
    similarity: SimilarityAnalysis,
    training: TrainingDataAnalysis,
    temporal: TemporalAnalysis,
) -> List[str]:
    recommendations: List[str] = []

    if similarity.has_exact_match:
        top = similarity.similar_tasks[0]
        recommendations.append(f"Task duplicates existing task {top.task_id}; do not publish")
    elif similarity.overall_similarity > 0.6:
        recommendations.append("Rewrite the prompt to differ substantially from similar tasks")

    if similarity.duplicate_clusters:
        reps = ", ".join(c.representative_id for c in similarity.duplicate_clusters)
        recommendations.append(f"Consolidate duplicate cluster(s) around {reps}")

    if similarity.plagiarism_indicators:
        recommendations.append("Review copied passages flagged as plagiarism indicators")

    if training.overlaps:
        names = ", ".join(sorted({o.dataset_name for o in training.overlaps}))
        recommendations.append(f"Task overlaps known datasets ({names}); create a novel variant")

    if training.potential_leaks:
        recommendations.append("Remove references to public benchmarks, code hosts or solution sources")

    if temporal.risk == TemporalRisk.RISKY:
        recommendations.append("Task predates the model training cutoff; evaluate only on newer models")
    elif temporal.risk == TemporalRisk.CAUTION and temporal.training_cutoff is None:
        recommendations.append("Verify the model training cutoff with the provider")

    if similarity.degraded or training.degraded:
        recommendations.append("Embedding service unavailable; re-run analysis for full confidence")

    if not recommendations and level == RiskLevel.LOW:
        recommendations.append("No contamination concerns detected")

    return recommendations


class ContaminationDetector:
    """
    Runs duplicate, training-data and temporal checks for one task and
    aggregates them into a ContaminationAnalysis.
    """

    def __init__(
        self,
        engine: SimilarityEngine,
        store: Optional[TaskStore] = None,
        config: Optional[ContaminationConfig] = None,
        cutoffs: Optional[ModelCutoffRegistry] = None,
        duplicates: Optional[DuplicateDetector] = None,
        training: Optional[TrainingDataChecker] = None,
    ):
        self.engine = engine
        self.store = store
        self.config = config or ContaminationConfig()
        self.cutoffs = cutoffs or ModelCutoffRegistry(self.config.model_training_cutoffs)
        self.duplicates = duplicates or DuplicateDetector(engine, self.config)
        self.training = training or TrainingDataChecker(engine, self.config)

        self.stats: Dict[str, int] = {level.value: 0 for level in RiskLevel}
        self.stats["analyses"] = 0
        self.stats["degraded"] = 0

    def _load_corpus(self, task: Task, context: ContaminationContext) -> List[Task]:
        if context.existing_tasks is not None:
            return list(context.existing_tasks)
        if self.store is None:
            raise StoreUnavailableError("No task store configured and no corpus supplied")
        try:
            return self.store.list()
        except StoreUnavailableError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Could not load corpus for {task.id}: {e}") from e

    async def analyze_contamination(
        self,
        task: Task,
        context: Optional[ContaminationContext] = None,
    ) -> ContaminationAnalysis:
        """
        Analyze contamination risk for a task version.

        Args:
            task: Candidate task
            context: Corpus, dataset catalog and target models

        Returns:
            ContaminationAnalysis

        Raises:
            StoreUnavailableError: the corpus could not be loaded
            ContaminationAnalysisError: a sub-analysis failed unexpectedly
        """
        context = context or ContaminationContext()
        start = time.time()

        corpus = await asyncio.to_thread(self._load_corpus, task, context)

        try:
            similarity, training = await asyncio.gather(
                self.duplicates.analyze(task, corpus, context.similarity_threshold),
                self.training.check_overlap(task, context.known_datasets),
            )
        except Exception as e:
            raise ContaminationAnalysisError(f"Contamination analysis failed for {task.cache_key}: {e}") from e

        temporal = self.cutoffs.assess(
            task.created_at,
            context.target_models,
            timedelta(days=self.config.caution_window_days),
        )

        level, total = aggregate_risk(similarity, training, temporal)

        confidence = 1.0
        if similarity.degraded:
            confidence *= DEGRADED_CONFIDENCE_FACTOR
        if training.degraded:
            confidence *= DEGRADED_CONFIDENCE_FACTOR

        analysis = ContaminationAnalysis(
            task_id=task.id,
            task_version=task.version,
            overall_risk=level,
            risk_score=total,
            similarity_analysis=similarity,
            training_data_analysis=training,
            temporal_analysis=temporal,
            recommendations=build_recommendations(level, similarity, training, temporal),
            confidence=round(confidence, 4),
        )

        self.stats["analyses"] += 1
        self.stats[level.value] += 1
        if confidence < 1.0:
            self.stats["degraded"] += 1

        logger.info(
            f"Contamination analysis for {task.cache_key}: risk={level.value} "
            f"score={total:.1f} similar={len(similarity.similar_tasks)} "
            f"confidence={confidence:.2f} ({time.time() - start:.2f}s)"
        )
        return analysis

    def get_statistics(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "duplicates": self.duplicates.get_statistics(),
            "engine": self.engine.get_statistics(),
        }
