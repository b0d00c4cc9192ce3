"""Gatekeeper service: quality and contamination screening for the test bank"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Callable, List, Optional, Sequence

from .config import GatekeeperConfig
from .contamination.detector import ContaminationDetector
from .contamination.duplicates import DuplicateDetector
from .contamination.models import ContaminationAnalysis, ContaminationContext, KnownDataset
from .contamination.temporal import ModelCutoffRegistry
from .contamination.training_data import summarize_overlaps
from .errors import InvalidTransitionError, StaleAssessmentError
from .events import (
    CONTAMINATION_ANALYZED,
    QUALITY_ASSESSED,
    STATUS_CHANGED,
    EventSink,
    LoggingEventSink,
    emit_safely,
)
from .gate.publication import apply_transition, gate_transition
from .monitoring.metrics import GateMetrics
from .quality.assessor import QualityAssessor
from .quality.calculators import QualityContext
from .quality.models import QualityAssessment
from .similarity.embeddings import EmbeddingCache, EmbeddingProvider
from .similarity.engine import SimilarityEngine
from .similarity.index import VectorIndex
from .tasks.history import AssessmentHistory, InMemoryAssessmentHistory
from .tasks.models import Task, TaskStatus, utcnow
from .tasks.store import TaskStore

logger = logging.getLogger(__name__)

# Manual promotion target -> (statuses it promotes from, gate outcomes that permit it)
PROMOTION_RULES = {
    TaskStatus.APPROVED: (
        frozenset({TaskStatus.DRAFT, TaskStatus.REVIEW}),
        frozenset({TaskStatus.REVIEW, TaskStatus.APPROVED, TaskStatus.PUBLISHED}),
    ),
    TaskStatus.PUBLISHED: (
        frozenset({TaskStatus.DRAFT, TaskStatus.REVIEW, TaskStatus.APPROVED}),
        frozenset({TaskStatus.PUBLISHED}),
    ),
}


@dataclass
class EvaluationResult:
    """Outcome of evaluating one task version"""
    task_id: str
    task_version: int
    previous_status: TaskStatus
    status: TaskStatus
    quality: Optional[QualityAssessment] = None
    contamination: Optional[ContaminationAnalysis] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "task_id": self.task_id,
            "task_version": self.task_version,
            "previous_status": self.previous_status.value,
            "status": self.status.value,
            "quality_score": self.quality.overall_score if self.quality else None,
            "is_valid": self.quality.validation.is_valid if self.quality else None,
            "contamination_risk": self.contamination.overall_risk.value if self.contamination else None,
            "contamination_score": self.contamination.risk_score if self.contamination else None,
            "error": self.error,
        }
        if self.contamination:
            data["similar_tasks"] = [
                t.task_id for t in self.contamination.similarity_analysis.similar_tasks
            ]
            data["training_overlaps"] = summarize_overlaps(
                self.contamination.training_data_analysis
            )
            data["recommendations"] = list(self.contamination.recommendations)
        return data


@dataclass
class SweepReport:
    """Per-task results of a batch evaluation; failures never abort the batch"""
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: List[EvaluationResult] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.results) + len(self.failures)

    def status_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for result in self.results:
            counts[result.status.value] = counts.get(result.status.value, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "total": self.total,
            "evaluated": len(self.results),
            "failed": len(self.failures),
            "status_counts": self.status_counts(),
            "results": [r.to_dict() for r in sorted(self.results, key=lambda r: r.task_id)],
            "failures": dict(sorted(self.failures.items())),
        }


class Gatekeeper:
    """
    Decides whether candidate tasks may enter the published test bank.

    Quality assessment and contamination analysis run concurrently; the
    publication gate combines their verdicts into a task status that is
    written back to the store together with both scores. Every assessment
    and analysis is appended to the history.
    """

    def __init__(
        self,
        store: TaskStore,
        config: Optional[GatekeeperConfig] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        embedding_cache: Optional[EmbeddingCache] = None,
        history: Optional[AssessmentHistory] = None,
        event_sink: Optional[EventSink] = None,
        metrics: Optional[GateMetrics] = None,
        assessor: Optional[QualityAssessor] = None,
        cutoffs: Optional[ModelCutoffRegistry] = None,
        known_datasets: Optional[Sequence[KnownDataset]] = None,
        target_models: Optional[Sequence[str]] = None,
    ):
        """
        Initialize the gatekeeper.

        Args:
            store: Task store read for the corpus and written with verdicts
            config: Gatekeeper configuration
            embedding_provider: Text embedding service; lexical only when None
            embedding_cache: Shared cache, built from ``embedding_provider`` if omitted
            history: Assessment history, in memory by default
            event_sink: Event side channel; a logging sink when events are enabled
            metrics: Prometheus metrics
            assessor: Quality assessor with its metric registry
            cutoffs: Model training cutoffs for temporal risk
            known_datasets: Dataset catalog for training-data overlap
            target_models: Models whose cutoffs apply by default
        """
        self.store = store
        self.config = config or GatekeeperConfig()
        self.metrics = metrics or GateMetrics()

        self.cache = embedding_cache or EmbeddingCache(
            embedding_provider,
            redis_url=self.config.embedding.redis_url,
            ttl_hours=self.config.embedding.cache_ttl_hours,
        )
        if self.cache.metrics is None:
            self.cache.metrics = self.metrics
        self.engine = SimilarityEngine(self.config.similarity, self.cache)

        contamination_config = self.config.contamination
        self.index = VectorIndex(
            shard_size=contamination_config.index_shard_size,
            max_workers=contamination_config.index_workers,
        )
        self.duplicates = DuplicateDetector(self.engine, contamination_config, self.index)
        self.detector = ContaminationDetector(
            self.engine,
            store,
            contamination_config,
            cutoffs=cutoffs,
            duplicates=self.duplicates,
        )
        self.assessor = assessor or QualityAssessor()

        self.history = history or InMemoryAssessmentHistory()
        if event_sink is None and self.config.emit_events:
            event_sink = LoggingEventSink()
        self.event_sink = event_sink

        self.known_datasets = list(known_datasets or [])
        self.target_models = list(target_models or [])

        # Latest verdicts per task_id@version; dropped when the version moves
        self._quality_cache: Dict[str, QualityAssessment] = {}
        self._contamination_cache: Dict[str, ContaminationAnalysis] = {}

    async def initialize(self):
        """Connect optional backends"""
        await self.cache.initialize()

    async def close(self):
        await self.cache.close()
        self.index.close()

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def assess_quality(
        self,
        task: Task,
        context: Optional[QualityContext] = None,
    ) -> QualityAssessment:
        """Assess task quality; calculators run in a worker thread"""
        with self.metrics.track_duration("quality"):
            assessment = await asyncio.to_thread(self.assessor.assess, task, context)

        self._quality_cache[task.cache_key] = assessment
        self.history.record_quality(assessment)
        self.metrics.track_quality(assessment.validation.is_valid)

        await emit_safely(self.event_sink, QUALITY_ASSESSED, {
            "task_version": assessment.task_version,
            "overall_score": assessment.overall_score,
            "is_valid": assessment.validation.is_valid,
            "errors": len(assessment.validation.errors),
            "confidence": assessment.confidence,
        }, task_id=task.id)
        return assessment

    async def analyze_contamination(
        self,
        task: Task,
        context: Optional[ContaminationContext] = None,
    ) -> ContaminationAnalysis:
        """
        Analyze contamination risk.

        Raises:
            StoreUnavailableError: the existing-task corpus could not be read
        """
        if context is None:
            context = self.contamination_context()

        with self.metrics.track_duration("contamination"):
            analysis = await self.detector.analyze_contamination(task, context)

        self._contamination_cache[task.cache_key] = analysis
        self.history.record_contamination(analysis)
        self.metrics.track_contamination(analysis.overall_risk.value)

        await emit_safely(self.event_sink, CONTAMINATION_ANALYZED, {
            "task_version": analysis.task_version,
            "overall_risk": analysis.overall_risk.value,
            "risk_score": analysis.risk_score,
            "similar_tasks": len(analysis.similarity_analysis.similar_tasks),
            "confidence": analysis.confidence,
        }, task_id=task.id)
        return analysis

    def decide_status(
        self,
        task: Task,
        quality: Optional[QualityAssessment],
        contamination: Optional[ContaminationAnalysis],
    ) -> TaskStatus:
        """
        Apply the publication gate to a task's current version.

        Raises:
            StaleAssessmentError: a verdict belongs to another task version
        """
        for verdict in (quality, contamination):
            if verdict is not None and verdict.task_version != task.version:
                raise StaleAssessmentError(task.id, verdict.task_version, task.version)

        return gate_transition(
            task.status,
            quality.validation if quality else None,
            quality.overall_score if quality else None,
            contamination.overall_risk if contamination else None,
        )

    def contamination_context(self, existing_tasks: Optional[List[Task]] = None) -> ContaminationContext:
        """Default analysis inputs; the corpus is read from the store when ``existing_tasks`` is None"""
        return ContaminationContext(
            existing_tasks=existing_tasks,
            known_datasets=list(self.known_datasets),
            target_models=list(self.target_models),
        )

    async def evaluate_task(
        self,
        task_id: str,
        context: Optional[ContaminationContext] = None,
    ) -> EvaluationResult:
        """
        Assess, analyze and gate one task, writing the verdict to the store.

        ``context`` lets batch callers share one corpus snapshot.

        A contamination failure (e.g. the corpus store being unavailable)
        leaves the task in DRAFT and is reported in the result.

        Raises:
            TaskNotFoundError: unknown task id
            StaleAssessmentError: the task was edited during evaluation
        """
        start = time.time()
        task = await asyncio.to_thread(self.store.get, task_id)

        with self.metrics.track_duration("evaluate"):
            quality, contamination = await asyncio.gather(
                self.assess_quality(task),
                self.analyze_contamination(task, context),
                return_exceptions=True,
            )

        if isinstance(quality, BaseException):
            raise quality

        error = None
        if isinstance(contamination, BaseException):
            if not isinstance(contamination, Exception):
                raise contamination
            error = f"{type(contamination).__name__}: {contamination}"
            logger.error(f"Contamination analysis failed for {task.cache_key}: {contamination}")
            contamination = None

        current = await asyncio.to_thread(self.store.get, task_id)
        status = self.decide_status(current, quality, contamination)

        patch: Dict[str, Any] = {"quality_score": quality.overall_score, "status": status}
        if contamination is not None:
            patch["contamination_score"] = contamination.risk_score
        await asyncio.to_thread(self.store.update, task_id, patch)

        self.metrics.track_decision(status.value)
        if status != current.status:
            await emit_safely(self.event_sink, STATUS_CHANGED, {
                "from": current.status.value,
                "to": status.value,
                "task_version": current.version,
            }, task_id=task_id)

        logger.info(
            f"Evaluated {task.cache_key}: quality={quality.overall_score:.1f} "
            f"risk={contamination.overall_risk.value if contamination else 'unknown'} "
            f"status {current.status.value} -> {status.value} ({time.time() - start:.2f}s)"
        )
        return EvaluationResult(
            task_id=task_id,
            task_version=current.version,
            previous_status=current.status,
            status=status,
            quality=quality,
            contamination=contamination,
            error=error,
        )

    async def sweep(
        self,
        task_ids: Optional[Sequence[str]] = None,
        filters: Optional[Dict[str, Any]] = None,
        max_concurrent: Optional[int] = None,
        on_result: Optional[Callable[[str, Optional[EvaluationResult]], None]] = None,
    ) -> SweepReport:
        """
        Re-evaluate many tasks with bounded concurrency.

        Args:
            task_ids: Tasks to evaluate; all tasks matching ``filters`` when None
            filters: Store filter used when ``task_ids`` is None
            max_concurrent: Worker limit, ``config.sweep_concurrency`` by default
            on_result: Called after each task with its result (None on failure)

        Returns:
            SweepReport with per-task results and failures
        """
        report = SweepReport(started_at=utcnow())
        corpus = None
        if task_ids is None:
            tasks = await asyncio.to_thread(self.store.list, filters)
            task_ids = [t.id for t in tasks]
            if not filters:
                corpus = tasks

        context = await self._sweep_context(corpus)
        semaphore = asyncio.Semaphore(max_concurrent or self.config.sweep_concurrency)

        async def run_one(task_id: str):
            async with semaphore:
                try:
                    result = await self.evaluate_task(task_id, context)
                except Exception as e:
                    logger.error(f"Sweep failed for {task_id}: {e}")
                    report.failures[task_id] = f"{type(e).__name__}: {e}"
                    self.metrics.track_sweep_failure(type(e).__name__)
                    result = None
                else:
                    report.results.append(result)
                if on_result is not None:
                    on_result(task_id, result)

        await asyncio.gather(*(run_one(task_id) for task_id in task_ids))

        report.finished_at = utcnow()
        logger.info(
            f"Sweep finished: {len(report.results)} evaluated, "
            f"{len(report.failures)} failed, statuses={report.status_counts()}"
        )
        return report

    async def _sweep_context(self, corpus: Optional[List[Task]] = None) -> Optional[ContaminationContext]:
        """
        One corpus snapshot for the whole sweep.

        Sweeps change scores and statuses only, never content, so the
        snapshot stays valid for similarity. If it cannot be loaded each
        task reads the store itself and reports its own failure.
        """
        if corpus is None:
            try:
                corpus = await asyncio.to_thread(self.store.list)
            except Exception as e:
                logger.error(f"Could not load corpus snapshot for sweep: {e}")
                return None
        logger.info(f"Sweep corpus snapshot: {len(corpus)} tasks")
        return self.contamination_context(existing_tasks=corpus)

    # ------------------------------------------------------------------
    # Task edits and explicit lifecycle actions
    # ------------------------------------------------------------------

    async def update_task(self, task_id: str, patch: Dict[str, Any]) -> Task:
        """Edit a task; content edits drop cached embeddings and verdicts"""
        before = await asyncio.to_thread(self.store.get, task_id)
        updated = await asyncio.to_thread(self.store.update, task_id, patch)
        if updated.version != before.version:
            self.invalidate(task_id, keep_version=updated.version)
        return updated

    def invalidate(self, task_id: str, keep_version: Optional[int] = None):
        """Forget cached embeddings and verdicts of other versions of a task"""
        self.cache.invalidate(task_id, keep_version)
        self.duplicates.forget_task(task_id)
        keep = f"{task_id}@{keep_version}" if keep_version is not None else None
        for cache in (self._quality_cache, self._contamination_cache):
            for key in [k for k in cache if k.startswith(f"{task_id}@") and k != keep]:
                del cache[key]

    def cached_verdicts(self, task: Task):
        """Latest (quality, contamination) computed for this exact task version"""
        return (
            self._quality_cache.get(task.cache_key),
            self._contamination_cache.get(task.cache_key),
        )

    async def change_status(self, task_id: str, requested: TaskStatus) -> Task:
        """
        Explicit status change by a reviewer or maintainer.

        Promotions still need verdicts for the current version: moving
        from DRAFT or REVIEW to APPROVED requires a gate outcome other than
        DRAFT (valid and not CRITICAL), moving to PUBLISHED requires the
        gate to publish. Demotions are not checked.

        Raises:
            InvalidTransitionError: the lifecycle does not allow the move
        """
        task = await asyncio.to_thread(self.store.get, task_id)
        status = apply_transition(task.status, requested)

        promotes_from, permitted = PROMOTION_RULES.get(status, ((), ()))
        if task.status in promotes_from:
            quality, contamination = self.cached_verdicts(task)
            gate = self.decide_status(task, quality, contamination)
            if gate not in permitted:
                raise InvalidTransitionError(task.status.value, requested.value)

        if status == task.status:
            return task
        updated = await asyncio.to_thread(self.store.update, task_id, {"status": status})
        await emit_safely(self.event_sink, STATUS_CHANGED, {
            "from": task.status.value,
            "to": status.value,
            "task_version": task.version,
            "manual": True,
        }, task_id=task_id)
        return updated

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "quality": self.assessor.get_statistics(),
            "contamination": self.detector.get_statistics(),
            "embedding_cache": self.cache.get_statistics(),
            "index_size": len(self.index),
        }

