"""Prometheus metrics for the publication gate"""

import time
import logging
from contextlib import contextmanager
from typing import Optional

from prometheus_client import (
    Counter, Histogram, CollectorRegistry, generate_latest
)

logger = logging.getLogger(__name__)


class GateMetrics:
    """
    Counters and latency histograms for gate activity.

    Each instance owns its registry so several gatekeepers (or tests) can
    coexist in one process without duplicate-metric errors.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.quality_assessments = Counter(
            'benchgate_quality_assessments_total',
            'Total quality assessments',
            ['valid'],
            registry=self.registry
        )

        self.contamination_analyses = Counter(
            'benchgate_contamination_analyses_total',
            'Total contamination analyses by risk level',
            ['risk'],  # low, medium, high, critical
            registry=self.registry
        )

        self.gate_decisions = Counter(
            'benchgate_gate_decisions_total',
            'Publication gate decisions',
            ['status'],
            registry=self.registry
        )

        self.embedding_requests = Counter(
            'benchgate_embedding_requests_total',
            'Embedding lookups',
            ['result'],  # hit, miss, error
            registry=self.registry
        )

        self.sweep_failures = Counter(
            'benchgate_sweep_failures_total',
            'Tasks that failed during a sweep',
            ['error_type'],
            registry=self.registry
        )

        self.operation_duration = Histogram(
            'benchgate_operation_duration_seconds',
            'Duration of gate operations',
            ['operation'],  # quality, contamination, evaluate
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self.registry
        )

    @contextmanager
    def track_duration(self, operation: str):
        """Context manager to track operation duration"""
        start = time.time()
        try:
            yield
        finally:
            self.operation_duration.labels(operation=operation).observe(time.time() - start)

    def track_quality(self, is_valid: bool):
        self.quality_assessments.labels(valid=str(is_valid).lower()).inc()

    def track_contamination(self, risk: str):
        self.contamination_analyses.labels(risk=risk).inc()

    def track_decision(self, status: str):
        self.gate_decisions.labels(status=status).inc()

    def track_embedding(self, result: str, count: int = 1):
        if count > 0:
            self.embedding_requests.labels(result=result).inc(count)

    def track_sweep_failure(self, error_type: str):
        self.sweep_failures.labels(error_type=error_type).inc()

    def export(self) -> bytes:
        """Export metrics in Prometheus format"""
        return generate_latest(self.registry)
