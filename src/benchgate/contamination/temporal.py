"""Temporal contamination risk"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..tasks.models import as_utc
from .models import TemporalAnalysis, TemporalRisk

logger = logging.getLogger(__name__)

DEFAULT_CAUTION_WINDOW = timedelta(days=30)


def assess_temporal(
    task_created_at: datetime,
    model_training_cutoff: Optional[datetime] = None,
    caution_window: timedelta = DEFAULT_CAUTION_WINDOW,
    model_id: Optional[str] = None,
) -> TemporalAnalysis:
    """
    Classify leakage risk from the task's creation date.

    Rules, in order:
    - cutoff unknown -> CAUTION
    - created on or before the cutoff -> RISKY
    - created within ``caution_window`` after the cutoff -> CAUTION
    - otherwise -> SAFE
    """
    created = as_utc(task_created_at)

    if model_training_cutoff is None:
        return TemporalAnalysis(
            created_at=created,
            risk=TemporalRisk.CAUTION,
            model_id=model_id,
            notes=["Training cutoff unknown; verify with provider"],
        )

    cutoff = as_utc(model_training_cutoff)
    if created <= cutoff:
        risk = TemporalRisk.RISKY
        note = f"Task created {(cutoff - created).days} days before training cutoff"
    elif created < cutoff + caution_window:
        risk = TemporalRisk.CAUTION
        note = f"Task created {(created - cutoff).days} days after training cutoff"
    else:
        risk = TemporalRisk.SAFE
        note = "Task postdates training cutoff"

    return TemporalAnalysis(
        created_at=created,
        risk=risk,
        training_cutoff=cutoff,
        model_id=model_id,
        notes=[note],
    )


class ModelCutoffRegistry:
    """
    Per-model training cutoff lookup.

    Unknown models have no cutoff, which assesses as CAUTION.
    """

    def __init__(self, cutoffs: Optional[Dict[str, datetime]] = None):
        self._cutoffs: Dict[str, datetime] = {
            model: as_utc(cutoff) for model, cutoff in (cutoffs or {}).items()
        }

    def register(self, model_id: str, cutoff: datetime):
        self._cutoffs[model_id] = as_utc(cutoff)

    def get_cutoff(self, model_id: str) -> Optional[datetime]:
        return self._cutoffs.get(model_id)

    def known_models(self) -> List[str]:
        return sorted(self._cutoffs)

    def assess(
        self,
        task_created_at: datetime,
        model_ids: Optional[List[str]] = None,
        caution_window: timedelta = DEFAULT_CAUTION_WINDOW,
    ) -> TemporalAnalysis:
        """
        Assess against every target model; the worst tier wins.

        With no target models the cutoff is unknown.
        """
        if not model_ids:
            return assess_temporal(task_created_at, None, caution_window)

        worst: Optional[TemporalAnalysis] = None
        for model_id in model_ids:
            analysis = assess_temporal(
                task_created_at,
                self.get_cutoff(model_id),
                caution_window,
                model_id=model_id,
            )
            if worst is None or analysis.risk.rank > worst.risk.rank:
                worst = analysis

        logger.debug(f"Temporal risk across {len(model_ids)} models: {worst.risk.value}")
        return worst
