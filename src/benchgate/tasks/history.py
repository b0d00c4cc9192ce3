"""Append-only audit history of assessments"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Any, List


class AssessmentHistory(ABC):
    """
    Stores serialized quality assessments and contamination analyses.

    Records are only ever appended; re-running an analysis adds a new
    record next to the previous ones.
    """

    @abstractmethod
    def record_quality(self, assessment) -> None:
        """Append a QualityAssessment"""

    @abstractmethod
    def record_contamination(self, analysis) -> None:
        """Append a ContaminationAnalysis"""

    @abstractmethod
    def quality_history(self, task_id: str) -> List[Dict[str, Any]]:
        """Serialized assessments for a task, oldest first"""

    @abstractmethod
    def contamination_history(self, task_id: str) -> List[Dict[str, Any]]:
        """Serialized analyses for a task, oldest first"""


class InMemoryAssessmentHistory(AssessmentHistory):

    def __init__(self):
        self._quality: Dict[str, List[Dict[str, Any]]] = {}
        self._contamination: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def record_quality(self, assessment) -> None:
        with self._lock:
            self._quality.setdefault(assessment.task_id, []).append(assessment.to_dict())

    def record_contamination(self, analysis) -> None:
        with self._lock:
            self._contamination.setdefault(analysis.task_id, []).append(analysis.to_dict())

    def quality_history(self, task_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._quality.get(task_id, []))

    def contamination_history(self, task_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._contamination.get(task_id, []))
