"""Task store interface and in-memory implementation"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Any, List, Optional

from ..errors import TaskNotFoundError
from .models import (
    CONTENT_FIELDS,
    DifficultyLevel,
    Task,
    TaskContent,
    TaskStatus,
    TaskType,
    utcnow,
)

logger = logging.getLogger(__name__)

_ENUM_FIELDS = {
    "status": TaskStatus,
    "difficulty_level": DifficultyLevel,
    "task_type": TaskType,
}


def matches_filter(task: Task, filters: Optional[Dict[str, Any]]) -> bool:
    """
    Check a task against an equality filter.

    A list or set value means "any of". Enum members and their string
    values compare equal.
    """
    if not filters:
        return True

    for key, expected in filters.items():
        actual = getattr(task, key, None)
        if isinstance(actual, Enum):
            actual = actual.value

        if isinstance(expected, (list, tuple, set, frozenset)):
            allowed = {e.value if isinstance(e, Enum) else e for e in expected}
            if actual not in allowed:
                return False
        else:
            if isinstance(expected, Enum):
                expected = expected.value
            if actual != expected:
                return False

    return True


def apply_patch(task: Task, patch: Dict[str, Any]) -> Task:
    """
    Return a copy of ``task`` with ``patch`` applied.

    Any change to a content field bumps the version; score and status
    changes do not.
    """
    updated = copy.deepcopy(task)
    content_changed = False

    for key, value in patch.items():
        if key in ("id", "version", "created_at"):
            raise ValueError(f"Field '{key}' cannot be patched")
        if not hasattr(updated, key):
            raise ValueError(f"Unknown task field '{key}'")

        if key == "content" and isinstance(value, dict):
            merged = updated.content.to_dict()
            merged.update(value)
            value = TaskContent.from_dict(merged)
        elif key in _ENUM_FIELDS and value is not None and not isinstance(value, Enum):
            value = _ENUM_FIELDS[key](value)

        if getattr(updated, key) != value:
            setattr(updated, key, value)
            if key in CONTENT_FIELDS:
                content_changed = True

    if content_changed:
        updated.version += 1
    updated.updated_at = utcnow()
    return updated


class TaskStore(ABC):
    """Read/write access to task records"""

    @abstractmethod
    def get(self, task_id: str) -> Task:
        """Return a task or raise TaskNotFoundError"""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Task]:
        """Return tasks matching an equality filter"""

    @abstractmethod
    def update(self, task_id: str, patch: Dict[str, Any]) -> Task:
        """Apply a partial update and return the stored task"""

    @abstractmethod
    def add(self, task: Task) -> Task:
        """Insert a new task"""


class InMemoryTaskStore(TaskStore):
    """Dictionary-backed store, used in tests and the sweep script"""

    def __init__(self, tasks: Optional[List[Task]] = None):
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()
        for task in tasks or []:
            self.add(task)

    def get(self, task_id: str) -> Task:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            return copy.deepcopy(task)

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Task]:
        with self._lock:
            return [
                copy.deepcopy(task)
                for task in self._tasks.values()
                if matches_filter(task, filters)
            ]

    def update(self, task_id: str, patch: Dict[str, Any]) -> Task:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            updated = apply_patch(task, patch)
            self._tasks[task_id] = updated
            if updated.version != task.version:
                logger.info(f"Task {task_id} bumped to v{updated.version}")
            return copy.deepcopy(updated)

    def add(self, task: Task) -> Task:
        with self._lock:
            if task.id in self._tasks:
                raise ValueError(f"Task {task.id} already exists")
            self._tasks[task.id] = copy.deepcopy(task)
            return copy.deepcopy(task)

    def __len__(self) -> int:
        return len(self._tasks)
