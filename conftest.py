"""Shared fixtures for the gatekeeper tests"""

import hashlib
import math
from datetime import datetime, timezone
from typing import List

import pytest

from benchgate.similarity.embeddings import EmbeddingProvider
from benchgate.similarity.text import tokenize
from benchgate.tasks.models import (
    DifficultyLevel,
    Task,
    TaskContent,
    TaskExample,
    TaskType,
)

GOOD_PROMPT = (
    "Implement `merge_intervals(bookings)` for a meeting room scheduler. "
    "Each booking is a pair of integers giving a start minute and an end minute. "
    "The function returns a new list where overlapping or touching bookings are combined into one interval. "
    "Results must be ordered by start minute.\n"
    "- Bookings arrive unsorted and may contain exact duplicates.\n"
    "- An empty input list produces an empty output list.\n"
    "Describe the algorithm you chose and state its time complexity in a short comment."
)

OTHER_PROMPT = (
    "Parse web server access log lines into structured records. "
    "Every line holds a client address, a timestamp in brackets, the request line in quotes and a status code. "
    "Return a dictionary per line and skip lines that do not match the documented layout. "
    "Count the skipped lines and report the total after processing the whole file."
)


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic hashed bag-of-words vectors; counts calls"""

    def __init__(self, dims: int = 64):
        self.dims = dims
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        vector = [0.0] * self.dims
        for token in tokenize(text):
            bucket = int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dims
            vector[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]


class FailingEmbeddingProvider(EmbeddingProvider):
    """Always fails, like an unreachable embedding service"""

    def __init__(self):
        self.calls = 0

    async def embed(self, text: str) -> List[float]:
        self.calls += 1
        raise ConnectionError("embedding service unreachable")


@pytest.fixture
def make_task():
    """Factory for complete, valid tasks; keyword arguments override fields"""

    def factory(task_id: str = "task-1", prompt: str = GOOD_PROMPT, **overrides) -> Task:
        content = overrides.pop("content", None) or TaskContent(
            prompt=prompt,
            constraints=[
                "Must run in O(n log n) time",
                "Must not mutate the input list",
            ],
            examples=[
                TaskExample(
                    input="[(30, 60), (0, 30), (90, 120)]",
                    output="[(0, 60), (90, 120)]",
                    explanation="Touching bookings merge",
                ),
            ],
            expected_output="A sorted list of merged (start, end) tuples",
            evaluation_criteria=["Correct merging", "Handles empty input"],
        )
        fields = dict(
            id=task_id,
            name="Merge overlapping bookings",
            description="Merge overlapping booking intervals for a room scheduler.",
            content=content,
            category="algorithms",
            difficulty_level=DifficultyLevel.INTERMEDIATE,
            task_type=TaskType.CODE_GENERATION,
            tags=["intervals", "sorting"],
            domain="scheduling",
            language="python",
            created_by="author@example.com",
            created_at=datetime(2025, 6, 1, tzinfo=timezone.utc),
        )
        fields.update(overrides)
        return Task(**fields)

    return factory


@pytest.fixture
def fake_provider():
    return FakeEmbeddingProvider()
