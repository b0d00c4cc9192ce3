#!/usr/bin/env python3
"""Test the similarity engine: signals, combination and degradation"""

import asyncio

import pytest

from benchgate.config import SimilarityConfig
from benchgate.similarity import EmbeddingCache, SimilarityEngine, SimilarityType
from benchgate.similarity.text import jaccard, shared_runs, shingles, term_cosine, tokenize

from conftest import OTHER_PROMPT, FailingEmbeddingProvider


def test_identical_prompts_are_exact_match(make_task):
    """Identical prompts score 1.0 even when the metadata differs."""
    engine = SimilarityEngine()
    a = make_task("a")
    b = make_task("b", category="data", tags=["other"], difficulty_level=None)

    result = engine.compare(a, b)

    assert result.overall == 1.0
    assert result.similarity_type == SimilarityType.EXACT_MATCH
    assert result.confidence == 1.0


def test_whitespace_only_edit_is_still_exact(make_task):
    engine = SimilarityEngine()
    a = make_task("a")
    b = make_task("b", prompt=a.content.prompt.replace(" ", "  ").replace("\n", " \n "))

    assert engine.compare(a, b).similarity_type == SimilarityType.EXACT_MATCH


def test_identity(make_task):
    engine = SimilarityEngine()
    task = make_task("a")
    assert engine.compare(task, task).overall == 1.0


def test_symmetry_with_and_without_vectors(make_task):
    """similarity(a, b) == similarity(b, a) for every signal combination."""
    engine = SimilarityEngine()
    a = make_task("a")
    b = make_task("b", prompt=OTHER_PROMPT, category="parsing", tags=["logs"])
    c = make_task("c", prompt=a.content.prompt + " Also report the number of merged bookings.")
    vectors = {"a": [0.1, 0.7, 0.2], "b": [0.5, 0.1, 0.9], "c": [0.2, 0.6, 0.3]}

    for x, y in [(a, b), (a, c), (b, c)]:
        plain_xy = engine.compare(x, y)
        plain_yx = engine.compare(y, x)
        assert abs(plain_xy.overall - plain_yx.overall) < 1e-12
        assert plain_xy.overlapping_segments == plain_yx.overlapping_segments

        vec_xy = engine.compare(x, y, vectors[x.id], vectors[y.id])
        vec_yx = engine.compare(y, x, vectors[y.id], vectors[x.id])
        assert abs(vec_xy.overall - vec_yx.overall) < 1e-12


def test_degraded_comparison_renormalizes_weights(make_task):
    """Without embeddings, lexical and structural carry 2/3 and 1/3 of the weight."""
    engine = SimilarityEngine()
    a = make_task("a")
    b = make_task("b", prompt=OTHER_PROMPT)

    result = engine.compare(a, b)

    assert result.degraded
    assert result.semantic is None
    assert result.confidence == SimilarityConfig().degraded_confidence
    expected = (0.4 * result.lexical + 0.2 * result.structural) / 0.6
    assert result.overall == pytest.approx(expected)


def test_full_weighting_with_vectors(make_task):
    engine = SimilarityEngine()
    a = make_task("a")
    b = make_task("b", prompt=OTHER_PROMPT)

    result = engine.compare(a, b, [1.0, 0.0], [1.0, 0.0])

    assert result.semantic == pytest.approx(1.0)
    assert result.confidence == 1.0
    expected = 0.4 * result.lexical + 0.4 * 1.0 + 0.2 * result.structural
    assert result.overall == pytest.approx(expected)


def test_classification_thresholds():
    engine = SimilarityEngine()
    assert engine.classify(0.95) == SimilarityType.EXACT_MATCH
    assert engine.classify(0.9) == SimilarityType.EXACT_MATCH
    assert engine.classify(0.75) == SimilarityType.HIGH_SIMILARITY
    assert engine.classify(0.55) == SimilarityType.MODERATE_SIMILARITY
    assert engine.classify(0.35) == SimilarityType.SEMANTIC_SIMILARITY
    assert engine.is_reportable(0.3)
    assert not engine.is_reportable(0.29)


def test_structural_similarity_uses_attributes_and_tags(make_task):
    a = make_task("a")
    same = make_task("b", prompt=OTHER_PROMPT)
    different = make_task("c", category="parsing", task_type=None, difficulty_level=None, tags=["logs"])

    assert SimilarityEngine.structural_similarity(a, same) == 1.0
    assert SimilarityEngine.structural_similarity(a, different) == 0.0


def test_overlapping_segments_reported(make_task):
    engine = SimilarityEngine()
    a = make_task("a")
    b = make_task("b", prompt=a.content.prompt + " Bonus: also return the count of merges performed.")

    result = engine.compare(a, b)

    assert result.overlapping_segments
    assert "each booking is a pair of integers" in result.overlapping_segments[0]


def test_embedding_backed_similarity(make_task, fake_provider):
    engine = SimilarityEngine(cache=EmbeddingCache(fake_provider))
    a = make_task("a")
    b = make_task("b", prompt=OTHER_PROMPT)

    first = asyncio.run(engine.similarity(a, b))
    second = asyncio.run(engine.similarity(b, a))

    assert first.semantic is not None
    assert not first.degraded
    assert abs(first.overall - second.overall) < 1e-12
    # Vectors are cached per task version
    assert len(fake_provider.calls) == 2


def test_embedding_failure_degrades_gracefully(make_task):
    provider = FailingEmbeddingProvider()
    engine = SimilarityEngine(cache=EmbeddingCache(provider))
    a = make_task("a")
    b = make_task("b", prompt=OTHER_PROMPT)

    result = asyncio.run(engine.similarity(a, b))

    assert result.degraded
    assert result.confidence < 1.0
    assert engine.get_statistics()["embedding_failures"] >= 1


def test_text_primitives():
    tokens = tokenize("Merge the intervals, then sort!")
    assert tokens == ["merge", "the", "intervals", "then", "sort"]
    assert shingles(["a", "b"], 3) == {("a",), ("b",)}
    assert jaccard([], []) == 1.0
    assert term_cosine([], []) == 1.0
    assert term_cosine(["a"], []) == 0.0

    a = tokenize("one two three four five six seven eight")
    b = tokenize("zero one two three four five six nine")
    assert shared_runs(a, b) == shared_runs(b, a) == ["one two three four five six"]
