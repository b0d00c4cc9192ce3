"""Tokenization and lexical similarity primitives"""

import math
import re
from collections import Counter
from typing import Iterable, List, Sequence, Set, Tuple

_TOKEN_RE = re.compile(r"[^\w\s]")


def normalize_text(text: str) -> str:
    """Collapse whitespace so formatting-only edits compare equal"""
    return " ".join((text or "").split())


def tokenize(text: str) -> List[str]:
    """
    Word tokenization for shingling.

    Lowercases and drops punctuation.
    """
    text = _TOKEN_RE.sub(" ", (text or "").lower())
    return text.split()


def shingles(tokens: Sequence[str], n: int) -> Set[Tuple[str, ...]]:
    """Word n-grams; texts shorter than ``n`` fall back to unigrams"""
    if not tokens:
        return set()
    if len(tokens) < n:
        return {(t,) for t in tokens}
    return {tuple(tokens[i:i + n]) for i in range(len(tokens) - n + 1)}


def jaccard(a: Iterable, b: Iterable) -> float:
    """Jaccard index; two empty sets are identical"""
    set_a, set_b = set(a), set(b)
    if not set_a and not set_b:
        return 1.0
    union = set_a | set_b
    return len(set_a & set_b) / len(union)


def containment(a: Iterable, b: Iterable) -> float:
    """Fraction of the smaller set contained in the larger one"""
    set_a, set_b = set(a), set(b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / min(len(set_a), len(set_b))


def term_cosine(tokens_a: Sequence[str], tokens_b: Sequence[str]) -> float:
    """Cosine similarity of term-frequency vectors"""
    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0

    counts_a = Counter(tokens_a)
    counts_b = Counter(tokens_b)
    dot = sum(counts_a[t] * counts_b[t] for t in counts_a.keys() & counts_b.keys())
    norm_a = math.sqrt(sum(v * v for v in counts_a.values()))
    norm_b = math.sqrt(sum(v * v for v in counts_b.values()))
    return min(1.0, dot / (norm_a * norm_b))


def vector_cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of two dense vectors, clamped to [0, 1]"""
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(0.0, min(1.0, dot / (norm_a * norm_b)))


def shared_runs(
    tokens_a: Sequence[str],
    tokens_b: Sequence[str],
    min_length: int = 5,
) -> List[str]:
    """
    Maximal token runs present in both sequences.

    Result does not depend on argument order: runs are returned sorted
    by length descending, then text.
    """
    if not tokens_a or not tokens_b:
        return []

    # Longest common suffix lengths, row by row
    runs = set()
    prev = [0] * (len(tokens_b) + 1)
    for i in range(1, len(tokens_a) + 1):
        curr = [0] * (len(tokens_b) + 1)
        for j in range(1, len(tokens_b) + 1):
            if tokens_a[i - 1] == tokens_b[j - 1]:
                curr[j] = prev[j - 1] + 1
        for j in range(1, len(tokens_b) + 1):
            length = curr[j]
            # Run ends here if it cannot be extended by the next pair
            extendable = (
                i < len(tokens_a)
                and j < len(tokens_b)
                and tokens_a[i] == tokens_b[j]
            )
            if length >= min_length and not extendable:
                runs.add(" ".join(tokens_a[i - length:i]))
        prev = curr

    # Drop runs contained in longer ones
    ordered = sorted(runs, key=lambda r: (-len(r.split()), r))
    kept: List[str] = []
    for run in ordered:
        if not any(f" {run} " in f" {longer} " for longer in kept):
            kept.append(run)
    return kept
