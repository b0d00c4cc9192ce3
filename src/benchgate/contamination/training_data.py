"""Overlap with known training corpora and benchmark leak heuristics"""

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence, Tuple

from ..config import ContaminationConfig
from ..similarity.engine import SimilarityEngine
from ..similarity.text import containment, normalize_text, shingles, tokenize
from ..tasks.models import Task
from .models import (
    DatasetOverlap,
    KnownDataset,
    LeakType,
    OverlapType,
    PotentialLeak,
    TrainingDataAnalysis,
)

logger = logging.getLogger(__name__)

# Public benchmarks commonly found in pretraining corpora
KNOWN_BENCHMARKS = [
    "HumanEval",
    "MBPP",
    "SWE-bench",
    "CodeContests",
    "LeetCode",
    "GSM8K",
    "MMLU",
    "BigCodeBench",
    "HellaSwag",
    "TruthfulQA",
    "LiveCodeBench",
    "DS-1000",
    "CodeXGLUE",
    "Codeforces",
]

CODE_HOSTS = [
    "github.com",
    "gist.github.com",
    "gitlab.com",
    "bitbucket.org",
    "stackoverflow.com",
    "pastebin.com",
    "huggingface.co",
    "leetcode.com",
]

SOLUTION_MARKERS = [
    (r"\bleetcode\s+(?:problem\s+)?#?\d+", "Numbered LeetCode problem reference"),
    (r"\b(?:taken|adapted|copied)\s+from\b", "Text declares an external origin"),
    (r"\bcanonical[_\s]solution\b", "Benchmark canonical solution field"),
    (r"\bproblem\s+\d+\s+(?:from|of)\b", "Numbered problem from an external set"),
]

# Fixed confidences: these are pattern matches, not similarity scores
LEAK_CONFIDENCE = {
    LeakType.BENCHMARK_REFERENCE: 0.7,
    LeakType.SOLUTION_MARKER: 0.65,
    LeakType.CODE_HOST_REFERENCE: 0.6,
}

# Confidence of an overlap computed without embeddings
LEXICAL_ONLY_CONFIDENCE = 0.6


def load_dataset_catalog(path: Path) -> List[KnownDataset]:
    """
    Load known datasets from a JSON file.

    Accepts either a list of datasets or ``{"datasets": [...]}``.
    """
    with open(path) as f:
        data = json.load(f)
    entries = data.get("datasets", []) if isinstance(data, dict) else data
    datasets = [KnownDataset.from_dict(entry) for entry in entries]
    logger.info(f"Loaded {len(datasets)} known datasets from {path}")
    return datasets


def detect_leaks(text: str, datasets: Sequence[KnownDataset] = ()) -> List[PotentialLeak]:
    """Scan text for references to benchmarks, code hosts and solution markers"""
    leaks: List[PotentialLeak] = []
    seen = set()

    def add(leak_type: LeakType, evidence: str, description: str):
        key = (leak_type, evidence.lower())
        if key in seen:
            return
        seen.add(key)
        leaks.append(PotentialLeak(
            leak_type=leak_type,
            evidence=evidence,
            confidence=LEAK_CONFIDENCE[leak_type],
            description=description,
        ))

    names = list(KNOWN_BENCHMARKS)
    for dataset in datasets:
        names.extend(n for n in [dataset.name, *dataset.aliases] if len(n) >= 4)

    for name in names:
        # The host part of a URL is reported once, as a code host
        match = re.search(rf"(?<![\w-]){re.escape(name)}(?![\w-]|\.\w)", text, re.IGNORECASE)
        if match:
            add(LeakType.BENCHMARK_REFERENCE, match.group(0), f"References known benchmark '{name}'")

    for host in CODE_HOSTS:
        match = re.search(rf"(?<![\w.-]){re.escape(host)}\b", text, re.IGNORECASE)
        if match:
            add(LeakType.CODE_HOST_REFERENCE, match.group(0), f"Links to public code host '{host}'")

    for pattern, description in SOLUTION_MARKERS:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            add(LeakType.SOLUTION_MARKER, match.group(0), description)

    return leaks


class TrainingDataChecker:
    """
    Compares a task against known external datasets.

    Per dataset, the best excerpt score averages shingle containment with
    embedding cosine (containment alone when embeddings are unavailable).
    """

    def __init__(self, engine: SimilarityEngine, config: Optional[ContaminationConfig] = None):
        self.engine = engine
        self.config = config or ContaminationConfig()

    def classify(self, score: float, confidence: float) -> Optional[OverlapType]:
        cfg = self.config
        if score >= cfg.exact_overlap_threshold:
            return OverlapType.EXACT_MATCH
        if score >= cfg.paraphrase_threshold:
            return OverlapType.PARAPHRASE
        if score >= cfg.concept_threshold and confidence >= cfg.concept_min_confidence:
            return OverlapType.CONCEPT_SIMILARITY
        return None

    def _score_excerpt(
        self,
        text: str,
        excerpt: str,
        task_vector: Optional[List[float]],
        excerpt_vector: Optional[List[float]],
    ) -> Tuple[float, float]:
        """Return (score, confidence) for one excerpt"""
        if normalize_text(text).lower() == normalize_text(excerpt).lower():
            return 1.0, 1.0

        n = self.engine.config.shingle_size
        lexical = containment(shingles(tokenize(text), n), shingles(tokenize(excerpt), n))

        if task_vector is None or excerpt_vector is None:
            return lexical, LEXICAL_ONLY_CONFIDENCE

        semantic = self.engine.semantic_similarity(task_vector, excerpt_vector)
        score = (lexical + semantic) / 2
        confidence = 0.5 + 0.5 * (1.0 - abs(lexical - semantic))
        return score, confidence

    async def check_overlap(
        self,
        task: Task,
        known_datasets: Sequence[KnownDataset],
    ) -> TrainingDataAnalysis:
        """
        Check a task against known datasets and scan it for leak patterns.

        Args:
            task: Candidate task
            known_datasets: Catalog of external datasets

        Returns:
            TrainingDataAnalysis with overlaps, leaks and a 0-100 risk score
        """
        text = task.content.prompt
        overlaps: List[DatasetOverlap] = []
        degraded = False

        task_vector = await self.engine.embedding_for(task) if known_datasets else None
        if known_datasets and task_vector is None:
            degraded = True

        for dataset in known_datasets:
            best: Optional[Tuple[float, float, str]] = None
            for excerpt in dataset.excerpts:
                excerpt_vector = None
                if task_vector is not None:
                    excerpt_vector = await self.engine.embed_text(_excerpt_key(dataset.name, excerpt), excerpt)
                    if excerpt_vector is None:
                        degraded = True
                score, confidence = self._score_excerpt(text, excerpt, task_vector, excerpt_vector)
                if best is None or score > best[0]:
                    best = (score, confidence, excerpt)

            if best is None:
                continue
            score, confidence, excerpt = best
            overlap_type = self.classify(score, confidence)
            if overlap_type is not None:
                overlaps.append(DatasetOverlap(
                    dataset_name=dataset.name,
                    overlap_type=overlap_type,
                    score=score,
                    confidence=confidence,
                    matched_excerpt=excerpt[:200],
                ))

        overlaps.sort(key=lambda o: (-o.score, o.dataset_name))
        leaks = detect_leaks(
            "\n".join([task.description, text, task.content.expected_output]),
            known_datasets,
        )
        risk_score = self.calculate_risk_score(overlaps, leaks)

        if overlaps or leaks:
            logger.info(
                f"Training-data check for {task.id}: {len(overlaps)} overlaps, "
                f"{len(leaks)} potential leaks, risk={risk_score:.0f}"
            )

        return TrainingDataAnalysis(
            overlaps=overlaps,
            potential_leaks=leaks,
            risk_score=risk_score,
            degraded=degraded,
        )

    def calculate_risk_score(
        self,
        overlaps: Sequence[DatasetOverlap],
        leaks: Sequence[PotentialLeak],
    ) -> float:
        """+30 exact, +20 paraphrase, +10 confident concept, +25/+15 per leak; cap 100"""
        score = 0.0
        for overlap in overlaps:
            if overlap.overlap_type == OverlapType.EXACT_MATCH:
                score += 30
            elif overlap.overlap_type == OverlapType.PARAPHRASE:
                score += 20
            elif overlap.overlap_type == OverlapType.CONCEPT_SIMILARITY and overlap.confidence > 0.8:
                score += 10

        for leak in leaks:
            score += 25 if leak.confidence >= 0.7 else 15

        return min(100.0, score)


def _excerpt_key(dataset_name: str, excerpt: str) -> str:
    digest = hashlib.md5(excerpt.encode()).hexdigest()[:12]
    return f"dataset:{dataset_name}:{digest}"


def summarize_overlaps(analysis: TrainingDataAnalysis) -> Dict[str, Any]:
    """Counts per overlap and leak type, for reports"""
    summary: Dict[str, Any] = {t.value: 0 for t in OverlapType}
    for overlap in analysis.overlaps:
        summary[overlap.overlap_type.value] += 1
    summary["leaks"] = {t.value: 0 for t in LeakType}
    for leak in analysis.potential_leaks:
        summary["leaks"][leak.leak_type.value] += 1
    return summary
