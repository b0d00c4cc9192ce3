"""Duplicate clustering and plagiarism detection"""

import asyncio
import hashlib
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..config import ContaminationConfig
from ..similarity.engine import SimilarityEngine, SimilarityResult
from ..similarity.index import VectorIndex
from ..similarity.text import jaccard, normalize_text, tokenize
from ..tasks.models import Task, as_utc
from .models import (
    DuplicateCluster,
    MatchedSegment,
    PlagiarismIndicator,
    SimilarityAnalysis,
    SimilarTask,
)

logger = logging.getLogger(__name__)

# Concurrent embedding lookups while scanning a small corpus
EMBED_CONCURRENCY = 8


def build_clusters(
    tasks: Sequence[Task],
    similarity_fn: Callable[[Task, Task], float],
    threshold: float = 0.8,
) -> List[DuplicateCluster]:
    """
    Group tasks into duplicate clusters.

    Two tasks are linked when their similarity exceeds ``threshold``; a
    cluster is a connected component with at least two members. The
    representative is the oldest task, ties broken by lowest id.
    """
    ordered = sorted(tasks, key=lambda t: t.id)
    adjacency: Dict[str, Set[str]] = defaultdict(set)
    edges: Dict[Tuple[str, str], float] = {}

    for i, task_a in enumerate(ordered):
        for task_b in ordered[i + 1:]:
            score = similarity_fn(task_a, task_b)
            if score > threshold:
                adjacency[task_a.id].add(task_b.id)
                adjacency[task_b.id].add(task_a.id)
                edges[(task_a.id, task_b.id)] = score

    by_id = {t.id: t for t in ordered}
    seen: Set[str] = set()
    clusters: List[DuplicateCluster] = []

    for task in ordered:
        if task.id in seen or task.id not in adjacency:
            continue

        # Breadth-first walk of the component
        component = []
        queue = [task.id]
        seen.add(task.id)
        while queue:
            current = queue.pop(0)
            component.append(current)
            for neighbour in sorted(adjacency[current]):
                if neighbour not in seen:
                    seen.add(neighbour)
                    queue.append(neighbour)

        if len(component) < 2:
            continue

        members = sorted(component)
        member_set = set(members)
        component_edges = [
            score for (a, b), score in edges.items()
            if a in member_set and b in member_set
        ]
        representative = min(
            (by_id[m] for m in members),
            key=lambda t: (as_utc(t.created_at), t.id),
        )
        cluster_hash = hashlib.md5("|".join(members).encode()).hexdigest()[:8]

        clusters.append(DuplicateCluster(
            cluster_id=f"cluster_{cluster_hash}",
            task_ids=members,
            average_similarity=sum(component_edges) / len(component_edges),
            representative_id=representative.id,
        ))

    return clusters


def detect_plagiarism(
    candidate_text: str,
    source_text: str,
    source_task_id: str,
    window: int = 20,
    threshold: float = 0.9,
    max_tokens: int = 2000,
) -> Optional[PlagiarismIndicator]:
    """
    Sliding-window comparison of two texts.

    Every ``window``-token window of the candidate (stride 1) is compared
    with source windows anchored on its leading tokens; windows whose
    token-set Jaccard exceeds ``threshold`` are matches. Consecutive
    matched windows merge into one segment.

    Returns:
        PlagiarismIndicator, or None when nothing matched
    """
    cand_tokens = tokenize(candidate_text)[:max_tokens]
    src_tokens = tokenize(source_text)[:max_tokens]
    if not cand_tokens or not src_tokens:
        return None

    size = min(window, len(cand_tokens), len(src_tokens))
    src_positions: Dict[str, List[int]] = defaultdict(list)
    for pos, token in enumerate(src_tokens):
        src_positions[token].append(pos)

    last_src_start = len(src_tokens) - size
    src_window_sets: Dict[int, frozenset] = {}

    def source_window(start: int) -> frozenset:
        if start not in src_window_sets:
            src_window_sets[start] = frozenset(src_tokens[start:start + size])
        return src_window_sets[start]

    matches: List[Tuple[int, int, float]] = []
    for i in range(len(cand_tokens) - size + 1):
        cand_set = frozenset(cand_tokens[i:i + size])

        starts = set()
        for k, token in enumerate(cand_tokens[i:i + min(3, size)]):
            for pos in src_positions.get(token, []):
                for start in (pos - k - 1, pos - k, pos - k + 1):
                    if 0 <= start <= last_src_start:
                        starts.add(start)

        best: Optional[Tuple[float, int]] = None
        for start in sorted(starts):
            score = jaccard(cand_set, source_window(start))
            if score > threshold and (best is None or score > best[0]):
                best = (score, start)

        if best is not None:
            matches.append((i, best[1], best[0]))

    if not matches:
        return None

    segments: List[MatchedSegment] = []
    run: List[Tuple[int, int, float]] = [matches[0]]
    for match in matches[1:]:
        if match[0] == run[-1][0] + 1:
            run.append(match)
        else:
            segments.append(_merge_run(run, cand_tokens, size))
            run = [match]
    segments.append(_merge_run(run, cand_tokens, size))

    covered = sum(s.candidate_end - s.candidate_start for s in segments)
    mean_similarity = sum(s.similarity for s in segments) / len(segments)
    confidence = min(1.0, covered / len(cand_tokens)) * mean_similarity

    return PlagiarismIndicator(
        source_task_id=source_task_id,
        confidence=round(confidence, 4),
        segments=segments,
    )


def _merge_run(run: List[Tuple[int, int, float]], tokens: List[str], size: int) -> MatchedSegment:
    cand_start = run[0][0]
    cand_end = run[-1][0] + size
    return MatchedSegment(
        text=" ".join(tokens[cand_start:cand_end]),
        candidate_start=cand_start,
        candidate_end=cand_end,
        source_start=min(m[1] for m in run),
        source_end=max(m[1] for m in run) + size,
        similarity=round(sum(m[2] for m in run) / len(run), 4),
    )


class DuplicateDetector:
    """
    Finds existing tasks similar to a candidate.

    Small corpora are scanned in full. Larger ones are pruned first: with
    an embedding, the vector index supplies the nearest neighbours;
    without one, only tasks sharing category or task type are compared.
    Tasks with an identical prompt are always compared.
    """

    def __init__(
        self,
        engine: SimilarityEngine,
        config: Optional[ContaminationConfig] = None,
        index: Optional[VectorIndex] = None,
    ):
        self.engine = engine
        self.config = config or ContaminationConfig()
        self.index = index or VectorIndex(
            shard_size=self.config.index_shard_size,
            max_workers=self.config.index_workers,
        )
        self._indexed_versions: Dict[str, int] = {}
        # Versions whose embedding failed; retried only after a content edit
        self._unembedded_versions: Dict[str, int] = {}

        self.stats = {
            "searches": 0,
            "full_scans": 0,
            "indexed_searches": 0,
            "prefiltered_searches": 0,
        }

    def index_task(self, task: Task, vector: Sequence[float]):
        """Add or refresh a task's vector in the neighbour index"""
        self.index.upsert(task.id, vector)
        self._indexed_versions[task.id] = task.version

    def forget_task(self, task_id: str):
        self.index.remove(task_id)
        self._indexed_versions.pop(task_id, None)
        self._unembedded_versions.pop(task_id, None)

    async def _sync_index(self, existing: Sequence[Task]):
        """Embed and index every corpus task whose current version is not indexed yet"""
        if self.engine.cache is None:
            return
        stale = [
            t for t in existing
            if self._indexed_versions.get(t.id) != t.version
            and self._unembedded_versions.get(t.id) != t.version
        ]
        if not stale:
            return

        vectors = await self._existing_vectors(stale)
        missing = 0
        for task in stale:
            vector = vectors.get(task.id)
            if vector is None:
                self._unembedded_versions[task.id] = task.version
                missing += 1
            else:
                self.index_task(task, vector)

        logger.info(f"Indexed {len(stale) - missing} corpus tasks ({len(self.index)} total)")
        if missing:
            logger.warning(f"{missing} corpus tasks have no embedding; only structural candidates cover them")

    @staticmethod
    def _structural_candidates(task: Task, existing: Sequence[Task]) -> Set[str]:
        """Tasks sharing the candidate's category or task type"""
        return {
            t.id for t in existing
            if (task.category and t.category == task.category)
            or (task.task_type is not None and t.task_type == task.task_type)
        }

    async def _existing_vectors(self, tasks: Sequence[Task]) -> Dict[str, Optional[List[float]]]:
        semaphore = asyncio.Semaphore(EMBED_CONCURRENCY)

        async def fetch(task: Task):
            async with semaphore:
                return task.id, await self.engine.embedding_for(task)

        results = await asyncio.gather(*(fetch(t) for t in tasks))
        return dict(results)

    async def _select_candidates(
        self,
        task: Task,
        existing: List[Task],
        vector: Optional[List[float]],
    ) -> Tuple[List[Task], Dict[str, Optional[List[float]]]]:
        if len(existing) <= self.config.full_scan_limit:
            self.stats["full_scans"] += 1
            vectors = await self._existing_vectors(existing) if vector is not None else {}
            return existing, vectors

        by_id = {t.id: t for t in existing}
        prompt = normalize_text(task.content.prompt)
        selected = {
            t.id for t in existing
            if prompt and normalize_text(t.content.prompt) == prompt
        }
        selected.update(self._structural_candidates(task, existing))

        if vector is not None:
            self.stats["indexed_searches"] += 1
            await self._sync_index(existing)
            hits = await asyncio.to_thread(
                self.index.search, vector, self.config.index_top_k, [task.id]
            )
            selected.update(item_id for item_id, _ in hits if item_id in by_id)
        else:
            self.stats["prefiltered_searches"] += 1

        cache = self.engine.cache
        vectors = {
            item_id: cache.peek(by_id[item_id].cache_key) if cache else None
            for item_id in selected
        }
        candidates = [by_id[item_id] for item_id in sorted(selected)]
        logger.debug(f"Pruned {len(existing)} tasks to {len(candidates)} candidates for {task.id}")
        return candidates, vectors

    async def _compare_all(
        self,
        task: Task,
        existing: Sequence[Task],
        threshold: float,
    ) -> Tuple[List[Tuple[Task, SimilarityResult]], bool, int, Dict[str, Optional[List[float]]]]:
        self.stats["searches"] += 1
        others = [t for t in existing if t.id != task.id]
        vector = await self.engine.embedding_for(task)
        candidates, vectors = await self._select_candidates(task, others, vector)

        degraded = vector is None
        results: List[Tuple[Task, SimilarityResult]] = []
        for candidate in candidates:
            result = self.engine.compare(task, candidate, vector, vectors.get(candidate.id))
            if result.degraded:
                degraded = True
            if result.overall >= threshold:
                results.append((candidate, result))

        results.sort(key=lambda pair: (-pair[1].overall, pair[0].id))
        vectors[task.id] = vector
        return results, degraded, len(candidates), vectors

    async def find_similar_tasks(
        self,
        task: Task,
        existing_tasks: Sequence[Task],
        threshold: Optional[float] = None,
    ) -> List[SimilarTask]:
        """
        Existing tasks at or above ``threshold``, most similar first.

        An empty list is the normal outcome for novel tasks.
        """
        if threshold is None:
            threshold = self.engine.config.reporting_floor
        results, _, _, _ = await self._compare_all(task, existing_tasks, threshold)
        return [_to_similar_task(candidate, result) for candidate, result in results]

    async def analyze(
        self,
        task: Task,
        existing_tasks: Sequence[Task],
        threshold: Optional[float] = None,
    ) -> SimilarityAnalysis:
        """
        Full similarity analysis: similar tasks, clusters, plagiarism.

        Args:
            task: Candidate task
            existing_tasks: Corpus to compare against
            threshold: Reporting floor, defaults to the engine's

        Returns:
            SimilarityAnalysis
        """
        if threshold is None:
            threshold = self.engine.config.reporting_floor

        results, degraded, considered, vectors = await self._compare_all(
            task, existing_tasks, threshold
        )
        similar = [_to_similar_task(candidate, result) for candidate, result in results]

        clusters = self._cluster(task, results, vectors)

        indicators = []
        for candidate, result in results:
            if result.overall <= self.config.plagiarism_threshold:
                continue
            indicator = detect_plagiarism(
                task.content.prompt,
                candidate.content.prompt,
                candidate.id,
                window=self.config.plagiarism_window,
                threshold=self.config.plagiarism_window_threshold,
                max_tokens=self.config.plagiarism_max_tokens,
            )
            if indicator is not None:
                indicators.append(indicator)

        return SimilarityAnalysis(
            overall_similarity=similar[0].similarity if similar else 0.0,
            similar_tasks=similar,
            duplicate_clusters=clusters,
            plagiarism_indicators=indicators,
            degraded=degraded,
            candidates_considered=considered,
        )

    def _cluster(
        self,
        task: Task,
        results: List[Tuple[Task, SimilarityResult]],
        vectors: Dict[str, Optional[List[float]]],
    ) -> List[DuplicateCluster]:
        threshold = self.config.cluster_threshold
        close = [(c, r) for c, r in results if r.overall > threshold]
        if not close:
            return []

        known: Dict[Tuple[str, str], float] = {}
        for candidate, result in close:
            known[_pair_key(task.id, candidate.id)] = result.overall

        def similarity_fn(a: Task, b: Task) -> float:
            key = _pair_key(a.id, b.id)
            if key not in known:
                known[key] = self.engine.compare(
                    a, b, vectors.get(a.id), vectors.get(b.id), with_segments=False
                ).overall
            return known[key]

        members = [task] + [c for c, _ in close]
        return build_clusters(members, similarity_fn, threshold)

    def get_statistics(self):
        return {**self.stats, "index_size": len(self.index)}


def _pair_key(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a <= b else (b, a)


def _to_similar_task(candidate: Task, result: SimilarityResult) -> SimilarTask:
    return SimilarTask(
        task_id=candidate.id,
        similarity=result.overall,
        similarity_type=result.similarity_type,
        overlapping_segments=result.overlapping_segments,
        name=candidate.name,
        category=candidate.category,
        task_type=candidate.task_type.value if candidate.task_type else None,
        difficulty_level=candidate.difficulty_level.value if candidate.difficulty_level else None,
        created_at=candidate.created_at,
        confidence=result.confidence,
    )
