"""Sharded nearest-neighbour index over cached embeddings"""

import heapq
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class VectorIndex:
    """
    Exact cosine search over unit-normalised vectors.

    Vectors are packed into fixed-size shards; a query scores every shard
    on a thread pool (numpy releases the GIL during the matrix product)
    and merges the per-shard top-k. Shards are rebuilt lazily after
    writes.
    """

    def __init__(self, shard_size: int = 2048, max_workers: int = 4):
        self.shard_size = shard_size
        self.max_workers = max_workers

        self._vectors: Dict[str, np.ndarray] = {}
        self._shards: List[Tuple[List[str], np.ndarray]] = []
        self._dirty = False
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._vectors

    def upsert(self, item_id: str, vector: Iterable[float]):
        """Insert or replace a vector"""
        array = np.asarray(list(vector), dtype=np.float32)
        norm = float(np.linalg.norm(array))
        if norm == 0.0:
            logger.warning(f"Skipping zero vector for {item_id}")
            return
        with self._lock:
            self._vectors[item_id] = array / norm
            self._dirty = True

    def remove(self, item_id: str):
        with self._lock:
            if self._vectors.pop(item_id, None) is not None:
                self._dirty = True

    def _rebuild(self):
        ids = sorted(self._vectors)
        shards = []
        for start in range(0, len(ids), self.shard_size):
            shard_ids = ids[start:start + self.shard_size]
            matrix = np.vstack([self._vectors[i] for i in shard_ids])
            shards.append((shard_ids, matrix))
        self._shards = shards
        self._dirty = False
        logger.debug(f"Rebuilt vector index: {len(ids)} vectors in {len(shards)} shards")

    @staticmethod
    def _search_shard(
        shard: Tuple[List[str], np.ndarray],
        query: np.ndarray,
        k: int,
    ) -> List[Tuple[float, str]]:
        ids, matrix = shard
        if matrix.shape[1] != query.shape[0]:
            return []
        scores = matrix @ query
        if len(ids) > k:
            top = np.argpartition(-scores, k - 1)[:k]
        else:
            top = range(len(ids))
        return [(float(scores[i]), ids[i]) for i in top]

    def search(
        self,
        vector: Iterable[float],
        k: int = 50,
        exclude: Optional[Iterable[str]] = None,
    ) -> List[Tuple[str, float]]:
        """
        Return up to ``k`` (item_id, cosine) pairs, best first.

        Ties are broken by item id so results are deterministic.
        """
        query = np.asarray(list(vector), dtype=np.float32)
        norm = float(np.linalg.norm(query))
        if norm == 0.0 or k <= 0 or not self._vectors:
            return []
        query = query / norm

        excluded = set(exclude or [])
        with self._lock:
            if self._dirty:
                self._rebuild()
            shards = list(self._shards)

        # Over-fetch so exclusions do not starve the result
        per_shard = k + len(excluded)
        if len(shards) == 1:
            candidates = self._search_shard(shards[0], query, per_shard)
        else:
            executor = self._get_executor()
            results = executor.map(lambda s: self._search_shard(s, query, per_shard), shards)
            candidates = [item for shard_result in results for item in shard_result]

        filtered = [(score, item_id) for score, item_id in candidates if item_id not in excluded]
        best = heapq.nsmallest(k, filtered, key=lambda pair: (-pair[0], pair[1]))
        return [(item_id, max(0.0, min(1.0, score))) for score, item_id in best]

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix="vector-index",
            )
        return self._executor

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
