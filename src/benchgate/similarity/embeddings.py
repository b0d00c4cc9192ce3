"""Embedding provider and per-version embedding cache"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional

import redis.asyncio as redis

from ..config import EmbeddingConfig
from ..errors import EmbeddingUnavailableError

logger = logging.getLogger(__name__)

# Metric result label -> stats key
STAT_KEYS = {"hit": "hits", "miss": "misses", "error": "failures"}


class EmbeddingProvider(ABC):
    """Turns text into a dense vector"""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Return the embedding of ``text``"""


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    Embeddings from the OpenAI API.

    Each call is bounded by ``config.timeout``; transient failures are
    retried with exponential backoff and the final failure surfaces as
    EmbeddingUnavailableError.
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None, client=None):
        self.config = config or EmbeddingConfig()
        self._client = client

        self.stats = {
            "requests": 0,
            "retries": 0,
            "failures": 0,
        }

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            # Retries are handled here so the timeout applies per attempt
            self._client = AsyncOpenAI(api_key=self.config.api_key, max_retries=0)
            logger.info(f"OpenAI embedding client initialized with model: {self.config.model}")
        return self._client

    async def embed(self, text: str) -> List[float]:
        client = self._get_client()
        last_error: Optional[Exception] = None

        for attempt in range(self.config.max_retries):
            self.stats["requests"] += 1
            try:
                response = await asyncio.wait_for(
                    client.embeddings.create(model=self.config.model, input=text),
                    timeout=self.config.timeout,
                )
                return list(response.data[0].embedding)

            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(f"Embedding request timed out (attempt {attempt + 1})")
            except Exception as e:
                last_error = e
                logger.warning(f"Embedding request failed (attempt {attempt + 1}): {e}")

            if attempt < self.config.max_retries - 1:
                self.stats["retries"] += 1
                await asyncio.sleep(self.config.backoff_base * (2 ** attempt))  # Exponential backoff

        self.stats["failures"] += 1
        raise EmbeddingUnavailableError(
            f"Embedding provider unavailable after {self.config.max_retries} attempts",
            attempts=self.config.max_retries,
            last_error=last_error,
        )


class EmbeddingCache:
    """
    Embedding vectors keyed by ``task_id@version``.

    Content is immutable per version, so writes are idempotent upserts
    and last-write-wins is safe. Concurrent requests for the same key
    share a single provider call. A Redis tier is used when configured
    and reachable; otherwise vectors live in process memory only.
    """

    def __init__(
        self,
        provider: Optional[EmbeddingProvider] = None,
        redis_url: Optional[str] = None,
        ttl_hours: int = 24 * 30,
        metrics=None,
    ):
        """
        Args:
            provider: Embedding source for misses; lookups only when None
            redis_url: Optional shared Redis tier
            ttl_hours: Expiry of vectors in Redis
            metrics: Anything with ``track_embedding(result, count)``; counted per lookup
        """
        self.provider = provider
        self.metrics = metrics
        self.redis_url = redis_url
        self.ttl_hours = ttl_hours

        self.redis_client: Optional[redis.Redis] = None
        self.memory_cache: Dict[str, List[float]] = {}
        self._in_flight: Dict[str, asyncio.Future] = {}

        self.stats = {
            "hits": 0,
            "misses": 0,
            "upserts": 0,
            "failures": 0,
        }

    def _count(self, result: str):
        self.stats[STAT_KEYS[result]] += 1
        if self.metrics is not None:
            self.metrics.track_embedding(result, 1)

    @staticmethod
    def make_key(task_id: str, version: int) -> str:
        return f"{task_id}@{version}"

    async def initialize(self):
        """Connect the Redis tier if one is configured"""
        if not self.redis_url:
            return
        try:
            self.redis_client = redis.from_url(self.redis_url)
            await self.redis_client.ping()
            logger.info("Redis embedding cache connected")
        except Exception as e:
            logger.warning(f"Redis unavailable, using local embedding cache only: {e}")
            self.redis_client = None

    async def get(self, key: str) -> Optional[List[float]]:
        vector = self.memory_cache.get(key)
        if vector is not None:
            self._count("hit")
            return vector

        if self.redis_client:
            vector = await self._get_from_redis(key)
            if vector is not None:
                self.memory_cache[key] = vector
                self._count("hit")
                return vector

        self._count("miss")
        return None

    def peek(self, key: str) -> Optional[List[float]]:
        """Local lookup without touching Redis or statistics"""
        return self.memory_cache.get(key)

    async def upsert(self, key: str, vector: List[float]):
        """Store a vector; repeated writes for a key are harmless"""
        self.memory_cache[key] = list(vector)
        self.stats["upserts"] += 1
        if self.redis_client:
            await self._save_to_redis(key, vector)

    async def get_or_embed(self, key: str, text: str) -> List[float]:
        """
        Return the cached vector for ``key``, embedding ``text`` on a miss.

        Raises:
            EmbeddingUnavailableError: no provider or provider failure
        """
        vector = await self.get(key)
        if vector is not None:
            return vector

        if self.provider is None:
            raise EmbeddingUnavailableError("No embedding provider configured")

        pending = self._in_flight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            vector = await self.provider.embed(text)
            await self.upsert(key, vector)
            future.set_result(vector)
            return vector
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            self._count("error")
            error = e
            if not isinstance(e, EmbeddingUnavailableError):
                error = EmbeddingUnavailableError(f"Embedding failed for {key}: {e}", attempts=1, last_error=e)
            future.set_exception(error)
            # Avoid "exception was never retrieved" when nobody awaited the future
            future.exception()
            if error is e:
                raise
            raise error from e
        finally:
            self._in_flight.pop(key, None)

    def invalidate(self, task_id: str, keep_version: Optional[int] = None) -> int:
        """Drop cached vectors of a task, optionally keeping one version"""
        prefix = f"{task_id}@"
        keep = self.make_key(task_id, keep_version) if keep_version is not None else None
        stale = [
            key for key in self.memory_cache
            if key.startswith(prefix) and key != keep
        ]
        for key in stale:
            del self.memory_cache[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} embeddings for {task_id}")
        return len(stale)

    async def _get_from_redis(self, key: str) -> Optional[List[float]]:
        try:
            data = await self.redis_client.get(f"benchgate:embedding:{key}")
            if data:
                return json.loads(data)
        except Exception as e:
            logger.error(f"Redis get error: {e}")
        return None

    async def _save_to_redis(self, key: str, vector: List[float]):
        try:
            await self.redis_client.setex(
                f"benchgate:embedding:{key}",
                self.ttl_hours * 3600,
                json.dumps(list(vector)),
            )
        except Exception as e:
            logger.error(f"Redis save error: {e}")

    def get_statistics(self) -> Dict[str, Any]:
        total = self.stats["hits"] + self.stats["misses"]
        return {
            **self.stats,
            "hit_rate": self.stats["hits"] / total if total > 0 else 0,
            "cache_size": len(self.memory_cache),
            "redis_available": self.redis_client is not None,
            "timestamp": time.time(),
        }

    async def close(self):
        if self.redis_client:
            await self.redis_client.close()
