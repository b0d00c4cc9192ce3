"""Similarity signals between benchmark tasks

Implements:
- Lexical similarity (shingle Jaccard, term cosine)
- Semantic similarity over cached embeddings
- Structural similarity over task metadata
- Sharded nearest-neighbour index
"""

from .embeddings import EmbeddingProvider, OpenAIEmbeddingProvider, EmbeddingCache
from .engine import SimilarityEngine, SimilarityResult, SimilarityType
from .index import VectorIndex

__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "EmbeddingCache",
    "SimilarityEngine",
    "SimilarityResult",
    "SimilarityType",
    "VectorIndex",
]
