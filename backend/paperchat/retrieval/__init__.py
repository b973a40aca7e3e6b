"""Retrieval orchestration components."""

from .context import ContextAssembler
from .documents import DocumentRegistry
from .hybrid import bm25_scores, fuse_scores, min_max_normalize
from .semantic import EmbeddingCache, cosine_similarity

__all__ = [
    "ContextAssembler",
    "DocumentRegistry",
    "EmbeddingCache",
    "bm25_scores",
    "cosine_similarity",
    "fuse_scores",
    "min_max_normalize",
]
