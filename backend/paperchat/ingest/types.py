"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence


class EmbeddingState(str, Enum):
    UNSET = "unset"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ChunkStats:
    """Term statistics for one chunk, derived once at index-build time."""

    index: int
    token_count: int
    term_freq: dict[str, int]
    unique_terms: frozenset[str]


@dataclass(slots=True)
class DocumentIndex:
    """In-memory retrieval state for one document.

    Only the embedding cache writes ``embeddings`` and ``embedding_state``;
    chunks and stats never change after construction.
    """

    document_id: str
    title: str
    chunks: Sequence[str]
    stats: Sequence[ChunkStats]
    doc_freq: dict[str, int]
    avg_chunk_length: float
    full_length: int
    embeddings: list[list[float]] | None = None
    embedding_state: EmbeddingState = EmbeddingState.UNSET

    def __post_init__(self) -> None:
        if len(self.stats) != len(self.chunks):
            raise ValueError("stats must have one entry per chunk")

    @property
    def has_embeddings(self) -> bool:
        return (
            self.embedding_state is EmbeddingState.READY
            and self.embeddings is not None
            and len(self.embeddings) == len(self.chunks)
        )


@dataclass(frozen=True, slots=True)
class RetrievalQuery:
    raw_text: str
    has_image: bool = False


@dataclass(slots=True)
class ScoredChunk:
    index: int
    fused_score: float
    lexical_score: float = 0.0
    semantic_score: float | None = None


@dataclass(slots=True)
class ContextStats:
    """Summary of how a context string was produced, for logging and the API."""

    mode: str
    selected: list[int] = field(default_factory=list)
    total_chunks: int = 0
    used_embeddings: bool = False
    length: int = 0


__all__ = [
    "ChunkStats",
    "ContextStats",
    "DocumentIndex",
    "EmbeddingState",
    "RetrievalQuery",
    "ScoredChunk",
]
