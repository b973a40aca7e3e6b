"""Per-document embedding cache and cosine-similarity ranking."""

from __future__ import annotations

import math
import threading
from concurrent.futures import Future
from typing import Sequence

from paperchat.core.errors import RequestCancelled
from paperchat.core.logging import get_logger
from paperchat.core.metrics import EMBEDDING_FAILURES
from paperchat.ingest.embeddings import DEFAULT_BATCH_SIZE, EmbeddingModel
from paperchat.ingest.types import DocumentIndex, EmbeddingState

logger = get_logger(__name__)


class EmbeddingCache:
    """Computes chunk embeddings at most once per document.

    The first caller for a document performs the computation; concurrent
    callers block on the same in-flight future instead of issuing their own
    requests. A failed computation marks the document ``FAILED`` for the rest
    of its lifetime so later turns go straight to lexical-only ranking.
    """

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.batch_size = batch_size
        self._lock = threading.Lock()
        self._pending: dict[str, Future[bool]] = {}

    def ensure_embeddings(self, index: DocumentIndex, model: EmbeddingModel) -> bool:
        """Return True iff every chunk of ``index`` now has a usable vector."""
        if not index.chunks:
            return False
        with self._lock:
            if index.has_embeddings:
                return True
            if index.embedding_state is EmbeddingState.FAILED:
                return False
            future = self._pending.get(index.document_id)
            owner = future is None
            if owner:
                future = Future()
                self._pending[index.document_id] = future
                index.embedding_state = EmbeddingState.PENDING
        if not owner:
            return future.result()
        return self._compute(index, model, future)

    def semantic_scores(
        self,
        index: DocumentIndex,
        query: str,
        model: EmbeddingModel,
    ) -> list[float] | None:
        """Cosine similarity of each chunk to ``query``, or None when unavailable."""
        if not self.ensure_embeddings(index, model):
            return None
        try:
            query_vectors = model.encode([query], batch_size=1).vectors
        except RequestCancelled:
            return None
        except Exception as exc:  # noqa: BLE001 - query embedding is best effort
            logger.warning("Query embedding failed for %s: %s", index.document_id, exc)
            return None
        if not query_vectors:
            return None
        query_vector = query_vectors[0]
        return [cosine_similarity(vector, query_vector) for vector in index.embeddings or []]

    def _compute(self, index: DocumentIndex, model: EmbeddingModel, future: Future[bool]) -> bool:
        ok = False
        next_state = EmbeddingState.FAILED
        vectors: list[list[float]] | None = None
        try:
            batch = model.encode(index.chunks, batch_size=self.batch_size)
            if len(batch.vectors) != len(index.chunks):
                raise ValueError(
                    f"expected {len(index.chunks)} vectors, got {len(batch.vectors)}"
                )
            vectors = [list(vector) for vector in batch.vectors]
            next_state = EmbeddingState.READY
            ok = True
        except RequestCancelled:
            next_state = EmbeddingState.UNSET
        except Exception as exc:  # noqa: BLE001 - embeddings are optional
            EMBEDDING_FAILURES.inc()
            logger.warning(
                "Embeddings unavailable for %s: %s",
                index.document_id,
                exc,
                extra={"ctx_document_id": index.document_id},
            )
        finally:
            with self._lock:
                if ok:
                    index.embeddings = vectors
                index.embedding_state = next_state
                self._pending.pop(index.document_id, None)
            future.set_result(ok)
        return ok


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine similarity; missing, mismatched or zero-norm vectors score 0."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


__all__ = ["EmbeddingCache", "cosine_similarity"]
