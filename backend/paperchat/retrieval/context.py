"""Context assembly: turn a document index and a question into a prompt context."""

from __future__ import annotations

from typing import Sequence

from paperchat.core.config import Settings
from paperchat.core.logging import get_logger
from paperchat.ingest.embeddings import EmbeddingModel
from paperchat.ingest.lexical import query_terms
from paperchat.ingest.types import ContextStats, DocumentIndex, RetrievalQuery, ScoredChunk
from paperchat.retrieval.hybrid import bm25_scores, fuse_scores, rank
from paperchat.retrieval.semantic import EmbeddingCache

logger = get_logger(__name__)

FALLBACK_CHUNKS = 2


class ContextAssembler:
    """Coordinates lexical and semantic ranking into a bounded context string."""

    def __init__(
        self,
        settings: Settings | None = None,
        embedding_cache: EmbeddingCache | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.embedding_cache = embedding_cache or EmbeddingCache(self.settings.embedding_batch_size)

    def build_context(
        self,
        index: DocumentIndex,
        query: RetrievalQuery | str,
        has_image: bool = False,
        budget: int | None = None,
        embedding_model: EmbeddingModel | None = None,
    ) -> str:
        context, _ = self.build(index, query, has_image=has_image, budget=budget, embedding_model=embedding_model)
        return context

    def build(
        self,
        index: DocumentIndex,
        query: RetrievalQuery | str,
        has_image: bool = False,
        budget: int | None = None,
        embedding_model: EmbeddingModel | None = None,
    ) -> tuple[str, ContextStats]:
        if isinstance(query, str):
            query = RetrievalQuery(raw_text=query, has_image=has_image)
        has_image = has_image or query.has_image
        total = len(index.chunks)
        if not total:
            return _title_line(index.title), ContextStats(mode="empty")

        if self._full_context_applies(index, has_image):
            context = render_full_context(index)
            return context, ContextStats(
                mode="full",
                selected=list(range(total)),
                total_chunks=total,
                length=len(context),
            )

        scored, used_embeddings = self.score_chunks(index, query.raw_text, embedding_model)
        selected = select_chunks(scored, total, self.settings.max_excerpts)
        if budget is None:
            budget = self.settings.image_context_budget if has_image else self.settings.context_budget
        context = render_excerpts(index, selected, budget)
        logger.debug(
            "Selected %s/%s chunks for %s",
            len(selected),
            total,
            index.document_id,
            extra={"ctx_document_id": index.document_id, "ctx_embeddings": used_embeddings},
        )
        return context, ContextStats(
            mode="retrieval",
            selected=sorted(selected),
            total_chunks=total,
            used_embeddings=used_embeddings,
            length=len(context),
        )

    def score_chunks(
        self,
        index: DocumentIndex,
        query_text: str,
        embedding_model: EmbeddingModel | None = None,
    ) -> tuple[list[ScoredChunk], bool]:
        """Fused scores per chunk; degrades to lexical-only, then to all zeros."""
        try:
            lexical = bm25_scores(query_terms(query_text), index)
        except Exception as exc:  # noqa: BLE001 - ranking must never block the answer
            logger.warning("Lexical ranking failed for %s: %s", index.document_id, exc)
            lexical = [0.0] * len(index.chunks)

        semantic: list[float] | None = None
        if embedding_model is not None:
            try:
                semantic = self.embedding_cache.semantic_scores(index, query_text, embedding_model)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Semantic ranking failed for %s: %s", index.document_id, exc)
                semantic = None

        try:
            return (
                fuse_scores(
                    lexical,
                    semantic,
                    lexical_weight=self.settings.lexical_weight,
                    semantic_weight=self.settings.semantic_weight,
                ),
                semantic is not None,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Score fusion failed for %s: %s", index.document_id, exc)
            return [ScoredChunk(index=idx, fused_score=0.0) for idx in range(len(index.chunks))], False

    def _full_context_applies(self, index: DocumentIndex, has_image: bool) -> bool:
        return (
            self.settings.force_full_context
            and not has_image
            and index.full_length <= self.settings.full_context_ceiling
        )


def select_chunks(scored: Sequence[ScoredChunk], total: int, max_excerpts: int) -> list[int]:
    """Pick chunk indices by fused score, then pad with neighbours up to the cap.

    Returned indices are in pick order; callers sort them for rendering.
    """
    cap = max(1, max_excerpts)
    picked: list[int] = []
    for item in rank(scored):
        if len(picked) >= cap or item.fused_score <= 0:
            break
        picked.append(item.index)

    if not picked:
        picked = list(range(min(FALLBACK_CHUNKS, cap, total)))

    selected = list(picked)
    for idx in picked:
        if len(selected) >= cap:
            break
        for neighbour in (idx - 1, idx + 1):
            if len(selected) >= cap:
                break
            if 0 <= neighbour < total and neighbour not in selected:
                selected.append(neighbour)
    return selected


def render_full_context(index: DocumentIndex) -> str:
    parts = []
    title = _title_line(index.title)
    if title:
        parts.append(title)
    parts.append("Full document text:")
    parts.append("\n\n".join(index.chunks))
    return "\n\n".join(parts)


def render_excerpts(index: DocumentIndex, selected: Sequence[int], budget: int) -> str:
    """Render selected chunks in document order, truncating at ``budget`` characters."""
    ordered = sorted(set(selected))
    total = len(ordered)
    remaining = max(0, budget)
    parts: list[str] = []
    title = _title_line(index.title)
    if title:
        parts.append(title)

    shown = 0
    for position, idx in enumerate(ordered, start=1):
        if remaining <= 0:
            break
        body = index.chunks[idx]
        if len(body) > remaining:
            body = body[:remaining].rstrip() + " …"
            remaining = 0
        else:
            remaining -= len(body)
        parts.append(f"[Excerpt {position}/{total}]\n{body}")
        shown += 1

    parts.append(
        f"(Source length: {index.full_length} characters; "
        f"{shown} of {len(index.chunks)} passages shown.)"
    )
    return "\n\n".join(parts)


def _title_line(title: str) -> str:
    title = (title or "").strip()
    return f"Title: {title}" if title else ""


__all__ = ["ContextAssembler", "render_excerpts", "render_full_context", "select_chunks"]
