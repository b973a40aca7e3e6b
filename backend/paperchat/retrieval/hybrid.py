"""Hybrid search utilities."""

from __future__ import annotations

import math
from typing import Sequence

from paperchat.ingest.types import DocumentIndex, ScoredChunk

BM25_K1 = 1.2
BM25_B = 0.75


def bm25_scores(
    terms: Sequence[str],
    index: DocumentIndex,
    k1: float = BM25_K1,
    b: float = BM25_B,
) -> list[float]:
    """Score every chunk of ``index`` against deduplicated query ``terms``."""
    total = len(index.chunks)
    if not total or not terms:
        return [0.0] * total
    avg_length = index.avg_chunk_length or 1.0
    idf = {
        term: math.log(1.0 + (total - df + 0.5) / (df + 0.5))
        for term in terms
        if (df := index.doc_freq.get(term, 0)) > 0
    }
    scores: list[float] = []
    for stats in index.stats:
        score = 0.0
        norm = k1 * (1.0 - b + b * stats.token_count / avg_length)
        for term, weight in idf.items():
            tf = stats.term_freq.get(term, 0)
            if not tf:
                continue
            score += weight * (tf * (k1 + 1.0)) / (tf + norm)
        scores.append(score)
    return scores


def min_max_normalize(scores: Sequence[float]) -> list[float]:
    """Scale scores to [0, 1]; a flat vector maps to all 1.0 when positive, else 0.0."""
    if not scores:
        return []
    low = min(scores)
    high = max(scores)
    if high == low:
        fill = 1.0 if high > 0 else 0.0
        return [fill] * len(scores)
    span = high - low
    return [(score - low) / span for score in scores]


def fuse_scores(
    lexical: Sequence[float],
    semantic: Sequence[float] | None = None,
    lexical_weight: float = 0.5,
    semantic_weight: float = 0.5,
) -> list[ScoredChunk]:
    """Normalize each signal independently and combine them with fixed weights.

    Without a semantic signal the fused score is exactly the normalized
    lexical score.
    """
    lexical_norm = min_max_normalize(lexical)
    if semantic is None or len(semantic) != len(lexical):
        return [
            ScoredChunk(index=idx, fused_score=score, lexical_score=score)
            for idx, score in enumerate(lexical_norm)
        ]
    semantic_norm = min_max_normalize(semantic)
    return [
        ScoredChunk(
            index=idx,
            fused_score=lexical_weight * lex + semantic_weight * sem,
            lexical_score=lex,
            semantic_score=sem,
        )
        for idx, (lex, sem) in enumerate(zip(lexical_norm, semantic_norm))
    ]


def rank(scored: Sequence[ScoredChunk]) -> list[ScoredChunk]:
    """Order by fused score descending, ties broken by document order."""
    return sorted(scored, key=lambda item: (-item.fused_score, item.index))


__all__ = ["BM25_B", "BM25_K1", "bm25_scores", "fuse_scores", "min_max_normalize", "rank"]
