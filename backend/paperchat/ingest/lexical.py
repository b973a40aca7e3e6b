"""Lexical statistics used by the BM25 ranker."""

from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, Sequence

from paperchat.ingest.chunker import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, chunk_text
from paperchat.ingest.types import ChunkStats, DocumentIndex

_TOKEN_RE = re.compile(r"[a-z0-9]+")
MIN_TOKEN_LENGTH = 3

STOP_WORDS = frozenset(
    """
    the and for are but not you all any can had her was one our out has him his how its may
    new now old see two way who did get let put say she too use that with have this will your
    from they know want been good much some time very when come here just like long make many
    more only over such take than them well were what also into most other which their there
    these those then about after again being below between both during each few further
    because before does doing down having itself myself once ourselves same should so themselves
    through under until while whom why yourself would could shall might must upon within without
    via per et al fig figure table section paper
    """.split()
)


def tokenize(text: str) -> list[str]:
    """Lowercase alphanumeric runs of length >= 3 that are not stop words."""
    return [
        token
        for token in _TOKEN_RE.findall(text.lower())
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOP_WORDS
    ]


def query_terms(text: str) -> list[str]:
    """Tokenize a query and drop duplicate terms, keeping first-seen order."""
    return list(dict.fromkeys(tokenize(text)))


def build_chunk_stats(chunks: Sequence[str]) -> tuple[list[ChunkStats], dict[str, int], float]:
    """Return per-chunk stats, corpus document frequency and mean token count."""
    stats: list[ChunkStats] = []
    doc_freq: Counter[str] = Counter()
    total_tokens = 0
    for index, chunk in enumerate(chunks):
        tokens = tokenize(chunk)
        term_freq = dict(Counter(tokens))
        unique = frozenset(term_freq)
        doc_freq.update(unique)
        total_tokens += len(tokens)
        stats.append(
            ChunkStats(index=index, token_count=len(tokens), term_freq=term_freq, unique_terms=unique)
        )
    avg_length = total_tokens / len(chunks) if chunks else 0.0
    return stats, dict(doc_freq), avg_length


def build_document_index(
    document_id: str,
    text: str,
    title: str = "",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> DocumentIndex:
    """Chunk a document and compute its lexical statistics."""
    chunks = chunk_text(text, chunk_size=chunk_size, overlap=overlap)
    # Windows of long paragraphs overlap, so the chunk total overstates the source.
    return index_chunks(document_id, chunks, title=title, full_length=len(text.strip()))


def index_chunks(
    document_id: str,
    chunks: Iterable[str],
    title: str = "",
    full_length: int | None = None,
) -> DocumentIndex:
    chunk_list = list(chunks)
    if full_length is None:
        full_length = sum(len(chunk) for chunk in chunk_list)
    stats, doc_freq, avg_length = build_chunk_stats(chunk_list)
    return DocumentIndex(
        document_id=document_id,
        title=title,
        chunks=chunk_list,
        stats=stats,
        doc_freq=doc_freq,
        avg_chunk_length=avg_length,
        full_length=full_length,
    )


__all__ = [
    "STOP_WORDS",
    "build_chunk_stats",
    "build_document_index",
    "index_chunks",
    "query_terms",
    "tokenize",
]
