"""Chunking utilities."""

from __future__ import annotations

import re
from typing import Iterator

_SEGMENT_RE = re.compile(r"\n\s*\n", re.MULTILINE)
_PARAGRAPH_JOIN = "\n\n"

DEFAULT_CHUNK_SIZE = 2000
DEFAULT_CHUNK_OVERLAP = 200


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[str]:
    """Split text into ordered, trimmed chunks of at most ``chunk_size`` characters.

    Paragraphs (blank-line separated) are packed together until the next one
    would overflow the target. A paragraph longer than the target is cut into
    fixed windows that slide by ``chunk_size - overlap``.
    """
    if not text or not text.strip():
        return []
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    step = max(1, chunk_size - max(0, overlap))

    chunks: list[str] = []
    current: list[str] = []
    current_len = 0

    for paragraph in _iter_paragraphs(text):
        if len(paragraph) > chunk_size:
            if current:
                chunks.append(_PARAGRAPH_JOIN.join(current))
                current, current_len = [], 0
            chunks.extend(_split_windows(paragraph, chunk_size, step))
            continue

        added = len(paragraph) + (len(_PARAGRAPH_JOIN) if current else 0)
        if current and current_len + added > chunk_size:
            chunks.append(_PARAGRAPH_JOIN.join(current))
            current, current_len = [], 0
            added = len(paragraph)
        current.append(paragraph)
        current_len += added

    if current:
        chunks.append(_PARAGRAPH_JOIN.join(current))

    return chunks


def _iter_paragraphs(text: str) -> Iterator[str]:
    last_index = 0
    for match in _SEGMENT_RE.finditer(text):
        paragraph = text[last_index : match.start()].strip()
        if paragraph:
            yield paragraph
        last_index = match.end()
    if last_index < len(text):
        paragraph = text[last_index:].strip()
        if paragraph:
            yield paragraph


def _split_windows(paragraph: str, size: int, step: int) -> list[str]:
    windows: list[str] = []
    length = len(paragraph)
    start = 0
    while start < length:
        piece = paragraph[start : start + size].strip()
        if piece:
            windows.append(piece)
        if start + size >= length:
            break
        start += step
    return windows


__all__ = ["DEFAULT_CHUNK_OVERLAP", "DEFAULT_CHUNK_SIZE", "chunk_text"]
