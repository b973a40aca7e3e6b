"""In-memory registry of per-document retrieval indexes."""

from __future__ import annotations

import threading

from paperchat.core.config import Settings
from paperchat.core.logging import get_logger
from paperchat.core.metrics import INDEXED_DOCUMENTS
from paperchat.ingest.lexical import build_document_index
from paperchat.ingest.types import DocumentIndex
from paperchat.utils.text import sanitize_text

logger = get_logger(__name__)


class DocumentRegistry:
    """Holds one ``DocumentIndex`` per document id for the life of the session.

    An index is built on first registration and reused afterwards; registering
    the same id again returns the existing index untouched.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()
        self._lock = threading.Lock()
        self._indexes: dict[str, DocumentIndex] = {}

    def get_or_create(self, document_id: str, text: str, title: str = "") -> DocumentIndex:
        with self._lock:
            existing = self._indexes.get(document_id)
            if existing is not None:
                return existing
        index = build_document_index(
            document_id,
            sanitize_text(text),
            title=sanitize_text(title).strip(),
            chunk_size=self.settings.chunk_size,
            overlap=self.settings.chunk_overlap,
        )
        with self._lock:
            # Another thread may have built the same document meanwhile.
            index = self._indexes.setdefault(document_id, index)
            INDEXED_DOCUMENTS.set(len(self._indexes))
        logger.info(
            "Indexed document %s: %s chunks, %s chars",
            document_id,
            len(index.chunks),
            index.full_length,
            extra={"ctx_document_id": document_id},
        )
        return index

    def get(self, document_id: str) -> DocumentIndex | None:
        with self._lock:
            return self._indexes.get(document_id)

    def discard(self, document_id: str) -> bool:
        with self._lock:
            removed = self._indexes.pop(document_id, None) is not None
            INDEXED_DOCUMENTS.set(len(self._indexes))
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._indexes)


__all__ = ["DocumentRegistry"]
