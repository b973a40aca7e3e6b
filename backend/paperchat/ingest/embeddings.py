"""Embedding backends."""

from __future__ import annotations

import hashlib
import logging
import math
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, Sequence

if TYPE_CHECKING:
    from paperchat.core.config import ModelProfile
    from paperchat.llm.cancellation import CancellationToken
    from paperchat.llm.client import LLMClient

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")

DEFAULT_BATCH_SIZE = 16


@dataclass(slots=True)
class EmbeddingBatch:
    vectors: list[list[float]]
    model: str
    backend: str


class EmbeddingModel(Protocol):
    model_name: str

    def encode(self, texts: Sequence[str], batch_size: int = DEFAULT_BATCH_SIZE) -> EmbeddingBatch:
        ...


class RemoteEmbeddingModel:
    """Embeddings computed by an OpenAI-compatible ``/embeddings`` endpoint.

    Texts are sent in groups of ``batch_size`` and the returned vectors are
    concatenated in input order. Any failure propagates to the caller.
    """

    backend = "remote"

    def __init__(
        self,
        client: "LLMClient",
        profile: "ModelProfile",
        model_name: str,
        cancel: "CancellationToken | None" = None,
    ) -> None:
        self.client = client
        self.profile = profile
        self.model_name = model_name
        self.cancel = cancel

    def encode(self, texts: Sequence[str], batch_size: int = DEFAULT_BATCH_SIZE) -> EmbeddingBatch:
        size = max(1, batch_size)
        vectors: list[list[float]] = []
        for start in range(0, len(texts), size):
            batch = list(texts[start : start + size])
            result = self.client.embed(batch, profile=self.profile, model=self.model_name, cancel=self.cancel)
            if len(result) != len(batch):
                raise ValueError(
                    f"Embedding endpoint returned {len(result)} vectors for {len(batch)} inputs"
                )
            vectors.extend(result)
        logger.debug("Embedded %s texts with %s", len(vectors), self.model_name)
        return EmbeddingBatch(vectors=vectors, model=self.model_name, backend=self.backend)


class HashedEmbeddingModel:
    """Deterministic hashed bag-of-words embeddings for offline use."""

    backend = "hashed"

    def __init__(self, model_name: str = "hashed", dim: int = 384) -> None:
        self.model_name = model_name
        self._dim = dim

    @property
    def dim(self) -> int:
        return self._dim

    def encode(self, texts: Sequence[str], batch_size: int = DEFAULT_BATCH_SIZE) -> EmbeddingBatch:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self._dim
            for token in _tokenize(text):
                vector[_hash_token(token, self._dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return EmbeddingBatch(vectors=vectors, model=self.model_name, backend=self.backend)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "EmbeddingBatch",
    "EmbeddingModel",
    "HashedEmbeddingModel",
    "RemoteEmbeddingModel",
]
