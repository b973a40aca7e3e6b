"""Tests for embedding backends and the per-document embedding cache."""

import threading

import pytest

from paperchat.ingest.embeddings import EmbeddingBatch, HashedEmbeddingModel, RemoteEmbeddingModel
from paperchat.ingest.lexical import index_chunks
from paperchat.ingest.types import EmbeddingState
from paperchat.retrieval.semantic import EmbeddingCache, cosine_similarity


def test_hashed_embedding_model_is_normalized() -> None:
    model = HashedEmbeddingModel(dim=64)
    vectors = model.encode(["hello", "world"]).vectors
    assert len(vectors) == 2
    assert all(len(vec) == model.dim for vec in vectors)
    assert abs(sum(value * value for value in vectors[0]) - 1.0) < 1e-6


class RecordingClient:
    def __init__(self, dim: int = 3) -> None:
        self.batches: list[list[str]] = []
        self.dim = dim

    def embed(self, texts, profile=None, model=None, cancel=None):
        self.batches.append(list(texts))
        return [[float(len(text))] * self.dim for text in texts]


def test_remote_model_batches_and_keeps_order() -> None:
    client = RecordingClient()
    model = RemoteEmbeddingModel(client, profile=None, model_name="text-embedding-3-small")
    texts = [f"t{idx}" for idx in range(35)]
    batch = model.encode(texts, batch_size=16)
    assert [len(b) for b in client.batches] == [16, 16, 3]
    assert len(batch.vectors) == 35
    assert batch.model == "text-embedding-3-small"


def test_remote_model_rejects_short_response() -> None:
    class ShortClient(RecordingClient):
        def embed(self, texts, profile=None, model=None, cancel=None):
            return [[1.0]]

    model = RemoteEmbeddingModel(ShortClient(), profile=None, model_name="m")
    with pytest.raises(ValueError):
        model.encode(["a", "b"])


def test_cosine_similarity_degenerate_vectors() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity(None, [1.0]) == 0.0
    assert cosine_similarity([1.0], [1.0, 2.0]) == 0.0


class SlowModel:
    model_name = "slow"

    def __init__(self) -> None:
        self.calls = 0
        self.started = threading.Event()
        self.release = threading.Event()

    def encode(self, texts, batch_size=16):
        self.calls += 1
        self.started.set()
        self.release.wait(timeout=5)
        return EmbeddingBatch(vectors=[[1.0, 0.0] for _ in texts], model=self.model_name, backend="test")


def test_concurrent_callers_share_one_computation() -> None:
    index = index_chunks("doc", ["alpha beta", "gamma delta", "epsilon"])
    cache = EmbeddingCache()
    model = SlowModel()
    results: list[bool] = []

    def worker() -> None:
        results.append(cache.ensure_embeddings(index, model))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    assert model.started.wait(timeout=5)
    model.release.set()
    for thread in threads:
        thread.join(timeout=5)

    assert results == [True, True, True, True]
    assert model.calls == 1
    assert index.embedding_state is EmbeddingState.READY
    assert len(index.embeddings) == 3


def test_failed_embeddings_are_not_retried() -> None:
    class FailingModel:
        model_name = "broken"
        calls = 0

        def encode(self, texts, batch_size=16):
            FailingModel.calls += 1
            raise RuntimeError("endpoint down")

    index = index_chunks("doc", ["alpha beta", "gamma delta"])
    cache = EmbeddingCache()
    model = FailingModel()
    assert cache.ensure_embeddings(index, model) is False
    assert cache.semantic_scores(index, "alpha", model) is None
    assert index.embedding_state is EmbeddingState.FAILED
    assert FailingModel.calls == 1


def test_semantic_scores_with_hashed_model() -> None:
    index = index_chunks("doc", ["graph neural networks", "protein folding"])
    scores = EmbeddingCache().semantic_scores(index, "graph networks", HashedEmbeddingModel(dim=128))
    assert scores is not None
    assert scores[0] > scores[1]
