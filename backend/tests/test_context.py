"""Tests for context assembly."""

import re

from paperchat.core.config import Settings
from paperchat.ingest.embeddings import HashedEmbeddingModel
from paperchat.ingest.lexical import build_document_index, index_chunks
from paperchat.ingest.types import EmbeddingState, RetrievalQuery
from paperchat.retrieval import ContextAssembler
from paperchat.retrieval.context import select_chunks
from paperchat.retrieval.hybrid import fuse_scores

CHUNKS = [
    "Introduction to sparse attention mechanisms.",
    "Dataset collection and cleaning procedures.",
    "Protein folding benchmarks were evaluated.",
    "Attention heads specialise in syntax and attention patterns.",
    "Optimizer settings and learning rate schedules.",
    "Conclusion and future directions.",
    "Appendix with extra tables.",
    "Acknowledgements.",
]


def _excerpt_count(context: str) -> int:
    return len(re.findall(r"^\[Excerpt \d+/\d+\]$", context, flags=re.MULTILINE))


def test_full_context_contains_every_chunk_in_order() -> None:
    index = index_chunks("doc", CHUNKS, title="Sparse Attention")
    context = ContextAssembler(Settings()).build_context(index, "anything")
    assert context.startswith("Title: Sparse Attention\n\nFull document text:")
    positions = [context.index(chunk) for chunk in CHUNKS]
    assert positions == sorted(positions)


def test_image_disables_full_context_and_respects_cap() -> None:
    index = index_chunks("doc", CHUNKS, title="Sparse Attention")
    context, stats = ContextAssembler(Settings()).build(index, RetrievalQuery("attention heads", has_image=True))
    assert stats.mode == "retrieval"
    assert 1 <= _excerpt_count(context) <= 4
    assert "Attention heads specialise" in context
    assert f"(Source length: {index.full_length} characters;" in context


def test_ceiling_exceeded_uses_retrieval() -> None:
    settings = Settings(full_context_ceiling=10, max_excerpts=2)
    index = index_chunks("doc", CHUNKS)
    context, stats = ContextAssembler(settings).build(index, "protein folding")
    assert stats.mode == "retrieval"
    assert 2 in stats.selected
    assert _excerpt_count(context) <= 2


def test_no_matching_terms_falls_back_to_first_chunks() -> None:
    settings = Settings(force_full_context=False)
    index = index_chunks("doc", CHUNKS)
    context, stats = ContextAssembler(settings).build(index, "zebra quantum")
    assert stats.selected[:2] == [0, 1]
    assert _excerpt_count(context) >= 1


def test_select_chunks_pads_with_neighbours() -> None:
    scored = fuse_scores([0.0, 0.0, 0.0, 5.0, 0.0, 0.0], None)
    assert sorted(select_chunks(scored, total=6, max_excerpts=3)) == [2, 3, 4]


def test_budget_truncates_last_excerpt() -> None:
    settings = Settings(force_full_context=False, context_budget=50)
    long_chunks = ["attention " * 20, "attention " * 20]
    index = index_chunks("doc", long_chunks)
    context = ContextAssembler(settings).build_context(index, "attention")
    assert " …" in context
    assert "1 of 2 passages shown" in context


def test_embedding_failure_degrades_to_lexical() -> None:
    class BrokenModel:
        model_name = "broken"

        def encode(self, texts, batch_size=16):
            raise RuntimeError("no embeddings here")

    settings = Settings(force_full_context=False, max_excerpts=1)
    index = index_chunks("doc", CHUNKS)
    context, stats = ContextAssembler(settings).build(index, "protein folding", embedding_model=BrokenModel())
    assert stats.used_embeddings is False
    assert "Protein folding" in context
    assert index.embedding_state is EmbeddingState.FAILED


def test_embeddings_contribute_when_available() -> None:
    settings = Settings(force_full_context=False, max_excerpts=1)
    index = index_chunks("doc", CHUNKS)
    _, stats = ContextAssembler(settings).build(
        index, "protein folding", embedding_model=HashedEmbeddingModel(dim=256)
    )
    assert stats.used_embeddings is True
    assert stats.selected == [2]


def test_empty_document_returns_title_only() -> None:
    index = index_chunks("doc", [], title="Empty")
    context, stats = ContextAssembler(Settings()).build(index, "question")
    assert context == "Title: Empty"
    assert stats.mode == "empty"


def test_unbroken_document_under_ceiling_stays_in_full_mode() -> None:
    text = ("abcdefghij " * 50_000)[:459_999]
    index = build_document_index("pdf", text, title="Scanned")
    assert len(index.chunks) > 200
    assert index.full_length == len(text)

    context, stats = ContextAssembler(Settings()).build(index, RetrievalQuery(raw_text="abcdefghij"))
    assert stats.mode == "full"
    assert text[:2000] in context
