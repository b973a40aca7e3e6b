"""Tests for chunker."""

from paperchat.ingest.chunker import chunk_text


def test_chunk_text_empty_input() -> None:
    assert chunk_text("") == []
    assert chunk_text("  \n\n \t ") == []


def test_short_paragraphs_are_packed(sample_text: str) -> None:
    chunks = chunk_text(sample_text, chunk_size=2000, overlap=200)
    assert chunks == ["Title\n\nParagraph one.\n\nParagraph two is here."]


def test_packing_respects_target_and_order() -> None:
    paragraphs = [f"Paragraph {idx} " + "word " * 15 for idx in range(12)]
    chunks = chunk_text("\n\n".join(paragraphs), chunk_size=200, overlap=20)
    assert len(chunks) > 1
    assert all(chunk and chunk == chunk.strip() for chunk in chunks)
    assert all(len(chunk) <= 200 for chunk in chunks)
    joined = "\n\n".join(chunks)
    positions = [joined.index(f"Paragraph {idx} ") for idx in range(12)]
    assert positions == sorted(positions)


def test_long_paragraph_is_windowed_with_overlap() -> None:
    paragraph = "".join(chr(ord("a") + (idx % 26)) for idx in range(250))
    chunks = chunk_text(f"intro\n\n{paragraph}\n\noutro", chunk_size=100, overlap=20)
    assert chunks[0] == "intro"
    assert chunks[-1] == "outro"
    windows = chunks[1:-1]
    assert windows[0] == paragraph[:100]
    assert windows[1] == paragraph[80:180]
    assert windows[-1].endswith(paragraph[-10:])
    assert all(len(window) <= 100 for window in windows)
