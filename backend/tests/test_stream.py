"""Tests for streamed response parsing."""

from __future__ import annotations

import itertools

import orjson

from paperchat.llm.cancellation import CancellationToken
from paperchat.llm.stream import ThoughtTagSplitter, iter_sse_data, parse_stream
from paperchat.llm.types import ReasoningEvent, WireFormat


def _frames(*events) -> list[bytes]:
    return [b"data: " + orjson.dumps(event) + b"\n\n" for event in events] + [b"data: [DONE]\n\n"]


def _chat_delta(content: str | None = None, **fields) -> dict:
    delta = dict(fields)
    if content is not None:
        delta["content"] = content
    return {"choices": [{"delta": delta}]}


def _collect(splitter: ThoughtTagSplitter, pieces: list[str]) -> tuple[str, str]:
    answer, reasoning = [], []
    for piece in pieces:
        for is_reasoning, text in splitter.feed(piece):
            (reasoning if is_reasoning else answer).append(text)
    for is_reasoning, text in splitter.flush():
        (reasoning if is_reasoning else answer).append(text)
    return "".join(answer), "".join(reasoning)


def test_tag_split_across_chunks() -> None:
    answer, reasoning = _collect(ThoughtTagSplitter(), ["<thou", "ght>hidden</thou", "ght>visible"])
    assert reasoning == "hidden"
    assert answer == "visible"


def test_tag_split_at_every_boundary() -> None:
    text = "Before <THOUGHT>secret plan</Thought> after"
    for first, second in itertools.combinations(range(1, len(text)), 2):
        pieces = [text[:first], text[first:second], text[second:]]
        answer, reasoning = _collect(ThoughtTagSplitter(), pieces)
        assert answer == "Before  after", pieces
        assert reasoning == "secret plan", pieces


def test_unterminated_tag_flushes_as_reasoning() -> None:
    answer, reasoning = _collect(ThoughtTagSplitter(), ["ok <thought>still thinking </tho"])
    assert answer == "ok "
    assert reasoning == "still thinking </tho"


def test_partial_open_tag_at_end_flushes_as_answer() -> None:
    answer, reasoning = _collect(ThoughtTagSplitter(), ["a < b and c <thou"])
    assert answer == "a < b and c <thou"
    assert reasoning == ""


def test_chat_stream_content_reasoning_and_tags() -> None:
    deltas: list[str] = []
    events: list[ReasoningEvent] = []
    chunks = _frames(
        _chat_delta(reasoning_content="step one. "),
        _chat_delta("<thought>inner"),
        _chat_delta("</thought>Hello"),
        _chat_delta(" world"),
    )
    text = parse_stream(WireFormat.CHAT, chunks, deltas.append, events.append)
    assert text == "Hello world"
    assert "".join(deltas) == "Hello world"
    assert [event.details for event in events] == ["step one. ", "inner"]


def test_malformed_frames_are_skipped() -> None:
    chunks = [b"data: {not json}\n\n", b": keep-alive\n\n", b"data: [1, 2]\n\n"] + _frames(_chat_delta("ok"))
    assert parse_stream(WireFormat.CHAT, chunks) == "ok"


def test_frames_split_mid_line_and_mid_codepoint() -> None:
    body = b"".join(_frames(_chat_delta("café – done")))
    chunks = [body[idx : idx + 3] for idx in range(0, len(body), 3)]
    assert parse_stream(WireFormat.CHAT, chunks) == "café – done"


def test_stream_stops_at_done_sentinel() -> None:
    chunks = _frames(_chat_delta("one")) + [b"data: " + orjson.dumps(_chat_delta("two")) + b"\n\n"]
    assert list(iter_sse_data(chunks)) == [orjson.dumps(_chat_delta("one")).decode()]


def test_responses_stream_prefers_deltas() -> None:
    deltas: list[str] = []
    events: list[ReasoningEvent] = []
    chunks = _frames(
        {"type": "response.reasoning_summary_text.delta", "item_id": "rs_1", "delta": "Plan"},
        {"type": "response.reasoning_summary_text.done", "item_id": "rs_1", "text": "Plan"},
        {"type": "response.output_text.delta", "item_id": "msg_1", "delta": "Hel"},
        {"type": "response.output_text.delta", "item_id": "msg_1", "delta": "lo"},
        {"type": "response.output_text.done", "item_id": "msg_1", "text": "Hello"},
        {
            "type": "response.output_item.done",
            "item": {"id": "msg_1", "type": "message", "content": [{"type": "output_text", "text": "Hello"}]},
        },
        {"type": "response.completed", "response": {"output_text": "Hello"}},
    )
    text = parse_stream(WireFormat.RESPONSES, chunks, deltas.append, events.append)
    assert text == "Hello"
    assert deltas == ["Hel", "lo"]
    assert [event.summary for event in events] == ["Plan"]


def test_responses_stream_uses_done_and_completed_without_deltas() -> None:
    chunks = _frames(
        {
            "type": "response.output_item.done",
            "item": {"id": "rs_1", "type": "reasoning", "summary": [{"type": "summary_text", "text": "why"}]},
        },
        {"type": "response.output_text.done", "item_id": "msg_1", "text": "Final"},
    )
    events: list[ReasoningEvent] = []
    assert parse_stream(WireFormat.RESPONSES, chunks, on_reasoning=events.append) == "Final"
    assert events == [ReasoningEvent(summary="why")]

    completed_only = _frames({"type": "response.completed", "response": {"output_text": "From completed"}})
    assert parse_stream(WireFormat.RESPONSES, completed_only) == "From completed"


def test_cancellation_stops_callbacks() -> None:
    cancel = CancellationToken()
    deltas: list[str] = []

    def on_delta(text: str) -> None:
        deltas.append(text)
        cancel.cancel()

    chunks = _frames(_chat_delta("first"), _chat_delta("second"), _chat_delta("third"))
    parse_stream(WireFormat.CHAT, chunks, on_delta, cancel=cancel)
    assert deltas == ["first"]


def test_wrongly_shaped_frames_are_skipped() -> None:
    chunks = _frames(
        _chat_delta("A"),
        {"choices": [{"delta": "oops"}]},
        {"choices": {"0": {"delta": {"content": "x"}}}},
        {"choices": [{"message": ["not", "an", "object"]}]},
        _chat_delta("B"),
    )
    assert parse_stream(WireFormat.CHAT, chunks) == "AB"

    responses = _frames(
        {"type": "response.completed", "response": "done"},
        {"type": "response.output_text.delta", "item_id": "m", "delta": "ok"},
    )
    assert parse_stream(WireFormat.RESPONSES, responses) == "ok"
