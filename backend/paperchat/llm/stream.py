"""Incremental parsing of streamed completions.

Two event shapes are supported: chat-completions ``delta`` frames and the
typed events of the responses API. Both are read from ``data:`` lines of a
server-sent event stream and report answer text and reasoning text through
callbacks as they arrive.
"""

from __future__ import annotations

import codecs
import re
from typing import Any, Callable, Iterable, Iterator

import orjson

from paperchat.core.logging import get_logger
from paperchat.llm.cancellation import CancellationToken, is_cancelled
from paperchat.llm.types import DeltaCallback, ReasoningCallback, ReasoningEvent, WireFormat

logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"
OPEN_TAG = "<thought>"
CLOSE_TAG = "</thought>"
REASONING_FIELDS = ("reasoning_content", "reasoning", "thinking", "thought")


class ThoughtTagSplitter:
    """Separate ``<thought>...</thought>`` spans from answer text.

    Tags may be split across any number of chunks; a trailing fragment that
    could still become a tag is held back until the next chunk or :meth:`flush`.
    """

    def __init__(self) -> None:
        self.inside = False
        self.carryover = ""
        self._patterns = {
            False: re.compile(re.escape(OPEN_TAG), re.IGNORECASE),
            True: re.compile(re.escape(CLOSE_TAG), re.IGNORECASE),
        }

    def feed(self, text: str) -> list[tuple[bool, str]]:
        """Return ``(is_reasoning, text)`` segments that are safe to emit now."""
        segments: list[tuple[bool, str]] = []
        buffer = self.carryover + (text or "")
        self.carryover = ""
        while buffer:
            match = self._patterns[self.inside].search(buffer)
            if match:
                self._push(segments, buffer[: match.start()])
                buffer = buffer[match.end() :]
                self.inside = not self.inside
                continue
            held = _partial_tag_suffix(buffer, CLOSE_TAG if self.inside else OPEN_TAG)
            self._push(segments, buffer[: len(buffer) - held])
            self.carryover = buffer[len(buffer) - held :]
            break
        return segments

    def flush(self) -> list[tuple[bool, str]]:
        segments: list[tuple[bool, str]] = []
        self._push(segments, self.carryover)
        self.carryover = ""
        return segments

    def _push(self, segments: list[tuple[bool, str]], text: str) -> None:
        if text:
            segments.append((self.inside, text))


def _partial_tag_suffix(text: str, tag: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of ``tag``."""
    for size in range(min(len(tag) - 1, len(text)), 0, -1):
        if text[-size:].lower() == tag[:size]:
            return size
    return 0


class StreamParser:
    """Shared accumulation and callback plumbing."""

    wire_format: WireFormat

    def __init__(self, on_delta: DeltaCallback | None = None, on_reasoning: ReasoningCallback | None = None) -> None:
        self._on_delta = on_delta
        self._on_reasoning = on_reasoning
        self._parts: list[str] = []
        self.emit = True

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def handle(self, event: dict[str, Any]) -> None:
        raise NotImplementedError

    def finish(self, emit: bool = True) -> str:
        return self.text

    def emit_answer(self, text: str) -> None:
        if not text or not self.emit:
            return
        self._parts.append(text)
        if self._on_delta is not None:
            self._on_delta(text)

    def emit_reasoning(self, summary: str | None = None, details: str | None = None) -> None:
        if not (summary or details) or not self.emit:
            return
        if self._on_reasoning is not None:
            self._on_reasoning(ReasoningEvent(summary=summary or None, details=details or None))


class ChatStreamParser(StreamParser):
    wire_format = WireFormat.CHAT

    def __init__(self, on_delta: DeltaCallback | None = None, on_reasoning: ReasoningCallback | None = None) -> None:
        super().__init__(on_delta, on_reasoning)
        self.splitter = ThoughtTagSplitter()

    def handle(self, event: dict[str, Any]) -> None:
        choices = event.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return
        choice = choices[0]
        delta = choice.get("delta") or choice.get("message")
        if not isinstance(delta, dict):
            if delta:
                logger.debug("Skipping chat frame with a non-object delta", extra={"ctx_delta": str(delta)[:200]})
            return
        for field in REASONING_FIELDS:
            value = delta.get(field)
            if isinstance(value, str) and value:
                self.emit_reasoning(details=value)
        content = delta.get("content")
        if isinstance(content, str) and content:
            self._route(self.splitter.feed(content))

    def finish(self, emit: bool = True) -> str:
        self.emit = self.emit and emit
        self._route(self.splitter.flush())
        return self.text

    def _route(self, segments: list[tuple[bool, str]]) -> None:
        for is_reasoning, text in segments:
            if is_reasoning:
                self.emit_reasoning(details=text)
            else:
                self.emit_answer(text)


_ANSWER = "answer"
_SUMMARY = "summary"
_DETAILS = "details"

# Event type (without the ``response.`` prefix) -> (channel, is_delta)
_RESPONSES_EVENTS: dict[str, tuple[str, bool]] = {
    "output_text.delta": (_ANSWER, True),
    "output_text.done": (_ANSWER, False),
    "reasoning_summary_text.delta": (_SUMMARY, True),
    "reasoning_summary_text.done": (_SUMMARY, False),
    "reasoning_summary.delta": (_SUMMARY, True),
    "reasoning_summary.done": (_SUMMARY, False),
    "reasoning_summary_part.done": (_SUMMARY, False),
    "reasoning_text.delta": (_DETAILS, True),
    "reasoning_text.done": (_DETAILS, False),
    "reasoning.delta": (_DETAILS, True),
    "reasoning.done": (_DETAILS, False),
}


class ResponsesStreamParser(StreamParser):
    """Parser for responses-API events.

    ``.done``, ``output_item.done`` and ``completed`` events repeat text already
    sent as deltas; they are only used for channels that produced no delta.
    """

    wire_format = WireFormat.RESPONSES

    def __init__(self, on_delta: DeltaCallback | None = None, on_reasoning: ReasoningCallback | None = None) -> None:
        super().__init__(on_delta, on_reasoning)
        self._seen: set[tuple[str, str]] = set()

    def handle(self, event: dict[str, Any]) -> None:
        event_type = str(event.get("type") or "")
        if event_type.startswith("response."):
            event_type = event_type[len("response.") :]
        if event_type in _RESPONSES_EVENTS:
            channel, is_delta = _RESPONSES_EVENTS[event_type]
            item = _item_key(event)
            if is_delta:
                text = event.get("delta")
            else:
                part = event.get("part")
                text = event.get("text") or (part.get("text") if isinstance(part, dict) else None)
                if (channel, item) in self._seen:
                    return
            if isinstance(text, str) and text:
                self._seen.add((channel, item))
                self._dispatch(channel, text)
        elif event_type in ("output_item.added", "output_item.done"):
            item = event.get("item")
            if isinstance(item, dict):
                self._handle_output_item(item, event)
        elif event_type == "completed":
            response = event.get("response")
            if isinstance(response, dict):
                self._handle_completed(response)
        elif event_type in ("error", "failed"):
            logger.warning("Responses stream reported %s: %s", event_type, event.get("error") or event.get("message"))

    def _dispatch(self, channel: str, text: str) -> None:
        if channel == _ANSWER:
            self.emit_answer(text)
        elif channel == _SUMMARY:
            self.emit_reasoning(summary=text)
        else:
            self.emit_reasoning(details=text)

    def _handle_output_item(self, item: dict[str, Any], event: dict[str, Any]) -> None:
        key = str(item.get("id") or event.get("output_index") or "0")
        if item.get("type") == "reasoning":
            summary = _join_texts(item.get("summary"), "summary_text")
            if summary and (_SUMMARY, key) not in self._seen:
                self._seen.add((_SUMMARY, key))
                self.emit_reasoning(summary=summary)
            details = _join_texts(item.get("content"), "reasoning_text")
            if details and (_DETAILS, key) not in self._seen:
                self._seen.add((_DETAILS, key))
                self.emit_reasoning(details=details)
        elif item.get("type") == "message" and event.get("type", "").endswith(".done"):
            text = _join_texts(item.get("content"), "output_text")
            if text and (_ANSWER, key) not in self._seen:
                self._seen.add((_ANSWER, key))
                self.emit_answer(text)

    def _handle_completed(self, response: dict[str, Any]) -> None:
        if self.text:
            return
        text = response.get("output_text")
        if not text:
            text = extract_responses_text(response, raw_fallback=False)
        if text:
            self.emit_answer(text)


def _item_key(event: dict[str, Any]) -> str:
    item = event.get("item_id") or event.get("output_index")
    return str(item if item is not None else "0")


def _join_texts(parts: Any, part_type: str) -> str:
    if not isinstance(parts, list):
        return ""
    return "".join(
        part.get("text", "") for part in parts if isinstance(part, dict) and part.get("type") == part_type
    )


def extract_responses_text(data: dict[str, Any], raw_fallback: bool = True) -> str:
    """Pull answer text out of a non-streamed responses-API body."""
    if data.get("output_text"):
        return str(data["output_text"])
    for item in data.get("output") or ():
        if not isinstance(item, dict):
            continue
        for content in item.get("content") or ():
            if isinstance(content, dict) and content.get("type") == "output_text" and content.get("text"):
                return str(content["text"])
    return orjson.dumps(data).decode("utf-8") if raw_fallback else ""


def extract_chat_text(data: dict[str, Any]) -> str:
    """Pull answer text out of a non-streamed chat-completions body."""
    choices = data.get("choices") or []
    if choices and isinstance(choices[0], dict):
        message = choices[0].get("message") or {}
        if message.get("content") is not None:
            return str(message["content"])
        if choices[0].get("text") is not None:
            return str(choices[0]["text"])
    return orjson.dumps(data).decode("utf-8")


PARSERS: dict[WireFormat, Callable[..., StreamParser]] = {
    WireFormat.CHAT: ChatStreamParser,
    WireFormat.RESPONSES: ResponsesStreamParser,
}


def iter_sse_data(chunks: Iterable[bytes], cancel: CancellationToken | None = None) -> Iterator[str]:
    """Yield the payload of each ``data:`` line until the done sentinel."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    for chunk in chunks:
        if is_cancelled(cancel):
            return
        buffer += decoder.decode(chunk)
        *lines, buffer = buffer.split("\n")
        for line in lines:
            data = _frame_data(line)
            if data is None:
                continue
            if data == DONE_SENTINEL:
                return
            yield data
    buffer += decoder.decode(b"", final=True)
    data = _frame_data(buffer)
    if data is not None and data != DONE_SENTINEL:
        yield data


def _frame_data(line: str) -> str | None:
    stripped = line.strip()
    if not stripped.startswith("data:"):
        return None
    data = stripped[len("data:") :].strip()
    return data or None


def consume_stream(
    parser: StreamParser,
    chunks: Iterable[bytes],
    cancel: CancellationToken | None = None,
) -> str:
    """Feed ``chunks`` through ``parser`` and return the accumulated answer text.

    Frames that are not valid JSON objects are logged and skipped. Once
    ``cancel`` fires no further callbacks are made and held-back text is
    dropped.
    """
    for data in iter_sse_data(chunks, cancel):
        if is_cancelled(cancel):
            break
        try:
            event = orjson.loads(data)
        except orjson.JSONDecodeError as exc:
            logger.debug("Skipping malformed stream frame: %s", exc, extra={"ctx_frame": data[:200]})
            continue
        if not isinstance(event, dict):
            logger.debug("Skipping non-object stream frame", extra={"ctx_frame": data[:200]})
            continue
        parser.handle(event)
    return parser.finish(emit=not is_cancelled(cancel))


def parse_stream(
    wire_format: WireFormat,
    chunks: Iterable[bytes],
    on_delta: DeltaCallback | None = None,
    on_reasoning: ReasoningCallback | None = None,
    cancel: CancellationToken | None = None,
) -> str:
    return consume_stream(PARSERS[wire_format](on_delta, on_reasoning), chunks, cancel)


__all__ = [
    "ChatStreamParser",
    "PARSERS",
    "ResponsesStreamParser",
    "StreamParser",
    "ThoughtTagSplitter",
    "consume_stream",
    "extract_chat_text",
    "extract_responses_text",
    "iter_sse_data",
    "parse_stream",
]
