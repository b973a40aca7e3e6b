"""Tests for endpoint resolution and request body construction."""

import pytest

from paperchat.llm.payload import (
    CHAT_ENDPOINT,
    EMBEDDINGS_ENDPOINT,
    RESPONSES_ENDPOINT,
    build_messages,
    build_payload,
    detect_wire_format,
    resolve_endpoint,
    to_responses_input,
    uses_max_completion_tokens,
)
from paperchat.llm.types import ChatTurn, ReasoningLevel, ReasoningProvider, ReasoningSelection, WireFormat


@pytest.mark.parametrize(
    ("base", "path", "expected"),
    [
        ("https://api.openai.com", CHAT_ENDPOINT, "https://api.openai.com/v1/chat/completions"),
        ("https://api.openai.com/v1/", CHAT_ENDPOINT, "https://api.openai.com/v1/chat/completions"),
        (
            "https://generativelanguage.googleapis.com/v1beta/openai",
            EMBEDDINGS_ENDPOINT,
            "https://generativelanguage.googleapis.com/v1beta/openai/embeddings",
        ),
        ("https://x.test/v1/chat/completions", EMBEDDINGS_ENDPOINT, "https://x.test/v1/embeddings"),
        ("https://x.test/v1/chat/completions", RESPONSES_ENDPOINT, "https://x.test/v1/responses"),
        ("https://x.test/v1/responses", CHAT_ENDPOINT, "https://x.test/v1/chat/completions"),
        ("https://x.test/v1/responses", RESPONSES_ENDPOINT, "https://x.test/v1/responses"),
        ("https://x.test/v1/embeddings", CHAT_ENDPOINT, "https://x.test/v1/chat/completions"),
        ("", CHAT_ENDPOINT, ""),
    ],
)
def test_resolve_endpoint(base: str, path: str, expected: str) -> None:
    assert resolve_endpoint(base, path) == expected


def test_wire_format_detection() -> None:
    assert detect_wire_format("https://x.test/v1/responses/") is WireFormat.RESPONSES
    assert detect_wire_format("https://x.test/v1") is WireFormat.CHAT


def test_token_parameter_naming() -> None:
    assert uses_max_completion_tokens("gpt-5-mini")
    assert uses_max_completion_tokens("o4-mini")
    assert uses_max_completion_tokens("grok-4-fast-reasoning")
    assert not uses_max_completion_tokens("gpt-4o-mini")
    body = build_payload("gpt-4o-mini", [{"role": "user", "content": "hi"}], None, 0.3, 100)
    assert body["max_tokens"] == 100
    assert body["temperature"] == 0.3
    assert body["stream"] is True


def test_build_messages_with_context_history_and_images() -> None:
    messages = build_messages(
        "What is shown?",
        "system prompt",
        context="chunk text",
        history=[ChatTurn("user", "earlier"), ChatTurn("assistant", "reply")],
        images=["data:image/png;base64,AAA"],
    )
    assert messages[0] == {"role": "system", "content": "system prompt"}
    assert messages[1] == {"role": "system", "content": "Document Context:\nchunk text"}
    assert [m["role"] for m in messages[2:4]] == ["user", "assistant"]
    user = messages[-1]
    assert user["content"][0] == {"type": "text", "text": "What is shown?"}
    assert user["content"][1]["image_url"] == {"url": "data:image/png;base64,AAA", "detail": "high"}


def test_responses_input_conversion() -> None:
    messages = build_messages("Q", "sys", context="ctx", images=["data:image/png;base64,AAA"])
    body = to_responses_input(messages)
    assert body["instructions"] == "sys\n\nDocument Context:\nctx"
    content = body["input"][0]["content"]
    assert content[0] == {"type": "input_text", "text": "Q"}
    assert content[1]["type"] == "input_image"
    assert content[1]["image_url"] == "data:image/png;base64,AAA"


def test_openai_effort_on_both_wire_formats() -> None:
    selection = ReasoningSelection(ReasoningProvider.OPENAI, ReasoningLevel.HIGH)
    messages = [{"role": "user", "content": "hi"}]
    chat = build_payload("gpt-5", messages, selection, 1.0, 500)
    assert chat["reasoning_effort"] == "high"
    assert chat["max_completion_tokens"] == 500
    responses = build_payload("gpt-5", messages, selection, 1.0, 500, wire_format=WireFormat.RESPONSES)
    assert responses["reasoning"] == {"effort": "high", "summary": "auto"}
    assert responses["max_output_tokens"] == 500
    default = build_payload(
        "gpt-5", messages, ReasoningSelection(ReasoningProvider.OPENAI, ReasoningLevel.DEFAULT), 1.0, 500
    )
    assert "reasoning_effort" not in default


def test_provider_specific_reasoning_parameters() -> None:
    messages = [{"role": "user", "content": "hi"}]
    gemini = build_payload(
        "gemini-2.5-flash", messages, ReasoningSelection(ReasoningProvider.GEMINI, ReasoningLevel.HIGH), 0.3, 64
    )
    assert gemini["extra_body"]["google"]["thinking_config"] == {"thinking_budget": 24576, "include_thoughts": True}
    deepseek = build_payload(
        "deepseek-reasoner", messages, ReasoningSelection(ReasoningProvider.DEEPSEEK, ReasoningLevel.DEFAULT), 0.3, 64
    )
    assert deepseek["thinking"] == {"type": "enabled"}
    qwen = build_payload(
        "qwen3-32b", messages, ReasoningSelection(ReasoningProvider.QWEN, ReasoningLevel.LOW), 0.3, 64
    )
    assert qwen["enable_thinking"] is False


def test_anthropic_thinking_omits_temperature() -> None:
    body = build_payload(
        "claude-sonnet-4-5",
        [{"role": "user", "content": "hi"}],
        ReasoningSelection(ReasoningProvider.ANTHROPIC, ReasoningLevel.HIGH),
        0.7,
        2048,
    )
    assert "temperature" not in body
    assert body["thinking"] == {"type": "enabled", "budget_tokens": 10000}
    assert body["max_tokens"] > 10000


def test_temperature_none_omits_field() -> None:
    body = build_payload("gpt-4o-mini", [{"role": "user", "content": "hi"}], None, None, 10, stream=False)
    assert "temperature" not in body
    assert "stream" not in body
