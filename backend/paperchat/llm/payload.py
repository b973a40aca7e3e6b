"""Request body construction for chat-completions and responses endpoints."""

from __future__ import annotations

import re
from typing import Any, Sequence

from paperchat.llm.profiles import ProviderProfile, WireParam, resolve_profile
from paperchat.llm.types import ChatTurn, ReasoningSelection, WireFormat

CHAT_ENDPOINT = "/v1/chat/completions"
RESPONSES_ENDPOINT = "/v1/responses"
EMBEDDINGS_ENDPOINT = "/v1/embeddings"

_CHAT_SUFFIX = "/chat/completions"
_RESPONSES_SUFFIX = "/responses"
_EMBEDDINGS_SUFFIX = "/embeddings"
_SUFFIX_FOR_PATH = {
    CHAT_ENDPOINT: _CHAT_SUFFIX,
    RESPONSES_ENDPOINT: _RESPONSES_SUFFIX,
    EMBEDDINGS_ENDPOINT: _EMBEDDINGS_SUFFIX,
}
_VERSION_RE = re.compile(r"/v\d+(?:beta)?\b")

# Extra room above an Anthropic thinking budget so the answer is not starved.
ANTHROPIC_ANSWER_HEADROOM = 1024


def resolve_endpoint(base_or_url: str, path: str) -> str:
    """Resolve ``path`` against a configured base URL.

    A base that already ends in one of the known endpoint suffixes is rewritten
    to the requested suffix; otherwise the path is appended, dropping its
    ``/v1`` prefix when the base already carries a version segment.
    """
    cleaned = (base_or_url or "").strip().rstrip("/")
    if not cleaned:
        return ""
    wanted = _SUFFIX_FOR_PATH.get(path)
    for suffix in (_CHAT_SUFFIX, _RESPONSES_SUFFIX, _EMBEDDINGS_SUFFIX):
        if cleaned.endswith(suffix):
            if wanted is None or wanted == suffix:
                return cleaned
            return cleaned[: -len(suffix)] + wanted
    if _VERSION_RE.search(cleaned) and path.startswith("/v1/"):
        path = path[len("/v1") :]
    return f"{cleaned}{path}"


def detect_wire_format(base_or_url: str) -> WireFormat:
    cleaned = (base_or_url or "").strip().rstrip("/")
    return WireFormat.RESPONSES if cleaned.endswith(_RESPONSES_SUFFIX) else WireFormat.CHAT


def uses_max_completion_tokens(model: str) -> bool:
    name = (model or "").lower()
    return name.startswith("gpt-5") or name.startswith("o") or "reasoning" in name


def build_messages(
    prompt: str,
    system_prompt: str,
    context: str = "",
    history: Sequence[ChatTurn] = (),
    images: Sequence[str] = (),
) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    if context:
        messages.append({"role": "system", "content": f"Document Context:\n{context}"})
    messages.extend(turn.to_wire() for turn in history)
    if images:
        parts: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        parts.extend({"type": "image_url", "image_url": {"url": url, "detail": "high"}} for url in images)
        messages.append({"role": "user", "content": parts})
    else:
        messages.append({"role": "user", "content": prompt})
    return messages


def _stringify_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    return "\n".join(part.get("text", "") for part in content if part.get("type") == "text" and part.get("text"))


def to_responses_input(messages: Sequence[dict[str, Any]]) -> dict[str, Any]:
    """Convert chat messages to ``instructions`` plus typed ``input`` items."""
    instructions: list[str] = []
    items: list[dict[str, Any]] = []
    for message in messages:
        content = message.get("content")
        if message.get("role") == "system":
            text = _stringify_content(content)
            if text:
                instructions.append(text)
            continue
        if isinstance(content, str):
            items.append({"type": "message", "role": message["role"], "content": content})
            continue
        converted = []
        for part in content or ():
            if part.get("type") == "text":
                converted.append({"type": "input_text", "text": part.get("text", "")})
            elif part.get("type") == "image_url":
                image = part.get("image_url") or {}
                converted.append({"type": "input_image", "image_url": image.get("url"), "detail": image.get("detail")})
        items.append({"type": "message", "role": message["role"], "content": converted})
    body: dict[str, Any] = {"input": items}
    if instructions:
        body["instructions"] = "\n\n".join(instructions)
    return body


def reasoning_params(
    profile: ProviderProfile, selection: ReasoningSelection | None, wire_format: WireFormat
) -> dict[str, Any]:
    """Map a reasoning selection onto the provider's wire parameter."""
    if selection is None or profile.wire_param is None:
        return {}
    if not profile.supports_reasoning:
        # Models that only work with thinking switched off still get told so.
        if profile.wire_param is WireParam.ENABLE_THINKING and profile.default_value is False:
            return {"enable_thinking": False}
        return {}
    value = profile.wire_value(selection.level)
    param = profile.wire_param
    if param is WireParam.EFFORT:
        if value is None:
            return {}
        if wire_format is WireFormat.RESPONSES:
            return {"reasoning": {"effort": value, "summary": "auto"}}
        return {"reasoning_effort": value}
    if param is WireParam.THINKING_LEVEL:
        config = {"thinking_level": value, "include_thoughts": True}
        return {"extra_body": {"google": {"thinking_config": config}}}
    if param is WireParam.THINKING_BUDGET:
        config = {"thinking_budget": value, "include_thoughts": value != 0}
        return {"extra_body": {"google": {"thinking_config": config}}}
    if param is WireParam.DEEPSEEK_THINKING:
        return {"thinking": {"type": "enabled"}}
    if param is WireParam.ENABLE_THINKING:
        return {} if value is None else {"enable_thinking": bool(value)}
    if param is WireParam.BUDGET_TOKENS:
        return {"thinking": {"type": "enabled", "budget_tokens": int(value)}}
    return {}


def build_payload(
    model: str,
    messages: Sequence[dict[str, Any]],
    reasoning: ReasoningSelection | None,
    temperature: float | None,
    max_tokens: int,
    wire_format: WireFormat = WireFormat.CHAT,
    stream: bool = True,
) -> dict[str, Any]:
    """Assemble a request body.

    ``temperature=None`` omits the field entirely. The profile for the selected
    provider decides the reasoning parameters and whether temperature has to be
    dropped while reasoning is on.
    """
    profile = resolve_profile(reasoning.provider, model) if reasoning else None
    extras = reasoning_params(profile, reasoning, wire_format) if profile else {}
    if profile is not None and extras and profile.omit_temperature_with_reasoning:
        temperature = None
    thinking = extras.get("thinking")
    if isinstance(thinking, dict) and "budget_tokens" in thinking:
        max_tokens = max(max_tokens, thinking["budget_tokens"] + ANTHROPIC_ANSWER_HEADROOM)

    body: dict[str, Any] = {"model": model}
    if wire_format is WireFormat.RESPONSES:
        body.update(to_responses_input(messages))
        body["max_output_tokens"] = max_tokens
    else:
        body["messages"] = [dict(message) for message in messages]
        token_key = "max_completion_tokens" if uses_max_completion_tokens(model) else "max_tokens"
        body[token_key] = max_tokens
    if temperature is not None:
        body["temperature"] = temperature
    body.update(extras)
    if stream:
        body["stream"] = True
    return body


__all__ = [
    "CHAT_ENDPOINT",
    "EMBEDDINGS_ENDPOINT",
    "RESPONSES_ENDPOINT",
    "build_messages",
    "build_payload",
    "detect_wire_format",
    "reasoning_params",
    "resolve_endpoint",
    "to_responses_input",
    "uses_max_completion_tokens",
]
