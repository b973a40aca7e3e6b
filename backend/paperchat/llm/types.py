"""Data structures shared by the LLM client layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Literal, Sequence, Union

from paperchat.core.config import ModelProfile

Role = Literal["user", "assistant", "system"]


class ReasoningProvider(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    KIMI = "kimi"
    QWEN = "qwen"
    GROK = "grok"
    ANTHROPIC = "anthropic"
    UNSUPPORTED = "unsupported"


class ReasoningLevel(str, Enum):
    DEFAULT = "default"
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    XHIGH = "xhigh"


class WireFormat(str, Enum):
    CHAT = "chat"
    RESPONSES = "responses"


@dataclass(frozen=True, slots=True)
class ReasoningSelection:
    provider: ReasoningProvider
    level: ReasoningLevel


@dataclass(frozen=True, slots=True)
class ReasoningEvent:
    """One increment of reasoning output; either field may be empty."""

    summary: str | None = None
    details: str | None = None


ContentPart = dict[str, Any]
MessageContent = Union[str, Sequence[ContentPart]]


@dataclass(frozen=True, slots=True)
class ChatTurn:
    role: Role
    content: MessageContent

    def to_wire(self) -> dict[str, Any]:
        content = self.content if isinstance(self.content, str) else [dict(part) for part in self.content]
        return {"role": self.role, "content": content}

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "\n".join(
            part.get("text", "") for part in self.content if part.get("type") == "text" and part.get("text")
        )


@dataclass(slots=True)
class ChatRequest:
    """Everything needed to send one question to a model endpoint."""

    prompt: str
    profile: ModelProfile
    system_prompt: str
    context: str = ""
    history: Sequence[ChatTurn] = field(default_factory=tuple)
    images: Sequence[str] = field(default_factory=tuple)
    reasoning: ReasoningSelection | None = None


DeltaCallback = Callable[[str], None]
ReasoningCallback = Callable[[ReasoningEvent], None]


__all__ = [
    "ChatRequest",
    "ChatTurn",
    "ContentPart",
    "DeltaCallback",
    "MessageContent",
    "ReasoningCallback",
    "ReasoningEvent",
    "ReasoningLevel",
    "ReasoningProvider",
    "ReasoningSelection",
    "Role",
    "WireFormat",
]
