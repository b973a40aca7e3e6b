"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from paperchat.core.config import PROFILE_KEYS


class DocumentCreateRequest(BaseModel):
    document_id: str = Field(min_length=1)
    text: str
    title: str = ""


class DocumentResponse(BaseModel):
    document_id: str
    title: str
    chunks: int
    full_length: int
    avg_chunk_length: float
    embedding_state: str


class HistoryTurn(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequestBody(BaseModel):
    question: str = ""
    document_id: str | None = None
    history: list[HistoryTurn] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list, description="Image data URLs attached to the question")
    profile: str = Field(default="primary", description=f"One of {', '.join(PROFILE_KEYS)}")
    reasoning_level: str | None = None
    selected_text: str = ""


class ReasoningOptionResponse(BaseModel):
    level: str
    label: str
    enabled: bool


class ReasoningOptionsResponse(BaseModel):
    model: str
    provider: str
    supports_reasoning: bool
    default_level: str | None = None
    options: list[ReasoningOptionResponse]


class ConnectionTestResponse(BaseModel):
    ok: bool
    profile: str
    model: str
    reply: str | None = None
    error: str | None = None


__all__ = [
    "ChatRequestBody",
    "ConnectionTestResponse",
    "DocumentCreateRequest",
    "DocumentResponse",
    "HistoryTurn",
    "ReasoningOptionResponse",
    "ReasoningOptionsResponse",
]
