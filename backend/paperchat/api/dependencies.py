"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from paperchat.chat.service import ChatService
from paperchat.core.config import Settings, get_settings
from paperchat.llm.client import LLMClient
from paperchat.retrieval import ContextAssembler, DocumentRegistry, EmbeddingCache

_REGISTRY: DocumentRegistry | None = None
_CLIENT: LLMClient | None = None
_ASSEMBLER: ContextAssembler | None = None
_CHAT_SERVICE: ChatService | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_registry() -> DocumentRegistry:
    global _REGISTRY
    if _REGISTRY is None:
        _REGISTRY = DocumentRegistry(get_app_settings())
    return _REGISTRY


def get_llm_client() -> LLMClient:
    global _CLIENT
    if _CLIENT is None:
        _CLIENT = LLMClient(settings=get_app_settings())
    return _CLIENT


def get_context_assembler() -> ContextAssembler:
    global _ASSEMBLER
    if _ASSEMBLER is None:
        settings = get_app_settings()
        _ASSEMBLER = ContextAssembler(settings, EmbeddingCache(settings.embedding_batch_size))
    return _ASSEMBLER


def get_chat_service() -> ChatService:
    global _CHAT_SERVICE
    if _CHAT_SERVICE is None:
        _CHAT_SERVICE = ChatService(
            settings=get_app_settings(),
            registry=get_registry(),
            assembler=get_context_assembler(),
            client=get_llm_client(),
        )
    return _CHAT_SERVICE


def reset_dependencies() -> None:
    """Drop cached singletons (used between tests)."""
    global _REGISTRY, _CLIENT, _ASSEMBLER, _CHAT_SERVICE
    _REGISTRY = _CLIENT = _ASSEMBLER = _CHAT_SERVICE = None
    get_app_settings.cache_clear()


__all__ = [
    "get_app_settings",
    "get_chat_service",
    "get_context_assembler",
    "get_llm_client",
    "get_registry",
    "reset_dependencies",
]
