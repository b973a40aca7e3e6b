"""Text processing helpers."""

from __future__ import annotations

import re

WHITESPACE_RE = re.compile(r"\s+")
# C0 controls except tab, newline and carriage return.
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_LONE_SURROGATE_RE = re.compile(r"[\ud800-\udfff]")

SELECTED_TEXT_MAX_LENGTH = 4000
DEFAULT_SELECTION_PROMPT = "Please explain this selected text."


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def sanitize_text(text: str) -> str:
    """Drop control characters and replace unpaired surrogates with U+FFFD."""
    if not text:
        return ""
    cleaned = _CONTROL_RE.sub("", text)
    return _LONE_SURROGATE_RE.sub("�", cleaned)


def normalize_selected_text(text: str, limit: int = SELECTED_TEXT_MAX_LENGTH) -> str:
    return normalize(sanitize_text(text))[:limit]


def build_question_with_selected_text(selected_text: str, user_prompt: str) -> str:
    """Wrap a reader selection and the user's question into one prompt."""
    prompt = user_prompt.strip() or DEFAULT_SELECTION_PROMPT
    return f'Selected text from the PDF reader:\n"""\n{selected_text}\n"""\n\nUser question:\n{prompt}'


__all__ = [
    "build_question_with_selected_text",
    "normalize",
    "normalize_selected_text",
    "sanitize_text",
]
