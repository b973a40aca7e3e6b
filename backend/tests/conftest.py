"""Test fixtures for paperchat."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Callable, Iterable

import orjson
import pytest
import requests

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    for key in list(os.environ):
        if key.startswith("PCHAT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("PCHAT_CONFIG", str(tmp_path / "missing.yaml"))

    from paperchat.api import dependencies as deps
    from paperchat.core.config import get_settings

    get_settings.cache_clear()
    deps.reset_dependencies()
    yield
    get_settings.cache_clear()
    deps.reset_dependencies()


class ChunkedRaw:
    """File-like body that hands out one pre-split chunk per read."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks = list(chunks)
        self.closed = False

    def read(self, amt: int | None = None) -> bytes:
        if self.closed or not self._chunks:
            return b""
        return self._chunks.pop(0)

    def close(self) -> None:
        self.closed = True


def build_response(
    status: int = 200,
    chunks: Iterable[bytes] = (),
    content_type: str = "text/event-stream",
    reason: str = "OK",
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response.encoding = "utf-8"
    response.headers["Content-Type"] = content_type
    response.raw = ChunkedRaw(chunks)
    response.url = "https://llm.test"
    return response


def sse_body(*events: Any, done: bool = True) -> bytes:
    frames = [b"data: " + orjson.dumps(event) + b"\n\n" for event in events]
    if done:
        frames.append(b"data: [DONE]\n\n")
    return b"".join(frames)


class FakeSession:
    """Stands in for ``requests.Session``; ``handler(url, payload)`` returns a Response."""

    def __init__(self, handler: Callable[[str, dict[str, Any]], requests.Response]) -> None:
        self.handler = handler
        self.calls: list[dict[str, Any]] = []

    def post(self, url: str, data: bytes | None = None, headers: dict[str, str] | None = None, stream: bool = False):
        payload = orjson.loads(data) if data else {}
        self.calls.append({"url": url, "json": payload, "headers": headers or {}, "stream": stream})
        return self.handler(url, payload)


@pytest.fixture
def make_response() -> Callable[..., requests.Response]:
    return build_response


@pytest.fixture
def make_sse() -> Callable[..., bytes]:
    return sse_body


@pytest.fixture
def fake_session() -> Callable[..., FakeSession]:
    return FakeSession


@pytest.fixture
def settings():
    from paperchat.core.config import Settings

    return Settings(
        profiles={
            "primary": {
                "api_base": "https://llm.test/v1",
                "api_key": "sk-test",
                "model": "gpt-4o-mini",
                "temperature": 0.3,
                "max_tokens": 256,
            }
        }
    )


@pytest.fixture(scope="session")
def sample_text() -> str:
    return "Title\n\nParagraph one.\n\nParagraph two is here."
