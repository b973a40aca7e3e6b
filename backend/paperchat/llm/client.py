"""HTTP client for OpenAI-compatible completion and embedding endpoints."""

from __future__ import annotations

import time
from typing import Any, Sequence

import orjson
import requests

from paperchat.core.config import ModelProfile, Settings, get_settings
from paperchat.core.errors import ConfigurationError, InvalidResponseError, LLMRequestError, RequestCancelled
from paperchat.core.logging import get_logger
from paperchat.core.metrics import LLM_REQUESTS, STREAM_DURATION
from paperchat.llm.cancellation import CancellationToken, is_cancelled
from paperchat.llm.fallback import PolicyKey, ReasoningFallback, TemperatureFallback, policy_key
from paperchat.llm.payload import (
    CHAT_ENDPOINT,
    EMBEDDINGS_ENDPOINT,
    RESPONSES_ENDPOINT,
    build_messages,
    build_payload,
    detect_wire_format,
    resolve_endpoint,
    uses_max_completion_tokens,
)
from paperchat.llm.stream import PARSERS, consume_stream, extract_chat_text, extract_responses_text
from paperchat.llm.types import (
    ChatRequest,
    DeltaCallback,
    ReasoningCallback,
    ReasoningSelection,
    WireFormat,
)

logger = get_logger(__name__)

CONNECTION_TEST_PROMPT = "Say OK"


class LLMClient:
    """Send chat requests with learned temperature and reasoning fallbacks.

    There is no internal timeout; callers bound a request by cancelling the
    token they pass in.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        settings: Settings | None = None,
        temperature_fallback: TemperatureFallback | None = None,
        reasoning_fallback: ReasoningFallback | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session = session or requests.Session()
        self.temperature_fallback = temperature_fallback or TemperatureFallback()
        self.reasoning_fallback = reasoning_fallback or ReasoningFallback(
            retry_cap=self.settings.reasoning_retry_cap
        )

    def stream(
        self,
        request: ChatRequest,
        on_delta: DeltaCallback | None = None,
        on_reasoning: ReasoningCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> str:
        """Stream an answer, returning the accumulated text.

        A cancellation before the endpoint answers raises ``RequestCancelled``;
        one during the read stops callbacks and returns the text received so far.
        """
        url, wire_format = self._chat_endpoint(request.profile)
        started = time.monotonic()
        response = self._send(url, wire_format, request, cancel, stream=True)
        parser = PARSERS[wire_format](on_delta, on_reasoning)
        unregister = cancel.on_cancel(response.close) if cancel is not None else (lambda: None)
        try:
            if _is_json_response(response):
                # Endpoint ignored stream=True and answered in one body.
                parser.emit_answer(self._extract_text(response, wire_format))
                text = parser.finish(emit=not is_cancelled(cancel))
            else:
                text = consume_stream(parser, response.iter_content(chunk_size=None), cancel)
        except Exception as exc:
            if not is_cancelled(cancel):
                LLM_REQUESTS.labels(wire_format=wire_format.value, outcome="error").inc()
                if isinstance(exc, requests.RequestException):
                    raise LLMRequestError(0, str(exc)) from exc
                raise
            logger.debug("Stream read interrupted by cancellation: %s", exc)
            text = parser.finish(emit=False)
        finally:
            unregister()
            response.close()
            STREAM_DURATION.labels(wire_format=wire_format.value).observe(time.monotonic() - started)
        outcome = "cancelled" if is_cancelled(cancel) else "completed"
        LLM_REQUESTS.labels(wire_format=wire_format.value, outcome=outcome).inc()
        return text

    def complete(self, request: ChatRequest, cancel: CancellationToken | None = None) -> str:
        """Non-streaming request; returns the extracted answer text."""
        url, wire_format = self._chat_endpoint(request.profile)
        response = self._send(url, wire_format, request, cancel, stream=False)
        try:
            text = self._extract_text(response, wire_format)
        finally:
            response.close()
        LLM_REQUESTS.labels(wire_format=wire_format.value, outcome="completed").inc()
        return text

    def embed(
        self,
        texts: Sequence[str],
        profile: ModelProfile,
        model: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[list[float]]:
        if not profile.api_base:
            raise ConfigurationError(f"API URL is missing for profile '{profile.key}'")
        url = resolve_endpoint(profile.api_base, EMBEDDINGS_ENDPOINT)
        payload = {"model": model or self.settings.embedding_model, "input": list(texts)}
        response = self._post(url, payload, profile.api_key, cancel, stream=False)
        try:
            data = _json_body(response)
        finally:
            response.close()
        return [list(item.get("embedding") or []) for item in data.get("data") or [] if isinstance(item, dict)]

    def test_connection(self, profile: ModelProfile, cancel: CancellationToken | None = None) -> str:
        """Send a minimal prompt to ``profile`` and return the reply."""
        url, wire_format = self._chat_endpoint(profile)
        messages = [{"role": "user", "content": CONNECTION_TEST_PROMPT}]
        if wire_format is WireFormat.RESPONSES:
            payload: dict[str, Any] = {"model": profile.model, "input": messages, "max_output_tokens": 16}
        else:
            token_key = "max_completion_tokens" if uses_max_completion_tokens(profile.model) else "max_tokens"
            payload = {"model": profile.model, "messages": messages, token_key: 5}
        response = self._post(url, payload, profile.api_key, cancel, stream=False)
        try:
            reply = self._extract_text(response, wire_format)
        finally:
            response.close()
        return reply.strip() or "OK"

    def _chat_endpoint(self, profile: ModelProfile) -> tuple[str, WireFormat]:
        if not profile.api_base:
            raise ConfigurationError(f"API URL is missing for profile '{profile.key}'")
        wire_format = detect_wire_format(profile.api_base)
        path = RESPONSES_ENDPOINT if wire_format is WireFormat.RESPONSES else CHAT_ENDPOINT
        return resolve_endpoint(profile.api_base, path), wire_format

    def _send(
        self,
        url: str,
        wire_format: WireFormat,
        request: ChatRequest,
        cancel: CancellationToken | None,
        stream: bool,
    ) -> requests.Response:
        profile = request.profile
        messages = build_messages(
            request.prompt,
            request.system_prompt,
            context=request.context,
            history=request.history,
            images=request.images,
        )
        key: PolicyKey = policy_key(url, profile.model)

        def with_reasoning(selection: ReasoningSelection | None) -> requests.Response:
            def with_temperature(temperature: float | None) -> requests.Response:
                payload = build_payload(
                    profile.model,
                    messages,
                    selection,
                    temperature,
                    profile.max_tokens,
                    wire_format=wire_format,
                    stream=stream,
                )
                return self._post(url, payload, profile.api_key, cancel, stream=stream)

            return self.temperature_fallback.call(key, profile.temperature, with_temperature, cancel)

        try:
            return self.reasoning_fallback.call(key, profile.model, request.reasoning, with_reasoning, cancel)
        except LLMRequestError:
            LLM_REQUESTS.labels(wire_format=wire_format.value, outcome="error").inc()
            raise
        except RequestCancelled:
            LLM_REQUESTS.labels(wire_format=wire_format.value, outcome="cancelled").inc()
            raise

    def _post(
        self,
        url: str,
        payload: dict[str, Any],
        api_key: str,
        cancel: CancellationToken | None,
        stream: bool,
    ) -> requests.Response:
        if cancel is not None:
            cancel.raise_if_cancelled()
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        logger.debug("POST %s", url, extra={"ctx_endpoint": url, "ctx_model": payload.get("model")})
        try:
            response = self.session.post(url, data=orjson.dumps(payload), headers=headers, stream=stream)
        except requests.RequestException as exc:
            if is_cancelled(cancel):
                raise RequestCancelled("request cancelled") from exc
            raise LLMRequestError(0, str(exc)) from exc
        if not response.ok:
            body = response.text
            response.close()
            raise LLMRequestError(response.status_code, body, response.reason or "")
        return response

    @staticmethod
    def _extract_text(response: requests.Response, wire_format: WireFormat) -> str:
        data = _json_body(response)
        if wire_format is WireFormat.RESPONSES:
            return extract_responses_text(data)
        return extract_chat_text(data)


def _is_json_response(response: requests.Response) -> bool:
    return "application/json" in (response.headers.get("Content-Type") or "").lower()


def _json_body(response: requests.Response) -> dict[str, Any]:
    try:
        data = orjson.loads(response.content)
    except orjson.JSONDecodeError as exc:
        raise InvalidResponseError(response.status_code, response.text, "invalid JSON body") from exc
    return data if isinstance(data, dict) else {}


__all__ = ["CONNECTION_TEST_PROMPT", "LLMClient"]
