"""Exception types raised by paperchat."""

from __future__ import annotations

ERROR_BODY_PREVIEW = 300


class PaperchatError(Exception):
    """Base exception for paperchat."""


class ConfigurationError(PaperchatError):
    """Raised when a request cannot be attempted (e.g. missing endpoint URL)."""


class LLMRequestError(PaperchatError):
    """Raised when a model endpoint answers with a non-2xx status or is unreachable.

    ``status`` is 0 for transport failures where no HTTP response was received.
    """

    def __init__(self, status: int, body: str = "", status_text: str = "") -> None:
        self.status = status
        self.body = body or ""
        self.status_text = status_text or ""
        reason = f" {self.status_text}" if self.status_text else ""
        super().__init__(f"{status}{reason} - {self.body}")

    @property
    def is_client_rejection(self) -> bool:
        return self.status in (400, 422)

    def short_message(self, limit: int = ERROR_BODY_PREVIEW) -> str:
        body = self.body.strip()
        if len(body) > limit:
            body = body[: limit - 1] + "…"
        if self.status == 0:
            return f"Network error: {body or 'request failed'}"
        return f"HTTP {self.status}: {body}" if body else f"HTTP {self.status}"


class InvalidResponseError(LLMRequestError):
    """Raised when a 2xx response body is not the JSON document that was expected."""

    def short_message(self, limit: int = ERROR_BODY_PREVIEW) -> str:
        body = self.body.strip()
        if len(body) > limit:
            body = body[: limit - 1] + "…"
        return f"Invalid JSON response: {body}" if body else "Invalid JSON response"


class RequestCancelled(PaperchatError):
    """Raised when a request is cancelled before a response could be used."""


__all__ = [
    "ConfigurationError",
    "InvalidResponseError",
    "LLMRequestError",
    "PaperchatError",
    "RequestCancelled",
]
