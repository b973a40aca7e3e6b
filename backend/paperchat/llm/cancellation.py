"""Cooperative cancellation shared by every layer of a request."""

from __future__ import annotations

import threading
from typing import Callable

from paperchat.core.errors import RequestCancelled
from paperchat.core.logging import get_logger

logger = get_logger(__name__)


class CancellationToken:
    """A one-shot cancellation flag.

    Checked before each network call, before each retry and on every stream
    read. Callbacks registered with :meth:`on_cancel` run once when the token
    fires (used to close an open response so a blocked read returns).
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:  # noqa: BLE001 - closing a dead connection may raise
                logger.debug("Cancellation callback failed: %s", exc)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled("request cancelled")

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def _unregister() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return _unregister
        callback()
        return lambda: None

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


def is_cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.cancelled


__all__ = ["CancellationToken", "is_cancelled"]
