"""Learned retry policies for endpoints that reject temperature or reasoning parameters.

Both policies wrap a single ``attempt`` callable and are keyed by
``(endpoint, model)``. Error classification is kept in pure functions so the
heuristics can be checked against provider error strings without a network.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Generic, Hashable, Mapping, TypeVar

from paperchat.core.errors import LLMRequestError
from paperchat.core.logging import get_logger
from paperchat.core.metrics import FALLBACK_RETRIES
from paperchat.llm.cancellation import CancellationToken
from paperchat.llm.payload import reasoning_params
from paperchat.llm.profiles import resolve_profile
from paperchat.llm.types import ReasoningLevel, ReasoningSelection, WireFormat

logger = get_logger(__name__)

T = TypeVar("T")
V = TypeVar("V")

PolicyKey = tuple[str, str]

DEFAULT_REASONING_RETRY_CAP = 2

_REJECTION_STATUSES = (400, 422)

_FIXED_VALUE_PATTERNS = (
    re.compile(r"only\s+the\s+default\s*\(\s*(-?\d+(?:\.\d+)?)\s*\)\s*value\s+is\s+supported"),
    re.compile(r"only\s+(-?\d+(?:\.\d+)?)\s+is\s+(?:allowed|supported)"),
    re.compile(r"(?:must|should|has\s+to)\s+be\s+(?:set\s+to\s+|equal\s+to\s+)?(-?\d+(?:\.\d+)?)\b"),
    re.compile(r"only\s+supports?\s+(?:a\s+)?(?:value\s+of\s+)?(-?\d+(?:\.\d+)?)\b"),
)
_UNSUPPORTED_PATTERN = re.compile(
    r"not\s+supported|unsupported|not\s+allowed|does\s+not\s+support|doesn't\s+support|"
    r"invalid|unknown\s+(?:parameter|field|name)|unrecognized|not\s+permitted|extra\s+inputs?|"
    r"deprecated|not\s+available"
)
_REASONING_PATTERN = re.compile(
    r"reasoning|effort|thinking|thought|budget_tokens|include_thoughts|enable_thinking"
)


class TemperatureMode(str, Enum):
    DEFAULT = "default"
    OMIT = "omit"
    FIXED = "fixed"


@dataclass(frozen=True, slots=True)
class TemperaturePolicy:
    mode: TemperatureMode
    value: float | None = None

    def apply(self, temperature: float | None) -> float | None:
        if self.mode is TemperatureMode.OMIT:
            return None
        if self.mode is TemperatureMode.FIXED:
            return self.value
        return temperature


def classify_temperature_error(status: int, text: str) -> TemperaturePolicy | None:
    """Return the correction a temperature rejection asks for, if any."""
    if status not in _REJECTION_STATUSES:
        return None
    lowered = (text or "").lower()
    if "temperature" not in lowered:
        return None
    for pattern in _FIXED_VALUE_PATTERNS:
        match = pattern.search(lowered)
        if match:
            return TemperaturePolicy(TemperatureMode.FIXED, float(match.group(1)))
    if _UNSUPPORTED_PATTERN.search(lowered):
        return TemperaturePolicy(TemperatureMode.OMIT)
    return None


def classify_reasoning_error(status: int, text: str) -> bool:
    """True when a rejection names a reasoning/effort/thinking parameter."""
    if status not in _REJECTION_STATUSES:
        return False
    return bool(_REASONING_PATTERN.search((text or "").lower()))


class PolicyStore(Generic[V]):
    """Thread-safe map of learned policies.

    Entries never expire on their own; :meth:`forget` and :meth:`clear` drop them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[Hashable, V] = {}

    def get(self, key: Hashable) -> V | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._entries[key] = value

    def update(self, key: Hashable, fn: Callable[[V | None], V]) -> V:
        with self._lock:
            value = fn(self._entries.get(key))
            self._entries[key] = value
            return value

    def forget(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def policy_key(endpoint: str, model: str) -> PolicyKey:
    return (endpoint.rstrip("/"), model.strip().lower())


def _check_cancel(cancel: CancellationToken | None) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()


class TemperatureFallback:
    """Retry once without temperature, or with the value the endpoint demands."""

    def __init__(self, store: PolicyStore[TemperaturePolicy] | None = None) -> None:
        self.store: PolicyStore[TemperaturePolicy] = store if store is not None else PolicyStore()

    def effective_temperature(self, key: PolicyKey, temperature: float | None) -> float | None:
        policy = self.store.get(key)
        return policy.apply(temperature) if policy else temperature

    def call(
        self,
        key: PolicyKey,
        temperature: float | None,
        attempt: Callable[[float | None], T],
        cancel: CancellationToken | None = None,
    ) -> T:
        learned = self.store.get(key)
        effective = learned.apply(temperature) if learned else temperature
        _check_cancel(cancel)
        try:
            return attempt(effective)
        except LLMRequestError as exc:
            if effective is None:
                raise
            action = classify_temperature_error(exc.status, exc.body)
            if action is None:
                raise
            retry_value = action.apply(temperature)
            if retry_value == effective:
                raise
            if learned is not None:
                self.store.forget(key)
            _check_cancel(cancel)
            logger.info(
                "Temperature rejected, retrying with policy %s",
                action.mode.value,
                extra={"ctx_endpoint": key[0], "ctx_model": key[1], "ctx_policy": action.mode.value},
            )
            FALLBACK_RETRIES.labels(policy="temperature").inc()
        result = attempt(retry_value)
        self.store.set(key, action)
        return result


@dataclass(frozen=True, slots=True)
class ReasoningMemo:
    """Per-endpoint record of which replacement worked for a rejected level."""

    replacements: Mapping[ReasoningLevel, ReasoningSelection | None]

    def lookup(self, level: ReasoningLevel) -> tuple[bool, ReasoningSelection | None]:
        if level in self.replacements:
            return True, self.replacements[level]
        return False, None

    def with_replacement(self, level: ReasoningLevel, replacement: ReasoningSelection | None) -> "ReasoningMemo":
        merged: dict[ReasoningLevel, Any] = dict(self.replacements)
        merged[level] = replacement
        return ReasoningMemo(MappingProxyType(merged))


class ReasoningFallback:
    """Retry a reasoning rejection with the model's default level.

    A retry is only sent when it changes the reasoning parameters on the wire,
    and the number of retries is capped, so the loop always ends with a
    response or the last error.
    """

    def __init__(
        self,
        store: PolicyStore[ReasoningMemo] | None = None,
        retry_cap: int = DEFAULT_REASONING_RETRY_CAP,
    ) -> None:
        self.store: PolicyStore[ReasoningMemo] = store if store is not None else PolicyStore()
        self.retry_cap = max(0, retry_cap)

    def effective_selection(
        self, key: PolicyKey, selection: ReasoningSelection | None
    ) -> ReasoningSelection | None:
        if selection is None:
            return None
        memo = self.store.get(key)
        if memo is None:
            return selection
        found, replacement = memo.lookup(selection.level)
        return replacement if found else selection

    def candidates(self, model: str, selection: ReasoningSelection) -> list[ReasoningSelection]:
        default = resolve_profile(selection.provider, model).resolved_default_level()
        if default is None:
            return []
        return [ReasoningSelection(selection.provider, default)]

    def call(
        self,
        key: PolicyKey,
        model: str,
        selection: ReasoningSelection | None,
        attempt: Callable[[ReasoningSelection | None], T],
        cancel: CancellationToken | None = None,
    ) -> T:
        current = self.effective_selection(key, selection)
        attempted = [_wire_params(model, current)]
        retries = 0
        while True:
            _check_cancel(cancel)
            try:
                result = attempt(current)
            except LLMRequestError as exc:
                if current is None or not classify_reasoning_error(exc.status, exc.body):
                    raise
                if retries >= self.retry_cap:
                    raise
                pending = [
                    candidate
                    for candidate in self.candidates(model, current)
                    if _wire_params(model, candidate) not in attempted
                ]
                if not pending:
                    raise
                current = pending[0]
                attempted.append(_wire_params(model, current))
                retries += 1
                _check_cancel(cancel)
                logger.info(
                    "Reasoning parameters rejected, retrying with %s",
                    current.level.value,
                    extra={"ctx_endpoint": key[0], "ctx_model": key[1]},
                )
                FALLBACK_RETRIES.labels(policy="reasoning").inc()
                continue
            if selection is not None and current != selection:
                self.store.update(
                    key,
                    lambda memo: (memo or ReasoningMemo(MappingProxyType({}))).with_replacement(
                        selection.level, current
                    ),
                )
            return result


def _wire_params(model: str, selection: ReasoningSelection | None) -> dict[str, Any]:
    if selection is None:
        return {}
    return reasoning_params(resolve_profile(selection.provider, model), selection, WireFormat.CHAT)


__all__ = [
    "PolicyStore",
    "ReasoningFallback",
    "ReasoningMemo",
    "TemperatureFallback",
    "TemperatureMode",
    "TemperaturePolicy",
    "classify_reasoning_error",
    "classify_temperature_error",
    "policy_key",
]
