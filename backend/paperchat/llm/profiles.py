"""Reasoning capability table per provider and model family.

Each provider owns an ordered list of ``(pattern, profile)`` rules matched
against the lowercased model name, plus a fallback profile. Supporting a new
model family means adding a row here; request building only ever asks
:func:`resolve_profile`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from paperchat.llm.types import ReasoningLevel, ReasoningProvider, ReasoningSelection

PROFILE_TABLE_VERSION = 6

L = ReasoningLevel

# Levels a provider may lack, and the level to try instead.
LEVEL_ALIASES: Mapping[ReasoningLevel, ReasoningLevel] = MappingProxyType(
    {L.MINIMAL: L.LOW, L.XHIGH: L.HIGH}
)


class WireParam(str, Enum):
    EFFORT = "reasoning_effort"
    THINKING_LEVEL = "thinking_level"
    THINKING_BUDGET = "thinking_budget"
    DEEPSEEK_THINKING = "deepseek_thinking"
    ENABLE_THINKING = "enable_thinking"
    BUDGET_TOKENS = "budget_tokens"


@dataclass(frozen=True, slots=True)
class ReasoningOption:
    level: ReasoningLevel
    label: str
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class ProviderProfile:
    name: str
    supports_reasoning: bool
    default_level: ReasoningLevel | None = None
    options: tuple[ReasoningOption, ...] = ()
    wire_param: WireParam | None = None
    level_to_value: Mapping[ReasoningLevel, Any] = field(default_factory=dict)
    default_value: Any = None
    omit_temperature_with_reasoning: bool = False

    @property
    def enabled_levels(self) -> tuple[ReasoningLevel, ...]:
        return tuple(option.level for option in self.options if option.enabled)

    def resolved_default_level(self) -> ReasoningLevel | None:
        if not self.supports_reasoning:
            return None
        enabled = self.enabled_levels
        if self.default_level is not None and self.default_level in enabled:
            return self.default_level
        return enabled[0] if enabled else None

    def map_level(self, level: ReasoningLevel) -> ReasoningLevel | None:
        """Return the level this profile will actually send for ``level``."""
        if not self.supports_reasoning:
            return None
        if level in self.level_to_value:
            return level
        alias = LEVEL_ALIASES.get(level)
        if alias is not None and alias in self.level_to_value:
            return alias
        return self.resolved_default_level()

    def wire_value(self, level: ReasoningLevel) -> Any:
        mapped = self.map_level(level)
        if mapped is None:
            return None
        return self.level_to_value.get(mapped, self.default_value)


@dataclass(frozen=True, slots=True)
class ProfileRule:
    pattern: re.Pattern[str]
    profile: ProviderProfile


@dataclass(frozen=True, slots=True)
class ProviderRules:
    rules: tuple[ProfileRule, ...]
    fallback: ProviderProfile


def _opt(level: ReasoningLevel, label: str) -> ReasoningOption:
    return ReasoningOption(level=level, label=label)


def _rule(pattern: str, profile: ProviderProfile) -> ProfileRule:
    return ProfileRule(pattern=re.compile(pattern, re.IGNORECASE), profile=profile)


def _single_option(name: str, **extras: Any) -> ProviderProfile:
    return ProviderProfile(
        name=name,
        supports_reasoning=True,
        default_level=L.DEFAULT,
        options=(_opt(L.DEFAULT, "enabled"),),
        level_to_value=extras.pop("level_to_value", {L.DEFAULT: True}),
        **extras,
    )


OPENAI_GPT5 = ProviderProfile(
    name="openai-gpt5",
    supports_reasoning=True,
    default_level=L.DEFAULT,
    options=(_opt(L.DEFAULT, "default"), _opt(L.LOW, "low"), _opt(L.MEDIUM, "medium"), _opt(L.HIGH, "high")),
    wire_param=WireParam.EFFORT,
    level_to_value={L.DEFAULT: None, L.LOW: "low", L.MEDIUM: "medium", L.HIGH: "high"},
)

OPENAI_GPT52 = ProviderProfile(
    name="openai-gpt5.2",
    supports_reasoning=True,
    default_level=L.DEFAULT,
    options=(
        _opt(L.DEFAULT, "default"),
        _opt(L.LOW, "low"),
        _opt(L.MEDIUM, "medium"),
        _opt(L.HIGH, "high"),
        _opt(L.XHIGH, "xhigh"),
    ),
    wire_param=WireParam.EFFORT,
    level_to_value={L.DEFAULT: None, L.LOW: "low", L.MEDIUM: "medium", L.HIGH: "high", L.XHIGH: "xhigh"},
)

GROK_3_MINI = ProviderProfile(
    name="grok-3-mini",
    supports_reasoning=True,
    default_level=L.DEFAULT,
    options=(_opt(L.DEFAULT, "default"), _opt(L.LOW, "low"), _opt(L.HIGH, "high")),
    wire_param=WireParam.EFFORT,
    level_to_value={L.DEFAULT: None, L.LOW: "low", L.HIGH: "high"},
)

GROK_REASONING = _single_option("grok-reasoning", level_to_value={L.DEFAULT: None})

GEMINI_3_PRO = ProviderProfile(
    name="gemini-3-pro",
    supports_reasoning=True,
    default_level=L.HIGH,
    options=(_opt(L.HIGH, "high"), _opt(L.LOW, "low")),
    wire_param=WireParam.THINKING_LEVEL,
    level_to_value={L.HIGH: "high", L.LOW: "low"},
    default_value="high",
)

GEMINI_25_PRO = ProviderProfile(
    name="gemini-2.5-pro",
    supports_reasoning=True,
    default_level=L.DEFAULT,
    options=(_opt(L.DEFAULT, "dynamic (-1)"), _opt(L.LOW, "128"), _opt(L.HIGH, "32768")),
    wire_param=WireParam.THINKING_BUDGET,
    level_to_value={L.DEFAULT: -1, L.LOW: 128, L.HIGH: 32768},
    default_value=-1,
)

GEMINI_25_FLASH = ProviderProfile(
    name="gemini-2.5-flash",
    supports_reasoning=True,
    default_level=L.DEFAULT,
    options=(
        _opt(L.DEFAULT, "dynamic (-1)"),
        _opt(L.MINIMAL, "off (0)"),
        _opt(L.LOW, "1"),
        _opt(L.HIGH, "24576"),
    ),
    wire_param=WireParam.THINKING_BUDGET,
    level_to_value={L.DEFAULT: -1, L.MINIMAL: 0, L.LOW: 1, L.HIGH: 24576},
    default_value=-1,
)

GEMINI_25_FLASH_LITE = ProviderProfile(
    name="gemini-2.5-flash-lite",
    supports_reasoning=True,
    default_level=L.DEFAULT,
    options=(
        _opt(L.DEFAULT, "off (0)"),
        _opt(L.MINIMAL, "dynamic (-1)"),
        _opt(L.LOW, "512"),
        _opt(L.HIGH, "24576"),
    ),
    wire_param=WireParam.THINKING_BUDGET,
    level_to_value={L.DEFAULT: 0, L.MINIMAL: -1, L.LOW: 512, L.HIGH: 24576},
    default_value=0,
)

GEMINI_GENERIC = ProviderProfile(
    name="gemini",
    supports_reasoning=True,
    default_level=L.MEDIUM,
    options=(_opt(L.MEDIUM, "medium"), _opt(L.LOW, "low"), _opt(L.HIGH, "high")),
    wire_param=WireParam.THINKING_LEVEL,
    level_to_value={L.LOW: "low", L.MEDIUM: "medium", L.HIGH: "high"},
    default_value="medium",
)

DEEPSEEK_REASONER = _single_option("deepseek-reasoner", wire_param=WireParam.DEEPSEEK_THINKING)

DEEPSEEK_CHAT = ProviderProfile(name="deepseek-chat", supports_reasoning=False)

KIMI_THINKING = _single_option("kimi-thinking", level_to_value={L.DEFAULT: None})

QWEN_TOGGLE = ProviderProfile(
    name="qwen",
    supports_reasoning=True,
    default_level=L.DEFAULT,
    options=(_opt(L.DEFAULT, "default"), _opt(L.HIGH, "enabled"), _opt(L.LOW, "disabled")),
    wire_param=WireParam.ENABLE_THINKING,
    level_to_value={L.DEFAULT: None, L.HIGH: True, L.LOW: False},
)

QWEN_THINKING_ONLY = _single_option("qwen-thinking", wire_param=WireParam.ENABLE_THINKING)

QWEN_NON_THINKING_ONLY = ProviderProfile(
    name="qwen-instruct",
    supports_reasoning=False,
    wire_param=WireParam.ENABLE_THINKING,
    default_value=False,
)

ANTHROPIC_THINKING = ProviderProfile(
    name="anthropic-thinking",
    supports_reasoning=True,
    default_level=L.DEFAULT,
    options=(_opt(L.DEFAULT, "2000"), _opt(L.LOW, "1024"), _opt(L.HIGH, "10000")),
    wire_param=WireParam.BUDGET_TOKENS,
    level_to_value={L.DEFAULT: 2000, L.LOW: 1024, L.HIGH: 10000},
    default_value=2000,
    omit_temperature_with_reasoning=True,
)

UNSUPPORTED = ProviderProfile(name="unsupported", supports_reasoning=False)

_FAMILY_END = r"(?:\b|[.-])"

PROFILE_RULES: Mapping[ReasoningProvider, ProviderRules] = MappingProxyType(
    {
        ReasoningProvider.OPENAI: ProviderRules(
            rules=(
                _rule(rf"^gpt-5\.2{_FAMILY_END}", OPENAI_GPT52),
                _rule(rf"^(gpt-5{_FAMILY_END}|o\d+{_FAMILY_END})", OPENAI_GPT5),
            ),
            fallback=OPENAI_GPT5,
        ),
        ReasoningProvider.GEMINI: ProviderRules(
            rules=(
                _rule(rf"(^|[/:])gemini-2\.5-pro{_FAMILY_END}", GEMINI_25_PRO),
                _rule(rf"(^|[/:])gemini-2\.5-flash-lite{_FAMILY_END}", GEMINI_25_FLASH_LITE),
                _rule(rf"(^|[/:])gemini-2\.5-flash{_FAMILY_END}", GEMINI_25_FLASH),
                _rule(rf"(^|[/:])gemini-2\.5{_FAMILY_END}", GEMINI_25_FLASH),
                _rule(rf"(^|[/:])gemini-3-pro{_FAMILY_END}", GEMINI_3_PRO),
                _rule(r"\bgemini\b", GEMINI_GENERIC),
            ),
            fallback=GEMINI_GENERIC,
        ),
        ReasoningProvider.DEEPSEEK: ProviderRules(
            rules=(
                _rule(rf"^deepseek-(?:reasoner|r1){_FAMILY_END}", DEEPSEEK_REASONER),
                _rule(rf"^deepseek-chat{_FAMILY_END}", DEEPSEEK_CHAT),
            ),
            fallback=DEEPSEEK_CHAT,
        ),
        ReasoningProvider.KIMI: ProviderRules(
            rules=(
                _rule(rf"^kimi-k2(?:\.5)?(?:-thinking(?:-turbo)?)?{_FAMILY_END}", KIMI_THINKING),
                _rule(rf"^kimi{_FAMILY_END}", KIMI_THINKING),
            ),
            fallback=KIMI_THINKING,
        ),
        ReasoningProvider.QWEN: ProviderRules(
            rules=(
                _rule(rf"(^|[/:])qwen3-[\w.-]*instruct-2507{_FAMILY_END}", QWEN_NON_THINKING_ONLY),
                _rule(rf"(^|[/:])(?:qwen3-[\w.-]*thinking-2507|qwq){_FAMILY_END}", QWEN_THINKING_ONLY),
                _rule(rf"(^|[/:])qwen(?:\d+)?{_FAMILY_END}", QWEN_TOGGLE),
            ),
            fallback=QWEN_TOGGLE,
        ),
        ReasoningProvider.GROK: ProviderRules(
            rules=(
                _rule(rf"^grok-3-mini{_FAMILY_END}", GROK_3_MINI),
                _rule(rf"(^|[/:])grok{_FAMILY_END}", GROK_REASONING),
            ),
            fallback=GROK_REASONING,
        ),
        ReasoningProvider.ANTHROPIC: ProviderRules(
            rules=(_rule(rf"(^|[/:])claude{_FAMILY_END}", ANTHROPIC_THINKING),),
            fallback=ANTHROPIC_THINKING,
        ),
    }
)

# Ordered provider detection from a bare model name.
_PROVIDER_PATTERNS: tuple[tuple[re.Pattern[str], ReasoningProvider], ...] = (
    (re.compile(r"^deepseek"), ReasoningProvider.DEEPSEEK),
    (re.compile(r"^kimi"), ReasoningProvider.KIMI),
    (re.compile(rf"(^|[/:])(?:qwen(?:\d+)?|qwq|qvq){_FAMILY_END}"), ReasoningProvider.QWEN),
    (re.compile(rf"(^|[/:])grok{_FAMILY_END}"), ReasoningProvider.GROK),
    (re.compile(rf"(^|[/:])claude{_FAMILY_END}"), ReasoningProvider.ANTHROPIC),
    (re.compile(r"gemini"), ReasoningProvider.GEMINI),
    (re.compile(rf"^(gpt-5|o\d){_FAMILY_END}"), ReasoningProvider.OPENAI),
)


def normalize_model_name(model_name: str | None) -> str:
    return (model_name or "").strip().lower()


def detect_provider(model_name: str | None) -> ReasoningProvider:
    name = normalize_model_name(model_name)
    if not name:
        return ReasoningProvider.UNSUPPORTED
    for pattern, provider in _PROVIDER_PATTERNS:
        if pattern.search(name):
            return provider
    return ReasoningProvider.UNSUPPORTED


def resolve_profile(provider: ReasoningProvider | str, model_name: str | None) -> ProviderProfile:
    """Return the first matching profile for ``model_name``, else the provider fallback."""
    provider = ReasoningProvider(provider)
    table = PROFILE_RULES.get(provider)
    if table is None:
        return UNSUPPORTED
    normalized = normalize_model_name(model_name)
    for rule in table.rules:
        if rule.pattern.search(normalized):
            return rule.profile
    return table.fallback


def reasoning_options(provider: ReasoningProvider | str, model_name: str | None) -> list[ReasoningOption]:
    profile = resolve_profile(provider, model_name)
    if not profile.supports_reasoning:
        return []
    return list(profile.options)


def supports_reasoning(provider: ReasoningProvider | str, model_name: str | None) -> bool:
    profile = resolve_profile(provider, model_name)
    return profile.supports_reasoning and bool(profile.enabled_levels)


def default_level(provider: ReasoningProvider | str, model_name: str | None) -> ReasoningLevel | None:
    return resolve_profile(provider, model_name).resolved_default_level()


def select_reasoning(
    model_name: str | None,
    requested: ReasoningLevel | str | None = None,
    provider: ReasoningProvider | str | None = None,
) -> ReasoningSelection | None:
    """Pick the reasoning selection to send for ``model_name``.

    The requested level is kept when the model enables it; otherwise the first
    enabled level is used. Models without reasoning get ``None``.
    """
    resolved_provider = ReasoningProvider(provider) if provider else detect_provider(model_name)
    if resolved_provider is ReasoningProvider.UNSUPPORTED:
        return None
    enabled = resolve_profile(resolved_provider, model_name).enabled_levels
    if not enabled or not supports_reasoning(resolved_provider, model_name):
        return None
    level: ReasoningLevel | None = None
    if requested not in (None, "", "none"):
        try:
            level = ReasoningLevel(requested)
        except ValueError:
            level = None
    if level not in enabled:
        level = enabled[0]
    return ReasoningSelection(provider=resolved_provider, level=level)


__all__ = [
    "LEVEL_ALIASES",
    "PROFILE_RULES",
    "PROFILE_TABLE_VERSION",
    "ProviderProfile",
    "ReasoningOption",
    "WireParam",
    "default_level",
    "detect_provider",
    "reasoning_options",
    "resolve_profile",
    "select_reasoning",
    "supports_reasoning",
]
