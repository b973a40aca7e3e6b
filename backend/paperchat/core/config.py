"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "PCHAT_"
DEFAULT_CONFIG_PATH = Path("~/.config/paperchat/config.yaml")

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 2048
MAX_ALLOWED_TOKENS = 65536

PROFILE_KEYS = ("primary", "secondary", "tertiary", "quaternary")

DEFAULT_SYSTEM_PROMPT = """You are an intelligent research assistant. You help users analyze and understand academic papers and documents.

When answering questions:
- Be concise but thorough
- Cite specific parts of the document when relevant
- Use markdown formatting for better readability (headers, lists, bold, code blocks)
- For mathematical expressions, use standard LaTeX syntax with dollar signs: use $...$ for inline math and $$...$$ for display equations on their own line. Always use $ delimiters, never \\( \\) or \\[ \\].
- For tables, use markdown table syntax with pipes and a header divider row
- If you don't have enough information to answer, say so clearly
- Provide actionable insights when possible"""

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("retrieval", "chunk_size"): "chunk_size",
    ("retrieval", "chunk_overlap"): "chunk_overlap",
    ("retrieval", "max_excerpts"): "max_excerpts",
    ("retrieval", "context_budget"): "context_budget",
    ("retrieval", "image_context_budget"): "image_context_budget",
    ("retrieval", "force_full_context"): "force_full_context",
    ("retrieval", "full_context_ceiling"): "full_context_ceiling",
    ("retrieval", "lexical_weight"): "lexical_weight",
    ("retrieval", "semantic_weight"): "semantic_weight",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "batch_size"): "embedding_batch_size",
    ("llm", "default_model"): "default_model",
    ("llm", "system_prompt"): "system_prompt",
    ("llm", "max_history_messages"): "max_history_messages",
    ("llm", "reasoning_retry_cap"): "reasoning_retry_cap",
    ("api", "cors_origins"): "cors_origins",
}


def normalize_temperature(value: Any) -> float:
    """Clamp temperature into [0, 2]; unparsable input falls back to the default."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return DEFAULT_TEMPERATURE
    if parsed != parsed:  # NaN
        return DEFAULT_TEMPERATURE
    return min(2.0, max(0.0, parsed))


def normalize_max_tokens(value: Any) -> int:
    """Clamp max tokens into [1, MAX_ALLOWED_TOKENS]; invalid input falls back to the default."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return DEFAULT_MAX_TOKENS
    if parsed < 1:
        return DEFAULT_MAX_TOKENS
    return min(parsed, MAX_ALLOWED_TOKENS)


class ModelProfile(BaseModel):
    """One configured endpoint/model pair."""

    key: str = "primary"
    api_base: str = ""
    api_key: str = ""
    model: str = ""
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS

    model_config = {"extra": "ignore"}

    @field_validator("api_base", "api_key", "model", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("temperature", mode="before")
    @classmethod
    def _clamp_temperature(cls, value: Any) -> float:
        return normalize_temperature(value)

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _clamp_max_tokens(cls, value: Any) -> int:
        return normalize_max_tokens(value)


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    chunk_size: int = 2000
    chunk_overlap: int = 200
    max_excerpts: int = 4
    context_budget: int = 8000
    image_context_budget: int = 3000
    force_full_context: bool = True
    full_context_ceiling: int = 500_000
    lexical_weight: float = 0.5
    semantic_weight: float = 0.5
    embedding_model: str = "text-embedding-3-small"
    embedding_batch_size: int = 16
    default_model: str = DEFAULT_MODEL
    system_prompt: str = ""
    max_history_messages: int = 12
    reasoning_retry_cap: int = 2
    cors_origins: list[str] = Field(default_factory=list)
    profiles: dict[str, ModelProfile] = Field(default_factory=dict)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> list[str]:
        if not value:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(origin).strip() for origin in value if str(origin).strip()]

    @field_validator("profiles", mode="before")
    @classmethod
    def _key_profiles(cls, value: Any) -> dict[str, Any]:
        if not value:
            return {}
        if not isinstance(value, Mapping):
            raise TypeError("profiles must be a mapping of profile key to settings")
        keyed: dict[str, Any] = {}
        for key, raw in value.items():
            if key not in PROFILE_KEYS:
                continue
            if isinstance(raw, ModelProfile):
                keyed[key] = raw.model_copy(update={"key": key})
            else:
                keyed[key] = {**(raw or {}), "key": key}
        return keyed

    @property
    def effective_system_prompt(self) -> str:
        return self.system_prompt.strip() or DEFAULT_SYSTEM_PROMPT

    def profile(self, key: str = "primary") -> ModelProfile:
        """Return a profile with the model name inherited from primary when unset."""
        if key not in PROFILE_KEYS:
            raise KeyError(f"Unknown profile '{key}'")
        profile = self.profiles.get(key) or ModelProfile(key=key)
        if profile.model:
            return profile
        primary = self.profiles.get("primary")
        inherited = (primary.model if primary else "") or self.default_model
        return profile.model_copy(update={"model": inherited})

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            profiles = raw.pop("profiles", None)
            data.update(_flatten_yaml(raw))
            if profiles:
                data["profiles"] = profiles
        data.update(_load_env_overrides())
        profile_env = _load_profile_env_overrides()
        if profile_env:
            merged = dict(data.get("profiles") or {})
            for key, fields in profile_env.items():
                merged[key] = {**(merged.get(key) or {}), **fields}
            data["profiles"] = merged
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with PCHAT_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields and field_name != "profiles":
            overrides[field_name] = value
    return overrides


def _load_profile_env_overrides() -> dict[str, dict[str, Any]]:
    """Map PCHAT_<PROFILE>_<FIELD> variables (e.g. PCHAT_PRIMARY_API_KEY) into profiles."""
    overrides: dict[str, dict[str, Any]] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        remainder = key[len(ENV_PREFIX) :].lower()
        for profile_key in PROFILE_KEYS:
            marker = f"{profile_key}_"
            if not remainder.startswith(marker):
                continue
            field_name = remainder[len(marker) :]
            if field_name in ModelProfile.model_fields and field_name != "key":
                overrides.setdefault(profile_key, {})[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "ModelProfile",
    "PROFILE_KEYS",
    "Settings",
    "get_settings",
    "normalize_max_tokens",
    "normalize_temperature",
]
