"""Shared flowchain configuration utilities.

Centralises reading of ~/.flowchain/configuration.json so that the engine,
the LLM provider and the CLI share one implementation. The directory can be
moved with the ``FLOWCHAIN_HOME`` environment variable.

Example configuration::

    {
      "llm": {
        "provider": "anthropic",
        "model": "claude-haiku-4-5-20251001",
        "api_key_env_var": "ANTHROPIC_API_KEY",
        "temperature": 0.7,
        "max_tokens": 2048
      },
      "engine": {"max_log_entries": 500, "debug": false}
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048

SUPPORTED_PROVIDERS = ("openai", "anthropic", "local", "custom")

_PROVIDER_KEY_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------


def get_flowchain_home() -> Path:
    """Return the flowchain state directory (``$FLOWCHAIN_HOME`` or ~/.flowchain)."""
    override = os.environ.get("FLOWCHAIN_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".flowchain"


def get_config_file() -> Path:
    return get_flowchain_home() / "configuration.json"


def get_flowchain_config() -> dict[str, Any]:
    """Load configuration.json; missing or unreadable files yield ``{}``."""
    path = get_config_file()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _llm_section() -> dict[str, Any]:
    section = get_flowchain_config().get("llm", {})
    return section if isinstance(section, dict) else {}


def get_api_key(provider: str | None = None) -> str | None:
    """Resolve the API key: explicit config value, then the configured env var,
    then the provider's conventional env var."""
    llm = _llm_section()
    if llm.get("api_key"):
        return llm["api_key"]
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    provider = provider or llm.get("provider") or DEFAULT_PROVIDER
    env_var = _PROVIDER_KEY_ENV_VARS.get(provider)
    return os.environ.get(env_var) if env_var else None


# ---------------------------------------------------------------------------
# Settings dataclasses
# ---------------------------------------------------------------------------


@dataclass
class LLMSettings:
    """Default options for LLM calls; nodes may override any of them."""

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    api_key: str | None = None
    base_url: str | None = None

    @classmethod
    def load(cls) -> "LLMSettings":
        """Build settings from configuration.json and the environment."""
        llm = _llm_section()
        provider = llm.get("provider") or DEFAULT_PROVIDER
        return cls(
            provider=provider,
            model=llm.get("model") or DEFAULT_MODEL,
            temperature=float(llm.get("temperature", DEFAULT_TEMPERATURE)),
            max_tokens=int(llm.get("max_tokens", DEFAULT_MAX_TOKENS)),
            api_key=get_api_key(provider),
            base_url=llm.get("base_url") or None,
        )


def validate_llm_settings(settings: LLMSettings) -> list[str]:
    """Return a list of problems with ``settings`` (empty = valid)."""
    errors: list[str] = []
    if not settings.provider:
        errors.append("Provider is required")
    elif settings.provider not in SUPPORTED_PROVIDERS:
        errors.append(f"Unsupported provider: {settings.provider}")
    if settings.provider in ("openai", "anthropic") and not settings.api_key:
        errors.append("API key is required")
    if settings.provider in ("local", "custom") and not settings.base_url:
        errors.append("Base URL is required for local and custom providers")
    if not settings.model:
        errors.append("Model is required")
    if not 0 <= settings.temperature <= 2:
        errors.append("Temperature must be between 0.0 and 2.0")
    if not 1 <= settings.max_tokens <= 8192:
        errors.append("Max tokens must be between 1 and 8192")
    return errors


@dataclass
class EngineConfig:
    """Engine-level knobs loaded from the ``engine`` section."""

    max_log_entries: int = 500
    debug: bool = False
    runs_dir: Path = field(default_factory=lambda: get_flowchain_home() / "runs")
    workflows_dir: Path = field(default_factory=lambda: get_flowchain_home() / "workflows")

    @classmethod
    def load(cls) -> "EngineConfig":
        engine = get_flowchain_config().get("engine", {})
        if not isinstance(engine, dict):
            engine = {}
        config = cls()
        if "max_log_entries" in engine:
            config.max_log_entries = int(engine["max_log_entries"])
        if "debug" in engine:
            config.debug = bool(engine["debug"])
        if engine.get("runs_dir"):
            config.runs_dir = Path(engine["runs_dir"]).expanduser()
        if engine.get("workflows_dir"):
            config.workflows_dir = Path(engine["workflows_dir"]).expanduser()
        return config
