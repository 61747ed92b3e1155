"""Runtime configuration registry for the orchestration engine.

Provides centralized configuration for demo mode, provider credentials,
context compiler limits and the default run store location.
Environment variables take precedence over YAML config.

Usage:
    from switchboard.config.runtime_config import is_demo_mode, get_context_limits

    if is_demo_mode():
        # Every provider call is answered offline
    limits = get_context_limits()
    limits.recent_turn_limit  # 8
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "runtime.yaml"
_cached_config: Optional[Dict[str, Any]] = None

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ContextLimits:
    """Bounds applied by the context compiler."""

    recent_turn_limit: int = 8
    recent_turn_max_chars: int = 320
    memory_top_k: int = 6


@dataclass(frozen=True)
class ProviderSettings:
    """Resolved connection settings for one provider."""

    name: str
    api_key: Optional[str]
    base_url: Optional[str]
    api_version: Optional[str] = None
    timeout_seconds: float = 30.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)


def _load_config() -> Dict[str, Any]:
    """Load runtime.yaml configuration, with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH, encoding="utf-8") as f:
            _cached_config = yaml.safe_load(f) or {}
    else:
        _cached_config = _default_config()

    return _cached_config


def _default_config() -> Dict[str, Any]:
    """Return default configuration if runtime.yaml doesn't exist."""
    return {
        "version": "1.0",
        "defaults": {
            "demo_mode": True,
            "db_path": None,
            "log_level": "INFO",
            "provider_timeout_seconds": 30,
        },
        "context": {
            "recent_turn_limit": 8,
            "recent_turn_max_chars": 320,
            "memory_top_k": 6,
        },
        "providers": {
            "openai": {"env_key": "OPENAI_API_KEY", "base_url": "https://api.openai.com/v1"},
            "anthropic": {
                "env_key": "ANTHROPIC_API_KEY",
                "base_url": "https://api.anthropic.com/v1",
                "api_version": "2023-06-01",
            },
            "google": {
                "env_key": "GOOGLE_API_KEY",
                "base_url": "https://generativelanguage.googleapis.com/v1beta",
            },
            "mistral": {"env_key": "MISTRAL_API_KEY", "base_url": "https://api.mistral.ai/v1"},
            "mock": {"env_key": None, "base_url": None},
        },
    }


def reset_config() -> None:
    """Reset cached config (for testing)."""
    global _cached_config
    _cached_config = None


def _defaults() -> Dict[str, Any]:
    return _load_config().get("defaults", {}) or {}


def is_demo_mode() -> bool:
    """Check whether provider calls should be answered offline.

    Environment variable precedence (highest to lowest):
    1. SWITCHBOARD_DEMO_MODE ("false"/"0" disables demo mode)
    2. Config file value (defaults.demo_mode)
    3. Default: True
    """
    env_value = os.environ.get("SWITCHBOARD_DEMO_MODE")
    if env_value is not None:
        return env_value.strip().lower() in _TRUTHY
    return bool(_defaults().get("demo_mode", True))


def get_db_path() -> Optional[Path]:
    """Get the DuckDB run store path, or None for an in-memory database."""
    env_value = os.environ.get("SWITCHBOARD_DB_PATH")
    if env_value:
        return Path(env_value).expanduser()
    configured = _defaults().get("db_path")
    return Path(configured).expanduser() if configured else None


def get_log_level() -> str:
    """Get the configured log level name."""
    return (os.environ.get("SWITCHBOARD_LOG_LEVEL") or _defaults().get("log_level") or "INFO").upper()


def get_provider_timeout() -> float:
    """Get the per-request timeout for live provider calls, in seconds."""
    env_value = os.environ.get("SWITCHBOARD_PROVIDER_TIMEOUT")
    if env_value:
        try:
            return float(env_value)
        except ValueError:
            logger.warning(
                "Invalid SWITCHBOARD_PROVIDER_TIMEOUT value '%s'. Falling back to config.",
                env_value,
            )
    return float(_defaults().get("provider_timeout_seconds", 30))


def get_context_limits() -> ContextLimits:
    """Get context compiler limits from config.

    Non-positive values are rejected with a warning and replaced by the
    built-in defaults.
    """
    raw = _load_config().get("context", {}) or {}
    fallback = ContextLimits()
    values: Dict[str, int] = {}
    for name in ("recent_turn_limit", "recent_turn_max_chars", "memory_top_k"):
        value = raw.get(name, getattr(fallback, name))
        if not isinstance(value, int) or value <= 0:
            logger.warning(
                "Context limit '%s' has invalid value %r. Using default %d.",
                name,
                value,
                getattr(fallback, name),
            )
            value = getattr(fallback, name)
        values[name] = value
    return ContextLimits(**values)


def get_provider_settings(provider: str) -> ProviderSettings:
    """Resolve connection settings for a provider.

    The API key is read from the environment variable named by the
    provider's ``env_key`` entry; keys are never stored in the YAML file.

    Args:
        provider: Provider key ("openai", "anthropic", "google", "mistral", "mock").

    Returns:
        ProviderSettings for the provider (empty settings for unknown providers).
    """
    providers = _load_config().get("providers", {}) or {}
    entry = providers.get(provider.lower(), {}) or {}
    env_key = entry.get("env_key")
    api_key = os.environ.get(env_key) if env_key else None
    return ProviderSettings(
        name=provider.lower(),
        api_key=api_key or None,
        base_url=entry.get("base_url"),
        api_version=entry.get("api_version"),
        timeout_seconds=get_provider_timeout(),
    )
