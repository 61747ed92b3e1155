"""
Tests for runtime configuration.

These tests verify:
1. Environment variables take precedence over runtime.yaml
2. Invalid values fall back with a warning
3. Provider settings read keys from the environment only
"""

from pathlib import Path

import pytest

from switchboard.config import runtime_config
from switchboard.config.runtime_config import (
    ContextLimits,
    get_context_limits,
    get_db_path,
    get_log_level,
    get_provider_settings,
    get_provider_timeout,
    is_demo_mode,
)


@pytest.fixture
def yaml_config(monkeypatch):
    """Replace the cached runtime.yaml contents for one test."""

    def install(config):
        monkeypatch.setattr(runtime_config, "_cached_config", config)

    return install


class TestDemoMode:
    @pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("ON", True), ("false", False), ("0", False)])
    def test_env_value(self, monkeypatch, value, expected):
        monkeypatch.setenv("SWITCHBOARD_DEMO_MODE", value)
        assert is_demo_mode() is expected

    def test_config_value_when_env_unset(self, monkeypatch, yaml_config):
        monkeypatch.delenv("SWITCHBOARD_DEMO_MODE")
        yaml_config({"defaults": {"demo_mode": False}})
        assert is_demo_mode() is False

    def test_packaged_default(self, monkeypatch):
        monkeypatch.delenv("SWITCHBOARD_DEMO_MODE")
        assert is_demo_mode() is True


class TestDefaults:
    def test_db_path(self, monkeypatch, yaml_config):
        assert get_db_path() is None
        yaml_config({"defaults": {"db_path": "/var/lib/switchboard/runs.duckdb"}})
        assert get_db_path() == Path("/var/lib/switchboard/runs.duckdb")
        monkeypatch.setenv("SWITCHBOARD_DB_PATH", "/tmp/other.duckdb")
        assert get_db_path() == Path("/tmp/other.duckdb")

    def test_log_level(self, monkeypatch):
        assert get_log_level() == "INFO"
        monkeypatch.setenv("SWITCHBOARD_LOG_LEVEL", "debug")
        assert get_log_level() == "DEBUG"

    def test_provider_timeout(self, monkeypatch, caplog):
        assert get_provider_timeout() == 30.0
        monkeypatch.setenv("SWITCHBOARD_PROVIDER_TIMEOUT", "2.5")
        assert get_provider_timeout() == 2.5
        monkeypatch.setenv("SWITCHBOARD_PROVIDER_TIMEOUT", "soon")
        with caplog.at_level("WARNING"):
            assert get_provider_timeout() == 30.0
        assert "SWITCHBOARD_PROVIDER_TIMEOUT" in caplog.text


class TestContextLimits:
    def test_packaged_limits(self):
        assert get_context_limits() == ContextLimits(recent_turn_limit=8, recent_turn_max_chars=320, memory_top_k=6)

    def test_invalid_limits_replaced(self, yaml_config, caplog):
        yaml_config({"context": {"recent_turn_limit": 0, "recent_turn_max_chars": "wide", "memory_top_k": 2}})
        with caplog.at_level("WARNING"):
            limits = get_context_limits()
        assert limits == ContextLimits(recent_turn_limit=8, recent_turn_max_chars=320, memory_top_k=2)
        assert "recent_turn_limit" in caplog.text
        assert "recent_turn_max_chars" in caplog.text


class TestProviderSettings:
    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        settings = get_provider_settings("Anthropic")
        assert settings.name == "anthropic"
        assert settings.api_key == "sk-ant"
        assert settings.has_credentials
        assert settings.base_url == "https://api.anthropic.com/v1"
        assert settings.api_version == "2023-06-01"

    def test_missing_key(self):
        settings = get_provider_settings("openai")
        assert settings.api_key is None
        assert not settings.has_credentials

    def test_empty_key_is_missing(self, monkeypatch):
        monkeypatch.setenv("MISTRAL_API_KEY", "")
        assert not get_provider_settings("mistral").has_credentials

    def test_unknown_provider(self):
        settings = get_provider_settings("acme")
        assert settings.base_url is None
        assert not settings.has_credentials

    def test_timeout_follows_config(self, monkeypatch):
        monkeypatch.setenv("SWITCHBOARD_PROVIDER_TIMEOUT", "5")
        assert get_provider_settings("google").timeout_seconds == 5.0
