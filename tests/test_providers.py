"""
Tests for provider adapters and the offline responder.

These tests verify:
1. The offline responder is deterministic per (model, prompt)
2. Live adapters answer offline in demo mode or without credentials
3. Live adapters parse vendor payloads (httpx.MockTransport)
4. Upstream failures fall back to the offline responder with a reason
5. Registry resolution
"""

import json

import httpx
import pytest

from switchboard.config.runtime_config import ProviderSettings
from switchboard.runtime.providers import (
    FALLBACK_OFFLINE_MODE,
    FALLBACK_UPSTREAM_ERROR,
    AnthropicProvider,
    GoogleProvider,
    ModelCallOptions,
    OfflineProvider,
    OpenAIProvider,
    ProviderRegistry,
    approx_tokens,
    render_canonical_prompt,
    synthesize_answer,
)
from switchboard.runtime.context_pack import build_context_pack
from switchboard.runtime.routing import build_cpir

from conftest import run_async


def _settings(name, base_url="https://api.test/v1", api_key="sk-test"):
    return ProviderSettings(name=name, api_key=api_key, base_url=base_url, api_version="2023-06-01")


def _options(model_id="gpt-4o-mini", provider="openai", json_mode=False):
    return ModelCallOptions(model_id=model_id, provider=provider, json_mode=json_mode, trace_id="trace-1")


@pytest.fixture
def live_mode(monkeypatch):
    monkeypatch.setenv("SWITCHBOARD_DEMO_MODE", "false")


class TestOfflineProvider:
    def test_deterministic(self):
        assert synthesize_answer("p", "gpt-4o-mini") == synthesize_answer("p", "gpt-4o-mini")
        assert synthesize_answer("p", "gpt-4o-mini") != synthesize_answer("p", "gpt-4.1")

    def test_call_metrics(self, catalog):
        provider = OfflineProvider(catalog)
        result = run_async(provider.call_model("hello world", _options("gpt-4o-mini", "mock")))
        assert result.input_tokens == approx_tokens("hello world")
        assert result.output_tokens == approx_tokens(result.text)
        assert result.latency_ms >= 35
        assert result.cost_usd > 0
        assert result.fallback_reason is None

    def test_unknown_model_is_free(self, catalog):
        result = run_async(OfflineProvider(catalog).call_model("x", _options("not-a-model", "mock")))
        assert result.cost_usd == 0

    def test_approx_tokens(self):
        assert approx_tokens("") == 1
        assert approx_tokens("abcd") == 1
        assert approx_tokens("abcde") == 2


class TestOfflineFallback:
    def test_demo_mode(self):
        adapter = OpenAIProvider(settings=_settings("openai"))
        result = run_async(adapter.call_model("hi", _options()))
        assert result.fallback_reason == FALLBACK_OFFLINE_MODE
        assert result.text == synthesize_answer("hi", "gpt-4o-mini")

    def test_missing_credentials(self, live_mode):
        adapter = OpenAIProvider(settings=_settings("openai", api_key=None))
        assert not adapter.is_enabled()
        result = run_async(adapter.call_model("hi", _options()))
        assert result.fallback_reason == FALLBACK_OFFLINE_MODE

    def test_env_credentials_enable_adapter(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        assert OpenAIProvider().is_enabled()
        assert not AnthropicProvider().is_enabled()


class TestLiveCalls:
    def test_openai_payload_and_parse(self, live_mode):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "choices": [{"message": {"content": "live answer"}}],
                    "usage": {"prompt_tokens": 11, "completion_tokens": 7},
                },
            )

        adapter = OpenAIProvider(settings=_settings("openai"), transport=httpx.MockTransport(handler))
        result = run_async(adapter.call_model("hi", _options(json_mode=True)))

        assert seen["url"] == "https://api.test/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "gpt-4o-mini"
        assert seen["body"]["messages"] == [{"role": "user", "content": "hi"}]
        assert seen["body"]["response_format"] == {"type": "json_object"}
        assert result.text == "live answer"
        assert (result.input_tokens, result.output_tokens) == (11, 7)
        assert result.fallback_reason is None
        assert result.cost_usd == pytest.approx(round(0.011 * 0.00015 + 0.007 * 0.0006, 6))

    def test_google_uses_openai_compatible_path(self, live_mode):
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

        adapter = GoogleProvider(settings=_settings("google"), transport=httpx.MockTransport(handler))
        result = run_async(adapter.call_model("hello", _options("gemini-2.5-flash", "google")))
        assert urls == ["https://api.test/v1/openai/chat/completions"]
        # usage missing: estimated from text
        assert result.output_tokens == approx_tokens("ok")
        assert result.input_tokens == approx_tokens("hello")

    def test_anthropic_payload_and_parse(self, live_mode):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "content": [{"type": "text", "text": "part one"}, {"type": "text", "text": "part two"}],
                    "usage": {"input_tokens": 20, "output_tokens": 5},
                },
            )

        adapter = AnthropicProvider(settings=_settings("anthropic"), transport=httpx.MockTransport(handler))
        result = run_async(adapter.call_model("hi", _options("claude-sonnet-4-20250514", "anthropic")))

        assert seen["url"] == "https://api.test/v1/messages"
        assert seen["headers"]["x-api-key"] == "sk-test"
        assert seen["headers"]["anthropic-version"] == "2023-06-01"
        assert seen["body"]["max_tokens"] == 1200
        assert result.text == "part one\npart two"
        assert (result.input_tokens, result.output_tokens) == (20, 5)


class TestUpstreamFallback:
    def test_http_error_status(self, live_mode, caplog):
        adapter = OpenAIProvider(
            settings=_settings("openai"),
            transport=httpx.MockTransport(lambda request: httpx.Response(503, text="overloaded")),
        )
        with caplog.at_level("WARNING"):
            result = run_async(adapter.call_model("hi", _options()))
        assert result.fallback_reason == FALLBACK_UPSTREAM_ERROR
        assert result.text == synthesize_answer("hi", "gpt-4o-mini")
        assert any("answering offline" in record.getMessage() for record in caplog.records)

    def test_transport_error(self, live_mode):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        adapter = AnthropicProvider(settings=_settings("anthropic"), transport=httpx.MockTransport(handler))
        result = run_async(adapter.call_model("hi", _options("claude-sonnet-4-20250514", "anthropic")))
        assert result.fallback_reason == FALLBACK_UPSTREAM_ERROR

    def test_malformed_payload(self, live_mode):
        adapter = OpenAIProvider(
            settings=_settings("openai"),
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="not json")),
        )
        result = run_async(adapter.call_model("hi", _options()))
        assert result.fallback_reason == FALLBACK_UPSTREAM_ERROR

    @pytest.mark.parametrize(
        "body",
        [
            [],
            "text",
            {"choices": ["oops"]},
            {"choices": {"message": {}}},
            {"choices": [{"message": "oops"}]},
            {"choices": [{"message": {"content": ["not", "text"]}}]},
            {"choices": [{"message": {"content": "ok"}}], "usage": ["bad"]},
        ],
    )
    def test_openai_wrong_shape(self, live_mode, body):
        adapter = OpenAIProvider(
            settings=_settings("openai"),
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body)),
        )
        result = run_async(adapter.call_model("hi", _options()))
        assert result.fallback_reason == FALLBACK_UPSTREAM_ERROR
        assert result.text == synthesize_answer("hi", "gpt-4o-mini")

    @pytest.mark.parametrize(
        "body",
        [
            [],
            "text",
            {"content": ["oops"]},
            {"content": "oops"},
            {"content": [{"type": "text", "text": "ok"}], "usage": 7},
        ],
    )
    def test_anthropic_wrong_shape(self, live_mode, body):
        adapter = AnthropicProvider(
            settings=_settings("anthropic"),
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body)),
        )
        result = run_async(adapter.call_model("hi", _options("claude-sonnet-4-20250514", "anthropic")))
        assert result.fallback_reason == FALLBACK_UPSTREAM_ERROR


class TestRegistry:
    def test_default_adapters(self):
        providers = ProviderRegistry().providers
        assert set(providers) == {"mock", "openai", "anthropic", "google", "mistral"}

    def test_unknown_provider_resolves_offline(self):
        registry = ProviderRegistry()
        assert registry.resolve("nonexistent") is registry.resolve("mock")


class TestPromptRenderer:
    def test_render_includes_sections(self, catalog):
        text = "Return JSON describing the plan"
        cpir = build_cpir(text, build_context_pack(text, [], []), constraints={"tone": "terse"})
        prompt = render_canonical_prompt(cpir, catalog.get("gpt-4.1"))
        lines = prompt.split("\n")
        assert lines[0] == "You are gpt-4.1 acting as a specialist assistant."
        assert 'Constraints: {"tone":"terse"}' in lines
        assert 'OutputContract: {"type":"json","schema":{"answer":"string","actions":"string[]"}}' in lines
        assert "Summary: No prior context yet." in lines
        assert lines[-3] == text
        assert prompt == render_canonical_prompt(cpir, catalog.get("gpt-4.1"))
