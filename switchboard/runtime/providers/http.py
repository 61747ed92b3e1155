"""
http.py - Live provider adapters over HTTP (httpx).

Each adapter calls one vendor API and degrades to the offline responder
instead of failing the run:

- demo mode on, or no API key configured -> offline, fallback_reason="offline_mode"
- transport error, HTTP error status or malformed payload -> offline,
  fallback_reason="upstream_error" (logged at WARNING)

Adapters:
    OpenAIProvider      POST {base}/chat/completions
    GoogleProvider      POST {base}/openai/chat/completions (OpenAI-compatible)
    MistralProvider     POST {base}/chat/completions (OpenAI-compatible)
    AnthropicProvider   POST {base}/messages
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Any, Dict, Optional, Tuple

import httpx

from switchboard.config.model_catalog import ModelCatalog, default_catalog, estimate_cost_usd
from switchboard.config.runtime_config import ProviderSettings, get_provider_settings, is_demo_mode

from ..errors import ProviderError
from .base import (
    FALLBACK_OFFLINE_MODE,
    FALLBACK_UPSTREAM_ERROR,
    ModelCallOptions,
    ModelCallResult,
    ProviderAdapter,
    approx_tokens,
)
from .offline import OfflineProvider

logger = logging.getLogger(__name__)

ANTHROPIC_MAX_TOKENS = 1200
DEFAULT_ANTHROPIC_VERSION = "2023-06-01"


class HttpProviderAdapter(ProviderAdapter):
    """Shared call/fallback logic for live adapters.

    Subclasses supply the endpoint, headers, payload and response parsing.
    """

    provider_key = ""

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        catalog: Optional[ModelCatalog] = None,
        offline: Optional[OfflineProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the adapter.

        Args:
            settings: Connection settings; resolved from config per call when None.
            catalog: Catalog used for cost estimates.
            offline: Offline responder used for fallbacks.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self._settings = settings
        self._catalog = catalog
        self._offline = offline or OfflineProvider(catalog)
        self._transport = transport

    @property
    def provider(self) -> str:
        return self.provider_key

    @property
    def settings(self) -> ProviderSettings:
        return self._settings or get_provider_settings(self.provider_key)

    def is_enabled(self) -> bool:
        return self.settings.has_credentials

    async def call_model(self, prompt: str, options: ModelCallOptions) -> ModelCallResult:
        settings = self.settings
        if is_demo_mode() or not settings.has_credentials:
            logger.debug("%s answering offline for %s (demo mode or no credentials)", self.provider, options.model_id)
            result = await self._offline.call_model(prompt, options)
            return replace(result, fallback_reason=FALLBACK_OFFLINE_MODE)

        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=settings.timeout_seconds, transport=self._transport) as client:
                response = await client.post(
                    self._endpoint(settings),
                    headers=self._headers(settings),
                    json=self._payload(prompt, options),
                )
            if response.status_code >= 400:
                raise ProviderError(self.provider, response.text[:200], status_code=response.status_code)
            text, input_tokens, output_tokens = self._parse(response.json(), prompt)
        except (httpx.HTTPError, ProviderError, ValueError, KeyError, TypeError) as e:
            logger.warning(
                "%s call for %s failed, answering offline: %s (trace_id=%s)",
                self.provider,
                options.model_id,
                e,
                options.trace_id,
            )
            result = await self._offline.call_model(prompt, options)
            return replace(result, fallback_reason=FALLBACK_UPSTREAM_ERROR)

        entry = (self._catalog or default_catalog()).get(options.model_id)
        return ModelCallResult(
            text=text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=estimate_cost_usd(entry, input_tokens, output_tokens) if entry else 0.0,
            latency_ms=int((time.perf_counter() - started) * 1000),
        )

    # -------------------------------------------------------------------------
    # Vendor specifics
    # -------------------------------------------------------------------------

    def _endpoint(self, settings: ProviderSettings) -> str:
        raise NotImplementedError

    def _headers(self, settings: ProviderSettings) -> Dict[str, str]:
        raise NotImplementedError

    def _payload(self, prompt: str, options: ModelCallOptions) -> Dict[str, Any]:
        raise NotImplementedError

    def _parse(self, data: Any, prompt: str) -> Tuple[str, int, int]:
        raise NotImplementedError


def _mapping(value: Any, provider: str, what: str) -> Dict[str, Any]:
    """Return ``value`` if it is a JSON object, else raise ProviderError."""
    if not isinstance(value, dict):
        raise ProviderError(provider, f"malformed payload: {what} is {type(value).__name__}, expected object")
    return value


def _usage(usage: Dict[str, Any], key: str, fallback_text: str) -> int:
    value = usage.get(key)
    return int(value) if value is not None else approx_tokens(fallback_text)


class OpenAICompatibleProvider(HttpProviderAdapter):
    """Chat-completions style API with Bearer auth."""

    chat_path = "/chat/completions"

    def _endpoint(self, settings: ProviderSettings) -> str:
        return f"{(settings.base_url or '').rstrip('/')}{self.chat_path}"

    def _headers(self, settings: ProviderSettings) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {settings.api_key}",
        }

    def _payload(self, prompt: str, options: ModelCallOptions) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": options.model_id,
            "temperature": options.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _parse(self, data: Any, prompt: str) -> Tuple[str, int, int]:
        data = _mapping(data, self.provider, "response")
        choices = data.get("choices") or []
        if not isinstance(choices, list):
            raise ProviderError(self.provider, "malformed payload: choices is not a list")
        choice = _mapping(choices[0], self.provider, "choice") if choices else {}
        message = _mapping(choice.get("message") or {}, self.provider, "message")
        text = message.get("content") or ""
        if not isinstance(text, str):
            raise ProviderError(self.provider, "malformed payload: message content is not a string")
        usage = _mapping(data.get("usage") or {}, self.provider, "usage")
        return (
            text,
            _usage(usage, "prompt_tokens", prompt),
            _usage(usage, "completion_tokens", text),
        )


class OpenAIProvider(OpenAICompatibleProvider):
    provider_key = "openai"


class GoogleProvider(OpenAICompatibleProvider):
    """Gemini through its OpenAI-compatible endpoint."""

    provider_key = "google"
    chat_path = "/openai/chat/completions"


class MistralProvider(OpenAICompatibleProvider):
    provider_key = "mistral"


class AnthropicProvider(HttpProviderAdapter):
    provider_key = "anthropic"

    def _endpoint(self, settings: ProviderSettings) -> str:
        return f"{(settings.base_url or '').rstrip('/')}/messages"

    def _headers(self, settings: ProviderSettings) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": settings.api_key or "",
            "anthropic-version": settings.api_version or DEFAULT_ANTHROPIC_VERSION,
        }

    def _payload(self, prompt: str, options: ModelCallOptions) -> Dict[str, Any]:
        return {
            "model": options.model_id,
            "max_tokens": ANTHROPIC_MAX_TOKENS,
            "temperature": options.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }

    def _parse(self, data: Any, prompt: str) -> Tuple[str, int, int]:
        data = _mapping(data, self.provider, "response")
        blocks = data.get("content") or []
        if not isinstance(blocks, list):
            raise ProviderError(self.provider, "malformed payload: content is not a list")
        blocks = [_mapping(block, self.provider, "content block") for block in blocks]
        text = "\n".join(
            block["text"] for block in blocks if block.get("type") == "text" and isinstance(block.get("text"), str)
        )
        usage = _mapping(data.get("usage") or {}, self.provider, "usage")
        return (
            text,
            _usage(usage, "input_tokens", prompt),
            _usage(usage, "output_tokens", text),
        )
