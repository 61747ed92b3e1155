"""Model provider adapters and the deterministic offline responder."""

from .base import (
    FALLBACK_OFFLINE_MODE,
    FALLBACK_UPSTREAM_ERROR,
    ModelCallOptions,
    ModelCallResult,
    ProviderAdapter,
    approx_tokens,
)
from .http import AnthropicProvider, GoogleProvider, HttpProviderAdapter, MistralProvider, OpenAIProvider
from .offline import OfflineProvider, synthesize_answer
from .prompt_renderer import render_canonical_prompt
from .registry import ProviderRegistry

__all__ = [
    "FALLBACK_OFFLINE_MODE",
    "FALLBACK_UPSTREAM_ERROR",
    "ModelCallOptions",
    "ModelCallResult",
    "ProviderAdapter",
    "approx_tokens",
    "AnthropicProvider",
    "GoogleProvider",
    "HttpProviderAdapter",
    "MistralProvider",
    "OpenAIProvider",
    "OfflineProvider",
    "synthesize_answer",
    "render_canonical_prompt",
    "ProviderRegistry",
]
