"""
base.py - Abstract base class and shared types for model providers.

This module defines the interface contract for model backends:
- ProviderAdapter: renders a prompt for a CPIR and calls one model
- ModelCallOptions / ModelCallResult: call inputs and metrics

Adapters do NOT own:
- Model selection (that's the router's job)
- Step persistence (that's the executor's job)
- Retry policies (a failed live call degrades to the offline responder)
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from switchboard.config.model_catalog import ModelCatalogEntry

from ..types import CPIR
from .prompt_renderer import render_canonical_prompt

# fallback_reason values recorded on steps
FALLBACK_OFFLINE_MODE = "offline_mode"
FALLBACK_UPSTREAM_ERROR = "upstream_error"


def approx_tokens(text: str) -> int:
    """Token estimate for text without a tokenizer: ceil(len/4), at least 1."""
    return max(1, math.ceil(len(text) / 4))


@dataclass(frozen=True)
class ModelCallOptions:
    """Per-call options passed to ``ProviderAdapter.call_model``."""

    model_id: str
    provider: str
    temperature: float = 0.2
    json_mode: bool = False
    trace_id: Optional[str] = None


@dataclass(frozen=True)
class ModelCallResult:
    """Text plus metrics returned by a model call.

    Attributes:
        text: Raw model output.
        input_tokens: Prompt tokens (reported or estimated).
        output_tokens: Completion tokens (reported or estimated).
        cost_usd: Estimated cost from catalog prices.
        latency_ms: Wall-clock latency of the call.
        fallback_reason: None for a live call, "offline_mode" when the
            offline responder answered because demo mode is on or
            credentials are missing, "upstream_error" when a live call
            failed and the offline responder stood in.
    """

    text: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    latency_ms: int
    fallback_reason: Optional[str] = None


class ProviderAdapter(ABC):
    """Abstract base class for model provider adapters."""

    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider key (e.g., 'openai', 'anthropic', 'mock')."""
        ...

    def render_prompt(self, cpir: CPIR, model: ModelCatalogEntry) -> str:
        """Render the prompt text for ``model`` from a CPIR.

        Adapters share the canonical renderer unless a backend needs its
        own framing.
        """
        return render_canonical_prompt(cpir, model)

    @abstractmethod
    async def call_model(self, prompt: str, options: ModelCallOptions) -> ModelCallResult:
        """Call the model with a rendered prompt.

        Args:
            prompt: Rendered prompt text.
            options: Model id, provider and call options.

        Returns:
            ModelCallResult with text and metrics.
        """
        ...

    @abstractmethod
    def is_enabled(self) -> bool:
        """Whether live calls are possible (credentials configured)."""
        ...
