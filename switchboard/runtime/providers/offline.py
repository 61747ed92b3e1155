"""
offline.py - Deterministic offline responder.

Answers every call without network access. The reply is synthesized from a
hash of the model id and prompt, so the same prompt to the same model always
gets the same text, and different models get recognizably different text.
The reply uses the Answer / Claims / Actions / CodeBlocks headings the
output normalizer understands.

Used directly for the "mock" provider, and as the stand-in for every live
adapter when demo mode is on, credentials are missing, or a call fails.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from switchboard.config.model_catalog import (
    PLACEHOLDER_MODEL,
    ModelCatalog,
    default_catalog,
    estimate_cost_usd,
)

from .base import ModelCallOptions, ModelCallResult, ProviderAdapter, approx_tokens

logger = logging.getLogger(__name__)

SIMULATED_LATENCY_MS = 35

FRAMINGS = (
    "Focus on reliability and incremental execution.",
    "Bias toward fast wins and measurable checkpoints.",
    "Optimize for output quality with explicit tradeoffs.",
)

ACTIONS = (
    "Define CPIR and ContextPack contracts first.",
    "Execute compare/chain through the same DAG runner.",
    "Store per-step prompt, cost, latency, and parsed outputs.",
)


def prompt_hash(text: str) -> int:
    """Stable 31-multiplier string hash modulo 1000003."""
    acc = 0
    for char in text:
        acc = (acc * 31 + ord(char)) % 1000003
    return acc


def synthesize_answer(prompt: str, model_id: str) -> str:
    """Build the deterministic structured reply for ``model_id``."""
    framing = FRAMINGS[prompt_hash(f"{model_id}:{prompt}") % len(FRAMINGS)]
    claims = [
        f"Claim A ({model_id}): The request needs run-level orchestration primitives before model tuning.",
        f"Claim B ({model_id}): Explanations are strongest when router factors are persisted per step.",
        f"Claim C ({model_id}): Memory selection should stay model-agnostic and relevance-scored.",
    ]
    return "\n".join(
        [
            framing,
            "",
            "Answer:",
            f"This is a deterministic mock response generated for {model_id}.",
            "",
            "Claims:",
            *claims,
            "",
            "Actions:",
            *ACTIONS,
            "",
            "CodeBlocks:",
            "```python",
            'StepPlanNode(id="draft", type=StepType.DRAFT, depends_on=("router",))',
            "```",
        ]
    )


class OfflineProvider(ProviderAdapter):
    """Provider adapter that never leaves the process."""

    def __init__(self, catalog: Optional[ModelCatalog] = None):
        self._catalog = catalog

    @property
    def provider(self) -> str:
        return "mock"

    @property
    def catalog(self) -> ModelCatalog:
        return self._catalog or default_catalog()

    async def call_model(self, prompt: str, options: ModelCallOptions) -> ModelCallResult:
        started = time.perf_counter()
        text = synthesize_answer(prompt, options.model_id)
        input_tokens = approx_tokens(prompt)
        output_tokens = approx_tokens(text)
        entry = self.catalog.get(options.model_id) or self.catalog.get(PLACEHOLDER_MODEL.model_id) or PLACEHOLDER_MODEL
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        return ModelCallResult(
            text=text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=estimate_cost_usd(entry, input_tokens, output_tokens),
            latency_ms=elapsed_ms + SIMULATED_LATENCY_MS,
        )

    def is_enabled(self) -> bool:
        return True
