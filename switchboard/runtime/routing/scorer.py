"""
scorer.py - Deterministic model scoring for the router.

Every catalog entry is scored against the CPIR's task type, depth and output
contract and the caller's preferences:

    score = wQuality*quality - wCost*cost - wLatency*latency
            - wRisk*risk + wPreference*preferenceBonus

Weights shift with ``quality_bias``: a high bias rewards quality tiers, a
low bias rewards cheap and fast models. Candidates whose projected cost or
latency exceeds an active cap lose 4 points per exceeded cap, and the cap
is named in their reasons.

The scorer has no randomness and no wall-clock terms; identical inputs give
identical candidate lists in identical order.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from switchboard.config.model_catalog import ModelCatalog, ModelCatalogEntry

from ..types import (
    CPIR,
    Constraints,
    RouterCandidate,
    RouterDecision,
    RouterPreferences,
    validate_contract,
)

logger = logging.getLogger(__name__)

TASK_QUALITY_BONUS: Dict[str, float] = {
    "coding": 1.2,
    "reasoning": 1.0,
    "creative": 0.8,
    "research": 1.1,
    "extraction": 0.7,
    "planning": 0.9,
    "critique": 1.0,
}

DEPTH_MULTIPLIER: Dict[str, float] = {
    "shallow": 0.7,
    "medium": 1.0,
    "deep": 1.25,
}

TOKEN_OVERHEAD = 200
MIN_PROJECTED_OUTPUT_TOKENS = 250
CAP_PENALTY = 4.0


@dataclass(frozen=True)
class PreferenceWeights:
    quality: float
    cost: float
    latency: float
    risk: float
    preference: float


def preference_weights(prefs: RouterPreferences) -> PreferenceWeights:
    """Derive scoring weights from the quality bias."""
    quality_factor = prefs.quality_bias / 100
    return PreferenceWeights(
        quality=0.9 + quality_factor,
        cost=1.1 - quality_factor * 0.8,
        latency=0.9 - quality_factor * 0.5,
        risk=0.6,
        preference=0.3 + quality_factor * 0.4,
    )


def resolve_caps(constraints: Constraints, prefs: RouterPreferences) -> Tuple[Optional[float], Optional[float]]:
    """Effective (cost cap, latency cap) for a request.

    An explicit CPIR constraint always wins. A preference cap applies only
    when its ``*_cap_enabled`` flag is set and the constraint is absent.

    Returns:
        Tuple of (max_cost_usd, max_latency_ms); None means uncapped.
    """
    cost_cap = constraints.max_cost_usd
    if cost_cap is None and prefs.cost_cap_enabled:
        cost_cap = prefs.max_cost_usd

    latency_cap = constraints.max_latency_ms
    if latency_cap is None and prefs.latency_cap_enabled:
        latency_cap = prefs.max_latency_ms

    return cost_cap, latency_cap


def merge_preference_caps(constraints: Optional[Dict[str, Any]], prefs: RouterPreferences) -> Dict[str, Any]:
    """Fold enabled preference caps into caller constraints.

    Uses the same precedence as scoring (see ``resolve_caps``) so the CPIR
    snapshot and the scorer agree on which cap is active.
    """
    merged = {key: value for key, value in (constraints or {}).items() if value is not None}
    cost_cap, latency_cap = resolve_caps(Constraints(**merged), prefs)
    if cost_cap is not None:
        merged["max_cost_usd"] = cost_cap
    if latency_cap is not None:
        merged["max_latency_ms"] = latency_cap
    return merged


def _quarter(text: str) -> int:
    return math.ceil(len(text) / 4)


def estimate_token_need(cpir: CPIR) -> int:
    """Rough prompt size: ceil(len/4) per context part plus a fixed overhead."""
    pack = cpir.context_pack
    return (
        _quarter(cpir.inputs.user_text)
        + _quarter(pack.summary)
        + sum(_quarter(fact) for fact in pack.facts)
        + sum(_quarter(decision) for decision in pack.decisions)
        + sum(_quarter(turn.content) for turn in pack.recent_turns)
        + TOKEN_OVERHEAD
    )


def _risk(entry: ModelCatalogEntry, cpir: CPIR) -> float:
    risk = 0.0
    if cpir.output_contract.type == "json" and not entry.supports_json:
        risk += 2
    if cpir.depth == "deep" and entry.quality_tier < 3:
        risk += 1.2
    return risk


def _preference_bonus(entry: ModelCatalogEntry, prefs: RouterPreferences) -> float:
    quality_factor = prefs.quality_bias / 100
    quality_bias = entry.quality_tier * quality_factor
    speed_cost_bias = ((entry.speed_tier + (6 - entry.cost_tier)) / 2) * (1 - quality_factor)
    return quality_bias + speed_cost_bias


def _cap_penalties(entry: ModelCatalogEntry, cpir: CPIR, prefs: RouterPreferences, token_estimate: int) -> List[str]:
    penalties: List[str] = []
    # Half-up rounding keeps projections identical across platforms.
    projected_output = max(MIN_PROJECTED_OUTPUT_TOKENS, math.floor(token_estimate * 0.6 + 0.5))
    projected_cost = (token_estimate / 1000) * entry.input_usd_per_1k + (
        projected_output / 1000
    ) * entry.output_usd_per_1k
    projected_latency = (6 - entry.speed_tier) * 600 + (1200 if cpir.depth == "deep" else 400)

    cost_cap, latency_cap = resolve_caps(cpir.constraints, prefs)
    if cost_cap is not None and projected_cost > cost_cap:
        penalties.append(f"Projected cost {projected_cost:.4f} exceeds cap.")
    if latency_cap is not None and projected_latency > latency_cap:
        penalties.append(f"Projected latency {projected_latency}ms exceeds cap.")
    return penalties


def score_candidates(cpir: CPIR, prefs: RouterPreferences, catalog: ModelCatalog) -> List[RouterCandidate]:
    """Score every catalog entry, in catalog order.

    Args:
        cpir: The request representation.
        prefs: Router preferences.
        catalog: Models to score.

    Returns:
        One RouterCandidate per catalog entry, unsorted.
    """
    weights = preference_weights(prefs)
    token_estimate = estimate_token_need(cpir)
    depth_multiplier = DEPTH_MULTIPLIER[cpir.depth]

    candidates: List[RouterCandidate] = []
    for entry in catalog:
        quality = entry.quality_tier * TASK_QUALITY_BONUS[cpir.task_type] * depth_multiplier
        cost = entry.cost_tier
        latency = 6 - entry.speed_tier
        risk = _risk(entry, cpir)
        preference = _preference_bonus(entry, prefs)

        score = (
            weights.quality * quality
            - weights.cost * cost
            - weights.latency * latency
            - weights.risk * risk
            + weights.preference * preference
        )

        reasons = [
            f"quality={quality:.2f}",
            f"costTier={entry.cost_tier}",
            f"speedTier={entry.speed_tier}",
            f"risk={risk:.2f}",
        ]
        penalties = _cap_penalties(entry, cpir, prefs, token_estimate)
        if penalties:
            reasons.extend(penalties)
            score -= CAP_PENALTY * len(penalties)

        candidates.append(
            RouterCandidate(provider=entry.provider, model_id=entry.model_id, score=score, reasons=reasons)
        )
    return candidates


def build_router_decision(cpir: CPIR, prefs: RouterPreferences, catalog: ModelCatalog) -> RouterDecision:
    """Rank candidates (stable, descending score) and pick the top one."""
    candidates = sorted(score_candidates(cpir, prefs, catalog), key=lambda c: -c.score)
    chosen = candidates[0]
    decision = {
        "chosen": {"provider": chosen.provider, "model_id": chosen.model_id},
        "candidates": candidates,
        "token_estimate": estimate_token_need(cpir),
        "reasoning": (
            f"Selected {chosen.model_id} for {cpir.task_type}/{cpir.depth} "
            f"with preference bias {prefs.quality_bias:g}."
        ),
    }
    logger.debug("Router chose %s from %d candidates", chosen.model_id, len(candidates))
    return validate_contract(RouterDecision, decision)
