"""Request classification and deterministic model routing."""

from .classifier import classify_depth, classify_task_type, infer_intent, infer_output_contract
from .router import build_cpir, decide_route, resolve_preferences
from .scorer import (
    build_router_decision,
    estimate_token_need,
    merge_preference_caps,
    resolve_caps,
    score_candidates,
)

__all__ = [
    "classify_depth",
    "classify_task_type",
    "infer_intent",
    "infer_output_contract",
    "build_cpir",
    "decide_route",
    "resolve_preferences",
    "build_router_decision",
    "estimate_token_need",
    "merge_preference_caps",
    "resolve_caps",
    "score_candidates",
]
