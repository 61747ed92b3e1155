"""Router entry points: CPIR construction and route decisions."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

from switchboard.config.model_catalog import ModelCatalog, default_catalog

from ..types import CPIR, ContextPack, RouterDecision, RouterPreferences, validate_contract
from .classifier import classify_depth, classify_task_type, infer_intent, infer_output_contract
from .scorer import build_router_decision

logger = logging.getLogger(__name__)

PreferencesInput = Union[RouterPreferences, Dict[str, Any], None]


def build_cpir(
    user_text: str,
    context_pack: ContextPack,
    constraints: Optional[Dict[str, Any]] = None,
) -> CPIR:
    """Build and validate the CPIR for one request.

    Args:
        user_text: Raw user request.
        context_pack: Compiled context for the session.
        constraints: Caller constraints, already merged with preference caps.

    Returns:
        The frozen CPIR.

    Raises:
        ContractViolationError: If the text is empty or a field is malformed.
    """
    cpir = {
        "intent": infer_intent(user_text),
        "task_type": classify_task_type(user_text),
        "depth": classify_depth(user_text),
        "constraints": constraints or {},
        "inputs": {"user_text": user_text},
        "context_pack": context_pack,
        "output_contract": infer_output_contract(user_text),
    }
    return validate_contract(CPIR, cpir)


def resolve_preferences(preferences: PreferencesInput = None) -> RouterPreferences:
    """Validate preferences, defaulting ``quality_bias`` to 50."""
    if isinstance(preferences, RouterPreferences):
        return preferences
    return validate_contract(RouterPreferences, {"quality_bias": 50, **(preferences or {})})


def decide_route(
    cpir: CPIR,
    preferences: PreferencesInput = None,
    catalog: Optional[ModelCatalog] = None,
) -> RouterDecision:
    """Score the catalog for ``cpir`` and return the routing decision."""
    prefs = resolve_preferences(preferences)
    decision = build_router_decision(cpir, prefs, catalog or default_catalog())
    logger.info(
        "Routed %s/%s request to %s (%s)",
        cpir.task_type,
        cpir.depth,
        decision.chosen.model_id,
        decision.chosen.provider,
    )
    return decision
