"""Canonical prompt rendering shared by every provider adapter."""

from __future__ import annotations

import json

from switchboard.config.model_catalog import ModelCatalogEntry

from ..types import CPIR


def render_canonical_prompt(cpir: CPIR, model: ModelCatalogEntry) -> str:
    """Render a CPIR as the plain-text prompt sent to ``model``.

    The rendering is pure: the same CPIR and model always give the same text.
    """
    pack = cpir.context_pack
    constraints = cpir.constraints.model_dump(exclude_none=True)
    output_contract = cpir.output_contract.model_dump(by_alias=True, exclude_none=True)

    lines = [
        f"You are {model.model_id} acting as a specialist assistant.",
        f"Intent: {cpir.intent}",
        f"TaskType: {cpir.task_type}",
        f"Depth: {cpir.depth}",
        f"Constraints: {json.dumps(constraints, separators=(',', ':'))}",
        f"OutputContract: {json.dumps(output_contract, separators=(',', ':'))}",
        "ContextPack:",
        f"Summary: {pack.summary}",
        f"Facts: {' | '.join(pack.facts)}",
        f"Decisions: {' | '.join(pack.decisions)}",
        f"OpenQuestions: {' | '.join(pack.open_questions)}",
        f"ConstraintsList: {' | '.join(pack.constraints)}",
        "RecentTurns:",
    ]
    lines.extend(f"{turn.role.upper()}: {turn.content}" for turn in pack.recent_turns)
    lines.extend(
        [
            "UserRequest:",
            cpir.inputs.user_text,
            "Respond with clear reasoning and explicit assumptions.",
            "If you make claims, keep them concise and list action items when relevant.",
        ]
    )
    return "\n".join(lines)
