"""Heuristic request classification.

Pure functions over the user text: no I/O, no randomness. The same text
always yields the same task type, depth, output contract and intent.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Tuple

from ..types import Depth, TaskType

# Checked in this order; the first category with a matching hint wins.
TASK_HINTS: Tuple[Tuple[TaskType, Tuple[str, ...]], ...] = (
    ("coding", ("code", "debug", "typescript", "javascript", "python", "sql", "bug", "refactor")),
    ("research", ("research", "sources", "citation", "compare studies", "paper", "market")),
    ("creative", ("poem", "story", "creative", "lyrics", "brainstorm name", "script")),
    ("extraction", ("extract", "parse", "json", "table", "summarize into fields")),
    ("planning", ("plan", "roadmap", "timeline", "steps", "prioritize")),
    ("critique", ("critique", "review", "feedback", "evaluate")),
)

DEEP_HINTS = ("step-by-step", "deep", "thorough", "tradeoff", "architecture", "prove", "rigorous")
MEDIUM_HINTS = ("explain", "analyze", "compare", "justify")

DEEP_LENGTH = 900
MEDIUM_LENGTH = 350
INTENT_MAX_CHARS = 120

JSON_SCHEMA_STUB: Dict[str, str] = {"answer": "string", "actions": "string[]"}


def _includes_any(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)


def classify_task_type(user_text: str) -> TaskType:
    """Return the first task category whose hints occur in the text, else "reasoning"."""
    normalized = user_text.lower()
    for task_type, hints in TASK_HINTS:
        if _includes_any(normalized, hints):
            return task_type
    return "reasoning"


def classify_depth(user_text: str) -> Depth:
    """Classify how much depth a request needs from its length and wording."""
    normalized = user_text.lower()
    if len(user_text) > DEEP_LENGTH or _includes_any(normalized, DEEP_HINTS):
        return "deep"
    if len(user_text) > MEDIUM_LENGTH or _includes_any(normalized, MEDIUM_HINTS):
        return "medium"
    return "shallow"


def infer_output_contract(user_text: str) -> Dict[str, Any]:
    """Infer the expected output shape.

    Returns:
        A dict accepted by OutputContract: ``json`` with a two-field schema
        stub, ``sections``, or ``freeform``.
    """
    normalized = user_text.lower()
    if "json" in normalized or "schema" in normalized:
        return {"type": "json", "schema": dict(JSON_SCHEMA_STUB)}
    if "sections" in normalized or "bullet" in normalized:
        return {"type": "sections"}
    return {"type": "freeform"}


def infer_intent(user_text: str) -> str:
    """The trimmed text, cut to 120 characters with an ellipsis."""
    trimmed = user_text.strip()
    if len(trimmed) <= INTENT_MAX_CHARS:
        return trimmed
    return f"{trimmed[: INTENT_MAX_CHARS - 3]}..."
