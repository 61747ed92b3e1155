"""
context_pack.py - ContextPack compiler for model-step hydration.

This module builds the bounded, relevance-ranked ContextPack that every
model call sees. A ContextPack contains the recent conversation window, a
two-sentence synopsis of it, and the long-term memory items most relevant to
the current request, bucketed by memory type.

The compiler is called when a message is posted (to build the CPIR) and
again before every model-executing step, so a model step always sees the
memory state as of its own execution.

Usage:
    from switchboard.runtime.context_pack import compile_context_pack

    pack = await compile_context_pack(store, session_id, user_text)
    pack.recent_turns  # at most 8 turns, chronological
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from switchboard.config.runtime_config import ContextLimits, get_context_limits

from .types import ContextPack, MemoryItem, MemoryItemType, Message, MessageRole, validate_contract

if TYPE_CHECKING:
    from .store import RunStore

# Module logger
logger = logging.getLogger(__name__)

MEMORY_ENTRY_MAX_CHARS = 200
SUMMARY_SNIPPET_MAX_CHARS = 160
EMPTY_SUMMARY = "No prior context yet."

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")

# Memory type -> ContextPack list it lands in.
_BUCKETS: Dict[MemoryItemType, str] = {
    MemoryItemType.FACT: "facts",
    MemoryItemType.DECISION: "decisions",
    MemoryItemType.PREFERENCE: "constraints",
    MemoryItemType.ARTIFACT_REF: "open_questions",
}


def truncate(text: str, max_chars: int) -> str:
    """Cut ``text`` to at most ``max_chars`` characters, marking the cut with '...'."""
    if len(text) <= max_chars:
        return text
    return f"{text[: max_chars - 3]}..."


def tokenize(text: str) -> List[str]:
    """Lower-cased alphanumeric tokens longer than two characters."""
    cleaned = _NON_ALNUM.sub(" ", text.lower())
    return [token for token in cleaned.split() if len(token) > 2]


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def score_memory_relevance(user_text: str, key: str, value: Any) -> int:
    """Count memory tokens that also occur in the query.

    The query side is a set; repeated tokens in the memory text each count.

    Args:
        user_text: The current request text.
        key: Memory item key.
        value: Memory item JSON value.

    Returns:
        Non-negative relevance score.
    """
    query_tokens = set(tokenize(user_text))
    memory_tokens = tokenize(f"{key} {_compact_json(value)}")
    return sum(1 for token in memory_tokens if token in query_tokens)


def rank_memory(user_text: str, items: Sequence[MemoryItem], top_k: int) -> List[MemoryItem]:
    """Order memory items by relevance then confidence, keeping the top ``top_k``.

    The sort is stable, so items with equal score and confidence keep the
    store's order (most recently updated first).
    """
    scored: List[Tuple[MemoryItem, int]] = [
        (item, score_memory_relevance(user_text, item.key, item.value)) for item in items
    ]
    scored.sort(key=lambda pair: (-pair[1], -pair[0].confidence))
    return [item for item, _ in scored[:top_k]]


def summarize_turns(turns: Sequence[Message]) -> str:
    """Two-sentence synopsis of the latest user and assistant turns.

    Args:
        turns: Messages in chronological order.

    Returns:
        The synopsis, or a fixed placeholder when there are no turns.
    """
    if not turns:
        return EMPTY_SUMMARY

    latest_user: Optional[Message] = None
    latest_assistant: Optional[Message] = None
    for turn in reversed(turns):
        if latest_user is None and turn.role == MessageRole.USER:
            latest_user = turn
        elif latest_assistant is None and turn.role == MessageRole.ASSISTANT:
            latest_assistant = turn
        if latest_user and latest_assistant:
            break

    user_snippet = (
        truncate(latest_user.content, SUMMARY_SNIPPET_MAX_CHARS) if latest_user else "No user message yet."
    )
    assistant_snippet = (
        truncate(latest_assistant.content, SUMMARY_SNIPPET_MAX_CHARS)
        if latest_assistant
        else "No assistant response yet."
    )
    return f'Recent focus: user asked "{user_snippet}". Assistant context: "{assistant_snippet}".'


def build_context_pack(
    user_text: str,
    recent_messages: Sequence[Message],
    memory_items: Sequence[MemoryItem],
    limits: Optional[ContextLimits] = None,
) -> ContextPack:
    """Assemble a ContextPack from already-fetched records.

    Args:
        user_text: The current request text, used for memory relevance.
        recent_messages: Recent messages, newest first (store order).
        memory_items: Enabled memory items, most recently updated first.
        limits: Window and ranking bounds; defaults to configuration.

    Returns:
        A validated ContextPack.

    Raises:
        ContractViolationError: If the assembled pack fails validation.
    """
    limits = limits or get_context_limits()
    ordered_turns = list(reversed(recent_messages[: limits.recent_turn_limit]))
    ranked = rank_memory(user_text, [m for m in memory_items if m.enabled], limits.memory_top_k)

    buckets: Dict[str, List[str]] = {name: [] for name in _BUCKETS.values()}
    for item in ranked:
        content = truncate(f"{item.key}: {_compact_json(item.value)}", MEMORY_ENTRY_MAX_CHARS)
        buckets[_BUCKETS[item.type]].append(content)

    pack = {
        "summary": summarize_turns(ordered_turns),
        "facts": buckets["facts"],
        "decisions": buckets["decisions"],
        "open_questions": buckets["open_questions"],
        "constraints": buckets["constraints"],
        "recent_turns": [
            {"role": turn.role.value, "content": truncate(turn.content, limits.recent_turn_max_chars)}
            for turn in ordered_turns
        ],
        "memory_refs": [{"memory_item_id": item.id, "key": item.key} for item in ranked],
    }
    return validate_contract(ContextPack, pack)


async def compile_context_pack(
    store: "RunStore",
    session_id: str,
    user_text: str,
    limits: Optional[ContextLimits] = None,
) -> ContextPack:
    """Compile the ContextPack for a session and request.

    Fetches the most recent messages and the session's enabled memory items
    from the store, then ranks and bounds them.

    Args:
        store: Run store holding the session's messages and memory.
        session_id: Session to compile context for.
        user_text: The current request text.
        limits: Optional bounds override (tests).

    Returns:
        A validated ContextPack.
    """
    limits = limits or get_context_limits()
    messages = await store.list_recent_messages(session_id, limits.recent_turn_limit)
    memory_items = await store.list_memory_items(session_id, enabled_only=True)
    pack = build_context_pack(user_text, messages, memory_items, limits)
    logger.debug(
        "Compiled context pack for session %s: %d turns, %d memory refs",
        session_id,
        len(pack.recent_turns),
        len(pack.memory_refs),
    )
    return pack
