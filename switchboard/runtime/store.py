"""
store.py - Run store interface and in-memory implementation.

The run store owns every persisted entity the engine touches: sessions,
messages, runs, steps, artifacts and memory items. The engine only talks to
the abstract RunStore, so the same executor runs against the in-memory store
(tests, demo CLI) and the DuckDB store (durable runs).

Contract:
    - Writes are visible to the next read issued by the same caller
      (single-writer, read-your-writes).
    - Concurrent writes to distinct step/run rows are safe.
    - Recent-message lookups return newest first; callers reorder.

Usage:
    from switchboard.runtime.store import InMemoryRunStore

    store = InMemoryRunStore()
    session = await store.create_session("Scratchpad")
    message = await store.create_message(session.id, MessageRole.USER, "hi")
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Optional

from .types import (
    Artifact,
    MemoryItem,
    Message,
    MessageRole,
    Run,
    RunWithRelations,
    Session,
    Step,
    StepStatus,
    generate_id,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepTotals:
    """Summed metrics over all steps of a run."""

    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    latency_ms: int = 0


def _check_fields(record_type: type, changes: Dict[str, Any]) -> None:
    known = {f.name for f in fields(record_type)}
    unknown = sorted(set(changes) - known)
    if unknown:
        raise ValueError(f"Unknown {record_type.__name__} field(s): {', '.join(unknown)}")


class RunStore(ABC):
    """Abstract persistence interface used by the engine and services."""

    # Sessions -----------------------------------------------------------------

    @abstractmethod
    async def create_session(self, title: str) -> Session: ...

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]: ...

    @abstractmethod
    async def list_sessions(self) -> List[Session]:
        """List sessions, most recently updated first."""
        ...

    # Messages -----------------------------------------------------------------

    @abstractmethod
    async def create_message(self, session_id: str, role: MessageRole, content: str) -> Message: ...

    @abstractmethod
    async def get_message(self, message_id: str) -> Optional[Message]: ...

    @abstractmethod
    async def list_recent_messages(self, session_id: str, limit: int) -> List[Message]:
        """Return at most ``limit`` messages, newest first."""
        ...

    @abstractmethod
    async def list_messages(self, session_id: str) -> List[Message]:
        """Return every message of a session in chronological order."""
        ...

    # Runs ---------------------------------------------------------------------

    @abstractmethod
    async def create_run(self, run: Run) -> Run: ...

    @abstractmethod
    async def get_run(self, run_id: str) -> Optional[RunWithRelations]:
        """Find a run with its steps, artifacts and user message."""
        ...

    @abstractmethod
    async def update_run(self, run_id: str, **changes: Any) -> Run: ...

    @abstractmethod
    async def list_runs(self, session_id: str) -> List[Run]:
        """List a session's runs, newest first."""
        ...

    # Steps --------------------------------------------------------------------

    @abstractmethod
    async def create_step(self, step: Step) -> Step: ...

    @abstractmethod
    async def update_step(self, step_id: str, **changes: Any) -> Step: ...

    @abstractmethod
    async def list_steps(self, run_id: str, status: Optional[StepStatus] = None) -> List[Step]:
        """List steps of a run in creation order, optionally filtered by status."""
        ...

    async def aggregate_step_totals(self, run_id: str) -> StepTotals:
        """Sum tokens, cost and latency over every step of a run."""
        steps = await self.list_steps(run_id)
        return StepTotals(
            input_tokens=sum(step.input_tokens for step in steps),
            output_tokens=sum(step.output_tokens for step in steps),
            cost_usd=sum(step.cost_usd for step in steps),
            latency_ms=sum(step.latency_ms for step in steps),
        )

    # Artifacts ----------------------------------------------------------------

    @abstractmethod
    async def create_artifact(self, artifact: Artifact) -> Artifact: ...

    @abstractmethod
    async def list_artifacts(self, run_id: str) -> List[Artifact]: ...

    # Memory -------------------------------------------------------------------

    @abstractmethod
    async def list_memory_items(self, session_id: str, enabled_only: bool = False) -> List[MemoryItem]:
        """List memory items, most recently updated first."""
        ...

    @abstractmethod
    async def get_memory_item(self, memory_id: str) -> Optional[MemoryItem]: ...

    @abstractmethod
    async def create_memory_item(self, item: MemoryItem) -> MemoryItem: ...

    @abstractmethod
    async def update_memory_item(self, memory_id: str, **changes: Any) -> MemoryItem: ...

    @abstractmethod
    async def delete_memory_item(self, memory_id: str) -> bool: ...

    async def close(self) -> None:
        """Release resources held by the store."""
        return None


class InMemoryRunStore(RunStore):
    """Dict-backed RunStore for tests and demo sessions.

    Records are copied on the way in and out so callers never alias stored
    state. Insertion order breaks timestamp ties, which keeps "newest first"
    deterministic when several records share a timestamp.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._seq = itertools.count()
        self._order: Dict[str, int] = {}
        self._sessions: Dict[str, Session] = {}
        self._messages: Dict[str, Message] = {}
        self._runs: Dict[str, Run] = {}
        self._steps: Dict[str, Step] = {}
        self._artifacts: Dict[str, Artifact] = {}
        self._memory: Dict[str, MemoryItem] = {}

    def _track(self, record_id: str) -> None:
        self._order[record_id] = next(self._seq)

    def _ordered(self, records: List[Any], newest_first: bool = False) -> List[Any]:
        ordered = sorted(records, key=lambda r: (r.created_at, self._order.get(r.id, 0)))
        if newest_first:
            ordered.reverse()
        return [copy.deepcopy(r) for r in ordered]

    # Sessions -----------------------------------------------------------------

    async def create_session(self, title: str) -> Session:
        session = Session(id=generate_id("sess"), title=title)
        async with self._lock:
            self._sessions[session.id] = session
            self._track(session.id)
        return copy.deepcopy(session)

    async def get_session(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return copy.deepcopy(session) if session else None

    async def list_sessions(self) -> List[Session]:
        ordered = sorted(
            self._sessions.values(),
            key=lambda s: (s.updated_at, self._order.get(s.id, 0)),
            reverse=True,
        )
        return [copy.deepcopy(s) for s in ordered]

    async def _touch_session(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            self._sessions[session_id] = replace(session, updated_at=utc_now())

    # Messages -----------------------------------------------------------------

    async def create_message(self, session_id: str, role: MessageRole, content: str) -> Message:
        message = Message(id=generate_id("msg"), session_id=session_id, role=role, content=content)
        async with self._lock:
            self._messages[message.id] = message
            self._track(message.id)
            await self._touch_session(session_id)
        return copy.deepcopy(message)

    async def get_message(self, message_id: str) -> Optional[Message]:
        message = self._messages.get(message_id)
        return copy.deepcopy(message) if message else None

    async def list_recent_messages(self, session_id: str, limit: int) -> List[Message]:
        messages = [m for m in self._messages.values() if m.session_id == session_id]
        return self._ordered(messages, newest_first=True)[:limit]

    async def list_messages(self, session_id: str) -> List[Message]:
        return self._ordered([m for m in self._messages.values() if m.session_id == session_id])

    # Runs ---------------------------------------------------------------------

    async def create_run(self, run: Run) -> Run:
        async with self._lock:
            self._runs[run.id] = copy.deepcopy(run)
            self._track(run.id)
            await self._touch_session(run.session_id)
        return copy.deepcopy(run)

    async def get_run(self, run_id: str) -> Optional[RunWithRelations]:
        run = self._runs.get(run_id)
        if run is None:
            return None
        user_message = await self.get_message(run.user_message_id) if run.user_message_id else None
        return RunWithRelations(
            run=copy.deepcopy(run),
            steps=await self.list_steps(run_id),
            artifacts=await self.list_artifacts(run_id),
            user_message=user_message,
        )

    async def update_run(self, run_id: str, **changes: Any) -> Run:
        _check_fields(Run, changes)
        async with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise KeyError(f"Run '{run_id}' not found")
            updated = replace(run, updated_at=utc_now(), **copy.deepcopy(changes))
            self._runs[run_id] = updated
        return copy.deepcopy(updated)

    async def list_runs(self, session_id: str) -> List[Run]:
        return self._ordered([r for r in self._runs.values() if r.session_id == session_id], newest_first=True)

    # Steps --------------------------------------------------------------------

    async def create_step(self, step: Step) -> Step:
        async with self._lock:
            self._steps[step.id] = copy.deepcopy(step)
            self._track(step.id)
        return copy.deepcopy(step)

    async def update_step(self, step_id: str, **changes: Any) -> Step:
        _check_fields(Step, changes)
        async with self._lock:
            step = self._steps.get(step_id)
            if step is None:
                raise KeyError(f"Step '{step_id}' not found")
            updated = replace(step, **copy.deepcopy(changes))
            self._steps[step_id] = updated
        return copy.deepcopy(updated)

    async def list_steps(self, run_id: str, status: Optional[StepStatus] = None) -> List[Step]:
        steps = [
            s for s in self._steps.values() if s.run_id == run_id and (status is None or s.status == status)
        ]
        return self._ordered(steps)

    # Artifacts ----------------------------------------------------------------

    async def create_artifact(self, artifact: Artifact) -> Artifact:
        async with self._lock:
            self._artifacts[artifact.id] = copy.deepcopy(artifact)
            self._track(artifact.id)
        return copy.deepcopy(artifact)

    async def list_artifacts(self, run_id: str) -> List[Artifact]:
        return self._ordered([a for a in self._artifacts.values() if a.run_id == run_id])

    # Memory -------------------------------------------------------------------

    async def list_memory_items(self, session_id: str, enabled_only: bool = False) -> List[MemoryItem]:
        items = [
            m for m in self._memory.values() if m.session_id == session_id and (m.enabled or not enabled_only)
        ]
        ordered = sorted(items, key=lambda m: (m.updated_at, self._order.get(m.id, 0)), reverse=True)
        return [copy.deepcopy(m) for m in ordered]

    async def get_memory_item(self, memory_id: str) -> Optional[MemoryItem]:
        item = self._memory.get(memory_id)
        return copy.deepcopy(item) if item else None

    async def create_memory_item(self, item: MemoryItem) -> MemoryItem:
        async with self._lock:
            self._memory[item.id] = copy.deepcopy(item)
            self._track(item.id)
        return copy.deepcopy(item)

    async def update_memory_item(self, memory_id: str, **changes: Any) -> MemoryItem:
        _check_fields(MemoryItem, changes)
        async with self._lock:
            item = self._memory.get(memory_id)
            if item is None:
                raise KeyError(f"Memory item '{memory_id}' not found")
            updated = replace(item, updated_at=utc_now(), **copy.deepcopy(changes))
            self._memory[memory_id] = updated
            self._track(memory_id)
        return copy.deepcopy(updated)

    async def delete_memory_item(self, memory_id: str) -> bool:
        async with self._lock:
            removed = self._memory.pop(memory_id, None)
        if removed is None:
            logger.debug("delete_memory_item: %s not present", memory_id)
        return removed is not None
