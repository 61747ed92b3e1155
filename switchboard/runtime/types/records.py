"""Persisted record types owned by the run store.

This module contains the entities the engine reads and writes through a
RunStore: sessions, messages, runs, steps, artifacts and memory items, plus
their lifecycle enums.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ._ids import RunId, SessionId, StepId
from ._time import _datetime_to_iso, utc_now


class RunMode(str, Enum):
    """How a run expands into steps."""

    AUTO = "AUTO"  # Single routed model
    COMPARE = "COMPARE"  # Parallel models + judge
    CHAIN = "CHAIN"  # Draft, refine, critique, compress


class RunStatus(str, Enum):
    """Status of a run's execution lifecycle."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    ERROR = "ERROR"


class StepStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    ERROR = "ERROR"


class StepType(str, Enum):
    """Closed set of plan node types."""

    ROUTER = "ROUTER"
    MODEL_CALL = "MODEL_CALL"
    DRAFT = "DRAFT"
    REFINE = "REFINE"
    CRITIQUE = "CRITIQUE"
    COMPRESS = "COMPRESS"
    JUDGE = "JUDGE"
    MERGE = "MERGE"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ArtifactKind(str, Enum):
    FINAL_ANSWER = "FINAL_ANSWER"
    CODE = "CODE"
    MEMO = "MEMO"
    JSON = "JSON"


class MemoryItemType(str, Enum):
    FACT = "FACT"
    PREFERENCE = "PREFERENCE"
    DECISION = "DECISION"
    ARTIFACT_REF = "ARTIFACT_REF"


def _record_to_dict(record: Any) -> Dict[str, Any]:
    """Serialize a record dataclass to a JSON-friendly dict."""
    data = asdict(record)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = _datetime_to_iso(value)
        elif isinstance(value, Enum):
            data[key] = value.value
    return data


@dataclass
class Session:
    id: SessionId
    title: str
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return _record_to_dict(self)


@dataclass
class Message:
    id: str
    session_id: SessionId
    role: MessageRole
    content: str
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return _record_to_dict(self)


@dataclass
class Run:
    """One orchestrated execution of a plan over one user turn.

    Attributes:
        id: Unique run identifier.
        session_id: Owning session.
        mode: AUTO, COMPARE or CHAIN.
        status: Lifecycle status.
        user_message_id: The user message this run answers.
        selected_model_ids: Models chosen by the caller (COMPARE / CHAIN).
        preferences_json: RouterPreferences snapshot.
        cpir_json: CPIR snapshot built when the message was posted.
        context_pack_json: ContextPack snapshot at the same moment.
        router_decision_json: Decision persisted by the router step.
        total_*: Aggregates over all steps, written on completion.
    """

    id: RunId
    session_id: SessionId
    mode: RunMode
    status: RunStatus = RunStatus.PENDING
    user_message_id: Optional[str] = None
    selected_model_ids: List[str] = field(default_factory=list)
    preferences_json: Optional[Dict[str, Any]] = None
    cpir_json: Dict[str, Any] = field(default_factory=dict)
    context_pack_json: Dict[str, Any] = field(default_factory=dict)
    router_decision_json: Optional[Dict[str, Any]] = None
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0
    total_latency_ms: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return _record_to_dict(self)


@dataclass
class Step:
    """Durable record of one executed plan node."""

    id: StepId
    run_id: RunId
    node_id: str
    type: StepType
    provider: str
    model_id: str
    status: StepStatus = StepStatus.PENDING
    rendered_prompt: str = ""
    output_raw: str = ""
    output_parsed_json: Optional[Dict[str, Any]] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    latency_ms: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error_message: Optional[str] = None
    fallback_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return _record_to_dict(self)


@dataclass
class Artifact:
    id: str
    session_id: SessionId
    run_id: Optional[RunId]
    kind: ArtifactKind
    title: str
    content: str
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return _record_to_dict(self)


@dataclass
class MemoryItem:
    id: str
    session_id: SessionId
    type: MemoryItemType
    key: str
    value: Dict[str, Any]
    confidence: float = 0.5
    enabled: bool = True
    source_run_id: Optional[RunId] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return _record_to_dict(self)


@dataclass
class RunWithRelations:
    """A run together with its steps and artifacts (store lookup result)."""

    run: Run
    steps: List[Step] = field(default_factory=list)
    artifacts: List[Artifact] = field(default_factory=list)
    user_message: Optional[Message] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run": self.run.to_dict(),
            "steps": [step.to_dict() for step in self.steps],
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "user_message": self.user_message.to_dict() if self.user_message else None,
        }
