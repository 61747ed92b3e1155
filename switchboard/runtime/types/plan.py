"""Plan graph types used by the plan builder and the executor.

A plan is an ordered list of StepPlanNode. Each node names the model it runs
through a ModelRef, which is either a FixedModel known at plan time or a
ResolvedFromNode that the executor resolves from another node's output
(the AUTO model step resolves from the router's decision).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from .contracts import CPIR, RouterPreferences
from .records import RunMode, StepType

# Node types whose handler calls a model provider.
MODEL_EXECUTION_TYPES = frozenset(
    [
        StepType.MODEL_CALL,
        StepType.DRAFT,
        StepType.REFINE,
        StepType.CRITIQUE,
        StepType.COMPRESS,
    ]
)


def is_model_execution_type(step_type: StepType) -> bool:
    return step_type in MODEL_EXECUTION_TYPES


@dataclass(frozen=True)
class FixedModel:
    """A model known when the plan is built."""

    provider: str
    model_id: str


@dataclass(frozen=True)
class ResolvedFromNode:
    """A model taken from the router decision produced by ``node_id``."""

    node_id: str


ModelRef = Union[FixedModel, ResolvedFromNode]


@dataclass(frozen=True)
class StepPlanNode:
    """One node of a step plan.

    Attributes:
        id: Unique id within the plan, used as the join key for dependencies.
        type: Closed node type that selects the executor handler.
        model: Fixed model or a reference resolved at dispatch time.
        depends_on: Ids of nodes that must complete first (ordered, unique).
    """

    id: str
    type: StepType
    model: ModelRef
    depends_on: Tuple[str, ...] = ()

    @property
    def provider(self) -> str:
        """Provider recorded on the materialized step before dispatch."""
        if isinstance(self.model, FixedModel):
            return self.model.provider
        return "mock"

    @property
    def model_id(self) -> str:
        """Model id recorded on the materialized step before dispatch."""
        if isinstance(self.model, FixedModel):
            return self.model.model_id
        return f"resolved-from:{self.model.node_id}"


@dataclass(frozen=True)
class BuiltRun:
    """Everything the plan builder and executor need about one run."""

    run_id: str
    session_id: str
    cpir: CPIR
    mode: RunMode
    selected_models: Tuple[Any, ...]  # ModelCatalogEntry
    preferences: RouterPreferences


@dataclass
class NodeOutput:
    """Runtime-only output of one completed node, keyed by node id."""

    step_id: str
    type: StepType
    provider: str
    model_id: str
    rendered_prompt: str
    output_raw: str
    output_parsed_json: Optional[Dict[str, Any]] = None


@dataclass
class StepExecutionResult:
    """Common result shape returned by every node handler."""

    provider: str
    model_id: str
    rendered_prompt: str
    output_raw: str
    output_parsed_json: Optional[Dict[str, Any]] = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    latency_ms: Optional[int] = None  # provider-reported; wall clock when None
    fallback_reason: Optional[str] = None
