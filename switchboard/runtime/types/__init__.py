"""
types - Core type definitions for the orchestration engine.

Three families of types live here:
- contracts: validated pydantic models (CPIR, ContextPack, RouterDecision, ...)
- records: persisted entities owned by the run store (Run, Step, ...)
- plan: step plan graph and runtime node outputs

Usage:
    from switchboard.runtime.types import (
        CPIR, ContextPack, RouterDecision, RouterPreferences,
        Run, Step, RunStatus, StepType,
        StepPlanNode, FixedModel, ResolvedFromNode,
        generate_run_id,
    )
"""

from __future__ import annotations

from ._ids import RunId, SessionId, StepId, generate_id, generate_run_id
from ._time import utc_now
from .contracts import (
    CPIR,
    DEPTHS,
    TASK_TYPES,
    ChosenModel,
    Constraints,
    ContextPack,
    ContextTurn,
    CreateMemoryRequest,
    Depth,
    Inputs,
    MemoryRef,
    OutputContract,
    PatchMemoryRequest,
    PostMessageRequest,
    RequestConstraints,
    RouterCandidate,
    RouterDecision,
    RouterPreferences,
    TaskType,
    validate_contract,
)
from .plan import (
    MODEL_EXECUTION_TYPES,
    BuiltRun,
    FixedModel,
    ModelRef,
    NodeOutput,
    ResolvedFromNode,
    StepExecutionResult,
    StepPlanNode,
    is_model_execution_type,
)
from .records import (
    Artifact,
    ArtifactKind,
    MemoryItem,
    MemoryItemType,
    Message,
    MessageRole,
    Run,
    RunMode,
    RunStatus,
    RunWithRelations,
    Session,
    Step,
    StepStatus,
    StepType,
)

__all__ = [
    # ids / time
    "RunId",
    "SessionId",
    "StepId",
    "generate_id",
    "generate_run_id",
    "utc_now",
    # contracts
    "CPIR",
    "DEPTHS",
    "TASK_TYPES",
    "ChosenModel",
    "Constraints",
    "ContextPack",
    "ContextTurn",
    "CreateMemoryRequest",
    "Depth",
    "Inputs",
    "MemoryRef",
    "OutputContract",
    "PatchMemoryRequest",
    "PostMessageRequest",
    "RequestConstraints",
    "RouterCandidate",
    "RouterDecision",
    "RouterPreferences",
    "TaskType",
    "validate_contract",
    # plan
    "MODEL_EXECUTION_TYPES",
    "BuiltRun",
    "FixedModel",
    "ModelRef",
    "NodeOutput",
    "ResolvedFromNode",
    "StepExecutionResult",
    "StepPlanNode",
    "is_model_execution_type",
    # records
    "Artifact",
    "ArtifactKind",
    "MemoryItem",
    "MemoryItemType",
    "Message",
    "MessageRole",
    "Run",
    "RunMode",
    "RunStatus",
    "RunWithRelations",
    "Session",
    "Step",
    "StepStatus",
    "StepType",
]
