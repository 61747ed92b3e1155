"""Run orchestration engine: context, routing, planning, execution and persistence."""

from .db import DuckDBRunStore, open_run_store
from .errors import (
    ContractViolationError,
    MemoryItemNotFoundError,
    MissingUserMessageError,
    PlanStructureError,
    ProviderError,
    RunNotFoundError,
    SessionNotFoundError,
    SwitchboardError,
)
from .executor import RunExecutor
from .services import MemoryService, PostedMessage, RunService, SessionService
from .store import InMemoryRunStore, RunStore, StepTotals

__all__ = [
    "DuckDBRunStore",
    "open_run_store",
    "ContractViolationError",
    "MemoryItemNotFoundError",
    "MissingUserMessageError",
    "PlanStructureError",
    "ProviderError",
    "RunNotFoundError",
    "SessionNotFoundError",
    "SwitchboardError",
    "RunExecutor",
    "MemoryService",
    "PostedMessage",
    "RunService",
    "SessionService",
    "InMemoryRunStore",
    "RunStore",
    "StepTotals",
]
