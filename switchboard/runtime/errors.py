"""Error types for the orchestration engine.

Taxonomy:
- ContractViolationError: a CPIR / ContextPack / RouterDecision / preferences
  shape failed validation. Always fatal, never retried.
- PlanStructureError: the executor found no ready node while nodes remain, or
  a plan violates its graph invariants. Indicates a plan builder defect.
- RunNotFoundError / MissingUserMessageError: preconditions checked before
  any state is mutated.
- ProviderError: a live backend call failed. Raised inside provider adapters
  and recovered there by the offline responder; never fails a run.
"""

from __future__ import annotations

from typing import Any, List, Optional


class SwitchboardError(Exception):
    """Base exception for orchestration errors."""

    pass


class ContractViolationError(SwitchboardError):
    """Raised when a value fails schema validation at a construction boundary."""

    def __init__(self, contract: str, errors: List[Any]):
        self.contract = contract
        self.errors = errors
        details = "; ".join(str(e) for e in errors) or "invalid value"
        super().__init__(f"{contract} validation failed: {details}")


class PlanStructureError(SwitchboardError):
    """Raised when a step plan cannot be executed as a DAG."""

    def __init__(self, message: str, pending: Optional[List[str]] = None):
        self.pending = pending or []
        if self.pending:
            message = f"{message} (pending: {', '.join(self.pending)})"
        super().__init__(message)


class RunNotFoundError(SwitchboardError):
    """Raised when a requested run does not exist."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run '{run_id}' not found")


class MissingUserMessageError(SwitchboardError):
    """Raised when a run has no user message to execute."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run '{run_id}' has no user message to execute")


class SessionNotFoundError(SwitchboardError):
    """Raised when a requested session does not exist."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' not found")


class MemoryItemNotFoundError(SwitchboardError):
    """Raised when a memory item id does not exist."""

    def __init__(self, memory_id: str):
        self.memory_id = memory_id
        super().__init__(f"Memory item '{memory_id}' not found")


class ProviderError(SwitchboardError):
    """Raised by a provider adapter when a live call fails."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        prefix = f"{provider} HTTP {status_code}" if status_code else provider
        super().__init__(f"{prefix}: {message}")
