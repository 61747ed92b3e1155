"""Validated contracts exchanged between engine components.

These pydantic models are the schema boundary of the engine: the CPIR, the
ContextPack, router decisions and preferences are validated when they are
constructed, and a validation failure is a programming error
(ContractViolationError), never a recoverable user error.

Request models (PostMessageRequest, CreateMemoryRequest, PatchMemoryRequest)
validate caller payloads for the service layer.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ContractViolationError

TaskType = Literal["coding", "reasoning", "creative", "research", "extraction", "planning", "critique"]
Depth = Literal["shallow", "medium", "deep"]
TurnRole = Literal["user", "assistant"]
OutputContractType = Literal["freeform", "sections", "json"]
ProviderName = Literal["openai", "anthropic", "google", "mistral", "mock"]
RunModeName = Literal["AUTO", "COMPARE", "CHAIN"]
MemoryTypeName = Literal["FACT", "PREFERENCE", "DECISION", "ARTIFACT_REF"]

TASK_TYPES = ("coding", "reasoning", "creative", "research", "extraction", "planning", "critique")
DEPTHS = ("shallow", "medium", "deep")


class _Contract(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ContextTurn(_Contract):
    role: TurnRole
    content: str


class MemoryRef(_Contract):
    memory_item_id: str
    key: str


class ContextPack(_Contract):
    """Bounded snapshot of conversation turns and relevant memory."""

    summary: str
    facts: List[str] = Field(default_factory=list)
    decisions: List[str] = Field(default_factory=list)
    open_questions: List[str] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)
    recent_turns: List[ContextTurn] = Field(default_factory=list)
    memory_refs: List[MemoryRef] = Field(default_factory=list)


class OutputContract(_Contract):
    type: OutputContractType = "freeform"
    schema_: Optional[Dict[str, Any]] = Field(default=None, alias="schema")

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class Constraints(_Contract):
    format: Optional[str] = None
    citations: Optional[bool] = None
    tone: Optional[str] = None
    max_cost_usd: Optional[float] = Field(default=None, gt=0)
    max_latency_ms: Optional[float] = Field(default=None, gt=0)


class Inputs(_Contract):
    user_text: str = Field(min_length=1)
    attachments: Optional[List[Any]] = None


class CPIR(_Contract):
    """Contextualized Prompt Intermediate Representation of one request."""

    intent: str
    task_type: TaskType
    depth: Depth
    constraints: Constraints = Field(default_factory=Constraints)
    inputs: Inputs
    context_pack: ContextPack
    output_contract: OutputContract = Field(default_factory=OutputContract)


class ChosenModel(_Contract):
    provider: ProviderName
    model_id: str


class RouterCandidate(_Contract):
    provider: ProviderName
    model_id: str
    score: float
    reasons: List[str] = Field(default_factory=list)


class RouterDecision(_Contract):
    chosen: ChosenModel
    candidates: List[RouterCandidate]
    token_estimate: int = Field(ge=0)
    reasoning: str


class RouterPreferences(_Contract):
    quality_bias: float = Field(default=50, ge=0, le=100)
    cost_cap_enabled: bool = False
    max_cost_usd: Optional[float] = Field(default=None, gt=0)
    latency_cap_enabled: bool = False
    max_latency_ms: Optional[int] = Field(default=None, gt=0)


class RequestConstraints(_Contract):
    format: Optional[str] = None
    citations: Optional[bool] = None
    tone: Optional[str] = None
    max_cost_usd: Optional[float] = Field(default=None, gt=0)
    max_latency_ms: Optional[int] = Field(default=None, gt=0)


class PostMessageRequest(_Contract):
    content: str = Field(min_length=1)
    mode: RunModeName = "AUTO"
    selected_models: Optional[List[str]] = Field(default=None, min_length=1, max_length=4)
    preferences: Optional[RouterPreferences] = None
    constraints: Optional[RequestConstraints] = None


class CreateMemoryRequest(_Contract):
    type: MemoryTypeName
    key: str = Field(min_length=1, max_length=200)
    value: Dict[str, Any]
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    enabled: Optional[bool] = None


class PatchMemoryRequest(_Contract):
    enabled: Optional[bool] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    value: Optional[Dict[str, Any]] = None


ContractT = TypeVar("ContractT", bound=BaseModel)


def validate_contract(model: Type[ContractT], data: Any, name: Optional[str] = None) -> ContractT:
    """Validate ``data`` against a contract model.

    Args:
        model: The pydantic model class.
        data: A dict or an existing instance of ``model``.
        name: Contract name used in the error message.

    Returns:
        The validated instance.

    Raises:
        ContractViolationError: If validation fails.
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ContractViolationError(name or model.__name__, e.errors()) from e
