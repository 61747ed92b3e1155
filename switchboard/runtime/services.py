"""
services.py - Session, memory and run services.

Thin orchestration over a RunStore. Services validate caller payloads with
the request contracts, then create the records the engine works from:

- SessionService.post_message stores the user message and a PENDING run
  carrying the CPIR, context pack and preference snapshots.
- MemoryService manages the long-term memory items the context compiler ranks.
- RunService looks runs up and hands them to the RunExecutor.

Usage:
    store = InMemoryRunStore()
    sessions = SessionService(store)
    session = await sessions.create_session("Design review")
    posted = await sessions.post_message(session.id, {"content": "Compare caching options", "mode": "COMPARE"})
    result = await RunService(store).execute_run(posted.run.id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from switchboard.config.model_catalog import ModelCatalog, default_catalog

from .context_pack import compile_context_pack
from .errors import MemoryItemNotFoundError, RunNotFoundError, SessionNotFoundError
from .executor import RunExecutor
from .providers import ProviderRegistry
from .routing import build_cpir, merge_preference_caps
from .store import RunStore
from .types import (
    CreateMemoryRequest,
    MemoryItem,
    MemoryItemType,
    Message,
    MessageRole,
    PatchMemoryRequest,
    PostMessageRequest,
    RouterPreferences,
    Run,
    RunMode,
    RunStatus,
    RunWithRelations,
    Session,
    generate_id,
    generate_run_id,
    validate_contract,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TITLE = "Untitled session"


@dataclass
class PostedMessage:
    """Result of posting a user message: the message and its pending run."""

    user_message: Message
    run: Run

    def to_dict(self) -> Dict[str, Any]:
        return {"user_message": self.user_message.to_dict(), "run": self.run.to_dict()}


class SessionService:
    """Creates sessions and turns user messages into pending runs."""

    def __init__(self, store: RunStore, catalog: Optional[ModelCatalog] = None):
        self.store = store
        self.catalog = catalog or default_catalog()

    async def create_session(self, title: Optional[str] = None) -> Session:
        session = await self.store.create_session((title or "").strip() or DEFAULT_SESSION_TITLE)
        logger.info("Created session %s", session.id)
        return session

    async def get_session(self, session_id: str) -> Session:
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def list_sessions(self) -> List[Session]:
        return await self.store.list_sessions()

    async def list_messages(self, session_id: str) -> List[Message]:
        await self.get_session(session_id)
        return await self.store.list_messages(session_id)

    async def post_message(self, session_id: str, payload: Any) -> PostedMessage:
        """Store a user message and create the PENDING run that answers it.

        The CPIR is built against the context pack compiled after the message
        is stored, with enabled preference caps folded into the constraints.

        Args:
            session_id: Session receiving the message.
            payload: A PostMessageRequest or a dict in its shape.

        Returns:
            The stored user message and the new run.

        Raises:
            SessionNotFoundError: If the session does not exist.
            ContractViolationError: If the payload is malformed.
        """
        request = validate_contract(PostMessageRequest, payload, "PostMessageRequest")
        await self.get_session(session_id)

        preferences = request.preferences or RouterPreferences()
        selected = self.catalog.resolve_selected(request.selected_models)

        user_message = await self.store.create_message(session_id, MessageRole.USER, request.content)
        context_pack = await compile_context_pack(self.store, session_id, request.content)

        request_constraints = request.constraints.model_dump(exclude_none=True) if request.constraints else {}
        cpir = build_cpir(
            request.content,
            context_pack,
            constraints=merge_preference_caps(request_constraints, preferences),
        )

        run = await self.store.create_run(
            Run(
                id=generate_run_id(),
                session_id=session_id,
                mode=RunMode(request.mode),
                status=RunStatus.PENDING,
                user_message_id=user_message.id,
                selected_model_ids=[entry.model_id for entry in selected],
                preferences_json=preferences.model_dump(mode="json"),
                cpir_json=cpir.model_dump(mode="json", by_alias=True),
                context_pack_json=context_pack.model_dump(mode="json"),
            )
        )
        logger.info(
            "Posted message %s to session %s; created %s run %s (%s/%s)",
            user_message.id,
            session_id,
            run.mode.value,
            run.id,
            cpir.task_type,
            cpir.depth,
        )
        return PostedMessage(user_message=user_message, run=run)


class MemoryService:
    """CRUD over session memory items."""

    def __init__(self, store: RunStore):
        self.store = store

    async def list_memory(self, session_id: str) -> List[MemoryItem]:
        """All memory items of a session (enabled or not), most recently updated first."""
        return await self.store.list_memory_items(session_id)

    async def create_memory(self, session_id: str, payload: Any) -> MemoryItem:
        request = validate_contract(CreateMemoryRequest, payload, "CreateMemoryRequest")
        if await self.store.get_session(session_id) is None:
            raise SessionNotFoundError(session_id)

        item = await self.store.create_memory_item(
            MemoryItem(
                id=generate_id("mem"),
                session_id=session_id,
                type=MemoryItemType(request.type),
                key=request.key,
                value=dict(request.value),
                confidence=request.confidence if request.confidence is not None else 0.5,
                enabled=request.enabled if request.enabled is not None else True,
            )
        )
        logger.info("Created %s memory item %s (%s) in session %s", item.type.value, item.id, item.key, session_id)
        return item

    async def patch_memory(self, memory_id: str, payload: Any) -> MemoryItem:
        """Update only the fields present in the payload."""
        request = validate_contract(PatchMemoryRequest, payload, "PatchMemoryRequest")
        changes = request.model_dump(exclude_none=True)
        try:
            return await self.store.update_memory_item(memory_id, **changes)
        except KeyError:
            raise MemoryItemNotFoundError(memory_id) from None

    async def delete_memory(self, memory_id: str) -> None:
        if not await self.store.delete_memory_item(memory_id):
            raise MemoryItemNotFoundError(memory_id)
        logger.info("Deleted memory item %s", memory_id)


class RunService:
    """Run lookup and execution."""

    def __init__(
        self,
        store: RunStore,
        catalog: Optional[ModelCatalog] = None,
        providers: Optional[ProviderRegistry] = None,
    ):
        self.store = store
        self.executor = RunExecutor(store, catalog=catalog, providers=providers)

    async def get_run(self, run_id: str) -> RunWithRelations:
        record = await self.store.get_run(run_id)
        if record is None:
            raise RunNotFoundError(run_id)
        return record

    async def execute_run(self, run_id: str) -> RunWithRelations:
        return await self.executor.execute_run(run_id)
