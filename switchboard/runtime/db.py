"""
db.py - DuckDB-backed run store.

This module persists everything the engine records into a local DuckDB file:
- Sessions and their messages
- Runs, with CPIR / context pack / router decision snapshots
- Step execution records (prompt, output, tokens, cost, latency)
- Final-answer artifacts and session memory items

DuckDB calls are blocking, so every store method runs on a single-worker
thread pool and awaits the result. One worker plus the connection lock keeps
access serialized; the event loop is never blocked on disk I/O.

Usage:
    from switchboard.runtime.db import DuckDBRunStore

    store = DuckDBRunStore(Path("~/.switchboard/runs.duckdb").expanduser())
    session = await store.create_session("Scratchpad")
    ...
    await store.close()
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, TypeVar

import duckdb

from .store import InMemoryRunStore, RunStore, StepTotals, _check_fields
from .types import (
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
    generate_id,
    utc_now,
)
from .types._time import _datetime_to_iso, _iso_to_datetime

logger = logging.getLogger(__name__)

T = TypeVar("T")

# =============================================================================
# Schema Definitions
# =============================================================================

SCHEMA_VERSION = 1

# Timestamps are ISO-8601 UTC text; JSON payloads are JSON text.
# seq breaks ordering ties between records sharing a timestamp.
CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE SEQUENCE IF NOT EXISTS record_seq;

CREATE TABLE IF NOT EXISTS sessions (
    id VARCHAR PRIMARY KEY,
    title VARCHAR NOT NULL,
    created_at VARCHAR NOT NULL,
    updated_at VARCHAR NOT NULL,
    seq BIGINT DEFAULT nextval('record_seq')
);

CREATE TABLE IF NOT EXISTS messages (
    id VARCHAR PRIMARY KEY,
    session_id VARCHAR NOT NULL,
    role VARCHAR NOT NULL,  -- user, assistant
    content VARCHAR NOT NULL,
    created_at VARCHAR NOT NULL,
    seq BIGINT DEFAULT nextval('record_seq')
);

CREATE TABLE IF NOT EXISTS runs (
    id VARCHAR PRIMARY KEY,
    session_id VARCHAR NOT NULL,
    mode VARCHAR NOT NULL,  -- AUTO, COMPARE, CHAIN
    status VARCHAR NOT NULL,  -- PENDING, RUNNING, DONE, ERROR
    user_message_id VARCHAR,
    selected_model_ids VARCHAR,
    preferences_json VARCHAR,
    cpir_json VARCHAR,
    context_pack_json VARCHAR,
    router_decision_json VARCHAR,
    total_input_tokens BIGINT DEFAULT 0,
    total_output_tokens BIGINT DEFAULT 0,
    total_cost_usd DOUBLE DEFAULT 0,
    total_latency_ms BIGINT DEFAULT 0,
    created_at VARCHAR NOT NULL,
    updated_at VARCHAR NOT NULL,
    seq BIGINT DEFAULT nextval('record_seq')
);

CREATE TABLE IF NOT EXISTS steps (
    id VARCHAR PRIMARY KEY,
    run_id VARCHAR NOT NULL,
    node_id VARCHAR NOT NULL,
    type VARCHAR NOT NULL,
    provider VARCHAR NOT NULL,
    model_id VARCHAR NOT NULL,
    status VARCHAR NOT NULL,
    rendered_prompt VARCHAR,
    output_raw VARCHAR,
    output_parsed_json VARCHAR,
    input_tokens BIGINT DEFAULT 0,
    output_tokens BIGINT DEFAULT 0,
    cost_usd DOUBLE DEFAULT 0,
    latency_ms BIGINT DEFAULT 0,
    started_at VARCHAR,
    finished_at VARCHAR,
    error_message VARCHAR,
    fallback_reason VARCHAR,
    created_at VARCHAR NOT NULL,
    seq BIGINT DEFAULT nextval('record_seq')
);

CREATE TABLE IF NOT EXISTS artifacts (
    id VARCHAR PRIMARY KEY,
    session_id VARCHAR NOT NULL,
    run_id VARCHAR,
    kind VARCHAR NOT NULL,
    title VARCHAR NOT NULL,
    content VARCHAR NOT NULL,
    created_at VARCHAR NOT NULL,
    seq BIGINT DEFAULT nextval('record_seq')
);

CREATE TABLE IF NOT EXISTS memory_items (
    id VARCHAR PRIMARY KEY,
    session_id VARCHAR NOT NULL,
    type VARCHAR NOT NULL,  -- FACT, PREFERENCE, DECISION, ARTIFACT_REF
    key VARCHAR NOT NULL,
    value VARCHAR NOT NULL,
    confidence DOUBLE DEFAULT 0.5,
    enabled BOOLEAN DEFAULT TRUE,
    source_run_id VARCHAR,
    created_at VARCHAR NOT NULL,
    updated_at VARCHAR NOT NULL,
    seq BIGINT DEFAULT nextval('record_seq')
);

CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id);
CREATE INDEX IF NOT EXISTS idx_runs_session ON runs(session_id);
CREATE INDEX IF NOT EXISTS idx_steps_run ON steps(run_id);
CREATE INDEX IF NOT EXISTS idx_artifacts_run ON artifacts(run_id);
CREATE INDEX IF NOT EXISTS idx_memory_session ON memory_items(session_id);
"""


@dataclass(frozen=True)
class _Table:
    """Column mapping between a record dataclass and its table."""

    name: str
    record_type: type
    json_columns: Tuple[str, ...] = ()
    time_columns: Tuple[str, ...] = ("created_at",)
    enum_columns: Tuple[Tuple[str, type], ...] = ()

    @property
    def columns(self) -> List[str]:
        return [f.name for f in fields(self.record_type)]

    def to_row(self, values: Dict[str, Any]) -> Dict[str, Any]:
        row: Dict[str, Any] = {}
        for column, value in values.items():
            if column in self.time_columns:
                value = _datetime_to_iso(value)
            elif column in self.json_columns:
                value = json.dumps(value) if value is not None else None
            elif isinstance(value, Enum):
                value = value.value
            row[column] = value
        return row

    def from_row(self, row: Sequence[Any]) -> Any:
        values = dict(zip(self.columns, row))
        for column in self.time_columns:
            values[column] = _iso_to_datetime(values[column])
        for column in self.json_columns:
            raw = values[column]
            values[column] = json.loads(raw) if raw is not None else None
        for column, enum_type in self.enum_columns:
            values[column] = enum_type(values[column])
        return self.record_type(**values)


_SESSIONS = _Table("sessions", Session, time_columns=("created_at", "updated_at"))
_MESSAGES = _Table("messages", Message, enum_columns=(("role", MessageRole),))
_RUNS = _Table(
    "runs",
    Run,
    json_columns=("selected_model_ids", "preferences_json", "cpir_json", "context_pack_json", "router_decision_json"),
    time_columns=("created_at", "updated_at"),
    enum_columns=(("mode", RunMode), ("status", RunStatus)),
)
_STEPS = _Table(
    "steps",
    Step,
    json_columns=("output_parsed_json",),
    time_columns=("started_at", "finished_at", "created_at"),
    enum_columns=(("type", StepType), ("status", StepStatus)),
)
_ARTIFACTS = _Table("artifacts", Artifact, enum_columns=(("kind", ArtifactKind),))
_MEMORY = _Table(
    "memory_items",
    MemoryItem,
    json_columns=("value",),
    time_columns=("created_at", "updated_at"),
    enum_columns=(("type", MemoryItemType),),
)


class DuckDBRunStore(RunStore):
    """RunStore persisted in a DuckDB database.

    Attributes:
        db_path: Path to the DuckDB database file, or None for in-memory.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: Path to the DuckDB file. If None, uses an in-memory database.
        """
        self.db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="switchboard-db")

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create the DuckDB connection (schema is created on first access)."""
        if self._connection is None:
            with self._lock:
                if self._connection is None:
                    if self.db_path:
                        self.db_path.parent.mkdir(parents=True, exist_ok=True)
                        self._connection = duckdb.connect(str(self.db_path))
                    else:
                        self._connection = duckdb.connect(":memory:")
                    self._init_schema(self._connection)
        return self._connection

    def _init_schema(self, conn: duckdb.DuckDBPyConnection) -> None:
        """Initialize the database schema."""
        conn.execute(CREATE_TABLES_SQL)
        result = conn.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1").fetchone()
        if result is None:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", [SCHEMA_VERSION])
        logger.debug("Run store schema initialized (schema_version=%d, path=%s)", SCHEMA_VERSION, self.db_path)

    @contextmanager
    def _transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Lock the connection for one logical operation.

        DuckDB auto-commits by default, so we just need locking for thread safety.
        """
        with self._lock:
            try:
                yield self.connection
            except Exception as e:
                logger.warning("Database operation failed: %s", e)
                raise

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args, **kwargs))

    async def close(self) -> None:
        """Close the database connection and stop the worker thread."""
        if self._connection is not None:
            await self._call(self._close_sync)
        self._executor.shutdown(wait=True)

    def _close_sync(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    # =========================================================================
    # Generic row helpers
    # =========================================================================

    def _insert(self, table: _Table, record: Any) -> None:
        row = table.to_row({column: getattr(record, column) for column in table.columns})
        placeholders = ", ".join("?" for _ in row)
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO {table.name} ({', '.join(row)}) VALUES ({placeholders})",
                list(row.values()),
            )

    def _select(
        self,
        table: _Table,
        where: str,
        params: List[Any],
        order_by: str = "created_at, seq",
        limit: Optional[int] = None,
    ) -> List[Any]:
        sql = f"SELECT {', '.join(table.columns)} FROM {table.name} WHERE {where} ORDER BY {order_by}"
        if limit is not None:
            sql += " LIMIT ?"
            params = [*params, max(limit, 0)]
        with self._transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [table.from_row(row) for row in rows]

    def _select_one(self, table: _Table, record_id: str) -> Optional[Any]:
        found = self._select(table, "id = ?", [record_id])
        return found[0] if found else None

    def _update(self, table: _Table, record_id: str, changes: Dict[str, Any], bump_seq: bool = False) -> Any:
        _check_fields(table.record_type, changes)
        with self._transaction() as conn:
            if conn.execute(f"SELECT 1 FROM {table.name} WHERE id = ?", [record_id]).fetchone() is None:
                raise KeyError(f"{table.record_type.__name__} '{record_id}' not found")
            row = table.to_row(changes)
            assignments = [f"{column} = ?" for column in row]
            if bump_seq:
                assignments.append("seq = nextval('record_seq')")
            if assignments:
                conn.execute(
                    f"UPDATE {table.name} SET {', '.join(assignments)} WHERE id = ?",
                    [*row.values(), record_id],
                )
            return self._select_one(table, record_id)

    def _touch_session(self, session_id: str) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE sessions SET updated_at = ? WHERE id = ?",
                [_datetime_to_iso(utc_now()), session_id],
            )

    # =========================================================================
    # Sessions
    # =========================================================================

    def _create_session_sync(self, title: str) -> Session:
        session = Session(id=generate_id("sess"), title=title)
        self._insert(_SESSIONS, session)
        return session

    async def create_session(self, title: str) -> Session:
        return await self._call(self._create_session_sync, title)

    async def get_session(self, session_id: str) -> Optional[Session]:
        return await self._call(self._select_one, _SESSIONS, session_id)

    async def list_sessions(self) -> List[Session]:
        return await self._call(self._select, _SESSIONS, "TRUE", [], "updated_at DESC, seq DESC")

    # =========================================================================
    # Messages
    # =========================================================================

    def _create_message_sync(self, session_id: str, role: MessageRole, content: str) -> Message:
        message = Message(id=generate_id("msg"), session_id=session_id, role=MessageRole(role), content=content)
        with self._lock:
            self._insert(_MESSAGES, message)
            self._touch_session(session_id)
        return message

    async def create_message(self, session_id: str, role: MessageRole, content: str) -> Message:
        return await self._call(self._create_message_sync, session_id, role, content)

    async def get_message(self, message_id: str) -> Optional[Message]:
        return await self._call(self._select_one, _MESSAGES, message_id)

    async def list_recent_messages(self, session_id: str, limit: int) -> List[Message]:
        return await self._call(
            self._select, _MESSAGES, "session_id = ?", [session_id], "created_at DESC, seq DESC", limit
        )

    async def list_messages(self, session_id: str) -> List[Message]:
        return await self._call(self._select, _MESSAGES, "session_id = ?", [session_id])

    # =========================================================================
    # Runs
    # =========================================================================

    def _create_run_sync(self, run: Run) -> Run:
        with self._lock:
            self._insert(_RUNS, run)
            self._touch_session(run.session_id)
        return run

    async def create_run(self, run: Run) -> Run:
        return await self._call(self._create_run_sync, run)

    def _get_run_sync(self, run_id: str) -> Optional[RunWithRelations]:
        with self._lock:
            run = self._select_one(_RUNS, run_id)
            if run is None:
                return None
            return RunWithRelations(
                run=run,
                steps=self._select(_STEPS, "run_id = ?", [run_id]),
                artifacts=self._select(_ARTIFACTS, "run_id = ?", [run_id]),
                user_message=self._select_one(_MESSAGES, run.user_message_id) if run.user_message_id else None,
            )

    async def get_run(self, run_id: str) -> Optional[RunWithRelations]:
        return await self._call(self._get_run_sync, run_id)

    async def update_run(self, run_id: str, **changes: Any) -> Run:
        return await self._call(self._update, _RUNS, run_id, {**changes, "updated_at": utc_now()})

    async def list_runs(self, session_id: str) -> List[Run]:
        return await self._call(self._select, _RUNS, "session_id = ?", [session_id], "created_at DESC, seq DESC")

    # =========================================================================
    # Steps
    # =========================================================================

    async def create_step(self, step: Step) -> Step:
        await self._call(self._insert, _STEPS, step)
        return step

    async def update_step(self, step_id: str, **changes: Any) -> Step:
        return await self._call(self._update, _STEPS, step_id, changes)

    async def list_steps(self, run_id: str, status: Optional[StepStatus] = None) -> List[Step]:
        if status is None:
            return await self._call(self._select, _STEPS, "run_id = ?", [run_id])
        return await self._call(self._select, _STEPS, "run_id = ? AND status = ?", [run_id, StepStatus(status).value])

    def _aggregate_sync(self, run_id: str) -> StepTotals:
        with self._transaction() as conn:
            result = conn.execute(
                """
                SELECT
                    COALESCE(SUM(input_tokens), 0),
                    COALESCE(SUM(output_tokens), 0),
                    COALESCE(SUM(cost_usd), 0),
                    COALESCE(SUM(latency_ms), 0)
                FROM steps
                WHERE run_id = ?
                """,
                [run_id],
            ).fetchone()
        return StepTotals(
            input_tokens=int(result[0]),
            output_tokens=int(result[1]),
            cost_usd=float(result[2]),
            latency_ms=int(result[3]),
        )

    async def aggregate_step_totals(self, run_id: str) -> StepTotals:
        return await self._call(self._aggregate_sync, run_id)

    # =========================================================================
    # Artifacts
    # =========================================================================

    async def create_artifact(self, artifact: Artifact) -> Artifact:
        await self._call(self._insert, _ARTIFACTS, artifact)
        return artifact

    async def list_artifacts(self, run_id: str) -> List[Artifact]:
        return await self._call(self._select, _ARTIFACTS, "run_id = ?", [run_id])

    # =========================================================================
    # Memory
    # =========================================================================

    async def list_memory_items(self, session_id: str, enabled_only: bool = False) -> List[MemoryItem]:
        where = "session_id = ? AND enabled" if enabled_only else "session_id = ?"
        return await self._call(self._select, _MEMORY, where, [session_id], "updated_at DESC, seq DESC")

    async def get_memory_item(self, memory_id: str) -> Optional[MemoryItem]:
        return await self._call(self._select_one, _MEMORY, memory_id)

    async def create_memory_item(self, item: MemoryItem) -> MemoryItem:
        await self._call(self._insert, _MEMORY, item)
        return item

    async def update_memory_item(self, memory_id: str, **changes: Any) -> MemoryItem:
        return await self._call(self._update, _MEMORY, memory_id, {**changes, "updated_at": utc_now()}, True)

    def _delete_memory_sync(self, memory_id: str) -> bool:
        with self._transaction() as conn:
            if conn.execute("SELECT 1 FROM memory_items WHERE id = ?", [memory_id]).fetchone() is None:
                return False
            conn.execute("DELETE FROM memory_items WHERE id = ?", [memory_id])
        return True

    async def delete_memory_item(self, memory_id: str) -> bool:
        return await self._call(self._delete_memory_sync, memory_id)


def open_run_store(db_path: Optional[Path] = None) -> RunStore:
    """Open the configured run store.

    Args:
        db_path: DuckDB file path. When None, an in-process store is used and
            nothing outlives the process.

    Returns:
        A DuckDBRunStore for a path, else an InMemoryRunStore.
    """
    if db_path is None:
        logger.debug("No run store path configured; using in-memory store")
        return InMemoryRunStore()
    return DuckDBRunStore(db_path)
