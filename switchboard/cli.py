"""
cli.py - Command line entry point.

Commands:
    switchboard ask TEXT [--mode auto|compare|chain] [--model ID ...]
                         [--quality-bias N] [--session ID] [--db PATH]
        Post a message (creating a session when none is given), execute the
        run and print a JSON trace summary.

    switchboard show RUN_ID [--db PATH] [--full]
        Print a stored run with its steps.

    switchboard memory add --session ID --type FACT --key KEY --value JSON [--db PATH]
    switchboard memory list --session ID [--db PATH]

Without --db (or SWITCHBOARD_DB_PATH) runs live in memory and are gone when
the process exits.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from switchboard.config.runtime_config import get_db_path, get_log_level, is_demo_mode
from switchboard.runtime import (
    MemoryService,
    RunService,
    SessionService,
    SwitchboardError,
    open_run_store,
)
from switchboard.runtime.store import RunStore
from switchboard.runtime.trace_logging import configure_logging
from switchboard.runtime.types import RunWithRelations

logger = logging.getLogger(__name__)

MODES = ("auto", "compare", "chain")
MEMORY_TYPES = ("FACT", "PREFERENCE", "DECISION", "ARTIFACT_REF")


def summarize_run(record: RunWithRelations) -> Dict[str, Any]:
    """Compact, explainable view of an executed run."""
    run = record.run
    decision = run.router_decision_json or {}
    final = next((a.content for a in record.artifacts if a.kind.value == "FINAL_ANSWER"), None)
    return {
        "run_id": run.id,
        "session_id": run.session_id,
        "mode": run.mode.value,
        "status": run.status.value,
        "routed_to": decision.get("chosen"),
        "routing_reasoning": decision.get("reasoning"),
        "steps": [
            {
                "node_id": step.node_id,
                "type": step.type.value,
                "provider": step.provider,
                "model_id": step.model_id,
                "status": step.status.value,
                "input_tokens": step.input_tokens,
                "output_tokens": step.output_tokens,
                "cost_usd": step.cost_usd,
                "latency_ms": step.latency_ms,
                "fallback_reason": step.fallback_reason,
                "error_message": step.error_message,
            }
            for step in record.steps
        ],
        "totals": {
            "input_tokens": run.total_input_tokens,
            "output_tokens": run.total_output_tokens,
            "cost_usd": run.total_cost_usd,
            "latency_ms": run.total_latency_ms,
        },
        "final_answer": final,
    }


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def _ask(store: RunStore, args: argparse.Namespace) -> int:
    sessions = SessionService(store)
    session_id = args.session or (await sessions.create_session(args.title)).id

    payload: Dict[str, Any] = {"content": args.text, "mode": args.mode.upper()}
    if args.model:
        payload["selected_models"] = args.model
    if args.quality_bias is not None:
        payload["preferences"] = {"quality_bias": args.quality_bias}

    posted = await sessions.post_message(session_id, payload)
    logger.debug("Executing run %s (demo_mode=%s)", posted.run.id, is_demo_mode())
    result = await RunService(store, catalog=sessions.catalog).execute_run(posted.run.id)
    _print_json(summarize_run(result))
    return 0


async def _show(store: RunStore, args: argparse.Namespace) -> int:
    record = await RunService(store).get_run(args.run_id)
    _print_json(record.to_dict() if args.full else summarize_run(record))
    return 0


async def _memory(store: RunStore, args: argparse.Namespace) -> int:
    memory = MemoryService(store)
    if args.memory_command == "add":
        item = await memory.create_memory(
            args.session,
            {
                "type": args.type,
                "key": args.key,
                "value": json.loads(args.value),
                "confidence": args.confidence,
            },
        )
        _print_json(item.to_dict())
    else:
        _print_json([item.to_dict() for item in await memory.list_memory(args.session)])
    return 0


async def _dispatch(args: argparse.Namespace) -> int:
    db_path: Optional[Path] = args.db or get_db_path()
    store = open_run_store(db_path)
    handlers = {"ask": _ask, "show": _show, "memory": _memory}
    try:
        return await handlers[args.command](store, args)
    finally:
        await store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="switchboard",
        description="Route requests across model backends and inspect run traces",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: SWITCHBOARD_LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    db_parent = argparse.ArgumentParser(add_help=False)
    db_parent.add_argument("--db", type=Path, default=None, help="DuckDB run store path")

    ask = sub.add_parser("ask", parents=[db_parent], help="Post a message and execute its run")
    ask.add_argument("text", help="Request text")
    ask.add_argument("--mode", choices=MODES, default="auto")
    ask.add_argument("--model", action="append", help="Model id to compare/chain (repeatable, max 4)")
    ask.add_argument("--quality-bias", type=float, default=None, help="0 (cheap/fast) to 100 (quality)")
    ask.add_argument("--session", default=None, help="Existing session id")
    ask.add_argument("--title", default=None, help="Title for a new session")

    show = sub.add_parser("show", parents=[db_parent], help="Show a stored run")
    show.add_argument("run_id")
    show.add_argument("--full", action="store_true", help="Print every stored field")

    memory = sub.add_parser("memory", help="Manage session memory")
    memory_sub = memory.add_subparsers(dest="memory_command", required=True)
    add = memory_sub.add_parser("add", parents=[db_parent])
    add.add_argument("--session", required=True)
    add.add_argument("--type", choices=MEMORY_TYPES, default="FACT")
    add.add_argument("--key", required=True)
    add.add_argument("--value", required=True, help="JSON object")
    add.add_argument("--confidence", type=float, default=None)
    listing = memory_sub.add_parser("list", parents=[db_parent])
    listing.add_argument("--session", required=True)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or get_log_level())

    try:
        return asyncio.run(_dispatch(args))
    except SwitchboardError as e:
        logger.error("%s", e)
        return 1
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON value: %s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
