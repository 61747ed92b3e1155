"""
trace_logging.py - Structured trace logging for run execution.

Every notable engine event is logged as a single JSON payload carrying the
trace id, run id and (when known) step id, so one run's lines can be
grepped out of a shared log stream.

Usage:
    from switchboard.runtime.trace_logging import TraceContext, log_event, new_trace

    trace = new_trace(run_id)
    log_event("info", "router.step.complete", trace, token_estimate=412)
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger("switchboard.trace")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class TraceContext:
    """Correlation ids attached to every trace event."""

    trace_id: str
    run_id: Optional[str] = None
    step_id: Optional[str] = None

    def for_step(self, step_id: str) -> "TraceContext":
        return replace(self, step_id=step_id)


def new_trace(run_id: Optional[str] = None) -> TraceContext:
    """Create a trace context with a fresh trace id."""
    return TraceContext(trace_id=str(uuid.uuid4()), run_id=run_id)


def log_event(level: str, event: str, trace: TraceContext, **fields: Any) -> None:
    """Log one structured event.

    Args:
        level: "debug", "info", "warn"/"warning" or "error".
        event: Dotted event name (e.g. "model.step.complete").
        trace: Correlation ids.
        **fields: Extra JSON-serializable fields.
    """
    log_level = _LEVELS.get(level.lower(), logging.INFO)
    if not logger.isEnabledFor(log_level):
        return

    payload = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": level.lower(),
        "event": event,
        "trace_id": trace.trace_id,
        "run_id": trace.run_id,
        "step_id": trace.step_id,
    }
    payload.update(fields)
    logger.log(log_level, json.dumps(payload, default=str))


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for CLI use."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
