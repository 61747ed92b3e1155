"""ID generators for persisted records.

Run ids keep a sortable timestamp prefix; other records use a short random
suffix after a type prefix.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone

RunId = str
StepId = str
SessionId = str

_ALPHABET = string.ascii_lowercase + string.digits


def _suffix(length: int = 8) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def generate_run_id() -> RunId:
    """Generate a unique run ID.

    Creates IDs in the format: run-YYYYMMDD-HHMMSS-xxxxxx

    Example:
        >>> run_id = generate_run_id()
        >>> run_id  # e.g., "run-20251208-143022-abc123"
    """
    now = datetime.now(timezone.utc)
    timestamp = now.strftime("%Y%m%d-%H%M%S")
    return f"run-{timestamp}-{_suffix(6)}"


def generate_id(prefix: str) -> str:
    """Generate a record id such as ``step-k3j9x0qa``."""
    return f"{prefix}-{_suffix()}"
