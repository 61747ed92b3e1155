"""
Test fixtures and utilities for switchboard tests.

Every test runs in demo mode with provider credentials and default-model
overrides removed, so routing and offline answers are deterministic no
matter what the developer's shell exports.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from switchboard.config import model_catalog, runtime_config
from switchboard.config.model_catalog import ModelCatalog, load_catalog
from switchboard.runtime.store import InMemoryRunStore
from switchboard.runtime.types import MemoryItem, MemoryItemType, generate_id

_ENV_VARS = (
    "SWITCHBOARD_DEMO_MODE",
    "SWITCHBOARD_DB_PATH",
    "SWITCHBOARD_LOG_LEVEL",
    "SWITCHBOARD_PROVIDER_TIMEOUT",
    "SWITCHBOARD_DEFAULT_AUTO_MODEL",
    "SWITCHBOARD_COMPARE_MODEL_IDS",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GOOGLE_API_KEY",
    "MISTRAL_API_KEY",
)


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def demo_env(monkeypatch):
    """Isolate configuration: demo mode on, no keys, fresh caches."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SWITCHBOARD_DEMO_MODE", "true")
    runtime_config.reset_config()
    model_catalog.default_catalog.cache_clear()
    yield
    runtime_config.reset_config()
    model_catalog.default_catalog.cache_clear()


# ============================================================================
# Store / catalog fixtures
# ============================================================================


@pytest.fixture
def catalog() -> ModelCatalog:
    """The packaged catalog without env overrides."""
    return load_catalog(apply_env=False)


@pytest.fixture
def store() -> InMemoryRunStore:
    return InMemoryRunStore()


def run_async(coro: Any) -> Any:
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def make_memory_item(
    session_id: str,
    key: str,
    value: Optional[Dict[str, Any]] = None,
    item_type: MemoryItemType = MemoryItemType.FACT,
    confidence: float = 0.5,
    enabled: bool = True,
) -> MemoryItem:
    return MemoryItem(
        id=generate_id("mem"),
        session_id=session_id,
        type=item_type,
        key=key,
        value=value if value is not None else {"note": key},
        confidence=confidence,
        enabled=enabled,
    )


def step_types(steps: List[Any]) -> List[str]:
    return [step.type.value for step in steps]
