"""Configuration: runtime settings and the model catalog."""

from .model_catalog import (
    PLACEHOLDER_MODEL,
    ModelCatalog,
    ModelCatalogEntry,
    default_catalog,
    estimate_cost_usd,
    load_catalog,
)
from .runtime_config import get_context_limits, is_demo_mode, reset_config

__all__ = [
    "PLACEHOLDER_MODEL",
    "ModelCatalog",
    "ModelCatalogEntry",
    "default_catalog",
    "estimate_cost_usd",
    "load_catalog",
    "get_context_limits",
    "is_demo_mode",
    "reset_config",
]
