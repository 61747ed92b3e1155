"""Model catalog for routing and plan construction.

Provides:
1. ModelCatalogEntry - quality/cost/speed tiers and per-1k token prices
2. ModelCatalog - an immutable, injectable table with lookup helpers
3. Default selection (auto model, compare models) with env overrides
4. Cost estimation from token counts

The catalog is the only data the router scorer and the plan builder need
about models. It is passed in explicitly rather than read from a global, so
tests can build synthetic catalogs.

Environment overrides (applied when the catalog is loaded):
- SWITCHBOARD_DEFAULT_AUTO_MODEL: model id used for AUTO fallbacks
- SWITCHBOARD_COMPARE_MODEL_IDS: comma-separated ids (at least 2 valid, max 4)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Tuple

import yaml

logger = logging.getLogger(__name__)

ProviderKey = Literal["openai", "anthropic", "google", "mistral", "mock"]

VALID_PROVIDERS = frozenset(["openai", "anthropic", "google", "mistral", "mock"])

MAX_SELECTED_MODELS = 4

_CATALOG_PATH = Path(__file__).parent / "models.yaml"


@dataclass(frozen=True)
class ModelCatalogEntry:
    """Routing-relevant description of one model."""

    provider: str
    model_id: str
    quality_tier: int
    cost_tier: int
    speed_tier: int
    supports_json: bool
    input_usd_per_1k: float
    output_usd_per_1k: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelCatalogEntry":
        provider = str(data["provider"]).lower()
        if provider not in VALID_PROVIDERS:
            raise ValueError(f"Unknown provider '{provider}' for model {data.get('model_id')}")
        return cls(
            provider=provider,
            model_id=str(data["model_id"]),
            quality_tier=int(data["quality_tier"]),
            cost_tier=int(data["cost_tier"]),
            speed_tier=int(data["speed_tier"]),
            supports_json=bool(data.get("supports_json", False)),
            input_usd_per_1k=float(data.get("input_usd_per_1k", 0)),
            output_usd_per_1k=float(data.get("output_usd_per_1k", 0)),
        )


# Zero-cost filler used when a chain needs more distinct models than exist.
PLACEHOLDER_MODEL = ModelCatalogEntry(
    provider="mock",
    model_id="mock-balanced",
    quality_tier=3,
    cost_tier=1,
    speed_tier=5,
    supports_json=True,
    input_usd_per_1k=0.0,
    output_usd_per_1k=0.0,
)


def estimate_cost_usd(entry: ModelCatalogEntry, input_tokens: int, output_tokens: int) -> float:
    """Estimate the USD cost of a call, rounded to 6 decimals."""
    input_cost = (input_tokens / 1000) * entry.input_usd_per_1k
    output_cost = (output_tokens / 1000) * entry.output_usd_per_1k
    return round(input_cost + output_cost, 6)


@dataclass(frozen=True)
class ModelCatalog:
    """Immutable model table plus default-selection settings."""

    entries: Tuple[ModelCatalogEntry, ...]
    default_auto_id: str = "gpt-4o-mini"
    default_compare_ids: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.entries:
            raise ValueError("ModelCatalog requires at least one entry")

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, model_id: str) -> Optional[ModelCatalogEntry]:
        """Look up an entry by model id."""
        for entry in self.entries:
            if entry.model_id == model_id:
                return entry
        return None

    def default_auto(self) -> ModelCatalogEntry:
        """The model used when routing yields nothing usable."""
        return self.get(self.default_auto_id) or self.entries[0]

    def default_compare(self) -> List[ModelCatalogEntry]:
        """Models compared when the caller selects none."""
        found = [self.get(model_id) for model_id in self.default_compare_ids]
        return [entry for entry in found if entry is not None][:MAX_SELECTED_MODELS]

    def resolve_selected(self, model_ids: Optional[Sequence[str]]) -> List[ModelCatalogEntry]:
        """Resolve caller-selected ids, dropping unknown ones.

        Falls back to the default compare models when nothing is selected or
        none of the ids are known. At most four models are returned.
        """
        if not model_ids:
            return self.default_compare()

        models = [entry for entry in (self.get(model_id) for model_id in model_ids) if entry]
        if not models:
            logger.warning("No known models among selection %s; using compare defaults", list(model_ids))
            return self.default_compare()
        return models[:MAX_SELECTED_MODELS]

    def with_overrides(
        self,
        default_auto_id: Optional[str] = None,
        default_compare_ids: Optional[Iterable[str]] = None,
    ) -> "ModelCatalog":
        """Return a copy with different default selections."""
        return ModelCatalog(
            entries=self.entries,
            default_auto_id=default_auto_id or self.default_auto_id,
            default_compare_ids=(
                tuple(default_compare_ids) if default_compare_ids is not None else self.default_compare_ids
            ),
        )


def _apply_env_overrides(catalog: ModelCatalog) -> ModelCatalog:
    """Apply SWITCHBOARD_* default-model overrides."""
    auto_id = os.environ.get("SWITCHBOARD_DEFAULT_AUTO_MODEL")
    if auto_id and catalog.get(auto_id) is None:
        logger.warning("SWITCHBOARD_DEFAULT_AUTO_MODEL '%s' is not in the catalog; ignoring", auto_id)
        auto_id = None

    compare_ids: Optional[List[str]] = None
    raw_compare = os.environ.get("SWITCHBOARD_COMPARE_MODEL_IDS")
    if raw_compare:
        candidates = [item.strip() for item in raw_compare.split(",") if item.strip()]
        known = [model_id for model_id in candidates if catalog.get(model_id) is not None]
        if len(known) >= 2:
            compare_ids = known[:MAX_SELECTED_MODELS]
        else:
            logger.warning(
                "SWITCHBOARD_COMPARE_MODEL_IDS needs at least 2 known models, got %s; ignoring",
                known,
            )

    if auto_id is None and compare_ids is None:
        return catalog
    return catalog.with_overrides(default_auto_id=auto_id, default_compare_ids=compare_ids)


def catalog_from_dict(data: Dict[str, Any]) -> ModelCatalog:
    """Build a catalog from the parsed models.yaml structure."""
    entries = tuple(ModelCatalogEntry.from_dict(item) for item in data.get("models", []))
    defaults = data.get("defaults", {}) or {}
    return ModelCatalog(
        entries=entries,
        default_auto_id=defaults.get("auto_model", "gpt-4o-mini"),
        default_compare_ids=tuple(defaults.get("compare_models", [])),
    )


def load_catalog(path: Optional[Path] = None, apply_env: bool = True) -> ModelCatalog:
    """Load a catalog from a YAML file.

    Args:
        path: Catalog file, defaults to the packaged models.yaml.
        apply_env: Whether to apply SWITCHBOARD_* default overrides.

    Returns:
        The loaded ModelCatalog.
    """
    catalog_path = path or _CATALOG_PATH
    with open(catalog_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    catalog = catalog_from_dict(data)
    logger.debug("Loaded %d catalog entries from %s", len(catalog), catalog_path)
    return _apply_env_overrides(catalog) if apply_env else catalog


@lru_cache(maxsize=1)
def default_catalog() -> ModelCatalog:
    """The packaged catalog (cached). Call ``default_catalog.cache_clear()`` after env changes."""
    return load_catalog()
