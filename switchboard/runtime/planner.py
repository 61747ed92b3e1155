"""
planner.py - Expand a run mode into a step dependency graph.

Every mode produces the same graph shape: one dependency-free ROUTER node,
one or more content nodes, and a MERGE node that fans in from whichever
content nodes ran. That lets one executor handle all three modes without
mode-specific scheduling.

    AUTO:    router -> auto_model -> merge
    COMPARE: router -> compare_model_1..k -> judge -> merge(judge + all compare)
    CHAIN:   router -> draft -> refine -> critique -> compress
             -> merge(draft, refine, critique, compress)

The AUTO model node carries a ResolvedFromNode("router") reference; the
executor resolves it from the router's decision at dispatch time.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Set

from switchboard.config.model_catalog import (
    MAX_SELECTED_MODELS,
    PLACEHOLDER_MODEL,
    ModelCatalog,
    ModelCatalogEntry,
)

from .errors import PlanStructureError
from .routing.router import PreferencesInput, resolve_preferences
from .types import (
    CPIR,
    BuiltRun,
    FixedModel,
    ResolvedFromNode,
    RunMode,
    StepPlanNode,
    StepType,
    is_model_execution_type,
)

logger = logging.getLogger(__name__)

ROUTER_NODE_ID = "router"
MERGE_NODE_ID = "merge"
JUDGE_NODE_ID = "judge"

ROUTER_MODEL = FixedModel(provider="mock", model_id="router-heuristic")
MERGE_MODEL = FixedModel(provider="mock", model_id="merge-synthesizer")
JUDGE_MODEL = FixedModel(provider="mock", model_id="judge-normalizer")

CHAIN_STAGES = (
    ("draft", StepType.DRAFT),
    ("refine", StepType.REFINE),
    ("critique", StepType.CRITIQUE),
    ("compress", StepType.COMPRESS),
)


def build_run(
    run_id: str,
    session_id: str,
    cpir: CPIR,
    mode: RunMode,
    catalog: ModelCatalog,
    selected_model_ids: Optional[Sequence[str]] = None,
    preferences: PreferencesInput = None,
) -> BuiltRun:
    """Bundle a run's inputs for planning and execution.

    Selected ids are resolved against the catalog: unknown ids are dropped,
    at most four are kept, and an empty selection falls back to the default
    compare models.
    """
    return BuiltRun(
        run_id=run_id,
        session_id=session_id,
        cpir=cpir,
        mode=RunMode(mode),
        selected_models=tuple(catalog.resolve_selected(selected_model_ids)),
        preferences=resolve_preferences(preferences),
    )


def _fixed(entry: ModelCatalogEntry) -> FixedModel:
    return FixedModel(provider=entry.provider, model_id=entry.model_id)


def chain_models(run: BuiltRun, catalog: ModelCatalog) -> List[ModelCatalogEntry]:
    """Pick four distinct models for the chain stages.

    Order of preference: selected models, then the default compare models,
    then the default auto model. Duplicates are skipped and the list is padded
    with the zero-cost placeholder model.
    """
    selected = list(run.selected_models) or catalog.default_compare()
    merged = [*selected, *catalog.default_compare(), catalog.default_auto()]

    models: List[ModelCatalogEntry] = []
    seen: Set[str] = set()
    for entry in merged:
        if entry.model_id not in seen:
            seen.add(entry.model_id)
            models.append(entry)
        if len(models) == len(CHAIN_STAGES):
            break

    while len(models) < len(CHAIN_STAGES):
        models.append(PLACEHOLDER_MODEL)
    return models


def plan_steps(run: BuiltRun, catalog: ModelCatalog) -> List[StepPlanNode]:
    """Expand ``run.mode`` into an ordered list of plan nodes.

    Args:
        run: The built run.
        catalog: Model catalog for default selections.

    Returns:
        Plan nodes, router first, merge last.
    """
    router = StepPlanNode(id=ROUTER_NODE_ID, type=StepType.ROUTER, model=ROUTER_MODEL)

    if run.mode == RunMode.AUTO:
        plan = [
            router,
            StepPlanNode(
                id="auto_model",
                type=StepType.MODEL_CALL,
                model=ResolvedFromNode(node_id=ROUTER_NODE_ID),
                depends_on=(ROUTER_NODE_ID,),
            ),
            StepPlanNode(id=MERGE_NODE_ID, type=StepType.MERGE, model=MERGE_MODEL, depends_on=("auto_model",)),
        ]

    elif run.mode == RunMode.COMPARE:
        selected = list(run.selected_models) or catalog.default_compare()
        model_nodes = [
            StepPlanNode(
                id=f"compare_model_{index}",
                type=StepType.MODEL_CALL,
                model=_fixed(entry),
                depends_on=(ROUTER_NODE_ID,),
            )
            for index, entry in enumerate(selected[:MAX_SELECTED_MODELS], start=1)
        ]
        model_ids = tuple(node.id for node in model_nodes)
        plan = [
            router,
            *model_nodes,
            StepPlanNode(id=JUDGE_NODE_ID, type=StepType.JUDGE, model=JUDGE_MODEL, depends_on=model_ids),
            StepPlanNode(
                id=MERGE_NODE_ID,
                type=StepType.MERGE,
                model=MERGE_MODEL,
                depends_on=(JUDGE_NODE_ID, *model_ids),
            ),
        ]

    else:
        models = chain_models(run, catalog)
        plan = [router]
        previous = ROUTER_NODE_ID
        for (node_id, step_type), entry in zip(CHAIN_STAGES, models):
            plan.append(StepPlanNode(id=node_id, type=step_type, model=_fixed(entry), depends_on=(previous,)))
            previous = node_id
        plan.append(
            StepPlanNode(
                id=MERGE_NODE_ID,
                type=StepType.MERGE,
                model=MERGE_MODEL,
                depends_on=tuple(node_id for node_id, _ in CHAIN_STAGES),
            )
        )

    logger.debug("Planned %d steps for %s run %s", len(plan), run.mode.value, run.run_id)
    return plan


def validate_plan(plan: Sequence[StepPlanNode]) -> None:
    """Check the graph invariants of a plan.

    - node ids are unique and every dependency names another node
    - exactly one ROUTER node, with no dependencies
    - every MERGE / JUDGE node depends on at least one model-producing node
    - the graph is acyclic

    Raises:
        PlanStructureError: On the first violated invariant.
    """
    nodes: Dict[str, StepPlanNode] = {}
    for node in plan:
        if node.id in nodes:
            raise PlanStructureError(f"Duplicate plan node id '{node.id}'")
        if len(set(node.depends_on)) != len(node.depends_on):
            raise PlanStructureError(f"Node '{node.id}' lists a dependency twice")
        nodes[node.id] = node

    for node in plan:
        missing = [dep for dep in node.depends_on if dep not in nodes or dep == node.id]
        if missing:
            raise PlanStructureError(f"Node '{node.id}' depends on unknown nodes", pending=missing)

    routers = [node for node in plan if node.type == StepType.ROUTER]
    if len(routers) != 1:
        raise PlanStructureError(f"Plan must contain exactly one ROUTER node, found {len(routers)}")
    if routers[0].depends_on:
        raise PlanStructureError("ROUTER node must not have dependencies")

    for node in plan:
        if node.type in (StepType.MERGE, StepType.JUDGE):
            if not any(is_model_execution_type(nodes[dep].type) for dep in node.depends_on):
                raise PlanStructureError(f"{node.type.value} node '{node.id}' has no model-producing dependency")

    # Kahn's algorithm: anything left unvisited sits on a cycle.
    remaining = {node.id: len(node.depends_on) for node in plan}
    dependents: Dict[str, List[str]] = {node.id: [] for node in plan}
    for node in plan:
        for dep in node.depends_on:
            dependents[dep].append(node.id)
    ready = [node_id for node_id, count in remaining.items() if count == 0]
    visited = 0
    while ready:
        current = ready.pop()
        visited += 1
        for child in dependents[current]:
            remaining[child] -= 1
            if remaining[child] == 0:
                ready.append(child)
    if visited != len(plan):
        cyclic = sorted(node_id for node_id, count in remaining.items() if count > 0)
        raise PlanStructureError("Plan contains a dependency cycle", pending=cyclic)
