"""
executor.py - DAG executor for run plans.

This module executes a run's step plan against a RunStore. The executor is a
"dumb scheduler": the plan builder decides the graph shape, the router
decides the model, and the executor only enforces dependency order and
records what happened.

Run lifecycle:
    PENDING -> RUNNING -> DONE | ERROR

Algorithm:
1. Preconditions (run exists, has a user message) are checked before any
   state is mutated. A run already DONE with persisted steps is returned as-is.
2. One PENDING Step is materialized per plan node, and the run is marked RUNNING.
3. Waves: every not-yet-started node whose dependencies are all complete runs
   concurrently (asyncio.gather). An empty wave with nodes remaining is a
   PlanStructureError.
4. Each node is marked RUNNING, dispatched to its type's handler, and persisted
   DONE with timing, tokens, cost and output. The router's decision is also
   written onto the run.
5. Completion writes (final-answer artifact, assistant message, summary memory
   item, run DONE with totals) are issued together.
6. Any exception marks the run ERROR and every RUNNING step ERROR with the
   message, then propagates. Steps finished in earlier waves stay DONE.

Usage:
    from switchboard.runtime.executor import RunExecutor

    executor = RunExecutor(store)
    result = await executor.execute_run(run_id)
    result.run.status  # RunStatus.DONE
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Set

from switchboard.config.model_catalog import (
    PLACEHOLDER_MODEL,
    ModelCatalog,
    ModelCatalogEntry,
    default_catalog,
)

from .context_pack import compile_context_pack
from .errors import MissingUserMessageError, PlanStructureError, RunNotFoundError
from .outputs import check_output_contract, detect_disagreements, normalize_output
from .planner import MERGE_NODE_ID, build_run, plan_steps, validate_plan
from .providers import ModelCallOptions, ProviderRegistry, approx_tokens
from .routing import decide_route
from .store import RunStore
from .trace_logging import TraceContext, log_event, new_trace
from .types import (
    CPIR,
    Artifact,
    ArtifactKind,
    BuiltRun,
    MemoryItem,
    MemoryItemType,
    MessageRole,
    NodeOutput,
    ResolvedFromNode,
    RunStatus,
    RunWithRelations,
    Step,
    StepExecutionResult,
    StepPlanNode,
    StepStatus,
    StepType,
    generate_id,
    is_model_execution_type,
    utc_now,
    validate_contract,
)

logger = logging.getLogger(__name__)

NO_OUTPUT_SENTINEL = "No output generated."
SUMMARY_MEMORY_CHARS = 260
SUMMARY_MEMORY_CONFIDENCE = 0.5

MERGE_CLOSING_LINES = (
    "Final synthesis:",
    "Use the strongest claims that are consistent across options and retain concrete actions.",
)


@dataclass
class _ExecutionState:
    """State owned by one execute_run call. Never shared across runs."""

    run: BuiltRun
    plan: List[StepPlanNode]
    step_ids: Dict[str, str]
    trace: TraceContext
    node_outputs: Dict[str, NodeOutput] = field(default_factory=dict)
    started: Set[str] = field(default_factory=set)
    completed: Set[str] = field(default_factory=set)

    def outputs_in_plan_order(self) -> List[NodeOutput]:
        return [self.node_outputs[node.id] for node in self.plan if node.id in self.node_outputs]


Handler = Callable[[_ExecutionState, StepPlanNode, List[NodeOutput], TraceContext], Awaitable[StepExecutionResult]]


def adapt_cpir_for_step(cpir: CPIR, step_type: StepType, dependency_outputs: List[NodeOutput]) -> CPIR:
    """Append the upstream output a chain stage works on to the user text.

    REFINE, CRITIQUE and COMPRESS read their first dependency's raw output;
    every other type uses the CPIR unchanged.
    """
    upstream = dependency_outputs[0].output_raw if dependency_outputs else ""
    user_text = cpir.inputs.user_text

    if step_type == StepType.REFINE:
        user_text = f"{user_text}\n\nDraft to refine:\n{upstream}"
    elif step_type == StepType.CRITIQUE:
        user_text = f"{user_text}\n\nOutput to critique:\n{upstream}"
    elif step_type == StepType.COMPRESS:
        user_text = f"{user_text}\n\nCritique findings:\n{upstream}\n\nCompress into key points + actions."
    else:
        return cpir

    return cpir.model_copy(update={"inputs": cpir.inputs.model_copy(update={"user_text": user_text})})


class RunExecutor:
    """Executes run plans as dependency-ordered concurrent waves.

    Attributes:
        store: Run store holding runs, steps and session state.
        catalog: Model catalog used for routing, planning and pricing.
        providers: Provider adapters keyed by provider name.
    """

    def __init__(
        self,
        store: RunStore,
        catalog: Optional[ModelCatalog] = None,
        providers: Optional[ProviderRegistry] = None,
    ):
        self.store = store
        self.catalog = catalog or default_catalog()
        self.providers = providers or ProviderRegistry(catalog=self.catalog)
        self._handlers: Dict[StepType, Handler] = {
            StepType.ROUTER: self._execute_router_node,
            StepType.MODEL_CALL: self._execute_model_node,
            StepType.DRAFT: self._execute_model_node,
            StepType.REFINE: self._execute_model_node,
            StepType.CRITIQUE: self._execute_model_node,
            StepType.COMPRESS: self._execute_model_node,
            StepType.JUDGE: self._execute_judge_node,
            StepType.MERGE: self._execute_merge_node,
        }

    def handler_for(self, step_type: StepType) -> Handler:
        """Return the handler for a step type.

        Raises:
            PlanStructureError: If the type has no handler.
        """
        try:
            return self._handlers[step_type]
        except KeyError:
            raise PlanStructureError(f"No handler registered for step type {step_type}") from None

    # =========================================================================
    # Entry point
    # =========================================================================

    async def execute_run(self, run_id: str) -> RunWithRelations:
        """Execute a run's plan to completion.

        Args:
            run_id: The run to execute.

        Returns:
            The run with its steps and artifacts after execution.

        Raises:
            RunNotFoundError: The run does not exist (nothing is mutated).
            MissingUserMessageError: The run has no user message (nothing is mutated).
            ContractViolationError: The stored CPIR or preferences are malformed.
            PlanStructureError: The plan cannot be scheduled.
        """
        record = await self.store.get_run(run_id)
        if record is None:
            raise RunNotFoundError(run_id)

        if record.run.status == RunStatus.DONE and record.steps:
            logger.info("Run %s already DONE with %d steps; skipping execution", run_id, len(record.steps))
            return record

        if record.user_message is None:
            raise MissingUserMessageError(run_id)

        trace = new_trace(run_id)
        run = record.run
        cpir = validate_contract(CPIR, run.cpir_json, "CPIR")
        built = build_run(
            run_id=run.id,
            session_id=run.session_id,
            cpir=cpir,
            mode=run.mode,
            catalog=self.catalog,
            selected_model_ids=run.selected_model_ids,
            preferences=run.preferences_json,
        )
        plan = plan_steps(built, self.catalog)
        validate_plan(plan)

        log_event("info", "run.execute.start", trace, mode=built.mode.value, step_count=len(plan))

        step_ids = await self._materialize_plan(run_id, plan)
        await self.store.update_run(run_id, status=RunStatus.RUNNING)

        state = _ExecutionState(run=built, plan=plan, step_ids=step_ids, trace=trace)

        try:
            while len(state.completed) < len(plan):
                ready = [
                    node
                    for node in plan
                    if node.id not in state.started and all(dep in state.completed for dep in node.depends_on)
                ]
                if not ready:
                    pending = [node.id for node in plan if node.id not in state.completed]
                    raise PlanStructureError("No executable nodes found; plan may contain a cycle", pending=pending)

                logger.debug("Run %s wave: %s", run_id, [node.id for node in ready])
                results = await asyncio.gather(
                    *(self._run_node(state, node) for node in ready),
                    return_exceptions=True,
                )
                for result in results:
                    if isinstance(result, BaseException):
                        raise result

            await self._complete_run(state)
        except Exception as e:
            await self._fail_run(run_id, e, trace)
            raise

        log_event("info", "run.execute.complete", trace, step_count=len(plan))
        completed = await self.store.get_run(run_id)
        if completed is None:
            raise RunNotFoundError(run_id)
        return completed

    # =========================================================================
    # Scheduling
    # =========================================================================

    async def _materialize_plan(self, run_id: str, plan: List[StepPlanNode]) -> Dict[str, str]:
        """Create one PENDING step per plan node, in plan order."""
        step_ids: Dict[str, str] = {}
        for node in plan:
            step = await self.store.create_step(
                Step(
                    id=generate_id("step"),
                    run_id=run_id,
                    node_id=node.id,
                    type=node.type,
                    provider=node.provider,
                    model_id=node.model_id,
                    status=StepStatus.PENDING,
                )
            )
            step_ids[node.id] = step.id
        return step_ids

    async def _run_node(self, state: _ExecutionState, node: StepPlanNode) -> None:
        state.started.add(node.id)
        step_id = state.step_ids.get(node.id)
        if step_id is None:
            raise PlanStructureError(f"Missing step record for node {node.id}")

        step_trace = state.trace.for_step(step_id)
        await self.store.update_step(step_id, status=StepStatus.RUNNING, started_at=utc_now())

        dependency_outputs = [state.node_outputs[dep] for dep in node.depends_on if dep in state.node_outputs]
        handler = self.handler_for(node.type)

        started = time.perf_counter()
        result = await handler(state, node, dependency_outputs, step_trace)
        wall_ms = int((time.perf_counter() - started) * 1000)

        await self.store.update_step(
            step_id,
            provider=result.provider,
            model_id=result.model_id,
            rendered_prompt=result.rendered_prompt,
            output_raw=result.output_raw,
            output_parsed_json=result.output_parsed_json,
            status=StepStatus.DONE,
            finished_at=utc_now(),
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            cost_usd=result.cost_usd,
            latency_ms=result.latency_ms if result.latency_ms is not None else wall_ms,
            fallback_reason=result.fallback_reason,
        )

        state.node_outputs[node.id] = NodeOutput(
            step_id=step_id,
            type=node.type,
            provider=result.provider,
            model_id=result.model_id,
            rendered_prompt=result.rendered_prompt,
            output_raw=result.output_raw,
            output_parsed_json=result.output_parsed_json,
        )

        if node.type == StepType.ROUTER and result.output_parsed_json:
            await self.store.update_run(state.run.run_id, router_decision_json=result.output_parsed_json)

        state.completed.add(node.id)

    # =========================================================================
    # Handlers (one per node variant)
    # =========================================================================

    async def _execute_router_node(
        self,
        state: _ExecutionState,
        node: StepPlanNode,
        dependency_outputs: List[NodeOutput],
        trace: TraceContext,
    ) -> StepExecutionResult:
        decision = decide_route(state.run.cpir, state.run.preferences, self.catalog)
        parsed = decision.model_dump(mode="json")

        log_event(
            "info",
            "router.step.complete",
            trace,
            chosen=decision.chosen.model_id,
            token_estimate=decision.token_estimate,
            candidate_count=len(decision.candidates),
        )

        return StepExecutionResult(
            provider=node.provider,
            model_id=node.model_id,
            rendered_prompt="",
            output_raw=json.dumps(parsed, indent=2),
            output_parsed_json=parsed,
            input_tokens=decision.token_estimate,
            output_tokens=approx_tokens(decision.reasoning),
            cost_usd=0.0,
        )

    def _resolve_model(self, state: _ExecutionState, node: StepPlanNode) -> ModelCatalogEntry:
        """Resolve a node's ModelRef to a catalog entry."""
        ref = node.model
        if isinstance(ref, ResolvedFromNode):
            source = state.node_outputs.get(ref.node_id)
            chosen = (source.output_parsed_json or {}).get("chosen") if source else None
            entry = self.catalog.get(chosen["model_id"]) if isinstance(chosen, dict) else None
            if entry is None:
                entry = self.catalog.default_auto()
                logger.warning(
                    "Node %s could not resolve a model from node %s; using default %s",
                    node.id,
                    ref.node_id,
                    entry.model_id,
                )
            return entry

        entry = self.catalog.get(ref.model_id)
        if entry is not None:
            return entry
        if ref.model_id == PLACEHOLDER_MODEL.model_id:
            return PLACEHOLDER_MODEL
        logger.warning("Model %s is not in the catalog; rendering with default auto model", ref.model_id)
        return self.catalog.default_auto()

    async def _execute_model_node(
        self,
        state: _ExecutionState,
        node: StepPlanNode,
        dependency_outputs: List[NodeOutput],
        trace: TraceContext,
    ) -> StepExecutionResult:
        entry = self._resolve_model(state, node)
        if isinstance(node.model, ResolvedFromNode):
            provider, model_id = entry.provider, entry.model_id
        else:
            provider, model_id = node.model.provider, node.model.model_id
        adapter = self.providers.resolve(provider)

        # Rebuilt per call so every model step sees current memory.
        fresh_pack = await compile_context_pack(self.store, state.run.session_id, state.run.cpir.inputs.user_text)
        effective = adapt_cpir_for_step(
            state.run.cpir.model_copy(update={"context_pack": fresh_pack}),
            node.type,
            dependency_outputs,
        )

        prompt = adapter.render_prompt(effective, entry)
        response = await adapter.call_model(
            prompt,
            ModelCallOptions(
                model_id=model_id,
                provider=provider,
                json_mode=effective.output_contract.type == "json",
                trace_id=trace.trace_id,
            ),
        )

        parsed = normalize_output(response.text).to_dict()
        parsed["contract"] = check_output_contract(response.text, effective.output_contract).to_dict()

        log_event(
            "info",
            "model.step.complete",
            trace,
            provider=provider,
            model_id=model_id,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            cost_usd=response.cost_usd,
            latency_ms=response.latency_ms,
            fallback_reason=response.fallback_reason,
        )

        return StepExecutionResult(
            provider=provider,
            model_id=model_id,
            rendered_prompt=prompt,
            output_raw=response.text,
            output_parsed_json=parsed,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            cost_usd=response.cost_usd,
            latency_ms=response.latency_ms,
            fallback_reason=response.fallback_reason,
        )

    async def _execute_judge_node(
        self,
        state: _ExecutionState,
        node: StepPlanNode,
        dependency_outputs: List[NodeOutput],
        trace: TraceContext,
    ) -> StepExecutionResult:
        model_outputs = [output for output in state.outputs_in_plan_order() if output.type == StepType.MODEL_CALL]
        normalized = [normalize_output(output.output_raw) for output in model_outputs]
        disagreements = detect_disagreements(normalized)

        answer = {
            "normalized": [item.to_dict() for item in normalized],
            "disagreements": [item.to_dict() for item in disagreements],
        }
        logger.debug("Judge found %d disagreements across %d outputs", len(disagreements), len(model_outputs))

        return StepExecutionResult(
            provider=node.provider,
            model_id=node.model_id,
            rendered_prompt="",
            output_raw=json.dumps(answer, indent=2),
            output_parsed_json=answer,
            input_tokens=sum(approx_tokens(output.output_raw) for output in model_outputs),
            output_tokens=approx_tokens(json.dumps(answer)),
            cost_usd=0.0,
        )

    async def _execute_merge_node(
        self,
        state: _ExecutionState,
        node: StepPlanNode,
        dependency_outputs: List[NodeOutput],
        trace: TraceContext,
    ) -> StepExecutionResult:
        if len(node.depends_on) == 1:
            final_text = dependency_outputs[0].output_raw if dependency_outputs else ""
        else:
            options = "\n\n---\n\n".join(
                f"Option {index} ({output.model_id}):\n{output.output_raw}"
                for index, output in enumerate(dependency_outputs, start=1)
            )
            final_text = "\n".join(
                ["Merged final answer based on prior steps:", "", options, "", *MERGE_CLOSING_LINES]
            )

        return StepExecutionResult(
            provider=node.provider,
            model_id=node.model_id,
            rendered_prompt="",
            output_raw=final_text,
            output_parsed_json={"final_answer": final_text, "source_step_count": len(dependency_outputs)},
            input_tokens=sum(approx_tokens(output.output_raw) for output in dependency_outputs),
            output_tokens=approx_tokens(final_text),
            cost_usd=0.0,
        )

    # =========================================================================
    # Completion / failure
    # =========================================================================

    @staticmethod
    def extract_final_answer(state: _ExecutionState) -> str:
        """The merge output, else the last model output, else a sentinel."""
        merge = state.node_outputs.get(MERGE_NODE_ID)
        if merge is not None and merge.output_raw:
            return merge.output_raw

        model_outputs = [o for o in state.outputs_in_plan_order() if is_model_execution_type(o.type)]
        if model_outputs:
            return model_outputs[-1].output_raw
        return NO_OUTPUT_SENTINEL

    async def _complete_run(self, state: _ExecutionState) -> None:
        run_id = state.run.run_id
        session_id = state.run.session_id
        totals = await self.store.aggregate_step_totals(run_id)
        final_answer = self.extract_final_answer(state)

        await asyncio.gather(
            self.store.create_artifact(
                Artifact(
                    id=generate_id("art"),
                    session_id=session_id,
                    run_id=run_id,
                    kind=ArtifactKind.FINAL_ANSWER,
                    title=f"Run {run_id} final answer",
                    content=final_answer,
                )
            ),
            self.store.create_message(session_id, MessageRole.ASSISTANT, final_answer),
            self.store.create_memory_item(
                MemoryItem(
                    id=generate_id("mem"),
                    session_id=session_id,
                    type=MemoryItemType.FACT,
                    key=f"run-{run_id}-summary",
                    value={"summary": final_answer[:SUMMARY_MEMORY_CHARS]},
                    confidence=SUMMARY_MEMORY_CONFIDENCE,
                    source_run_id=run_id,
                )
            ),
            self.store.update_run(
                run_id,
                status=RunStatus.DONE,
                total_input_tokens=totals.input_tokens,
                total_output_tokens=totals.output_tokens,
                total_cost_usd=round(totals.cost_usd, 6),
                total_latency_ms=totals.latency_ms,
            ),
        )
        logger.info(
            "Run %s DONE: %d in / %d out tokens, $%.6f, %dms",
            run_id,
            totals.input_tokens,
            totals.output_tokens,
            totals.cost_usd,
            totals.latency_ms,
        )

    async def _fail_run(self, run_id: str, error: Exception, trace: TraceContext) -> None:
        """Mark the run and its RUNNING steps ERROR. Never masks ``error``."""
        message = str(error) or error.__class__.__name__
        try:
            await self.store.update_run(run_id, status=RunStatus.ERROR)
            running = await self.store.list_steps(run_id, status=StepStatus.RUNNING)
            await asyncio.gather(
                *(
                    self.store.update_step(
                        step.id,
                        status=StepStatus.ERROR,
                        finished_at=utc_now(),
                        error_message=message,
                    )
                    for step in running
                )
            )
        except Exception:
            logger.exception("Failed to record ERROR state for run %s", run_id)

        log_event("error", "run.execute.failed", trace, error=message, error_type=error.__class__.__name__)
