"""Superstep scheduler with barrier joins and declaration-ordered merges."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from typing import Any

from .config import get_workflow_max_supersteps, get_workflow_run_timeout_seconds
from .graph import END, START, CompiledGraph, Unconditional
from .runtime_utils import log_runtime_event
from .state import InvalidUpdateError, read_only

_logger = logging.getLogger(__name__)


class WorkflowRunError(RuntimeError):
    """Base class for failures that abort a workflow run."""


class NodeExecutionError(WorkflowRunError):
    """A node raised; the run fails without a partial result."""

    def __init__(self, node: str, cause: BaseException) -> None:
        super().__init__(f"Node {node!r} failed: {type(cause).__name__}: {cause}")
        self.node = node


class InvalidRouteError(WorkflowRunError):
    """A routing function returned a label outside its route map."""


class GraphRecursionError(WorkflowRunError):
    """The superstep limit was reached before the run finished."""


class RunBudgetExceededError(WorkflowRunError):
    """The run exceeded its wall-clock budget; in-flight nodes were cancelled."""


class SchedulerStalledError(WorkflowRunError):
    """Pending barrier nodes wait on each other and nothing can run."""


async def _invoke_node(name: str, fn: Any, state_view: Mapping[str, Any]) -> dict[str, Any]:
    result = fn(state_view)
    if inspect.isawaitable(result):
        result = await result
    if result is None:
        return {}
    if not isinstance(result, Mapping):
        raise InvalidUpdateError(f"Node {name!r} must return a mapping or None, got {type(result).__name__}")
    return dict(result)


async def _cancel_tasks(tasks: list[asyncio.Task[Any]]) -> None:
    for task in tasks:
        if not task.done():
            task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


async def _run_superstep(
    graph: CompiledGraph,
    ready: list[str],
    state: Mapping[str, Any],
) -> dict[str, dict[str, Any]]:
    """Run ``ready`` nodes concurrently against one state snapshot."""
    state_view = read_only(state)
    loop = asyncio.get_running_loop()
    started_at = loop.time()
    tasks = {
        name: asyncio.create_task(_invoke_node(name, graph.nodes[name], state_view), name=f"swarmgraph:{name}")
        for name in ready
    }
    try:
        _, pending = await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        await _cancel_tasks(list(tasks.values()))
        raise
    if pending:
        await _cancel_tasks(list(pending))

    for name in ready:
        task = tasks[name]
        if task.cancelled():
            continue
        exc = task.exception()
        if exc is not None:
            raise NodeExecutionError(name, exc) from exc
    cancelled = [name for name in ready if tasks[name].cancelled()]
    if cancelled:
        raise NodeExecutionError(cancelled[0], asyncio.CancelledError("node cancelled itself"))

    updates = {name: tasks[name].result() for name in ready}
    for name in ready:
        log_runtime_event(
            _logger,
            "node_complete",
            node=name,
            updated_fields=sorted(updates[name]),
            superstep_seconds=round(loop.time() - started_at, 3),
        )
    return updates


def _select_ready(graph: CompiledGraph, arrivals: Mapping[str, set[str]]) -> list[str]:
    """Pick pending nodes whose barrier is satisfied, in declaration order.

    A node waits while any unconditional predecessor that has not arrived is
    still reachable from another pending node.
    """
    pending = set(arrivals)
    ready: list[str] = []
    for name in graph.node_order:
        if name not in arrivals:
            continue
        missing = graph.predecessors.get(name, frozenset()) - arrivals[name]
        if missing:
            live = graph.live_nodes(pending - {name}, avoid=name)
            waiting_on = sorted(missing & live)
            if waiting_on:
                log_runtime_event(_logger, "barrier_waiting", node=name, waiting_on=waiting_on)
                continue
        ready.append(name)
    return ready


def _record_arrival(arrivals: dict[str, set[str]], source: str, target: str) -> None:
    if target == END:
        return
    arrivals.setdefault(target, set()).add(source)


async def _advance(
    graph: CompiledGraph,
    source: str,
    state: Mapping[str, Any],
    arrivals: dict[str, set[str]],
) -> None:
    """Record arrivals for static successors and evaluate routing functions."""
    for edge in graph.edges_from(source):
        if isinstance(edge, Unconditional):
            _record_arrival(arrivals, source, edge.target)
            continue
        try:
            label = edge.router(read_only(state))
            if inspect.isawaitable(label):
                label = await label
        except Exception as exc:
            raise NodeExecutionError(source, exc) from exc
        target = edge.routes.get(label) if isinstance(label, str) else None
        if target is None:
            raise InvalidRouteError(
                f"Routing function {edge.name!r} from {source!r} returned unmapped label {label!r}"
            )
        log_runtime_event(_logger, "route_selected", source=source, router=edge.name, label=label, target=target)
        _record_arrival(arrivals, source, target)


async def _run_supersteps(
    graph: CompiledGraph,
    initial_state: Mapping[str, Any] | None,
    max_supersteps: int,
) -> dict[str, Any]:
    state = graph.schema.initial_state(initial_state)
    arrivals: dict[str, set[str]] = {}
    await _advance(graph, START, state, arrivals)

    superstep = 0
    while arrivals:
        ready = _select_ready(graph, arrivals)
        if not ready:
            raise SchedulerStalledError(f"No runnable node among pending {sorted(arrivals)}")
        if superstep >= max_supersteps:
            raise GraphRecursionError(f"Recursion limit of {max_supersteps} reached without hitting END")
        superstep += 1
        log_runtime_event(_logger, "superstep_start", superstep=superstep, nodes=ready)

        for name in ready:
            arrivals.pop(name, None)
        updates = await _run_superstep(graph, ready, state)

        # Merge one node at a time in declaration order, never in completion order.
        for name in ready:
            try:
                state = graph.schema.apply_update(state, updates[name], origin=f"node {name!r}")
            except Exception as exc:
                raise NodeExecutionError(name, exc) from exc
        for name in ready:
            await _advance(graph, name, state, arrivals)

    log_runtime_event(_logger, "workflow_complete", supersteps=superstep)
    return state


async def execute(
    graph: CompiledGraph,
    initial_state: Mapping[str, Any] | None = None,
    *,
    max_supersteps: int | None = None,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Run ``graph`` from START to END and return the final merged state."""
    limit = get_workflow_max_supersteps() if max_supersteps is None else max_supersteps
    if limit < 1:
        raise ValueError(f"max_supersteps must be at least 1, got {limit}")
    budget = get_workflow_run_timeout_seconds() if timeout is None else timeout

    run = _run_supersteps(graph, initial_state, limit)
    if not budget:
        return await run
    try:
        return await asyncio.wait_for(run, timeout=budget)
    except asyncio.TimeoutError as exc:
        raise RunBudgetExceededError(f"Workflow run exceeded its {budget}s budget") from exc
