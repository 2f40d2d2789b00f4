"""Workflow entry point: one resolved backend per run of a named graph."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .config import get_workflow_max_iterations
from .context import ContextInjector
from .llm import Backend, CompletionFn
from .providers import resolve_backend
from .registry import get_workflow
from .runtime_utils import SleepFn, log_runtime_event
from .scheduler import WorkflowRunError, execute

_logger = logging.getLogger(__name__)


class WorkflowResult(BaseModel):
    """Final state of one run plus the bookkeeping callers usually want."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    workflow: str
    final_state: dict[str, Any]
    all_agent_messages: list[Any] = Field(default_factory=list)
    iteration_count: int = 0
    backend_used: str


async def run_workflow(
    name: str,
    initial_state: Mapping[str, Any] | None = None,
    *,
    max_iterations: int | None = None,
    candidates: Sequence[Backend] | None = None,
    backend: Backend | None = None,
    timeout: float | None = None,
    max_supersteps: int | None = None,
    complete_fn: CompletionFn | None = None,
    sleep: SleepFn | None = None,
    inject_context: ContextInjector | None = None,
) -> WorkflowResult:
    """Run workflow ``name`` to completion.

    The backend is resolved once (unless ``backend`` is given) and stays fixed
    for every node of the run.
    """
    definition = get_workflow(name)
    chosen = backend or await resolve_backend(candidates, complete_fn=complete_fn)
    graph = definition.build(chosen, complete_fn=complete_fn, sleep=sleep, inject_context=inject_context)

    state = dict(initial_state or {})
    if definition.max_iterations_field in graph.schema.field_names:
        limit = get_workflow_max_iterations() if max_iterations is None else max_iterations
        if limit < 1:
            raise ValueError(f"max_iterations must be at least 1, got {limit}")
        state[definition.max_iterations_field] = limit

    log_runtime_event(_logger, "workflow_start", workflow=name, backend=chosen.label)
    try:
        final_state = await execute(graph, state, max_supersteps=max_supersteps, timeout=timeout)
    except WorkflowRunError:
        _logger.exception("workflow %s failed on %s", name, chosen.label)
        raise

    messages = final_state.get(definition.messages_field) or []
    return WorkflowResult(
        workflow=name,
        final_state=final_state,
        all_agent_messages=list(messages),
        iteration_count=int(final_state.get(definition.iteration_field) or 0),
        backend_used=chosen.label,
    )
