"""Named workflow registry used by the runner and CLI."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from .graph import CompiledGraph
from .state import ITERATION_FIELD, MAX_ITERATIONS_FIELD

GraphFactory = Callable[..., CompiledGraph]


class UnknownWorkflowError(KeyError):
    """Raised for a workflow name that was never registered."""


@dataclass(frozen=True)
class WorkflowDefinition:
    """How to build and read one named workflow.

    ``build(backend, *, complete_fn, sleep, inject_context)`` returns a compiled
    graph whose nodes close over the resolved backend.
    """

    name: str
    build: GraphFactory
    input_field: str
    messages_field: str = "agent_messages"
    iteration_field: str = ITERATION_FIELD
    max_iterations_field: str = MAX_ITERATIONS_FIELD
    description: str = ""
    render: Callable[[Mapping[str, Any]], str] | None = None


_WORKFLOWS: dict[str, WorkflowDefinition] = {}


def register_workflow(definition: WorkflowDefinition, *, replace: bool = False) -> WorkflowDefinition:
    if definition.name in _WORKFLOWS and not replace:
        raise ValueError(f"Workflow {definition.name!r} is already registered")
    _WORKFLOWS[definition.name] = definition
    return definition


def unregister_workflow(name: str) -> None:
    _WORKFLOWS.pop(name, None)


def _load_builtin_workflows() -> None:
    from . import workflows  # noqa: F401


def get_workflow(name: str) -> WorkflowDefinition:
    _load_builtin_workflows()
    try:
        return _WORKFLOWS[name]
    except KeyError:
        available = ", ".join(sorted(_WORKFLOWS)) or "none"
        raise UnknownWorkflowError(f"Unknown workflow {name!r}. Available: {available}") from None


def list_workflows() -> list[WorkflowDefinition]:
    _load_builtin_workflows()
    return [_WORKFLOWS[name] for name in sorted(_WORKFLOWS)]
