"""swarmgraph package exports."""

from __future__ import annotations

from .env import bootstrap_env

# Load project-local .env once for package consumers (CLI, imports, notebooks).
bootstrap_env(override=False)

__all__ = ["END", "START", "StateGraph", "WorkflowResult", "run_workflow"]


def __getattr__(name: str):
    if name in {"END", "START", "StateGraph"}:
        from . import graph

        return getattr(graph, name)
    if name in {"WorkflowResult", "run_workflow"}:
        from . import runner

        return getattr(runner, name)
    raise AttributeError(name)
