"""Graph builder and the validated, immutable compiled graph."""

from __future__ import annotations

import typing
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Literal, Union, get_args, get_origin

from .state import StateSchema

START = "__start__"
END = "__end__"
_RESERVED_NAMES = frozenset({START, END})

NodeFn = Callable[[Mapping[str, Any]], Union[Mapping[str, Any], None, Awaitable[Union[Mapping[str, Any], None]]]]
RoutingFn = Callable[[Mapping[str, Any]], Any]


class GraphDefinitionError(ValueError):
    """Raised when a graph violates a structural invariant."""


@dataclass(frozen=True)
class Unconditional:
    target: str


@dataclass(frozen=True)
class Conditional:
    """Routing edge: ``router(state)`` returns a label looked up in ``routes``."""

    router: RoutingFn
    routes: Mapping[str, str]
    labels: frozenset[str]

    @property
    def name(self) -> str:
        return getattr(self.router, "__name__", repr(self.router))

    @property
    def targets(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(self.routes[label] for label in sorted(self.labels)))


def _literal_values(annotation: Any) -> set[str] | None:
    origin = get_origin(annotation)
    if origin is Literal:
        return {str(value) for value in get_args(annotation)}
    if origin is Union or (origin is not None and getattr(origin, "__name__", "") == "UnionType"):
        labels: set[str] = set()
        for arg in get_args(annotation):
            if arg is type(None):
                continue
            values = _literal_values(arg)
            if values is None:
                return None
            labels |= values
        return labels
    return None


def infer_route_labels(router: RoutingFn) -> set[str] | None:
    """Return the label set declared by a ``Literal[...]`` return annotation, if any."""
    try:
        hints = typing.get_type_hints(router)
    except (NameError, TypeError):
        return None
    annotation = hints.get("return")
    if annotation is None:
        return None
    return _literal_values(annotation)


class StateGraph:
    """Builder that accumulates nodes and edges, then compiles an immutable graph."""

    def __init__(self, state_schema: type | Mapping[str, Any] | StateSchema) -> None:
        self.schema = state_schema if isinstance(state_schema, StateSchema) else StateSchema(state_schema)
        self._nodes: dict[str, NodeFn] = {}
        self._edges: list[tuple[str, str]] = []
        self._branches: list[tuple[str, RoutingFn, dict[str, str], frozenset[str] | None]] = []

    def add_node(self, name: str, fn: NodeFn) -> "StateGraph":
        node_name = str(name or "").strip()
        if not node_name:
            raise GraphDefinitionError("Node name must be a non-empty string")
        if node_name in _RESERVED_NAMES:
            raise GraphDefinitionError(f"Node name {node_name!r} is reserved")
        if node_name in self._nodes:
            raise GraphDefinitionError(f"Node {node_name!r} is already defined")
        if not callable(fn):
            raise GraphDefinitionError(f"Node {node_name!r} must be callable")
        self._nodes[node_name] = fn
        return self

    def add_edge(self, source: str, target: str) -> "StateGraph":
        if source == END:
            raise GraphDefinitionError("END cannot have outgoing edges")
        if target == START:
            raise GraphDefinitionError("START cannot be an edge target")
        if (source, target) not in self._edges:
            self._edges.append((source, target))
        return self

    def add_conditional_edges(
        self,
        source: str,
        path: RoutingFn,
        path_map: Mapping[str, str] | Sequence[str],
        *,
        labels: Iterable[str] | None = None,
    ) -> "StateGraph":
        """Route from ``source`` with ``path(state) -> label``.

        The label set comes from ``labels`` or the router's ``Literal[...]``
        return annotation and must be fully covered by ``path_map``.
        """
        if source == END:
            raise GraphDefinitionError("END cannot have outgoing edges")
        if not callable(path):
            raise GraphDefinitionError(f"Routing function for {source!r} must be callable")
        if isinstance(path_map, Mapping):
            routes = {str(label): str(target) for label, target in path_map.items()}
        else:
            routes = {str(target): str(target) for target in path_map}
        if not routes:
            raise GraphDefinitionError(f"Conditional edge from {source!r} has an empty route map")
        declared = frozenset(str(label) for label in labels) if labels is not None else None
        self._branches.append((source, path, routes, declared))
        return self

    def _check_endpoint(self, name: str, *, role: str) -> None:
        if role == "source" and (name == START or name in self._nodes):
            return
        if role == "target" and (name == END or name in self._nodes):
            return
        raise GraphDefinitionError(f"Edge {role} {name!r} is not a defined node")

    def _compile_branches(self) -> dict[str, list[Conditional]]:
        branches: dict[str, list[Conditional]] = {}
        for source, router, routes, declared in self._branches:
            self._check_endpoint(source, role="source")
            for target in routes.values():
                if target == START:
                    raise GraphDefinitionError(f"Conditional edge from {source!r} cannot route to START")
                self._check_endpoint(target, role="target")
            label_set = declared if declared is not None else infer_route_labels(router)
            router_name = getattr(router, "__name__", repr(router))
            if label_set is None:
                raise GraphDefinitionError(
                    f"Cannot determine the labels of routing function {router_name!r} from {source!r}; "
                    "annotate its return type with Literal[...] or pass labels=..."
                )
            unmapped = sorted(set(label_set) - set(routes))
            if unmapped:
                raise GraphDefinitionError(
                    f"Routing function {router_name!r} from {source!r} can return unmapped label(s) {unmapped}"
                )
            branches.setdefault(source, []).append(
                Conditional(router=router, routes=MappingProxyType(dict(routes)), labels=frozenset(label_set))
            )
        return branches

    def compile(self) -> "CompiledGraph":
        """Validate invariants and return an executable graph."""
        if not self._nodes:
            raise GraphDefinitionError("Graph has no nodes")
        for source, target in self._edges:
            self._check_endpoint(source, role="source")
            self._check_endpoint(target, role="target")
        branches = self._compile_branches()

        successors: dict[str, list[str]] = {}
        for source, target in self._edges:
            successors.setdefault(source, []).append(target)

        adjacency: dict[str, set[str]] = {}
        for source, targets in successors.items():
            adjacency.setdefault(source, set()).update(targets)
        for source, source_branches in branches.items():
            for branch in source_branches:
                adjacency.setdefault(source, set()).update(branch.targets)

        if not adjacency.get(START):
            raise GraphDefinitionError("START has no outgoing edge")

        reachable = _reachable(adjacency, [START])
        unreachable = [name for name in self._nodes if name not in reachable]
        if unreachable:
            raise GraphDefinitionError(f"Node(s) {unreachable} are not reachable from START")

        reverse: dict[str, set[str]] = {}
        for source, targets in adjacency.items():
            for target in targets:
                reverse.setdefault(target, set()).add(source)
        reaches_end = _reachable(reverse, [END])
        dead_ends = [name for name in self._nodes if name not in reaches_end]
        if dead_ends:
            raise GraphDefinitionError(f"Node(s) {dead_ends} have no path to END")

        return CompiledGraph(
            schema=self.schema,
            nodes=dict(self._nodes),
            successors={source: tuple(targets) for source, targets in successors.items()},
            branches={source: tuple(items) for source, items in branches.items()},
            adjacency={source: frozenset(targets) for source, targets in adjacency.items()},
        )


def _reachable(adjacency: Mapping[str, Iterable[str]], sources: Iterable[str], *, avoid: str | None = None) -> set[str]:
    seen: set[str] = set()
    stack = [source for source in sources if source != avoid]
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        for target in adjacency.get(current, ()):
            if target != avoid and target not in seen:
                stack.append(target)
    return seen


class CompiledGraph:
    """Immutable, validated graph ready for execution."""

    def __init__(
        self,
        *,
        schema: StateSchema,
        nodes: Mapping[str, NodeFn],
        successors: Mapping[str, tuple[str, ...]],
        branches: Mapping[str, tuple[Conditional, ...]],
        adjacency: Mapping[str, frozenset[str]],
    ) -> None:
        self.schema = schema
        self.nodes: Mapping[str, NodeFn] = MappingProxyType(dict(nodes))
        self.node_order: tuple[str, ...] = tuple(nodes)
        self.successors: Mapping[str, tuple[str, ...]] = MappingProxyType(dict(successors))
        self.branches: Mapping[str, tuple[Conditional, ...]] = MappingProxyType(dict(branches))
        self._adjacency = MappingProxyType(dict(adjacency))
        predecessors: dict[str, set[str]] = {}
        for source, targets in successors.items():
            for target in targets:
                predecessors.setdefault(target, set()).add(source)
        self.predecessors: Mapping[str, frozenset[str]] = MappingProxyType(
            {name: frozenset(sources) for name, sources in predecessors.items()}
        )

    def edges_from(self, source: str) -> tuple[Unconditional | Conditional, ...]:
        """Outgoing edges of ``source``: static targets first, then routing edges."""
        static = tuple(Unconditional(target) for target in self.successors.get(source, ()))
        return static + self.branches.get(source, ())

    def edge_pairs(self) -> set[tuple[str, str]]:
        """All (source, target) pairs, conditional targets included."""
        return {(source, target) for source, targets in self._adjacency.items() for target in targets}

    def live_nodes(self, sources: Iterable[str], *, avoid: str) -> set[str]:
        """Nodes reachable from ``sources`` without passing through ``avoid``."""
        return _reachable(self._adjacency, sources, avoid=avoid)

    async def ainvoke(
        self,
        initial_state: Mapping[str, Any] | None = None,
        *,
        max_supersteps: int | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        from .scheduler import execute

        return await execute(self, initial_state, max_supersteps=max_supersteps, timeout=timeout)
