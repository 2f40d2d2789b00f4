from __future__ import annotations

from typing import Annotated, Literal, TypedDict

import pytest

from swarmgraph.graph import END, START, GraphDefinitionError, StateGraph, infer_route_labels
from swarmgraph.state import append


class _State(TypedDict, total=False):
    trail: Annotated[list, append]
    verdict: str


def _noop(state):
    del state
    return {}


def _pass_or_retry(state) -> Literal["pass", "retry"]:
    return "pass" if state.get("verdict") == "ok" else "retry"


def _unannotated_router(state):
    return "pass"


def _diamond() -> StateGraph:
    builder = StateGraph(_State)
    for name in ("a", "b", "c", "d"):
        builder.add_node(name, _noop)
    builder.add_edge(START, "a")
    builder.add_edge("a", "b")
    builder.add_edge("a", "c")
    builder.add_edge("b", "d")
    builder.add_edge("c", "d")
    builder.add_edge("d", END)
    return builder


def test_valid_diamond_compiles_with_predecessors_and_edges():
    graph = _diamond().compile()

    assert graph.node_order == ("a", "b", "c", "d")
    assert graph.predecessors["d"] == frozenset({"b", "c"})
    assert ("a", "b") in graph.edge_pairs()
    assert ("d", END) in graph.edge_pairs()


def test_node_names_must_be_unique_and_not_reserved():
    builder = StateGraph(_State)
    builder.add_node("a", _noop)

    with pytest.raises(GraphDefinitionError, match="already defined"):
        builder.add_node("a", _noop)
    with pytest.raises(GraphDefinitionError, match="reserved"):
        builder.add_node(END, _noop)
    with pytest.raises(GraphDefinitionError, match="non-empty"):
        builder.add_node("  ", _noop)


def test_edges_to_start_or_from_end_are_rejected():
    builder = StateGraph(_State)

    with pytest.raises(GraphDefinitionError, match="START"):
        builder.add_edge("a", START)
    with pytest.raises(GraphDefinitionError, match="END"):
        builder.add_edge(END, "a")


def test_compile_rejects_unknown_edge_endpoint():
    builder = _diamond()
    builder.add_edge("d", "ghost")

    with pytest.raises(GraphDefinitionError, match="ghost"):
        builder.compile()


def test_compile_rejects_graph_without_entry_edge():
    builder = StateGraph(_State)
    builder.add_node("a", _noop)
    builder.add_edge("a", END)

    with pytest.raises(GraphDefinitionError, match="START has no outgoing edge"):
        builder.compile()


def test_compile_rejects_unreachable_node():
    builder = _diamond()
    builder.add_node("orphan", _noop)
    builder.add_edge("orphan", END)

    with pytest.raises(GraphDefinitionError, match="not reachable"):
        builder.compile()


def test_compile_rejects_dead_end_node():
    builder = _diamond()
    builder.add_node("sink", _noop)
    builder.add_edge("a", "sink")

    with pytest.raises(GraphDefinitionError, match="no path to END"):
        builder.compile()


def test_compile_rejects_unmapped_route_label():
    builder = StateGraph(_State)
    builder.add_node("judge", _noop)
    builder.add_edge(START, "judge")
    builder.add_conditional_edges("judge", _pass_or_retry, {"pass": END})

    with pytest.raises(GraphDefinitionError, match="unmapped label"):
        builder.compile()


def test_compile_requires_known_route_labels():
    builder = StateGraph(_State)
    builder.add_node("judge", _noop)
    builder.add_edge(START, "judge")
    builder.add_conditional_edges("judge", _unannotated_router, {"pass": END})

    with pytest.raises(GraphDefinitionError, match="Literal"):
        builder.compile()


def test_explicit_labels_cover_unannotated_router():
    builder = StateGraph(_State)
    builder.add_node("judge", _noop)
    builder.add_edge(START, "judge")
    builder.add_conditional_edges("judge", _unannotated_router, {"pass": END}, labels=["pass"])

    graph = builder.compile()

    assert graph.branches["judge"][0].labels == frozenset({"pass"})


def test_conditional_cycle_compiles():
    builder = StateGraph(_State)
    builder.add_node("work", _noop)
    builder.add_node("judge", _noop)
    builder.add_edge(START, "work")
    builder.add_edge("work", "judge")
    builder.add_conditional_edges("judge", _pass_or_retry, {"pass": END, "retry": "work"})

    graph = builder.compile()

    assert graph.branches["judge"][0].targets == (END, "work")


def test_conditional_edge_cannot_route_to_start():
    builder = StateGraph(_State)
    builder.add_node("judge", _noop)
    builder.add_edge(START, "judge")
    builder.add_conditional_edges("judge", _pass_or_retry, {"pass": END, "retry": START})

    with pytest.raises(GraphDefinitionError, match="START"):
        builder.compile()


def test_infer_route_labels_reads_literal_and_optional():
    def maybe(state) -> Literal["x"] | None:
        return None

    assert infer_route_labels(_pass_or_retry) == {"pass", "retry"}
    assert infer_route_labels(maybe) == {"x"}
    assert infer_route_labels(_unannotated_router) is None
