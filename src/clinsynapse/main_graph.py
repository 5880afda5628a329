"""
main_graph.py — Top-level compiled graph for the ClinSynapse workflow.

Graph flow:
  START
    → evaluate        (trivial answer? → END)
    → orchestrate     (tasks + required agents; fans out to the required workers,
                       or straight to compile when none are required)
    → [medILlama | web_search]   (parallel workers, each writes its own field)
    → compile         (barrier: no-op until every required response is present)
    → reflect         (quality gate; → END, or back to orchestrate with feedback)

The topology is an explicit transition table (NODES, STATIC_EDGES,
CONDITIONAL_EDGES), validated before compilation: every conditional edge must
declare a non-empty target set that includes its fallback, and every target
must be a registered node or END.

Workers fanned out together run in the same superstep, so compile is
scheduled once after the last of them.

Compiled without a checkpointer: one run per request, nothing persisted.
Exported `graph` at module level.
"""

from __future__ import annotations

import logging
from typing import Callable, NamedTuple

from dotenv import load_dotenv
from langgraph.graph import END, START, StateGraph

from clinsynapse.nodes.compiler import compile_agent
from clinsynapse.nodes.evaluation import evaluation_agent
from clinsynapse.nodes.medillama import medillama_agent
from clinsynapse.nodes.orchestrator import orchestrate_query
from clinsynapse.nodes.reflection import reflection_agent
from clinsynapse.nodes.web_search import web_search_agent
from clinsynapse.routing import (
    guard,
    route_after_evaluate,
    route_after_orchestrate,
    route_after_reflect,
)
from clinsynapse.schemas import WORKER_NODES, NodeId, WorkflowState

load_dotenv()

logger = logging.getLogger(__name__)


class GraphConfigurationError(ValueError):
    """The transition table is inconsistent; raised before any run starts."""


class ConditionalEdge(NamedTuple):
    source: str
    route: Callable[..., list[str]]
    targets: tuple[str, ...]
    fallback: str


# ── Transition table ──────────────────────────────────────────────────────────

NODES: dict[str, Callable] = {
    NodeId.EVALUATE.value: evaluation_agent,
    NodeId.ORCHESTRATE.value: orchestrate_query,
    NodeId.MEDILLAMA.value: medillama_agent,
    NodeId.WEB_SEARCH.value: web_search_agent,
    NodeId.COMPILE.value: compile_agent,
    NodeId.REFLECT.value: reflection_agent,
}

STATIC_EDGES: list[tuple[str, str]] = [
    (START, NodeId.EVALUATE.value),
    # Every worker re-joins at the barrier.
    *[(node.value, NodeId.COMPILE.value) for node in WORKER_NODES.values()],
    (NodeId.COMPILE.value, NodeId.REFLECT.value),
]

CONDITIONAL_EDGES: list[ConditionalEdge] = [
    ConditionalEdge(
        source=NodeId.EVALUATE.value,
        route=route_after_evaluate,
        targets=(END, NodeId.ORCHESTRATE.value),
        fallback=NodeId.ORCHESTRATE.value,
    ),
    ConditionalEdge(
        source=NodeId.ORCHESTRATE.value,
        route=route_after_orchestrate,
        targets=(*[node.value for node in WORKER_NODES.values()], NodeId.COMPILE.value),
        fallback=NodeId.COMPILE.value,
    ),
    ConditionalEdge(
        source=NodeId.REFLECT.value,
        route=route_after_reflect,
        targets=(END, NodeId.ORCHESTRATE.value),
        fallback=END,
    ),
]


def validate_transitions(
    nodes: dict[str, Callable],
    static_edges: list[tuple[str, str]],
    conditional_edges: list[ConditionalEdge],
) -> None:
    """
    Check the transition table before compiling.

    Raises:
        GraphConfigurationError: on unknown endpoints, a node with both static
            and conditional outgoing edges, a node without any outgoing edge,
            or a conditional edge whose fallback is not among its targets.
    """
    known = set(nodes) | {START, END}

    for source, target in static_edges:
        if source not in known or target not in known:
            raise GraphConfigurationError(f"Static edge {source!r} → {target!r} uses an unknown node")

    static_sources = {source for source, _ in static_edges}
    conditional_sources = set()
    for edge in conditional_edges:
        if edge.source not in nodes:
            raise GraphConfigurationError(f"Conditional edge from unknown node {edge.source!r}")
        if edge.source in static_sources:
            raise GraphConfigurationError(f"Node {edge.source!r} has both static and conditional edges")
        if edge.source in conditional_sources:
            raise GraphConfigurationError(f"Node {edge.source!r} has more than one conditional edge")
        if not edge.targets:
            raise GraphConfigurationError(f"Conditional edge from {edge.source!r} has no targets")
        unknown = [t for t in edge.targets if t not in known]
        if unknown:
            raise GraphConfigurationError(f"Conditional edge from {edge.source!r} targets unknown {unknown}")
        if edge.fallback not in edge.targets:
            raise GraphConfigurationError(
                f"Conditional edge from {edge.source!r}: fallback {edge.fallback!r} is not a target"
            )
        conditional_sources.add(edge.source)

    dead_ends = set(nodes) - static_sources - conditional_sources
    if dead_ends:
        raise GraphConfigurationError(f"Nodes without outgoing edges: {sorted(dead_ends)}")


def build_graph():
    """
    Validate the transition table and compile the main graph.

    Returns:
        CompiledStateGraph ready for invocation.
    """
    validate_transitions(NODES, STATIC_EDGES, CONDITIONAL_EDGES)

    builder = StateGraph(WorkflowState)

    # ── Register nodes ────────────────────────────────────────────────────────
    for node_id, handler in NODES.items():
        builder.add_node(node_id, handler)

    # ── Static edges ──────────────────────────────────────────────────────────
    for source, target in STATIC_EDGES:
        builder.add_edge(source, target)

    # ── Conditional edges ─────────────────────────────────────────────────────
    for edge in CONDITIONAL_EDGES:
        builder.add_conditional_edges(edge.source, guard(edge.source, edge.route), list(edge.targets))

    logger.info("Workflow graph built: %d nodes", len(NODES))
    return builder.compile()


# ── Module-level graph ────────────────────────────────────────────────────────
graph = build_graph()

__all__ = [
    "CONDITIONAL_EDGES",
    "ConditionalEdge",
    "GraphConfigurationError",
    "NODES",
    "STATIC_EDGES",
    "build_graph",
    "graph",
    "validate_transitions",
]
