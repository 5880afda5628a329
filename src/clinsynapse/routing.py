"""
routing.py — Conditional-edge functions.

Pure predicates over state, evaluated by the graph after a node completes.
Each returns a non-empty list of next node ids; guard() turns an empty
result into RoutingError rather than letting the run stall.
"""

from __future__ import annotations

import inspect
import logging
from typing import Callable, Optional

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END

from clinsynapse.configuration import AgentConfiguration
from clinsynapse.schemas import WORKER_NODES, NodeId, WorkflowState

logger = logging.getLogger(__name__)


class RoutingError(RuntimeError):
    """A conditional edge produced no next node. Always a graph-definition bug."""


def route_after_evaluate(state: WorkflowState) -> list[str]:
    if state.get("is_simple_query", False):
        return [END]
    return [NodeId.ORCHESTRATE.value]


def route_after_orchestrate(state: WorkflowState) -> list[str]:
    required = state.get("required_agents", {})
    next_nodes = [
        node.value for kind, node in WORKER_NODES.items() if required.get(kind.value, False)
    ]
    # Orchestrate must never strand the workflow.
    return next_nodes or [NodeId.COMPILE.value]


def route_after_reflect(
    state: WorkflowState,
    config: Optional[RunnableConfig] = None,
) -> list[str]:
    cfg = AgentConfiguration.from_runnable_config(config)
    iteration_count = state.get("iteration_count", 0)

    if state.get("quality_passed", True):
        logger.info("[route] quality check passed, ending workflow")
        return [END]
    if iteration_count >= cfg.max_iterations:
        logger.info("[route] max iterations (%d) reached, ending workflow", cfg.max_iterations)
        return [END]
    logger.info("[route] quality check failed, starting iteration %d", iteration_count + 1)
    return [NodeId.ORCHESTRATE.value]


def guard(source: str, route: Callable[..., list[str]]) -> Callable[..., list[str]]:
    """Wrap a routing function so an empty result is a hard error."""

    takes_config = "config" in inspect.signature(route).parameters

    def _checked(state: WorkflowState, config: RunnableConfig) -> list[str]:
        next_nodes = route(state, config) if takes_config else route(state)
        if not next_nodes:
            raise RoutingError(f"Conditional edge from {source!r} returned no next node")
        return next_nodes

    _checked.__name__ = route.__name__
    return _checked
