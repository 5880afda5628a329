"""
events.py — Turns a streamed graph run into transport events.

Events, in order:
  {"type": "state_update", "nodeId", "data"}   after every node
  {"type": "token", "nodeId", "content"}       streamed text from worker / compile nodes
  exactly one of
  {"type": "end", "message"}                   final answer, or a placeholder
  {"type": "error", "message"}                 the run aborted

Node ids coming off the stream are normalised through one alias table onto
NodeId; anything outside it is logged and dropped.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Mapping, Optional

from langchain_core.messages import AIMessageChunk
from langchain_core.runnables import RunnableConfig

from clinsynapse.configuration import AgentConfiguration
from clinsynapse.prompts import NO_RESPONSE_PLACEHOLDER
from clinsynapse.schemas import NodeId
from clinsynapse.state import apply_update, initial_state

logger = logging.getLogger(__name__)

# Alternative spellings providers and older clients use for the canonical ids.
NODE_ID_ALIASES: dict[str, NodeId] = {
    "evaluation": NodeId.EVALUATE,
    "evaluator": NodeId.EVALUATE,
    "orchestration": NodeId.ORCHESTRATE,
    "orchestrator": NodeId.ORCHESTRATE,
    "medillama": NodeId.MEDILLAMA,
    "med_llama": NodeId.MEDILLAMA,
    "medilama": NodeId.MEDILLAMA,
    "medical_llm": NodeId.MEDILLAMA,
    "websearch": NodeId.WEB_SEARCH,
    "web-search": NodeId.WEB_SEARCH,
    "web_search": NodeId.WEB_SEARCH,
    "compilation": NodeId.COMPILE,
    "compiler": NodeId.COMPILE,
    "reflection": NodeId.REFLECT,
    "reflector": NodeId.REFLECT,
}

# Nodes whose text output is forwarded as tokens, and the field that text ends up in.
STREAMING_FIELDS: dict[NodeId, str] = {
    NodeId.MEDILLAMA: "medillama_response",
    NodeId.WEB_SEARCH: "web_search_response",
    NodeId.COMPILE: "final_response",
}


def normalize_node_id(raw: Any) -> Optional[NodeId]:
    """Map a raw node identifier onto NodeId, or None if it is not one of ours."""
    if raw is None:
        return None
    text = str(raw).strip()
    try:
        return NodeId(text)
    except ValueError:
        pass
    return NODE_ID_ALIASES.get(text.lower())


def state_update_event(node_id: NodeId, data: Mapping[str, Any]) -> dict:
    return {"type": "state_update", "nodeId": node_id.value, "data": dict(data)}


def token_event(node_id: NodeId, content: str) -> dict:
    return {"type": "token", "nodeId": node_id.value, "content": content}


def end_event(final_response: str) -> dict:
    return {"type": "end", "message": final_response or NO_RESPONSE_PLACEHOLDER}


def error_event(message: str) -> dict:
    return {"type": "error", "message": message}


class _TokenLedger:
    """Text already forwarded per node for the node's current visit."""

    def __init__(self) -> None:
        self._sent: dict[NodeId, str] = {}

    def record(self, node_id: NodeId, content: str) -> None:
        self._sent[node_id] = self._sent.get(node_id, "") + content

    def settle(self, node_id: NodeId, final_text: str) -> Optional[str]:
        """
        Close the node's visit. Returns the part of final_text not yet sent as
        tokens, or None when the tokens already add up to it.
        """
        sent = self._sent.pop(node_id, "")
        if sent == final_text:
            return None
        if final_text.startswith(sent):
            return final_text[len(sent):]
        logger.warning("[events] %s tokens diverged from its final text", node_id.value)
        return None


async def stream_events(
    user_query: str,
    *,
    graph=None,
    config: Optional[RunnableConfig] = None,
) -> AsyncIterator[dict]:
    """
    Run one workflow instance and yield its events.

    Args:
        user_query: the caller's question
        graph:      compiled graph; defaults to clinsynapse.main_graph.graph
        config:     RunnableConfig; its "configurable" dict feeds AgentConfiguration
    """
    if graph is None:
        from clinsynapse.main_graph import graph as default_graph
        graph = default_graph

    cfg = AgentConfiguration.from_runnable_config(config)
    run_config: dict = dict(config or {})
    run_config.setdefault("recursion_limit", cfg.recursion_limit())

    state = initial_state(user_query, cfg.default_required_agents)
    ledger = _TokenLedger()

    try:
        async for mode, payload in graph.astream(
            state,
            config=run_config,
            stream_mode=["updates", "messages"],
        ):
            if mode == "messages":
                chunk, metadata = payload
                event = _token_from_chunk(chunk, metadata, ledger)
                if event is not None:
                    yield event
                continue

            for raw_node, update in (payload or {}).items():
                node_id = normalize_node_id(raw_node)
                if node_id is None:
                    logger.warning("[events] dropping update from unknown node %r", raw_node)
                    continue
                update = update or {}
                if node_id in STREAMING_FIELDS:
                    field_name = STREAMING_FIELDS[node_id]
                    if field_name in update:
                        remainder = ledger.settle(node_id, str(update[field_name] or ""))
                        if remainder:
                            yield token_event(node_id, remainder)
                state = apply_update(state, update)
                yield state_update_event(node_id, update)
    except Exception as exc:
        logger.exception("[events] workflow run failed")
        yield error_event(str(exc) or exc.__class__.__name__)
        return

    yield end_event(state.get("final_response", ""))


def _token_from_chunk(chunk: Any, metadata: Mapping[str, Any], ledger: _TokenLedger) -> Optional[dict]:
    # Only incremental chunks; whole messages repeat text already streamed.
    if not isinstance(chunk, AIMessageChunk):
        return None
    raw_node = (metadata or {}).get("langgraph_node")
    node_id = normalize_node_id(raw_node)
    if node_id is None:
        logger.warning("[events] dropping token from unknown node %r", raw_node)
        return None
    if node_id not in STREAMING_FIELDS:
        return None
    content = chunk.content if isinstance(chunk.content, str) else ""
    if not content:
        return None
    ledger.record(node_id, content)
    return token_event(node_id, content)
