"""
compiler.py — Fan-in barrier and answer composition.

Every worker has a static edge here. compile only does real work once every
required worker's response field is populated; before that it returns an
empty update, so an early visit is a no-op.

With reviewer feedback present it refines the previous answer instead of
composing from scratch.
"""

from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig

from clinsynapse.configuration import AgentConfiguration
from clinsynapse.llm import chat_model
from clinsynapse.prompts import (
    COMPILE_PROMPT,
    COMPILE_REFINEMENT_PROMPT,
    COMPILE_REFINEMENT_USER_TEMPLATE,
    COMPILE_USER_TEMPLATE,
    COMPILE_WITHOUT_WEB_PROMPT,
)
from clinsynapse.schemas import RESPONSE_FIELDS, WORKER_NODES, AgentKind, WorkflowState

logger = logging.getLogger(__name__)


def missing_responses(state: WorkflowState) -> list[str]:
    """Capabilities flagged as required whose worker has not answered yet."""
    required = state.get("required_agents", {})
    return [
        kind.value
        for kind in WORKER_NODES
        if required.get(kind.value, False) and not state.get(RESPONSE_FIELDS[kind], "")
    ]


def _required_text(state: WorkflowState, kind: AgentKind) -> str:
    if not state.get("required_agents", {}).get(kind.value, False):
        return ""
    text = state.get(RESPONSE_FIELDS[kind], "")
    if kind is AgentKind.MEDILLAMA:
        return _with_task_context(state, text)
    return text


def _with_task_context(state: WorkflowState, text: str) -> str:
    """The expert answers all its tasks at once; list them so the draft can map answers back."""
    queries = [
        t["query"] for t in state.get("tasks", {}).get(AgentKind.MEDILLAMA.value, []) if t.get("query")
    ]
    if not queries:
        return text
    listed = "\n".join(f"Task: {q}" for q in queries)
    return f"{listed}\nResponse: {text}"


async def compile_agent(state: WorkflowState, config: RunnableConfig) -> dict:
    missing = missing_responses(state)
    if missing:
        logger.info("[compile] waiting for %s", ", ".join(missing))
        return {}

    cfg = AgentConfiguration.from_runnable_config(config)
    medillama_text = _required_text(state, AgentKind.MEDILLAMA)
    web_text = _required_text(state, AgentKind.WEB_SEARCH)
    feedback = state.get("reflection_feedback")

    if feedback:
        logger.info("[compile] refining previous answer with reviewer feedback")
        messages = [
            {"role": "system", "content": COMPILE_REFINEMENT_PROMPT},
            {
                "role": "user",
                "content": COMPILE_REFINEMENT_USER_TEMPLATE.format(
                    previous_response=state.get("final_response", ""),
                    medillama_response=medillama_text,
                    web_search_response=web_text,
                    feedback=feedback,
                ),
            },
        ]
    else:
        uses_web = state.get("required_agents", {}).get(AgentKind.WEB_SEARCH.value, False)
        logger.info("[compile] composing answer (web evidence: %s)", uses_web)
        messages = [
            {"role": "system", "content": COMPILE_PROMPT if uses_web else COMPILE_WITHOUT_WEB_PROMPT},
            {
                "role": "user",
                "content": COMPILE_USER_TEMPLATE.format(
                    user_query=state.get("user_query", ""),
                    medillama_response=medillama_text,
                    web_search_response=web_text,
                    rag_response="",
                ),
            },
        ]

    llm = chat_model(cfg, temperature=0.2)
    response = await llm.ainvoke(messages)
    draft = str(response.content)

    return {
        "final_response": draft,
        "messages": [{"role": "assistant", "content": draft}],
    }
