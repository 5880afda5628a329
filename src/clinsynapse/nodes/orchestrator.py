"""
orchestrator.py — Task decomposition node.

Input:  user_query (+ final_response and reflection_feedback on a revision pass)
Output: tasks, required_agents, orchestration_data; clears worker outputs
Route:  route_after_orchestrate → [required workers] | compile
"""

from __future__ import annotations

import logging
from typing import Optional

from langchain_core.exceptions import OutputParserException
from langchain_core.runnables import RunnableConfig
from pydantic import ValidationError

from clinsynapse.configuration import AgentConfiguration
from clinsynapse.llm import chat_model
from clinsynapse.prompts import (
    TASK_DECOMPOSITION_PROMPT,
    TASK_REVISION_PROMPT,
    TASK_REVISION_USER_TEMPLATE,
)
from clinsynapse.schemas import (
    RESPONSE_FIELDS,
    WORKER_NODES,
    AgentKind,
    Decomposition,
    RequiredAgentFlags,
    Task,
    TasksByAgent,
    WorkflowState,
)

logger = logging.getLogger(__name__)

_AGENT_LABELS = {
    AgentKind.MEDILLAMA: "Use MedILlama for medical expertise",
    AgentKind.WEB_SEARCH: "Use Web Search for the latest information",
}


def _empty_decomposition() -> Decomposition:
    return Decomposition(
        tasks=TasksByAgent(),
        requiredAgents=RequiredAgentFlags(medILlama=False, webSearch=False),
    )


def is_revision_pass(state: WorkflowState) -> bool:
    """A failed quality gate with feedback means the next decomposition is a revision."""
    return not state.get("quality_passed", True) and bool(state.get("reflection_feedback"))


async def orchestrate_query(state: WorkflowState, config: RunnableConfig) -> dict:
    """
    Decompose the user's query into per-agent tasks.

    On a revision pass the previous answer and the reviewer's feedback are
    sent instead, so the new tasks target what was missing. Either way every
    worker response from the previous pass is cleared.

    A malformed structured response is not fatal: it degrades to "no agents
    required", which routes straight to compile.
    """
    cfg = AgentConfiguration.from_runnable_config(config)
    query = state.get("user_query", "")
    revision = is_revision_pass(state)

    llm = chat_model(cfg, temperature=0.1, stream_tokens=False).with_structured_output(Decomposition)

    if revision:
        feedback = state.get("reflection_feedback") or ""
        logger.info("[orchestrate] revising tasks from feedback: %.120s", feedback)
        messages = [
            {"role": "system", "content": TASK_REVISION_PROMPT},
            {
                "role": "user",
                "content": TASK_REVISION_USER_TEMPLATE.format(
                    previous_response=state.get("final_response", ""),
                    feedback=feedback,
                    user_query=query,
                ),
            },
        ]
    else:
        messages = [
            {"role": "system", "content": TASK_DECOMPOSITION_PROMPT},
            {"role": "user", "content": query},
        ]

    try:
        decomposition: Optional[Decomposition] = await llm.ainvoke(messages)
    except (OutputParserException, ValidationError) as exc:
        logger.warning("[orchestrate] unparseable decomposition, falling back to no agents: %s", exc)
        decomposition = None
    if decomposition is None:
        decomposition = _empty_decomposition()

    tasks, required = _normalise(decomposition, query)
    plan = _format_plan(required, revision, state.get("iteration_count", 0))
    reasoning = (
        f"Improvement based on feedback: {state.get('reflection_feedback')}"
        if revision
        else f'Initial analysis of query: "{query}"'
    )

    logger.info(
        "[orchestrate] required=%s tasks=%s",
        [k for k, v in required.items() if v],
        {k: len(v) for k, v in tasks.items()},
    )

    update: dict = {
        "tasks": tasks,
        "required_agents": required,
        "orchestration_data": {
            "required_agents": required,
            "reasoning": reasoning,
            "plan": plan,
        },
        "web_search_results": [],
        "messages": [{"role": "assistant", "content": plan}],
    }
    # Each pass starts from empty worker outputs.
    for field_name in RESPONSE_FIELDS.values():
        update[field_name] = ""
    return update


def _normalise(decomposition: Decomposition, query: str) -> tuple[dict, dict]:
    """
    Keep tasks only for selected agents, and make sure every selected agent
    has at least one task (workers never see the user query otherwise).
    """
    flags = decomposition.requiredAgents.model_dump()
    tasks_by_agent = decomposition.tasks

    tasks: dict[str, list[dict]] = {}
    required: dict[str, bool] = {kind.value: False for kind in AgentKind}

    for kind in WORKER_NODES:
        if not flags.get(kind.value, False):
            continue
        agent_tasks: list[Task] = [
            t for t in getattr(tasks_by_agent, kind.value, []) if t.query.strip()
        ]
        if not agent_tasks:
            agent_tasks = [Task(query=query)]
        tasks[kind.value] = [t.model_dump() for t in agent_tasks]
        required[kind.value] = True

    return tasks, required


def _format_plan(required: dict, revision: bool, iteration_count: int) -> str:
    header = (
        f"Revised plan for iteration {iteration_count + 1}:"
        if revision
        else "Execution plan:"
    )
    steps = [
        label for kind, label in _AGENT_LABELS.items() if required.get(kind.value)
    ]
    steps.append("Compile results into a comprehensive response")
    return "\n".join([header] + [f"{i}. {step}" for i, step in enumerate(steps, 1)])
