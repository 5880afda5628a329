"""
evaluation.py — Entry node: trivial answer or full pipeline.

Input:  user_query
Output: is_simple_query (+ final_response when the model answers directly)
Route:  route_after_evaluate → END | orchestrate
"""

from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig

from clinsynapse.configuration import AgentConfiguration
from clinsynapse.llm import chat_model
from clinsynapse.prompts import QUERY_EVALUATION_PROMPT, SIMPLE_PREFIX
from clinsynapse.schemas import WorkflowState

logger = logging.getLogger(__name__)


async def evaluation_agent(state: WorkflowState, config: RunnableConfig) -> dict:
    """
    Ask the model whether the query can be answered directly.

    A reply starting with "SIMPLE:" is the answer itself; anything else sends
    the query down the multi-agent pipeline.
    """
    cfg = AgentConfiguration.from_runnable_config(config)
    query = state.get("user_query", "")

    llm = chat_model(cfg, temperature=0.0, stream_tokens=False)
    evaluation = await llm.ainvoke([
        {"role": "system", "content": QUERY_EVALUATION_PROMPT},
        {"role": "user", "content": query},
    ])
    # Models sometimes echo the quotes around the prompt's examples.
    text = str(evaluation.content).strip().strip("\"'`").strip()

    transcript = [{"role": "user", "content": query}]

    if text.startswith(SIMPLE_PREFIX):
        answer = text[len(SIMPLE_PREFIX):].strip()
        logger.info("[evaluate] simple query, answering directly")
        return {
            "is_simple_query": True,
            "final_response": answer,
            "messages": transcript + [{"role": "assistant", "content": answer}],
        }

    logger.info("[evaluate] complex query, starting orchestration")
    return {"is_simple_query": False, "messages": transcript}
