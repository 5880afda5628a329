"""
web_search.py — Web evidence worker.

Runs one Tavily search per task, keeps the raw hits in web_search_results,
then summarises them with the main model into web_search_response. Only the
summary call is streamed.
"""

from __future__ import annotations

import json
import logging

from langchain_core.runnables import RunnableConfig

from clinsynapse.configuration import AgentConfiguration
from clinsynapse.llm import chat_model
from clinsynapse.prompts import (
    NO_SEARCH_RESULTS,
    SEARCH_SUMMARY_PROMPT,
    SEARCH_SUMMARY_USER_TEMPLATE,
)
from clinsynapse.schemas import AgentKind, WorkflowState
from clinsynapse.tools.web_search_tool import web_search_tool

logger = logging.getLogger(__name__)

_CHARS_PER_TOKEN = 4


async def web_search_agent(state: WorkflowState, config: RunnableConfig) -> dict:
    """
    Search, then summarise.

    Provider errors propagate and abort the run. When no task yields a hit the
    response is a fixed notice, so the compile barrier is still released.
    """
    cfg = AgentConfiguration.from_runnable_config(config)
    tasks = state.get("tasks", {}).get(AgentKind.WEB_SEARCH.value, [])

    all_results: list[dict] = []
    for task in tasks:
        query = task.get("query", "")
        if not query.strip():
            continue
        hits = await web_search_tool.ainvoke({
            "query": query,
            "max_results": cfg.web_search_max_results,
        })
        logger.info("[web_search] %d result(s) for %.80s", len(hits), query)
        if hits:
            all_results.append({"query": query, "results": hits})

    if not all_results:
        logger.warning("[web_search] no results for any task")
        return {"web_search_response": NO_SEARCH_RESULTS, "web_search_results": []}

    combined_content = _combine(all_results)
    char_limit = cfg.search_token_limit * _CHARS_PER_TOKEN
    if len(combined_content) > char_limit:
        logger.info(
            "[web_search] truncating search content from ~%d to %d tokens",
            len(combined_content) // _CHARS_PER_TOKEN,
            cfg.search_token_limit,
        )
        combined_content = combined_content[:char_limit]

    urls = json.dumps([
        {"query": group["query"], "url": hit["url"]}
        for group in all_results
        for hit in group["results"]
    ])

    llm = chat_model(cfg, temperature=0.2)
    summary = await llm.ainvoke([
        {"role": "system", "content": SEARCH_SUMMARY_PROMPT},
        {
            "role": "user",
            "content": SEARCH_SUMMARY_USER_TEMPLATE.format(
                search_results=combined_content,
                urls=urls,
            ),
        },
    ])

    return {
        "web_search_response": str(summary.content),
        "web_search_results": all_results,
    }


def _combine(all_results: list[dict]) -> str:
    return "\n\n---\n\n".join(
        f"Query: {group['query']}\n"
        + "\n\n".join(f"Source: {hit['url']}\n{hit['content']}" for hit in group["results"])
        for group in all_results
    )
