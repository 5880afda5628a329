"""
Tavily search for the web_search worker.

The Tavily client is synchronous; each call runs in the default executor so
parallel workers keep sharing the event loop.
"""

from __future__ import annotations

import asyncio
import os
from typing import Literal

from langchain_core.tools import tool
from pydantic import BaseModel, Field
from tavily import TavilyClient

from clinsynapse.schemas import SearchResult


class WebSearchInput(BaseModel):
    query: str = Field(description="Self-contained medical search query")
    max_results: int = Field(default=5, ge=1, le=20, description="Hits to request from Tavily")
    search_depth: Literal["basic", "advanced"] = Field(
        default="advanced",
        description="'advanced' pulls longer page extracts, which the summary step relies on",
    )


@tool(args_schema=WebSearchInput)
async def web_search_tool(
    query: str,
    max_results: int = 5,
    search_depth: Literal["basic", "advanced"] = "advanced",
) -> list[dict]:
    """
    Search the web for current medical literature, clinical trials, guidelines
    and news.

    Returns a list of {url, title, content} dicts, one per hit, in the
    provider's ranking order. Errors from the provider propagate.
    """
    client = TavilyClient(api_key=os.getenv("TAVILY_API_KEY"))
    loop = asyncio.get_running_loop()
    response = await loop.run_in_executor(
        None,
        lambda: client.search(
            query=query,
            max_results=max_results,
            search_depth=search_depth,
        ),
    )

    return [
        SearchResult(
            url=result.get("url", ""),
            title=result.get("title") or "Untitled",
            content=result.get("content") or "",
        ).model_dump()
        for result in response.get("results", [])
        if result.get("url")
    ]
