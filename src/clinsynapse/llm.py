"""
Model factories for the workflow nodes.

Both the general model and the fine-tuned MedILlama model are reached through
OpenAI-compatible endpoints (Groq / OpenAI for the former, Ollama's /v1 API
for the latter), so everything goes through ChatOpenAI with a base_url.

Nodes whose LLM output is not user-facing text (evaluate, orchestrate,
reflect) get the "nostream" tag so LangGraph's messages stream skips them.
"""

from __future__ import annotations

import os

from langchain_openai import ChatOpenAI

from clinsynapse.configuration import AgentConfiguration

NOSTREAM_TAG = "nostream"


def chat_model(
    cfg: AgentConfiguration,
    *,
    temperature: float = 0.0,
    stream_tokens: bool = True,
) -> ChatOpenAI:
    """General-purpose model used by evaluate, orchestrate, compile, reflect and the search summary."""
    return ChatOpenAI(
        model=cfg.model_name,
        api_key=os.getenv("LLM_API_KEY") or os.getenv("GROQ_API_KEY") or "sk-no-key-required",
        base_url=cfg.llm_base_url,
        temperature=temperature,
        max_retries=cfg.llm_max_retries,
        tags=None if stream_tokens else [NOSTREAM_TAG],
    )


def medillama_model(cfg: AgentConfiguration, *, temperature: float = 0.2) -> ChatOpenAI:
    """Fine-tuned biomedical model served by Ollama."""
    return ChatOpenAI(
        model=cfg.medillama_model_name,
        api_key=os.getenv("OLLAMA_API_KEY", "ollama"),
        base_url=cfg.medillama_base_url,
        temperature=temperature,
        max_retries=cfg.llm_max_retries,
    )
