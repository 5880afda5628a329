import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv
from langchain_core.runnables import RunnableConfig

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(kw_only=True)
class AgentConfiguration:
    """Runtime configuration injected via RunnableConfig['configurable']."""

    model_name: str = field(
        default_factory=lambda: os.getenv("MAIN_AGENT_MODEL", "llama-3.3-70b-versatile")
    )
    medillama_model_name: str = field(
        default_factory=lambda: os.getenv("OLLAMA_MODEL", "medillama")
    )
    llm_base_url: str = field(
        default_factory=lambda: os.getenv("LLM_BASE_URL", "https://api.groq.com/openai/v1")
    )
    medillama_base_url: str = field(
        default_factory=lambda: os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1")
    )
    llm_max_retries: int = 3

    # Quality-gate loop
    max_iterations: int = 3
    bypass_reflection: bool = field(
        default_factory=lambda: _env_flag("BYPASS_REFLECTION")
    )

    # Per-run defaults for the required-agent flags (overwritten by orchestrate)
    default_required_agents: dict = field(
        default_factory=lambda: {"medILlama": False, "webSearch": False, "rag": False}
    )

    # Web search
    web_search_max_results: int = 5
    search_token_limit: int = 6000   # estimated tokens (4 chars each) fed to the summary call

    @classmethod
    def from_runnable_config(
        cls, config: Optional[RunnableConfig] = None
    ) -> "AgentConfiguration":
        configurable = (config or {}).get("configurable", {})
        return cls(
            **{k: v for k, v in configurable.items() if k in cls.__dataclass_fields__}
        )

    def recursion_limit(self) -> int:
        """Superstep budget for one run: evaluate + (orchestrate, workers, compile, reflect) per pass."""
        return 4 + 5 * (self.max_iterations + 1)
