from __future__ import annotations

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, Field
from typing_extensions import TypedDict


# ── Reducers ──────────────────────────────────────────────────────────────────

def replace(old, new):
    """Reducer: the incoming value wins outright."""
    return new


def append(old: list | None, new: list | None) -> list:
    """Reducer: concatenate old + new into a fresh list.
    Used for the message transcript, which is append-only."""
    return [*(old or []), *(new or [])]


# ── Identifiers ───────────────────────────────────────────────────────────────

class AgentKind(str, Enum):
    """Capabilities the orchestrator can assign tasks to."""

    MEDILLAMA = "medILlama"
    WEB_SEARCH = "webSearch"
    RAG = "rag"


class NodeId(str, Enum):
    """Canonical node identifiers. RAG is enumerated but has no registered node."""

    EVALUATE = "evaluate"
    ORCHESTRATE = "orchestrate"
    MEDILLAMA = "medILlama"
    WEB_SEARCH = "web_search"
    RAG = "rag"
    COMPILE = "compile"
    REFLECT = "reflect"


# Worker node + response field per capability. RAG has a response field but
# no worker, so it never appears in WORKER_NODES.
WORKER_NODES: dict[AgentKind, NodeId] = {
    AgentKind.MEDILLAMA: NodeId.MEDILLAMA,
    AgentKind.WEB_SEARCH: NodeId.WEB_SEARCH,
}

RESPONSE_FIELDS: dict[AgentKind, str] = {
    AgentKind.MEDILLAMA: "medillama_response",
    AgentKind.WEB_SEARCH: "web_search_response",
    AgentKind.RAG: "rag_response",
}


# ── Workflow State ────────────────────────────────────────────────────────────

class RequiredAgents(TypedDict):
    medILlama: bool
    webSearch: bool
    rag: bool


class OrchestrationData(TypedDict, total=False):
    required_agents: RequiredAgents
    reasoning: str
    plan: str


class WorkflowState(TypedDict, total=False):
    """
    Full state for one workflow run.

    Every field carries its reducer in the Annotated metadata; LangGraph reads
    the same metadata, so graph merges and clinsynapse.state.apply agree.
    Defaults live in clinsynapse.state.
    """

    # ── Request ────────────────────────────────────────────────────────────────
    user_query: Annotated[str, replace]
    messages: Annotated[list[dict], append]

    # ── Evaluation ─────────────────────────────────────────────────────────────
    is_simple_query: Annotated[bool, replace]

    # ── Orchestration (written only by orchestrate) ────────────────────────────
    tasks: Annotated[dict[str, list[dict]], replace]        # {agent_kind: [{query}]}
    required_agents: Annotated[RequiredAgents, replace]
    orchestration_data: Annotated[OrchestrationData, replace]

    # ── Worker outputs (each worker owns its own fields) ───────────────────────
    medillama_response: Annotated[str, replace]
    web_search_response: Annotated[str, replace]
    web_search_results: Annotated[list[dict], replace]      # [{query, results: [{url, title, content}]}]
    rag_response: Annotated[str, replace]

    # ── Compilation / quality gate ─────────────────────────────────────────────
    final_response: Annotated[str, replace]
    iteration_count: Annotated[int, replace]
    quality_passed: Annotated[bool, replace]
    reflection_feedback: Annotated[Optional[str], replace]


# ── Structured Output — Task Decomposition ────────────────────────────────────

class Task(BaseModel):
    """A single self-contained instruction for one worker."""
    query: str = Field(description="The specific sub-query to be answered. Must not rely on the user's original wording.")


class TasksByAgent(BaseModel):
    medILlama: list[Task] = Field(default_factory=list, description="Tasks for MedILlama.")
    webSearch: list[Task] = Field(default_factory=list, description="Tasks for the Web Search agent.")


class RequiredAgentFlags(BaseModel):
    medILlama: bool = Field(description="Whether MedILlama is required.")
    webSearch: bool = Field(description="Whether Web Search is required.")


class Decomposition(BaseModel):
    """Structured decomposition produced by the orchestrator."""
    tasks: TasksByAgent = Field(description="Tasks grouped by agent.")
    requiredAgents: RequiredAgentFlags = Field(description="Required agents for the query.")


# ── Structured Output — Quality Check ─────────────────────────────────────────

class QualityVerdict(BaseModel):
    """Verdict returned by the quality-check collaborator."""
    quality_passed: bool = Field(description="True if the response needs no further work.")
    feedback: Optional[str] = Field(
        default=None,
        description="Actionable improvement instructions; null when quality_passed is true.",
    )


# ── Search ────────────────────────────────────────────────────────────────────

class SearchResult(BaseModel):
    url: str
    title: str = ""
    content: str = ""


__all__ = [
    "replace",
    "append",
    "AgentKind",
    "NodeId",
    "WORKER_NODES",
    "RESPONSE_FIELDS",
    "RequiredAgents",
    "OrchestrationData",
    "WorkflowState",
    "Task",
    "TasksByAgent",
    "RequiredAgentFlags",
    "Decomposition",
    "QualityVerdict",
    "SearchResult",
]
