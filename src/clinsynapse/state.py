"""
state.py — The per-run state container.

The reducer for each field comes from the Annotated metadata on
WorkflowState, the default from _DEFAULTS below. apply() / apply_update()
fold a partial update into a state the same way the compiled graph does,
without mutating the input. The event publisher uses them to track the
final answer of a streamed run.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, get_type_hints

from clinsynapse.schemas import AgentKind, RequiredAgents, WorkflowState

Reducer = Callable[[Any, Any], Any]


def no_required_agents() -> RequiredAgents:
    return {
        AgentKind.MEDILLAMA.value: False,
        AgentKind.WEB_SEARCH.value: False,
        AgentKind.RAG.value: False,
    }


_DEFAULTS: dict[str, Callable[[], Any]] = {
    "user_query": lambda: "",
    "messages": list,
    "is_simple_query": lambda: False,
    "tasks": dict,
    "required_agents": no_required_agents,
    "orchestration_data": lambda: {
        "required_agents": no_required_agents(),
        "reasoning": "",
        "plan": "",
    },
    "medillama_response": lambda: "",
    "web_search_response": lambda: "",
    "web_search_results": list,
    "rag_response": lambda: "",
    "final_response": lambda: "",
    "iteration_count": lambda: 0,
    # An unreached gate must not block termination.
    "quality_passed": lambda: True,
    "reflection_feedback": lambda: None,
}


def _collect_reducers() -> dict[str, Reducer]:
    hints = get_type_hints(WorkflowState, include_extras=True)
    reducers: dict[str, Reducer] = {}
    for name, hint in hints.items():
        metadata = getattr(hint, "__metadata__", ())
        reducer = next((m for m in metadata if callable(m)), None)
        if reducer is None:
            raise TypeError(f"WorkflowState.{name} has no reducer annotation")
        reducers[name] = reducer
    return reducers


REDUCERS: dict[str, Reducer] = _collect_reducers()

if set(REDUCERS) != set(_DEFAULTS):
    raise TypeError(
        "WorkflowState fields and defaults are out of sync: "
        f"{sorted(set(REDUCERS) ^ set(_DEFAULTS))}"
    )


def initial_state(
    user_query: str,
    required_agents: Optional[Mapping[str, bool]] = None,
) -> WorkflowState:
    """
    Fresh state for one run: every field at its default except user_query.

    Args:
        user_query:      the caller's question
        required_agents: per-run overrides for the required-agent flags
    """
    state: dict = {name: factory() for name, factory in _DEFAULTS.items()}
    state["user_query"] = user_query
    if required_agents:
        flags = dict(state["required_agents"])
        for kind in AgentKind:
            if kind.value in required_agents:
                flags[kind.value] = bool(required_agents[kind.value])
        state["required_agents"] = flags
    return state  # type: ignore[return-value]


def apply(state: Mapping[str, Any], field_name: str, update: Any) -> dict:
    """Return a new state with `field_name` merged through its reducer."""
    if field_name not in REDUCERS:
        raise KeyError(f"Unknown state field: {field_name!r}")
    current = state[field_name] if field_name in state else _DEFAULTS[field_name]()
    new_state = dict(state)
    new_state[field_name] = REDUCERS[field_name](current, update)
    return new_state


def apply_update(state: Mapping[str, Any], update: Optional[Mapping[str, Any]]) -> dict:
    """Fold a node's partial update into state. Untouched fields keep their values."""
    new_state = dict(state)
    for field_name, value in (update or {}).items():
        new_state = apply(new_state, field_name, value)
    return new_state
