"""
test_graph.py — Topology checks and end-to-end runs of the compiled graph.

Runs go through the real LangGraph engine; only the model factories and the
search tool are patched.
"""

from contextlib import ExitStack
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.messages import AIMessage
from langgraph.graph import END, START

from clinsynapse.main_graph import (
    CONDITIONAL_EDGES,
    NODES,
    STATIC_EDGES,
    ConditionalEdge,
    GraphConfigurationError,
    validate_transitions,
)
from clinsynapse.prompts import NO_MEDILLAMA_RESPONSE
from clinsynapse.routing import route_after_evaluate
from clinsynapse.schemas import Decomposition, QualityVerdict
from clinsynapse.state import initial_state

ULCER_QUERY = "What are the treatment options for stomach ulcers?"


def _both_workers() -> Decomposition:
    return Decomposition.model_validate({
        "tasks": {
            "medILlama": [{"query": "Explain first-line pharmacotherapy for peptic ulcers"}],
            "webSearch": [{"query": "Latest peptic ulcer treatment guidelines"}],
        },
        "requiredAgents": {"medILlama": True, "webSearch": True},
    })


def _patch_models(stack: ExitStack, **factories) -> None:
    targets = {
        "evaluate": "clinsynapse.nodes.evaluation.chat_model",
        "orchestrate": "clinsynapse.nodes.orchestrator.chat_model",
        "medillama": "clinsynapse.nodes.medillama.medillama_model",
        "search_summary": "clinsynapse.nodes.web_search.chat_model",
        "search": "clinsynapse.nodes.web_search.web_search_tool",
        "compile": "clinsynapse.nodes.compiler.chat_model",
        "reflect": "clinsynapse.nodes.reflection.chat_model",
    }
    for name, factory in factories.items():
        stack.enter_context(patch(targets[name], factory))


def _search_tool(hits) -> MagicMock:
    search = MagicMock()
    search.ainvoke = AsyncMock(return_value=hits)
    return search


# ── Topology ──────────────────────────────────────────────────────────────────

def test_registered_nodes(test_graph):
    nodes = set(test_graph.get_graph().nodes) - {START, END}
    assert nodes == {"evaluate", "orchestrate", "medILlama", "web_search", "compile", "reflect"}
    assert "rag" not in nodes


def test_transition_table_is_valid():
    validate_transitions(NODES, STATIC_EDGES, CONDITIONAL_EDGES)


def test_validate_rejects_unknown_target():
    edges = [
        *CONDITIONAL_EDGES[1:],
        ConditionalEdge("evaluate", route_after_evaluate, (END, "rag"), END),
    ]
    with pytest.raises(GraphConfigurationError, match="unknown"):
        validate_transitions(NODES, STATIC_EDGES, edges)


def test_validate_rejects_fallback_outside_targets():
    edges = [
        *CONDITIONAL_EDGES[1:],
        ConditionalEdge("evaluate", route_after_evaluate, (END,), "orchestrate"),
    ]
    with pytest.raises(GraphConfigurationError, match="fallback"):
        validate_transitions(NODES, STATIC_EDGES, edges)


def test_validate_rejects_empty_targets():
    edges = [
        *CONDITIONAL_EDGES[1:],
        ConditionalEdge("evaluate", route_after_evaluate, (), END),
    ]
    with pytest.raises(GraphConfigurationError, match="no targets"):
        validate_transitions(NODES, STATIC_EDGES, edges)


def test_validate_rejects_dead_end():
    static_edges = [edge for edge in STATIC_EDGES if edge != ("compile", "reflect")]
    with pytest.raises(GraphConfigurationError, match="without outgoing edges"):
        validate_transitions(NODES, static_edges, CONDITIONAL_EDGES)


def test_validate_rejects_mixed_edges():
    static_edges = [*STATIC_EDGES, ("reflect", END)]
    with pytest.raises(GraphConfigurationError, match="both static and conditional"):
        validate_transitions(NODES, static_edges, CONDITIONAL_EDGES)


def test_validate_rejects_duplicate_conditional_edge():
    edges = [*CONDITIONAL_EDGES, CONDITIONAL_EDGES[0]]
    with pytest.raises(GraphConfigurationError, match="more than one"):
        validate_transitions(NODES, STATIC_EDGES, edges)


# ── End-to-end ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_simple_query_ends_after_evaluate(test_graph, config, text_model, structured_model):
    orchestrate = structured_model(_both_workers())
    with ExitStack() as stack:
        _patch_models(
            stack,
            evaluate=text_model("SIMPLE: Hello! Ask me any medical question."),
            orchestrate=orchestrate,
        )
        result = await test_graph.ainvoke(initial_state("Hi"), config)

    assert result["is_simple_query"] is True
    assert result["final_response"] == "Hello! Ask me any medical question."
    assert result["iteration_count"] == 0
    orchestrate.assert_not_called()


@pytest.mark.asyncio
async def test_complex_query_runs_both_workers_once(
    test_graph, config, text_model, structured_model, search_hits
):
    compile_model = text_model("PPIs plus H. pylori eradication are first-line [1].")
    with ExitStack() as stack:
        _patch_models(
            stack,
            evaluate=text_model("COMPLEX"),
            orchestrate=structured_model(_both_workers()),
            medillama=text_model("PPIs reduce gastric acid secretion."),
            search=_search_tool(search_hits),
            search_summary=text_model("Guidelines recommend PPIs [1]."),
            compile=compile_model,
            reflect=structured_model(QualityVerdict(quality_passed=True)),
        )
        result = await test_graph.ainvoke(initial_state(ULCER_QUERY), config)

    assert result["medillama_response"] == "PPIs reduce gastric acid secretion."
    assert result["web_search_response"] == "Guidelines recommend PPIs [1]."
    assert result["final_response"] == "PPIs plus H. pylori eradication are first-line [1]."
    assert result["iteration_count"] == 1
    assert result["quality_passed"] is True
    assert result["reflection_feedback"] is None
    # Barrier: compile composed exactly once.
    assert compile_model.call_count == 1
    assert [m["role"] for m in result["messages"]] == ["user", "assistant", "assistant"]


@pytest.mark.asyncio
async def test_single_worker_is_not_blocked_by_the_other(test_graph, config, text_model, structured_model):
    decomposition = Decomposition.model_validate({
        "tasks": {"medILlama": [{"query": "Explain migraine pathophysiology"}]},
        "requiredAgents": {"medILlama": True, "webSearch": False},
    })
    search = _search_tool([])
    with ExitStack() as stack:
        _patch_models(
            stack,
            evaluate=text_model("COMPLEX"),
            orchestrate=structured_model(decomposition),
            medillama=text_model("Cortical spreading depression..."),
            search=search,
            compile=text_model("Migraine answer"),
            reflect=structured_model(QualityVerdict(quality_passed=True)),
        )
        result = await test_graph.ainvoke(initial_state("Why do migraines happen?"), config)

    assert result["final_response"] == "Migraine answer"
    assert result["web_search_response"] == ""
    search.ainvoke.assert_not_called()


@pytest.mark.asyncio
async def test_no_required_agents_goes_straight_to_compile(test_graph, config, text_model, structured_model):
    with ExitStack() as stack:
        _patch_models(
            stack,
            evaluate=text_model("COMPLEX"),
            orchestrate=structured_model(None),
            compile=text_model("Best-effort answer"),
            reflect=structured_model(QualityVerdict(quality_passed=True)),
        )
        result = await test_graph.ainvoke(initial_state(ULCER_QUERY), config)

    assert result["final_response"] == "Best-effort answer"
    assert result["tasks"] == {}


@pytest.mark.asyncio
async def test_failed_gate_stops_at_max_iterations(
    test_graph, config, text_model, structured_model, search_hits
):
    failing = QualityVerdict(quality_passed=False, feedback="Add dosing details")
    reflect = structured_model(failing)
    orchestrate = structured_model(_both_workers())
    with ExitStack() as stack:
        _patch_models(
            stack,
            evaluate=text_model("COMPLEX"),
            orchestrate=orchestrate,
            medillama=text_model("analysis"),
            search=_search_tool(search_hits),
            search_summary=text_model("evidence"),
            compile=text_model("Draft 1", "Draft 2", "Draft 3"),
            reflect=reflect,
        )
        result = await test_graph.ainvoke(initial_state(ULCER_QUERY), config)

    assert result["iteration_count"] == 3
    assert result["quality_passed"] is False
    assert result["final_response"] == "Draft 3"
    assert orchestrate.return_value.with_structured_output.return_value.ainvoke.await_count == 3


@pytest.mark.asyncio
async def test_hard_cap_forces_pass_on_fourth_review(
    test_graph, text_model, structured_model, search_hits
):
    failing = QualityVerdict(quality_passed=False, feedback="Needs more evidence")
    reflect = structured_model(failing, failing, failing)
    config = {"configurable": {"max_iterations": 5, "bypass_reflection": False}}
    with ExitStack() as stack:
        _patch_models(
            stack,
            evaluate=text_model("COMPLEX"),
            orchestrate=structured_model(_both_workers()),
            medillama=text_model("analysis"),
            search=_search_tool(search_hits),
            search_summary=text_model("evidence"),
            compile=text_model("Draft 1", "Draft 2", "Draft 3", "Draft 4"),
            reflect=reflect,
        )
        result = await test_graph.ainvoke(initial_state(ULCER_QUERY), config)

    assert result["iteration_count"] == 4
    assert result["quality_passed"] is True
    assert result["reflection_feedback"] is None
    assert result["final_response"] == "Draft 4"
    assert reflect.return_value.with_structured_output.return_value.ainvoke.await_count == 3


@pytest.mark.asyncio
async def test_failed_gate_then_pass_refines_answer(
    test_graph, config, text_model, structured_model, search_hits
):
    reflect = structured_model(
        QualityVerdict(quality_passed=False, feedback="Mention H. pylori testing"),
        QualityVerdict(quality_passed=True),
    )
    compile_model = text_model("First draft", "Refined draft")
    with ExitStack() as stack:
        _patch_models(
            stack,
            evaluate=text_model("COMPLEX"),
            orchestrate=structured_model(_both_workers()),
            medillama=text_model("analysis"),
            search=_search_tool(search_hits),
            search_summary=text_model("evidence"),
            compile=compile_model,
            reflect=reflect,
        )
        result = await test_graph.ainvoke(initial_state(ULCER_QUERY), config)

    assert result["final_response"] == "Refined draft"
    assert result["iteration_count"] == 2
    assert result["quality_passed"] is True
    assert compile_model.call_count == 2


@pytest.mark.asyncio
async def test_blank_expert_reply_keeps_web_evidence(
    test_graph, config, text_model, structured_model, search_hits
):
    blank_medillama = MagicMock()
    blank_medillama.return_value.ainvoke = AsyncMock(return_value=AIMessage(content=""))
    compile_model = MagicMock()
    compile_model.return_value.ainvoke = AsyncMock(return_value=AIMessage(content="Answer from web evidence"))
    with ExitStack() as stack:
        _patch_models(
            stack,
            evaluate=text_model("COMPLEX"),
            orchestrate=structured_model(_both_workers()),
            medillama=blank_medillama,
            search=_search_tool(search_hits),
            search_summary=text_model("Guidelines recommend PPIs [1]."),
            compile=compile_model,
            reflect=structured_model(QualityVerdict(quality_passed=True)),
        )
        result = await test_graph.ainvoke(initial_state(ULCER_QUERY), config)

    assert result["medillama_response"] == NO_MEDILLAMA_RESPONSE
    assert result["final_response"] == "Answer from web evidence"
    assert result["iteration_count"] == 1
    compile_prompt = compile_model.return_value.ainvoke.await_args.args[0][1]["content"]
    assert "Guidelines recommend PPIs [1]." in compile_prompt
