"""
conftest.py — Shared pytest fixtures for the ClinSynapse workflow tests.

No test makes a real LLM or search call: text models are LangChain's
FakeListChatModel, structured-output models are MagicMocks whose
with_structured_output(...).ainvoke is an AsyncMock.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from clinsynapse.main_graph import build_graph
from clinsynapse.state import initial_state


@pytest.fixture
def config():
    return {"configurable": {"bypass_reflection": False, "max_iterations": 3}}


@pytest.fixture
def test_graph():
    return build_graph()


@pytest.fixture
def text_model():
    """Factory: a model factory returning one FakeListChatModel that cycles through `responses`."""

    def _make(*responses: str) -> MagicMock:
        fake = FakeListChatModel(responses=list(responses))
        return MagicMock(return_value=fake)

    return _make


@pytest.fixture
def structured_model():
    """Factory: a model factory whose structured ainvoke returns `results` in order (or one result forever)."""

    def _make(*results) -> MagicMock:
        factory = MagicMock()
        llm = factory.return_value.with_structured_output.return_value
        if len(results) == 1:
            llm.ainvoke = AsyncMock(return_value=results[0])
        else:
            llm.ainvoke = AsyncMock(side_effect=list(results))
        return factory

    return _make


@pytest.fixture
def search_hits():
    return [
        {
            "url": "https://example.org/ulcer-guidelines",
            "title": "Peptic ulcer guidelines",
            "content": "PPIs remain first-line therapy for peptic ulcer disease.",
        },
        {
            "url": "https://example.org/h-pylori",
            "title": "H. pylori eradication",
            "content": "Bismuth quadruple therapy achieves high eradication rates.",
        },
    ]


@pytest.fixture
def complex_state():
    """State as orchestrate leaves it when both workers are required."""
    state = initial_state("What are the treatment options for stomach ulcers?")
    state["tasks"] = {
        "medILlama": [{"query": "Explain first-line pharmacotherapy for peptic ulcers"}],
        "webSearch": [{"query": "Latest peptic ulcer treatment guidelines"}],
    }
    state["required_agents"] = {"medILlama": True, "webSearch": True, "rag": False}
    return state
