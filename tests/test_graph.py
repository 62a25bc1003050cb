"""Tests for the verification stage graph."""

from __future__ import annotations

import pytest
from langgraph.graph.state import CompiledStateGraph

from guidance_agent.verification.graph import (
    STAGE_CONSISTENCY,
    STAGE_REVISION,
    STAGE_ROUTING,
    STAGE_SCORING,
    build_verification_graph,
)
from guidance_agent.verification.models import Decision
from tests.helpers import CLEAN_ANSWER, NO_DISCLAIMER_ANSWER, make_request

pytestmark = pytest.mark.unit


@pytest.fixture
def graph_for(rules, prompts, settings):
    def _build(generator):
        return build_verification_graph(generator, rules, prompts, settings)

    return _build


class TestGraphStructure:
    def test_compiles(self, graph_for, mock_generator):
        graph = graph_for(mock_generator())
        assert isinstance(graph, CompiledStateGraph)
        assert graph.name == "answer_verification"

    def test_has_stage_nodes(self, graph_for, mock_generator):
        nodes = set(graph_for(mock_generator()).get_graph().nodes)
        assert {"check_draft", "revise", "route"} <= nodes


class TestGraphRun:
    async def test_clean_draft_skips_revision(self, graph_for, mock_generator):
        state = await graph_for(mock_generator()).ainvoke(
            {"request": make_request(), "draft": CLEAN_ANSWER}
        )
        assert state["stages"] == [STAGE_CONSISTENCY, STAGE_SCORING, STAGE_ROUTING]
        assert state["decision"] == Decision.approved
        assert state["fallback_reason"] is None
        assert "revisions" not in state or state["revisions"] == []

    async def test_revision_state_accumulates(self, graph_for, mock_generator):
        request = make_request(draft_answer=NO_DISCLAIMER_ANSWER)
        state = await graph_for(mock_generator(CLEAN_ANSWER)).ainvoke(
            {"request": request, "draft": NO_DISCLAIMER_ANSWER}
        )
        assert state["stages"] == [
            STAGE_CONSISTENCY,
            STAGE_SCORING,
            STAGE_REVISION,
            STAGE_ROUTING,
        ]
        assert len(state["initial_issues"]) == 1
        assert state["final_issues"] == []
        assert len(state["issues"]) == 1
        assert len(state["revisions"]) == 1
        assert state["answer"] == CLEAN_ANSWER
        assert state["decision"] == Decision.revised
