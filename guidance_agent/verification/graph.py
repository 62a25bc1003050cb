"""LangGraph stage graph: check the draft, optionally revise once, route."""

from __future__ import annotations

import operator
from typing import Annotated, Any

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from guidance_agent.config import Settings
from guidance_agent.config_data.loader import Prompts, VerificationRules
from guidance_agent.llm.generator import AnswerGenerator
from guidance_agent.verification.models import (
    Decision,
    Issue,
    Revision,
    VerificationRequest,
)
from guidance_agent.verification.registry import run_checks
from guidance_agent.verification.revision import attempt_revision, should_revise
from guidance_agent.verification.router import route_decision
from guidance_agent.verification.scoring import compute_confidence, has_critical_issue

STAGE_CONSISTENCY = "consistency_check"
STAGE_SCORING = "confidence_scoring"
STAGE_REVISION = "revision"
STAGE_ROUTING = "decision_routing"


class VerificationState(TypedDict, total=False):
    """State flowing through the verification graph.

    ``issues``, ``revisions`` and ``stages`` are append-only so the full
    audit trail of every round survives to the result.
    """

    request: VerificationRequest
    draft: str
    answer: str
    confidence: float
    initial_issues: list[Issue]
    final_issues: list[Issue]
    issues: Annotated[list[Issue], operator.add]
    revisions: Annotated[list[Revision], operator.add]
    stages: Annotated[list[str], operator.add]
    decision: Decision
    final_answer: str
    requires_human: bool
    fallback_reason: str | None


def build_verification_graph(
    generator: AnswerGenerator,
    rules: VerificationRules,
    prompts: Prompts,
    settings: Settings,
):
    """Compile the stage graph for one verifier instance."""

    async def check_draft(state: VerificationState) -> dict[str, Any]:
        draft = state["draft"]
        issues = run_checks(draft, state["request"], rules, round_index=0)
        return {
            "answer": draft,
            "confidence": compute_confidence(issues, rules),
            "initial_issues": issues,
            "final_issues": issues,
            "issues": issues,
            "stages": [STAGE_CONSISTENCY, STAGE_SCORING],
        }

    def route_after_check(state: VerificationState) -> str:
        if should_revise(
            state["initial_issues"],
            state["confidence"],
            state["request"].options,
            rules,
        ):
            return "revise"
        return "route"

    async def revise(state: VerificationState) -> dict[str, Any]:
        outcome = await attempt_revision(
            answer=state["answer"],
            confidence=state["confidence"],
            issues=state["final_issues"],
            request=state["request"],
            generator=generator,
            rules=rules,
            prompts=prompts,
            settings=settings,
        )
        return {
            "answer": outcome.answer,
            "confidence": outcome.confidence,
            "final_issues": outcome.surviving_issues,
            "issues": outcome.new_issues,
            "revisions": [outcome.revision],
            "stages": [STAGE_REVISION],
        }

    async def route(state: VerificationState) -> dict[str, Any]:
        request = state["request"]
        decision = route_decision(
            draft_failed=False,
            confidence=state["confidence"],
            initial_issues=state["initial_issues"],
            final_issues=state["final_issues"],
            thresholds=rules.thresholds,
            strict_mode=request.options.strict_mode,
        )
        fallback = decision == Decision.fallback
        return {
            "decision": decision,
            "final_answer": request.fallback_answer if fallback else state["answer"],
            "requires_human": has_critical_issue(state["final_issues"]),
            "fallback_reason": "low_confidence" if fallback else None,
            "stages": [STAGE_ROUTING],
        }

    builder = StateGraph(VerificationState)
    builder.add_node("check_draft", check_draft)
    builder.add_node("revise", revise)
    builder.add_node("route", route)
    builder.add_edge(START, "check_draft")
    builder.add_conditional_edges(
        "check_draft", route_after_check, {"revise": "revise", "route": "route"}
    )
    builder.add_edge("revise", "route")
    builder.add_edge("route", END)
    return builder.compile(name="answer_verification")
