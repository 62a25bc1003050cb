"""Single bounded round of automated answer repair."""

from __future__ import annotations

import logging

from pydantic import BaseModel

from guidance_agent.config import Settings
from guidance_agent.config_data.loader import Prompts, VerificationRules
from guidance_agent.llm.generator import AnswerGenerator, format_chunks_as_context
from guidance_agent.llm.guarded import guarded_call
from guidance_agent.verification.models import (
    Issue,
    Revision,
    Severity,
    VerificationOptions,
    VerificationRequest,
)
from guidance_agent.verification.registry import run_checks
from guidance_agent.verification.scoring import compute_confidence, has_blocking_issue

logger = logging.getLogger(__name__)

REVISION_ROUND = 1


class RevisionOutcome(BaseModel):
    """What one repair attempt produced and which answer survives it."""

    revision: Revision
    answer: str
    confidence: float
    new_issues: list[Issue]
    surviving_issues: list[Issue]


def should_revise(
    issues: list[Issue],
    confidence: float,
    options: VerificationOptions,
    rules: VerificationRules,
) -> bool:
    """Revise only fixable answers: blocking issues, above the hard-reject line."""
    if options.skip_revision:
        return False
    return has_blocking_issue(issues) and confidence > rules.thresholds.hard_reject


def build_repair_instruction(answer: str, issues: list[Issue], prompts: Prompts) -> str:
    """Turn the blocking issues into numbered repair instructions."""
    lines = []
    for idx, issue in enumerate(
        (i for i in issues if i.severity != Severity.info), start=1
    ):
        line = f"{idx}. [{issue.severity.value}] {issue.category.value}: {issue.description}"
        if issue.span:
            line += f' (text: "{issue.span}")'
        lines.append(line)
    return prompts.revision_prompt_template.format(
        issues="\n".join(lines),
        disclaimer=prompts.disclaimer_block.strip(),
        answer=answer,
    )


async def attempt_revision(
    *,
    answer: str,
    confidence: float,
    issues: list[Issue],
    request: VerificationRequest,
    generator: AnswerGenerator,
    rules: VerificationRules,
    prompts: Prompts,
    settings: Settings,
) -> RevisionOutcome:
    """Ask the generator for one repaired answer and keep it only if it scores higher.

    The guarded call falls back to the original answer, so a failed call is
    recorded as an unsuccessful revision rather than raised.
    """
    blocking = [i for i in issues if i.severity != Severity.info]
    instruction = build_repair_instruction(answer, blocking, prompts)
    context = format_chunks_as_context(request.chunks)
    categories = sorted({i.category.value for i in blocking})
    description = f"Repair {len(blocking)} issue(s): {', '.join(categories)}"

    result = await guarded_call(
        lambda: generator.generate(instruction, context),
        fallback=answer,
        timeout_s=settings.guarded_timeout_seconds,
        name="generate_revision",
        cancel_on_timeout=settings.cancel_on_timeout,
    )
    if not result.success:
        logger.info("Revision call failed, keeping original answer: %s", result.error)
        return RevisionOutcome(
            revision=Revision(
                description=description,
                issues_addressed=len(blocking),
                confidence_before=confidence,
                confidence_after=confidence,
                adopted=False,
                error=result.error,
            ),
            answer=answer,
            confidence=confidence,
            new_issues=[],
            surviving_issues=issues,
        )

    candidate = result.value
    new_issues = run_checks(candidate, request, rules, round_index=REVISION_ROUND)
    new_confidence = compute_confidence(new_issues, rules)
    adopted = new_confidence > confidence
    logger.info(
        "Revision scored %.4f (was %.4f), adopted=%s",
        new_confidence,
        confidence,
        adopted,
    )
    return RevisionOutcome(
        revision=Revision(
            description=description,
            issues_addressed=len(blocking),
            confidence_before=confidence,
            confidence_after=new_confidence,
            adopted=adopted,
        ),
        answer=candidate if adopted else answer,
        confidence=new_confidence if adopted else confidence,
        new_issues=new_issues,
        surviving_issues=new_issues if adopted else issues,
    )
