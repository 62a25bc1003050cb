"""Answer verification pipeline: the single entry point callers use.

Flow: (optional guarded draft generation) -> consistency check -> confidence
score -> at most one guarded revision round -> decision routing -> stats.

External-call failures never reach the caller; they end in a ``fallback``
result carrying the caller's pre-computed safe answer. Malformed input is the
one thing that raises, before any stage runs.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from guidance_agent.config import Settings, get_settings
from guidance_agent.config_data.loader import (
    Prompts,
    VerificationRules,
    get_prompts,
    get_verification_rules,
)
from guidance_agent.llm.generator import (
    AnswerGenerator,
    build_draft_prompt,
    format_chunks_as_context,
)
from guidance_agent.llm.guarded import guarded_call
from guidance_agent.verification.graph import build_verification_graph
from guidance_agent.verification.models import (
    FALLBACK_CONFIDENCE,
    Decision,
    InvalidVerificationRequest,
    VerificationRequest,
    VerificationResult,
)
from guidance_agent.verification.stats import VerificationStats

logger = logging.getLogger(__name__)


def validate_request(request: VerificationRequest, *, require_draft: bool) -> None:
    """Reject caller contract violations before any stage runs."""
    if not request.chunks:
        raise InvalidVerificationRequest("chunks must contain at least one chunk")
    if not request.query.strip():
        raise InvalidVerificationRequest("query must not be blank")
    if not request.fallback_answer.strip():
        raise InvalidVerificationRequest("fallback_answer must not be blank")
    if require_draft and (request.draft_answer is None or not request.draft_answer.strip()):
        raise InvalidVerificationRequest("draft_answer is required")


def _sources_used(request: VerificationRequest) -> list[str]:
    sources: list[str] = []
    for chunk in request.chunks:
        source = chunk.metadata.get("source")
        if source and source not in sources:
            sources.append(str(source))
    return sources


class AnswerVerifier:
    """Verifies draft answers and owns nothing but a reference to the stats."""

    def __init__(
        self,
        generator: AnswerGenerator,
        stats: VerificationStats,
        settings: Settings | None = None,
        rules: VerificationRules | None = None,
        prompts: Prompts | None = None,
    ) -> None:
        self.generator = generator
        self.stats = stats
        self.settings = settings or get_settings()
        self.rules = rules or get_verification_rules()
        self.prompts = prompts or get_prompts()
        self.graph = build_verification_graph(
            generator, self.rules, self.prompts, self.settings
        )

    async def verify(self, request: VerificationRequest) -> VerificationResult:
        """Verify the draft answer already carried on the request."""
        validate_request(request, require_draft=True)
        start = time.monotonic()
        return await self._run_stages(request, start)

    async def generate_and_verify(self, request: VerificationRequest) -> VerificationResult:
        """Generate the draft through a guarded call, then verify it.

        When the draft call fails or times out the result is ``fallback``
        with the sentinel confidence and no stages completed.
        """
        validate_request(request, require_draft=False)
        start = time.monotonic()
        prompt = build_draft_prompt(request, self.prompts)
        context = format_chunks_as_context(request.chunks)
        draft = await guarded_call(
            lambda: self.generator.generate(prompt, context),
            fallback=request.fallback_answer,
            timeout_s=self.settings.guarded_timeout_seconds,
            name="generate_draft",
            cancel_on_timeout=self.settings.cancel_on_timeout,
        )
        if not draft.success:
            reason = "draft_timeout" if draft.timed_out else "draft_generation_failed"
            return self._fallback_result(request, start, reason=reason)
        return await self._run_stages(
            request.model_copy(update={"draft_answer": draft.value}), start
        )

    async def _run_stages(
        self, request: VerificationRequest, start: float
    ) -> VerificationResult:
        try:
            state: dict[str, Any] = await self.graph.ainvoke(
                {"request": request, "draft": request.draft_answer}
            )
        except Exception:
            logger.exception("Verification stages failed unexpectedly")
            return self._fallback_result(request, start, reason="internal_error")

        return self._finish(
            VerificationResult(
                decision=state["decision"],
                final_answer=state["final_answer"],
                confidence=state["confidence"],
                issues_detected=state.get("issues", []),
                revisions_applied=state.get("revisions", []),
                requires_human=state["requires_human"],
                stages=state.get("stages", []),
                processing_time_ms=round((time.monotonic() - start) * 1000),
                sources_used=_sources_used(request),
                fallback_reason=state.get("fallback_reason"),
            )
        )

    def _fallback_result(
        self, request: VerificationRequest, start: float, *, reason: str
    ) -> VerificationResult:
        return self._finish(
            VerificationResult(
                decision=Decision.fallback,
                final_answer=request.fallback_answer,
                confidence=FALLBACK_CONFIDENCE,
                issues_detected=[],
                revisions_applied=[],
                requires_human=False,
                stages=[],
                processing_time_ms=round((time.monotonic() - start) * 1000),
                sources_used=_sources_used(request),
                fallback_reason=reason,
            )
        )

    def _finish(self, result: VerificationResult) -> VerificationResult:
        self.stats.record(result.decision, result.processing_time_ms)
        logger.info(
            "verification_complete",
            extra={
                "decision": result.decision.value,
                "confidence": result.confidence,
                "issues": len(result.issues_detected),
                "revisions": len(result.revisions_applied),
                "requires_human": result.requires_human,
                "latency_ms": result.processing_time_ms,
            },
        )
        if result.processing_time_ms > self.settings.processing_target_ms:
            logger.warning(
                "Verification exceeded target: %dms > %dms",
                result.processing_time_ms,
                self.settings.processing_target_ms,
            )
        return result
