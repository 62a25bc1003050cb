"""Maps final confidence and surviving issues to a terminal decision."""

from __future__ import annotations

from guidance_agent.config_data.loader import DecisionThresholds
from guidance_agent.verification.models import Decision, Issue
from guidance_agent.verification.scoring import has_blocking_issue, has_critical_issue


def accept_threshold(thresholds: DecisionThresholds, strict_mode: bool) -> float:
    return thresholds.strict_accept if strict_mode else thresholds.accept


def route_decision(
    *,
    draft_failed: bool,
    confidence: float,
    initial_issues: list[Issue],
    final_issues: list[Issue],
    thresholds: DecisionThresholds,
    strict_mode: bool = False,
) -> Decision:
    """Apply the priority chain; the first matching rule wins.

    1. No draft at all -> fallback.
    2. Confidence under the hard-reject line -> fallback.
    3. A critical issue survives -> rejected. Compliance issues can never be
       outweighed by a good score.
    4. Nothing at warning or above survives -> approved, or revised when the
       first pass had something to fix.
    5. Only warnings survive and confidence clears the accept line -> revised.
    6. Otherwise -> rejected.
    """
    if draft_failed:
        return Decision.fallback
    if confidence < thresholds.hard_reject:
        return Decision.fallback
    if has_critical_issue(final_issues):
        return Decision.rejected
    if not has_blocking_issue(final_issues):
        if has_blocking_issue(initial_issues):
            return Decision.revised
        return Decision.approved
    # Reached whether or not a revision was adopted: the delivered text may
    # still be the draft, carrying only non-critical warnings.
    if confidence >= accept_threshold(thresholds, strict_mode):
        return Decision.revised
    return Decision.rejected
