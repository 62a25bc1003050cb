"""Registry for answer-verification checks, in execution order."""

from __future__ import annotations

from guidance_agent.config_data.loader import VerificationRules
from guidance_agent.verification.checks import (
    check_data_plausibility,
    check_disclaimer_present,
    check_formatting,
    check_profile_consistency,
    check_tone,
    check_unsupported_claims,
)
from guidance_agent.verification.models import Issue, VerificationRequest

ANSWER_CHECKS = [
    check_unsupported_claims,
    check_disclaimer_present,
    check_profile_consistency,
    check_formatting,
    check_data_plausibility,
    check_tone,
]


def run_checks(
    answer: str,
    request: VerificationRequest,
    rules: VerificationRules,
    round_index: int = 0,
) -> list[Issue]:
    """Run every registered check and stamp the issues with their round."""
    issues: list[Issue] = []
    for check in ANSWER_CHECKS:
        issues.extend(check(answer, request, rules))
    return [issue.model_copy(update={"round": round_index}) for issue in issues]
