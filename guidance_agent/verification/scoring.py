"""Weighted-penalty confidence scoring."""

from __future__ import annotations

from guidance_agent.config_data.loader import VerificationRules
from guidance_agent.verification.models import Issue, Severity


def compute_confidence(issues: list[Issue], rules: VerificationRules) -> float:
    """Start at 1.0, subtract a fixed penalty per issue severity, clamp to [0, 1].

    Rounded to four decimals so repeated runs compare equal and threshold
    comparisons are not thrown off by float accumulation.
    """
    penalties = {
        Severity.critical: rules.penalties.critical,
        Severity.warning: rules.penalties.warning,
        Severity.info: rules.penalties.info,
    }
    confidence = 1.0 - sum(penalties[issue.severity] for issue in issues)
    return round(min(1.0, max(0.0, confidence)), 4)


def has_blocking_issue(issues: list[Issue]) -> bool:
    """True when any issue is at or above warning severity."""
    return any(issue.severity != Severity.info for issue in issues)


def has_critical_issue(issues: list[Issue]) -> bool:
    return any(issue.severity == Severity.critical for issue in issues)
