"""Answer-verification package."""

from guidance_agent.verification.models import (
    Chunk,
    Decision,
    InvalidVerificationRequest,
    Issue,
    IssueCategory,
    Revision,
    Severity,
    StatsSnapshot,
    VerificationOptions,
    VerificationRequest,
    VerificationResult,
)

__all__ = [
    "Chunk",
    "Decision",
    "InvalidVerificationRequest",
    "Issue",
    "IssueCategory",
    "Revision",
    "Severity",
    "StatsSnapshot",
    "VerificationOptions",
    "VerificationRequest",
    "VerificationResult",
]
