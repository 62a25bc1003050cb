"""Pydantic models for answer verification requests and results."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Confidence reported when the draft could not be produced at all.
FALLBACK_CONFIDENCE = 0.0


class InvalidVerificationRequest(ValueError):
    """Raised at the pipeline entry point when the caller's input is malformed."""


class _Frozen(BaseModel):
    """Immutable model serialised with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Severity(str, Enum):
    """Supported issue severities, lowest first."""

    info = "info"
    warning = "warning"
    critical = "critical"


class IssueCategory(str, Enum):
    """What kind of problem an issue describes."""

    unsupported_claim = "unsupported-claim"
    missing_disclaimer = "missing-disclaimer"
    profile_mismatch = "profile-mismatch"
    formatting_violation = "formatting-violation"
    other = "other"


class Decision(str, Enum):
    """Terminal outcome of one verification."""

    approved = "approved"
    revised = "revised"
    rejected = "rejected"
    fallback = "fallback"


class Chunk(_Frozen):
    """A retrieved passage with the retriever's similarity score."""

    id: str
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    similarity: float = Field(default=0.0, ge=0.0, le=1.0)


class VerificationOptions(_Frozen):
    strict_mode: bool = False
    skip_revision: bool = False


class VerificationRequest(_Frozen):
    """Everything one verification needs. Never mutated by the pipeline."""

    query: str
    chunks: list[Chunk]
    student_profile: dict[str, Any] = Field(default_factory=dict)
    fallback_answer: str
    draft_answer: str | None = None
    options: VerificationOptions = Field(default_factory=VerificationOptions)


class Issue(_Frozen):
    """One problem detected in a candidate answer."""

    category: IssueCategory
    severity: Severity
    description: str
    span: str | None = None
    round: int = 0


class Revision(_Frozen):
    """Record of the single automated repair attempt."""

    description: str
    issues_addressed: int
    confidence_before: float
    confidence_after: float
    adopted: bool
    error: str | None = None


class VerificationResult(_Frozen):
    """Aggregate verification output for one answer. Produced exactly once."""

    decision: Decision
    final_answer: str
    confidence: float = Field(ge=0.0, le=1.0)
    issues_detected: list[Issue] = Field(default_factory=list)
    revisions_applied: list[Revision] = Field(default_factory=list)
    requires_human: bool = False
    stages: list[str] = Field(default_factory=list)
    processing_time_ms: int = 0
    sources_used: list[str] = Field(default_factory=list)
    fallback_reason: str | None = None

    @property
    def stages_completed(self) -> int:
        return len(self.stages)

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys and the stage count."""
        payload = self.model_dump(mode="json", by_alias=True)
        payload["stagesCompleted"] = self.stages_completed
        payload["stageNames"] = payload.pop("stages")
        return payload


class StatsSnapshot(_Frozen):
    """Point-in-time copy of the per-process verification counters."""

    total: int
    counts: dict[Decision, int]
    percentages: dict[Decision, float]
    mean_processing_time_ms: float
