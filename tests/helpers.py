"""Shared test fixtures and helpers."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

from guidance_agent.verification.models import (
    Chunk,
    VerificationOptions,
    VerificationRequest,
)


# -- reusable texts ------------------------------------------------------------

DISCLAIMER = (
    "⚠️ **Verify before you decide:**\n"
    "1. Speak with your school counselor\n"
    "2. Call the institution directly\n"
    "3. Check official websites"
)

CHUNK_TEXT = (
    "Nursing at the University of Cape Town requires Mathematics and Life "
    "Sciences. The Bachelor of Nursing takes four years. NSFAS bursaries "
    "cover tuition for qualifying students."
)

CLEAN_BODY = (
    "Nursing at the University of Cape Town requires Mathematics and Life "
    "Sciences, which fits your subject choices. Consider exploring NSFAS "
    "bursaries that cover tuition for qualifying students."
)

# No issues of any severity against make_request() defaults.
CLEAN_ANSWER = f"{CLEAN_BODY}\n\n{DISCLAIMER}"

# Only the disclaimer is missing.
NO_DISCLAIMER_ANSWER = CLEAN_BODY

# Grade contradicts the default profile (Grade 11).
MISMATCH_ANSWER = (
    f"As a Grade 10 learner, you can start preparing now. {CLEAN_BODY}\n\n{DISCLAIMER}"
)

UNSUPPORTED_SENTENCE = "Graduates earn R35 000 per month."

FALLBACK_ANSWER = (
    "We could not prepare a personalised answer right now. Please speak with "
    "your school counselor about nursing and other health careers."
)


# -- reusable data builders ----------------------------------------------------


def make_profile(**overrides: Any) -> dict[str, Any]:
    """Build a sanitised student profile with sensible defaults."""
    base = {
        "grade": 11,
        "curriculum": "CAPS",
        "subjects": ["Mathematics", "Life Sciences", "English", "Life Orientation"],
    }
    base.update(overrides)
    return base


def make_chunk(**overrides: Any) -> Chunk:
    base: dict[str, Any] = {
        "id": "chunk-1",
        "text": CHUNK_TEXT,
        "metadata": {"source": "careers/nursing.md", "category": "career"},
        "similarity": 0.91,
    }
    base.update(overrides)
    return Chunk(**base)


def make_request(**overrides: Any) -> VerificationRequest:
    """Build a VerificationRequest; pass draft_answer=None for generate-first flows."""
    base: dict[str, Any] = {
        "query": "What do I need to study nursing?",
        "chunks": [make_chunk()],
        "student_profile": make_profile(),
        "fallback_answer": FALLBACK_ANSWER,
        "draft_answer": CLEAN_ANSWER,
        "options": VerificationOptions(),
    }
    base.update(overrides)
    return VerificationRequest(**base)


def mock_generator(*responses: Any) -> AsyncMock:
    """Build a mock AnswerGenerator returning (or raising) responses in order."""
    generator = AsyncMock()
    generator.generate = AsyncMock(side_effect=list(responses))
    return generator


def mock_sync_raising_generator(exc: Exception) -> MagicMock:
    """Build a generator whose generate() raises before returning an awaitable."""
    generator = MagicMock()
    generator.generate = MagicMock(side_effect=exc)
    return generator
