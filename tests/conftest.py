"""Shared test fixtures."""

from __future__ import annotations

import pytest

from guidance_agent.config import Settings
from guidance_agent.config_data.loader import get_prompts, get_verification_rules
from guidance_agent.verification.pipeline import AnswerVerifier
from guidance_agent.verification.stats import VerificationStats
from tests.helpers import mock_generator as _mock_generator


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from .env with a short guarded-call timeout."""
    return Settings(_env_file=None, guarded_timeout_seconds=0.2)


@pytest.fixture
def rules():
    return get_verification_rules()


@pytest.fixture
def prompts():
    return get_prompts()


@pytest.fixture
def stats() -> VerificationStats:
    return VerificationStats()


@pytest.fixture
def mock_generator():
    """Factory fixture returning a mock AnswerGenerator."""
    return _mock_generator


@pytest.fixture
def make_verifier(settings, rules, prompts, stats):
    """Factory fixture building an AnswerVerifier around a given generator."""

    def _build(generator, **overrides) -> AnswerVerifier:
        kwargs = {
            "settings": settings,
            "rules": rules,
            "prompts": prompts,
        }
        kwargs.update(overrides)
        return AnswerVerifier(generator=generator, stats=stats, **kwargs)

    return _build
