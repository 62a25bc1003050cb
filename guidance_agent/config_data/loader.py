"""YAML config loader — loads rules and prompts at startup."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

_CONFIG_DIR = Path(__file__).parent


# -- Pydantic models ----------------------------------------------------------


class Prompts(BaseModel):
    """Validated prompt templates."""

    generator_system_prompt: str
    draft_prompt_template: str
    revision_prompt_template: str
    disclaimer_block: str


class SeverityPenalties(BaseModel):
    """Confidence deducted per issue, keyed by severity."""

    critical: float = 0.4
    warning: float = 0.1
    info: float = 0.02


class DecisionThresholds(BaseModel):
    """Confidence cutoffs used by the revision engine and decision router."""

    accept: float = Field(default=0.6, ge=0.0, le=1.0)
    strict_accept: float = Field(default=0.8, ge=0.0, le=1.0)
    hard_reject: float = Field(default=0.3, ge=0.0, le=1.0)


class GroundingRules(BaseModel):
    """Rules for matching factual sentences against retrieved chunks."""

    min_token_overlap: float = 0.5
    min_token_length: int = 3
    stopwords: list[str] = Field(default_factory=list)
    factual_patterns: dict[str, str]
    vague_authority_patterns: list[str] = Field(default_factory=list)


class ProfileRules(BaseModel):
    """Patterns for statements the answer makes about the student."""

    grade_patterns: list[str]
    curriculum_patterns: list[str]
    hypothetical_before_patterns: list[str] = Field(default_factory=list)
    hypothetical_after_patterns: list[str] = Field(default_factory=list)
    subject_claim_prefixes: list[str]
    known_curricula: list[str]
    known_subjects: list[str]
    subject_aliases: dict[str, str] = Field(default_factory=dict)


class FormattingRules(BaseModel):
    """Gross length and encoding checks."""

    min_answer_chars: int = 50
    error_text_patterns: list[str]
    placeholder_patterns: list[str] = Field(default_factory=list)


class PlausibilityRules(BaseModel):
    """Sanity ranges for numbers, links and dates stated in an answer."""

    aps_pattern: str
    aps_min: int = 18
    aps_max: int = 50
    salary_pattern: str
    salary_context_patterns: list[str] = Field(default_factory=list)
    salary_min: int = 5000
    salary_max: int = 2_000_000
    url_pattern: str
    trusted_domains: list[str]
    date_pattern: str
    min_year: int = 2020
    max_year: int = 2030


class ToneRules(BaseModel):
    """Informational tone checks."""

    speculative_patterns: list[str] = Field(default_factory=list)
    prescriptive_patterns: list[str] = Field(default_factory=list)


class VerificationRules(BaseModel):
    """Validated runtime answer-verification rules."""

    disclaimer_markers: list[str]
    penalties: SeverityPenalties
    thresholds: DecisionThresholds
    grounding: GroundingRules
    profile: ProfileRules
    formatting: FormattingRules
    plausibility: PlausibilityRules
    tone: ToneRules = Field(default_factory=ToneRules)


# -- loaders ------------------------------------------------------------------


def _load_yaml(filename: str) -> dict[str, Any]:
    """Read and parse a YAML file from the config directory."""
    path = _CONFIG_DIR / filename
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        raise ValueError(f"Config file is empty: {path}")
    return data


@lru_cache(maxsize=1)
def get_prompts() -> Prompts:
    """Load and validate prompts.yaml. Result is cached as a singleton."""
    data = _load_yaml("prompts.yaml")
    return Prompts(**data)


@lru_cache(maxsize=1)
def get_verification_rules() -> VerificationRules:
    """Load and validate verification_rules.yaml. Cached singleton."""
    data = _load_yaml("verification_rules.yaml")
    return VerificationRules(**data)
