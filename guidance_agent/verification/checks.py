"""Deterministic checks for grounding candidate answers in retrieved chunks."""

from __future__ import annotations

import re
from datetime import date
from functools import lru_cache
from typing import Any, Iterable
from urllib.parse import urlsplit

from guidance_agent.config_data.loader import (
    GroundingRules,
    PlausibilityRules,
    ProfileRules,
    VerificationRules,
)
from guidance_agent.verification.models import (
    Chunk,
    Issue,
    IssueCategory,
    Severity,
    VerificationRequest,
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")
_TOKEN = re.compile(r"[a-z0-9]+")
_DIGITS = re.compile(r"\d{1,2}")


@lru_cache(maxsize=512)
def _compile(pattern: str, ignore_case: bool = True) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE if ignore_case else 0)


def _first_match(patterns: Iterable[str], text: str) -> re.Match[str] | None:
    for pattern in patterns:
        match = _compile(pattern).search(text)
        if match:
            return match
    return None


def split_sentences(text: str) -> list[str]:
    """Split answer text into trimmed, non-empty sentences."""
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s and s.strip()]


def tokenize(text: str, rules: GroundingRules) -> set[str]:
    """Lowercase content tokens used for overlap scoring."""
    stopwords = set(rules.stopwords)
    return {
        token
        for token in _TOKEN.findall(text.lower())
        if len(token) >= rules.min_token_length and token not in stopwords
    }


def token_overlap(sentence: str, chunk: Chunk, rules: GroundingRules) -> float:
    """Fraction of the sentence's content tokens that also occur in the chunk."""
    sentence_tokens = tokenize(sentence, rules)
    if not sentence_tokens:
        return 1.0
    chunk_tokens = tokenize(chunk.text, rules)
    return len(sentence_tokens & chunk_tokens) / len(sentence_tokens)


def _factual_token(sentence: str, rules: GroundingRules) -> tuple[str, str] | None:
    """Return (kind, token) for the first factual token in the sentence."""
    for kind, pattern in rules.factual_patterns.items():
        match = _compile(pattern, ignore_case=False).search(sentence)
        if match:
            return kind, match.group(0).strip()
    return None


def _is_grounded(sentence: str, chunks: list[Chunk], rules: GroundingRules) -> bool:
    return any(
        token_overlap(sentence, chunk, rules) >= rules.min_token_overlap
        for chunk in chunks
    )


def check_unsupported_claims(
    answer: str,
    request: VerificationRequest,
    rules: VerificationRules,
) -> list[Issue]:
    """Flag factual sentences that no retrieved chunk supports."""
    grounding = rules.grounding
    issues: list[Issue] = []
    for sentence in split_sentences(answer):
        factual = _factual_token(sentence, grounding)
        vague = _first_match(grounding.vague_authority_patterns, sentence)
        if factual is None and vague is None:
            continue
        if _is_grounded(sentence, request.chunks, grounding):
            continue
        if factual is not None:
            kind, token = factual
            description = (
                f"Claim mentioning {kind} '{token}' is not supported by the "
                "retrieved sources."
            )
        else:
            description = (
                f"Appeal to unnamed authority ('{vague.group(0)}') is not "
                "backed by the retrieved sources."
            )
        issues.append(
            Issue(
                category=IssueCategory.unsupported_claim,
                severity=Severity.warning,
                description=description,
                span=sentence,
            )
        )
    return issues


def check_disclaimer_present(
    answer: str,
    request: VerificationRequest,
    rules: VerificationRules,
) -> list[Issue]:
    """Require the fixed verification block on every answer."""
    lowered = answer.lower()
    if any(marker.lower() in lowered for marker in rules.disclaimer_markers):
        return []
    return [
        Issue(
            category=IssueCategory.missing_disclaimer,
            severity=Severity.critical,
            description="Answer is missing the 'verify before you decide' block.",
        )
    ]


# -- profile ------------------------------------------------------------------


def _normalize_subject(name: str, rules: ProfileRules) -> str:
    cleaned = " ".join(name.lower().split())
    return rules.subject_aliases.get(cleaned, cleaned)


def profile_subjects(profile: dict[str, Any], rules: ProfileRules) -> set[str]:
    """Normalized subject names from either a subjects list or a marks map."""
    raw: list[str] = []
    subjects = profile.get("subjects") or []
    if isinstance(subjects, (list, tuple)):
        for item in subjects:
            if isinstance(item, dict):
                name = item.get("name") or item.get("subject")
                if name:
                    raw.append(str(name))
            elif item:
                raw.append(str(item))
    marks = profile.get("marks")
    if isinstance(marks, dict):
        raw.extend(str(key) for key in marks)
    return {_normalize_subject(name, rules) for name in raw}


def profile_grade(profile: dict[str, Any]) -> int | None:
    """Parse the grade from values like 11, "11" or "Grade 11"."""
    value = profile.get("grade")
    if value is None:
        return None
    if isinstance(value, int):
        return value
    match = _DIGITS.search(str(value))
    return int(match.group(0)) if match else None


def _mismatch(description: str, span: str) -> Issue:
    return Issue(
        category=IssueCategory.profile_mismatch,
        severity=Severity.critical,
        description=description,
        span=span,
    )


def _curriculum_patterns(rules: ProfileRules) -> list[str]:
    """Expand the {curricula} placeholder from the known curricula list."""
    curricula = "|".join(re.escape(c) for c in rules.known_curricula)
    return [p.replace("{curricula}", f"(?:{curricula})") for p in rules.curriculum_patterns]


def _is_hypothetical(answer: str, match: re.Match[str], rules: ProfileRules) -> bool:
    """True when the statement is conditional or about a later year."""
    before = answer[max(0, match.start() - 40) : match.start()]
    after = answer[match.end() : match.end() + 40]
    return bool(
        _first_match((p + r"\s*$" for p in rules.hypothetical_before_patterns), before)
        or _first_match((r"^\s*" + p for p in rules.hypothetical_after_patterns), after)
    )


def check_profile_consistency(
    answer: str,
    request: VerificationRequest,
    rules: VerificationRules,
) -> list[Issue]:
    """Flag grade, curriculum or subject statements that contradict the profile."""
    profile_rules = rules.profile
    profile = request.student_profile
    issues: list[Issue] = []

    grade = profile_grade(profile)
    if grade is not None:
        for pattern in profile_rules.grade_patterns:
            for match in _compile(pattern).finditer(answer):
                stated = int(match.group(1))
                if stated != grade and not _is_hypothetical(answer, match, profile_rules):
                    issues.append(
                        _mismatch(
                            f"Answer addresses the student as Grade {stated}, "
                            f"profile says Grade {grade}.",
                            match.group(0),
                        )
                    )

    curriculum = str(profile.get("curriculum") or "").strip().lower()
    if curriculum:
        for pattern in _curriculum_patterns(profile_rules):
            for match in _compile(pattern).finditer(answer):
                stated = match.group(1).lower()
                if stated != curriculum and not _is_hypothetical(
                    answer, match, profile_rules
                ):
                    issues.append(
                        _mismatch(
                            f"Answer assumes the {stated.upper()} curriculum, "
                            f"profile says {curriculum.upper()}.",
                            match.group(0),
                        )
                    )

    taken = profile_subjects(profile, profile_rules)
    if taken:
        prefixes = "|".join(profile_rules.subject_claim_prefixes)
        for subject in profile_rules.known_subjects:
            normalized = _normalize_subject(subject, profile_rules)
            if normalized in taken:
                continue
            words = r"\s+".join(re.escape(w) for w in subject.split())
            # Subject names are matched case-sensitively so that prose like
            # "your history of good marks" is not read as a subject claim.
            match = _compile(
                rf"\b(?i:{prefixes})\s+{words}\b", ignore_case=False
            ).search(answer)
            if match:
                issues.append(
                    _mismatch(
                        f"Answer assumes the student takes {subject}, which is "
                        "not in their subject list.",
                        match.group(0),
                    )
                )
    return issues


# -- formatting / tone ----------------------------------------------------------


def check_formatting(
    answer: str,
    request: VerificationRequest,
    rules: VerificationRules,
) -> list[Issue]:
    """Catch near-empty answers, leaked error text and broken encoding."""
    formatting = rules.formatting
    issues: list[Issue] = []
    stripped = answer.strip()

    if len(stripped) < formatting.min_answer_chars:
        issues.append(
            Issue(
                category=IssueCategory.formatting_violation,
                severity=Severity.critical,
                description=(
                    f"Answer is too short ({len(stripped)} chars, minimum "
                    f"{formatting.min_answer_chars})."
                ),
            )
        )

    for pattern in formatting.error_text_patterns:
        match = _compile(pattern, ignore_case=False).search(answer)
        if match:
            issues.append(
                Issue(
                    category=IssueCategory.formatting_violation,
                    severity=Severity.critical,
                    description="Answer contains raw error text.",
                    span=match.group(0),
                )
            )
            break

    if "\ufffd" in answer:
        issues.append(
            Issue(
                category=IssueCategory.formatting_violation,
                severity=Severity.critical,
                description="Answer contains Unicode replacement characters.",
            )
        )

    placeholder = _first_match(formatting.placeholder_patterns, answer)
    if placeholder:
        issues.append(
            Issue(
                category=IssueCategory.formatting_violation,
                severity=Severity.warning,
                description="Answer contains unfinished placeholder markers.",
                span=placeholder.group(0),
            )
        )
    return issues


def _other(severity: Severity, description: str, span: str) -> Issue:
    return Issue(
        category=IssueCategory.other,
        severity=severity,
        description=description,
        span=span,
    )


def _is_trusted_url(url: str, rules: PlausibilityRules) -> bool:
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    return parts.scheme == "https" and any(
        host == domain or host.endswith("." + domain) for domain in rules.trusted_domains
    )


def _is_valid_date(day: int, month: int, year: int, rules: PlausibilityRules) -> bool:
    if not rules.min_year <= year <= rules.max_year:
        return False
    try:
        date(year, month, day)
    except ValueError:
        return False
    return True


def check_data_plausibility(
    answer: str,
    request: VerificationRequest,
    rules: VerificationRules,
) -> list[Issue]:
    """Flag APS scores, salaries, links and dates that cannot be right."""
    plausibility = rules.plausibility
    issues: list[Issue] = []

    for match in _compile(plausibility.aps_pattern).finditer(answer):
        score = int(match.group(1))
        if not plausibility.aps_min <= score <= plausibility.aps_max:
            issues.append(
                _other(
                    Severity.warning,
                    f"APS score {score} is outside the "
                    f"{plausibility.aps_min}-{plausibility.aps_max} university range.",
                    match.group(0),
                )
            )

    salary = _compile(plausibility.salary_pattern, ignore_case=False)
    for sentence in split_sentences(answer):
        if not _first_match(plausibility.salary_context_patterns, sentence):
            continue
        for match in salary.finditer(sentence):
            amount = int(re.sub(r"\D", "", match.group(1)))
            if not plausibility.salary_min <= amount <= plausibility.salary_max:
                issues.append(
                    _other(
                        Severity.warning,
                        f"Salary of R{amount} is not a realistic South African figure.",
                        match.group(0),
                    )
                )

    for match in _compile(plausibility.url_pattern).finditer(answer):
        url = match.group(0).rstrip(".,;:)")
        if not _is_trusted_url(url, plausibility):
            issues.append(
                _other(
                    Severity.info,
                    "Link is not HTTPS on an official South African education domain.",
                    url,
                )
            )

    for match in _compile(plausibility.date_pattern).finditer(answer):
        day, month, year = (int(g) for g in match.groups())
        if not _is_valid_date(day, month, year, plausibility):
            issues.append(
                _other(Severity.info, "Date is invalid or out of range.", match.group(0))
            )
    return issues


def check_tone(
    answer: str,
    request: VerificationRequest,
    rules: VerificationRules,
) -> list[Issue]:
    """Note speculative or prescriptive phrasing (informational only)."""
    issues: list[Issue] = []
    speculative = _first_match(rules.tone.speculative_patterns, answer)
    if speculative:
        issues.append(
            Issue(
                category=IssueCategory.other,
                severity=Severity.info,
                description="Answer uses uncertain or speculative language.",
                span=speculative.group(0),
            )
        )
    prescriptive = _first_match(rules.tone.prescriptive_patterns, answer)
    if prescriptive:
        issues.append(
            Issue(
                category=IssueCategory.other,
                severity=Severity.info,
                description="Answer prescribes a single path instead of offering options.",
                span=prescriptive.group(0),
            )
        )
    return issues
