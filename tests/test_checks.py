"""Tests for the deterministic consistency checks."""

from __future__ import annotations

import pytest

from guidance_agent.verification.checks import (
    check_data_plausibility,
    check_disclaimer_present,
    check_formatting,
    check_profile_consistency,
    check_tone,
    check_unsupported_claims,
    profile_grade,
    profile_subjects,
    split_sentences,
    token_overlap,
)
from guidance_agent.verification.models import IssueCategory, Severity
from guidance_agent.verification.registry import ANSWER_CHECKS, run_checks
from tests.helpers import (
    CLEAN_ANSWER,
    CLEAN_BODY,
    DISCLAIMER,
    MISMATCH_ANSWER,
    UNSUPPORTED_SENTENCE,
    make_chunk,
    make_profile,
    make_request,
)

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


class TestTextHelpers:
    def test_split_sentences_on_punctuation_and_newlines(self):
        text = "First one. Second one!\nThird line"
        assert split_sentences(text) == ["First one.", "Second one!", "Third line"]

    def test_token_overlap_full_match(self, rules):
        chunk = make_chunk()
        assert token_overlap("Nursing requires Mathematics.", chunk, rules.grounding) == 1.0

    def test_token_overlap_no_content_tokens_counts_as_grounded(self, rules):
        assert token_overlap("It is.", make_chunk(), rules.grounding) == 1.0

    def test_profile_grade_parses_strings(self):
        assert profile_grade({"grade": "Grade 12"}) == 12
        assert profile_grade({"grade": 10}) == 10
        assert profile_grade({}) is None

    def test_profile_subjects_uses_aliases_and_marks(self, rules):
        profile = {"subjects": ["Maths", {"name": "Physics"}], "marks": {"Biology": 70}}
        assert profile_subjects(profile, rules.profile) == {
            "mathematics",
            "physical sciences",
            "life sciences",
        }


# ---------------------------------------------------------------------------
# check_unsupported_claims
# ---------------------------------------------------------------------------


class TestUnsupportedClaims:
    def test_grounded_institution_claim_passes(self, rules):
        assert check_unsupported_claims(CLEAN_ANSWER, make_request(), rules) == []

    def test_ungrounded_money_claim_flagged(self, rules):
        answer = f"{CLEAN_BODY} {UNSUPPORTED_SENTENCE}\n\n{DISCLAIMER}"
        issues = check_unsupported_claims(answer, make_request(), rules)
        assert len(issues) == 1
        assert issues[0].category == IssueCategory.unsupported_claim
        assert issues[0].severity == Severity.warning
        assert issues[0].span == UNSUPPORTED_SENTENCE
        assert "money" in issues[0].description

    def test_percentage_and_date_claims_flagged(self, rules):
        answer = "About 85% of applicants are accepted. Applications close in June 2027."
        issues = check_unsupported_claims(answer, make_request(), rules)
        assert [i.span for i in issues] == [
            "About 85% of applicants are accepted.",
            "Applications close in June 2027.",
        ]

    def test_claim_supported_by_any_chunk_passes(self, rules):
        extra = make_chunk(id="chunk-2", text="Graduates earn R35 000 per month on average.")
        request = make_request(chunks=[make_chunk(), extra])
        assert check_unsupported_claims(UNSUPPORTED_SENTENCE, request, rules) == []

    def test_vague_authority_flagged(self, rules):
        issues = check_unsupported_claims(
            "Studies show nurses are happier.", make_request(), rules
        )
        assert len(issues) == 1
        assert "unnamed authority" in issues[0].description

    def test_non_factual_sentences_ignored(self, rules):
        answer = "Consider what kind of work makes you excited."
        assert check_unsupported_claims(answer, make_request(), rules) == []


# ---------------------------------------------------------------------------
# check_disclaimer_present
# ---------------------------------------------------------------------------


class TestDisclaimer:
    def test_present(self, rules):
        assert check_disclaimer_present(CLEAN_ANSWER, make_request(), rules) == []

    def test_marker_is_case_insensitive(self, rules):
        answer = f"{CLEAN_BODY}\n\nVERIFY BEFORE YOU DECIDE with your school."
        assert check_disclaimer_present(answer, make_request(), rules) == []

    def test_missing_is_critical(self, rules):
        issues = check_disclaimer_present(CLEAN_BODY, make_request(), rules)
        assert len(issues) == 1
        assert issues[0].category == IssueCategory.missing_disclaimer
        assert issues[0].severity == Severity.critical


# ---------------------------------------------------------------------------
# check_profile_consistency
# ---------------------------------------------------------------------------


class TestProfileConsistency:
    def test_matching_profile_passes(self, rules):
        answer = f"As a Grade 11 learner on CAPS, your Mathematics marks matter. {DISCLAIMER}"
        assert check_profile_consistency(answer, make_request(), rules) == []

    def test_grade_mismatch(self, rules):
        issues = check_profile_consistency(MISMATCH_ANSWER, make_request(), rules)
        assert len(issues) == 1
        assert issues[0].category == IssueCategory.profile_mismatch
        assert issues[0].severity == Severity.critical
        assert issues[0].span == "As a Grade 10 learner"

    def test_curriculum_mismatch(self, rules):
        answer = "Because you are writing the IEB exams, plan ahead."
        issues = check_profile_consistency(answer, make_request(), rules)
        assert len(issues) == 1
        assert "IEB" in issues[0].description

    def test_subject_not_taken(self, rules):
        answer = "Your Physical Sciences results will decide this."
        issues = check_profile_consistency(answer, make_request(), rules)
        assert len(issues) == 1
        assert "Physical Sciences" in issues[0].description

    def test_maths_literacy_student_told_about_mathematics(self, rules):
        request = make_request(
            student_profile=make_profile(subjects=["Math Lit", "Life Sciences"])
        )
        answer = "Since you take Mathematics, engineering is open to you."
        issues = check_profile_consistency(answer, request, rules)
        assert [i.category for i in issues] == [IssueCategory.profile_mismatch]

    def test_lowercase_prose_is_not_a_subject_claim(self, rules):
        answer = "Your history of hard work shows."
        assert check_profile_consistency(answer, make_request(), rules) == []

    def test_empty_profile_skips_all_checks(self, rules):
        request = make_request(student_profile={})
        assert check_profile_consistency(MISMATCH_ANSWER, request, rules) == []

    def test_related_subject_name_is_still_a_mismatch(self, rules):
        request = make_request(
            student_profile=make_profile(subjects=["Mathematics", "Life Sciences"])
        )
        answer = "Since you do Technical Mathematics, drafting is a good fit."
        issues = check_profile_consistency(answer, request, rules)
        assert len(issues) == 1
        assert "Technical Mathematics" in issues[0].description

    def test_art_student_told_about_visual_arts(self, rules):
        request = make_request(student_profile=make_profile(subjects=["Mathematics", "Art"]))
        answer = "Because you take Visual Arts, consider graphic design."
        issues = check_profile_consistency(answer, request, rules)
        assert [i.severity for i in issues] == [Severity.critical]

    @pytest.mark.parametrize(
        "answer",
        [
            "When you are in Grade 12 next year, apply early for NSFAS funding.",
            "Once you're in Grade 12, your final marks count for admission.",
            "You are in Grade 12 next year, so plan your applications now.",
            "If you are writing the IEB exams instead, the dates differ.",
        ],
    )
    def test_future_or_conditional_statements_ignored(self, rules, answer):
        assert check_profile_consistency(answer, make_request(), rules) == []

    def test_present_tense_grade_claim_still_flagged(self, rules):
        answer = "You are in Grade 12, so apply for NSFAS funding now."
        issues = check_profile_consistency(answer, make_request(), rules)
        assert [i.span for i in issues] == ["You are in Grade 12"]

    def test_curriculum_patterns_use_known_curricula(self, rules):
        profile_rules = rules.profile.model_copy(
            update={"known_curricula": [*rules.profile.known_curricula, "gcse"]}
        )
        custom = rules.model_copy(update={"profile": profile_rules})
        answer = "Because you are writing the GCSE exams, plan ahead."
        assert check_profile_consistency(answer, make_request(), rules) == []
        issues = check_profile_consistency(answer, make_request(), custom)
        assert len(issues) == 1
        assert "GCSE" in issues[0].description


# ---------------------------------------------------------------------------
# check_formatting / check_tone
# ---------------------------------------------------------------------------


class TestFormatting:
    def test_clean_answer_passes(self, rules):
        assert check_formatting(CLEAN_ANSWER, make_request(), rules) == []

    def test_near_empty_is_critical(self, rules):
        issues = check_formatting("Ok.", make_request(), rules)
        assert [i.severity for i in issues] == [Severity.critical]

    def test_raw_error_text_is_critical(self, rules):
        answer = f"{CLEAN_ANSWER}\nTypeError: Cannot read properties of undefined"
        issues = check_formatting(answer, make_request(), rules)
        assert len(issues) == 1
        assert issues[0].category == IssueCategory.formatting_violation
        assert issues[0].span == "TypeError"

    def test_replacement_character_is_critical(self, rules):
        issues = check_formatting(CLEAN_ANSWER + "\ufffd", make_request(), rules)
        assert any("replacement" in i.description for i in issues)

    def test_placeholder_is_warning(self, rules):
        issues = check_formatting(CLEAN_ANSWER + " TODO add fees", make_request(), rules)
        assert [i.severity for i in issues] == [Severity.warning]


class TestDataPlausibility:
    def test_clean_answer_passes(self, rules):
        assert check_data_plausibility(CLEAN_ANSWER, make_request(), rules) == []

    def test_aps_out_of_range_is_warning(self, rules):
        issues = check_data_plausibility("Nursing needs an APS of 60.", make_request(), rules)
        assert len(issues) == 1
        assert issues[0].category == IssueCategory.other
        assert issues[0].severity == Severity.warning
        assert issues[0].span == "APS of 60"

    def test_aps_in_range_passes(self, rules):
        answer = "Nursing needs an APS score of 30."
        assert check_data_plausibility(answer, make_request(), rules) == []

    def test_implausible_salary_is_warning(self, rules):
        issues = check_data_plausibility("Nurses earn R500 per month.", make_request(), rules)
        assert [i.severity for i in issues] == [Severity.warning]
        assert "R500" in issues[0].description

    def test_realistic_salary_passes(self, rules):
        assert check_data_plausibility(UNSUPPORTED_SENTENCE, make_request(), rules) == []

    def test_amounts_outside_salary_sentences_ignored(self, rules):
        answer = "The application fee is R100 for most programmes."
        assert check_data_plausibility(answer, make_request(), rules) == []

    @pytest.mark.parametrize(
        "url",
        [
            "http://www.uct.ac.za/apply",
            "https://careers-blog.com/nursing",
            "https://evil-ac.za/apply",
        ],
    )
    def test_untrusted_links_are_info(self, rules, url):
        issues = check_data_plausibility(f"Read more at {url} today.", make_request(), rules)
        assert [i.severity for i in issues] == [Severity.info]
        assert issues[0].span == url

    def test_official_https_link_passes(self, rules):
        answer = "Apply at https://www.nsfas.org.za."
        assert check_data_plausibility(answer, make_request(), rules) == []

    @pytest.mark.parametrize("when", ["31/02/2027", "15/01/2035"])
    def test_impossible_dates_are_info(self, rules, when):
        issues = check_data_plausibility(
            f"Applications close on {when}.", make_request(), rules
        )
        assert [i.span for i in issues] == [when]

    def test_valid_date_passes(self, rules):
        answer = "Applications close on 30/09/2027."
        assert check_data_plausibility(answer, make_request(), rules) == []


class TestTone:
    def test_speculative_and_prescriptive_are_info(self, rules):
        answer = "I'm not sure, but you must become a nurse."
        issues = check_tone(answer, make_request(), rules)
        assert [i.severity for i in issues] == [Severity.info, Severity.info]
        assert all(i.category == IssueCategory.other for i in issues)


# ---------------------------------------------------------------------------
# registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_all_checks_registered(self):
        assert len(ANSWER_CHECKS) == 6

    def test_clean_answer_has_no_issues(self, rules):
        assert run_checks(CLEAN_ANSWER, make_request(), rules) == []

    def test_issues_stamped_with_round(self, rules):
        issues = run_checks(CLEAN_BODY, make_request(), rules, round_index=1)
        assert [i.round for i in issues] == [1]
