"""Test content_validator -- Article Pipeline."""
from __future__ import annotations

import pytest

from article_pipeline.content_validator import (
    BlockingValidationError,
    ContentValidator,
    ValidationOptions,
    check_legislation,
    check_placeholders,
    check_statistics,
    check_truncation,
    extract_institution_names,
    is_known_institution,
    rollup_risk,
)
from article_pipeline.models import FAQ, Institution, IssueType, RiskLevel, Severity, ValidationIssue
from article_pipeline.providers import StaticInstitutionLookup

from conftest import build_article_html


def _issue(issue_type: str, severity: str = Severity.WARNING.value) -> ValidationIssue:
    return ValidationIssue(type=issue_type, severity=severity, message=issue_type)


SITE_LINKS = (
    '<p>Compare <a href="https://www.geteducated.com/online-degrees/business/">business degrees</a>, '
    '<a href="https://www.geteducated.com/online-schools/">accredited schools</a> and '
    '<a href="https://www.geteducated.com/online-college-ratings-and-rankings/">our rankings</a>.</p>'
)


# ===================================================================
# Truncation
# ===================================================================


class TestCheckTruncation:
    """Conservative end-of-content truncation detection."""

    @pytest.mark.parametrize("ending", [
        "<p>The program takes two years.</p>",
        "<ul><li>Flexible schedule</li>",
        "<h2>Career Outcomes</h2>",
        "<p>Is it worth it?",
    ])
    def test_complete_endings_never_flagged(self, ending):
        assert check_truncation("<p>Intro text here.</p>" + ending).is_truncated is False

    def test_dangling_short_word(self):
        result = check_truncation("<p>The program costs abo")
        assert result.is_truncated is True
        assert result.ending.endswith("abo")

    def test_cut_inside_tag(self):
        assert check_truncation('<p>See <a href="https://www.geteducated.com/onl').is_truncated is True

    def test_partial_entity(self):
        assert check_truncation("<p>Tuition &amp").is_truncated is True

    def test_empty_content_not_truncated(self):
        assert check_truncation("").is_truncated is False

    def test_short_faq_answer_without_punctuation(self):
        faqs = [FAQ(question="Is it accredited?", answer="Yes, it")]
        result = check_truncation("<p>Complete article.</p>", faqs)
        assert result.is_truncated is True
        assert "FAQ answer 1" in result.reason

    def test_short_faq_answer_with_punctuation_is_fine(self):
        faqs = [FAQ(question="Is it accredited?", answer="Yes.")]
        assert check_truncation("<p>Complete article.</p>", faqs).is_truncated is False

    def test_sample_article_is_complete(self, article_html, faqs):
        assert check_truncation(article_html, faqs).is_truncated is False


# ===================================================================
# Placeholders
# ===================================================================


class TestCheckPlaceholders:
    """Template text detection."""

    def test_lettered_universities_are_each_captured(self):
        result = check_placeholders("<p>University A and University B both offer the degree.</p>")
        assert result.has_placeholders is True
        assert [m.text for m in result.matches] == ["University A", "University B"]

    def test_bracket_placeholders(self):
        result = check_placeholders("<p>Apply to [School Name] before the [TODO] deadline.</p>")
        texts = [m.text for m in result.matches]
        assert "[School Name]" in texts
        assert "[TODO]" in texts

    def test_lorem_ipsum(self):
        assert check_placeholders("<p>Lorem ipsum dolor sit amet.</p>").has_placeholders is True

    def test_matches_are_deduplicated_and_ordered(self):
        html = "<p>[TBD] text [School Name] more [TBD].</p>"
        result = check_placeholders(html)
        texts = [m.text for m in result.matches]
        assert texts == ["[TBD]", "[School Name]"]
        assert result.matches[0].position < result.matches[1].position

    def test_real_names_are_not_placeholders(self):
        assert check_placeholders("<p>Arizona State University offers an online MBA.</p>").has_placeholders is False

    def test_sample_article_is_clean(self, article_html):
        assert check_placeholders(article_html).has_placeholders is False


# ===================================================================
# Statistics / legislation / institutions
# ===================================================================


class TestClaims:
    """Unverified statistics, legislation and institution extraction."""

    def test_uncited_statistic_flagged(self):
        found = check_statistics("<p>About 75% of students finish within two years.</p>")
        assert len(found) == 1
        assert "75%" in found[0].text

    def test_cited_statistic_cleared(self):
        html = "<p>According to BLS data, 75% of graduates find work within a year.</p>"
        assert check_statistics(html) == []

    def test_site_domain_counts_as_citation(self):
        html = "<p>The geteducated.com ranking report found 60% of programs cost less.</p>"
        assert check_statistics(html, site_domain="geteducated.com") == []

    def test_legislation_references(self):
        html = "<p>California passed SB 1234, and Executive Order 14000 changed reporting rules.</p>"
        refs = [r.text for r in check_legislation(html)]
        assert any("SB 1234" in r for r in refs)
        assert any("Executive Order 14000" in r for r in refs)

    def test_act_of_year(self):
        refs = check_legislation("<p>Congress passed the Higher Education Act of 1965.</p>")
        assert any("Act of 1965" in r.text for r in refs)

    def test_no_claims_in_sample(self, article_html):
        assert check_statistics(article_html) == []
        assert check_legislation(article_html) == []

    def test_extract_institution_names(self):
        html = "<p>Students at Ohio State University and the University of Florida can enroll online.</p>"
        assert extract_institution_names(html) == ["Ohio State University", "University of Florida"]

    def test_known_institution_by_alias(self):
        known = [Institution(name="The Ohio State University", aliases=["Ohio State University"])]
        assert is_known_institution("Ohio State University", known) is True
        assert is_known_institution("Purdue Global University", known) is False


# ===================================================================
# Risk rollup
# ===================================================================


class TestRollupRisk:
    """Blocking and warning issues map to a single risk level."""

    def test_any_blocking_issue_is_critical(self):
        blocking = [_issue(IssueType.TRUNCATION.value, Severity.CRITICAL.value)]
        assert rollup_risk(blocking, []) == RiskLevel.CRITICAL.value

    def test_major_warning_is_high(self):
        warnings = [_issue(IssueType.INSUFFICIENT_INTERNAL_LINKS.value, Severity.MAJOR.value)]
        assert rollup_risk([], warnings) == RiskLevel.HIGH.value

    def test_statistics_and_legislation_is_high(self):
        warnings = [_issue(IssueType.UNVERIFIED_STATISTICS.value), _issue(IssueType.UNVERIFIED_LEGISLATION.value)]
        assert rollup_risk([], warnings) == RiskLevel.HIGH.value

    def test_single_statistics_warning_is_medium(self):
        assert rollup_risk([], [_issue(IssueType.UNVERIFIED_STATISTICS.value)]) == RiskLevel.MEDIUM.value

    def test_two_minor_warnings_is_medium(self):
        warnings = [
            _issue(IssueType.INVALID_INTERNAL_LINKS.value, Severity.MINOR.value),
            _issue(IssueType.UNKNOWN_INSTITUTIONS.value),
        ]
        assert rollup_risk([], warnings) == RiskLevel.MEDIUM.value

    def test_nothing_is_low(self):
        assert rollup_risk([], []) == RiskLevel.LOW.value


# ===================================================================
# ContentValidator
# ===================================================================


class TestContentValidator:
    """End-to-end validation runs."""

    @pytest.mark.asyncio
    async def test_clean_article_with_site_links_is_low_risk(self, catalog, faqs):
        html = build_article_html(1600) + SITE_LINKS
        validator = ContentValidator(catalog=catalog)
        result = await validator.validate(html, ValidationOptions(faqs=faqs))
        assert result.is_blocked is False
        assert result.requires_review is False
        assert result.risk_level == RiskLevel.LOW.value
        assert result.metrics.internal_link_count == 3
        assert result.metrics.word_count >= 1600

    @pytest.mark.asyncio
    async def test_missing_internal_links_is_major_warning(self, article_html, catalog):
        result = await ContentValidator(catalog=catalog).validate(article_html)
        assert IssueType.INSUFFICIENT_INTERNAL_LINKS.value in result.issue_types()
        assert result.risk_level == RiskLevel.HIGH.value
        assert result.is_blocked is False

    @pytest.mark.asyncio
    async def test_unknown_site_link_is_invalid(self, catalog):
        html = SITE_LINKS + '<p>Read <a href="https://www.geteducated.com/made-up-page/">this page</a>.</p>'
        result = await ContentValidator(catalog=catalog).validate(html)
        invalid = [i for i in result.warnings if i.type == IssueType.INVALID_INTERNAL_LINKS.value]
        assert len(invalid) == 1
        assert invalid[0].evidence == ["https://www.geteducated.com/made-up-page/"]

    @pytest.mark.asyncio
    async def test_catalog_urls_count_as_valid(self, catalog, catalog_entries):
        links = "".join(f'<p>See <a href="{e.url}">{e.title}</a>.</p>' for e in catalog_entries[:3])
        checked = await ContentValidator(catalog=catalog).check_internal_links(links)
        assert len(checked.valid) == 3
        assert checked.invalid == []

    @pytest.mark.asyncio
    async def test_relative_links_are_ignored(self, catalog):
        checked = await ContentValidator(catalog=catalog).check_internal_links(
            '<p><a href="/online-degrees/">degrees</a> and <a href="/nowhere/">nowhere</a>.</p>'
        )
        assert checked.valid == []
        assert checked.invalid == []

    @pytest.mark.asyncio
    async def test_truncated_content_is_blocked(self):
        result = await ContentValidator().validate("<p>The program costs abo")
        assert result.is_blocked is True
        assert result.requires_review is True
        assert result.risk_level == RiskLevel.CRITICAL.value
        assert result.blocking_issues[0].type == IssueType.TRUNCATION.value

    @pytest.mark.asyncio
    async def test_draft_gate_skips_soft_checks(self):
        html = "<p>About 75% of students finish under SB 1234.</p>"
        result = await ContentValidator().validate_draft(html)
        assert result.warnings == []
        assert result.is_blocked is False

    @pytest.mark.asyncio
    async def test_statistics_require_review(self):
        opts = ValidationOptions(check_internal_links=False)
        result = await ContentValidator().validate("<p>About 75% of students finish early.</p>", opts)
        assert result.requires_review is True
        assert result.risk_level == RiskLevel.MEDIUM.value

    @pytest.mark.asyncio
    async def test_institution_check_needs_lookup(self):
        html = "<p>Purdue Global University and Ohio State University both enroll online students.</p>"
        opts = ValidationOptions(check_internal_links=False)

        without = await ContentValidator().validate(html, opts)
        assert IssueType.UNKNOWN_INSTITUTIONS.value not in without.issue_types()

        lookup = StaticInstitutionLookup([Institution(name="Ohio State University")])
        with_lookup = await ContentValidator(institutions=lookup).validate(html, opts)
        unknown = [i for i in with_lookup.warnings if i.type == IssueType.UNKNOWN_INSTITUTIONS.value]
        assert unknown and unknown[0].evidence == ["Purdue Global University"]
        assert with_lookup.requires_review is True

    def test_blocking_error_carries_issues(self):
        issue = _issue(IssueType.PLACEHOLDER_CONTENT.value, Severity.CRITICAL.value)
        err = BlockingValidationError([issue])
        assert err.issues == [issue]
        assert "placeholder_content" in str(err)
