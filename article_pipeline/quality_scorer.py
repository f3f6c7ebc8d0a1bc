"""
Quality Scorer
==============

Structural quality score for an article: starts at 100 and deducts a fixed
weight per issue found against the active QualityThresholds.

    word_count_low          15  (major)
    word_count_high          5  (minor)
    missing_internal_links  15  (major)
    missing_external_links  10  (minor)
    missing_faqs            10  (minor)
    weak_headings           10  (minor)
    poor_readability        10  (minor)

Usage:
    from article_pipeline.quality_scorer import QualityScorer

    scorer = QualityScorer(rules.quality_thresholds())
    metrics = scorer.score(draft.content, draft.faqs)
    print(metrics.score, metrics.issue_types())
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from article_pipeline.config import DEFAULT_SITE_DOMAIN, QualityThresholds
from article_pipeline.html_utils import (
    average_sentence_length,
    count_headings,
    count_links,
    count_words,
    flesch_reading_ease,
)
from article_pipeline.models import FAQ, IssueType, QualityMetrics, Severity, ValidationIssue

logger = logging.getLogger("quality_scorer")

DEDUCTIONS: Dict[str, int] = {
    IssueType.WORD_COUNT_LOW.value: 15,
    IssueType.WORD_COUNT_HIGH.value: 5,
    IssueType.MISSING_INTERNAL_LINKS.value: 15,
    IssueType.MISSING_EXTERNAL_LINKS.value: 10,
    IssueType.MISSING_FAQS.value: 10,
    IssueType.WEAK_HEADINGS.value: 10,
    IssueType.POOR_READABILITY.value: 10,
}

MAJOR_ISSUES = {IssueType.WORD_COUNT_LOW.value, IssueType.MISSING_INTERNAL_LINKS.value}


class QualityScorer:
    """Pure scorer; holds only thresholds and the site domain."""

    def __init__(
        self,
        thresholds: Optional[QualityThresholds] = None,
        site_domain: str = DEFAULT_SITE_DOMAIN,
    ) -> None:
        self.thresholds = thresholds or QualityThresholds()
        self.site_domain = site_domain

    def score(self, html: str, faqs: Optional[Sequence[FAQ]] = None) -> QualityMetrics:
        """Measure *html* and return the score with the issues that reduced it.

        Parameters
        ----------
        html : str
            Article body.
        faqs : sequence of FAQ, optional
            FAQs stored beside the body; counted toward the FAQ minimum.

        Returns
        -------
        QualityMetrics
        """
        t = self.thresholds
        faq_list = list(faqs or [])
        word_count = count_words(html)
        h2_count = count_headings(html, 2)
        internal, external = count_links(html, self.site_domain)
        avg_len = round(average_sentence_length(html), 1)
        issues: List[ValidationIssue] = []

        if word_count < t.min_word_count:
            issues.append(self._issue(
                IssueType.WORD_COUNT_LOW,
                f"Word count {word_count} is below the minimum of {t.min_word_count}",
            ))
        elif word_count > t.max_word_count:
            issues.append(self._issue(
                IssueType.WORD_COUNT_HIGH,
                f"Word count {word_count} exceeds the maximum of {t.max_word_count}",
            ))

        if internal < t.min_internal_links:
            issues.append(self._issue(
                IssueType.MISSING_INTERNAL_LINKS,
                f"Only {internal} internal link(s), need at least {t.min_internal_links}",
            ))

        if external < t.min_external_links:
            issues.append(self._issue(
                IssueType.MISSING_EXTERNAL_LINKS,
                f"Only {external} external citation(s), need at least {t.min_external_links}",
            ))

        if len(faq_list) < t.min_faqs:
            issues.append(self._issue(
                IssueType.MISSING_FAQS,
                f"Only {len(faq_list)} FAQ(s), need at least {t.min_faqs}",
            ))

        if h2_count < t.min_h2_headings:
            issues.append(self._issue(
                IssueType.WEAK_HEADINGS,
                f"Only {h2_count} H2 heading(s), need at least {t.min_h2_headings}",
            ))

        if avg_len > t.max_avg_sentence_length:
            issues.append(self._issue(
                IssueType.POOR_READABILITY,
                f"Average sentence length {avg_len} words exceeds {t.max_avg_sentence_length}",
            ))

        total = 100 - sum(DEDUCTIONS.get(i.type, 0) for i in issues)
        metrics = QualityMetrics(
            score=max(0, total),
            word_count=word_count,
            issues=issues,
            h2_count=h2_count,
            internal_link_count=internal,
            external_link_count=external,
            faq_count=len(faq_list),
            avg_sentence_length=avg_len,
            flesch_reading_ease=flesch_reading_ease(html),
            thresholds_used=t.to_dict(),
        )
        logger.debug(
            "Quality score %d (words=%d h2=%d links=%d/%d faqs=%d issues=%s)",
            metrics.score, word_count, h2_count, internal, external,
            len(faq_list), metrics.issue_types(),
        )
        return metrics

    @staticmethod
    def _issue(issue_type: IssueType, message: str) -> ValidationIssue:
        severity = Severity.MAJOR if issue_type.value in MAJOR_ISSUES else Severity.MINOR
        return ValidationIssue(type=issue_type.value, severity=severity.value, message=message)
