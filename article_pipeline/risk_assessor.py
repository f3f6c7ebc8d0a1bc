"""
Risk Assessor
=============

Rolls quality flags, validation findings, link compliance and author
authorisation into a single risk level that gates auto-publishing.

Risk levels:
    LOW       safe to auto-publish (risk score < 20, quality >= 85)
    MEDIUM    review recommended (risk score >= 20 or quality < 85)
    HIGH      review required (risk score >= 50 or quality < 70)
    CRITICAL  publishing blocked (any blocking issue)

Usage:
    from article_pipeline.risk_assessor import RiskAssessor

    assessor = RiskAssessor(rules)
    assessment = assessor.assess(
        content=draft.content,
        quality_score=metrics.score,
        risk_flags=fix.risk_flags,
        validation=final_validation,
        contributor_name="Tony Huffman",
    )
    eligible, reason = check_auto_publish_eligibility(assessment)
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from article_pipeline.config import DEFAULT_SITE_DOMAIN, RulesConfig
from article_pipeline.html_utils import domain_matches, extract_links, link_domain
from article_pipeline.models import (
    IssueType,
    RiskAssessment,
    RiskLevel,
    Severity,
    ValidationIssue,
    ValidationResult,
)

logger = logging.getLogger("risk_assessor")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

RISK_THRESHOLD_LOW = 85
RISK_THRESHOLD_MEDIUM = 70
HIGH_RISK_SCORE = 50
MEDIUM_RISK_SCORE = 20
DEFAULT_ISSUE_WEIGHT = 10
MIN_INTERNAL_LINKS = 3

ISSUE_WEIGHTS: Dict[str, int] = {
    IssueType.BLOCKED_LINK.value: 100,
    IssueType.UNAUTHORIZED_AUTHOR.value: 100,
    IssueType.MISSING_SHORTCODE.value: 80,
    IssueType.MISSING_INTERNAL_LINKS.value: 25,
    IssueType.MISSING_EXTERNAL_LINKS.value: 20,
    IssueType.WORD_COUNT_LOW.value: 20,
    IssueType.POOR_READABILITY.value: 15,
    IssueType.WEAK_HEADINGS.value: 15,
    IssueType.MISSING_FAQS.value: 10,
    "missing_citation": 10,
    IssueType.UNVERIFIED_STATISTICS.value: 10,
    IssueType.UNVERIFIED_LEGISLATION.value: 10,
    IssueType.UNKNOWN_INSTITUTIONS.value: 10,
    IssueType.WORD_COUNT_HIGH.value: 5,
    IssueType.EXTERNAL_LINK_WARNING.value: 5,
    IssueType.INVALID_INTERNAL_LINKS.value: 5,
}

ISSUE_MESSAGES: Dict[str, str] = {
    IssueType.BLOCKED_LINK.value: "Contains blocked links (competitors or .edu)",
    IssueType.UNAUTHORIZED_AUTHOR.value: "Author is not on the approved list",
    IssueType.MISSING_SHORTCODE.value: "Monetization block missing required shortcode",
    IssueType.MISSING_INTERNAL_LINKS.value: "Not enough internal links to site content",
    IssueType.MISSING_EXTERNAL_LINKS.value: "Missing authoritative external citations",
    IssueType.WORD_COUNT_LOW.value: "Article is below minimum word count",
    IssueType.WORD_COUNT_HIGH.value: "Article exceeds recommended word count",
    IssueType.POOR_READABILITY.value: "Readability needs improvement",
    IssueType.WEAK_HEADINGS.value: "Heading structure needs improvement",
    IssueType.MISSING_FAQS.value: "Missing FAQ section (minimum 3 questions)",
    IssueType.EXTERNAL_LINK_WARNING.value: "External link not on approved list",
}

SHORTCODE_MARKERS = ("[su_ge-picks", "[su_ge-qdf")


def issue_weight(issue_type: str) -> int:
    return ISSUE_WEIGHTS.get(issue_type, DEFAULT_ISSUE_WEIGHT)


# ===================================================================
# LINK POLICY
# ===================================================================


class LinkCategory(str, Enum):
    INTERNAL = "internal"
    ANCHOR = "anchor"
    BLOCKED_COMPETITOR = "blocked_competitor"
    EDU = "edu"
    ALLOWED_EXTERNAL = "allowed_external"
    UNKNOWN_EXTERNAL = "unknown_external"
    INVALID = "invalid"


@dataclass
class LinkVerdict:
    url: str
    category: str
    domain: str = ""
    message: str = ""

    @property
    def is_blocking(self) -> bool:
        return self.category in (LinkCategory.BLOCKED_COMPETITOR.value, LinkCategory.EDU.value)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LinkReport:
    verdicts: List[LinkVerdict] = field(default_factory=list)

    @property
    def blocking(self) -> List[LinkVerdict]:
        return [v for v in self.verdicts if v.is_blocking]

    @property
    def warnings(self) -> List[LinkVerdict]:
        return [v for v in self.verdicts if v.category == LinkCategory.UNKNOWN_EXTERNAL.value]

    @property
    def internal_count(self) -> int:
        return sum(1 for v in self.verdicts if v.category == LinkCategory.INTERNAL.value)

    @property
    def is_compliant(self) -> bool:
        return not self.blocking


class LinkPolicy:
    """Classifies hrefs against the site domain and the rules' domain lists.

    Allow-listed domains are checked before the ``.edu`` rule so accreditor
    sites such as ``aacsb.edu`` stay citable.
    """

    def __init__(self, rules: Optional[RulesConfig] = None, site_domain: str = DEFAULT_SITE_DOMAIN) -> None:
        rules = rules or RulesConfig.default()
        self.site_domain = site_domain
        self.blocked_domains = [d.lower() for d in rules.blocked_domains]
        self.allowed_domains = [d.lower() for d in rules.allowed_external_domains]
        self.block_edu = rules.block_edu_links

    def classify(self, url: str) -> LinkVerdict:
        if not url:
            return LinkVerdict(url=url, category=LinkCategory.INVALID.value, message="Empty URL")
        if url.startswith("#"):
            return LinkVerdict(url=url, category=LinkCategory.ANCHOR.value)
        if url.startswith("/") and not url.startswith("//"):
            return LinkVerdict(url=url, category=LinkCategory.INTERNAL.value)

        domain = link_domain(url)
        if not domain:
            return LinkVerdict(url=url, category=LinkCategory.INVALID.value, message="Invalid URL format")
        if domain_matches(domain, self.site_domain):
            return LinkVerdict(url=url, category=LinkCategory.INTERNAL.value, domain=domain)

        for competitor in self.blocked_domains:
            if domain_matches(domain, competitor):
                return LinkVerdict(
                    url=url, category=LinkCategory.BLOCKED_COMPETITOR.value, domain=domain,
                    message=f"Competitor link detected: {competitor}. This link is not allowed.",
                )
        if any(domain_matches(domain, allowed) for allowed in self.allowed_domains):
            return LinkVerdict(url=url, category=LinkCategory.ALLOWED_EXTERNAL.value, domain=domain)
        if self.block_edu and domain.endswith(".edu"):
            return LinkVerdict(
                url=url, category=LinkCategory.EDU.value, domain=domain,
                message="Direct .edu links are not allowed. Use site school pages instead.",
            )
        return LinkVerdict(
            url=url, category=LinkCategory.UNKNOWN_EXTERNAL.value, domain=domain,
            message=f"External link to {domain} is not on the approved list.",
        )

    def check(self, html: str) -> LinkReport:
        return LinkReport(verdicts=[self.classify(link.href) for link in extract_links(html)])


# ===================================================================
# RISK ASSESSOR
# ===================================================================


class RiskAssessor:
    def __init__(self, rules: Optional[RulesConfig] = None, site_domain: str = DEFAULT_SITE_DOMAIN) -> None:
        self.rules = rules or RulesConfig.default()
        self.link_policy = LinkPolicy(self.rules, site_domain)

    def assess(
        self,
        content: str,
        quality_score: int,
        risk_flags: Sequence[str] = (),
        validation: Optional[ValidationResult] = None,
        contributor_name: Optional[str] = None,
        extra_issues: Sequence[ValidationIssue] = (),
        expect_shortcode: bool = False,
    ) -> RiskAssessment:
        """Compute the risk level for an article.

        Parameters
        ----------
        content : str
            Final article HTML.
        quality_score : int
            Score from the last QualityScorer pass.
        risk_flags : sequence of str
            Unresolved issue types surfaced by the auto-fix loop.
        validation : ValidationResult, optional
            Final validation pass; its blocking issues force CRITICAL.
        contributor_name : str, optional
            Checked against the approved-author list when given.
        extra_issues : sequence of ValidationIssue
            Findings from other stages (e.g. monetization validation).
        expect_shortcode : bool
            Flag ``missing_shortcode`` when no monetization shortcode is present.

        Returns
        -------
        RiskAssessment
        """
        blocking: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []
        risk_score = 0
        seen_types = set()

        for flag in risk_flags:
            if flag in seen_types:
                continue
            seen_types.add(flag)
            weight = issue_weight(flag)
            risk_score += weight
            warnings.append(ValidationIssue(
                type=flag,
                severity=Severity.MAJOR.value if weight >= 20 else Severity.MINOR.value,
                message=ISSUE_MESSAGES.get(flag, flag),
            ))

        if validation is not None:
            blocking.extend(validation.blocking_issues)
            for issue in validation.warnings:
                if issue.type in seen_types:
                    continue
                seen_types.add(issue.type)
                risk_score += issue_weight(issue.type)
                warnings.append(issue)

        for issue in extra_issues:
            # Link findings come from the link policy below
            if issue.type in (IssueType.BLOCKED_LINK.value, IssueType.EDU_LINK.value):
                continue
            if issue.is_blocking:
                blocking.append(issue)
            else:
                warnings.append(issue)
            risk_score += issue_weight(issue.type)

        link_report = self.link_policy.check(content)
        for verdict in link_report.blocking:
            blocking.append(ValidationIssue(
                type=IssueType.BLOCKED_LINK.value,
                severity=Severity.CRITICAL.value,
                message=verdict.message,
                evidence=[verdict.url],
            ))
            risk_score += issue_weight(IssueType.BLOCKED_LINK.value)
        for verdict in link_report.warnings:
            warnings.append(ValidationIssue(
                type=IssueType.EXTERNAL_LINK_WARNING.value,
                severity=Severity.MINOR.value,
                message=verdict.message,
                evidence=[verdict.url],
            ))
            risk_score += issue_weight(IssueType.EXTERNAL_LINK_WARNING.value)
        if (
            link_report.internal_count < MIN_INTERNAL_LINKS
            and IssueType.MISSING_INTERNAL_LINKS.value not in seen_types
        ):
            warnings.append(ValidationIssue(
                type=IssueType.MISSING_INTERNAL_LINKS.value,
                severity=Severity.MAJOR.value,
                message=f"Only {link_report.internal_count} internal links found (minimum: {MIN_INTERNAL_LINKS})",
            ))
            risk_score += issue_weight(IssueType.MISSING_INTERNAL_LINKS.value)

        approved = self.rules.approved_authors
        if contributor_name and approved and contributor_name not in approved:
            blocking.append(ValidationIssue(
                type=IssueType.UNAUTHORIZED_AUTHOR.value,
                severity=Severity.CRITICAL.value,
                message=f'Author "{contributor_name}" is not an approved author',
            ))
            risk_score += issue_weight(IssueType.UNAUTHORIZED_AUTHOR.value)

        if expect_shortcode and not any(marker in content for marker in SHORTCODE_MARKERS):
            warnings.append(ValidationIssue(
                type=IssueType.MISSING_SHORTCODE.value,
                severity=Severity.MAJOR.value,
                message=ISSUE_MESSAGES[IssueType.MISSING_SHORTCODE.value],
            ))
            risk_score += issue_weight(IssueType.MISSING_SHORTCODE.value)

        assessment = RiskAssessment(
            risk_score=risk_score,
            blocking_issues=blocking,
            warnings=warnings,
            quality_score=quality_score,
        )
        self._classify(assessment)
        assessment.summary = summarize(assessment)
        logger.info(
            "Risk %s (score=%d, quality=%d, blocking=%d, warnings=%d)",
            assessment.risk_level, risk_score, quality_score, len(blocking), len(warnings),
        )
        return assessment

    @staticmethod
    def _classify(assessment: RiskAssessment) -> None:
        if assessment.blocking_issues:
            assessment.risk_level = RiskLevel.CRITICAL.value
            assessment.publish_blocked = True
        elif assessment.risk_score >= HIGH_RISK_SCORE or assessment.quality_score < RISK_THRESHOLD_MEDIUM:
            assessment.risk_level = RiskLevel.HIGH.value
        elif assessment.risk_score >= MEDIUM_RISK_SCORE or assessment.quality_score < RISK_THRESHOLD_LOW:
            assessment.risk_level = RiskLevel.MEDIUM.value
        else:
            assessment.risk_level = RiskLevel.LOW.value
        assessment.can_auto_publish = assessment.risk_level == RiskLevel.LOW.value
        assessment.requires_review = not assessment.can_auto_publish


def summarize(assessment: RiskAssessment) -> str:
    level = assessment.risk_level
    if level == RiskLevel.CRITICAL.value:
        return f"Publishing blocked: {len(assessment.blocking_issues)} critical issue(s) must be resolved."
    if level == RiskLevel.HIGH.value:
        return (
            f"High risk: {len(assessment.warnings)} issue(s) require attention. "
            f"Quality score: {assessment.quality_score}."
        )
    if level == RiskLevel.MEDIUM.value:
        return (
            f"Review recommended: {len(assessment.warnings)} minor issue(s). "
            f"Quality score: {assessment.quality_score}."
        )
    return f"Ready for publishing. Quality score: {assessment.quality_score}."


# ===================================================================
# AUTO-PUBLISH
# ===================================================================


@dataclass
class AutoPublishSettings:
    block_high_risk: bool = True
    min_quality_score: int = 80
    days_until_auto_publish: int = 5

    @classmethod
    def from_rules(cls, rules: RulesConfig) -> AutoPublishSettings:
        publishing = rules.hard_rules.get("publishing", {})
        return cls(
            block_high_risk=bool(publishing.get("block_high_risk", True)),
            min_quality_score=rules.quality_thresholds().min_score_auto_publish,
            days_until_auto_publish=rules.days_until_auto_publish,
        )


def check_auto_publish_eligibility(
    assessment: RiskAssessment,
    settings: Optional[AutoPublishSettings] = None,
) -> Tuple[bool, Optional[str]]:
    """Return ``(eligible, reason)``; *reason* is None when eligible."""
    settings = settings or AutoPublishSettings()
    if assessment.publish_blocked:
        return False, "Article has critical issues that block publishing"
    if settings.block_high_risk and assessment.risk_level in (RiskLevel.HIGH.value, RiskLevel.CRITICAL.value):
        return False, f"{assessment.risk_level} risk articles require manual review"
    if assessment.quality_score < settings.min_quality_score:
        return False, (
            f"Quality score ({assessment.quality_score}) below minimum ({settings.min_quality_score})"
        )
    return True, None


def auto_publish_deadline(from_time: Optional[datetime] = None, days: int = 5) -> datetime:
    start = from_time or datetime.now(timezone.utc)
    return start + timedelta(days=days)


@dataclass
class AutoPublishStatus:
    has_deadline: bool = False
    is_overdue: bool = False
    seconds_remaining: float = 0.0
    will_auto_publish: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def auto_publish_status(
    deadline: Optional[datetime],
    now: Optional[datetime] = None,
    eligible: bool = True,
    already_published: bool = False,
) -> AutoPublishStatus:
    """Countdown view of an article's auto-publish deadline."""
    if deadline is None:
        return AutoPublishStatus()
    now = now or datetime.now(timezone.utc)
    remaining = (deadline - now).total_seconds()
    return AutoPublishStatus(
        has_deadline=True,
        is_overdue=remaining <= 0,
        seconds_remaining=max(0.0, math.floor(remaining)),
        will_auto_publish=eligible and not already_published,
    )
