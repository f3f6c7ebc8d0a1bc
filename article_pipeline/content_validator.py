"""
Content Validator
=================

Post-generation validation that catches truncation, fabricated content and
unverifiable claims before an article can move forward.

Checks (each yields zero or more ValidationIssue):
    1. TRUNCATION           -- blocking: ends mid-tag / mid-entity / on a
                               dangling short word, or a clipped FAQ answer
    2. PLACEHOLDER_CONTENT  -- blocking: "University A", "[School Name]",
                               "[TODO]", lorem ipsum, ...
    3. UNVERIFIED_STATISTICS -- warning: percentage / survey claims with no
                               citation marker within 50 characters
    4. UNVERIFIED_LEGISLATION -- warning: bill / act / executive-order refs
    5. UNKNOWN_INSTITUTIONS -- warning: institution names not in the known list
    6. INTERNAL LINKS       -- warning: same-domain links that resolve to
                               neither the catalog nor a structural path

Risk rollup:
    CRITICAL  any blocking issue
    HIGH      any major warning, or statistics AND legislation warnings
    MEDIUM    two or more warnings, or statistics OR legislation warning
    LOW       otherwise

Usage:
    from article_pipeline.content_validator import ContentValidator, ValidationOptions

    validator = ContentValidator(institutions=lookup, catalog=catalog)
    result = await validator.validate(html, ValidationOptions(faqs=draft.faqs))
    if result.is_blocked:
        raise BlockingValidationError(result.blocking_issues)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Pattern, Sequence, Set

from article_pipeline.cache import TTLCache
from article_pipeline.config import DEFAULT_SITE_DOMAIN
from article_pipeline.html_utils import (
    count_words,
    domain_matches,
    extract_links,
    link_domain,
    strip_tags,
    truncate,
)
from article_pipeline.models import (
    FAQ,
    Institution,
    IssueType,
    RiskLevel,
    Severity,
    ValidationIssue,
    ValidationMetrics,
    ValidationResult,
)
from article_pipeline.providers import CatalogLookup, InstitutionLookup

logger = logging.getLogger("content_validator")

# ---------------------------------------------------------------------------
# Pattern tables
# ---------------------------------------------------------------------------

PLACEHOLDER_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\bUniversity\s+[A-Z](?=\s|,|\.|\)|:)"),
    re.compile(r"\bCollege\s+[A-Z](?=\s|,|\.|\)|:)"),
    re.compile(r"\bSchool\s+[A-Z](?=\s|,|\.|\)|:)"),
    re.compile(r"\bInstitution\s+[A-Z](?=\s|,|\.|\)|:)"),
    re.compile(r"\[School Name\]", re.I),
    re.compile(r"\[University\]", re.I),
    re.compile(r"\[College\]", re.I),
    re.compile(r"\[Institution Name\]", re.I),
    re.compile(r"\[Program Name\]", re.I),
    re.compile(r"\[Insert\s+\w+\]", re.I),
    re.compile(r"\[TBD\]", re.I),
    re.compile(r"\[TODO\]", re.I),
    re.compile(r"\[PLACEHOLDER\]", re.I),
    re.compile(r"\(Sponsored Listing\)", re.I),
    re.compile(r"University A,?\s*B,?\s*(?:and\s+)?C", re.I),
    re.compile(r"lorem ipsum", re.I),
    re.compile(r"dolor sit amet", re.I),
]

STATISTICS_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\d{1,3}%\s*(?:of\s+)?(?:students?|programs?|schools?|graduates?|employers?|institutions?|respondents?)", re.I),
    re.compile(r"\d{1,3}%\s*(?:report|say|found|show|indicate|believe|agree|prefer|choose)", re.I),
    re.compile(r"(?:survey|study|research|poll|report)\s+(?:found|shows?|indicates?|reveals?|suggests?)\s+.*?\d+", re.I),
    re.compile(r"according to\s+(?:a\s+)?(?:recent\s+)?(?:survey|study|report|poll).*?\d+", re.I),
    re.compile(r"\d{1,3}%\s*(?:completion|retention|graduation|placement|satisfaction|employment)\s+rate", re.I),
    re.compile(r"(?:survey|study)\s+by\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*.*?\d+%", re.I),
    re.compile(r"(?:20\d{2})\s+(?:survey|study|report).*?\d+%", re.I),
    re.compile(r"according to\s+.*?(?:20\d{2}).*?\d+%", re.I),
]

LEGISLATION_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\b(?:SB|HB|AB|HR|S\.|H\.R\.)\s*-?\s*\d{2,5}\b", re.I),
    re.compile(r"\b(?:Senate|House)\s+Bill\s+\d+", re.I),
    re.compile(r"\bExecutive Order\s+\d+", re.I),
    re.compile(r"\bEO\s+\d{4,5}\b", re.I),
    re.compile(r"\b(?:[A-Z]\w*\s+){1,6}Act\s+of\s+\d{4}\b"),
    re.compile(r"\bPublic Law\s+\d+-\d+", re.I),
    re.compile(r"\bP\.L\.\s+\d+-\d+", re.I),
    re.compile(r"\d+\s+C\.?F\.?R\.?\s+\d+", re.I),
    re.compile(r"\b(?:California|Texas|New York|Florida)\s+(?:Education|Business)\s+Code\s+\d+", re.I),
]

INSTITUTION_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\b(?:[A-Z][a-z]+\s+)+State\s+University\b"),
    re.compile(r"\b(?:[A-Z][a-z]+\s+)+Institute\s+of\s+Technology\b"),
    re.compile(r"\bUniversity\s+of\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b"),
    re.compile(r"\b(?:[A-Z][a-z]+\s+)+University\b"),
    re.compile(r"\b(?:[A-Z][a-z]+\s+)+College\b"),
]

# Sentence-initial words the greedy name patterns would otherwise swallow
_LEADING_NOISE = {"The", "A", "An", "At", "In", "Our", "Some", "Many", "Both", "Each", "This", "That", "Online", "Top", "Best"}

TRUNCATION_PATTERNS: List[Pattern[str]] = [
    re.compile(r"<[a-z]+\s+[a-z-]+\s*=\s*[\"'][^\"']*$", re.I),   # cut inside an attribute
    re.compile(r"<[a-z][^>]*$", re.I),                             # cut inside a tag
    re.compile(r"&[a-z]{1,6}$", re.I),                             # partial named entity
    re.compile(r"&#\d{1,4}$"),                                     # partial numeric entity
    re.compile(r"\s[a-z]{1,3}$", re.I),                            # dangling short word
]

# Endings that are always complete
_VALID_ENDING_RE = re.compile(
    r"(?:[.!?][\"')\]]?|</(?:p|li|ul|ol|h[1-6]|div|table|tr|td|blockquote|section|article|figure|details|dl)>)$",
    re.I,
)
_TERMINAL_PUNCT_RE = re.compile(r"[.!?][\"')\]]?$")

CITATION_MARKERS = (
    "BLS", "Bureau of Labor", "NCES", "National Center for Education Statistics",
    "Department of Education", "IPEDS", "College Scorecard",
)

STRUCTURAL_LINK_PATHS = (
    "/online-college-ratings-and-rankings/",
    "/online-degrees/",
    "/online-schools/",
    "/article-contributors/",
)

MIN_VALID_INTERNAL_LINKS = 3
STATISTICS_CONTEXT_CHARS = 50
LEGISLATION_CONTEXT_CHARS = 30
INSTITUTION_CACHE_TTL = 300


class BlockingValidationError(Exception):
    """Content failed a blocking check (truncation or placeholder text)."""

    def __init__(self, issues: Sequence[ValidationIssue], message: str = "") -> None:
        self.issues = list(issues)
        detail = "; ".join(i.message for i in self.issues) or "blocking validation failure"
        super().__init__(message or f"Content failed validation: {detail}")


# ---------------------------------------------------------------------------
# Check results
# ---------------------------------------------------------------------------


@dataclass
class ValidationOptions:
    check_truncation: bool = True
    check_placeholders: bool = True
    check_statistics: bool = True
    check_legislation: bool = True
    check_institutions: bool = True
    check_internal_links: bool = True
    faqs: List[FAQ] = field(default_factory=list)
    target_word_count: int = 2000

    @classmethod
    def draft_gate(cls, faqs: Optional[Iterable[FAQ]] = None, target_word_count: int = 2000) -> ValidationOptions:
        """Truncation and placeholder checks only."""
        return cls(
            check_statistics=False,
            check_legislation=False,
            check_institutions=False,
            check_internal_links=False,
            faqs=list(faqs or []),
            target_word_count=target_word_count,
        )


@dataclass
class TruncationCheck:
    is_truncated: bool = False
    reason: str = ""
    ending: str = ""


@dataclass
class PlaceholderMatch:
    text: str
    pattern: str
    position: int


@dataclass
class PlaceholderCheck:
    has_placeholders: bool = False
    matches: List[PlaceholderMatch] = field(default_factory=list)


@dataclass
class ContextMatch:
    text: str
    context: str


@dataclass
class InstitutionCheck:
    mentioned: List[str] = field(default_factory=list)
    unknown: List[str] = field(default_factory=list)


@dataclass
class LinkCheck:
    valid: List[str] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pure checks
# ---------------------------------------------------------------------------


def check_truncation(html: str, faqs: Optional[Sequence[FAQ]] = None) -> TruncationCheck:
    """Conservative truncation detector.

    Content ending in terminal punctuation or a closing block tag is never
    flagged.
    """
    trimmed = (html or "").strip()
    if trimmed and not _VALID_ENDING_RE.search(trimmed):
        for pattern in TRUNCATION_PATTERNS:
            if pattern.search(trimmed):
                return TruncationCheck(
                    is_truncated=True,
                    reason="Content appears to end mid-tag or mid-word",
                    ending=trimmed[-100:],
                )

    for i, faq in enumerate(faqs or []):
        answer = (faq.answer or "").strip()
        if 0 < len(answer) < 20 and not _TERMINAL_PUNCT_RE.search(answer):
            return TruncationCheck(
                is_truncated=True,
                reason=f"FAQ answer {i + 1} appears to be truncated (too short)",
                ending=answer,
            )

    return TruncationCheck()


def check_placeholders(html: str) -> PlaceholderCheck:
    """Find template / placeholder text; matches are deduplicated by text."""
    text = html or ""
    seen: Set[str] = set()
    matches: List[PlaceholderMatch] = []
    for pattern in PLACEHOLDER_PATTERNS:
        for m in pattern.finditer(text):
            found = m.group(0).strip()
            if found in seen:
                continue
            seen.add(found)
            matches.append(PlaceholderMatch(text=found, pattern=pattern.pattern, position=m.start()))
    matches.sort(key=lambda pm: pm.position)
    return PlaceholderCheck(has_placeholders=bool(matches), matches=matches)


def _context(text: str, start: int, end: int, radius: int) -> str:
    return text[max(0, start - radius):min(len(text), end + radius)].strip()


def _citation_re(site_domain: str) -> Pattern[str]:
    markers = [re.escape(m) for m in CITATION_MARKERS]
    if site_domain:
        markers.append(re.escape(site_domain))
    return re.compile("|".join(markers), re.I)


def check_statistics(html: str, site_domain: str = DEFAULT_SITE_DOMAIN) -> List[ContextMatch]:
    """Statistical claims with no citation marker within +-50 characters."""
    text = strip_tags(html)
    citation_re = _citation_re(site_domain)
    seen: Set[str] = set()
    unverified: List[ContextMatch] = []
    for pattern in STATISTICS_PATTERNS:
        for m in pattern.finditer(text):
            claim = m.group(0)
            if claim in seen:
                continue
            seen.add(claim)
            window = _context(text, m.start(), m.end(), STATISTICS_CONTEXT_CHARS)
            if citation_re.search(window):
                continue
            unverified.append(ContextMatch(text=claim, context=window))
    return unverified


def check_legislation(html: str) -> List[ContextMatch]:
    text = strip_tags(html)
    seen: Set[str] = set()
    refs: List[ContextMatch] = []
    for pattern in LEGISLATION_PATTERNS:
        for m in pattern.finditer(text):
            ref = m.group(0).strip()
            if ref in seen:
                continue
            seen.add(ref)
            refs.append(ContextMatch(text=ref, context=_context(text, m.start(), m.end(), LEGISLATION_CONTEXT_CHARS)))
    return refs


def extract_institution_names(html: str) -> List[str]:
    """Capitalised institution phrases, deduplicated, in first-seen order."""
    text = strip_tags(html)
    names: List[str] = []
    covered: List[range] = []
    for pattern in INSTITUTION_PATTERNS:
        for m in pattern.finditer(text):
            span = range(m.start(), m.end())
            # Longer, earlier patterns win; skip phrases inside an accepted one
            if any(m.start() in r for r in covered):
                continue
            words = m.group(0).split()
            while words and words[0] in _LEADING_NOISE:
                words.pop(0)
            if len(words) < 2:
                continue
            name = " ".join(words)
            covered.append(span)
            if name not in names:
                names.append(name)
    return names


def _fuzzy_known(mention: str, known_names: Iterable[str]) -> bool:
    words = [w for w in mention.lower().split() if len(w) > 3]
    if len(words) < 2:
        return False
    for name in known_names:
        school_words = name.split()
        hits = sum(1 for w in words if any(sw in w or w in sw for sw in school_words if len(sw) > 3))
        if hits >= 2:
            return True
    return False


def is_known_institution(mention: str, institutions: Sequence[Institution]) -> bool:
    lowered = mention.lower()
    names = {i.name.lower() for i in institutions}
    aliases = {a.lower() for i in institutions for a in i.aliases}
    if lowered in names or lowered in aliases:
        return True
    return _fuzzy_known(lowered, names)


def rollup_risk(blocking: Sequence[ValidationIssue], warnings: Sequence[ValidationIssue]) -> str:
    if blocking:
        return RiskLevel.CRITICAL.value
    types = {w.type for w in warnings}
    has_stats = IssueType.UNVERIFIED_STATISTICS.value in types
    has_legislation = IssueType.UNVERIFIED_LEGISLATION.value in types
    if any(w.severity == Severity.MAJOR.value for w in warnings) or (has_stats and has_legislation):
        return RiskLevel.HIGH.value
    if len(warnings) >= 2 or has_stats or has_legislation:
        return RiskLevel.MEDIUM.value
    return RiskLevel.LOW.value


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class ContentValidator:
    """Runs the six checks; institution and catalog lookups are optional."""

    def __init__(
        self,
        institutions: Optional[InstitutionLookup] = None,
        catalog: Optional[CatalogLookup] = None,
        site_domain: str = DEFAULT_SITE_DOMAIN,
        institution_cache: Optional[TTLCache] = None,
    ) -> None:
        self.catalog = catalog
        self.site_domain = site_domain
        self._institutions = institutions
        if institution_cache is None and institutions is not None:
            institution_cache = TTLCache("known_institutions", institutions.known, ttl_seconds=INSTITUTION_CACHE_TTL)
        self.institution_cache = institution_cache

    async def validate(self, html: str, options: Optional[ValidationOptions] = None) -> ValidationResult:
        """Run the enabled checks and roll the findings up into a ValidationResult."""
        opts = options or ValidationOptions()
        blocking: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []
        requires_review = False
        metrics = ValidationMetrics(word_count=count_words(html))

        if opts.check_truncation:
            trunc = check_truncation(html, opts.faqs)
            if trunc.is_truncated:
                blocking.append(ValidationIssue(
                    type=IssueType.TRUNCATION.value,
                    severity=Severity.CRITICAL.value,
                    message=trunc.reason,
                    evidence=[trunc.ending],
                ))

        if opts.check_placeholders:
            placeholders = check_placeholders(html)
            if placeholders.has_placeholders:
                blocking.append(ValidationIssue(
                    type=IssueType.PLACEHOLDER_CONTENT.value,
                    severity=Severity.CRITICAL.value,
                    message="Content contains placeholder/template text that must be replaced",
                    evidence=[m.text for m in placeholders.matches],
                ))

        if opts.check_statistics:
            stats = check_statistics(html, self.site_domain)
            if stats:
                requires_review = True
                warnings.append(ValidationIssue(
                    type=IssueType.UNVERIFIED_STATISTICS.value,
                    severity=Severity.WARNING.value,
                    message=f"Found {len(stats)} unverified statistical claim(s) that may be hallucinated",
                    evidence=[s.context for s in stats],
                ))

        if opts.check_legislation:
            refs = check_legislation(html)
            if refs:
                requires_review = True
                warnings.append(ValidationIssue(
                    type=IssueType.UNVERIFIED_LEGISLATION.value,
                    severity=Severity.WARNING.value,
                    message=f"Found {len(refs)} legislative reference(s) that may be hallucinated",
                    evidence=[r.context for r in refs],
                ))

        if opts.check_institutions and self.institution_cache is not None:
            inst = await self.check_institutions(html)
            if inst.unknown:
                requires_review = True
                warnings.append(ValidationIssue(
                    type=IssueType.UNKNOWN_INSTITUTIONS.value,
                    severity=Severity.WARNING.value,
                    message=f"Found {len(inst.unknown)} institution name(s) not in the known list",
                    evidence=inst.unknown,
                ))

        if opts.check_internal_links:
            links = await self.check_internal_links(html)
            metrics.internal_link_count = len(links.valid)
            metrics.invalid_link_count = len(links.invalid)
            if len(links.valid) < MIN_VALID_INTERNAL_LINKS:
                warnings.append(ValidationIssue(
                    type=IssueType.INSUFFICIENT_INTERNAL_LINKS.value,
                    severity=Severity.MAJOR.value,
                    message=f"Only {len(links.valid)} valid internal link(s) (minimum {MIN_VALID_INTERNAL_LINKS})",
                    evidence=links.valid,
                ))
            if links.invalid:
                warnings.append(ValidationIssue(
                    type=IssueType.INVALID_INTERNAL_LINKS.value,
                    severity=Severity.MINOR.value,
                    message=f"Found {len(links.invalid)} internal link(s) that do not resolve to a known page",
                    evidence=links.invalid,
                ))

        result = ValidationResult(
            is_blocked=bool(blocking),
            requires_review=requires_review or bool(blocking),
            risk_level=rollup_risk(blocking, warnings),
            blocking_issues=blocking,
            warnings=warnings,
            metrics=metrics,
        )
        if result.is_blocked:
            logger.warning(
                "Validation BLOCKED: %s",
                truncate("; ".join(i.message for i in blocking), 200),
            )
        else:
            logger.info(
                "Validation passed: risk=%s warnings=%d words=%d",
                result.risk_level, len(warnings), metrics.word_count,
            )
        return result

    async def validate_draft(self, html: str, faqs: Optional[Sequence[FAQ]] = None) -> ValidationResult:
        """Truncation and placeholder checks only."""
        return await self.validate(html, ValidationOptions.draft_gate(faqs))

    async def check_institutions(self, html: str) -> InstitutionCheck:
        mentioned = extract_institution_names(html)
        if not mentioned or self.institution_cache is None:
            return InstitutionCheck(mentioned=mentioned)
        known: List[Institution] = await self.institution_cache.get()
        unknown = [m for m in mentioned if not is_known_institution(m, known)]
        return InstitutionCheck(mentioned=mentioned, unknown=unknown)

    async def check_internal_links(self, html: str) -> LinkCheck:
        """Classify same-domain links as resolvable or not."""
        result = LinkCheck()
        seen: Set[str] = set()
        for link in extract_links(html):
            href = link.href
            host = link_domain(href)
            if not host or not domain_matches(host, self.site_domain) or href in seen:
                continue
            seen.add(href)
            if any(path in href for path in STRUCTURAL_LINK_PATHS):
                result.valid.append(href)
            elif self.catalog is not None and await self.catalog.contains(href):
                result.valid.append(href)
            else:
                result.invalid.append(href)
        return result
