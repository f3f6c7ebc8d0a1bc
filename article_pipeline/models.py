"""
Shared data model for the article pipeline.

Enums are ``str`` subclasses and dataclass fields store their ``.value`` so
every record serialises straight to JSON via ``to_dict``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ContentType(str, Enum):
    """Article formats the pipeline can produce."""
    RANKING = "ranking"
    CAREER_GUIDE = "career_guide"
    LISTICLE = "listicle"
    GUIDE = "guide"
    FAQ = "faq"


class Severity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    WARNING = "warning"
    MINOR = "minor"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class IssueType(str, Enum):
    """Every issue kind raised by validation, scoring and risk assessment."""
    # Content validation -- blocking
    TRUNCATION = "truncation"
    PLACEHOLDER_CONTENT = "placeholder_content"
    # Content validation -- warnings
    UNVERIFIED_STATISTICS = "unverified_statistics"
    UNVERIFIED_LEGISLATION = "unverified_legislation"
    UNKNOWN_INSTITUTIONS = "unknown_institutions"
    INSUFFICIENT_INTERNAL_LINKS = "insufficient_internal_links"
    INVALID_INTERNAL_LINKS = "invalid_internal_links"
    # Structural quality
    WORD_COUNT_LOW = "word_count_low"
    WORD_COUNT_HIGH = "word_count_high"
    MISSING_INTERNAL_LINKS = "missing_internal_links"
    MISSING_EXTERNAL_LINKS = "missing_external_links"
    MISSING_FAQS = "missing_faqs"
    WEAK_HEADINGS = "weak_headings"
    POOR_READABILITY = "poor_readability"
    # Risk / compliance
    BLOCKED_LINK = "blocked_link"
    UNAUTHORIZED_AUTHOR = "unauthorized_author"
    MISSING_SHORTCODE = "missing_shortcode"
    EXTERNAL_LINK_WARNING = "external_link_warning"
    EDU_LINK = "edu_link"
    MISSING_SPONSORED = "missing_sponsored"
    UNATTRIBUTED_COST = "unattributed_cost"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContentIdea:
    """Immutable article idea created upstream of the pipeline."""
    title: str
    description: str = ""
    keywords: Tuple[str, ...] = ()
    seed_topics: Tuple[str, ...] = ()
    id: Optional[str] = None
    degree_level: Optional[str] = None
    subject: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "keywords", tuple(self.keywords))
        object.__setattr__(self, "seed_topics", tuple(self.seed_topics))

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["keywords"] = list(self.keywords)
        d["seed_topics"] = list(self.seed_topics)
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ContentIdea:
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        filtered["keywords"] = tuple(filtered.get("keywords") or ())
        filtered["seed_topics"] = tuple(filtered.get("seed_topics") or ())
        return cls(**filtered)


@dataclass
class GenerationOptions:
    """Per-article generation options with named defaults."""
    content_type: str = ContentType.GUIDE.value
    target_word_count: int = 2000
    auto_assign_contributor: bool = True
    add_internal_links: bool = True
    auto_fix: bool = True
    max_fix_attempts: int = 3
    humanize: bool = True
    add_monetization: bool = True
    quality_threshold: int = 85
    max_internal_links: int = 5

    def __post_init__(self) -> None:
        # Accept the enum member or its value, always store the value
        self.content_type = ContentType(self.content_type).value
        if self.max_fix_attempts < 1:
            raise ValueError("max_fix_attempts must be at least 1")
        if self.target_word_count <= 0:
            raise ValueError("target_word_count must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GenerationOptions:
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


# ---------------------------------------------------------------------------
# Draft
# ---------------------------------------------------------------------------


@dataclass
class FAQ:
    question: str
    answer: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ArticleDraft:
    """Structured draft, mutated in place by each stage after generation."""
    title: str
    content: str
    excerpt: str = ""
    faqs: List[FAQ] = field(default_factory=list)
    meta_title: str = ""
    meta_description: str = ""
    focus_keyword: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ArticleDraft:
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        faqs = []
        for item in filtered.get("faqs") or []:
            if isinstance(item, FAQ):
                faqs.append(item)
            elif isinstance(item, dict):
                faqs.append(FAQ(question=str(item.get("question", "")), answer=str(item.get("answer", ""))))
        filtered["faqs"] = faqs
        filtered.setdefault("title", "")
        filtered.setdefault("content", "")
        return cls(**filtered)


# ---------------------------------------------------------------------------
# Validation, quality, risk
# ---------------------------------------------------------------------------


@dataclass
class ValidationIssue:
    """A single finding from validation, scoring or risk assessment."""
    type: str
    severity: str
    message: str
    evidence: List[str] = field(default_factory=list)

    @property
    def is_blocking(self) -> bool:
        return self.severity == Severity.CRITICAL.value

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ValidationIssue:
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


@dataclass
class ValidationMetrics:
    word_count: int = 0
    internal_link_count: int = 0
    invalid_link_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationResult:
    is_blocked: bool = False
    requires_review: bool = False
    risk_level: str = RiskLevel.LOW.value
    blocking_issues: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    metrics: ValidationMetrics = field(default_factory=ValidationMetrics)

    @property
    def all_issues(self) -> List[ValidationIssue]:
        return self.blocking_issues + self.warnings

    def issue_types(self) -> List[str]:
        return [i.type for i in self.all_issues]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QualityMetrics:
    """Structural quality score (0-100) with the issues that reduced it."""
    score: int = 100
    word_count: int = 0
    issues: List[ValidationIssue] = field(default_factory=list)
    h2_count: int = 0
    internal_link_count: int = 0
    external_link_count: int = 0
    faq_count: int = 0
    avg_sentence_length: float = 0.0
    flesch_reading_ease: float = 0.0
    thresholds_used: Dict[str, Any] = field(default_factory=dict)

    def issue_types(self) -> List[str]:
        return [i.type for i in self.issues]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RiskAssessment:
    risk_level: str = RiskLevel.LOW.value
    risk_score: int = 0
    blocking_issues: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    can_auto_publish: bool = False
    requires_review: bool = True
    publish_blocked: bool = False
    quality_score: int = 0
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Collaborator records
# ---------------------------------------------------------------------------


@dataclass
class CatalogEntry:
    """A published article eligible as an internal-link target."""
    title: str
    url: str
    topics: List[str] = field(default_factory=list)
    category: str = ""
    excerpt: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CatalogEntry:
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


@dataclass
class Institution:
    name: str
    aliases: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ContributorProfile:
    id: str
    name: str
    expertise_areas: List[str] = field(default_factory=list)
    content_types: List[str] = field(default_factory=list)
    writing_style_profile: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ContributorProfile:
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class ArticleStatus(str, Enum):
    DRAFTING = "drafting"
    NEEDS_MANUAL_COMPLETION = "needs_manual_completion"


@dataclass
class Article:
    """Publishable article record handed to the persistence layer."""
    title: str
    content: str = ""
    excerpt: str = ""
    faqs: List[FAQ] = field(default_factory=list)
    meta_title: str = ""
    meta_description: str = ""
    focus_keyword: str = ""
    slug: str = ""
    content_type: str = ContentType.GUIDE.value
    status: str = ArticleStatus.DRAFTING.value
    word_count: int = 0
    quality_score: int = 0
    risk_flags: List[str] = field(default_factory=list)
    validation_flags: List[ValidationIssue] = field(default_factory=list)
    requires_human_review: bool = False
    review_reasons: List[str] = field(default_factory=list)
    validation_risk_level: str = RiskLevel.LOW.value
    risk_level: str = RiskLevel.LOW.value
    risk_assessment: Optional[RiskAssessment] = None
    contributor_id: Optional[str] = None
    contributor_name: Optional[str] = None
    monetization_slots: List[Dict[str, Any]] = field(default_factory=list)
    reasoning: Dict[str, Any] = field(default_factory=dict)
    idea_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
