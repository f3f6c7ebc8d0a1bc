"""
Monetization Engine
===================

Decides which degree programs an article promotes, renders them as site
shortcodes and places them in the body.

Shortcodes:
    [su_ge-picks category=".." concentration=".." level=".." header=".." cta-button=".." cta-url=".."][/su_ge-picks]
    [su_ge-qdf type="simple" header="Find Your Degree"][/su_ge-qdf]

Slot layouts per content type:
    ranking       after_intro table(5), mid_article compact(3), near_conclusion hero(1)
    guide         after_intro compact(3), near_conclusion hero(1)
    career_guide  same as guide
    listicle      after_intro table(5), mid_article table(3)
    faq           after_intro compact(3)
    default       after_intro table(5), mid_article compact(3)

Program selection per slot:
    exact category+concentration(+level) -> broaden to category when fewer
    than 3 -> sponsored first -> max 2 per school -> rank by sponsored,
    tier, name -> programs used by earlier slots are excluded.

Usage:
    from article_pipeline.monetization_engine import MonetizationEngine

    engine = MonetizationEngine(catalog)
    match = await engine.match_topic_to_category(idea.title, idea.degree_level)
    result = await engine.generate_monetization(MonetizationContext(...))
    content = engine.apply(content, result)
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from article_pipeline.config import RulesConfig
from article_pipeline.html_utils import domain_matches, extract_links, link_domain
from article_pipeline.models import ContentType, IssueType, Severity, ValidationIssue

logger = logging.getLogger("monetization_engine")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_PROGRAMS_REQUIRED = 3
MAX_PROGRAMS_PER_SCHOOL = 2


@dataclass(frozen=True)
class SlotType:
    shortcode_type: str
    default_max: Optional[int]
    min_programs: int


SLOT_TYPES: Dict[str, SlotType] = {
    "table": SlotType("su_ge-picks", 5, 3),
    "hero": SlotType("su_ge-picks", 1, 1),
    "compact": SlotType("su_ge-picks", 3, 2),
    "qdf": SlotType("su_ge-qdf", None, 0),
}


@dataclass(frozen=True)
class SlotConfig:
    name: str
    max_programs: int
    type: str


ARTICLE_SLOT_CONFIGS: Dict[str, List[SlotConfig]] = {
    "ranking": [
        SlotConfig("after_intro", 5, "table"),
        SlotConfig("mid_article", 3, "compact"),
        SlotConfig("near_conclusion", 1, "hero"),
    ],
    "guide": [
        SlotConfig("after_intro", 3, "compact"),
        SlotConfig("near_conclusion", 1, "hero"),
    ],
    "listicle": [
        SlotConfig("after_intro", 5, "table"),
        SlotConfig("mid_article", 3, "table"),
    ],
    "explainer": [
        SlotConfig("after_intro", 3, "compact"),
    ],
    "review": [
        SlotConfig("after_intro", 1, "hero"),
        SlotConfig("near_conclusion", 3, "compact"),
    ],
    "default": [
        SlotConfig("after_intro", 5, "table"),
        SlotConfig("mid_article", 3, "compact"),
    ],
}

# Content types without a layout of their own
CONTENT_TYPE_LAYOUTS: Dict[str, str] = {
    ContentType.RANKING.value: "ranking",
    ContentType.GUIDE.value: "guide",
    ContentType.CAREER_GUIDE.value: "guide",
    ContentType.LISTICLE.value: "listicle",
    ContentType.FAQ.value: "explainer",
}

SLOT_POSITIONS: Dict[str, str] = {
    "after_intro": "after_intro",
    "mid_article": "mid_content",
    "near_conclusion": "pre_conclusion",
}

LEVEL_SLUGS: Dict[int, str] = {
    1: "associate",
    2: "bachelor",
    3: "bachelor",
    4: "master",
    5: "doctorate",
    6: "certificate",
}

_COST_RE = re.compile(r"\$[\d,]+(?:\.\d{2})?")
_COST_ATTRIBUTION_RE = re.compile(r"geteducated|ranking report", re.IGNORECASE)
_H2_RE = re.compile(r"<h2[^>]*>[\s\S]*?</h2>", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class MonetizationCategory:
    category_id: int
    concentration_id: int
    category: str
    concentration: str
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DegreeLevel:
    level_code: int
    level_name: str


@dataclass
class Program:
    id: str
    program_name: str
    school_id: str
    school_name: str
    category_id: int
    concentration_id: int
    degree_level_code: Optional[int] = None
    is_sponsored: bool = False
    sponsorship_tier: int = 0
    url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Program:
        known = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known}
        return cls(**filtered)


@dataclass
class CategoryMatch:
    matched: bool = False
    category_id: Optional[int] = None
    concentration_id: Optional[int] = None
    category: Optional[MonetizationCategory] = None
    degree_level_code: Optional[int] = None
    confidence: str = "low"
    score: int = 0
    error: Optional[str] = None


@dataclass
class MonetizationContext:
    category_id: int
    concentration_id: int
    degree_level_code: Optional[int] = None
    content_type: str = ContentType.GUIDE.value
    category: Optional[MonetizationCategory] = None
    slots: Optional[List[SlotConfig]] = None


@dataclass
class SlotResult:
    name: str
    type: str
    position: str
    shortcode: str
    programs: List[Program] = field(default_factory=list)

    @property
    def program_count(self) -> int:
        return len(self.programs)

    @property
    def has_sponsored(self) -> bool:
        return any(p.is_sponsored for p in self.programs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "position": self.position,
            "shortcode": self.shortcode,
            "program_ids": [p.id for p in self.programs],
            "program_count": self.program_count,
            "has_sponsored": self.has_sponsored,
        }


@dataclass
class MonetizationResult:
    success: bool = False
    slots: List[SlotResult] = field(default_factory=list)
    total_programs_selected: int = 0
    sponsored_count: int = 0
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class MonetizationCatalog:
    """Source of monetization categories, degree levels and programs."""

    async def categories(self) -> List[MonetizationCategory]:
        raise NotImplementedError

    async def levels(self) -> List[DegreeLevel]:
        raise NotImplementedError

    async def programs(
        self,
        category_id: int,
        concentration_id: Optional[int],
        degree_level_code: Optional[int],
        exclude_ids: Iterable[str] = (),
    ) -> List[Program]:
        raise NotImplementedError


class StaticMonetizationCatalog(MonetizationCatalog):
    def __init__(
        self,
        categories: Iterable[MonetizationCategory],
        programs: Iterable[Program],
        levels: Optional[Iterable[DegreeLevel]] = None,
    ) -> None:
        self._categories = list(categories)
        self._programs = list(programs)
        self._levels = list(levels) if levels is not None else [
            DegreeLevel(code, name) for code, name in (
                (1, "Associate"), (2, "Bachelor"), (3, "Bachelor Completion"),
                (4, "Master"), (5, "Doctorate"), (6, "Certificate"),
            )
        ]

    async def categories(self) -> List[MonetizationCategory]:
        return [c for c in self._categories if c.is_active]

    async def levels(self) -> List[DegreeLevel]:
        return list(self._levels)

    async def programs(
        self,
        category_id: int,
        concentration_id: Optional[int],
        degree_level_code: Optional[int],
        exclude_ids: Iterable[str] = (),
    ) -> List[Program]:
        excluded = set(exclude_ids)
        return [
            p for p in self._programs
            if p.category_id == category_id
            and (concentration_id is None or p.concentration_id == concentration_id)
            and (degree_level_code is None or p.degree_level_code == degree_level_code)
            and p.id not in excluded
        ]


# ---------------------------------------------------------------------------
# Shortcodes
# ---------------------------------------------------------------------------


def generate_picks_shortcode(
    category: int,
    concentration: int,
    level: Optional[int] = None,
    header: str = "GetEducated's Picks",
    cta_button: str = "View More Degrees",
    cta_url: str = "",
) -> str:
    shortcode = f'[su_ge-picks category="{category}" concentration="{concentration}"'
    if level:
        shortcode += f' level="{level}"'
    shortcode += f' header="{header}" cta-button="{cta_button}"'
    if cta_url:
        shortcode += f' cta-url="{cta_url}"'
    return shortcode + "][/su_ge-picks]"


def generate_qdf_shortcode(type_: str = "simple", header: str = "Find Your Degree") -> str:
    return f'[su_ge-qdf type="{type_}" header="{header}"][/su_ge-qdf]'


def _slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9-]", "", re.sub(r"\s+", "-", (text or "").lower()))


def build_cta_url(degree_level_code: Optional[int], category: Optional[MonetizationCategory]) -> str:
    url = "/online-degrees/"
    slug = LEVEL_SLUGS.get(degree_level_code or 0, "")
    if slug:
        url += f"{slug}/"
    if category is not None:
        for part in (_slugify(category.category), _slugify(category.concentration)):
            if part:
                url += f"{part}/"
    return url


def insert_shortcode(content: str, shortcode: str, position: str = "after_intro") -> str:
    """Place *shortcode* in *content*, wrapped in a monetization paragraph.

    Positions: ``after_intro`` (after the first paragraph), ``mid_content``
    (after the middle h2), ``pre_conclusion`` (before the last h2).
    """
    if not content or not shortcode:
        return content
    block = f'\n<p class="monetization-block">{shortcode}</p>\n'

    if position == "after_intro":
        end = content.find("</p>")
        if end != -1:
            return content[:end + 4] + block + content[end + 4:]
        return block + content

    if position == "mid_content":
        h2s = list(_H2_RE.finditer(content))
        if len(h2s) >= 2:
            pos = h2s[len(h2s) // 2].end()
            return content[:pos] + block + content[pos:]
        nxt = content.find("</p>", len(content) // 2)
        if nxt != -1:
            return content[:nxt + 4] + block + content[nxt + 4:]
        return content + block

    if position == "pre_conclusion":
        first_h2 = content.find("<h2")
        last_h2 = content.rfind("<h2")
        if last_h2 > 0 and last_h2 != first_h2:
            return content[:last_h2] + block + content[last_h2:]
        last_p = content.rfind("</p>")
        if last_p != -1:
            return content[:last_p + 4] + block + content[last_p + 4:]
        return content + block

    return content + block


def slot_layout(content_type: str) -> List[SlotConfig]:
    layout = CONTENT_TYPE_LAYOUTS.get(content_type, "default")
    return list(ARTICLE_SLOT_CONFIGS.get(layout, ARTICLE_SLOT_CONFIGS["default"]))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class MonetizationEngine:
    def __init__(
        self,
        catalog: MonetizationCatalog,
        min_programs_required: int = MIN_PROGRAMS_REQUIRED,
        max_programs_per_school: int = MAX_PROGRAMS_PER_SCHOOL,
    ) -> None:
        self.catalog = catalog
        self.min_programs_required = min_programs_required
        self.max_programs_per_school = max_programs_per_school

    async def match_topic_to_category(self, topic: str, degree_level: Optional[str] = None) -> CategoryMatch:
        """Score every active category against *topic* and return the best.

        concentration name in topic +100, category name +50,
        each concentration word +25, each category word +15.
        """
        if not topic:
            return CategoryMatch(error="No topic provided")
        topic_lower = topic.lower()
        topic_words = topic_lower.split()

        best: Optional[MonetizationCategory] = None
        best_score = 0
        for cat in await self.catalog.categories():
            category_lower = cat.category.lower()
            concentration_lower = cat.concentration.lower()
            score = 0
            if concentration_lower and concentration_lower in topic_lower:
                score += 100
            if category_lower and category_lower in topic_lower:
                score += 50
            for word in concentration_lower.split():
                if len(word) > 3 and any(tw in word or word in tw for tw in topic_words):
                    score += 25
            for word in category_lower.split():
                if len(word) > 3 and any(tw in word or word in tw for tw in topic_words):
                    score += 15
            if score > best_score:
                best, best_score = cat, score

        if best is None:
            return CategoryMatch(error="No matching category found")

        level_code = None
        if degree_level:
            wanted = degree_level.lower()
            for level in await self.catalog.levels():
                if wanted in level.level_name.lower():
                    level_code = level.level_code
                    break

        confidence = "high" if best_score > 75 else "medium" if best_score > 40 else "low"
        return CategoryMatch(
            matched=True,
            category_id=best.category_id,
            concentration_id=best.concentration_id,
            category=best,
            degree_level_code=level_code,
            confidence=confidence,
            score=best_score,
        )

    async def generate_monetization(self, context: MonetizationContext) -> MonetizationResult:
        """Fill every slot of the article layout with programs and a shortcode."""
        if not context.category_id or not context.concentration_id:
            return MonetizationResult(error="category_id and concentration_id are required")

        slot_configs = context.slots or slot_layout(context.content_type)
        used: Set[str] = set()
        slots: List[SlotResult] = []

        for config in slot_configs:
            slot_type = SLOT_TYPES.get(config.type, SLOT_TYPES["table"])
            max_programs = config.max_programs or slot_type.default_max or 0
            programs = await self.select_programs(context, max_programs, exclude_ids=used)
            used.update(p.id for p in programs)

            if slot_type.shortcode_type == "su_ge-qdf":
                shortcode = generate_qdf_shortcode()
            else:
                shortcode = generate_picks_shortcode(
                    category=context.category_id,
                    concentration=context.concentration_id,
                    level=context.degree_level_code,
                    cta_url=build_cta_url(context.degree_level_code, context.category),
                )
            slots.append(SlotResult(
                name=config.name,
                type=config.type,
                position=SLOT_POSITIONS.get(config.name, "after_intro"),
                shortcode=shortcode,
                programs=programs,
            ))

        sponsored = sum(1 for s in slots for p in s.programs if p.is_sponsored)
        logger.info(
            "Monetization: %d slot(s), %d program(s), %d sponsored",
            len(slots), len(used), sponsored,
        )
        return MonetizationResult(
            success=True,
            slots=slots,
            total_programs_selected=len(used),
            sponsored_count=sponsored,
        )

    async def select_programs(
        self,
        context: MonetizationContext,
        max_programs: int,
        exclude_ids: Iterable[str] = (),
        sponsored_only: bool = False,
    ) -> List[Program]:
        excluded = set(exclude_ids)
        programs = await self.catalog.programs(
            context.category_id, context.concentration_id, context.degree_level_code, excluded,
        )
        if len(programs) < self.min_programs_required:
            broader = await self.catalog.programs(
                context.category_id, None, context.degree_level_code, excluded,
            )
            seen = {p.id for p in programs}
            programs = programs + [p for p in broader if p.id not in seen]

        programs = self._rank(programs)
        sponsored = self._diversify([p for p in programs if p.is_sponsored])
        regular = self._diversify([p for p in programs if not p.is_sponsored])
        pool = sponsored if sponsored_only else sponsored + regular
        return self._rank(pool[:max_programs])

    def _diversify(self, programs: Sequence[Program]) -> List[Program]:
        counts: Dict[str, int] = {}
        kept: List[Program] = []
        for program in programs:
            n = counts.get(program.school_id, 0)
            if n < self.max_programs_per_school:
                kept.append(program)
                counts[program.school_id] = n + 1
        return kept

    @staticmethod
    def _rank(programs: Sequence[Program]) -> List[Program]:
        return sorted(programs, key=lambda p: (not p.is_sponsored, -p.sponsorship_tier, p.program_name.lower()))

    @staticmethod
    def apply(content: str, result: MonetizationResult) -> str:
        """Insert every slot shortcode at its position."""
        for slot in result.slots:
            content = insert_shortcode(content, slot.shortcode, slot.position)
        return content


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------


class MonetizationValidator:
    """Checks monetized content against the site's business rules."""

    def __init__(self, rules: Optional[RulesConfig] = None) -> None:
        rules = rules or RulesConfig.default()
        self.blocked_domains = [d.lower() for d in rules.blocked_domains]
        self.allowed_domains = [d.lower() for d in rules.allowed_external_domains]

    def validate(self, content: str, slots: Sequence[SlotResult] = ()) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        if not content:
            return issues

        hrefs = [link.href for link in extract_links(content)]
        for domain in self.blocked_domains:
            offending = [h for h in hrefs if domain_matches(link_domain(h), domain)]
            if offending:
                issues.append(ValidationIssue(
                    type=IssueType.BLOCKED_LINK.value,
                    severity=Severity.CRITICAL.value,
                    message=f"Content contains link to blocked competitor domain: {domain}",
                    evidence=offending,
                ))

        edu = [
            h for h in hrefs
            if link_domain(h).endswith(".edu")
            and not any(domain_matches(link_domain(h), allowed) for allowed in self.allowed_domains)
        ]
        if edu:
            issues.append(ValidationIssue(
                type=IssueType.EDU_LINK.value,
                severity=Severity.MAJOR.value,
                message=f"Content contains {len(edu)} direct .edu link(s). Use site school pages instead.",
                evidence=edu,
            ))

        for slot in slots:
            if slot.program_count > 0 and not slot.has_sponsored:
                issues.append(ValidationIssue(
                    type=IssueType.MISSING_SPONSORED.value,
                    severity=Severity.MINOR.value,
                    message=f'Slot "{slot.name}" has no sponsored programs',
                ))

        costs = _COST_RE.findall(content)
        if costs and not _COST_ATTRIBUTION_RE.search(content):
            issues.append(ValidationIssue(
                type=IssueType.UNATTRIBUTED_COST.value,
                severity=Severity.MINOR.value,
                message=f"Content mentions {len(costs)} cost figure(s) without ranking report attribution",
                evidence=costs[:5],
            ))
        return issues
