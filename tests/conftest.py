"""
Shared fixtures for the article pipeline test suite.

Provides sample articles, catalogs and in-memory provider fakes so that
every test runs WITHOUT Anthropic, StealthGPT or any other external service.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

from article_pipeline.config import PipelineSettings, RulesConfig
from article_pipeline.content_pipeline import ArticlePipeline
from article_pipeline.contributors import StaticContributorAssigner
from article_pipeline.html_utils import count_words
from article_pipeline.humanizer import HumanizeOptions
from article_pipeline.models import FAQ, ArticleDraft, CatalogEntry, ContentIdea, ValidationIssue
from article_pipeline.monetization_engine import (
    MonetizationCategory,
    MonetizationEngine,
    Program,
    StaticMonetizationCatalog,
)
from article_pipeline.providers import (
    AnchorProposal,
    AnchorProvider,
    DraftContext,
    DraftProvider,
    RepairProvider,
    RewriteOptions,
    RewriteProvider,
    RewriteResult,
    StaticCatalog,
    StaticPricingLookup,
    StaticRulesStore,
)


# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------

SENTENCES = [
    "An online MBA lets working professionals study business without leaving their current jobs.",
    "Most programs ask for a bachelor's degree and a few years of work experience.",
    "Students should compare accreditation, tuition and course formats before they apply anywhere.",
    "Many schools offer concentrations in finance, marketing, healthcare management and data analytics.",
    "Flexible schedules help parents and career changers balance classes with family life.",
    "Graduates often move into management roles with broader responsibility and higher pay.",
    "Admissions teams look closely at essays, references and professional goals.",
    "Financial aid, employer tuition support and scholarships can lower the total cost.",
]

SECTION_HEADINGS = [
    "What an Online MBA Covers",
    "Admission Requirements",
    "Paying for Your Degree",
    "Career Outcomes",
]

CITATION_PARAGRAPH = (
    '<p>Salary figures come from the <a href="https://www.bls.gov/ooh/management/">Bureau of Labor '
    'Statistics</a>, and enrollment trends come from <a href="https://nces.ed.gov/fastfacts/">NCES</a>.</p>'
)

CONCLUSION = (
    "<h2>Final Thoughts</h2>\n"
    "<p>Choosing a program is a personal decision. Compare the options above, talk with admissions "
    "advisors and pick the format that fits your schedule and budget.</p>"
)


def paragraph(index: int, sentences: int = 6) -> str:
    """One paragraph of rotating sample sentences (about 75 words)."""
    body = " ".join(SENTENCES[(index + k) % len(SENTENCES)] for k in range(sentences))
    return f"<p>{body}</p>"


def build_article_html(
    target_words: int = 1600,
    headings: Sequence[str] = SECTION_HEADINGS,
    citations: bool = True,
) -> str:
    """Well-formed article HTML with at least *target_words* words.

    Intro paragraph, one h2 section per heading (paragraphs added round-robin
    until the target is reached) and a closing section.
    """
    sections: List[List[str]] = [[paragraph(i)] for i in range(len(headings))]
    if citations and sections:
        sections[0].append(CITATION_PARAGRAPH)

    def _render() -> str:
        parts = [paragraph(7)]
        for heading, paragraphs in zip(headings, sections):
            parts.append(f"<h2>{heading}</h2>")
            parts.extend(paragraphs)
        parts.append(CONCLUSION)
        return "\n".join(parts)

    n = len(headings)
    i = 0
    while count_words(_render()) < target_words and n:
        sections[i % n].append(paragraph(i + n))
        i += 1
    return _render()


def sample_faqs() -> List[FAQ]:
    return [
        FAQ(
            question="How long does an online MBA take?",
            answer="Most students finish in two years, and accelerated formats can take about one year.",
        ),
        FAQ(
            question="Do I need the GMAT?",
            answer="Many programs waive the GMAT for applicants with several years of management experience.",
        ),
        FAQ(
            question="Is an online MBA respected by employers?",
            answer="Employers generally treat an accredited online MBA the same as an on-campus degree.",
        ),
    ]


@pytest.fixture
def article_html():
    """A clean ~1600 word article with four h2 sections and two citations."""
    return build_article_html(1600)


@pytest.fixture
def faqs():
    return sample_faqs()


@pytest.fixture
def mba_idea():
    return ContentIdea(
        title="Best Online MBA Programs",
        description="Compare accredited online MBA programs by cost and format.",
        keywords=("online mba", "business administration"),
        seed_topics=("business", "online degrees"),
        id="idea-mba",
        degree_level="Master",
    )


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------


CATALOG_ENTRIES = [
    CatalogEntry(
        title="Accredited Online MBA Programs",
        url="https://www.geteducated.com/articles/accredited-online-mba-programs/",
        topics=["online MBA"],
        category="Business",
    ),
    CatalogEntry(
        title="Business Administration Financial Aid Guide",
        url="https://www.geteducated.com/articles/business-financial-aid/",
        topics=["financial aid", "business administration"],
        category="Business",
    ),
    CatalogEntry(
        title="Management Careers for Business Graduates",
        url="https://www.geteducated.com/careers/management-careers/",
        topics=["management roles"],
        category="Business",
    ),
    CatalogEntry(
        title="MBA Concentrations Explained",
        url="https://www.geteducated.com/articles/mba-concentrations/",
        topics=["concentrations in finance"],
        category="Business",
    ),
    CatalogEntry(
        title="Nursing Licensure by State",
        url="https://www.geteducated.com/careers/nursing-licensure/",
        topics=["nursing licensure"],
        category="Nursing",
    ),
]


@pytest.fixture
def catalog_entries():
    return list(CATALOG_ENTRIES)


@pytest.fixture
def catalog():
    return StaticCatalog(CATALOG_ENTRIES)


@pytest.fixture
def monetization_catalog():
    categories = [
        MonetizationCategory(category_id=1, concentration_id=10, category="Business", concentration="MBA"),
        MonetizationCategory(category_id=2, concentration_id=20, category="Nursing", concentration="RN to BSN"),
    ]
    programs = [
        Program(
            id=f"p{i}",
            program_name=f"Online MBA Track {i}",
            school_id=f"s{(i + 1) // 2}",
            school_name=f"School {i}",
            category_id=1,
            concentration_id=10,
            degree_level_code=4,
            is_sponsored=i <= 9,
            sponsorship_tier=10 - i if i <= 9 else 0,
        )
        for i in range(1, 13)
    ]
    return StaticMonetizationCatalog(categories, programs)


@pytest.fixture
def monetization_engine(monetization_catalog):
    return MonetizationEngine(monetization_catalog)


# ---------------------------------------------------------------------------
# Provider fakes
# ---------------------------------------------------------------------------


class FakeDraftProvider(DraftProvider):
    """Returns queued bodies first, then generated articles at ``ratio`` x target."""

    name = "fake-draft"

    def __init__(
        self,
        bodies: Optional[Sequence[str]] = None,
        ratio: float = 0.85,
        error: Optional[Exception] = None,
    ) -> None:
        self.bodies = list(bodies or [])
        self.ratio = ratio
        self.error = error
        self.calls: List[DraftContext] = []

    async def generate_draft(self, idea: ContentIdea, context: DraftContext) -> ArticleDraft:
        self.calls.append(context)
        if self.error is not None:
            raise self.error
        if self.bodies:
            content = self.bodies.pop(0)
        else:
            content = build_article_html(int(context.target_word_count * self.ratio))
        return ArticleDraft(
            title=idea.title,
            content=content,
            excerpt="A guide to online MBA programs.",
            faqs=sample_faqs(),
            meta_title=idea.title,
            meta_description="Compare online MBA programs.",
            focus_keyword=idea.keywords[0] if idea.keywords else "",
        )


class FakeRewriteProvider(RewriteProvider):
    """Applies ``transform`` to each call and reports a fixed score."""

    def __init__(
        self,
        name: str = "fake-rewrite",
        chunked: bool = True,
        score: Optional[float] = 92.0,
        transform: Optional[Callable[[str], str]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.name = name
        self.chunked = chunked
        self.score = score
        self.transform = transform or (lambda text: text.replace(" lets ", " allows "))
        self.error = error
        self.calls: List[str] = []
        self.options: List[RewriteOptions] = []

    async def humanize(self, text: str, options: RewriteOptions) -> RewriteResult:
        self.calls.append(text)
        self.options.append(options)
        if self.error is not None:
            raise self.error
        return RewriteResult(text=self.transform(text), naturalness_score=self.score)


class FakeRepairProvider(RepairProvider):
    """Returns queued repairs, or the content with extra paragraphs appended."""

    name = "fake-repair"

    def __init__(self, responses: Optional[Sequence[str]] = None, extra_paragraphs: int = 3) -> None:
        self.responses = list(responses or [])
        self.extra_paragraphs = extra_paragraphs
        self.calls: List[List[str]] = []

    async def fix(self, content: str, issues: Sequence[ValidationIssue]) -> str:
        self.calls.append([i.type for i in issues])
        if self.responses:
            return self.responses.pop(0)
        extra = "\n".join(paragraph(i) for i in range(self.extra_paragraphs))
        return content + "\n" + extra


class FakeAnchorProvider(AnchorProvider):
    name = "fake-anchors"

    def __init__(self, proposals: Optional[Sequence[AnchorProposal]] = None, error: Optional[Exception] = None):
        self.proposals = list(proposals or [])
        self.error = error
        self.calls = 0

    async def propose(self, html, entries):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.proposals)


@pytest.fixture
def draft_provider():
    return FakeDraftProvider()


@pytest.fixture
def rewrite_provider():
    return FakeRewriteProvider()


# ---------------------------------------------------------------------------
# Pipeline factory
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    return PipelineSettings(call_timeout=5.0, max_concurrent=2)


@pytest.fixture
def fast_humanize_options():
    return HumanizeOptions(iteration_delay=0, chunk_delay=0)


@pytest.fixture
def make_pipeline(settings, catalog, monetization_engine, fast_humanize_options):
    """Factory for an ArticlePipeline wired entirely to in-memory fakes."""

    def _make(**overrides) -> ArticlePipeline:
        kwargs = dict(
            draft_provider=FakeDraftProvider(),
            rewrite_providers=[FakeRewriteProvider()],
            repair_provider=FakeRepairProvider(),
            catalog=catalog,
            rules_store=StaticRulesStore(RulesConfig.default()),
            contributors=StaticContributorAssigner.default(),
            pricing=StaticPricingLookup({"mba": "Average online MBA tuition is $38,000 (GetEducated ranking report)."}),
            monetization=monetization_engine,
            settings=settings,
            humanize_options=fast_humanize_options,
            link_seed=7,
        )
        kwargs.update(overrides)
        return ArticlePipeline(**kwargs)

    return _make


# ---------------------------------------------------------------------------
# HTTP mock fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_aiohttp_response():
    """Create a mock aiohttp response factory."""

    def _make(status=200, json_data=None, text=""):
        resp = AsyncMock()
        resp.status = status
        resp.json = AsyncMock(return_value=json_data if json_data is not None else {})
        resp.text = AsyncMock(return_value=text)
        resp.__aenter__ = AsyncMock(return_value=resp)
        resp.__aexit__ = AsyncMock(return_value=False)
        return resp

    return _make


@pytest.fixture
def mock_aiohttp_session(mock_aiohttp_response):
    """Create a mock aiohttp ClientSession."""
    session = MagicMock()
    session.closed = False
    session.post = MagicMock(return_value=mock_aiohttp_response(200, {"result": "ok"}))
    session.close = AsyncMock()
    return session
