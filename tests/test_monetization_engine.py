"""Test monetization_engine -- Article Pipeline."""
from __future__ import annotations

import pytest

from article_pipeline.models import IssueType, Severity
from article_pipeline.monetization_engine import (
    MonetizationCategory,
    MonetizationContext,
    MonetizationEngine,
    MonetizationValidator,
    Program,
    SlotConfig,
    SlotResult,
    StaticMonetizationCatalog,
    build_cta_url,
    generate_picks_shortcode,
    generate_qdf_shortcode,
    insert_shortcode,
    slot_layout,
)

BUSINESS_MBA = MonetizationCategory(category_id=1, concentration_id=10, category="Business", concentration="MBA")


@pytest.fixture
def ranking_context():
    return MonetizationContext(
        category_id=1, concentration_id=10, degree_level_code=4,
        content_type="ranking", category=BUSINESS_MBA,
    )


# ===================================================================
# Category matching
# ===================================================================


class TestMatchTopic:

    @pytest.mark.asyncio
    async def test_concentration_in_title(self, monetization_engine):
        match = await monetization_engine.match_topic_to_category("Best Online MBA Programs", "Master")
        assert match.matched is True
        assert (match.category_id, match.concentration_id) == (1, 10)
        assert match.score == 100
        assert match.confidence == "high"
        assert match.degree_level_code == 4

    @pytest.mark.asyncio
    async def test_category_name_match_is_medium(self, monetization_engine):
        match = await monetization_engine.match_topic_to_category("Nursing careers for new graduates")
        assert match.category_id == 2
        assert match.score == 65
        assert match.confidence == "medium"
        assert match.degree_level_code is None

    @pytest.mark.asyncio
    async def test_no_match(self, monetization_engine):
        match = await monetization_engine.match_topic_to_category("Underwater basket weaving")
        assert match.matched is False
        assert match.error == "No matching category found"

    @pytest.mark.asyncio
    async def test_empty_topic(self, monetization_engine):
        match = await monetization_engine.match_topic_to_category("")
        assert match.error == "No topic provided"

    @pytest.mark.asyncio
    async def test_unknown_level_leaves_code_empty(self, monetization_engine):
        match = await monetization_engine.match_topic_to_category("Online MBA", "Postdoc")
        assert match.matched is True
        assert match.degree_level_code is None


# ===================================================================
# Program selection & slots
# ===================================================================


class TestGenerateMonetization:

    @pytest.mark.asyncio
    async def test_ranking_layout(self, monetization_engine, ranking_context):
        result = await monetization_engine.generate_monetization(ranking_context)

        assert result.success is True
        assert [s.name for s in result.slots] == ["after_intro", "mid_article", "near_conclusion"]
        assert [s.position for s in result.slots] == ["after_intro", "mid_content", "pre_conclusion"]
        assert [p.id for p in result.slots[0].programs] == ["p1", "p2", "p3", "p4", "p5"]
        assert [p.id for p in result.slots[1].programs] == ["p6", "p7", "p8"]
        assert [p.id for p in result.slots[2].programs] == ["p9"]
        assert result.total_programs_selected == 9
        assert result.sponsored_count == 9
        assert all(s.has_sponsored for s in result.slots)

    @pytest.mark.asyncio
    async def test_shortcode_carries_ids_and_cta(self, monetization_engine, ranking_context):
        result = await monetization_engine.generate_monetization(ranking_context)
        shortcode = result.slots[0].shortcode
        assert shortcode.startswith('[su_ge-picks category="1" concentration="10" level="4"')
        assert 'cta-url="/online-degrees/master/business/mba/"' in shortcode
        assert shortcode.endswith("[/su_ge-picks]")

    @pytest.mark.asyncio
    async def test_missing_ids(self, monetization_engine):
        result = await monetization_engine.generate_monetization(MonetizationContext(category_id=0, concentration_id=10))
        assert result.success is False
        assert result.error == "category_id and concentration_id are required"

    @pytest.mark.asyncio
    async def test_qdf_slot(self, monetization_engine, ranking_context):
        ranking_context.slots = [SlotConfig("after_intro", 0, "qdf")]
        result = await monetization_engine.generate_monetization(ranking_context)
        assert result.slots[0].shortcode == generate_qdf_shortcode()
        assert result.slots[0].programs == []

    @pytest.mark.asyncio
    async def test_broadens_to_category(self, monetization_engine):
        context = MonetizationContext(category_id=1, concentration_id=99, degree_level_code=4)
        programs = await monetization_engine.select_programs(context, 5)
        assert [p.id for p in programs] == ["p1", "p2", "p3", "p4", "p5"]

    @pytest.mark.asyncio
    async def test_at_most_two_per_school(self):
        programs = [
            Program(id=f"x{i}", program_name=f"Program {i}", school_id="same", school_name="Same School",
                    category_id=1, concentration_id=10, is_sponsored=True, sponsorship_tier=5)
            for i in range(4)
        ]
        engine = MonetizationEngine(StaticMonetizationCatalog([BUSINESS_MBA], programs))
        selected = await engine.select_programs(MonetizationContext(category_id=1, concentration_id=10), 5)
        assert len(selected) == 2

    @pytest.mark.asyncio
    async def test_sponsored_ranked_first(self):
        programs = [
            Program(id="a", program_name="Alpha", school_id="s1", school_name="S1", category_id=1,
                    concentration_id=10),
            Program(id="b", program_name="Beta", school_id="s2", school_name="S2", category_id=1,
                    concentration_id=10, is_sponsored=True, sponsorship_tier=1),
            Program(id="c", program_name="Gamma", school_id="s3", school_name="S3", category_id=1,
                    concentration_id=10, is_sponsored=True, sponsorship_tier=3),
        ]
        engine = MonetizationEngine(StaticMonetizationCatalog([BUSINESS_MBA], programs))
        selected = await engine.select_programs(MonetizationContext(category_id=1, concentration_id=10), 3)
        assert [p.id for p in selected] == ["c", "b", "a"]

        sponsored = await engine.select_programs(
            MonetizationContext(category_id=1, concentration_id=10), 3, sponsored_only=True,
        )
        assert [p.id for p in sponsored] == ["c", "b"]

    def test_layouts(self):
        assert [s.name for s in slot_layout("guide")] == ["after_intro", "near_conclusion"]
        assert slot_layout("career_guide") == slot_layout("guide")
        assert [s.type for s in slot_layout("faq")] == ["compact"]
        assert len(slot_layout("unknown")) == 2


# ===================================================================
# Shortcodes & placement
# ===================================================================


class TestShortcodes:

    def test_picks_without_level_or_url(self):
        assert generate_picks_shortcode(1, 10) == (
            '[su_ge-picks category="1" concentration="10" header="GetEducated\'s Picks" '
            'cta-button="View More Degrees"][/su_ge-picks]'
        )

    def test_cta_url(self):
        assert build_cta_url(4, BUSINESS_MBA) == "/online-degrees/master/business/mba/"
        assert build_cta_url(None, None) == "/online-degrees/"
        nursing = MonetizationCategory(category_id=2, concentration_id=20, category="Nursing", concentration="RN to BSN")
        assert build_cta_url(2, nursing) == "/online-degrees/bachelor/nursing/rn-to-bsn/"

    def test_after_intro(self):
        html = "<p>Intro.</p><h2>A</h2><p>Body.</p>"
        out = insert_shortcode(html, "[sc]", "after_intro")
        assert out.index("[sc]") > out.index("Intro.")
        assert out.index("[sc]") < out.index("<h2>A</h2>")
        assert '<p class="monetization-block">[sc]</p>' in out

    def test_mid_content_after_middle_heading(self):
        html = "<p>i</p><h2>A</h2><p>a</p><h2>B</h2><p>b</p><h2>C</h2><p>c</p>"
        out = insert_shortcode(html, "[sc]", "mid_content")
        assert out.index("<h2>B</h2>") < out.index("[sc]") < out.index("<p>b</p>")

    def test_pre_conclusion_before_last_heading(self):
        html = "<p>i</p><h2>A</h2><p>a</p><h2>Final</h2><p>f</p>"
        out = insert_shortcode(html, "[sc]", "pre_conclusion")
        assert out.index("[sc]") < out.index("<h2>Final</h2>")
        assert out.index("[sc]") > out.index("<p>a</p>")

    def test_pre_conclusion_without_headings(self):
        out = insert_shortcode("<p>one</p><p>two</p>", "[sc]", "pre_conclusion")
        assert out.endswith('<p class="monetization-block">[sc]</p>\n')

    def test_empty_inputs_unchanged(self):
        assert insert_shortcode("", "[sc]") == ""
        assert insert_shortcode("<p>x</p>", "") == "<p>x</p>"

    @pytest.mark.asyncio
    async def test_apply_places_every_slot(self, monetization_engine, ranking_context, article_html):
        result = await monetization_engine.generate_monetization(ranking_context)
        content = MonetizationEngine.apply(article_html, result)
        assert content.count('class="monetization-block"') == 3
        assert content.rindex("[su_ge-picks") < content.index("<h2>Final Thoughts</h2>")


# ===================================================================
# MonetizationValidator
# ===================================================================


class TestMonetizationValidator:

    def test_clean_content(self, article_html):
        assert MonetizationValidator().validate(article_html) == []

    def test_competitor_link(self):
        html = '<p>See <a href="https://www.usnews.com/best-colleges">rankings</a>.</p>'
        issues = MonetizationValidator().validate(html)
        assert issues[0].type == IssueType.BLOCKED_LINK.value
        assert issues[0].severity == Severity.CRITICAL.value
        assert issues[0].evidence == ["https://www.usnews.com/best-colleges"]

    def test_edu_links_except_allow_listed(self):
        html = '<p><a href="https://www.mit.edu/">MIT</a> and <a href="https://www.aacsb.edu/">AACSB</a></p>'
        issues = MonetizationValidator().validate(html)
        assert [i.type for i in issues] == [IssueType.EDU_LINK.value]
        assert issues[0].evidence == ["https://www.mit.edu/"]

    def test_slot_without_sponsored_programs(self):
        regular = Program(id="r", program_name="Regular", school_id="s", school_name="S",
                          category_id=1, concentration_id=10)
        slot = SlotResult(name="after_intro", type="table", position="after_intro", shortcode="[sc]",
                          programs=[regular])
        issues = MonetizationValidator().validate("<p>Body.</p>", [slot])
        assert [i.type for i in issues] == [IssueType.MISSING_SPONSORED.value]

    def test_cost_needs_attribution(self):
        issues = MonetizationValidator().validate("<p>Tuition averages $38,000 per year.</p>")
        assert [i.type for i in issues] == [IssueType.UNATTRIBUTED_COST.value]
        assert issues[0].evidence == ["$38,000"]

        attributed = "<p>Tuition averages $38,000 per year, per the GetEducated ranking report.</p>"
        assert MonetizationValidator().validate(attributed) == []
