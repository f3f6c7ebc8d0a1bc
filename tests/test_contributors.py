"""Test contributors -- Article Pipeline."""
from __future__ import annotations

import json

import pytest

from article_pipeline.contributors import DEFAULT_CONTRIBUTORS, StaticContributorAssigner, score_contributor
from article_pipeline.models import ContentIdea


@pytest.fixture
def nursing_idea():
    return ContentIdea(title="Nursing Licensure Requirements by State", seed_topics=("nursing",))


class TestScoreContributor:

    def test_ranking_specialist(self, mba_idea):
        tony = DEFAULT_CONTRIBUTORS[0]
        score, reasons = score_contributor(tony, mba_idea, "ranking")
        assert score == 120
        assert reasons == [
            "Expertise match: online degrees",
            "Content type match: ranking",
            "Title specialty keywords: best",
        ]

    def test_no_overlap(self, mba_idea):
        charity = DEFAULT_CONTRIBUTORS[3]
        assert score_contributor(charity, mba_idea, "ranking") == (0, [])


class TestStaticContributorAssigner:

    @pytest.mark.asyncio
    async def test_assigns_best_match(self, mba_idea):
        assignment = await StaticContributorAssigner.default().assign(mba_idea, "ranking")
        assert assignment.contributor.name == "Tony Huffman"
        assert assignment.score == 120
        assert [a["name"] for a in assignment.alternatives] == ["Kayleigh Gilbert", "Sara", "Charity"]

    @pytest.mark.asyncio
    async def test_nursing_goes_to_specialist(self, nursing_idea):
        assignment = await StaticContributorAssigner.default().assign(nursing_idea, "career_guide")
        assert assignment.contributor.name == "Kayleigh Gilbert"
        assert assignment.score == 120

    @pytest.mark.asyncio
    async def test_ties_keep_roster_order(self):
        idea = ContentIdea(title="Miscellaneous notes")
        assignment = await StaticContributorAssigner.default().assign(idea, "review")
        assert assignment.contributor.name == "Tony Huffman"
        assert assignment.score == 0
        assert assignment.reasons == ["Selected as default - no strong topic matches found"]

    @pytest.mark.asyncio
    async def test_only_approved_authors(self, mba_idea):
        assignment = await StaticContributorAssigner.default(approved_authors=["Sara"]).assign(mba_idea, "ranking")
        assert assignment.contributor.name == "Sara"

    @pytest.mark.asyncio
    async def test_no_approved_contributors(self, mba_idea):
        assert await StaticContributorAssigner.default(approved_authors=[]).assign(mba_idea, "ranking") is None

    @pytest.mark.asyncio
    async def test_from_json(self, tmp_path, nursing_idea):
        path = tmp_path / "contributors.json"
        path.write_text(json.dumps([
            {"id": "dana", "name": "Dana", "expertise_areas": ["nursing"], "content_types": ["guide"], "extra": 1},
        ]))
        assigner = StaticContributorAssigner.from_json(path)
        assignment = await assigner.assign(nursing_idea, "guide")
        assert assignment.contributor.id == "dana"
        assert assignment.score == 80
