"""
Contributor Assignment
======================

Picks the byline author for an idea from the approved contributors.

Scoring per contributor:
    expertise area found in seed topics or title   +50
    content type listed for the contributor        +30
    title contains one of the author's specialties +40

Highest score wins; ties keep roster order.  Contributors whose name is not
on the approved-author list are never considered.

Usage:
    from article_pipeline.contributors import StaticContributorAssigner

    assigner = StaticContributorAssigner.default()
    assignment = await assigner.assign(idea, "ranking")
    print(assignment.contributor.name, assignment.score, assignment.reasons)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from article_pipeline.models import ContentIdea, ContributorProfile
from article_pipeline.providers import ContributorAssigner, ContributorAssignment

logger = logging.getLogger("contributors")

WEIGHT_EXPERTISE = 50
WEIGHT_CONTENT_TYPE = 30
WEIGHT_SPECIALTY = 40

# Title phrases that mark an author's specialty
SPECIALTY_KEYWORDS: Dict[str, List[str]] = {
    "Tony Huffman": ["ranking", "best", "top", "affordable", "cheapest", "cost"],
    "Kayleigh Gilbert": ["lcsw", "nursing", "healthcare", "social work", "hospitality", "licensure"],
    "Sara": ["technical", "online college", "what degree", "how to", "guide to", "beginner"],
    "Charity": ["teaching", "teacher", "education degree", "mat ", "med ", "certification"],
}

DEFAULT_CONTRIBUTORS: List[ContributorProfile] = [
    ContributorProfile(
        id="tony-huffman",
        name="Tony Huffman",
        expertise_areas=["rankings", "cost", "affordability", "online degrees"],
        content_types=["ranking", "listicle"],
        writing_style_profile="Authoritative and data-driven. Leads with numbers, compares programs directly.",
    ),
    ContributorProfile(
        id="kayleigh-gilbert",
        name="Kayleigh Gilbert",
        expertise_areas=["nursing", "healthcare", "social work", "licensure"],
        content_types=["career_guide", "guide"],
        writing_style_profile="Warm and practical. Explains licensure steps and day-to-day realities of the job.",
    ),
    ContributorProfile(
        id="sara",
        name="Sara",
        expertise_areas=["technology", "online learning", "degree basics"],
        content_types=["guide", "faq"],
        writing_style_profile="Plain-spoken and encouraging. Short paragraphs, defines jargon for first-time students.",
    ),
    ContributorProfile(
        id="charity",
        name="Charity",
        expertise_areas=["teaching", "education", "certification", "career change"],
        content_types=["career_guide", "guide"],
        writing_style_profile="Conversational, draws on classroom experience, focuses on certification pathways.",
    ),
]


def score_contributor(
    contributor: ContributorProfile,
    idea: ContentIdea,
    content_type: str,
) -> Tuple[int, List[str]]:
    """Return ``(score, reasons)`` for one contributor against one idea."""
    title = (idea.title or "").lower()
    topics = [t.lower() for t in idea.seed_topics]
    score = 0
    reasons: List[str] = []

    expertise = [
        area for area in contributor.expertise_areas
        if area.lower() in title or any(area.lower() in topic for topic in topics)
    ]
    if expertise:
        score += WEIGHT_EXPERTISE
        reasons.append(f"Expertise match: {', '.join(expertise)}")

    if content_type in contributor.content_types:
        score += WEIGHT_CONTENT_TYPE
        reasons.append(f"Content type match: {content_type}")

    specialties = [kw.strip() for kw in SPECIALTY_KEYWORDS.get(contributor.name, []) if kw in title]
    if specialties:
        score += WEIGHT_SPECIALTY
        reasons.append(f"Title specialty keywords: {', '.join(specialties)}")

    return score, reasons


class StaticContributorAssigner(ContributorAssigner):
    """Assigns from an in-memory roster filtered to the approved authors."""

    def __init__(
        self,
        contributors: Iterable[ContributorProfile],
        approved_authors: Optional[Sequence[str]] = None,
    ) -> None:
        self._contributors = list(contributors)
        self.approved_authors = list(approved_authors) if approved_authors is not None else None

    @classmethod
    def default(cls, approved_authors: Optional[Sequence[str]] = None) -> StaticContributorAssigner:
        return cls(DEFAULT_CONTRIBUTORS, approved_authors)

    @classmethod
    def from_json(cls, path: Path, approved_authors: Optional[Sequence[str]] = None) -> StaticContributorAssigner:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        return cls((ContributorProfile.from_dict(item) for item in data), approved_authors)

    @property
    def contributors(self) -> List[ContributorProfile]:
        return list(self._contributors)

    def eligible(self) -> List[ContributorProfile]:
        if self.approved_authors is None:
            return list(self._contributors)
        return [c for c in self._contributors if c.name in self.approved_authors]

    async def assign(self, idea: ContentIdea, content_type: str) -> Optional[ContributorAssignment]:
        """Score every eligible contributor and return the best match.

        Returns None when no approved contributor is on the roster.
        """
        candidates = self.eligible()
        if not candidates:
            logger.warning("No approved contributors available for '%s'", idea.title)
            return None

        scored = []
        for contributor in candidates:
            score, reasons = score_contributor(contributor, idea, content_type)
            scored.append((score, reasons, contributor))
        # sorted() is stable so ties keep roster order
        scored = sorted(scored, key=lambda item: item[0], reverse=True)

        best_score, best_reasons, best = scored[0]
        if not best_reasons:
            best_reasons = ["Selected as default - no strong topic matches found"]
        alternatives = [
            {
                "name": c.name,
                "score": s,
                "reason": "; ".join(r) or "No specific matches",
            }
            for s, r, c in scored[1:]
        ]
        logger.info("Assigned contributor %s (score %d) to '%s'", best.name, best_score, idea.title)
        return ContributorAssignment(
            contributor=best,
            score=best_score,
            reasons=best_reasons,
            alternatives=alternatives,
        )
