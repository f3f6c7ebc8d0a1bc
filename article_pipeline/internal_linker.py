"""
Internal Linker
===============

Ranks catalog articles against a new article and weaves links to the best
matches into its body, using anchor phrases that already appear in the text.

Scoring per catalog entry (jitter only applied to entries that already score):
    title term found in entry title    +20 per term
    term / keyword overlaps a topic    +15 per topic
    term found in entry category       +10
    keyword phrase found in excerpt     +5 per phrase
    tie-break jitter                   +0..1 (seedable)

Insertion rules:
    - one link per URL, URLs already linked are skipped
    - never inside an existing anchor, a heading or a tag
    - anchor text must be present verbatim (case-insensitive, whole words)
    - paragraphs without a link are preferred so links spread out

Usage:
    from article_pipeline.internal_linker import InternalLinker

    linker = InternalLinker(anchor_provider=claude_anchors, seed=42)
    result = await linker.link(draft.content, draft.title, idea.keywords, candidates)
    draft.content = result.content
"""

from __future__ import annotations

import asyncio
import html as html_lib
import logging
import random
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from article_pipeline.circuit_breaker import RetryPolicy
from article_pipeline.html_utils import linked_urls, normalize_url
from article_pipeline.models import CatalogEntry
from article_pipeline.providers import AnchorProvider, ProviderError

logger = logging.getLogger("internal_linker")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

WEIGHT_TITLE_TERM = 20
WEIGHT_TOPIC = 15
WEIGHT_CATEGORY = 10
WEIGHT_EXCERPT = 5
DEFAULT_MAX_LINKS = 5
MIN_CANDIDATES = 3

_STOPWORDS = {
    "a", "an", "and", "are", "as", "at", "be", "best", "by", "can", "for",
    "from", "how", "in", "is", "it", "of", "on", "or", "the", "to", "what",
    "when", "where", "which", "why", "with", "you", "your", "online",
}

_FORBIDDEN_RE = re.compile(
    r"<a\s[^>]*>[\s\S]*?</a>|<h([1-6])(?:\s[^>]*)?>[\s\S]*?</h\1>|<[^>]+>",
    re.IGNORECASE,
)
_PARAGRAPH_RE = re.compile(r"<(p|li)(?:\s[^>]*)?>[\s\S]*?</\1>", re.IGNORECASE)
_HAS_LINK_RE = re.compile(r"<a\s", re.IGNORECASE)


def _terms(text: str) -> List[str]:
    words = re.findall(r"[a-z0-9']+", (text or "").lower())
    return [w for w in words if len(w) > 3 and w not in _STOPWORDS]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class LinkSuggestion:
    entry: CatalogEntry
    score: float
    anchor_candidates: List[str] = field(default_factory=list)

    @property
    def url(self) -> str:
        return self.entry.url


@dataclass
class InsertedLink:
    url: str
    anchor_text: str
    score: float
    position: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "anchor_text": self.anchor_text,
            "score": round(self.score, 2),
            "position": self.position,
        }


@dataclass
class LinkingResult:
    content: str
    inserted: List[InsertedLink] = field(default_factory=list)
    suggestions: List[LinkSuggestion] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    anchor_source: str = "deterministic"

    @property
    def links_added(self) -> int:
        return len(self.inserted)


# ---------------------------------------------------------------------------
# Scoring & anchors
# ---------------------------------------------------------------------------


def score_entry(entry: CatalogEntry, title_terms: Sequence[str], keywords: Sequence[str]) -> float:
    """Relevance of *entry* to an article, without jitter."""
    entry_title = entry.title.lower()
    topics = [t.lower() for t in entry.topics]
    category = entry.category.lower()
    excerpt = entry.excerpt.lower()
    kw_phrases = [k.lower().strip() for k in keywords if k and k.strip()]
    all_terms = set(title_terms)
    for kw in kw_phrases:
        all_terms.update(_terms(kw))

    score = 0.0
    for term in set(title_terms):
        if term in entry_title:
            score += WEIGHT_TITLE_TERM
    for topic in topics:
        if any(term in topic for term in all_terms) or any(kw in topic or topic in kw for kw in kw_phrases):
            score += WEIGHT_TOPIC
    if category and any(term in category for term in all_terms):
        score += WEIGHT_CATEGORY
    for kw in kw_phrases:
        if kw in excerpt:
            score += WEIGHT_EXCERPT
    return score


def suggest_anchor_text(target_title: str, target_topics: Sequence[str], keywords: Sequence[str] = ()) -> List[str]:
    """Deterministic anchor candidates for a target, most specific first."""
    anchors: List[str] = []
    seen: Set[str] = set()

    def _add(text: str) -> None:
        text = text.strip()
        key = text.lower()
        if key and key not in seen and len(text) > 2:
            seen.add(key)
            anchors.append(text)

    for topic in target_topics:
        _add(topic)

    title_lower = target_title.lower()
    for kw in keywords:
        if kw and kw.lower() in title_lower:
            _add(kw)

    # Core phrase of the target title
    core = re.sub(
        r"^(how to|the ultimate|a complete|beginner'?s?|your|the|a|an|best|top \d+|\d+)\s+",
        "", title_lower, flags=re.IGNORECASE,
    ).strip()
    core = re.sub(
        r"\s+(guide|tutorial|tips|review|explained|101|for beginners|in \d{4})$",
        "", core, flags=re.IGNORECASE,
    ).strip()
    if core:
        _add(core)

    if len(target_title) <= 60:
        _add(target_title)

    words = target_title.split()
    if len(words) > 4:
        _add(" ".join(words[:4]))
    return anchors[:6]


# ---------------------------------------------------------------------------
# Insertion
# ---------------------------------------------------------------------------


def _forbidden_spans(html: str) -> List[Tuple[int, int]]:
    return [(m.start(), m.end()) for m in _FORBIDDEN_RE.finditer(html)]


def _inside(pos: int, end: int, spans: Sequence[Tuple[int, int]]) -> bool:
    return any(start < end and pos < stop for start, stop in spans)


def find_anchor_position(html: str, anchor: str) -> Optional[Tuple[int, int]]:
    """Locate *anchor* in linkable text, preferring paragraphs with no link.

    Returns the ``(start, end)`` span of the matched text, or None.
    """
    if not anchor.strip():
        return None
    pattern = re.compile(r"(?<![\w-])" + re.escape(anchor) + r"(?![\w-])", re.IGNORECASE)
    spans = _forbidden_spans(html)
    linked_paragraphs = [
        (m.start(), m.end()) for m in _PARAGRAPH_RE.finditer(html) if _HAS_LINK_RE.search(m.group(0))
    ]

    fallback: Optional[Tuple[int, int]] = None
    for m in pattern.finditer(html):
        if _inside(m.start(), m.end(), spans):
            continue
        if not _inside(m.start(), m.end(), linked_paragraphs):
            return m.start(), m.end()
        if fallback is None:
            fallback = (m.start(), m.end())
    return fallback


class InternalLinker:
    def __init__(
        self,
        anchor_provider: Optional[AnchorProvider] = None,
        max_links: int = DEFAULT_MAX_LINKS,
        seed: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.anchor_provider = anchor_provider
        self.max_links = max_links
        self._rng = random.Random(seed)
        self.retry_policy = retry_policy or RetryPolicy(max_retries=1, module_name="anchors")

    def rank(
        self,
        title: str,
        keywords: Sequence[str],
        catalog: Sequence[CatalogEntry],
        exclude_urls: Optional[Set[str]] = None,
        limit: Optional[int] = None,
    ) -> List[LinkSuggestion]:
        """Score *catalog* and return the top entries with a non-zero score."""
        excluded = {normalize_url(u) for u in (exclude_urls or set())}
        title_terms = _terms(title)
        scored: List[LinkSuggestion] = []
        for entry in catalog:
            if not entry.url or normalize_url(entry.url) in excluded:
                continue
            base = score_entry(entry, title_terms, keywords)
            if base <= 0:
                continue
            scored.append(LinkSuggestion(
                entry=entry,
                score=base + self._rng.uniform(0, 1),
                anchor_candidates=suggest_anchor_text(entry.title, entry.topics, keywords),
            ))
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[: (limit or self.max_links)]

    async def link(
        self,
        html: str,
        title: str,
        keywords: Sequence[str],
        catalog: Sequence[CatalogEntry],
        max_links: Optional[int] = None,
    ) -> LinkingResult:
        """Insert up to *max_links* internal links into *html*.

        Parameters
        ----------
        html : str
            Article body.
        title : str
            Article title (ranking input).
        keywords : sequence of str
            Focus keywords (ranking input and anchor candidates).
        catalog : sequence of CatalogEntry
            Candidate targets, usually from ``CatalogLookup.relevant``.
        max_links : int, optional
            Overrides the instance default.

        Returns
        -------
        LinkingResult
        """
        limit = max_links or self.max_links
        existing = linked_urls(html)
        suggestions = self.rank(title, keywords, catalog, exclude_urls=existing, limit=limit)
        result = LinkingResult(content=html, suggestions=suggestions)
        if not suggestions:
            logger.info("No relevant catalog entries for '%s'", title)
            return result

        proposed: Dict[str, List[str]] = {}
        if self.anchor_provider is not None:
            try:
                proposals = await self.retry_policy.execute(
                    self.anchor_provider.propose, html, [s.entry for s in suggestions],
                )
            except (ProviderError, asyncio.TimeoutError) as exc:
                logger.warning("Anchor provider failed, using deterministic anchors: %s", exc)
            else:
                result.anchor_source = self.anchor_provider.name
                for p in proposals:
                    proposed.setdefault(normalize_url(p.url), []).append(p.anchor_text)

        content = html
        linked = {normalize_url(u) for u in existing}
        for suggestion in suggestions:
            key = normalize_url(suggestion.url)
            if key in linked:
                continue
            candidates = proposed.get(key, []) + suggestion.anchor_candidates
            placed = False
            for anchor in candidates:
                span = find_anchor_position(content, anchor)
                if span is None:
                    continue
                start, end = span
                original = content[start:end]
                href = html_lib.escape(suggestion.url, quote=True)
                content = f'{content[:start]}<a href="{href}">{original}</a>{content[end:]}'
                linked.add(key)
                result.inserted.append(InsertedLink(
                    url=suggestion.url, anchor_text=original, score=suggestion.score, position=start,
                ))
                placed = True
                break
            if not placed:
                result.skipped.append(suggestion.url)
                logger.debug("No anchor found in content for %s", suggestion.url)

        result.content = content
        logger.info(
            "Inserted %d/%d internal links (anchors: %s)",
            len(result.inserted), len(suggestions), result.anchor_source,
        )
        return result
