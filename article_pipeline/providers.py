"""
Collaborator interfaces consumed by the pipeline, plus in-memory / file
implementations for local runs and tests.

Every provider method is a coroutine and raises ProviderError on failure.
Network-backed implementations live in ``anthropic_client`` and
``stealth_client``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from article_pipeline.circuit_breaker import ErrorCode
from article_pipeline.config import ConfigLoadError, RulesConfig, VoiceContext
from article_pipeline.html_utils import normalize_url
from article_pipeline.models import (
    ArticleDraft,
    CatalogEntry,
    ContentIdea,
    ContributorProfile,
    Institution,
    ValidationIssue,
)

logger = logging.getLogger("providers")


class ProviderError(Exception):
    """An external provider call failed.

    ``code`` is an ErrorCode when the provider knows the failure class;
    ``retryable=False`` stops RetryPolicy from trying again.
    """

    def __init__(
        self,
        message: str,
        provider: str = "",
        code: Optional[ErrorCode] = None,
        retryable: bool = True,
        status_code: int = 0,
    ) -> None:
        self.provider = provider
        self.code = code
        self.retryable = retryable
        self.status_code = status_code
        prefix = f"[{provider}] " if provider else ""
        super().__init__(f"{prefix}{message}")


# ---------------------------------------------------------------------------
# Value types exchanged with providers
# ---------------------------------------------------------------------------


@dataclass
class DraftContext:
    """Contextual strings handed to the draft provider."""
    content_type: str
    target_word_count: int
    pricing_facts: str = ""
    author_profile: str = ""
    rules_prompt: str = ""
    contributor_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RewriteOptions:
    """Options for one rewrite call; ``voice`` is used by whole-document providers."""
    tone: str = "College"
    mode: str = "High"
    business: bool = True
    detector: str = "gptzero"
    voice: Optional[VoiceContext] = None


@dataclass
class RewriteResult:
    text: str
    naturalness_score: Optional[float] = None


@dataclass
class AnchorProposal:
    url: str
    anchor_text: str


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


class DraftProvider:
    name = "draft"

    async def generate_draft(self, idea: ContentIdea, context: DraftContext) -> ArticleDraft:
        raise NotImplementedError


class RewriteProvider:
    """Rewrites text to read more naturally.

    ``chunked`` providers are fed ~200-word chunks and iterated on; the others
    get a single whole-document call with a VoiceContext.
    """
    name = "rewrite"
    chunked = False

    async def humanize(self, text: str, options: RewriteOptions) -> RewriteResult:
        raise NotImplementedError


class RepairProvider:
    name = "repair"

    async def fix(self, content: str, issues: Sequence[ValidationIssue]) -> str:
        raise NotImplementedError


class AnchorProvider:
    """Proposes anchor phrases already present in the content for each target."""
    name = "anchors"

    async def propose(self, html: str, entries: Sequence[CatalogEntry]) -> List[AnchorProposal]:
        raise NotImplementedError


class CatalogLookup:
    async def relevant(self, title: str, keywords: Sequence[str], limit: int = 20) -> List[CatalogEntry]:
        raise NotImplementedError

    async def contains(self, url: str) -> bool:
        raise NotImplementedError


class InstitutionLookup:
    async def known(self) -> List[Institution]:
        raise NotImplementedError


class RulesConfigStore:
    async def active(self) -> RulesConfig:
        raise NotImplementedError


@dataclass
class ContributorAssignment:
    """Chosen contributor with the scoring that picked them."""
    contributor: ContributorProfile
    score: int = 0
    reasons: List[str] = field(default_factory=list)
    alternatives: List[Dict[str, Any]] = field(default_factory=list)


class ContributorAssigner:
    async def assign(self, idea: ContentIdea, content_type: str) -> Optional[ContributorAssignment]:
        raise NotImplementedError


class PricingLookup:
    async def facts(self, idea: ContentIdea) -> str:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# In-memory / file implementations
# ---------------------------------------------------------------------------


_STOPWORDS = {
    "a", "an", "and", "are", "as", "at", "be", "best", "by", "for", "from",
    "how", "in", "is", "it", "of", "on", "or", "the", "to", "what", "with",
    "your", "you", "online", "guide",
}


def _terms(text: str) -> List[str]:
    return [w for w in text.lower().replace("-", " ").split() if len(w) > 3 and w not in _STOPWORDS]


class StaticCatalog(CatalogLookup):
    """Catalog backed by a list of entries.

    ``relevant`` prefilters by shared title/topic terms; the InternalLinker
    does the real ranking.
    """

    def __init__(self, entries: Iterable[CatalogEntry]) -> None:
        self._entries = list(entries)
        self._urls = {normalize_url(e.url) for e in self._entries}

    @classmethod
    def from_json(cls, path: Path) -> StaticCatalog:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        return cls(CatalogEntry.from_dict(item) for item in data)

    @property
    def entries(self) -> List[CatalogEntry]:
        return list(self._entries)

    async def relevant(self, title: str, keywords: Sequence[str], limit: int = 20) -> List[CatalogEntry]:
        wanted = set(_terms(title))
        for kw in keywords:
            wanted.update(_terms(kw))
        if not wanted:
            return []
        matches = []
        for entry in self._entries:
            haystack = " ".join([entry.title, " ".join(entry.topics), entry.category, entry.excerpt]).lower()
            hits = sum(1 for term in wanted if term in haystack)
            if hits:
                matches.append((hits, entry))
        matches.sort(key=lambda pair: pair[0], reverse=True)
        return [entry for _, entry in matches[:limit]]

    async def contains(self, url: str) -> bool:
        return normalize_url(url) in self._urls


class StaticInstitutionLookup(InstitutionLookup):
    def __init__(self, institutions: Iterable[Institution]) -> None:
        self._institutions = list(institutions)

    async def known(self) -> List[Institution]:
        return list(self._institutions)


class StaticRulesStore(RulesConfigStore):
    def __init__(self, rules: Optional[RulesConfig] = None) -> None:
        self._rules = rules or RulesConfig.default()

    async def active(self) -> RulesConfig:
        return self._rules


class JsonRulesConfigStore(RulesConfigStore):
    """Loads the active rules document from a JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    async def active(self) -> RulesConfig:
        return await asyncio.to_thread(self._read)

    def _read(self) -> RulesConfig:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError as exc:
            raise ConfigLoadError(f"Rules file not found: {self.path}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigLoadError(f"Rules file is not valid JSON: {self.path}: {exc}") from exc
        rules = RulesConfig.from_dict(data)
        logger.info("Loaded content rules version %d from %s", rules.version, self.path)
        return rules


class StaticPricingLookup(PricingLookup):
    def __init__(self, facts_by_keyword: Optional[Dict[str, str]] = None) -> None:
        self._facts = {k.lower(): v for k, v in (facts_by_keyword or {}).items()}

    async def facts(self, idea: ContentIdea) -> str:
        haystack = " ".join([idea.title, *idea.keywords]).lower()
        found = [fact for key, fact in self._facts.items() if key in haystack]
        return "\n".join(found)
