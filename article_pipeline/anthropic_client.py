"""
Anthropic Providers
===================

Claude-backed implementations of the draft, rewrite, repair and anchor
provider interfaces.  All four share one ``ClaudeClient`` wrapper that owns
the SDK client, prompt caching for the system block and error mapping.

Model routing:
    draft / rewrite / repair   ARTICLE_PIPELINE_MODEL       (Sonnet)
    anchor proposals           ARTICLE_PIPELINE_FAST_MODEL  (Haiku)

Every SDK failure is re-raised as ``ProviderError`` carrying the ErrorCode
from ``classify_error`` so RetryPolicy can decide whether to try again.

Usage:
    from article_pipeline.anthropic_client import ClaudeClient, ClaudeDraftProvider

    client = ClaudeClient()
    drafts = ClaudeDraftProvider(client)
    draft = await drafts.generate_draft(idea, context)
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Dict, List, Optional, Sequence

import anthropic

from article_pipeline.circuit_breaker import ErrorCode, classify_error
from article_pipeline.config import MODEL_HAIKU, MODEL_SONNET, VoiceContext, get_settings
from article_pipeline.html_utils import html_to_text
from article_pipeline.models import ArticleDraft, CatalogEntry, ContentIdea, ValidationIssue
from article_pipeline.providers import (
    AnchorProposal,
    AnchorProvider,
    DraftContext,
    DraftProvider,
    ProviderError,
    RepairProvider,
    RewriteOptions,
    RewriteProvider,
    RewriteResult,
)

logger = logging.getLogger("anthropic_client")

MAX_TOKENS_DRAFT = 8192
MAX_TOKENS_REWRITE = 8192
MAX_TOKENS_REPAIR = 8192
MAX_TOKENS_ANCHORS = 1024

# System prompts above this size are sent with cache_control
CACHE_CHAR_THRESHOLD = 2048 * 4

BANNED_PHRASES = [
    "In today's digital age",
    "In conclusion",
    "It's important to note that",
    "Delve into",
    "Dive deep",
    "At the end of the day",
    "Game changer",
    "Revolutionary",
    "Cutting-edge",
]

STRUCTURES: Dict[str, str] = {
    "guide": (
        "- Introduction (why this matters)\n"
        "- Main sections with H2 headings\n"
        "- Step-by-step instructions or explanations\n"
        "- Common mistakes to avoid\n"
        "- Conclusion with key takeaways"
    ),
    "listicle": (
        "- Engaging introduction\n"
        "- Clear list items with H2 headings\n"
        "- Each item with 2-3 paragraphs of explanation\n"
        "- Conclusion that ties it together"
    ),
    "ranking": (
        "- Introduction explaining ranking criteria\n"
        "- Ranked list items (#1, #2, #3)\n"
        "- Each item with pros and cons\n"
        "- Clear explanation of why it is ranked that way\n"
        "- Conclusion with winner summary"
    ),
    "career_guide": (
        "- Introduction to the career\n"
        "- Job duties and work settings\n"
        "- Degree and licensure requirements\n"
        "- Salary and job outlook (cite BLS)\n"
        "- Conclusion with next steps"
    ),
    "faq": (
        "- Short introduction (what is this?)\n"
        "- Question-led H2 sections with direct answers\n"
        "- Real-world examples\n"
        "- Conclusion"
    ),
}

ISSUE_DESCRIPTIONS: Dict[str, str] = {
    "word_count_low": "Article is too short (needs to be 1500-2500 words)",
    "word_count_high": "Article is too long (needs to be 1500-2500 words)",
    "missing_internal_links": "Missing internal links (needs 3-5 links to related articles)",
    "missing_external_links": "Missing external citations (needs 2-4 authoritative sources)",
    "missing_faqs": "Missing FAQ section (needs at least 3 FAQ items)",
    "poor_readability": "Readability is too low (needs simpler language and shorter sentences)",
    "weak_headings": "Heading structure needs improvement (missing H2/H3 hierarchy)",
}


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json|JSON|html|HTML)?\s*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```\s*$", "", cleaned)
    return cleaned.strip()


def _parse_json(text: str, provider: str = "claude") -> Dict[str, Any]:
    """Parse a JSON object from a model reply, tolerating fences and prose."""
    cleaned = _strip_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    match = re.search(r"\{[\s\S]*\}", cleaned)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass
    raise ProviderError(
        f"Could not parse JSON from response: {cleaned[:200]}",
        provider=provider,
        code=ErrorCode.E3006,
    )


# ---------------------------------------------------------------------------
# Client wrapper
# ---------------------------------------------------------------------------


class ClaudeClient:
    """Thin wrapper around ``anthropic.AsyncAnthropic``.

    The SDK client is created lazily so a pipeline can be built without a
    key and only fail when a Claude provider is actually called.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        fast_model: Optional[str] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.anthropic_api_key
        self.model = model or settings.model_content or MODEL_SONNET
        self.fast_model = fast_model or settings.model_fast or MODEL_HAIKU
        self._client = client

    def _ensure_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise ProviderError(
                    "ANTHROPIC_API_KEY is not set",
                    provider="claude",
                    code=ErrorCode.E3007,
                    retryable=False,
                )
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    @staticmethod
    def _system_param(system: str) -> Any:
        if not system:
            return anthropic.NOT_GIVEN
        if len(system) > CACHE_CHAR_THRESHOLD:
            return [{"type": "text", "text": system, "cache_control": {"type": "ephemeral"}}]
        return system

    async def complete(
        self,
        prompt: str,
        system: str = "",
        model: Optional[str] = None,
        max_tokens: int = MAX_TOKENS_DRAFT,
        temperature: float = 0.7,
    ) -> str:
        """Send one user message and return the text of the reply.

        Raises
        ------
        ProviderError
            On any SDK error (code from ``classify_error``) or an empty reply
            (E3005).
        """
        client = self._ensure_client()
        model = model or self.model
        logger.debug(
            "API call: model=%s max_tokens=%d system_len=%d prompt_len=%d",
            model, max_tokens, len(system), len(prompt),
        )
        start = time.monotonic()
        try:
            response = await client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=self._system_param(system),
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            ctx = classify_error(exc, module="anthropic_client", operation="messages.create")
            logger.error("API call failed after %.1fs: %s", time.monotonic() - start, ctx)
            raise ProviderError(
                str(exc),
                provider="claude",
                code=ctx.code,
                retryable=ctx.retryable,
                status_code=getattr(exc, "status_code", 0) or 0,
            ) from exc

        text = response.content[0].text if response.content else ""
        logger.debug(
            "API response: %d chars in %.1fs (input_tokens=%s, output_tokens=%s)",
            len(text), time.monotonic() - start,
            getattr(response.usage, "input_tokens", "?"),
            getattr(response.usage, "output_tokens", "?"),
        )
        if not text.strip():
            raise ProviderError("Empty response", provider="claude", code=ErrorCode.E3005)
        return text


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------


def build_draft_prompt(idea: ContentIdea, context: DraftContext) -> str:
    structure = STRUCTURES.get(context.content_type, STRUCTURES["guide"])
    banned = "\n".join(f'- "{p}"' for p in BANNED_PHRASES)
    parts = [
        f"Write a comprehensive {context.content_type} article for online students.",
        "",
        f"TITLE: {idea.title}",
    ]
    if idea.description:
        parts.append(f"DESCRIPTION: {idea.description}")
    if idea.keywords:
        parts.append(f"TARGET KEYWORDS: {', '.join(idea.keywords)}")
    if idea.seed_topics:
        parts.append(f"TOPICS: {', '.join(idea.seed_topics)}")
    parts.append(f"TARGET LENGTH: about {context.target_word_count} words")
    if context.contributor_name:
        parts.append(f"AUTHOR: {context.contributor_name}")
    if context.author_profile:
        parts += ["", "AUTHOR VOICE:", context.author_profile]
    if context.pricing_facts:
        parts += [
            "",
            "VERIFIED COST DATA (use only these figures, never invent costs):",
            context.pricing_facts,
        ]
    if context.rules_prompt:
        parts.append(context.rules_prompt)
    parts += [
        "",
        "NEVER invent school names or placeholders such as \"University A\" or \"[School Name]\".",
        "DO NOT generate shortcodes; monetization blocks are added later.",
        "Include at least 3 FAQ items with complete answers and always finish with a conclusion.",
        "",
        "STRUCTURE:",
        structure,
        "",
        "BANNED PHRASES (never use these):",
        banned,
        "",
        "FORMAT YOUR RESPONSE AS JSON:",
        '{"title": "...", "excerpt": "...", "content": "<full article HTML>", '
        '"meta_title": "...", "meta_description": "...", "focus_keyword": "...", '
        '"faqs": [{"question": "...", "answer": "..."}]}',
    ]
    return "\n".join(parts)


def build_voice_instructions(voice: Optional[VoiceContext]) -> str:
    if voice is None:
        return "Write in a clear, professional voice that addresses the reader as 'you'."
    lines = [f"Tone: {voice.tone}", f"Formality: {voice.formality}"]
    if voice.author_profile:
        lines.append(f"Author voice: {voice.author_profile}")
    if voice.preferred_phrases:
        lines.append("Phrases to use where natural: " + ", ".join(voice.preferred_phrases))
    banned = list(voice.banned_phrases) or BANNED_PHRASES
    lines.append("Never use: " + ", ".join(banned))
    if voice.sentence_variety:
        lines.append("Sentence variety: " + ", ".join(f"{k}={v}" for k, v in voice.sentence_variety.items()))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class ClaudeDraftProvider(DraftProvider):
    name = "claude"

    def __init__(self, client: ClaudeClient, temperature: float = 0.7) -> None:
        self.client = client
        self.temperature = temperature

    async def generate_draft(self, idea: ContentIdea, context: DraftContext) -> ArticleDraft:
        system = "You are an expert education writer producing accurate, well-structured HTML articles."
        text = await self.client.complete(
            build_draft_prompt(idea, context),
            system=system,
            max_tokens=MAX_TOKENS_DRAFT,
            temperature=self.temperature,
        )
        data = _parse_json(text, provider=self.name)
        draft = ArticleDraft.from_dict(data)
        if not draft.title:
            draft.title = idea.title
        if not draft.content.strip():
            raise ProviderError("Draft response has no content", provider=self.name, code=ErrorCode.E3005)
        logger.info("Draft generated for '%s' (%d chars, %d FAQs)", idea.title, len(draft.content), len(draft.faqs))
        return draft


class ClaudeRewriteProvider(RewriteProvider):
    """Whole-document rewrite used when the chunked detector-tuned provider fails."""
    name = "claude"
    chunked = False

    def __init__(self, client: ClaudeClient, temperature: float = 0.9) -> None:
        self.client = client
        self.temperature = temperature

    async def humanize(self, text: str, options: RewriteOptions) -> RewriteResult:
        prompt = (
            "Rewrite the following HTML article so it reads like an experienced human writer wrote it.\n\n"
            f"{build_voice_instructions(options.voice)}\n\n"
            "Vary sentence length, use contractions naturally and keep every fact, figure and cost exactly.\n"
            "Keep all headings, links, lists, tables and shortcodes unchanged.\n"
            "Tokens like [[PROTECTED_0]] must stay exactly where they are.\n\n"
            f"ARTICLE:\n{text}\n\n"
            "OUTPUT ONLY THE REWRITTEN HTML."
        )
        result = await self.client.complete(prompt, max_tokens=MAX_TOKENS_REWRITE, temperature=self.temperature)
        return RewriteResult(text=_strip_fences(result))


class ClaudeRepairProvider(RepairProvider):
    name = "claude"

    def __init__(
        self,
        client: ClaudeClient,
        link_targets: Sequence[CatalogEntry] = (),
        temperature: float = 0.7,
    ) -> None:
        self.client = client
        self.link_targets = list(link_targets)
        self.temperature = temperature

    async def fix(self, content: str, issues: Sequence[ValidationIssue]) -> str:
        described = "\n- ".join(ISSUE_DESCRIPTIONS.get(i.type, i.message or i.type) for i in issues)
        links = ""
        if self.link_targets:
            rows = "\n".join(
                f"- {e.title} ({e.url}) - Topics: {', '.join(e.topics) or 'N/A'}" for e in self.link_targets
            )
            links = f"\nAVAILABLE ARTICLES FOR INTERNAL LINKING (use 3-5 where relevant):\n{rows}\n"
        prompt = (
            "You are a content editor fixing quality issues in this article.\n\n"
            f"CURRENT CONTENT:\n{content}\n\n"
            f"QUALITY ISSUES TO FIX:\n- {described}\n{links}\n"
            "Fix each issue, keep the tone and facts, keep all existing HTML formatting and links.\n"
            "OUTPUT ONLY THE CORRECTED HTML CONTENT."
        )
        result = await self.client.complete(prompt, max_tokens=MAX_TOKENS_REPAIR, temperature=self.temperature)
        return _strip_fences(result)


class ClaudeAnchorProvider(AnchorProvider):
    """Asks the fast model for anchor phrases copied verbatim from the article."""
    name = "claude"

    def __init__(self, client: ClaudeClient) -> None:
        self.client = client

    async def propose(self, html: str, entries: Sequence[CatalogEntry]) -> List[AnchorProposal]:
        if not entries:
            return []
        text = html_to_text(html)
        targets = "\n".join(f"- {e.url} :: {e.title}" for e in entries)
        prompt = (
            "Pick anchor text for internal links. For each target, choose a 2-6 word phrase that "
            "appears VERBATIM in the article text and describes the target.\n\n"
            f"TARGETS:\n{targets}\n\n"
            f"ARTICLE TEXT:\n{text[:12000]}\n\n"
            'Respond as JSON: {"links": [{"url": "...", "anchor_text": "..."}]}'
        )
        reply = await self.client.complete(
            prompt, model=self.client.fast_model, max_tokens=MAX_TOKENS_ANCHORS, temperature=0.2,
        )
        data = _parse_json(reply, provider=self.name)

        wanted = {e.url for e in entries}
        lowered = text.lower()
        proposals: List[AnchorProposal] = []
        for item in data.get("links") or []:
            url = str(item.get("url", ""))
            anchor = str(item.get("anchor_text", "")).strip()
            if url in wanted and anchor and anchor.lower() in lowered:
                proposals.append(AnchorProposal(url=url, anchor_text=anchor))
        logger.debug("Anchor proposals: %d/%d usable", len(proposals), len(entries))
        return proposals
