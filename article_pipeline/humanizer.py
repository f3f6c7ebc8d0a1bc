"""
Humanizer
=========

Rewrites generated HTML so it reads less machine-written, without losing
headings or links.

Flow:
    1. Split the article on h2/h3 boundaries, then on block / sentence
       boundaries into ~150-200 word chunks (lossless: joining the chunks
       reproduces the input exactly).
    2. Mask headings and anchors in each chunk with ``[[PROTECTED_n]]`` tokens.
    3. Try each RewriteProvider in order:
         chunked providers   -- up to ``max_iterations`` rewrites per chunk,
                                keeping the best variant by naturalness score
                                and stopping once it reaches ``threshold``
         whole-document      -- one call with the author VoiceContext
       A provider that fails is tripped on a per-run circuit breaker and the
       next provider is used.  If all fail, HumanizationFailed is raised.
    4. Restore masked elements (missing or reordered tokens are re-inserted at
       their ordinal position) and assert heading ids.

Score polarity:
    StealthGPT's ``howLikelyToBeDetected`` behaves as a human-likeness score
    (higher is better).  ScoreConvention makes that explicit:
        HIGHER_IS_HUMAN       naturalness = raw          (default)
        HIGHER_IS_DETECTABLE  naturalness = 100 - raw

Usage:
    from article_pipeline.humanizer import Humanizer, HumanizeOptions

    humanizer = Humanizer([stealth_provider, claude_rewriter])
    result = await humanizer.humanize(draft.content, HumanizeOptions(voice=voice))
    draft.content = result.content
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from article_pipeline.circuit_breaker import (
    BreakerRegistry,
    ErrorCode,
    RetryPolicy,
    classify_error,
)
from article_pipeline.config import VoiceContext
from article_pipeline.html_utils import count_words, ensure_heading_ids, strip_tags, truncate
from article_pipeline.providers import ProviderError, RewriteOptions, RewriteProvider

logger = logging.getLogger("humanizer")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CHUNK_MIN_WORDS = 150
CHUNK_MAX_WORDS = 200
MIN_PROSE_CHARS = 50
DEFAULT_MAX_ITERATIONS = 3
DEFAULT_THRESHOLD = 85.0
ITERATION_DELAY = 0.3
CHUNK_DELAY = 0.5

_SECTION_SPLIT_RE = re.compile(r"(?=<h[23][\s>])", re.IGNORECASE)
_BLOCK_SPLIT_RE = re.compile(
    r"(?<=</p>)|(?<=</ul>)|(?<=</ol>)|(?<=</table>)|(?<=</blockquote>)|(?<=</div>)|(?<=</h[1-6]>)",
    re.IGNORECASE,
)
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])(?=\s)")
_PROTECTED_RE = re.compile(
    r"<h([1-6])(?:\s[^>]*)?>[\s\S]*?</h\1>|<a\s[^>]*>[\s\S]*?</a>",
    re.IGNORECASE,
)
_ANY_TOKEN_RE = re.compile(r"\[\[\s*PROTECTED_\d+\s*\]\]")


class ScoreConvention(str, Enum):
    HIGHER_IS_HUMAN = "higher_is_human"
    HIGHER_IS_DETECTABLE = "higher_is_detectable"

    def naturalness(self, raw: Optional[float]) -> Optional[float]:
        """Convert a provider score to naturalness (higher is more human)."""
        if raw is None:
            return None
        value = float(raw)
        if self is ScoreConvention.HIGHER_IS_DETECTABLE:
            value = 100.0 - value
        return max(0.0, min(100.0, value))


class HumanizationFailed(ProviderError):
    """Every rewrite provider in the chain failed."""

    def __init__(self, failures: Dict[str, str]) -> None:
        self.failures = dict(failures)
        detail = "; ".join(f"{name}: {err}" for name, err in failures.items()) or "no providers configured"
        super().__init__(f"All humanization providers failed ({detail})", provider="humanizer")


# ---------------------------------------------------------------------------
# Options & results
# ---------------------------------------------------------------------------


@dataclass
class HumanizeOptions:
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    threshold: float = DEFAULT_THRESHOLD
    score_convention: ScoreConvention = ScoreConvention.HIGHER_IS_HUMAN
    iteration_delay: float = ITERATION_DELAY
    chunk_delay: float = CHUNK_DELAY
    chunk_min_words: int = CHUNK_MIN_WORDS
    chunk_max_words: int = CHUNK_MAX_WORDS
    voice: Optional[VoiceContext] = None
    tone: str = "College"
    mode: str = "High"
    detector: str = "gptzero"

    def rewrite_options(self) -> RewriteOptions:
        return RewriteOptions(tone=self.tone, mode=self.mode, detector=self.detector, voice=self.voice)


@dataclass
class ChunkReport:
    index: int
    words: int
    iterations: int = 0
    best_score: Optional[float] = None
    passed_through: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "words": self.words,
            "iterations": self.iterations,
            "best_score": self.best_score,
            "passed_through": self.passed_through,
        }


@dataclass
class HumanizeResult:
    content: str
    provider: str
    chunks: List[ChunkReport] = field(default_factory=list)
    scores: List[float] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def fallback_used(self) -> bool:
        return bool(self.failures)

    @property
    def average_score(self) -> Optional[float]:
        if not self.scores:
            return None
        return round(sum(self.scores) / len(self.scores), 1)


# ---------------------------------------------------------------------------
# Chunking & masking
# ---------------------------------------------------------------------------


def _split_keep(pattern: "re.Pattern[str]", text: str) -> List[str]:
    return [piece for piece in pattern.split(text) if piece]


def split_into_chunks(
    html: str,
    min_words: int = CHUNK_MIN_WORDS,
    max_words: int = CHUNK_MAX_WORDS,
) -> List[str]:
    """Split *html* into rewrite-sized chunks; ``"".join(chunks) == html``."""
    if not html:
        return []
    chunks: List[str] = []
    for section in _split_keep(_SECTION_SPLIT_RE, html):
        if count_words(section) <= max_words:
            chunks.append(section)
            continue

        section_start = len(chunks)
        units: List[str] = []
        for block in _split_keep(_BLOCK_SPLIT_RE, section):
            if count_words(block) > max_words:
                units.extend(_split_keep(_SENTENCE_SPLIT_RE, block))
            else:
                units.append(block)

        current: List[str] = []
        current_words = 0
        for unit in units:
            unit_words = count_words(unit)
            if current and current_words >= min_words and current_words + unit_words > max_words:
                chunks.append("".join(current))
                current, current_words = [], 0
            current.append(unit)
            current_words += unit_words
        if current:
            # A short tail folds into the previous chunk from this section
            if current_words < min_words // 3 and len(chunks) > section_start:
                chunks[-1] += "".join(current)
            else:
                chunks.append("".join(current))
    return chunks


def _token(i: int) -> str:
    return f"[[PROTECTED_{i}]]"


def mask_protected(html: str) -> Tuple[str, List[str]]:
    """Replace headings and anchors with ordinal tokens."""
    originals: List[str] = []

    def _mask(m: "re.Match[str]") -> str:
        originals.append(m.group(0))
        return _token(len(originals) - 1)

    return _PROTECTED_RE.sub(_mask, html), originals


def restore_protected(text: str, originals: Sequence[str]) -> str:
    """Put masked elements back in order.

    Tokens found in order are replaced in place.  A token that is missing, or
    that appears before an earlier token, is re-inserted right after the
    previous restored element.  Stray or duplicated tokens are dropped.
    """
    if not originals:
        return _ANY_TOKEN_RE.sub("", text)
    parts: List[str] = []
    cursor = 0
    for i, original in enumerate(originals):
        m = re.compile(rf"\[\[\s*PROTECTED_{i}\s*\]\]").search(text, cursor)
        if m is None:
            parts.append(original)
            continue
        parts.append(_ANY_TOKEN_RE.sub("", text[cursor:m.start()]))
        parts.append(original)
        cursor = m.end()
    parts.append(_ANY_TOKEN_RE.sub("", text[cursor:]))
    return "".join(parts)


def prose_chars(masked: str) -> int:
    return len(strip_tags(_ANY_TOKEN_RE.sub(" ", masked)))


# ---------------------------------------------------------------------------
# Humanizer
# ---------------------------------------------------------------------------


class Humanizer:
    """Provider chain with per-run circuit breaking."""

    def __init__(
        self,
        providers: Sequence[RewriteProvider],
        options: Optional[HumanizeOptions] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.providers = list(providers)
        self.options = options or HumanizeOptions()
        self.retry_policy = retry_policy or RetryPolicy(max_retries=1, base_delay=1.0, module_name="humanizer")
        self._sleep = sleep

    async def humanize(
        self,
        html: str,
        options: Optional[HumanizeOptions] = None,
        registry: Optional[BreakerRegistry] = None,
    ) -> HumanizeResult:
        """Rewrite *html* with the first provider that succeeds.

        Parameters
        ----------
        html : str
            Article body.
        options : HumanizeOptions, optional
            Overrides the instance defaults for this call.
        registry : BreakerRegistry, optional
            Breakers for this run; a fresh registry is used when omitted.

        Returns
        -------
        HumanizeResult

        Raises
        ------
        HumanizationFailed
            When every provider failed or was skipped by an open breaker.
        """
        opts = options or self.options
        registry = registry or BreakerRegistry()
        failures: Dict[str, str] = {}

        for provider in self.providers:
            breaker = registry.get_breaker(f"rewrite:{provider.name}", failure_threshold=1)
            if not breaker.can_execute():
                logger.info("Skipping rewrite provider %s (breaker open)", provider.name)
                failures.setdefault(provider.name, "circuit open")
                continue
            try:
                if provider.chunked:
                    content, reports = await self._humanize_chunked(provider, html, opts)
                else:
                    content, reports = await self._humanize_whole(provider, html, opts)
            except (ProviderError, asyncio.TimeoutError) as exc:
                breaker.record_failure(classify_error(exc, module="humanizer", operation=provider.name))
                failures[provider.name] = str(exc)
                logger.warning(
                    "Rewrite provider %s failed, trying next: %s", provider.name, truncate(str(exc), 200),
                )
                continue

            breaker.record_success()
            content = ensure_heading_ids(content)
            scores = [r.best_score for r in reports if r.best_score is not None]
            logger.info(
                "Humanized with %s: %d chunk(s), avg score %s",
                provider.name, len(reports),
                f"{sum(scores) / len(scores):.1f}" if scores else "n/a",
            )
            return HumanizeResult(
                content=content, provider=provider.name, chunks=reports,
                scores=scores, failures=failures,
            )

        raise HumanizationFailed(failures)

    async def _humanize_chunked(
        self,
        provider: RewriteProvider,
        html: str,
        opts: HumanizeOptions,
    ) -> Tuple[str, List[ChunkReport]]:
        chunks = split_into_chunks(html, opts.chunk_min_words, opts.chunk_max_words)
        rewrite_opts = opts.rewrite_options()
        out: List[str] = []
        reports: List[ChunkReport] = []

        for index, chunk in enumerate(chunks):
            masked, originals = mask_protected(chunk)
            report = ChunkReport(index=index, words=count_words(chunk))
            if prose_chars(masked) < MIN_PROSE_CHARS:
                report.passed_through = True
                reports.append(report)
                out.append(chunk)
                continue

            if index > 0 and opts.chunk_delay:
                await self._sleep(opts.chunk_delay)

            best_text: Optional[str] = None
            best_score: Optional[float] = None
            current = masked
            for iteration in range(opts.max_iterations):
                if iteration > 0 and opts.iteration_delay:
                    await self._sleep(opts.iteration_delay)
                result = await self.retry_policy.execute(provider.humanize, current, rewrite_opts)
                if not result.text or not result.text.strip():
                    raise ProviderError(
                        "Rewrite returned empty text", provider=provider.name,
                        code=ErrorCode.E3005,
                    )
                report.iterations += 1
                score = opts.score_convention.naturalness(result.naturalness_score)
                if best_text is None or (score is not None and (best_score is None or score > best_score)):
                    best_text, best_score = result.text, score
                if best_score is not None and best_score >= opts.threshold:
                    break
                current = result.text

            report.best_score = best_score
            reports.append(report)
            out.append(restore_protected(best_text or masked, originals))

        return "".join(out), reports

    async def _humanize_whole(
        self,
        provider: RewriteProvider,
        html: str,
        opts: HumanizeOptions,
    ) -> Tuple[str, List[ChunkReport]]:
        masked, originals = mask_protected(html)
        result = await self.retry_policy.execute(provider.humanize, masked, opts.rewrite_options())
        if not result.text or not result.text.strip():
            raise ProviderError(
                "Rewrite returned empty text", provider=provider.name,
                code=ErrorCode.E3005,
            )
        report = ChunkReport(
            index=0,
            words=count_words(html),
            iterations=1,
            best_score=opts.score_convention.naturalness(result.naturalness_score),
        )
        return restore_protected(result.text, originals), [report]
