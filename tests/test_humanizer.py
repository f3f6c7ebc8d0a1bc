"""Test humanizer -- Article Pipeline."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from article_pipeline.circuit_breaker import BreakerRegistry, ErrorCode, RetryPolicy
from article_pipeline.config import RulesConfig
from article_pipeline.html_utils import count_headings, count_words
from article_pipeline.humanizer import (
    HumanizationFailed,
    Humanizer,
    HumanizeOptions,
    ScoreConvention,
    mask_protected,
    prose_chars,
    restore_protected,
    split_into_chunks,
)
from article_pipeline.providers import ProviderError

from conftest import FakeRewriteProvider

NO_RETRY = RetryPolicy(max_retries=0, timeout=None)


def _fatal(name: str) -> ProviderError:
    return ProviderError("quota exhausted", provider=name, code=ErrorCode.E3007, retryable=False)


# ===================================================================
# Chunking & masking
# ===================================================================


class TestChunking:

    def test_chunks_join_back_exactly(self, article_html):
        chunks = split_into_chunks(article_html)
        assert len(chunks) > 1
        assert "".join(chunks) == article_html

    def test_chunks_stay_near_target_size(self, article_html):
        for chunk in split_into_chunks(article_html):
            assert count_words(chunk) <= 300

    def test_small_section_is_one_chunk(self):
        html = "<h2>Overview</h2><p>Short section.</p>"
        assert split_into_chunks(html) == [html]

    def test_empty(self):
        assert split_into_chunks("") == []


class TestMasking:

    HTML = '<h2>Costs</h2><p>See <a href="/tuition/">tuition data</a> for details.</p>'

    def test_mask_and_restore(self):
        masked, originals = mask_protected(self.HTML)
        assert "[[PROTECTED_0]]" in masked
        assert "[[PROTECTED_1]]" in masked
        assert originals == ["<h2>Costs</h2>", '<a href="/tuition/">tuition data</a>']
        assert restore_protected(masked, originals) == self.HTML

    def test_dropped_token_is_reinserted(self):
        _, originals = mask_protected(self.HTML)
        rewritten = "[[PROTECTED_0]]<p>Check the numbers before you apply.</p>"
        restored = restore_protected(rewritten, originals)
        assert restored.index("<h2>Costs</h2>") < restored.index('<a href="/tuition/">')

    def test_duplicate_and_stray_tokens_dropped(self):
        _, originals = mask_protected(self.HTML)
        rewritten = "[[PROTECTED_0]] a [[PROTECTED_1]] b [[PROTECTED_1]] [[PROTECTED_9]]"
        restored = restore_protected(rewritten, originals)
        assert "PROTECTED" not in restored
        assert restored.count("tuition data") == 1

    def test_prose_chars_ignores_tokens(self):
        masked, _ = mask_protected("<h2>Heading</h2><p>Hi.</p>")
        assert prose_chars(masked) == 3


class TestScoreConvention:

    def test_higher_is_human(self):
        assert ScoreConvention.HIGHER_IS_HUMAN.naturalness(72) == 72.0

    def test_higher_is_detectable(self):
        assert ScoreConvention.HIGHER_IS_DETECTABLE.naturalness(30) == 70.0

    def test_clamped_and_none(self):
        assert ScoreConvention.HIGHER_IS_HUMAN.naturalness(140) == 100.0
        assert ScoreConvention.HIGHER_IS_DETECTABLE.naturalness(None) is None


# ===================================================================
# Humanizer
# ===================================================================


class TestHumanizer:

    @pytest.mark.asyncio
    async def test_rewrites_and_preserves_structure(self, article_html, fast_humanize_options):
        provider = FakeRewriteProvider()
        result = await Humanizer([provider], fast_humanize_options, NO_RETRY).humanize(article_html)

        assert result.provider == "fake-rewrite"
        assert result.fallback_used is False
        assert " lets " not in result.content
        assert " allows " in result.content
        assert count_headings(result.content, 2) == count_headings(article_html, 2)
        assert '<h2 id="career-outcomes">Career Outcomes</h2>' in result.content
        assert 'href="https://www.bls.gov/ooh/management/"' in result.content
        assert result.average_score == 92.0
        assert all("<a " not in call and "<h2" not in call for call in provider.calls)

    @pytest.mark.asyncio
    async def test_low_scores_use_every_iteration(self, fast_humanize_options):
        html = "<h2>Overview</h2><p>" + " ".join(["An online MBA lets you keep working."] * 5) + "</p>"
        provider = FakeRewriteProvider(score=50.0)
        result = await Humanizer([provider], fast_humanize_options, NO_RETRY).humanize(html)
        assert result.chunks[0].iterations == 3
        assert len(provider.calls) == 3

    @pytest.mark.asyncio
    async def test_detectable_scores_are_inverted(self, fast_humanize_options):
        html = "<p>" + " ".join(["An online MBA lets you keep working."] * 5) + "</p>"
        opts = HumanizeOptions(iteration_delay=0, chunk_delay=0, score_convention=ScoreConvention.HIGHER_IS_DETECTABLE)
        provider = FakeRewriteProvider(score=10.0)
        result = await Humanizer([provider], opts, NO_RETRY).humanize(html)
        assert result.scores == [90.0]
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_next_provider(self, article_html, fast_humanize_options):
        first = FakeRewriteProvider(name="stealthgpt", error=_fatal("stealthgpt"))
        second = FakeRewriteProvider(name="claude-rewrite", chunked=False, score=None)
        result = await Humanizer([first, second], fast_humanize_options, NO_RETRY).humanize(article_html)

        assert result.provider == "claude-rewrite"
        assert result.fallback_used is True
        assert "stealthgpt" in result.failures
        assert len(second.calls) == 1
        assert count_headings(result.content, 2) == 5

    @pytest.mark.asyncio
    async def test_empty_rewrite_counts_as_failure(self, article_html, fast_humanize_options):
        empty = FakeRewriteProvider(name="empty", transform=lambda text: "  ")
        backup = FakeRewriteProvider(name="backup")
        result = await Humanizer([empty, backup], fast_humanize_options, NO_RETRY).humanize(article_html)
        assert result.provider == "backup"
        assert "empty" in result.failures

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, article_html, fast_humanize_options):
        providers = [
            FakeRewriteProvider(name="a", error=_fatal("a")),
            FakeRewriteProvider(name="b", chunked=False, error=_fatal("b")),
        ]
        with pytest.raises(HumanizationFailed) as exc_info:
            await Humanizer(providers, fast_humanize_options, NO_RETRY).humanize(article_html)
        assert set(exc_info.value.failures) == {"a", "b"}

    @pytest.mark.asyncio
    async def test_no_providers(self, article_html):
        with pytest.raises(HumanizationFailed):
            await Humanizer([]).humanize(article_html)

    @pytest.mark.asyncio
    async def test_breaker_skips_failed_provider_within_run(self, article_html, fast_humanize_options):
        failing = FakeRewriteProvider(name="flaky", error=_fatal("flaky"))
        backup = FakeRewriteProvider(name="backup")
        humanizer = Humanizer([failing, backup], fast_humanize_options, NO_RETRY)
        registry = BreakerRegistry()

        await humanizer.humanize(article_html, registry=registry)
        calls_after_first = len(failing.calls)
        second = await humanizer.humanize(article_html, registry=registry)

        assert len(failing.calls) == calls_after_first
        assert second.failures == {"flaky": "circuit open"}
        assert registry.get_breaker("rewrite:flaky").is_open
        assert not registry.get_breaker("rewrite:backup").is_open

    @pytest.mark.asyncio
    async def test_whole_document_provider_receives_voice(self, article_html):
        voice = RulesConfig.default().voice_context()
        provider = FakeRewriteProvider(name="claude-rewrite", chunked=False)
        opts = HumanizeOptions(voice=voice, iteration_delay=0, chunk_delay=0)
        await Humanizer([provider], opts, NO_RETRY).humanize(article_html)
        assert provider.options[0].voice is voice

    @pytest.mark.asyncio
    async def test_chunk_delay_uses_injected_sleep(self, article_html):
        sleep = AsyncMock()
        opts = HumanizeOptions(iteration_delay=0, chunk_delay=0.5)
        await Humanizer([FakeRewriteProvider()], opts, NO_RETRY, sleep=sleep).humanize(article_html)
        assert sleep.await_count >= 1
        sleep.assert_awaited_with(0.5)
