"""Test anthropic_client -- Article Pipeline (SDK mocked)."""
from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from article_pipeline.anthropic_client import (
    CACHE_CHAR_THRESHOLD,
    ClaudeAnchorProvider,
    ClaudeClient,
    ClaudeDraftProvider,
    ClaudeRepairProvider,
    ClaudeRewriteProvider,
    _parse_json,
    build_draft_prompt,
)
from article_pipeline.circuit_breaker import ErrorCode
from article_pipeline.config import RulesConfig
from article_pipeline.models import ValidationIssue
from article_pipeline.providers import DraftContext, ProviderError, RewriteOptions

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def sdk_response(text: str):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)] if text is not None else [],
        usage=SimpleNamespace(input_tokens=100, output_tokens=50),
    )


@pytest.fixture
def sdk():
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=sdk_response("Hello there."))
    return client


@pytest.fixture
def claude(sdk):
    return ClaudeClient(api_key="sk-test", model="content-model", fast_model="fast-model", client=sdk)


# ===================================================================
# ClaudeClient
# ===================================================================


class TestClaudeClient:

    @pytest.mark.asyncio
    async def test_complete_returns_text(self, claude, sdk):
        assert await claude.complete("Say hi", system="Be brief.", temperature=0.2) == "Hello there."
        kwargs = sdk.messages.create.await_args.kwargs
        assert kwargs["model"] == "content-model"
        assert kwargs["system"] == "Be brief."
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"] == [{"role": "user", "content": "Say hi"}]

    @pytest.mark.asyncio
    async def test_long_system_prompt_is_cached(self, claude, sdk):
        await claude.complete("Go", system="x" * (CACHE_CHAR_THRESHOLD + 1))
        system = sdk.messages.create.await_args.kwargs["system"]
        assert system[0]["cache_control"] == {"type": "ephemeral"}

    @pytest.mark.asyncio
    async def test_missing_key(self):
        client = ClaudeClient(api_key="")
        with pytest.raises(ProviderError) as exc_info:
            await client.complete("hi")
        assert exc_info.value.code == ErrorCode.E3007
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_empty_reply(self, claude, sdk):
        sdk.messages.create.return_value = sdk_response("   ")
        with pytest.raises(ProviderError) as exc_info:
            await claude.complete("hi")
        assert exc_info.value.code == ErrorCode.E3005

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self, claude, sdk):
        sdk.messages.create.side_effect = anthropic.APIConnectionError(request=REQUEST)
        with pytest.raises(ProviderError) as exc_info:
            await claude.complete("hi")
        assert exc_info.value.code == ErrorCode.E1002
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_rate_limit(self, claude, sdk):
        sdk.messages.create.side_effect = anthropic.RateLimitError(
            "rate limited", response=httpx.Response(429, request=REQUEST), body=None,
        )
        with pytest.raises(ProviderError) as exc_info:
            await claude.complete("hi")
        assert exc_info.value.code == ErrorCode.E3001
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_auth_error_not_retryable(self, claude, sdk):
        sdk.messages.create.side_effect = anthropic.AuthenticationError(
            "invalid x-api-key", response=httpx.Response(401, request=REQUEST), body=None,
        )
        with pytest.raises(ProviderError) as exc_info:
            await claude.complete("hi")
        assert exc_info.value.code == ErrorCode.E2002
        assert exc_info.value.retryable is False


class TestParseJson:

    def test_fenced(self):
        assert _parse_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_embedded_in_prose(self):
        assert _parse_json('Here you go: {"a": [1, 2]} Thanks!') == {"a": [1, 2]}

    def test_malformed(self):
        with pytest.raises(ProviderError) as exc_info:
            _parse_json("not json at all")
        assert exc_info.value.code == ErrorCode.E3006


# ===================================================================
# Providers
# ===================================================================


class TestClaudeDraftProvider:

    @pytest.mark.asyncio
    async def test_parses_draft(self, claude, sdk, mba_idea):
        sdk.messages.create.return_value = sdk_response(json.dumps({
            "title": "Best Online MBA Programs",
            "content": "<p>Body text.</p>",
            "excerpt": "Short.",
            "faqs": [{"question": "Q?", "answer": "A."}],
            "focus_keyword": "online mba",
        }))
        draft = await ClaudeDraftProvider(claude).generate_draft(
            mba_idea, DraftContext(content_type="ranking", target_word_count=2000),
        )
        assert draft.content == "<p>Body text.</p>"
        assert draft.faqs[0].question == "Q?"
        assert draft.focus_keyword == "online mba"

    @pytest.mark.asyncio
    async def test_missing_title_falls_back_to_idea(self, claude, sdk, mba_idea):
        sdk.messages.create.return_value = sdk_response('{"content": "<p>Body.</p>"}')
        draft = await ClaudeDraftProvider(claude).generate_draft(
            mba_idea, DraftContext(content_type="guide", target_word_count=2000),
        )
        assert draft.title == mba_idea.title

    @pytest.mark.asyncio
    async def test_empty_content(self, claude, sdk, mba_idea):
        sdk.messages.create.return_value = sdk_response('{"title": "T", "content": ""}')
        with pytest.raises(ProviderError) as exc_info:
            await ClaudeDraftProvider(claude).generate_draft(
                mba_idea, DraftContext(content_type="guide", target_word_count=2000),
            )
        assert exc_info.value.code == ErrorCode.E3005

    def test_prompt_includes_context(self, mba_idea):
        context = DraftContext(
            content_type="ranking",
            target_word_count=1800,
            pricing_facts="Average tuition is $38,000.",
            contributor_name="Tony Huffman",
            rules_prompt=RulesConfig.default().build_prompt_section(),
        )
        prompt = build_draft_prompt(mba_idea, context)
        assert "TITLE: Best Online MBA Programs" in prompt
        assert "TARGET LENGTH: about 1800 words" in prompt
        assert "Average tuition is $38,000." in prompt
        assert "AUTHOR: Tony Huffman" in prompt
        assert "=== CONTENT RULES (MUST FOLLOW) ===" in prompt
        assert "Ranked list items" in prompt


class TestClaudeRewriteAndRepair:

    @pytest.mark.asyncio
    async def test_rewrite_is_whole_document(self, claude, sdk):
        sdk.messages.create.return_value = sdk_response("```html\n<p>Rewritten.</p>\n```")
        provider = ClaudeRewriteProvider(claude)
        voice = RulesConfig.default().voice_context(author_profile="Leads with numbers.")
        result = await provider.humanize("<p>Original.</p>", RewriteOptions(voice=voice))

        assert provider.chunked is False
        assert result.text == "<p>Rewritten.</p>"
        assert result.naturalness_score is None
        prompt = sdk.messages.create.await_args.kwargs["messages"][0]["content"]
        assert "Author voice: Leads with numbers." in prompt
        assert "[[PROTECTED_0]]" in prompt

    @pytest.mark.asyncio
    async def test_repair_prompt_lists_issues_and_targets(self, claude, sdk, catalog_entries):
        sdk.messages.create.return_value = sdk_response("<p>Fixed.</p>")
        provider = ClaudeRepairProvider(claude, link_targets=catalog_entries[:2])
        issues = [ValidationIssue(type="missing_faqs", severity="minor", message="Only 0 FAQ(s)")]

        assert await provider.fix("<p>Old.</p>", issues) == "<p>Fixed.</p>"
        prompt = sdk.messages.create.await_args.kwargs["messages"][0]["content"]
        assert "Missing FAQ section" in prompt
        assert catalog_entries[0].url in prompt


class TestClaudeAnchorProvider:

    @pytest.mark.asyncio
    async def test_keeps_only_verbatim_anchors(self, claude, sdk, catalog_entries):
        html = "<p>Many working adults choose an online MBA for flexibility.</p>"
        sdk.messages.create.return_value = sdk_response(json.dumps({"links": [
            {"url": catalog_entries[0].url, "anchor_text": "online MBA"},
            {"url": catalog_entries[1].url, "anchor_text": "phrase not in article"},
            {"url": "https://www.geteducated.com/unknown/", "anchor_text": "working adults"},
        ]}))
        proposals = await ClaudeAnchorProvider(claude).propose(html, catalog_entries[:2])

        assert [(p.url, p.anchor_text) for p in proposals] == [(catalog_entries[0].url, "online MBA")]
        assert sdk.messages.create.await_args.kwargs["model"] == "fast-model"

    @pytest.mark.asyncio
    async def test_no_entries_no_call(self, claude, sdk):
        assert await ClaudeAnchorProvider(claude).propose("<p>x</p>", []) == []
        sdk.messages.create.assert_not_awaited()
