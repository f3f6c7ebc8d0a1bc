"""Test stealth_client -- Article Pipeline (HTTP mocked)."""
from __future__ import annotations

import aiohttp
import pytest

from article_pipeline.circuit_breaker import ErrorCode
from article_pipeline.providers import ProviderError, RewriteOptions
from article_pipeline.stealth_client import StealthGPTProvider


@pytest.fixture
def provider(mock_aiohttp_session):
    return StealthGPTProvider(api_key="stealth-key", base_url="https://stealthgpt.ai/api/", session=mock_aiohttp_session)


class TestPayload:

    def test_build_payload(self):
        payload = StealthGPTProvider.build_payload("Some text.", RewriteOptions(tone="Standard", mode="Medium"))
        assert payload == {
            "prompt": "Some text.",
            "rephrase": True,
            "tone": "Standard",
            "mode": "Medium",
            "business": True,
            "isMultilingual": False,
            "detector": "gptzero",
        }

    def test_base_url_trailing_slash(self, provider):
        assert provider.base_url == "https://stealthgpt.ai/api"


class TestHumanize:

    @pytest.mark.asyncio
    async def test_success(self, provider, mock_aiohttp_session, mock_aiohttp_response):
        mock_aiohttp_session.post.return_value = mock_aiohttp_response(
            200, {"result": "Rewritten chunk.", "howLikelyToBeDetected": 88},
        )
        result = await provider.humanize("Original chunk.", RewriteOptions())

        assert result.text == "Rewritten chunk."
        assert result.naturalness_score == 88.0
        args, kwargs = mock_aiohttp_session.post.call_args
        assert args[0] == "https://stealthgpt.ai/api/stealthify"
        assert kwargs["headers"] == {"api-token": "stealth-key"}
        assert kwargs["json"]["prompt"] == "Original chunk."

    @pytest.mark.asyncio
    async def test_missing_score(self, provider, mock_aiohttp_session, mock_aiohttp_response):
        mock_aiohttp_session.post.return_value = mock_aiohttp_response(200, {"result": "Text."})
        result = await provider.humanize("x", RewriteOptions())
        assert result.naturalness_score is None

    @pytest.mark.asyncio
    async def test_missing_key(self, mock_aiohttp_session):
        provider = StealthGPTProvider(api_key="", session=mock_aiohttp_session)
        with pytest.raises(ProviderError) as exc_info:
            await provider.humanize("x", RewriteOptions())
        assert exc_info.value.code == ErrorCode.E3007
        assert exc_info.value.retryable is False
        mock_aiohttp_session.post.assert_not_called()

    @pytest.mark.parametrize("status,code,retryable", [
        (401, ErrorCode.E2002, False),
        (403, ErrorCode.E2002, False),
        (429, ErrorCode.E3001, True),
        (400, ErrorCode.E3004, False),
        (529, ErrorCode.E3002, True),
        (500, ErrorCode.E3008, True),
    ])
    @pytest.mark.asyncio
    async def test_http_errors(self, provider, mock_aiohttp_session, mock_aiohttp_response, status, code, retryable):
        mock_aiohttp_session.post.return_value = mock_aiohttp_response(status, {"error": "nope"})
        with pytest.raises(ProviderError) as exc_info:
            await provider.humanize("x", RewriteOptions())
        assert exc_info.value.code == code
        assert exc_info.value.retryable is retryable
        assert exc_info.value.status_code == status
        assert "nope" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_json_error_body(self, provider, mock_aiohttp_session, mock_aiohttp_response):
        resp = mock_aiohttp_response(502, text="Bad Gateway")
        resp.json.side_effect = ValueError("not json")
        mock_aiohttp_session.post.return_value = resp
        with pytest.raises(ProviderError, match="Bad Gateway"):
            await provider.humanize("x", RewriteOptions())

    @pytest.mark.asyncio
    async def test_empty_result(self, provider, mock_aiohttp_session, mock_aiohttp_response):
        mock_aiohttp_session.post.return_value = mock_aiohttp_response(200, {"result": ""})
        with pytest.raises(ProviderError) as exc_info:
            await provider.humanize("x", RewriteOptions())
        assert exc_info.value.code == ErrorCode.E3005
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_network_error(self, provider, mock_aiohttp_session):
        mock_aiohttp_session.post.side_effect = aiohttp.ClientConnectionError("connection reset")
        with pytest.raises(ProviderError) as exc_info:
            await provider.humanize("x", RewriteOptions())
        assert exc_info.value.code == ErrorCode.E1002


class TestSession:

    @pytest.mark.asyncio
    async def test_injected_session_not_closed(self, provider, mock_aiohttp_session):
        async with provider:
            pass
        mock_aiohttp_session.close.assert_not_awaited()
