"""
StealthGPT Rewrite Provider
===========================

aiohttp client for the StealthGPT ``/stealthify`` endpoint, the primary
rewrite provider for the Humanizer.  It is a *chunked* provider: the
Humanizer feeds it 150-200 word chunks and runs the iteration loop, this
class makes exactly one HTTP call per ``humanize``.

Request:
    POST {base_url}/stealthify
    header  api-token: <STEALTHGPT_API_KEY>
    body    {prompt, rephrase, tone, mode, business, isMultilingual, detector}

Response:
    {"result": "<rewritten text>", "howLikelyToBeDetected": <0-100>}

The raw ``howLikelyToBeDetected`` value is passed through untouched; the
Humanizer's ScoreConvention decides its polarity.

Usage:
    from article_pipeline.stealth_client import StealthGPTProvider

    async with StealthGPTProvider() as stealth:
        result = await stealth.humanize(chunk, RewriteOptions())
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from article_pipeline.circuit_breaker import ErrorCode, classify_error
from article_pipeline.config import DEFAULT_STEALTHGPT_BASE_URL, get_settings
from article_pipeline.providers import ProviderError, RewriteOptions, RewriteProvider, RewriteResult

logger = logging.getLogger("stealth_client")

DEFAULT_TIMEOUT = 60


def _status_code(status: int) -> ErrorCode:
    if status in (401, 403):
        return ErrorCode.E2002
    if status == 429:
        return ErrorCode.E3001
    if status == 400:
        return ErrorCode.E3004
    if status == 529:
        return ErrorCode.E3002
    return ErrorCode.E3008


class StealthGPTProvider(RewriteProvider):
    """Detector-tuned rewrite of short text chunks."""

    name = "stealthgpt"
    chunked = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.stealthgpt_api_key
        self.base_url = (base_url or settings.stealthgpt_base_url or DEFAULT_STEALTHGPT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    # -- Session management -------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {
                "User-Agent": "ArticlePipeline/1.0",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this provider created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> StealthGPTProvider:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -- API ----------------------------------------------------------------

    @staticmethod
    def build_payload(text: str, options: RewriteOptions) -> Dict[str, Any]:
        return {
            "prompt": text,
            "rephrase": True,
            "tone": options.tone,
            "mode": options.mode,
            "business": options.business,
            "isMultilingual": False,
            "detector": options.detector,
        }

    async def humanize(self, text: str, options: RewriteOptions) -> RewriteResult:
        """Rewrite one chunk.

        Raises
        ------
        ProviderError
            E3007 when no API key is configured (not retryable), the mapped
            HTTP error code for non-2xx replies, E3005 for an empty result,
            or the classified network error.
        """
        if not self.api_key:
            raise ProviderError(
                "STEALTHGPT_API_KEY is not set",
                provider=self.name,
                code=ErrorCode.E3007,
                retryable=False,
            )

        url = f"{self.base_url}/stealthify"
        session = await self._get_session()
        logger.debug("POST %s (%d chars)", url, len(text))
        try:
            async with session.post(
                url,
                json=self.build_payload(text, options),
                headers={"api-token": self.api_key},
            ) as resp:
                status = resp.status
                try:
                    body = await resp.json(content_type=None)
                except (json.JSONDecodeError, ValueError):
                    body = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            ctx = classify_error(exc, module="stealth_client", operation="stealthify")
            raise ProviderError(
                f"Network error calling {url}: {exc}",
                provider=self.name,
                code=ctx.code,
                retryable=ctx.retryable,
            ) from exc

        if status >= 400:
            message = body.get("error", body) if isinstance(body, dict) else body
            code = _status_code(status)
            raise ProviderError(
                f"HTTP {status}: {str(message)[:200]}",
                provider=self.name,
                code=code,
                retryable=code in (ErrorCode.E3001, ErrorCode.E3002, ErrorCode.E3008),
                status_code=status,
            )

        if not isinstance(body, dict) or not body.get("result"):
            raise ProviderError("StealthGPT returned empty result", provider=self.name, code=ErrorCode.E3005)

        raw = body.get("howLikelyToBeDetected")
        score = float(raw) if isinstance(raw, (int, float)) else None
        logger.debug("Stealthify ok: %d chars, score=%s", len(body["result"]), score)
        return RewriteResult(text=str(body["result"]), naturalness_score=score)
