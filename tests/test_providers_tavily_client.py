"""
Tests for providers.tavily_client module.

Tests cover:
- Answer text and structured sources
- Fallback text built from result snippets
- Bearer auth and request payload
- Auth and quota failures (never retried)
- Missing API key
"""

import json

import httpx
import pytest

from geo_audit.config.providers import default_registry
from geo_audit.providers.models import FailureKind
from geo_audit.providers.tavily_client import TAVILY_API_URL, TavilySearchAdapter

URL = f"{TAVILY_API_URL}/search"
SPEC = default_registry().get("tavily")

RESULTS = [
    {"url": "https://www.acme.com/", "title": "Acme", "content": "Acme app"},
    {"url": "https://bumble.com/", "title": "Bumble", "content": "Bumble app"},
]


class TestParseResponse:
    """Test suite for TavilySearchAdapter.parse_response()."""

    def test_answer_and_sources(self):
        text, sources = TavilySearchAdapter.parse_response(
            {"answer": "Acme is popular.", "results": RESULTS}
        )

        assert text == "Acme is popular."
        assert [s.domain for s in sources] == ["acme.com", "bumble.com"]
        assert sources[0].title == "Acme"
        assert sources[1].position == 2

    def test_fallback_without_answer(self):
        text, _ = TavilySearchAdapter.parse_response({"answer": None, "results": RESULTS})

        assert text == "1. Acme\n   Acme app\n2. Bumble\n   Bumble app"

    def test_nothing(self):
        assert TavilySearchAdapter.parse_response({}) == ("", [])


class TestTavilySearchAdapter:
    """Test suite for TavilySearchAdapter.invoke()."""

    @pytest.mark.asyncio
    async def test_success(self, httpx_mock, no_sleep):
        httpx_mock.add_response(
            method="POST", url=URL, json={"answer": "Acme is popular.", "results": RESULTS}
        )

        async with httpx.AsyncClient() as http_client:
            adapter = TavilySearchAdapter(SPEC, http_client, "tvly-key", sleep=no_sleep)
            result = await adapter.invoke("best dating apps", 2840)

        assert result.success is True
        assert result.text == "Acme is popular."
        assert result.cost == 0.0
        assert len(result.sources) == 2

        request = httpx_mock.get_requests()[0]
        assert request.headers["Authorization"] == "Bearer tvly-key"
        body = json.loads(request.content)
        assert body["query"] == "best dating apps"
        assert body["include_answer"] is True
        assert body["max_results"] == 20

    @pytest.mark.asyncio
    async def test_unauthorized(self, httpx_mock, no_sleep):
        httpx_mock.add_response(method="POST", url=URL, status_code=401)

        async with httpx.AsyncClient() as http_client:
            adapter = TavilySearchAdapter(SPEC, http_client, "bad", sleep=no_sleep)
            result = await adapter.invoke("best dating apps", 2840)

        assert result.failure == FailureKind.AUTH
        assert result.error == "HTTP 401"
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_usage_limit_is_quota(self, httpx_mock, no_sleep):
        httpx_mock.add_response(method="POST", url=URL, status_code=432)

        async with httpx.AsyncClient() as http_client:
            adapter = TavilySearchAdapter(SPEC, http_client, "tvly-key", sleep=no_sleep)
            result = await adapter.invoke("best dating apps", 2840)

        assert result.failure == FailureKind.QUOTA
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_empty_answer_retried_once(self, httpx_mock, no_sleep):
        for _ in range(2):
            httpx_mock.add_response(method="POST", url=URL, json={"results": []})

        async with httpx.AsyncClient() as http_client:
            adapter = TavilySearchAdapter(SPEC, http_client, "tvly-key", sleep=no_sleep)
            result = await adapter.invoke("best dating apps", 2840)

        assert result.failure == FailureKind.EMPTY_RESPONSE
        assert result.error == "Tavily returned no answer (after 2 attempts)"
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_missing_key(self, no_sleep):
        async with httpx.AsyncClient() as http_client:
            adapter = TavilySearchAdapter(SPEC, http_client, "", sleep=no_sleep)
            result = await adapter.invoke("best dating apps", 2840)

        assert result.failure == FailureKind.AUTH
        assert result.error == "Tavily API key not configured"
