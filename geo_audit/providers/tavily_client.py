"""
Tavily real-time web search adapter.

POSTs the query to Tavily's /search endpoint with include_answer enabled.
Tavily's synthesized answer becomes the result text; when Tavily returns
no answer, the text is built from the top result snippets. Every result
URL becomes a structured source. Tavily calls carry no per-query cost.
"""

import asyncio
import logging
import time
from typing import Any

import httpx

from geo_audit.config.schema import ProviderSpec
from geo_audit.extractor.citations import Citation, normalize_domain

from .models import AttemptOutcome, FailureKind, ProviderResult, SleepFunc
from .retry_config import (
    REQUEST_TIMEOUT,
    SEARCH_MAX_ATTEMPTS,
    classify_status_code,
    create_retrying,
)
from .search_client import dedupe_sources

logger = logging.getLogger(__name__)

TAVILY_API_URL = "https://api.tavily.com"

MAX_RESULTS = 20

# Results listed when Tavily returns no answer
FALLBACK_RESULT_LIMIT = 5

# Plan usage and key usage limits
TAVILY_QUOTA_STATUS_CODES = frozenset([432, 433])


class TavilySearchAdapter:
    """Adapter for the Tavily search API (Bearer auth)."""

    def __init__(
        self,
        spec: ProviderSpec,
        http_client: httpx.AsyncClient,
        api_key: str,
        base_url: str = TAVILY_API_URL,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.spec = spec
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.max_attempts = spec.max_attempts or SEARCH_MAX_ATTEMPTS
        self._api_key = api_key
        self._sleep = sleep

    def build_payload(self, query: str) -> dict[str, Any]:
        return {
            "query": query,
            "search_depth": "advanced",
            "include_answer": True,
            "include_raw_content": False,
            "max_results": MAX_RESULTS,
        }

    @staticmethod
    def parse_response(data: dict[str, Any]) -> tuple[str, list[Citation]]:
        """Return (answer text, sources) from a Tavily search response."""
        sources: list[Citation] = []
        results = [r for r in data.get("results") or [] if isinstance(r, dict)]
        for position, item in enumerate(results, start=1):
            url = str(item.get("url") or "").strip()
            domain = normalize_domain(url)
            if not url or not domain:
                continue
            sources.append(
                Citation(
                    url=url,
                    domain=domain,
                    title=str(item.get("title") or ""),
                    position=position,
                    snippet=item.get("content") or None,
                )
            )

        answer = str(data.get("answer") or "").strip()
        if not answer and results:
            lines = [
                f"{i}. {r.get('title') or ''}\n   {r.get('content') or ''}"
                for i, r in enumerate(results[:FALLBACK_RESULT_LIMIT], start=1)
            ]
            answer = "\n".join(lines).strip()
        return answer, sources

    async def _attempt(self, query: str) -> AttemptOutcome:
        if not self._api_key:
            return AttemptOutcome.failed(FailureKind.AUTH, "Tavily API key not configured")

        try:
            response = await self.http_client.post(
                f"{self.base_url}/search",
                json=self.build_payload(query),
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=REQUEST_TIMEOUT,
            )
        except httpx.TimeoutException:
            return AttemptOutcome.failed(FailureKind.TRANSIENT, "Tavily request timed out")
        except httpx.HTTPError as e:
            return AttemptOutcome.failed(
                FailureKind.TRANSIENT, f"Tavily request failed: {type(e).__name__}: {e}"
            )

        if response.status_code >= 400:
            logger.warning(
                f"Tavily HTTP {response.status_code}: {response.text[:200]}"
            )
            if response.status_code in TAVILY_QUOTA_STATUS_CODES:
                failure = FailureKind.QUOTA
            else:
                failure = classify_status_code(response.status_code)
            return AttemptOutcome.failed(failure, f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            return AttemptOutcome.failed(FailureKind.TRANSIENT, "Tavily returned invalid JSON")

        if not isinstance(data, dict):
            return AttemptOutcome.failed(
                FailureKind.TRANSIENT, "Tavily returned an unexpected response shape"
            )

        text, sources = self.parse_response(data)
        if not text:
            return AttemptOutcome.failed(FailureKind.EMPTY_RESPONSE, "Tavily returned no answer")
        return AttemptOutcome(text=text, sources=dedupe_sources(sources))

    async def invoke(self, query: str, location_code: int) -> ProviderResult:
        start = time.monotonic()
        outcomes: list[AttemptOutcome] = []

        async for attempt in create_retrying(self.max_attempts, sleep=self._sleep):
            with attempt:
                outcome = await self._attempt(query)
                outcomes.append(outcome)
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(outcome)

        latency_ms = int((time.monotonic() - start) * 1000)
        result = ProviderResult.from_outcomes(self.spec, outcomes, latency_ms)
        logger.info(
            f"{self.spec.id}: success={result.success} answer={len(result.text)} chars, "
            f"{len(result.sources)} sources in {latency_ms}ms"
        )
        return result
