"""
Search-result adapter: Google SERP through DataForSEO.

Two modes over the same organic/live/advanced endpoint:

organic
    The answer text is a "Featured Answer" block (when Google shows a
    featured snippet) followed by the top ten results as a numbered list.
    Sources are the featured snippet URL and every organic result.

ai_overview
    The answer text is Google's AI overview, with its references as
    sources. When no AI overview or featured snippet exists, the answer is
    synthesized from the top five organic results.

Up to 2 attempts; same failure mapping as every DataForSEO call.
"""

import asyncio
import logging
import time
from typing import Any

from geo_audit.config.schema import ProviderSpec
from geo_audit.extractor.citations import Citation, normalize_domain
from geo_audit.utils.logging import log_with_context

from .dataforseo import DataForSEOClient, TaskResponse
from .models import AttemptOutcome, FailureKind, ProviderResult, SleepFunc
from .retry_config import SEARCH_MAX_ATTEMPTS, create_retrying

logger = logging.getLogger(__name__)

SERP_ENDPOINT = "/serp/google/organic/live/advanced"

ORGANIC_DEPTH = 20
AI_OVERVIEW_DEPTH = 10

# Results listed in the organic answer text
ANSWER_RESULT_LIMIT = 10

# Organic results used when no AI overview is present
OVERVIEW_FALLBACK_LIMIT = 5


def _citation_from_item(item: dict[str, Any], position: int) -> Citation | None:
    url = str(item.get("url") or "").strip()
    if not url:
        return None
    domain = str(item.get("domain") or "").lower().removeprefix("www.") or (
        normalize_domain(url)
    )
    if not domain:
        return None
    return Citation(
        url=url,
        domain=domain,
        title=str(item.get("title") or ""),
        position=position,
        snippet=item.get("description") or item.get("snippet") or None,
    )


def dedupe_sources(sources: list[Citation]) -> tuple[Citation, ...]:
    """Keep the first citation per domain."""
    seen: set[str] = set()
    unique: list[Citation] = []
    for citation in sources:
        if citation.domain in seen:
            continue
        seen.add(citation.domain)
        unique.append(citation)
    return tuple(unique)


def parse_organic(items: list[dict[str, Any]]) -> tuple[str, list[Citation]]:
    """
    Build the organic-mode answer text and sources from SERP items.

    Returns:
        (answer text, sources in SERP order)
    """
    parts: list[str] = []
    sources: list[Citation] = []

    for item in items:
        if item.get("type") == "featured_snippet":
            parts.append(
                f"=== Featured Answer ===\n{item.get('description') or item.get('title') or ''}"
            )
            citation = _citation_from_item(item, position=0)
            if citation:
                sources.append(citation)

    for item in items:
        if item.get("type") == "organic":
            citation = _citation_from_item(
                item, position=int(item.get("rank_absolute") or len(sources) + 1)
            )
            if citation:
                sources.append(citation)

    if sources:
        parts.append("\n=== Top Search Results ===")
        for index, citation in enumerate(sources[:ANSWER_RESULT_LIMIT], start=1):
            parts.append(f"{index}. {citation.title}\n   {citation.snippet or ''}")

    return "\n\n".join(parts).strip(), sources


def parse_ai_overview(items: list[dict[str, Any]]) -> tuple[str, list[Citation]]:
    """
    Build the AI-overview answer text and sources from SERP items.

    Falls back to the top organic results when Google returned neither an
    AI overview nor a featured snippet.
    """
    text = ""
    sources: list[Citation] = []

    for item in items:
        item_type = item.get("type")
        if item_type == "ai_overview":
            for sub_item in item.get("items") or []:
                if not isinstance(sub_item, dict):
                    continue
                if sub_item.get("text"):
                    text += f"{sub_item['text']}\n"
                for index, reference in enumerate(sub_item.get("references") or [], 1):
                    if isinstance(reference, dict):
                        citation = _citation_from_item(reference, position=index)
                        if citation:
                            sources.append(citation)
        elif item_type == "featured_snippet":
            text += str(item.get("description") or item.get("title") or "")
            citation = _citation_from_item(item, position=0)
            if citation:
                sources.append(citation)

    if not text.strip():
        organic = [i for i in items if i.get("type") == "organic"][
            :OVERVIEW_FALLBACK_LIMIT
        ]
        for index, item in enumerate(organic, start=1):
            text += f"{item.get('title') or ''}\n{item.get('description') or ''}\n\n"
            citation = _citation_from_item(
                item, position=int(item.get("rank_absolute") or index)
            )
            if citation:
                sources.append(citation)

    return text.strip(), sources


class SearchResultAdapter:
    """
    Adapter for a Google SERP provider (organic results or AI overview).

    Attributes:
        spec: Provider description; spec.serp_mode selects the parser
        client: DataForSEO transport
    """

    def __init__(
        self,
        spec: ProviderSpec,
        client: DataForSEOClient,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.spec = spec
        self.client = client
        self.max_attempts = spec.max_attempts or SEARCH_MAX_ATTEMPTS
        self._sleep = sleep

    def build_payload(self, query: str, location_code: int) -> dict[str, Any]:
        return {
            "keyword": query,
            "location_code": location_code,
            "language_code": "en",
            "device": "desktop",
            "depth": AI_OVERVIEW_DEPTH
            if self.spec.serp_mode == "ai_overview"
            else ORGANIC_DEPTH,
        }

    def normalize(self, task: TaskResponse) -> AttemptOutcome:
        """Turn a successful SERP task into an AttemptOutcome."""
        if self.spec.serp_mode == "ai_overview":
            text, sources = parse_ai_overview(task.items)
        else:
            text, sources = parse_organic(task.items)

        if not text:
            return AttemptOutcome.failed(
                FailureKind.EMPTY_RESPONSE,
                "Search returned no results",
                cost=task.cost,
            )
        return AttemptOutcome(text=text, cost=task.cost, sources=dedupe_sources(sources))

    async def _attempt(self, query: str, location_code: int) -> AttemptOutcome:
        task = await self.client.post_task(
            self.spec.endpoint or SERP_ENDPOINT, self.build_payload(query, location_code)
        )
        if not task.ok:
            return AttemptOutcome.failed(
                task.failure or FailureKind.TRANSIENT,
                task.error or "Unknown provider error",
                cost=task.cost,
            )
        return self.normalize(task)

    async def invoke(self, query: str, location_code: int) -> ProviderResult:
        start = time.monotonic()
        outcomes: list[AttemptOutcome] = []

        retrying = create_retrying(self.max_attempts, sleep=self._sleep)
        async for attempt in retrying:
            with attempt:
                outcome = await self._attempt(query, location_code)
                outcomes.append(outcome)
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(outcome)

        latency_ms = int((time.monotonic() - start) * 1000)
        result = ProviderResult.from_outcomes(self.spec, outcomes, latency_ms)

        log_with_context(
            logger,
            logging.INFO if result.success else logging.WARNING,
            f"{self.spec.id}: {len(result.text)} chars, {len(result.sources)} sources",
            context={
                "provider": self.spec.id,
                "mode": self.spec.serp_mode,
                "location_code": location_code,
                "latency_ms": latency_ms,
                "cost": result.cost,
                "attempts": result.attempts,
                "failure": result.error_type,
            },
        )
        return result
