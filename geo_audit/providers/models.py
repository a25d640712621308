"""
Provider result types, adapter protocol and adapter factory for GEO Audit.

Provider calls never raise for provider-side failures. Each HTTP attempt is
reduced to an AttemptOutcome value, retry decisions are made on that value,
and the adapter returns one ProviderResult per invocation. A failed result
carries a FailureKind so callers can tell a rejected key from a flaky
network without parsing messages.

Key components:
- FailureKind: the failure taxonomy (transient, auth, quota,
  empty_response, malformed_request)
- AttemptOutcome: result of one HTTP attempt
- ProviderResult: result of one adapter invocation (all attempts)
- ProviderAdapter: protocol implemented by every provider family
- build_adapter: factory dispatching on the provider backend

Example:
    >>> adapter = build_adapter(spec, credentials, http_client, settings)
    >>> result = await adapter.invoke("best crm for startups", 2840)
    >>> result.success, result.cost, result.attempts
    (True, 0.0123, 1)
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

import httpx

from geo_audit.config.schema import (
    AuditSettings,
    Credentials,
    ProviderBackend,
    ProviderKind,
    ProviderSpec,
)
from geo_audit.exceptions import (
    ProviderAuthError,
    ProviderEmptyResponseError,
    ProviderError,
    ProviderMalformedRequestError,
    ProviderQuotaError,
    ProviderTransientError,
)
from geo_audit.extractor.citations import Citation

SleepFunc = Callable[[float], Awaitable[None]]


class FailureKind(StrEnum):
    """Why a provider call failed."""

    TRANSIENT = "transient"
    AUTH = "auth"
    QUOTA = "quota"
    EMPTY_RESPONSE = "empty_response"
    MALFORMED_REQUEST = "malformed_request"

    @property
    def error_type(self) -> str:
        """Error type string, e.g. "provider_auth"."""
        return f"provider_{self.value}"

    @property
    def fatal(self) -> bool:
        """Auth and quota failures are never retried."""
        return self in (FailureKind.AUTH, FailureKind.QUOTA)


_FAILURE_EXCEPTIONS: dict[FailureKind, type[ProviderError]] = {
    FailureKind.TRANSIENT: ProviderTransientError,
    FailureKind.AUTH: ProviderAuthError,
    FailureKind.QUOTA: ProviderQuotaError,
    FailureKind.EMPTY_RESPONSE: ProviderEmptyResponseError,
    FailureKind.MALFORMED_REQUEST: ProviderMalformedRequestError,
}


@dataclass(frozen=True)
class AttemptOutcome:
    """
    Result of a single HTTP attempt against a provider.

    Attributes:
        text: Answer text (empty on failure)
        cost: Cost reported for this attempt in USD
        failure: Failure kind, None on success
        error: Human-readable failure description
        sources: Structured sources returned by search providers
        input_tokens: Prompt tokens reported by generative providers
        output_tokens: Completion tokens reported by generative providers
    """

    text: str = ""
    cost: float = 0.0
    failure: FailureKind | None = None
    error: str | None = None
    sources: tuple[Citation, ...] = ()
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def failed(
        cls, failure: FailureKind, error: str, cost: float = 0.0
    ) -> "AttemptOutcome":
        return cls(failure=failure, error=error, cost=cost)


@dataclass(frozen=True)
class ProviderResult:
    """
    Output of one adapter invocation, immutable once produced.

    Attributes:
        provider_id: Provider identifier (e.g. "chatgpt")
        kind: Provider family
        success: True when usable text was returned
        text: Raw answer text, empty on failure
        latency_ms: Wall-clock time across all attempts and backoff waits
        cost: Sum of every attempt's cost, failed attempts included
        failure: Failure kind of the last attempt when unsuccessful
        error: Human-readable error when unsuccessful
        attempts: Number of HTTP attempts made
        sources: Structured sources supplied by search providers
        input_tokens: Prompt tokens of the successful attempt
        output_tokens: Completion tokens of the successful attempt
    """

    provider_id: str
    kind: ProviderKind
    success: bool
    text: str = ""
    latency_ms: int = 0
    cost: float = 0.0
    failure: FailureKind | None = None
    error: str | None = None
    attempts: int = 0
    sources: tuple[Citation, ...] = field(default_factory=tuple)
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def error_type(self) -> str | None:
        return self.failure.error_type if self.failure else None

    def raise_for_failure(self) -> None:
        """
        Raise the ProviderError subclass matching this result's failure.

        No-op for successful results.
        """
        if self.success:
            return
        exc_class = _FAILURE_EXCEPTIONS.get(
            self.failure or FailureKind.TRANSIENT, ProviderError
        )
        raise exc_class(self.error or "Provider call failed", self.provider_id)

    @classmethod
    def from_outcomes(
        cls,
        spec: ProviderSpec,
        outcomes: list[AttemptOutcome],
        latency_ms: int,
    ) -> "ProviderResult":
        """
        Fold the attempts of one invocation into a single result.

        The last attempt decides success; cost is summed over all attempts.
        """
        total_cost = round(sum(o.cost for o in outcomes), 6)
        last = outcomes[-1] if outcomes else AttemptOutcome.failed(
            FailureKind.TRANSIENT, "No attempt was made"
        )

        if last.ok:
            return cls(
                provider_id=spec.id,
                kind=spec.kind,
                success=True,
                text=last.text,
                latency_ms=latency_ms,
                cost=total_cost,
                attempts=len(outcomes),
                sources=last.sources,
                input_tokens=last.input_tokens,
                output_tokens=last.output_tokens,
            )

        error = last.error or "Provider call failed"
        if len(outcomes) > 1:
            error = f"{error} (after {len(outcomes)} attempts)"

        return cls(
            provider_id=spec.id,
            kind=spec.kind,
            success=False,
            latency_ms=latency_ms,
            cost=total_cost,
            failure=last.failure,
            error=error,
            attempts=len(outcomes),
        )

    @classmethod
    def failure_result(
        cls,
        provider_id: str,
        kind: ProviderKind,
        failure: FailureKind,
        error: str,
        latency_ms: int = 0,
        cost: float = 0.0,
    ) -> "ProviderResult":
        """Build a failed result without any attempt history."""
        return cls(
            provider_id=provider_id,
            kind=kind,
            success=False,
            latency_ms=latency_ms,
            cost=cost,
            failure=failure,
            error=error,
        )


class ProviderAdapter(Protocol):
    """
    Interface implemented by every provider family.

    Implementations MUST:
    - Return a ProviderResult for every provider-side failure instead of raising
    - Record latency and cost whether the call succeeds or fails
    - Keep retries within their own attempt budget
    - Never log credentials
    """

    spec: ProviderSpec

    async def invoke(self, query: str, location_code: int) -> ProviderResult:
        """
        Query the provider once (with internal retries).

        Args:
            query: Audit query text
            location_code: Market/location code; ignored by providers
                without market targeting

        Returns:
            ProviderResult with success flag, text, latency, cost and failure kind
        """
        ...


def build_adapter(
    spec: ProviderSpec,
    credentials: Credentials,
    http_client: httpx.AsyncClient,
    settings: AuditSettings | None = None,
    sleep: SleepFunc = asyncio.sleep,
) -> ProviderAdapter:
    """
    Create the adapter for a provider based on its backend.

    Args:
        spec: Provider description from the registry
        credentials: Resolved provider secrets (never logged)
        http_client: Shared httpx.AsyncClient for the audit
        settings: Audit settings (prompt augmentation, payload defaults)
        sleep: Awaitable used for backoff waits, injectable for tests

    Returns:
        Adapter implementing ProviderAdapter

    Raises:
        ValueError: If the backend cannot be built from configuration
            (mock adapters are constructed directly by tests and dry runs)
    """
    settings = settings or AuditSettings()

    if spec.backend == ProviderBackend.DATAFORSEO_LLM:
        # Import here to avoid circular dependencies and keep imports lazy
        from geo_audit.providers.dataforseo import DataForSEOClient
        from geo_audit.providers.generative_client import GenerativeAnswerAdapter

        return GenerativeAnswerAdapter(
            spec=spec,
            client=DataForSEOClient(http_client, credentials),
            settings=settings,
            sleep=sleep,
        )

    if spec.backend == ProviderBackend.DATAFORSEO_SERP:
        from geo_audit.providers.dataforseo import DataForSEOClient
        from geo_audit.providers.search_client import SearchResultAdapter

        return SearchResultAdapter(
            spec=spec,
            client=DataForSEOClient(http_client, credentials),
            sleep=sleep,
        )

    if spec.backend == ProviderBackend.TAVILY:
        from geo_audit.providers.tavily_client import TavilySearchAdapter

        return TavilySearchAdapter(
            spec=spec,
            http_client=http_client,
            api_key=credentials.tavily_api_key or "",
            sleep=sleep,
        )

    raise ValueError(
        f"Provider '{spec.id}' uses backend '{spec.backend}', which has no "
        f"configured adapter. Mock providers must be supplied explicitly."
    )
