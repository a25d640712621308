"""
Mock provider adapter for tests and dry runs.

MockProviderAdapter implements the ProviderAdapter protocol without any
network access. It can answer from a query -> text table, or replay a
script of AttemptOutcome values through the same tenacity retry loop the
real adapters use, which makes retry and cost-accumulation behavior
testable without HTTP mocking.

Example:
    >>> adapter = MockProviderAdapter(
    ...     spec=spec,
    ...     script=[
    ...         AttemptOutcome.failed(FailureKind.TRANSIENT, "HTTP 503", cost=0.01),
    ...         AttemptOutcome(text="1. Acme", cost=0.02),
    ...     ],
    ...     sleep=no_sleep,
    ... )
    >>> result = await adapter.invoke("best crm", 2840)
    >>> result.success, result.cost, result.attempts
    (True, 0.03, 2)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from geo_audit.config.schema import ProviderKind, ProviderSpec

from .models import AttemptOutcome, FailureKind, ProviderResult, SleepFunc
from .retry_config import (
    GENERATIVE_MAX_ATTEMPTS,
    SEARCH_MAX_ATTEMPTS,
    create_retrying,
    is_retryable,
)

logger = logging.getLogger(__name__)


@dataclass
class MockProviderAdapter:
    """
    Deterministic adapter that never touches the network.

    Attributes:
        spec: Provider description the results are attributed to
        responses: Query -> answer text table
        default_response: Answer when the query is not in responses
        script: Outcomes replayed one per attempt; the last one repeats
            once the script is exhausted. Takes precedence over responses.
        cost_per_response: Cost reported for table-driven answers
        delay_seconds: Awaited before answering, for timeout tests
        sleep: Awaitable used for backoff waits and delay_seconds
        calls: Queries received, in order
    """

    spec: ProviderSpec
    responses: dict[str, str] | None = None
    default_response: str = "Mock provider response."
    script: list[AttemptOutcome] | None = None
    cost_per_response: float = 0.0
    delay_seconds: float = 0.0
    sleep: SleepFunc = asyncio.sleep
    calls: list[str] = field(default_factory=list)

    def __post_init__(self):
        if self.responses is None:
            self.responses = {}

    @property
    def max_attempts(self) -> int:
        if self.spec.max_attempts:
            return self.spec.max_attempts
        if self.spec.kind == ProviderKind.GENERATIVE_ANSWER:
            return GENERATIVE_MAX_ATTEMPTS
        return SEARCH_MAX_ATTEMPTS

    def _next_scripted(self, attempt_index: int) -> AttemptOutcome:
        assert self.script
        return self.script[min(attempt_index, len(self.script) - 1)]

    async def invoke(self, query: str, location_code: int) -> ProviderResult:
        self.calls.append(query)
        start = time.monotonic()

        if self.delay_seconds:
            await self.sleep(self.delay_seconds)

        outcomes: list[AttemptOutcome] = []
        if self.script:

            def should_retry(outcome: AttemptOutcome) -> bool:
                if outcome.failure == FailureKind.MALFORMED_REQUEST:
                    return sum(
                        o.failure == FailureKind.MALFORMED_REQUEST for o in outcomes
                    ) < 2
                return is_retryable(outcome)

            async for attempt in create_retrying(
                self.max_attempts, should_retry, self.sleep
            ):
                with attempt:
                    outcome = self._next_scripted(len(outcomes))
                    outcomes.append(outcome)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(outcome)
        else:
            text = (self.responses or {}).get(query, self.default_response)
            outcomes.append(AttemptOutcome(text=text, cost=self.cost_per_response))

        latency_ms = int((time.monotonic() - start) * 1000)
        result = ProviderResult.from_outcomes(self.spec, outcomes, latency_ms)
        logger.debug(
            f"Mock provider {self.spec.id}: success={result.success}, "
            f"attempts={result.attempts}"
        )
        return result
