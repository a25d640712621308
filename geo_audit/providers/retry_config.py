"""
Retry configuration for provider calls.

Retries are driven by tenacity, but on values rather than exceptions:
every attempt returns an AttemptOutcome and retry_if_result decides whether
another attempt is worth making. When the attempt budget runs out, the last
outcome is returned instead of raising RetryError.

Key features:
- Exponential backoff doubling from 2s (2s, 4s, 8s)
- Per-family attempt budgets (3 for generative, 2 for search)
- Status code classification shared by every HTTP adapter
- Injectable sleep so tests never wait

Example:
    >>> retrying = create_retrying(
    ...     max_attempts=GENERATIVE_MAX_ATTEMPTS,
    ...     should_retry=lambda outcome: not outcome.ok,
    ... )
    >>> async for attempt in retrying:
    ...     with attempt:
    ...         outcome = await call_provider()
    ...     if not attempt.retry_state.outcome.failed:
    ...         attempt.retry_state.set_result(outcome)
"""

import asyncio
from collections.abc import Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from .models import AttemptOutcome, FailureKind, SleepFunc

# ============================================================================
# RETRY CONSTANTS
# ============================================================================

# Attempts per invocation, initial attempt included
GENERATIVE_MAX_ATTEMPTS = 3
SEARCH_MAX_ATTEMPTS = 2

# Backoff: BACKOFF_MULTIPLIER * 2^(attempt-1) seconds, capped at MAX_WAIT_SECONDS
BACKOFF_MULTIPLIER = 2
MIN_WAIT_SECONDS = 2
MAX_WAIT_SECONDS = 8

# 429: rate limit; 5xx: server errors
RETRY_STATUS_CODES = frozenset([408, 429, 500, 502, 503, 504])

# Credentials rejected
AUTH_STATUS_CODES = frozenset([401, 403])

# Account out of credits
QUOTA_STATUS_CODES = frozenset([402])

# Request shape rejected
MALFORMED_STATUS_CODES = frozenset([400, 404, 405, 422])

# Per-attempt HTTP timeout in seconds (live LLM endpoints are slow)
REQUEST_TIMEOUT = 60.0


def classify_status_code(status_code: int) -> FailureKind:
    """
    Map an HTTP error status code to a failure kind.

    Unknown 4xx codes are treated as malformed requests; everything else
    (5xx, unusual codes) is transient.
    """
    if status_code in AUTH_STATUS_CODES:
        return FailureKind.AUTH
    if status_code in QUOTA_STATUS_CODES:
        return FailureKind.QUOTA
    if status_code in RETRY_STATUS_CODES:
        return FailureKind.TRANSIENT
    if status_code in MALFORMED_STATUS_CODES or 400 <= status_code < 500:
        return FailureKind.MALFORMED_REQUEST
    return FailureKind.TRANSIENT


def is_retryable(outcome: AttemptOutcome) -> bool:
    """Default retry predicate: transient and empty-response failures only."""
    return outcome.failure in (FailureKind.TRANSIENT, FailureKind.EMPTY_RESPONSE)


def _return_last_outcome(retry_state: RetryCallState) -> AttemptOutcome:
    return retry_state.outcome.result()


def create_retrying(
    max_attempts: int,
    should_retry: Callable[[AttemptOutcome], bool] = is_retryable,
    sleep: SleepFunc = asyncio.sleep,
) -> AsyncRetrying:
    """
    Build a tenacity AsyncRetrying loop over AttemptOutcome values.

    Args:
        max_attempts: Attempt budget, initial attempt included
        should_retry: Predicate on the latest outcome
        sleep: Awaitable used between attempts

    Returns:
        AsyncRetrying to drive with "async for attempt in ...". Exceptions
        raised inside an attempt are not retried and propagate unchanged.
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=BACKOFF_MULTIPLIER,
            min=MIN_WAIT_SECONDS,
            max=MAX_WAIT_SECONDS,
        ),
        retry=retry_if_result(should_retry),
        retry_error_callback=_return_last_outcome,
        sleep=sleep,
        reraise=True,
    )
