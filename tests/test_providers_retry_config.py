"""
Tests for providers.retry_config module.

Tests cover:
- HTTP status classification
- Default retry predicate
- Retry loop returning the last outcome instead of raising
- Backoff waits doubling from 2s
"""

import pytest

from geo_audit.providers.models import AttemptOutcome, FailureKind
from geo_audit.providers.retry_config import (
    GENERATIVE_MAX_ATTEMPTS,
    SEARCH_MAX_ATTEMPTS,
    classify_status_code,
    create_retrying,
    is_retryable,
)


async def _drive(retrying, outcomes):
    """Run the retry loop over a fixed outcome sequence; return attempts used."""
    used = []
    async for attempt in retrying:
        with attempt:
            outcome = outcomes[min(len(used), len(outcomes) - 1)]
            used.append(outcome)
        if not attempt.retry_state.outcome.failed:
            attempt.retry_state.set_result(outcome)
    return used


class TestConstants:
    def test_attempt_budgets(self):
        assert GENERATIVE_MAX_ATTEMPTS == 3
        assert SEARCH_MAX_ATTEMPTS == 2


class TestClassifyStatusCode:
    """Test suite for classify_status_code()."""

    @pytest.mark.parametrize(
        "status_code,expected",
        [
            (401, FailureKind.AUTH),
            (403, FailureKind.AUTH),
            (402, FailureKind.QUOTA),
            (429, FailureKind.TRANSIENT),
            (500, FailureKind.TRANSIENT),
            (503, FailureKind.TRANSIENT),
            (400, FailureKind.MALFORMED_REQUEST),
            (422, FailureKind.MALFORMED_REQUEST),
            (418, FailureKind.MALFORMED_REQUEST),
            (599, FailureKind.TRANSIENT),
        ],
    )
    def test_classification(self, status_code, expected):
        assert classify_status_code(status_code) == expected


class TestIsRetryable:
    """Test suite for is_retryable()."""

    def test_retryable_kinds(self):
        assert is_retryable(AttemptOutcome.failed(FailureKind.TRANSIENT, "x")) is True
        assert is_retryable(AttemptOutcome.failed(FailureKind.EMPTY_RESPONSE, "x")) is True

    def test_terminal_kinds(self):
        assert is_retryable(AttemptOutcome.failed(FailureKind.AUTH, "x")) is False
        assert is_retryable(AttemptOutcome.failed(FailureKind.QUOTA, "x")) is False
        assert is_retryable(AttemptOutcome(text="ok")) is False


class TestCreateRetrying:
    """Test suite for create_retrying()."""

    @pytest.mark.asyncio
    async def test_stops_on_success(self, no_sleep):
        used = await _drive(
            create_retrying(3, sleep=no_sleep),
            [AttemptOutcome.failed(FailureKind.TRANSIENT, "503"), AttemptOutcome(text="ok")],
        )

        assert len(used) == 2
        assert used[-1].ok
        assert no_sleep.delays == [2]

    @pytest.mark.asyncio
    async def test_budget_exhausted_without_raising(self, no_sleep):
        used = await _drive(
            create_retrying(3, sleep=no_sleep),
            [AttemptOutcome.failed(FailureKind.TRANSIENT, "503")],
        )

        assert len(used) == 3
        assert no_sleep.delays == [2, 4]

    @pytest.mark.asyncio
    async def test_custom_predicate(self, no_sleep):
        used = await _drive(
            create_retrying(5, should_retry=lambda o: False, sleep=no_sleep),
            [AttemptOutcome.failed(FailureKind.TRANSIENT, "503")],
        )

        assert len(used) == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_exceptions_propagate(self, no_sleep):
        with pytest.raises(RuntimeError, match="boom"):
            async for attempt in create_retrying(3, sleep=no_sleep):
                with attempt:
                    raise RuntimeError("boom")
