"""
Generative-answer adapter: live LLM responses through DataForSEO.

Sends the audit query (optionally augmented with an instruction to name
concrete businesses and URLs) to a DataForSEO LIVE LLM endpoint and
returns the concatenated text of every section of every item.

Retry policy (3 attempts, 2s then 4s backoff):
- transient, empty_response: retried
- auth, quota: fail immediately
- malformed_request: retried once, with the optional max_output_tokens
  and temperature fields dropped from the payload

Cost is accumulated over every attempt, failed ones included.
"""

import asyncio
import logging
import time
from typing import Any

from geo_audit.config.constants import PROMPT_AUGMENTATION
from geo_audit.config.schema import AuditSettings, ProviderSpec
from geo_audit.utils.logging import log_with_context

from .dataforseo import DataForSEOClient, TaskResponse
from .models import AttemptOutcome, FailureKind, ProviderResult, SleepFunc
from .retry_config import GENERATIVE_MAX_ATTEMPTS, create_retrying, is_retryable

logger = logging.getLogger(__name__)


def extract_response_text(task: TaskResponse) -> str:
    """Concatenate result[0].items[].sections[].text in order."""
    parts: list[str] = []
    for item in task.items:
        for section in item.get("sections") or []:
            if isinstance(section, dict) and section.get("text"):
                parts.append(str(section["text"]))
    return "".join(parts)


class GenerativeAnswerAdapter:
    """
    Adapter for one generative-answer provider (ChatGPT, Claude, Gemini...).

    Attributes:
        spec: Provider description (endpoint and model_name are required)
        client: DataForSEO transport
        settings: Audit settings (augmentation, max_output_tokens, temperature)
    """

    def __init__(
        self,
        spec: ProviderSpec,
        client: DataForSEOClient,
        settings: AuditSettings | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        if not spec.endpoint or not spec.model_name:
            raise ValueError(f"Provider '{spec.id}' needs endpoint and model_name")

        self.spec = spec
        self.client = client
        self.settings = settings or AuditSettings()
        self.max_attempts = spec.max_attempts or GENERATIVE_MAX_ATTEMPTS
        self._sleep = sleep

    def build_prompt(self, query: str) -> str:
        if self.settings.augment_prompt:
            return f"{query}{PROMPT_AUGMENTATION}"
        return query

    def build_payload(self, query: str, degraded: bool = False) -> dict[str, Any]:
        """
        Request body for one attempt.

        The degraded payload keeps only the required fields.
        """
        payload: dict[str, Any] = {
            "user_prompt": self.build_prompt(query),
            "model_name": self.spec.model_name,
        }
        if not degraded:
            payload["max_output_tokens"] = self.settings.max_output_tokens
            payload["temperature"] = self.settings.temperature
        return payload

    async def _attempt(self, query: str, degraded: bool) -> AttemptOutcome:
        task = await self.client.post_task(
            self.spec.endpoint or "", self.build_payload(query, degraded)
        )
        if not task.ok:
            return AttemptOutcome.failed(
                task.failure or FailureKind.TRANSIENT,
                task.error or "Unknown provider error",
                cost=task.cost,
            )

        text = extract_response_text(task)
        if not text.strip():
            return AttemptOutcome.failed(
                FailureKind.EMPTY_RESPONSE,
                "No live LLM response returned - empty response",
                cost=task.cost,
            )

        result = task.result
        return AttemptOutcome(
            text=text,
            cost=task.cost,
            input_tokens=int(result.get("input_tokens") or 0),
            output_tokens=int(result.get("output_tokens") or 0),
        )

    async def invoke(self, query: str, location_code: int) -> ProviderResult:
        """
        Query the provider with retries; location_code is not used.

        Returns:
            ProviderResult whose cost sums all attempts
        """
        start = time.monotonic()
        outcomes: list[AttemptOutcome] = []
        degraded = False

        def should_retry(outcome: AttemptOutcome) -> bool:
            if outcome.failure == FailureKind.MALFORMED_REQUEST:
                return not degraded
            return is_retryable(outcome)

        retrying = create_retrying(self.max_attempts, should_retry, self._sleep)
        async for attempt in retrying:
            with attempt:
                # Degrade once the previous attempt was rejected as malformed
                if outcomes and outcomes[-1].failure == FailureKind.MALFORMED_REQUEST:
                    if not degraded:
                        logger.info(
                            f"{self.spec.id}: retrying with minimal payload "
                            f"(optional fields dropped)"
                        )
                    degraded = True

                outcome = await self._attempt(query, degraded)
                outcomes.append(outcome)

                if not outcome.ok:
                    log_with_context(
                        logger,
                        logging.WARNING,
                        f"{self.spec.id}: attempt {len(outcomes)}/"
                        f"{self.max_attempts} failed: {outcome.error}",
                        context={
                            "provider": self.spec.id,
                            "failure": str(outcome.failure),
                            "attempt": len(outcomes),
                            "cost": outcome.cost,
                        },
                    )
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(outcome)

        latency_ms = int((time.monotonic() - start) * 1000)
        result = ProviderResult.from_outcomes(self.spec, outcomes, latency_ms)

        log_with_context(
            logger,
            logging.INFO if result.success else logging.WARNING,
            f"{self.spec.id}: {'success' if result.success else 'failed'} after "
            f"{result.attempts} attempt(s)",
            context={
                "provider": self.spec.id,
                "model": self.spec.model_name,
                "latency_ms": latency_ms,
                "cost": result.cost,
                "chars": len(result.text),
                "failure": result.error_type,
            },
        )
        return result
