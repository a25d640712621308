"""
Audit orchestration: concurrent fan-out to providers for one audit.

One AuditOrchestrator runs exactly one audit and moves through
pending -> fanning_out -> collecting -> done, never revisiting a state.

Key features:
- One asyncio task per requested provider
- Generative providers are staggered (index * stagger_seconds) to avoid
  burst rate limits; search providers start immediately
- Each task writes only its own slot of a pre-sized, provider-indexed list,
  and cost/latency are summed after the join, so no locking is needed
- A provider failure (or an unexpected exception inside an adapter) becomes
  a failed result for that provider only
- A whole-audit timeout cancels outstanding tasks; their providers are
  recorded as failed and every collected result is kept
- Results are returned in requested order regardless of completion order

Example:
    >>> orchestrator = AuditOrchestrator(registry, adapter_factory, settings)
    >>> outcome = await orchestrator.run(request)
    >>> [r.provider_id for r in outcome.model_results]
    ['chatgpt', 'claude', 'google_ai_overview']
    >>> outcome.agreement
    'medium'
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from geo_audit.config.providers import ProviderRegistry
from geo_audit.config.schema import (
    AuditRequest,
    AuditSettings,
    ProviderKind,
    ProviderSpec,
)
from geo_audit.exceptions import AuditValidationError
from geo_audit.extractor.parser import ModelResult, parse_provider_result
from geo_audit.extractor.signals import HeuristicTextAnalyzer, TextAnalyzer
from geo_audit.providers.models import (
    FailureKind,
    ProviderAdapter,
    ProviderResult,
    SleepFunc,
)
from geo_audit.utils.logging import log_with_context

from .agreement import Agreement, assess_agreement

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ProviderSpec], ProviderAdapter]


class AuditState(StrEnum):
    PENDING = "pending"
    FANNING_OUT = "fanning_out"
    COLLECTING = "collecting"
    DONE = "done"


@dataclass(frozen=True)
class OrchestrationResult:
    """
    Everything collected from the providers of one audit.

    Attributes:
        model_results: Enriched results in requested order
        agreement: Generative agreement level, None with fewer than two
            successful generative answers
        total_cost: Sum of every provider's cost, failed calls included
        total_latency_ms: Sum of per-provider latencies
        wall_time_ms: Elapsed time of the whole fan-out
        timed_out: Providers abandoned when the audit timed out
    """

    model_results: tuple[ModelResult, ...]
    agreement: Agreement | None
    total_cost: float
    total_latency_ms: int
    wall_time_ms: int
    timed_out: tuple[str, ...] = ()


class AuditOrchestrator:
    """
    Fans one audit request out to its providers and collects the results.

    Attributes:
        registry: Immutable provider registry
        adapter_factory: Builds the adapter for a ProviderSpec
        settings: Stagger delay, timeout and default providers
        analyzer: Text signal analyzer used for enrichment
        audit_id: Identifier attached to log lines
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        adapter_factory: AdapterFactory,
        settings: AuditSettings | None = None,
        analyzer: TextAnalyzer | None = None,
        sleep: SleepFunc = asyncio.sleep,
        audit_id: str | None = None,
    ):
        self.registry = registry
        self.adapter_factory = adapter_factory
        self.settings = settings or AuditSettings()
        self.analyzer = analyzer or HeuristicTextAnalyzer()
        self.audit_id = audit_id
        self._sleep = sleep
        self._state = AuditState.PENDING

    @property
    def state(self) -> AuditState:
        return self._state

    def _transition(self, new_state: AuditState) -> None:
        order = list(AuditState)
        if order.index(new_state) != order.index(self._state) + 1:
            raise RuntimeError(
                f"Invalid audit state transition: {self._state} -> {new_state}"
            )
        log_with_context(
            logger,
            logging.DEBUG,
            f"Audit state: {self._state} -> {new_state}",
            audit_id=self.audit_id,
        )
        self._state = new_state

    def resolve_providers(self, request: AuditRequest) -> list[ProviderSpec]:
        """
        Provider specs for the request, in requested order.

        Raises:
            AuditValidationError: If a requested provider is not registered
        """
        provider_ids = request.providers or tuple(self.settings.default_providers)
        unknown = [pid for pid in provider_ids if pid not in self.registry]
        if unknown:
            raise AuditValidationError(
                f"Unknown provider(s): {', '.join(unknown)}. "
                f"Available: {', '.join(self.registry.ids())}"
            )
        return [self.registry.specs[pid] for pid in provider_ids]

    async def _call_provider(
        self,
        slots: list[ProviderResult | None],
        index: int,
        spec: ProviderSpec,
        query: str,
        location_code: int,
        delay: float,
    ) -> None:
        if delay > 0:
            await self._sleep(delay)

        try:
            adapter = self.adapter_factory(spec)
            slots[index] = await adapter.invoke(query, location_code)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Provider {spec.id} raised an unexpected error: {e}", exc_info=True
            )
            slots[index] = ProviderResult.failure_result(
                spec.id,
                spec.kind,
                FailureKind.TRANSIENT,
                f"Unexpected error: {type(e).__name__}: {e}",
            )

    async def run(self, request: AuditRequest) -> OrchestrationResult:
        """
        Run the audit: fan out, collect, enrich, assess agreement.

        Raises:
            AuditValidationError: If the request names unknown providers
            RuntimeError: If this orchestrator already ran
        """
        if self._state != AuditState.PENDING:
            raise RuntimeError("AuditOrchestrator instances run a single audit")

        specs = self.resolve_providers(request)
        start = time.monotonic()

        self._transition(AuditState.FANNING_OUT)
        slots: list[ProviderResult | None] = [None] * len(specs)
        tasks: list[asyncio.Task] = []
        generative_index = 0
        for index, spec in enumerate(specs):
            delay = 0.0
            if spec.kind == ProviderKind.GENERATIVE_ANSWER:
                delay = generative_index * self.settings.stagger_seconds
                generative_index += 1
            tasks.append(
                asyncio.create_task(
                    self._call_provider(
                        slots, index, spec, request.query, request.location_code, delay
                    ),
                    name=f"provider:{spec.id}",
                )
            )

        log_with_context(
            logger,
            logging.INFO,
            f"Fan-out to {len(specs)} provider(s)",
            context={
                "providers": [s.id for s in specs],
                "stagger_seconds": self.settings.stagger_seconds,
                "timeout_seconds": self.settings.timeout_seconds,
            },
            audit_id=self.audit_id,
        )

        self._transition(AuditState.COLLECTING)
        _done, pending = await asyncio.wait(
            tasks, timeout=self.settings.timeout_seconds
        )
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        timed_out: list[str] = []
        for index, spec in enumerate(specs):
            if slots[index] is None:
                timed_out.append(spec.id)
                slots[index] = ProviderResult.failure_result(
                    spec.id,
                    spec.kind,
                    FailureKind.TRANSIENT,
                    f"Timed out after {self.settings.timeout_seconds:g}s",
                    latency_ms=int((time.monotonic() - start) * 1000),
                )
        if timed_out:
            logger.warning(f"Audit timed out waiting for: {', '.join(timed_out)}")

        provider_results = [slot for slot in slots if slot is not None]
        model_results = tuple(
            parse_provider_result(result, request, spec, self.analyzer)
            for result, spec in zip(provider_results, specs, strict=True)
        )

        agreement = assess_agreement(
            [
                r.text
                for r in model_results
                if r.success and r.kind == ProviderKind.GENERATIVE_ANSWER
            ]
        )

        outcome = OrchestrationResult(
            model_results=model_results,
            agreement=agreement,
            total_cost=round(sum(r.cost for r in model_results), 6),
            total_latency_ms=sum(r.latency_ms for r in model_results),
            wall_time_ms=int((time.monotonic() - start) * 1000),
            timed_out=tuple(timed_out),
        )
        self._transition(AuditState.DONE)

        succeeded = sum(1 for r in model_results if r.success)
        log_with_context(
            logger,
            logging.INFO,
            f"Collected {succeeded}/{len(model_results)} successful provider results",
            context={
                "agreement": agreement,
                "total_cost": outcome.total_cost,
                "wall_time_ms": outcome.wall_time_ms,
                "timed_out": list(timed_out),
            },
            audit_id=self.audit_id,
        )
        return outcome
