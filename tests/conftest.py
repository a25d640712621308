"""Shared fixtures: provider specs, requests and a recording no-op sleep."""

import pytest

from geo_audit.audit.agreement import assess_agreement
from geo_audit.audit.orchestrator import OrchestrationResult
from geo_audit.config.providers import ProviderRegistry
from geo_audit.config.schema import (
    AuditRequest,
    AuditSettings,
    ProviderBackend,
    ProviderKind,
    ProviderSpec,
)
from geo_audit.extractor.parser import parse_provider_result
from geo_audit.providers.models import FailureKind, ProviderResult


class RecordingSleep:
    """Async sleep replacement that returns immediately and records delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def no_sleep():
    return RecordingSleep()


def make_spec(
    provider_id: str,
    kind: ProviderKind = ProviderKind.GENERATIVE_ANSWER,
    weight: float = 1.0,
    **overrides,
) -> ProviderSpec:
    return ProviderSpec(
        id=provider_id,
        kind=kind,
        backend=overrides.pop("backend", ProviderBackend.MOCK),
        display_name=overrides.pop("display_name", provider_id.title()),
        vendor=overrides.pop("vendor", "Test"),
        weight=weight,
        **overrides,
    )


@pytest.fixture
def generative_spec():
    return make_spec("chatgpt", display_name="ChatGPT", vendor="OpenAI")


@pytest.fixture
def search_spec():
    return make_spec(
        "google_ai_overview", ProviderKind.SEARCH_RESULT, weight=0.85
    )


@pytest.fixture
def mock_registry():
    return ProviderRegistry.from_specs(
        [
            make_spec("chatgpt"),
            make_spec("claude", weight=0.95),
            make_spec("gemini", weight=0.95),
            make_spec("google_ai_overview", ProviderKind.SEARCH_RESULT, weight=0.85),
        ]
    )


@pytest.fixture
def fast_settings():
    return AuditSettings(
        stagger_seconds=2.5,
        timeout_seconds=30,
        default_providers=["chatgpt", "claude"],
    )


@pytest.fixture
def audit_request():
    return AuditRequest(
        query="best dating apps",
        brand_name="Acme",
        competitors=("Bumble", "Tinder"),
    )


def make_orchestration(request, answers, failed=()):
    """
    OrchestrationResult from {provider_id: answer_text}, without any fan-out.

    Providers listed in failed get an auth failure instead of an answer.
    """
    results = []
    for provider_id, text in answers.items():
        spec = make_spec(provider_id)
        if provider_id in failed:
            raw = ProviderResult.failure_result(
                provider_id, spec.kind, FailureKind.AUTH, "HTTP 401", latency_ms=100
            )
        else:
            raw = ProviderResult(
                provider_id=provider_id,
                kind=spec.kind,
                success=True,
                text=text,
                latency_ms=1000,
                cost=0.02,
                attempts=1,
            )
        results.append(parse_provider_result(raw, request, spec))

    return OrchestrationResult(
        model_results=tuple(results),
        agreement=assess_agreement([r.text for r in results if r.success]),
        total_cost=round(sum(r.cost for r in results), 6),
        total_latency_ms=sum(r.latency_ms for r in results),
        wall_time_ms=1200,
    )


@pytest.fixture
def sample_orchestration(audit_request):
    return make_orchestration(
        audit_request,
        {
            "chatgpt": "1. Acme - https://acme.com\n2. Bumble\n3. Tinder",
            "claude": "1. Bumble (bumble.com)\n2. Acme is great, see https://acme.com/app",
            "gemini": "",
        },
        failed=("gemini",),
    )
