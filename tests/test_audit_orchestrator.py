"""
Tests for audit.orchestrator module.

Tests cover:
- Results in requested order regardless of completion order
- Stagger delays for generative providers only
- Unknown provider ids rejected before fan-out
- Failure isolation (adapter failures and unexpected exceptions)
- Whole-audit timeout keeping completed results
- Agreement and cost totals
- Single-use state machine
"""

import asyncio

import pytest

from geo_audit.audit.orchestrator import AuditOrchestrator, AuditState
from geo_audit.config.schema import AuditRequest, AuditSettings
from geo_audit.exceptions import AuditValidationError
from geo_audit.providers.mock_client import MockProviderAdapter
from geo_audit.providers.models import AttemptOutcome, FailureKind

ANSWERS = {
    "chatgpt": "1. Acme offers reliable matching\n2. Bumble has verified profiles",
    "claude": "1. Bumble has verified profiles\n2. Acme offers reliable matching",
    "gemini": "Tinder is popular with younger daters.",
    "google_ai_overview": "Acme and Bumble lead dating app reviews.",
}


def make_adapters(registry, no_sleep, **overrides):
    adapters = {
        spec.id: MockProviderAdapter(
            spec=spec,
            default_response=ANSWERS[spec.id],
            cost_per_response=0.02,
            sleep=no_sleep,
        )
        for spec in registry
    }
    adapters.update(overrides)
    return adapters


def request_for(*providers):
    return AuditRequest(
        query="best dating apps",
        brand_name="Acme",
        competitors=["Bumble", "Tinder"],
        providers=list(providers),
    )


class TestResolveProviders:
    """Test suite for AuditOrchestrator.resolve_providers()."""

    def test_requested_order(self, mock_registry, fast_settings):
        orchestrator = AuditOrchestrator(mock_registry, lambda s: None, fast_settings)

        specs = orchestrator.resolve_providers(request_for("gemini", "chatgpt"))

        assert [s.id for s in specs] == ["gemini", "chatgpt"]

    def test_defaults_when_none_requested(self, mock_registry, fast_settings):
        orchestrator = AuditOrchestrator(mock_registry, lambda s: None, fast_settings)

        specs = orchestrator.resolve_providers(request_for())

        assert [s.id for s in specs] == ["chatgpt", "claude"]

    def test_unknown_provider(self, mock_registry, fast_settings):
        orchestrator = AuditOrchestrator(mock_registry, lambda s: None, fast_settings)

        with pytest.raises(AuditValidationError, match="Unknown provider"):
            orchestrator.resolve_providers(request_for("chatgpt", "bing"))


class TestAuditOrchestratorRun:
    """Test suite for AuditOrchestrator.run()."""

    @pytest.mark.asyncio
    async def test_results_in_requested_order(
        self, mock_registry, fast_settings, no_sleep
    ):
        adapters = make_adapters(mock_registry, no_sleep)
        orchestrator = AuditOrchestrator(
            mock_registry, lambda spec: adapters[spec.id], fast_settings, sleep=no_sleep
        )

        outcome = await orchestrator.run(
            request_for("google_ai_overview", "gemini", "chatgpt", "claude")
        )

        assert [r.provider_id for r in outcome.model_results] == [
            "google_ai_overview",
            "gemini",
            "chatgpt",
            "claude",
        ]
        assert all(r.success for r in outcome.model_results)
        assert outcome.total_cost == pytest.approx(0.08)
        assert outcome.timed_out == ()
        assert orchestrator.state == AuditState.DONE

    @pytest.mark.asyncio
    async def test_generative_providers_staggered(
        self, mock_registry, fast_settings, no_sleep
    ):
        adapters = make_adapters(mock_registry, no_sleep)
        orchestrator = AuditOrchestrator(
            mock_registry, lambda spec: adapters[spec.id], fast_settings, sleep=no_sleep
        )

        await orchestrator.run(
            request_for("chatgpt", "google_ai_overview", "claude", "gemini")
        )

        # Search providers start immediately; generative ones at 0, 2.5, 5.0
        assert sorted(no_sleep.delays) == [2.5, 5.0]

    @pytest.mark.asyncio
    async def test_enrichment_and_agreement(
        self, mock_registry, fast_settings, no_sleep
    ):
        adapters = make_adapters(mock_registry, no_sleep)
        orchestrator = AuditOrchestrator(
            mock_registry, lambda spec: adapters[spec.id], fast_settings, sleep=no_sleep
        )

        outcome = await orchestrator.run(request_for("chatgpt", "claude"))

        chatgpt, claude = outcome.model_results
        assert chatgpt.rank == 1
        assert claude.rank == 2
        assert chatgpt.winner == "Acme"
        assert claude.winner == "Bumble"
        assert outcome.agreement == "high"

    @pytest.mark.asyncio
    async def test_single_generative_answer_has_no_agreement(
        self, mock_registry, fast_settings, no_sleep
    ):
        adapters = make_adapters(mock_registry, no_sleep)
        orchestrator = AuditOrchestrator(
            mock_registry, lambda spec: adapters[spec.id], fast_settings, sleep=no_sleep
        )

        outcome = await orchestrator.run(request_for("chatgpt", "google_ai_overview"))

        assert outcome.agreement is None

    @pytest.mark.asyncio
    async def test_provider_failure_isolated(
        self, mock_registry, fast_settings, no_sleep
    ):
        claude = mock_registry.get("claude")
        failing = MockProviderAdapter(
            spec=claude,
            script=[AttemptOutcome.failed(FailureKind.AUTH, "HTTP 401", cost=0.0)],
            sleep=no_sleep,
        )
        adapters = make_adapters(mock_registry, no_sleep, claude=failing)
        orchestrator = AuditOrchestrator(
            mock_registry, lambda spec: adapters[spec.id], fast_settings, sleep=no_sleep
        )

        outcome = await orchestrator.run(request_for("chatgpt", "claude", "gemini"))

        results = {r.provider_id: r for r in outcome.model_results}
        assert results["chatgpt"].success is True
        assert results["gemini"].success is True
        assert results["claude"].success is False
        assert results["claude"].error_type == "provider_auth"

    @pytest.mark.asyncio
    async def test_unexpected_exception_isolated(
        self, mock_registry, fast_settings, no_sleep
    ):
        adapters = make_adapters(mock_registry, no_sleep)

        def factory(spec):
            if spec.id == "gemini":
                raise RuntimeError("adapter exploded")
            return adapters[spec.id]

        orchestrator = AuditOrchestrator(
            mock_registry, factory, fast_settings, sleep=no_sleep
        )

        outcome = await orchestrator.run(request_for("chatgpt", "gemini"))

        gemini = outcome.model_results[1]
        assert gemini.success is False
        assert gemini.error_type == "provider_transient"
        assert gemini.error.startswith("Unexpected error: RuntimeError")
        assert outcome.model_results[0].success is True

    @pytest.mark.asyncio
    async def test_timeout_keeps_completed_results(self, mock_registry, no_sleep):
        settings = AuditSettings(stagger_seconds=0, timeout_seconds=0.05)
        slow = MockProviderAdapter(
            spec=mock_registry.get("claude"),
            default_response="never returned",
            delay_seconds=30,
            sleep=asyncio.sleep,
        )
        adapters = make_adapters(mock_registry, no_sleep, claude=slow)
        orchestrator = AuditOrchestrator(
            mock_registry, lambda spec: adapters[spec.id], settings, sleep=no_sleep
        )

        outcome = await orchestrator.run(request_for("chatgpt", "claude"))

        chatgpt, claude = outcome.model_results
        assert chatgpt.success is True
        assert claude.success is False
        assert claude.error == "Timed out after 0.05s"
        assert claude.error_type == "provider_transient"
        assert outcome.timed_out == ("claude",)

    @pytest.mark.asyncio
    async def test_unknown_provider_calls_nothing(
        self, mock_registry, fast_settings, no_sleep
    ):
        adapters = make_adapters(mock_registry, no_sleep)
        orchestrator = AuditOrchestrator(
            mock_registry, lambda spec: adapters[spec.id], fast_settings, sleep=no_sleep
        )

        with pytest.raises(AuditValidationError):
            await orchestrator.run(request_for("chatgpt", "bing"))

        assert adapters["chatgpt"].calls == []

    @pytest.mark.asyncio
    async def test_runs_only_once(self, mock_registry, fast_settings, no_sleep):
        adapters = make_adapters(mock_registry, no_sleep)
        orchestrator = AuditOrchestrator(
            mock_registry, lambda spec: adapters[spec.id], fast_settings, sleep=no_sleep
        )
        await orchestrator.run(request_for("chatgpt"))

        with pytest.raises(RuntimeError, match="single audit"):
            await orchestrator.run(request_for("chatgpt"))
