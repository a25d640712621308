"""
Tests for audit.assembler module.

Tests cover:
- Citation merging across providers (count, first URL, ordering, top-N)
- Competitor merging (summed mentions, averaged ranks)
- AuditRecord serialization
- Persistence only when requested, and never fatal
- A saved audit keeps its id when citation rows fail
"""

import logging
import re

import pytest
from conftest import make_orchestration
from freezegun import freeze_time

from geo_audit.audit.assembler import (
    ResultAssembler,
    citation_rows,
    merge_citations,
    merge_competitors,
)
from geo_audit.storage.base import AuditStore


class RecordingStore:
    def __init__(self):
        self.records = []
        self.citations = {}

    def save_audit(self, record):
        self.records.append(record)
        return f"saved-{record.audit_id}"

    def save_citations(self, audit_id, rows):
        self.citations[audit_id] = list(rows)
        return len(rows)


class FailingStore:
    def save_audit(self, record):
        raise OSError("disk full")

    def save_citations(self, audit_id, rows):
        raise AssertionError("not reached")


class CitationFailingStore(RecordingStore):
    def save_citations(self, audit_id, rows):
        raise OSError("citations table locked")


class TestMergeCitations:
    """Test suite for merge_citations()."""

    def test_domain_cited_by_two_providers(self, sample_orchestration):
        merged = merge_citations(sample_orchestration.model_results)

        by_domain = {c.domain: c for c in merged}
        assert by_domain["acme.com"].count == 2
        assert by_domain["acme.com"].url == "https://acme.com"
        assert by_domain["bumble.com"].count == 2
        assert by_domain["tinder.com"].count == 1

    def test_sorted_by_count_then_first_seen(self, sample_orchestration):
        merged = merge_citations(sample_orchestration.model_results)

        assert [c.domain for c in merged] == ["acme.com", "bumble.com", "tinder.com"]

    def test_top_n(self, sample_orchestration):
        assert len(merge_citations(sample_orchestration.model_results, top_n=1)) == 1


class TestMergeCompetitors:
    """Test suite for merge_competitors()."""

    def test_sums_and_averages(self, sample_orchestration):
        merged = merge_competitors(sample_orchestration.model_results)

        assert [c.name for c in merged] == ["Bumble", "Tinder"]
        assert merged[0].total_mentions == 3
        assert merged[0].avg_rank == 1.5
        assert merged[1].total_mentions == 1
        assert merged[1].avg_rank == 3.0

    def test_avg_rank_half_rounds_up(self, audit_request):
        listed_second = "1. Acme\n2. Bumble"
        orchestration = make_orchestration(
            audit_request,
            {
                "chatgpt": listed_second,
                "claude": listed_second,
                "gemini": listed_second,
                "perplexity": "1. Acme\n2. Tinder\n3. Bumble",
            },
        )

        merged = merge_competitors(orchestration.model_results)

        # ranks 2, 2, 2, 3
        assert merged[0].name == "Bumble"
        assert merged[0].avg_rank == 2.3


class TestResultAssembler:
    """Test suite for ResultAssembler.assemble()."""

    @freeze_time("2025-11-02 08:30:45")
    def test_record_fields(self, audit_request, sample_orchestration):
        record = ResultAssembler().assemble(
            audit_request, sample_orchestration, audit_id="audit-1"
        )

        assert record.audit_id == "audit-1"
        assert record.timestamp == "2025-11-02T08:30:45Z"
        assert record.successful_count == 2
        assert record.summary.share_of_voice == 100
        assert record.summary.average_rank == 1.5
        assert record.summary.models_failed == 1
        assert record.summary.total_cost == pytest.approx(0.04)
        assert record.saved_id is None

    def test_generated_audit_id(self, audit_request, sample_orchestration):
        record = ResultAssembler().assemble(audit_request, sample_orchestration)

        assert re.fullmatch(
            r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}Z-[0-9a-f]{8}", record.audit_id
        )

    def test_to_dict(self, audit_request, sample_orchestration):
        data = ResultAssembler().assemble(
            audit_request, sample_orchestration, audit_id="audit-1"
        ).to_dict()

        assert data["audit_id"] == "audit-1"
        assert data["query"] == "best dating apps"
        assert data["brand_name"] == "Acme"
        assert data["share_of_voice"] == 100
        assert [r["provider"] for r in data["model_results"]] == [
            "chatgpt",
            "claude",
            "gemini",
        ]
        assert data["top_sources"][0] == {
            "domain": "acme.com",
            "count": 2,
            "url": "https://acme.com",
            "title": "acme.com",
        }
        assert data["top_competitors"][0]["name"] == "Bumble"

    def test_not_saved_unless_requested(self, audit_request, sample_orchestration):
        store = RecordingStore()

        record = ResultAssembler(store).assemble(audit_request, sample_orchestration)

        assert store.records == []
        assert record.saved_id is None

    def test_saved_when_requested(self, audit_request, sample_orchestration):
        store = RecordingStore()
        request = audit_request.model_copy(update={"save": True})

        record = ResultAssembler(store).assemble(
            request, sample_orchestration, audit_id="audit-1"
        )

        assert record.saved_id == "saved-audit-1"
        assert store.records[0].audit_id == "audit-1"
        rows = store.citations["saved-audit-1"]
        assert rows == citation_rows(record)
        assert {row["provider"] for row in rows} == {"chatgpt", "claude"}

    def test_persistence_failure_not_fatal(
        self, audit_request, sample_orchestration, caplog
    ):
        request = audit_request.model_copy(update={"save": True})

        with caplog.at_level(logging.WARNING):
            record = ResultAssembler(FailingStore()).assemble(
                request, sample_orchestration
            )

        assert record.saved_id is None
        assert record.summary.share_of_voice == 100
        assert "Failed to persist audit" in caplog.text

    def test_citation_failure_keeps_saved_id(
        self, audit_request, sample_orchestration, caplog
    ):
        store = CitationFailingStore()
        request = audit_request.model_copy(update={"save": True})

        with caplog.at_level(logging.WARNING):
            record = ResultAssembler(store).assemble(
                request, sample_orchestration, audit_id="audit-1"
            )

        assert record.saved_id == "saved-audit-1"
        assert store.records[0].audit_id == "audit-1"
        assert "Failed to persist citations for saved-audit-1" in caplog.text

    def test_stores_satisfy_protocol(self):
        assert isinstance(RecordingStore(), AuditStore)
