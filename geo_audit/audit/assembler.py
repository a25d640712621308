"""
Result assembly: one immutable AuditRecord per audit.

The assembler merges citations and competitors across providers, computes
the summary, and optionally hands the record to an AuditStore. Storage is
best-effort: a failing store is logged as a persistence_failure and the
record is still returned, with saved_id left as None.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

from geo_audit.config.constants import DEFAULT_TOP_COMPETITORS, DEFAULT_TOP_SOURCES
from geo_audit.config.schema import AuditRequest
from geo_audit.exceptions import ErrorType
from geo_audit.extractor.parser import ModelResult
from geo_audit.storage.base import AuditStore
from geo_audit.utils.logging import log_with_context
from geo_audit.utils.time import new_audit_id, utc_timestamp

from .agreement import Agreement
from .orchestrator import OrchestrationResult
from .scoring import AuditSummary, compute_summary, round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergedCitation:
    domain: str
    count: int
    url: str
    title: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "count": self.count,
            "url": self.url,
            "title": self.title,
        }


@dataclass(frozen=True)
class MergedCompetitor:
    name: str
    total_mentions: int
    avg_rank: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "total_mentions": self.total_mentions,
            "avg_rank": self.avg_rank,
        }


@dataclass(frozen=True)
class AuditRecord:
    """
    Assembled output of one audit.

    Attributes:
        audit_id: Identifier, e.g. "2025-11-02T08-00-00Z-1a2b3c4d"
        timestamp: UTC ISO 8601 timestamp of assembly
        request: Validated request the audit ran for
        summary: Aggregate metrics
        model_results: Per-provider results in requested order
        top_sources: Most cited domains across providers
        top_competitors: Most mentioned competitors across providers
        agreement: Generative agreement level, if assessable
        saved_id: Identifier returned by the store, None when not saved
    """

    audit_id: str
    timestamp: str
    request: AuditRequest
    summary: AuditSummary
    model_results: tuple[ModelResult, ...]
    top_sources: tuple[MergedCitation, ...]
    top_competitors: tuple[MergedCompetitor, ...]
    agreement: Agreement | None
    saved_id: str | None = None

    @property
    def successful_count(self) -> int:
        return sum(1 for r in self.model_results if r.success)

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable response data: summary fields flattened at the top."""
        return {
            "audit_id": self.audit_id,
            **self.summary.to_dict(),
            "query": self.request.query,
            "brand_name": self.request.brand_name,
            "model_results": [r.to_dict() for r in self.model_results],
            "top_sources": [c.to_dict() for c in self.top_sources],
            "top_competitors": [c.to_dict() for c in self.top_competitors],
            "agreement": self.agreement,
            "timestamp": self.timestamp,
            "saved_id": self.saved_id,
        }


def merge_citations(
    results: Sequence[ModelResult], top_n: int = DEFAULT_TOP_SOURCES
) -> list[MergedCitation]:
    """
    Merge citations of successful results by domain.

    Each domain keeps the URL and title of its first occurrence and counts
    how many results cited it. Sorted by count descending; ties keep
    first-seen order.
    """
    merged: dict[str, dict[str, Any]] = {}
    for result in results:
        if not result.success:
            continue
        for citation in result.citations:
            entry = merged.get(citation.domain)
            if entry is None:
                merged[citation.domain] = {
                    "count": 1,
                    "url": citation.url,
                    "title": citation.title,
                }
            else:
                entry["count"] += 1

    ordered = sorted(merged.items(), key=lambda item: item[1]["count"], reverse=True)
    return [
        MergedCitation(domain=domain, count=e["count"], url=e["url"], title=e["title"])
        for domain, e in ordered[:top_n]
    ]


def merge_competitors(
    results: Sequence[ModelResult], top_n: int = DEFAULT_TOP_COMPETITORS
) -> list[MergedCompetitor]:
    """Sum competitor mentions by name and average their present ranks."""
    totals: dict[str, int] = {}
    ranks: dict[str, list[int]] = {}
    for result in results:
        if not result.success:
            continue
        for competitor in result.competitors:
            totals[competitor.name] = totals.get(competitor.name, 0) + competitor.count
            ranks.setdefault(competitor.name, [])
            if competitor.rank is not None:
                ranks[competitor.name].append(competitor.rank)

    ordered = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    merged = []
    for name, total in ordered[:top_n]:
        present = ranks[name]
        avg_rank = round_half_up(sum(present) / len(present), 1) if present else None
        merged.append(MergedCompetitor(name=name, total_mentions=total, avg_rank=avg_rank))
    return merged


def citation_rows(record: AuditRecord) -> list[dict[str, Any]]:
    """Flat citation rows handed to AuditStore.save_citations."""
    rows = []
    for result in record.model_results:
        for citation in result.citations:
            rows.append(
                {
                    "provider": result.provider_id,
                    "url": citation.url,
                    "domain": citation.domain,
                    "title": citation.title,
                    "position": citation.position,
                    "is_brand_owned": citation.is_brand_owned,
                    "inferred": citation.inferred,
                }
            )
    return rows


class ResultAssembler:
    """Builds AuditRecords and hands them to an optional AuditStore."""

    def __init__(
        self,
        store: AuditStore | None = None,
        top_sources: int = DEFAULT_TOP_SOURCES,
        top_competitors: int = DEFAULT_TOP_COMPETITORS,
    ):
        self.store = store
        self.top_sources = top_sources
        self.top_competitors = top_competitors

    def assemble(
        self,
        request: AuditRequest,
        orchestration: OrchestrationResult,
        audit_id: str | None = None,
    ) -> AuditRecord:
        results = orchestration.model_results
        record = AuditRecord(
            audit_id=audit_id or new_audit_id(),
            timestamp=utc_timestamp(),
            request=request,
            summary=compute_summary(results, orchestration.agreement),
            model_results=results,
            top_sources=tuple(merge_citations(results, self.top_sources)),
            top_competitors=tuple(merge_competitors(results, self.top_competitors)),
            agreement=orchestration.agreement,
        )

        if request.save and self.store is not None:
            record = self._persist(record)
        return record

    def _persist(self, record: AuditRecord) -> AuditRecord:
        try:
            saved_id = self.store.save_audit(record)
        except Exception as e:
            log_with_context(
                logger,
                logging.WARNING,
                f"Failed to persist audit: {e}",
                context={"error_type": ErrorType.PERSISTENCE_FAILURE},
                audit_id=record.audit_id,
            )
            return record

        logger.info(f"Audit saved as {saved_id}")
        record = replace(record, saved_id=saved_id)

        rows = citation_rows(record)
        if rows:
            # The audit row stays saved even when citation rows fail
            try:
                self.store.save_citations(saved_id, rows)
            except Exception as e:
                log_with_context(
                    logger,
                    logging.WARNING,
                    f"Failed to persist citations for {saved_id}: {e}",
                    context={"error_type": ErrorType.PERSISTENCE_FAILURE},
                    audit_id=record.audit_id,
                )
        return record
