"""
Visibility metrics over the ModelResults of one audit.

Pure functions, no side effects. Failed results never contribute: every
metric is computed over successful results only, and an empty or
all-failed set yields zeros (average rank: None) instead of dividing by
zero.

Metrics:
- share_of_voice: % of successful results mentioning the brand
- average_rank: mean numbered-list rank, one decimal, None if never ranked
- visibility_score: weighted per-result score (citation, rank, mentions)
- trust_index: 60% citation rate + 40% authority rate
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from geo_audit.extractor.parser import ModelResult

from .agreement import Agreement

CITED_BASE_SCORE = 100
MENTIONED_BASE_SCORE = 50

# Rank 1 earns 30, rank 2 earns 20, rank 3 earns 10, rank 4+ earns 0
RANK_BONUS_MAX = 30
RANK_BONUS_STEP = 10

MENTION_BONUS_PER_MENTION = 5
MENTION_BONUS_MAX = 20

CITATION_RATE_WEIGHT = 0.6
AUTHORITY_RATE_WEIGHT = 0.4


@dataclass(frozen=True)
class AuditSummary:
    """
    Aggregate metrics of one audit, computed once after collection.

    share_of_voice, visibility_score and trust_index are integers in 0-100.
    total_models_checked counts successful results only; models_failed
    counts the rest.
    """

    share_of_voice: int
    average_rank: float | None
    total_citations: int
    visibility_score: int
    trust_index: int
    total_cost: float
    total_models_checked: int = 0
    models_failed: int = 0
    visible_in: int = 0
    cited_in: int = 0
    agreement: Agreement | None = None
    total_latency_ms: int = 0

    @classmethod
    def zeroed(cls) -> "AuditSummary":
        return cls(
            share_of_voice=0,
            average_rank=None,
            total_citations=0,
            visibility_score=0,
            trust_index=0,
            total_cost=0.0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "share_of_voice": self.share_of_voice,
            "average_rank": self.average_rank,
            "total_citations": self.total_citations,
            "visibility_score": self.visibility_score,
            "trust_index": self.trust_index,
            "total_cost": self.total_cost,
            "total_models_checked": self.total_models_checked,
            "models_failed": self.models_failed,
            "visible_in": self.visible_in,
            "cited_in": self.cited_in,
            "agreement": self.agreement,
            "total_latency_ms": self.total_latency_ms,
        }


def _successful(results: Sequence[ModelResult]) -> list[ModelResult]:
    return [r for r in results if r.success]


def _percent(part: int, whole: int) -> float:
    return 100.0 * part / whole if whole else 0.0


def round_half_up(value: float, digits: int = 0) -> float:
    """Round to `digits` decimals with halves going up: 12.5 -> 13, 2.25 -> 2.3."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def share_of_voice(results: Sequence[ModelResult]) -> int:
    """round(100 * mentioned / successful), 0 without successful results."""
    successful = _successful(results)
    mentioned = sum(1 for r in successful if r.brand_mentioned)
    return int(round_half_up(_percent(mentioned, len(successful))))


def average_rank(results: Sequence[ModelResult]) -> float | None:
    """Mean rank over successful ranked results, one decimal; None if unranked."""
    ranks = [r.rank for r in _successful(results) if r.rank is not None]
    if not ranks:
        return None
    return round_half_up(sum(ranks) / len(ranks), 1)


def result_visibility(result: ModelResult) -> int:
    """
    Unweighted visibility of one successful result.

    base (100 cited, 50 mentioned, 0 otherwise)
    + max(0, 30 - (rank - 1) * 10) when ranked
    + min(20, mentions * 5)
    """
    if result.is_cited:
        score = CITED_BASE_SCORE
    elif result.brand_mentioned:
        score = MENTIONED_BASE_SCORE
    else:
        score = 0

    if result.rank is not None:
        score += max(0, RANK_BONUS_MAX - (result.rank - 1) * RANK_BONUS_STEP)

    score += min(MENTION_BONUS_MAX, result.mention_count * MENTION_BONUS_PER_MENTION)
    return score


def calculate_visibility_score(results: Sequence[ModelResult]) -> int:
    """
    round(sum(weight * result_visibility) / sum(weight)) over successful results.

    Example:
        >>> calculate_visibility_score([])
        0
    """
    successful = _successful(results)
    total_weight = sum(r.weight for r in successful)
    if total_weight <= 0:
        return 0
    weighted = sum(r.weight * result_visibility(r) for r in successful)
    return int(round_half_up(weighted / total_weight))


def calculate_trust_index(results: Sequence[ModelResult]) -> int:
    """round(0.6 * citation rate + 0.4 * authority rate), rates in percent."""
    successful = _successful(results)
    if not successful:
        return 0
    cited = sum(1 for r in successful if r.is_cited)
    authority = sum(1 for r in successful if r.authority_tier == "authority")
    rate = CITATION_RATE_WEIGHT * _percent(cited, len(successful)) + (
        AUTHORITY_RATE_WEIGHT * _percent(authority, len(successful))
    )
    return int(round_half_up(rate))


def total_citations(results: Sequence[ModelResult]) -> int:
    return sum(len(r.citations) for r in _successful(results))


def compute_summary(
    results: Sequence[ModelResult],
    agreement: Agreement | None = None,
) -> AuditSummary:
    """
    Compute every summary metric for one audit.

    total_cost covers all results, failed ones included.
    """
    successful = _successful(results)
    return AuditSummary(
        share_of_voice=share_of_voice(results),
        average_rank=average_rank(results),
        total_citations=total_citations(results),
        visibility_score=calculate_visibility_score(results),
        trust_index=calculate_trust_index(results),
        total_cost=round(sum(r.cost for r in results), 6),
        total_models_checked=len(successful),
        models_failed=len(results) - len(successful),
        visible_in=sum(1 for r in successful if r.brand_mentioned),
        cited_in=sum(1 for r in successful if r.is_cited),
        agreement=agreement,
        total_latency_ms=sum(r.latency_ms for r in results),
    )
