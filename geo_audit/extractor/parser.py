"""
Enrichment of provider results into ModelResults.

parse_provider_result() is the single place where a raw ProviderResult meets
the extractors: brand signals, competitor analysis, winner determination,
citations and the derived "is cited" flag and authority tier.

Citation sources differ per provider family:
- generative answers: explicit and implicit citations extracted from text
- search results: the structured sources returned by the provider

Example:
    >>> model_result = parse_provider_result(provider_result, request, spec)
    >>> model_result.brand_mentioned, model_result.rank, model_result.authority_tier
    (True, 2, 'alternative')
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from geo_audit.config.schema import AuditRequest, ProviderKind, ProviderSpec
from geo_audit.providers.models import ProviderResult

from .citations import Citation, extract_citations, mark_brand_owned
from .signals import (
    CompetitorMention,
    HeuristicTextAnalyzer,
    Sentiment,
    TextAnalyzer,
    analyze_competitors,
    find_winner,
)

logger = logging.getLogger(__name__)

AuthorityTier = Literal["authority", "alternative", "mentioned"]

# Brand mentions needed (with a brand-owned citation) for the authority tier
AUTHORITY_MENTION_THRESHOLD = 2


@dataclass(frozen=True)
class ModelResult:
    """
    A ProviderResult enriched with brand, competitor and citation signals.

    Attributes:
        provider_id: Provider identifier
        display_name: Human-readable provider name
        vendor: Company behind the provider
        kind: Provider family
        weight: Importance weight in the visibility score
        success: Whether the provider returned usable text
        error: Human-readable failure description
        error_type: Failure category, e.g. "provider_auth"
        text: Raw answer text
        latency_ms: Time spent in the adapter
        cost: Cost of every attempt, failed ones included
        attempts: HTTP attempts made
        brand_mentioned: Brand or an alias occurs in the text
        mention_count: Non-overlapping brand/alias occurrences
        rank: Numbered-list position of the brand (None when absent)
        sentiment: Keyword sentiment around the first brand mention
        matched_terms: Brand terms that occurred
        winner: Party leading this answer ("" when nobody is mentioned)
        competitors: Competitors found, by descending mention count
        citations: Deduplicated citations in order of appearance
        is_cited: At least one citation points at the brand's own site
        authority_tier: "authority", "alternative" or "mentioned"
    """

    provider_id: str
    display_name: str
    vendor: str
    kind: ProviderKind
    weight: float
    success: bool
    error: str | None = None
    error_type: str | None = None
    text: str = ""
    latency_ms: int = 0
    cost: float = 0.0
    attempts: int = 0
    brand_mentioned: bool = False
    mention_count: int = 0
    rank: int | None = None
    sentiment: Sentiment = "neutral"
    matched_terms: tuple[str, ...] = ()
    winner: str = ""
    competitors: tuple[CompetitorMention, ...] = field(default_factory=tuple)
    citations: tuple[Citation, ...] = field(default_factory=tuple)
    is_cited: bool = False
    authority_tier: AuthorityTier = "mentioned"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider_id,
            "display_name": self.display_name,
            "vendor": self.vendor,
            "kind": str(self.kind),
            "weight": self.weight,
            "success": self.success,
            "error": self.error,
            "error_type": self.error_type,
            "raw_response": self.text,
            "response_length": len(self.text),
            "latency_ms": self.latency_ms,
            "cost": self.cost,
            "attempts": self.attempts,
            "brand_mentioned": self.brand_mentioned,
            "brand_mention_count": self.mention_count,
            "brand_rank": self.rank,
            "brand_sentiment": self.sentiment,
            "matched_terms": list(self.matched_terms),
            "winner_brand": self.winner,
            "competitors_found": [
                {
                    "name": c.name,
                    "count": c.count,
                    "rank": c.rank,
                    "sentiment": c.sentiment,
                }
                for c in self.competitors
            ],
            "citations": [c.to_dict() for c in self.citations],
            "citation_count": len(self.citations),
            "is_cited": self.is_cited,
            "authority_type": self.authority_tier,
        }


def classify_authority(is_cited: bool, mention_count: int) -> AuthorityTier:
    """Authority when cited with more than two mentions, alternative when cited."""
    if is_cited and mention_count > AUTHORITY_MENTION_THRESHOLD:
        return "authority"
    if is_cited:
        return "alternative"
    return "mentioned"


def _result_citations(
    result: ProviderResult, request: AuditRequest
) -> list[Citation]:
    if result.kind == ProviderKind.SEARCH_RESULT and result.sources:
        return mark_brand_owned(result.sources, request.brand_terms, request.brand_domain)
    return extract_citations(
        result.text,
        request.brand_name,
        request.brand_aliases,
        request.competitors,
        request.brand_domain,
    )


def parse_provider_result(
    result: ProviderResult,
    request: AuditRequest,
    spec: ProviderSpec | None = None,
    analyzer: TextAnalyzer | None = None,
) -> ModelResult:
    """
    Run the extractors over one provider result.

    Args:
        result: Raw provider result
        request: Audit request (brand, aliases, competitors, domain)
        spec: Provider description for display name, vendor and weight;
            unknown providers get weight 1.0
        analyzer: Signal analyzer, HeuristicTextAnalyzer by default

    Returns:
        ModelResult; failed results carry no signals
    """
    analyzer = analyzer or HeuristicTextAnalyzer()
    base: dict[str, Any] = {
        "provider_id": result.provider_id,
        "display_name": spec.label if spec else result.provider_id,
        "vendor": spec.vendor if spec else "",
        "kind": result.kind,
        "weight": spec.weight if spec else 1.0,
        "success": result.success,
        "error": result.error,
        "error_type": result.error_type,
        "text": result.text,
        "latency_ms": result.latency_ms,
        "cost": result.cost,
        "attempts": result.attempts,
    }

    if not result.success or not result.text:
        return ModelResult(**base)

    brand = analyzer.analyze(result.text, list(request.brand_terms))
    competitors = analyze_competitors(result.text, request.competitors, analyzer)
    citations = _result_citations(result, request)
    is_cited = any(c.is_brand_owned for c in citations)

    logger.debug(
        f"{result.provider_id}: mentioned={brand.mentioned} count={brand.count} "
        f"rank={brand.rank} citations={len(citations)} cited={is_cited}"
    )

    return ModelResult(
        **base,
        brand_mentioned=brand.mentioned,
        mention_count=brand.count,
        rank=brand.rank,
        sentiment=brand.sentiment,
        matched_terms=brand.matched_terms,
        winner=find_winner((request.brand_name, brand), competitors),
        competitors=tuple(competitors),
        citations=tuple(citations),
        is_cited=is_cited,
        authority_tier=classify_authority(is_cited, brand.count),
    )
