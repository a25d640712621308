"""
Extractors for brand signals and citations in answer text.

Public API:
    - analyze_brand, analyze_competitors, find_winner: brand/competitor signals
    - count_mentions, detect_rank, analyze_sentiment: individual heuristics
    - extract_citations: explicit + implicit citations, brand-owned flagged
    - Citation, CompetitorMention, BrandSignals: result types
"""

from geo_audit.extractor.citations import (
    Citation,
    extract_citations,
    extract_explicit_citations,
    extract_implicit_citations,
    normalize_domain,
)
from geo_audit.extractor.signals import (
    BrandSignals,
    CompetitorMention,
    HeuristicTextAnalyzer,
    TextAnalyzer,
    analyze_brand,
    analyze_competitors,
    analyze_sentiment,
    count_mentions,
    detect_rank,
    find_winner,
)

__all__ = [
    "BrandSignals",
    "Citation",
    "CompetitorMention",
    "HeuristicTextAnalyzer",
    "TextAnalyzer",
    "analyze_brand",
    "analyze_competitors",
    "analyze_sentiment",
    "count_mentions",
    "detect_rank",
    "extract_citations",
    "extract_explicit_citations",
    "extract_implicit_citations",
    "find_winner",
    "normalize_domain",
]
