"""
Brand and competitor signal extraction from a single answer text.

Everything here is a deterministic heuristic over plain text: no network
calls, no randomness, no language model. The same text and terms always
produce the same signals.

Key features:
- Case-insensitive, non-overlapping mention counting over brand + aliases
- Rank detection from numbered list lines ("1. Acme", "2) Bumble", "3] Tinder")
- Keyword-window sentiment (positive/negative word lists, majority wins)
- Competitor analysis sorted by mention count
- Winner determination across brand and competitors

Heuristics and their limits:
- Sentiment is a keyword count in a character window around the first
  mention. It does not understand negation ("not the best" is positive).
- Rank is the number of the first numbered line containing a term. Outline
  markers such as "1.1." are not list items and yield no rank.
- Counting is substring based, so "Acme" also counts inside "Acmeware".

The heuristics sit behind the TextAnalyzer protocol so a model-based
analyzer can replace HeuristicTextAnalyzer without touching callers.

Example:
    >>> signals = analyze_brand("1. Acme is the best\\n2. Bumble", "Acme", ())
    >>> signals.mentioned, signals.count, signals.rank, signals.sentiment
    (True, 1, 1, 'positive')
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Literal, Protocol

Sentiment = Literal["positive", "neutral", "negative"]

# "1. item", "2) item", "3] item", optionally bolded ("1. **item**").
# A digit right after the marker means an outline number ("1.1 item", "2.3) item").
NUMBERED_LINE_PATTERN = re.compile(r"^\s*(\d+)[.)\]](?!\d)\s*\*{0,2}(.+)")

BRAND_SENTIMENT_WINDOW = 100
COMPETITOR_SENTIMENT_WINDOW = 50

POSITIVE_WORDS = (
    "best",
    "top",
    "excellent",
    "recommended",
    "leading",
    "trusted",
    "popular",
    "great",
    "amazing",
    "reliable",
    "safe",
    "premium",
    "innovative",
    "award",
    "favorite",
    "preferred",
    "quality",
)

NEGATIVE_WORDS = (
    "avoid",
    "poor",
    "worst",
    "bad",
    "unreliable",
    "scam",
    "fake",
    "terrible",
    "issues",
    "problems",
    "complaints",
    "disappointing",
    "overpriced",
    "slow",
    "buggy",
    "unsafe",
)


@dataclass(frozen=True)
class BrandSignals:
    """
    Signals for one party (brand or competitor) in one answer.

    Attributes:
        mentioned: True when count > 0
        count: Non-overlapping case-insensitive occurrences of all terms
        rank: Number of the first numbered list line mentioning a term
        sentiment: Keyword-window sentiment around the first mention
        matched_terms: Terms that occurred at least once, in input order
    """

    mentioned: bool
    count: int
    rank: int | None
    sentiment: Sentiment
    matched_terms: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CompetitorMention:
    """A competitor found in an answer."""

    name: str
    count: int
    rank: int | None
    sentiment: Sentiment


class TextAnalyzer(Protocol):
    """
    Extracts mention, rank and sentiment signals for a set of terms.

    Implementations must be deterministic for a given text and terms.
    """

    def analyze(
        self, text: str, terms: Sequence[str], window: int = BRAND_SENTIMENT_WINDOW
    ) -> BrandSignals: ...


def _clean_terms(terms: Iterable[str]) -> list[str]:
    return [t for t in (term.strip() for term in terms if term) if t]


def count_occurrences(text: str, term: str) -> int:
    """
    Count non-overlapping case-insensitive occurrences of term in text.

    The scan cursor jumps past each match, so "aa" occurs twice in "aaaa".
    """
    if not text or not term:
        return 0

    haystack = text.lower()
    needle = term.lower()
    count = 0
    position = haystack.find(needle)
    while position != -1:
        count += 1
        position = haystack.find(needle, position + len(needle))
    return count


def count_mentions(text: str, terms: Sequence[str]) -> tuple[int, list[str]]:
    """
    Sum occurrences of every term and report which terms matched.

    Args:
        text: Answer text
        terms: Brand name followed by aliases (or a single competitor name)

    Returns:
        (total count, matched terms in input order)
    """
    total = 0
    matched: list[str] = []
    for term in _clean_terms(terms):
        occurrences = count_occurrences(text, term)
        if occurrences:
            total += occurrences
            matched.append(term)
    return total, matched


def detect_rank(text: str, terms: Sequence[str]) -> int | None:
    """
    Return the number of the first numbered list line that mentions a term.

    Lines are scanned top to bottom and scanning stops at the first match.
    Returns None when no numbered line mentions any term, never 0.

    Examples:
        >>> detect_rank("1. Acme\\n2. Bumble\\n3. Tinder", ["Tinder"])
        3
        >>> detect_rank("Acme is great", ["Acme"]) is None
        True
    """
    lowered_terms = [t.lower() for t in _clean_terms(terms)]
    if not text or not lowered_terms:
        return None

    for line in text.splitlines():
        match = NUMBERED_LINE_PATTERN.match(line)
        if not match:
            continue
        content = match.group(2).lower()
        if any(term in content for term in lowered_terms):
            return int(match.group(1))
    return None


def analyze_sentiment(context: str) -> Sentiment:
    """
    Classify a snippet by counting positive and negative keywords.

    Each keyword counts at most once. More positive than negative hits is
    "positive", the reverse is "negative", anything else is "neutral".
    """
    lowered = context.lower()
    positive = sum(1 for word in POSITIVE_WORDS if word in lowered)
    negative = sum(1 for word in NEGATIVE_WORDS if word in lowered)

    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def sentiment_around(text: str, terms: Sequence[str], window: int) -> Sentiment:
    """
    Sentiment of the ±window characters around the earliest term occurrence.

    Returns "neutral" when no term occurs in text.
    """
    lowered = text.lower()
    first_index = -1
    first_term = ""
    for term in _clean_terms(terms):
        index = lowered.find(term.lower())
        if index != -1 and (first_index == -1 or index < first_index):
            first_index = index
            first_term = term

    if first_index == -1:
        return "neutral"

    start = max(0, first_index - window)
    end = min(len(text), first_index + len(first_term) + window)
    return analyze_sentiment(text[start:end])


def analyze_brand(
    text: str,
    brand_name: str,
    aliases: Sequence[str] = (),
    window: int = BRAND_SENTIMENT_WINDOW,
) -> BrandSignals:
    """
    Compute mention, rank and sentiment signals for the brand and its aliases.

    Args:
        text: Answer text
        brand_name: Brand being audited
        aliases: Alternative names counted as the brand
        window: Sentiment window in characters on each side of the mention

    Returns:
        BrandSignals; an empty text yields an unmentioned, neutral result
    """
    terms = [brand_name, *aliases]
    count, matched = count_mentions(text, terms)
    if count == 0:
        return BrandSignals(
            mentioned=False,
            count=0,
            rank=None,
            sentiment="neutral",
        )

    return BrandSignals(
        mentioned=True,
        count=count,
        rank=detect_rank(text, terms),
        sentiment=sentiment_around(text, terms, window),
        matched_terms=tuple(matched),
    )


def analyze_competitors(
    text: str,
    competitors: Sequence[str],
    analyzer: TextAnalyzer | None = None,
) -> list[CompetitorMention]:
    """
    Analyze each competitor as a single-term party.

    Returns competitors with at least one mention, sorted by descending
    count. Ties keep the input order.
    """
    analyzer = analyzer or HeuristicTextAnalyzer()
    found: list[CompetitorMention] = []

    for name in _clean_terms(competitors):
        signals = analyzer.analyze(text, [name], COMPETITOR_SENTIMENT_WINDOW)
        if signals.count == 0:
            continue
        found.append(
            CompetitorMention(
                name=name,
                count=signals.count,
                rank=signals.rank,
                sentiment=signals.sentiment,
            )
        )

    found.sort(key=lambda mention: mention.count, reverse=True)
    return found


def find_winner(
    brand: tuple[str, BrandSignals],
    competitors: Sequence[CompetitorMention],
) -> str:
    """
    Pick the party that leads an answer.

    A party ranked 1 wins outright (the brand is checked first). Otherwise
    the highest mention count wins, ties going to the better (lower) rank;
    a missing rank counts as worst. Returns "" when nobody is mentioned.

    Args:
        brand: (display name, signals) for the brand
        competitors: Competitor mentions for the same answer
    """
    brand_name, brand_signals = brand
    parties: list[tuple[str, int, int | None]] = []
    if brand_signals.count > 0:
        parties.append((brand_name, brand_signals.count, brand_signals.rank))
    parties.extend((c.name, c.count, c.rank) for c in competitors)

    for name, _count, rank in parties:
        if rank == 1:
            return name

    mentioned = [party for party in parties if party[1] > 0]
    if not mentioned:
        return ""

    def sort_key(party: tuple[str, int, int | None]) -> tuple[int, float]:
        _name, count, rank = party
        return (-count, rank if rank is not None else float("inf"))

    return min(mentioned, key=sort_key)[0]


class HeuristicTextAnalyzer:
    """Keyword and pattern based TextAnalyzer. See module docstring for limits."""

    def analyze(
        self, text: str, terms: Sequence[str], window: int = BRAND_SENTIMENT_WINDOW
    ) -> BrandSignals:
        terms = list(terms)
        if not terms:
            return BrandSignals(mentioned=False, count=0, rank=None, sentiment="neutral")
        return analyze_brand(text or "", terms[0], terms[1:], window)
