"""
Cross-provider agreement between generative answers.

A lexical overlap check used as a hallucination-risk signal: answers that
share many of their most frequent words probably describe the same
options. Informational only; no result is ever discarded on agreement.
"""

import re
from collections import Counter
from collections.abc import Sequence
from itertools import combinations
from typing import Literal

Agreement = Literal["high", "medium", "low"]

KEY_TERM_PATTERN = re.compile(r"\b[a-z]{4,}\b")

# Most frequent words kept per answer
TOP_TERMS = 30

# Shared key terms for a pair of answers to agree
AGREEMENT_THRESHOLD = 5


def key_terms(text: str, limit: int = TOP_TERMS) -> set[str]:
    """
    The limit most frequent lowercase words of four or more letters.

    Ties are broken by first appearance, so the result is deterministic.
    """
    counts = Counter(KEY_TERM_PATTERN.findall(text.lower()))
    return {word for word, _count in counts.most_common(limit)}


def shared_terms(first: str, second: str) -> int:
    """Number of key terms two answers have in common."""
    return len(key_terms(first) & key_terms(second))


def assess_agreement(answers: Sequence[str]) -> Agreement | None:
    """
    Classify agreement across successful generative answers.

    Every pair sharing at least AGREEMENT_THRESHOLD key terms agrees.
    "high" when all pairs agree, "medium" when at least one does, "low"
    otherwise. None when fewer than two answers are given.

    Example:
        >>> assess_agreement(["only one answer"]) is None
        True
    """
    if len(answers) < 2:
        return None

    terms = [key_terms(answer) for answer in answers]
    verdicts = [
        len(a & b) >= AGREEMENT_THRESHOLD for a, b in combinations(terms, 2)
    ]

    if all(verdicts):
        return "high"
    if any(verdicts):
        return "medium"
    return "low"
