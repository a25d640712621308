"""
Provider adapters for GEO Audit.

Every adapter turns one provider call into a ProviderResult:
- GenerativeAnswerAdapter: live LLM answers (ChatGPT, Claude, Gemini, Perplexity)
- SearchResultAdapter: Google organic results and AI overview
- TavilySearchAdapter: Tavily real-time web search
- MockProviderAdapter: deterministic adapter for tests and dry runs

Use build_adapter() to create the adapter for a ProviderSpec.
"""

from .models import (
    AttemptOutcome,
    FailureKind,
    ProviderAdapter,
    ProviderResult,
    build_adapter,
)

__all__ = [
    "AttemptOutcome",
    "FailureKind",
    "ProviderAdapter",
    "ProviderResult",
    "build_adapter",
]
