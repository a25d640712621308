"""
Provider registry: the immutable table of providers an audit can query.

The registry is a value. It is built once (from the built-in defaults or a
configuration file) and injected into the orchestrator, so tests substitute
their own registry instead of patching module state.

Built-in providers:
    chatgpt, claude, gemini, perplexity  generative answers via DataForSEO
    google_ai_overview, google_serp      Google SERP via DataForSEO
    tavily                               Tavily real-time web search
"""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from .schema import ProviderBackend, ProviderKind, ProviderSpec

DEFAULT_PROVIDERS: tuple[ProviderSpec, ...] = (
    ProviderSpec(
        id="chatgpt",
        kind=ProviderKind.GENERATIVE_ANSWER,
        backend=ProviderBackend.DATAFORSEO_LLM,
        display_name="ChatGPT",
        vendor="OpenAI",
        weight=1.0,
        cost_per_query=0.02,
        endpoint="/ai_optimization/chat_gpt/llm_responses/live",
        model_name="gpt-4.1-mini",
    ),
    ProviderSpec(
        id="claude",
        kind=ProviderKind.GENERATIVE_ANSWER,
        backend=ProviderBackend.DATAFORSEO_LLM,
        display_name="Claude",
        vendor="Anthropic",
        weight=0.95,
        cost_per_query=0.02,
        endpoint="/ai_optimization/claude/llm_responses/live",
        model_name="claude-sonnet-4-0",
    ),
    ProviderSpec(
        id="gemini",
        kind=ProviderKind.GENERATIVE_ANSWER,
        backend=ProviderBackend.DATAFORSEO_LLM,
        display_name="Gemini",
        vendor="Google",
        weight=0.95,
        cost_per_query=0.02,
        endpoint="/ai_optimization/gemini/llm_responses/live",
        model_name="gemini-2.5-flash",
    ),
    ProviderSpec(
        id="perplexity",
        kind=ProviderKind.GENERATIVE_ANSWER,
        backend=ProviderBackend.DATAFORSEO_LLM,
        display_name="Perplexity",
        vendor="Perplexity AI",
        weight=0.9,
        cost_per_query=0.02,
        endpoint="/ai_optimization/perplexity/llm_responses/live",
        model_name="sonar-pro",
    ),
    ProviderSpec(
        id="google_ai_overview",
        kind=ProviderKind.SEARCH_RESULT,
        backend=ProviderBackend.DATAFORSEO_SERP,
        display_name="Google AI Overview",
        vendor="Google",
        weight=0.85,
        cost_per_query=0.003,
        endpoint="/serp/google/organic/live/advanced",
        serp_mode="ai_overview",
    ),
    ProviderSpec(
        id="google_serp",
        kind=ProviderKind.SEARCH_RESULT,
        backend=ProviderBackend.DATAFORSEO_SERP,
        display_name="Google Search",
        vendor="Google",
        weight=0.7,
        cost_per_query=0.002,
        endpoint="/serp/google/organic/live/advanced",
        serp_mode="organic",
    ),
    ProviderSpec(
        id="tavily",
        kind=ProviderKind.SEARCH_RESULT,
        backend=ProviderBackend.TAVILY,
        display_name="Tavily",
        vendor="Tavily",
        weight=0.8,
        cost_per_query=0.0,
    ),
)


@dataclass(frozen=True)
class ProviderRegistry:
    """
    Read-only mapping of provider id to ProviderSpec, in declaration order.

    Example:
        >>> registry = ProviderRegistry.from_specs(DEFAULT_PROVIDERS)
        >>> registry.get("chatgpt").weight
        1.0
        >>> "unknown" in registry
        False
    """

    specs: Mapping[str, ProviderSpec]

    @classmethod
    def from_specs(cls, specs: Iterable[ProviderSpec]) -> "ProviderRegistry":
        table: dict[str, ProviderSpec] = {}
        for spec in specs:
            if spec.id in table:
                raise ValueError(f"Duplicate provider id: {spec.id}")
            table[spec.id] = spec
        return cls(specs=MappingProxyType(table))

    def get(self, provider_id: str) -> ProviderSpec | None:
        return self.specs.get(provider_id)

    def ids(self) -> tuple[str, ...]:
        return tuple(self.specs)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self.specs

    def __iter__(self) -> Iterator[ProviderSpec]:
        return iter(self.specs.values())

    def __len__(self) -> int:
        return len(self.specs)


def default_registry() -> ProviderRegistry:
    """Return a registry holding the built-in providers."""
    return ProviderRegistry.from_specs(DEFAULT_PROVIDERS)
