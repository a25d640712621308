"""
Pydantic models for GEO Audit configuration and audit requests.

Two families of models live here:

- Configuration (AuditConfig and its sections) mirrors the YAML file and is
  turned into a RuntimeConfig by the loader once credentials have been
  resolved from the environment.
- AuditRequest is the validated, immutable input of one audit invocation.
  Incoming strings are sanitized (trimmed, angle brackets and control
  characters removed, length-capped) before they are validated.

Payload field names used by the HTTP front end (prompt_text, brand_tags,
models) are accepted as aliases of the Python names.
"""

import re
from enum import StrEnum
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from .constants import (
    DEFAULT_AUDIT_TIMEOUT_SECONDS,
    DEFAULT_LOCATION_CODE,
    DEFAULT_PROVIDER_IDS,
    DEFAULT_STAGGER_SECONDS,
    DEFAULT_TOP_COMPETITORS,
    DEFAULT_TOP_SOURCES,
    MAX_DOMAIN_LENGTH,
    MAX_LOCATION_CODE,
    MAX_NAME_LENGTH,
    MAX_QUERY_LENGTH,
    MIN_LOCATION_CODE,
    MIN_QUERY_LENGTH,
)

_UNSAFE_CHARS = re.compile(r"[<>\x00-\x1f\x7f]")


def sanitize_text(value: Any, max_length: int) -> str:
    """
    Trim a value, strip angle brackets and control characters, cap its length.

    Args:
        value: Raw input (non-strings are converted with str(); None -> "")
        max_length: Maximum number of characters kept

    Returns:
        Sanitized string, possibly empty

    Example:
        >>> sanitize_text("  <b>Acme</b>\\n ", 100)
        'bAcme/b'
    """
    if value is None:
        return ""
    cleaned = _UNSAFE_CHARS.sub("", str(value).strip())
    return cleaned[:max_length].strip()


def _as_list(value: Any, field_name: str) -> list[Any]:
    """A single string becomes a one-item list; other non-sequences are rejected."""
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ValueError(f"{field_name} must be a list of names")
    return list(value)


class ProviderKind(StrEnum):
    """Provider family. Each family has its own normalization path."""

    GENERATIVE_ANSWER = "generative_answer"
    SEARCH_RESULT = "search_result"


class ProviderBackend(StrEnum):
    """Remote API a provider is reached through."""

    DATAFORSEO_LLM = "dataforseo_llm"
    DATAFORSEO_SERP = "dataforseo_serp"
    TAVILY = "tavily"
    MOCK = "mock"


_BACKEND_KINDS = {
    ProviderBackend.DATAFORSEO_LLM: {ProviderKind.GENERATIVE_ANSWER},
    ProviderBackend.DATAFORSEO_SERP: {ProviderKind.SEARCH_RESULT},
    ProviderBackend.TAVILY: {ProviderKind.SEARCH_RESULT},
    ProviderBackend.MOCK: {ProviderKind.GENERATIVE_ANSWER, ProviderKind.SEARCH_RESULT},
}


class ProviderSpec(BaseModel):
    """
    Static description of one provider: identity, family, weight and cost.

    Attributes:
        id: Provider identifier used in requests (e.g. "chatgpt")
        kind: Generative-answer or search-result family
        backend: Remote API used to reach the provider
        display_name: Human-readable name (e.g. "ChatGPT")
        vendor: Company behind the provider (e.g. "OpenAI")
        weight: Importance weight in the visibility score
        cost_per_query: Nominal cost per call in USD, used when the
            provider does not report a cost
        endpoint: API path for DataForSEO backends
        model_name: Model identifier sent to generative endpoints
        serp_mode: "organic" or "ai_overview" for the DataForSEO SERP backend
        max_attempts: Attempt budget override; defaults per family
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    kind: ProviderKind
    backend: ProviderBackend
    display_name: str = ""
    vendor: str = ""
    weight: float = Field(default=1.0, gt=0.0)
    cost_per_query: float = Field(default=0.0, ge=0.0)
    endpoint: str | None = None
    model_name: str | None = None
    serp_mode: Literal["organic", "ai_overview"] = "organic"
    max_attempts: int | None = Field(default=None, ge=1, le=10)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        v = v.strip().lower()
        if not re.fullmatch(r"[a-z0-9_\-]+", v):
            raise ValueError(
                "Provider id must contain only lowercase letters, digits, "
                "hyphens and underscores"
            )
        return v

    @model_validator(mode="after")
    def validate_backend(self) -> "ProviderSpec":
        if self.kind not in _BACKEND_KINDS[self.backend]:
            raise ValueError(
                f"Backend '{self.backend}' cannot serve a {self.kind} provider"
            )
        if self.backend == ProviderBackend.DATAFORSEO_LLM:
            if not self.endpoint or not self.model_name:
                raise ValueError(
                    f"Provider '{self.id}': dataforseo_llm requires endpoint "
                    f"and model_name"
                )
        return self

    @property
    def label(self) -> str:
        return self.display_name or self.id


class AuditSettings(BaseModel):
    """Tunables for one audit invocation."""

    stagger_seconds: float = Field(default=DEFAULT_STAGGER_SECONDS, ge=0.0)
    timeout_seconds: float = Field(default=DEFAULT_AUDIT_TIMEOUT_SECONDS, gt=0.0)
    request_timeout_seconds: float = Field(default=60.0, gt=0.0)
    augment_prompt: bool = True
    max_output_tokens: int = Field(default=1000, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_sources: int = Field(default=DEFAULT_TOP_SOURCES, ge=1)
    top_competitors: int = Field(default=DEFAULT_TOP_COMPETITORS, ge=1)
    default_providers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PROVIDER_IDS)
    )

    @field_validator("default_providers")
    @classmethod
    def validate_default_providers(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("default_providers must list at least one provider")
        return [p.strip().lower() for p in v]


class StorageSettings(BaseModel):
    """Where audit records are written. Both sinks are optional."""

    sqlite_db_path: str | None = "./output/geo_audit.db"
    output_dir: str | None = None


class CredentialSettings(BaseModel):
    """Names of the environment variables holding provider credentials."""

    env_dataforseo_login: str = "DATAFORSEO_LOGIN"
    env_dataforseo_password: str = "DATAFORSEO_PASSWORD"
    env_tavily_api_key: str = "TAVILY_API_KEY"


class AuditConfig(BaseModel):
    """Root model of the YAML configuration file."""

    providers: list[ProviderSpec] | None = None
    audit_settings: AuditSettings = Field(default_factory=AuditSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    credentials: CredentialSettings = Field(default_factory=CredentialSettings)

    @field_validator("providers")
    @classmethod
    def validate_providers_unique(
        cls, v: list[ProviderSpec] | None
    ) -> list[ProviderSpec] | None:
        if v is None:
            return v
        if not v:
            raise ValueError("providers must not be empty when given")
        seen: set[str] = set()
        for spec in v:
            if spec.id in seen:
                raise ValueError(f"Duplicate provider id: {spec.id}")
            seen.add(spec.id)
        return v


class Credentials(BaseModel):
    """Resolved provider secrets. Never logged or written to disk."""

    model_config = ConfigDict(frozen=True)

    dataforseo_login: str | None = None
    dataforseo_password: str | None = None
    tavily_api_key: str | None = None

    def __repr__(self) -> str:
        present = [
            name
            for name in ("dataforseo_login", "dataforseo_password", "tavily_api_key")
            if getattr(self, name)
        ]
        return f"Credentials(present={present})"

    __str__ = __repr__


class AuditRequest(BaseModel):
    """
    Immutable input of one audit invocation.

    Attributes:
        query: Natural-language query sent to every provider (3-500 chars)
        brand_name: Brand being audited
        brand_aliases: Alternative names counted as the brand
        competitors: Competitor names tracked alongside the brand
        location_code: Market/location code for search providers
        providers: Ordered provider ids; empty means the configured defaults
        brand_domain: Brand's own domain, used to flag brand-owned citations
        client_id: Owning client, passed through to storage
        campaign_id: Owning campaign, passed through to storage
        prompt_id: Stored prompt this audit was run for
        prompt_category: Free-form category label
        save: Hand the assembled record to the storage collaborator
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    query: str = Field(validation_alias=AliasChoices("query", "prompt_text"))
    brand_name: str
    brand_aliases: tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("brand_aliases", "brand_tags")
    )
    competitors: tuple[str, ...] = ()
    location_code: int = Field(
        default=DEFAULT_LOCATION_CODE, ge=MIN_LOCATION_CODE, le=MAX_LOCATION_CODE
    )
    providers: tuple[str, ...] = Field(
        default=(), validation_alias=AliasChoices("providers", "models")
    )
    brand_domain: str | None = None
    client_id: str | None = None
    campaign_id: str | None = None
    prompt_id: str | None = None
    prompt_category: str = "custom"
    save: bool = False

    @field_validator("query", mode="before")
    @classmethod
    def validate_query(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            raise ValueError("Query is required")
        if len(str(v).strip()) > MAX_QUERY_LENGTH:
            raise ValueError(f"Query must be {MAX_QUERY_LENGTH} characters or less")
        cleaned = sanitize_text(v, MAX_QUERY_LENGTH)
        if len(cleaned) < MIN_QUERY_LENGTH:
            raise ValueError(f"Query must be at least {MIN_QUERY_LENGTH} characters")
        return cleaned

    @field_validator("brand_name", mode="before")
    @classmethod
    def validate_brand_name(cls, v: Any) -> str:
        cleaned = sanitize_text(v, MAX_NAME_LENGTH)
        if not cleaned:
            raise ValueError("Brand name is required")
        return cleaned

    @field_validator("brand_aliases", "competitors", mode="before")
    @classmethod
    def validate_names(cls, v: Any, info: ValidationInfo) -> tuple[str, ...]:
        if v is None:
            return ()
        v = _as_list(v, info.field_name)

        names: list[str] = []
        seen: set[str] = set()
        for raw in v:
            name = sanitize_text(raw, MAX_NAME_LENGTH)
            if name and name.lower() not in seen:
                seen.add(name.lower())
                names.append(name)
        return tuple(names)

    @field_validator("providers", mode="before")
    @classmethod
    def validate_providers(cls, v: Any, info: ValidationInfo) -> tuple[str, ...]:
        if v is None:
            return ()
        v = _as_list(v, info.field_name)

        ids: list[str] = []
        for raw in v:
            provider_id = sanitize_text(raw, MAX_NAME_LENGTH).lower()
            if provider_id and provider_id not in ids:
                ids.append(provider_id)
        return tuple(ids)

    @field_validator("brand_domain", mode="before")
    @classmethod
    def validate_brand_domain(cls, v: Any) -> str | None:
        cleaned = sanitize_text(v, MAX_DOMAIN_LENGTH).lower()
        cleaned = re.sub(r"^https?://", "", cleaned)
        cleaned = re.sub(r"^www\.", "", cleaned).rstrip("/")
        return cleaned or None

    @field_validator("client_id", "campaign_id", "prompt_id", mode="before")
    @classmethod
    def validate_identifiers(cls, v: Any) -> str | None:
        cleaned = sanitize_text(v, MAX_NAME_LENGTH)
        return cleaned or None

    @field_validator("prompt_category", mode="before")
    @classmethod
    def validate_prompt_category(cls, v: Any) -> str:
        return sanitize_text(v, MAX_NAME_LENGTH) or "custom"

    @property
    def brand_terms(self) -> tuple[str, ...]:
        """Brand name followed by its aliases."""
        return (self.brand_name, *self.brand_aliases)
