"""
Configuration loader for GEO Audit.

Loads the YAML configuration file, validates it with the AuditConfig
Pydantic model and resolves provider credentials from environment
variables into a RuntimeConfig.

Credentials are resolved leniently: a missing variable leaves the secret
unset. Only when an audit actually requests a provider whose backend needs
that secret does require_credentials() raise CredentialsMissingError, so a
Tavily-only audit runs without DataForSEO credentials and vice versa.

Functions:
    load_config: Load and validate a YAML configuration file
    default_config: Built-in configuration when no file is given
    resolve_credentials: Read provider secrets from the environment
    require_credentials: Check the secrets needed by a set of providers
"""

import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from pydantic import ValidationError

from geo_audit.exceptions import (
    ConfigFileNotFoundError,
    ConfigValidationError,
    CredentialsMissingError,
)

from .providers import DEFAULT_PROVIDERS, ProviderRegistry
from .schema import (
    AuditConfig,
    AuditSettings,
    CredentialSettings,
    Credentials,
    ProviderBackend,
    ProviderSpec,
    StorageSettings,
)


@dataclass(frozen=True)
class RuntimeConfig:
    """
    Fully resolved configuration handed to the audit service.

    Attributes:
        registry: Immutable provider registry
        settings: Audit tunables (stagger, timeout, top-N sizes)
        storage: Storage sink locations
        credentials: Provider secrets resolved from the environment
        credential_env: Environment variable names the secrets came from
    """

    registry: ProviderRegistry
    settings: AuditSettings
    storage: StorageSettings
    credentials: Credentials
    credential_env: CredentialSettings = field(default_factory=CredentialSettings)


def load_config(config_path: str | Path) -> RuntimeConfig:
    """
    Load a YAML configuration file and resolve credentials from the environment.

    Args:
        config_path: Path to the YAML file

    Returns:
        RuntimeConfig ready for run_audit()

    Raises:
        ConfigFileNotFoundError: If the file does not exist
        ConfigValidationError: If the YAML is invalid or fails validation

    Example:
        >>> config = load_config("geo_audit.config.yaml")
        >>> config.registry.ids()
        ('chatgpt', 'claude', 'gemini', 'perplexity', 'google_ai_overview', ...)

    Security:
        - Secrets are read from environment variables only
        - Uses yaml.safe_load()
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigFileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open(encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(
            f"Failed to read configuration file {config_path}: {e}"
        ) from e

    # An empty file means "all defaults"
    if raw_config is None:
        raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigValidationError(
            f"Configuration root must be a mapping in {config_path}"
        )

    try:
        audit_config = AuditConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigValidationError(
            f"Configuration validation failed in {config_path}:\n"
            + format_validation_errors(e)
        ) from e

    return build_runtime_config(audit_config)


def default_config() -> RuntimeConfig:
    """Return the built-in configuration with credentials from the environment."""
    return build_runtime_config(AuditConfig())


def build_runtime_config(audit_config: AuditConfig) -> RuntimeConfig:
    """
    Turn a validated AuditConfig into a RuntimeConfig.

    Raises:
        ConfigValidationError: If default_providers names an unknown provider
    """
    specs: Iterable[ProviderSpec] = audit_config.providers or DEFAULT_PROVIDERS
    registry = ProviderRegistry.from_specs(specs)

    unknown = [
        p for p in audit_config.audit_settings.default_providers if p not in registry
    ]
    if unknown:
        raise ConfigValidationError(
            f"audit_settings.default_providers references unknown providers: "
            f"{', '.join(unknown)}"
        )

    return RuntimeConfig(
        registry=registry,
        settings=audit_config.audit_settings,
        storage=audit_config.storage,
        credentials=resolve_credentials(audit_config.credentials),
        credential_env=audit_config.credentials,
    )


def resolve_credentials(settings: CredentialSettings) -> Credentials:
    """Read provider secrets from the environment variables named in settings."""

    def _env(name: str) -> str | None:
        value = os.environ.get(name, "").strip()
        return value or None

    return Credentials(
        dataforseo_login=_env(settings.env_dataforseo_login),
        dataforseo_password=_env(settings.env_dataforseo_password),
        tavily_api_key=_env(settings.env_tavily_api_key),
    )


def require_credentials(
    specs: Iterable[ProviderSpec],
    credentials: Credentials,
    settings: CredentialSettings | None = None,
) -> None:
    """
    Check that every backend used by specs has its secrets.

    Raises:
        CredentialsMissingError: Naming the first missing environment variable
    """
    settings = settings or CredentialSettings()
    backends = {spec.backend for spec in specs}

    if ProviderBackend.DATAFORSEO_LLM in backends or (
        ProviderBackend.DATAFORSEO_SERP in backends
    ):
        if not credentials.dataforseo_login:
            raise CredentialsMissingError(
                f"Environment variable ${settings.env_dataforseo_login} not set "
                f"(required for DataForSEO providers)"
            )
        if not credentials.dataforseo_password:
            raise CredentialsMissingError(
                f"Environment variable ${settings.env_dataforseo_password} not set "
                f"(required for DataForSEO providers)"
            )

    if ProviderBackend.TAVILY in backends and not credentials.tavily_api_key:
        raise CredentialsMissingError(
            f"Environment variable ${settings.env_tavily_api_key} not set "
            f"(required for the Tavily provider)"
        )


def format_validation_errors(exc: ValidationError) -> str:
    """Render pydantic errors as indented "- location: message" lines."""
    lines = []
    for error in exc.errors():
        loc = ".".join(str(x) for x in error["loc"])
        msg = error["msg"].removeprefix("Value error, ")
        lines.append(f"  - {loc}: {msg}" if loc else f"  - {msg}")
    return "\n".join(lines)
