"""
Custom exceptions for GEO Audit.

Exception Hierarchy:
    GeoAuditError (base)
    ├── ConfigurationError
    │   ├── ConfigFileNotFoundError
    │   ├── ConfigValidationError
    │   └── CredentialsMissingError
    ├── AuditValidationError
    ├── ProviderError
    │   ├── ProviderAuthError
    │   ├── ProviderQuotaError
    │   ├── ProviderTransientError
    │   ├── ProviderEmptyResponseError
    │   └── ProviderMalformedRequestError
    ├── AssemblyError
    └── PersistenceError

Provider adapters do not raise ProviderError subclasses for failed calls;
they return failed ProviderResult values. The provider exceptions exist so
callers that prefer exceptions can convert a failed result with
ProviderResult.raise_for_failure(), and so each failure kind has a single
error_type string shared by logs, records and responses.

Usage:
    from geo_audit.exceptions import AuditValidationError

    try:
        request = parse_request(payload)
    except AuditValidationError as e:
        return error_response(e)
"""


class ErrorType:
    """Error type strings surfaced in logs and invocation responses."""

    VALIDATION = "validation"
    PROVIDER_AUTH = "provider_auth"
    PROVIDER_QUOTA = "provider_quota"
    PROVIDER_TRANSIENT = "provider_transient"
    PROVIDER_EMPTY_RESPONSE = "provider_empty_response"
    PROVIDER_MALFORMED_REQUEST = "provider_malformed_request"
    ASSEMBLY_INTERNAL = "assembly_internal"
    PERSISTENCE_FAILURE = "persistence_failure"


class GeoAuditError(Exception):
    """
    Base exception for all GEO Audit errors.

    Subclasses set error_type so the invocation boundary can report a
    stable machine-readable category next to the message.
    """

    error_type: str = ErrorType.ASSEMBLY_INTERNAL


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(GeoAuditError):
    """
    Base class for configuration-related errors.

    Should be caught and result in exit code 1 (configuration error).
    """

    error_type = ErrorType.VALIDATION


class ConfigFileNotFoundError(ConfigurationError):
    """Configuration file does not exist at the specified path."""


class ConfigValidationError(ConfigurationError):
    """
    Configuration file is invalid (schema validation failed).

    Example:
        raise ConfigValidationError("providers.0.weight: must be positive")
    """


class CredentialsMissingError(ConfigurationError):
    """
    Required provider credentials are not set in the environment.

    Example:
        raise CredentialsMissingError("DATAFORSEO_LOGIN environment variable not set")
    """


# ============================================================================
# Request Errors
# ============================================================================


class AuditValidationError(GeoAuditError):
    """
    Audit request is missing required fields or violates a bound.

    Raised before any provider is called; the whole invocation fails.

    Example:
        raise AuditValidationError("Query must be at least 3 characters")
    """

    error_type = ErrorType.VALIDATION


# ============================================================================
# Provider Errors
# ============================================================================


class ProviderError(GeoAuditError):
    """
    Base class for provider call failures.

    Attributes:
        provider_id: Identifier of the provider that failed
    """

    error_type = ErrorType.PROVIDER_TRANSIENT

    def __init__(self, message: str, provider_id: str | None = None):
        super().__init__(message)
        self.provider_id = provider_id


class ProviderAuthError(ProviderError):
    """Provider rejected the credentials. Never retried."""

    error_type = ErrorType.PROVIDER_AUTH


class ProviderQuotaError(ProviderError):
    """Provider account has no remaining credits or quota. Never retried."""

    error_type = ErrorType.PROVIDER_QUOTA


class ProviderTransientError(ProviderError):
    """Rate limit, server error, timeout or network failure. Retried."""

    error_type = ErrorType.PROVIDER_TRANSIENT


class ProviderEmptyResponseError(ProviderError):
    """Provider answered successfully but with no usable text. Retried."""

    error_type = ErrorType.PROVIDER_EMPTY_RESPONSE


class ProviderMalformedRequestError(ProviderError):
    """Provider rejected the request shape. Retried once with a degraded payload."""

    error_type = ErrorType.PROVIDER_MALFORMED_REQUEST


# ============================================================================
# Assembly and Persistence Errors
# ============================================================================


class AssemblyError(GeoAuditError):
    """Unexpected failure while parsing, scoring or assembling results."""

    error_type = ErrorType.ASSEMBLY_INTERNAL


class PersistenceError(GeoAuditError):
    """
    Storage collaborator failed to save an audit record.

    Never fails the audit itself; the assembler logs it as a warning.
    """

    error_type = ErrorType.PERSISTENCE_FAILURE
