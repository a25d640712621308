"""
Invocation boundary for one audit.

run_audit() takes an AuditRequest-shaped payload and always returns a
JSON-serializable dict; it never raises for bad input or internal errors:

- success: {"success": True, "data": {...summary, model_results,
  top_sources, top_competitors, agreement, timestamp}}
- invalid request: {"success": False, "error": ..., "error_type":
  "validation", "data": <zeroed>} and no provider is called
- anything else: {"success": False, "error": <sanitized>, "error_type":
  "assembly_internal", "data": <zeroed>}

execute_audit() is the exception-raising core, used by the CLI.

Example:
    >>> response = run_audit(
    ...     {"query": "best crm for startups", "brand_name": "Acme"},
    ...     config=load_config("geo_audit.config.yaml"),
    ... )
    >>> response["data"]["visibility_score"]
    64
"""

import asyncio
import logging
import re
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import ValidationError

from geo_audit.config.constants import MAX_ERROR_LENGTH
from geo_audit.config.loader import (
    RuntimeConfig,
    default_config,
    format_validation_errors,
    require_credentials,
)
from geo_audit.config.schema import AuditRequest, ProviderSpec, StorageSettings
from geo_audit.exceptions import (
    AssemblyError,
    AuditValidationError,
    ErrorType,
    GeoAuditError,
)
from geo_audit.providers.models import ProviderAdapter, SleepFunc, build_adapter
from geo_audit.storage.base import AuditStore
from geo_audit.storage.db import SQLiteAuditStore
from geo_audit.storage.writer import JsonAuditStore
from geo_audit.utils.logging import log_with_context
from geo_audit.utils.time import new_audit_id, utc_timestamp

from .assembler import AuditRecord, ResultAssembler
from .orchestrator import AdapterFactory, AuditOrchestrator
from .scoring import AuditSummary

logger = logging.getLogger(__name__)

SCRIPT_BLOCK_PATTERN = re.compile(r"<script\b.*?</script\s*>", re.IGNORECASE | re.DOTALL)
HTML_TAG_PATTERN = re.compile(r"<[^>]*>")


def parse_request(payload: Mapping[str, Any] | AuditRequest) -> AuditRequest:
    """
    Validate an AuditRequest-shaped payload.

    Raises:
        AuditValidationError: With the first validation message
    """
    if isinstance(payload, AuditRequest):
        return payload
    if not isinstance(payload, Mapping):
        raise AuditValidationError("Request body must be an object")

    try:
        return AuditRequest.model_validate(dict(payload))
    except ValidationError as e:
        first = e.errors()[0]
        message = first["msg"].removeprefix("Value error, ")
        if first["type"] == "missing":
            message = f"{first['loc'][0]} is required"
        logger.debug(f"Invalid audit request:\n{format_validation_errors(e)}")
        raise AuditValidationError(message) from e


def sanitize_error_message(message: str, max_length: int = MAX_ERROR_LENGTH) -> str:
    """Strip script blocks, HTML tags and angle brackets; cap the length."""
    cleaned = SCRIPT_BLOCK_PATTERN.sub("", message)
    cleaned = HTML_TAG_PATTERN.sub("", cleaned)
    cleaned = cleaned.replace("<", "").replace(">", "").strip()
    return cleaned[:max_length] or "Internal error"


def zeroed_data() -> dict[str, Any]:
    return {
        **AuditSummary.zeroed().to_dict(),
        "model_results": [],
        "top_sources": [],
        "top_competitors": [],
        "agreement": None,
        "timestamp": utc_timestamp(),
    }


def error_response(message: str, error_type: str) -> dict[str, Any]:
    return {
        "success": False,
        "error": sanitize_error_message(message),
        "error_type": error_type,
        "data": zeroed_data(),
    }


def build_store(storage: StorageSettings) -> AuditStore | None:
    """SQLite store when a database path is configured, else JSON files, else None."""
    if storage.sqlite_db_path:
        return SQLiteAuditStore(storage.sqlite_db_path)
    if storage.output_dir:
        return JsonAuditStore(storage.output_dir)
    return None


async def execute_audit(
    request: AuditRequest,
    config: RuntimeConfig,
    *,
    store: AuditStore | None = None,
    adapters: Mapping[str, ProviderAdapter] | None = None,
    adapter_factory: AdapterFactory | None = None,
    sleep: SleepFunc = asyncio.sleep,
    http_client: httpx.AsyncClient | None = None,
) -> AuditRecord:
    """
    Run one validated audit end to end and return the assembled record.

    Adapters come from, in order: the adapters mapping (by provider id),
    adapter_factory, or real HTTP adapters built from the configuration,
    which requires credentials for every requested backend.

    Raises:
        AuditValidationError: If the request names unknown providers
        CredentialsMissingError: If a requested backend lacks credentials
    """
    audit_id = new_audit_id()
    settings = config.settings

    def make_orchestrator(factory: AdapterFactory) -> AuditOrchestrator:
        return AuditOrchestrator(
            config.registry, factory, settings, sleep=sleep, audit_id=audit_id
        )

    log_with_context(
        logger,
        logging.INFO,
        f"Starting audit for brand '{request.brand_name}'",
        context={"query": request.query, "providers": list(request.providers)},
        audit_id=audit_id,
    )

    if adapters is not None:
        orchestration = await make_orchestrator(
            _mapping_factory(adapters)
        ).run(request)
    elif adapter_factory is not None:
        orchestration = await make_orchestrator(adapter_factory).run(request)
    else:
        client = http_client

        def http_adapter(spec: ProviderSpec) -> ProviderAdapter:
            return build_adapter(spec, config.credentials, client, settings, sleep)

        orchestrator = make_orchestrator(http_adapter)
        specs = orchestrator.resolve_providers(request)
        require_credentials(specs, config.credentials, config.credential_env)

        if client is None:
            client = httpx.AsyncClient(timeout=settings.request_timeout_seconds)
            try:
                orchestration = await orchestrator.run(request)
            finally:
                await client.aclose()
        else:
            orchestration = await orchestrator.run(request)

    assembler = ResultAssembler(
        store=store,
        top_sources=settings.top_sources,
        top_competitors=settings.top_competitors,
    )
    try:
        record = assembler.assemble(request, orchestration, audit_id=audit_id)
    except Exception as e:
        raise AssemblyError(f"Result assembly failed: {e}") from e

    log_with_context(
        logger,
        logging.INFO,
        f"Audit complete: visibility={record.summary.visibility_score}, "
        f"share_of_voice={record.summary.share_of_voice}",
        context={
            "successful": record.successful_count,
            "total": len(record.model_results),
            "total_cost": record.summary.total_cost,
        },
        audit_id=audit_id,
    )
    return record


def _mapping_factory(adapters: Mapping[str, ProviderAdapter]) -> AdapterFactory:
    def factory(spec: ProviderSpec) -> ProviderAdapter:
        try:
            return adapters[spec.id]
        except KeyError:
            raise ValueError(f"No adapter supplied for provider '{spec.id}'") from None

    return factory


async def run_audit_async(
    payload: Mapping[str, Any] | AuditRequest,
    *,
    config: RuntimeConfig | None = None,
    store: AuditStore | None = None,
    adapters: Mapping[str, ProviderAdapter] | None = None,
    adapter_factory: AdapterFactory | None = None,
    sleep: SleepFunc = asyncio.sleep,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Coroutine form of run_audit() for callers already inside an event loop."""
    try:
        request = parse_request(payload)
        record = await execute_audit(
            request,
            config or default_config(),
            store=store,
            adapters=adapters,
            adapter_factory=adapter_factory,
            sleep=sleep,
            http_client=http_client,
        )
    except AuditValidationError as e:
        logger.warning(f"Audit request rejected: {e}")
        return error_response(str(e), ErrorType.VALIDATION)
    except GeoAuditError as e:
        logger.error(f"Audit failed: {e}")
        return error_response(str(e), e.error_type)
    except Exception as e:
        logger.error(f"Audit failed with an internal error: {e}", exc_info=True)
        return error_response(str(e), ErrorType.ASSEMBLY_INTERNAL)

    return {"success": True, "data": record.to_dict()}


def run_audit(
    payload: Mapping[str, Any] | AuditRequest, **kwargs: Any
) -> dict[str, Any]:
    """
    Run one audit and return the response dict. Never raises.

    Keyword arguments are those of run_audit_async(). Inside a running
    event loop this returns an assembly_internal error without calling any
    provider; await run_audit_async() there instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(run_audit_async(payload, **kwargs))

    logger.error("run_audit() called from a running event loop")
    return error_response(
        "run_audit() cannot be called from a running event loop; "
        "use run_audit_async()",
        ErrorType.ASSEMBLY_INTERNAL,
    )
