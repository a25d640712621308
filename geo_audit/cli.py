"""
CLI entrypoint for GEO Audit.

Dual-mode command-line interface:
- Human-friendly output: Rich spinners, tables and a summary panel
- Agent-friendly output: one JSON document on stdout (--format json)

Commands:
    run: Audit one query for one brand across providers
    providers: List the provider registry
    validate: Validate a configuration file

Exit codes:
    0: Success - every provider returned an answer
    1: Configuration or request validation error
    2: Database error (cannot create/access the SQLite store)
    3: Partial failure (some providers failed, audit completed)
    4: Complete failure (no provider succeeded)

Examples:
    geo-audit run --query "best crm for startups" --brand Acme \\
        --competitor Bumble --competitor Zenith

    geo-audit run --query "best crm" --brand Acme --dry-run --format json

    geo-audit validate --config geo_audit.config.yaml

Security:
    - Provider credentials are read from environment variables only
    - Errors never contain credentials
"""

import asyncio
import logging
from dataclasses import replace
from pathlib import Path

import typer
from rich.traceback import install as install_rich_traceback

from geo_audit import __version__
from geo_audit.audit.service import build_store, execute_audit, parse_request
from geo_audit.config.loader import RuntimeConfig, default_config, load_config
from geo_audit.config.schema import AuditRequest, ProviderKind, ProviderSpec
from geo_audit.exceptions import (
    AuditValidationError,
    ConfigFileNotFoundError,
    ConfigurationError,
    CredentialsMissingError,
)
from geo_audit.extractor.citations import slugify_name
from geo_audit.providers.mock_client import MockProviderAdapter
from geo_audit.providers.models import ProviderAdapter
from geo_audit.storage.base import AuditStore
from geo_audit.utils.console import (
    console,
    error,
    info,
    output_mode,
    print_audit_summary,
    print_providers_table,
    print_results_table,
    print_sources_table,
    spinner,
    success,
    warning,
)
from geo_audit.utils.logging import setup_logging

install_rich_traceback(show_locals=False)

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0  # All providers successful
EXIT_CONFIG_ERROR = 1  # Config or request validation failed
EXIT_DB_ERROR = 2  # Storage initialization failed
EXIT_PARTIAL_FAILURE = 3  # Some providers failed
EXIT_COMPLETE_FAILURE = 4  # All providers failed

app = typer.Typer(
    name="geo-audit",
    help="Audit how AI answer engines and search represent your brand",
    add_completion=False,
)


def _load_runtime_config(config: Path | None) -> RuntimeConfig:
    if config is None:
        return default_config()
    return load_config(config)


def dry_run_answer(spec: ProviderSpec, request: AuditRequest, position: int) -> str:
    """
    Canned answer for --dry-run.

    The brand moves through list positions per provider so the summary
    shows varied ranks without any network access.
    """
    names = list(request.competitors[:4])
    names.insert(min(position % 3, len(names)), request.brand_name)
    brand_site = request.brand_domain or f"{slugify_name(request.brand_name)}.com"

    if spec.kind == ProviderKind.SEARCH_RESULT:
        lines = ["=== Top Search Results ==="]
        for index, name in enumerate(names, start=1):
            lines.append(f"{index}. {name} review\n   https://{slugify_name(name)}.com")
        return "\n".join(lines)

    lines = [f"Here are strong options for {request.query}:", ""]
    for index, name in enumerate(names, start=1):
        lines.append(f"{index}. **{name}** - a popular, reliable choice")
    lines.append("")
    lines.append(f"See https://{brand_site} for details on {request.brand_name}.")
    return "\n".join(lines)


def build_dry_run_adapters(
    runtime_config: RuntimeConfig, request: AuditRequest
) -> dict[str, ProviderAdapter]:
    provider_ids = request.providers or tuple(runtime_config.settings.default_providers)
    adapters: dict[str, ProviderAdapter] = {}
    for position, provider_id in enumerate(provider_ids):
        spec = runtime_config.registry.get(provider_id)
        if spec is None:
            continue
        adapters[provider_id] = MockProviderAdapter(
            spec=spec,
            default_response=dry_run_answer(spec, request, position),
            cost_per_response=0.0,
        )
    return adapters


@app.command()
def run(
    query: str = typer.Option(..., "--query", help="Query sent to every provider"),
    brand: str = typer.Option(..., "--brand", "-b", help="Brand name to audit"),
    alias: list[str] = typer.Option(
        [], "--alias", "-a", help="Alternative brand name (repeatable)"
    ),
    competitor: list[str] = typer.Option(
        [], "--competitor", help="Competitor name (repeatable)"
    ),
    domain: str | None = typer.Option(
        None, "--domain", "-d", help="Brand's own domain, e.g. acme.com"
    ),
    provider: list[str] = typer.Option(
        [], "--provider", "-p", help="Provider id (repeatable, default: configured set)"
    ),
    location_code: int = typer.Option(
        2840, "--location-code", "-l", help="Market/location code for search providers"
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    save: bool = typer.Option(False, "--save", help="Store the audit record"),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Minimal output (tab-separated values)"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Use canned answers instead of calling providers"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """
    Audit one query for one brand across providers.

    Exit codes:
      0: All providers succeeded
      1: Configuration or validation error
      2: Database error
      3: Partial failure (some providers failed)
      4: Complete failure (no provider succeeded)
    """
    output_mode.format = format
    output_mode.quiet = quiet
    setup_logging(verbose=verbose, quiet_logs=output_mode.is_human())

    try:
        with spinner("Loading configuration..."):
            runtime_config = _load_runtime_config(config)
        request = parse_request(
            {
                "query": query,
                "brand_name": brand,
                "brand_aliases": alias,
                "competitors": competitor,
                "brand_domain": domain,
                "providers": provider,
                "location_code": location_code,
                "save": save,
            }
        )
    except ConfigFileNotFoundError as e:
        error(f"Configuration file not found: {e}")
        output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)
    except ConfigurationError as e:
        error(f"Configuration validation failed: {e}")
        output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)
    except AuditValidationError as e:
        error(f"Invalid audit request: {e}")
        output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)

    store: AuditStore | None = None
    if save:
        try:
            store = build_store(runtime_config.storage)
        except Exception as e:
            error(f"Failed to initialize storage: {e}")
            output_mode.flush_json()
            raise typer.Exit(EXIT_DB_ERROR)
        if store is None:
            warning("--save given but no storage is configured; record not stored")

    adapters = None
    if dry_run:
        # Canned answers hit no rate limits
        runtime_config = replace(
            runtime_config,
            settings=runtime_config.settings.model_copy(update={"stagger_seconds": 0}),
        )
        adapters = build_dry_run_adapters(runtime_config, request)
        info("Dry run: providers answer with canned responses")

    try:
        with spinner(f"Auditing '{request.query}'..."):
            record = asyncio.run(
                execute_audit(request, runtime_config, store=store, adapters=adapters)
            )
    except (AuditValidationError, CredentialsMissingError) as e:
        error(str(e))
        output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)
    except Exception as e:
        logger.error(f"Audit failed: {e}", exc_info=True)
        error(f"Audit failed: {e}")
        output_mode.flush_json()
        raise typer.Exit(EXIT_COMPLETE_FAILURE)

    data = record.to_dict()
    total = len(record.model_results)
    successful = record.successful_count

    if output_mode.is_human():
        for result in record.model_results:
            if not result.success:
                warning(f"{result.display_name}: {result.error}")

    print_results_table(data["model_results"])
    print_sources_table(data["top_sources"], data["top_competitors"])
    if save and store is not None and record.saved_id is None:
        warning("Audit record could not be stored (see logs)")
    print_audit_summary(data, successful, total)

    if successful == 0:
        raise typer.Exit(EXIT_COMPLETE_FAILURE)
    if successful < total:
        raise typer.Exit(EXIT_PARTIAL_FAILURE)
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def providers(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    format: str = typer.Option("text", "--format", "-f", help="Output format"),
):
    """List configured providers, their weights and nominal costs."""
    output_mode.format = format

    try:
        runtime_config = _load_runtime_config(config)
    except ConfigurationError as e:
        error(f"Configuration validation failed: {e}")
        output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)

    defaults = set(runtime_config.settings.default_providers)
    print_providers_table(
        {
            "id": spec.id,
            "display_name": spec.label,
            "kind": str(spec.kind),
            "backend": str(spec.backend),
            "weight": spec.weight,
            "cost_per_query": spec.cost_per_query,
            "default": spec.id in defaults,
        }
        for spec in runtime_config.registry
    )
    output_mode.flush_json()


@app.command()
def validate(
    config: Path = typer.Option(
        ...,
        "--config",
        "-c",
        help="Path to YAML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    format: str = typer.Option("text", "--format", "-f", help="Output format"),
):
    """
    Validate a configuration file without calling any provider.

    Exit codes:
      0: Configuration is valid
      1: Configuration is invalid
    """
    output_mode.format = format

    try:
        runtime_config = load_config(config)
    except ConfigurationError as e:
        error(f"Validation failed: {e}")
        if output_mode.is_agent():
            output_mode.add_json("valid", False)
            output_mode.add_json("error_type", e.error_type)
            output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)

    success("Configuration is valid")
    info(f"Providers: {len(runtime_config.registry)}")
    info(f"Default providers: {', '.join(runtime_config.settings.default_providers)}")

    if output_mode.is_agent():
        output_mode.add_json("valid", True)
        output_mode.add_json("providers_count", len(runtime_config.registry))
        output_mode.add_json(
            "default_providers", list(runtime_config.settings.default_providers)
        )
        output_mode.flush_json()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-V", help="Show version and exit"
    ),
):
    """
    GEO Audit - measure brand visibility in AI answers and search results.

    Use 'geo-audit COMMAND --help' for detailed command documentation.
    """
    if version:
        console.print(f"[bold cyan]geo-audit[/bold cyan] version {__version__}")
        raise typer.Exit(EXIT_SUCCESS)

    if ctx.invoked_subcommand is None:
        console.print("[yellow]Use --help to see available commands[/yellow]")


if __name__ == "__main__":
    app()
