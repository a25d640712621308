"""
Tests for CLI module.

Commands:
    - run: dry runs, output modes, storage and exit codes
    - providers: registry listing
    - validate: config validation command
    - main callback: version flag

Exit Codes:
    - 0: Success
    - 1: Configuration or request error
    - 2: Database error
    - 3: Partial failure (some providers failed)
    - 4: Complete failure (all providers failed)
"""

import json
import logging
from unittest.mock import patch

import pytest
import yaml
from conftest import make_orchestration
from typer.testing import CliRunner

from geo_audit import __version__
from geo_audit.audit.assembler import ResultAssembler
from geo_audit.cli import (
    EXIT_COMPLETE_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_DB_ERROR,
    EXIT_PARTIAL_FAILURE,
    EXIT_SUCCESS,
    app,
)
from geo_audit.config.providers import DEFAULT_PROVIDERS
from geo_audit.utils.console import output_mode

DRY_RUN_ARGS = [
    "run",
    "--query",
    "best dating apps",
    "--brand",
    "Acme",
    "--competitor",
    "Bumble",
    "--competitor",
    "Tinder",
    "--dry-run",
]


def json_document(output: str) -> dict:
    """Parse the indented JSON document, skipping any one-line log records."""
    start = output.index("{\n")
    return json.JSONDecoder().raw_decode(output[start:])[0]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def reset_output_mode():
    """Reset global output_mode and root logging after each test."""
    original_format = output_mode.format
    original_quiet = output_mode.quiet
    output_mode._json_buffer.clear()
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level

    yield

    output_mode.format = original_format
    output_mode.quiet = original_quiet
    output_mode._json_buffer.clear()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("DATAFORSEO_LOGIN", "DATAFORSEO_PASSWORD", "TAVILY_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def valid_config_yaml(tmp_path):
    path = tmp_path / "geo_audit.config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "audit_settings": {
                    "stagger_seconds": 0,
                    "default_providers": ["chatgpt", "claude", "google_ai_overview"],
                },
                "storage": {
                    "sqlite_db_path": None,
                    "output_dir": str(tmp_path / "audits"),
                },
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def invalid_config_yaml(tmp_path):
    path = tmp_path / "invalid.yaml"
    path.write_text(
        yaml.safe_dump({"audit_settings": {"timeout_seconds": -5}}), encoding="utf-8"
    )
    return path


def fake_execute(answers, failed=()):
    """execute_audit replacement that assembles canned provider results."""

    async def execute(request, runtime_config, store=None, adapters=None):
        orchestration = make_orchestration(request, answers, failed=failed)
        return ResultAssembler().assemble(request, orchestration, audit_id="audit-1")

    return execute


# ============================================================================
# run
# ============================================================================


class TestRunDryRun:
    """Test suite for run --dry-run."""

    def test_text_mode(self, cli_runner):
        result = cli_runner.invoke(app, DRY_RUN_ARGS)

        assert result.exit_code == EXIT_SUCCESS
        assert "Audit Completed" in result.output
        assert "Provider Results" in result.output

    def test_json_mode(self, cli_runner):
        result = cli_runner.invoke(app, [*DRY_RUN_ARGS, "--format", "json"])

        assert result.exit_code == EXIT_SUCCESS
        document = json_document(result.output)
        assert document["total_providers"] == 5
        assert document["successful_providers"] == 5
        assert document["share_of_voice"] == 100
        assert [r["provider"] for r in document["model_results"]] == [
            "chatgpt",
            "claude",
            "gemini",
            "perplexity",
            "google_ai_overview",
        ]
        assert document["top_sources"]
        assert "\x1b[" not in result.stdout

    def test_selected_providers(self, cli_runner):
        result = cli_runner.invoke(
            app,
            [
                *DRY_RUN_ARGS,
                "--provider",
                "chatgpt",
                "--provider",
                "google_serp",
                "--format",
                "json",
            ],
        )

        assert result.exit_code == EXIT_SUCCESS
        document = json_document(result.output)
        assert [r["provider"] for r in document["model_results"]] == [
            "chatgpt",
            "google_serp",
        ]

    def test_quiet_mode(self, cli_runner):
        result = cli_runner.invoke(app, [*DRY_RUN_ARGS, "--quiet"])

        assert result.exit_code == EXIT_SUCCESS
        fields = result.output.strip().splitlines()[-1].split("\t")
        assert len(fields) == 5
        assert fields[3:] == ["5", "5"]

    def test_unknown_provider(self, cli_runner):
        result = cli_runner.invoke(
            app, [*DRY_RUN_ARGS, "--provider", "bing", "--format", "json"]
        )

        assert result.exit_code == EXIT_CONFIG_ERROR
        document = json_document(result.output)
        assert document["status"] == "error"
        assert "bing" in document["error"]

    def test_save_to_json_directory(self, cli_runner, valid_config_yaml, tmp_path):
        result = cli_runner.invoke(
            app,
            [
                *DRY_RUN_ARGS,
                "--save",
                "--config",
                str(valid_config_yaml),
                "--format",
                "json",
            ],
        )

        assert result.exit_code == EXIT_SUCCESS
        document = json_document(result.output)
        assert document["total_providers"] == 3
        saved_dir = tmp_path / "audits" / document["saved_id"]
        assert (saved_dir / "audit.json").is_file()


class TestRunErrors:
    """Test suite for run error handling and exit codes."""

    def test_invalid_request(self, cli_runner):
        result = cli_runner.invoke(
            app, ["run", "--query", "ab", "--brand", "Acme", "--format", "json"]
        )

        assert result.exit_code == EXIT_CONFIG_ERROR
        document = json_document(result.output)
        assert "at least 3 characters" in document["error"]

    def test_invalid_config(self, cli_runner, invalid_config_yaml):
        result = cli_runner.invoke(
            app, [*DRY_RUN_ARGS, "--config", str(invalid_config_yaml)]
        )

        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_missing_credentials(self, cli_runner, clean_env):
        result = cli_runner.invoke(
            app,
            ["run", "--query", "best dating apps", "--brand", "Acme", "--format", "json"],
        )

        assert result.exit_code == EXIT_CONFIG_ERROR
        document = json_document(result.output)
        assert "DATAFORSEO_LOGIN" in document["error"]

    def test_storage_failure(self, cli_runner):
        with patch("geo_audit.cli.build_store", side_effect=OSError("read-only")):
            result = cli_runner.invoke(app, [*DRY_RUN_ARGS, "--save"])

        assert result.exit_code == EXIT_DB_ERROR

    def test_partial_failure(self, cli_runner):
        execute = fake_execute(
            {"chatgpt": "1. Acme\n2. Bumble", "claude": ""}, failed=("claude",)
        )

        with patch("geo_audit.cli.execute_audit", new=execute):
            result = cli_runner.invoke(app, [*DRY_RUN_ARGS, "--format", "json"])

        assert result.exit_code == EXIT_PARTIAL_FAILURE
        document = json_document(result.output)
        assert document["successful_providers"] == 1
        assert document["total_providers"] == 2

    def test_complete_failure(self, cli_runner):
        execute = fake_execute({"chatgpt": "", "claude": ""}, failed=("chatgpt", "claude"))

        with patch("geo_audit.cli.execute_audit", new=execute):
            result = cli_runner.invoke(app, DRY_RUN_ARGS)

        assert result.exit_code == EXIT_COMPLETE_FAILURE
        assert "Audit Failed" in result.output

    def test_unexpected_error(self, cli_runner):
        async def explode(*args, **kwargs):
            raise RuntimeError("boom")

        with patch("geo_audit.cli.execute_audit", new=explode):
            result = cli_runner.invoke(app, [*DRY_RUN_ARGS, "--format", "json"])

        assert result.exit_code == EXIT_COMPLETE_FAILURE
        assert json_document(result.output)["error"] == "Audit failed: boom"


# ============================================================================
# providers / validate / main
# ============================================================================


class TestProvidersCommand:
    """Test suite for the providers command."""

    def test_json_listing(self, cli_runner):
        result = cli_runner.invoke(app, ["providers", "--format", "json"])

        assert result.exit_code == EXIT_SUCCESS
        rows = json_document(result.output)["providers"]
        assert [row["id"] for row in rows] == [spec.id for spec in DEFAULT_PROVIDERS]
        by_id = {row["id"]: row for row in rows}
        assert by_id["chatgpt"]["default"] is True
        assert by_id["tavily"]["default"] is False

    def test_text_listing(self, cli_runner):
        result = cli_runner.invoke(app, ["providers"])

        assert result.exit_code == EXIT_SUCCESS
        assert "Providers" in result.output


class TestValidateCommand:
    """Test suite for the validate command."""

    def test_valid(self, cli_runner, valid_config_yaml):
        result = cli_runner.invoke(app, ["validate", "--config", str(valid_config_yaml)])

        assert result.exit_code == EXIT_SUCCESS
        assert "Configuration is valid" in result.output

    def test_valid_json(self, cli_runner, valid_config_yaml):
        result = cli_runner.invoke(
            app, ["validate", "--config", str(valid_config_yaml), "--format", "json"]
        )

        document = json_document(result.output)
        assert document["valid"] is True
        assert document["providers_count"] == len(DEFAULT_PROVIDERS)
        assert document["default_providers"] == [
            "chatgpt",
            "claude",
            "google_ai_overview",
        ]

    def test_invalid(self, cli_runner, invalid_config_yaml):
        result = cli_runner.invoke(
            app, ["validate", "--config", str(invalid_config_yaml), "--format", "json"]
        )

        assert result.exit_code == EXIT_CONFIG_ERROR
        document = json_document(result.output)
        assert document["valid"] is False
        assert document["error_type"] == "validation"

    def test_missing_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(
            app, ["validate", "--config", str(tmp_path / "missing.yaml")]
        )

        assert result.exit_code != EXIT_SUCCESS


class TestMainCallback:
    """Test suite for the main callback."""

    def test_version(self, cli_runner):
        result = cli_runner.invoke(app, ["--version"])

        assert result.exit_code == EXIT_SUCCESS
        assert __version__ in result.output
