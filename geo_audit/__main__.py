"""
Entry point for running GEO Audit as a module.

Enables execution via:
    python -m geo_audit [command] [options]

Examples:
    python -m geo_audit --help
    python -m geo_audit run --query "best crm" --brand Acme --dry-run
    python -m geo_audit validate --config geo_audit.config.yaml
"""

from geo_audit.cli import app

if __name__ == "__main__":
    app()
