#!/usr/bin/env python3
"""
Run a GEO audit from Python and print the headline metrics.

This script demonstrates how to:
- Load a configuration file
- Call run_audit() with a request payload
- Read the summary, per-provider results and top sources

Usage:
    export DATAFORSEO_LOGIN=... DATAFORSEO_PASSWORD=...
    python examples/code-examples/audit_from_python.py "best crm for startups" Acme
"""

import sys

from geo_audit.audit.service import run_audit
from geo_audit.config.loader import load_config
from geo_audit.utils.logging import setup_logging


def main(query: str, brand: str) -> int:
    setup_logging(quiet_logs=True)
    config = load_config("examples/geo_audit.config.yaml")

    response = run_audit(
        {
            "query": query,
            "brand_name": brand,
            "competitors": ["HubSpot", "Pipedrive", "Salesforce"],
            "providers": ["chatgpt", "perplexity", "google_ai_overview"],
        },
        config=config,
    )

    if not response["success"]:
        print(f"Audit failed ({response['error_type']}): {response['error']}")
        return 1

    data = response["data"]
    print(f"Visibility score: {data['visibility_score']}/100")
    print(f"Share of voice:   {data['share_of_voice']}%")
    print(f"Average rank:     {data['average_rank'] or '-'}")
    print(f"Trust index:      {data['trust_index']}/100")
    print(f"Total cost:       ${data['total_cost']:.4f}")
    print()

    for result in data["model_results"]:
        status = "ok" if result["success"] else result["error_type"]
        print(
            f"  {result['provider']:<20} mentioned={result['brand_mentioned']!s:<5} "
            f"rank={result['brand_rank'] or '-'} cited={result['is_cited']} [{status}]"
        )

    if data["top_sources"]:
        print("\nTop sources:")
        for source in data["top_sources"]:
            print(f"  {source['count']:>3}  {source['domain']}")

    return 0


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(2)
    sys.exit(main(sys.argv[1], sys.argv[2]))
