"""
Rich console output for the geo-audit CLI.

Two output modes, selected with --format:

Human mode (text):
    Rich spinners, colored tables and a summary panel.

Agent mode (json):
    Messages and data are buffered and written to stdout as one JSON
    document by flush_json(). No ANSI codes or spinners.

Examples:
    >>> output_mode.format = "text"
    >>> with spinner("Running audit..."):
    ...     record = run()
    >>> success("Audit complete")

    >>> output_mode.format = "json"
    >>> success("Audit complete")  # buffered
    >>> output_mode.flush_json()
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterable
from contextlib import contextmanager
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table


class OutputMode:
    """
    Output format for the CLI: "text" (human) or "json" (agent).

    Attributes:
        format: Output format
        quiet: Suppress informational messages in text mode
    """

    def __init__(self, format_type: str = "text", quiet: bool = False):
        if format_type not in ["text", "json"]:
            raise ValueError(f"Invalid format: {format_type}. Must be 'text' or 'json'")

        self.format = format_type
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        return self.format == "text"

    def is_agent(self) -> bool:
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        self._json_buffer[key] = value

    def flush_json(self) -> None:
        """Write the buffered JSON document to stdout (agent mode only)."""
        if self.is_agent() and self._json_buffer:
            json.dump(self._json_buffer, sys.stdout, indent=2, default=str)
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._json_buffer.clear()


# Global output mode instance (set by CLI flags)
output_mode = OutputMode()

console = Console()  # stdout
console_err = Console(stderr=True)  # stderr


@contextmanager
def spinner(message: str):
    """Show a spinner in human mode; silent in agent mode."""
    if output_mode.is_human():
        with console.status(f"[bold blue]{message}", spinner="dots") as status:
            yield status
    else:
        yield None


def success(message: str) -> None:
    if output_mode.is_human():
        console.print(f"[green]✓[/green] {message}")
    elif output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)


def error(message: str) -> None:
    """Print an error to stderr in human mode; buffer it in agent mode."""
    if output_mode.is_human():
        console_err.print(f"[red]✗[/red] {message}", style="red")
    elif output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("error", message)


def warning(message: str) -> None:
    if output_mode.is_human():
        console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")
    elif output_mode.is_agent():
        output_mode.add_json("warning", message)


def info(message: str) -> None:
    if output_mode.is_human() and not output_mode.quiet:
        console.print(f"[blue]ℹ[/blue] {message}")


def _check(value: bool) -> str:
    return "[green]✓[/green]" if value else "[red]✗[/red]"


def print_results_table(results: list[dict]) -> None:
    """
    Print one row per provider result.

    Expects ModelResult.to_dict() dictionaries. In agent mode the list is
    buffered under "model_results".
    """
    if output_mode.is_agent():
        output_mode.add_json("model_results", results)
        return

    if output_mode.quiet:
        return

    table = Table(title="Provider Results", box=box.ROUNDED)
    table.add_column("Provider", style="cyan", no_wrap=True)
    table.add_column("Mentioned", justify="center")
    table.add_column("Rank", justify="right")
    table.add_column("Cited", justify="center")
    table.add_column("Sentiment")
    table.add_column("Winner", style="magenta")
    table.add_column("Cost", justify="right", style="green")
    table.add_column("Status", justify="center")

    for result in results:
        if result.get("success"):
            status_str = "[green]success[/green]"
        else:
            status_str = f"[red]{result.get('error_type') or 'error'}[/red]"

        rank = result.get("brand_rank")
        table.add_row(
            result.get("display_name") or result.get("provider", ""),
            _check(bool(result.get("brand_mentioned"))),
            str(rank) if rank is not None else "-",
            _check(bool(result.get("is_cited"))),
            result.get("brand_sentiment", ""),
            result.get("winner_brand") or "-",
            f"${result.get('cost', 0.0):.4f}",
            status_str,
        )

    console.print(table)


def print_sources_table(sources: list[dict], competitors: list[dict]) -> None:
    """Top cited domains and most mentioned competitors."""
    if output_mode.is_agent():
        output_mode.add_json("top_sources", sources)
        output_mode.add_json("top_competitors", competitors)
        return

    if output_mode.quiet:
        return

    if sources:
        table = Table(title="Top Sources", box=box.ROUNDED)
        table.add_column("Domain", style="cyan")
        table.add_column("Count", justify="right")
        table.add_column("Title")
        for source in sources:
            table.add_row(source["domain"], str(source["count"]), source["title"])
        console.print(table)

    if competitors:
        table = Table(title="Top Competitors", box=box.ROUNDED)
        table.add_column("Competitor", style="magenta")
        table.add_column("Mentions", justify="right")
        table.add_column("Avg Rank", justify="right")
        for competitor in competitors:
            avg_rank = competitor.get("avg_rank")
            table.add_row(
                competitor["name"],
                str(competitor["total_mentions"]),
                f"{avg_rank:.1f}" if avg_rank is not None else "-",
            )
        console.print(table)


def print_providers_table(rows: Iterable[dict]) -> None:
    rows = list(rows)
    if output_mode.is_agent():
        output_mode.add_json("providers", rows)
        return

    table = Table(title="Providers", box=box.ROUNDED)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Backend")
    table.add_column("Weight", justify="right")
    table.add_column("Cost/query", justify="right", style="green")
    table.add_column("Default", justify="center")

    for row in rows:
        table.add_row(
            row["id"],
            row["display_name"],
            row["kind"],
            row["backend"],
            f"{row['weight']:.2f}",
            f"${row['cost_per_query']:.3f}",
            _check(row["default"]),
        )

    console.print(table)


def print_audit_summary(data: dict, successful: int, total: int) -> None:
    """
    Print the summary panel and flush agent-mode JSON.

    Border color: green when every provider succeeded, yellow on partial
    failure, red when none did.
    """
    if output_mode.is_agent():
        for key in (
            "audit_id",
            "share_of_voice",
            "average_rank",
            "visibility_score",
            "trust_index",
            "total_citations",
            "total_cost",
            "agreement",
            "timestamp",
            "saved_id",
        ):
            output_mode.add_json(key, data.get(key))
        output_mode.add_json("successful_providers", successful)
        output_mode.add_json("total_providers", total)
        output_mode.flush_json()
        return

    if output_mode.quiet:
        print(
            f"{data.get('audit_id')}\t{data.get('visibility_score')}\t"
            f"{data.get('share_of_voice')}\t{successful}\t{total}"
        )
        return

    average_rank = data.get("average_rank")
    summary_text = f"""
[bold]Audit ID:[/bold] {data.get("audit_id")}
[bold]Visibility Score:[/bold] {data.get("visibility_score")}/100
[bold]Share of Voice:[/bold] {data.get("share_of_voice")}%
[bold]Average Rank:[/bold] {average_rank if average_rank is not None else "-"}
[bold]Trust Index:[/bold] {data.get("trust_index")}/100
[bold]Citations:[/bold] {data.get("total_citations")}
[bold]Agreement:[/bold] {data.get("agreement") or "-"}
[bold]Total Cost:[/bold] ${data.get("total_cost", 0.0):.4f}
[bold]Providers:[/bold] {successful}/{total} successful
"""
    if data.get("saved_id"):
        summary_text += f"[bold]Saved As:[/bold] {data['saved_id']}\n"

    if successful == total:
        border_style = "green"
        title = "[bold green]✓ Audit Completed[/bold green]"
    elif successful > 0:
        border_style = "yellow"
        title = "[bold yellow]⚠ Audit Completed with Partial Failures[/bold yellow]"
    else:
        border_style = "red"
        title = "[bold red]✗ Audit Failed[/bold red]"

    console.print(
        Panel(
            summary_text.strip(),
            title=title,
            border_style=border_style,
            box=box.ROUNDED,
        )
    )
