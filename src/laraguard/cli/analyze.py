"""CLI command: laraguard analyze <root>, runs the security analyzers."""

from __future__ import annotations

import json
import sys
import time

import click
from rich.console import Console
from rich.table import Table

from laraguard.analysis.models import Issue, Result, Severity, Status
from laraguard.analyzers.base import AnalysisContext
from laraguard.analyzers.manager import AnalyzerManager
from laraguard.config import ScanConfig
from laraguard.project.http import HttpxFetcher
from laraguard.project.routes import load_route_table

console = Console(stderr=True)

_SEVERITY_COLORS = {
    Severity.CRITICAL: "red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}

_STATUS_COLORS = {
    Status.PASSED: "green",
    Status.FAILED: "red",
    Status.WARNING: "yellow",
    Status.SKIPPED: "dim",
    Status.ERROR: "magenta",
}


@click.command()
@click.argument("root", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--analyzer",
    "-a",
    "analyzer_ids",
    multiple=True,
    help="Only run these analyzer ids.",
)
@click.option("--url", help="Base URL of the deployed application for live checks.")
@click.option(
    "--routes",
    "routes_path",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON output of `php artisan route:list --json`.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
)
@click.option(
    "--fail-on",
    type=click.Choice([s.value for s in Severity]),
    help="Exit non-zero when an issue is at least this severe.",
)
@click.pass_context
def analyze(
    ctx: click.Context,
    root: str,
    analyzer_ids: tuple[str, ...],
    url: str | None,
    routes_path: str | None,
    output_format: str,
    fail_on: str | None,
) -> None:
    """Analyze a Laravel project for security issues."""
    try:
        config = ScanConfig.load(root, ctx.obj.get("config_path"))
        routes = load_route_table(routes_path) if routes_path else None
        if url:
            config.base_url = url
        if fail_on:
            config.fail_on = Severity(fail_on)
        context = AnalysisContext(
            root,
            config=config,
            fetcher=HttpxFetcher(timeout=config.http_timeout),
            routes=routes,
        )
        manager = AnalyzerManager(context, only=analyzer_ids or None)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    if output_format == "table":
        console.print(f"[bold]laraguard[/bold] analyzing [cyan]{context.root}[/cyan]\n")

    start = time.time()
    results = manager.run()
    duration = time.time() - start

    if output_format == "json":
        click.echo(json.dumps([r.to_dict() for r in results.values()], indent=2))
    else:
        for result in results.values():
            _print_result(result, config.max_issues_per_check)
        _print_summary(results, duration)

    failing = sum(
        1
        for result in results.values()
        for issue in result.issues
        if issue.severity >= config.fail_on
    )
    if failing > 0:
        if output_format == "table":
            console.print(f"\n[red]{failing} issue(s) at or above {config.fail_on.value}[/red]")
        sys.exit(1)


def displayed_issues(result: Result, limit: int = 0) -> tuple[list[Issue], int]:
    """Issues shown in the table, most severe first, and how many were left out."""
    issues = sorted(result.issues, key=lambda i: (-i.severity.rank, i.file, i.line or 0))
    if limit > 0 and len(issues) > limit:
        return issues[:limit], len(issues) - limit
    return issues, 0


def _print_result(result: Result, limit: int = 0) -> None:
    color = _STATUS_COLORS.get(result.status, "white")
    console.print(
        f"[{color}]{result.status.value.upper():8}[/{color}] "
        f"[bold]{result.analyzer_id}[/bold] {result.message}"
    )
    if not result.issues:
        return

    issues, hidden = displayed_issues(result, limit)
    table = Table(title="Findings", show_lines=False)
    table.add_column("Severity", style="bold", width=10)
    table.add_column("File", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Message")
    table.add_column("Code", max_width=50)

    for issue in issues:
        color = _SEVERITY_COLORS.get(issue.severity, "white")
        table.add_row(
            f"[{color}]{issue.severity.value}[/{color}]",
            issue.file or "-",
            str(issue.line) if issue.line is not None else "",
            issue.message,
            issue.code[:50],
        )
    console.print(table)
    if hidden:
        console.print(f"[dim]... and {hidden} more[/dim]")


def _print_summary(results: dict[str, Result], duration: float) -> None:
    counts = {status: 0 for status in Status}
    for result in results.values():
        counts[result.status] += 1
    parts = ", ".join(f"{n} {status.value}" for status, n in counts.items() if n)
    console.print(f"\nRan {len(results)} analyzers in {duration:.2f}s ({parts or 'none'})")
    total = sum(len(r.issues) for r in results.values())
    console.print(f"Total issues: {total}")
