"""CLI command: laraguard list, shows the registered analyzers."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from laraguard.analyzers.manager import ANALYZER_CLASSES

console = Console()


@click.command("list")
def list_analyzers() -> None:
    """List the available analyzers."""
    table = Table(title="Analyzers", show_lines=False)
    table.add_column("ID", style="cyan")
    table.add_column("Severity", style="bold")
    table.add_column("Name")

    for cls in ANALYZER_CLASSES:
        meta = cls.metadata
        table.add_row(meta.id, meta.severity.value, meta.name)

    console.print(table)
