"""logs command — display recent refresh runs from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from pkgdir_cli.commands.common import format_time, get_store
from pkgdir_core.admin import get_refresh_stats

console = Console()

_STATUS_STYLE = {
    "completed": "green",
    "running": "yellow",
    "failed": "red",
}


@click.command("logs")
@click.option("--limit", default=10, show_default=True, help="Maximum number of runs to show.")
@click.pass_context
def logs_cmd(ctx, limit: int):
    """Show recent npm refresh runs, newest first."""
    store = get_store(ctx)
    stats = get_refresh_stats(store)
    console.print(
        f"{stats.packages_needing_refresh} of {stats.total_packages} approved package(s) need refreshing."
    )

    logs = store.list_refresh_logs(limit=limit)
    if not logs:
        console.print("[yellow]No refresh runs recorded.[/yellow]")
        return

    table = Table(title="Refresh Runs", show_header=True, header_style="bold cyan")
    table.add_column("Started")
    table.add_column("Trigger")
    table.add_column("Status")
    table.add_column("Processed", justify="right")
    table.add_column("OK", justify="right")
    table.add_column("Failed", justify="right")

    for log in logs:
        style = _STATUS_STYLE.get(log.status, "white")
        table.add_row(
            format_time(log.run_at),
            "manual" if log.is_manual else "scheduled",
            f"[{style}]{log.status}[/{style}]",
            str(log.packages_processed),
            str(log.packages_succeeded),
            str(log.packages_failed),
        )

    console.print(table)
