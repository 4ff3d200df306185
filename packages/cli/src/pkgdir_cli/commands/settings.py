"""settings commands — admin automation switches."""

from __future__ import annotations

import dataclasses

import click
from rich.console import Console
from rich.table import Table

from pkgdir_cli.commands.common import get_store
from pkgdir_core.admin import update_setting
from pkgdir_core.errors import AdminError

console = Console()


@click.group("settings")
def settings_group():
    """Show or change admin settings."""


@settings_group.command("show")
@click.pass_context
def show_cmd(ctx):
    """Print the current settings."""
    settings = get_store(ctx).get_settings()
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in dataclasses.asdict(settings).items():
        table.add_row(key, str(value).lower() if isinstance(value, bool) else str(value))
    console.print(table)


@settings_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def set_cmd(ctx, key: str, value: str):
    """Set KEY to VALUE, e.g. `pkgdir settings set auto_approve_on_pass true`."""
    try:
        update_setting(get_store(ctx), key, value)
    except AdminError as e:
        raise click.UsageError(str(e)) from e
    console.print(f"[green]{key} updated.[/green]")
