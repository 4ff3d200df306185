"""refresh command — refresh npm metadata for directory packages."""

from __future__ import annotations

import functools

import click
from rich.console import Console
from rich.markup import escape

from pkgdir_cli.commands.common import get_config, get_store, require_package
from pkgdir_core.errors import FetchError, RefreshInProgressError
from pkgdir_core.fetchers.npm import fetch_npm_package
from pkgdir_core.refresh import manual_refresh, refresh_package, scheduled_refresh

console = Console()


@click.command("refresh")
@click.option(
    "--scheduled",
    "mode",
    flag_value="scheduled",
    help="Run as the scheduler would: stale approved packages, only if auto-refresh is enabled.",
)
@click.option(
    "--all",
    "mode",
    flag_value="all",
    default=True,
    help="Refresh every non-archived package regardless of staleness (default).",
)
@click.option(
    "--approved",
    "mode",
    flag_value="approved",
    help="Refresh every approved, non-archived package regardless of staleness.",
)
@click.option("--package", "package_name", default=None, help="Refresh a single package by npm name.")
@click.pass_context
def refresh_cmd(ctx, mode: str, package_name: str | None):
    """Refresh npm metadata (version, downloads, size, maintainers)."""
    store = get_store(ctx)
    config = get_config(ctx)
    fetch = functools.partial(fetch_npm_package, timeout=config.get("http_timeout", 10))

    if package_name:
        pkg = require_package(store, package_name)
        try:
            refresh_package(store, pkg.id, fetch=fetch)
        except FetchError as e:
            raise click.ClickException(f"Refresh of {pkg.name} failed: {e}") from e
        console.print(f"[green]Refreshed {pkg.name}.[/green]")
        return

    try:
        if mode == "scheduled":
            log = scheduled_refresh(store, config, fetch=fetch)
        else:
            log = manual_refresh(store, config, approved_only=mode == "approved", fetch=fetch)
    except RefreshInProgressError as e:
        raise click.ClickException(str(e)) from e

    if log is None:
        if mode == "scheduled" and not store.get_settings().auto_refresh_enabled:
            console.print("[yellow]Auto-refresh is disabled. Nothing was refreshed.[/yellow]")
        else:
            console.print("[yellow]No packages need refreshing.[/yellow]")
        return

    console.print(
        f"Refresh {log.status}: {log.packages_processed} processed, "
        f"[green]{log.packages_succeeded} succeeded[/green], [red]{log.packages_failed} failed[/red]"
    )
    for err in log.errors:
        console.print(f"  [red]✗[/red] {escape(err.package_name)}: {escape(err.error)}")
    if log.status == "failed":
        raise click.ClickException("Every package in the run failed to refresh.")
