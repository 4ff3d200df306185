"""packages commands — list, search, submit and moderate directory packages."""

from __future__ import annotations

import functools
import getpass

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pkgdir_cli.commands.common import get_config, get_store, require_package
from pkgdir_cli.commands.review import print_outcome
from pkgdir_core import admin
from pkgdir_core.config import load_prompt
from pkgdir_core.errors import AdminError, FetchError
from pkgdir_core.fetchers.npm import fetch_npm_package
from pkgdir_core.review import run_ai_review
from pkgdir_store.models import REVIEW_STATUSES, VISIBILITIES

console = Console()

_REVIEW_STYLE = {
    "approved": "green",
    "pending": "yellow",
    "in_review": "cyan",
    "changes_requested": "magenta",
    "rejected": "red",
}


def _print_packages(title: str, packages) -> None:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Name", style="bold", max_width=40)
    table.add_column("Version")
    table.add_column("Status")
    table.add_column("AI Review")
    table.add_column("Visibility")
    table.add_column("★")
    table.add_column("Downloads", justify="right")

    for p in packages:
        style = _REVIEW_STYLE.get(p.review_status, "white")
        table.add_row(
            escape(p.name),
            p.version,
            f"[{style}]{p.review_status}[/{style}]",
            p.ai_review_status,
            p.visibility,
            "★" if p.featured else "",
            f"{p.weekly_downloads:,}",
        )
    console.print(table)


@click.group("packages")
def packages_group():
    """List, search, submit and moderate packages."""


@packages_group.command("list")
@click.option("--status", type=click.Choice(REVIEW_STATUSES), default=None, help="Filter by review status.")
@click.option("--archived/--no-archived", default=False, show_default=True, help="Include archived packages.")
@click.pass_context
def list_cmd(ctx, status: str | None, archived: bool):
    """Show packages in submission order."""
    packages = get_store(ctx).list_packages(review_status=status, include_archived=archived)
    if not packages:
        console.print("[yellow]No packages found.[/yellow]")
        return
    _print_packages("Packages", packages)


@packages_group.command("search")
@click.argument("term", default="")
@click.option("--visible-only", is_flag=True, help="Only packages shown in the public directory.")
@click.option("--limit", default=100, show_default=True, type=click.IntRange(min=1), help="Maximum results.")
@click.pass_context
def search_cmd(ctx, term: str, visible_only: bool, limit: int):
    """Find packages whose name, description or maintainers contain TERM."""
    packages = get_store(ctx).search_packages(term, visible_only=visible_only, limit=limit)
    if not packages:
        message = f"No packages match '{escape(term)}'." if term.strip() else "No packages found."
        console.print(f"[yellow]{message}[/yellow]")
        return
    _print_packages(f"Search: {escape(term)}" if term.strip() else "Newest packages", packages)


@packages_group.command("submit")
@click.argument("npm")
@click.option("--repo-url", default=None, help="GitHub repository URL. Defaults to the one on npm.")
@click.option("--name", "submitter_name", default=None, help="Submitter name.")
@click.option("--email", "submitter_email", default=None, help="Submitter email.")
@click.pass_context
def submit_cmd(ctx, npm: str, repo_url: str | None, submitter_name: str | None, submitter_email: str | None):
    """Submit NPM (a package name or npmjs.com URL) for review."""
    store = get_store(ctx)
    config = get_config(ctx)
    fetch = functools.partial(fetch_npm_package, timeout=config.get("http_timeout", 10))
    try:
        pkg = admin.submit_package(
            store,
            npm,
            repository_url=repo_url,
            submitter_name=submitter_name,
            submitter_email=submitter_email,
            fetch=fetch,
        )
    except AdminError as e:
        raise click.UsageError(str(e)) from e
    except FetchError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"[green]Submitted {pkg.name}@{pkg.version}[/green] (id {pkg.id})")

    if admin.should_review_on_submit(store.get_settings(), pkg):
        provider = config.get("provider", "anthropic")
        if not config.get(f"{provider}_api_key"):
            console.print("[yellow]Automation is enabled but no API key is set; skipping the AI review.[/yellow]")
            return
        try:
            guidelines = load_prompt(config)
        except (FileNotFoundError, ValueError) as e:
            raise click.ClickException(f"Submitted, but the AI review could not start: {e}") from e
        outcome = run_ai_review(store, pkg.id, config, guidelines=guidelines)
        print_outcome(outcome)
        if outcome.status == "error":
            raise click.ClickException(f"AI review failed: {outcome.error}")


@packages_group.command("status")
@click.argument("name")
@click.argument("review_status", type=click.Choice(REVIEW_STATUSES))
@click.option("--notes", default=None, help="Review notes to record.")
@click.option("--by", "reviewed_by", default=None, help="Reviewer name. Defaults to the current user.")
@click.pass_context
def status_cmd(ctx, name: str, review_status: str, notes: str | None, reviewed_by: str | None):
    """Set the review status of package NAME."""
    store = get_store(ctx)
    pkg = require_package(store, name)
    admin.set_review_status(store, pkg.id, review_status, reviewed_by or getpass.getuser(), notes)
    console.print(f"{pkg.name}: review status set to [bold]{review_status}[/bold]")


@packages_group.command("visibility")
@click.argument("name")
@click.argument("visibility", type=click.Choice(VISIBILITIES))
@click.pass_context
def visibility_cmd(ctx, name: str, visibility: str):
    """Show, hide or archive package NAME."""
    store = get_store(ctx)
    pkg = require_package(store, name)
    admin.set_visibility(store, pkg.id, visibility)
    console.print(f"{pkg.name}: visibility set to [bold]{visibility}[/bold]")


@packages_group.command("feature")
@click.argument("name")
@click.pass_context
def feature_cmd(ctx, name: str):
    """Toggle the featured flag on approved package NAME."""
    store = get_store(ctx)
    pkg = require_package(store, name)
    try:
        featured = admin.toggle_featured(store, pkg.id)
    except AdminError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"{pkg.name} is {'now' if featured else 'no longer'} featured")


@packages_group.command("delete")
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_context
def delete_cmd(ctx, name: str, yes: bool):
    """Permanently delete package NAME."""
    store = get_store(ctx)
    pkg = require_package(store, name)
    if not yes:
        click.confirm(f"Delete {pkg.name}? This cannot be undone", abort=True)
    admin.delete_package(store, pkg.id)
    console.print(f"[red]Deleted {pkg.name}[/red]")
