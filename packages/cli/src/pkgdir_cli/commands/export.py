"""export command — public listing as CSV."""

from __future__ import annotations

import click

from pkgdir_cli.commands.common import get_store
from pkgdir_core.export import export_csv, listed_packages


@click.command("export")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write to this file instead of stdout.",
)
@click.pass_context
def export_cmd(ctx, output: str | None):
    """Export visible packages as CSV."""
    text = export_csv(listed_packages(get_store(ctx)))
    if output is None:
        click.echo(text, nl=False)
        return
    with open(output, "w", encoding="utf-8", newline="") as f:
        f.write(text)
    click.echo(f"Wrote {output}", err=True)
