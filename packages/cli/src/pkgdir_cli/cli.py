"""CLI entry point for pkgdir.

Commands:
  review    run the AI review on a submitted package
  refresh   refresh npm metadata (scheduled, all, approved only, or one package)
  logs      show recent refresh runs
  settings  show or change the admin automation settings
  packages  list, search, submit and moderate packages
  export    write the public listing as CSV
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from pkgdir_cli.commands.export import export_cmd
from pkgdir_cli.commands.logs import logs_cmd
from pkgdir_cli.commands.packages import packages_group
from pkgdir_cli.commands.refresh import refresh_cmd
from pkgdir_cli.commands.review import review_cmd
from pkgdir_cli.commands.settings import settings_group

console = Console()

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _build_store(config: dict):
    """Instantiate the configured store from .pkgdir.yml settings.

    Store selection:
      store: sqlite → SQLiteStore (store_path, default .pkgdir.db)
      store: memory → MemoryStore (nothing survives the process)
    """
    store_type = config.get("store", "sqlite")

    if store_type == "memory":
        from pkgdir_store.memory import MemoryStore

        return MemoryStore()

    if store_type == "sqlite":
        from pkgdir_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path", ".pkgdir.db"))

    raise click.UsageError(f"Unknown store {store_type!r} in config. Use 'sqlite' or 'memory'.")


def _setup_logging(level: str) -> None:
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
    root.setLevel(level)


@click.group()
@click.version_option(
    version=importlib.metadata.version("pkgdir"),
    prog_name="pkgdir",
)
@click.option(
    "--config",
    "config_path",
    default=".pkgdir.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PKGDIR_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str):
    """Package directory admin tool: AI review, npm refresh and moderation."""
    from pkgdir_core.config import load_config
    from pkgdir_cli.auth import resolve_github_token

    _setup_logging(log_level.upper())
    ctx.ensure_object(dict)

    config = load_config(config_path)

    # Token lookup is shared by every subcommand; an unauthenticated client
    # still works for public repositories, just with a lower rate limit.
    token = resolve_github_token()
    if token:
        config["github_token"] = token

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(review_cmd)
main.add_command(refresh_cmd)
main.add_command(logs_cmd)
main.add_command(settings_group)
main.add_command(packages_group)
main.add_command(export_cmd)
