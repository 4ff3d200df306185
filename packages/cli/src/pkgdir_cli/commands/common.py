"""Helpers shared by the subcommands."""

from __future__ import annotations

import click


def get_store(ctx: click.Context):
    store = ctx.obj.get("store") if ctx.obj else None
    if store is None:
        raise click.UsageError("No store configured.")
    return store


def get_config(ctx: click.Context) -> dict:
    return dict(ctx.obj.get("config") or {}) if ctx.obj else {}


def require_package(store, name: str):
    """Look a package up by npm name, or by id as a fallback."""
    pkg = store.get_package_by_name(name) or store.get_package(name)
    if pkg is None:
        raise click.ClickException(f"Package {name!r} not found.")
    return pkg


def format_time(value) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S")
