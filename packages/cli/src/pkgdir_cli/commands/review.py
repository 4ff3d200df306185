"""review command — run the AI review on a submitted package."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pkgdir_cli.commands.common import get_config, get_store, require_package
from pkgdir_core.config import api_key_env, load_prompt
from pkgdir_core.errors import AdminError
from pkgdir_core.review import PROVIDERS, ReviewOutcome, run_ai_review

console = Console()

_STATUS_STYLE = {
    "passed": "green",
    "partial": "yellow",
    "failed": "red",
    "error": "red",
}


def print_outcome(outcome: ReviewOutcome, shadow: bool = False) -> None:
    style = _STATUS_STYLE.get(outcome.status, "white")
    title = f"AI Review — {escape(outcome.package_name)}"
    if shadow:
        title += " (shadow, nothing saved)"
    console.print(f"\n[bold]{title}[/bold]: [{style}]{outcome.status.upper()}[/{style}]")
    console.print(escape(outcome.summary))

    if outcome.criteria:
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("#", justify="right", width=3)
        table.add_column("Criterion", max_width=50)
        table.add_column("Result", width=6)
        table.add_column("Notes", max_width=60)
        for i, c in enumerate(outcome.criteria, 1):
            result = "[green]PASS[/green]" if c.passed else "[red]FAIL[/red]"
            table.add_row(str(i), escape(c.name), result, escape(c.notes))
        console.print(table)

    if outcome.auto_action:
        console.print(f"[bold]Automatically {outcome.auto_action}.[/bold]")


@click.command("review")
@click.option("--package", "package_name", required=True, help="npm package name (or package id).")
@click.option(
    "--provider",
    type=click.Choice(sorted(PROVIDERS)),
    default=None,
    help="AI provider. Overrides config file.",
)
@click.option("--model", default=None, help="Model name. Defaults to the provider's default model.")
@click.option(
    "--prompt",
    "prompt_path",
    default=None,
    help="Path to a custom review guidelines file. Overrides config file.",
)
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print the verdict without saving it or changing the review status.",
)
@click.pass_context
def review_cmd(ctx, package_name: str, provider: str | None, model: str | None, prompt_path: str | None, shadow: bool):
    """Review a package's component sources against the authoring guidelines.

    Reads the repository through the GitHub API, asks the configured model for
    a checklist verdict and stores it on the package. When auto-approve or
    auto-reject is enabled, the review status follows the verdict.

    \b
    Environment variables:
      ANTHROPIC_API_KEY    Required with --provider anthropic
      OPENAI_API_KEY       Required with --provider openai
      GEMINI_API_KEY       Required with --provider gemini
      GITHUB_TOKEN         Optional (or use gh CLI); raises the API rate limit
    """
    store = get_store(ctx)
    config = get_config(ctx)
    for key, value in {"provider": provider, "model": model, "prompt": prompt_path}.items():
        if value is not None:
            config[key] = value

    provider_name = config.get("provider", "anthropic")
    if provider_name not in PROVIDERS:
        raise click.UsageError(f"Unknown provider {provider_name!r} in config.")
    if not config.get(f"{provider_name}_api_key"):
        raise click.UsageError(f"{api_key_env(provider_name)} environment variable is not set.")

    try:
        guidelines = load_prompt(config)
    except (FileNotFoundError, ValueError) as e:
        raise click.UsageError(str(e)) from e

    pkg = require_package(store, package_name)
    try:
        outcome = run_ai_review(store, pkg.id, config, guidelines=guidelines, dry_run=shadow)
    except AdminError as e:
        raise click.ClickException(str(e)) from e

    print_outcome(outcome, shadow=shadow)
    if outcome.status == "error":
        raise click.ClickException(f"AI review failed: {outcome.error}")
