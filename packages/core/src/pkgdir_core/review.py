"""AI review pipeline for a single package."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pkgdir_core.errors import AdminError, ParseError, ProviderError, RepositoryAccessError
from pkgdir_core.fetchers.github import CONFIG_FILENAME, fetch_component_files
from pkgdir_core.policy import decide
from pkgdir_core.providers.anthropic import AnthropicProvider
from pkgdir_core.providers.gemini import GeminiProvider
from pkgdir_core.providers.openai import OpenAIProvider
from pkgdir_core.verdict import RUBRIC, Verdict, build_review_prompt, derive_status, parse_verdict
from pkgdir_store.models import ReviewCriterion

logger = logging.getLogger(__name__)

PROVIDERS = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}

ERROR_SUMMARY = "AI review encountered an error"


@dataclass
class ReviewOutcome:
    """Result returned by run_ai_review, carries enough for the CLI to report."""

    package_id: str
    package_name: str
    status: str  # "passed" | "failed" | "partial" | "error"
    summary: str
    criteria: list[ReviewCriterion] = field(default_factory=list)
    error: str | None = None
    review_status: str | None = None  # resulting review status
    auto_action: str | None = None  # "approved" | "rejected" when automation fired
    reviewed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def get_provider(provider: str, api_key: str | None, model: str | None = None, timeout: float | None = None):
    if provider not in PROVIDERS:
        raise ProviderError(f"Unknown AI provider: {provider!r}. Choose one of: {', '.join(PROVIDERS)}.")
    if not api_key:
        raise ProviderError(f"No API key configured for provider {provider!r}")
    return PROVIDERS[provider](api_key=api_key, model=model, timeout=timeout)


def generate_text(
    provider: str, api_key: str | None, model: str | None, prompt: str, timeout: float | None = None
) -> str:
    """Send ``prompt`` to the selected provider and return its plain-text answer."""
    return get_provider(provider, api_key, model, timeout=timeout).complete(prompt)


def _not_a_component_verdict() -> Verdict:
    """Deterministic verdict for a readable repository without a component definition."""
    criteria = [
        ReviewCriterion(
            name=c.name,
            passed=False,
            notes=(f"Failed: No {CONFIG_FILENAME} found" if i == 0 else "Unable to check: Not a Convex component"),
        )
        for i, c in enumerate(RUBRIC)
    ]
    return Verdict(
        summary=(
            f"Review failed: No {CONFIG_FILENAME} found in repository. This package is not a valid "
            f"Convex component. Components must have {CONFIG_FILENAME} with defineComponent()."
        ),
        criteria=criteria,
        status=derive_status(criteria),
    )


def _review_package(package, config: dict, guidelines: str | None) -> Verdict:
    snapshot = fetch_component_files(
        package.repository_url,
        token=config.get("github_token"),
        timeout=config.get("http_timeout", 10),
    )
    if not snapshot.is_component:
        return _not_a_component_verdict()

    prompt = build_review_prompt(package.name, package.version, snapshot.files, guidelines)
    provider_name = config.get("provider", "anthropic")
    raw = generate_text(
        provider_name,
        config.get(f"{provider_name}_api_key"),
        config.get("model"),
        prompt,
        timeout=config.get("ai_timeout"),
    )
    return parse_verdict(raw)


def _record_error(store, package, message: str, now: datetime, dry_run: bool) -> ReviewOutcome:
    if not dry_run:
        store.update_package(
            package.id,
            ai_review_status="error",
            ai_review_summary=ERROR_SUMMARY,
            ai_review_criteria=[],
            ai_reviewed_at=now,
            ai_review_error=message,
        )
    return ReviewOutcome(
        package_id=package.id,
        package_name=package.name,
        status="error",
        summary=ERROR_SUMMARY,
        error=message,
        review_status=package.review_status,
        reviewed_at=now,
    )


def run_ai_review(
    store,
    package_id: str,
    config: dict,
    guidelines: str | None = None,
    dry_run: bool = False,
) -> ReviewOutcome:
    """Review one package and persist the result.

    The package is marked ``reviewing`` first, then exactly one result write
    carries the AI fields together with any automated status change. Provider,
    parse and repository failures are terminal for the run: they are stored
    as an ``error`` verdict and the review status is left untouched. Any
    other exception is recorded the same way, so a package never stays
    ``reviewing``.

    With ``dry_run`` nothing is written; the outcome is only returned.
    """
    package = store.get_package(package_id)
    if package is None:
        raise AdminError(f"Package {package_id} not found")

    if not dry_run:
        store.update_package(package_id, ai_review_status="reviewing")

    logger.info("Starting AI review of %s", package.name)
    now = datetime.now(timezone.utc)
    try:
        verdict = _review_package(package, config, guidelines)
    except (ProviderError, ParseError, RepositoryAccessError) as e:
        logger.warning("AI review of %s failed: %s", package.name, e)
        return _record_error(store, package, str(e), now, dry_run)
    except Exception as e:
        # Nothing may leave the package marked as reviewing.
        logger.exception("Unexpected error during AI review of %s", package.name)
        return _record_error(store, package, str(e) or type(e).__name__, now, dry_run)

    # Settings are read after the model call so a toggle flipped mid-review applies.
    settings = store.get_settings()
    changes = decide(package, verdict.status, settings, now)

    if not dry_run:
        store.update_package(
            package_id,
            ai_review_status=verdict.status,
            ai_review_summary=verdict.summary,
            ai_review_criteria=verdict.criteria,
            ai_reviewed_at=now,
            ai_review_error=None,
            **changes,
        )

    if changes:
        logger.info("AI review %s %s automatically", changes["review_status"], package.name)
    return ReviewOutcome(
        package_id=package_id,
        package_name=package.name,
        status=verdict.status,
        summary=verdict.summary,
        criteria=verdict.criteria,
        review_status=changes.get("review_status", package.review_status),
        auto_action=changes.get("review_status"),
        reviewed_at=now,
    )
