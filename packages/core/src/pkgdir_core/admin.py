"""Admin operations on packages and settings.

Every path that changes ``review_status`` goes through this module or the
policy engine, and both clear ``featured`` when a package leaves approved.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from pkgdir_core.errors import AdminError
from pkgdir_core.fetchers.github import parse_github_repo
from pkgdir_core.fetchers.npm import NpmPackageData, fetch_npm_package, parse_npm_url
from pkgdir_core.refresh import is_stale
from pkgdir_store.models import (
    REVIEW_STATUSES,
    VISIBILITIES,
    AdminSettings,
    Collaborator,
    Package,
    RefreshLog,
)

logger = logging.getLogger(__name__)

_BOOLEAN_SETTINGS = {
    f.name for f in dataclasses.fields(AdminSettings) if f.type in ("bool", bool)
}
_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


@dataclass
class RefreshStats:
    packages_needing_refresh: int
    total_packages: int
    last_run: RefreshLog | None = None


def _require(store, package_id: str) -> Package:
    pkg = store.get_package(package_id)
    if pkg is None:
        raise AdminError(f"Package {package_id} not found")
    return pkg


def submit_package(
    store,
    npm_url_or_name: str,
    repository_url: str | None = None,
    submitter_name: str | None = None,
    submitter_email: str | None = None,
    fetch: Callable[[str], NpmPackageData] = fetch_npm_package,
) -> Package:
    """Fetch npm metadata and store a new pending package.

    ``repository_url``, when given, must be a GitHub URL and takes precedence
    over the one in the registry document.
    """
    try:
        name = parse_npm_url(npm_url_or_name)
    except ValueError as e:
        raise AdminError(str(e)) from e
    if repository_url and parse_github_repo(repository_url) is None:
        raise AdminError(f"Invalid GitHub repository URL: {repository_url}. Expected https://github.com/owner/repo")
    if store.get_package_by_name(name) is not None:
        raise AdminError(f"Package {name} already submitted")

    data = fetch(name)
    package = Package(
        name=data.name,
        description=data.description,
        version=data.version,
        license=data.license,
        install_command=data.install_command,
        repository_url=repository_url or data.repository_url,
        homepage_url=data.homepage_url,
        npm_url=data.npm_url,
        unpacked_size=data.unpacked_size,
        total_files=data.total_files,
        last_publish=data.last_publish,
        weekly_downloads=data.weekly_downloads,
        collaborators=[Collaborator(**c) for c in data.collaborators],
        maintainer_names=data.maintainer_names,
        submitted_at=datetime.now(timezone.utc),
        submitter_name=submitter_name,
        submitter_email=submitter_email,
    )
    package = store.insert_package(package)
    logger.info("Submitted %s (%s)", package.name, package.id)
    return package


def should_review_on_submit(settings: AdminSettings, package: Package) -> bool:
    """New submissions are reviewed right away only when automation could act on the result."""
    return bool(package.repository_url) and (settings.auto_approve_on_pass or settings.auto_reject_on_fail)


def set_review_status(
    store,
    package_id: str,
    review_status: str,
    reviewed_by: str,
    notes: str | None = None,
) -> None:
    if review_status not in REVIEW_STATUSES:
        raise AdminError(f"Invalid review status {review_status!r}. Choose one of: {', '.join(REVIEW_STATUSES)}")
    _require(store, package_id)
    changes = {
        "review_status": review_status,
        "reviewed_by": reviewed_by,
        "reviewed_at": datetime.now(timezone.utc),
    }
    if notes is not None:
        changes["review_notes"] = notes
    if review_status != "approved":
        changes["featured"] = False
    store.update_package(package_id, **changes)


def set_visibility(store, package_id: str, visibility: str) -> None:
    if visibility not in VISIBILITIES:
        raise AdminError(f"Invalid visibility {visibility!r}. Choose one of: {', '.join(VISIBILITIES)}")
    _require(store, package_id)
    store.update_package(package_id, visibility=visibility)


def toggle_featured(store, package_id: str) -> bool:
    """Flip the featured flag and return the new value. Only approved packages can be featured."""
    pkg = _require(store, package_id)
    if pkg.review_status != "approved":
        raise AdminError("Only approved packages can be featured")
    store.update_package(package_id, featured=not pkg.featured)
    return not pkg.featured


def delete_package(store, package_id: str) -> None:
    _require(store, package_id)
    store.delete_package(package_id)
    logger.info("Deleted package %s", package_id)


def parse_setting_value(key: str, value):
    """Coerce a setting value (possibly a CLI string) to the type the key requires."""
    if key in _BOOLEAN_SETTINGS:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise AdminError(f"{key} expects true or false, got {value!r}")

    if key == "refresh_interval_days":
        if isinstance(value, bool):
            raise AdminError("refresh_interval_days must be a positive integer")
        try:
            days = int(value)
        except (TypeError, ValueError) as e:
            raise AdminError(f"refresh_interval_days must be a positive integer, got {value!r}") from e
        if days < 1:
            raise AdminError("refresh_interval_days must be a positive integer")
        return days

    known = sorted(_BOOLEAN_SETTINGS | {"refresh_interval_days"})
    raise AdminError(f"Unknown setting {key!r}. Choose one of: {', '.join(known)}")


def update_setting(store, key: str, value) -> None:
    store.update_settings(**{key: parse_setting_value(key, value)})


def get_refresh_stats(store, now: datetime | None = None) -> RefreshStats:
    """Counts over approved, non-archived packages plus the most recent run."""
    now = now or datetime.now(timezone.utc)
    settings = store.get_settings()
    packages = store.list_packages(review_status="approved", include_archived=False)
    logs = store.list_refresh_logs(limit=1)
    return RefreshStats(
        packages_needing_refresh=sum(is_stale(p, settings.refresh_interval_days, now) for p in packages),
        total_packages=len(packages),
        last_run=logs[0] if logs else None,
    )
