"""npm data refresh orchestration.

Scheduled and manual runs share one entry point, run_refresh(), so the log
bookkeeping exists once:

    select candidates → create RefreshLog(running)
                      → for each package: fetch npm → patch package, update log counts
                      → finalize log (completed | failed) → prune old logs

Packages are processed one at a time. A failing package records its error on
the package and in the log, then the run moves on; no single package can
abort a run.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from pkgdir_core.errors import AdminError, FetchError, RefreshInProgressError
from pkgdir_core.fetchers.npm import NpmPackageData, fetch_npm_package
from pkgdir_store.base import PersistenceError
from pkgdir_store.models import Collaborator, RefreshError, RefreshLog

logger = logging.getLogger(__name__)

_DEFAULT_BATCH_LIMIT = 100
_DEFAULT_LOG_RETENTION = 30
_DEFAULT_LOCK_MINUTES = 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_stale(package, interval_days: int, now: datetime) -> bool:
    """A package is stale once its data is at least ``interval_days`` old, or was never refreshed."""
    if package.last_refreshed_at is None:
        return True
    return now - package.last_refreshed_at >= timedelta(days=interval_days)


def select_candidates(
    store, settings, bypass_staleness: bool, now: datetime, limit: int, approved_only: bool = False
) -> list:
    """Return the packages a run should process, in processing order.

    Manual runs take every non-archived package, or only the approved ones
    with ``approved_only``. Scheduled runs take approved, non-archived
    packages whose data is stale, never-refreshed ones first, then oldest
    first.
    """
    if bypass_staleness:
        status = "approved" if approved_only else None
        return store.list_packages(review_status=status, include_archived=False)[:limit]

    stale = [
        pkg
        for pkg in store.list_packages(review_status="approved", include_archived=False)
        if is_stale(pkg, settings.refresh_interval_days, now)
    ]
    stale.sort(key=lambda pkg: (pkg.last_refreshed_at is not None, pkg.last_refreshed_at or now))
    return stale[:limit]


def npm_changes(package, data: NpmPackageData) -> dict:
    """Fields a successful fetch writes onto the package.

    A repository or homepage URL already on the package wins over the
    registry's, since admins and submitters correct these by hand.
    """
    return {
        "description": data.description,
        "version": data.version,
        "license": data.license,
        "install_command": data.install_command,
        "repository_url": package.repository_url or data.repository_url,
        "homepage_url": package.homepage_url or data.homepage_url,
        "unpacked_size": data.unpacked_size,
        "total_files": data.total_files,
        "last_publish": data.last_publish,
        "weekly_downloads": data.weekly_downloads,
        "collaborators": [Collaborator(**c) for c in data.collaborators],
        "maintainer_names": data.maintainer_names,
    }


def _check_no_active_run(store, now: datetime, lock_minutes: int) -> None:
    """Refuse to start while another run is live; finalize runs that were abandoned."""
    for log in store.list_refresh_logs(limit=10):
        if log.status != "running":
            continue
        if now - log.run_at < timedelta(minutes=lock_minutes):
            raise RefreshInProgressError(f"Refresh run {log.id} started at {log.run_at.isoformat()} is still running")
        logger.warning("Marking abandoned refresh run %s as failed", log.id)
        store.update_refresh_log(log.id, status="failed", completed_at=now)


def _record_failure(store, pkg, error: str, now: datetime) -> None:
    # Still stamp last_refreshed_at so a broken package is not retried on every run.
    try:
        store.update_package(pkg.id, refresh_error=error, last_refreshed_at=now)
    except PersistenceError as e:
        # The package may have been deleted while the run was in flight.
        logger.warning("Could not record refresh error on %s: %s", pkg.name, e)


def run_refresh(
    store,
    settings,
    *,
    is_manual: bool,
    bypass_staleness: bool,
    approved_only: bool = False,
    fetch: Callable[[str], NpmPackageData] = fetch_npm_package,
    limit: int = _DEFAULT_BATCH_LIMIT,
    log_retention: int = _DEFAULT_LOG_RETENTION,
    lock_minutes: int = _DEFAULT_LOCK_MINUTES,
    clock: Callable[[], datetime] = _utcnow,
) -> RefreshLog | None:
    """Refresh npm data for the selected packages and return the finalized log.

    Returns None (and writes nothing) when there is nothing to process.
    Raises RefreshInProgressError if a recent run is still marked running.
    The log is finalized even if the run itself is interrupted.
    """
    now = clock()
    candidates = select_candidates(store, settings, bypass_staleness, now, limit, approved_only=approved_only)
    if not candidates:
        logger.info("No packages to refresh")
        return None

    _check_no_active_run(store, now, lock_minutes)

    log = store.create_refresh_log(RefreshLog(run_at=now, is_manual=is_manual))
    logger.info("Refresh run %s started: %d package(s), manual=%s", log.id, len(candidates), is_manual)

    processed = succeeded = failed = 0
    errors: list[RefreshError] = []
    finished = False
    try:
        for pkg in candidates:
            try:
                data = fetch(pkg.name)
                store.update_package(pkg.id, **npm_changes(pkg, data), last_refreshed_at=clock(), refresh_error=None)
            except Exception as e:
                # Any failure, including malformed upstream data or a store error,
                # is confined to this package.
                message = str(e) or type(e).__name__
                failed += 1
                errors.append(RefreshError(package_id=pkg.id, package_name=pkg.name, error=message))
                _record_failure(store, pkg, message, clock())
                if isinstance(e, FetchError):
                    logger.warning("Refresh failed for %s: %s", pkg.name, e)
                else:
                    logger.exception("Unexpected error refreshing %s", pkg.name)
            else:
                succeeded += 1
                logger.debug("Refreshed %s", pkg.name)
            processed += 1
            store.update_refresh_log(
                log.id,
                packages_processed=processed,
                packages_succeeded=succeeded,
                packages_failed=failed,
                errors=list(errors),
            )
        finished = True
    finally:
        # An interrupted run is never reported as completed.
        status = "completed" if finished and failed < processed else "failed"
        store.update_refresh_log(log.id, status=status, completed_at=clock())

    removed = store.prune_refresh_logs(log_retention)
    if removed:
        logger.debug("Pruned %d old refresh log(s)", removed)

    logger.info("Refresh run %s %s: %d succeeded, %d failed", log.id, status, succeeded, failed)
    return store.get_refresh_log(log.id)


def scheduled_refresh(store, config: dict | None = None, **kwargs) -> RefreshLog | None:
    """Entry point for the daily scheduler. A no-op while auto-refresh is disabled."""
    settings = store.get_settings()
    if not settings.auto_refresh_enabled:
        logger.info("Auto-refresh is disabled, skipping scheduled refresh")
        return None
    return run_refresh(store, settings, is_manual=False, bypass_staleness=False, **_run_options(config), **kwargs)


def manual_refresh(store, config: dict | None = None, approved_only: bool = False, **kwargs) -> RefreshLog | None:
    """Admin "Refresh All": every non-archived package, regardless of staleness.

    With ``approved_only`` ("Refresh Approved") only approved packages are taken.
    """
    return run_refresh(
        store,
        store.get_settings(),
        is_manual=True,
        bypass_staleness=True,
        approved_only=approved_only,
        **_run_options(config),
        **kwargs,
    )


def refresh_package(store, package_id: str, fetch: Callable[[str], NpmPackageData] = fetch_npm_package) -> None:
    """Refresh a single package outside of any run. Errors are recorded, then re-raised."""
    pkg = store.get_package(package_id)
    if pkg is None:
        raise AdminError(f"Package {package_id} not found")
    try:
        data = fetch(pkg.name)
    except FetchError as e:
        store.update_package(package_id, refresh_error=str(e), last_refreshed_at=_utcnow())
        raise
    store.update_package(package_id, **npm_changes(pkg, data), last_refreshed_at=_utcnow(), refresh_error=None)


def _run_options(config: dict | None) -> dict:
    if not config:
        return {}
    options = {
        "limit": config.get("refresh_batch_limit"),
        "log_retention": config.get("refresh_log_retention"),
        "lock_minutes": config.get("refresh_lock_minutes"),
    }
    return {k: v for k, v in options.items() if v is not None}
