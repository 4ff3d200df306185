"""Abstract store interface.

Any storage backend (in-memory, SQLite, a hosted document database)
implements this interface. The core and the CLI depend on BaseStore, never on
a concrete backend, so backends are swappable without touching either.
"""

from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pkgdir_store.models import Package, RefreshLog

if TYPE_CHECKING:
    from pkgdir_store.models import AdminSettings

_PACKAGE_FIELDS = frozenset(f.name for f in dataclasses.fields(Package)) - {"id"}
_LOG_FIELDS = frozenset(f.name for f in dataclasses.fields(RefreshLog)) - {"id"}


class PersistenceError(Exception):
    """A store read or write failed. Surfaced to the caller, never retried."""


class BaseStore(ABC):
    """Document store for packages, admin settings and refresh logs.

    Updates are field-level patches: two writers touching different packages
    (or different fields of one package) never overwrite each other's data.
    """

    # ------------------------------------------------------------------ #
    # Packages                                                             #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def insert_package(self, package: Package) -> Package:
        """Persist a new package and return it with its assigned id."""

    @abstractmethod
    def get_package(self, package_id: str) -> Package | None:
        """Return the package with this id, or None."""

    @abstractmethod
    def get_package_by_name(self, name: str) -> Package | None:
        """Indexed lookup by npm package name."""

    @abstractmethod
    def list_packages(
        self,
        review_status: str | None = None,
        include_archived: bool = True,
    ) -> list[Package]:
        """Return packages ordered by submission time, optionally filtered."""

    def search_packages(self, term: str, visible_only: bool = False, limit: int = 100) -> list[Package]:
        """Case-insensitive substring search over name, description and maintainer names.

        Name matches rank first, then description matches, then maintainer
        matches; each group is newest first and a package appears once. A
        blank term returns the newest packages.
        """
        packages = self.list_packages()[::-1]
        if visible_only:
            packages = [p for p in packages if p.visibility == "visible"]
        needle = term.strip().lower()
        if not needle:
            return packages[:limit]

        seen: set[str] = set()
        results: list[Package] = []
        for field in ("name", "description", "maintainer_names"):
            for pkg in packages:
                if pkg.id not in seen and needle in (getattr(pkg, field) or "").lower():
                    seen.add(pkg.id)
                    results.append(pkg)
        return results[:limit]

    @abstractmethod
    def update_package(self, package_id: str, **changes) -> None:
        """Patch the given fields. Raises PersistenceError if the package is missing."""

    @abstractmethod
    def delete_package(self, package_id: str) -> None:
        """Hard-delete a package."""

    # ------------------------------------------------------------------ #
    # Settings                                                             #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def get_settings(self) -> AdminSettings:
        """Return the current admin settings, defaults for unset keys."""

    @abstractmethod
    def update_settings(self, **changes) -> None:
        """Patch one or more admin settings."""

    # ------------------------------------------------------------------ #
    # Refresh logs                                                         #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def create_refresh_log(self, log: RefreshLog) -> RefreshLog:
        """Persist a new refresh log and return it with its assigned id."""

    @abstractmethod
    def get_refresh_log(self, log_id: str) -> RefreshLog | None:
        """Return the refresh log with this id, or None."""

    @abstractmethod
    def update_refresh_log(self, log_id: str, **changes) -> None:
        """Patch the given fields of a refresh log."""

    @abstractmethod
    def list_refresh_logs(self, limit: int | None = None) -> list[RefreshLog]:
        """Return refresh logs newest first."""

    @abstractmethod
    def delete_refresh_log(self, log_id: str) -> None:
        """Remove a refresh log."""

    def prune_refresh_logs(self, keep: int) -> int:
        """Delete all but the newest ``keep`` refresh logs. Returns the number removed."""
        stale = self.list_refresh_logs()[keep:]
        for log in stale:
            self.delete_refresh_log(log.id)
        return len(stale)

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional: subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """


def check_package_fields(changes: dict) -> None:
    unknown = set(changes) - _PACKAGE_FIELDS
    if unknown:
        raise PersistenceError(f"Unknown package field(s): {', '.join(sorted(unknown))}")


def check_log_fields(changes: dict) -> None:
    unknown = set(changes) - _LOG_FIELDS
    if unknown:
        raise PersistenceError(f"Unknown refresh log field(s): {', '.join(sorted(unknown))}")
