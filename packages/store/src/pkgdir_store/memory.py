"""In-memory store, selected with `store: memory`.

Nothing survives the process, which makes it the natural backend for tests
and for one-shot shadow reviews. Records are copied on the way in and out so
callers never mutate stored state by accident.
"""

from __future__ import annotations

import copy
import dataclasses
import uuid
from datetime import datetime, timezone

from pkgdir_store.base import BaseStore, PersistenceError, check_log_fields, check_package_fields
from pkgdir_store.models import AdminSettings, Package, RefreshLog

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class MemoryStore(BaseStore):
    """Dict-backed store, ordered like SQLiteStore."""

    def __init__(self):
        self._packages: dict[str, Package] = {}
        self._logs: dict[str, RefreshLog] = {}
        self._settings = AdminSettings()

    def insert_package(self, package: Package) -> Package:
        if self.get_package_by_name(package.name) is not None:
            raise PersistenceError(f"Package {package.name!r} already exists")
        stored = dataclasses.replace(copy.deepcopy(package), id=package.id or uuid.uuid4().hex)
        self._packages[stored.id] = stored
        return copy.deepcopy(stored)

    def get_package(self, package_id: str) -> Package | None:
        pkg = self._packages.get(package_id)
        return copy.deepcopy(pkg) if pkg is not None else None

    def get_package_by_name(self, name: str) -> Package | None:
        for pkg in self._packages.values():
            if pkg.name == name:
                return copy.deepcopy(pkg)
        return None

    def list_packages(self, review_status: str | None = None, include_archived: bool = True) -> list[Package]:
        results = []
        for pkg in self._packages.values():
            if review_status is not None and pkg.review_status != review_status:
                continue
            if not include_archived and pkg.visibility == "archived":
                continue
            results.append(copy.deepcopy(pkg))
        # Missing timestamps sort first, as NULLs do in SQLite; ties keep insertion order.
        results.sort(key=lambda p: (p.submitted_at is not None, p.submitted_at or _EPOCH))
        return results

    def update_package(self, package_id: str, **changes) -> None:
        check_package_fields(changes)
        pkg = self._packages.get(package_id)
        if pkg is None:
            raise PersistenceError(f"Package {package_id} not found")
        self._packages[package_id] = dataclasses.replace(pkg, **copy.deepcopy(changes))

    def delete_package(self, package_id: str) -> None:
        self._packages.pop(package_id, None)

    def get_settings(self) -> AdminSettings:
        return dataclasses.replace(self._settings)

    def update_settings(self, **changes) -> None:
        try:
            self._settings = dataclasses.replace(self._settings, **changes)
        except TypeError as e:
            raise PersistenceError(str(e)) from e

    def create_refresh_log(self, log: RefreshLog) -> RefreshLog:
        stored = dataclasses.replace(copy.deepcopy(log), id=log.id or uuid.uuid4().hex)
        self._logs[stored.id] = stored
        return copy.deepcopy(stored)

    def get_refresh_log(self, log_id: str) -> RefreshLog | None:
        log = self._logs.get(log_id)
        return copy.deepcopy(log) if log is not None else None

    def update_refresh_log(self, log_id: str, **changes) -> None:
        check_log_fields(changes)
        log = self._logs.get(log_id)
        if log is None:
            raise PersistenceError(f"Refresh log {log_id} not found")
        self._logs[log_id] = dataclasses.replace(log, **copy.deepcopy(changes))

    def list_refresh_logs(self, limit: int | None = None) -> list[RefreshLog]:
        logs = sorted(self._logs.values(), key=lambda log: log.run_at, reverse=True)
        if limit is not None:
            logs = logs[:limit]
        return [copy.deepcopy(log) for log in logs]

    def delete_refresh_log(self, log_id: str) -> None:
        self._logs.pop(log_id, None)
