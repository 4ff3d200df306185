"""SQLiteStore: local file-based document store.

Why SQLite as the local store:
- Batteries included: ships with Python, no extra dependencies.
- Indexed lookups on name, review status and visibility stay fast as the
  directory grows, and writes are transactional.

Schema:
  packages      one row per package; the full record is a JSON document in
                `data`, with the columns we query on copied alongside it.
  settings      key/value rows holding JSON-encoded admin settings.
  refresh_logs  one row per refresh run, JSON document plus run_at/status.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import sqlite3
import uuid
from datetime import datetime

from pkgdir_store.base import BaseStore, PersistenceError, check_log_fields, check_package_fields
from pkgdir_store.models import AdminSettings, Collaborator, Package, RefreshError, RefreshLog, ReviewCriterion

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS packages (
    id                 TEXT PRIMARY KEY,
    name               TEXT NOT NULL UNIQUE,
    review_status      TEXT NOT NULL,
    visibility         TEXT NOT NULL,
    submitted_at       TEXT,
    data               TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_packages_review_status ON packages (review_status);
CREATE INDEX IF NOT EXISTS idx_packages_visibility    ON packages (visibility);
CREATE INDEX IF NOT EXISTS idx_packages_submitted_at  ON packages (submitted_at);

CREATE TABLE IF NOT EXISTS settings (
    key    TEXT PRIMARY KEY,
    value  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS refresh_logs (
    id      TEXT PRIMARY KEY,
    run_at  TEXT NOT NULL,
    status  TEXT NOT NULL,
    data    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_refresh_logs_run_at ON refresh_logs (run_at);
"""

_DATETIME_FIELDS = {
    "submitted_at",
    "reviewed_at",
    "ai_reviewed_at",
    "last_refreshed_at",
    "run_at",
    "completed_at",
}


def _encode(record) -> str:
    doc = dataclasses.asdict(record)
    for key in _DATETIME_FIELDS & doc.keys():
        if doc[key] is not None:
            doc[key] = doc[key].isoformat()
    return json.dumps(doc)


def _decode_datetimes(doc: dict) -> dict:
    for key in _DATETIME_FIELDS & doc.keys():
        if doc[key] is not None:
            doc[key] = datetime.fromisoformat(doc[key])
    return doc


def _package_from_json(raw: str) -> Package:
    doc = _decode_datetimes(json.loads(raw))
    doc["collaborators"] = [Collaborator(**c) for c in doc.get("collaborators", [])]
    doc["ai_review_criteria"] = [ReviewCriterion(**c) for c in doc.get("ai_review_criteria", [])]
    return Package(**doc)


def _log_from_json(raw: str) -> RefreshLog:
    doc = _decode_datetimes(json.loads(raw))
    doc["errors"] = [RefreshError(**e) for e in doc.get("errors", [])]
    return RefreshLog(**doc)


class SQLiteStore(BaseStore):
    """Stores the directory in a local SQLite database file.

    The database file path defaults to `.pkgdir.db` in the current working
    directory. Configure via .pkgdir.yml: `store_path: /path/to/pkgdir.db`.
    """

    def __init__(self, db_path: str = ".pkgdir.db"):
        try:
            self._conn = sqlite3.connect(db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not open store at {db_path}: {e}") from e

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            with self._conn:
                return self._conn.execute(sql, params)
        except sqlite3.IntegrityError as e:
            raise PersistenceError(f"Constraint violated: {e}") from e
        except sqlite3.Error as e:
            logger.error("SQLite statement failed: %s", e)
            raise PersistenceError(str(e)) from e

    # ------------------------------------------------------------------ #
    # Packages                                                             #
    # ------------------------------------------------------------------ #

    def _write_package(self, package: Package, insert: bool) -> None:
        submitted_at = package.submitted_at.isoformat() if package.submitted_at else None
        if insert:
            self._execute(
                """
                INSERT INTO packages (id, name, review_status, visibility, submitted_at, data)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (package.id, package.name, package.review_status, package.visibility, submitted_at, _encode(package)),
            )
        else:
            self._execute(
                """
                UPDATE packages
                   SET name=?, review_status=?, visibility=?, submitted_at=?, data=?
                 WHERE id=?
                """,
                (package.name, package.review_status, package.visibility, submitted_at, _encode(package), package.id),
            )

    def insert_package(self, package: Package) -> Package:
        stored = dataclasses.replace(package, id=package.id or uuid.uuid4().hex)
        self._write_package(stored, insert=True)
        return stored

    def get_package(self, package_id: str) -> Package | None:
        row = self._execute("SELECT data FROM packages WHERE id=?", (package_id,)).fetchone()
        return _package_from_json(row["data"]) if row else None

    def get_package_by_name(self, name: str) -> Package | None:
        row = self._execute("SELECT data FROM packages WHERE name=?", (name,)).fetchone()
        return _package_from_json(row["data"]) if row else None

    def list_packages(self, review_status: str | None = None, include_archived: bool = True) -> list[Package]:
        clauses, params = [], []
        if review_status is not None:
            clauses.append("review_status=?")
            params.append(review_status)
        if not include_archived:
            clauses.append("visibility != 'archived'")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._execute(f"SELECT data FROM packages {where} ORDER BY submitted_at, rowid", tuple(params)).fetchall()
        return [_package_from_json(r["data"]) for r in rows]

    def update_package(self, package_id: str, **changes) -> None:
        check_package_fields(changes)
        pkg = self.get_package(package_id)
        if pkg is None:
            raise PersistenceError(f"Package {package_id} not found")
        self._write_package(dataclasses.replace(pkg, **changes), insert=False)

    def delete_package(self, package_id: str) -> None:
        self._execute("DELETE FROM packages WHERE id=?", (package_id,))

    # ------------------------------------------------------------------ #
    # Settings                                                             #
    # ------------------------------------------------------------------ #

    def get_settings(self) -> AdminSettings:
        rows = self._execute("SELECT key, value FROM settings").fetchall()
        known = {f.name for f in dataclasses.fields(AdminSettings)}
        values = {r["key"]: json.loads(r["value"]) for r in rows if r["key"] in known}
        return AdminSettings(**values)

    def update_settings(self, **changes) -> None:
        known = {f.name for f in dataclasses.fields(AdminSettings)}
        unknown = set(changes) - known
        if unknown:
            raise PersistenceError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        for key, value in changes.items():
            self._execute(
                "INSERT INTO settings (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, json.dumps(value)),
            )

    # ------------------------------------------------------------------ #
    # Refresh logs                                                         #
    # ------------------------------------------------------------------ #

    def create_refresh_log(self, log: RefreshLog) -> RefreshLog:
        stored = dataclasses.replace(log, id=log.id or uuid.uuid4().hex)
        self._execute(
            "INSERT INTO refresh_logs (id, run_at, status, data) VALUES (?, ?, ?, ?)",
            (stored.id, stored.run_at.isoformat(), stored.status, _encode(stored)),
        )
        return stored

    def get_refresh_log(self, log_id: str) -> RefreshLog | None:
        row = self._execute("SELECT data FROM refresh_logs WHERE id=?", (log_id,)).fetchone()
        return _log_from_json(row["data"]) if row else None

    def update_refresh_log(self, log_id: str, **changes) -> None:
        check_log_fields(changes)
        log = self.get_refresh_log(log_id)
        if log is None:
            raise PersistenceError(f"Refresh log {log_id} not found")
        updated = dataclasses.replace(log, **changes)
        self._execute(
            "UPDATE refresh_logs SET run_at=?, status=?, data=? WHERE id=?",
            (updated.run_at.isoformat(), updated.status, _encode(updated), log_id),
        )

    def list_refresh_logs(self, limit: int | None = None) -> list[RefreshLog]:
        sql = "SELECT data FROM refresh_logs ORDER BY run_at DESC, rowid DESC"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        return [_log_from_json(r["data"]) for r in self._execute(sql, params).fetchall()]

    def delete_refresh_log(self, log_id: str) -> None:
        self._execute("DELETE FROM refresh_logs WHERE id=?", (log_id,))

    def close(self) -> None:
        self._conn.close()
