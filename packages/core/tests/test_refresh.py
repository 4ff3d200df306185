"""Tests for the npm refresh orchestrator, run against MemoryStore."""

import dataclasses
import functools
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from pkgdir_core.errors import AdminError, FetchError, PackageNotFoundError, RefreshInProgressError
from pkgdir_core.fetchers.npm import NpmPackageData, fetch_npm_package
from pkgdir_core.refresh import (
    is_stale,
    manual_refresh,
    refresh_package,
    run_refresh,
    scheduled_refresh,
    select_candidates,
)
from pkgdir_store.base import PersistenceError
from pkgdir_store.memory import MemoryStore
from pkgdir_store.models import AdminSettings, Package, RefreshLog

NOW = datetime(2025, 3, 10, 6, 0, tzinfo=timezone.utc)


def _clock():
    return NOW


def _data(name, version="2.0.0"):
    return NpmPackageData(
        name=name,
        description=f"{name} description",
        install_command=f"npm install {name}",
        version=version,
        license="MIT",
        unpacked_size=100,
        total_files=4,
        last_publish="2025-03-01T00:00:00.000Z",
        weekly_downloads=50,
        npm_url=f"https://www.npmjs.com/package/{name}",
        repository_url=f"https://github.com/acme/{name}",
        homepage_url=None,
        collaborators=[{"name": "alice", "avatar": "https://avatars/alice"}],
    )


def _fetcher(failing=()):
    calls = []

    def fetch(name):
        calls.append(name)
        if name in failing:
            raise FetchError(f"boom {name}")
        return _data(name)

    fetch.calls = calls
    return fetch


def _add(store, name, days_ago=None, status="approved", visibility="visible", **kwargs):
    refreshed = NOW - timedelta(days=days_ago) if days_ago is not None else None
    return store.insert_package(
        Package(
            name=name,
            version="1.0.0",
            review_status=status,
            visibility=visibility,
            last_refreshed_at=refreshed,
            submitted_at=NOW - timedelta(days=30),
            **kwargs,
        )
    )


@pytest.fixture
def store():
    return MemoryStore()


class TestStaleness:
    def test_never_refreshed_is_stale(self):
        assert is_stale(Package(name="a"), 3, NOW)

    def test_boundary_is_stale(self):
        assert is_stale(Package(name="a", last_refreshed_at=NOW - timedelta(days=3)), 3, NOW)

    def test_recent_is_fresh(self):
        assert not is_stale(Package(name="a", last_refreshed_at=NOW - timedelta(days=2, hours=23)), 3, NOW)


class TestSelectCandidates:
    def test_scheduled_takes_stale_approved_visible(self, store):
        _add(store, "fresh", days_ago=1)
        _add(store, "stale", days_ago=5)
        _add(store, "never")
        _add(store, "pending", status="pending")
        _add(store, "archived", visibility="archived")
        _add(store, "hidden", days_ago=10, visibility="hidden")

        names = [p.name for p in select_candidates(store, AdminSettings(), False, NOW, 100)]
        assert names == ["never", "hidden", "stale"]

    def test_manual_takes_everything_not_archived(self, store):
        _add(store, "fresh", days_ago=1)
        _add(store, "pending", status="pending")
        _add(store, "archived", visibility="archived")

        names = {p.name for p in select_candidates(store, AdminSettings(), True, NOW, 100)}
        assert names == {"fresh", "pending"}

    def test_manual_approved_only(self, store):
        _add(store, "fresh", days_ago=1)
        _add(store, "pending", status="pending")
        _add(store, "archived", visibility="archived")

        names = [p.name for p in select_candidates(store, AdminSettings(), True, NOW, 100, approved_only=True)]
        assert names == ["fresh"]

    def test_limit(self, store):
        for i in range(5):
            _add(store, f"p{i}")
        assert len(select_candidates(store, AdminSettings(), False, NOW, 3)) == 3


class TestRunRefresh:
    def test_all_succeed(self, store):
        a = _add(store, "a", days_ago=5, repository_url="https://github.com/custom/a")
        _add(store, "b")

        log = run_refresh(store, AdminSettings(), is_manual=False, bypass_staleness=False, fetch=_fetcher(), clock=_clock)

        assert log.status == "completed"
        assert (log.packages_processed, log.packages_succeeded, log.packages_failed) == (2, 2, 0)
        assert log.completed_at == NOW
        assert log.is_manual is False

        refreshed = store.get_package(a.id)
        assert refreshed.version == "2.0.0"
        assert refreshed.weekly_downloads == 50
        assert refreshed.last_refreshed_at == NOW
        assert refreshed.refresh_error is None
        assert refreshed.maintainer_names == "alice"
        assert refreshed.collaborators[0].name == "alice"
        # A URL already on the package is kept.
        assert refreshed.repository_url == "https://github.com/custom/a"

    def test_partial_failure_completes(self, store):
        _add(store, "a")
        bad = _add(store, "b")
        _add(store, "c")

        log = run_refresh(
            store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=_fetcher({"b"}), clock=_clock
        )

        assert log.status == "completed"
        assert (log.packages_processed, log.packages_succeeded, log.packages_failed) == (3, 2, 1)
        assert [(e.package_id, e.package_name, e.error) for e in log.errors] == [(bad.id, "b", "boom b")]

        failed = store.get_package(bad.id)
        assert failed.refresh_error == "boom b"
        assert failed.last_refreshed_at == NOW
        assert failed.version == "1.0.0"

    def test_all_fail_marks_run_failed(self, store):
        _add(store, "a")
        _add(store, "b")

        log = run_refresh(
            store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=_fetcher({"a", "b"}), clock=_clock
        )

        assert log.status == "failed"
        assert log.packages_failed == 2
        assert len(log.errors) == 2

    def test_one_failure_does_not_stop_later_packages(self, store):
        _add(store, "a")
        _add(store, "b")
        fetch = _fetcher({"a"})

        run_refresh(store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=fetch, clock=_clock)
        assert fetch.calls == ["a", "b"]

    def test_not_found_recorded_like_other_failures(self, store):
        pkg = _add(store, "gone")

        def fetch(name):
            raise PackageNotFoundError(f'Package "{name}" not found on npm')

        log = run_refresh(store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=fetch, clock=_clock)
        assert log.status == "failed"
        assert store.get_package(pkg.id).refresh_error == 'Package "gone" not found on npm'

    def test_success_clears_previous_error(self, store):
        pkg = _add(store, "a", refresh_error="old failure")
        run_refresh(store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=_fetcher(), clock=_clock)
        assert store.get_package(pkg.id).refresh_error is None

    def test_nothing_to_do_writes_no_log(self, store):
        _add(store, "fresh", days_ago=1)
        log = run_refresh(store, AdminSettings(), is_manual=False, bypass_staleness=False, fetch=_fetcher(), clock=_clock)
        assert log is None
        assert store.list_refresh_logs() == []

    def test_second_scheduled_run_is_a_noop(self, store):
        _add(store, "a")
        settings = AdminSettings(auto_refresh_enabled=True)
        store.update_settings(auto_refresh_enabled=True)
        fetch = _fetcher()

        first = run_refresh(store, settings, is_manual=False, bypass_staleness=False, fetch=fetch, clock=_clock)
        second = run_refresh(store, settings, is_manual=False, bypass_staleness=False, fetch=fetch, clock=_clock)

        assert first.packages_succeeded == 1
        assert second is None
        assert fetch.calls == ["a"]

    def test_refuses_while_recent_run_is_active(self, store):
        _add(store, "a")
        store.create_refresh_log(RefreshLog(run_at=NOW - timedelta(minutes=5), is_manual=True))
        with pytest.raises(RefreshInProgressError):
            run_refresh(store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=_fetcher(), clock=_clock)

    def test_abandoned_run_is_finalized(self, store):
        _add(store, "a")
        stuck = store.create_refresh_log(RefreshLog(run_at=NOW - timedelta(hours=3), is_manual=False))

        log = run_refresh(store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=_fetcher(), clock=_clock)

        assert log.status == "completed"
        assert store.get_refresh_log(stuck.id).status == "failed"

    def test_old_logs_pruned(self, store):
        _add(store, "a")
        for i in range(5):
            store.create_refresh_log(
                RefreshLog(run_at=NOW - timedelta(days=i + 1), is_manual=True, status="completed")
            )

        log = run_refresh(
            store,
            AdminSettings(),
            is_manual=True,
            bypass_staleness=True,
            fetch=_fetcher(),
            clock=_clock,
            log_retention=3,
        )

        logs = store.list_refresh_logs()
        assert len(logs) == 3
        assert logs[0].id == log.id

    def test_malformed_registry_document_is_confined(self, store):
        bad = _add(store, "a")
        good = _add(store, "b")
        documents = {
            "a": {"dist-tags": {"latest": "1.0.0"}, "versions": {"1.0.0": "oops"}},
            "b": {"dist-tags": {"latest": "2.0.0"}, "versions": {"2.0.0": {"description": "ok"}}},
        }
        session = MagicMock()

        def get(url, timeout):
            response = MagicMock(status_code=200, ok=True)
            name = url.rsplit("/", 1)[-1]
            response.json.return_value = documents.get(name, {})
            return response

        session.get.side_effect = get
        fetch = functools.partial(fetch_npm_package, session=session)

        log = run_refresh(store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=fetch, clock=_clock)

        assert log.status == "completed"
        assert (log.packages_processed, log.packages_succeeded, log.packages_failed) == (2, 1, 1)
        assert "Malformed version data" in store.get_package(bad.id).refresh_error
        assert store.get_package(good.id).version == "2.0.0"

    def test_unexpected_error_is_recorded(self, store):
        pkg = _add(store, "a")

        def fetch(name):
            raise AttributeError("'list' object has no attribute 'get'")

        log = run_refresh(store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=fetch, clock=_clock)

        assert log.status == "failed"
        assert log.errors[0].error == "'list' object has no attribute 'get'"
        assert store.get_package(pkg.id).refresh_error == "'list' object has no attribute 'get'"

    def test_package_deleted_mid_run(self, store):
        gone = _add(store, "a")
        _add(store, "b")

        def fetch(name):
            if name == "a":
                store.delete_package(gone.id)
            return _data(name)

        log = run_refresh(store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=fetch, clock=_clock)

        assert log.status == "completed"
        assert (log.packages_succeeded, log.packages_failed) == (1, 1)
        assert log.errors[0].package_name == "a"
        assert "not found" in log.errors[0].error

    def test_log_finalized_when_run_is_interrupted(self, store, mocker):
        _add(store, "a")
        update = mocker.patch.object(store, "update_refresh_log", side_effect=[PersistenceError("disk full"), None])

        with pytest.raises(PersistenceError, match="disk full"):
            run_refresh(store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=_fetcher(), clock=_clock)

        assert update.call_count == 2
        assert update.call_args.kwargs == {"status": "failed", "completed_at": NOW}

    def test_unchanged_upstream_only_moves_refresh_time(self, store):
        pkg = _add(store, "a")
        run_refresh(store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=_fetcher(), clock=_clock)
        first = store.get_package(pkg.id)

        later = NOW + timedelta(hours=2)
        run_refresh(
            store, AdminSettings(), is_manual=True, bypass_staleness=True, fetch=_fetcher(), clock=lambda: later
        )
        second = store.get_package(pkg.id)

        assert second.last_refreshed_at == later
        assert dataclasses.replace(second, last_refreshed_at=None) == dataclasses.replace(first, last_refreshed_at=None)


class TestEntryPoints:
    def test_scheduled_disabled_does_nothing(self, store):
        _add(store, "a")
        fetch = _fetcher()
        assert scheduled_refresh(store, fetch=fetch) is None
        assert fetch.calls == []
        assert store.list_refresh_logs() == []

    def test_scheduled_enabled_uses_interval_setting(self, store):
        store.update_settings(auto_refresh_enabled=True, refresh_interval_days=7)
        _add(store, "five-days", days_ago=5)
        _add(store, "eight-days", days_ago=8)
        fetch = _fetcher()

        log = scheduled_refresh(store, fetch=fetch, clock=_clock)

        assert fetch.calls == ["eight-days"]
        assert log.is_manual is False

    def test_manual_ignores_staleness_and_toggle(self, store):
        _add(store, "fresh", days_ago=0)
        log = manual_refresh(store, fetch=_fetcher(), clock=_clock)
        assert log.is_manual is True
        assert log.packages_succeeded == 1

    def test_config_options_forwarded(self, store):
        for i in range(3):
            _add(store, f"p{i}")
        log = manual_refresh(store, {"refresh_batch_limit": 2}, fetch=_fetcher(), clock=_clock)
        assert log.packages_processed == 2

    def test_manual_approved_only(self, store):
        _add(store, "approved")
        _add(store, "pending", status="pending")
        fetch = _fetcher()

        log = manual_refresh(store, approved_only=True, fetch=fetch, clock=_clock)

        assert fetch.calls == ["approved"]
        assert log.is_manual is True


class TestRefreshPackage:
    def test_success(self, store):
        pkg = _add(store, "a")
        refresh_package(store, pkg.id, fetch=_fetcher())
        assert store.get_package(pkg.id).version == "2.0.0"

    def test_failure_recorded_and_raised(self, store):
        pkg = _add(store, "a")
        with pytest.raises(FetchError):
            refresh_package(store, pkg.id, fetch=_fetcher({"a"}))
        assert store.get_package(pkg.id).refresh_error == "boom a"

    def test_unknown_package(self, store):
        with pytest.raises(AdminError):
            refresh_package(store, "nope", fetch=_fetcher())
