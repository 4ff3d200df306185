"""Tests for admin operations."""

from datetime import datetime, timedelta, timezone

import pytest

from pkgdir_core import admin
from pkgdir_core.errors import AdminError, PackageNotFoundError
from pkgdir_core.fetchers.npm import NpmPackageData
from pkgdir_store.memory import MemoryStore
from pkgdir_store.models import AdminSettings, Package, RefreshLog

NOW = datetime(2025, 3, 10, tzinfo=timezone.utc)


def _fetch(name):
    return NpmPackageData(
        name=name,
        description="A component",
        install_command=f"npm install {name}",
        version="0.3.0",
        license="MIT",
        unpacked_size=2048,
        total_files=9,
        last_publish="2025-02-01T00:00:00.000Z",
        weekly_downloads=12,
        npm_url=f"https://www.npmjs.com/package/{name}",
        repository_url="https://github.com/acme/from-npm",
        collaborators=[{"name": "alice", "avatar": ""}],
    )


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def approved(store):
    return store.insert_package(Package(name="approved-pkg", review_status="approved", featured=True))


class TestSubmitPackage:
    def test_creates_pending_package(self, store):
        pkg = admin.submit_package(
            store,
            "https://www.npmjs.com/package/@acme/widget",
            submitter_name="Ada",
            submitter_email="ada@example.com",
            fetch=_fetch,
        )

        saved = store.get_package(pkg.id)
        assert saved.name == "@acme/widget"
        assert saved.review_status == "pending"
        assert saved.visibility == "visible"
        assert saved.featured is False
        assert saved.ai_review_status == "not_reviewed"
        assert saved.version == "0.3.0"
        assert saved.maintainer_names == "alice"
        assert saved.submitter_email == "ada@example.com"
        assert saved.submitted_at is not None
        assert saved.repository_url == "https://github.com/acme/from-npm"

    def test_explicit_repository_url_wins(self, store):
        pkg = admin.submit_package(store, "widget", repository_url="https://github.com/acme/real", fetch=_fetch)
        assert pkg.repository_url == "https://github.com/acme/real"

    def test_rejects_non_github_repository(self, store):
        with pytest.raises(AdminError, match="Invalid GitHub repository URL"):
            admin.submit_package(store, "widget", repository_url="https://gitlab.com/a/b", fetch=_fetch)

    def test_rejects_duplicates(self, store):
        admin.submit_package(store, "widget", fetch=_fetch)
        with pytest.raises(AdminError, match="already submitted"):
            admin.submit_package(store, "https://www.npmjs.com/package/widget", fetch=_fetch)

    def test_invalid_name(self, store):
        with pytest.raises(AdminError):
            admin.submit_package(store, "not a package!", fetch=_fetch)

    def test_unknown_npm_package_propagates(self, store):
        def missing(name):
            raise PackageNotFoundError(f'Package "{name}" not found on npm')

        with pytest.raises(PackageNotFoundError):
            admin.submit_package(store, "ghost", fetch=missing)
        assert store.list_packages() == []


class TestShouldReviewOnSubmit:
    def test_only_when_automation_enabled(self):
        pkg = Package(name="a", repository_url="https://github.com/a/a")
        assert not admin.should_review_on_submit(AdminSettings(), pkg)
        assert admin.should_review_on_submit(AdminSettings(auto_reject_on_fail=True), pkg)

    def test_needs_repository(self):
        assert not admin.should_review_on_submit(AdminSettings(auto_approve_on_pass=True), Package(name="a"))


class TestReviewStatus:
    def test_set_status(self, store, approved):
        admin.set_review_status(store, approved.id, "in_review", "alice", notes="Looking")
        saved = store.get_package(approved.id)
        assert saved.review_status == "in_review"
        assert saved.reviewed_by == "alice"
        assert saved.review_notes == "Looking"
        assert saved.reviewed_at is not None

    @pytest.mark.parametrize("status", ["pending", "in_review", "changes_requested", "rejected"])
    def test_leaving_approved_clears_featured(self, store, approved, status):
        admin.set_review_status(store, approved.id, status, "alice")
        assert store.get_package(approved.id).featured is False

    def test_staying_approved_keeps_featured(self, store, approved):
        admin.set_review_status(store, approved.id, "approved", "alice")
        assert store.get_package(approved.id).featured is True

    def test_invalid_status(self, store, approved):
        with pytest.raises(AdminError, match="Invalid review status"):
            admin.set_review_status(store, approved.id, "published", "alice")

    def test_unknown_package(self, store):
        with pytest.raises(AdminError, match="not found"):
            admin.set_review_status(store, "nope", "approved", "alice")


class TestFeatured:
    def test_toggle(self, store, approved):
        assert admin.toggle_featured(store, approved.id) is False
        assert admin.toggle_featured(store, approved.id) is True

    def test_only_approved(self, store):
        pkg = store.insert_package(Package(name="pending-pkg"))
        with pytest.raises(AdminError, match="Only approved packages can be featured"):
            admin.toggle_featured(store, pkg.id)
        assert store.get_package(pkg.id).featured is False


class TestVisibilityAndDelete:
    def test_set_visibility(self, store, approved):
        admin.set_visibility(store, approved.id, "hidden")
        assert store.get_package(approved.id).visibility == "hidden"

    def test_invalid_visibility(self, store, approved):
        with pytest.raises(AdminError):
            admin.set_visibility(store, approved.id, "secret")

    def test_delete(self, store, approved):
        admin.delete_package(store, approved.id)
        assert store.get_package(approved.id) is None


class TestSettings:
    def test_boolean_strings(self, store):
        admin.update_setting(store, "auto_approve_on_pass", "true")
        admin.update_setting(store, "auto_refresh_enabled", "yes")
        settings = store.get_settings()
        assert settings.auto_approve_on_pass is True
        assert settings.auto_refresh_enabled is True

    def test_interval(self, store):
        admin.update_setting(store, "refresh_interval_days", "7")
        assert store.get_settings().refresh_interval_days == 7

    @pytest.mark.parametrize("value", ["0", "-1", "soon", True])
    def test_invalid_interval(self, store, value):
        with pytest.raises(AdminError):
            admin.update_setting(store, "refresh_interval_days", value)

    def test_invalid_boolean(self, store):
        with pytest.raises(AdminError, match="expects true or false"):
            admin.update_setting(store, "auto_reject_on_fail", "maybe")

    def test_unknown_key(self, store):
        with pytest.raises(AdminError, match="Unknown setting"):
            admin.update_setting(store, "auto_publish", "true")


class TestRefreshStats:
    def test_counts_and_last_run(self, store):
        store.insert_package(Package(name="never", review_status="approved"))
        store.insert_package(Package(name="fresh", review_status="approved", last_refreshed_at=NOW - timedelta(days=1)))
        store.insert_package(Package(name="stale", review_status="approved", last_refreshed_at=NOW - timedelta(days=4)))
        store.insert_package(Package(name="pending"))
        store.insert_package(Package(name="archived", review_status="approved", visibility="archived"))
        store.create_refresh_log(RefreshLog(run_at=NOW - timedelta(days=2), is_manual=True, status="completed"))
        latest = store.create_refresh_log(RefreshLog(run_at=NOW - timedelta(hours=1), is_manual=False, status="failed"))

        stats = admin.get_refresh_stats(store, now=NOW)

        assert stats.total_packages == 3
        assert stats.packages_needing_refresh == 2
        assert stats.last_run.id == latest.id

    def test_empty(self, store):
        stats = admin.get_refresh_stats(store, now=NOW)
        assert stats.total_packages == 0
        assert stats.last_run is None
