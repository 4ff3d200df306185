"""Directory data models.

Decoupled from pkgdir_core so the store layer can be used independently.
Timestamps are timezone-aware UTC datetimes; stores own their serialization.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

REVIEW_STATUSES = ("pending", "in_review", "approved", "changes_requested", "rejected")
VISIBILITIES = ("visible", "hidden", "archived")
AI_REVIEW_STATUSES = ("not_reviewed", "reviewing", "passed", "failed", "partial", "error")
REFRESH_STATUSES = ("running", "completed", "failed")


@dataclass
class Collaborator:
    name: str
    avatar: str = ""


@dataclass
class ReviewCriterion:
    """One rubric check recorded by an AI review run."""

    name: str
    passed: bool
    notes: str = ""


@dataclass
class Package:
    """A submitted npm package and its review state."""

    name: str
    id: str | None = None
    description: str = ""
    version: str = ""
    license: str = ""
    install_command: str = ""
    repository_url: str | None = None
    homepage_url: str | None = None
    npm_url: str = ""
    unpacked_size: int = 0
    total_files: int = 0
    last_publish: str = ""
    weekly_downloads: int = 0
    collaborators: list[Collaborator] = field(default_factory=list)
    maintainer_names: str = ""
    submitted_at: datetime | None = None
    submitter_name: str | None = None
    submitter_email: str | None = None

    review_status: str = "pending"  # see REVIEW_STATUSES
    visibility: str = "visible"  # see VISIBILITIES
    featured: bool = False
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None

    ai_review_status: str = "not_reviewed"  # see AI_REVIEW_STATUSES
    ai_review_summary: str | None = None
    ai_review_criteria: list[ReviewCriterion] = field(default_factory=list)
    ai_reviewed_at: datetime | None = None
    ai_review_error: str | None = None

    last_refreshed_at: datetime | None = None
    refresh_error: str | None = None


@dataclass
class AdminSettings:
    """Admin-controlled automation switches, read before every automated decision."""

    auto_approve_on_pass: bool = False
    auto_reject_on_fail: bool = False
    auto_refresh_enabled: bool = False
    refresh_interval_days: int = 3


@dataclass
class RefreshError:
    package_id: str
    package_name: str
    error: str


@dataclass
class RefreshLog:
    """One refresh run, scheduled or manual."""

    run_at: datetime
    is_manual: bool
    id: str | None = None
    status: str = "running"  # see REFRESH_STATUSES
    completed_at: datetime | None = None
    packages_processed: int = 0
    packages_succeeded: int = 0
    packages_failed: int = 0
    errors: list[RefreshError] = field(default_factory=list)
