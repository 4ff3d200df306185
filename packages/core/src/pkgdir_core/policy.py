"""Automation policy: turn an AI verdict into a review-status change.

The decision is a pure function of the package's current review fields, the
verdict and an explicitly passed AdminSettings value. It never reads global
state, so every automated transition can be reproduced in a test.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgdir_store.models import AdminSettings, Package

AUTOMATION_MARKER = "AI Review"

# Statuses automation may move a package out of. in_review and
# changes_requested are only ever set by a human, so they are never listed.
_AUTOMATABLE_FROM = {"pending"}


def can_automate(package: Package) -> bool:
    """True if no human decision stands on the package.

    Automation may act on a pending package, or revise a decision it made
    itself, but never overrides a status a named admin set.
    """
    if package.review_status in _AUTOMATABLE_FROM:
        return True
    return package.review_status in ("approved", "rejected") and package.reviewed_by == AUTOMATION_MARKER


def decide(package: Package, verdict_status: str, settings: AdminSettings, now: datetime) -> dict:
    """Return the review-field changes automation applies for this verdict.

    An empty dict means the review status stays as it is.
    """
    if not can_automate(package):
        return {}

    if verdict_status == "passed" and settings.auto_approve_on_pass:
        if package.review_status == "approved":
            return {}
        return {
            "review_status": "approved",
            "reviewed_by": AUTOMATION_MARKER,
            "reviewed_at": now,
            "review_notes": "Auto-approved: AI review passed all criteria",
        }

    if verdict_status == "failed" and settings.auto_reject_on_fail:
        if package.review_status == "rejected":
            return {}
        return {
            "review_status": "rejected",
            "reviewed_by": AUTOMATION_MARKER,
            "reviewed_at": now,
            "review_notes": "Auto-rejected: AI review found critical issues",
            # Only approved packages may be featured.
            "featured": False,
        }

    return {}
