"""CSV export of the public package listing."""

from __future__ import annotations

import csv
import io
from datetime import datetime

COLUMNS = [
    ("name", "name"),
    ("description", "description"),
    ("version", "version"),
    ("license", "license"),
    ("weeklyDownloads", "weekly_downloads"),
    ("unpackedSize", "unpacked_size"),
    ("totalFiles", "total_files"),
    ("lastPublish", "last_publish"),
    ("repositoryUrl", "repository_url"),
    ("homepageUrl", "homepage_url"),
    ("npmUrl", "npm_url"),
    ("submittedAt", "submitted_at"),
]


def listed_packages(store) -> list:
    """Packages in the public listing; hidden and archived ones are left out."""
    return [p for p in store.list_packages(include_archived=False) if p.visibility == "visible"]


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def export_csv(packages) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow([header for header, _ in COLUMNS])
    for pkg in packages:
        writer.writerow([_cell(getattr(pkg, attr)) for _, attr in COLUMNS])
    return buf.getvalue()
