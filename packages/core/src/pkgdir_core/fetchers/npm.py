"""npm registry metadata fetching.

Two public endpoints are involved:
  - registry.npmjs.org/<name>           full package document (required)
  - api.npmjs.org/downloads/point/...   weekly download count (best effort)

Everything the directory shows about a package is derived from the "latest"
dist-tag of the registry document, so a refresh always reflects what
`npm install <name>` would currently resolve to.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import quote, unquote

import requests

from pkgdir_core.errors import FetchError, PackageNotFoundError

logger = logging.getLogger(__name__)

REGISTRY_URL = "https://registry.npmjs.org"
DOWNLOADS_URL = "https://api.npmjs.org/downloads/point/last-week"
NPM_PACKAGE_URL = "https://www.npmjs.com/package"

_NPM_URL_RE = re.compile(r"npmjs\.com/package/((?:@[^/]+/)?[^/?#]+)")
_PACKAGE_NAME_RE = re.compile(r"^(?:@[a-z0-9][\w.-]*/)?[a-z0-9][\w.-]*$", re.IGNORECASE)


@dataclass
class NpmPackageData:
    """Registry fields denormalized onto a Package."""

    name: str
    description: str
    install_command: str
    version: str
    license: str
    unpacked_size: int
    total_files: int
    last_publish: str
    weekly_downloads: int
    npm_url: str
    repository_url: str | None = None
    homepage_url: str | None = None
    collaborators: list[dict] = field(default_factory=list)

    @property
    def maintainer_names(self) -> str:
        return " ".join(c["name"] for c in self.collaborators)


def parse_npm_url(value: str) -> str:
    """Return the package name from an npmjs.com URL or a bare package name.

    Handles https://www.npmjs.com/package/@scope/name and
    https://www.npmjs.com/package/name as well as plain "name"/"@scope/name".
    """
    value = value.strip()
    match = _NPM_URL_RE.search(value)
    name = unquote(match.group(1)) if match else value
    if not _PACKAGE_NAME_RE.match(name):
        raise ValueError(f"Invalid npm package URL or name: {value!r}")
    return name


def _registry_path(name: str) -> str:
    # The registry wants the scope separator encoded: @scope%2Fname
    return name.replace("/", "%2F") if name.startswith("@") else quote(name)


def _repository_url(version_data: dict) -> str | None:
    repository = version_data.get("repository")
    if isinstance(repository, str):
        return repository
    if isinstance(repository, dict) and repository.get("url"):
        url = re.sub(r"^git\+", "", repository["url"])
        return re.sub(r"\.git$", "", url)
    return None


def _license(version_data: dict) -> str:
    value = version_data.get("license")
    if isinstance(value, dict):
        value = value.get("type")
    return value or "Unknown"


def _fetch_weekly_downloads(session, name: str, timeout: float) -> int:
    """Downloads are optional: any failure yields 0 rather than failing the fetch."""
    try:
        response = session.get(f"{DOWNLOADS_URL}/{quote(name, safe='@')}", timeout=timeout)
        if not response.ok:
            return 0
        body = response.json()
        if not isinstance(body, dict):
            return 0
        return int(body.get("downloads") or 0)
    except (requests.RequestException, ValueError, TypeError) as e:
        logger.debug("Download count unavailable for %s: %s", name, e)
        return 0


def _mapping(value) -> dict:
    # Optional registry objects; anything that is not an object counts as absent.
    return value if isinstance(value, dict) else {}


def fetch_npm_package(name: str, session=None, timeout: float = 10) -> NpmPackageData:
    """Fetch and normalize registry metadata for ``name``.

    Raises PackageNotFoundError on 404, FetchError(transient=True) on network
    errors, timeouts and 5xx, and FetchError for other 4xx or malformed
    registry documents.
    """
    if session is None:
        with requests.Session() as owned:
            return _fetch(owned, name, timeout)
    return _fetch(session, name, timeout)


def _fetch(session, name: str, timeout: float) -> NpmPackageData:
    name = unquote(name.strip())
    url = f"{REGISTRY_URL}/{_registry_path(name)}"

    try:
        response = session.get(url, timeout=timeout)
    except requests.Timeout as e:
        raise FetchError(f'Timed out fetching registry metadata for "{name}"', transient=True) from e
    except requests.RequestException as e:
        raise FetchError(f'Network error fetching registry metadata for "{name}": {e}', transient=True) from e

    if response.status_code == 404:
        raise PackageNotFoundError(f'Package "{name}" not found on npm')
    if not response.ok:
        raise FetchError(
            f'Failed to fetch registry metadata for "{name}": {response.status_code} {response.reason}',
            transient=response.status_code >= 500,
        )

    try:
        metadata = response.json()
    except ValueError as e:
        raise FetchError(f'Registry returned invalid JSON for "{name}"') from e
    if not isinstance(metadata, dict):
        raise FetchError(f'Registry document for "{name}" is not a JSON object')

    dist_tags = metadata.get("dist-tags")
    if dist_tags is not None and not isinstance(dist_tags, dict):
        raise FetchError(f'Malformed dist-tags for "{name}"')
    latest = (dist_tags or {}).get("latest")
    if not latest or not isinstance(latest, str):
        raise FetchError(f'No latest version found for "{name}"')

    versions = metadata.get("versions")
    if versions is not None and not isinstance(versions, dict):
        raise FetchError(f'Malformed versions for "{name}"')
    version_data = (versions or {}).get(latest)
    if not version_data:
        raise FetchError(f'Version data not found for "{name}@{latest}"')
    if not isinstance(version_data, dict):
        raise FetchError(f'Malformed version data for "{name}@{latest}"')

    dist = version_data.get("dist")
    if dist is not None and not isinstance(dist, dict):
        raise FetchError(f'Malformed dist for "{name}@{latest}"')
    dist = dist or {}

    maintainers = version_data.get("maintainers") or metadata.get("maintainers") or []
    if not isinstance(maintainers, list):
        maintainers = []
    collaborators = [
        {"name": m["name"], "avatar": f"https://www.gravatar.com/avatar/{m['name']}?d=identicon"}
        for m in maintainers
        if isinstance(m, dict) and isinstance(m.get("name"), str) and m["name"]
    ]
    last_publish = _mapping(metadata.get("time")).get(latest) or datetime.now(timezone.utc).isoformat()

    return NpmPackageData(
        name=name,
        description=version_data.get("description") or "No description available",
        install_command=f"npm install {name}",
        version=latest,
        license=_license(version_data),
        unpacked_size=dist.get("unpackedSize") or 0,
        total_files=dist.get("fileCount") or 0,
        last_publish=last_publish,
        weekly_downloads=_fetch_weekly_downloads(session, name, timeout),
        npm_url=f"{NPM_PACKAGE_URL}/{quote(name, safe='')}",
        repository_url=_repository_url(version_data),
        homepage_url=version_data.get("homepage"),
        collaborators=collaborators,
    )
