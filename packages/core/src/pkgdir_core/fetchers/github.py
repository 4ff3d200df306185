"""Component source fetching from GitHub.

A component repository is recognised by its definition file
(convex.config.ts). We probe the conventional locations in priority order,
then read the TypeScript sources that sit next to it. Everything is read
through the GitHub contents API on the default branch; nothing is cloned.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

import requests
from github import Auth, Github, GithubException, UnknownObjectException

from pkgdir_core.errors import RepositoryAccessError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "convex.config.ts"

# Probed in order; the first hit wins. Deeply nested layouts come first so a
# monorepo's component config is preferred over an example app's root config.
CONFIG_PATHS = [
    "convex/src/component/convex.config.ts",
    "convex/component/convex.config.ts",
    "convex/convex.config.ts",
    "src/component/convex.config.ts",
    "src/convex.config.ts",
    "convex.config.ts",
    "packages/component/convex.config.ts",
    "lib/convex.config.ts",
]

_SOURCE_SUFFIX = ".ts"

# Caps keep the prompt bounded for repositories with many or very large files.
_MAX_SOURCE_FILES = 20
_FILE_CHAR_LIMIT = 20_000

_GITHUB_URL_RE = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s#?]+?)(?:\.git)?(?:[/#?].*)?$")


@dataclass
class RepoFile:
    path: str
    content: str


@dataclass
class RepoSnapshot:
    """Files gathered for one AI review.

    ``config_path`` is None when the repository is readable but has no
    component definition file at any conventional location.
    """

    owner: str
    name: str
    config_path: str | None = None
    files: list[RepoFile] = field(default_factory=list)

    @property
    def is_component(self) -> bool:
        return self.config_path is not None and len(self.files) > 0


def parse_github_repo(repo_url: str | None) -> tuple[str, str] | None:
    """Return (owner, repo) for a GitHub URL, or None if it is not one.

    Accepts https://github.com/owner/repo, .git suffixes, trailing slashes,
    git+https:// prefixes and git@github.com:owner/repo.git.
    """
    if not repo_url:
        return None
    match = _GITHUB_URL_RE.search(repo_url.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


def component_directories(config_path: str) -> list[str]:
    """Directories to search for component sources, given where the config was found."""
    config_dir = config_path.rsplit("/", 1)[0] if "/" in config_path else ""
    if config_path.startswith("convex/src/component/"):
        return ["convex/src/component"]
    if config_path.startswith("convex/component/"):
        return ["convex/component"]
    if config_path.startswith("convex/"):
        return ["convex/src/component", "convex/component", "convex"]
    if config_path.startswith("src/component/"):
        return ["src/component"]
    if config_path.startswith("src/"):
        return ["src/component", "src"]
    if config_path.startswith("packages/"):
        return [config_dir]
    if config_path.startswith("lib/"):
        return ["lib"]
    # Config at the repository root: prefer a component/ directory, then root files.
    return ["component", ""]


def _access_error(owner: str, name: str, e: GithubException) -> RepositoryAccessError:
    message = (e.data or {}).get("message") if isinstance(e.data, dict) else None
    return RepositoryAccessError(f"GitHub API error for {owner}/{name}: {e.status} {message or e}")


def _read_file(repo, path: str) -> str | None:
    """Return a file's text, None if it does not exist. Other API errors propagate."""
    try:
        content = repo.get_contents(path)
    except UnknownObjectException:
        return None
    if isinstance(content, list) or content.type != "file":
        return None
    return content.decoded_content.decode("utf-8", errors="replace")[:_FILE_CHAR_LIMIT]


def _list_sources(repo, directory: str) -> list[str]:
    try:
        entries = repo.get_contents(directory)
    except UnknownObjectException:
        return []
    if not isinstance(entries, list):
        return []
    return [
        entry.path
        for entry in entries
        if entry.type == "file" and entry.name.endswith(_SOURCE_SUFFIX) and entry.name != CONFIG_FILENAME
    ]


def _transport_error(owner: str, name: str, e: requests.RequestException) -> RepositoryAccessError:
    return RepositoryAccessError(f"Could not reach GitHub for {owner}/{name}: {e}")


def fetch_component_files(
    repo_url: str | None,
    token: str | None = None,
    client: Github | None = None,
    timeout: float = 15,
) -> RepoSnapshot:
    """Locate the component definition and read its sources.

    Raises RepositoryAccessError when the URL is missing or not a GitHub URL,
    the repository is private or does not exist, the API refuses the request
    (rate limit, server error) or GitHub cannot be reached at all.
    """
    if not repo_url:
        raise RepositoryAccessError("Package has no repository URL")
    parsed = parse_github_repo(repo_url)
    if parsed is None:
        raise RepositoryAccessError(f"Not a GitHub repository URL: {repo_url}")
    owner, name = parsed

    if client is not None:
        gh = client
    elif token:
        gh = Github(auth=Auth.Token(token), timeout=timeout)
    else:
        gh = Github(timeout=timeout)
    try:
        repo = gh.get_repo(f"{owner}/{name}")
    except UnknownObjectException as e:
        raise RepositoryAccessError(f"Repository {owner}/{name} not found or private") from e
    except GithubException as e:
        raise _access_error(owner, name, e) from e
    except requests.RequestException as e:
        raise _transport_error(owner, name, e) from e

    snapshot = RepoSnapshot(owner=owner, name=name)
    try:
        for config_path in CONFIG_PATHS:
            content = _read_file(repo, config_path)
            if content is not None:
                snapshot.config_path = config_path
                snapshot.files.append(RepoFile(path=config_path, content=content))
                break

        if snapshot.config_path is None:
            logger.info("No %s found in %s/%s", CONFIG_FILENAME, owner, name)
            return snapshot

        for directory in component_directories(snapshot.config_path):
            paths = _list_sources(repo, directory)[:_MAX_SOURCE_FILES]
            if not paths:
                continue
            for path in paths:
                content = _read_file(repo, path)
                if content is not None:
                    snapshot.files.append(RepoFile(path=path, content=content))
            break  # sources found in this directory, stop looking
    except GithubException as e:
        raise _access_error(owner, name, e) from e
    except requests.RequestException as e:
        raise _transport_error(owner, name, e) from e

    logger.debug("Fetched %d file(s) from %s/%s", len(snapshot.files), owner, name)
    return snapshot
