"""Error taxonomy shared by the review and refresh pipelines.

Store failures are raised as pkgdir_store.base.PersistenceError.
"""

from __future__ import annotations


class ProviderError(Exception):
    """An LLM call failed or returned no usable text."""


class ParseError(Exception):
    """Model output could not be reduced to a valid verdict."""


class FetchError(Exception):
    """The npm registry could not be reached or returned unusable data.

    ``transient`` is True for failures worth retrying later (network errors,
    timeouts, 5xx responses) and False for permanent ones.
    """

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class PackageNotFoundError(FetchError):
    """The registry has no package with the requested name."""


class RepositoryAccessError(Exception):
    """GitHub repository contents could not be read."""


class RefreshInProgressError(Exception):
    """Another refresh run is still marked as running."""


class AdminError(Exception):
    """An admin operation was rejected (unknown package, invalid transition, bad value)."""
