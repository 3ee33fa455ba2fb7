"""Exception hierarchy for mdbook-confluence.

Two families live here:

- **Sync errors** describe what went wrong with a sync pass and drive the
  exit status.  ``ConfigurationError``, ``AnchorNotFoundError`` and
  ``RemoteReadError`` are fatal for the whole pass; ``RemoteWriteError``
  and ``ConflictError`` are recorded per action; ``AuthenticationError``
  aborts all work that has not started yet.
- **Transport errors** (``RemoteAPIError`` and subclasses) are raised by
  the Confluence client and translated by the reader and executor.
"""

from __future__ import annotations


class ConfluenceSyncError(Exception):
    """Base class for all errors raised by mdbook-confluence."""


class ConfigurationError(ConfluenceSyncError, ValueError):
    """Missing or invalid option, duplicate identity, bad anchor id."""


class AnchorNotFoundError(ConfluenceSyncError):
    """The configured root page does not exist or is not readable."""


class RemoteReadError(ConfluenceSyncError):
    """The remote subtree could not be enumerated completely."""


class RemoteWriteError(ConfluenceSyncError):
    """A create, update or move failed after retries."""


class ConflictError(ConfluenceSyncError):
    """The page was modified remotely since it was read.

    Never retried: overwriting would discard a concurrent edit.
    """


class AuthenticationError(ConfluenceSyncError):
    """Credentials were rejected (HTTP 401/403)."""


class RemoteAPIError(ConfluenceSyncError):
    """A Confluence REST call failed.

    Attributes:
        status_code: HTTP status, or ``None`` for connection-level failures.
        transient: ``True`` when retrying the same call may succeed
            (timeouts, connection resets, HTTP 429 and 5xx).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient


class PageNotFoundError(RemoteAPIError):
    """HTTP 404 for a page id."""


class VersionConflictError(RemoteAPIError):
    """HTTP 409: the expected version no longer matches."""
