"""Protocol for the remote wiki capability consumed by the sync engine.

``ConfluenceClient`` implements it over HTTP; tests substitute an
in-memory fake.  All methods are blocking and are called from worker
threads.
"""

from typing import Protocol, runtime_checkable

from ..sync.models import PageRef, RemotePage


@runtime_checkable
class RemoteWiki(Protocol):
    """Operations the reconciliation engine needs from the remote wiki."""

    def get_page(self, page_id: str) -> RemotePage:
        """Fetch one page with body and version.

        Raises ``PageNotFoundError`` when it does not exist.
        """
        ...

    def list_children(self, page_id: str) -> list[RemotePage]:
        """Return all direct child pages, pagination fully drained."""
        ...

    def create_page(self, parent_id: str, title: str, body: str) -> PageRef:
        """Create a page under *parent_id*."""
        ...

    def update_page(
        self, page_id: str, title: str, body: str, expected_version: int
    ) -> int:
        """Replace the body; return the new version.

        Raises ``VersionConflictError`` when *expected_version* is stale.
        """
        ...

    def move_page(
        self,
        page_id: str,
        new_parent_id: str,
        title: str,
        body: str,
        expected_version: int,
    ) -> int:
        """Reparent the page; return the new version.

        Raises ``VersionConflictError`` when *expected_version* is stale.
        """
        ...

    def get_server_version(self) -> tuple[int, ...] | None:
        """Server version as a tuple, ``None`` when unknown."""
        ...
