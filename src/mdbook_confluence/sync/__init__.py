"""Book-to-Confluence reconciliation engine.

Public API for publishing an mdbook chapter tree as a Confluence page
tree under a configured anchor page.

Architecture
------------
Every run is a full **reconciliation pass** with no persisted state: the
remote subtree is read fresh, compared with the local tree by identity
(the page title), and only the differences are written.  Writes carry the
version that was read, so concurrent manual edits surface as conflicts
instead of being overwritten.  Remote pages without a local chapter are
left untouched.

Modules:

- ``engine``     -- ``SyncEngine``: orchestrates a full pass.
- ``mapper``     -- ``IdentityMapper``: chapter -> page title.
- ``reader``     -- ``RemoteTreeReader``: snapshot of the anchor subtree.
- ``packager``   -- wraps chapter markdown in the Confluence markdown macro.
- ``reconciler`` -- ``Reconciler``: local + remote -> ordered ``SyncPlan``.
- ``executor``   -- ``PlanExecutor``: applies the plan concurrently.
- ``models``     -- ``LocalNode``, ``RemotePage``, ``SyncPlan``,
  ``SyncResult``, ``SyncReport`` and friends: core data contracts.
- ``reporter``   -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from mdbook_confluence.core.client import ConfluenceClient
    from mdbook_confluence.sync import (
        SyncEngine,
        format_dry_run_preview,
        format_sync_report,
    )

    engine = SyncEngine(client=ConfluenceClient(config), config=config)

    # Dry-run first to preview changes
    preview = engine.run(book, dry_run=True)
    print(format_dry_run_preview(preview))

    # Execute the sync
    report = engine.run(book)
    print(format_sync_report(report))
"""

from .models import (
    LocalBook,
    LocalNode,
    MappedNode,
    PageRef,
    PlannedAction,
    RemoteIndex,
    RemotePage,
    SyncAction,
    SyncPlan,
    SyncReport,
    SyncResult,
)
from .engine import SyncEngine
from .executor import PlanExecutor
from .mapper import IdentityMapper
from .packager import package_content, unwrap_page_content
from .reader import RemoteTreeReader
from .reconciler import Reconciler
from .reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)

__all__ = [
    "IdentityMapper",
    "LocalBook",
    "LocalNode",
    "MappedNode",
    "PageRef",
    "PlanExecutor",
    "PlannedAction",
    "Reconciler",
    "RemoteIndex",
    "RemotePage",
    "RemoteTreeReader",
    "SyncAction",
    "SyncEngine",
    "SyncPlan",
    "SyncReport",
    "SyncResult",
    "format_dry_run_preview",
    "format_sync_report",
    "report_to_json",
    "package_content",
    "unwrap_page_content",
]
