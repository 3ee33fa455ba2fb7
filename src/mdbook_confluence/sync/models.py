"""Data contracts for the reconciliation engine.

Defines the core types shared across all sync modules:

- ``LocalNode`` / ``LocalBook``: the chapter tree handed over by mdbook.
- ``MappedNode``: a local node with its identity and parent identity.
- ``RemotePage`` / ``PageRef``: pages as read from (or created on)
  Confluence.
- ``RemoteIndex``: identity -> page snapshot of the anchor subtree.
- ``SyncAction`` / ``PlannedAction`` / ``SyncPlan``: the reconciler output.
- ``SyncResult`` / ``SyncReport``: per-action outcomes and the run summary.

All pydantic models are frozen (immutable) for safety.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Mapping

from pydantic import BaseModel

# ------------------------------------------------------------------
# Local tree
# ------------------------------------------------------------------


class LocalNode(BaseModel):
    """One chapter or sub-chapter of the book.

    Attributes:
        title: Chapter name as written in ``SUMMARY.md``.
        content: Rendered chapter body (markdown).
        children: Sub-chapters in book order.
        depth: 1 for top-level chapters.
        number: Section number such as ``"1.2."``, display only.
    """

    title: str
    content: str = ""
    children: tuple[LocalNode, ...] = ()
    depth: int = 1
    number: str | None = None

    model_config = {"frozen": True}


class LocalBook(BaseModel):
    """Root of the local tree; maps onto the anchor page."""

    title: str | None = None
    chapters: tuple[LocalNode, ...] = ()

    model_config = {"frozen": True}

    def walk(self) -> Iterator[tuple[LocalNode, tuple[str, ...]]]:
        """Yield ``(node, ancestor_titles)`` depth-first, pre-order."""
        stack: list[tuple[LocalNode, tuple[str, ...]]] = [
            (node, ()) for node in reversed(self.chapters)
        ]
        while stack:
            node, ancestors = stack.pop()
            yield node, ancestors
            path = ancestors + (node.title,)
            for child in reversed(node.children):
                stack.append((child, path))


class MappedNode(BaseModel):
    """A local node with its identity resolved.

    Attributes:
        identity: Remote title this node syncs to.
        parent_identity: Identity of the parent node, ``None`` for
            top-level chapters (their parent is the anchor page).
        path: Titles from the top-level chapter down to this node.
        sibling_index: Position among its siblings.
        depth: Tree depth (1 for top-level chapters).
        node: The local node itself.
    """

    identity: str
    parent_identity: str | None = None
    path: tuple[str, ...]
    sibling_index: int = 0
    depth: int = 1
    node: LocalNode

    model_config = {"frozen": True}


# ------------------------------------------------------------------
# Remote side
# ------------------------------------------------------------------


class RemotePage(BaseModel):
    """A Confluence page under the anchor.

    Attributes:
        id: Confluence content id.
        title: Page title (matched against identities).
        version: Current optimistic-concurrency version number.
        parent_id: Id of the direct parent page, if known.
        body: Body in storage format.
        child_ids: Ids of direct child pages seen while reading.
        space_key: Space the page lives in.
    """

    id: str
    title: str
    version: int
    parent_id: str | None = None
    body: str = ""
    child_ids: tuple[str, ...] = ()
    space_key: str | None = None

    model_config = {"frozen": True}


class PageRef(BaseModel):
    """Id and version returned by a page creation."""

    id: str
    version: int

    model_config = {"frozen": True}


@dataclass(frozen=True)
class RemoteIndex:
    """Read-only snapshot of the anchor subtree, keyed by identity.

    Never consulted after the first mutation to decide what the remote
    currently holds; every write re-validates through its version.
    """

    anchor: RemotePage
    pages: Mapping[str, RemotePage] = field(default_factory=dict)

    def get(self, identity: str) -> RemotePage | None:
        return self.pages.get(identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self.pages

    def __len__(self) -> int:
        return len(self.pages)


# ------------------------------------------------------------------
# Plan
# ------------------------------------------------------------------


class SyncAction(str, Enum):
    """Possible operations for one local node."""

    CREATE = "create"
    UPDATE = "update"
    MOVE = "move"
    SKIP = "skip"


class PlannedAction(BaseModel):
    """One entry of the sync plan.

    Attributes:
        action: What to do.
        identity: Identity (remote title) of the node.
        depth: Local tree depth, used for ordering.
        sibling_index: Position among local siblings.
        parent_identity: Identity of the expected parent, ``None`` when
            the parent is the anchor page.
        parent_id: Remote id of the expected parent when it already
            exists; ``None`` when the parent is created in this pass.
        page_id: Remote id of the page (update, move, skip).
        content: Packaged body to write (create, update, move).
        expected_version: Version the page had when it was read.
        content_changed: For moves, whether the body changes as well.
        reason: Why a skip was planned.
    """

    action: SyncAction
    identity: str
    depth: int = 1
    sibling_index: int = 0
    parent_identity: str | None = None
    parent_id: str | None = None
    page_id: str | None = None
    content: str | None = None
    expected_version: int | None = None
    content_changed: bool = False
    reason: str | None = None

    model_config = {"frozen": True}


class SyncPlan(BaseModel):
    """Ordered actions for one pass; parents always precede dependants."""

    actions: tuple[PlannedAction, ...] = ()

    model_config = {"frozen": True}

    def __len__(self) -> int:
        return len(self.actions)

    def of_kind(self, action: SyncAction) -> list[PlannedAction]:
        return [a for a in self.actions if a.action == action]

    def position(self, identity: str) -> int:
        """Index of the action for *identity*, ``-1`` if absent."""
        for i, planned in enumerate(self.actions):
            if planned.identity == identity:
                return i
        return -1


# ------------------------------------------------------------------
# Outcomes
# ------------------------------------------------------------------


class SyncResult(BaseModel):
    """Outcome of one planned action.

    Attributes:
        identity: Identity (remote title) of the node.
        action: Action that was planned.
        success: Whether the action completed.
        page_id: Remote id, when known.
        error: Error message if the action failed.
        error_type: ``conflict``, ``write``, ``dependency``, ``aborted``
            or ``authentication``.
        attempted: ``False`` when no remote call was issued because a
            dependency failed or the run was aborted.
    """

    identity: str
    action: SyncAction
    success: bool
    page_id: str | None = None
    error: str | None = None
    error_type: str | None = None
    attempted: bool = True

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for a full sync run.

    Attributes:
        anchor_id: Id of the anchor page.
        dry_run: Whether this was a dry-run (no changes applied).
        results: Individual results in plan order.
        started_at: ISO 8601 timestamp when sync started.
        completed_at: ISO 8601 timestamp when sync completed.
    """

    anchor_id: str
    dry_run: bool = False
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _succeeded(self, action: SyncAction) -> list[SyncResult]:
        return [
            r for r in self.results if r.success and r.action == action
        ]

    @property
    def created(self) -> list[SyncResult]:
        """Successful creates."""
        return self._succeeded(SyncAction.CREATE)

    @property
    def updated(self) -> list[SyncResult]:
        """Successful updates."""
        return self._succeeded(SyncAction.UPDATE)

    @property
    def moved(self) -> list[SyncResult]:
        """Successful moves (with or without a content change)."""
        return self._succeeded(SyncAction.MOVE)

    @property
    def skipped(self) -> list[SyncResult]:
        """Results where action is SKIP."""
        return self._succeeded(SyncAction.SKIP)

    @property
    def failed(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def conflicts(self) -> list[SyncResult]:
        """Failed results caused by a version conflict."""
        return [r for r in self.failed if r.error_type == "conflict"]

    @property
    def ok(self) -> bool:
        """True when no action failed."""
        return not self.failed

    def counts(self) -> dict[str, int]:
        return {
            "created": len(self.created),
            "updated": len(self.updated),
            "moved": len(self.moved),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
        }


LocalNode.model_rebuild()
