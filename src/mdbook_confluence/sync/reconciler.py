"""Diff/reconciler: compare the local tree with the remote index.

For every local node, in pre-order:

- identity not in the index -> ``CREATE`` under the expected parent (the
  anchor, an existing page, or a parent created earlier in this pass);
- in the index, same parent, same content -> ``SKIP`` (unchanged);
- in the index, same parent, different content -> ``UPDATE`` with the
  version that was read;
- in the index under another parent -> ``MOVE`` (carrying the new body
  when the content changed too).

Remote pages without a local counterpart never appear in the plan: the
sync only adds and converges, it does not delete.

The plan is stably sorted by tree depth, so every action that refers to a
parent touched in this pass comes after that parent's action.
"""

from __future__ import annotations

import logging

from mdbook_confluence.sync.models import (
    MappedNode,
    PlannedAction,
    RemoteIndex,
    SyncAction,
    SyncPlan,
)
from mdbook_confluence.sync.packager import (
    package_content,
    prepare_source,
    unwrap_page_content,
)

logger = logging.getLogger(__name__)

SKIP_UNCHANGED = "unchanged"


class Reconciler:
    """Turn mapped local nodes plus a remote snapshot into a ``SyncPlan``.

    Args:
        allow_emoji: Passed to the packager; ``False`` for servers older
            than Confluence 7.3.
    """

    def __init__(self, allow_emoji: bool = True) -> None:
        self.allow_emoji = allow_emoji

    def build_plan(
        self, mapped: list[MappedNode], index: RemoteIndex
    ) -> SyncPlan:
        """Compute the ordered plan for one pass.

        Args:
            mapped: Output of ``IdentityMapper.assign`` (pre-order).
            index: Snapshot of the anchor subtree.

        Returns:
            The plan, parents before dependants.
        """
        actions = [self._plan_node(m, index) for m in mapped]
        actions.sort(key=lambda a: a.depth)

        logger.debug(
            "Plan: %d create, %d update, %d move, %d skip",
            sum(a.action == SyncAction.CREATE for a in actions),
            sum(a.action == SyncAction.UPDATE for a in actions),
            sum(a.action == SyncAction.MOVE for a in actions),
            sum(a.action == SyncAction.SKIP for a in actions),
        )
        return SyncPlan(actions=tuple(actions))

    # ------------------------------------------------------------------
    # Per-node decision
    # ------------------------------------------------------------------

    def _plan_node(self, mapped: MappedNode, index: RemoteIndex) -> PlannedAction:
        content = package_content(mapped.node.content, self.allow_emoji)
        parent_id = self._expected_parent_id(mapped, index)
        common = {
            "identity": mapped.identity,
            "depth": mapped.depth,
            "sibling_index": mapped.sibling_index,
            "parent_identity": mapped.parent_identity,
            "parent_id": parent_id,
        }

        remote = index.get(mapped.identity)
        if remote is None:
            return PlannedAction(
                action=SyncAction.CREATE, content=content, **common
            )

        changed = not self._same_content(content, mapped.node.content, remote.body)

        if parent_id is None or remote.parent_id != parent_id:
            return PlannedAction(
                action=SyncAction.MOVE,
                page_id=remote.id,
                content=content if changed else remote.body,
                expected_version=remote.version,
                content_changed=changed,
                **common,
            )

        if changed:
            return PlannedAction(
                action=SyncAction.UPDATE,
                page_id=remote.id,
                content=content,
                expected_version=remote.version,
                **common,
            )

        return PlannedAction(
            action=SyncAction.SKIP,
            page_id=remote.id,
            reason=SKIP_UNCHANGED,
            **common,
        )

    @staticmethod
    def _expected_parent_id(mapped: MappedNode, index: RemoteIndex) -> str | None:
        """Remote id of the expected parent, ``None`` if created this pass."""
        if mapped.parent_identity is None:
            return index.anchor.id
        parent = index.get(mapped.parent_identity)
        return parent.id if parent is not None else None

    def _same_content(self, packaged: str, source: str, remote_body: str) -> bool:
        """Byte-exact comparison of the body, then of the macro payload.

        The second comparison covers servers that re-serialise the storage
        format around an unchanged payload.
        """
        if packaged == remote_body:
            return True
        payload = unwrap_page_content(remote_body)
        if payload is None:
            return False
        return payload == prepare_source(source, self.allow_emoji)
