"""Remote tree reader: snapshot the anchor subtree into a ``RemoteIndex``.

The anchor page is fetched first; its descendants are then enumerated one
level at a time, each level's child listings running concurrently through
the pass's ``BoundedRunner``.  Every listing is fully paginated by the
client.

Any failure here is fatal for the pass: without a trustworthy baseline
the reconciler would create duplicates of pages it failed to see.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from mdbook_confluence.core.async_utils import BoundedRunner, gather_limited
from mdbook_confluence.errors import (
    AnchorNotFoundError,
    AuthenticationError,
    PageNotFoundError,
    RemoteAPIError,
    RemoteReadError,
)
from mdbook_confluence.sync.models import RemoteIndex, RemotePage

if TYPE_CHECKING:
    from mdbook_confluence.core.protocols import RemoteWiki

logger = logging.getLogger(__name__)


class RemoteTreeReader:
    """Build a ``RemoteIndex`` of every page below the anchor.

    Args:
        client: The remote wiki capability.
        runner: Bounds the number of concurrent requests.
    """

    def __init__(self, client: RemoteWiki, runner: BoundedRunner) -> None:
        self.client = client
        self.runner = runner

    async def read(self, anchor_id: str) -> RemoteIndex:
        """Fetch the anchor and all of its descendants.

        Args:
            anchor_id: Id of the configured root page.

        Returns:
            Index keyed by page title (the identity).

        Raises:
            AnchorNotFoundError: If the anchor is missing or not readable.
            RemoteReadError: If any descendant listing fails.
        """
        anchor = await self._fetch_anchor(anchor_id)
        logger.info("Reading page tree under '%s' (%s)", anchor.title, anchor.id)

        pages: dict[str, RemotePage] = {}
        children_of: dict[str, list[str]] = {}
        seen_ids = {anchor.id}
        level = [anchor.id]

        while level:
            try:
                listings = await gather_limited(
                    [self.runner.run(self.client.list_children, pid) for pid in level]
                )
            except (RemoteAPIError, AuthenticationError) as exc:
                raise RemoteReadError(
                    f"Failed to enumerate pages under {anchor.id}: {exc}"
                ) from exc

            next_level: list[str] = []
            for parent_id, children in zip(level, listings):
                children_of[parent_id] = [c.id for c in children]
                for child in children:
                    if child.id in seen_ids:
                        continue
                    seen_ids.add(child.id)
                    next_level.append(child.id)
                    if child.title in pages:
                        logger.warning(
                            "Duplicate title '%s' under the anchor "
                            "(pages %s and %s); using %s",
                            child.title,
                            pages[child.title].id,
                            child.id,
                            pages[child.title].id,
                        )
                        continue
                    pages[child.title] = child
            level = next_level

        # attach child ids now that every listing is known
        pages = {
            title: page.model_copy(
                update={"child_ids": tuple(children_of.get(page.id, ()))}
            )
            for title, page in pages.items()
        }
        anchor = anchor.model_copy(
            update={"child_ids": tuple(children_of.get(anchor.id, ()))}
        )

        logger.info("Found %d existing pages under the anchor", len(pages))
        return RemoteIndex(anchor=anchor, pages=pages)

    async def _fetch_anchor(self, anchor_id: str) -> RemotePage:
        try:
            return await self.runner.run(self.client.get_page, anchor_id)
        except PageNotFoundError as exc:
            raise AnchorNotFoundError(
                f"Root page {anchor_id} does not exist"
            ) from exc
        except AuthenticationError as exc:
            raise AnchorNotFoundError(
                f"Root page {anchor_id} is not accessible: {exc}"
            ) from exc
        except RemoteAPIError as exc:
            raise RemoteReadError(
                f"Failed to read root page {anchor_id}: {exc}"
            ) from exc
