"""Identity mapper: local chapter -> remote page title.

A node's identity is the title its Confluence page carries.  It is a pure
function of the configured prefix, the node title and (optionally) the
titles of its ancestors, so re-running against the same book yields the
same identities and matches the pages created by a previous run.

Identity forms:

1. **Plain** (default) -- ``<prefix><title>``.
2. **Qualified** (``qualify_titles``) --
   ``<prefix><ancestor><sep><ancestor><sep><title>``.

Confluence titles are unique per space, so two nodes producing the same
identity can never both be synced; that is a configuration error.
"""

from __future__ import annotations

from mdbook_confluence.errors import ConfigurationError
from mdbook_confluence.sync.models import LocalBook, MappedNode
from mdbook_confluence.validators import validate_page_title


class IdentityMapper:
    """Derive stable identities for the nodes of a local book.

    Args:
        prefix: String prepended to every identity (``title_prefix``).
        qualify_titles: Include ancestor titles in the identity.
        separator: Joins ancestor titles when ``qualify_titles`` is set.
    """

    def __init__(
        self,
        prefix: str = "",
        qualify_titles: bool = False,
        separator: str = " / ",
    ) -> None:
        self._prefix = prefix or ""
        self._qualify = qualify_titles
        self._separator = separator

    # ------------------------------------------------------------------
    # Single node
    # ------------------------------------------------------------------

    def identity(self, title: str, ancestors: tuple[str, ...] = ()) -> str:
        """Return the identity for a node.

        Args:
            title: The node title.
            ancestors: Titles from the top-level chapter down to the
                node's parent.

        Raises:
            ConfigurationError: If the identity is empty or not a valid
                Confluence title.
        """
        if self._qualify:
            parts = [a.strip() for a in ancestors] + [title.strip()]
            base = self._separator.join(p for p in parts if p)
        else:
            base = title.strip()

        if not base:
            raise ConfigurationError(
                "Chapter title is empty"
                + (f" (under {' > '.join(ancestors)})" if ancestors else "")
            )

        identity = f"{self._prefix}{base}".strip()
        is_valid, error_msg = validate_page_title(identity)
        if not is_valid:
            raise ConfigurationError(
                f"Invalid page title for chapter '{title}': {error_msg}"
            )
        return identity

    # ------------------------------------------------------------------
    # Whole book
    # ------------------------------------------------------------------

    def assign(self, book: LocalBook) -> list[MappedNode]:
        """Attach identities to every node, depth-first pre-order.

        Returns:
            One ``MappedNode`` per local node, in pre-order.

        Raises:
            ConfigurationError: If two nodes share an identity.
        """
        mapped: list[MappedNode] = []
        seen: dict[str, tuple[str, ...]] = {}

        # identity of each visited path, to resolve parent identities
        by_path: dict[tuple[str, ...], str] = {}
        sibling_counters: dict[tuple[str, ...], int] = {}

        for node, ancestors in book.walk():
            identity = self.identity(node.title, ancestors)
            path = ancestors + (node.title,)

            if identity in seen:
                raise ConfigurationError(
                    f"Duplicate page title '{identity}': "
                    f"'{' > '.join(seen[identity])}' and "
                    f"'{' > '.join(path)}' map to the same page. "
                    "Rename one chapter, or set qualify_titles = true."
                )
            seen[identity] = path

            index = sibling_counters.get(ancestors, 0)
            sibling_counters[ancestors] = index + 1

            mapped.append(
                MappedNode(
                    identity=identity,
                    parent_identity=by_path.get(ancestors),
                    path=path,
                    sibling_index=index,
                    depth=len(path),
                    node=node,
                )
            )
            by_path[path] = identity

        return mapped
