"""Read the RenderContext mdbook hands to an alternative backend.

mdbook serialises the whole book as JSON on the backend's stdin::

    {
      "version": "0.4.37",
      "root": "/path/to/book",
      "destination": "/path/to/book/book/confluence",
      "config": {"book": {...}, "output": {"confluence": {...}}},
      "book": {"sections": [{"Chapter": {...}}, "Separator", ...]}
    }

Releases before 0.4.36 call the item list ``sections``, later ones
``items``.  Only ``Chapter`` items become pages; ``Separator`` and
``PartTitle`` entries carry no content and are skipped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

from .errors import ConfigurationError
from .sync.models import LocalBook, LocalNode

logger = logging.getLogger(__name__)


@dataclass
class RenderContext:
    """The parts of mdbook's RenderContext the renderer uses."""

    version: str
    root: Path
    book: LocalBook
    config: dict[str, Any] = field(default_factory=dict)
    destination: Path | None = None

    @property
    def confluence_section(self) -> dict[str, Any] | None:
        """The ``[output.confluence]`` table of book.toml, if present."""
        output = self.config.get("output") or {}
        section = output.get("confluence")
        return section if isinstance(section, dict) else None


def _format_number(number: Any) -> str | None:
    # mdbook sends section numbers as a list of ints, e.g. [1, 2] -> "1.2."
    if not number:
        return None
    if isinstance(number, list):
        return "".join(f"{n}." for n in number)
    return str(number)


def _parse_items(items: list[Any], depth: int) -> tuple[LocalNode, ...]:
    nodes: list[LocalNode] = []
    for item in items or []:
        if not isinstance(item, dict) or "Chapter" not in item:
            # "Separator" and {"PartTitle": "..."}
            continue
        chapter = item["Chapter"]
        if not isinstance(chapter, dict):
            raise ConfigurationError("Malformed chapter entry in RenderContext")

        name = chapter.get("name")
        if not isinstance(name, str):
            raise ConfigurationError("Chapter without a name in RenderContext")

        if chapter.get("path") is None:
            logger.debug("Draft chapter '%s' has no content", name)

        nodes.append(
            LocalNode(
                title=name,
                content=chapter.get("content") or "",
                children=_parse_items(chapter.get("sub_items", []), depth + 1),
                depth=depth,
                number=_format_number(chapter.get("number")),
            )
        )
    return tuple(nodes)


def parse_book(data: dict[str, Any], title: str | None = None) -> LocalBook:
    """Build a ``LocalBook`` from the ``book`` object of a RenderContext."""
    if not isinstance(data, dict):
        raise ConfigurationError("RenderContext 'book' must be an object")
    items = data.get("items", data.get("sections", []))
    if not isinstance(items, list):
        raise ConfigurationError("RenderContext book items must be a list")
    return LocalBook(title=title, chapters=_parse_items(items, depth=1))


def parse_render_context(data: dict[str, Any]) -> RenderContext:
    """Validate and convert a decoded RenderContext.

    Raises:
        ConfigurationError: If required fields are missing or malformed.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("RenderContext must be a JSON object")

    for key in ("version", "root", "book"):
        if key not in data:
            raise ConfigurationError(f"RenderContext is missing '{key}'")

    config = data.get("config") or {}
    if not isinstance(config, dict):
        raise ConfigurationError("RenderContext 'config' must be an object")
    title = (config.get("book") or {}).get("title")

    destination = data.get("destination")
    return RenderContext(
        version=str(data["version"]),
        root=Path(data["root"]),
        book=parse_book(data["book"], title=title),
        config=config,
        destination=Path(destination) if destination else None,
    )


def load_render_context(stream: IO[str]) -> RenderContext:
    """Read a RenderContext from *stream* (normally stdin)."""
    try:
        data = json.load(stream)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Could not parse the RenderContext from mdbook: {e}"
        ) from e
    return parse_render_context(data)
