"""Tests for reading mdbook's RenderContext."""

import io
import json
from pathlib import Path

import pytest

from mdbook_confluence.book import (
    load_render_context,
    parse_book,
    parse_render_context,
)
from mdbook_confluence.errors import ConfigurationError


def _chapter(name, content="", sub_items=(), number=None, path="x.md"):
    return {
        "Chapter": {
            "name": name,
            "content": content,
            "number": number,
            "sub_items": list(sub_items),
            "path": path,
            "source_path": path,
            "parent_names": [],
        }
    }


def _context(items, key="sections", output=None):
    return {
        "version": "0.4.37",
        "root": "/books/guide",
        "destination": "/books/guide/book/confluence",
        "config": {
            "book": {"title": "The Guide", "authors": []},
            "output": output if output is not None else {"confluence": {"enabled": True}},
        },
        "book": {key: items, "__non_exhaustive": None},
    }


def test_chapters_become_nodes():
    book = parse_book(
        {
            "sections": [
                _chapter("Intro", "# Intro", number=[1]),
                _chapter("Setup", "setup", number=[2], sub_items=[_chapter("Linux", "apt", number=[2, 1])]),
            ]
        }
    )

    intro, setup = book.chapters
    assert intro.title == "Intro"
    assert intro.content == "# Intro"
    assert intro.number == "1."
    assert intro.depth == 1
    (linux,) = setup.children
    assert linux.title == "Linux"
    assert linux.depth == 2
    assert linux.number == "2.1."


def test_separators_and_part_titles_ignored():
    book = parse_book(
        {
            "items": [
                {"PartTitle": "Part I"},
                _chapter("A"),
                "Separator",
                _chapter("B"),
            ]
        }
    )
    assert [c.title for c in book.chapters] == ["A", "B"]


def test_draft_chapter_kept_with_empty_content():
    book = parse_book({"sections": [_chapter("Later", content=None, path=None)]})
    assert book.chapters[0].title == "Later"
    assert book.chapters[0].content == ""


def test_walk_is_preorder():
    book = parse_book(
        {"sections": [_chapter("A", sub_items=[_chapter("A1")]), _chapter("B")]}
    )
    assert [(n.title, a) for n, a in book.walk()] == [
        ("A", ()),
        ("A1", ("A",)),
        ("B", ()),
    ]


@pytest.mark.parametrize("key", ["sections", "items"])
def test_render_context(key):
    ctx = parse_render_context(_context([_chapter("A")], key=key))

    assert ctx.version == "0.4.37"
    assert ctx.root == Path("/books/guide")
    assert ctx.book.title == "The Guide"
    assert [c.title for c in ctx.book.chapters] == ["A"]
    assert ctx.confluence_section == {"enabled": True}


def test_missing_confluence_section():
    ctx = parse_render_context(_context([], output={"html": {}}))
    assert ctx.confluence_section is None


def test_missing_required_key():
    data = _context([])
    del data["book"]
    with pytest.raises(ConfigurationError, match="missing 'book'"):
        parse_render_context(data)


def test_chapter_without_name():
    with pytest.raises(ConfigurationError):
        parse_book({"sections": [{"Chapter": {"content": "x"}}]})


def test_load_from_stream():
    stream = io.StringIO(json.dumps(_context([_chapter("A")])))
    assert load_render_context(stream).book.chapters[0].title == "A"


def test_invalid_json():
    with pytest.raises(ConfigurationError, match="Could not parse"):
        load_render_context(io.StringIO("{not json"))
