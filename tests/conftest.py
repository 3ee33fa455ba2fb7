"""Shared pytest fixtures for mdbook-confluence tests."""

from __future__ import annotations

import threading
from typing import Any

import pytest

from mdbook_confluence.config import Config
from mdbook_confluence.errors import (
    PageNotFoundError,
    RemoteAPIError,
    VersionConflictError,
)
from mdbook_confluence.sync.models import LocalBook, LocalNode, PageRef, RemotePage

ANCHOR_ID = "100"


class FakeConfluence:
    """In-memory stand-in for ``ConfluenceClient``.

    Stores pages in a dict with versions and parents, enforces optimistic
    locking and per-space title uniqueness like the real server, and
    records every call.  ``failures`` maps ``(method, title)`` to a list
    of exceptions raised (in order) before the call starts succeeding.
    """

    def __init__(self, server_version: tuple[int, ...] | None = (8, 5, 0)) -> None:
        self.server_version = server_version
        self.pages: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple] = []
        self.failures: dict[tuple[str, str], list[Exception]] = {}
        self._next_id = 1000
        self._lock = threading.Lock()
        self.pages[ANCHOR_ID] = {
            "title": "Docs Home",
            "version": 1,
            "parent_id": None,
            "body": "",
        }

    # -- helpers for tests ---------------------------------------------

    def add_page(
        self,
        title: str,
        parent_id: str = ANCHOR_ID,
        body: str = "",
        version: int = 1,
    ) -> str:
        with self._lock:
            page_id = str(self._next_id)
            self._next_id += 1
            self.pages[page_id] = {
                "title": title,
                "version": version,
                "parent_id": parent_id,
                "body": body,
            }
        return page_id

    def edit(self, page_id: str, body: str) -> None:
        """Simulate a manual edit in the Confluence UI."""
        page = self.pages[page_id]
        page["body"] = body
        page["version"] += 1

    def id_of(self, title: str) -> str:
        for page_id, page in self.pages.items():
            if page["title"] == title:
                return page_id
        raise KeyError(title)

    def page(self, title: str) -> dict[str, Any]:
        return self.pages[self.id_of(title)]

    def mutations(self) -> list[tuple]:
        return [
            c
            for c in self.calls
            if c[0] in ("create_page", "update_page", "move_page")
        ]

    def _maybe_fail(self, method: str, title: str) -> None:
        pending = self.failures.get((method, title))
        if pending:
            raise pending.pop(0)

    def _to_remote(self, page_id: str) -> RemotePage:
        page = self.pages[page_id]
        return RemotePage(
            id=page_id,
            title=page["title"],
            version=page["version"],
            parent_id=page["parent_id"],
            body=page["body"],
            space_key="DOC",
        )

    # -- RemoteWiki ----------------------------------------------------

    def get_page(self, page_id: str) -> RemotePage:
        with self._lock:
            self.calls.append(("get_page", page_id))
            if page_id not in self.pages:
                raise PageNotFoundError(f"page {page_id} not found", status_code=404)
            return self._to_remote(page_id)

    def list_children(self, page_id: str) -> list[RemotePage]:
        with self._lock:
            self.calls.append(("list_children", page_id))
            return [
                self._to_remote(pid)
                for pid, page in self.pages.items()
                if page["parent_id"] == page_id
            ]

    def create_page(self, parent_id: str, title: str, body: str) -> PageRef:
        with self._lock:
            self.calls.append(("create_page", parent_id, title))
            self._maybe_fail("create_page", title)
            if parent_id not in self.pages:
                raise PageNotFoundError(f"parent {parent_id} not found", status_code=404)
            if any(p["title"] == title for p in self.pages.values()):
                raise RemoteAPIError(
                    f"A page with this title already exists: {title}",
                    status_code=400,
                )
            page_id = str(self._next_id)
            self._next_id += 1
            self.pages[page_id] = {
                "title": title,
                "version": 1,
                "parent_id": parent_id,
                "body": body,
            }
            return PageRef(id=page_id, version=1)

    def _put(self, page_id, title, body, expected_version, parent_id=None) -> int:
        if page_id not in self.pages:
            raise PageNotFoundError(f"page {page_id} not found", status_code=404)
        page = self.pages[page_id]
        if page["version"] != expected_version:
            raise VersionConflictError(
                f"Version must be incremented on update. Current version is: "
                f"{page['version']}",
                status_code=409,
            )
        page["version"] += 1
        page["title"] = title
        page["body"] = body
        if parent_id is not None:
            page["parent_id"] = parent_id
        return page["version"]

    def update_page(self, page_id, title, body, expected_version) -> int:
        with self._lock:
            self.calls.append(("update_page", page_id, title, expected_version))
            self._maybe_fail("update_page", title)
            return self._put(page_id, title, body, expected_version)

    def move_page(self, page_id, new_parent_id, title, body, expected_version) -> int:
        with self._lock:
            self.calls.append(
                ("move_page", page_id, new_parent_id, title, expected_version)
            )
            self._maybe_fail("move_page", title)
            return self._put(
                page_id, title, body, expected_version, parent_id=new_parent_id
            )

    def get_server_version(self) -> tuple[int, ...] | None:
        self.calls.append(("get_server_version",))
        return self.server_version

    def validate_connection(self) -> str:
        self.calls.append(("validate_connection",))
        return "Test User"


def chapter(title: str, content: str = "", *children: LocalNode, depth: int = 1) -> LocalNode:
    """Build a chapter node; children get their depth fixed up."""
    fixed = tuple(_with_depth(c, depth + 1) for c in children)
    return LocalNode(title=title, content=content, children=fixed, depth=depth)


def _with_depth(node: LocalNode, depth: int) -> LocalNode:
    return LocalNode(
        title=node.title,
        content=node.content,
        children=tuple(_with_depth(c, depth + 1) for c in node.children),
        depth=depth,
        number=node.number,
    )


def book(*chapters: LocalNode) -> LocalBook:
    return LocalBook(title="Docs", chapters=tuple(chapters))


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        url="https://confluence.example.com",
        username="testuser",
        password="testpass",
        root_page=ANCHOR_ID,
        insecure=False,
        max_parallel_requests=4,
        max_retries=2,
        retry_backoff=0,
    )


@pytest.fixture
def fake_confluence():
    """An in-memory Confluence holding only the anchor page."""
    return FakeConfluence()


@pytest.fixture
def no_sleep():
    """Awaitable sleep that records delays instead of waiting."""
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep
