"""Tests for the plan executor.

Covers:
- Parent ids resolved from creates in the same pass
- Sibling creation order
- Failed creates cascade to dependants (not attempted)
- Version conflicts are reported and never retried
- Transient failures retried with exponential backoff
- Authentication failure aborts work not yet started
"""

from __future__ import annotations

from conftest import ANCHOR_ID, FakeConfluence, book, chapter
from mdbook_confluence.core.async_utils import BoundedRunner
from mdbook_confluence.errors import AuthenticationError, RemoteAPIError
from mdbook_confluence.sync.executor import PlanExecutor, ResolutionTable
from mdbook_confluence.sync.mapper import IdentityMapper
from mdbook_confluence.sync.models import SyncAction
from mdbook_confluence.sync.reader import RemoteTreeReader
from mdbook_confluence.sync.reconciler import Reconciler


async def _execute(fake, local_book, no_sleep, max_parallel=4, **kwargs):
    runner = BoundedRunner(max_parallel)
    index = await RemoteTreeReader(fake, runner).read(ANCHOR_ID)
    plan = Reconciler().build_plan(IdentityMapper().assign(local_book), index)
    executor = PlanExecutor(fake, runner, sleep=no_sleep, **kwargs)
    results = await executor.execute(plan, index)
    return plan, {r.identity: r for r in results}, results


class TestResolutionTable:
    async def test_wait_returns_immediately_without_pending_action(self):
        table = ResolutionTable()
        table.preload("A", "1")
        assert await table.wait_for("A") == "1"
        assert await table.wait_for("missing") is None

    async def test_publish_releases_waiters(self):
        table = ResolutionTable()
        table.expect("A")
        assert table.is_pending("A")
        await table.publish("A", "7")
        assert await table.wait_for("A") == "7"

    async def test_failed_publish_leaves_identity_unresolved(self):
        table = ResolutionTable()
        table.expect("A")
        await table.publish("A", None)
        assert await table.wait_for("A") is None


class TestCreate:
    async def test_children_created_under_new_parents(self, fake_confluence, no_sleep):
        _, by_identity, results = await _execute(
            fake_confluence,
            book(chapter("A", "a"), chapter("B", "b", chapter("C", "c", chapter("D")))),
            no_sleep,
        )

        assert all(r.success for r in results)
        b_id = fake_confluence.id_of("B")
        c_id = fake_confluence.id_of("C")
        assert fake_confluence.page("A")["parent_id"] == ANCHOR_ID
        assert fake_confluence.page("C")["parent_id"] == b_id
        assert fake_confluence.page("D")["parent_id"] == c_id
        assert by_identity["C"].page_id == c_id

    async def test_siblings_created_in_book_order(self, fake_confluence, no_sleep):
        titles = [f"Chapter {i}" for i in range(8)]
        await _execute(
            fake_confluence,
            book(*(chapter(t) for t in titles)),
            no_sleep,
            max_parallel=8,
        )

        created = [c[2] for c in fake_confluence.calls if c[0] == "create_page"]
        assert created == titles

    async def test_failed_create_cascades(self, fake_confluence, no_sleep):
        fake_confluence.failures[("create_page", "B")] = [
            RemoteAPIError("rejected", status_code=400)
        ]

        _, by_identity, _ = await _execute(
            fake_confluence,
            book(chapter("A"), chapter("B", "", chapter("C", "", chapter("D"))), chapter("E")),
            no_sleep,
        )

        assert by_identity["B"].error_type == "write"
        assert by_identity["B"].attempted
        for identity in ("C", "D"):
            assert not by_identity[identity].success
            assert by_identity[identity].error_type == "dependency"
            assert not by_identity[identity].attempted
        # independent siblings still go ahead
        assert by_identity["A"].success
        assert by_identity["E"].success
        created = {c[2] for c in fake_confluence.calls if c[0] == "create_page"}
        assert "C" not in created and "D" not in created

    async def test_existing_title_elsewhere_is_write_error(self, fake_confluence, no_sleep):
        fake_confluence.add_page("A", parent_id=None)

        _, by_identity, _ = await _execute(fake_confluence, book(chapter("A")), no_sleep)

        assert by_identity["A"].error_type == "write"
        assert "already exists" in by_identity["A"].error

    async def test_unexpected_error_recorded_for_that_page_only(self, fake_confluence, no_sleep):
        fake_confluence.failures[("create_page", "A")] = [KeyError("id")]

        _, by_identity, results = await _execute(
            fake_confluence, book(chapter("A", "", chapter("A1")), chapter("B")), no_sleep
        )

        assert len(results) == 3
        assert by_identity["A"].error_type == "write"
        assert "KeyError" in by_identity["A"].error
        assert by_identity["A1"].error_type == "dependency"
        assert by_identity["B"].success
        assert fake_confluence.page("B")["parent_id"] == ANCHOR_ID


class TestUpdateAndMove:
    async def test_conflict_not_retried(self, fake_confluence, no_sleep):
        b = fake_confluence.add_page("B", body="old", version=3)

        runner = BoundedRunner(2)
        index = await RemoteTreeReader(fake_confluence, runner).read(ANCHOR_ID)
        plan = Reconciler().build_plan(
            IdentityMapper().assign(book(chapter("B", "new"))), index
        )
        fake_confluence.edit(b, "edited by hand")

        (result,) = await PlanExecutor(fake_confluence, runner, sleep=no_sleep).execute(
            plan, index
        )

        assert not result.success
        assert result.error_type == "conflict"
        assert result.page_id == b
        assert "version 3" in result.error
        assert len([c for c in fake_confluence.calls if c[0] == "update_page"]) == 1
        assert fake_confluence.pages[b]["body"] == "edited by hand"
        assert no_sleep.delays == []

    async def test_move_under_created_parent(self, fake_confluence, no_sleep):
        c = fake_confluence.add_page("C", version=2)

        _, by_identity, _ = await _execute(
            fake_confluence, book(chapter("New", "", chapter("C"))), no_sleep
        )

        assert by_identity["C"].action == SyncAction.MOVE
        assert by_identity["C"].success
        assert fake_confluence.pages[c]["parent_id"] == fake_confluence.id_of("New")
        assert fake_confluence.pages[c]["version"] == 3

    async def test_skip_makes_no_calls(self, fake_confluence, no_sleep):
        from mdbook_confluence.sync.packager import package_content

        fake_confluence.add_page("A", body=package_content("a"))

        _, by_identity, _ = await _execute(fake_confluence, book(chapter("A", "a")), no_sleep)

        assert by_identity["A"].action == SyncAction.SKIP
        assert fake_confluence.mutations() == []


class TestRetries:
    async def test_transient_failure_retried_with_backoff(self, fake_confluence, no_sleep):
        fake_confluence.failures[("create_page", "A")] = [
            RemoteAPIError("HTTP 503", status_code=503, transient=True),
            RemoteAPIError("timed out", transient=True),
        ]

        _, by_identity, _ = await _execute(
            fake_confluence, book(chapter("A")), no_sleep, max_retries=3, retry_backoff=0.5
        )

        assert by_identity["A"].success
        assert no_sleep.delays == [0.5, 1.0]

    async def test_retries_are_bounded(self, fake_confluence, no_sleep):
        fake_confluence.failures[("create_page", "A")] = [
            RemoteAPIError("HTTP 502", status_code=502, transient=True)
            for _ in range(5)
        ]

        _, by_identity, _ = await _execute(
            fake_confluence, book(chapter("A")), no_sleep, max_retries=2, retry_backoff=1
        )

        assert by_identity["A"].error_type == "write"
        assert "HTTP 502" in by_identity["A"].error
        assert len([c for c in fake_confluence.calls if c[0] == "create_page"]) == 3
        assert no_sleep.delays == [1, 2]

    async def test_permanent_failure_not_retried(self, fake_confluence, no_sleep):
        fake_confluence.failures[("create_page", "A")] = [
            RemoteAPIError("HTTP 400", status_code=400)
        ]

        _, by_identity, _ = await _execute(fake_confluence, book(chapter("A")), no_sleep)

        assert not by_identity["A"].success
        assert no_sleep.delays == []


class TestAbort:
    async def test_authentication_failure_aborts_remaining(self, fake_confluence, no_sleep):
        fake_confluence.failures[("create_page", "A")] = [
            AuthenticationError("HTTP 401")
        ]

        _, by_identity, results = await _execute(
            fake_confluence,
            book(chapter("A"), chapter("B"), chapter("C")),
            no_sleep,
            max_parallel=1,
        )

        assert by_identity["A"].error_type == "authentication"
        for identity in ("B", "C"):
            assert by_identity[identity].error_type == "aborted"
            assert not by_identity[identity].attempted
        assert len(fake_confluence.mutations()) == 1
        assert len(results) == 3

    async def test_queued_updates_not_started_after_abort(self, fake_confluence, no_sleep):
        for title in ("A", "B", "C"):
            fake_confluence.add_page(title, body="old")
        fake_confluence.failures[("update_page", "A")] = [
            AuthenticationError("HTTP 403")
        ]

        _, by_identity, _ = await _execute(
            fake_confluence,
            book(chapter("A", "new"), chapter("B", "new"), chapter("C", "new")),
            no_sleep,
            max_parallel=1,
        )

        assert by_identity["A"].error_type == "authentication"
        assert by_identity["B"].error_type == "aborted"
        assert by_identity["C"].error_type == "aborted"
        assert fake_confluence.page("B")["body"] == "old"

    async def test_children_of_aborted_create_reported_as_aborted(self, fake_confluence, no_sleep):
        fake_confluence.failures[("create_page", "A")] = [
            AuthenticationError("HTTP 401")
        ]

        _, by_identity, _ = await _execute(
            fake_confluence, book(chapter("A", "", chapter("A1"))), no_sleep
        )

        assert by_identity["A"].error_type == "authentication"
        assert by_identity["A1"].error_type == "aborted"
        assert not by_identity["A1"].attempted
