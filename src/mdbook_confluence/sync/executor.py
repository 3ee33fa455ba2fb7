"""Plan executor: apply a ``SyncPlan`` against the remote wiki.

Every action runs as its own asyncio task; blocking REST calls go through
the pass's ``BoundedRunner`` so at most ``max_parallel_requests`` are in
flight.  Ordering is enforced by waiting, not by sequencing:

- a Create or Move waits until its parent's Create/Move (if any) has
  finished, then reads the parent's remote id from the resolution table;
- a Create also waits for the previous sibling's Create under the same
  parent, so pages are created in book order.

Failure handling:

- Version conflicts are reported as ``ConflictError`` and never retried.
- Transient transport failures are retried with exponential backoff, up
  to ``max_retries`` times, then reported as ``RemoteWriteError``.
- A failed Create leaves its identity unresolved; every action waiting
  on it fails without being attempted.
- Any other error is recorded against its own action only.
- An authentication failure aborts the pass: calls that have not started
  are recorded as failed and not attempted, calls in flight finish.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from mdbook_confluence.core.async_utils import BoundedRunner, RunCancelled
from mdbook_confluence.errors import (
    AuthenticationError,
    ConflictError,
    RemoteAPIError,
    RemoteWriteError,
    VersionConflictError,
)
from mdbook_confluence.sync.models import (
    PlannedAction,
    RemoteIndex,
    SyncAction,
    SyncPlan,
    SyncResult,
)

if TYPE_CHECKING:
    from mdbook_confluence.core.protocols import RemoteWiki

logger = logging.getLogger(__name__)


class ResolutionTable:
    """Identity -> remote id, shared by all action tasks of one pass.

    Ids of pages that already exist are loaded up front.  Identities with
    a pending Create or Move get a completion event; the task owning the
    action is the only writer and publishes exactly once, success or not.
    """

    def __init__(self) -> None:
        self._ids: dict[str, str] = {}
        self._done: dict[str, asyncio.Event] = {}
        self._lock = asyncio.Lock()

    def preload(self, identity: str, page_id: str) -> None:
        self._ids[identity] = page_id

    def expect(self, identity: str) -> None:
        self._done[identity] = asyncio.Event()

    def is_pending(self, identity: str) -> bool:
        return identity in self._done

    async def publish(self, identity: str, page_id: str | None) -> None:
        """Record the outcome of the action for *identity*.

        ``None`` means the page does not exist remotely (failed Create).
        """
        async with self._lock:
            if page_id is not None:
                self._ids[identity] = page_id
        event = self._done.get(identity)
        if event is not None:
            event.set()

    async def wait_for(self, identity: str) -> str | None:
        """Wait until *identity*'s action finished, then return its id."""
        event = self._done.get(identity)
        if event is not None:
            await event.wait()
        async with self._lock:
            return self._ids.get(identity)


class PlanExecutor:
    """Execute a plan with bounded concurrency and bounded retries.

    Args:
        client: The remote wiki capability.
        runner: Bounds the number of concurrent requests.
        max_retries: Retries for transient failures per call.
        retry_backoff: Base delay; attempt *n* waits ``backoff * 2**n``.
        sleep: Awaitable sleep, replaceable in tests.
    """

    def __init__(
        self,
        client: RemoteWiki,
        runner: BoundedRunner,
        max_retries: int = 3,
        retry_backoff: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.runner = runner
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._sleep = sleep
        self._aborted = False
        self._abort_reason: str | None = None
        self._table = ResolutionTable()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def execute(
        self, plan: SyncPlan, index: RemoteIndex
    ) -> list[SyncResult]:
        """Apply every action of *plan*.

        Returns:
            One ``SyncResult`` per action, in plan order.
        """
        self._aborted = False
        self._abort_reason = None
        self._table = ResolutionTable()

        for identity, page in index.pages.items():
            self._table.preload(identity, page.id)
        for planned in plan.actions:
            if planned.page_id is not None:
                self._table.preload(planned.identity, planned.page_id)
            if planned.action in (SyncAction.CREATE, SyncAction.MOVE):
                self._table.expect(planned.identity)

        previous_sibling = self._sibling_chain(plan)

        tasks = [
            asyncio.create_task(
                self._run_action(
                    planned, previous_sibling.get(planned.identity)
                )
            )
            for planned in plan.actions
        ]
        return list(await asyncio.gather(*tasks))

    @staticmethod
    def _sibling_chain(plan: SyncPlan) -> dict[str, str]:
        """Map each Create to the Create of its previous local sibling."""
        by_parent: dict[str | None, list[PlannedAction]] = {}
        for planned in plan.actions:
            if planned.action == SyncAction.CREATE:
                by_parent.setdefault(planned.parent_identity, []).append(
                    planned
                )

        chain: dict[str, str] = {}
        for siblings in by_parent.values():
            siblings.sort(key=lambda a: a.sibling_index)
            for before, after in zip(siblings, siblings[1:]):
                chain[after.identity] = before.identity
        return chain

    # ------------------------------------------------------------------
    # Per-action task
    # ------------------------------------------------------------------

    async def _run_action(
        self, planned: PlannedAction, previous_sibling: str | None
    ) -> SyncResult:
        if planned.action == SyncAction.SKIP:
            logger.debug(
                "Skipped '%s' (%s)", planned.identity, planned.reason
            )
            return SyncResult(
                identity=planned.identity,
                action=planned.action,
                success=True,
                page_id=planned.page_id,
            )

        published = False
        try:
            parent_id = planned.parent_id
            if planned.action in (SyncAction.CREATE, SyncAction.MOVE):
                if (
                    planned.parent_identity is not None
                    and self._table.is_pending(planned.parent_identity)
                ):
                    parent_id = await self._table.wait_for(
                        planned.parent_identity
                    )
                if previous_sibling is not None:
                    await self._table.wait_for(previous_sibling)

                if parent_id is None and self._aborted:
                    return self._not_attempted_abort(planned)
                if parent_id is None:
                    logger.error(
                        "Not attempted: '%s' (parent '%s' was not created)",
                        planned.identity,
                        planned.parent_identity,
                    )
                    return self._failure(
                        planned,
                        f"parent '{planned.parent_identity}' was not created",
                        "dependency",
                        attempted=False,
                    )

            if self._aborted:
                return self._not_attempted_abort(planned)

            try:
                result = await self._apply(planned, parent_id)
            except RunCancelled:
                return self._not_attempted_abort(planned)

            if planned.action == SyncAction.CREATE:
                await self._table.publish(planned.identity, result.page_id)
                published = True
            return result
        finally:
            if not published:
                await self._table.publish(planned.identity, planned.page_id)

    async def _apply(
        self, planned: PlannedAction, parent_id: str | None
    ) -> SyncResult:
        """Issue the remote call for one action and classify failures."""
        try:
            if planned.action == SyncAction.CREATE:
                ref = await self._call(
                    self.client.create_page,
                    parent_id,
                    planned.identity,
                    planned.content or "",
                )
                logger.info("Created '%s' (%s)", planned.identity, ref.id)
                return SyncResult(
                    identity=planned.identity,
                    action=planned.action,
                    success=True,
                    page_id=ref.id,
                )

            if planned.action == SyncAction.UPDATE:
                version = await self._call(
                    self.client.update_page,
                    planned.page_id,
                    planned.identity,
                    planned.content or "",
                    planned.expected_version,
                )
                logger.info(
                    "Updated '%s' (%s, version %s)",
                    planned.identity,
                    planned.page_id,
                    version,
                )
            else:
                version = await self._call(
                    self.client.move_page,
                    planned.page_id,
                    parent_id,
                    planned.identity,
                    planned.content or "",
                    planned.expected_version,
                )
                logger.info(
                    "Moved '%s' (%s) under %s%s",
                    planned.identity,
                    planned.page_id,
                    parent_id,
                    " with new content" if planned.content_changed else "",
                )
            return SyncResult(
                identity=planned.identity,
                action=planned.action,
                success=True,
                page_id=planned.page_id,
            )

        except VersionConflictError as exc:
            error = ConflictError(
                f"'{planned.identity}' was modified remotely since version "
                f"{planned.expected_version}; not overwritten ({exc})"
            )
            logger.error("Conflict: %s", error)
            return self._failure(planned, str(error), "conflict")

        except AuthenticationError as exc:
            self._abort(str(exc))
            logger.error(
                "Authentication failed on '%s': %s", planned.identity, exc
            )
            return self._failure(planned, str(exc), "authentication")

        except (RemoteAPIError, ValueError) as exc:
            error = RemoteWriteError(
                f"{planned.action.value} '{planned.identity}' failed: {exc}"
            )
            logger.error("%s", error)
            return self._failure(planned, str(error), "write")

        except RunCancelled:
            raise

        except Exception as exc:
            error = RemoteWriteError(
                f"{planned.action.value} '{planned.identity}' failed: "
                f"{type(exc).__name__}: {exc}"
            )
            logger.exception("%s", error)
            return self._failure(planned, str(error), "write")

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run one remote call, retrying transient failures with backoff."""
        attempt = 0
        while True:
            try:
                return await self.runner.run_unless(
                    lambda: self._aborted, func, *args
                )
            except VersionConflictError:
                raise
            except RemoteAPIError as exc:
                if not exc.transient or attempt >= self.max_retries:
                    raise
                delay = self.retry_backoff * (2**attempt)
                attempt += 1
                logger.warning(
                    "Transient failure (attempt %d/%d): %s. Retrying in %.1fs",
                    attempt,
                    self.max_retries + 1,
                    exc,
                    delay,
                )
                await self._sleep(delay)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _abort(self, reason: str) -> None:
        if not self._aborted:
            logger.error("Aborting remaining work: %s", reason)
        self._aborted = True
        self._abort_reason = reason

    def _not_attempted_abort(self, planned: PlannedAction) -> SyncResult:
        return self._failure(
            planned,
            f"not attempted: run aborted ({self._abort_reason})",
            "aborted",
            attempted=False,
        )

    @staticmethod
    def _failure(
        planned: PlannedAction,
        error: str,
        error_type: str,
        attempted: bool = True,
    ) -> SyncResult:
        return SyncResult(
            identity=planned.identity,
            action=planned.action,
            success=False,
            page_id=planned.page_id,
            error=error,
            error_type=error_type,
            attempted=attempted,
        )
