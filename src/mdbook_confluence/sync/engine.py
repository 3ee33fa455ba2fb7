"""Sync orchestrator: one reconciliation pass from book to page tree.

The ``SyncEngine`` ties together mapper, reader, reconciler and executor
into a complete sync run.  It:

1. Assigns an identity to every local chapter (fails fast on collisions).
2. Asks the server for its version to decide how emoji are packaged.
3. Snapshots the remote subtree under the anchor page.
4. Reconciles the two trees into an ordered plan.
5. Executes the plan (or, for a dry run, reports it unexecuted).
6. Builds and returns a ``SyncReport``.

Configuration, anchor and read failures are fatal and propagate to the
caller.  Failures of individual actions are collected in the report.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from mdbook_confluence.core.async_utils import BoundedRunner, run_sync
from mdbook_confluence.sync.executor import PlanExecutor
from mdbook_confluence.sync.mapper import IdentityMapper
from mdbook_confluence.sync.models import (
    LocalBook,
    SyncAction,
    SyncPlan,
    SyncReport,
    SyncResult,
)
from mdbook_confluence.sync.packager import supports_emoji
from mdbook_confluence.sync.reader import RemoteTreeReader
from mdbook_confluence.sync.reconciler import Reconciler

if TYPE_CHECKING:
    from mdbook_confluence.config import Config
    from mdbook_confluence.core.protocols import RemoteWiki

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncEngine:
    """Orchestrate one sync pass of a book against its anchor page.

    Args:
        client: The remote wiki capability.
        config: Resolved runtime configuration.
        runner: Request limiter shared by reader and executor; one is
            created from ``config.max_parallel_requests`` when omitted.
        sleep: Awaitable sleep used between retries.
    """

    def __init__(
        self,
        client: RemoteWiki,
        config: Config,
        runner: BoundedRunner | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self.runner = runner or BoundedRunner(config.max_parallel_requests)

        self.mapper = IdentityMapper(
            prefix=config.title_prefix,
            qualify_titles=config.qualify_titles,
            separator=config.title_separator,
        )
        self.reader = RemoteTreeReader(client, self.runner)

        executor_kwargs: dict[str, Any] = {
            "max_retries": config.max_retries,
            "retry_backoff": config.retry_backoff,
        }
        if sleep is not None:
            executor_kwargs["sleep"] = sleep
        self.executor = PlanExecutor(client, self.runner, **executor_kwargs)

        self.last_plan: SyncPlan | None = None

    # ------------------------------------------------------------------
    # Main entry points
    # ------------------------------------------------------------------

    async def run_async(self, book: LocalBook, dry_run: bool = False) -> SyncReport:
        """Execute a full sync pass.

        Args:
            book: The local chapter tree.
            dry_run: If ``True``, compute the plan but do not execute it.

        Returns:
            A ``SyncReport`` summarising what was (or would be) done.

        Raises:
            ConfigurationError: On identity collisions.
            AnchorNotFoundError: If the anchor page is missing.
            RemoteReadError: If the remote tree cannot be read fully.
        """
        started_at = _now()
        anchor_id = self.config.root_page

        # Step 1: identities, before any request is made
        mapped = self.mapper.assign(book)
        logger.info("Book has %d chapters", len(mapped))

        # Step 2: server capabilities
        server_version = await run_sync(self.client.get_server_version)
        allow_emoji = supports_emoji(server_version)
        if server_version is not None:
            logger.debug(
                "Confluence version %s",
                ".".join(str(p) for p in server_version),
            )
        if not allow_emoji:
            logger.info(
                "Confluence before 7.3: emoji will be replaced in page bodies"
            )

        # Step 3: remote snapshot
        index = await self.reader.read(anchor_id)

        # Step 4: plan
        plan = Reconciler(allow_emoji=allow_emoji).build_plan(mapped, index)
        self.last_plan = plan

        # Step 5: execute
        if dry_run:
            logger.info("Dry run: %d planned actions not executed", len(plan))
            results = [
                SyncResult(
                    identity=planned.identity,
                    action=planned.action,
                    success=True,
                    page_id=planned.page_id,
                    attempted=False,
                )
                for planned in plan.actions
            ]
        else:
            results = await self.executor.execute(plan, index)

        report = SyncReport(
            anchor_id=index.anchor.id,
            dry_run=dry_run,
            results=results,
            started_at=started_at,
            completed_at=_now(),
        )
        self._log_outcome(report)
        return report

    def run(self, book: LocalBook, dry_run: bool = False) -> SyncReport:
        """Synchronous wrapper around ``run_async`` for CLI use."""
        return asyncio.run(self.run_async(book, dry_run=dry_run))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _log_outcome(report: SyncReport) -> None:
        counts = report.counts()
        pending = sum(
            1 for r in report.results if r.action != SyncAction.SKIP
        )
        if report.dry_run:
            logger.info("Dry run complete: %d changes planned", pending)
            return
        if report.ok:
            logger.info(
                "Sync complete: %d created, %d updated, %d moved, %d unchanged",
                counts["created"],
                counts["updated"],
                counts["moved"],
                counts["skipped"],
            )
        else:
            logger.error(
                "Sync finished with %d failed actions", counts["failed"]
            )
