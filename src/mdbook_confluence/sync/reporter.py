"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_sync_report`` -- full post-sync summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by action.
- ``report_to_json`` -- structured dict for ``--json-report``.

Reports only ever contain identities, page ids and error messages; no
configuration values are included.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import SyncReport, SyncResult

from .models import SyncAction

_ACTION_LABELS = {
    SyncAction.CREATE: "Created",
    SyncAction.UPDATE: "Updated",
    SyncAction.MOVE: "Moved",
}

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _describe_failure(result: SyncResult) -> str:
    page = f" (page {result.page_id})" if result.page_id else ""
    note = "" if result.attempted else " [not attempted]"
    return (
        f"  {result.action.value} '{result.identity}'{page}: "
        f"{result.error or 'unknown error'}{note}"
    )


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.
    Unchanged pages are summarised by count only to avoid excessive
    output.  Every failed action is listed with its identity, action,
    page id and cause.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    # Header
    header = f"Sync report for anchor page {report.anchor_id}"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    counts = report.counts()
    lines.append(
        f"Synced {len(report.results)} pages: "
        f"{counts['created']} created, {counts['updated']} updated, "
        f"{counts['moved']} moved, {counts['skipped']} unchanged, "
        f"{counts['failed']} failed"
    )
    lines.append("")

    for action, results in (
        (SyncAction.CREATE, report.created),
        (SyncAction.UPDATE, report.updated),
        (SyncAction.MOVE, report.moved),
    ):
        if not results:
            continue
        lines.append(f"{_ACTION_LABELS[action]}:")
        for r in results:
            lines.append(f"  {r.identity} ({r.page_id})")
        lines.append("")

    if report.conflicts:
        lines.append("Conflicts (edited on Confluence, not overwritten):")
        for r in report.conflicts:
            lines.append(_describe_failure(r))
        lines.append("")

    other_failures = [r for r in report.failed if r.error_type != "conflict"]
    if other_failures:
        lines.append("Failed:")
        for r in other_failures:
            lines.append(_describe_failure(r))
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(report: SyncReport) -> str:
    """Format a dry-run preview grouped by action type.

    Each proposed action is shown as ``  identity`` under an
    ``[ACTION]`` heading.

    Args:
        report: A dry-run sync report (``dry_run=True``).

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append(f"Anchor page: {report.anchor_id}")
    lines.append("")

    groups: dict[SyncAction, list[SyncResult]] = defaultdict(list)
    for r in report.results:
        groups[r.action].append(r)

    for action in (SyncAction.CREATE, SyncAction.UPDATE, SyncAction.MOVE):
        if action not in groups:
            continue
        lines.append(f"[{action.value.upper()}]")
        for r in groups[action]:
            suffix = f" ({r.page_id})" if r.page_id else ""
            lines.append(f"  {r.identity}{suffix}")
        lines.append("")

    skip_count = len(groups.get(SyncAction.SKIP, []))
    if skip_count > 0:
        lines.append(f"Unchanged: {skip_count} pages")
        lines.append("")

    if not any(a != SyncAction.SKIP for a in groups):
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with anchor info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "identity": r.identity,
            "action": r.action.value,
            "success": r.success,
        }
        if r.page_id:
            entry["page_id"] = r.page_id
        if r.error:
            entry["error"] = r.error
            entry["error_type"] = r.error_type
            entry["attempted"] = r.attempted
        results_list.append(entry)

    return {
        "anchor_id": report.anchor_id,
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "ok": report.ok,
        "counts": {"total": len(report.results), **report.counts()},
        "results": results_list,
    }
