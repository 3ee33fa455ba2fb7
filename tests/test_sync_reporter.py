"""Tests for sync report formatting."""

from __future__ import annotations

import json

from mdbook_confluence.sync.models import SyncAction, SyncReport, SyncResult
from mdbook_confluence.sync.reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)


def _report(results, dry_run=False) -> SyncReport:
    return SyncReport(
        anchor_id="100",
        dry_run=dry_run,
        results=results,
        started_at="2026-01-01T00:00:00+00:00",
        completed_at="2026-01-01T00:00:05+00:00",
    )


def _ok(identity, action, page_id="1"):
    return SyncResult(identity=identity, action=action, success=True, page_id=page_id)


MIXED = [
    _ok("Intro", SyncAction.CREATE, "11"),
    _ok("Setup", SyncAction.UPDATE, "12"),
    _ok("Usage", SyncAction.MOVE, "13"),
    _ok("FAQ", SyncAction.SKIP, "14"),
    SyncResult(
        identity="Reference",
        action=SyncAction.UPDATE,
        success=False,
        page_id="15",
        error="'Reference' was modified remotely since version 3",
        error_type="conflict",
    ),
    SyncResult(
        identity="Appendix",
        action=SyncAction.CREATE,
        success=False,
        error="parent 'Reference' was not created",
        error_type="dependency",
        attempted=False,
    ),
]


class TestFormatSyncReport:
    def test_summary_line(self):
        text = format_sync_report(_report(MIXED))
        assert "Sync report for anchor page 100" in text
        assert (
            "Synced 6 pages: 1 created, 1 updated, 1 moved, 1 unchanged, 2 failed"
            in text
        )

    def test_sections_list_pages(self):
        text = format_sync_report(_report(MIXED))
        assert "Created:\n  Intro (11)" in text
        assert "Updated:\n  Setup (12)" in text
        assert "Moved:\n  Usage (13)" in text

    def test_every_failure_listed_with_cause(self):
        text = format_sync_report(_report(MIXED))
        assert "update 'Reference' (page 15): 'Reference' was modified" in text
        assert (
            "create 'Appendix': parent 'Reference' was not created [not attempted]"
            in text
        )

    def test_empty_sections_omitted(self):
        text = format_sync_report(_report([_ok("FAQ", SyncAction.SKIP)]))
        assert "Created:" not in text
        assert "Failed:" not in text
        assert "Conflicts" not in text


class TestDryRunPreview:
    def test_groups_by_action(self):
        report = _report(
            [
                SyncResult(identity="A", action=SyncAction.CREATE, success=True),
                _ok("B", SyncAction.UPDATE, "2"),
                _ok("C", SyncAction.SKIP, "3"),
            ],
            dry_run=True,
        )
        text = format_dry_run_preview(report)
        assert text.startswith("DRY RUN -- No changes will be made")
        assert "[CREATE]\n  A" in text
        assert "[UPDATE]\n  B (2)" in text
        assert "Unchanged: 1 pages" in text
        assert "No changes needed." not in text

    def test_nothing_to_do(self):
        text = format_dry_run_preview(
            _report([_ok("C", SyncAction.SKIP)], dry_run=True)
        )
        assert "No changes needed." in text


class TestReportToJson:
    def test_structure(self):
        data = report_to_json(_report(MIXED))
        assert data["anchor_id"] == "100"
        assert data["ok"] is False
        assert data["counts"] == {
            "total": 6,
            "created": 1,
            "updated": 1,
            "moved": 1,
            "skipped": 1,
            "failed": 2,
        }
        appendix = data["results"][-1]
        assert appendix == {
            "identity": "Appendix",
            "action": "create",
            "success": False,
            "error": "parent 'Reference' was not created",
            "error_type": "dependency",
            "attempted": False,
        }

    def test_serialisable(self):
        json.dumps(report_to_json(_report(MIXED)))
