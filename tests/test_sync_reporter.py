"""Tests for sync report formatting."""

from confluence_sync.sync.models import SyncReport
from confluence_sync.sync.reporter import (
    format_status,
    format_sync_report,
    report_to_json,
)


def _report(**overrides):
    defaults = {
        "started_at": "2024-06-01T12:00:00+00:00",
        "completed_at": "2024-06-01T12:00:05+00:00",
    }
    defaults.update(overrides)
    return SyncReport(**defaults)


class TestFormatSyncReport:
    def test_success_with_sections(self):
        text = format_sync_report(
            _report(
                created=["ConfluenceSync/A.md"],
                updated=["ConfluenceSync/B.md"],
                skipped=["ConfluenceSync/C.md"],
                attachments_downloaded=2,
                pages_listed=3,
            )
        )
        lines = text.splitlines()
        assert lines[0] == "Confluence pull succeeded"
        assert "Started: 2024-06-01T12:00:00+00:00" in lines
        assert (
            "Listed 3 pages: 1 created, 1 updated, 1 unchanged, "
            "2 attachments, 0 errors"
        ) in lines
        assert "Created:" in lines
        assert "  ConfluenceSync/A.md" in lines
        assert "Updated:" in lines
        assert "Errors:" not in lines
        # Skipped pages are counted, never listed
        assert "  ConfluenceSync/C.md" not in lines

    def test_errors_section(self):
        text = format_sync_report(
            _report(errors=["Failed to sync page 1 (X): boom"], pages_listed=1)
        )
        assert text.startswith("Confluence pull finished with errors")
        assert "Errors:\n  Failed to sync page 1 (X): boom" in text

    def test_nothing_to_sync(self):
        text = format_sync_report(_report())
        assert text.endswith("Nothing new to sync.")

    def test_no_trailing_newline(self):
        text = format_sync_report(_report(created=["a.md"], pages_listed=1))
        assert not text.endswith("\n")


class TestFormatStatus:
    def test_never_synced(self):
        text = format_status(
            {
                "total_synced_pages": 0,
                "last_sync_time": 0,
                "synced_root_ids": [],
                "state_file": "/v/.confluence_sync/state.json",
            }
        )
        assert "Synced pages:   0" in text
        assert "Last sync:      never" in text
        assert "Synced roots:   (none)" in text
        assert "State file:     /v/.confluence_sync/state.json" in text

    def test_pending_roots(self):
        text = format_status(
            {
                "total_synced_pages": 4,
                "last_sync_time": 1717243200000,
                "synced_root_ids": ["100"],
                "configured_root_ids": ["100", "200"],
                "sync_folder": "ConfluenceSync",
            }
        )
        assert "Last sync:      2024-06-01T12:00:00Z" in text
        assert "Configured:     100, 200" in text
        assert "Awaiting full sync: 200" in text
        assert "Sync folder:    ConfluenceSync" in text


class TestReportToJson:
    def test_structure(self):
        data = report_to_json(
            _report(
                created=["a.md"],
                skipped=["b.md"],
                errors=["x"],
                pages_listed=3,
            )
        )
        assert data["success"] is False
        assert data["summary"] == {
            "listed": 3,
            "created": 1,
            "updated": 0,
            "skipped": 1,
            "attachments_downloaded": 0,
            "errors": 1,
        }
        assert data["created"] == ["a.md"]
        assert data["errors"] == ["x"]
        assert "skipped" not in data
