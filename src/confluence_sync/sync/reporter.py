"""Sync report formatting functions.

Provides human-readable and machine-readable output for pull operations:

- ``format_sync_report`` -- full post-sync summary.
- ``format_status`` -- sync state overview.
- ``report_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import SyncReport


def format_sync_report(report: SyncReport) -> str:
    """Format a completed pull report as human-readable text.

    Sections are only included when they contain at least one entry.
    Skipped pages are summarised by count only.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    status = "succeeded" if report.success else "finished with errors"
    lines.append(f"Confluence pull {status}")
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"Listed {report.pages_listed} pages: "
        f"{len(report.created)} created, {len(report.updated)} updated, "
        f"{len(report.skipped)} unchanged, "
        f"{report.attachments_downloaded} attachments, "
        f"{len(report.errors)} errors"
    )
    lines.append("")

    if report.created:
        lines.append("Created:")
        lines.extend(f"  {path}" for path in report.created)
        lines.append("")

    if report.updated:
        lines.append("Updated:")
        lines.extend(f"  {path}" for path in report.updated)
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        lines.extend(f"  {message}" for message in report.errors)
        lines.append("")

    if report.pages_listed == 0 and report.success:
        lines.append("Nothing new to sync.")
        lines.append("")

    return "\n".join(lines).rstrip()


def _format_timestamp(timestamp_ms: int) -> str:
    if not timestamp_ms:
        return "never"
    return (
        datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
        .isoformat(timespec="seconds")
        .replace("+00:00", "Z")
    )


def format_status(stats: dict[str, Any]) -> str:
    """Format the output of ``SyncEngine.stats()``."""
    lines = [
        f"Synced pages:   {stats.get('total_synced_pages', 0)}",
        f"Last sync:      {_format_timestamp(stats.get('last_sync_time', 0))}",
    ]
    synced_roots = stats.get("synced_root_ids") or []
    lines.append(
        f"Synced roots:   {', '.join(synced_roots) if synced_roots else '(none)'}"
    )
    if "configured_root_ids" in stats:
        configured = stats["configured_root_ids"]
        pending = [r for r in configured if r not in synced_roots]
        lines.append(
            f"Configured:     {', '.join(configured) if configured else '(none)'}"
        )
        if pending:
            lines.append(f"Awaiting full sync: {', '.join(pending)}")
    if stats.get("sync_folder"):
        lines.append(f"Sync folder:    {stats['sync_folder']}")
    if stats.get("state_file"):
        lines.append(f"State file:     {stats['state_file']}")
    return "\n".join(lines)


def report_to_json(report: SyncReport) -> dict[str, Any]:
    """Convert a ``SyncReport`` to a JSON-serialisable dictionary.

    Args:
        report: The completed sync report.

    Returns:
        Dict with ``success``, ``summary`` counts and the per-category lists.
    """
    return {
        "success": report.success,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "summary": {
            "listed": report.pages_listed,
            "created": len(report.created),
            "updated": len(report.updated),
            "skipped": len(report.skipped),
            "attachments_downloaded": report.attachments_downloaded,
            "errors": len(report.errors),
        },
        "created": list(report.created),
        "updated": list(report.updated),
        "errors": list(report.errors),
    }
