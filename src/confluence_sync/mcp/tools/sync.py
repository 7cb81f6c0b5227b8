"""MCP tool handlers for the Confluence pull sync.

Defines four tools:

- ``confluence_sync`` -- run one pull pass over every configured root.
- ``confluence_sync_page`` -- refresh a single page (optionally forced).
- ``confluence_sync_status`` -- show the sync state summary.
- ``confluence_sync_reset`` -- forget sync state, optionally pulling again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import mcp.types as types

from ...sync.reporter import format_status, format_sync_report, report_to_json
from .errors import build_error_response
from .registry import ToolSpec

if TYPE_CHECKING:
    from ...sync.engine import SyncEngine
    from ...sync.models import SyncReport

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="confluence_sync",
        description=(
            "Pull the configured Confluence page trees into the local "
            "Markdown folder. Only pages changed since the last pass are "
            "fetched; roots added since then are pulled in full."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="confluence_sync_page",
        description=(
            "Fetch one Confluence page and write it as Markdown. Defaults "
            "to the page's previously synced path."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "page_id": {
                    "type": "string",
                    "description": "Confluence page id",
                },
                "local_path": {
                    "type": "string",
                    "description": (
                        "Vault-relative target file, e.g. "
                        "'ConfluenceSync/Guides/Setup.md'"
                    ),
                },
                "force": {
                    "type": "boolean",
                    "default": False,
                    "description": "Write even when the local copy is current",
                },
            },
            "required": ["page_id"],
        },
    ),
    types.Tool(
        name="confluence_sync_status",
        description=(
            "Show sync state -- number of synced pages, last sync time, "
            "fully synced and pending root ids."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="confluence_sync_reset",
        description=(
            "Clear all sync state so the next pass re-pulls every page. "
            "Local Markdown files are kept and overwritten on the next pass."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "resync": {
                    "type": "boolean",
                    "default": False,
                    "description": "Run a full pass right after the reset",
                },
            },
            "required": [],
        },
    ),
]


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


def _report_result(report: SyncReport) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_sync_report(report))],
        structuredContent=report_to_json(report),
        isError=not report.success,
    )


async def _handle_sync(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``confluence_sync`` tool."""
    report = await engine.pull()
    return _report_result(report)


async def _handle_sync_page(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``confluence_sync_page`` tool."""
    page_id = str(args.get("page_id") or "").strip()
    if not page_id:
        return build_error_response(
            "validation_error",
            "page_id is required",
            "Provide the 'page_id' parameter with a Confluence page id.",
        )
    if not page_id.isdigit():
        return build_error_response(
            "validation_error",
            f"Invalid page id '{page_id}'",
            "Page ids are numeric, e.g. '123456'.",
        )

    report = await engine.sync_page(
        page_id,
        local_path=args.get("local_path") or None,
        force=bool(args.get("force", False)),
    )
    return _report_result(report)


async def _handle_sync_status(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``confluence_sync_status`` tool."""
    stats = engine.stats()
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_status(stats))],
        structuredContent=stats,
    )


async def _handle_sync_reset(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``confluence_sync_reset`` tool."""
    await engine.reset()
    logger.info("Sync state reset")

    if args.get("resync", False):
        report = await engine.pull()
        result = _report_result(report)
        result.content.insert(
            0,
            types.TextContent(type="text", text="Sync state cleared."),
        )
        return result

    return types.CallToolResult(
        content=[
            types.TextContent(
                type="text",
                text="Sync state cleared. The next pass re-pulls every page.",
            )
        ],
        structuredContent=engine.stats(),
    )


# ToolSpec list for registry-based dispatch
SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYNC_TOOLS[0], handler=_handle_sync),
    ToolSpec(tool=SYNC_TOOLS[1], handler=_handle_sync_page),
    ToolSpec(tool=SYNC_TOOLS[2], handler=_handle_sync_status),
    ToolSpec(tool=SYNC_TOOLS[3], handler=_handle_sync_reset),
]
