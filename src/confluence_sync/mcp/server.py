"""MCP Server for the Confluence pull sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents mirror Confluence page trees into a local Markdown folder.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..core.async_utils import run_sync
from ..logger import setup_logging
from ..sync.engine import SyncEngine
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

DEFAULT_LOG_FILE = "/tmp/confluence-sync.log"

# Initialize server instance
server = Server("confluence-sync")

# Global engine instance (initialized in lifespan)
_engine: SyncEngine | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool
# ---------------------------------------------------------------------------


async def _handle_ping(
    engine: SyncEngine, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- test Confluence connectivity."""
    try:
        user = await run_sync(engine.client.test_connection)
        name = user.get("displayName") or user.get("username") or "unknown user"
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Connected to {engine.config.base_url} as {name}.",
                )
            ]
        )
    except Exception as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=(
                        f"Confluence connection failed: {e}. Check CONFLUENCE_URL, "
                        "CONFLUENCE_USERNAME, CONFLUENCE_PASSWORD."
                    ),
                )
            ],
            isError=True,
        )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test Confluence connectivity and report the authenticated user",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_engine() -> SyncEngine:
    """Get the global SyncEngine instance.

    Raises:
        RuntimeError: If engine is not initialized
    """
    if _engine is None:
        raise RuntimeError(
            "SyncEngine not initialized. Server lifespan not started."
        )
    return _engine


def set_engine(engine: SyncEngine | None) -> None:
    """Set the global SyncEngine instance, or None to clear."""
    global _engine
    _engine = engine


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


def build_registry() -> ToolRegistry:
    """Registry holding ping plus every sync tool."""
    return ToolRegistry([PING_SPEC] + ALL_SPECS)


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    engine = get_engine()
    try:
        return await get_registry().call_tool(name, arguments, engine)
    except ValueError as e:
        # Unknown tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    Confluence connection via the lifespan manager and serves JSON-RPC
    over stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (url, username, password, root_page_ids, folder, vault,
            insecure, log_file)
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", log_file=log_file)

    registry = build_registry()
    logger.info("Registered %d tools", registry.tool_count())
    set_registry(registry)

    # Installed here, not in the lifespan: under ``python -m`` this module is
    # __main__ and a lifespan-side import would patch a second copy.
    async with server_lifespan(config_overrides=overrides or None) as ctx:
        set_engine(ctx["engine"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="confluence-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(
                    read_stream, write_stream, init_options
                )
        finally:
            set_engine(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Confluence Sync MCP Server - pull Confluence page trees into local Markdown",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .confluence_sync/config.yml)
  confluence-sync-mcp

  # Override connection and roots
  confluence-sync-mcp --url https://wiki.example.com --roots 12345,67890

  # Write into a specific vault
  confluence-sync-mcp --vault ~/Notes --folder Confluence

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--url",
        help="Override Confluence base URL (takes precedence over CONFLUENCE_URL and config files)",
    )
    parser.add_argument(
        "--username",
        help="Override Confluence username (takes precedence over CONFLUENCE_USERNAME)",
    )
    parser.add_argument(
        "--password",
        help="Override Confluence password or API token"
        " (visible in process list -- prefer CONFLUENCE_PASSWORD env var for security)",
    )
    parser.add_argument(
        "--roots",
        help="Comma-separated root page ids (overrides CONFLUENCE_ROOT_PAGE_IDS)",
    )
    parser.add_argument(
        "--folder",
        help="Vault folder pages are written to (default: ConfluenceSync)",
    )
    parser.add_argument(
        "--vault",
        help="Local directory acting as the vault root (default: current directory)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--log-file",
        default=DEFAULT_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_LOG_FILE})",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"confluence-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides = {}
    if args.url:
        config_overrides["url"] = args.url
    if args.username:
        config_overrides["username"] = args.username
    if args.password:
        config_overrides["password"] = args.password
    if args.roots:
        config_overrides["root_page_ids"] = args.roots
    if args.folder:
        config_overrides["folder"] = args.folder
    if args.vault:
        config_overrides["vault"] = args.vault
    if args.insecure:
        config_overrides["insecure"] = True

    # Report overrides to stderr (before stdio transport starts)
    if config_overrides:
        override_keys = [
            k for k in config_overrides.keys() if k != "password"
        ]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )
    config_overrides["log_file"] = args.log_file

    try:
        asyncio.run(main(config_overrides=config_overrides))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
