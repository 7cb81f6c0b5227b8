"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from ..config_schema import load_runtime_config
from ..core.async_utils import run_sync
from ..sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Merge all config sources: CLI > env vars (.env loaded first) > YAML > defaults
    - Create the SyncEngine (client, vault storage, sync state)
    - Validate the Confluence connection and fail fast if unreachable

    On shutdown:
    - Log shutdown message

    Args:
        config_overrides: Optional dict with config values from CLI
            (url, username, password, root_page_ids, folder, vault, insecure)

    Yields:
        Dict with 'engine' key containing the initialized SyncEngine

    Raises:
        RuntimeError: If configuration is invalid or Confluence is unreachable.
    """
    logger.info("MCP server starting...")
    _stderr_print("Confluence Sync MCP Server starting...")

    try:
        config, sources = load_runtime_config(config_overrides)
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("Confluence URL: %s", config.base_url)
        _stderr_print(f"  Confluence URL: {config.base_url}")
        if not config.root_page_ids:
            logger.warning("No root page ids configured; sync tools will fail")
            _stderr_print(
                "  WARNING: no root page ids configured (CONFLUENCE_ROOT_PAGE_IDS)."
            )
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(
            "  Ensure CONFLUENCE_URL, CONFLUENCE_USERNAME, CONFLUENCE_PASSWORD are set."
        )
        raise RuntimeError(
            f"Configuration error: {e}. Ensure CONFLUENCE_URL, "
            "CONFLUENCE_USERNAME, CONFLUENCE_PASSWORD are set."
        ) from e

    logger.info("Validating Confluence connection...")
    _stderr_print("  Validating Confluence connection...")
    try:
        engine = SyncEngine.from_config(config)
        user = await run_sync(engine.client.test_connection)
        display_name = user.get("displayName") or user.get("username") or "?"
        logger.info("Connected to Confluence as %s", display_name)
        _stderr_print(f"  Connected as {display_name}")
        _stderr_print(f"  Vault: {engine.storage.root}")
        _stderr_print(
            f"  Parallel requests: {config.max_parallel_requests}"
        )
        _stderr_print(
            "Server ready. Waiting for MCP client connection..."
        )
    except Exception as e:
        logger.error("Failed to connect to Confluence: %s", e)
        _stderr_print("ERROR: Confluence connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print(
            "  Check CONFLUENCE_URL, CONFLUENCE_USERNAME, CONFLUENCE_PASSWORD."
        )
        raise RuntimeError(
            f"Confluence connection failed: {e}. Check CONFLUENCE_URL, "
            "CONFLUENCE_USERNAME, CONFLUENCE_PASSWORD."
        ) from e

    yield {"engine": engine}

    logger.info("MCP server shutting down")
    _stderr_print("Confluence Sync MCP Server shutting down.")
