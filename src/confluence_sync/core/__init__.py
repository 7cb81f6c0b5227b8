"""Core Confluence client functionality shared between CLI and MCP server."""

from .async_utils import run_sync, run_worker_pool
from .client import (
    AuthenticationError,
    ConfluenceAPIError,
    ConfluenceClient,
    InvalidURLError,
    NotFoundError,
)

__all__ = [
    "AuthenticationError",
    "ConfluenceAPIError",
    "ConfluenceClient",
    "InvalidURLError",
    "NotFoundError",
    "run_sync",
    "run_worker_pool",
]
