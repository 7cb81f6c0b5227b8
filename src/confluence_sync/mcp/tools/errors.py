"""Error response builders for MCP tool handlers.

This module provides structured error responses with corrective actions
to help AI agents recover from errors without human intervention.
"""

import mcp.types as types

from ...core.client import (
    AuthenticationError,
    ConfluenceAPIError,
    InvalidURLError,
    NotFoundError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, authentication_failed,
            invalid_url, validation_error, storage_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Page 123 not found", "Check the page id.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_api_error(
    error: ConfluenceAPIError, page_id: str | None = None
) -> types.CallToolResult:
    """Translate a Confluence API error to a structured error response.

    Args:
        error: The raised client error
        page_id: Optional page id for contextual suggestions

    Returns:
        CallToolResult with isError=True and corrective action
    """
    match error:
        case InvalidURLError():
            return build_error_response(
                "invalid_url",
                str(error),
                "Set CONFLUENCE_URL to the Confluence base URL including http:// or https://.",
            )
        case AuthenticationError():
            return build_error_response(
                "authentication_failed",
                str(error),
                "Check CONFLUENCE_USERNAME and CONFLUENCE_PASSWORD (or API token).",
            )
        case NotFoundError() if page_id:
            return build_error_response(
                "not_found",
                str(error),
                f"Verify that page {page_id} exists and is visible to the configured user.",
            )
        case NotFoundError():
            return build_error_response(
                "not_found",
                str(error),
                "Check CONFLUENCE_URL and the configured root page ids.",
            )
        case _:
            return build_error_response(
                "server_error",
                str(error),
                "Check Confluence connectivity or retry later.",
            )
