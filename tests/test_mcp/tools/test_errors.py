"""Tests for mcp/tools/errors.py -- error response builders.

Covers:
- build_error_response() structure and format
- translate_api_error() domain-specific error mapping
"""

import mcp.types as types

from confluence_sync.core.client import (
    AuthenticationError,
    ConfluenceAPIError,
    InvalidURLError,
    NotFoundError,
)
from confluence_sync.mcp.tools.errors import (
    build_error_response,
    translate_api_error,
)


def _get_error_text(result: types.CallToolResult) -> str:
    """Extract text from first content item with type narrowing for Pyright."""
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


# ---------------------------------------------------------------------------
# build_error_response tests
# ---------------------------------------------------------------------------


class TestBuildErrorResponse:
    """Tests for build_error_response()."""

    def test_is_error_flag(self):
        result = build_error_response("not_found", "Not found", "Try again")
        assert isinstance(result, types.CallToolResult)
        assert result.isError is True

    def test_text_format(self):
        result = build_error_response(
            "validation_error", "page_id is required", "Provide page_id."
        )
        assert _get_error_text(result) == (
            "Error (validation_error): page_id is required\n\n"
            "Action: Provide page_id."
        )


# ---------------------------------------------------------------------------
# translate_api_error tests
# ---------------------------------------------------------------------------


class TestTranslateApiError:
    """Tests for translate_api_error()."""

    def test_invalid_url(self):
        text = _get_error_text(translate_api_error(InvalidURLError("bad url")))
        assert text.startswith("Error (invalid_url): bad url")
        assert "CONFLUENCE_URL" in text

    def test_authentication(self):
        text = _get_error_text(
            translate_api_error(AuthenticationError("denied", 401))
        )
        assert text.startswith("Error (authentication_failed)")
        assert "CONFLUENCE_PASSWORD" in text

    def test_not_found_with_page(self):
        text = _get_error_text(
            translate_api_error(NotFoundError("gone", 404), page_id="123")
        )
        assert text.startswith("Error (not_found)")
        assert "page 123" in text

    def test_not_found_without_page(self):
        text = _get_error_text(translate_api_error(NotFoundError("gone", 404)))
        assert "root page ids" in text

    def test_other_errors_are_server_errors(self):
        text = _get_error_text(
            translate_api_error(ConfluenceAPIError("HTTP 503: busy", 503))
        )
        assert text.startswith("Error (server_error): HTTP 503: busy")
