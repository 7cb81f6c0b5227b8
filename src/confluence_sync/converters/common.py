"""Common types and utilities for format conversion."""

import re
from dataclasses import dataclass, field

# =============================================================================
# Code Block Language Mapping
# =============================================================================
#
# Mapping between Confluence code macro languages and Markdown code fence
# language identifiers.
#
# Confluence: <ac:parameter ac:name="language">py</ac:parameter>
# Markdown:   ```python
#
# Design:
# - Store Confluence->Markdown as the canonical direction
# - Derive Markdown->Confluence, with explicit entries where several
#   Markdown names collapse onto one Confluence brush
# - Unknown languages pass through unchanged
# =============================================================================

# Confluence brush name -> Markdown language identifier
_CONFLUENCE_TO_MARKDOWN_MAP: dict[str, str] = {
    "py": "python",
    "js": "javascript",
    "c#": "csharp",
    "yml": "yaml",
    "erl": "erlang",
    "vb": "vbnet",
    "actionscript3": "actionscript",
    "none": "",
}

# Markdown language identifier -> Confluence brush name
_MARKDOWN_TO_CONFLUENCE_MAP: dict[str, str] = {
    **{md: cf for cf, md in _CONFLUENCE_TO_MARKDOWN_MAP.items() if md},
    "shell": "bash",
    "sh": "bash",
    "zsh": "bash",
    "ts": "typescript",
    "cs": "c#",
    "yaml": "yml",
    "plaintext": "text",
    "plain": "text",
}


def confluence_to_markdown_lang(lang: str) -> str:
    """
    Convert a Confluence code macro language to a Markdown fence language.

    Examples:
        >>> confluence_to_markdown_lang("py")
        'python'
        >>> confluence_to_markdown_lang("Java")
        'java'
        >>> confluence_to_markdown_lang("none")
        ''
    """
    lang_lower = lang.strip().lower()
    return _CONFLUENCE_TO_MARKDOWN_MAP.get(lang_lower, lang_lower)


def markdown_to_confluence_lang(lang: str) -> str:
    """
    Convert a Markdown fence language to a Confluence code macro language.

    Examples:
        >>> markdown_to_confluence_lang("python")
        'py'
        >>> markdown_to_confluence_lang("shell")
        'bash'
        >>> markdown_to_confluence_lang("rust")
        'rust'
    """
    lang_lower = lang.strip().lower()
    return _MARKDOWN_TO_CONFLUENCE_MAP.get(lang_lower, lang_lower)


# =============================================================================
# File names
# =============================================================================

MAX_FILENAME_LENGTH = 200
_ILLEGAL_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]')
_WHITESPACE_RUN = re.compile(r"\s+")


def sanitize_filename(name: str) -> str:
    """Make a page or attachment title safe to use as a path segment.

    Replaces ``\\ / : * ? " < > |`` with ``_``, trims, collapses whitespace
    runs to one space and cuts to 200 characters.  Dots are never touched.
    Returns ``"untitled"`` when nothing is left.

    Examples:
        >>> sanitize_filename("A/B:C")
        'A_B_C'
        >>> sanitize_filename("  Hello   World  ")
        'Hello World'
        >>> sanitize_filename("v1.2.3")
        'v1.2.3'
    """
    cleaned = _ILLEGAL_FILENAME_CHARS.sub("_", name)
    cleaned = _WHITESPACE_RUN.sub(" ", cleaned.strip())
    cleaned = cleaned[:MAX_FILENAME_LENGTH].strip()
    return cleaned or "untitled"


def attachment_filename(page_title: str, name: str) -> str:
    """Vault file name for an attachment: ``<safePageTitle>_<safeName>``."""
    return f"{sanitize_filename(page_title)}_{sanitize_filename(name)}"


@dataclass
class ConversionResult:
    """Result of format conversion with metadata and warnings.

    Attributes:
        text: Converted text output
        source_format: Format of input text ('storage' or 'markdown')
        target_format: Format of output text ('markdown' or 'storage')
        converted: True if the structural pass succeeded, False if the
            tag-stripping fallback produced the text
        warnings: Notes about lossy conversions or fallbacks
    """

    text: str
    source_format: str = "unknown"
    target_format: str = "unknown"
    converted: bool = False
    warnings: list[str] = field(default_factory=list)
