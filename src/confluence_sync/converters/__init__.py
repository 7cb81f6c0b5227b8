"""Format conversion between Confluence storage format and Markdown."""

from .common import (
    ConversionResult,
    attachment_filename,
    confluence_to_markdown_lang,
    markdown_to_confluence_lang,
    sanitize_filename,
)
from .markdown_to_storage import (
    StorageRenderer,
    convert_with_warnings,
    markdown_to_storage,
)
from .storage_to_markdown import (
    ConfluenceMarkdownConverter,
    StoragePipeline,
    storage_to_markdown,
)

__all__ = [
    "ConfluenceMarkdownConverter",
    "ConversionResult",
    "StoragePipeline",
    "StorageRenderer",
    "attachment_filename",
    "confluence_to_markdown_lang",
    "convert_with_warnings",
    "markdown_to_confluence_lang",
    "markdown_to_storage",
    "sanitize_filename",
    "storage_to_markdown",
]
