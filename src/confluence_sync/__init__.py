"""One-way mirror of Confluence page trees into local Markdown folders."""

__version__ = "0.1.0"
