"""Pydantic models for the Confluence pull sync.

Defines the data contracts shared across the sync modules:

- ``PageStatus``: Lifecycle state Confluence reports for a page.
- ``Ancestor``, ``Page``, ``Attachment``: Remote objects as the client sees them.
- ``SearchPage``: One page of a CQL search.
- ``PageSyncRecord``: Persisted per-page bookkeeping.
- ``PathInfo``: Where a page lands locally for the current pass.
- ``SyncReport``: Aggregate outcome of a pass.

All models are frozen (immutable).
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PageStatus(str, Enum):
    """Lifecycle state of a remote page."""

    CURRENT = "current"
    HISTORICAL = "historical"
    TRASHED = "trashed"
    DRAFT = "draft"


class Ancestor(BaseModel):
    """One entry of a page's ancestor chain (root first, parent last)."""

    id: str
    title: str

    model_config = {"frozen": True}


class Page(BaseModel):
    """A remote page with its storage-format body.

    Attributes:
        id: Page id (decimal string).
        title: Page title.
        status: Lifecycle state.
        version: Monotonic version number.
        body: Storage-format XHTML body.
        ancestors: Ancestor chain ordered root first.
        attachment_count: Attachment count hint, ``None`` when unknown.
    """

    id: str
    title: str
    status: PageStatus = PageStatus.CURRENT
    version: int
    body: str = ""
    ancestors: tuple[Ancestor, ...] = ()
    attachment_count: int | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Page:
        """Build a Page from a ``/rest/api/content`` JSON object."""
        body = (data.get("body") or {}).get("storage") or {}
        attachments = (data.get("children") or {}).get("attachment")
        count = None
        if isinstance(attachments, dict) and "size" in attachments:
            count = int(attachments["size"])
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            status=data.get("status") or PageStatus.CURRENT,
            version=int((data.get("version") or {}).get("number", 0)),
            body=body.get("value") or "",
            ancestors=tuple(
                Ancestor(id=str(a["id"]), title=a.get("title") or "")
                for a in data.get("ancestors") or []
            ),
            attachment_count=count,
        )


class Attachment(BaseModel):
    """A binary attachment of a page."""

    id: str
    title: str
    media_type: str = ""
    file_size: int = 0
    download_url: str

    model_config = {"frozen": True}


class SearchPage(BaseModel):
    """One page of CQL search results.

    ``total`` is ``None`` when the server omits ``totalSize``.
    """

    results: list[Page] = []
    start: int = 0
    limit: int = 25
    size: int = 0
    total: int | None = None

    model_config = {"frozen": True}


class PageSyncRecord(BaseModel):
    """Bookkeeping for one page that has been written at least once.

    Serialised with the camelCase keys of the state file
    (``pageId``, ``localPath``, ``version``, ``lastUpdated``).
    """

    page_id: str = Field(alias="pageId")
    local_path: str = Field(alias="localPath")
    version: int
    last_updated: int = Field(alias="lastUpdated")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class PathInfo(BaseModel):
    """Local placement of a page for the current pass.

    ``folder_path`` and ``file_path`` are vault-relative, ``/``-separated.
    """

    page_id: str
    title: str
    folder_path: str
    file_path: str

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate outcome of a sync pass.

    Attributes:
        created: Pages written to a path that did not exist before.
        updated: Pages that overwrote an existing file.
        skipped: Pages whose stored version was already current.
        attachments_downloaded: Attachment files written.
        errors: One message per failed page.
        pages_listed: Unique pages returned by listing.
        started_at: ISO 8601 timestamp when the pass started.
        completed_at: ISO 8601 timestamp when the pass finished.
    """

    created: list[str] = []
    updated: list[str] = []
    skipped: list[str] = []
    attachments_downloaded: int = 0
    errors: list[str] = []
    pages_listed: int = 0
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        """One-line count summary."""
        return (
            f"created {len(self.created)}, updated {len(self.updated)}, "
            f"skipped {len(self.skipped)}, "
            f"attachments {self.attachments_downloaded}, "
            f"errors {len(self.errors)}"
        )
