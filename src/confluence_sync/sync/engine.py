"""Pull-sync engine: mirrors Confluence page trees into local Markdown.

A pass moves through these steps:

1. Resolve roots -- split configured root ids into new (never fully
   synced) and existing ones.  An empty root set is a configuration error.
2. List -- existing roots are listed incrementally from the watermark,
   new roots in full; results are deduplicated by page id.
3. Plan paths -- ``PathMapper`` places the whole batch once.
4. Sync -- a bounded pool of workers takes pages off a queue.  Each page
   is skipped when its stored version is current, otherwise its folders,
   attachments and converted Markdown are written and a pending state
   record is staged.
5. Persist -- pending records are saved in one batch.  New roots with no
   failed page are marked as synced, and the watermark moves to the pass
   start time only when no page failed, so failures are retried.

Error handling is per-page: a failed page adds an entry to the report's
error list and the pass continues.  Listing failures and state
persistence failures propagate.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..config import Config, ConfigurationError
from ..converters.common import attachment_filename
from ..converters.storage_to_markdown import StoragePipeline
from ..core.async_utils import run_sync, run_worker_pool
from ..storage import LocalStorage, Storage, normalize_path
from .mapper import PathMapper, join_path
from .models import Page, PageSyncRecord, PathInfo, SyncReport
from .state import SyncState

if TYPE_CHECKING:
    from ..core.client import ConfluenceClient

logger = logging.getLogger(__name__)

ATTACHMENTS_FOLDER = "Attachments"
DEFAULT_ATTACHMENT_EXTENSION = ".drawio"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _root_has_failures(
    root_id: str, failed_ids: set[str], pages: dict[str, Page]
) -> bool:
    """True when *root_id* or any listed page below it failed."""
    for page_id in failed_ids:
        if page_id == root_id:
            return True
        page = pages.get(page_id)
        if page is not None and any(a.id == root_id for a in page.ancestors):
            return True
    return False


@dataclass
class _PassResults:
    """Mutable tallies shared by the workers of one pass."""

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    failed_ids: set[str] = field(default_factory=set)
    attachments: int = 0
    pending: dict[str, PageSyncRecord] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def add_written(
        self, path: str, created: bool, attachments: int, record: PageSyncRecord
    ) -> None:
        with self.lock:
            (self.created if created else self.updated).append(path)
            self.attachments += attachments
            self.pending[record.page_id] = record

    def add_skipped(self, path: str) -> None:
        with self.lock:
            self.skipped.append(path)

    def add_error(self, message: str, page_id: str | None = None) -> None:
        with self.lock:
            self.errors.append(message)
            if page_id is not None:
                self.failed_ids.add(page_id)

    def to_report(self, started_at: str, pages_listed: int) -> SyncReport:
        return SyncReport(
            created=sorted(self.created),
            updated=sorted(self.updated),
            skipped=sorted(self.skipped),
            attachments_downloaded=self.attachments,
            errors=list(self.errors),
            pages_listed=pages_listed,
            started_at=started_at,
            completed_at=_iso_now(),
        )


@dataclass(frozen=True)
class _WriteOutcome:
    created: bool
    attachments: int
    record: PageSyncRecord


class SyncEngine:
    """Run pull passes for one configuration.

    Args:
        config: Immutable configuration snapshot.
        client: Confluence client (or any object with the same methods).
        storage: Where files and folders are written.
        state: Persistent sync state.
        pipeline: Markdown converter; built from *config* when omitted.
    """

    def __init__(
        self,
        config: Config,
        client: ConfluenceClient,
        storage: Storage,
        state: SyncState,
        pipeline: StoragePipeline | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.storage = storage
        self.state = state
        self.pipeline = pipeline or StoragePipeline(config.jira_base_url)
        self._pass_lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls, config: Config, client: ConfluenceClient | None = None
    ) -> SyncEngine:
        """Build an engine writing into ``config.vault_root``.

        A relative ``state_file`` is resolved against the vault root.
        """
        # Import here to avoid circular imports
        from ..core.client import ConfluenceClient

        storage = LocalStorage(config.vault_root)
        state_path = Path(config.state_file).expanduser()
        if not state_path.is_absolute():
            state_path = storage.root / state_path
        return cls(
            config=config,
            client=client or ConfluenceClient(config),
            storage=storage,
            state=SyncState(state_path),
        )

    @property
    def attachments_folder(self) -> str:
        return join_path(self.config.sync_folder, ATTACHMENTS_FOLDER)

    # ------------------------------------------------------------------
    # Full pass
    # ------------------------------------------------------------------

    async def pull(self) -> SyncReport:
        """Run one pull pass over every configured root.

        Raises:
            ConfigurationError: No root page ids are configured.
            ConfluenceAPIError: Listing pages failed.
            OSError: Sync state could not be persisted.
        """
        root_ids = list(dict.fromkeys(self.config.root_page_ids))
        if not root_ids:
            raise ConfigurationError(
                "No root page ids configured. Set CONFLUENCE_ROOT_PAGE_IDS "
                "or add sync.root_page_ids to config.yml."
            )

        async with self._pass_lock:
            return await self._pull(root_ids)

    async def _pull(self, root_ids: list[str]) -> SyncReport:
        started_at = _iso_now()
        pass_start_ms = _now_ms()

        new_roots = [r for r in root_ids if not self.state.is_root_synced(r)]
        existing_roots = [r for r in root_ids if self.state.is_root_synced(r)]
        if new_roots:
            logger.info("New root ids (full listing): %s", new_roots)
        if existing_roots:
            logger.info("Known root ids (incremental): %s", existing_roots)

        listed: list[Page] = []
        if existing_roots:
            watermark = self.state.get_watermark()
            incremental = await run_sync(
                self.client.fetch_all_pages, existing_roots, watermark
            )
            logger.info("Incremental listing returned %d pages", len(incremental))
            listed.extend(incremental)
        if new_roots:
            full = await run_sync(self.client.fetch_all_pages, new_roots, None)
            logger.info("Full listing returned %d pages", len(full))
            listed.extend(full)

        unique: dict[str, Page] = {}
        for page in listed:
            unique[page.id] = page
        pages = list(unique.values())

        results = _PassResults()
        await run_sync(self._create_folders, self.attachments_folder)

        if pages:
            paths = PathMapper(root_ids, self.config.sync_folder).build_paths(
                pages, self.state.recorded_paths()
            )

            async def sync_one(page: Page) -> None:
                await self._sync_listed_page(page, paths.get(page.id), results)

            await run_worker_pool(
                pages, sync_one, self.config.max_parallel_requests
            )
        else:
            logger.info("No new or changed pages to sync")

        await run_sync(self.state.apply_batch, list(results.pending.values()))
        completed_roots = [
            r
            for r in new_roots
            if not _root_has_failures(r, results.failed_ids, unique)
        ]
        if completed_roots:
            await run_sync(self.state.record_root_synced, completed_roots)
        if results.errors:
            logger.warning(
                "%d page(s) failed, keeping the previous watermark so they "
                "are listed again next pass",
                len(results.errors),
            )
        else:
            await run_sync(self.state.set_watermark, pass_start_ms)

        report = results.to_report(started_at, len(pages))
        logger.info("Sync pass finished: %s", report.summary())
        return report

    async def _sync_listed_page(
        self, page: Page, info: PathInfo | None, results: _PassResults
    ) -> None:
        try:
            if info is None:
                raise LookupError("no local path was computed")

            if not self.state.needs_sync(page.id, page.version):
                results.add_skipped(info.file_path)
                return

            outcome = await self._write_page(
                page, info.folder_path, info.file_path
            )
            results.add_written(
                info.file_path,
                outcome.created,
                outcome.attachments,
                outcome.record,
            )
        except Exception as e:
            message = f"Failed to sync page {page.id} ({page.title}): {e}"
            logger.error(message)
            results.add_error(message, page.id)

    # ------------------------------------------------------------------
    # Single page
    # ------------------------------------------------------------------

    async def sync_page(
        self,
        page_id: str,
        local_path: str | None = None,
        force: bool = False,
    ) -> SyncReport:
        """Fetch and write one page outside a full pass.

        Args:
            page_id: Page to refresh.
            local_path: Vault-relative target file.  Defaults to the path
                stored for the page, or a freshly computed one.
            force: Write even when the stored version is current.

        Raises:
            OSError: The updated record could not be persisted.
        """
        async with self._pass_lock:
            started_at = _iso_now()
            results = _PassResults()
            try:
                page = await run_sync(self.client.get_page, page_id)
                target = self._single_page_path(page, local_path)

                if not force and not self.state.needs_sync(page.id, page.version):
                    results.add_skipped(target)
                    return results.to_report(started_at, 1)

                await run_sync(self._create_folders, self.attachments_folder)
                outcome = await self._write_page(
                    page, posixpath.dirname(target), target
                )
                results.add_written(
                    target, outcome.created, outcome.attachments, outcome.record
                )
            except Exception as e:
                message = f"Failed to sync page {page_id}: {e}"
                logger.error(message)
                results.add_error(message)
                return results.to_report(started_at, 0)

            await run_sync(self.state.update_record, outcome.record)
            return results.to_report(started_at, 1)

    def _single_page_path(self, page: Page, local_path: str | None) -> str:
        if local_path:
            return normalize_path(local_path)
        record = self.state.get_record(page.id)
        if record is not None:
            return record.local_path
        paths = PathMapper(
            self.config.root_page_ids, self.config.sync_folder
        ).build_paths([page], self.state.recorded_paths())
        return paths[page.id].file_path

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def _write_page(
        self, page: Page, folder_path: str, file_path: str
    ) -> _WriteOutcome:
        owner = self.state.path_owner(file_path)
        if owner is not None and owner != page.id:
            raise FileExistsError(
                f"{file_path} already belongs to page {owner}"
            )

        await run_sync(self._create_folders, folder_path)

        attachments = 0
        # A count of exactly 0 is trusted; None (unknown) still lists
        if page.attachment_count != 0:
            attachments = await self._sync_attachments(page)

        converted = await run_sync(
            self.pipeline.render, page, self.config.base_url
        )
        for warning in converted.warnings:
            logger.warning("Page %s: %s", page.id, warning)

        existed = await run_sync(self.storage.path_exists, file_path)
        if existed:
            await run_sync(self.storage.modify_file, file_path, converted.text)
        else:
            await run_sync(self.storage.create_file, file_path, converted.text)
        logger.debug(
            "%s %s (v%d)", "Updated" if existed else "Created", file_path, page.version
        )

        return _WriteOutcome(
            created=not existed,
            attachments=attachments,
            record=PageSyncRecord(
                page_id=page.id,
                local_path=file_path,
                version=page.version,
                last_updated=_now_ms(),
            ),
        )

    def attachment_path(self, page_title: str, attachment_title: str) -> str:
        """Vault path for an attachment; extension-less names get ``.drawio``."""
        name = attachment_filename(page_title, attachment_title)
        if "." not in attachment_title:
            name += DEFAULT_ATTACHMENT_EXTENSION
        return join_path(self.attachments_folder, name)

    async def _sync_attachments(self, page: Page) -> int:
        """Download every attachment of *page*; returns the number written.

        Failures are logged and never fail the page.
        """
        try:
            attachments = await run_sync(self.client.get_attachments, page.id)
        except Exception as e:
            logger.error("Failed to list attachments of page %s: %s", page.id, e)
            return 0

        written = 0
        for attachment in attachments:
            path = self.attachment_path(page.title, attachment.title)
            try:
                data = await run_sync(
                    self.client.download_attachment, page.id, attachment.title
                )
                if await run_sync(self.storage.path_exists, path):
                    await run_sync(self.storage.modify_binary_file, path, data)
                else:
                    await run_sync(self.storage.create_binary_file, path, data)
                written += 1
            except Exception as e:
                logger.error(
                    "Failed to download attachment '%s' of page %s: %s",
                    attachment.title,
                    page.id,
                    e,
                )
        return written

    def _create_folders(self, folder_path: str) -> None:
        """Create *folder_path* one segment at a time."""
        current = ""
        for segment in normalize_path(folder_path).split("/"):
            if not segment:
                continue
            current = join_path(current, segment)
            if self.storage.path_exists(current):
                continue
            try:
                self.storage.create_folder(current)
            except FileExistsError:
                pass

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def reset(self) -> None:
        """Forget all sync state so the next pass is a full resync."""
        async with self._pass_lock:
            await run_sync(self.state.clear_all)

    def stats(self) -> dict[str, Any]:
        stats = self.state.stats()
        stats["configured_root_ids"] = list(self.config.root_page_ids)
        stats["sync_folder"] = self.config.sync_folder
        return stats
