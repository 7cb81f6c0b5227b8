"""Sync state persistence layer.

Tracks which pages have been written, at which version and where, plus
the global watermark and the set of root ids that have completed a full
pass.  Everything lives in one JSON document::

    {
      "syncState": {"<pageId>": {"pageId": ..., "localPath": ...,
                                  "version": ..., "lastUpdated": ...}},
      "lastGlobalSyncTime": 1718000000000,
      "syncedRootIds": ["123"]
    }

Key design choices:

* **Atomic writes** -- the document is written to a temp file in the
  target directory and moved into place with ``os.replace()``.
* **Persist, then swap** -- every mutator builds the new document, writes
  it, and only then replaces the in-memory copy, so a failed write leaves
  memory and disk agreeing with each other.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .models import PageSyncRecord

logger = logging.getLogger(__name__)


def _empty_document() -> dict[str, Any]:
    return {"syncState": {}, "lastGlobalSyncTime": 0, "syncedRootIds": []}


class SyncState:
    """Load, query and persist the pull-sync state.

    Args:
        state_file: Path of the JSON document.  Its parent directory is
            created on first write.
    """

    def __init__(self, state_file: Path) -> None:
        self._path = Path(state_file)
        self._lock = threading.Lock()
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return _empty_document()
        with open(self._path, encoding="utf-8") as fh:
            raw = json.load(fh)
        data = _empty_document()
        data["syncState"] = {
            str(page_id): PageSyncRecord.model_validate(entry)
            for page_id, entry in (raw.get("syncState") or {}).items()
        }
        data["lastGlobalSyncTime"] = int(raw.get("lastGlobalSyncTime") or 0)
        data["syncedRootIds"] = [
            str(r) for r in raw.get("syncedRootIds") or []
        ]
        return data

    def _commit(self, data: dict[str, Any]) -> None:
        """Write *data* atomically, then make it the in-memory state.

        Raises:
            OSError: When the document cannot be written.  In-memory state
                is left unchanged.
        """
        document = {
            "syncState": {
                page_id: record.to_json()
                for page_id, record in data["syncState"].items()
            },
            "lastGlobalSyncTime": data["lastGlobalSyncTime"],
            "syncedRootIds": list(data["syncedRootIds"]),
        }

        parent = self._path.parent
        parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        self._data = data

    def _copy(self) -> dict[str, Any]:
        return {
            "syncState": dict(self._data["syncState"]),
            "lastGlobalSyncTime": self._data["lastGlobalSyncTime"],
            "syncedRootIds": list(self._data["syncedRootIds"]),
        }

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def get_record(self, page_id: str) -> PageSyncRecord | None:
        """Return the record for *page_id*, or ``None`` if never written."""
        return self._data["syncState"].get(page_id)

    def needs_sync(self, page_id: str, remote_version: int) -> bool:
        """Return ``True`` when *page_id* has no record or a newer remote version.

        Only version numbers are compared.
        """
        record = self.get_record(page_id)
        if record is None:
            return True
        return remote_version > record.version

    def apply_batch(self, records: Iterable[PageSyncRecord]) -> None:
        """Merge *records* (keyed by page id) and persist once."""
        records = list(records)
        if not records:
            return
        with self._lock:
            data = self._copy()
            for record in records:
                data["syncState"][record.page_id] = record
            self._commit(data)
        logger.debug("Persisted %d sync records", len(records))

    def update_record(self, record: PageSyncRecord) -> None:
        """Upsert a single record and persist."""
        with self._lock:
            data = self._copy()
            data["syncState"][record.page_id] = record
            self._commit(data)

    def recorded_paths(self) -> dict[str, str]:
        """Map every recorded page id to its local path."""
        return {
            page_id: record.local_path
            for page_id, record in self._data["syncState"].items()
        }

    def path_owner(self, path: str) -> str | None:
        """Page id whose record holds *path* (case-insensitive), if any."""
        wanted = path.casefold()
        for page_id, record in self._data["syncState"].items():
            if record.local_path.casefold() == wanted:
                return page_id
        return None

    def list_page_ids(self) -> list[str]:
        return list(self._data["syncState"])

    # ------------------------------------------------------------------
    # Roots and watermark
    # ------------------------------------------------------------------

    def record_root_synced(self, root_ids: Iterable[str]) -> None:
        """Add *root_ids* to the synced-root set (order kept, no duplicates)."""
        with self._lock:
            current = self._data["syncedRootIds"]
            added = [r for r in dict.fromkeys(root_ids) if r not in current]
            if not added:
                return
            data = self._copy()
            data["syncedRootIds"] = current + added
            self._commit(data)

    def is_root_synced(self, root_id: str) -> bool:
        return root_id in self._data["syncedRootIds"]

    def list_synced_roots(self) -> list[str]:
        return list(self._data["syncedRootIds"])

    def get_watermark(self) -> int:
        """Milliseconds since epoch of the last completed pass (0 = never)."""
        return self._data["lastGlobalSyncTime"]

    def set_watermark(self, timestamp_ms: int) -> None:
        with self._lock:
            data = self._copy()
            data["lastGlobalSyncTime"] = int(timestamp_ms)
            self._commit(data)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def clear_all(self) -> None:
        """Forget every record, every synced root and the watermark."""
        with self._lock:
            self._commit(_empty_document())
        logger.info("Sync state cleared: %s", self._path)

    def stats(self) -> dict[str, Any]:
        """Summary counts for status displays."""
        return {
            "total_synced_pages": len(self._data["syncState"]),
            "last_sync_time": self._data["lastGlobalSyncTime"],
            "synced_root_ids": list(self._data["syncedRootIds"]),
            "state_file": str(self._path),
        }
