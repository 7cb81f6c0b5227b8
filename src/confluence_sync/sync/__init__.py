"""One-way pull sync from Confluence into local Markdown.

Modules:

- ``engine``    -- ``SyncEngine``: runs pull passes and single-page refreshes.
- ``state``     -- ``SyncState``: per-page records, watermark, synced roots.
- ``mapper``    -- ``PathMapper``: ancestor chains to folder/file paths.
- ``models``    -- ``Page``, ``Attachment``, ``PageSyncRecord``, ``PathInfo``,
  ``SyncReport``: core data contracts.
- ``reporter``  -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from confluence_sync.config import load_config
    from confluence_sync.core.client import ConfluenceClient
    from confluence_sync.storage import LocalStorage
    from confluence_sync.sync import SyncEngine, SyncState, format_sync_report

    config = load_config()
    engine = SyncEngine(
        config=config,
        client=ConfluenceClient(config),
        storage=LocalStorage(config.vault_root),
        state=SyncState(Path(config.state_file)),
    )
    report = asyncio.run(engine.pull())
    print(format_sync_report(report))
"""

from .engine import SyncEngine
from .mapper import PathMapper
from .models import (
    Ancestor,
    Attachment,
    Page,
    PageSyncRecord,
    PathInfo,
    SyncReport,
)
from .reporter import format_status, format_sync_report, report_to_json
from .state import SyncState

__all__ = [
    "Ancestor",
    "Attachment",
    "Page",
    "PageSyncRecord",
    "PathInfo",
    "PathMapper",
    "SyncEngine",
    "SyncReport",
    "SyncState",
    "format_status",
    "format_sync_report",
    "report_to_json",
]
