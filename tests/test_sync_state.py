"""Tests for SyncState persistence."""

import json
from unittest.mock import patch

import pytest

from confluence_sync.sync.models import PageSyncRecord
from confluence_sync.sync.state import SyncState


def _record(page_id, version=1, path=None):
    return PageSyncRecord(
        page_id=page_id,
        local_path=path or f"ConfluenceSync/{page_id}.md",
        version=version,
        last_updated=1000,
    )


@pytest.fixture
def state_file(tmp_path):
    return tmp_path / ".confluence_sync" / "state.json"


class TestLoad:
    def test_missing_file_is_empty(self, state_file):
        state = SyncState(state_file)
        assert state.list_page_ids() == []
        assert state.get_watermark() == 0
        assert state.list_synced_roots() == []
        assert not state_file.exists()

    def test_reads_camel_case_document(self, state_file):
        state_file.parent.mkdir(parents=True)
        state_file.write_text(
            json.dumps(
                {
                    "syncState": {
                        "101": {
                            "pageId": "101",
                            "localPath": "ConfluenceSync/101/101.md",
                            "version": 3,
                            "lastUpdated": 5,
                        }
                    },
                    "lastGlobalSyncTime": 1718000000000,
                    "syncedRootIds": [100],
                }
            )
        )
        state = SyncState(state_file)
        assert state.get_record("101").local_path == "ConfluenceSync/101/101.md"
        assert state.get_watermark() == 1718000000000
        assert state.is_root_synced("100")


class TestRecords:
    def test_needs_sync(self, state_file):
        state = SyncState(state_file)
        assert state.needs_sync("1", 1)
        state.update_record(_record("1", version=2))
        assert not state.needs_sync("1", 2)
        assert not state.needs_sync("1", 1)
        assert state.needs_sync("1", 3)

    def test_apply_batch_persists_once(self, state_file):
        state = SyncState(state_file)
        with patch.object(state, "_commit", wraps=state._commit) as commit:
            state.apply_batch([_record("1"), _record("2")])
        assert commit.call_count == 1

        reloaded = SyncState(state_file)
        assert sorted(reloaded.list_page_ids()) == ["1", "2"]
        raw = json.loads(state_file.read_text())
        assert raw["syncState"]["1"]["localPath"] == "ConfluenceSync/1.md"

    def test_apply_empty_batch_writes_nothing(self, state_file):
        SyncState(state_file).apply_batch([])
        assert not state_file.exists()

    def test_recorded_paths_and_owner(self, state_file):
        state = SyncState(state_file)
        state.apply_batch([_record("1"), _record("2")])
        assert state.recorded_paths() == {
            "1": "ConfluenceSync/1.md",
            "2": "ConfluenceSync/2.md",
        }
        assert state.path_owner("confluencesync/2.MD") == "2"
        assert state.path_owner("ConfluenceSync/3.md") is None

    def test_failed_write_keeps_memory_unchanged(self, state_file):
        state = SyncState(state_file)
        state.update_record(_record("1", version=1))
        with patch(
            "confluence_sync.sync.state.os.replace",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(OSError):
                state.update_record(_record("1", version=9))
        assert state.get_record("1").version == 1
        assert [p.name for p in state_file.parent.iterdir()] == ["state.json"]


class TestRootsAndWatermark:
    def test_record_root_synced_dedupes(self, state_file):
        state = SyncState(state_file)
        state.record_root_synced(["100", "200", "100"])
        state.record_root_synced(["200", "300"])
        assert state.list_synced_roots() == ["100", "200", "300"]

    def test_watermark_round_trip(self, state_file):
        state = SyncState(state_file)
        state.set_watermark(1718000000000)
        assert SyncState(state_file).get_watermark() == 1718000000000

    def test_clear_all(self, state_file):
        state = SyncState(state_file)
        state.update_record(_record("1"))
        state.record_root_synced(["100"])
        state.set_watermark(5)

        state.clear_all()

        reloaded = SyncState(state_file)
        assert reloaded.list_page_ids() == []
        assert reloaded.list_synced_roots() == []
        assert reloaded.get_watermark() == 0

    def test_stats(self, state_file):
        state = SyncState(state_file)
        state.update_record(_record("1"))
        state.record_root_synced(["100"])
        assert state.stats() == {
            "total_synced_pages": 1,
            "last_sync_time": 0,
            "synced_root_ids": ["100"],
            "state_file": str(state_file),
        }
