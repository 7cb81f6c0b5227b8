"""Tests for the confluence-sync command-line interface."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from confluence_sync.cli import build_parser, main
from confluence_sync.core.client import AuthenticationError
from confluence_sync.sync.models import SyncReport


def _report(**overrides):
    defaults = {"started_at": "2024-06-01T12:00:00+00:00", "pages_listed": 1}
    defaults.update(overrides)
    return SyncReport(**defaults)


@pytest.fixture(autouse=True)
def _no_logging_setup():
    with patch("confluence_sync.cli.setup_logging"):
        yield


@pytest.fixture
def engine():
    engine = MagicMock()
    engine.pull = AsyncMock(return_value=_report(created=["ConfluenceSync/A.md"]))
    engine.sync_page = AsyncMock(return_value=_report())
    engine.reset = AsyncMock()
    engine.stats.return_value = {
        "total_synced_pages": 1,
        "last_sync_time": 0,
        "synced_root_ids": ["100"],
    }
    engine.client.test_connection.return_value = {"displayName": "Test User"}
    return engine


@pytest.fixture
def wired(engine, mock_config):
    with (
        patch(
            "confluence_sync.cli.load_runtime_config",
            return_value=(mock_config, ["environment variables"]),
        ) as mock_load,
        patch(
            "confluence_sync.cli.SyncEngine.from_config", return_value=engine
        ),
    ):
        yield mock_load


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_page_arguments(self):
        args = build_parser().parse_args(["page", "123", "Notes/X.md", "--force"])
        assert args.page_id == "123"
        assert args.path == "Notes/X.md"
        assert args.force is True

    def test_global_options_before_command(self):
        args = build_parser().parse_args(
            ["--roots", "1,2", "--vault", "/v", "pull", "--full"]
        )
        assert args.roots == "1,2"
        assert args.full is True


class TestEngineCommands:
    def test_pull(self, wired, engine, capsys):
        assert main(["pull"]) == 0
        engine.pull.assert_awaited_once()
        engine.reset.assert_not_awaited()
        assert "Confluence pull succeeded" in capsys.readouterr().out

    def test_pull_full_resets_first(self, wired, engine):
        assert main(["pull", "--full"]) == 0
        engine.reset.assert_awaited_once()
        engine.pull.assert_awaited_once()

    def test_pull_with_errors_exits_1(self, wired, engine):
        engine.pull.return_value = _report(errors=["Failed to sync page 1"])
        assert main(["pull"]) == 1

    def test_page(self, wired, engine):
        assert main(["page", "123", "--force"]) == 0
        engine.sync_page.assert_awaited_once_with(
            "123", local_path=None, force=True
        )

    def test_status(self, wired, capsys):
        assert main(["status"]) == 0
        assert "Synced pages:   1" in capsys.readouterr().out

    def test_reset(self, wired, engine, capsys):
        assert main(["reset"]) == 0
        engine.reset.assert_awaited_once()
        assert "Sync state cleared" in capsys.readouterr().out

    def test_test_command(self, wired, capsys):
        assert main(["test"]) == 0
        assert (
            "Connected to https://wiki.example.com as Test User"
            in capsys.readouterr().out
        )

    def test_overrides_passed_to_config(self, wired):
        main(["--url", "https://x.example.com", "--roots", "5", "status"])
        overrides = wired.call_args[0][0]
        assert overrides == {"url": "https://x.example.com", "root_page_ids": "5"}


class TestFailures:
    def test_config_error(self, capsys):
        with patch(
            "confluence_sync.cli.load_runtime_config",
            side_effect=ValueError("Confluence URL not found"),
        ):
            assert main(["pull"]) == 1
        assert "Error: Confluence URL not found" in capsys.readouterr().err

    def test_api_error(self, wired, engine, capsys):
        engine.pull.side_effect = AuthenticationError("Authentication failed", 401)
        assert main(["pull"]) == 1
        assert "Confluence error: Authentication failed" in capsys.readouterr().err


class TestOfflineCommands:
    def test_export_to_stdout(self, tmp_path, capsys):
        note = tmp_path / "note.md"
        note.write_text("---\ntitle: x\n---\n# Hello\n", encoding="utf-8")

        assert main(["export", str(note)]) == 0
        assert capsys.readouterr().out.strip() == "<h1>Hello</h1>"

    def test_export_to_file_with_warnings(self, tmp_path, capsys):
        note = tmp_path / "note.md"
        note.write_text("![[a.png]]\n", encoding="utf-8")
        out = tmp_path / "note.xml"

        assert main(["export", str(note), "-o", str(out)]) == 0
        assert "[Attachment: a.png]" in out.read_text(encoding="utf-8")
        assert "Warning: Embedded" in capsys.readouterr().err

    def test_export_missing_file(self, tmp_path, capsys):
        assert main(["export", str(tmp_path / "missing.md")]) == 1
        assert "File error" in capsys.readouterr().err

    def test_init_writes_config(self, tmp_path, capsys):
        assert main(["init"]) == 0
        out = capsys.readouterr().out
        assert out.startswith("Config file: ")
        assert (tmp_path / ".confluence_sync" / "config.yml").exists()
