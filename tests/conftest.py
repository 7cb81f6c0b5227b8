"""Shared pytest fixtures for confluence-sync tests."""

from unittest.mock import MagicMock

import pytest

from confluence_sync.config import Config


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Confluence instance",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Confluence instance"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep real CONFLUENCE_* variables and config files out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("CONFLUENCE_") or key in ("LOG_LEVEL", "LOG_FILE"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def mock_config(tmp_path):
    """Create a Config instance writing into a temporary vault."""
    return Config(
        base_url="https://wiki.example.com",
        username="testuser",
        password="testpass",
        root_page_ids=("100",),
        vault_root=str(tmp_path / "vault"),
        max_parallel_requests=3,
    )


@pytest.fixture
def mock_confluence_client(mock_config):
    """Create a mock ConfluenceClient instance for testing."""
    from confluence_sync.core.client import ConfluenceClient

    client = MagicMock(spec=ConfluenceClient)
    client.config = mock_config
    return client


@pytest.fixture
def mock_json_response():
    """Factory fixture for creating JSON HTTP response mocks."""

    def _create_response(payload=None, status_code=200, content=b""):
        from unittest.mock import Mock

        mock_response = Mock()
        mock_response.status_code = status_code
        mock_response.json.return_value = payload or {}
        mock_response.text = "" if status_code < 400 else "boom"
        mock_response.content = content
        return mock_response

    return _create_response
