"""Tests for ConfluenceClient: CQL building, pagination and error mapping."""

from unittest.mock import patch

import pytest
import requests

from confluence_sync.core.client import (
    MAX_PAGES,
    PAGE_SIZE,
    AuthenticationError,
    ConfluenceAPIError,
    ConfluenceClient,
    InvalidURLError,
    NotFoundError,
    format_cql_timestamp,
)


def _page_json(page_id, version=1, title=None):
    return {
        "id": str(page_id),
        "title": title or f"Page {page_id}",
        "status": "current",
        "version": {"number": version},
        "body": {"storage": {"value": "<p>x</p>"}},
        "ancestors": [],
    }


def _search_payload(ids, total=None):
    payload = {
        "results": [_page_json(i) for i in ids],
        "size": len(ids),
    }
    if total is not None:
        payload["totalSize"] = total
    return payload


class TestSession:
    def test_session_carries_auth_and_verify(self, mock_config):
        client = ConfluenceClient(mock_config)
        assert client.session.auth == ("testuser", "testpass")
        assert client.session.verify is True
        assert client.session.headers["Accept"] == "application/json"

    def test_insecure_disables_verify(self, mock_config):
        client = ConfluenceClient(mock_config.with_overrides(insecure=True))
        assert client.session.verify is False

    def test_session_reused_within_thread(self, mock_config):
        client = ConfluenceClient(mock_config)
        assert client.session is client.session


class TestBuildCql:
    def test_roots_and_descendants(self):
        assert (
            ConfluenceClient.build_cql(["100", "200"])
            == "(id in (100,200) OR ancestor in (100,200))"
        )

    def test_zero_watermark_has_no_date_filter(self):
        assert "lastModified" not in ConfluenceClient.build_cql(["100"], 0)

    def test_watermark_adds_last_modified(self):
        ts = 1718000000000
        cql = ConfluenceClient.build_cql(["100"], ts)
        assert cql.endswith(f'AND lastModified >= "{format_cql_timestamp(ts)}"')

    def test_timestamp_format(self):
        formatted = format_cql_timestamp(1718000000000)
        assert len(formatted) == len("2024-06-10 06:13")
        assert formatted[4] == "-" and formatted[10] == " "


class TestSearchPages:
    @patch("confluence_sync.core.client.requests.Session.get")
    def test_search_request_params(
        self, mock_get, mock_config, mock_json_response
    ):
        mock_get.return_value = mock_json_response(_search_payload(["1"]))
        client = ConfluenceClient(mock_config)

        batch = client.search_pages(["100"], start=25)

        url = mock_get.call_args[0][0]
        params = mock_get.call_args[1]["params"]
        assert url == "https://wiki.example.com/rest/api/content/search"
        assert params["cql"] == "(id in (100) OR ancestor in (100))"
        assert params["start"] == 25
        assert params["limit"] == PAGE_SIZE
        assert "body.storage" in params["expand"]
        assert [p.id for p in batch.results] == ["1"]

    @patch("confluence_sync.core.client.requests.Session.get")
    def test_no_roots_makes_no_request(self, mock_get, mock_config):
        client = ConfluenceClient(mock_config)
        batch = client.search_pages([])
        assert batch.results == []
        mock_get.assert_not_called()


class TestFetchAllPages:
    @patch("confluence_sync.core.client.requests.Session.get")
    def test_stops_on_short_page(self, mock_get, mock_config, mock_json_response):
        mock_get.side_effect = [
            mock_json_response(_search_payload(range(PAGE_SIZE))),
            mock_json_response(_search_payload(range(PAGE_SIZE, PAGE_SIZE + 3))),
        ]
        client = ConfluenceClient(mock_config)

        pages = client.fetch_all_pages(["100"])

        assert len(pages) == PAGE_SIZE + 3
        assert mock_get.call_count == 2
        assert mock_get.call_args_list[1][1]["params"]["start"] == PAGE_SIZE

    @patch("confluence_sync.core.client.requests.Session.get")
    def test_stops_when_total_reached(
        self, mock_get, mock_config, mock_json_response
    ):
        mock_get.return_value = mock_json_response(
            _search_payload(range(PAGE_SIZE), total=PAGE_SIZE)
        )
        client = ConfluenceClient(mock_config)

        pages = client.fetch_all_pages(["100"])

        assert len(pages) == PAGE_SIZE
        assert mock_get.call_count == 1

    @patch("confluence_sync.core.client.requests.Session.get")
    def test_ceiling_truncates(self, mock_get, mock_config, mock_json_response):
        counter = iter(range(10**6))

        def full_page(*args, **kwargs):
            ids = [next(counter) for _ in range(PAGE_SIZE)]
            return mock_json_response(_search_payload(ids))

        mock_get.side_effect = full_page
        client = ConfluenceClient(mock_config)

        pages = client.fetch_all_pages(["100"])

        assert len(pages) == MAX_PAGES
        assert mock_get.call_count == MAX_PAGES // PAGE_SIZE


class TestErrorMapping:
    @patch("confluence_sync.core.client.requests.Session.get")
    def test_401_is_authentication_error(
        self, mock_get, mock_config, mock_json_response
    ):
        mock_get.return_value = mock_json_response(status_code=401)
        client = ConfluenceClient(mock_config)
        with pytest.raises(AuthenticationError) as exc_info:
            client.get_page("1")
        assert exc_info.value.status_code == 401

    @patch("confluence_sync.core.client.requests.Session.get")
    def test_404_is_not_found(self, mock_get, mock_config, mock_json_response):
        mock_get.return_value = mock_json_response(status_code=404)
        client = ConfluenceClient(mock_config)
        with pytest.raises(NotFoundError):
            client.get_page("1")

    @patch("confluence_sync.core.client.requests.Session.get")
    def test_500_is_api_error(self, mock_get, mock_config, mock_json_response):
        mock_get.return_value = mock_json_response(status_code=500)
        client = ConfluenceClient(mock_config)
        with pytest.raises(ConfluenceAPIError) as exc_info:
            client.get_page("1")
        assert exc_info.value.status_code == 500
        assert not isinstance(exc_info.value, NotFoundError)

    @patch("confluence_sync.core.client.requests.Session.get")
    def test_network_failure(self, mock_get, mock_config):
        mock_get.side_effect = requests.exceptions.ConnectionError("refused")
        client = ConfluenceClient(mock_config)
        with pytest.raises(ConfluenceAPIError, match="refused") as exc_info:
            client.get_page("1")
        assert exc_info.value.status_code is None


class TestTestConnection:
    @patch("confluence_sync.core.client.requests.Session.get")
    def test_returns_user(self, mock_get, mock_config, mock_json_response):
        mock_get.return_value = mock_json_response({"displayName": "Test User"})
        client = ConfluenceClient(mock_config)
        assert client.test_connection()["displayName"] == "Test User"
        assert mock_get.call_args[0][0].endswith("/rest/api/user/current")

    @patch("confluence_sync.core.client.requests.Session.get")
    def test_404_points_at_base_url(
        self, mock_get, mock_config, mock_json_response
    ):
        mock_get.return_value = mock_json_response(status_code=404)
        client = ConfluenceClient(mock_config)
        with pytest.raises(NotFoundError, match="check the base URL"):
            client.test_connection()

    def test_malformed_url(self, mock_config):
        client = ConfluenceClient(mock_config.with_overrides(base_url="wiki"))
        with pytest.raises(InvalidURLError):
            client.test_connection()


class TestPages:
    @patch("confluence_sync.core.client.requests.Session.get")
    def test_get_page_parses_ancestors_and_attachment_count(
        self, mock_get, mock_config, mock_json_response
    ):
        data = _page_json(102, version=4, title="Child")
        data["ancestors"] = [
            {"id": "100", "title": "Root"},
            {"id": "101", "title": "Parent"},
        ]
        data["children"] = {"attachment": {"size": 2}}
        mock_get.return_value = mock_json_response(data)
        client = ConfluenceClient(mock_config)

        page = client.get_page("102")

        assert page.version == 4
        assert [a.id for a in page.ancestors] == ["100", "101"]
        assert page.attachment_count == 2
        assert page.body == "<p>x</p>"

    @patch("confluence_sync.core.client.requests.Session.get")
    def test_get_attachments(self, mock_get, mock_config, mock_json_response):
        mock_get.return_value = mock_json_response(
            {
                "results": [
                    {
                        "id": "att1",
                        "title": "my diagram.drawio",
                        "extensions": {
                            "mediaType": "application/vnd.jgraph.mxfile",
                            "fileSize": 120,
                        },
                    }
                ]
            }
        )
        client = ConfluenceClient(mock_config)

        attachments = client.get_attachments("102")

        assert len(attachments) == 1
        assert attachments[0].file_size == 120
        assert attachments[0].download_url == (
            "https://wiki.example.com/download/attachments/102/my%20diagram.drawio"
        )
        assert mock_get.call_args[1]["params"] == {"limit": 100}

    @patch("confluence_sync.core.client.requests.Session.get")
    def test_download_attachment(self, mock_get, mock_config, mock_json_response):
        mock_get.return_value = mock_json_response(content=b"\x89PNG")
        client = ConfluenceClient(mock_config)

        assert client.download_attachment("102", "a.png") == b"\x89PNG"
        assert mock_get.call_args[0][0].endswith("/download/attachments/102/a.png")
