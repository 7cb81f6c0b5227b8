import logging
import threading
from datetime import datetime
from typing import Any
from urllib.parse import quote, urlparse

import requests

from ..config import Config
from ..sync.models import Attachment, Page, SearchPage

logger = logging.getLogger(__name__)

PAGE_SIZE = 25
MAX_PAGES = 1000
ATTACHMENT_LIMIT = 100
SEARCH_EXPAND = "body.storage,version,ancestors"
PAGE_EXPAND = "body.storage,version,ancestors,children.attachment"


class ConfluenceAPIError(Exception):
    """A request to Confluence failed.

    Attributes:
        status_code: HTTP status, or ``None`` for network-level failures.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidURLError(ConfluenceAPIError):
    """The configured base URL is not a usable http(s) URL."""


class AuthenticationError(ConfluenceAPIError):
    """Confluence rejected the credentials (HTTP 401)."""


class NotFoundError(ConfluenceAPIError):
    """The endpoint or object does not exist (HTTP 404)."""


def format_cql_timestamp(timestamp_ms: int) -> str:
    """Render *timestamp_ms* as the ``yyyy-MM-dd HH:mm`` CQL date literal.

    Uses local time, matching how Confluence interprets CQL dates for the
    authenticated user.
    """
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime(
        "%Y-%m-%d %H:%M"
    )


class ConfluenceClient:
    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = config.base_url.strip().rstrip("/")

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.auth = (self.config.username, self.config.password)
        session.verify = not self.config.insecure
        session.headers.update({"Accept": "application/json"})
        return session

    def _url(self, endpoint: str) -> str:
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        return f"{self.base_url}{endpoint}"

    def _get(
        self, endpoint: str, params: dict[str, Any] | None = None
    ) -> requests.Response:
        """
        GET *endpoint* and translate failures into ConfluenceAPIError subclasses.
        """
        url = self._url(endpoint)
        try:
            response = self._get_session().get(
                url, params=params, timeout=(10, 60)
            )
        except requests.exceptions.InvalidURL as e:
            raise InvalidURLError(f"Invalid URL {url}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise ConfluenceAPIError(f"Request to {url} failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError(
                "Authentication failed, check username and password",
                status_code=401,
            )
        if response.status_code == 404:
            raise NotFoundError(
                f"Not found: {url}", status_code=404
            )
        if response.status_code >= 400:
            logger.error(
                "HTTP %d from %s: %s",
                response.status_code,
                url,
                response.text[:500],
            )
            raise ConfluenceAPIError(
                f"HTTP {response.status_code}: {response.text or 'unknown error'}",
                status_code=response.status_code,
            )
        return response

    def test_connection(self) -> dict[str, Any]:
        """
        Validate URL and credentials by fetching the current user.

        Returns the user JSON on success.

        Raises:
            InvalidURLError: base URL lacks a scheme or host.
            AuthenticationError: HTTP 401.
            NotFoundError: HTTP 404 (usually a wrong base URL path).
            ConfluenceAPIError: any other failure.
        """
        parsed = urlparse(self.base_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise InvalidURLError(
                f"Invalid Confluence URL '{self.base_url}': "
                "must include http:// or https:// and a hostname"
            )
        try:
            return self._get("/rest/api/user/current").json()
        except NotFoundError as e:
            raise NotFoundError(
                "Confluence API not found, check the base URL",
                status_code=e.status_code,
            ) from e

    def get_page(self, page_id: str) -> Page:
        """
        Fetch one page with body, version, ancestors and attachment count.
        """
        response = self._get(
            f"/rest/api/content/{page_id}", params={"expand": PAGE_EXPAND}
        )
        return Page.from_api(response.json())

    @staticmethod
    def build_cql(root_ids: list[str], since_ms: int | None = None) -> str:
        """
        Build the CQL selecting the roots and all their descendants.

        A positive *since_ms* adds a ``lastModified`` lower bound.
        """
        id_list = ",".join(root_ids)
        cql = f"(id in ({id_list}) OR ancestor in ({id_list}))"
        if since_ms and since_ms > 0:
            cql += f' AND lastModified >= "{format_cql_timestamp(since_ms)}"'
        return cql

    def search_pages(
        self,
        root_ids: list[str],
        since_ms: int | None = None,
        start: int = 0,
        limit: int = PAGE_SIZE,
    ) -> SearchPage:
        """
        Run one page of the root-scoped CQL search.
        """
        if not root_ids:
            return SearchPage(limit=limit)

        cql = self.build_cql(root_ids, since_ms)
        logger.debug("CQL: %s (start=%d, limit=%d)", cql, start, limit)
        payload = self._get(
            "/rest/api/content/search",
            params={
                "cql": cql,
                "expand": SEARCH_EXPAND,
                "start": start,
                "limit": limit,
            },
        ).json()

        results = [Page.from_api(item) for item in payload.get("results", [])]
        total = payload.get("totalSize", payload.get("_totalSize"))
        return SearchPage(
            results=results,
            start=int(payload.get("start", start)),
            limit=int(payload.get("limit", limit)),
            size=int(payload.get("size", len(results))),
            total=int(total) if total is not None else None,
        )

    def fetch_all_pages(
        self, root_ids: list[str], since_ms: int | None = None
    ) -> list[Page]:
        """
        Collect every search result, following pagination.

        Stops on a short page, once the reported total is reached, or at
        the MAX_PAGES ceiling.
        """
        pages: list[Page] = []
        start = 0
        while True:
            batch = self.search_pages(root_ids, since_ms, start, PAGE_SIZE)
            pages.extend(batch.results)

            if len(pages) >= MAX_PAGES:
                logger.warning(
                    "Reached the %d page listing limit, remaining pages skipped",
                    MAX_PAGES,
                )
                return pages[:MAX_PAGES]
            if batch.size < PAGE_SIZE:
                break
            if batch.total is not None and len(pages) >= batch.total:
                break
            start += PAGE_SIZE

        logger.info("Listed %d pages under roots %s", len(pages), root_ids)
        return pages

    @staticmethod
    def _attachment_path(page_id: str, filename: str) -> str:
        return f"/download/attachments/{page_id}/{quote(filename, safe='')}"

    def attachment_url(self, page_id: str, filename: str) -> str:
        return self._url(self._attachment_path(page_id, filename))

    def get_attachments(self, page_id: str) -> list[Attachment]:
        """
        List a page's attachments (first ATTACHMENT_LIMIT).
        """
        payload = self._get(
            f"/rest/api/content/{page_id}/child/attachment",
            params={"limit": ATTACHMENT_LIMIT},
        ).json()

        attachments = []
        for item in payload.get("results", []):
            extensions = item.get("extensions") or {}
            attachments.append(
                Attachment(
                    id=str(item["id"]),
                    title=item.get("title") or "",
                    media_type=extensions.get("mediaType")
                    or item.get("mediaType")
                    or "",
                    file_size=int(
                        extensions.get("fileSize") or item.get("size") or 0
                    ),
                    download_url=self.attachment_url(
                        page_id, item.get("title") or ""
                    ),
                )
            )
        return attachments

    def download_attachment(self, page_id: str, filename: str) -> bytes:
        """
        Download an attachment's bytes by page id and file name.
        """
        return self._get(self._attachment_path(page_id, filename)).content
