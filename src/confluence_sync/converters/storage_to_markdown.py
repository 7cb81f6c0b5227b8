"""Confluence storage format to Markdown conversion.

Conversion runs in three phases:

1. **Protect** -- elements the structural converter would mangle (merged-cell
   tables, page links, attachment embeds, Jira/diagram/code/markdown
   macros) are matched in the raw markup and swapped for opaque tokens
   such as ``%%CFLIMG3%%``.  Each token maps to its final Markdown fragment.
2. **Convert** -- the token-bearing markup goes through markdownify with
   extra rules for the remaining ``ac:`` elements (panels, user links,
   layouts, tasks).
3. **Restore** -- every token is replaced with its fragment.

If phase 2 raises, tags are stripped with a blunt pattern instead, so a
page body never fails to convert.
"""

from __future__ import annotations

import html
import logging
import re
from datetime import datetime, timezone

import yaml
from bs4 import BeautifulSoup
from markdownify import ATX, MarkdownConverter

from .common import (
    ConversionResult,
    attachment_filename,
    confluence_to_markdown_lang,
    sanitize_filename,
)

logger = logging.getLogger(__name__)

DEFAULT_JIRA_BASE_URL = "https://jira.example.com"
JIRA_FAILURE_MARKER = "[Jira link could not be resolved]"
DIAGRAM_EXTENSION = ".drawio"

PANEL_ICONS: dict[str, str] = {
    "info": "ℹ️",
    "warning": "⚠️",
    "tip": "💡",
    "note": "📝",
}
DEFAULT_PANEL_ICON = "📌"
PANEL_MACROS = frozenset({*PANEL_ICONS, "panel"})
DIAGRAM_MACROS = frozenset({"drawio", "gliffy"})

_FLAGS = re.IGNORECASE | re.DOTALL

_TABLE_RE = re.compile(r"<table[^>]*>.*?</table>", _FLAGS)
_MERGED_CELL_RE = re.compile(
    r"(?:colspan|rowspan)\s*=\s*[\"']\d+[\"']", re.IGNORECASE
)
# (?:(?!</ac:link>).)*? keeps a match inside a single <ac:link> element
_PAGE_LINK_RE = re.compile(
    r"<ac:link[^>]*>(?:(?!</ac:link>).)*?"
    r"<ri:page[^>]*ri:content-title=\"([^\"]+)\"[^>]*/?>.*?</ac:link>",
    _FLAGS,
)
_ATTACHMENT_LINK_RE = re.compile(
    r"<ac:link[^>]*>(?:(?!</ac:link>).)*?"
    r"<ri:attachment[^>]*ri:filename=\"([^\"]+)\"[^>]*/?>.*?</ac:link>",
    _FLAGS,
)
_VIEW_FILE_RE = re.compile(
    r"<ac:structured-macro[^>]*ac:name=\"view-file\"[^>]*>"
    r"(?:(?!</ac:structured-macro>).)*?"
    r"<ri:attachment[^>]*ri:filename=\"([^\"]+)\"[^>]*/?>.*?"
    r"</ac:structured-macro>",
    _FLAGS,
)
_IMAGE_RE = re.compile(
    r"<ac:image[^>]*>(?:(?!</ac:image>).)*?"
    r"<ri:attachment[^>]*ri:filename=\"([^\"]+)\"[^>]*>.*?</ac:image>",
    _FLAGS,
)
_MACRO_RE = re.compile(
    r"<(?:ac:)?structured-macro[^>]*?(?:ac:)?name=(['\"])"
    r"(jira|jiraissues|drawio|gliffy|code|markdown|confluence-markdown)\1"
    r"[^>]*>(.*?)</(?:ac:)?structured-macro>",
    _FLAGS,
)
_PLAIN_TEXT_BODY_RE = re.compile(
    r"<(?:ac:)?plain-text-body[^>]*>(.*?)</(?:ac:)?plain-text-body>", _FLAGS
)
_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_JQL_KEY_RE = re.compile(
    r"(?:issuekey|key)\s*(?:=|\bin\b)\s*\(?\s*[\"']?([A-Z0-9]+-\d+)",
    re.IGNORECASE,
)
_ISSUE_KEY_RE = re.compile(r"\b[A-Z0-9]+-\d+\b")
_SERVER_PARAM_RE = re.compile(
    r"<ac:parameter[^>]*ac:name=['\"](?:serverId|server)['\"][^>]*>.*?"
    r"</ac:parameter>",
    _FLAGS,
)
_TAG_RE = re.compile(r"<[^>]*>")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def _macro_param(body: str, name: str) -> str | None:
    """Value of ``<ac:parameter ac:name="name">`` inside a macro body."""
    match = re.search(
        rf"<(?:ac:)?parameter[^>]*?(?:ac:)?name=['\"]{re.escape(name)}['\"]"
        r"[^>]*>(?:<!\[CDATA\[)?(.*?)(?:\]\]>)?</",
        body,
        _FLAGS,
    )
    if not match:
        return None
    return html.unescape(match.group(1)).strip()


def _plain_text_body(body: str) -> str:
    """The CDATA-unwrapped text of a macro's ``ac:plain-text-body``."""
    match = _PLAIN_TEXT_BODY_RE.search(body)
    if not match:
        return ""
    return _CDATA_RE.sub(r"\1", match.group(1))


def _escape_code(code: str) -> str:
    return code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _blockquote(lines: list[str]) -> str:
    return "\n".join(f"> {line}" if line else ">" for line in lines)


class PlaceholderMap:
    """Ordered token -> fragment pairs for one conversion.

    Tokens look like ``%%CFLIMG0%%``.  The prefix is extended until it
    occurs neither in the source markup nor in its tag-stripped text, so
    a token can only ever match where it was inserted.
    """

    def __init__(self, source: str):
        visible = _TAG_RE.sub("", source)
        prefix = "CFL"
        while f"%%{prefix}" in source or f"%%{prefix}" in visible:
            prefix += "Q"
        self.prefix = prefix
        self._entries: list[tuple[str, str]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, kind: str, fragment: str) -> str:
        token = f"%%{self.prefix}{kind}{len(self._entries)}%%"
        self._entries.append((token, fragment))
        return token

    def restore(self, text: str) -> str:
        for token, fragment in self._entries:
            text = text.replace(token, fragment)
        return text


class ConfluenceMarkdownConverter(MarkdownConverter):
    """markdownify converter with rules for Confluence ``ac:`` elements.

    markdownify looks up ``convert_<tag>`` with ``:`` and ``-`` mapped to
    ``_``, so ``<ac:structured-macro>`` lands in ``convert_ac_structured_macro``.
    """

    class Options(MarkdownConverter.DefaultOptions):
        heading_style = ATX
        bullets = "-"
        strong_em_symbol = "*"
        escape_misc = False

    def __init__(self, **options):
        options.setdefault("code_language_callback", self._code_language)
        super().__init__(**options)

    @staticmethod
    def _code_language(el) -> str:
        code = el.find("code")
        if code is None:
            return ""
        for css_class in code.get("class") or []:
            if css_class.startswith("language-"):
                return confluence_to_markdown_lang(css_class[len("language-"):])
        return ""

    def convert_p(self, el, text, parent_tags):
        if not text.strip():
            return ""
        return super().convert_p(el, text, parent_tags)

    def convert_ac_parameter(self, el, text, parent_tags):
        return ""

    def convert_ac_placeholder(self, el, text, parent_tags):
        return ""

    def convert_ac_link(self, el, text, parent_tags):
        user = el.find("ri:user")
        if user is not None:
            username = (
                user.get("ri:username")
                or user.get("ri:userkey")
                or user.get("ri:account-id")
            )
            if username:
                return f"@{username}"

        body = el.find("ac:plain-text-link-body")
        if body is not None and body.get_text().strip():
            return f"[[{body.get_text().strip()}]]"

        page = el.find("ri:page")
        if page is not None and page.get("ri:content-title"):
            return f"[[{page['ri:content-title']}]]"

        label = text.strip()
        return f"[[{label}]]" if label else ""

    def convert_ac_image(self, el, text, parent_tags):
        url = el.find("ri:url")
        if url is not None and url.get("ri:value"):
            alt = el.get("ac:alt") or el.get("ac:title") or ""
            return f"![{alt}]({url['ri:value']})"
        return ""

    def convert_ac_emoticon(self, el, text, parent_tags):
        return el.get("ac:emoji-fallback") or ""

    def convert_ac_task_list(self, el, text, parent_tags):
        return f"\n\n{text.strip()}\n\n" if text.strip() else ""

    def convert_ac_task(self, el, text, parent_tags):
        status = el.find("ac:task-status")
        done = status is not None and status.get_text().strip() == "complete"
        return f"- [{'x' if done else ' '}] {text.strip()}\n"

    def convert_ac_task_id(self, el, text, parent_tags):
        return ""

    def convert_ac_task_status(self, el, text, parent_tags):
        return ""

    def convert_time(self, el, text, parent_tags):
        return el.get("datetime") or text

    def convert_ac_structured_macro(self, el, text, parent_tags):
        name = (el.get("ac:name") or "").lower()

        if name in PANEL_MACROS:
            icon = PANEL_ICONS.get(name, DEFAULT_PANEL_ICON)
            heading = f"{icon} **{name.upper()}**"
            title = el.find(
                "ac:parameter", attrs={"ac:name": "title"}, recursive=False
            )
            if title is not None and title.get_text().strip():
                heading += f": {title.get_text().strip()}"
            body = text.strip()
            lines = [heading] + (body.split("\n") if body else [])
            return f"\n\n{_blockquote(lines)}\n\n"

        if name in DIAGRAM_MACROS:
            label = "Diagram"
            for param in el.find_all("ac:parameter", recursive=False):
                if param.get("ac:name") in ("diagramName", "name"):
                    label = param.get_text().strip() or label
            return (
                f"\n\n> 🖼️ **{label}**: {name} diagram, "
                "open the page in Confluence to view it\n\n"
            )

        return self._unwrap(text)

    @staticmethod
    def _unwrap(text: str) -> str:
        # Block children would otherwise run together on one line
        return f"\n\n{text}\n\n" if text.strip() else ""

    def convert_ac_layout(self, el, text, parent_tags):
        return self._unwrap(text)

    convert_ac_layout_section = convert_ac_layout
    convert_ac_layout_cell = convert_ac_layout
    convert_ac_rich_text_body = convert_ac_layout
    convert_ac_plain_text_body = convert_ac_layout


class StoragePipeline:
    """Converts one page's storage-format body to a Markdown document.

    Args:
        jira_base_url: Base URL used for Jira issue links.
    """

    def __init__(self, jira_base_url: str = DEFAULT_JIRA_BASE_URL):
        self.jira_base_url = jira_base_url.rstrip("/")
        self._converter = ConfluenceMarkdownConverter()

    # ------------------------------------------------------------------
    # Phase 1: protect
    # ------------------------------------------------------------------

    def protect(
        self, body: str, page_title: str, placeholders: PlaceholderMap
    ) -> str:
        """Swap protected elements for tokens, in priority order."""

        def keep_table(match: re.Match) -> str:
            table = match.group(0)
            if not _MERGED_CELL_RE.search(table):
                return table
            return placeholders.add(
                "TBL",
                f'\n<div style="overflow-x:auto">\n{table}\n</div>\n',
            )

        def page_link(match: re.Match) -> str:
            title = html.unescape(match.group(1))
            return placeholders.add("LNK", f"[[{title}]]")

        def attachment(match: re.Match) -> str:
            filename = html.unescape(match.group(1))
            return placeholders.add(
                "IMG", f"![[{attachment_filename(page_title, filename)}]]"
            )

        text = _TABLE_RE.sub(keep_table, body)
        text = _PAGE_LINK_RE.sub(page_link, text)
        text = _ATTACHMENT_LINK_RE.sub(attachment, text)
        text = _VIEW_FILE_RE.sub(attachment, text)
        text = _IMAGE_RE.sub(attachment, text)
        text = _MACRO_RE.sub(
            lambda m: self._macro(m, page_title, placeholders), text
        )
        return text

    def _macro(
        self, match: re.Match, page_title: str, placeholders: PlaceholderMap
    ) -> str:
        name = match.group(2).lower()
        inner = match.group(3)

        if name in ("jira", "jiraissues"):
            key = self.extract_issue_key(inner)
            if not key:
                return placeholders.add("JIRA", JIRA_FAILURE_MARKER)
            return placeholders.add(
                "JIRA", f"[{key}]({self.jira_base_url}/browse/{key})"
            )

        if name in DIAGRAM_MACROS:
            diagram = _macro_param(inner, "diagramName") or _macro_param(
                inner, "name"
            )
            if not diagram:
                # Left for the structural rule, which renders a notice
                return match.group(0)
            native = diagram if "." in diagram else diagram + DIAGRAM_EXTENSION
            safe_title = sanitize_filename(page_title)
            first = placeholders.add(
                "IMG", f"![[{attachment_filename(page_title, native)}]]"
            )
            second = placeholders.add(
                "IMG", f"![[{safe_title}_{sanitize_filename(diagram)}.png]]"
            )
            return f"{first}\n{second}"

        if name == "code":
            language = _macro_param(inner, "language") or ""
            # Escaped twice: the HTML parse decodes one layer and the fenced
            # block keeps markup as entities
            code = _escape_code(_escape_code(_plain_text_body(inner)))
            return (
                f'\n<pre><code class="language-{html.escape(language)}">'
                f"{code}</code></pre>\n"
            )

        # markdown / confluence-markdown
        return placeholders.add("RAW", _plain_text_body(inner))

    @staticmethod
    def extract_issue_key(macro_body: str) -> str | None:
        """Find the issue key of a Jira macro.

        Tries the ``key`` parameter, then a key inside the ``jql``
        parameter, then any ``ABC-123`` token in the macro body.
        """
        key = _macro_param(macro_body, "key")

        if not key:
            jql = _macro_param(macro_body, "jql")
            if jql:
                found = _JQL_KEY_RE.search(jql)
                if found:
                    key = found.group(1)

        if not key:
            found = _ISSUE_KEY_RE.search(_SERVER_PARAM_RE.sub("", macro_body))
            if found:
                key = found.group(0)

        if not key:
            return None
        key = re.sub(r"[^A-Z0-9-]", "", key.upper())
        return key or None

    # ------------------------------------------------------------------
    # Phases 2 and 3
    # ------------------------------------------------------------------

    def convert_body(
        self, body: str, page_title: str = ""
    ) -> ConversionResult:
        """Convert a storage-format body to Markdown (no front matter)."""
        placeholders = PlaceholderMap(body)
        protected = self.protect(body, page_title, placeholders)
        # CDATA left outside code/markdown macros becomes plain text
        protected = _CDATA_RE.sub(lambda m: _escape_code(m.group(1)), protected)

        warnings: list[str] = []
        converted = True
        try:
            soup = BeautifulSoup(protected, "html.parser")
            markdown = self._converter.convert_soup(soup)
        except Exception as e:
            logger.warning(
                "Structural conversion failed for '%s', stripping tags: %s",
                page_title,
                e,
            )
            markdown = _TAG_RE.sub("", protected)
            converted = False
            warnings.append(f"Structural conversion failed: {e}")

        markdown = placeholders.restore(markdown)
        markdown = _BLANK_RUN_RE.sub("\n\n", markdown).strip("\n")

        return ConversionResult(
            text=markdown,
            source_format="storage",
            target_format="markdown",
            converted=converted,
            warnings=warnings,
        )

    def render(
        self, page, base_url: str, synced_at: datetime | None = None
    ) -> ConversionResult:
        """Convert *page* to a Markdown document with YAML front matter.

        Args:
            page: ``Page`` with ``id``, ``title``, ``version`` and ``body``.
            base_url: Confluence base URL for the ``confluence_url`` key.
            synced_at: Conversion timestamp; defaults to now (UTC).
        """
        result = self.convert_body(page.body, page.title)
        result.text = (
            front_matter(page, base_url, synced_at) + result.text + "\n"
        )
        return result


def page_url(base_url: str, page_id: str) -> str:
    return f"{base_url.rstrip('/')}/pages/viewpage.action?pageId={page_id}"


def front_matter(page, base_url: str, synced_at: datetime | None = None) -> str:
    """YAML header identifying the source page."""
    when = synced_at or datetime.now(timezone.utc)
    header = {
        "title": page.title,
        "confluence_page_id": page.id,
        "version": page.version,
        "confluence_url": page_url(base_url, page.id),
        "synced_at": when.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z"),
    }
    dumped = yaml.safe_dump(
        header, sort_keys=False, allow_unicode=True, width=1000
    )
    return f"---\n{dumped}---\n\n"


def storage_to_markdown(
    body: str,
    page_title: str = "",
    jira_base_url: str = DEFAULT_JIRA_BASE_URL,
) -> ConversionResult:
    """
    Convert a Confluence storage-format body to Markdown.

    Args:
        body: Storage-format XHTML.
        page_title: Title of the owning page, used for attachment file names.
        jira_base_url: Base URL for Jira issue links.

    Returns:
        ConversionResult with the Markdown body (no front matter).
    """
    return StoragePipeline(jira_base_url).convert_body(body, page_title)
