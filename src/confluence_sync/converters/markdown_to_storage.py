"""Markdown to Confluence storage format conversion using mistune AST rendering.

Intended for publishing vault notes as new pages.  Confluence-only macros
(draw.io, Jira) are never produced.
"""

import re
from typing import Any

import mistune
from mistune.util import escape

from .common import ConversionResult, markdown_to_confluence_lang

_FRONT_MATTER_RE = re.compile(r"\A---\n.*?\n---\n?", re.DOTALL)
_CALLOUT_RE = re.compile(r"\A<p>\[!(\w+)\][+-]?[ \t]*([^\n<]*)")
_WIKILINK_PATTERN = (
    r"(?P<wiki_embed>!?)\[\[(?P<wiki_target>[^\]|\n]+)"
    r"(?:\|(?P<wiki_label>[^\]\n]+))?\]\]"
)

# Vault callout type -> Confluence panel macro
CALLOUT_MACROS: dict[str, str] = {
    "info": "info",
    "note": "note",
    "tip": "tip",
    "hint": "tip",
    "important": "warning",
    "warning": "warning",
    "caution": "warning",
    "danger": "warning",
    "bug": "warning",
    "example": "info",
    "quote": "info",
    "abstract": "info",
    "summary": "info",
    "tldr": "info",
    "success": "tip",
    "check": "tip",
    "done": "tip",
    "question": "note",
    "help": "note",
    "faq": "note",
    "failure": "warning",
    "fail": "warning",
    "missing": "warning",
}


def callout_macro(callout_type: str) -> str:
    """Panel macro name for a callout type; unknown types map to ``info``."""
    return CALLOUT_MACROS.get(callout_type.lower(), "info")


def _cdata(text: str) -> str:
    # "]]>" cannot appear inside a CDATA section, split it across two
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def _parse_wikilink(inline, m, state):
    state.append_token(
        {
            "type": "wikilink",
            "attrs": {
                "target": m.group("wiki_target").strip(),
                "label": (m.group("wiki_label") or "").strip(),
                "embed": bool(m.group("wiki_embed")),
            },
        }
    )
    return m.end()


def wikilinks(md) -> None:
    """mistune plugin for ``[[Title]]``, ``[[Title|Label]]`` and ``![[file]]``."""
    md.inline.register(
        "wikilink", _WIKILINK_PATTERN, _parse_wikilink, before="link"
    )


class StorageRenderer(mistune.BaseRenderer):
    """Renderer that converts Markdown AST to Confluence storage XHTML."""

    NAME = "storage"

    def text(self, text: str) -> str:
        return escape(text)

    def emphasis(self, text: str) -> str:
        return f"<em>{text}</em>"

    def strong(self, text: str) -> str:
        return f"<strong>{text}</strong>"

    def strikethrough(self, text: str) -> str:
        return f"<del>{text}</del>"

    def codespan(self, text: str) -> str:
        return f"<code>{escape(text)}</code>"

    def linebreak(self) -> str:
        return "<br />"

    def softbreak(self) -> str:
        return "\n"

    def blank_line(self) -> str:
        return ""

    def newline(self) -> str:
        return ""

    def inline_html(self, html: str) -> str:
        return escape(html)

    def link(self, text: str, url: str, title=None) -> str:
        return f'<a href="{escape(url)}">{text}</a>'

    def image(self, text: str, url: str, title=None) -> str:
        """Render an external image.

        Markdown: ![alt](url)
        Storage:  <ac:image ac:alt="alt"><ri:url ri:value="url" /></ac:image>
        """
        alt = f' ac:alt="{text}"' if text else ""
        return f'<ac:image{alt}><ri:url ri:value="{escape(url)}" /></ac:image>'

    def wikilink(self, target: str, label: str = "", embed: bool = False) -> str:
        """Render a vault link.

        ``[[Title|Label]]`` becomes a page link by title.  Embedded files
        (``![[file]]``) cannot be uploaded from here, so they turn into an
        emphasised note naming the file.
        """
        if embed:
            return f"<em>[Attachment: {escape(target)}]</em>"
        body = _cdata(label or target)
        return (
            f'<ac:link><ri:page ri:content-title="{escape(target)}" />'
            f"<ac:plain-text-link-body>{body}</ac:plain-text-link-body></ac:link>"
        )

    def heading(self, text: str, level: int, **attrs) -> str:
        return f"<h{level}>{text}</h{level}>\n"

    def paragraph(self, text: str) -> str:
        return f"<p>{text}</p>\n"

    def block_text(self, text: str) -> str:
        return text

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a fenced block as a ``code`` macro.

        The body is kept verbatim in a CDATA section; the fence language is
        mapped to the Confluence brush name (``python`` -> ``py``).
        """
        code = code.rstrip("\n")
        lang = ""
        if info:
            lang = markdown_to_confluence_lang(info.split()[0])
        param = (
            f'<ac:parameter ac:name="language">{escape(lang)}</ac:parameter>'
            if lang
            else ""
        )
        return (
            f'<ac:structured-macro ac:name="code">{param}'
            f"<ac:plain-text-body>{_cdata(code)}</ac:plain-text-body>"
            "</ac:structured-macro>\n"
        )

    def block_quote(self, text: str) -> str:
        """Render a blockquote, or a panel macro for ``> [!type] Title``."""
        match = _CALLOUT_RE.match(text)
        if not match:
            return f"<blockquote>{text.strip()}</blockquote>\n"

        macro = callout_macro(match.group(1))
        title = match.group(2).strip()
        rest = text[match.end():]
        if rest.startswith("\n"):
            body = "<p>" + rest[1:]
        elif rest.startswith("</p>"):
            body = rest[len("</p>"):]
        else:
            body = "<p>" + rest

        title_param = (
            f'<ac:parameter ac:name="title">{title}</ac:parameter>' if title else ""
        )
        return (
            f'<ac:structured-macro ac:name="{macro}">{title_param}'
            f"<ac:rich-text-body>{body.strip()}</ac:rich-text-body>"
            "</ac:structured-macro>\n"
        )

    def block_html(self, html: str) -> str:
        return f"<p>{escape(html.strip())}</p>\n"

    def block_error(self, text: str) -> str:
        return text

    def thematic_break(self) -> str:
        return "<hr />\n"

    def list(self, text: str, ordered: bool, **attrs) -> str:
        tag = "ol" if ordered else "ul"
        return f"<{tag}>\n{text}</{tag}>\n"

    def list_item(self, text: str) -> str:
        return f"<li>{text.strip()}</li>\n"

    def table(self, text: str) -> str:
        return f"<table>{text}</table>\n"

    def table_head(self, text: str) -> str:
        return f"<thead><tr>{text}</tr></thead>"

    def table_body(self, text: str) -> str:
        return f"<tbody>{text}</tbody>"

    def table_row(self, text: str) -> str:
        return f"<tr>{text}</tr>"

    def table_cell(
        self, text: str, align: str | None = None, head: bool = False
    ) -> str:
        tag = "th" if head else "td"
        style = f' style="text-align: {align}"' if align else ""
        return f"<{tag}{style}>{text}</{tag}>"

    def render_token(self, token: dict[str, Any], state) -> str:
        """Dispatch a token to its method with text and attrs extracted."""
        func = self._get_method(token["type"])
        attrs = token.get("attrs")

        if "raw" in token:
            text = token["raw"]
        elif "children" in token:
            text = self.render_tokens(token["children"], state)
        else:
            if attrs:
                return func(**attrs)
            return func()

        if attrs:
            return func(text, **attrs)
        return func(text)


def strip_front_matter(markdown_text: str) -> str:
    """Remove a leading YAML front matter block."""
    return _FRONT_MATTER_RE.sub("", markdown_text, count=1)


def markdown_to_storage(markdown_text: str) -> str:
    """
    Convert Markdown text to Confluence storage format.

    Args:
        markdown_text: Markdown formatted text, front matter allowed

    Returns:
        Storage format XHTML
    """
    markdown = mistune.create_markdown(
        renderer=StorageRenderer(),
        plugins=["table", "strikethrough", wikilinks],
    )
    result: str = markdown(strip_front_matter(markdown_text))  # type: ignore[assignment]
    return result.strip("\n")


def convert_with_warnings(markdown_text: str) -> ConversionResult:
    """
    Convert Markdown to storage format and note lossy constructs.

    Args:
        markdown_text: Markdown formatted text

    Returns:
        ConversionResult with storage text and any warnings
    """
    warnings = []
    body = strip_front_matter(markdown_text)

    if re.search(r"!\[\[[^\]]+\]\]", body):
        warnings.append(
            "Embedded vault files (![[...]]) are not uploaded - "
            "they become attachment notes."
        )

    if re.search(r"<[a-zA-Z][^>]*>", body):
        warnings.append("HTML tags detected - they are published as plain text.")

    return ConversionResult(
        text=markdown_to_storage(markdown_text),
        source_format="markdown",
        target_format="storage",
        converted=True,
        warnings=warnings,
    )
