"""
Tests for Markdown to Confluence storage format conversion.
"""

import unittest

from confluence_sync.converters import convert_with_warnings, markdown_to_storage
from confluence_sync.converters.markdown_to_storage import (
    callout_macro,
    strip_front_matter,
)


class TestMarkdownToStorage(unittest.TestCase):
    def test_heading(self):
        self.assertEqual(markdown_to_storage("# Title"), "<h1>Title</h1>")

    def test_inline_formatting(self):
        result = markdown_to_storage("**bold** *it* `x<y` ~~old~~")
        self.assertEqual(
            result,
            "<p><strong>bold</strong> <em>it</em> <code>x&lt;y</code> "
            "<del>old</del></p>",
        )

    def test_link(self):
        self.assertEqual(
            markdown_to_storage("[docs](https://example.com/a)"),
            '<p><a href="https://example.com/a">docs</a></p>',
        )

    def test_external_image(self):
        self.assertEqual(
            markdown_to_storage("![logo](https://example.com/l.png)"),
            '<p><ac:image ac:alt="logo">'
            '<ri:url ri:value="https://example.com/l.png" /></ac:image></p>',
        )

    def test_code_block_becomes_code_macro(self):
        result = markdown_to_storage("```python\nif a < b:\n    pass\n```")
        self.assertEqual(
            result,
            '<ac:structured-macro ac:name="code">'
            '<ac:parameter ac:name="language">py</ac:parameter>'
            "<ac:plain-text-body><![CDATA[if a < b:\n    pass]]>"
            "</ac:plain-text-body></ac:structured-macro>",
        )

    def test_code_block_without_language(self):
        result = markdown_to_storage("```\nplain\n```")
        self.assertNotIn('ac:name="language"', result)
        self.assertIn("<![CDATA[plain]]>", result)

    def test_cdata_terminator_split(self):
        result = markdown_to_storage("```\na]]>b\n```")
        self.assertIn("<![CDATA[a]]]]><![CDATA[>b]]>", result)

    def test_bullet_list(self):
        self.assertEqual(
            markdown_to_storage("- one\n- two"),
            "<ul>\n<li>one</li>\n<li>two</li>\n</ul>",
        )

    def test_ordered_list(self):
        self.assertIn("<ol>", markdown_to_storage("1. one\n2. two"))

    def test_table(self):
        result = markdown_to_storage("| A | B |\n|:--|--:|\n| 1 | 2 |")
        self.assertIn('<th style="text-align: left">A</th>', result)
        self.assertIn('<td style="text-align: right">2</td>', result)
        self.assertTrue(result.startswith("<table><thead><tr>"))

    def test_wikilink(self):
        self.assertEqual(
            markdown_to_storage("See [[Other Page|the docs]]"),
            '<p>See <ac:link><ri:page ri:content-title="Other Page" />'
            "<ac:plain-text-link-body><![CDATA[the docs]]>"
            "</ac:plain-text-link-body></ac:link></p>",
        )

    def test_wikilink_without_label(self):
        self.assertIn(
            "<![CDATA[Other]]>", markdown_to_storage("[[Other]]")
        )

    def test_embed_becomes_attachment_note(self):
        self.assertEqual(
            markdown_to_storage("![[diagram.png]]"),
            "<p><em>[Attachment: diagram.png]</em></p>",
        )

    def test_callout_becomes_panel(self):
        result = markdown_to_storage("> [!warning] Careful\n> Mind the gap")
        self.assertEqual(
            result,
            '<ac:structured-macro ac:name="warning">'
            '<ac:parameter ac:name="title">Careful</ac:parameter>'
            "<ac:rich-text-body><p>Mind the gap</p></ac:rich-text-body>"
            "</ac:structured-macro>",
        )

    def test_plain_blockquote(self):
        self.assertEqual(
            markdown_to_storage("> quoted"),
            "<blockquote><p>quoted</p></blockquote>",
        )

    def test_html_is_escaped(self):
        self.assertIn("&lt;b&gt;", markdown_to_storage("a <b>x</b>"))

    def test_front_matter_stripped(self):
        result = markdown_to_storage("---\ntitle: x\n---\n# Heading")
        self.assertEqual(result, "<h1>Heading</h1>")


class TestHelpers(unittest.TestCase):
    def test_callout_macro_mapping(self):
        self.assertEqual(callout_macro("TIP"), "tip")
        self.assertEqual(callout_macro("danger"), "warning")
        self.assertEqual(callout_macro("faq"), "note")
        self.assertEqual(callout_macro("unknown"), "info")

    def test_strip_front_matter_only_leading(self):
        text = "# H\n---\nnot: front\n---\n"
        self.assertEqual(strip_front_matter(text), text)


class TestConvertWithWarnings(unittest.TestCase):
    def test_clean_input_has_no_warnings(self):
        result = convert_with_warnings("# Clean")
        self.assertTrue(result.converted)
        self.assertEqual(result.warnings, [])
        self.assertEqual(result.source_format, "markdown")
        self.assertEqual(result.target_format, "storage")

    def test_embed_and_html_warnings(self):
        result = convert_with_warnings("![[a.png]]\n\n<div>x</div>")
        self.assertEqual(len(result.warnings), 2)
        self.assertIn("Embedded", result.warnings[0])
        self.assertIn("HTML", result.warnings[1])


if __name__ == "__main__":
    unittest.main()
