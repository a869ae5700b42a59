"""Tests for post-processing and document assembly."""

import datetime as dt

from markbridge.config import ConversionOptions
from markbridge.markdown import (
    build_front_matter,
    convert_to_markdown,
    escape_yaml,
    post_process,
)
from markbridge.models import PageMetadata

FIXED_NOW = dt.datetime(2024, 1, 2, 3, 4, 5, tzinfo=dt.timezone.utc)


class TestPostProcess:
    """Test the textual cleanup."""

    def test_collapses_blank_lines_and_trailing_spaces(self):
        assert post_process("a  \n\n\n\n\nb\t\n") == "a\n\nb\n"

    def test_badge_spacing(self):
        assert post_process("State   `DONE`    now") == "State `DONE` now"

    def test_badge_spacing_with_punctuation_and_accents(self):
        assert post_process("Ticket  `WON'T FIX`  closed") == "Ticket `WON'T FIX` closed"
        assert post_process("Statut  `À FAIRE`  ici") == "Statut `À FAIRE` ici"

    def test_badge_spacing_skips_fenced_code(self):
        text = "```\nx  `RAW`  y\n```"
        assert post_process(text) == text

    def test_strips_raw_table_tags(self):
        assert post_process("<table><tr><td>x</td></tr></table>") == "x"

    def test_fenced_code_untouched(self):
        text = "before <td>\n\n```html\n<table><tr><td>x</td></tr></table>\n```"
        assert post_process(text) == "before\n\n```html\n<table><tr><td>x</td></tr></table>\n```"


class TestFrontMatter:
    """Test the YAML front matter block."""

    def test_escape_yaml(self):
        assert escape_yaml('Say "hi"\nthere') == 'Say \\"hi\\" there'

    def test_escape_yaml_backslashes(self):
        """A trailing backslash must not swallow the closing quote."""
        assert escape_yaml("C:\\") == "C:\\\\"
        assert escape_yaml('a\\"b') == 'a\\\\\\"b'

    def test_all_fields(self):
        metadata = PageMetadata(
            source_url="https://wiki.example.com/display/ENG/Page",
            space="Engineering",
            author="Jane Doe",
            last_modified="Jan 02, 2024",
            labels=["release", "notes"],
        )
        assert build_front_matter('The "Plan"', metadata, FIXED_NOW) == (
            "---\n"
            'title: "The \\"Plan\\""\n'
            'space: "Engineering"\n'
            'author: "Jane Doe"\n'
            'last_modified: "Jan 02, 2024"\n'
            'source_url: "https://wiki.example.com/display/ENG/Page"\n'
            "labels:\n"
            '  - "release"\n'
            '  - "notes"\n'
            'converted_at: "2024-01-02T03:04:05.000Z"\n'
            "---\n"
        )

    def test_missing_fields_omitted(self):
        front_matter = build_front_matter("", PageMetadata(source_url=""), FIXED_NOW)
        assert front_matter == '---\nconverted_at: "2024-01-02T03:04:05.000Z"\n---\n'


class TestConvertToMarkdown:
    """Test final document assembly."""

    def test_full_document(self):
        metadata = PageMetadata(source_url="https://x", space="ENG", labels=["a"])
        markdown = convert_to_markdown("<p>Hello</p>", "Page", metadata, now=FIXED_NOW)
        assert markdown == (
            "---\n"
            'title: "Page"\n'
            'space: "ENG"\n'
            'source_url: "https://x"\n'
            "labels:\n"
            '  - "a"\n'
            'converted_at: "2024-01-02T03:04:05.000Z"\n'
            "---\n"
            "\n"
            "# Page\n"
            "\n"
            "Hello\n"
        )

    def test_body_only(self):
        options = ConversionOptions(include_front_matter=False, include_title=False)
        metadata = PageMetadata(source_url="https://x")
        assert convert_to_markdown("<p>Hello</p>", "Page", metadata, options) == "Hello\n"

    def test_title_without_metadata(self):
        assert convert_to_markdown("<p>Hi</p>", "T", None) == "# T\n\nHi\n"
