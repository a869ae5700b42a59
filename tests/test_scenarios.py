"""End-to-end conversions of small wiki fragments."""

import pytest

from markbridge.config import ConversionOptions
from markbridge.crawler import convert_html
from markbridge.renderer import is_separator_line

BODY_ONLY = ConversionOptions(include_front_matter=False, include_title=False)


@pytest.fixture
def convert():
    """Convert a content fragment to body-only Markdown."""

    def _convert(fragment: str) -> str:
        html = f'<div class="wiki-content">{fragment}</div>'
        _, markdown = convert_html(html, "https://wiki.example.com/display/ENG/Page", BODY_ONLY)
        return markdown

    return _convert


class TestScenarios:
    """Whole-pipeline behaviour on representative inputs."""

    def test_warning_panel(self, convert):
        markdown = convert('<div class="confluence-information-macro-warning"><p>Be careful</p></div>')
        assert markdown == "> **⚠️ Warning:**\n>\n> Be careful\n"

    def test_headerless_table(self, convert):
        markdown = convert(
            "<table><tr><td>Name</td><td>Age</td></tr><tr><td>Bob</td><td>42</td></tr></table>"
        )
        assert markdown == "| Name | Age |\n| --- | --- |\n| Bob | 42 |\n"

    def test_checked_task(self, convert):
        markdown = convert('<ul class="inline-task-list"><li class="checked">Ship it</li></ul>')
        assert markdown == "- [x] Ship it\n"

    def test_unknown_element(self, convert):
        assert convert("<x-widget>Some plain words</x-widget>") == "Some plain words\n"

    def test_deep_nesting(self, convert):
        assert convert("<span>" * 1200 + "deep" + "</span>" * 1200) == "deep\n"

    def test_absurd_colspan(self, convert):
        markdown = convert('<table><tr><td colspan="5000000">a</td></tr><tr><td>b</td></tr></table>')
        separators = [line for line in markdown.strip().split("\n") if is_separator_line(line)]
        assert len(separators) == 1
        assert separators[0].count("---") == 1000

    def test_status_badge_spacing(self, convert):
        markdown = convert('<p>Build is <span class="status-macro">in progress</span> today</p>')
        assert markdown == "Build is `IN PROGRESS` today\n"

    def test_code_macro(self, convert):
        markdown = convert(
            '<div class="code panel pdl"><div class="codeContent panelContent pdl">'
            '<pre class="syntaxhighlighter-pre" data-syntaxhighlighter-params="brush: bash; gutter: false">'
            "echo hi</pre></div></div>"
        )
        assert markdown == "```bash\necho hi\n```\n"

    def test_merged_table_has_one_separator(self, convert):
        markdown = convert(
            '<div class="table-wrap"><table class="confluenceTable"><tbody>'
            '<tr><th class="confluenceTh" colspan="2">Service</th><th class="confluenceTh">Owner</th></tr>'
            '<tr><td class="confluenceTd" rowspan="2">api</td><td class="confluenceTd">v1</td>'
            '<td class="confluenceTd"><p>Team A</p><p>Team B</p></td></tr>'
            '<tr><td class="confluenceTd">v2</td><td class="confluenceTd">Team C</td></tr>'
            "</tbody></table></div>"
        )
        lines = markdown.strip().split("\n")
        assert sum(is_separator_line(line) for line in lines) == 1
        assert lines[0] == "| Service |  | Owner |"
        assert lines[1] == "| --- | --- | --- |"
        assert lines[2] == "| api | v1 | Team A<br>Team B |"
        assert lines[3] == "|  | v2 | Team C |"
