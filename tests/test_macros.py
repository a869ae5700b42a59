"""Tests for the macro normalization passes."""

import pytest

from markbridge.macros import (
    classify_panel,
    convert_code_blocks,
    convert_emoticons,
    convert_expand_sections,
    convert_issue_links,
    convert_panels,
    convert_status_macros,
    convert_task_lists,
    convert_user_mentions,
    detect_code_language,
    normalize_language,
    normalize_macros,
    remove_noise,
)


class TestSimpleReplacements:
    """Test noise removal and inline token passes."""

    def test_remove_noise(self, make_root):
        root = make_root(
            '<div class="toc-macro"><div class="toc-macro">x</div></div>'
            '<p>keep</p><div class="page-comments">c</div>'
        )
        assert remove_noise(root) == 2
        assert root.get_text() == "keep"

    def test_remove_noise_without_matches(self, make_root):
        root = make_root("<p>plain</p>")
        assert remove_noise(root) == 0
        assert str(root.p) == "<p>plain</p>"

    def test_emoticons(self, make_root):
        root = make_root(
            '<p><img class="emoticon" data-emoji-short-name=":smile:" alt="(smile)">'
            '<img class="emoticon" alt="(tick)"></p>'
        )
        assert convert_emoticons(root) == 2
        assert root.p.get_text() == ":smile:(tick)"
        assert root.find("img") is None

    def test_user_mentions(self, make_root):
        root = make_root(
            '<p><a class="confluence-userlink" href="/u/1">Jane Doe</a> and '
            '<span data-node-type="mention">@sam</span></p>'
        )
        convert_user_mentions(root)
        assert root.p.get_text() == "@Jane Doe and @sam"

    def test_issue_link_from_descendant_anchor(self, make_root):
        root = make_root(
            '<span class="jira-issue-key"><a href="https://jira.example.com/browse/ABC-1">ABC-1</a>'
            "<span>In Progress</span></span>"
        )
        assert convert_issue_links(root) == 1
        link = root.find("a")
        assert link["href"] == "https://jira.example.com/browse/ABC-1"

    def test_issue_link_without_href_untouched(self, make_root):
        root = make_root('<span class="jira-issue-key">ABC-2</span>')
        assert convert_issue_links(root) == 0
        assert root.find(class_="jira-issue-key") is not None


class TestCodeBlocks:
    """Test code block canonicalization and language detection."""

    @pytest.mark.parametrize(
        "raw,expected",
        [("js", "javascript"), ("PY", "python"), ("shell", "bash"), ("c#", "csharp"), ("Go", "go")],
    )
    def test_normalize_language(self, raw, expected):
        assert normalize_language(raw) == expected

    def test_brush_parameter_wins(self, make_root):
        root = make_root(
            '<pre class="language-ruby" data-syntaxhighlighter-params="brush: py; gutter: false">x</pre>'
        )
        assert detect_code_language(root.pre) == "python"

    def test_class_then_data_attribute(self, make_root):
        root = make_root('<pre><code class="lang-yml">a: 1</code></pre><pre data-language="sh">ls</pre>')
        first, second = root.find_all("pre")
        assert detect_code_language(first) == "yaml"
        assert detect_code_language(second) == "bash"

    def test_no_language(self, make_root):
        root = make_root("<pre>plain</pre>")
        assert detect_code_language(root.pre) == ""

    def test_legacy_code_panel(self, make_root):
        root = make_root(
            '<div class="code panel"><div class="codeContent panelContent">'
            '<pre data-syntaxhighlighter-params="brush: js">let a = 1;</pre></div></div>'
        )
        assert convert_code_blocks(root) == 1
        code = root.pre.code
        assert code["class"] == ["language-javascript"] or code["class"] == "language-javascript"
        assert code.get_text() == "let a = 1;"
        assert root.find(class_="panel") is None

    def test_new_editor_code_block(self, make_root):
        root = make_root('<div data-node-type="codeBlock" data-language="ts">const a = 1;</div>')
        convert_code_blocks(root)
        assert str(root.pre) == '<pre><code class="language-typescript">const a = 1;</code></pre>'


class TestPanels:
    """Test admonition panels."""

    def test_class_table_label(self, make_root):
        root = make_root(
            '<div class="confluence-information-macro confluence-information-macro-tip">'
            '<div class="confluence-information-macro-body"><p>Use caching</p></div></div>'
        )
        convert_panels(root)
        quote = root.blockquote
        assert quote.p.strong.get_text() == "💡 Tip:"
        assert quote.find_all("p")[1].get_text() == "Use caching"

    def test_panel_type_attribute(self, make_root):
        root = make_root('<div data-panel-type="error"><div data-panel-content>Broken</div></div>')
        convert_panels(root)
        assert root.blockquote.strong.get_text() == "❌ Error:"

    def test_colored_panel_uses_header(self, make_root):
        root = make_root(
            '<div class="panel"><div class="panelHeader">Heads up</div>'
            '<div class="panelContent"><p>Body</p></div></div>'
        )
        convert_panels(root)
        assert root.blockquote.strong.get_text() == "ℹ️ Heads up:"
        assert "Heads up" not in root.blockquote.find_all("p")[1].get_text()

    def test_unclassified_panel_defaults_to_note(self, make_root):
        root = make_root('<div class="confluence-information-macro"><p>Hi</p></div>')
        label, header = classify_panel(root.div)
        assert label == "Note"
        assert header is None

    def test_code_panels_are_not_admonitions(self, make_root):
        root = make_root('<div class="code panel"><pre>x</pre></div>')
        assert convert_panels(root) == 0


class TestExpandAndStatus:
    """Test expand sections and status badges."""

    def test_expand_section(self, make_root):
        root = make_root(
            '<div class="expand-container"><div class="expand-control">'
            '<span class="expand-control-text">More details</span></div>'
            '<div class="expand-content"><p>Hidden</p></div></div>'
        )
        convert_expand_sections(root)
        details = root.details
        assert details.summary.get_text() == "More details"
        assert details.p.get_text() == "Hidden"
        assert root.find(class_="expand-container") is None

    def test_expand_default_title(self, make_root):
        root = make_root('<div data-node-type="expand"><p>Body</p></div>')
        convert_expand_sections(root)
        assert root.details.summary.get_text() == "Click to expand"
        assert root.details.p.get_text() == "Body"

    def test_status_badge(self, make_root):
        root = make_root('<p>State<span class="status-macro aui-lozenge">done</span>now</p>')
        assert convert_status_macros(root) == 1
        assert root.p.code.get_text() == "DONE"
        assert root.p.get_text() == "State DONE now"


class TestTaskLists:
    """Test task list normalization."""

    def test_checked_markers(self, make_root):
        root = make_root(
            '<ul class="inline-task-list">'
            '<li class="checked">Ship it</li>'
            '<li data-task-state="DONE">Write docs</li>'
            "<li>Later</li></ul>"
        )
        assert convert_task_lists(root) == 1
        states = [item["data-task"] for item in root.ul.find_all("li")]
        assert states == ["checked", "checked", "unchecked"]
        assert root.ul["data-task-list"] == "true"

    def test_checkbox_controls_stripped(self, make_root):
        root = make_root(
            '<div data-node-type="taskList">'
            '<div data-node-type="taskItem"><input type="checkbox" checked> Done item</div>'
            '<div data-node-type="taskItem"><input type="checkbox"> Open item</div></div>'
        )
        convert_task_lists(root)
        items = root.ul.find_all("li")
        assert [item["data-task"] for item in items] == ["checked", "unchecked"]
        assert root.find("input") is None
        assert items[0].get_text().strip() == "Done item"


class TestNormalizeMacros:
    """Test the ordered pass runner."""

    def test_panel_inside_table_cell(self, make_root):
        """Panels inside cells are rewritten before the table is normalized."""
        root = make_root(
            "<table><tr><th>Topic</th></tr><tr><td>"
            '<div class="confluence-information-macro-note"><p>Careful</p></div>'
            "</td></tr></table>"
        )
        normalize_macros(root, "https://wiki.example.com/display/ENG/Page")
        cell = root.tbody.td
        assert cell.blockquote is not None
        assert cell.find("p") is None

    def test_returns_image_targets(self, make_root):
        root = make_root('<p><img src="/images/a.png"></p>')
        targets = normalize_macros(root, "https://wiki.example.com/display/ENG/Page")
        assert len(targets) == 1
        assert root.img["src"] == "https://wiki.example.com/images/a.png"
