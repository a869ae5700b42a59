"""Rule-dispatch renderer turning a normalized tree into GitHub Flavored Markdown.

Rules are tried in registration order and the first whose predicate matches
renders the node. The last rule matches everything, so every node renders.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import CData, Comment, Declaration, Doctype, ProcessingInstruction

from .tables import row_cells
from .utils import class_list, text_of

BLOCK_TAGS = frozenset(
    {
        "address", "article", "aside", "blockquote", "body", "dd", "details", "div",
        "dl", "dt", "fieldset", "figcaption", "figure", "footer", "form", "h1", "h2",
        "h3", "h4", "h5", "h6", "header", "hr", "html", "li", "main", "nav", "ol",
        "p", "pre", "section", "summary", "table", "tbody", "td", "tfoot", "th",
        "thead", "tr", "ul",
    }
)
WHITESPACE_CONTAINERS = frozenset(
    {"ol", "ul", "table", "thead", "tbody", "tfoot", "tr", "dl", "colgroup"}
)
DROPPED_TAGS = frozenset({"script", "style", "noscript", "template", "head", "colgroup", "col", "caption"})
NON_TEXT_STRINGS = (Comment, CData, Declaration, Doctype, ProcessingInstruction)

WHITESPACE_PATTERN = re.compile(r"\s+")
BLANK_LINES_PATTERN = re.compile(r"\n\s*\n+")
EXTRA_BLANK_LINES_PATTERN = re.compile(r"\n{3,}")
UNESCAPED_PIPE_PATTERN = re.compile(r"(?<!\\)\|")
SEPARATOR_LINE_PATTERN = re.compile(r"^\|(?:\s*:?-+:?\s*\|)+$")
INLINE_ESCAPE_PATTERN = re.compile(r"([\\*_\[\]])")
LINE_START_ESCAPES = (
    (re.compile(r"^-"), r"\\-"),
    (re.compile(r"^\+ "), r"\\+ "),
    (re.compile(r"^(=+)"), r"\\\1"),
    (re.compile(r"^(#{1,6}) "), r"\\\1 "),
    (re.compile(r"^>"), r"\\>"),
    (re.compile(r"^(\d+)\. "), r"\1\\. "),
)
ALIGNMENT_MARKERS = {"left": ":--", "right": "--:", "center": ":-:"}
TEXT_ALIGN_PATTERN = re.compile(r"text-align\s*:\s*(left|right|center)", re.IGNORECASE)
LANGUAGE_CLASS_PATTERN = re.compile(r"language-(\S+)")

Predicate = Callable[[object], bool]
Renderer = Callable[[str, object], str]


@dataclass
class RenderRule:
    """A predicate and the render function used when it matches."""

    name: str
    predicate: Predicate
    render: Renderer


def _is_tag(node, *names: str) -> bool:
    return isinstance(node, Tag) and (not names or node.name in names)


def _is_block(node) -> bool:
    return isinstance(node, Tag) and node.name in BLOCK_TAGS


def _inside(node, *names: str) -> bool:
    return node.find_parent(list(names)) is not None


def escape_markdown(text: str) -> str:
    text = INLINE_ESCAPE_PATTERN.sub(r"\\\1", text)
    for pattern, replacement in LINE_START_ESCAPES:
        text = pattern.sub(replacement, text)
    return text


def _wrap_inline(content: str, delimiter: str) -> str:
    """Wrap inline content, keeping flanking whitespace outside the delimiters."""
    core = content.strip()
    if not core:
        return content
    leading = content[: len(content) - len(content.lstrip())]
    trailing = content[len(content.rstrip()) :]
    return f"{leading}{delimiter}{core}{delimiter}{trailing}"


def _block(content: str) -> str:
    return f"\n\n{content}\n\n"


# --- text -----------------------------------------------------------------


def render_text(content: str, node) -> str:
    text = str(node)
    if _inside(node, "pre", "code"):
        return text
    if not text.strip():
        parent = node.parent
        if parent is not None and parent.name in WHITESPACE_CONTAINERS:
            return ""
        if _is_block(node.previous_sibling) or _is_block(node.next_sibling):
            return ""
        return " "
    text = WHITESPACE_PATTERN.sub(" ", text)
    if _is_block(node.previous_sibling):
        text = text.lstrip()
    if _is_block(node.next_sibling):
        text = text.rstrip()
    return escape_markdown(text)


# --- tables -----------------------------------------------------------------


def render_table_cell(content: str, node) -> str:
    text = BLANK_LINES_PATTERN.sub("<br>", content.strip())
    text = text.replace("\n", " ").replace("|", "\\|")
    prefix = "| " if node.find_previous_sibling(["td", "th"]) is None else " "
    return f"{prefix}{text} |"


def _is_first_body(section: Tag) -> bool:
    previous = section.find_previous_sibling(lambda tag: tag.name not in ("caption", "colgroup"))
    return previous is None or (previous.name == "thead" and not text_of(previous))


def is_heading_row(row: Tag) -> bool:
    """Rows rendered with the alignment separator beneath them."""
    parent = row.parent
    if parent is None:
        return False
    if parent.name == "thead":
        return parent.find("tr", recursive=False) is row
    first = parent.find(lambda tag: tag.name not in ("caption", "colgroup"), recursive=False)
    if first is not row:
        return False
    if parent.name == "table" or (parent.name == "tbody" and _is_first_body(parent)):
        cells = row_cells(row)
        return bool(cells) and all(cell.name == "th" for cell in cells)
    return False


def _alignment(cell: Tag) -> str:
    align = (cell.get("align") or "").strip().lower()
    if not align:
        match = TEXT_ALIGN_PATTERN.search(cell.get("style", "") or "")
        align = match.group(1).lower() if match else ""
    return ALIGNMENT_MARKERS.get(align, "---")


def separator_line(cells: Iterable[Tag]) -> str:
    markers = [_alignment(cell) for cell in cells]
    return "| " + " | ".join(markers) + " |"


def render_table_row(content: str, node) -> str:
    separator = ""
    cells = row_cells(node)
    if cells and is_heading_row(node):
        separator = "\n" + separator_line(cells)
    return "\n" + content + separator


def is_separator_line(line: str) -> bool:
    return bool(SEPARATOR_LINE_PATTERN.match(line.strip()))


def ensure_separator(lines: List[str]) -> List[str]:
    """Insert a separator after the first line when the table body lacks one."""
    if not lines or any(is_separator_line(line) for line in lines):
        return lines
    columns = len(UNESCAPED_PIPE_PATTERN.findall(lines[0])) - 1
    if columns <= 0:
        return lines
    return [lines[0], "| " + " | ".join(["---"] * columns) + " |", *lines[1:]]


def render_table(content: str, node) -> str:
    lines = [line.strip() for line in content.strip().split("\n") if line.strip()]
    if not lines:
        return ""
    body = "\n".join(ensure_separator(lines))
    caption = node.find("caption", recursive=False)
    if caption is not None and text_of(caption):
        body = f"{escape_markdown(WHITESPACE_PATTERN.sub(' ', text_of(caption)))}\n\n{body}"
    return _block(body)


# --- wiki extras --------------------------------------------------------------


def render_task_item(content: str, node) -> str:
    checkbox = "[x]" if node.get("data-task") == "checked" else "[ ]"
    text = content.strip().replace("\n", "\n  ")
    return f"- {checkbox} {text}\n"


def render_details(content: str, node) -> str:
    summary = node.find("summary", recursive=False)
    summary_text = text_of(summary) if summary is not None else ""
    return (
        f"\n<details>\n<summary>{summary_text or 'Details'}</summary>\n\n"
        f"{content.strip()}\n\n</details>\n\n"
    )


def render_checkbox(content: str, node) -> str:
    return "[x] " if node.has_attr("checked") else "[ ] "


def _is_empty_block(node) -> bool:
    return (
        _is_tag(node, "p", "div")
        and not text_of(node)
        and node.find(["img", "table", "pre", "hr"]) is None
    )


# --- common markdown -----------------------------------------------------------


def render_heading(content: str, node) -> str:
    text = WHITESPACE_PATTERN.sub(" ", content).strip()
    if not text:
        return ""
    return _block("#" * int(node.name[1]) + " " + text)


def render_paragraph(content: str, node) -> str:
    text = content.strip()
    return _block(text) if text else ""


def render_line_break(content: str, node) -> str:
    return "\n"


def render_horizontal_rule(content: str, node) -> str:
    return _block("---")


def render_blockquote(content: str, node) -> str:
    text = EXTRA_BLANK_LINES_PATTERN.sub("\n\n", content.strip())
    if not text:
        return ""
    quoted = "\n".join(f"> {line}" if line.strip() else ">" for line in text.split("\n"))
    return _block(quoted)


def render_list(content: str, node) -> str:
    parent = node.parent
    if _is_tag(parent, "li") and parent.find_all(recursive=False)[-1] is node:
        return "\n" + content.rstrip("\n")
    return _block(content.strip("\n"))


def _list_prefix(node: Tag) -> str:
    parent = node.parent
    if _is_tag(parent, "ol"):
        try:
            start = int(parent.get("start", 1))
        except ValueError:
            start = 1
        siblings = parent.find_all("li", recursive=False)
        index = next((i for i, item in enumerate(siblings) if item is node), 0)
        return f"{start + index}. "
    return "- "


def render_list_item(content: str, node) -> str:
    prefix = _list_prefix(node)
    text = content.lstrip("\n")
    text = re.sub(r"\n+$", "\n", text).strip(" ")
    text = text.replace("\n", "\n" + " " * len(prefix))
    has_next = node.find_next_sibling("li") is not None
    return prefix + text + ("\n" if has_next and not text.endswith("\n") else "")


def render_code_block(content: str, node) -> str:
    code = node.find("code")
    language = ""
    if code is not None:
        match = LANGUAGE_CLASS_PATTERN.search(" ".join(class_list(code)))
        language = match.group(1) if match else ""
    text = node.get_text().rstrip("\n")
    longest = max((len(run) for run in re.findall(r"`+", text)), default=0)
    fence = "`" * max(3, longest + 1)
    return _block(f"{fence}{language}\n{text}\n{fence}")


def render_inline_code(content: str, node) -> str:
    text = node.get_text().replace("\n", " ")
    if not text:
        return ""
    longest = max((len(run) for run in re.findall(r"`+", text)), default=0)
    delimiter = "`" * (longest + 1)
    padding = " " if text.startswith("`") or text.endswith("`") else ""
    return f"{delimiter}{padding}{text}{padding}{delimiter}"


def render_strong(content: str, node) -> str:
    return _wrap_inline(content, "**")


def render_emphasis(content: str, node) -> str:
    return _wrap_inline(content, "*")


def render_strikethrough(content: str, node) -> str:
    return _wrap_inline(content, "~~")


def _title_part(node: Tag) -> str:
    title = node.get("title")
    if not title:
        return ""
    return ' "' + WHITESPACE_PATTERN.sub(" ", title).replace('"', '\\"') + '"'


def render_link(content: str, node) -> str:
    href = node.get("href") or ""
    if not href:
        return content
    href = re.sub(r"([()])", r"\\\1", href)
    return f"[{content.strip() or href}]({href}{_title_part(node)})"


def render_image(content: str, node) -> str:
    alt = escape_markdown(node.get("alt") or node.get("title") or "")
    src = node.get("src") or node.get("data-src") or node.get("data-media-src") or ""
    if not src:
        return alt
    return f"![{alt}]({src}{_title_part(node)})"


def render_fallback(content: str, node) -> str:
    if _is_block(node):
        return _block(content)
    return content


def default_rules() -> List[RenderRule]:
    """The built-in rule list. Order matters: the first matching rule renders a node."""
    return [
        RenderRule("nonText", lambda n: isinstance(n, NON_TEXT_STRINGS), lambda c, n: ""),
        RenderRule("text", lambda n: isinstance(n, NavigableString), render_text),
        RenderRule("dropped", lambda n: _is_tag(n, *DROPPED_TAGS), lambda c, n: ""),
        RenderRule("removeEmpty", _is_empty_block, lambda c, n: ""),
        RenderRule(
            "tableLineBreak",
            lambda n: _is_tag(n, "br") and n.find_parent(["td", "th"]) is not None,
            lambda c, n: "<br>",
        ),
        RenderRule("tableCell", lambda n: _is_tag(n, "td", "th"), render_table_cell),
        RenderRule("tableRow", lambda n: _is_tag(n, "tr"), render_table_row),
        RenderRule("tableSection", lambda n: _is_tag(n, "thead", "tbody", "tfoot"), lambda c, n: c),
        RenderRule("table", lambda n: _is_tag(n, "table"), render_table),
        RenderRule("taskListItem", lambda n: _is_tag(n, "li") and n.has_attr("data-task"), render_task_item),
        RenderRule("details", lambda n: _is_tag(n, "details"), render_details),
        RenderRule("summary", lambda n: _is_tag(n, "summary"), lambda c, n: ""),
        RenderRule(
            "checkbox",
            lambda n: _is_tag(n, "input") and (n.get("type") or "").lower() == "checkbox",
            render_checkbox,
        ),
        RenderRule("heading", lambda n: _is_tag(n, "h1", "h2", "h3", "h4", "h5", "h6"), render_heading),
        RenderRule("paragraph", lambda n: _is_tag(n, "p"), render_paragraph),
        RenderRule("lineBreak", lambda n: _is_tag(n, "br"), render_line_break),
        RenderRule("horizontalRule", lambda n: _is_tag(n, "hr"), render_horizontal_rule),
        RenderRule("blockquote", lambda n: _is_tag(n, "blockquote"), render_blockquote),
        RenderRule("list", lambda n: _is_tag(n, "ul", "ol"), render_list),
        RenderRule("listItem", lambda n: _is_tag(n, "li"), render_list_item),
        RenderRule("codeBlock", lambda n: _is_tag(n, "pre"), render_code_block),
        RenderRule("inlineCode", lambda n: _is_tag(n, "code", "kbd", "samp", "tt"), render_inline_code),
        RenderRule("strong", lambda n: _is_tag(n, "strong", "b"), render_strong),
        RenderRule("emphasis", lambda n: _is_tag(n, "em", "i"), render_emphasis),
        RenderRule("strikethrough", lambda n: _is_tag(n, "del", "s", "strike"), render_strikethrough),
        RenderRule("link", lambda n: _is_tag(n, "a"), render_link),
        RenderRule("image", lambda n: _is_tag(n, "img"), render_image),
        RenderRule("fallback", lambda n: True, render_fallback),
    ]


class MarkdownRenderer:
    """Walks a tree bottom-up and renders each node with the first matching rule."""

    def __init__(self, rules: Optional[Iterable[RenderRule]] = None) -> None:
        self.rules: List[RenderRule] = list(rules) if rules is not None else default_rules()
        if not self.rules or self.rules[-1].name != "fallback":
            self.rules.append(RenderRule("fallback", lambda n: True, render_fallback))

    def add_rule(self, rule: RenderRule, before: Optional[str] = None) -> None:
        """Register a rule ahead of ``before`` (default: just ahead of the fallback)."""
        names = [existing.name for existing in self.rules]
        index = names.index(before) if before in names else len(self.rules) - 1
        self.rules.insert(index, rule)

    def rule_for(self, node) -> RenderRule:
        for rule in self.rules:
            if rule.predicate(node):
                return rule
        return self.rules[-1]

    def process(self, node) -> str:
        """Render ``node`` after all of its children, without recursing."""
        if not isinstance(node, Tag):
            return self.rule_for(node).render("", node)

        stack = [(node, iter(list(node.children)), [])]
        while stack:
            current, children, parts = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                rendered = self.rule_for(current).render("".join(parts), current)
                if not stack:
                    return rendered
                stack[-1][2].append(rendered)
            elif isinstance(child, Tag):
                stack.append((child, iter(list(child.children)), []))
            else:
                parts.append(self.rule_for(child).render("", child))
        return ""

    def render(self, root) -> str:
        return self.process(root).strip("\n")


def render_html(html: str, renderer: Optional[MarkdownRenderer] = None) -> str:
    """Parse an HTML fragment and render it without any normalization."""
    soup = BeautifulSoup(html, "html.parser")
    return (renderer or MarkdownRenderer()).render(soup)
