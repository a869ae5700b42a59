"""Rewrite wiki macros into canonical HTML before rendering.

The passes run in a fixed order: noise removal first, tables and images
last, so content sitting in table cells has already been canonicalized.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterator, List, Optional, Tuple

from bs4 import NavigableString, Tag

from .images import ImageTarget, resolve_images
from .tables import normalize_tables
from .utils import class_list, has_class, owner_document, text_of

logger = logging.getLogger("markbridge")

NOISE_SELECTORS = (
    ".toc-macro",
    ".toc-zone",
    '[data-macro-name="toc"]',
    ".page-break",
    ".confluence-page-break",
    ".like-button",
    ".page-comments",
    "#comments-section",
    "#likes-and-labels-container",
    ".confluence-page-action",
    ".page-metadata-modification-info",
    ".wysiwyg-macro-placeholder",
)

LANGUAGE_ALIASES = {
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
    "rb": "ruby",
    "sh": "bash",
    "shell": "bash",
    "yml": "yaml",
    "c#": "csharp",
    "c++": "cpp",
}
BRUSH_PARAM_PATTERN = re.compile(r"brush:\s*([\w#+-]+)")
LANGUAGE_CLASS_PATTERN = re.compile(r"language-([\w#+-]+)|lang-([\w#+-]+)|brush-([\w#+-]+)")

PANEL_CLASS_LABELS = {
    "confluence-information-macro-information": "Info",
    "confluence-information-macro-note": "Note",
    "confluence-information-macro-warning": "Warning",
    "confluence-information-macro-tip": "Tip",
    "confluence-information-macro-success": "Success",
}
PANEL_EMOJI = {
    "Info": "ℹ️",
    "Note": "📝",
    "Warning": "⚠️",
    "Tip": "💡",
    "Success": "✅",
    "Error": "❌",
}
DEFAULT_PANEL_LABEL = "Note"
DEFAULT_PANEL_EMOJI = "ℹ️"
PANEL_SELECTOR = ", ".join(
    [".confluence-information-macro"]
    + [f".{cls}" for cls in PANEL_CLASS_LABELS]
    + ["[data-panel-type]", ".panel:not(.code):not(.preformatted)"]
)
PANEL_BODY_SELECTOR = ".confluence-information-macro-body, [data-panel-content], .panelContent"

DEFAULT_EXPAND_TITLE = "Click to expand"

MacroPass = Callable[[Tag], int]


def _attached(node: Tag, root: Tag) -> bool:
    while node is not None:
        if node is root:
            return True
        node = node.parent
    return False


def _live(root: Tag, selector: str) -> Iterator[Tag]:
    """Yield matches that are still part of the tree when their turn comes."""
    for element in root.select(selector):
        if _attached(element, root):
            yield element


def _move_children(source: Tag, destination: Tag) -> None:
    for child in list(source.contents):
        destination.append(child.extract())


def remove_noise(root: Tag) -> int:
    removed = 0
    for selector in NOISE_SELECTORS:
        for element in _live(root, selector):
            element.extract()
            removed += 1
    return removed


def convert_emoticons(root: Tag) -> int:
    count = 0
    for img in _live(root, "img.emoticon, img[data-emoji-short-name]"):
        token = img.get("data-emoji-short-name") or img.get("alt") or img.get("title") or ""
        img.replace_with(NavigableString(token))
        count += 1
    return count


def convert_user_mentions(root: Tag) -> int:
    count = 0
    for element in _live(root, '.confluence-userlink, [data-node-type="mention"]'):
        name = text_of(element).lstrip("@")
        element.replace_with(NavigableString(f"@{name}"))
        count += 1
    return count


def convert_issue_links(root: Tag) -> int:
    """Replace issue-tracker cards with a plain link when an href can be found."""
    count = 0
    for element in _live(root, '.jira-issue-key, [data-node-type="inlineCard"]'):
        href = element.get("href") or element.get("data-card-url")
        if not href:
            anchor = element.find("a", href=True)
            href = anchor["href"] if anchor is not None else ""
        if not href:
            continue
        link = owner_document(root).new_tag("a", href=href)
        link.string = text_of(element) or href
        element.replace_with(link)
        count += 1
    return count


def normalize_language(language: str) -> str:
    lowered = language.strip().lower()
    return LANGUAGE_ALIASES.get(lowered, lowered)


def detect_code_language(pre: Tag, panel: Optional[Tag] = None) -> str:
    """Language from highlighter params, then class names, then data attributes."""
    params = pre.get("data-syntaxhighlighter-params") or ""
    match = BRUSH_PARAM_PATTERN.search(params)
    if match:
        return normalize_language(match.group(1))

    code = pre.find("code")
    classes = class_list(pre)
    if code is not None:
        classes += class_list(code)
    if panel is not None:
        classes += class_list(panel)
    match = LANGUAGE_CLASS_PATTERN.search(" ".join(classes))
    if match:
        return normalize_language(next(group for group in match.groups() if group))

    data_language = pre.get("data-language") or (panel.get("data-language") if panel is not None else None)
    if data_language:
        return normalize_language(data_language)
    return ""


def _code_block(root: Tag, text: str, language: str) -> Tag:
    factory = owner_document(root)
    pre = factory.new_tag("pre")
    code = factory.new_tag("code")
    if language:
        code["class"] = f"language-{language}"
    code.string = text
    pre.append(code)
    return pre


def convert_code_blocks(root: Tag) -> int:
    count = 0
    for panel in _live(root, ".code.panel, .codeContent, .preformatted.panel"):
        pre = panel.find("pre")
        if pre is None:
            continue
        language = detect_code_language(pre, panel)
        panel.replace_with(_code_block(root, pre.get_text(), language))
        count += 1

    for block in _live(root, '[data-node-type="codeBlock"]'):
        language = normalize_language(block.get("data-language") or "")
        block.replace_with(_code_block(root, block.get_text(), language))
        count += 1
    return count


def classify_panel(panel: Tag) -> Tuple[str, Optional[Tag]]:
    """Return the panel label and the header element the label came from, if any."""
    for cls, label in PANEL_CLASS_LABELS.items():
        if has_class(panel, cls):
            return label, None

    panel_type = (panel.get("data-panel-type") or "").strip()
    if panel_type:
        return panel_type[:1].upper() + panel_type[1:], None

    if has_class(panel, "panel"):
        header = panel.select_one(".panelHeader")
        if header is not None and text_of(header):
            return text_of(header), header

    return DEFAULT_PANEL_LABEL, None


def panel_emoji(label: str) -> str:
    return PANEL_EMOJI.get(label, DEFAULT_PANEL_EMOJI)


def convert_panels(root: Tag) -> int:
    factory = owner_document(root)
    count = 0
    for panel in _live(root, PANEL_SELECTOR):
        label, header = classify_panel(panel)
        body = panel.select_one(PANEL_BODY_SELECTOR) or panel
        if header is not None and _attached(header, body):
            header.extract()

        blockquote = factory.new_tag("blockquote")
        prefix = factory.new_tag("p")
        strong = factory.new_tag("strong")
        strong.string = f"{panel_emoji(label)} {label}:"
        prefix.append(strong)
        blockquote.append(prefix)
        _move_children(body, blockquote)
        panel.replace_with(blockquote)
        count += 1
    return count


def convert_expand_sections(root: Tag) -> int:
    factory = owner_document(root)
    count = 0
    for section in _live(root, '.expand-container, [data-node-type="expand"]'):
        title = section.select_one('.expand-control-text, [data-testid="expand-title"]')
        content = section.select_one('.expand-content, [data-testid="expand-content"]')

        details = factory.new_tag("details")
        summary = factory.new_tag("summary")
        summary.string = text_of(title) if title is not None and text_of(title) else DEFAULT_EXPAND_TITLE
        details.append(summary)

        if content is None:
            for control in section.select('.expand-control, [data-testid="expand-title"]'):
                control.extract()
            if title is not None:
                title.extract()
            content = section
        _move_children(content, details)
        section.replace_with(details)
        count += 1
    return count


def convert_status_macros(root: Tag) -> int:
    """Badges become upper-cased inline code padded with a space on each side."""
    factory = owner_document(root)
    count = 0
    for badge in _live(root, '.status-macro, .aui-lozenge, [data-node-type="status"]'):
        code = factory.new_tag("code")
        code.string = text_of(badge).upper()
        badge.replace_with(NavigableString(" "), code, NavigableString(" "))
        count += 1
    return count


TASK_LIST_SELECTOR = '.inline-task-list, [data-node-type="taskList"]'
TASK_ITEM_SELECTOR = '.inline-task-item, [data-node-type="taskItem"]'


def is_task_checked(item: Tag) -> bool:
    if item.select_one("input[checked], .task-status-complete") is not None:
        return True
    if has_class(item, "checked", "task-status-complete"):
        return True
    return (item.get("data-task-state") or "").upper() == "DONE"


def convert_task_lists(root: Tag) -> int:
    factory = owner_document(root)
    count = 0
    for task_list in _live(root, TASK_LIST_SELECTOR):
        items = [
            item
            for item in task_list.select(TASK_ITEM_SELECTOR)
            if item.find_parent(_is_task_list) is task_list
        ]
        if not items:
            items = task_list.find_all("li", recursive=False)
        ul = factory.new_tag("ul", attrs={"data-task-list": "true"})
        for item in items:
            li = factory.new_tag("li")
            li["data-task"] = "checked" if is_task_checked(item) else "unchecked"
            for control in item.select('input[type="checkbox"], .task-status'):
                control.extract()
            _move_children(item, li)
            ul.append(li)
        task_list.replace_with(ul)
        count += 1
    return count


def _is_task_list(tag: Tag) -> bool:
    return has_class(tag, "inline-task-list") or tag.get("data-node-type") == "taskList"


MACRO_PASSES: List[Tuple[str, MacroPass]] = [
    ("noise", remove_noise),
    ("emoticons", convert_emoticons),
    ("mentions", convert_user_mentions),
    ("issue_links", convert_issue_links),
    ("code_blocks", convert_code_blocks),
    ("panels", convert_panels),
    ("expand_sections", convert_expand_sections),
    ("status_macros", convert_status_macros),
    ("task_lists", convert_task_lists),
    ("tables", normalize_tables),
]


def normalize_macros(root: Tag, source_url: Optional[str] = None) -> List[ImageTarget]:
    """Run every pass in order, then resolve image URLs.

    Returns the resolved images so the caller can embed them.
    """
    for name, macro_pass in MACRO_PASSES:
        changed = macro_pass(root)
        if changed:
            logger.debug("Macro pass %s rewrote %d element(s)", name, changed)
    targets = resolve_images(root, source_url)
    if targets:
        logger.debug("Resolved %d image(s)", len(targets))
    return targets
