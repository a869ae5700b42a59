"""Markdown post-processing and final document assembly."""

from __future__ import annotations

import datetime as dt
import logging
import re
from typing import Callable, List, Optional

from bs4 import BeautifulSoup

from .config import ConversionOptions
from .models import PageMetadata
from .renderer import MarkdownRenderer

logger = logging.getLogger("markbridge")

EXCESS_BLANK_LINES_PATTERN = re.compile(r"\n{3,}")
TRAILING_WHITESPACE_PATTERN = re.compile(r"[ \t]+$", re.MULTILINE)
STATUS_BADGE_PATTERN = re.compile(r"[ \t]+(`[^`\n]+`)[ \t]+")
RAW_TABLE_TAG_PATTERN = re.compile(
    r"</?(?:table|thead|tbody|tfoot|tr|th|td|colgroup|col|caption)\b[^>]*>",
    re.IGNORECASE,
)
FENCED_BLOCK_PATTERN = re.compile(r"^(`{3,})[^\n]*\n.*?^\1[ \t]*$", re.MULTILINE | re.DOTALL)


def _outside_fences(markdown: str, rewrite: Callable[[str], str]) -> str:
    """Apply ``rewrite`` to the text between fenced code blocks only."""
    pieces: List[str] = []
    position = 0
    for match in FENCED_BLOCK_PATTERN.finditer(markdown):
        pieces.append(rewrite(markdown[position : match.start()]))
        pieces.append(match.group(0))
        position = match.end()
    pieces.append(rewrite(markdown[position:]))
    return "".join(pieces)


def _clean_prose(text: str) -> str:
    text = RAW_TABLE_TAG_PATTERN.sub("", text)
    return STATUS_BADGE_PATTERN.sub(r" \1 ", text)


def post_process(markdown: str) -> str:
    """Textual cleanup applied to rendered Markdown.

    Raw table tags and badge padding are only touched outside fenced code.
    """
    result = _outside_fences(markdown, _clean_prose)
    result = TRAILING_WHITESPACE_PATTERN.sub("", result)
    result = EXCESS_BLANK_LINES_PATTERN.sub("\n\n", result)
    return result


def escape_yaml(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\r\n", " ").replace("\n", " ")


def _timestamp(now: Optional[dt.datetime] = None) -> str:
    moment = now or dt.datetime.now(dt.timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_front_matter(
    title: Optional[str],
    metadata: PageMetadata,
    now: Optional[dt.datetime] = None,
) -> str:
    """YAML front matter listing whichever metadata fields are present."""
    lines: List[str] = ["---"]
    if title:
        lines.append(f'title: "{escape_yaml(title)}"')
    if metadata.space:
        lines.append(f'space: "{escape_yaml(metadata.space)}"')
    if metadata.author:
        lines.append(f'author: "{escape_yaml(metadata.author)}"')
    if metadata.last_modified:
        lines.append(f'last_modified: "{escape_yaml(metadata.last_modified)}"')
    if metadata.source_url:
        lines.append(f'source_url: "{escape_yaml(metadata.source_url)}"')
    if metadata.labels:
        lines.append("labels:")
        lines.extend(f'  - "{escape_yaml(label)}"' for label in metadata.labels)
    lines.append(f'converted_at: "{_timestamp(now)}"')
    lines.append("---\n")
    return "\n".join(lines)


def render_markdown(html: str, renderer: Optional[MarkdownRenderer] = None) -> str:
    """Render normalized HTML to Markdown and clean it up."""
    soup = BeautifulSoup(html, "html.parser")
    return post_process((renderer or MarkdownRenderer()).render(soup))


def convert_to_markdown(
    html: str,
    title: Optional[str],
    metadata: Optional[PageMetadata],
    options: Optional[ConversionOptions] = None,
    renderer: Optional[MarkdownRenderer] = None,
    now: Optional[dt.datetime] = None,
) -> str:
    """Generate the final Markdown document, with optional front matter and title."""
    options = options or ConversionOptions()
    body = render_markdown(html, renderer)
    logger.debug("Rendered %d characters of Markdown", len(body))

    parts: List[str] = []
    if options.include_front_matter and metadata is not None:
        parts.append(build_front_matter(title, metadata, now))
    if options.include_title and title:
        parts.append(f"# {title}\n")
    parts.append(body)
    return "\n".join(parts).strip() + "\n"
