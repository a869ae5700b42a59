"""Locate the page content, title and metadata in rendered wiki HTML."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup, Tag

from .config import MIN_CONTENT_CHARS
from .errors import ExtractionError
from .images import ImageFetcher, embed_images_async
from .macros import normalize_macros
from .models import ExtractedPage, PageMetadata

logger = logging.getLogger("markbridge")

CONTENT_SELECTORS = [
    '[data-testid="renderer-page"]',
    ".ak-renderer-document",
    "#content .wiki-content",
    "#main-content .wiki-content",
    ".wiki-content",
    "#main-content",
    "#content",
    'article[role="main"]',
    "main",
]
TITLE_SELECTORS = [
    "#title-text",
    '[data-testid="title-text"]',
    "#content-title-heading",
    "h1#title-heading span",
    "h1#title-heading",
    "h1.pagetitle",
]
SPACE_SELECTOR = '#breadcrumb-section a, .breadcrumbs-section a, [data-testid="breadcrumb-space"] a'
AUTHOR_SELECTOR = '.page-metadata-modification-info .author a, [data-testid="page-metadata-author"]'
DATE_SELECTOR = '.page-metadata-modification-info .date, .last-modified, [data-testid="page-metadata-date"]'
LABEL_SELECTOR = '.label-list .label, .aui-label, [data-testid="label"]'

TITLE_SUFFIX_PATTERNS = [
    re.compile(r"\s*[-–—]\s*Confluence.*$", re.IGNORECASE),
    re.compile(r"\s*[-–—]\s*Atlassian.*$", re.IGNORECASE),
]

CLOUD_URL_PATTERNS = [
    re.compile(r"\.atlassian\.net/wiki/", re.IGNORECASE),
    re.compile(r"\.atlassian\.net/.*/pages/", re.IGNORECASE),
]
SERVER_URL_PATTERNS = [
    re.compile(r"/display/[A-Za-z0-9]+/", re.IGNORECASE),
    re.compile(r"/pages/viewpage\.action", re.IGNORECASE),
    re.compile(r"/confluence/", re.IGNORECASE),
]

NO_CONTENT_MESSAGE = (
    "Could not locate the Confluence page content. "
    "Make sure you are viewing a Confluence page."
)


def detect_page_type(url: Optional[str]) -> Optional[str]:
    """Classify a page URL as ``Cloud`` or ``Server/DC`` deployment, if recognisable."""
    if not url:
        return None
    if any(pattern.search(url) for pattern in CLOUD_URL_PATTERNS):
        return "Cloud"
    if any(pattern.search(url) for pattern in SERVER_URL_PATTERNS):
        return "Server/DC"
    return None


def find_content_root(soup: BeautifulSoup) -> Tag:
    """Return the first candidate with substantial content, else the first non-empty one."""
    candidates: List[Tag] = []
    for selector in CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            candidates.append(element)

    for element in candidates:
        if len(element.decode_contents().strip()) > MIN_CONTENT_CHARS:
            return element
    for element in candidates:
        if element.decode_contents().strip():
            logger.debug("Falling back to a short content root (%s)", element.name)
            return element
    raise ExtractionError(NO_CONTENT_MESSAGE)


def find_title(soup: BeautifulSoup) -> str:
    for selector in TITLE_SELECTORS:
        element = soup.select_one(selector)
        if element is not None and element.get_text().strip():
            return element.get_text().strip()

    title = soup.title.get_text() if soup.title is not None else ""
    for pattern in TITLE_SUFFIX_PATTERNS:
        title = pattern.sub("", title)
    return title.strip()


def _first_text(soup: BeautifulSoup, selector: str) -> Optional[str]:
    element = soup.select_one(selector)
    if element is None:
        return None
    return element.get_text().strip() or None


def extract_metadata(soup: BeautifulSoup, source_url: str) -> PageMetadata:
    """Best-effort metadata; every field that is not found stays empty."""
    labels = [element.get_text().strip() for element in soup.select(LABEL_SELECTOR)]
    return PageMetadata(
        source_url=source_url,
        space=_first_text(soup, SPACE_SELECTOR),
        author=_first_text(soup, AUTHOR_SELECTOR),
        last_modified=_first_text(soup, DATE_SELECTOR),
        labels=labels or None,
    )


def clone_root(root: Tag) -> Tag:
    """Re-parse the root into an independent tree so the source is never mutated."""
    working = BeautifulSoup(str(root), "html.parser")
    return working.find(root.name)


async def extract_async(
    html: str,
    source_url: str = "",
    embed_images: bool = False,
    fetcher: Optional[ImageFetcher] = None,
) -> ExtractedPage:
    """Extract, normalize and optionally embed images for one page."""
    if not html or not html.strip():
        raise ExtractionError(NO_CONTENT_MESSAGE)

    soup = BeautifulSoup(html, "html.parser")
    root = find_content_root(soup)
    title = find_title(soup)
    metadata = extract_metadata(soup, source_url)
    page_type = detect_page_type(source_url)
    logger.debug("Extracting %r (%s)", title, page_type or "unknown deployment")

    working = clone_root(root)
    targets = normalize_macros(working, source_url)
    if embed_images and targets:
        embedded = await embed_images_async(targets, fetcher)
        logger.info("Embedded %d of %d image(s)", embedded, len(targets))

    return ExtractedPage(
        title=title,
        html=working.decode_contents(),
        metadata=metadata,
        images=[target.descriptor for target in targets],
    )


def extract(
    html: str,
    source_url: str = "",
    embed_images: bool = False,
    fetcher: Optional[ImageFetcher] = None,
) -> ExtractedPage:
    """Synchronous wrapper around :func:`extract_async`."""
    return asyncio.run(extract_async(html, source_url, embed_images, fetcher))
