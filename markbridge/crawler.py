"""Content providers (Playwright pages, local files) and batch conversion."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from playwright.async_api import (
    Error as PlaywrightError,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import ConversionOptions, CrawlConfig
from .errors import ContentProviderError, ExtractionError
from .extractor import extract_async
from .images import ImageFetcher, build_session
from .markdown import convert_to_markdown
from .models import ConversionResult, ExtractedPage
from .utils import sanitize_filename

logger = logging.getLogger("markbridge")


async def render_page(
    playwright: Playwright,
    url: str,
    config: CrawlConfig,
) -> Tuple[str, str]:
    """Navigate to a URL using Playwright and return the HTML and final URL."""
    browser = await playwright.chromium.launch(headless=True)
    try:
        context = await browser.new_context(
            storage_state=str(config.storage_state) if config.storage_state else None
        )
        page = await context.new_page()
        page.set_default_navigation_timeout(config.navigation_timeout * 1000)
        logger.info("Loading %s", url)
        await page.goto(url, wait_until="networkidle")
        if config.wait_after_load:
            await page.wait_for_timeout(int(config.wait_after_load * 1000))
        html = await page.content()
        final_url = page.url
    finally:
        await browser.close()
    return html, final_url


async def fetch_page(
    playwright: Playwright,
    url: str,
    config: CrawlConfig,
) -> Tuple[str, str]:
    """Like :func:`render_page`, with Playwright failures raised as ContentProviderError."""
    try:
        return await render_page(playwright, url, config)
    except PlaywrightTimeoutError as exc:
        raise ContentProviderError(f"Timeout while loading page: {exc}", url) from exc
    except PlaywrightError as exc:
        raise ContentProviderError(f"Could not load page: {exc}", url) from exc


def load_html_file(path: Path) -> str:
    """Read a saved page from disk."""
    try:
        return Path(path).expanduser().read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ContentProviderError(f"Could not read HTML file: {exc}", str(path)) from exc


def load_storage_cookies(path: Optional[Path]) -> List[Dict[str, str]]:
    """Cookies from a Playwright storage-state file, used to fetch images with the same login."""
    if path is None:
        return []
    try:
        with Path(path).expanduser().open(encoding="utf-8") as handle:
            state = json.load(handle)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable storage state %s: %s", path, exc)
        return []
    return list(state.get("cookies", []))


def build_fetcher(config: CrawlConfig) -> Optional[ImageFetcher]:
    if not config.options.embed_images:
        return None
    return ImageFetcher(build_session(load_storage_cookies(config.storage_state)))


async def convert_html_async(
    html: str,
    source_url: str = "",
    options: Optional[ConversionOptions] = None,
    fetcher: Optional[ImageFetcher] = None,
) -> Tuple[ExtractedPage, str]:
    """Run the whole pipeline on raw page HTML. Returns the extracted page and its Markdown."""
    options = options or ConversionOptions()
    page = await extract_async(html, source_url, options.embed_images, fetcher)
    markdown = convert_to_markdown(page.html, page.title, page.metadata, options)
    return page, markdown


def convert_html(
    html: str,
    source_url: str = "",
    options: Optional[ConversionOptions] = None,
    fetcher: Optional[ImageFetcher] = None,
) -> Tuple[ExtractedPage, str]:
    return asyncio.run(convert_html_async(html, source_url, options, fetcher))


def markdown_filename(title: str) -> str:
    return f"{sanitize_filename(title)}.md"


def write_markdown(output_root: Path, title: str, markdown: str) -> Path:
    output_root.mkdir(parents=True, exist_ok=True)
    output_path = output_root / markdown_filename(title)
    output_path.write_text(markdown, encoding="utf-8")
    logger.info("Saved Markdown to %s", output_path)
    return output_path


async def _convert_one(
    html: str,
    source_url: str,
    label: str,
    config: CrawlConfig,
    fetcher: Optional[ImageFetcher],
    write: bool,
    start_time: float,
) -> Optional[ConversionResult]:
    try:
        page, markdown = await convert_html_async(html, source_url, config.options, fetcher)
    except ExtractionError as exc:
        logger.error("Skipping %s: %s", label, exc)
        return None

    output_path = write_markdown(config.output_root, page.title, markdown) if write else None
    return ConversionResult(
        url=source_url or label,
        title=page.title,
        markdown=markdown,
        output_path=output_path,
        total_seconds=time.perf_counter() - start_time,
        embedded_images=sum(1 for image in page.images if image.embedded),
    )


async def run_converter(
    urls: Sequence[str],
    config: CrawlConfig,
    write: bool = True,
) -> List[ConversionResult]:
    """Render each URL sequentially and convert it; failed pages are logged and skipped."""
    results: List[ConversionResult] = []
    fetcher = build_fetcher(config)
    async with async_playwright() as playwright:
        for url in urls:
            start_time = time.perf_counter()
            try:
                html, final_url = await fetch_page(playwright, url, config)
            except ContentProviderError as exc:
                logger.error("%s", exc)
                continue
            result = await _convert_one(html, final_url, url, config, fetcher, write, start_time)
            if result is not None:
                results.append(result)
    return results


async def convert_files(
    paths: Sequence[Path],
    config: CrawlConfig,
    base_url: str = "",
    write: bool = True,
) -> List[ConversionResult]:
    """Convert saved HTML pages. ``base_url`` resolves relative image links."""
    results: List[ConversionResult] = []
    fetcher = build_fetcher(config)
    for path in paths:
        start_time = time.perf_counter()
        try:
            html = load_html_file(path)
        except ContentProviderError as exc:
            logger.error("%s", exc)
            continue
        result = await _convert_one(html, base_url, str(path), config, fetcher, write, start_time)
        if result is not None:
            results.append(result)
    return results
