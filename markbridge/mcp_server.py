"""MCP server exposing the Markdown conversion tools."""

from __future__ import annotations

import logging
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from .config import ConversionOptions, CrawlConfig
from .crawler import convert_html_async, run_converter

logger = logging.getLogger("markbridge.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="markbridge")


@mcp.tool()
async def convert_url(
    url: str,
    embed_images: bool = False,
) -> str:
    """Render a Confluence page with Playwright and return it as Markdown."""

    config = CrawlConfig(
        output_root=Path.cwd(),
        options=ConversionOptions(embed_images=embed_images),
    )
    results = await run_converter([url], config, write=False)
    if not results:
        raise RuntimeError(f"Failed to convert {url}")
    return results[0].markdown


@mcp.tool()
async def convert_html(
    html: str,
    source_url: str = "",
    embed_images: bool = False,
) -> str:
    """Convert already-rendered Confluence page HTML to Markdown."""

    _, markdown = await convert_html_async(
        html,
        source_url,
        ConversionOptions(embed_images=embed_images),
    )
    return markdown


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
