"""Request/response channel used by hosts that drive the converter."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from .config import ConversionOptions
from .crawler import convert_html, markdown_filename
from .errors import MarkBridgeError
from .extractor import extract
from .images import ImageFetcher

logger = logging.getLogger("markbridge")

OPTION_KEYS = ("includeFrontMatter", "includeTitle", "embedImages")


def message_options(message: Mapping[str, Any]) -> ConversionOptions:
    """Options may arrive nested under ``options`` or as top-level keys."""
    payload: Dict[str, Any] = dict(message.get("options") or {})
    for key in OPTION_KEYS:
        if key in message:
            payload[key] = message[key]
    return ConversionOptions.from_mapping(payload)


def handle_message(
    message: Mapping[str, Any],
    html: str,
    url: str = "",
    fetcher: Optional[ImageFetcher] = None,
) -> Dict[str, Any]:
    """Answer one ``{action, options}`` request against the given page HTML.

    Errors are reported in the response, never raised.
    """
    action = message.get("action")
    try:
        if action == "ping":
            return {"success": True}
        if action == "extract":
            options = message_options(message)
            page = extract(html, url, options.embed_images, fetcher)
            return {"success": True, "data": page.to_dict()}
        if action == "convert":
            options = message_options(message)
            page, markdown = convert_html(html, url, options, fetcher)
            return {
                "success": True,
                "data": {
                    "title": page.title,
                    "markdown": markdown,
                    "filename": markdown_filename(page.title),
                },
            }
    except MarkBridgeError as exc:
        logger.debug("Action %s failed: %s", action, exc)
        return {"success": False, "error": str(exc)}
    return {"success": False, "error": f"Unknown action: {action}"}
