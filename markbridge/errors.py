"""Exceptions raised by the conversion pipeline.

Only ExtractionError is fatal to a conversion. ImageEmbedError never escapes
the image embedder; it marks a single failed strategy.
"""

from __future__ import annotations

from typing import Optional


class MarkBridgeError(Exception):
    """Base exception for all markbridge errors.

    Attributes:
        message: Human-readable error description.
        source_url: Optional page or image URL related to the error.
    """

    def __init__(self, message: str, source_url: Optional[str] = None) -> None:
        self.message = message
        self.source_url = source_url
        super().__init__(self.format_message())

    def format_message(self) -> str:
        return self.message


class ExtractionError(MarkBridgeError):
    """Raised when no content root can be located in the page."""


class ImageEmbedError(MarkBridgeError):
    """Raised when a single embedding strategy fails for an image."""

    def format_message(self) -> str:
        if self.source_url:
            return f"{self.message} ({self.source_url})"
        return self.message


class InvalidOptionsError(MarkBridgeError):
    """Raised when conversion options contain unknown keys or non-boolean values."""


class ContentProviderError(MarkBridgeError):
    """Raised when a page cannot be loaded by the content provider."""

    def format_message(self) -> str:
        if self.source_url:
            return f"{self.message} ({self.source_url})"
        return self.message
