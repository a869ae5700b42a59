"""Data models used throughout the conversion pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class PageMetadata:
    """Metadata describing the source page. Every field except the URL is optional."""

    source_url: str
    space: Optional[str] = None
    author: Optional[str] = None
    last_modified: Optional[str] = None
    labels: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Return wire-style keys, omitting absent fields."""
        data: Dict[str, Any] = {"sourceUrl": self.source_url}
        if self.space:
            data["space"] = self.space
        if self.author:
            data["author"] = self.author
        if self.last_modified:
            data["lastModified"] = self.last_modified
        if self.labels:
            data["labels"] = list(self.labels)
        return data


@dataclass
class ImageDescriptor:
    """Resolution and embedding state for a single image element."""

    original_src: str
    candidate_urls: List[str] = field(default_factory=list)
    resolved_url: Optional[str] = None
    embedded: bool = False
    data_uri: Optional[str] = None


@dataclass
class ExtractedPage:
    """Normalized content handed from the extractor to the renderer."""

    title: str
    html: str
    metadata: PageMetadata
    images: List[ImageDescriptor] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "html": self.html,
            "metadata": self.metadata.to_dict(),
        }


@dataclass
class ConversionResult:
    """Outcome of converting one page, with timing details."""

    url: str
    title: str
    markdown: str
    output_path: Optional[Path]
    total_seconds: float
    embedded_images: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["output_path"] = str(self.output_path) if self.output_path else None
        return data
