"""Configuration objects and tuning constants for the converter."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidOptionsError

MIN_CONTENT_CHARS = 100
HEADER_LABEL_MAX_CHARS = 50
HEADER_BACKGROUND_COLORS = ("#f0f0f0", "#e0e0e0", "#dfe1e5", "#f4f5f7", "#deebff")
MAX_COLSPAN = 1000
MAX_ROWSPAN = 65534

EMBED_BATCH_SIZE = 4
EMBED_TIMEOUT_SECONDS = 8.0
MAX_EMBED_BYTES = 5 * 1024 * 1024
JPEG_QUALITY = 85

MAX_FILENAME_CHARS = 100

_WIRE_NAMES = {
    "includeFrontMatter": "include_front_matter",
    "includeTitle": "include_title",
    "embedImages": "embed_images",
}


@dataclass
class ConversionOptions:
    """Switches recognised by the conversion pipeline."""

    include_front_matter: bool = True
    include_title: bool = True
    embed_images: bool = False

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "ConversionOptions":
        """Build options from wire (camelCase) or attribute names.

        Unknown keys and non-boolean values are rejected.
        """
        if not mapping:
            return cls()
        known = {f.name for f in fields(cls)}
        values: Dict[str, bool] = {}
        for key, value in mapping.items():
            name = _WIRE_NAMES.get(key, key)
            if name not in known:
                raise InvalidOptionsError(f"Unrecognised option '{key}'")
            if not isinstance(value, bool):
                raise InvalidOptionsError(
                    f"Option '{key}' must be a boolean, got {type(value).__name__}"
                )
            values[name] = value
        return cls(**values)

    def to_wire(self) -> Dict[str, bool]:
        return {wire: getattr(self, name) for wire, name in _WIRE_NAMES.items()}


@dataclass
class CrawlConfig:
    """Top-level settings for rendering pages and writing Markdown files."""

    output_root: Path
    wait_after_load: float = 1.0
    navigation_timeout: float = 30.0
    storage_state: Optional[Path] = None
    options: ConversionOptions = field(default_factory=ConversionOptions)
