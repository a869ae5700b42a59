"""Image URL resolution and optional base64 embedding."""

from __future__ import annotations

import asyncio
import base64
import io
import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence
from urllib.parse import urljoin, urlparse

import requests
from bs4 import Tag
from filetype import guess
from PIL import Image

from .config import EMBED_BATCH_SIZE, EMBED_TIMEOUT_SECONDS, JPEG_QUALITY, MAX_EMBED_BYTES
from .errors import ImageEmbedError
from .models import ImageDescriptor

logger = logging.getLogger("markbridge")

FULL_SIZE_ATTRIBUTES = ("data-image-src", "data-media-src", "data-src")
RESOURCE_ID_ATTRIBUTES = ("data-linked-resource-id", "data-media-id", "data-resource-id")
PLATFORM_IMAGE_ATTRIBUTES = (
    "data-media-id",
    "data-media-type",
    "data-base-url",
    "data-linked-resource-id",
    "data-linked-resource-type",
    "data-linked-resource-version",
    "data-linked-resource-default-alias",
    "data-resource-id",
    "data-resource-type",
    "loading",
    "data-unresolved-comment-count",
    "data-location",
    "data-image-src",
    "data-width",
    "data-height",
)
PLACEHOLDER_PATTERN = re.compile(r"placeholder", re.IGNORECASE)
ABSOLUTE_URL_PATTERN = re.compile(r"^https?:", re.IGNORECASE)


@dataclass
class ImageTarget:
    """An <img> element paired with its resolution state."""

    element: Tag
    descriptor: ImageDescriptor


def document_origin(url: Optional[str]) -> str:
    """Return ``scheme://host`` for a page URL, or an empty string when unknown."""
    if not url:
        return ""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


def image_candidates(img: Tag) -> List[str]:
    """Full-size source attributes first, then the plain ``src``."""
    candidates = []
    for attribute in (*FULL_SIZE_ATTRIBUTES, "src"):
        value = (img.get(attribute) or "").strip()
        if value:
            candidates.append(value)
    return candidates


def _absolute(url: str, origin: str) -> Optional[str]:
    if ABSOLUTE_URL_PATTERN.match(url):
        return url
    if not origin:
        return url
    try:
        return urljoin(origin + "/", url)
    except ValueError:
        return None


def resolve_image(img: Tag, origin: str) -> ImageDescriptor:
    """Pick the best usable URL for an image without touching the network."""
    original_src = img.get("src") or ""
    descriptor = ImageDescriptor(original_src=original_src, candidate_urls=image_candidates(img))

    for url in descriptor.candidate_urls:
        if url.startswith("data:"):
            descriptor.resolved_url = url
            descriptor.data_uri = url
            descriptor.embedded = True
            return descriptor
        if url.startswith("blob:") or PLACEHOLDER_PATTERN.search(url):
            continue
        absolute = _absolute(url, origin)
        if absolute:
            descriptor.resolved_url = absolute
            return descriptor

    resource_id = next(
        (img.get(attribute) for attribute in RESOURCE_ID_ATTRIBUTES if img.get(attribute)),
        None,
    )
    base_url = (img.get("data-base-url") or origin).rstrip("/")
    if resource_id and base_url:
        descriptor.resolved_url = f"{base_url}/download/attachments/{resource_id}"
        return descriptor

    descriptor.resolved_url = original_src or None
    return descriptor


def resolve_images(root: Tag, source_url: Optional[str]) -> List[ImageTarget]:
    """Resolve every image in place, fill in alt text and drop platform attributes."""
    origin = document_origin(source_url)
    targets: List[ImageTarget] = []
    for img in root.find_all("img"):
        descriptor = resolve_image(img, origin)
        if descriptor.resolved_url:
            img["src"] = descriptor.resolved_url
        if not img.get("alt"):
            img["alt"] = img.get("title") or img.get("data-alt") or "image"
        for attribute in PLATFORM_IMAGE_ATTRIBUTES:
            if attribute in img.attrs:
                del img[attribute]
        targets.append(ImageTarget(img, descriptor))
    return targets


def encode_data_uri(mime: str, data: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def has_transparency(image: Image.Image) -> bool:
    """Sample the corners and the centre for any non-opaque pixel."""
    rgba = image if image.mode == "RGBA" else image.convert("RGBA")
    width, height = rgba.size
    points = [
        (0, 0),
        (width - 1, 0),
        (0, height - 1),
        (width - 1, height - 1),
        (width // 2, height // 2),
    ]
    return any(rgba.getpixel(point)[3] < 255 for point in points)


def rasterize(data: bytes, quality: int = JPEG_QUALITY) -> str:
    """Decode image bytes and re-encode them as PNG (transparent) or JPEG (opaque)."""
    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            image = source.convert("RGBA")
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageEmbedError(f"Could not decode image: {exc}") from exc

    buffer = io.BytesIO()
    if has_transparency(image):
        image.save(buffer, format="PNG")
        mime = "image/png"
    else:
        image.convert("RGB").save(buffer, format="JPEG", quality=quality)
        mime = "image/jpeg"
    return encode_data_uri(mime, buffer.getvalue())


def build_session(
    cookies: Iterable[Mapping[str, str]] = (),
    headers: Optional[Mapping[str, str]] = None,
) -> requests.Session:
    """Create a session carrying the caller's credentials (e.g. browser cookies)."""
    session = requests.Session()
    if headers:
        session.headers.update(headers)
    for cookie in cookies:
        session.cookies.set(
            cookie["name"],
            cookie["value"],
            domain=cookie.get("domain"),
            path=cookie.get("path", "/"),
        )
    return session


class ImageFetcher:
    """Two fetch strategies: an authenticated download, then a raster re-encode."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = EMBED_TIMEOUT_SECONDS,
        max_bytes: int = MAX_EMBED_BYTES,
        quality: int = JPEG_QUALITY,
    ) -> None:
        self.session = session or requests.Session()
        self.anonymous_session = requests.Session()
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.quality = quality

    def _get(self, session: requests.Session, url: str) -> requests.Response:
        try:
            resp = session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ImageEmbedError(f"Failed to fetch image: {exc}", url) from exc
        return resp

    def fetch_data_uri(self, url: str) -> Optional[str]:
        """Download with credentials and encode as-is.

        Returns None when the payload is too large to embed.
        """
        resp = self._get(self.session, url)
        content_type = resp.headers.get("Content-Type", "").split(";")[0].strip().lower()
        if not content_type.startswith("image/"):
            raise ImageEmbedError(f"Not an image: {content_type or 'unknown'}", url)
        data = resp.content
        if len(data) > self.max_bytes:
            logger.debug(
                "Keeping %s as a link: %d bytes exceeds %d",
                url,
                len(data),
                self.max_bytes,
            )
            return None
        return encode_data_uri(content_type, data)

    def rasterize_data_uri(self, url: str) -> str:
        """Fetch anonymously, decode with Pillow whatever the declared type, re-encode."""
        data = self._get(self.anonymous_session, url).content
        kind = guess(data)
        if kind is not None and not kind.mime.startswith("image/"):
            raise ImageEmbedError(f"Not an image: {kind.mime}", url)
        return rasterize(data, quality=self.quality)


async def _run_strategy(func, url: str, timeout: float):
    return await asyncio.wait_for(asyncio.to_thread(func, url), timeout)


async def embed_image(target: ImageTarget, fetcher: ImageFetcher, timeout: float) -> bool:
    """Embed one image, trying the fetch strategy then the raster fallback."""
    src = target.element.get("src") or ""
    if not src or src.startswith("data:") or src == "about:blank":
        return False

    try:
        data_uri = await _run_strategy(fetcher.fetch_data_uri, src, timeout)
    except (ImageEmbedError, asyncio.TimeoutError) as primary_error:
        logger.debug("Fetch failed for %s (%s); trying raster fallback", src, primary_error)
        try:
            data_uri = await _run_strategy(fetcher.rasterize_data_uri, src, timeout)
        except (ImageEmbedError, asyncio.TimeoutError) as exc:
            raise ImageEmbedError(f"All embedding strategies failed: {exc}", src) from primary_error

    if not data_uri:
        return False
    target.element["src"] = data_uri
    target.descriptor.data_uri = data_uri
    target.descriptor.embedded = True
    return True


async def embed_images_async(
    targets: Sequence[ImageTarget],
    fetcher: Optional[ImageFetcher] = None,
    batch_size: int = EMBED_BATCH_SIZE,
    timeout: float = EMBED_TIMEOUT_SECONDS,
) -> int:
    """Embed images in sequential batches; failures inside a batch never affect the others.

    Returns the number of images embedded.
    """
    if not targets:
        return 0
    fetcher = fetcher or ImageFetcher(timeout=timeout)
    embedded = 0
    for start in range(0, len(targets), batch_size):
        batch = targets[start : start + batch_size]
        logger.debug(
            "Embedding batch %d of %d (size: %d)",
            (start // batch_size) + 1,
            (len(targets) + batch_size - 1) // batch_size,
            len(batch),
        )
        outcomes = await asyncio.gather(
            *(embed_image(target, fetcher, timeout) for target in batch),
            return_exceptions=True,
        )
        for target, outcome in zip(batch, outcomes):
            if isinstance(outcome, BaseException):
                logger.debug("Keeping linked image %s: %s", target.descriptor.resolved_url, outcome)
            elif outcome:
                embedded += 1
    return embedded


def embed_images(
    targets: Sequence[ImageTarget],
    fetcher: Optional[ImageFetcher] = None,
    batch_size: int = EMBED_BATCH_SIZE,
    timeout: float = EMBED_TIMEOUT_SECONDS,
) -> int:
    """Synchronous wrapper around :func:`embed_images_async`."""
    return asyncio.run(embed_images_async(targets, fetcher, batch_size, timeout))
