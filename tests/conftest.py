"""Pytest configuration and shared fixtures for markbridge tests."""

import io
from typing import Callable
from unittest.mock import Mock

import pytest
from bs4 import BeautifulSoup, Tag
from PIL import Image

CONFLUENCE_PAGE = """
<html>
<head><title>Release Notes - Engineering - Confluence</title></head>
<body>
<div id="breadcrumb-section"><a href="/display/ENG">Engineering</a></div>
<h1 id="title-heading"><span id="title-text">Release Notes</span></h1>
<div class="page-metadata-modification-info">
  <span class="author"><a href="/display/~jane">Jane Doe</a></span>
  <span class="date">Jan 02, 2024</span>
</div>
<div id="main-content" class="wiki-content">
  <p>This page collects the release notes for the current quarter, including migration steps and known issues.</p>
  <div class="toc-macro"><ul><li>Contents</li></ul></div>
  <div class="confluence-information-macro confluence-information-macro-warning">
    <div class="confluence-information-macro-body"><p>Be careful</p></div>
  </div>
  <table>
    <tr><td>Name</td><td>Age</td></tr>
    <tr><td>Bob</td><td>42</td></tr>
  </table>
  <img src="/download/attachments/1/diagram.png" title="Diagram" data-linked-resource-id="1">
</div>
<div class="label-list"><a class="label">release</a><a class="label">notes</a></div>
</body>
</html>
"""


@pytest.fixture
def confluence_page() -> str:
    """A saved Server/DC page with metadata, a panel, a table and an image."""
    return CONFLUENCE_PAGE


@pytest.fixture
def page_url() -> str:
    return "https://wiki.example.com/display/ENG/Release+Notes"


@pytest.fixture
def make_root() -> Callable[[str], Tag]:
    """Parse an HTML fragment and return a wrapper element owning it."""

    def _make(html: str) -> Tag:
        soup = BeautifulSoup(f'<div class="wiki-content">{html}</div>', "html.parser")
        return soup.div

    return _make


@pytest.fixture
def make_table() -> Callable[[str], Tag]:
    """Parse a table snippet and return the first <table>."""

    def _make(html: str) -> Tag:
        return BeautifulSoup(html, "html.parser").table

    return _make


def encode_image(mode: str, color, image_format: str = "PNG") -> bytes:
    image = Image.new(mode, (4, 4), color)
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def transparent_png() -> bytes:
    return encode_image("RGBA", (255, 0, 0, 0))


@pytest.fixture
def opaque_png() -> bytes:
    return encode_image("RGB", (0, 128, 255))


@pytest.fixture
def make_response() -> Callable[..., Mock]:
    """Build a fake requests response."""

    def _make(content: bytes, content_type: str = "image/png") -> Mock:
        response = Mock()
        response.content = content
        response.headers = {"Content-Type": content_type}
        response.raise_for_status.return_value = None
        return response

    return _make
