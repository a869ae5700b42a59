"""Utility helpers for string normalization and tree inspection."""

from __future__ import annotations

import re
from typing import List

from bs4 import BeautifulSoup, NavigableString, Tag

from .config import MAX_FILENAME_CHARS

INVALID_FILENAME_PATTERN = re.compile(r'[/\\?%*:|"<>]')
WHITESPACE_PATTERN = re.compile(r"\s+")
HYPHEN_RUN_PATTERN = re.compile(r"-+")


def sanitize_filename(value: str, fallback: str = "untitled") -> str:
    """Turn a page title into a lower-case, hyphenated file stem."""
    normalized = INVALID_FILENAME_PATTERN.sub("-", value or "")
    normalized = WHITESPACE_PATTERN.sub("-", normalized)
    normalized = HYPHEN_RUN_PATTERN.sub("-", normalized).strip("-")
    normalized = normalized[:MAX_FILENAME_CHARS].lower()
    return normalized or fallback


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", text.replace("\n", " "))


def class_list(tag: Tag) -> List[str]:
    """Return the class tokens of a tag whether bs4 stored them as a list or a string."""
    value = tag.get("class")
    if not value:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


def has_class(tag: Tag, *names: str) -> bool:
    classes = class_list(tag)
    return any(name in classes for name in names)


def text_of(node) -> str:
    """Stripped text content of a node, empty for anything that is not text or a tag."""
    if isinstance(node, Tag):
        return node.get_text().strip()
    if isinstance(node, NavigableString):
        return str(node).strip()
    return ""


def is_blank_text(node) -> bool:
    return isinstance(node, NavigableString) and not str(node).strip()


def significant_children(tag: Tag) -> list:
    """Children of a tag ignoring whitespace-only text nodes."""
    return [child for child in tag.children if not is_blank_text(child)]


def owner_document(node) -> BeautifulSoup:
    """Return the soup a node belongs to, or a fresh one usable as a tag factory."""
    top = node
    while top.parent is not None:
        top = top.parent
    if isinstance(top, BeautifulSoup):
        return top
    return BeautifulSoup("", "html.parser")


def copy_attrs(tag: Tag, exclude: tuple = ()) -> dict:
    attrs = {}
    for key, value in tag.attrs.items():
        if key in exclude:
            continue
        attrs[key] = list(value) if isinstance(value, list) else value
    return attrs
