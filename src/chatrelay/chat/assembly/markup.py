"""Detection and validation of Markdown image references in model text."""

from __future__ import annotations

import re
from typing import Any, Iterable
from urllib.parse import urlparse

from .types import ImageReference, ParsedMarkup


MARKDOWN_IMAGE_PATTERN = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")

IMAGE_EXTENSION_PATTERN = re.compile(
    r"\.(jpg|jpeg|png|gif|webp|svg|bmp|avif)$",
    re.IGNORECASE,
)

DEFAULT_IMAGE_HOSTS: tuple[str, ...] = (
    "googlecdn.datas.systems",
    "cdn.google.com",
    "storage.googleapis.com",
    "lh3.googleusercontent.com",
)


def split_image_markup(text: str) -> list[tuple[str, Any]]:
    """Split text into ordered ``("text", str)`` and ``("image", ref)`` tuples.

    Text between references is kept verbatim, whitespace included, so the
    caller can rebuild the original string from the segments.
    """

    if not text:
        return []

    segments: list[tuple[str, Any]] = []
    cursor = 0
    for match in MARKDOWN_IMAGE_PATTERN.finditer(text):
        start, end = match.span()
        if start > cursor:
            segments.append(("text", text[cursor:start]))
        segments.append(("image", ImageReference(url=match.group(2), alt=match.group(1))))
        cursor = end

    if cursor < len(text):
        segments.append(("text", text[cursor:]))

    return segments


def parse_markdown_images(text: str) -> ParsedMarkup:
    """Collect plain-text segments and image references from ``text``."""

    segments = split_image_markup(text)
    references = [value for kind, value in segments if kind == "image"]
    text_segments = [
        value for kind, value in segments if kind == "text" and value.strip()
    ]
    if not references and text.strip():
        text_segments = [text]
    return ParsedMarkup(
        text_segments=text_segments,
        references=references,
        segments=segments,
    )


def is_allowed_host(host: str, allowlist: Iterable[str] | None) -> bool:
    """Return True if ``host`` equals or is a subdomain of an allowlisted host."""

    host = host.lower()
    for allowed in allowlist or ():
        candidate = allowed.strip().lower()
        if not candidate:
            continue
        if host == candidate or host.endswith("." + candidate):
            return True
    return False


def is_fetchable_image_url(
    url: str,
    allowed_hosts: Iterable[str] | None = DEFAULT_IMAGE_HOSTS,
) -> bool:
    """Heuristically decide whether ``url`` points at a downloadable image."""

    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.hostname:
        return False

    if IMAGE_EXTENSION_PATTERN.search(parsed.path):
        return True

    if "image" in parsed.path.lower() or "image" in parsed.query.lower():
        return True

    return is_allowed_host(parsed.hostname, allowed_hosts)


def contains_fetchable_images(
    text: str,
    allowed_hosts: Iterable[str] | None = DEFAULT_IMAGE_HOSTS,
) -> bool:
    return any(
        is_fetchable_image_url(ref.url, allowed_hosts)
        for ref in parse_markdown_images(text).references
    )


def settled_length(text: str) -> int:
    """Length of the leading part of ``text`` that appending more text can
    no longer turn into a new image reference.

    Complete references are left alone by later text, so everything up to the
    end of the last one is settled, as is any text before the next ``![``.
    """

    end = 0
    for match in MARKDOWN_IMAGE_PATTERN.finditer(text):
        end = match.end()
    opener = text.find("![", end)
    if opener != -1:
        return opener
    if text.endswith("!"):
        return len(text) - 1
    return len(text)


def redact_url(url: str) -> str:
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    return parsed._replace(query="", fragment="").geturl()


__all__ = [
    "DEFAULT_IMAGE_HOSTS",
    "contains_fetchable_images",
    "is_allowed_host",
    "is_fetchable_image_url",
    "parse_markdown_images",
    "redact_url",
    "settled_length",
    "split_image_markup",
]
