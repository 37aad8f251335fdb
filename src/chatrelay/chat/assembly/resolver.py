"""Resolve Markdown image references into inline image parts."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

import httpx

from .fetcher import (
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_BYTES,
    DEFAULT_TIMEOUT_MS,
    batch_fetch_images,
)
from .markup import DEFAULT_IMAGE_HOSTS, contains_fetchable_images
from .merger import merge_fragment
from .types import (
    BinaryFragment,
    ContentPart,
    FetchedImage,
    ImageReference,
    TextFragment,
)


logger = logging.getLogger(__name__)


class CdnImageResolver:
    """Fetch referenced images and splice them between the surrounding text."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        allowed_hosts: Iterable[str] | None = DEFAULT_IMAGE_HOSTS,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self._client = client
        self._concurrency = concurrency
        self._timeout_ms = timeout_ms
        self._allowed_hosts = tuple(allowed_hosts or ())
        self._max_bytes = max_bytes

    def needs_resolution(self, text: str | None) -> bool:
        if not text:
            return False
        return contains_fetchable_images(text, self._allowed_hosts)

    async def resolve(
        self, references: Sequence[ImageReference]
    ) -> list[FetchedImage | None]:
        if not references:
            return []
        logger.info("Resolving %d CDN image reference(s)", len(references))
        return await batch_fetch_images(
            self._client,
            [ref.url for ref in references],
            concurrency=self._concurrency,
            timeout_ms=self._timeout_ms,
            allowed_hosts=self._allowed_hosts,
            max_bytes=self._max_bytes,
        )

    @staticmethod
    def splice(
        segments: Sequence[tuple[str, Any]],
        results: Sequence[FetchedImage | None],
        *,
        thought: bool,
        thought_signature: str | None,
        parts: list[ContentPart] | None = None,
    ) -> list[ContentPart]:
        """Replay ``segments`` as parts, in order.

        ``results`` aligns with the image segments. A reference that did not
        resolve is written back as its literal Markdown so no text is lost.
        Whitespace that would stand alone after an image (or at the start) is
        kept only if text, or a literal reference, follows it.
        """

        spliced = parts if parts is not None else []
        image_index = 0
        gap = ""
        for kind, value in segments:
            if kind == "image":
                fetched = results[image_index] if image_index < len(results) else None
                image_index += 1
                if fetched is None:
                    merge_fragment(
                        spliced,
                        TextFragment(gap + value.markup, thought, thought_signature),
                    )
                else:
                    merge_fragment(
                        spliced,
                        BinaryFragment(
                            fetched.mime_type,
                            fetched.data,
                            thought,
                            thought_signature,
                        ),
                    )
                gap = ""
                continue

            if not value:
                continue
            tail_is_text = bool(spliced) and spliced[-1].is_text
            if not value.strip() and not tail_is_text:
                gap += value
                continue
            merge_fragment(spliced, TextFragment(gap + value, thought, thought_signature))
            gap = ""
        return spliced


__all__ = ["CdnImageResolver"]
