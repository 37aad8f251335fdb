"""Incremental merging of response fragments into content parts."""

from __future__ import annotations

from dataclasses import replace

from .types import ContentPart, Fragment, TextFragment


def merge_fragment(parts: list[ContentPart], fragment: Fragment) -> list[ContentPart]:
    """Fold ``fragment`` into ``parts`` and return the same list.

    Text coalesces into a trailing text part with the same thought flag; a
    signature carried by the newer fragment replaces the stored one. Binary
    fragments always start a new part.
    """

    if isinstance(fragment, TextFragment) and parts:
        last = parts[-1]
        if last.is_text and last.thought == fragment.thought:
            parts[-1] = replace(
                last,
                text=(last.text or "") + fragment.text,
                thought_signature=fragment.thought_signature or last.thought_signature,
            )
            return parts

    parts.append(ContentPart.from_fragment(fragment))
    return parts


def merge_fragments(fragments, parts: list[ContentPart] | None = None) -> list[ContentPart]:
    merged = parts if parts is not None else []
    for fragment in fragments:
        merge_fragment(merged, fragment)
    return merged


__all__ = ["merge_fragment", "merge_fragments"]
