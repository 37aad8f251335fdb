"""Map loosely typed provider responses onto the closed fragment union."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Iterable, Mapping

from .types import BinaryFragment, Fragment, StreamFatalError, TextFragment


logger = logging.getLogger(__name__)


def safe_b64decode(value: str) -> bytes | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip().replace("\n", "").replace("\r", "")
    padding = len(cleaned) % 4
    if padding:
        cleaned += "=" * (4 - padding)
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError):
        return None


def fragment_from_part(part: Any) -> Fragment | None:
    """Normalize a single provider part; unknown shapes yield ``None``."""

    if not isinstance(part, Mapping):
        return None

    thought = bool(part.get("thought"))
    signature = part.get("thoughtSignature")
    if not isinstance(signature, str) or not signature:
        signature = None

    text = part.get("text")
    if isinstance(text, str):
        return TextFragment(text=text, thought=thought, thought_signature=signature)

    inline = part.get("inlineData")
    if isinstance(inline, Mapping):
        raw = inline.get("data") or ""
        data = safe_b64decode(raw) if raw else b""
        if data is None:
            logger.warning("Dropping inline data part with undecodable payload")
            return None
        mime_type = inline.get("mimeType")
        if not isinstance(mime_type, str) or not mime_type.strip():
            mime_type = "image/png"
        return BinaryFragment(
            mime_type=mime_type.strip(),
            data=data,
            thought=thought,
            thought_signature=signature,
        )

    logger.debug("Ignoring provider part with keys=%s", list(part.keys()))
    return None


def fragments_from_chunk(chunk: Any) -> list[Fragment]:
    """Extract the fragments carried by one provider response object."""

    if not isinstance(chunk, Mapping):
        raise StreamFatalError(
            f"Malformed response chunk of type {type(chunk).__name__}"
        )

    error = chunk.get("error")
    if error:
        message = error.get("message") if isinstance(error, Mapping) else None
        raise StreamFatalError(str(message or error))

    candidates = chunk.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []

    candidate = candidates[0]
    if not isinstance(candidate, Mapping):
        return []
    content = candidate.get("content")
    if not isinstance(content, Mapping):
        return []
    parts = content.get("parts")
    if not isinstance(parts, list):
        return []

    fragments: list[Fragment] = []
    for part in parts:
        fragment = fragment_from_part(part)
        if fragment is not None:
            fragments.append(fragment)
    return fragments


def fragments_from_chunks(chunks: Iterable[Any]) -> list[Fragment]:
    fragments: list[Fragment] = []
    for chunk in chunks:
        fragments.extend(fragments_from_chunk(chunk))
    return fragments


__all__ = [
    "fragment_from_part",
    "fragments_from_chunk",
    "fragments_from_chunks",
    "safe_b64decode",
]
