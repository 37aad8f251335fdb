"""Type definitions for the response assembly subsystem."""

from __future__ import annotations

import base64
import enum
from dataclasses import dataclass, field
from typing import Any, Union


class StreamFatalError(Exception):
    """The upstream fragment stream failed; the whole assembly is aborted."""


class AssemblyCancelled(Exception):
    """Raised by the one-shot driver when cancellation fires before resolving."""


class AssemblyState(str, enum.Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    RESOLVING = "resolving"
    FINISHED = "finished"
    ABORTED = "aborted"


@dataclass(frozen=True)
class TextFragment:
    text: str
    thought: bool = False
    thought_signature: str | None = None


@dataclass(frozen=True)
class BinaryFragment:
    mime_type: str
    data: bytes
    thought: bool = False
    thought_signature: str | None = None


Fragment = Union[TextFragment, BinaryFragment]


@dataclass(frozen=True)
class InlineData:
    mime_type: str
    data: bytes

    def to_dict(self) -> dict[str, str]:
        return {
            "mimeType": self.mime_type,
            "data": base64.b64encode(self.data).decode("ascii"),
        }


@dataclass(frozen=True)
class ContentPart:
    """One rendered unit of a model response: text or inline binary data."""

    text: str | None = None
    inline_data: InlineData | None = None
    thought: bool = False
    thought_signature: str | None = None

    def __post_init__(self) -> None:
        if (self.text is None) == (self.inline_data is None):
            raise ValueError("ContentPart requires exactly one of text or inline_data")

    @property
    def is_text(self) -> bool:
        return self.text is not None

    @classmethod
    def from_fragment(cls, fragment: Fragment) -> "ContentPart":
        if isinstance(fragment, TextFragment):
            return cls(
                text=fragment.text,
                thought=fragment.thought,
                thought_signature=fragment.thought_signature,
            )
        return cls(
            inline_data=InlineData(fragment.mime_type, fragment.data),
            thought=fragment.thought,
            thought_signature=fragment.thought_signature,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.text is not None:
            payload["text"] = self.text
        elif self.inline_data is not None:
            payload["inlineData"] = self.inline_data.to_dict()
        payload["thought"] = self.thought
        if self.thought_signature is not None:
            payload["thoughtSignature"] = self.thought_signature
        return payload


@dataclass(frozen=True)
class ImageReference:
    url: str
    alt: str | None = None

    @property
    def markup(self) -> str:
        """Render the reference back into the Markdown it was parsed from."""

        return f"![{self.alt or ''}]({self.url})"


@dataclass(frozen=True)
class ParsedMarkup:
    text_segments: list[str] = field(default_factory=list)
    references: list[ImageReference] = field(default_factory=list)
    segments: list[tuple[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class FetchedImage:
    url: str
    mime_type: str
    data: bytes


__all__ = [
    "AssemblyCancelled",
    "AssemblyState",
    "BinaryFragment",
    "ContentPart",
    "FetchedImage",
    "Fragment",
    "ImageReference",
    "InlineData",
    "ParsedMarkup",
    "StreamFatalError",
    "TextFragment",
]
