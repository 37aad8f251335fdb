"""Response assembly package."""

from .assembler import AssemblyRun, ResponseAssembler
from .fetcher import batch_fetch_images, fetch_image
from .markup import is_fetchable_image_url, parse_markdown_images
from .merger import merge_fragment
from .resolver import CdnImageResolver
from .types import (
    AssemblyCancelled,
    AssemblyState,
    BinaryFragment,
    ContentPart,
    Fragment,
    StreamFatalError,
    TextFragment,
)

__all__ = [
    "AssemblyCancelled",
    "AssemblyRun",
    "AssemblyState",
    "BinaryFragment",
    "CdnImageResolver",
    "ContentPart",
    "Fragment",
    "ResponseAssembler",
    "StreamFatalError",
    "TextFragment",
    "batch_fetch_images",
    "fetch_image",
    "is_fetchable_image_url",
    "merge_fragment",
    "parse_markdown_images",
]
