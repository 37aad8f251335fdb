"""High level chat orchestration: provider call, fragment mapping, assembly."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Protocol

from ..schemas.chat import ChatRequest, ChatResponse
from .assembly import ResponseAssembler
from .assembly.fragments import fragments_from_chunk, fragments_from_chunks
from .assembly.resolver import CdnImageResolver
from .assembly.types import Fragment


logger = logging.getLogger(__name__)


class ContentProvider(Protocol):
    def stream_generate(self, request: ChatRequest) -> AsyncIterator[dict[str, Any]]:
        ...

    async def generate(self, request: ChatRequest) -> dict[str, Any]:
        ...


class ChatOrchestrator:
    """Coordinate a provider response with the response assembler."""

    def __init__(
        self,
        provider: ContentProvider,
        resolver: CdnImageResolver | None,
        *,
        enable_cdn_images: bool = True,
    ) -> None:
        self._provider = provider
        self._resolver = resolver
        self._enable_cdn_images = enable_cdn_images

    def _assembler_for(self, request: ChatRequest) -> ResponseAssembler:
        enabled = request.settings.enable_cdn_image_processing
        if enabled is None:
            enabled = self._enable_cdn_images
        return ResponseAssembler(self._resolver, resolve_images=enabled)

    async def _fragments(self, request: ChatRequest) -> AsyncGenerator[Fragment, None]:
        async for chunk in self._provider.stream_generate(request):
            for fragment in fragments_from_chunk(chunk):
                yield fragment

    async def stream(
        self,
        request: ChatRequest,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[ChatResponse, None]:
        """Yield a response snapshot after every fragment of the model's reply."""

        user_content = request.user_content()
        assembler = self._assembler_for(request)
        snapshots = 0
        async for parts in assembler.stream(
            self._fragments(request), cancel_event=cancel_event
        ):
            snapshots += 1
            yield ChatResponse.from_parts(user_content, parts)
        logger.info("Chat stream finished after %d snapshot(s)", snapshots)

    async def generate(
        self,
        request: ChatRequest,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ChatResponse:
        body = await self._provider.generate(request)
        fragments = fragments_from_chunks([body])
        assembler = self._assembler_for(request)
        parts = await assembler.assemble(fragments, cancel_event=cancel_event)
        return ChatResponse.from_parts(request.user_content(), parts)


__all__ = ["ChatOrchestrator", "ContentProvider"]
