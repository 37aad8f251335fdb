"""Assemble provider fragments into ordered content parts.

Two drivers share one merge step and one splice step:

* ``ResponseAssembler.stream`` consumes a live fragment stream and yields a
  snapshot of the part list after every fragment. Text is buffered per tail
  part until a complete Markdown image reference appears, at which point the
  reference is downloaded and spliced into place while later fragments wait.
* ``ResponseAssembler.assemble`` merges a complete fragment list and resolves
  every reference in a single batch.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, AsyncGenerator, AsyncIterable, Iterable

from .markup import settled_length, split_image_markup
from .merger import merge_fragment, merge_fragments
from .resolver import CdnImageResolver
from .types import (
    AssemblyCancelled,
    AssemblyState,
    ContentPart,
    Fragment,
    StreamFatalError,
    TextFragment,
)


logger = logging.getLogger(__name__)


def _is_cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


class AssemblyRun:
    """State for one streaming assembly pass."""

    def __init__(self, resolver: CdnImageResolver | None) -> None:
        self._resolver = resolver
        self.parts: list[ContentPart] = []
        self.state = AssemblyState.IDLE
        # Offset into the tail text part where unfinalised text begins.
        self._pending_start: int | None = None
        # Whitespace that trailed a spliced image. It belongs to the text part
        # the image was cut from and is only emitted once more text follows.
        self._held: TextFragment | None = None

    @property
    def pending_text(self) -> str:
        if self._pending_start is None or not self.parts or not self.parts[-1].is_text:
            return ""
        return (self.parts[-1].text or "")[self._pending_start :]

    def start(self) -> None:
        if self.state is AssemblyState.IDLE:
            self.state = AssemblyState.ACCUMULATING

    def snapshot(self) -> list[ContentPart]:
        return list(self.parts)

    def abort(self) -> None:
        if self.state is not AssemblyState.FINISHED:
            self.state = AssemblyState.ABORTED
        self._pending_start = None
        self._held = None

    def finish(self) -> list[ContentPart]:
        # Buffered text already lives in the tail part; dropping the marker
        # leaves it there as plain text. Held whitespace has nothing after it.
        self._pending_start = None
        self._held = None
        self.state = AssemblyState.FINISHED
        return self.snapshot()

    async def feed(
        self,
        fragment: Fragment,
        cancel_event: asyncio.Event | None = None,
    ) -> bool:
        """Merge one fragment; returns False if cancellation hit mid-resolution."""

        self.start()
        if self._held is not None:
            held, self._held = self._held, None
            if isinstance(fragment, TextFragment) and fragment.thought == held.thought:
                signature = fragment.thought_signature or held.thought_signature
                text = held.text + fragment.text
                if not text.strip():
                    self._held = TextFragment(text, held.thought, signature)
                    return True
                fragment = TextFragment(text, fragment.thought, signature)

        coalesces = (
            isinstance(fragment, TextFragment)
            and bool(self.parts)
            and self.parts[-1].is_text
            and self.parts[-1].thought == fragment.thought
        )
        merge_fragment(self.parts, fragment)

        if self._resolver is None:
            return True

        if not isinstance(fragment, TextFragment):
            self._pending_start = None
            return True

        tail_text = self.parts[-1].text or ""
        if not coalesces:
            self._pending_start = 0
        elif self._pending_start is None:
            self._pending_start = len(tail_text) - len(fragment.text)

        pending = self.pending_text
        if not self._resolver.needs_resolution(pending):
            self._pending_start += settled_length(pending)
            return True

        return await self._resolve_pending(cancel_event)

    async def _resolve_pending(self, cancel_event: asyncio.Event | None) -> bool:
        assert self._resolver is not None
        self.state = AssemblyState.RESOLVING

        tail = self.parts[-1]
        start = self._pending_start or 0
        prefix = (tail.text or "")[:start]
        segments = split_image_markup((tail.text or "")[start:])
        references = [value for kind, value in segments if kind == "image"]

        results = await self._resolver.resolve(references)
        if _is_cancelled(cancel_event):
            logger.info("Assembly cancelled during image resolution; discarding results")
            self.abort()
            return False

        spliced: list[ContentPart] = [replace(tail, text=prefix)] if prefix else []
        CdnImageResolver.splice(
            segments,
            results,
            thought=tail.thought,
            thought_signature=tail.thought_signature,
            parts=spliced,
        )
        self.parts[-1:] = spliced

        self._pending_start = self._reseed_offset(segments)
        if not self.parts[-1].is_text:
            remainder = segments[-1][1] if segments[-1][0] == "text" else ""
            self._held = TextFragment(remainder, tail.thought, tail.thought_signature)
        self.state = AssemblyState.ACCUMULATING
        return True

    def _reseed_offset(self, segments: list[tuple[str, Any]]) -> int | None:
        # Text after the last reference may hold the start of the next one.
        if not segments or segments[-1][0] != "text":
            return None
        remainder = segments[-1][1]
        if not self.parts or not self.parts[-1].is_text:
            return None
        tail_text = self.parts[-1].text or ""
        if not tail_text.endswith(remainder):
            return None
        return len(tail_text) - len(remainder)


class ResponseAssembler:
    """Turn provider fragments into content parts, inlining CDN images."""

    def __init__(
        self,
        resolver: CdnImageResolver | None = None,
        *,
        resolve_images: bool = True,
    ) -> None:
        self._resolver = resolver
        self._resolve_images = resolve_images

    @property
    def resolves_images(self) -> bool:
        return self._resolve_images and self._resolver is not None

    def new_run(self) -> AssemblyRun:
        return AssemblyRun(self._resolver if self.resolves_images else None)

    async def stream(
        self,
        fragments: AsyncIterable[Fragment],
        *,
        cancel_event: asyncio.Event | None = None,
        run: AssemblyRun | None = None,
    ) -> AsyncGenerator[list[ContentPart], None]:
        """Yield the full part list after each fragment, then once at the end."""

        run = run or self.new_run()
        run.start()
        iterator = fragments.__aiter__()
        try:
            while True:
                if _is_cancelled(cancel_event):
                    logger.info("Assembly cancelled after %d part(s)", len(run.parts))
                    run.abort()
                    return

                try:
                    fragment = await iterator.__anext__()
                except StopAsyncIteration:
                    break
                except StreamFatalError:
                    run.abort()
                    raise
                except Exception as exc:
                    run.abort()
                    logger.error("Response stream failed: %s", exc)
                    raise StreamFatalError(str(exc) or exc.__class__.__name__) from exc

                if not await run.feed(fragment, cancel_event):
                    return
                yield run.snapshot()

            yield run.finish()
        finally:
            if run.state is not AssemblyState.FINISHED:
                run.abort()
                aclose = getattr(iterator, "aclose", None)
                if aclose is not None:
                    await aclose()

    async def assemble(
        self,
        fragments: Iterable[Fragment],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[ContentPart]:
        """Merge all fragments, then resolve every image reference in one batch."""

        parts = merge_fragments(fragments)

        if not self.resolves_images:
            return parts
        assert self._resolver is not None

        plans: dict[int, list[tuple[str, Any]]] = {}
        references = []
        for index, part in enumerate(parts):
            if not part.is_text or not self._resolver.needs_resolution(part.text):
                continue
            segments = split_image_markup(part.text or "")
            plans[index] = segments
            references.extend(value for kind, value in segments if kind == "image")

        if not plans:
            return parts

        if _is_cancelled(cancel_event):
            raise AssemblyCancelled("Assembly cancelled before image resolution")

        results = await self._resolver.resolve(references)
        if _is_cancelled(cancel_event):
            raise AssemblyCancelled("Assembly cancelled during image resolution")

        assembled: list[ContentPart] = []
        cursor = 0
        for index, part in enumerate(parts):
            segments = plans.get(index)
            if segments is None:
                assembled.append(part)
                continue
            count = sum(1 for kind, _ in segments if kind == "image")
            assembled.extend(
                CdnImageResolver.splice(
                    segments,
                    results[cursor : cursor + count],
                    thought=part.thought,
                    thought_signature=part.thought_signature,
                )
            )
            cursor += count
        return assembled


__all__ = ["AssemblyRun", "ResponseAssembler"]
