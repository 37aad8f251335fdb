"""Chat API routes."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from sse_starlette.sse import EventSourceResponse

from ..chat.assembly.types import StreamFatalError
from ..chat.orchestrator import ChatOrchestrator
from ..gemini import GeminiError
from ..schemas.chat import ChatRequest
from ..services.model_catalog import ModelCatalog

router = APIRouter(prefix="/api", tags=["chat"])

logger = logging.getLogger(__name__)


@router.post("/chat/stream", response_model=None, status_code=200)
async def stream_chat(payload: ChatRequest, request: Request) -> EventSourceResponse:
    """Stream assembled response snapshots through Server-Sent Events."""

    orchestrator: ChatOrchestrator = request.app.state.chat_orchestrator
    cancel_event = asyncio.Event()

    async def event_publisher():
        try:
            async for snapshot in orchestrator.stream(
                payload, cancel_event=cancel_event
            ):
                if await request.is_disconnected():
                    cancel_event.set()
                    continue
                yield {
                    "event": "message",
                    "data": snapshot.model_dump_json(by_alias=True),
                }
            if not cancel_event.is_set():
                yield {"event": "done", "data": "done"}
        except (StreamFatalError, GeminiError) as exc:
            logger.warning("Chat stream failed: %s", exc)
            yield {"event": "error", "data": json.dumps({"error": str(exc)})}
        finally:
            cancel_event.set()

    return EventSourceResponse(event_publisher())


@router.post("/chat", status_code=200)
async def chat(payload: ChatRequest, request: Request) -> dict[str, Any]:
    """Return the fully assembled response in one body."""

    orchestrator: ChatOrchestrator = request.app.state.chat_orchestrator
    try:
        response = await orchestrator.generate(payload)
    except GeminiError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    except StreamFatalError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return response.model_dump(by_alias=True)


@router.get("/models", status_code=200)
async def list_models(
    request: Request,
    refresh: bool = Query(default=False),
) -> dict[str, Any]:
    """Return the models available to the configured key."""

    catalog: ModelCatalog = request.app.state.model_catalog
    api_key = request.headers.get("x-goog-api-key")
    try:
        models = await catalog.get_models(api_key=api_key, force_refresh=refresh)
    except GeminiError as exc:
        if exc.status_code in (401, 403):
            # A rejected key must not leave a list fetched with another key cached
            catalog.invalidate()
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return {"data": models}


__all__ = ["router"]
