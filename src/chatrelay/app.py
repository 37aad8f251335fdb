"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .chat.assembly.resolver import CdnImageResolver
from .chat.orchestrator import ChatOrchestrator
from .config import Settings, get_settings
from .gemini import GeminiClient
from .routers.chat import router as chat_router
from .services.model_catalog import ModelCatalog


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    for name in ("chatrelay", "uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(log_level)

    # httpx logs every image fetch at INFO; keep it quiet unless debugging
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def _build_http_client(settings: Settings) -> httpx.AsyncClient:
    timeout = httpx.Timeout(settings.request_timeout, connect=10.0)
    limits = httpx.Limits(max_connections=50, max_keepalive_connections=20)
    return httpx.AsyncClient(
        timeout=timeout,
        limits=limits,
        http2=True,
        follow_redirects=True,
    )


def create_app(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    # Configure logging first thing
    _configure_logging()

    settings = settings or get_settings()
    client = http_client or _build_http_client(settings)

    gemini_client = GeminiClient(settings, client)
    resolver = CdnImageResolver(
        client,
        concurrency=settings.cdn_image_concurrency,
        timeout_ms=settings.cdn_image_timeout_ms,
        allowed_hosts=settings.cdn_image_allowed_hosts,
        max_bytes=settings.cdn_image_max_bytes,
    )
    orchestrator = ChatOrchestrator(
        gemini_client,
        resolver,
        enable_cdn_images=settings.enable_cdn_image_processing,
    )
    model_catalog = ModelCatalog(gemini_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            try:
                await asyncio.wait_for(client.aclose(), timeout=10.0)
            except asyncio.TimeoutError:
                logging.warning("HTTP client shutdown timed out after 10s")

    app = FastAPI(
        title="Gemini Chat Relay",
        version="0.1.0",
        description="Streaming multimodal chat relay with CDN image inlining.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.chat_orchestrator = orchestrator
    app.state.model_catalog = model_catalog

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | bool]:
        return {
            "status": "ok",
            "default_model": settings.default_model,
            "cdn_image_processing": settings.enable_cdn_image_processing,
        }

    return app


__all__ = ["create_app"]
