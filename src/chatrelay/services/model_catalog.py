"""Cached listing of the models exposed by the Gemini endpoint."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class ModelLister(Protocol):
    async def list_models(self, api_key: str | None = None) -> list[dict[str, Any]]:
        ...


class ModelCatalog:
    """Hold the model list for one application instance.

    The cache lives on the instance (``app.state.model_catalog``) rather than
    at module level, so separate apps and tests never share entries.
    """

    def __init__(self, lister: ModelLister, *, ttl_seconds: float = 300.0) -> None:
        self._lister = lister
        self._ttl_seconds = ttl_seconds
        self._models: list[dict[str, Any]] | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        self._models = None
        self._expires_at = 0.0

    async def get_models(
        self, *, api_key: str | None = None, force_refresh: bool = False
    ) -> list[dict[str, Any]]:
        now = time.monotonic()
        if not force_refresh and self._models is not None and now < self._expires_at:
            return list(self._models)

        async with self._lock:
            now = time.monotonic()
            if not force_refresh and self._models is not None and now < self._expires_at:
                return list(self._models)
            models = await self._lister.list_models(api_key)
            self._models = models
            self._expires_at = now + self._ttl_seconds
            logger.debug("Model catalog refreshed with %d entries", len(models))
            return list(models)


__all__ = ["ModelCatalog", "ModelLister"]
