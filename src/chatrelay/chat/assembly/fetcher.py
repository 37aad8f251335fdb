"""Bounded downloading of CDN images referenced in model output."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Sequence

import httpx

from .markup import DEFAULT_IMAGE_HOSTS, is_fetchable_image_url, redact_url
from .types import FetchedImage


logger = logging.getLogger(__name__)


DEFAULT_CONCURRENCY = 3
DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_MAX_BYTES = 20 * 1024 * 1024
DEFAULT_MIME_TYPE = "image/png"

_REQUEST_HEADERS = {
    "Accept": "image/*,*/*;q=0.8",
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
}


class ImageFetchError(Exception):
    """Base class for a failed image download."""

    def __init__(self, url: str, message: str):
        super().__init__(message)
        self.url = url


class FetchTimeout(ImageFetchError):
    pass


class FetchHttpError(ImageFetchError):
    def __init__(self, url: str, status_code: int):
        super().__init__(url, f"HTTP {status_code}")
        self.status_code = status_code


class FetchNetworkError(ImageFetchError):
    pass


async def _download(
    client: httpx.AsyncClient,
    url: str,
    *,
    max_bytes: int,
) -> FetchedImage:
    async with client.stream("GET", url, headers=_REQUEST_HEADERS) as resp:
        if not resp.is_success:
            raise FetchHttpError(url, resp.status_code)

        content_type = resp.headers.get("Content-Type", "").split(";")[0].strip()

        chunks: list[bytes] = []
        total = 0
        async for chunk in resp.aiter_bytes():
            if not chunk:
                continue
            total += len(chunk)
            if total > max_bytes:
                raise FetchNetworkError(
                    url, f"Downloaded image exceeds maximum size of {max_bytes} bytes"
                )
            chunks.append(chunk)

    return FetchedImage(
        url=url,
        mime_type=content_type or DEFAULT_MIME_TYPE,
        data=b"".join(chunks),
    )


async def fetch_image(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> FetchedImage | ImageFetchError:
    """Download ``url`` into memory; failures are returned rather than raised."""

    try:
        return await asyncio.wait_for(
            _download(client, url, max_bytes=max_bytes),
            timeout=timeout_ms / 1000,
        )
    except ImageFetchError as exc:
        return exc
    except (asyncio.TimeoutError, httpx.TimeoutException):
        return FetchTimeout(url, f"Timed out after {timeout_ms} ms")
    except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
        return FetchNetworkError(url, str(exc) or exc.__class__.__name__)


async def batch_fetch_images(
    client: httpx.AsyncClient,
    urls: Sequence[str],
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    allowed_hosts: Iterable[str] | None = DEFAULT_IMAGE_HOSTS,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> list[FetchedImage | None]:
    """Fetch ``urls`` in waves of ``concurrency``; results align with ``urls``.

    A URL that fails validation or download maps to ``None``.
    """

    hosts = tuple(allowed_hosts or ())
    wave_size = max(1, concurrency)
    results: list[FetchedImage | None] = [None] * len(urls)

    async def _fetch_one(index: int) -> None:
        url = urls[index]
        if not is_fetchable_image_url(url, hosts):
            logger.warning("Skipping invalid image URL: %s", redact_url(url))
            return
        outcome = await fetch_image(
            client, url, timeout_ms=timeout_ms, max_bytes=max_bytes
        )
        if isinstance(outcome, ImageFetchError):
            logger.warning(
                "Failed to download image %s: %s (%s)",
                redact_url(url),
                outcome,
                outcome.__class__.__name__,
            )
            return
        results[index] = outcome

    for start in range(0, len(urls), wave_size):
        wave = range(start, min(start + wave_size, len(urls)))
        await asyncio.gather(*(_fetch_one(index) for index in wave))

    logger.debug(
        "Batch image download finished: %d/%d resolved",
        sum(1 for item in results if item is not None),
        len(urls),
    )
    return results


__all__ = [
    "DEFAULT_CONCURRENCY",
    "DEFAULT_MAX_BYTES",
    "DEFAULT_TIMEOUT_MS",
    "FetchHttpError",
    "FetchNetworkError",
    "FetchTimeout",
    "ImageFetchError",
    "batch_fetch_images",
    "fetch_image",
]
