import pathlib
import sys
from typing import Callable

import httpx
import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def image_cdn() -> Callable[..., httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered from a URL table.

    Values are ``(status, content_type, body)`` tuples; URLs missing from the
    table answer 404. Every requested URL is appended to ``client.requested``.
    """

    def _factory(table: dict[str, tuple[int, str | None, bytes]]) -> httpx.AsyncClient:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            requested.append(url)
            status, content_type, body = table.get(url, (404, None, b""))
            headers = {"Content-Type": content_type} if content_type else {}
            return httpx.Response(status, headers=headers, content=body)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client.requested = requested  # type: ignore[attr-defined]
        return client

    return _factory
