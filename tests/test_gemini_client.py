from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from pydantic import AnyHttpUrl, SecretStr

from chatrelay.config import Settings
from chatrelay.gemini import GeminiClient, GeminiError, format_gemini_error
from chatrelay.schemas.chat import ChatRequest


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "gemini_api_key": SecretStr("server-key"),
        "gemini_base_url": AnyHttpUrl("https://example.com/v1beta"),
        "default_model": "gemini-test",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_client(handler, **overrides: Any) -> GeminiClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiClient(make_settings(**overrides), http_client)


def _sse_body(*events: Any) -> bytes:
    lines = []
    for event in events:
        data = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode("utf-8")


def test_parse_event_supports_multiple_data_lines() -> None:
    client = make_client(lambda request: httpx.Response(200))

    event = client._parse_event(  # type: ignore[attr-defined]
        [
            "event: completion",
            "id: test-id",
            "data: part one",
            "data: part two",
        ]
    )

    assert event.event == "completion"
    assert event.event_id == "test-id"
    assert event.data == "part one\npart two"


@pytest.mark.parametrize(
    ("status_code", "detail", "expected"),
    [
        (400, {"message": "API key not valid. Please pass a valid API key."}, "API key is invalid"),
        (400, {"message": "include_thoughts is only enabled when thinking is enabled"}, "does not support thinking"),
        (200, "finishReason: SAFETY", "safety filters"),
        (429, {"message": "Resource exhausted"}, "429 Too Many Requests"),
        (503, "overloaded", "503 Service Unavailable"),
        (418, {"message": "teapot"}, "Request failed: teapot"),
    ],
)
def test_format_gemini_error(status_code: int, detail: Any, expected: str) -> None:
    assert expected in format_gemini_error(status_code, detail)


def test_gemini_error_keeps_status_and_detail() -> None:
    error = GeminiError(404, {"message": "models/nope is not found"})
    assert error.status_code == 404
    assert error.detail == {"message": "models/nope is not found"}
    assert "404 Not Found" in str(error)


@pytest.mark.anyio
async def test_stream_generate_yields_decoded_chunks() -> None:
    seen: list[httpx.Request] = []
    chunk_one = {"candidates": [{"content": {"parts": [{"text": "Hel"}]}}]}
    chunk_two = {"candidates": [{"content": {"parts": [{"text": "lo"}]}}]}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            headers={"Content-Type": "text/event-stream"},
            content=b": keep-alive\n\n" + _sse_body(chunk_one, chunk_two, "[DONE]"),
        )

    client = make_client(handler)
    request = ChatRequest.model_validate({"apiKey": "user-key", "prompt": "hi"})

    chunks = [chunk async for chunk in client.stream_generate(request)]

    assert chunks == [chunk_one, chunk_two]
    sent = seen[0]
    assert sent.url.path == "/v1beta/models/gemini-test:streamGenerateContent"
    assert sent.url.params["alt"] == "sse"
    assert sent.headers["x-goog-api-key"] == "user-key"
    body = json.loads(sent.content)
    assert body["contents"] == [{"role": "user", "parts": [{"text": "hi"}]}]


@pytest.mark.anyio
async def test_stream_generate_raises_on_http_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json=[{"error": {"code": 400, "message": "API key not valid."}}],
        )

    client = make_client(handler)

    with pytest.raises(GeminiError) as excinfo:
        async for _ in client.stream_generate(ChatRequest(prompt="hi")):
            pass

    assert excinfo.value.status_code == 400
    assert "API key is invalid" in str(excinfo.value)


@pytest.mark.anyio
async def test_stream_generate_rejects_malformed_events() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"data: {not json\n\n")

    client = make_client(handler)

    with pytest.raises(GeminiError) as excinfo:
        async for _ in client.stream_generate(ChatRequest(prompt="hi")):
            pass

    assert excinfo.value.status_code == 502


@pytest.mark.anyio
async def test_stream_generate_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    client = make_client(handler)

    with pytest.raises(GeminiError) as excinfo:
        async for _ in client.stream_generate(ChatRequest(prompt="hi")):
            pass

    assert excinfo.value.status_code == 502


@pytest.mark.anyio
async def test_generate_uses_configured_key_and_returns_body() -> None:
    body = {"candidates": [{"content": {"parts": [{"text": "done"}]}}]}
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=body)

    client = make_client(handler)

    assert await client.generate(ChatRequest(prompt="hi")) == body
    assert seen[0].url.path == "/v1beta/models/gemini-test:generateContent"
    assert seen[0].headers["x-goog-api-key"] == "server-key"


@pytest.mark.anyio
async def test_generate_without_candidates_is_an_error() -> None:
    client = make_client(lambda request: httpx.Response(200, json={"candidates": []}))

    with pytest.raises(GeminiError, match="No content generated"):
        await client.generate(ChatRequest(prompt="hi"))


@pytest.mark.anyio
async def test_missing_api_key_is_rejected_before_any_request(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    client = make_client(handler, gemini_api_key=None)

    with pytest.raises(GeminiError) as excinfo:
        await client.generate(ChatRequest(prompt="hi"))

    assert excinfo.value.status_code == 401
    assert seen == []


@pytest.mark.anyio
async def test_list_models_filters_entries() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1beta/models"
        return httpx.Response(
            200, json={"models": [{"name": "models/a"}, "junk", {"name": "models/b"}]}
        )

    client = make_client(handler)

    models = await client.list_models()

    assert [model["name"] for model in models] == ["models/a", "models/b"]


@pytest.mark.anyio
@pytest.mark.parametrize(
    "body",
    [
        {"candidates": ["junk"]},
        {"candidates": [None]},
        {"candidates": "oops"},
        {"candidates": [{"finishReason": "SAFETY_OTHER"}]},
    ],
)
async def test_generate_rejects_malformed_candidates(body: dict[str, Any]) -> None:
    client = make_client(lambda request: httpx.Response(200, json=body))

    with pytest.raises(GeminiError) as excinfo:
        await client.generate(ChatRequest(prompt="hi"))

    assert excinfo.value.status_code == 502


@pytest.mark.anyio
async def test_generate_rejects_non_json_body() -> None:
    client = make_client(lambda request: httpx.Response(200, content=b"<html>"))

    with pytest.raises(GeminiError) as excinfo:
        await client.generate(ChatRequest(prompt="hi"))

    assert excinfo.value.status_code == 502


@pytest.mark.anyio
async def test_list_models_rejects_non_json_body() -> None:
    client = make_client(lambda request: httpx.Response(200, content=b"not json"))

    with pytest.raises(GeminiError) as excinfo:
        await client.list_models()

    assert excinfo.value.status_code == 502
