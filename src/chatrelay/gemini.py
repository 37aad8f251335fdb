"""Gemini generateContent client utilities."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Iterable, Optional

import httpx
from fastapi import status

from .config import Settings
from .schemas.chat import ChatRequest

logger = logging.getLogger(__name__)


_STATUS_MESSAGES: dict[int, str] = {
    400: "The request was rejected as invalid (400 Bad Request). Check the settings or prompt.",
    401: "The API key is invalid or expired. Check your settings.",
    403: "Access denied (403). Check your network route or the API key's permissions.",
    404: "The requested model does not exist or the path is wrong (404 Not Found).",
    429: "Too many requests, please retry later (429 Too Many Requests).",
    500: "The Gemini server hit an internal error, please retry later (500 Internal Server Error).",
    503: "The Gemini service is temporarily unavailable, please retry later (503 Service Unavailable).",
}


def _detail_text(detail: Any) -> str:
    if isinstance(detail, dict):
        message = detail.get("message")
        if isinstance(message, str) and message:
            return message
        return json.dumps(detail, ensure_ascii=False)
    return str(detail)


def format_gemini_error(status_code: int, detail: Any) -> str:
    """Turn a provider failure into a message fit for the chat UI."""

    text = _detail_text(detail)
    if "API key not valid" in text:
        return _STATUS_MESSAGES[401]
    if "include_thoughts" in text or "thinking is enabled" in text:
        return (
            "The selected model does not support thinking output. Disable "
            "'show thinking' in the settings or switch to a model that supports it."
        )
    if "SAFETY" in text:
        return "The generated content was blocked by safety filters. Try rephrasing the prompt."
    message = _STATUS_MESSAGES.get(status_code)
    if message:
        return message
    return f"Request failed: {text}"


class GeminiError(Exception):
    """Wrap transport or API failures when communicating with Gemini."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(format_gemini_error(status_code, detail))
        self.status_code = status_code
        self.detail = detail


@dataclass
class ServerSentEvent:
    """Represents a parsed Server-Sent Event."""

    data: str
    event: str = "message"
    event_id: Optional[str] = None


class GeminiClient:
    """Client responsible for generateContent calls against a Gemini endpoint."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._http = http_client

    @property
    def _base_url(self) -> str:
        """Return the API base URL without a trailing slash."""

        return str(self._settings.gemini_base_url).rstrip("/")

    def _api_key(self, override: str | None = None) -> str:
        if override and override.strip():
            return override.strip()
        if self._settings.gemini_api_key is not None:
            return self._settings.gemini_api_key.get_secret_value()
        raise GeminiError(status.HTTP_401_UNAUTHORIZED, "API key not valid: missing")

    def _headers(self, api_key: str, *, accept: str = "application/json") -> dict[str, str]:
        return {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
            "Accept": accept,
        }

    def _model_url(self, request: ChatRequest, method: str) -> str:
        model = request.settings.resolve_model(self._settings.default_model)
        if not model.startswith("models/"):
            model = f"models/{model}"
        return f"{self._base_url}/{model}:{method}"

    async def stream_generate(
        self, request: ChatRequest
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield decoded response chunks from streamGenerateContent."""

        url = self._model_url(request, "streamGenerateContent")
        headers = self._headers(
            self._api_key(request.api_key), accept="text/event-stream"
        )
        payload = request.to_gemini_payload()

        try:
            async with self._http.stream(
                "POST",
                url,
                headers=headers,
                params={"alt": "sse"},
                json=payload,
                timeout=self._settings.request_timeout,
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    detail = self._extract_error_detail(body)
                    raise GeminiError(response.status_code, detail)

                async for event in self._iter_events(response):
                    if not event.data or event.data == "[DONE]":
                        continue
                    try:
                        chunk = json.loads(event.data)
                    except json.JSONDecodeError as exc:
                        raise GeminiError(
                            status.HTTP_502_BAD_GATEWAY,
                            f"Malformed stream event: {exc.msg}",
                        ) from exc
                    yield chunk
        except httpx.HTTPError as exc:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    async def generate(self, request: ChatRequest) -> dict[str, Any]:
        """Return the full generateContent response body."""

        url = self._model_url(request, "generateContent")
        headers = self._headers(self._api_key(request.api_key))

        try:
            response = await self._http.post(
                url,
                headers=headers,
                json=request.to_gemini_payload(),
                timeout=self._settings.request_timeout,
            )
        except httpx.HTTPError as exc:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            detail = self._extract_error_detail(response.content)
            raise GeminiError(response.status_code, detail)

        try:
            body = response.json()
        except ValueError as exc:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        candidates = body.get("candidates") if isinstance(body, dict) else None
        first = candidates[0] if isinstance(candidates, list) and candidates else None
        if not isinstance(first, dict) or not first.get("content"):
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, "No content generated.")
        return body

    async def list_models(self, api_key: str | None = None) -> list[dict[str, Any]]:
        """Return the model entries from the `/models` endpoint."""

        url = f"{self._base_url}/models"
        try:
            response = await self._http.get(url, headers=self._headers(self._api_key(api_key)))
        except httpx.HTTPError as exc:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            detail = self._extract_error_detail(response.content)
            raise GeminiError(response.status_code, detail)

        try:
            payload = response.json()
        except ValueError as exc:
            raise GeminiError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        models = payload.get("models") if isinstance(payload, dict) else None
        return [item for item in models or [] if isinstance(item, dict)]

    async def _iter_events(
        self, response: httpx.Response
    ) -> AsyncGenerator[ServerSentEvent, None]:
        buffer: list[str] = []
        async for line in response.aiter_lines():
            if not line:
                if buffer:
                    yield self._parse_event(buffer)
                    buffer.clear()
                continue
            if line.startswith(":"):
                continue
            buffer.append(line)
        if buffer:
            yield self._parse_event(buffer)

    def _parse_event(self, lines: Iterable[str]) -> ServerSentEvent:
        event_name: Optional[str] = None
        event_id: Optional[str] = None
        data_lines: list[str] = []

        for line in lines:
            field, _, value = line.partition(":")
            value = value.lstrip(" ")
            if field == "event":
                event_name = value or None
            elif field == "data":
                data_lines.append(value)
            elif field == "id":
                event_id = value or None

        data = "\n".join(data_lines)
        return ServerSentEvent(
            data=data, event=event_name or "message", event_id=event_id
        )

    @staticmethod
    def _extract_error_detail(raw: bytes) -> Any:
        if not raw:
            return "Gemini returned an empty error response."
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, list) and payload:
            payload = payload[0]
        if isinstance(payload, dict):
            return payload.get("error") or payload
        return payload


__all__ = ["GeminiClient", "GeminiError", "ServerSentEvent", "format_gemini_error"]
