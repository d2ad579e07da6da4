"""Transport backends that deliver a transform request to the collaborator."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Protocol

import httpx

from .client import AIClient
from .prompts import build_messages
from .types import TransformError, TransformRequest, error_details

__all__ = ["HttpTransformBackend", "OpenAITransformBackend", "TransformBackend"]

LOGGER = logging.getLogger(__name__)

_JSON_RESPONSE_FORMAT: Mapping[str, Any] = {"type": "json_object"}


class TransformBackend(Protocol):
    """Sends one request and returns the collaborator's decoded JSON body."""

    async def send(self, request: TransformRequest) -> Any:
        ...

    async def aclose(self) -> None:
        ...


class OpenAITransformBackend:
    """Runs transform actions against an OpenAI-compatible chat endpoint."""

    def __init__(self, client: AIClient, *, temperature: float | None = 0.7) -> None:
        self._client = client
        self._temperature = temperature

    @property
    def client(self) -> AIClient:
        return self._client

    async def send(self, request: TransformRequest) -> Any:
        messages = build_messages(request)
        content = await self._client.complete_chat(
            messages,
            response_format=_JSON_RESPONSE_FORMAT,
            temperature=self._temperature,
            metadata={"action": request.action.value},
        )
        if not content.strip():
            raise TransformError("empty", "The AI returned an empty response")
        try:
            return json.loads(_strip_code_fence(content))
        except json.JSONDecodeError as exc:
            LOGGER.debug("Collaborator content was not JSON: %r", content[:200])
            raise TransformError("malformed", "The AI response was not valid JSON", details=str(exc)) from exc

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpTransformBackend:
    """Posts the request payload to a JSON collaborator endpoint."""

    def __init__(
        self,
        endpoint: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 90.0,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("endpoint is required for the HTTP transform backend")
        self._endpoint = endpoint
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=dict(headers or {}))

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def send(self, request: TransformRequest) -> Any:
        payload = request.to_payload()
        LOGGER.debug("POST %s action=%s partial=%s", self._endpoint, payload["actionKind"], payload["isPartial"])
        try:
            response = await self._client.post(self._endpoint, json=payload)
        except httpx.HTTPError as exc:
            raise TransformError("transport", "Could not reach the AI service", details=str(exc)) from exc

        body: Any = None
        decode_error: ValueError | None = None
        try:
            body = response.json()
        except ValueError as exc:
            decode_error = exc

        if not response.is_success:
            message = f"AI service returned HTTP {response.status_code}"
            details = None
            if isinstance(body, Mapping):
                error = body.get("error")
                if isinstance(error, str) and error.strip():
                    message = error.strip()
                details = error_details(body)
            raise TransformError("status", message, details=details)

        if decode_error is not None:
            raise TransformError(
                "malformed", "The AI service returned a body that is not JSON", details=str(decode_error)
            ) from decode_error
        return body

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```") and text.endswith("```"):
        text = text[3:-3]
        if text.lower().startswith("json"):
            text = text[4:]
    return text.strip()
