"""Transform gateway: one request in, a classified result out."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from openai import APIStatusError

from ..chat.message_model import ChatMessage
from .backends import TransformBackend
from .types import (
    ActionKind,
    EditProposal,
    Reply,
    TransformError,
    TransformRequest,
    TransformResult,
    error_details,
)

__all__ = ["MAX_CONTEXT_MESSAGES", "TransformGateway", "classify_response", "select_context"]

LOGGER = logging.getLogger(__name__)

MAX_CONTEXT_MESSAGES = 6


def select_context(messages: Iterable[ChatMessage], limit: int = MAX_CONTEXT_MESSAGES) -> tuple[ChatMessage, ...]:
    """Most recent ``limit`` messages, skipping error notices."""

    if limit <= 0:
        return ()
    usable = [message for message in messages if not message.is_error]
    return tuple(usable[-limit:])


def classify_response(body: Any) -> TransformResult:
    """Route a decoded collaborator body to :class:`Reply` or :class:`EditProposal`."""

    if not isinstance(body, Mapping):
        raise TransformError("malformed", "The AI response was not a JSON object")
    error = body.get("error")
    if error:
        message = error if isinstance(error, str) else "The AI service reported an error"
        raise TransformError("collaborator", message, details=error_details(body))
    kind = body.get("type")
    if kind not in ("reply", "edit"):
        raise TransformError("malformed", "The AI response did not say whether it was a reply or an edit")
    result = body.get("result")
    if not isinstance(result, str) or not result.strip():
        raise TransformError("empty", "The AI returned an empty result")
    if kind == "reply":
        return Reply(text=result)
    return EditProposal(text=result)


class TransformGateway:
    """Builds requests, calls the backend and classifies what comes back.

    The gateway keeps no per-request state; guarding against overlapping
    requests is the caller's job.
    """

    def __init__(self, backend: TransformBackend, *, max_context: int = MAX_CONTEXT_MESSAGES) -> None:
        self._backend = backend
        self._max_context = max(0, min(int(max_context), MAX_CONTEXT_MESSAGES))

    @property
    def backend(self) -> TransformBackend:
        return self._backend

    @property
    def max_context(self) -> int:
        return self._max_context

    def build_request(
        self,
        action: ActionKind | str,
        text: str,
        *,
        is_partial: bool = False,
        recent_context: Iterable[ChatMessage] = (),
        custom_prompt: str | None = None,
        document_title: str | None = None,
    ) -> TransformRequest:
        try:
            kind = ActionKind.parse(action)
        except ValueError as exc:
            raise TransformError("invalid_request", str(exc)) from exc
        title = (document_title or "").strip() or None
        if not (text or "").strip():
            if not (kind is ActionKind.GENERATE and title):
                raise TransformError("invalid_request", "There is no text to send to the AI")
        prompt = (custom_prompt or "").strip() or None
        if kind is ActionKind.CUSTOM and prompt is None:
            raise TransformError("invalid_request", "A custom action needs an instruction")
        return TransformRequest(
            action=kind,
            input_text=text or "",
            is_partial=is_partial,
            context_messages=select_context(recent_context, self._max_context),
            custom_prompt=prompt,
            document_title=title,
        )

    async def request(
        self,
        action: ActionKind | str,
        text: str,
        *,
        is_partial: bool = False,
        recent_context: Iterable[ChatMessage] = (),
        custom_prompt: str | None = None,
        document_title: str | None = None,
    ) -> TransformResult:
        transform_request = self.build_request(
            action,
            text,
            is_partial=is_partial,
            recent_context=recent_context,
            custom_prompt=custom_prompt,
            document_title=document_title,
        )
        LOGGER.debug(
            "Transform request: action=%s, partial=%s, chars=%d, context=%d",
            transform_request.action.value,
            transform_request.is_partial,
            len(transform_request.input_text),
            len(transform_request.context_messages),
        )
        try:
            body = await self._backend.send(transform_request)
        except TransformError:
            raise
        except APIStatusError as exc:
            raise TransformError(
                "status", f"AI service returned HTTP {exc.status_code}", details=str(exc)
            ) from exc
        except Exception as exc:
            LOGGER.debug("Transform backend failed", exc_info=True)
            raise TransformError("transport", "The AI request failed", details=str(exc)) from exc
        result = classify_response(body)
        LOGGER.debug("Transform classified as %s (%d chars)", type(result).__name__, len(result.text))
        return result

    async def aclose(self) -> None:
        await self._backend.aclose()
