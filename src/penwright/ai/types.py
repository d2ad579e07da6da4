"""Request and result types exchanged with the AI collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Sequence

from ..chat.message_model import ChatMessage

__all__ = [
    "ActionKind",
    "EditProposal",
    "Reply",
    "TransformError",
    "TransformRequest",
    "TransformResult",
]


class ActionKind(str, Enum):
    """Named transform actions offered to the author."""

    IMPROVE = "improve"
    EXPAND = "expand"
    SUMMARIZE = "summarize"
    FIX_GRAMMAR = "fixGrammar"
    GENERATE = "generate"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str | ActionKind) -> ActionKind:
        """Accept enum values, member names and a few spellings used in the CLI."""

        if isinstance(value, ActionKind):
            return value
        text = str(value or "").strip()
        for member in cls:
            if text == member.value or text.upper() == member.name:
                return member
        lowered = text.lower().replace("-", "_")
        aliases = {"grammar": cls.FIX_GRAMMAR, "fix_grammar": cls.FIX_GRAMMAR, "fixgrammar": cls.FIX_GRAMMAR}
        if lowered in aliases:
            return aliases[lowered]
        raise ValueError(f"Unknown action: {value!r}")

    @property
    def label(self) -> str:
        return _ACTION_LABELS[self]


_ACTION_LABELS = {
    ActionKind.IMPROVE: "Improve writing",
    ActionKind.EXPAND: "Expand",
    ActionKind.SUMMARIZE: "Summarize",
    ActionKind.FIX_GRAMMAR: "Fix grammar",
    ActionKind.GENERATE: "Generate article",
    ActionKind.CUSTOM: "Custom instruction",
}


class TransformError(RuntimeError):
    """Raised when a transform request cannot produce a usable result.

    ``reason`` is one of ``invalid_request``, ``transport``, ``status``,
    ``malformed``, ``empty`` or ``collaborator``.
    """

    REASONS = ("invalid_request", "transport", "status", "malformed", "empty", "collaborator")

    def __init__(self, reason: str, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.reason = reason if reason in self.REASONS else "transport"
        self.details = details

    def __str__(self) -> str:
        base = super().__str__()
        if self.details:
            return f"{base} ({self.details})"
        return base


@dataclass(slots=True, frozen=True)
class TransformRequest:
    """One call to the collaborator, built fresh for every invocation."""

    action: ActionKind
    input_text: str
    is_partial: bool = False
    context_messages: Sequence[ChatMessage] = field(default_factory=tuple)
    custom_prompt: str | None = None
    document_title: str | None = None

    def to_payload(self) -> Dict[str, Any]:
        """JSON body shared by every backend."""

        payload: Dict[str, Any] = {
            "actionKind": self.action.value,
            "text": self.input_text,
            "isPartial": self.is_partial,
            "recentContext": [message.as_context() for message in self.context_messages],
            "documentTitle": self.document_title or "",
        }
        if self.custom_prompt:
            payload["customPrompt"] = self.custom_prompt
        return payload


@dataclass(slots=True, frozen=True)
class Reply:
    """Conversational answer; never touches the document."""

    text: str


@dataclass(slots=True, frozen=True)
class EditProposal:
    """Replacement text for the request's input."""

    text: str


TransformResult = Reply | EditProposal


def error_details(body: Mapping[str, Any]) -> str | None:
    for key in ("details", "message"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None
