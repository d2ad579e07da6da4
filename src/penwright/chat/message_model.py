"""Conversation message data model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


class ChatRole(str, Enum):
    USER = "user"
    AI = "ai"
    SYSTEM = "system"


@dataclass(slots=True)
class ChatMessage:
    """Represents one row of the editor's conversation log.

    Attributes:
        role: Who produced the message.
        content: Message text.
        is_reply: ``True`` for conversational AI answers (no document edit).
        is_error: ``True`` for failures surfaced to the user.
        id: Stable identifier, unique within a log.
        created_at: Creation timestamp; logs are ordered by creation.
    """

    role: ChatRole
    content: str
    is_reply: bool = False
    is_error: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role=ChatRole.USER, content=content)

    @classmethod
    def ai(cls, content: str, *, is_reply: bool) -> ChatMessage:
        return cls(role=ChatRole.AI, content=content, is_reply=is_reply)

    @classmethod
    def system(cls, content: str, *, is_error: bool = False) -> ChatMessage:
        return cls(role=ChatRole.SYSTEM, content=content, is_error=is_error)

    def as_context(self) -> Dict[str, str]:
        """Role/content pair sent to the collaborator as recent context."""

        return {"role": self.role.value, "content": self.content}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for persistence."""

        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "is_reply": self.is_reply,
            "is_error": self.is_error,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ChatMessage:
        """Rebuild a persisted message; raises ``ValueError`` on bad data."""

        role = ChatRole(payload.get("role"))
        content = payload.get("content")
        if not isinstance(content, str):
            raise ValueError("Chat message content must be a string")
        message = cls(
            role=role,
            content=content,
            is_reply=bool(payload.get("is_reply", False)),
            is_error=bool(payload.get("is_error", False)),
        )
        message_id = payload.get("id")
        if isinstance(message_id, str) and message_id:
            message.id = message_id
        created_at = payload.get("created_at")
        if isinstance(created_at, str):
            try:
                message.created_at = datetime.fromisoformat(created_at)
            except ValueError:
                pass
        return message


__all__ = ["ChatMessage", "ChatRole"]
