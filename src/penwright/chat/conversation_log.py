"""Append-only conversation log with debounced persistence."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..events import ChatMessageAppended, ConversationCleared, EventBus, NoticePosted
from ..services.scheduling import DebouncedTask, Scheduler
from .message_model import ChatMessage

if TYPE_CHECKING:  # pragma: no cover
    from ..services.conversation_store import ConversationStore

__all__ = ["ConversationLog", "DEFAULT_CONVERSATION_DEBOUNCE"]

LOGGER = logging.getLogger(__name__)

DEFAULT_CONVERSATION_DEBOUNCE = 1.0


class ConversationLog:
    """Transcript of user, AI and system messages scoped to one document.

    Appends schedule a single trailing write of the whole log
    ``debounce_seconds`` after the last change. Storage failures are logged
    and posted as notices; the in-memory log is kept either way. The log is
    not part of undo/redo history.
    """

    def __init__(
        self,
        store: ConversationStore | None,
        *,
        debounce_seconds: float = DEFAULT_CONVERSATION_DEBOUNCE,
        scheduler: Scheduler | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._store = store
        self._bus = event_bus
        self._document_id: str | None = None
        self._messages: list[ChatMessage] = []
        self._persist_task = DebouncedTask(
            self._persist,
            debounce_seconds,
            scheduler=scheduler,
            name="conversation-log",
        )

    @property
    def document_id(self) -> str | None:
        return self._document_id

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def persist_pending(self) -> bool:
        return self._persist_task.pending

    def __len__(self) -> int:
        return len(self._messages)

    def load(self, document_id: str) -> list[ChatMessage]:
        """Bind the log to ``document_id`` and load its persisted messages."""

        if not document_id:
            raise ValueError("document_id is required")
        if self._document_id is not None and self._document_id != document_id:
            self._persist_task.flush()
        self._document_id = document_id
        self._messages = []
        if self._store is not None:
            try:
                self._messages = self._store.load(document_id)
            except (OSError, ValueError) as exc:
                LOGGER.warning("Failed to load conversation for %s: %s", document_id, exc)
                self._notify(f"Could not load the conversation history: {exc}", level="warning")
        LOGGER.debug("Conversation loaded: document_id=%s, messages=%d", document_id, len(self._messages))
        return list(self._messages)

    def append(self, message: ChatMessage) -> ChatMessage:
        if self._document_id is None:
            raise RuntimeError("ConversationLog.append called before load()")
        self._messages.append(message)
        if self._bus is not None:
            self._bus.publish(
                ChatMessageAppended(
                    document_id=self._document_id,
                    message_id=message.id,
                    role=message.role.value,
                    is_error=message.is_error,
                )
            )
        if self._store is not None:
            self._persist_task.schedule()
        return message

    def recent(self, limit: int) -> list[ChatMessage]:
        if limit <= 0:
            return []
        return self._messages[-limit:]

    def flush(self) -> bool:
        """Write a pending change now; returns ``True`` when a write ran."""

        return self._persist_task.flush()

    def clear(self, *, confirmed: bool = False) -> None:
        """Destructively empty the log and its persisted copy."""

        if not confirmed:
            raise ValueError("Clearing the conversation requires confirmation")
        if self._document_id is None:
            return
        self._persist_task.cancel()
        self._messages = []
        if self._store is not None:
            try:
                self._store.delete(self._document_id)
            except OSError as exc:
                LOGGER.warning("Failed to delete conversation for %s: %s", self._document_id, exc)
                self._notify(f"Could not delete the saved conversation: {exc}", level="warning")
        LOGGER.debug("Conversation cleared: document_id=%s", self._document_id)
        if self._bus is not None:
            self._bus.publish(ConversationCleared(document_id=self._document_id))

    def _persist(self) -> None:
        if self._store is None or self._document_id is None:
            return
        try:
            self._store.save(self._document_id, list(self._messages))
        except (OSError, ValueError, TypeError) as exc:
            LOGGER.warning("Failed to save conversation for %s: %s", self._document_id, exc)
            self._notify(f"Could not save the conversation: {exc}", level="error")
            return
        LOGGER.debug(
            "Conversation persisted: document_id=%s, messages=%d",
            self._document_id,
            len(self._messages),
        )

    def _notify(self, message: str, *, level: str) -> None:
        if self._bus is not None:
            self._bus.publish(NoticePosted(message=message, level=level))
